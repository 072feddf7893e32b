"""Lightweight static checks for generated lesson components.

This is not a compiler. The rendering sandbox compiles the component; these
checks only catch structural mistakes and patterns we refuse to ship.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

_DANGEROUS_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
  (re.compile(r"eval\s*\("), "eval() is not allowed"),
  (re.compile(r"Function\s*\("), "Function() constructor is not allowed"),
  (re.compile(r"document\.cookie"), "Accessing document.cookie is not allowed"),
  (re.compile(r"localStorage\.clear"), "localStorage.clear() is not allowed"),
  (re.compile(r"sessionStorage\.clear"), "sessionStorage.clear() is not allowed"),
  (re.compile(r"window\.location\s*="), "Redirecting via window.location is not allowed"),
  (re.compile(r"<script", re.IGNORECASE), "Script tags are not allowed"),
  (re.compile(r"dangerouslySetInnerHTML"), "dangerouslySetInnerHTML is not recommended"),
)

_JSX_ROOT = re.compile(r"<div|<main|<section|<article|<>")


@dataclass
class ValidationResult:
  """Outcome of validating one code string. `code` is set only when valid."""

  is_valid: bool
  errors: list[str] = field(default_factory=list)
  warnings: list[str] = field(default_factory=list)
  code: str | None = None


def validate_lesson_code(code: str) -> ValidationResult:
  """Validate a generated React component for safety and basic correctness."""
  errors: list[str] = []
  warnings: list[str] = []

  # Required elements.
  if "export default" not in code:
    errors.append('Missing default export - component must have "export default function GeneratedLesson()"')
  if "import React" not in code:
    errors.append("Missing React import - add \"import React from 'react';\"")
  if "function GeneratedLesson" not in code and "const GeneratedLesson" not in code:
    warnings.append('Component should be named "GeneratedLesson" for consistency')

  # Security.
  for pattern, message in _DANGEROUS_PATTERNS:
    if pattern.search(code):
      errors.append(f"Security: {message}")

  # React structure.
  if "return" not in code:
    errors.append("Component must have a return statement")
  if not _JSX_ROOT.search(code):
    warnings.append("Component should return JSX elements")

  # Syntax heuristics.
  if code.count("{") != code.count("}"):
    errors.append("Unmatched braces - check your code syntax")
  if code.count("(") != code.count(")"):
    errors.append("Unmatched parentheses - check your code syntax")
  if "import React" in code and "from" not in code:
    errors.append('Invalid import statement - missing "from"')

  is_valid = not errors
  return ValidationResult(is_valid=is_valid, errors=errors, warnings=warnings, code=code if is_valid else None)
