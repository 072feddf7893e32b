"""Unit tests for the generated-lesson static checks."""

from __future__ import annotations

from app.ai.validator import validate_lesson_code
from tests.doubles import VALID_CODE


def test_valid_component_passes_and_returns_code() -> None:
  result = validate_lesson_code(VALID_CODE)
  assert result.is_valid
  assert result.errors == []
  assert result.warnings == []
  assert result.code == VALID_CODE


def test_missing_export_and_react_import_are_errors() -> None:
  code = "function GeneratedLesson() { return (<div>Hi</div>); }"
  result = validate_lesson_code(code)
  assert not result.is_valid
  assert result.code is None
  assert any("Missing default export" in error for error in result.errors)
  assert any("Missing React import" in error for error in result.errors)


def test_dangerous_patterns_are_security_errors() -> None:
  code = VALID_CODE.replace("const [step, setStep] = useState(0);", "const [step, setStep] = useState(0); eval('1'); document.cookie;")
  result = validate_lesson_code(code)
  assert "Security: eval() is not allowed" in result.errors
  assert "Security: Accessing document.cookie is not allowed" in result.errors


def test_script_tag_check_is_case_insensitive() -> None:
  result = validate_lesson_code(VALID_CODE.replace("<button", "<SCRIPT></SCRIPT><button"))
  assert "Security: Script tags are not allowed" in result.errors


def test_unbalanced_braces_and_parentheses() -> None:
  result = validate_lesson_code(VALID_CODE + "{(")
  assert "Unmatched braces - check your code syntax" in result.errors
  assert "Unmatched parentheses - check your code syntax" in result.errors


def test_naming_and_jsx_are_only_warnings() -> None:
  code = "import React from 'react';\nexport default function Lesson() { return null; }"
  result = validate_lesson_code(code)
  assert result.is_valid
  assert 'Component should be named "GeneratedLesson" for consistency' in result.warnings
  assert "Component should return JSX elements" in result.warnings


def test_react_import_without_from_is_invalid() -> None:
  code = "import React\nexport default function GeneratedLesson() { return (<div />); }"
  result = validate_lesson_code(code)
  assert 'Invalid import statement - missing "from"' in result.errors
