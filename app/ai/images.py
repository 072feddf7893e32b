"""Image prompt selection for lesson illustrations."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

# Illustrations are expensive; lessons get at most this many.
MAX_IMAGES_PER_LESSON = 1

_AUDIENCE = "suitable for children ages 8-14"

# Insertion order matters: the first keyword found in the outline wins.
_VISUAL_KEYWORDS: dict[str, str] = {
  # Science and nature
  "animal": f"A colorful, simple illustration of an animal, educational style, {_AUDIENCE}",
  "planet": "A bright, colorful illustration of a planet in space, educational diagram style",
  "solar system": "A simplified diagram of the solar system with planets, sun, and orbits, colorful and educational",
  "cell": "A diagram of a cell showing nucleus, mitochondria, and other organelles, bright and educational",
  "human body": "A diagram of the human body showing major organs, colorful and kid-friendly",
  "anatomy": "An anatomical illustration highlighting body systems, educational and colorful",
  "plant": "A botanical illustration of a plant showing roots, stem, and leaves, colorful",
  "science": "A colorful scientific illustration related to the topic, educational style",
  # History and geography
  "map": "A colorful map highlighting geographical features or regions, educational style",
  "country": "A map and illustration of a country with landmarks, colorful and educational",
  "historical": "A historical illustration depicting the time period or event, educational style",
  "culture": "An illustration showcasing cultural elements and traditions, colorful and respectful",
  "landmark": "An illustration of a famous landmark or monument, colorful and detailed",
  # Math
  "geometry": "Geometric shapes and diagrams illustrating mathematical concepts, colorful",
  "math": f"A colorful diagram illustrating mathematical concepts, {_AUDIENCE}",
  "fraction": "A visual representation of fractions using pie charts and divisions, colorful",
  "graph": "A colorful bar chart or line graph representing data, educational style",
  # Other topics
  "weather": "A weather diagram showing different weather conditions, colorful and simple",
  "water cycle": "A diagram of the water cycle showing evaporation, condensation, and precipitation",
  "ecosystem": "An illustration of an ecosystem showing animals, plants, and their relationships",
  "food chain": "A diagram showing a food chain with animals and plants, colorful and educational",
  "ocean": "An illustration of ocean life and underwater ecosystem, colorful and bright",
  "space": "A space-themed illustration with planets, stars, and astronauts, colorful",
}


@dataclass(frozen=True)
class GeneratedImage:
  url: str
  prompt: str
  size: str
  generated_at: str
  revised_prompt: str | None = None

  def to_metadata(self) -> dict[str, Any]:
    return asdict(self)


def extract_image_prompts(outline: str) -> list[str]:
  """Pick one illustration prompt for the outline, falling back to a generic one."""
  lowered = outline.lower()
  for keyword, prompt in _VISUAL_KEYWORDS.items():
    if keyword in lowered:
      return [prompt]

  topic = outline[:80].strip()
  return [f'A colorful, simple, and engaging educational illustration for the lesson about: "{topic}". Suitable for children ages 8-14.']


def select_image_prompts(outline: str, count: int) -> list[str]:
  """Return the prompts to render, bounded by MAX_IMAGES_PER_LESSON."""
  limit = max(0, min(count, MAX_IMAGES_PER_LESSON))
  return extract_image_prompts(outline)[:limit]
