"""Font checks for vector artwork before rasterization.

Vector drawings from manufacturers reference whatever fonts their authoring tool
had installed. The renderer only has the Liberation/DejaVu/Noto families, so a
declared font is either available, mapped to a metric-compatible substitute, or
unsupported. Unsupported fonts fail the conversion: rendering them would silently
drop or mangle dimension text on a drawing.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from dataclasses import dataclass, field

SANS_SUBSTITUTES = ("Liberation Sans", "DejaVu Sans", "Noto Sans")
SERIF_SUBSTITUTES = ("Liberation Serif", "DejaVu Serif", "Noto Serif")
MONO_SUBSTITUTES = ("Liberation Mono", "DejaVu Sans Mono", "Noto Mono")

# Declared font (lower-case) -> installed substitutes, best match first.
FONT_MAPPINGS: dict[str, tuple[str, ...]] = {
  "arial": SANS_SUBSTITUTES,
  "arialmt": SANS_SUBSTITUTES,
  "arial mt": SANS_SUBSTITUTES,
  "helvetica": SANS_SUBSTITUTES,
  "helvetica neue": SANS_SUBSTITUTES,
  "sans-serif": SANS_SUBSTITUTES,
  "times": SERIF_SUBSTITUTES,
  "times new roman": SERIF_SUBSTITUTES,
  "serif": SERIF_SUBSTITUTES,
  "courier": MONO_SUBSTITUTES,
  "courier new": MONO_SUBSTITUTES,
  "monospace": MONO_SUBSTITUTES,
}

AVAILABLE_FONTS = frozenset(
  {
    "liberation sans",
    "liberation serif",
    "liberation mono",
    "dejavu sans",
    "dejavu serif",
    "dejavu sans mono",
    "noto sans",
    "noto serif",
    "noto mono",
  }
)

# CSS-wide keywords are not font names.
_CSS_KEYWORDS = frozenset({"inherit", "initial", "unset", "revert"})

# font-family="Arial, sans-serif" / font-family='...'
_ATTR_RE = re.compile(r"""(font-family\s*=\s*)(["'])(.*?)\2""", re.IGNORECASE | re.DOTALL)
# font-family: "Comic Sans MS", Arial;  (style sheets and style attributes)
_CSS_RE = re.compile(r"""(font-family\s*:\s*)((?:"[^"=<>;{}]*"|'[^'=<>;{}]*'|[^;}"'<>])+)""", re.IGNORECASE)


@dataclass
class FontValidation:
  """Result of checking every declared font against the installed set."""

  missing_fonts: list[str] = field(default_factory=list)
  warnings: list[str] = field(default_factory=list)
  substitutions: dict[str, str] = field(default_factory=dict)

  @property
  def valid(self) -> bool:
    return not self.missing_fonts


def _clean_font_name(raw: str) -> str:
  name = raw.replace("!important", "").strip()
  return name.replace('"', "").replace("'", "").strip()


def _split_font_list(value: str) -> Iterator[str]:
  for part in value.split(","):
    name = _clean_font_name(part)
    if name and name.lower() not in _CSS_KEYWORDS:
      yield name


def extract_svg_fonts(svg_text: str) -> list[str]:
  """Return every font named in font-family declarations, in order of first use."""
  fonts: dict[str, None] = {}
  for match in _ATTR_RE.finditer(svg_text):
    for name in _split_font_list(match.group(3)):
      fonts.setdefault(name, None)
  for match in _CSS_RE.finditer(svg_text):
    for name in _split_font_list(match.group(2)):
      fonts.setdefault(name, None)
  return list(fonts)


def _partial_mapping(font_lower: str) -> tuple[str, ...] | None:
  """Match vendor spellings such as `ArialMT-Bold` against the mapping keys."""
  for key, substitutes in FONT_MAPPINGS.items():
    if key in font_lower or font_lower in key:
      return substitutes
  return None


def validate_svg_fonts(svg_text: str) -> FontValidation:
  """Classify each declared font as available, substitutable or missing."""
  result = FontValidation()
  for font in extract_svg_fonts(svg_text):
    font_lower = font.lower()
    if font_lower in AVAILABLE_FONTS:
      continue

    substitutes = FONT_MAPPINGS.get(font_lower)
    if substitutes:
      result.warnings.append(f'Font "{font}" will be substituted with "{substitutes[0]}"')
      result.substitutions[font] = substitutes[0]
      continue

    substitutes = _partial_mapping(font_lower)
    if substitutes:
      result.warnings.append(f'Font "{font}" will be substituted with a compatible font ("{substitutes[0]}")')
      result.substitutions[font] = substitutes[0]
      continue

    result.missing_fonts.append(font)
  return result


def _rewrite_font_list(value: str, substitutions: dict[str, str]) -> str:
  names: list[str] = []
  for part in value.split(","):
    name = _clean_font_name(part)
    if not name:
      continue
    # Unquoted multi-word family names are valid CSS, so no quoting is needed.
    names.append(substitutions.get(name, part.strip()))
  return ", ".join(names)


def apply_font_substitutions(svg_text: str, substitutions: dict[str, str]) -> str:
  """Rewrite mapped fonts inside font-family declarations to their substitutes."""
  if not substitutions:
    return svg_text

  def _attr(match: re.Match[str]) -> str:
    quote = match.group(2)
    rewritten = _rewrite_font_list(match.group(3), substitutions)
    # Keep the attribute well-formed when a retained name carries the same quote.
    inner = '"' if quote == "'" else "'"
    return f"{match.group(1)}{quote}{rewritten.replace(quote, inner)}{quote}"

  def _css(match: re.Match[str]) -> str:
    return f"{match.group(1)}{_rewrite_font_list(match.group(2), substitutions)}"

  rewritten = _ATTR_RE.sub(_attr, svg_text)
  return _CSS_RE.sub(_css, rewritten)
