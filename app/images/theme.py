"""Detection and correction of dark-theme line art.

Some manufacturers export drawings as white strokes on a transparent background,
meant for dark UIs. Placed on a white tile they disappear, so they are inverted
before any resizing happens.
"""

from __future__ import annotations

from dataclasses import dataclass

from PIL import Image, ImageChops, ImageOps

from app.config import Settings

_ALPHA_MODES = {"RGBA", "LA", "PA"}


@dataclass(frozen=True)
class DarkThemeThresholds:
  """Tunable limits of the dark-theme heuristic."""

  transparent_ratio: float = 0.5
  white_ratio: float = 0.9
  white_level: int = 250
  alpha_cutoff: int = 10

  @classmethod
  def from_settings(cls, settings: Settings) -> DarkThemeThresholds:
    return cls(transparent_ratio=settings.dark_theme_transparent_ratio, white_ratio=settings.dark_theme_white_ratio, white_level=settings.dark_theme_white_level, alpha_cutoff=settings.dark_theme_alpha_cutoff)


@dataclass(frozen=True)
class DarkThemeCheck:
  """Outcome of the dark-theme analysis."""

  is_dark_theme: bool
  reason: str
  transparent_ratio: float = 0.0
  white_ratio: float = 0.0


def has_alpha(image: Image.Image) -> bool:
  """Return True when the image carries an alpha channel or palette transparency."""
  if image.mode in _ALPHA_MODES:
    return True
  return image.mode == "P" and "transparency" in image.info


def _threshold_mask(band: Image.Image, level: int) -> Image.Image:
  """Return an L mask that is 255 where the band value is at least `level`."""
  table = [255 if value >= level else 0 for value in range(256)]
  return band.point(table)


def _count_set(mask: Image.Image) -> int:
  return mask.histogram()[255]


def detect_dark_theme(image: Image.Image, thresholds: DarkThemeThresholds | None = None) -> DarkThemeCheck:
  """Decide whether an image is light line art drawn on transparency."""
  limits = thresholds or DarkThemeThresholds()
  if not has_alpha(image):
    return DarkThemeCheck(is_dark_theme=False, reason="No alpha channel")

  # Palette and LA images are widened so band access is uniform.
  working = image if image.mode in {"RGBA", "LA"} else image.convert("RGBA")
  bands = working.split()
  alpha = bands[-1]
  color_bands = bands[:-1]
  pixels = working.width * working.height
  if pixels == 0:
    return DarkThemeCheck(is_dark_theme=False, reason="Empty image")

  visible = _threshold_mask(alpha, limits.alpha_cutoff)
  visible_count = _count_set(visible)
  transparent_count = pixels - visible_count

  # A visible pixel is white only when every color band is at or above the level.
  white = visible
  for band in color_bands:
    white = ImageChops.multiply(white, _threshold_mask(band, limits.white_level))
  white_count = _count_set(white)

  transparent_ratio = transparent_count / pixels
  white_ratio = white_count / visible_count if visible_count else 0.0
  reason = f"{transparent_ratio * 100:.0f}% transparent, {white_ratio * 100:.0f}% white pixels"
  is_dark = transparent_ratio > limits.transparent_ratio and white_ratio > limits.white_ratio
  return DarkThemeCheck(is_dark_theme=is_dark, reason=reason, transparent_ratio=transparent_ratio, white_ratio=white_ratio)


def invert_dark_theme(image: Image.Image) -> Image.Image:
  """Turn alpha-drawn strokes into black lines on white.

  The alpha channel is the drawing: opaque strokes map to black and the
  transparent background maps to white (value = 255 - alpha).
  """
  alpha = image.convert("RGBA").getchannel("A")
  return ImageOps.invert(alpha)
