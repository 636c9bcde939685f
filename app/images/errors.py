"""Errors raised while fetching and normalizing artwork."""

from __future__ import annotations


class ImageProcessingError(Exception):
  """Base class for caller-fixable image conversion failures."""


class ImageDownloadError(ImageProcessingError):
  """Raised when the source image cannot be fetched."""

  def __init__(self, message: str, *, status_code: int | None = None) -> None:
    super().__init__(message)
    self.status_code = status_code


class ImageNotFoundError(ImageDownloadError):
  """Raised when the source URL answers 404."""

  def __init__(self, url: str) -> None:
    super().__init__("Image not found", status_code=404)
    self.url = url


class ImageDownloadTimeoutError(ImageDownloadError):
  """Raised when the download exceeds its time budget."""

  def __init__(self, timeout_seconds: float) -> None:
    super().__init__("Image download timeout")
    self.timeout_seconds = timeout_seconds


class ImageTooLargeError(ImageProcessingError):
  """Raised when a downloaded or produced image exceeds the byte ceiling."""

  def __init__(self, size_bytes: int | None, limit_bytes: int) -> None:
    limit_mb = limit_bytes // (1024 * 1024)
    super().__init__(f"File size exceeds limit of {limit_mb}MB")
    self.size_bytes = size_bytes
    self.limit_bytes = limit_bytes


class InvalidImageError(ImageProcessingError):
  """Raised when the payload is neither a decodable raster nor renderable markup."""


class UnsupportedFontError(ImageProcessingError):
  """Raised when vector markup references fonts that cannot be rendered."""

  def __init__(self, fonts: list[str]) -> None:
    super().__init__(
      f"SVG contains unsupported fonts that cannot be rendered: {', '.join(fonts)}. "
      "Please use standard fonts (Arial, Helvetica, Times, Courier) or embed fonts in the SVG."
    )
    self.fonts = list(fonts)
