"""Normalize product artwork into print-ready PNG rasters."""

from __future__ import annotations

import asyncio
import base64
import io
import logging
import time
from collections.abc import Sequence

import cairosvg
from PIL import Image, ImageOps, UnidentifiedImageError
from starlette.concurrency import run_in_threadpool

from app.config import Settings
from app.images.download import ImageDownloader
from app.images.errors import ImageTooLargeError, InvalidImageError, UnsupportedFontError
from app.images.fonts import apply_font_substitutions, validate_svg_fonts
from app.images.models import BatchItem, BatchItemResult, ConversionOptions, ConversionRequest, ConversionResult, ImageMetadata
from app.images.theme import DarkThemeThresholds, detect_dark_theme, has_alpha, invert_dark_theme

logger = logging.getLogger(__name__)

OUTPUT_FORMAT = "png"
DEFAULT_DPI = 72
SNIFF_BYTES = 1000
WHITE = (255, 255, 255)


def buffer_to_base64(data: bytes) -> str:
  return base64.b64encode(data).decode("ascii")


def base64_to_buffer(encoded: str) -> bytes:
  return base64.b64decode(encoded)


def is_svg_content(data: bytes) -> bool:
  """Return True when the leading bytes contain an SVG root tag."""
  head = data[:SNIFF_BYTES].decode("utf-8", errors="ignore").lower()
  return "<svg" in head


def _flatten_on_white(image: Image.Image) -> Image.Image:
  """Composite any transparency onto a white background."""
  if has_alpha(image):
    rgba = image.convert("RGBA")
    background = Image.new("RGB", rgba.size, WHITE)
    background.paste(rgba, mask=rgba.getchannel("A"))
    return background
  if image.mode in {"L", "RGB"}:
    return image
  return image.convert("L" if image.mode in {"1", "I", "I;16", "F"} else "RGB")


def _fit_inside(image: Image.Image, width: int | None, height: int | None) -> Image.Image:
  """Aspect-preserving resize into the requested box; enlargement allowed."""
  if not width and not height:
    return image

  scales = []
  if width:
    scales.append(width / image.width)
  if height:
    scales.append(height / image.height)
  scale = min(scales)
  size = (max(1, round(image.width * scale)), max(1, round(image.height * scale)))
  if size == image.size:
    return image

  # Palette images cannot be resampled with LANCZOS.
  if image.mode in {"P", "1"}:
    image = image.convert("RGBA" if has_alpha(image) else "RGB")
  return image.resize(size, Image.Resampling.LANCZOS)


def _encode_png(image: Image.Image, dpi: int | None) -> bytes:
  output = io.BytesIO()
  if dpi:
    image.save(output, format="PNG", dpi=(dpi, dpi))
  else:
    image.save(output, format="PNG")
  return output.getvalue()


def _open_image(data: bytes) -> Image.Image:
  try:
    image = Image.open(io.BytesIO(data))
    image.load()
  except (UnidentifiedImageError, OSError) as exc:
    raise InvalidImageError(f"Unsupported or corrupt image data: {exc}") from exc
  return image


def read_image_metadata(data: bytes) -> ImageMetadata:
  """Measure an encoded image; DPI defaults to 72 when absent."""
  with Image.open(io.BytesIO(data)) as image:
    dpi_info = image.info.get("dpi")
    dpi = round(float(dpi_info[0])) if dpi_info else DEFAULT_DPI
    return ImageMetadata(width=image.width, height=image.height, format=(image.format or "unknown").lower(), dpi=dpi, size_bytes=len(data))


def validate_image_properties(data: bytes, options: ConversionOptions) -> tuple[list[str], ImageMetadata]:
  """Compare the produced image against the request; mismatches are warnings."""
  metadata = read_image_metadata(data)
  issues: list[str] = []

  if metadata.format != OUTPUT_FORMAT:
    issues.append(f"Format is {metadata.format}, expected {OUTPUT_FORMAT}")

  # Allow 1px difference for rounding.
  if options.width and abs(metadata.width - options.width) > 1:
    issues.append(f"Width is {metadata.width}px, expected {options.width}px")
  if options.height and abs(metadata.height - options.height) > 1:
    issues.append(f"Height is {metadata.height}px, expected {options.height}px")
  if options.dpi and abs(metadata.dpi - options.dpi) > 1:
    issues.append(f"DPI is {metadata.dpi}, expected {options.dpi}")

  return issues, metadata


def convert_raster_image(data: bytes, options: ConversionOptions, thresholds: DarkThemeThresholds) -> bytes:
  """Invert dark-theme art, fit, flatten on white and stamp DPI."""
  image = _open_image(data)

  # Inversion reads the alpha channel, so it must happen before any resampling.
  check = detect_dark_theme(image, thresholds)
  if check.is_dark_theme:
    logger.info("Dark theme image detected (%s) - inverting for light background", check.reason)
    image = invert_dark_theme(image)

  image = _fit_inside(image, options.width, options.height)
  image = _flatten_on_white(image)
  return _encode_png(image, options.dpi)


def _rasterize_svg(markup: bytes, width: int, height: int) -> Image.Image:
  """Render markup so that it fits inside width x height."""
  try:
    # First pass only measures the intrinsic size.
    natural = _open_image(cairosvg.svg2png(bytestring=markup))
    if natural.width == 0 or natural.height == 0:
      raise InvalidImageError("SVG has no drawable area")
    scale = min(width / natural.width, height / natural.height)
    return _open_image(cairosvg.svg2png(bytestring=markup, scale=scale))
  except (ValueError, SyntaxError) as exc:
    raise InvalidImageError(f"Failed to render SVG: {exc}") from exc


def convert_svg_image(data: bytes, options: ConversionOptions, settings: Settings) -> tuple[bytes, list[str]]:
  """Validate fonts, then rasterize with a centered white "contain" fit."""
  width = options.width or settings.svg_default_width
  height = options.height or settings.svg_default_height
  dpi = options.dpi or settings.svg_default_dpi

  svg_text = data.decode("utf-8", errors="replace")
  fonts = validate_svg_fonts(svg_text)
  if not fonts.valid:
    raise UnsupportedFontError(fonts.missing_fonts)
  if fonts.warnings:
    logger.info("[SVG Font] %s", "; ".join(fonts.warnings))

  markup = apply_font_substitutions(svg_text, fonts.substitutions).encode("utf-8")
  rendered = _flatten_on_white(_rasterize_svg(markup, width, height))
  canvas = ImageOps.pad(rendered, (width, height), method=Image.Resampling.LANCZOS, color=WHITE, centering=(0.5, 0.5))
  return _encode_png(canvas, dpi), fonts.warnings


def convert_image_bytes(image_bytes: bytes, options: ConversionOptions | None = None, *, settings: Settings) -> ConversionResult:
  """Convert raster or SVG bytes into a validated PNG.

  Font and size failures raise; geometry mismatches only downgrade the
  validation status to "warning".
  """
  options = options or ConversionOptions()
  start = time.perf_counter()
  if len(image_bytes) > settings.max_image_bytes:
    raise ImageTooLargeError(len(image_bytes), settings.max_image_bytes)

  warnings: list[str] = []
  if is_svg_content(image_bytes):
    converted, warnings = convert_svg_image(image_bytes, options, settings)
  else:
    converted = convert_raster_image(image_bytes, options, DarkThemeThresholds.from_settings(settings))

  if len(converted) > settings.max_image_bytes:
    raise ImageTooLargeError(len(converted), settings.max_image_bytes)

  issues, metadata = validate_image_properties(converted, options)
  return ConversionResult(
    original_bytes=image_bytes,
    converted_bytes=converted,
    converted_base64=buffer_to_base64(converted),
    metadata=metadata,
    validation_status="passed" if not issues else "warning",
    validation_issues=issues,
    process_time=round(time.perf_counter() - start, 3),
    warnings=warnings,
  )


def convert(request: ConversionRequest, *, settings: Settings) -> ConversionResult:
  return convert_image_bytes(request.image_bytes, request.options, settings=settings)


class ImageConverter:
  """Download-and-convert entry point used by request handlers."""

  def __init__(self, settings: Settings, downloader: ImageDownloader | None = None) -> None:
    self._settings = settings
    self._downloader = downloader or ImageDownloader(settings)

  async def convert_url(self, url: str, options: ConversionOptions | None = None) -> ConversionResult:
    """Fetch `url` and convert it off the event loop."""
    original = await self._downloader.download(url)
    return await run_in_threadpool(convert_image_bytes, original, options, settings=self._settings)

  async def convert_batch(self, items: Sequence[BatchItem]) -> list[BatchItemResult]:
    """Convert every entry concurrently; failures are collected per entry."""
    return list(await asyncio.gather(*(self._convert_item(item) for item in items)))

  async def _convert_item(self, item: BatchItem) -> BatchItemResult:
    settings = self._settings
    options = ConversionOptions(width=item.width or settings.default_width, height=item.height or settings.default_height, dpi=item.dpi or settings.default_dpi)
    result = BatchItemResult(image_filename=item.image_filename, drawing_filename=item.drawing_filename)

    tasks = [(kind, url) for kind, url in (("image", item.image_url), ("drawing", item.drawing_url)) if url]
    outcomes = await asyncio.gather(*(self.convert_url(url, options) for _, url in tasks), return_exceptions=True)

    for (kind, url), outcome in zip(tasks, outcomes, strict=True):
      if isinstance(outcome, ConversionResult):
        if kind == "image":
          result.image_result = outcome
        else:
          result.drawing_result = outcome
        continue
      if not isinstance(outcome, Exception):
        # Cancellation must not be recorded as an entry error.
        raise outcome
      logger.warning("%s conversion failed url=%s error=%s", kind.capitalize(), url, outcome)
      result.errors.append(f"{kind.capitalize()} conversion failed: {str(outcome) or type(outcome).__name__}")
    return result
