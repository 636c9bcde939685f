"""Tile generation pipeline: normalize artwork, build the drawing, stage a preview."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Protocol

import httpx

from app.config import Settings
from app.images.converter import ImageConverter, buffer_to_base64
from app.images.models import BatchItem
from app.jobs.models import JobResult
from app.jobs.progress import ProgressStore
from app.viewer.bundle import ReferencedImage
from app.viewer.stager import RenderingStager

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, str | None], None]


@dataclass(frozen=True)
class TileMember:
  product_id: str
  image_filename: str
  drawing_filename: str
  image_url: str | None = None
  drawing_url: str | None = None
  tile_text: str = ""
  width: int | None = None
  height: int | None = None
  dpi: int | None = None
  tile_width: int | None = None
  tile_height: int | None = None

  def as_batch_item(self) -> BatchItem:
    return BatchItem(
      image_url=self.image_url or None,
      drawing_url=self.drawing_url or None,
      image_filename=self.image_filename,
      drawing_filename=self.drawing_filename,
      width=self.width,
      height=self.height,
      dpi=self.dpi,
    )

  def as_dict(self) -> dict[str, object]:
    return {
      "productId": self.product_id,
      "imageFilename": self.image_filename,
      "drawingFilename": self.drawing_filename,
      "tileText": self.tile_text,
      "width": self.width,
      "height": self.height,
      "dpi": self.dpi,
      "tileWidth": self.tile_width,
      "tileHeight": self.tile_height,
    }


@dataclass(frozen=True)
class TilePayload:
  """A tile and the product members placed on it."""

  tile: str
  tile_id: str
  members: list[TileMember] = field(default_factory=list)


@dataclass(frozen=True)
class GeneratedDrawing:
  data: bytes
  filename: str
  dwg_url: str | None = None


class DrawingGenerator(Protocol):
  """Produces the CAD binary for a tile from its normalized images."""

  async def generate(self, payload: TilePayload, images: Sequence[ReferencedImage], on_progress: ProgressCallback) -> GeneratedDrawing: ...


class HttpDrawingGenerator:
  """Delegate drawing generation to an external HTTP service."""

  def __init__(self, settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
    self._url = settings.generator_url
    self._timeout_seconds = settings.generator_timeout_seconds
    self._transport = transport

  async def generate(self, payload: TilePayload, images: Sequence[ReferencedImage], on_progress: ProgressCallback) -> GeneratedDrawing:
    if not self._url:
      raise RuntimeError("Drawing generator not configured (TILES_GENERATOR_URL).")

    body = {
      "tile": payload.tile,
      "tileId": payload.tile_id,
      "members": [member.as_dict() for member in payload.members],
      "images": [{"filename": image.name, "base64": buffer_to_base64(image.data)} for image in images],
    }
    on_progress("Submitting drawing request", f"{len(images)} images")
    async with httpx.AsyncClient(transport=self._transport, timeout=self._timeout_seconds) as client:
      response = await client.post(self._url, json=body, headers={"Accept": "application/octet-stream"})
      response.raise_for_status()

    on_progress("Drawing received", f"{len(response.content) // 1024} KB")
    return GeneratedDrawing(data=response.content, filename=f"{payload.tile}.dwg", dwg_url=response.headers.get("x-dwg-url"))


class TilePipeline:
  """Run one tile job end to end, reporting every phase to the ProgressStore."""

  def __init__(self, store: ProgressStore, converter: ImageConverter, generator: DrawingGenerator, stager: RenderingStager) -> None:
    self._store = store
    self._converter = converter
    self._generator = generator
    self._stager = stager

  async def run(self, job_id: str, payload: TilePayload) -> None:
    """Execute the job; failures end as an `error` event, never as a raised exception."""
    store = self._store
    try:
      member_count = len(payload.members)
      store.publish(job_id, "images", "Starting tile generation", f"{payload.tile} ({member_count} members)")

      # Phase 1: normalize product images and drawings.
      store.publish(job_id, "images", "Processing images...", f"{member_count * 2} files (images + drawings)", step="Step 1/3")
      results = await self._converter.convert_batch([member.as_batch_item() for member in payload.members])
      errors = [error for result in results for error in result.errors]
      images = [ReferencedImage(name=filename, data=converted.converted_bytes) for result in results for filename, converted in result.converted_files()]
      if not images:
        message = ", ".join(errors) if errors else "No images were processed successfully"
        store.publish(job_id, "error", "Image processing failed", message)
        store.complete(job_id, False, JobResult(success=False, errors=[message]))
        return
      store.publish(job_id, "images", "Images processed", f"{len(images)} files converted", step="Step 1/3")

      # Phase 2: build the drawing.
      store.publish(job_id, "script", "Generating drawing...", step="Step 2/3")
      drawing = await self._generator.generate(payload, images, lambda message, detail: store.publish(job_id, "script", message, detail, step="Step 2/3"))
      store.publish(job_id, "script", "Drawing generated", f"{drawing.filename} ({len(drawing.data) // 1024} KB)", step="Step 2/3")

      # Phase 3: stage a browser preview with the images the drawing references.
      store.publish(job_id, "aps", "Preparing viewer preview...", step="Step 3/3")
      staged = await self._stager.stage(drawing.filename, drawing.data, images)
      store.publish(job_id, "aps", "Viewer translation started", staged.urn, step="Step 3/3")

      result = JobResult(success=True, dwg_url=drawing.dwg_url, viewer_urn=staged.urn, errors=errors or None)
      store.complete(job_id, True, result, payload=drawing.data)
    except Exception as exc:
      message = str(exc) or type(exc).__name__
      logger.exception("Tile job %s failed", job_id)
      store.publish(job_id, "error", "Unexpected error", message)
      store.complete(job_id, False, JobResult(success=False, errors=[message]))
