"""Shared FastAPI dependencies resolving the process-wide services."""

from __future__ import annotations

from fastapi import Depends, Request

from app.images.converter import ImageConverter
from app.jobs.pipeline import DrawingGenerator, TilePipeline
from app.jobs.progress import ProgressStore
from app.viewer.stager import RenderingStager


def get_progress_store(request: Request) -> ProgressStore:
  return request.app.state.progress_store


def get_rendering_stager(request: Request) -> RenderingStager:
  return request.app.state.rendering_stager


def get_image_converter(request: Request) -> ImageConverter:
  return request.app.state.image_converter


def get_drawing_generator(request: Request) -> DrawingGenerator:
  return request.app.state.drawing_generator


def get_tile_pipeline(
  store: ProgressStore = Depends(get_progress_store),  # noqa: B008
  converter: ImageConverter = Depends(get_image_converter),  # noqa: B008
  generator: DrawingGenerator = Depends(get_drawing_generator),  # noqa: B008
  stager: RenderingStager = Depends(get_rendering_stager),  # noqa: B008
) -> TilePipeline:
  """Assemble a pipeline from the injected services."""
  return TilePipeline(store, converter, generator, stager)
