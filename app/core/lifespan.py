import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from app.core.logging import _initialize_logging
from app.images.converter import ImageConverter
from app.jobs.pipeline import HttpDrawingGenerator
from app.jobs.progress import ProgressStore
from app.viewer.stager import RenderingStager


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Build the process-wide services once and release them on shutdown."""
  from app.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("app.core.lifespan")

  _initialize_logging(settings)
  logger.info("Startup complete - logging verified.")

  if not settings.aps_client_id or not settings.aps_client_secret:
    logger.warning("APS credentials missing; viewer staging will fail until TILES_APS_CLIENT_ID/SECRET are set.")
  if not settings.generator_url:
    logger.warning("TILES_GENERATOR_URL not set; tile generation jobs will fail at the drawing phase.")

  # One shared client keeps connection pooling across token, storage and derivative calls.
  http_client = httpx.AsyncClient(timeout=settings.aps_timeout_seconds)
  store = ProgressStore(retention_seconds=settings.job_retention_seconds)

  app.state.http_client = http_client
  app.state.progress_store = store
  app.state.rendering_stager = RenderingStager.from_settings(settings, http_client)
  app.state.image_converter = ImageConverter(settings)
  app.state.drawing_generator = HttpDrawingGenerator(settings)

  try:
    yield
  finally:
    store.close()
    await http_client.aclose()
    logger.info("Shutdown complete.")
