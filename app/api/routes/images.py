import logging
from typing import Any

from fastapi import APIRouter, Depends

from app.api.deps import get_image_converter
from app.api.models import BatchConvertRequest, BatchConvertResponse, ImageConvertRequest
from app.images.converter import ImageConverter
from app.images.models import BatchItemResult

router = APIRouter()
logger = logging.getLogger("app.api.routes.images")


def _batch_entry(result: BatchItemResult) -> dict[str, Any]:
  return {
    "imageFilename": result.image_filename,
    "drawingFilename": result.drawing_filename,
    "imageResult": result.image_result.summary() if result.image_result is not None else None,
    "drawingResult": result.drawing_result.summary() if result.drawing_result is not None else None,
    "errors": list(result.errors),
  }


@router.post("/convert")
async def convert_image(
  request: ImageConvertRequest,
  converter: ImageConverter = Depends(get_image_converter),  # noqa: B008
) -> dict[str, Any]:
  """Download one image and return the normalized PNG with its validation report."""
  result = await converter.convert_url(request.image_url, request.options())
  logger.info("Converted %s -> %sx%s status=%s", request.image_url, result.metadata.width, result.metadata.height, result.validation_status)
  return {"success": True, **result.summary()}


@router.post("/convert-batch", response_model=BatchConvertResponse)
async def convert_batch(
  request: BatchConvertRequest,
  converter: ImageConverter = Depends(get_image_converter),  # noqa: B008
) -> BatchConvertResponse:
  """Convert every entry concurrently; failures are reported per entry."""
  results = await converter.convert_batch([item.to_batch_item() for item in request.items])
  success = all(not result.errors for result in results)
  return BatchConvertResponse(success=success, results=[_batch_entry(result) for result in results])
