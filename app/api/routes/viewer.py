import logging

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status

from app.api.deps import get_rendering_stager
from app.api.models import TranslationStatusResponse, ViewerTokenResponse, ViewerUploadResponse
from app.viewer.stager import RenderingStager

router = APIRouter()
logger = logging.getLogger("app.api.routes.viewer")

VIEWABLE_EXTENSIONS = (".dwg", ".dxf")


@router.get("/auth", response_model=ViewerTokenResponse)
async def get_viewer_auth(stager: RenderingStager = Depends(get_rendering_stager)) -> ViewerTokenResponse:  # noqa: B008
  """Return a read-only token for browser viewers."""
  token = await stager.get_viewer_token()
  return ViewerTokenResponse(access_token=token.access_token, expires_in=token.expires_in)


@router.post("/upload", response_model=ViewerUploadResponse)
async def upload_for_viewing(
  file: UploadFile = File(...),  # noqa: B008
  stager: RenderingStager = Depends(get_rendering_stager),  # noqa: B008
) -> ViewerUploadResponse:
  """Stage an uploaded drawing for preview and start its translation."""
  filename = (file.filename or "").lower()
  if not filename.endswith(VIEWABLE_EXTENSIONS):
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid file type. Only DWG and DXF files are supported.")

  data = await file.read()
  if not data:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Uploaded file is empty.")

  staged = await stager.stage(filename, data)
  logger.info("Viewer upload staged file=%s bytes=%d urn=%s", filename, len(data), staged.urn)
  return ViewerUploadResponse(urn=staged.urn, expires_at=staged.expires_at)


@router.get("/status/{urn}", response_model=TranslationStatusResponse, response_model_exclude_none=True)
async def get_translation_status(urn: str, stager: RenderingStager = Depends(get_rendering_stager)) -> TranslationStatusResponse:  # noqa: B008
  """Poll the derivative manifest for `urn`."""
  translation = await stager.get_translation_status(urn)
  return TranslationStatusResponse(status=translation.status, progress=translation.progress, messages=translation.messages or None)
