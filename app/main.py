from __future__ import annotations

import httpx
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from app.api.routes import images, tiles, viewer
from app.config import get_settings
from app.core.exceptions import global_exception_handler, http_exception_handler, image_processing_exception_handler, request_validation_exception_handler, upstream_exception_handler
from app.core.lifespan import lifespan
from app.core.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from app.images.errors import ImageProcessingError

settings = get_settings()

app = FastAPI(title="Tiles Service", version="0.1.0", lifespan=lifespan, docs_url="/docs" if settings.debug else None, redoc_url=None)

app.add_middleware(CORSMiddleware, allow_origins=list(settings.allowed_origins), allow_credentials=True, allow_methods=["GET", "POST", "OPTIONS"], allow_headers=["content-type", "authorization", "x-request-id"], expose_headers=["content-length", "content-disposition", "x-request-id"])


app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
app.add_exception_handler(ImageProcessingError, image_processing_exception_handler)
app.add_exception_handler(httpx.HTTPStatusError, upstream_exception_handler)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(SecurityHeadersMiddleware)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Return a simple health status."""
  return {"status": "ok", "version": "0.1.0"}


app.include_router(images.router, prefix="/v1/images", tags=["images"])
app.include_router(tiles.router, prefix="/v1/tiles", tags=["tiles"])
app.include_router(viewer.router, prefix="/v1/viewer", tags=["viewer"])
