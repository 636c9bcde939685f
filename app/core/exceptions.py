import logging
from typing import Any

import httpx
from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.images.errors import ImageDownloadError, ImageDownloadTimeoutError, ImageNotFoundError, ImageProcessingError, ImageTooLargeError


def _coerce_json_safe(value: Any) -> Any:
  """Convert unsupported values into JSON-safe primitives for error responses."""
  if value is None or isinstance(value, bool | int | float | str):
    return value
  if isinstance(value, dict):
    return {str(key): _coerce_json_safe(item) for key, item in value.items()}
  if isinstance(value, list | tuple | set):
    return [_coerce_json_safe(item) for item in value]
  # Serialize exception instances explicitly to avoid leaking non-serializable objects.
  if isinstance(value, BaseException):
    error_message = str(value)
    if error_message:
      return f"{type(value).__name__}: {error_message}"
    return type(value).__name__
  return str(value)


def _error_payload(detail: Any, *, request_id: str | None = None) -> dict[str, Any]:
  """Build the `{detail, requestId}` error body."""
  payload: dict[str, Any] = {"detail": detail}
  # Attach a request id so support can correlate client reports to server logs.
  if request_id:
    payload["requestId"] = request_id
  return payload


def _request_id(request: Request) -> str | None:
  return getattr(request.state, "request_id", None)


def _sanitize_validation_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
  """Return validation errors without raw input payloads."""
  sanitized: list[dict[str, Any]] = []
  for error in errors:
    scrubbed = {key: value for key, value in error.items() if key != "input"}
    if "ctx" in scrubbed and isinstance(scrubbed["ctx"], dict):
      scrubbed_ctx = dict(scrubbed["ctx"])
      scrubbed_ctx.pop("input", None)
      scrubbed["ctx"] = scrubbed_ctx

    sanitized.append(_coerce_json_safe(scrubbed))

  return sanitized


def _sanitize_http_detail(detail: Any) -> Any:
  """Return an HTTPException detail payload safe for logs."""
  if isinstance(detail, dict):
    return {key: _sanitize_http_detail(value) for key, value in detail.items() if key not in {"input", "body", "payload", "content"}}
  if isinstance(detail, list):
    return [_sanitize_http_detail(item) for item in detail]
  return detail


def image_error_status(exc: ImageProcessingError) -> int:
  """Map a normalizer failure onto the HTTP status returned to callers."""
  if isinstance(exc, ImageNotFoundError):
    return status.HTTP_404_NOT_FOUND
  if isinstance(exc, ImageDownloadTimeoutError):
    return status.HTTP_504_GATEWAY_TIMEOUT
  if isinstance(exc, ImageTooLargeError):
    return status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
  if isinstance(exc, ImageDownloadError) and exc.status_code is not None:
    return status.HTTP_502_BAD_GATEWAY
  return status.HTTP_422_UNPROCESSABLE_ENTITY


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
  """Global exception handler to catch unhandled errors."""
  logger = logging.getLogger("uvicorn.error")
  request_id = _request_id(request)
  logger.error("Global exception request_id=%s path=%s error_type=%s", request_id, request.url.path, type(exc).__name__, exc_info=exc)
  return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=_error_payload("Internal Server Error", request_id=request_id))


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
  """Log request validation errors for debugging without leaking payloads."""
  request_id = _request_id(request)
  sanitized_errors = _sanitize_validation_errors(exc.errors())
  logger = logging.getLogger("uvicorn.error")
  logger.warning("Request validation failed request_id=%s path=%s method=%s errors=%s", request_id, request.url.path, request.method, sanitized_errors)
  return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=_error_payload(sanitized_errors, request_id=request_id))


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
  """Handle FastAPI HTTPExceptions while avoiding leaking internal diagnostics."""
  from app.config import get_settings

  settings = get_settings()
  request_id = _request_id(request)
  # Log 5xx HTTPExceptions with a traceback for diagnostics; do not expose `exc.detail` to callers.
  if exc.status_code >= 500:
    logger = logging.getLogger("uvicorn.error")
    logger.error("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, exc.detail, exc_info=exc)
    return JSONResponse(status_code=exc.status_code, content=_error_payload("Internal Server Error", request_id=request_id))

  if settings.log_http_4xx:
    logger = logging.getLogger("uvicorn.error")
    logger.warning("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, _sanitize_http_detail(exc.detail))

  # Preserve 4xx details for client-correctable errors.
  return JSONResponse(status_code=exc.status_code, content=_error_payload(exc.detail, request_id=request_id), headers=getattr(exc, "headers", None))


async def image_processing_exception_handler(request: Request, exc: ImageProcessingError) -> JSONResponse:
  """Surface caller-fixable conversion failures with their specific reason."""
  request_id = _request_id(request)
  status_code = image_error_status(exc)
  logger = logging.getLogger("uvicorn.error")
  logger.warning("Image processing failed request_id=%s path=%s status_code=%s error=%s", request_id, request.url.path, status_code, exc)
  return JSONResponse(status_code=status_code, content=_error_payload(str(exc), request_id=request_id))


async def upstream_exception_handler(request: Request, exc: httpx.HTTPStatusError) -> JSONResponse:
  """Report remote service failures as a bad gateway."""
  request_id = _request_id(request)
  logger = logging.getLogger("uvicorn.error")
  logger.error("Upstream request failed request_id=%s path=%s upstream=%s status_code=%s", request_id, request.url.path, exc.request.url, exc.response.status_code)
  return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content=_error_payload(f"Upstream service error: {exc.response.status_code}", request_id=request_id))
