import asyncio
import json
import logging
import re
from collections.abc import AsyncIterator
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from fastapi.responses import Response, StreamingResponse

from app.api.deps import get_progress_store, get_tile_pipeline
from app.api.models import TileGenerateRequest, TileGenerateResponse
from app.jobs.models import Job, ProgressEvent
from app.jobs.pipeline import TilePipeline
from app.jobs.progress import ProgressStore

router = APIRouter()
logger = logging.getLogger("app.api.routes.tiles")

KEEPALIVE_SECONDS = 15.0
_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._ -]")


def _sse_data(payload: dict[str, Any]) -> str:
  return f"data: {json.dumps(payload)}\n\n"


def _sse_done(job_status: str) -> str:
  return f"event: done\ndata: {json.dumps({'status': job_status})}\n\n"


def _require_job(store: ProgressStore, job_id: str) -> Job:
  job = store.get(job_id)
  if job is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
  return job


@router.post("/generate", response_model=TileGenerateResponse)
async def generate_tile(
  request: TileGenerateRequest,
  background_tasks: BackgroundTasks,
  store: ProgressStore = Depends(get_progress_store),  # noqa: B008
  pipeline: TilePipeline = Depends(get_tile_pipeline),  # noqa: B008
) -> TileGenerateResponse:
  """Create a job and run the pipeline after the response is sent."""
  payload = request.to_payload()
  job_id = store.generate_job_id()
  store.create(job_id, payload.tile)
  background_tasks.add_task(pipeline.run, job_id, payload)
  logger.info("Tile job created job_id=%s tile=%s members=%d", job_id, payload.tile, len(payload.members))
  return TileGenerateResponse(success=True, job_id=job_id, message="Tile generation started")


@router.get("/jobs/{job_id}")
async def get_job(job_id: str, store: ProgressStore = Depends(get_progress_store)) -> dict[str, Any]:  # noqa: B008
  """Return the accumulated job state without the raw payload."""
  return _require_job(store, job_id).as_dict()


@router.get("/stream/{job_id}")
async def stream_job(job_id: str, store: ProgressStore = Depends(get_progress_store)) -> StreamingResponse:  # noqa: B008
  """Replay the job history, then forward live events until the terminal one."""
  job = _require_job(store, job_id)

  # Snapshot and subscribe without yielding so no event is lost or repeated.
  history = list(job.events)
  finished_status = job.status if job.status != "running" else None
  queue: asyncio.Queue[ProgressEvent] = asyncio.Queue()
  unsubscribe = store.subscribe(job_id, queue.put_nowait) if finished_status is None else None

  async def _events() -> AsyncIterator[str]:
    try:
      for event in history:
        yield _sse_data(event.as_dict())
      if finished_status is not None:
        yield _sse_done(finished_status)
        return

      while True:
        try:
          event = await asyncio.wait_for(queue.get(), timeout=KEEPALIVE_SECONDS)
        except TimeoutError:
          yield ": keep-alive\n\n"
          if store.get(job_id) is None:
            # Evicted while idle; nothing more will arrive.
            return
          continue
        yield _sse_data(event.as_dict())
        if event.is_terminal:
          yield _sse_done(event.phase)
          return
    finally:
      if unsubscribe is not None:
        unsubscribe()
        logger.debug("Stream closed job_id=%s", job_id)

  headers = {"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"}
  return StreamingResponse(_events(), media_type="text/event-stream", headers=headers)


@router.get("/download/{job_id}")
async def download_drawing(job_id: str, store: ProgressStore = Depends(get_progress_store)) -> Response:  # noqa: B008
  """Return the generated drawing retained for this job."""
  job = _require_job(store, job_id)
  if job.payload is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No drawing available for this job")

  filename = _UNSAFE_FILENAME_CHARS.sub("_", job.name) or "tile"
  headers = {"Content-Disposition": f'attachment; filename="{filename}.dwg"'}
  return Response(content=job.payload, media_type="application/octet-stream", headers=headers)
