from __future__ import annotations

import json
from dataclasses import replace

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from app.api.deps import get_drawing_generator, get_image_converter, get_progress_store, get_rendering_stager
from app.images.converter import ImageConverter
from app.images.errors import ImageNotFoundError
from app.jobs.progress import ProgressStore
from app.main import app
from tests.fakes import RecordingGenerator, RecordingStager, StaticDownloader
from tests.imaging import encode_image

PNG = encode_image(Image.new("RGB", (24, 24), (200, 30, 30)))


def _parse_sse(body: str) -> list[tuple[str, dict]]:
  """Split an event stream into (event name, decoded data) pairs, ignoring comments."""
  frames: list[tuple[str, dict]] = []
  for block in body.split("\n\n"):
    name = "message"
    data = None
    for line in block.splitlines():
      if line.startswith("event: "):
        name = line.removeprefix("event: ")
      elif line.startswith("data: "):
        data = json.loads(line.removeprefix("data: "))
    if data is not None:
      frames.append((name, data))
  return frames


@pytest.fixture
def store(clock) -> ProgressStore:
  return ProgressStore(clock=clock)


@pytest.fixture
def generator() -> RecordingGenerator:
  return RecordingGenerator()


@pytest.fixture
def client(settings, store, generator):
  downloads = {"https://img.test/p1.png": PNG, "https://img.test/p1-drawing.png": PNG, "https://img.test/missing.png": ImageNotFoundError("https://img.test/missing.png")}
  converter = ImageConverter(replace(settings, default_width=32, default_height=32, default_dpi=72), downloader=StaticDownloader(downloads))

  app.dependency_overrides[get_progress_store] = lambda: store
  app.dependency_overrides[get_image_converter] = lambda: converter
  app.dependency_overrides[get_drawing_generator] = lambda: generator
  app.dependency_overrides[get_rendering_stager] = RecordingStager
  try:
    yield TestClient(app)
  finally:
    app.dependency_overrides.clear()


def _generate(client: TestClient, **member: str) -> str:
  body = {"tile": "Tile A/1", "tileId": "tile-1", "members": [{"productId": "p1", "imageFilename": "p1.png", "drawingFilename": "p1-drawing.png", **member}]}
  response = client.post("/v1/tiles/generate", json=body)
  assert response.status_code == 200
  payload = response.json()
  assert payload["success"] is True
  assert payload["message"] == "Tile generation started"
  return payload["jobId"]


def test_generate_runs_job_and_stream_replays_history(client) -> None:
  job_id = _generate(client, imageUrl="https://img.test/p1.png", drawingUrl="https://img.test/p1-drawing.png")

  job = client.get(f"/v1/tiles/jobs/{job_id}").json()
  assert job["jobId"] == job_id
  assert job["name"] == "Tile A/1"
  assert job["status"] == "complete"
  assert "payload" not in job
  assert job["result"]["hasDwgBuffer"] is True

  response = client.get(f"/v1/tiles/stream/{job_id}")
  assert response.status_code == 200
  assert response.headers["content-type"].startswith("text/event-stream")
  assert response.headers["cache-control"] == "no-cache"

  frames = _parse_sse(response.text)
  assert [data["phase"] for _, data in frames[:-1]] == [event["phase"] for event in job["events"]]
  assert frames[-2][1]["result"]["viewerUrn"] == "urn-123"
  assert frames[-1] == ("done", {"status": "complete"})


def test_download_returns_retained_drawing(client) -> None:
  job_id = _generate(client, imageUrl="https://img.test/p1.png")

  response = client.get(f"/v1/tiles/download/{job_id}")

  assert response.status_code == 200
  assert response.content == b"DWG-DATA"
  assert response.headers["content-type"] == "application/octet-stream"
  assert response.headers["content-disposition"] == 'attachment; filename="Tile A_1.dwg"'


def test_failed_job_has_no_download(client) -> None:
  job_id = _generate(client, imageUrl="https://img.test/missing.png")

  frames = _parse_sse(client.get(f"/v1/tiles/stream/{job_id}").text)
  assert frames[-1] == ("done", {"status": "error"})
  assert frames[-2][1]["result"]["errors"] == ["Image conversion failed: Image not found"]

  response = client.get(f"/v1/tiles/download/{job_id}")
  assert response.status_code == 404
  assert response.json()["detail"] == "No drawing available for this job"


def test_generator_failure_surfaces_as_error_event(client, generator) -> None:
  generator.error = RuntimeError("workitem failed")
  job_id = _generate(client, imageUrl="https://img.test/p1.png")

  job = client.get(f"/v1/tiles/jobs/{job_id}").json()
  assert job["status"] == "error"
  assert job["events"][-2]["message"] == "Unexpected error"
  assert job["result"]["errors"] == ["workitem failed"]


def test_evicted_job_is_gone(client, clock) -> None:
  job_id = _generate(client, imageUrl="https://img.test/p1.png")
  clock.advance(301)

  for path in ("jobs", "stream", "download"):
    response = client.get(f"/v1/tiles/{path}/{job_id}")
    assert response.status_code == 404
    assert response.json()["detail"] == "Job not found"


def test_generate_rejects_empty_members(client) -> None:
  response = client.post("/v1/tiles/generate", json={"tile": "Tile A", "tileId": "tile-1", "members": []})

  assert response.status_code == 422
  assert "requestId" in response.json()


def test_generate_requires_member_filenames(client) -> None:
  response = client.post("/v1/tiles/generate", json={"tile": "Tile A", "tileId": "tile-1", "members": [{"productId": "p1", "imageUrl": "https://img.test/p1.png"}]})

  assert response.status_code == 422
  assert {tuple(error["loc"][-1:]) for error in response.json()["detail"]} == {("imageFilename",), ("drawingFilename",)}


def test_generate_rejects_filenames_shared_between_members(client, store) -> None:
  members = [
    {"productId": "p1", "imageFilename": "p1.png", "drawingFilename": "shared.png"},
    {"productId": "p2", "imageFilename": "p2.png", "drawingFilename": "shared.png"},
  ]

  response = client.post("/v1/tiles/generate", json={"tile": "Tile A", "tileId": "tile-1", "members": members})

  assert response.status_code == 422
  assert "Duplicate image filename across members: shared.png" in response.json()["detail"][0]["msg"]
  assert store._jobs == {}


def test_unknown_job_returns_404_with_request_id(client) -> None:
  response = client.get("/v1/tiles/jobs/job-missing", headers={"x-request-id": "req-123"})

  assert response.status_code == 404
  assert response.json() == {"detail": "Job not found", "requestId": "req-123"}
  assert response.headers["x-request-id"] == "req-123"
  assert response.headers["x-content-type-options"] == "nosniff"
