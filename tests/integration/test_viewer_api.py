from __future__ import annotations

import httpx
import pytest
from fastapi.testclient import TestClient

from app.api.deps import get_rendering_stager
from app.main import app
from app.viewer.stager import RenderingStager
from tests.aps_fake import FakeAps


@pytest.fixture
def aps() -> FakeAps:
  return FakeAps()


@pytest.fixture
def client(settings, clock, aps):
  # The mock transport keeps no connections, so the client is safe across TestClient loops.
  stager = RenderingStager.from_settings(settings, httpx.AsyncClient(transport=aps.transport()), clock=clock)
  app.dependency_overrides[get_rendering_stager] = lambda: stager
  try:
    yield TestClient(app)
  finally:
    app.dependency_overrides.clear()


def test_auth_returns_viewer_token(client, aps) -> None:
  response = client.get("/v1/viewer/auth")

  assert response.status_code == 200
  assert response.json() == {"access_token": "token-1", "expires_in": 3599}
  assert aps.token_requests == 1


def test_upload_stages_drawing_and_starts_translation(client, aps, clock) -> None:
  response = client.post("/v1/viewer/upload", files={"file": ("Tile.DWG", b"DWG-BYTES", "application/octet-stream")})

  assert response.status_code == 200
  body = response.json()
  assert body["expiresAt"] == int(clock() * 1000) + 24 * 3600 * 1000
  assert aps.created_buckets == [{"bucketKey": "tiles-viewer", "policyKey": "transient", "region": "EMEA"}]
  (object_key,) = aps.objects
  assert object_key.endswith("-tile.dwg")
  assert aps.jobs[0]["input"] == {"urn": body["urn"]}


@pytest.mark.parametrize(
  ("filename", "content", "detail"),
  [
    ("tile.pdf", b"%PDF", "Invalid file type. Only DWG and DXF files are supported."),
    ("tile.dxf", b"", "Uploaded file is empty."),
  ],
)
def test_upload_rejects_bad_files(client, aps, filename, content, detail) -> None:
  response = client.post("/v1/viewer/upload", files={"file": (filename, content, "application/octet-stream")})

  assert response.status_code == 400
  assert response.json()["detail"] == detail
  assert aps.objects == {}


def test_status_reports_pending_then_manifest(client, aps) -> None:
  pending = client.get("/v1/viewer/status/abc")
  assert pending.json() == {"status": "pending", "progress": "0%"}

  aps.manifests["abc"] = {"status": "inprogress", "progress": "40% complete", "derivatives": []}
  assert client.get("/v1/viewer/status/abc").json() == {"status": "inprogress", "progress": "40% complete"}


def test_upstream_failure_maps_to_bad_gateway(client, aps) -> None:
  aps.manifest_status = 500

  response = client.get("/v1/viewer/status/abc")

  assert response.status_code == 502
  assert response.json()["detail"] == "Upstream service error: 500"
