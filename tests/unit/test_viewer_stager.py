from __future__ import annotations

import base64
import io

import httpx
import pyzipper
import pytest

from app.viewer.bundle import ReferencedImage, build_bundle
from app.viewer.client import ApsError
from app.viewer.stager import RenderingStager, encode_urn
from tests.aps_fake import FakeAps


def _decode_urn(urn: str) -> str:
  return base64.b64decode(urn + "=" * (-len(urn) % 4)).decode()


def test_encode_urn_strips_padding() -> None:
  urn = encode_urn("urn:adsk.objects:os.object:b/k")

  assert not urn.endswith("=")
  assert _decode_urn(urn) == "urn:adsk.objects:os.object:b/k"


def test_build_bundle_without_images_passes_binary_through() -> None:
  bundle = build_bundle("tile.dwg", b"DWG")

  assert (bundle.data, bundle.upload_name, bundle.root_filename) == (b"DWG", "tile.dwg", None)


def test_build_bundle_zips_drawing_with_images() -> None:
  bundle = build_bundle("Tile.DWG", b"DWG", [ReferencedImage("a.png", b"A"), ReferencedImage("b.png", b"B")])

  assert bundle.upload_name == "Tile.zip"
  assert bundle.root_filename == "Tile.DWG"
  with pyzipper.ZipFile(io.BytesIO(bundle.data)) as archive:
    assert archive.namelist() == ["Tile.DWG", "a.png", "b.png"]
    assert archive.read("a.png") == b"A"
    assert archive.getinfo("Tile.DWG").compress_type == pyzipper.ZIP_DEFLATED


@pytest.mark.parametrize("names", [("a.png", "a.png"), ("tile.dwg",)])
def test_build_bundle_rejects_duplicate_entry_names(names) -> None:
  with pytest.raises(ValueError, match="Duplicate file name in bundle"):
    build_bundle("tile.dwg", b"DWG", [ReferencedImage(name, b"X") for name in names])


@pytest.fixture
def aps() -> FakeAps:
  return FakeAps()


@pytest.fixture
async def stager(settings, clock, aps):
  async with httpx.AsyncClient(transport=aps.transport()) as client:
    yield RenderingStager.from_settings(settings, client, clock=clock)


@pytest.mark.anyio
async def test_missing_bucket_is_created_once_as_transient(stager, aps) -> None:
  await stager.ensure_viewer_bucket()
  await stager.ensure_viewer_bucket()

  assert aps.created_buckets == [{"bucketKey": "tiles-viewer", "policyKey": "transient", "region": "EMEA"}]


@pytest.mark.anyio
async def test_bucket_probe_failure_other_than_404_propagates(stager, aps) -> None:
  aps.details_status = 403

  with pytest.raises(httpx.HTTPStatusError):
    await stager.ensure_viewer_bucket()
  assert aps.created_buckets == []


@pytest.mark.anyio
async def test_stage_uploads_translates_and_reports_expiry(stager, aps, clock) -> None:
  staged = await stager.stage("tile.dwg", b"DWG-BYTES")

  assert _decode_urn(staged.urn) == f"urn:adsk.objects:os.object:tiles-viewer/{int(clock() * 1000)}-tile.dwg"
  assert staged.expires_at == int(clock() * 1000) + 24 * 60 * 60 * 1000
  assert list(aps.objects.values()) == [b"DWG-BYTES"]
  assert aps.jobs == [{"input": {"urn": staged.urn}, "output": {"formats": [{"type": "svf2", "views": ["2d", "3d"]}]}}]
  # One full-scope exchange serves the whole staging run.
  assert aps.token_requests == 1


@pytest.mark.anyio
async def test_stage_with_images_uploads_bundle_and_names_root(stager, aps) -> None:
  staged = await stager.stage("tile.dwg", b"DWG", [ReferencedImage("a.png", b"A")])

  (object_key,) = aps.objects
  assert object_key.endswith("-tile.zip")
  job_input = aps.jobs[0]["input"]
  assert job_input == {"urn": staged.urn, "compressedUrn": True, "rootFilename": "tile.dwg"}


@pytest.mark.anyio
async def test_staging_twice_yields_distinct_urns(stager) -> None:
  first = await stager.stage("tile.dwg", b"same")
  second = await stager.stage("tile.dwg", b"same")

  assert first.urn != second.urn


@pytest.mark.anyio
async def test_translation_status_before_manifest_is_pending(stager) -> None:
  status = await stager.get_translation_status("dXJuOm5vbmU")

  assert (status.status, status.progress, status.messages) == ("pending", "0%", [])


@pytest.mark.anyio
async def test_translation_status_surfaces_manifest_messages(stager, aps) -> None:
  aps.manifests["abc"] = {
    "status": "failed",
    "progress": "complete",
    "derivatives": [{"messages": [{"type": "error", "message": "Missing xref"}, "ignored"]}, {"outputType": "svf2"}],
  }

  status = await stager.get_translation_status("abc")

  assert status.status == "failed"
  assert status.progress == "complete"
  assert status.messages == ["Missing xref"]
  assert status.as_dict() == {"status": "failed", "progress": "complete", "messages": ["Missing xref"]}


@pytest.mark.anyio
async def test_translation_status_other_errors_propagate(stager, aps) -> None:
  aps.manifest_status = 500

  with pytest.raises(httpx.HTTPStatusError):
    await stager.get_translation_status("abc")


@pytest.mark.anyio
async def test_upload_without_object_id_raises(settings, clock) -> None:
  def handler(request: httpx.Request) -> httpx.Response:
    if request.url.path.endswith("/token"):
      return httpx.Response(200, json={"access_token": "t", "expires_in": 3600})
    if request.url.path.endswith("/details"):
      return httpx.Response(200, json={})
    if request.url.path.endswith("/signeds3upload") and request.method == "GET":
      return httpx.Response(200, json={"uploadKey": "u", "urls": ["https://s3.test/put"]})
    return httpx.Response(200, json={})

  async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
    stager = RenderingStager.from_settings(settings, client, clock=clock)
    with pytest.raises(ApsError, match="no objectId"):
      await stager.upload_for_viewing("tile.dwg", b"DWG")


@pytest.mark.anyio
async def test_viewer_token_uses_read_only_tier(stager, aps) -> None:
  await stager.ensure_viewer_bucket()
  viewer = await stager.get_viewer_token()

  assert viewer.access_token == "token-2"
  assert aps.token_requests == 2
