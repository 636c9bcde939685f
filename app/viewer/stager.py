"""Upload generated drawings to transient storage and request viewer derivatives."""

from __future__ import annotations

import base64
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field

import httpx

from app.config import Settings
from app.viewer.auth import AccessToken, ApsAuthenticator, Clock
from app.viewer.bundle import ReferencedImage, build_bundle
from app.viewer.client import ApsClient, is_not_found

logger = logging.getLogger(__name__)

TRANSLATION_FORMAT = "svf2"
TRANSLATION_VIEWS = ("2d", "3d")


@dataclass(frozen=True)
class UploadedObject:
  object_id: str
  urn: str


@dataclass(frozen=True)
class StagedDrawing:
  """Derivative identifier plus expiry in epoch milliseconds."""

  urn: str
  expires_at: int

  def as_dict(self) -> dict[str, str | int]:
    return {"urn": self.urn, "expiresAt": self.expires_at}


@dataclass(frozen=True)
class TranslationStatus:
  status: str
  progress: str
  messages: list[str] = field(default_factory=list)

  def as_dict(self) -> dict[str, object]:
    payload: dict[str, object] = {"status": self.status, "progress": self.progress}
    if self.messages:
      payload["messages"] = list(self.messages)
    return payload


def encode_urn(object_id: str) -> str:
  """Base64 of the storage object id with the padding removed."""
  return base64.b64encode(object_id.encode("utf-8")).decode("ascii").rstrip("=")


def _manifest_messages(manifest: dict) -> list[str]:
  messages: list[str] = []
  for derivative in manifest.get("derivatives") or []:
    for entry in derivative.get("messages") or []:
      if isinstance(entry, dict) and "message" in entry:
        messages.append(str(entry["message"]))
  return messages


class RenderingStager:
  """Stage drawings for browser preview through APS storage and translation."""

  def __init__(self, settings: Settings, client: ApsClient, authenticator: ApsAuthenticator, *, clock: Clock = time.time) -> None:
    self._client = client
    self._authenticator = authenticator
    self._clock = clock
    self._bucket = settings.aps_viewer_bucket
    self._region = settings.aps_region
    self._retention_ms = settings.viewer_retention_hours * 60 * 60 * 1000
    self._last_stamp_ms = 0

  @classmethod
  def from_settings(cls, settings: Settings, http_client: httpx.AsyncClient, *, clock: Clock = time.time) -> RenderingStager:
    """Wire the REST client and authenticator onto one shared HTTP client."""
    client = ApsClient(http_client, settings.aps_base_url)
    authenticator = ApsAuthenticator(http_client, settings, clock=clock)
    return cls(settings, client, authenticator, clock=clock)

  def _now_ms(self) -> int:
    return int(self._clock() * 1000)

  def _unique_stamp(self) -> int:
    # Two uploads within the same millisecond still get distinct names.
    stamp = max(self._now_ms(), self._last_stamp_ms + 1)
    self._last_stamp_ms = stamp
    return stamp

  async def get_viewer_token(self) -> AccessToken:
    return await self._authenticator.get_viewer_token()

  async def ensure_viewer_bucket(self) -> None:
    """Create the transient bucket when the probe answers 404."""
    token = await self._authenticator.get_access_token()
    try:
      await self._client.get_bucket_details(self._bucket, token.access_token)
    except httpx.HTTPStatusError as exc:
      if not is_not_found(exc):
        raise
      await self._client.create_bucket(self._bucket, token.access_token, region=self._region, policy="transient")
      logger.info("Created transient viewer bucket: %s", self._bucket)

  async def upload_for_viewing(self, name: str, data: bytes) -> UploadedObject:
    await self.ensure_viewer_bucket()
    token = await self._authenticator.get_access_token()
    object_key = f"{self._unique_stamp()}-{name}"
    object_id = await self._client.upload_object(self._bucket, object_key, data, token.access_token)
    return UploadedObject(object_id=object_id, urn=encode_urn(object_id))

  async def translate(self, urn: str, root_filename: str | None = None) -> str:
    """Request 2D and 3D viewables; returns the remote acknowledgement."""
    token = await self._authenticator.get_access_token()
    source: dict[str, object] = {"urn": urn}
    if root_filename:
      source["compressedUrn"] = True
      source["rootFilename"] = root_filename
    payload = {"input": source, "output": {"formats": [{"type": TRANSLATION_FORMAT, "views": list(TRANSLATION_VIEWS)}]}}
    response = await self._client.start_translation(payload, token.access_token)
    return str(response.get("result") or "created")

  async def get_translation_status(self, urn: str) -> TranslationStatus:
    """Poll the manifest; a missing manifest means translation has not started."""
    token = await self._authenticator.get_access_token()
    try:
      manifest = await self._client.get_manifest(urn, token.access_token)
    except httpx.HTTPStatusError as exc:
      if is_not_found(exc):
        return TranslationStatus(status="pending", progress="0%")
      raise
    return TranslationStatus(status=str(manifest.get("status") or "pending"), progress=str(manifest.get("progress") or "0%"), messages=_manifest_messages(manifest))

  async def stage(self, filename: str, binary: bytes, referenced_images: Sequence[ReferencedImage] | None = None) -> StagedDrawing:
    """Bundle, upload, and start translation; expiry follows the bucket retention."""
    bundle = build_bundle(filename, binary, referenced_images)
    uploaded = await self.upload_for_viewing(bundle.upload_name, bundle.data)
    await self.translate(uploaded.urn, bundle.root_filename)
    expires_at = self._now_ms() + self._retention_ms
    logger.info("Staged %s for viewing urn=%s", filename, uploaded.urn)
    return StagedDrawing(urn=uploaded.urn, expires_at=expires_at)
