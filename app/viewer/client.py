"""Minimal async client for the APS storage and derivative REST endpoints."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

logger = logging.getLogger(__name__)


class ApsError(RuntimeError):
  """Raised when the remote service answers successfully but with an unusable body."""


def is_not_found(exc: httpx.HTTPStatusError) -> bool:
  return exc.response is not None and exc.response.status_code == 404


def _bearer(access_token: str) -> dict[str, str]:
  return {"Authorization": f"Bearer {access_token}"}


class ApsClient:
  """Wrap the OSS bucket/object and Model Derivative endpoints.

  Every call takes the bearer token explicitly; token lifetime is managed
  by ApsAuthenticator. Non-2xx answers raise httpx.HTTPStatusError.
  """

  def __init__(self, client: httpx.AsyncClient, base_url: str) -> None:
    self._client = client
    self._base_url = base_url.rstrip("/")

  def _object_path(self, bucket: str, object_key: str) -> str:
    return f"{self._base_url}/oss/v2/buckets/{quote(bucket, safe='')}/objects/{quote(object_key, safe='')}"

  async def get_bucket_details(self, bucket: str, access_token: str) -> dict[str, Any]:
    response = await self._client.get(f"{self._base_url}/oss/v2/buckets/{quote(bucket, safe='')}/details", headers=_bearer(access_token))
    response.raise_for_status()
    return response.json()

  async def create_bucket(self, bucket: str, access_token: str, *, region: str, policy: str = "transient") -> dict[str, Any]:
    headers = {**_bearer(access_token), "x-ads-region": region}
    response = await self._client.post(f"{self._base_url}/oss/v2/buckets", json={"bucketKey": bucket, "policyKey": policy}, headers=headers)
    response.raise_for_status()
    return response.json()

  async def upload_object(self, bucket: str, object_key: str, data: bytes, access_token: str) -> str:
    """Upload through a signed S3 URL and return the resulting objectId."""
    signed_path = f"{self._object_path(bucket, object_key)}/signeds3upload"

    response = await self._client.get(signed_path, headers=_bearer(access_token))
    response.raise_for_status()
    signed = response.json()
    urls = signed.get("urls") or []
    upload_key = signed.get("uploadKey")
    if not urls or not upload_key:
      raise ApsError("Upload failed: no signed upload URL returned")

    # The signed URL carries its own credentials.
    put_response = await self._client.put(urls[0], content=data, headers={"Content-Type": "application/octet-stream"})
    put_response.raise_for_status()

    response = await self._client.post(signed_path, json={"uploadKey": upload_key}, headers=_bearer(access_token))
    response.raise_for_status()
    object_id = response.json().get("objectId")
    if not object_id:
      raise ApsError("Upload failed: no objectId returned")
    logger.debug("Uploaded %d bytes as %s", len(data), object_id)
    return object_id

  async def start_translation(self, payload: dict[str, Any], access_token: str) -> dict[str, Any]:
    response = await self._client.post(f"{self._base_url}/modelderivative/v2/designdata/job", json=payload, headers=_bearer(access_token))
    response.raise_for_status()
    return response.json()

  async def get_manifest(self, urn: str, access_token: str) -> dict[str, Any]:
    response = await self._client.get(f"{self._base_url}/modelderivative/v2/designdata/{quote(urn, safe='')}/manifest", headers=_bearer(access_token))
    response.raise_for_status()
    return response.json()
