"""Two-legged APS credentials with early-refresh caching."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass

import httpx

from app.config import Settings

logger = logging.getLogger(__name__)

Clock = Callable[[], float]

TOKEN_PATH = "/authentication/v2/token"
FULL_SCOPES: tuple[str, ...] = ("data:read", "data:write", "data:create", "bucket:create", "bucket:read", "viewables:read")
VIEWER_SCOPES: tuple[str, ...] = ("data:read", "viewables:read")


@dataclass(frozen=True)
class AccessToken:
  """Bearer token plus remaining lifetime in seconds."""

  access_token: str
  expires_in: int

  def as_dict(self) -> dict[str, str | int]:
    return {"access_token": self.access_token, "expires_in": self.expires_in}


@dataclass(frozen=True)
class _CachedToken:
  access_token: str
  expires_at: float


class TokenCache:
  """Single cached token, usable only while now + buffer is before expiry."""

  def __init__(self, *, clock: Clock = time.time, refresh_buffer_seconds: float = 300) -> None:
    self._clock = clock
    self._buffer = refresh_buffer_seconds
    self._entry: _CachedToken | None = None

  def get(self) -> AccessToken | None:
    """Return the cached token, or None when it is missing or about to expire."""
    entry = self._entry
    now = self._clock()
    if entry is None or now + self._buffer >= entry.expires_at:
      return None
    return AccessToken(access_token=entry.access_token, expires_in=int(entry.expires_at - now))

  def store(self, access_token: str, expires_in: int) -> AccessToken:
    # One assignment replaces the whole entry; readers never see a mix.
    self._entry = _CachedToken(access_token=access_token, expires_at=self._clock() + expires_in)
    return AccessToken(access_token=access_token, expires_in=expires_in)


class ApsAuthenticator:
  """Issue full-access and viewer-only tokens from independent caches."""

  def __init__(self, client: httpx.AsyncClient, settings: Settings, *, clock: Clock = time.time) -> None:
    self._client = client
    self._base_url = settings.aps_base_url
    self._client_id = settings.aps_client_id
    self._client_secret = settings.aps_client_secret
    buffer = settings.aps_token_refresh_buffer_seconds
    self._full_cache = TokenCache(clock=clock, refresh_buffer_seconds=buffer)
    self._viewer_cache = TokenCache(clock=clock, refresh_buffer_seconds=buffer)
    # Concurrent misses on the same tier wait for one exchange instead of racing.
    self._full_lock = asyncio.Lock()
    self._viewer_lock = asyncio.Lock()

  async def get_access_token(self) -> AccessToken:
    """Token for uploads and translation requests."""
    return await self._get_cached(self._full_cache, self._full_lock, FULL_SCOPES)

  async def get_viewer_token(self) -> AccessToken:
    """Read-only token that is safe to hand to browser viewers."""
    return await self._get_cached(self._viewer_cache, self._viewer_lock, VIEWER_SCOPES)

  async def _get_cached(self, cache: TokenCache, lock: asyncio.Lock, scopes: Sequence[str]) -> AccessToken:
    cached = cache.get()
    if cached is not None:
      return cached
    async with lock:
      cached = cache.get()
      if cached is not None:
        return cached
      payload = await self._exchange(scopes)
      return cache.store(payload["access_token"], int(payload["expires_in"]))

  async def _exchange(self, scopes: Sequence[str]) -> dict:
    """Run the client-credentials exchange for the requested scopes."""
    if not self._client_id or not self._client_secret:
      raise RuntimeError("APS credentials not configured (TILES_APS_CLIENT_ID / TILES_APS_CLIENT_SECRET).")

    logger.info("Requesting APS token scopes=%s", " ".join(scopes))
    response = await self._client.post(
      f"{self._base_url}{TOKEN_PATH}",
      data={"grant_type": "client_credentials", "scope": " ".join(scopes)},
      auth=(self._client_id, self._client_secret),
      headers={"Accept": "application/json"},
    )
    if response.status_code != 200:
      logger.error("APS token exchange failed status=%s body=%s", response.status_code, response.text)
    response.raise_for_status()
    return response.json()
