"""Bounded HTTP download of source artwork."""

from __future__ import annotations

import asyncio
import logging

import httpx

from app.config import Settings
from app.images.errors import ImageDownloadError, ImageDownloadTimeoutError, ImageNotFoundError, ImageTooLargeError

logger = logging.getLogger(__name__)


class ImageDownloader:
  """Fetch image bytes with a total time budget and a hard size cap."""

  def __init__(self, settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
    self._timeout_seconds = settings.download_timeout_seconds
    self._max_bytes = settings.max_image_bytes
    self._user_agent = settings.download_user_agent
    self._transport = transport

  def _build_client(self) -> httpx.AsyncClient:
    """Build an httpx client for one download."""
    return httpx.AsyncClient(transport=self._transport, timeout=self._timeout_seconds, follow_redirects=True, headers={"User-Agent": self._user_agent})

  async def download(self, url: str) -> bytes:
    """Download `url` or raise a specific ImageDownloadError subclass."""
    try:
      # The whole transfer shares one deadline, not just each socket read.
      async with asyncio.timeout(self._timeout_seconds):
        async with self._build_client() as client, client.stream("GET", url) as response:
          return await self._read_body(url, response)
    except (TimeoutError, httpx.TimeoutException) as exc:
      logger.warning("Image download timed out after %ss url=%s", self._timeout_seconds, url)
      raise ImageDownloadTimeoutError(self._timeout_seconds) from exc
    except httpx.HTTPError as exc:
      logger.warning("Image download failed url=%s error=%s", url, exc)
      raise ImageDownloadError(f"Failed to download image: {exc}") from exc

  async def _read_body(self, url: str, response: httpx.Response) -> bytes:
    if response.status_code == 404:
      raise ImageNotFoundError(url)
    if not response.is_success:
      raise ImageDownloadError(f"HTTP error: {response.status_code}", status_code=response.status_code)

    # Content-Length is advisory; the streamed byte count below is authoritative.
    declared = response.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > self._max_bytes:
      raise ImageTooLargeError(int(declared), self._max_bytes)

    chunks: list[bytes] = []
    received = 0
    async for chunk in response.aiter_bytes():
      received += len(chunk)
      if received > self._max_bytes:
        raise ImageTooLargeError(received, self._max_bytes)
      chunks.append(chunk)

    logger.debug("Downloaded %d bytes from %s", received, url)
    return b"".join(chunks)
