from __future__ import annotations

from dataclasses import replace

import httpx
import pytest

from app.images.download import ImageDownloader
from app.images.errors import ImageDownloadError, ImageDownloadTimeoutError, ImageNotFoundError, ImageTooLargeError


@pytest.mark.anyio
async def test_download_returns_body_and_sends_user_agent(settings) -> None:
  seen: dict[str, str] = {}

  def handler(request: httpx.Request) -> httpx.Response:
    seen["user-agent"] = request.headers["user-agent"]
    return httpx.Response(200, content=b"image-bytes")

  downloader = ImageDownloader(settings, transport=httpx.MockTransport(handler))

  assert await downloader.download("https://cdn.test/a.png") == b"image-bytes"
  assert seen["user-agent"] == settings.download_user_agent


@pytest.mark.anyio
async def test_download_maps_404_to_not_found(settings) -> None:
  downloader = ImageDownloader(settings, transport=httpx.MockTransport(lambda request: httpx.Response(404)))

  with pytest.raises(ImageNotFoundError, match="Image not found"):
    await downloader.download("https://cdn.test/missing.png")


@pytest.mark.anyio
async def test_download_reports_other_http_errors(settings) -> None:
  downloader = ImageDownloader(settings, transport=httpx.MockTransport(lambda request: httpx.Response(503)))

  with pytest.raises(ImageDownloadError, match="HTTP error: 503") as exc_info:
    await downloader.download("https://cdn.test/a.png")
  assert exc_info.value.status_code == 503


@pytest.mark.anyio
async def test_download_rejects_declared_oversize(settings) -> None:
  small = replace(settings, max_image_bytes=10)

  def handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, headers={"content-length": "5000"}, content=b"x" * 5000)

  downloader = ImageDownloader(small, transport=httpx.MockTransport(handler))

  with pytest.raises(ImageTooLargeError):
    await downloader.download("https://cdn.test/big.png")


@pytest.mark.anyio
async def test_download_enforces_streamed_byte_cap(settings) -> None:
  small = replace(settings, max_image_bytes=10)

  async def body():
    for _ in range(4):
      yield b"12345"

  def handler(request: httpx.Request) -> httpx.Response:
    # No content-length: only the streamed count can catch this.
    return httpx.Response(200, content=body())

  downloader = ImageDownloader(small, transport=httpx.MockTransport(handler))

  with pytest.raises(ImageTooLargeError):
    await downloader.download("https://cdn.test/chunked.png")


@pytest.mark.anyio
async def test_download_timeout_is_distinct(settings) -> None:
  def handler(request: httpx.Request) -> httpx.Response:
    raise httpx.ReadTimeout("timed out", request=request)

  downloader = ImageDownloader(settings, transport=httpx.MockTransport(handler))

  with pytest.raises(ImageDownloadTimeoutError, match="Image download timeout"):
    await downloader.download("https://cdn.test/slow.png")


@pytest.mark.anyio
async def test_download_wraps_transport_errors(settings) -> None:
  def handler(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("connection refused", request=request)

  downloader = ImageDownloader(settings, transport=httpx.MockTransport(handler))

  with pytest.raises(ImageDownloadError, match="Failed to download image: connection refused"):
    await downloader.download("https://cdn.test/a.png")
