"""Shared fixtures: settings and a controllable clock."""

from __future__ import annotations

from dataclasses import replace

import pytest

from app.config import Settings, get_settings


@pytest.fixture
def anyio_backend():
  return "asyncio"


@pytest.fixture
def settings() -> Settings:
  return replace(
    get_settings(),
    aps_client_id="client-id",
    aps_client_secret="client-secret",
    aps_base_url="https://aps.test",
    aps_viewer_bucket="tiles-viewer",
    aps_region="EMEA",
    generator_url="https://generator.test/drawings",
    max_image_bytes=5 * 1024 * 1024,
    download_timeout_seconds=5.0,
  )


class FakeClock:
  """Epoch-seconds clock advanced by hand."""

  def __init__(self, start: float = 1_700_000_000.0) -> None:
    self.now = start

  def __call__(self) -> float:
    return self.now

  def advance(self, seconds: float) -> None:
    self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
  return FakeClock()


