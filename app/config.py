"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from app.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)

MEBIBYTE = 1024 * 1024


@dataclass(frozen=True)
class Settings:
  """Typed settings for the tile pipeline service."""

  environment: str
  debug: bool
  allowed_origins: tuple[str, ...]
  log_dir: str
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  max_image_bytes: int
  download_timeout_seconds: float
  download_user_agent: str
  default_width: int
  default_height: int
  default_dpi: int
  svg_default_width: int
  svg_default_height: int
  svg_default_dpi: int
  dark_theme_transparent_ratio: float
  dark_theme_white_ratio: float
  dark_theme_white_level: int
  dark_theme_alpha_cutoff: int
  aps_client_id: str | None
  aps_client_secret: str | None
  aps_base_url: str
  aps_viewer_bucket: str
  aps_region: str
  aps_token_refresh_buffer_seconds: int
  aps_timeout_seconds: float
  viewer_retention_hours: int
  job_retention_seconds: int
  generator_url: str | None
  generator_timeout_seconds: float


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    return ("http://localhost:3000",)

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if not origins:
    raise ValueError("TILES_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("TILES_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value


def _positive_int(name: str, default: int) -> int:
  """Read a strictly positive integer setting."""

  value = int(os.getenv(name, str(default)))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


def _positive_float(name: str, default: float) -> float:
  value = float(os.getenv(name, str(default)))
  if value <= 0:
    raise ValueError(f"{name} must be a positive number.")
  return value


def _ratio(name: str, default: float) -> float:
  """Read a ratio setting bounded to the open interval (0, 1)."""

  value = float(os.getenv(name, str(default)))
  if not 0 < value < 1:
    raise ValueError(f"{name} must be between 0 and 1.")
  return value


def _channel_level(name: str, default: int) -> int:
  value = int(os.getenv(name, str(default)))
  if not 0 <= value <= 255:
    raise ValueError(f"{name} must be between 0 and 255.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("TILES_ENV", "development").lower()

  # Toggle verbose error output and diagnostics in non-production environments.
  debug = _parse_bool(os.getenv("TILES_DEBUG"))

  log_max_bytes = _positive_int("TILES_LOG_MAX_BYTES", 5 * MEBIBYTE)
  log_backup_count = int(os.getenv("TILES_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("TILES_LOG_BACKUP_COUNT must be zero or a positive integer.")

  # Allow opt-in logging of 4xx HTTPExceptions for diagnostics.
  log_http_4xx = _parse_bool(os.getenv("TILES_LOG_HTTP_4XX"))

  # Print-quality product imagery can be very large, so the cap is generous.
  max_image_bytes = _positive_int("TILES_MAX_IMAGE_BYTES", 200 * MEBIBYTE)

  return Settings(
    environment=environment,
    debug=debug,
    allowed_origins=_parse_origins(os.getenv("TILES_ALLOWED_ORIGINS")),
    log_dir=(os.getenv("TILES_LOG_DIR") or "./logs").strip(),
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=log_http_4xx,
    max_image_bytes=max_image_bytes,
    download_timeout_seconds=_positive_float("TILES_DOWNLOAD_TIMEOUT_SECONDS", 120.0),
    download_user_agent=(os.getenv("TILES_DOWNLOAD_USER_AGENT") or "TilesApp/1.0").strip(),
    default_width=_positive_int("TILES_DEFAULT_WIDTH", 1500),
    default_height=_positive_int("TILES_DEFAULT_HEIGHT", 1500),
    default_dpi=_positive_int("TILES_DEFAULT_DPI", 300),
    svg_default_width=_positive_int("TILES_SVG_DEFAULT_WIDTH", 800),
    svg_default_height=_positive_int("TILES_SVG_DEFAULT_HEIGHT", 600),
    svg_default_dpi=_positive_int("TILES_SVG_DEFAULT_DPI", 300),
    dark_theme_transparent_ratio=_ratio("TILES_DARK_THEME_TRANSPARENT_RATIO", 0.5),
    dark_theme_white_ratio=_ratio("TILES_DARK_THEME_WHITE_RATIO", 0.9),
    dark_theme_white_level=_channel_level("TILES_DARK_THEME_WHITE_LEVEL", 250),
    dark_theme_alpha_cutoff=_channel_level("TILES_DARK_THEME_ALPHA_CUTOFF", 10),
    aps_client_id=_optional_str(os.getenv("TILES_APS_CLIENT_ID")),
    aps_client_secret=_optional_str(os.getenv("TILES_APS_CLIENT_SECRET")),
    aps_base_url=(os.getenv("TILES_APS_BASE_URL") or "https://developer.api.autodesk.com").strip().rstrip("/"),
    aps_viewer_bucket=(os.getenv("TILES_APS_VIEWER_BUCKET") or "tiles-viewer").strip(),
    aps_region=(os.getenv("TILES_APS_REGION") or "EMEA").strip().upper(),
    aps_token_refresh_buffer_seconds=_positive_int("TILES_APS_TOKEN_REFRESH_BUFFER_SECONDS", 300),
    aps_timeout_seconds=_positive_float("TILES_APS_TIMEOUT_SECONDS", 60.0),
    viewer_retention_hours=_positive_int("TILES_VIEWER_RETENTION_HOURS", 24),
    job_retention_seconds=_positive_int("TILES_JOB_RETENTION_SECONDS", 300),
    generator_url=_optional_str(os.getenv("TILES_GENERATOR_URL")),
    generator_timeout_seconds=_positive_float("TILES_GENERATOR_TIMEOUT_SECONDS", 120.0),
  )
