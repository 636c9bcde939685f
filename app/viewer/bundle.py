"""Archive a drawing together with the raster images it references."""

from __future__ import annotations

import io
import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass

import pyzipper

logger = logging.getLogger(__name__)

COMPRESS_LEVEL = 5
_DWG_SUFFIX = re.compile(r"\.dwg$", re.IGNORECASE)


@dataclass(frozen=True)
class ReferencedImage:
  name: str
  data: bytes


@dataclass(frozen=True)
class Bundle:
  """Upload-ready payload; root_filename is set only for archives."""

  data: bytes
  upload_name: str
  root_filename: str | None = None


def build_bundle(filename: str, binary: bytes, images: Sequence[ReferencedImage] | None = None) -> Bundle:
  """Zip the drawing and its images, or pass the drawing through unchanged."""
  if not images:
    return Bundle(data=binary, upload_name=filename)

  # The drawing references images by entry name.
  seen = {filename}
  for image in images:
    if image.name in seen:
      raise ValueError(f"Duplicate file name in bundle: {image.name}")
    seen.add(image.name)

  buffer = io.BytesIO()
  with pyzipper.ZipFile(buffer, mode="w", compression=pyzipper.ZIP_DEFLATED, compresslevel=COMPRESS_LEVEL) as archive:
    archive.writestr(filename, binary)
    for image in images:
      archive.writestr(image.name, image.data)

  data = buffer.getvalue()
  upload_name = _DWG_SUFFIX.sub(".zip", filename)
  logger.info("Created ZIP bundle: %s (%d KB) with %d images", upload_name, len(data) // 1024, len(images))
  return Bundle(data=data, upload_name=upload_name, root_filename=filename)
