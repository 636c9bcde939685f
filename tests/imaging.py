"""In-memory image builders shared by the tests."""

from __future__ import annotations

import io

from PIL import Image


def encode_image(image: Image.Image, fmt: str = "PNG", **params: object) -> bytes:
  buffer = io.BytesIO()
  image.save(buffer, format=fmt, **params)
  return buffer.getvalue()


def dark_theme_png(size: tuple[int, int] = (40, 40)) -> bytes:
  """White strokes on a mostly transparent canvas."""
  image = Image.new("RGBA", size, (0, 0, 0, 0))
  for x in range(size[0]):
    image.putpixel((x, size[1] // 2), (255, 255, 255, 255))
    image.putpixel((x, size[1] // 2 + 1), (255, 255, 255, 128))
  return encode_image(image)
