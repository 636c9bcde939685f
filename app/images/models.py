"""Value objects for artwork conversion requests and results."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

ValidationStatus = Literal["passed", "warning"]


@dataclass(frozen=True)
class ConversionOptions:
  """Requested output geometry; every field is optional."""

  width: int | None = None
  height: int | None = None
  dpi: int | None = None


@dataclass(frozen=True)
class ConversionRequest:
  """A single-use conversion input."""

  image_bytes: bytes
  options: ConversionOptions = field(default_factory=ConversionOptions)


@dataclass(frozen=True)
class ImageMetadata:
  """Measured properties of an encoded image."""

  width: int
  height: int
  format: str
  dpi: int
  size_bytes: int

  @property
  def size_mb(self) -> str:
    return f"{self.size_bytes / (1024 * 1024):.2f}"

  def as_dict(self) -> dict[str, Any]:
    return {"width": self.width, "height": self.height, "format": self.format, "dpi": self.dpi, "sizeBytes": self.size_bytes, "sizeMB": self.size_mb}


@dataclass(frozen=True)
class ConversionResult:
  """Outcome of one successful conversion."""

  original_bytes: bytes
  converted_bytes: bytes
  converted_base64: str
  metadata: ImageMetadata
  validation_status: ValidationStatus
  validation_issues: list[str]
  process_time: float
  warnings: list[str] = field(default_factory=list)

  def summary(self, *, include_base64: bool = True) -> dict[str, Any]:
    """Return a JSON-safe view without the raw buffers."""
    payload: dict[str, Any] = {
      "metadata": self.metadata.as_dict(),
      "validationStatus": self.validation_status,
      "validationIssues": list(self.validation_issues),
      "warnings": list(self.warnings),
      "processTime": self.process_time,
    }
    if include_base64:
      payload["convertedBase64"] = self.converted_base64
    return payload


@dataclass(frozen=True)
class BatchItem:
  """One product entry of a batch: an image and/or a drawing URL."""

  image_filename: str
  drawing_filename: str
  image_url: str | None = None
  drawing_url: str | None = None
  width: int | None = None
  height: int | None = None
  dpi: int | None = None


@dataclass
class BatchItemResult:
  """Per-entry batch outcome; failures are collected instead of raised."""

  image_filename: str
  drawing_filename: str
  image_result: ConversionResult | None = None
  drawing_result: ConversionResult | None = None
  errors: list[str] = field(default_factory=list)

  def converted_files(self) -> list[tuple[str, ConversionResult]]:
    """Return (filename, result) pairs for every successful conversion."""
    files: list[tuple[str, ConversionResult]] = []
    if self.image_result is not None:
      files.append((self.image_filename, self.image_result))
    if self.drawing_result is not None:
      files.append((self.drawing_filename, self.drawing_result))
    return files
