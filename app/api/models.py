from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, StrictStr, model_validator

from app.images.models import BatchItem, ConversionOptions
from app.jobs.pipeline import TileMember, TilePayload


class _CamelModel(BaseModel):
  """Accept camelCase wire names while keeping snake_case attributes."""

  model_config = ConfigDict(populate_by_name=True, extra="forbid")


class ImageConvertRequest(_CamelModel):
  """Convert a single remote image."""

  image_url: StrictStr = Field(alias="imageUrl", min_length=1, description="Source image URL (raster or SVG).")
  width: PositiveInt | None = Field(default=None, description="Target width in pixels.")
  height: PositiveInt | None = Field(default=None, description="Target height in pixels.")
  dpi: PositiveInt | None = Field(default=None, description="Output DPI stamp.")

  def options(self) -> ConversionOptions:
    return ConversionOptions(width=self.width, height=self.height, dpi=self.dpi)


class BatchConvertItem(_CamelModel):
  image_url: StrictStr | None = Field(default=None, alias="imageUrl")
  drawing_url: StrictStr | None = Field(default=None, alias="drawingUrl")
  image_filename: StrictStr = Field(alias="imageFilename", min_length=1)
  drawing_filename: StrictStr = Field(alias="drawingFilename", min_length=1)
  width: PositiveInt | None = None
  height: PositiveInt | None = None
  dpi: PositiveInt | None = None

  def to_batch_item(self) -> BatchItem:
    return BatchItem(
      image_url=self.image_url or None,
      drawing_url=self.drawing_url or None,
      image_filename=self.image_filename,
      drawing_filename=self.drawing_filename,
      width=self.width,
      height=self.height,
      dpi=self.dpi,
    )


class BatchConvertRequest(_CamelModel):
  items: list[BatchConvertItem] = Field(min_length=1, description="Entries converted concurrently.")


class BatchConvertResponse(BaseModel):
  success: bool
  results: list[dict[str, Any]]


class TileMemberModel(_CamelModel):
  product_id: StrictStr = Field(alias="productId")
  image_url: StrictStr | None = Field(default=None, alias="imageUrl")
  drawing_url: StrictStr | None = Field(default=None, alias="drawingUrl")
  image_filename: StrictStr = Field(alias="imageFilename", min_length=1)
  drawing_filename: StrictStr = Field(alias="drawingFilename", min_length=1)
  tile_text: StrictStr = Field(default="", alias="tileText")
  width: PositiveInt | None = None
  height: PositiveInt | None = None
  dpi: PositiveInt | None = None
  tile_width: PositiveInt | None = Field(default=None, alias="tileWidth")
  tile_height: PositiveInt | None = Field(default=None, alias="tileHeight")


class TileGenerateRequest(_CamelModel):
  """Start a tile generation job."""

  tile: StrictStr = Field(min_length=1, description="Tile display name; also names the generated drawing.")
  tile_id: StrictStr = Field(alias="tileId", min_length=1)
  members: list[TileMemberModel] = Field(min_length=1)

  @model_validator(mode="after")
  def reject_duplicate_filenames(self) -> TileGenerateRequest:
    # Filenames become archive entry names referenced by the drawing.
    seen: set[str] = set()
    for member in self.members:
      for filename in (member.image_filename, member.drawing_filename):
        if filename in seen:
          raise ValueError(f"Duplicate image filename across members: {filename}")
        seen.add(filename)
    return self

  def to_payload(self) -> TilePayload:
    members = [TileMember(**member.model_dump(by_alias=False)) for member in self.members]
    return TilePayload(tile=self.tile, tile_id=self.tile_id, members=members)


class TileGenerateResponse(BaseModel):
  model_config = ConfigDict(populate_by_name=True)

  success: bool
  job_id: str = Field(serialization_alias="jobId")
  message: str


class ViewerTokenResponse(BaseModel):
  access_token: str
  expires_in: int


class ViewerUploadResponse(BaseModel):
  urn: str
  expires_at: int = Field(serialization_alias="expiresAt")


class TranslationStatusResponse(BaseModel):
  status: str
  progress: str
  messages: list[str] | None = None
