"""Artwork normalization: download, font checks, dark-theme correction, PNG output."""

from app.images.converter import ImageConverter, base64_to_buffer, buffer_to_base64, convert, convert_image_bytes
from app.images.models import BatchItem, BatchItemResult, ConversionOptions, ConversionRequest, ConversionResult, ImageMetadata

__all__ = ["BatchItem", "BatchItemResult", "ConversionOptions", "ConversionRequest", "ConversionResult", "ImageConverter", "ImageMetadata", "base64_to_buffer", "buffer_to_base64", "convert", "convert_image_bytes"]
