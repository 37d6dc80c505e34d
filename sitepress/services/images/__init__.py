"""
Image processing (internal library): data URL decoding, size-bounded re-encoding, parallel upload.
"""
from sitepress.services.images.compression import CompressedImage, compress_to_fit, quality_steps
from sitepress.services.images.decoding import DecodedImage, decode_data_url, is_data_url
from sitepress.services.images.processor import ImageProcessor, image_key

__all__ = [
    "CompressedImage",
    "DecodedImage",
    "ImageProcessor",
    "compress_to_fit",
    "decode_data_url",
    "image_key",
    "is_data_url",
    "quality_steps",
]
