"""Object storage adapters."""

from .base import ObjectStorage
from .s3_storage import S3ObjectStorage

__all__ = ["ObjectStorage", "S3ObjectStorage"]
