"""Domain services built on the persistence layer."""

from .images import ImageService, size_filter
from .storage import BlobStorage, LocalBlobStorage

__all__ = ["BlobStorage", "ImageService", "LocalBlobStorage", "size_filter"]
