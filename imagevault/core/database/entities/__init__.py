"""
Database entities.

All SQLModel table classes are imported here so that relationship targets
declared by name resolve before the mappers are configured.
"""

from .albums import Album
from .images import FileType, Image, ImageTagLink
from .tags import Tag
from .users import User

__all__ = [
    "Album",
    "FileType",
    "Image",
    "ImageTagLink",
    "Tag",
    "User",
]
