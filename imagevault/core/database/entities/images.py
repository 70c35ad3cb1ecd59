"""
Image entity models.

This module contains the database entities for stored image files and the
link table attaching tags to images.

Tables:
- iv_images: Image file metadata and public location
- iv_image_tags: Many-to-many link between images and tags
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import BigInteger
from sqlmodel import Field, Relationship

from ..base import Base, utc_now
from ..query.related import RelatedProperty

if TYPE_CHECKING:
    from .albums import Album
    from .tags import Tag


class FileType(str, Enum):
    """Broad category of a stored file."""

    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"
    ARCHIVE = "archive"
    OTHER = "other"


class ImageTagLink(Base, table=True):
    """Link table between images and tags.

    Table: iv_image_tags
    """

    __tablename__ = "iv_image_tags"

    image_id: uuid.UUID = Field(foreign_key="iv_images.id", primary_key=True)
    tag_id: int = Field(foreign_key="iv_tags.id", primary_key=True)


class Image(Base, table=True):
    """Entity for a stored image file.

    The key is generated client-side so the entity can be inserted without
    a round trip to the database.

    Table: iv_images
    """

    __tablename__ = "iv_images"
    __related_properties__ = {
        "album": RelatedProperty(),
        "tags": RelatedProperty(split_query=True, only_for_querying=True),
    }

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str = Field(max_length=255, index=True)
    size: int = Field(default=0, sa_type=BigInteger, index=True)
    file_type: FileType = Field(default=FileType.IMAGE)
    location: Optional[str] = Field(default=None, max_length=512)
    url: str = Field(default="", max_length=512)
    alt_text: str = Field(default="", max_length=128)
    description: str = Field(default="", max_length=128)
    content_type: Optional[str] = Field(default=None, max_length=128)
    uploaded_at: datetime = Field(default_factory=utc_now, index=True)
    album_id: Optional[int] = Field(default=None, foreign_key="iv_albums.id", index=True)

    album: Optional["Album"] = Relationship(back_populates="images")
    tags: List["Tag"] = Relationship(back_populates="images", link_model=ImageTagLink)

    def __repr__(self) -> str:
        return f"Image(id={self.id}, name={self.name}, size={self.size})"
