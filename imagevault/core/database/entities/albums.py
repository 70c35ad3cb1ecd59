"""
Album entity models.

Albums group images and belong to a single owner.
"""

from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlmodel import Field, Relationship

from ..base import Base, utc_now
from ..query.related import RelatedProperty

if TYPE_CHECKING:
    from .images import Image
    from .users import User


class Album(Base, table=True):
    """Entity for a named collection of images.

    Table: iv_albums
    """

    __tablename__ = "iv_albums"
    __related_properties__ = {
        "owner": RelatedProperty(),
        "images": RelatedProperty(split_query=True),
    }

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str = Field(max_length=128)
    description: Optional[str] = Field(default=None, max_length=512)
    owner_id: Optional[int] = Field(default=None, foreign_key="iv_users.id", index=True)
    created_at: datetime = Field(default_factory=utc_now)

    owner: Optional["User"] = Relationship(back_populates="albums")
    images: List["Image"] = Relationship(back_populates="album")

    def __repr__(self) -> str:
        return f"Album(id={self.id}, title={self.title})"
