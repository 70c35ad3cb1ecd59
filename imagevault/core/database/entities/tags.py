"""
Tag entity models.
"""

from typing import TYPE_CHECKING, List, Optional

from sqlmodel import Field, Relationship

from ..base import Base
from ..query.related import RelatedProperty
from .images import ImageTagLink

if TYPE_CHECKING:
    from .images import Image


class Tag(Base, table=True):
    """Entity for a free-form label attached to images.

    Table: iv_tags
    """

    __tablename__ = "iv_tags"
    __related_properties__ = {
        "images": RelatedProperty(split_query=True, only_for_querying=True),
    }

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(max_length=64, unique=True, index=True)

    images: List["Image"] = Relationship(back_populates="tags", link_model=ImageTagLink)

    def __repr__(self) -> str:
        return f"Tag(id={self.id}, name={self.name})"
