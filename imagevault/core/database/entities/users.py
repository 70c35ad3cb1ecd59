"""
User entity models.

This module contains the database entity for the accounts that own albums.
"""

from typing import TYPE_CHECKING, List, Optional

from sqlmodel import Field, Relationship

from ..base import Base
from ..query.related import RelatedProperty

if TYPE_CHECKING:
    from .albums import Album


class User(Base, table=True):
    """Entity for an account owning albums.

    Table: iv_users
    """

    __tablename__ = "iv_users"
    __related_properties__ = {
        "albums": RelatedProperty(split_query=True, only_for_querying=True),
    }

    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(max_length=256, unique=True, index=True)
    display_name: str = Field(max_length=128)

    albums: List["Album"] = Relationship(back_populates="owner")

    def __repr__(self) -> str:
        return f"User(id={self.id}, email={self.email})"
