"""Fixtures faking the async session underneath the persistence contexts."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from imagevault.core.database.contexts import AppDbContext, RepositoryOptions


class FakeTransaction:
    """Stands in for an AsyncSessionTransaction; closes on commit or rollback."""

    def __init__(self) -> None:
        self.is_active = True
        self.commit = AsyncMock(side_effect=self._close)
        self.rollback = AsyncMock(side_effect=self._close)

    def _close(self) -> None:
        self.is_active = False


def make_session() -> MagicMock:
    session = MagicMock(spec=AsyncSession)
    session.new = []
    session.dirty = []
    session.deleted = []
    session.in_transaction = MagicMock(return_value=False)
    session.begin = AsyncMock(side_effect=lambda: FakeTransaction())
    session.identity_map = MagicMock()
    session.identity_map.get.return_value = None
    session.__contains__ = MagicMock(return_value=True)
    return session


@pytest.fixture
def session() -> MagicMock:
    return make_session()


@pytest.fixture
def options() -> RepositoryOptions:
    return RepositoryOptions()


@pytest.fixture
def context(session, options) -> AppDbContext:
    return AppDbContext(session, options)
