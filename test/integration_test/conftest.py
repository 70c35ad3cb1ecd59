"""Fixtures running the persistence layer against SQLite files."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List
from uuid import UUID

import pytest
from sqlalchemy import event

from imagevault.core.database import AppDbContext, ServiceRegistry, create_all, create_engine, create_sessionmaker
from imagevault.core.database.entities import Album, Image, ImageTagLink, Tag, User

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)
IMAGE_COUNT = 23


@dataclass
class Catalogue:
    """Identifiers of the seeded rows."""

    owner_id: int = 0
    album_ids: Dict[str, int] = field(default_factory=dict)
    tag_ids: Dict[str, int] = field(default_factory=dict)
    image_ids: List[UUID] = field(default_factory=list)


@dataclass
class EngineEvents:
    """Connection-level transaction events and executed statements."""

    begins: int = 0
    commits: int = 0
    rollbacks: int = 0
    statements: List[str] = field(default_factory=list)

    def reset(self) -> None:
        self.begins = self.commits = self.rollbacks = 0
        self.statements.clear()


async def read(registry, action):
    """Run a read in a fresh service scope so nothing comes from an identity map."""
    async with registry.create_scope() as services:
        async with services.unit_of_work.scope() as scope:
            result = await action(scope)
            await scope.complete()
    return result


async def open_engine(path):
    engine = create_engine(f"sqlite+aiosqlite:///{path}")
    await create_all(engine)
    return engine


@pytest.fixture
async def engine(tmp_path):
    engine = await open_engine(tmp_path / "imagevault.db")
    yield engine
    await engine.dispose()


@pytest.fixture
def engine_events(engine) -> EngineEvents:
    events = EngineEvents()
    sync_engine = engine.sync_engine

    def on_begin(conn):
        events.begins += 1

    def on_commit(conn):
        events.commits += 1

    def on_rollback(conn):
        events.rollbacks += 1

    def on_execute(conn, cursor, statement, parameters, context, executemany):
        events.statements.append(statement)

    listeners = [
        ("begin", on_begin),
        ("commit", on_commit),
        ("rollback", on_rollback),
        ("before_cursor_execute", on_execute),
    ]
    for name, listener in listeners:
        event.listen(sync_engine, name, listener)
    yield events
    for name, listener in listeners:
        event.remove(sync_engine, name, listener)


@pytest.fixture
def registry(engine) -> ServiceRegistry:
    return ServiceRegistry().add_db_context(AppDbContext, create_sessionmaker(engine))


@pytest.fixture
async def services(registry):
    async with registry.create_scope() as services:
        yield services


@pytest.fixture
async def catalogue(registry) -> Catalogue:
    """Seed one owner, two albums, two tags and 23 images.

    Image ``i`` is named ``imgNN.png``, is ``100 * (i + 1)`` bytes large,
    was uploaded ``i`` minutes after ``BASE_TIME`` and belongs to the
    "Beach" album for even ``i`` and to "City" otherwise. The first three
    images are tagged "sea", the first one "sunset" too.
    """
    seeded = Catalogue()
    async with registry.create_scope() as services:
        async with services.unit_of_work.scope() as scope:
            owner = await scope.get_repository(User).insert(User(email="ann@example.com", display_name="Ann"))
            seeded.owner_id = owner.id

            albums = scope.get_repository(Album)
            for title in ("Beach", "City"):
                album = await albums.insert(Album(title=title, owner_id=owner.id))
                seeded.album_ids[title] = album.id

            tags = scope.get_repository(Tag)
            for name in ("sea", "sunset"):
                tag = await tags.insert(Tag(name=name))
                seeded.tag_ids[name] = tag.id

            images = scope.get_repository(Image)
            for index in range(IMAGE_COUNT):
                image = await images.insert(
                    Image(
                        name=f"img{index:02d}.png",
                        size=100 * (index + 1),
                        location=f"img{index:02d}.png",
                        content_type="image/png",
                        uploaded_at=BASE_TIME + timedelta(minutes=index),
                        album_id=seeded.album_ids["Beach" if index % 2 == 0 else "City"],
                    )
                )
                seeded.image_ids.append(image.id)

            session = scope.get_context(AppDbContext).session
            for image_id in seeded.image_ids[:3]:
                session.add(ImageTagLink(image_id=image_id, tag_id=seeded.tag_ids["sea"]))
            session.add(ImageTagLink(image_id=seeded.image_ids[0], tag_id=seeded.tag_ids["sunset"]))
            await scope.complete()
    return seeded
