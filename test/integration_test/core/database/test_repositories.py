"""Repository behaviour against a real SQLite database."""

from __future__ import annotations

import uuid

import pytest
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import InvalidRequestError

from imagevault.core.database import AppDbContext, RepositoryError, SaveChangesStrategy, ServiceRegistry
from imagevault.core.database.entities import Album, Image, ImageTagLink, User
from imagevault.core.database.query import LoadRelatedProperties, SortingDetails
from imagevault.core.database.utils import create_sessionmaker

from ...conftest import IMAGE_COUNT, read


class TestPaging:
    """Tests for paged reads."""

    async def test_pages_cover_the_set_exactly_once(self, services, catalogue):
        repository = services.get_query_repository(Image)
        seen = []

        for page_index, expected_length in enumerate([10, 10, 3, 0]):
            page = await repository.get_paged_list(page_index, 10, sorting="name")
            assert page.total_count == IMAGE_COUNT
            assert page.total_pages == 3
            assert len(page) == expected_length
            seen.extend(image.id for image in page)

        assert len(seen) == IMAGE_COUNT
        assert set(seen) == set(catalogue.image_ids)

    async def test_predicate_applies_to_count_and_items(self, services, catalogue):
        page = await services.get_query_repository(Image).get_paged_list(
            1, 5, predicate=Image.size > 1000, sorting="-size"
        )

        assert page.total_count == 13
        assert [image.size for image in page] == [1800, 1700, 1600, 1500, 1400]
        assert page.has_previous_page and page.has_next_page

    async def test_default_order_is_primary_key(self, services, catalogue):
        images = await services.get_query_repository(Image).get_list()

        assert [image.id for image in images] == sorted(catalogue.image_ids, key=lambda value: value.hex)

    async def test_projection_page(self, services, catalogue):
        page = await services.get_query_repository(Image).get_paged_list_projection(
            "name", 2, 10, predicate={"album_id": catalogue.album_ids["City"]}, sorting="name"
        )

        assert page.total_count == 11
        assert page.items == []
        assert page.is_last_page


class TestReads:
    """Tests for single reads, projections and aggregates."""

    async def test_get_missing(self, services, catalogue):
        assert await services.get_query_repository(Image).get(uuid.uuid4()) is None

    async def test_get_with_nested_include(self, services, catalogue):
        image = await services.get_query_repository(Image).get(catalogue.image_ids[0], "Album.Owner")

        assert image.album.title == "Beach"
        assert image.album.owner.email == "ann@example.com"

    async def test_get_all_includes_for_querying(self, registry, catalogue):
        async def load(scope):
            image = await scope.get_query_repository(Image).get(catalogue.image_ids[0], LoadRelatedProperties.ALL)
            return image, sorted(tag.name for tag in image.tags)

        image, tag_names = await read(registry, load)

        assert tag_names == ["sea", "sunset"]
        assert image.album.owner.display_name == "Ann"

    async def test_load_for_update_skips_query_only_includes(self, registry, catalogue):
        async def load(scope):
            return await scope.get_repository(Image).get_for_update(catalogue.image_ids[0], "*")

        image = await read(registry, load)

        unloaded = sa_inspect(image).unloaded
        assert "tags" in unloaded
        assert "album" not in unloaded
        assert image.album.owner.email == "ann@example.com"

    async def test_get_by_with_sorting(self, services, catalogue):
        image = await services.get_query_repository(Image).get_by(
            {"album_id": catalogue.album_ids["City"]}, sorting="-size"
        )

        assert image.name == "img21.png"

    async def test_sorting_through_navigation(self, services, catalogue):
        images = await services.get_query_repository(Image).get_list(sorting="album.title,-size", take=13)

        assert [image.name for image in images[:2]] == ["img22.png", "img20.png"]
        assert images[11].name == "img00.png"
        assert images[12].name == "img21.png"

    async def test_skip_and_take(self, services, catalogue):
        names = await services.get_query_repository(Image).get_list_projection("name", skip=20, take=5, sorting="name")

        assert names == ["img20.png", "img21.png", "img22.png"]

    async def test_projections(self, services, catalogue):
        repository = services.get_query_repository(Image)

        assert await repository.get_projection(Image.size, catalogue.image_ids[4]) == 500
        assert await repository.get_projection("name", uuid.uuid4()) is None
        row = await repository.get_projection_by(["name", "album.title"], Image.size >= 2200, sorting="-size")
        assert tuple(row) == ("img22.png", "Beach")

    async def test_projection_through_navigation(self, services, catalogue):
        rows = await services.get_query_repository(Image).get_list_projection(
            ["name", "album.owner.email"], predicate=Image.size <= 200, sorting=SortingDetails.parse("name")
        )

        assert [tuple(row) for row in rows] == [
            ("img00.png", "ann@example.com"),
            ("img01.png", "ann@example.com"),
        ]

    async def test_count_and_exists(self, services, catalogue):
        repository = services.get_query_repository(Image)

        assert await repository.count() == IMAGE_COUNT
        assert await repository.count({"album_id": catalogue.album_ids["Beach"]}) == 12
        assert await repository.count({"album_id": None}) == IMAGE_COUNT
        assert await repository.exists({"name": "img05.png"})
        assert not await repository.exists([Image.size > 100_000])

    async def test_query_results_are_not_tracked(self, registry, catalogue):
        image_id = catalogue.image_ids[2]

        async with registry.create_scope() as services:
            async with services.unit_of_work.scope() as scope:
                image = await scope.get_query_repository(Image).get(image_id, "album")
                image.alt_text = "Changed through a read"
                image.album.title = "Renamed through a read"
                images = await scope.get_query_repository(Image).get_list({"album_id": catalogue.album_ids["City"]})
                images[0].description = "Changed through a list"
                session = scope.get_context(AppDbContext).session
                assert image not in session
                assert images[0] not in session
                await scope.complete()

        async def load(scope):
            return await scope.get_query_repository(Image).get(image_id, "album")

        stored = await read(registry, load)
        assert stored.alt_text == ""
        assert stored.album.title == "Beach"

        async def count_described(scope):
            return await scope.get_query_repository(Image).count({"description": "Changed through a list"})

        assert await read(registry, count_described) == 0

    async def test_loads_for_update_stay_tracked(self, registry, catalogue):
        image_id = catalogue.image_ids[2]

        async with registry.create_scope() as services:
            async with services.unit_of_work.scope() as scope:
                image = await scope.get_repository(Image).get_for_update(image_id)
                image.alt_text = "Changed for update"
                await scope.complete()

        async def load(scope):
            return await scope.get_query_repository(Image).get_projection("alt_text", image_id)

        assert await read(registry, load) == "Changed for update"

    async def test_read_keeps_pending_insert(self, registry, catalogue):
        async with registry.create_scope() as services:
            async with services.unit_of_work.scope() as scope:
                image = await scope.get_repository(Image).insert(Image(name="pending.png", size=7))
                found = await scope.get_query_repository(Image).get(image.id)
                assert found is image
                await scope.complete()

        async def load(scope):
            return await scope.get_query_repository(Image).exists({"name": "pending.png"})

        assert await read(registry, load)

    async def test_composite_key(self, services, catalogue):
        repository = services.get_query_repository(ImageTagLink)
        image_id = catalogue.image_ids[0]

        link = await repository.get((image_id, catalogue.tag_ids["sunset"]))

        assert link is not None
        assert await repository.get((image_id, 999)) is None
        assert await repository.count({"tag_id": catalogue.tag_ids["sea"]}) == 3
        with pytest.raises(RepositoryError, match="key expects 2 value"):
            await repository.get(image_id)


class TestWrites:
    """Tests for inserts, updates and deletes."""

    async def test_round_trip(self, registry, catalogue):
        async with registry.create_scope() as services:
            async with services.unit_of_work.scope() as scope:
                image = await scope.get_repository(Image).insert(
                    Image(name="new.png", size=42, alt_text="New", album_id=catalogue.album_ids["City"])
                )
                await scope.complete()

        async def load(scope):
            return await scope.get_query_repository(Image).get(image.id)

        stored = await read(registry, load)

        assert (stored.name, stored.size, stored.alt_text, stored.album_id) == (
            "new.png",
            42,
            "New",
            catalogue.album_ids["City"],
        )

    async def test_generated_key_is_visible_after_insert(self, services):
        async with services.unit_of_work.scope() as scope:
            user = await scope.get_repository(User).insert(User(email="bob@example.com", display_name="Bob"))
            assert user.id is not None
            await scope.complete()

    async def test_sparse_update_writes_only_patched_columns(self, registry, catalogue, engine_events):
        image_id = catalogue.image_ids[3]
        engine_events.reset()

        async with registry.create_scope() as services:
            async with services.unit_of_work.scope() as scope:
                await scope.get_repository(Image).update_fields(image_id, {"alt_text": "Sparse", "bogus": 1})
                await scope.complete()

        updates = [statement for statement in engine_events.statements if statement.startswith("UPDATE")]
        assert len(updates) == 1
        set_clause = updates[0].split(" SET ", 1)[1].split(" WHERE ", 1)[0]
        assert set_clause == "alt_text=?"
        selects = [statement for statement in engine_events.statements if statement.startswith("SELECT")]
        assert len(selects) == 1
        assert "alt_text" not in selects[0].split(" FROM ", 1)[0]

        async def load(scope):
            return await scope.get_query_repository(Image).get(image_id)

        image = await read(registry, load)
        assert image.alt_text == "Sparse"
        assert (image.name, image.size, image.album_id) == ("img03.png", 400, catalogue.album_ids["City"])

    async def test_deferred_sparse_update_returns_readable_entity(self, registry, catalogue):
        image_id = catalogue.image_ids[3]

        async with registry.create_scope() as services:
            async with services.unit_of_work.scope() as scope:
                image = await scope.get_repository(Image).update_fields(image_id, {"name": "renamed.png"})
                assert image.name == "renamed.png"
                assert image.size == 400
                assert image.alt_text == ""
                assert image.album_id == catalogue.album_ids["City"]
                assert set(sa_inspect(image).attrs.name.history.added) == {"renamed.png"}
                assert not sa_inspect(image).attrs.size.history.has_changes()
                await scope.complete()

        async def load(scope):
            return await scope.get_query_repository(Image).get_projection(["name", "size"], image_id)

        assert tuple(await read(registry, load)) == ("renamed.png", 400)

    async def test_deferred_sparse_update_of_missing_row(self, registry, catalogue):
        async with registry.create_scope() as services:
            async with services.unit_of_work.scope() as scope:
                with pytest.raises(InvalidRequestError):
                    await scope.get_repository(Image).update_fields(uuid.uuid4(), {"alt_text": "Ghost"})
                await scope.complete()

        async def load(scope):
            return await scope.get_query_repository(Image).count({"alt_text": "Ghost"})

        assert await read(registry, load) == 0

    async def test_sparse_update_outside_scope_refreshes(self, services, catalogue):
        image = await services.get_repository(Image).update_fields(catalogue.image_ids[0], {"description": "Dawn"})

        assert image.description == "Dawn"
        assert image.name == "img00.png"

    async def test_update_with_async_action(self, registry, catalogue):
        async def describe(image):
            image.description = f"{image.name} described"

        async with registry.create_scope() as services:
            async with services.unit_of_work.scope() as scope:
                updated = await scope.get_repository(Image).update_with(catalogue.image_ids[1], describe)
                missing = await scope.get_repository(Image).update_with(uuid.uuid4(), describe)
                await scope.complete()

        assert updated.description == "img01.png described"
        assert missing is None

        async def load(scope):
            return await scope.get_query_repository(Image).get_projection("description", catalogue.image_ids[1])

        assert await read(registry, load) == "img01.png described"

    async def test_update_detached_entity(self, registry, catalogue):
        async def load(scope):
            return await scope.get_query_repository(Album).get(catalogue.album_ids["City"])

        album = await read(registry, load)
        album.title = "Town"

        async with registry.create_scope() as services:
            async with services.unit_of_work.scope() as scope:
                await scope.get_repository(Album).update(album)
                await scope.complete()

        async def load_title(scope):
            return await scope.get_query_repository(Album).get_projection("title", catalogue.album_ids["City"])

        assert await read(registry, load_title) == "Town"

    async def test_delete_by_key_is_idempotent(self, services, catalogue):
        async with services.unit_of_work.scope() as scope:
            repository = scope.get_repository(Image)
            await repository.delete_by_key(catalogue.image_ids[5])
            await repository.delete_by_key(catalogue.image_ids[5])
            await repository.delete_by_key(uuid.uuid4())
            await scope.complete()

        assert await services.get_query_repository(Image).count() == IMAGE_COUNT - 1

    async def test_delete_where(self, services, catalogue):
        async with services.unit_of_work.scope() as scope:
            deleted = await scope.get_repository(Image).delete_where(Image.size.between(1000, 1200))
            nothing = await scope.get_repository(Image).delete_where({"name": "missing.png"})
            await scope.complete()

        assert (deleted, nothing) == (3, 0)
        assert await services.get_query_repository(Image).count() == IMAGE_COUNT - 3

    async def test_repository_outside_scope_saves_immediately(self, registry, engine):
        async with registry.create_scope() as services:
            await services.get_repository(User).insert(User(email="carol@example.com", display_name="Carol"))

        async def load(scope):
            return await scope.get_query_repository(User).exists({"email": "carol@example.com"})

        assert await read(registry, load)


async def test_per_operation_strategy_flushes_each_mutation(engine, engine_events):
    registry = ServiceRegistry().add_db_context(
        AppDbContext,
        create_sessionmaker(engine),
        lambda options: setattr(options, "save_changes_strategy", SaveChangesStrategy.PER_OPERATION),
    )

    async with registry.create_scope() as services:
        async with services.unit_of_work.scope() as scope:
            await scope.get_repository(Image).insert(Image(name="a.png"))
            inserts = [statement for statement in engine_events.statements if statement.startswith("INSERT")]
            assert len(inserts) == 1
            assert engine_events.commits == 0
            await scope.complete()

    assert engine_events.commits == 1
