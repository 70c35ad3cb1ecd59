"""Unit tests for service registration and resolution scopes."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from imagevault.core.database.contexts import AppDbContext, RepositoryOptions, SaveChangesStrategy
from imagevault.core.database.entities import Image, ImageTagLink
from imagevault.core.database.exceptions import RepositoryError
from imagevault.core.database.repositories import BulkRepository, QueryRepository, Repository
from imagevault.core.database.services import ServiceRegistry

from .conftest import make_session


@pytest.fixture
def session_factory() -> MagicMock:
    return MagicMock(side_effect=make_session)


@pytest.fixture
def registry(session_factory) -> ServiceRegistry:
    return ServiceRegistry().add_db_context(AppDbContext, session_factory)


class TestServiceRegistry:
    """Tests for registering context types."""

    def test_registration_is_idempotent(self, registry, session_factory):
        other_factory = MagicMock()

        registry.add_db_context(AppDbContext, other_factory)

        assert registry.context_types == (AppDbContext,)
        assert registry.get_registration(AppDbContext).session_factory is session_factory

    def test_configure_adjusts_a_copy_of_the_defaults(self, session_factory):
        defaults = RepositoryOptions(related_properties_max_depth=2)
        registry = ServiceRegistry(defaults)

        def configure(options):
            options.save_changes_strategy = SaveChangesStrategy.PER_OPERATION

        registry.add_db_context(AppDbContext, session_factory, configure)

        options = registry.get_registration(AppDbContext).options
        assert options.save_changes_strategy is SaveChangesStrategy.PER_OPERATION
        assert options.related_properties_max_depth == 2
        assert defaults.save_changes_strategy is SaveChangesStrategy.PER_UNIT_OF_WORK

    def test_unregistered_context(self):
        with pytest.raises(RepositoryError, match="AppDbContext is not registered"):
            ServiceRegistry().get_registration(AppDbContext)


class TestServiceScope:
    """Tests for per-operation resolution."""

    def test_context_created_lazily_once(self, registry, session_factory):
        scope = registry.create_scope()
        session_factory.assert_not_called()

        context = scope.get_context(AppDbContext)

        assert scope.get_context(AppDbContext) is context
        session_factory.assert_called_once()

    def test_scopes_do_not_share_contexts(self, registry):
        assert registry.create_scope().get_context(AppDbContext) is not registry.create_scope().get_context(AppDbContext)

    def test_context_options_are_not_shared_with_registration(self, registry):
        context = registry.create_scope().get_context(AppDbContext)

        context.options.related_properties_max_depth = 1

        assert registry.get_registration(AppDbContext).options.related_properties_max_depth == 3

    def test_repositories_are_cached_per_kind(self, registry):
        scope = registry.create_scope()

        repository = scope.get_repository(Image)
        query_repository = scope.get_query_repository(Image)
        bulk_repository = scope.get_bulk_repository(Image)

        assert type(repository) is Repository
        assert type(query_repository) is QueryRepository
        assert type(bulk_repository) is BulkRepository
        assert scope.get_repository(Image) is repository
        assert scope.get_bulk_repository(Image) is bulk_repository
        assert repository.context is query_repository.context

    def test_read_only_entity_has_query_repository_only(self, registry):
        scope = registry.create_scope()

        assert scope.get_query_repository(ImageTagLink).key_names == ("image_id", "tag_id")
        with pytest.raises(RepositoryError, match="No registered context provides a repository for ImageTagLink"):
            scope.get_repository(ImageTagLink)

    def test_unserved_entity(self, registry):
        with pytest.raises(RepositoryError, match="query repository for str"):
            registry.create_scope().get_query_repository(str)

    def test_unit_of_work_is_per_scope(self, registry):
        scope = registry.create_scope()

        assert scope.unit_of_work is scope.unit_of_work
        assert registry.create_scope().unit_of_work is not scope.unit_of_work

    async def test_close_rolls_back_and_closes_contexts(self, registry):
        async with registry.create_scope() as scope:
            context = scope.get_context(AppDbContext)
            uow_scope = scope.unit_of_work.create_scope()
            await uow_scope.begin()
            transaction = context.current_transaction

        transaction.rollback.assert_awaited_once()
        context.session.close.assert_awaited_once()
        assert uow_scope.is_rolled_back
