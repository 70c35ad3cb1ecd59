"""
Image domain service.

Composes the generic repositories with a blob storage backend: uploads store
the content first and the metadata second, deletes remove both.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy.sql.elements import ColumnElement

from imagevault.core.database.entities import FileType, Image
from imagevault.core.database.query import PagedList, PagingRequest, SortingDetails
from imagevault.core.database.uow import UnitOfWork
from imagevault.core.guard import in_range, not_empty

from .storage import BlobStorage

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = frozenset({"alt_text", "description", "album_id"})
NEWEST_FIRST = SortingDetails.parse("-uploaded_at,name")


def size_filter(min_size: Optional[int] = None, max_size: Optional[int] = None) -> List[ColumnElement[bool]]:
    """Translate optional size bounds (inclusive, bytes) into a repository predicate."""
    criteria: List[ColumnElement[bool]] = []
    if min_size is not None:
        criteria.append(Image.size >= min_size)
    if max_size is not None:
        criteria.append(Image.size <= max_size)
    return criteria


class ImageService:
    """Service managing stored images and their metadata."""

    def __init__(self, unit_of_work: UnitOfWork, storage: BlobStorage) -> None:
        """Initialize the image service.

        Args:
            unit_of_work: Unit of work of the current service scope
            storage: Blob storage holding the image content
        """
        self.unit_of_work = unit_of_work
        self.storage = storage

    async def upload_image(
        self,
        data: bytes,
        file_name: str,
        content_type: str,
        alt_text: str = "",
        description: str = "",
        is_public: bool = True,
    ) -> Image:
        """
        Store an image and record its metadata.

        Args:
            data: Image content
            file_name: Original file name, its extension is kept
            content_type: MIME type, must be ``image/*``
            alt_text: Alternative text
            description: Free-form description
            is_public: Record the public URL rather than a freshly generated one

        Returns:
            The persisted Image entity

        Raises:
            ValueError: If the content is empty or not an image
        """
        if not data:
            raise ValueError("File is required and must not be empty")
        not_empty(file_name, "file_name")
        content_type = (content_type or "").lower()
        if not content_type.startswith("image/"):
            raise ValueError("Only image files are allowed")

        public_url, stored_name = await self.storage.upload(data, file_name, content_type)
        url = public_url if is_public else await self.storage.get_url(stored_name)
        image = Image(
            name=stored_name,
            size=len(data),
            file_type=FileType.IMAGE,
            location=stored_name,
            url=url,
            alt_text=alt_text,
            description=description,
            content_type=content_type,
        )
        try:
            async with self.unit_of_work.scope() as scope:
                await scope.get_repository(Image).insert(image)
                await scope.complete()
        except Exception:
            logger.error(f"Recording image {stored_name} failed, removing the uploaded blob")
            await self.storage.delete(stored_name)
            raise
        logger.info(f"Uploaded image {image.id} as {stored_name} ({image.size} bytes)")
        return image

    async def get_image(self, image_id: uuid.UUID, refresh_url: bool = False) -> Optional[Image]:
        """
        Get an image by id.

        Args:
            image_id: Image identifier
            refresh_url: Regenerate the stored URL from the storage backend

        Returns:
            The image, or None if not found
        """
        async with self.unit_of_work.scope() as scope:
            repository = scope.get_repository(Image)
            image = await repository.get(image_id)
            if image is not None and refresh_url:
                image.url = await self.storage.get_url(image.name)
                image = await repository.update(image)
            await scope.complete()
        return image

    async def get_image_url(self, image_id: uuid.UUID) -> Optional[str]:
        async with self.unit_of_work.scope() as scope:
            name = await scope.get_query_repository(Image).get_projection(Image.name, image_id)
            await scope.complete()
        if name is None:
            return None
        return await self.storage.get_url(name)

    async def get_images(
        self, max_results: int = 100, min_size: Optional[int] = None, max_size: Optional[int] = None
    ) -> List[Image]:
        """List images, optionally bounded by size.

        Args:
            max_results: Maximum number of images returned
            min_size: Minimum size in bytes, inclusive
            max_size: Maximum size in bytes, inclusive
        """
        in_range(max_results, "max_results", minimum=1)
        async with self.unit_of_work.scope() as scope:
            images = await scope.get_query_repository(Image).get_list(size_filter(min_size, max_size), take=max_results)
            await scope.complete()
        return images

    async def get_images_page(self, paging: PagingRequest) -> PagedList[Image]:
        """Get one page of images, newest first."""
        async with self.unit_of_work.scope() as scope:
            page = await scope.get_query_repository(Image).get_paged_list(
                paging.page_index,
                paging.page_size,
                predicate=size_filter(paging.min_size, paging.max_size),
                sorting=NEWEST_FIRST,
            )
            await scope.complete()
        return page

    async def update_image(self, image_id: uuid.UUID, patch: Mapping[str, Any]) -> Optional[Image]:
        """
        Update the editable metadata of an image.

        Only ``alt_text``, ``description`` and ``album_id`` are applied; other
        entries are ignored.

        Returns:
            The updated image, or None if not found
        """
        changes: Dict[str, Any] = {name: value for name, value in patch.items() if name in EDITABLE_FIELDS}

        def apply(image: Image) -> None:
            for name, value in changes.items():
                setattr(image, name, value)

        async with self.unit_of_work.scope() as scope:
            image = await scope.get_repository(Image).update_with(image_id, apply)
            await scope.complete()
        return image

    async def delete_image(self, image_id: uuid.UUID) -> bool:
        """
        Delete an image and its stored content.

        Returns:
            True if the image existed
        """
        async with self.unit_of_work.scope() as scope:
            repository = scope.get_repository(Image)
            image = await repository.get_for_update(image_id)
            if image is not None:
                await repository.delete(image)
            await scope.complete()
        if image is None:
            return False
        await self.storage.delete(image.name)
        logger.info(f"Deleted image {image_id}")
        return True

    async def delete_image_by_file_name(self, file_name: str) -> bool:
        """
        Delete an image by its stored file name.

        Content present in storage without a metadata record is deleted too.

        Returns:
            True if anything was deleted
        """
        not_empty(file_name, "file_name")
        async with self.unit_of_work.scope() as scope:
            repository = scope.get_repository(Image)
            image = await repository.get_for_update_by({"name": file_name})
            if image is not None:
                await repository.delete(image)
            await scope.complete()

        if image is None:
            if await self.storage.exists(file_name):
                await self.storage.delete(file_name)
                logger.info(f"Deleted orphaned blob {file_name}")
                return True
            return False

        await self.storage.delete(file_name)
        logger.info(f"Deleted image {image.id} ({file_name})")
        return True
