"""Write new timeline entries."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, date, datetime, time
from pathlib import PurePosixPath
from uuid import UUID, uuid4

from date_nights.domain.errors import (
    EntryPersistError,
    InvalidEntryError,
    StoreError,
    UploadError,
)
from date_nights.domain.models import EntryRecord, PhotoUpload
from date_nights.services.feed import EntryRepository, FeedLoader, PhotoStorage

logger = logging.getLogger(__name__)

# Entries are dated by day; noon keeps the day stable across time zones.
_ENTRY_TIME_OF_DAY = time(12, 0)
_DEFAULT_EXTENSION = "jpg"


@dataclass(frozen=True)
class WrittenEntry:
    """A persisted entry and its photo link, if one was resolved."""

    entry: EntryRecord
    signed_url: str | None = None


def entry_timestamp(day: date) -> datetime:
    """Normalize a calendar day to the stored entry timestamp."""
    return datetime.combine(day, _ENTRY_TIME_OF_DAY, tzinfo=UTC)


def photo_path(couple_id: UUID, file_name: str) -> str:
    """Return a fresh storage path for a photo under its couple."""
    extension = PurePosixPath(file_name).suffix.lstrip(".").lower()
    return f"{couple_id}/{uuid4()}.{extension or _DEFAULT_EXTENSION}"


@dataclass
class EntryWriter:
    """Persist an entry and optionally attach a photo to it."""

    entry_repository: EntryRepository
    photo_storage: PhotoStorage
    feed_loader: FeedLoader

    async def add_entry(  # noqa: PLR0913
        self,
        couple_id: UUID,
        user_id: UUID,
        day: date,
        title: str,
        photo: PhotoUpload | None = None,
    ) -> WrittenEntry:
        """Insert the entry, then upload and link its photo if given.

        Steps that already completed are not rolled back when a later
        one fails.
        """
        cleaned = title.strip()
        if not cleaned:
            raise InvalidEntryError()

        try:
            entry = await asyncio.to_thread(
                self.entry_repository.create_entry,
                couple_id,
                entry_timestamp(day),
                cleaned,
                user_id,
            )
        except StoreError as exc:
            raise EntryPersistError(exc.message) from exc
        if entry is None:
            raise EntryPersistError("Entry created but could not be returned.")
        if photo is None:
            return WrittenEntry(entry=entry)

        path = photo_path(couple_id, photo.file_name)
        try:
            await asyncio.to_thread(
                self.photo_storage.upload, path, photo.content, photo.content_type
            )
        except UploadError:
            logger.warning("Entry %s saved without its photo", entry.id)
            raise

        try:
            updated = await asyncio.to_thread(
                self.entry_repository.set_photo_path, entry.id, path
            )
        except StoreError as exc:
            raise EntryPersistError(exc.message) from exc
        if updated is None:
            raise EntryPersistError("Photo saved but entry could not be returned.")

        return WrittenEntry(
            entry=updated, signed_url=await self.feed_loader.signed_url(updated)
        )
