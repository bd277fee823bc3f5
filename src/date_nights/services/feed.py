"""Load a couple's entries and their photo links."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol
from uuid import UUID

from date_nights.domain.errors import FeedLoadError, SignedUrlError, StoreError
from date_nights.domain.models import EntryRecord

logger = logging.getLogger(__name__)

SignedUrlCallback = Callable[[UUID, str], None]


class EntryRepository(Protocol):
    """Persistence interface for timeline entries."""

    def list_entries(self, couple_id: UUID) -> list[EntryRecord]:
        """Return entries for a couple, newest first."""

    def create_entry(
        self,
        couple_id: UUID,
        created_at: datetime,
        title: str,
        created_by_user_id: UUID,
    ) -> EntryRecord | None:
        """Insert an entry without a photo and return the stored row."""

    def set_photo_path(self, entry_id: UUID, photo_path: str) -> EntryRecord | None:
        """Attach a photo path to an entry and return the stored row."""


class PhotoStorage(Protocol):
    """Object storage for entry photos."""

    def upload(self, path: str, content: bytes, content_type: str | None) -> None:
        """Store a new object at ``path`` without overwriting."""

    def create_signed_url(self, path: str, ttl_seconds: int) -> str:
        """Return a time-limited download URL for ``path``."""


@dataclass
class Feed:
    """Entries of a timeline plus the photo links resolved so far."""

    entries: list[EntryRecord]
    signed_urls: dict[UUID, str] = field(default_factory=dict)


@dataclass
class FeedLoader:
    """Fetch entries and sign their photo paths."""

    entry_repository: EntryRepository
    photo_storage: PhotoStorage
    signed_url_ttl_seconds: int = 3600

    async def load(
        self, couple_id: UUID, on_signed_url: SignedUrlCallback | None = None
    ) -> Feed:
        """Return the couple's feed, signing photo URLs in parallel."""
        entries = await self.list_entries(couple_id)
        feed = Feed(entries=entries)
        await self.resolve_signed_urls(entries, feed.signed_urls, on_signed_url)
        return feed

    async def list_entries(self, couple_id: UUID) -> list[EntryRecord]:
        """Return entries newest first."""
        try:
            return await asyncio.to_thread(
                self.entry_repository.list_entries, couple_id
            )
        except StoreError as exc:
            raise FeedLoadError(exc.message) from exc

    async def resolve_signed_urls(
        self,
        entries: list[EntryRecord],
        into: dict[UUID, str],
        on_signed_url: SignedUrlCallback | None = None,
    ) -> None:
        """Merge signed URLs into ``into`` as each one resolves."""

        async def resolve(entry: EntryRecord) -> None:
            url = await self.signed_url(entry)
            if url is None:
                return
            into[entry.id] = url
            if on_signed_url is not None:
                on_signed_url(entry.id, url)

        await asyncio.gather(*(resolve(entry) for entry in entries if entry.photo_path))

    async def signed_url(self, entry: EntryRecord) -> str | None:
        """Sign an entry's photo path, or return ``None`` if that fails."""
        if not entry.photo_path:
            return None
        try:
            return await asyncio.to_thread(
                self.photo_storage.create_signed_url,
                entry.photo_path,
                self.signed_url_ttl_seconds,
            )
        except SignedUrlError as exc:
            logger.warning("No signed URL for entry %s: %s", entry.id, exc.message)
            return None
