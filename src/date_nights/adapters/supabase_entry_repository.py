"""Supabase-backed entry repository."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from supabase import Client

from date_nights.adapters.supabase_errors import run_query
from date_nights.domain.models import EntryRecord
from date_nights.services.feed import EntryRepository

_COLUMNS = "id, couple_id, created_at, title, photo_path, created_by_user_id"


def _to_entry(row: dict[str, object]) -> EntryRecord:
    return EntryRecord(
        id=UUID(str(row["id"])),
        couple_id=UUID(str(row["couple_id"])),
        created_at=datetime.fromisoformat(str(row["created_at"])),
        title=str(row["title"]),
        photo_path=str(row["photo_path"]) if row.get("photo_path") else None,
        created_by_user_id=UUID(str(row["created_by_user_id"])),
    )


@dataclass
class SupabaseEntryRepository(EntryRepository):
    """Supabase implementation for timeline entries."""

    client: Client

    def list_entries(self, couple_id: UUID) -> list[EntryRecord]:
        """Return entries for a couple, newest first."""
        response = run_query(
            self.client.table("entries")
            .select(_COLUMNS)
            .eq("couple_id", str(couple_id))
            .order("created_at", desc=True)
            .execute
        )
        return [_to_entry(row) for row in response.data or []]

    def create_entry(
        self,
        couple_id: UUID,
        created_at: datetime,
        title: str,
        created_by_user_id: UUID,
    ) -> EntryRecord | None:
        """Insert an entry without a photo and return the stored row."""
        response = run_query(
            self.client.table("entries")
            .insert(
                {
                    "couple_id": str(couple_id),
                    "created_at": created_at.isoformat(),
                    "title": title,
                    "created_by_user_id": str(created_by_user_id),
                    "photo_path": None,
                }
            )
            .execute
        )
        if not response.data:
            return None
        return _to_entry(response.data[0])

    def set_photo_path(self, entry_id: UUID, photo_path: str) -> EntryRecord | None:
        """Attach a photo path to an entry and return the stored row."""
        response = run_query(
            self.client.table("entries")
            .update({"photo_path": photo_path})
            .eq("id", str(entry_id))
            .execute
        )
        if not response.data:
            return None
        return _to_entry(response.data[0])
