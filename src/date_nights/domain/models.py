"""Domain models for the date night timeline."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID


@dataclass(frozen=True)
class AuthSession:
    """A signed-in browsing context as reported by the identity provider."""

    user_id: UUID
    email: str | None = None


@dataclass(frozen=True)
class CoupleRecord:
    """A shared timeline owned by at most two members."""

    id: UUID
    created_at: datetime | None = None


@dataclass(frozen=True)
class MembershipRecord:
    """Links one user to one couple."""

    couple_id: UUID
    user_id: UUID


@dataclass(frozen=True)
class EntryRecord:
    """A dated, titled entry in a couple's timeline."""

    id: UUID
    couple_id: UUID
    created_at: datetime
    title: str
    photo_path: str | None
    created_by_user_id: UUID


@dataclass(frozen=True)
class PhotoUpload:
    """Raw photo bytes supplied alongside a new entry."""

    file_name: str
    content: bytes
    content_type: str | None = None
