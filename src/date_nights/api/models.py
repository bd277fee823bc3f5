"""Pydantic models for the HTTP API."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel

from date_nights.domain.couples import JoinState
from date_nights.services.timeline import TimelineView


class MagicLinkRequest(BaseModel):
    """Email address to send a sign-in link to."""

    email: str


class StatusResponse(BaseModel):
    """Short notice shown to the visitor."""

    status: str
    message: str | None = None
    redirect_to: str | None = None


class EntryOut(BaseModel):
    """Timeline entry as rendered in the feed."""

    id: UUID
    created_at: datetime
    title: str
    photo_path: str | None = None
    photo_url: str | None = None
    created_by_user_id: UUID


class TimelineSnapshot(BaseModel):
    """Current state of a visitor's timeline page."""

    couple_id: UUID
    share_path: str
    session_ready: bool
    is_authed: bool
    join_state: JoinState
    notice: str | None = None
    loading_entries: bool = False
    saving: bool = False
    entries: list[EntryOut]

    @classmethod
    def from_view(cls, view: TimelineView) -> "TimelineSnapshot":
        return cls(
            couple_id=view.couple_id,
            share_path=view.path,
            session_ready=view.session_ready,
            is_authed=view.is_authed,
            join_state=view.join_state,
            notice=view.notice,
            loading_entries=view.loading_entries,
            saving=view.saving,
            entries=[
                EntryOut(
                    id=entry.id,
                    created_at=entry.created_at,
                    title=entry.title,
                    photo_path=entry.photo_path,
                    photo_url=view.signed_urls.get(entry.id),
                    created_by_user_id=entry.created_by_user_id,
                )
                for entry in view.entries
            ],
        )
