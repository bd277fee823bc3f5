"""Reconcile a user's membership in a couple's timeline."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Protocol
from uuid import UUID

from date_nights.domain.couples import (
    JoinOutcome,
    JoinState,
    MembershipConflict,
    MembershipStrategy,
)
from date_nights.domain.errors import (
    MembershipFullError,
    MembershipOtherError,
    StoreError,
)
from date_nights.domain.models import MembershipRecord

logger = logging.getLogger(__name__)

_UNIQUE_VIOLATION = "23505"
_DUPLICATE_MARKERS = ("duplicate", "already a member", "already exists")
_FULL_MARKERS = ("already has two members", "two members")

TIMED_OUT_MESSAGE = "Joining timed out. Tap Retry."


class MembershipRepository(Protocol):
    """Persistence interface for couple memberships."""

    def get_membership(self, couple_id: UUID, user_id: UUID) -> MembershipRecord | None:
        """Return the membership for the pair, if present."""

    def add_member(self, couple_id: UUID, user_id: UUID) -> MembershipRecord:
        """Insert a membership row, raising ``StoreError`` on rejection."""


def classify_membership_error(error: StoreError) -> MembershipConflict:
    """Classify a rejected membership insert.

    A structured error code wins when present; otherwise the message text
    is matched.
    """
    if error.code == _UNIQUE_VIOLATION:
        return MembershipConflict.DUPLICATE
    text = error.message.lower()
    if any(marker in text for marker in _FULL_MARKERS):
        return MembershipConflict.FULL
    if any(marker in text for marker in _DUPLICATE_MARKERS):
        return MembershipConflict.DUPLICATE
    return MembershipConflict.OTHER


@dataclass
class MembershipReconciler:
    """Ensure a user belongs to a couple without creating a third member."""

    repository: MembershipRepository
    strategy: MembershipStrategy = MembershipStrategy.CHECK_THEN_INSERT
    timeout_seconds: float = 8.0
    _in_flight: dict[UUID, asyncio.Task[JoinOutcome]] = field(
        default_factory=dict, init=False, repr=False
    )

    async def reconcile(self, couple_id: UUID, user_id: UUID) -> JoinOutcome:
        """Join the couple, sharing any attempt already in flight for it."""
        task = self._in_flight.get(couple_id)
        if task is None:
            task = asyncio.ensure_future(self._bounded(couple_id, user_id))
            self._in_flight[couple_id] = task
            task.add_done_callback(lambda _: self._in_flight.pop(couple_id, None))
        return await asyncio.shield(task)

    async def _bounded(self, couple_id: UUID, user_id: UUID) -> JoinOutcome:
        try:
            return await asyncio.wait_for(
                self._attempt(couple_id, user_id), timeout=self.timeout_seconds
            )
        except TimeoutError:
            logger.warning("Joining couple %s timed out", couple_id)
            return JoinOutcome(JoinState.ERROR, TIMED_OUT_MESSAGE)

    async def _attempt(self, couple_id: UUID, user_id: UUID) -> JoinOutcome:
        try:
            if self.strategy == MembershipStrategy.CHECK_THEN_INSERT:
                existing = await asyncio.to_thread(
                    self.repository.get_membership, couple_id, user_id
                )
                if existing is not None:
                    return JoinOutcome(JoinState.JOINED)
            await self._insert(couple_id, user_id)
        except MembershipFullError as exc:
            logger.info("Couple %s is full; user %s turned away", couple_id, user_id)
            return JoinOutcome(JoinState.FULL, exc.message)
        except MembershipOtherError as exc:
            return JoinOutcome(JoinState.ERROR, exc.message)
        except StoreError as exc:
            return JoinOutcome(JoinState.ERROR, exc.message)
        return JoinOutcome(JoinState.JOINED)

    async def _insert(self, couple_id: UUID, user_id: UUID) -> None:
        try:
            await asyncio.to_thread(self.repository.add_member, couple_id, user_id)
        except StoreError as exc:
            conflict = classify_membership_error(exc)
            if conflict == MembershipConflict.DUPLICATE:
                return
            if conflict == MembershipConflict.FULL:
                raise MembershipFullError() from exc
            raise MembershipOtherError(exc.message) from exc
        logger.info("User %s joined couple %s", user_id, couple_id)
