"""Create a new couple and its founding membership."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Protocol
from uuid import UUID

from date_nights.domain.couples import BootstrapMode
from date_nights.domain.errors import CoupleCreateError, StoreError
from date_nights.domain.models import CoupleRecord
from date_nights.services.membership import MembershipRepository

logger = logging.getLogger(__name__)


class CoupleRepository(Protocol):
    """Persistence interface for couples."""

    def create_couple(self) -> CoupleRecord:
        """Insert an empty couple row and return it."""

    def create_couple_and_join(self) -> UUID | None:
        """Create a couple and a membership for the caller in one transaction."""


@dataclass
class CoupleBootstrapper:
    """Start a new timeline on behalf of a signed-in user.

    Each instance creates at most one couple: calls made while an attempt
    is running, or after it succeeded, await that attempt. A failed
    attempt is forgotten so the next call tries again.
    """

    couple_repository: CoupleRepository
    membership_repository: MembershipRepository
    mode: BootstrapMode = BootstrapMode.RPC
    _attempt: asyncio.Task[UUID] | None = field(default=None, init=False, repr=False)

    async def bootstrap(self, user_id: UUID) -> UUID:
        """Create the couple and return its id."""
        if self._attempt is None:
            self._attempt = asyncio.ensure_future(self._create(user_id))
            self._attempt.add_done_callback(self._forget_failure)
        return await asyncio.shield(self._attempt)

    def _forget_failure(self, attempt: asyncio.Task[UUID]) -> None:
        if attempt.cancelled() or attempt.exception() is not None:
            if self._attempt is attempt:
                self._attempt = None

    async def _create(self, user_id: UUID) -> UUID:
        if self.mode == BootstrapMode.RPC:
            return await self._create_with_rpc()
        return await self._create_sequentially(user_id)

    async def _create_with_rpc(self) -> UUID:
        try:
            couple_id = await asyncio.to_thread(
                self.couple_repository.create_couple_and_join
            )
        except StoreError as exc:
            raise CoupleCreateError(exc.message) from exc
        if couple_id is None:
            raise CoupleCreateError(
                "Failed to create timeline (no couple id returned)."
            )
        logger.info("Created couple %s", couple_id)
        return couple_id

    async def _create_sequentially(self, user_id: UUID) -> UUID:
        try:
            couple = await asyncio.to_thread(self.couple_repository.create_couple)
        except StoreError as exc:
            raise CoupleCreateError() from exc
        try:
            await asyncio.to_thread(
                self.membership_repository.add_member, couple.id, user_id
            )
        except StoreError as exc:
            logger.warning(
                "Couple %s left without members: %s", couple.id, exc.message
            )
            raise CoupleCreateError() from exc
        logger.info("Created couple %s for user %s", couple.id, user_id)
        return couple.id
