"""Auth callback flow: session, then either join or start a timeline."""

import asyncio
import logging
from dataclasses import dataclass, field

from date_nights.domain.errors import AuthError, CoupleCreateError
from date_nights.domain.navigation import (
    is_timeline_path,
    parse_timeline_target,
    query_param,
    safe_next_path,
    timeline_path,
)
from date_nights.services.auth import SessionResolver
from date_nights.services.couples import CoupleBootstrapper

logger = logging.getLogger(__name__)

INVALID_TARGET_MESSAGE = "That timeline link is not valid."


@dataclass(frozen=True)
class CallbackResult:
    """Where to send the visitor next, or what to tell them."""

    redirect_to: str | None
    message: str


@dataclass
class AuthCallbackFlow:
    """Handle one magic link callback.

    Runs once per instance; later calls return the first result.
    """

    resolver: SessionResolver
    bootstrapper: CoupleBootstrapper
    _run: asyncio.Task[CallbackResult] | None = field(
        default=None, init=False, repr=False
    )

    async def run(self, callback_url: str) -> CallbackResult:
        if self._run is None:
            self._run = asyncio.ensure_future(self._handle(callback_url))
        return await asyncio.shield(self._run)

    async def _handle(self, callback_url: str) -> CallbackResult:
        try:
            session = await self.resolver.resolve(callback_url)
        except AuthError as exc:
            return CallbackResult(redirect_to=None, message=exc.message)
        await self.resolver.settle()

        next_path = safe_next_path(query_param(callback_url, "next"))
        if parse_timeline_target(next_path) is not None:
            return CallbackResult(redirect_to=next_path, message="Signing you in…")
        if is_timeline_path(next_path):
            logger.info("Ignoring malformed timeline target %s", next_path)
            return CallbackResult(redirect_to=None, message=INVALID_TARGET_MESSAGE)

        try:
            couple_id = await self.bootstrapper.bootstrap(session.user_id)
        except CoupleCreateError as exc:
            logger.warning("Timeline creation failed: %s", exc.message)
            return CallbackResult(redirect_to=None, message=exc.message)
        return CallbackResult(
            redirect_to=timeline_path(couple_id), message="Creating your timeline…"
        )
