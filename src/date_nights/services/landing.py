"""Landing page flow for starting a new timeline."""

import asyncio
import logging
from dataclasses import dataclass, field

from date_nights.domain.errors import DateNightsError
from date_nights.domain.models import AuthSession
from date_nights.domain.navigation import timeline_path
from date_nights.services.auth import (
    AuthChangeBridge,
    IdentityProvider,
    SignInService,
)
from date_nights.services.couples import CoupleBootstrapper

logger = logging.getLogger(__name__)

CHECK_EMAIL_MESSAGE = "Check your email for the sign-in link."


@dataclass
class LandingFlow:
    """Start a timeline for a visitor who is, or becomes, signed in.

    A sign-in notification racing the initial session check shares the
    bootstrapper's single attempt, so only one couple is created.
    """

    provider: IdentityProvider
    sign_in: SignInService
    bootstrapper: CoupleBootstrapper
    busy: bool = False
    status: str | None = None
    redirect_to: str | None = None
    _bridge: AuthChangeBridge | None = field(default=None, init=False, repr=False)

    async def open(self) -> str | None:
        """Listen for sign-ins and start right away if already signed in."""
        if self._bridge is None:
            self._bridge = AuthChangeBridge(self.provider, self.handle_auth_change)
            self._bridge.start()
        try:
            session = await asyncio.to_thread(self.provider.get_session)
        except DateNightsError as exc:
            self.status = exc.message
            return None
        if session is None:
            return None
        path = await self.start(session)
        if path is not None:
            self.close()
        return path

    def close(self) -> None:
        if self._bridge is not None:
            self._bridge.close()

    async def send_magic_link(self, email: str) -> None:
        self.busy = True
        self.status = None
        try:
            await self.sign_in.send_magic_link(email, next_path="/")
            self.status = CHECK_EMAIL_MESSAGE
        except DateNightsError as exc:
            self.status = exc.message
        finally:
            self.busy = False

    async def start(self, session: AuthSession) -> str | None:
        """Create a couple for the session and return its timeline path."""
        if self.redirect_to is not None:
            return self.redirect_to
        self.busy = True
        self.status = None
        try:
            couple_id = await self.bootstrapper.bootstrap(session.user_id)
        except DateNightsError as exc:
            self.status = exc.message
            self.busy = False
            return None
        self.redirect_to = timeline_path(couple_id)
        return self.redirect_to

    async def handle_auth_change(self, event: str, session: AuthSession | None) -> None:
        if session is None:
            return
        logger.info("Auth change %s on landing page", event)
        await self.start(session)
