"""Session resolution and magic link sign-in."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Protocol

from date_nights.domain.errors import InvalidEmailError, NoSessionError
from date_nights.domain.models import AuthSession
from date_nights.domain.navigation import callback_redirect_url, query_param

logger = logging.getLogger(__name__)

AuthChangeCallback = Callable[[str, AuthSession | None], None]
Sleep = Callable[[float], Awaitable[None]]


class IdentityProvider(Protocol):
    """Interface for the passwordless identity provider."""

    def exchange_code_for_session(self, code: str) -> AuthSession:
        """Exchange an authorization code for a session."""

    def get_session(self) -> AuthSession | None:
        """Return the session visible to this browsing context, if any."""

    def send_magic_link(self, email: str, redirect_to: str) -> None:
        """Email a sign-in link that returns to ``redirect_to``."""

    def sign_out(self) -> None:
        """Destroy the current session."""

    def subscribe(self, callback: AuthChangeCallback) -> Callable[[], None]:
        """Register for session change notifications and return an unsubscriber."""


@dataclass
class SessionResolver:
    """Turn a callback URL into a confirmed session.

    The provider's session write and its read path are not immediately
    consistent, so a freshly established session is polled for a bounded
    number of attempts before giving up.
    """

    provider: IdentityProvider
    poll_attempts: int = 10
    poll_delay_seconds: float = 0.15
    settle_delay_seconds: float = 0.15
    sleep: Sleep = asyncio.sleep

    async def resolve(self, callback_url: str | None = None) -> AuthSession:
        """Exchange any code in the URL and wait for the session to appear."""
        code = query_param(callback_url, "code")
        if code:
            await asyncio.to_thread(self.provider.exchange_code_for_session, code)

        session = await self.wait_for_session()
        if session is None:
            raise NoSessionError()
        return session

    async def wait_for_session(self) -> AuthSession | None:
        """Poll for a readable session, returning ``None`` once the budget is spent."""
        for attempt in range(1, self.poll_attempts + 1):
            session = await asyncio.to_thread(self.provider.get_session)
            if session is not None and session.user_id:
                if attempt > 1:
                    logger.info("Session became visible on attempt %s", attempt)
                return session
            await self.sleep(self.poll_delay_seconds)
        logger.info("No session after %s attempts", self.poll_attempts)
        return None

    async def settle(self) -> None:
        """Give the store's authorization layer time to see the new session."""
        if self.settle_delay_seconds > 0:
            await self.sleep(self.settle_delay_seconds)


@dataclass
class SignInService:
    """Request magic links and end sessions."""

    provider: IdentityProvider
    site_url: str

    async def send_magic_link(self, email: str, next_path: str = "/") -> None:
        """Email a sign-in link that lands on ``next_path`` after the callback."""
        cleaned = email.strip()
        if not cleaned:
            raise InvalidEmailError()
        redirect_to = callback_redirect_url(self.site_url, next_path)
        await asyncio.to_thread(self.provider.send_magic_link, cleaned, redirect_to)

    async def sign_out(self) -> None:
        """Sign out the current browsing context."""
        await asyncio.to_thread(self.provider.sign_out)


AuthChangeHandler = Callable[[str, AuthSession | None], Awaitable[None]]


@dataclass
class AuthChangeBridge:
    """Deliver provider notifications to a coroutine on the event loop.

    The provider may fire its callback from a worker thread, so each
    notification is handed to the loop captured in ``start``.
    """

    provider: IdentityProvider
    handler: AuthChangeHandler
    _loop: asyncio.AbstractEventLoop | None = field(default=None, init=False)
    _unsubscribe: Callable[[], None] | None = field(default=None, init=False)
    _tasks: set[asyncio.Task[None]] = field(default_factory=set, init=False)

    def start(self) -> None:
        if self._unsubscribe is not None:
            return
        self._loop = asyncio.get_running_loop()
        self._unsubscribe = self.provider.subscribe(self._notify)

    def close(self) -> None:
        """Unsubscribe and cancel handlers that have not finished."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

    def _notify(self, event: str, session: AuthSession | None) -> None:
        loop = self._loop
        if loop is None or loop.is_closed() or self._unsubscribe is None:
            return
        loop.call_soon_threadsafe(self._spawn, event, session)

    def _spawn(self, event: str, session: AuthSession | None) -> None:
        if self._unsubscribe is None:
            return
        task = asyncio.ensure_future(self.handler(event, session))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
