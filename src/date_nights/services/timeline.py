"""Per-visitor state for a couple's timeline page."""

import logging
from dataclasses import dataclass, field
from datetime import date
from uuid import UUID

from date_nights.domain.couples import JoinState
from date_nights.domain.errors import DateNightsError
from date_nights.domain.models import AuthSession, EntryRecord, PhotoUpload
from date_nights.domain.navigation import timeline_path
from date_nights.services.auth import AuthChangeBridge, SessionResolver, SignInService
from date_nights.services.entries import EntryWriter
from date_nights.services.feed import FeedLoader
from date_nights.services.landing import CHECK_EMAIL_MESSAGE
from date_nights.services.membership import MembershipReconciler

logger = logging.getLogger(__name__)


@dataclass
class TimelineView:
    """Drive sign-in, joining and the feed for one couple.

    Results that arrive after ``close`` are dropped rather than applied.
    """

    couple_id: UUID
    resolver: SessionResolver
    sign_in: SignInService
    reconciler: MembershipReconciler
    feed_loader: FeedLoader
    entry_writer: EntryWriter
    session_ready: bool = False
    is_authed: bool = False
    join_state: JoinState = JoinState.IDLE
    notice: str | None = None
    entries: list[EntryRecord] = field(default_factory=list)
    signed_urls: dict[UUID, str] = field(default_factory=dict)
    loading_entries: bool = False
    saving: bool = False
    _mounted: bool = field(default=True, init=False, repr=False)
    _bridge: AuthChangeBridge | None = field(default=None, init=False, repr=False)

    @property
    def path(self) -> str:
        return timeline_path(self.couple_id)

    async def open(self) -> None:
        """Wait for a session, join the couple and load its entries."""
        if not self._mounted:
            return
        if self._bridge is None:
            self._bridge = AuthChangeBridge(
                self.resolver.provider, self.handle_auth_change
            )
            self._bridge.start()
        try:
            session = await self.resolver.wait_for_session()
        except DateNightsError as exc:
            if not self._mounted:
                return
            self.session_ready = True
            self.is_authed = False
            self.notice = exc.message
            return
        if not self._mounted:
            return
        self.session_ready = True
        self.is_authed = session is not None
        if session is not None and await self.join():
            await self.load_entries()

    async def join(self) -> bool:
        """Reconcile membership and return whether the visitor is a member."""
        if not self._mounted:
            return False
        self.join_state = JoinState.JOINING
        self.notice = None
        try:
            session = await self.resolver.wait_for_session()
        except DateNightsError as exc:
            return self._apply_join(JoinState.ERROR, exc.message)
        if session is None:
            return self._apply_join(JoinState.ERROR, "No session found.")

        outcome = await self.reconciler.reconcile(self.couple_id, session.user_id)
        return self._apply_join(outcome.state, outcome.message)

    async def retry(self) -> bool:
        """Run joining and loading again from the start."""
        joined = await self.join()
        if joined:
            await self.load_entries()
        return joined

    async def load_entries(self) -> None:
        if not self._mounted:
            return
        self.loading_entries = True
        try:
            feed = await self.feed_loader.load(
                self.couple_id, on_signed_url=self._merge_signed_url
            )
        except DateNightsError as exc:
            if self._mounted:
                self.notice = exc.message
            return
        finally:
            self.loading_entries = False
        if self._mounted:
            self.entries = feed.entries

    async def add_entry(
        self, day: date, title: str, photo: PhotoUpload | None = None
    ) -> EntryRecord | None:
        """Save a new entry and put it at the top of the feed."""
        if self.saving:
            return None
        self.saving = True
        self.notice = None
        try:
            session = await self.resolver.wait_for_session()
            if session is None:
                self.notice = "Not signed in."
                return None
            written = await self.entry_writer.add_entry(
                self.couple_id, session.user_id, day, title, photo
            )
        except DateNightsError as exc:
            if self._mounted:
                self.notice = exc.message
            return None
        finally:
            self.saving = False
        if not self._mounted:
            return None
        if written.signed_url is not None:
            self.signed_urls[written.entry.id] = written.signed_url
        self.entries = [written.entry, *self.entries]
        return written.entry

    async def send_magic_link(self, email: str) -> None:
        """Email a link that signs the visitor in and returns to this timeline."""
        self.notice = None
        try:
            await self.sign_in.send_magic_link(email, next_path=self.path)
        except DateNightsError as exc:
            self.notice = exc.message
            return
        self.notice = CHECK_EMAIL_MESSAGE

    async def handle_auth_change(self, event: str, session: AuthSession | None) -> None:
        if not self._mounted:
            return
        self.session_ready = True
        self.is_authed = session is not None
        if session is None:
            self.entries = []
            self.signed_urls = {}
            self.join_state = JoinState.IDLE
            return
        if self.join_state == JoinState.IDLE:
            logger.info("Auth change %s; joining couple %s", event, self.couple_id)
            await self.retry()

    def close(self) -> None:
        """Tear down: stop listening and drop any late results."""
        self._mounted = False
        if self._bridge is not None:
            self._bridge.close()

    def _apply_join(self, state: JoinState, message: str | None) -> bool:
        if not self._mounted:
            return False
        self.join_state = state
        if message is not None:
            self.notice = message
        return state == JoinState.JOINED

    def _merge_signed_url(self, entry_id: UUID, url: str) -> None:
        if self._mounted:
            self.signed_urls[entry_id] = url
