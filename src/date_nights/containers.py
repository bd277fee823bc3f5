"""Dependency container wiring for the application."""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from uuid import UUID

from supabase import Client, ClientOptions, create_client

from date_nights.adapters.supabase_auth_provider import SupabaseAuthProvider
from date_nights.adapters.supabase_couple_repository import (
    SupabaseCoupleRepository,
    SupabaseMembershipRepository,
)
from date_nights.adapters.supabase_entry_repository import SupabaseEntryRepository
from date_nights.adapters.supabase_photo_storage import SupabasePhotoStorage
from date_nights.config import Settings
from date_nights.services.auth import IdentityProvider, SessionResolver, SignInService
from date_nights.services.callback import AuthCallbackFlow
from date_nights.services.couples import CoupleBootstrapper, CoupleRepository
from date_nights.services.entries import EntryWriter
from date_nights.services.feed import EntryRepository, FeedLoader, PhotoStorage
from date_nights.services.landing import LandingFlow
from date_nights.services.membership import MembershipReconciler, MembershipRepository
from date_nights.services.timeline import TimelineView

logger = logging.getLogger(__name__)


@dataclass
class BrowsingContext:
    """Services bound to one visitor's own session storage."""

    settings: Settings
    provider: IdentityProvider
    couple_repository: CoupleRepository
    membership_repository: MembershipRepository
    resolver: SessionResolver
    sign_in: SignInService
    reconciler: MembershipReconciler
    feed_loader: FeedLoader
    entry_writer: EntryWriter
    timelines: dict[UUID, TimelineView] = field(default_factory=dict)
    landing: LandingFlow | None = None

    def bootstrapper(self) -> CoupleBootstrapper:
        """Return a fresh single-shot bootstrapper."""
        return CoupleBootstrapper(
            couple_repository=self.couple_repository,
            membership_repository=self.membership_repository,
            mode=self.settings.bootstrap_mode,
        )

    def callback_flow(self) -> AuthCallbackFlow:
        self.leave_landing()
        return AuthCallbackFlow(resolver=self.resolver, bootstrapper=self.bootstrapper())

    def landing_flow(self) -> LandingFlow:
        if self.landing is None:
            self.landing = LandingFlow(
                provider=self.provider,
                sign_in=self.sign_in,
                bootstrapper=self.bootstrapper(),
            )
        return self.landing

    def timeline(self, couple_id: UUID) -> TimelineView:
        """Return the view for a couple, creating it on first use."""
        self.leave_landing()
        view = self.timelines.get(couple_id)
        if view is None:
            view = TimelineView(
                couple_id=couple_id,
                resolver=self.resolver,
                sign_in=self.sign_in,
                reconciler=self.reconciler,
                feed_loader=self.feed_loader,
                entry_writer=self.entry_writer,
            )
            self.timelines[couple_id] = view
        return view

    def leave_landing(self) -> None:
        """Stop the landing page from reacting to sign-ins."""
        if self.landing is not None:
            self.landing.close()
            self.landing = None

    def reset(self) -> None:
        """Tear down every view, e.g. after signing out."""
        for view in self.timelines.values():
            view.close()
        self.timelines.clear()
        self.leave_landing()


def build_context(  # noqa: PLR0913
    settings: Settings,
    provider: IdentityProvider,
    couple_repository: CoupleRepository,
    membership_repository: MembershipRepository,
    entry_repository: EntryRepository,
    photo_storage: PhotoStorage,
) -> BrowsingContext:
    """Wire services for one visitor from its ports."""
    feed_loader = FeedLoader(
        entry_repository=entry_repository,
        photo_storage=photo_storage,
        signed_url_ttl_seconds=settings.signed_url_ttl_seconds,
    )
    return BrowsingContext(
        settings=settings,
        provider=provider,
        couple_repository=couple_repository,
        membership_repository=membership_repository,
        resolver=SessionResolver(
            provider=provider,
            poll_attempts=settings.session_poll_attempts,
            poll_delay_seconds=settings.session_poll_delay_seconds,
            settle_delay_seconds=settings.session_settle_delay_seconds,
        ),
        sign_in=SignInService(provider=provider, site_url=settings.site_url),
        reconciler=MembershipReconciler(
            repository=membership_repository,
            strategy=settings.membership_strategy,
            timeout_seconds=settings.join_timeout_seconds,
        ),
        feed_loader=feed_loader,
        entry_writer=EntryWriter(
            entry_repository=entry_repository,
            photo_storage=photo_storage,
            feed_loader=feed_loader,
        ),
    )


def build_supabase_context(settings: Settings, client: Client) -> BrowsingContext:
    """Wire a visitor context onto a Supabase client."""
    return build_context(
        settings,
        provider=SupabaseAuthProvider(client),
        couple_repository=SupabaseCoupleRepository(client),
        membership_repository=SupabaseMembershipRepository(client),
        entry_repository=SupabaseEntryRepository(client),
        photo_storage=SupabasePhotoStorage(client, bucket=settings.photos_bucket),
    )


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class AppContainer:
    """Holds application-wide dependencies and per-visitor contexts.

    Contexts are kept in least-recently-used order. A context idle for
    longer than ``idle_ttl_seconds``, or pushed out by ``max_contexts``, is
    reset and dropped.
    """

    settings: Settings
    new_context: Callable[[], BrowsingContext]
    close_resources: Callable[[], Awaitable[None]]
    contexts: dict[str, BrowsingContext] = field(default_factory=dict)
    max_contexts: int = 1000
    idle_ttl_seconds: float = 1800.0
    clock: Callable[[], datetime] = _utc_now
    _last_seen: dict[str, datetime] = field(default_factory=dict, init=False, repr=False)

    def context_for(self, visitor_id: str) -> BrowsingContext:
        """Return the visitor's context, creating it on first visit."""
        now = self.clock()
        self._evict_idle(now)
        context = self.contexts.pop(visitor_id, None)
        if context is None:
            context = self.new_context()
        self.contexts[visitor_id] = context
        self._last_seen[visitor_id] = now
        while len(self.contexts) > self.max_contexts:
            self._evict(next(iter(self.contexts)))
        return context

    def _evict_idle(self, now: datetime) -> None:
        cutoff = now - timedelta(seconds=self.idle_ttl_seconds)
        for visitor_id in list(self.contexts):
            seen = self._last_seen.get(visitor_id)
            if seen is not None and seen > cutoff:
                break
            self._evict(visitor_id)

    def _evict(self, visitor_id: str) -> None:
        context = self.contexts.pop(visitor_id)
        self._last_seen.pop(visitor_id, None)
        context.reset()
        logger.info("Dropped browsing context for visitor %s", visitor_id)


def build_container(
    settings: Settings | None = None,
    client_factory: Callable[[Settings], Client] | None = None,
) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    make_client = client_factory or _create_visitor_client

    def new_context() -> BrowsingContext:
        return build_supabase_context(resolved_settings, make_client(resolved_settings))

    contexts: dict[str, BrowsingContext] = {}

    async def close_resources() -> None:
        for context in contexts.values():
            context.reset()
        contexts.clear()

    return AppContainer(
        settings=resolved_settings,
        new_context=new_context,
        close_resources=close_resources,
        contexts=contexts,
        max_contexts=resolved_settings.max_visitor_contexts,
        idle_ttl_seconds=resolved_settings.visitor_idle_ttl_seconds,
    )


def _create_visitor_client(settings: Settings) -> Client:
    return create_client(
        settings.supabase_url,
        settings.supabase_anon_key,
        options=ClientOptions(flow_type="pkce", auto_refresh_token=False),
    )
