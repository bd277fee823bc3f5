"""Shared test fixtures."""

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import UUID, uuid4

import pytest

from date_nights.config import Settings
from date_nights.containers import AppContainer, BrowsingContext, build_context
from date_nights.domain.errors import (
    AuthExchangeError,
    SignedUrlError,
    StoreError,
    UploadError,
)
from date_nights.domain.models import (
    AuthSession,
    CoupleRecord,
    EntryRecord,
    MembershipRecord,
)
from date_nights.services.auth import AuthChangeCallback, IdentityProvider
from date_nights.services.couples import CoupleRepository
from date_nights.services.feed import EntryRepository, PhotoStorage
from date_nights.services.membership import MembershipRepository

FULL_MESSAGE = "Couple already has two members"


@dataclass
class InMemoryDatabase:
    """Shared tables with the store's uniqueness and two-member rules."""

    couples: dict[UUID, CoupleRecord] = field(default_factory=dict)
    memberships: list[MembershipRecord] = field(default_factory=list)
    entries: dict[UUID, EntryRecord] = field(default_factory=dict)
    member_inserts: int = 0

    def insert_couple(self) -> CoupleRecord:
        couple = CoupleRecord(id=uuid4(), created_at=datetime.now(tz=UTC))
        self.couples[couple.id] = couple
        return couple

    def insert_member(self, couple_id: UUID, user_id: UUID) -> MembershipRecord:
        self.member_inserts += 1
        membership = MembershipRecord(couple_id=couple_id, user_id=user_id)
        if membership in self.memberships:
            raise StoreError(
                'duplicate key value violates unique constraint "couple_members_pkey"',
                code="23505",
            )
        if len(self.members_of(couple_id)) >= 2:
            raise StoreError(FULL_MESSAGE, code="P0001")
        self.memberships.append(membership)
        return membership

    def members_of(self, couple_id: UUID) -> list[UUID]:
        return [m.user_id for m in self.memberships if m.couple_id == couple_id]


@dataclass
class FakeIdentityProvider(IdentityProvider):
    """Identity provider whose session becomes readable after some reads."""

    session: AuthSession | None = None
    visible_after: int = 1
    valid_codes: set[str] = field(default_factory=set)
    pending: AuthSession | None = None
    read_calls: int = 0
    read_error: Exception | None = None
    sign_out_error: Exception | None = None
    exchanged: list[str] = field(default_factory=list)
    magic_links: list[tuple[str, str]] = field(default_factory=list)
    callbacks: list[AuthChangeCallback] = field(default_factory=list)

    def exchange_code_for_session(self, code: str) -> AuthSession:
        if code not in self.valid_codes or self.pending is None:
            raise AuthExchangeError("invalid flow state, no valid flow state found")
        self.exchanged.append(code)
        self.sign_in(self.pending)
        return self.pending

    def get_session(self) -> AuthSession | None:
        self.read_calls += 1
        if self.read_error is not None:
            raise self.read_error
        if self.session is None or self.read_calls < self.visible_after:
            return None
        return self.session

    def send_magic_link(self, email: str, redirect_to: str) -> None:
        self.magic_links.append((email, redirect_to))

    def sign_out(self) -> None:
        if self.sign_out_error is not None:
            raise self.sign_out_error
        self.session = None
        self.emit("SIGNED_OUT", None)

    def subscribe(self, callback: AuthChangeCallback) -> Callable[[], None]:
        self.callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self.callbacks:
                self.callbacks.remove(callback)

        return unsubscribe

    def sign_in(self, session: AuthSession) -> None:
        self.session = session
        self.emit("SIGNED_IN", session)

    def emit(self, event: str, session: AuthSession | None) -> None:
        for callback in list(self.callbacks):
            callback(event, session)


@dataclass
class InMemoryMembershipRepository(MembershipRepository):
    """Membership repository over the shared in-memory tables."""

    database: InMemoryDatabase
    lookups: int = 0
    delay_seconds: float = 0.0
    error: StoreError | None = None

    def get_membership(self, couple_id: UUID, user_id: UUID) -> MembershipRecord | None:
        self.lookups += 1
        membership = MembershipRecord(couple_id=couple_id, user_id=user_id)
        return membership if membership in self.database.memberships else None

    def add_member(self, couple_id: UUID, user_id: UUID) -> MembershipRecord:
        if self.delay_seconds:
            time.sleep(self.delay_seconds)
        if self.error is not None:
            raise self.error
        return self.database.insert_member(couple_id, user_id)


@dataclass
class InMemoryCoupleRepository(CoupleRepository):
    """Couple repository; the RPC acts as the provider's signed-in user."""

    database: InMemoryDatabase
    provider: FakeIdentityProvider
    rpc_calls: int = 0
    return_no_id: bool = False

    def create_couple(self) -> CoupleRecord:
        return self.database.insert_couple()

    def create_couple_and_join(self) -> UUID | None:
        self.rpc_calls += 1
        if self.provider.session is None:
            raise StoreError("not authenticated", code="28000")
        if self.return_no_id:
            return None
        couple = self.database.insert_couple()
        self.database.insert_member(couple.id, self.provider.session.user_id)
        return couple.id


@dataclass
class InMemoryEntryRepository(EntryRepository):
    """Entry repository over the shared in-memory tables."""

    database: InMemoryDatabase
    fail_insert: bool = False

    def list_entries(self, couple_id: UUID) -> list[EntryRecord]:
        entries = [e for e in self.database.entries.values() if e.couple_id == couple_id]
        return sorted(entries, key=lambda e: e.created_at, reverse=True)

    def create_entry(
        self,
        couple_id: UUID,
        created_at: datetime,
        title: str,
        created_by_user_id: UUID,
    ) -> EntryRecord | None:
        if self.fail_insert:
            raise StoreError("new row violates row-level security policy")
        entry = EntryRecord(
            id=uuid4(),
            couple_id=couple_id,
            created_at=created_at,
            title=title,
            photo_path=None,
            created_by_user_id=created_by_user_id,
        )
        self.database.entries[entry.id] = entry
        return entry

    def set_photo_path(self, entry_id: UUID, photo_path: str) -> EntryRecord | None:
        current = self.database.entries.get(entry_id)
        if current is None:
            return None
        updated = EntryRecord(
            id=current.id,
            couple_id=current.couple_id,
            created_at=current.created_at,
            title=current.title,
            photo_path=photo_path,
            created_by_user_id=current.created_by_user_id,
        )
        self.database.entries[entry_id] = updated
        return updated


@dataclass
class InMemoryPhotoStorage(PhotoStorage):
    """Object storage that signs URLs with a random token."""

    objects: dict[str, bytes] = field(default_factory=dict)
    unsignable: set[str] = field(default_factory=set)
    signed: list[tuple[str, int]] = field(default_factory=list)

    def upload(self, path: str, content: bytes, content_type: str | None) -> None:
        if path in self.objects:
            raise UploadError("The resource already exists")
        self.objects[path] = content

    def create_signed_url(self, path: str, ttl_seconds: int) -> str:
        if path in self.unsignable or path not in self.objects:
            raise SignedUrlError("Object not found")
        self.signed.append((path, ttl_seconds))
        return f"https://storage.test/photos/{path}?token={uuid4().hex}"


@dataclass
class RecordingSleep:
    """Stand-in for ``asyncio.sleep`` that records requested delays."""

    delays: list[float] = field(default_factory=list)

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        await asyncio.sleep(0)


@dataclass
class Visitor:
    """One browser: its own provider plus repositories over shared tables."""

    provider: FakeIdentityProvider
    couples: InMemoryCoupleRepository
    memberships: InMemoryMembershipRepository
    entries: InMemoryEntryRepository
    storage: InMemoryPhotoStorage
    context: BrowsingContext


def make_visitor(
    settings: Settings,
    database: InMemoryDatabase,
    storage: InMemoryPhotoStorage,
    session: AuthSession | None = None,
) -> Visitor:
    provider = FakeIdentityProvider(session=session)
    couples = InMemoryCoupleRepository(database, provider)
    memberships = InMemoryMembershipRepository(database)
    entries = InMemoryEntryRepository(database)
    context = build_context(
        settings,
        provider=provider,
        couple_repository=couples,
        membership_repository=memberships,
        entry_repository=entries,
        photo_storage=storage,
    )
    return Visitor(provider, couples, memberships, entries, storage, context)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        supabase_url="https://example.supabase.co",
        supabase_anon_key="anon-key",
        site_url="https://dates.example.com",
        session_poll_delay_seconds=0.0,
        session_settle_delay_seconds=0.0,
    )


@pytest.fixture
def database() -> InMemoryDatabase:
    return InMemoryDatabase()


@pytest.fixture
def storage() -> InMemoryPhotoStorage:
    return InMemoryPhotoStorage()


@pytest.fixture
def visitors() -> list[Visitor]:
    """Visitors created by the container fixture, in order of first request."""
    return []


@pytest.fixture
def container(
    settings: Settings,
    database: InMemoryDatabase,
    storage: InMemoryPhotoStorage,
    visitors: list[Visitor],
) -> AppContainer:
    def new_context() -> BrowsingContext:
        visitor = make_visitor(settings, database, storage)
        visitors.append(visitor)
        return visitor.context

    async def close_resources() -> None:
        return None

    return AppContainer(
        settings=settings,
        new_context=new_context,
        close_resources=close_resources,
    )
