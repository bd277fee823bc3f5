"""Tests for membership reconciliation."""

import asyncio
import threading
from dataclasses import dataclass, field
from uuid import UUID, uuid4

import pytest

from date_nights.domain.couples import JoinState, MembershipConflict, MembershipStrategy
from date_nights.domain.errors import StoreError
from date_nights.domain.models import MembershipRecord
from date_nights.services.membership import (
    TIMED_OUT_MESSAGE,
    MembershipReconciler,
    classify_membership_error,
)
from tests.conftest import InMemoryDatabase, InMemoryMembershipRepository


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (StoreError("anything", code="23505"), MembershipConflict.DUPLICATE),
        (
            StoreError('duplicate key value violates unique constraint "pk"'),
            MembershipConflict.DUPLICATE,
        ),
        (StoreError("Couple already has two members"), MembershipConflict.FULL),
        (StoreError("Timeline has TWO MEMBERS already"), MembershipConflict.FULL),
        (StoreError("permission denied for table couple_members"), MembershipConflict.OTHER),
    ],
)
def test_classify_membership_error(error: StoreError, expected: MembershipConflict) -> None:
    assert classify_membership_error(error) == expected


@pytest.mark.parametrize("strategy", list(MembershipStrategy))
def test_reconcile_twice_creates_one_row(strategy: MembershipStrategy) -> None:
    database = InMemoryDatabase()
    couple = database.insert_couple()
    user_id = uuid4()
    reconciler = MembershipReconciler(
        InMemoryMembershipRepository(database), strategy=strategy
    )

    first = asyncio.run(reconciler.reconcile(couple.id, user_id))
    second = asyncio.run(reconciler.reconcile(couple.id, user_id))

    assert first.state == JoinState.JOINED
    assert second.state == JoinState.JOINED
    assert database.members_of(couple.id) == [user_id]


def test_check_then_insert_skips_write_for_existing_member() -> None:
    database = InMemoryDatabase()
    couple = database.insert_couple()
    user_id = uuid4()
    database.insert_member(couple.id, user_id)
    repository = InMemoryMembershipRepository(database)

    outcome = asyncio.run(
        MembershipReconciler(repository).reconcile(couple.id, user_id)
    )

    assert outcome.joined
    assert repository.lookups == 1
    assert database.member_inserts == 1


@pytest.mark.parametrize("strategy", list(MembershipStrategy))
def test_third_member_is_turned_away(strategy: MembershipStrategy) -> None:
    database = InMemoryDatabase()
    couple = database.insert_couple()
    database.insert_member(couple.id, uuid4())
    database.insert_member(couple.id, uuid4())
    reconciler = MembershipReconciler(
        InMemoryMembershipRepository(database), strategy=strategy
    )

    outcome = asyncio.run(reconciler.reconcile(couple.id, uuid4()))

    assert outcome.state == JoinState.FULL
    assert outcome.message == "This timeline already has two members."
    assert len(database.members_of(couple.id)) == 2


def test_other_errors_are_surfaced_verbatim() -> None:
    database = InMemoryDatabase()
    couple = database.insert_couple()
    repository = InMemoryMembershipRepository(
        database, error=StoreError("permission denied for table couple_members")
    )

    outcome = asyncio.run(MembershipReconciler(repository).reconcile(couple.id, uuid4()))

    assert outcome.state == JoinState.ERROR
    assert outcome.message == "permission denied for table couple_members"
    assert database.members_of(couple.id) == []


def test_slow_join_times_out() -> None:
    database = InMemoryDatabase()
    couple = database.insert_couple()
    repository = InMemoryMembershipRepository(database, delay_seconds=0.3)
    reconciler = MembershipReconciler(repository, timeout_seconds=0.05)

    outcome = asyncio.run(reconciler.reconcile(couple.id, uuid4()))

    assert outcome.state == JoinState.ERROR
    assert outcome.message == TIMED_OUT_MESSAGE


def test_concurrent_reconciles_for_one_couple_share_an_attempt() -> None:
    database = InMemoryDatabase()
    couple = database.insert_couple()
    other = database.insert_couple()
    user_id = uuid4()
    repository = InMemoryMembershipRepository(database, delay_seconds=0.05)
    reconciler = MembershipReconciler(
        repository, strategy=MembershipStrategy.INSERT_AND_CLASSIFY
    )

    async def scenario() -> list[JoinState]:
        outcomes = await asyncio.gather(
            reconciler.reconcile(couple.id, user_id),
            reconciler.reconcile(couple.id, user_id),
            reconciler.reconcile(other.id, user_id),
        )
        return [outcome.state for outcome in outcomes]

    states = asyncio.run(scenario())

    assert states == [JoinState.JOINED] * 3
    assert database.member_inserts == 2
    assert database.members_of(couple.id) == [user_id]
    assert database.members_of(other.id) == [user_id]


@dataclass
class RendezvousMembershipRepository(InMemoryMembershipRepository):
    """Inserts block until another insert is running at the same time."""

    barrier: threading.Barrier = field(
        default_factory=lambda: threading.Barrier(2, timeout=2.0)
    )

    def add_member(self, couple_id: UUID, user_id: UUID) -> MembershipRecord:
        self.barrier.wait()
        return super().add_member(couple_id, user_id)


def test_reconciles_for_different_couples_run_concurrently() -> None:
    database = InMemoryDatabase()
    first = database.insert_couple()
    second = database.insert_couple()
    repository = RendezvousMembershipRepository(database)
    reconciler = MembershipReconciler(repository)
    alice, bob = uuid4(), uuid4()

    async def scenario() -> list[JoinState]:
        outcomes = await asyncio.gather(
            reconciler.reconcile(first.id, alice),
            reconciler.reconcile(second.id, bob),
        )
        return [outcome.state for outcome in outcomes]

    states = asyncio.run(scenario())

    assert states == [JoinState.JOINED, JoinState.JOINED]
    assert database.members_of(first.id) == [alice]
    assert database.members_of(second.id) == [bob]
