"""Supabase-backed couple and membership repositories."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from supabase import Client

from date_nights.adapters.supabase_errors import run_query
from date_nights.domain.errors import StoreError
from date_nights.domain.models import CoupleRecord, MembershipRecord
from date_nights.services.couples import CoupleRepository
from date_nights.services.membership import MembershipRepository


def _parse_couple_id(data: object) -> UUID | None:
    """Extract the couple id from the shapes the RPC may return."""
    if isinstance(data, list):
        data = data[0] if data else None
    if isinstance(data, dict):
        data = data.get("id")
    if not data:
        return None
    try:
        return UUID(str(data))
    except ValueError:
        return None


@dataclass
class SupabaseCoupleRepository(CoupleRepository):
    """Supabase implementation for couples."""

    client: Client

    def create_couple(self) -> CoupleRecord:
        """Insert a couple row and return it."""
        response = run_query(self.client.table("couples").insert({}).execute)
        if not response.data:
            raise StoreError("Failed to create couple")
        row = response.data[0]
        created_at = row.get("created_at")
        return CoupleRecord(
            id=UUID(row["id"]),
            created_at=datetime.fromisoformat(created_at) if created_at else None,
        )

    def create_couple_and_join(self) -> UUID | None:
        """Create a couple and the caller's membership in one transaction."""
        response = run_query(self.client.rpc("create_couple_and_join").execute)
        return _parse_couple_id(response.data)


@dataclass
class SupabaseMembershipRepository(MembershipRepository):
    """Supabase implementation for couple memberships."""

    client: Client

    def get_membership(self, couple_id: UUID, user_id: UUID) -> MembershipRecord | None:
        """Return the membership for the pair, if present."""
        response = run_query(
            self.client.table("couple_members")
            .select("couple_id, user_id")
            .eq("couple_id", str(couple_id))
            .eq("user_id", str(user_id))
            .limit(1)
            .execute
        )
        if not response.data:
            return None
        row = response.data[0]
        return MembershipRecord(
            couple_id=UUID(row["couple_id"]), user_id=UUID(row["user_id"])
        )

    def add_member(self, couple_id: UUID, user_id: UUID) -> MembershipRecord:
        """Insert a membership row; the two-member cap is enforced by a trigger."""
        run_query(
            self.client.table("couple_members")
            .insert({"couple_id": str(couple_id), "user_id": str(user_id)})
            .execute
        )
        return MembershipRecord(couple_id=couple_id, user_id=user_id)
