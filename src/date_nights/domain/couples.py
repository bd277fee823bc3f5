"""Domain types for couple membership."""

from dataclasses import dataclass
from enum import StrEnum


class JoinState(StrEnum):
    """Progress of joining a couple's timeline."""

    IDLE = "idle"
    JOINING = "joining"
    JOINED = "joined"
    FULL = "full"
    ERROR = "error"


class MembershipStrategy(StrEnum):
    """How the reconciler decides whether to insert a membership."""

    CHECK_THEN_INSERT = "check_then_insert"
    INSERT_AND_CLASSIFY = "insert_and_classify"


class BootstrapMode(StrEnum):
    """How a new couple and its founding membership are created."""

    RPC = "rpc"
    SEQUENTIAL = "sequential"


class MembershipConflict(StrEnum):
    """Classification of a rejected membership insert."""

    DUPLICATE = "duplicate"
    FULL = "full"
    OTHER = "other"


@dataclass(frozen=True)
class JoinOutcome:
    """Terminal result of one reconciliation attempt."""

    state: JoinState
    message: str | None = None

    @property
    def joined(self) -> bool:
        return self.state == JoinState.JOINED
