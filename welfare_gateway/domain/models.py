"""Domain models - pure Python dataclasses and enums representing business entities"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import FrozenSet, Optional


class RequestState(str, Enum):
    """Canonical lifecycle states of an aid request"""

    SUBMITTED = "submitted"
    BOARD_REVIEWED = "boardReviewed"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self in (RequestState.APPROVED, RequestState.REJECTED)

    @classmethod
    def parse(cls, raw: "str | RequestState") -> "RequestState":
        """Normalize any known spelling to the canonical state.

        Raises:
            ValueError: for unknown values
        """
        if isinstance(raw, RequestState):
            return raw
        key = str(raw).strip().replace("-", "_").replace(" ", "_").lower()
        state = _STATE_ALIASES.get(key)
        if state is None:
            raise ValueError(f"Unknown request state: {raw!r}")
        return state


_STATE_ALIASES = {
    "submitted": RequestState.SUBMITTED,
    "pending": RequestState.SUBMITTED,
    "admin_suggested": RequestState.SUBMITTED,
    "boardreviewed": RequestState.BOARD_REVIEWED,
    "board_reviewed": RequestState.BOARD_REVIEWED,
    "committee_approved": RequestState.BOARD_REVIEWED,
    "approved": RequestState.APPROVED,
    "admin_approved": RequestState.APPROVED,
    "rejected": RequestState.REJECTED,
    "admin_rejected": RequestState.REJECTED,
    "committee_rejected": RequestState.REJECTED,
}


class Track(str, Enum):
    """Review route assigned to a request from its category"""

    FAST = "fast"
    BOARD = "board"


class Decision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


class Direction(str, Enum):
    INFLOW = "inflow"
    OUTFLOW = "outflow"


class Capability(str, Enum):
    """Capabilities carried by a verified actor token"""

    REVIEWER = "reviewer"  # general reviewer, also disburses
    BOARD = "board"  # specialized review board
    FUND_MANAGER = "fund_manager"  # manual ledger entries
    REQUESTER = "requester"


class ArtifactStatus(str, Enum):
    ACTIVE = "active"
    VOID = "void"


@dataclass(frozen=True)
class Actor:
    """Verified caller identity, only ever built from a signed token"""

    actor_id: str
    capabilities: FrozenSet[Capability] = field(default_factory=frozenset)

    def has_capability(self, capability: Capability) -> bool:
        return capability in self.capabilities


@dataclass(frozen=True)
class CategoryPolicy:
    """Resolved routing and limits for one category"""

    category_id: str
    track: Track
    max_amount: Optional[Decimal]
    evidence_required: bool = True


@dataclass
class DecisionPayload:
    """Caller-supplied decision details"""

    amount: Optional[Decimal] = None
    evidence_id: Optional[str] = None
    remark: Optional[str] = None


@dataclass
class RequestSnapshot:
    """The fields of a request the transition rules look at"""

    state: RequestState
    track: Track
    board_amount: Optional[Decimal] = None


@dataclass
class TransitionPlan:
    """Validated outcome of a decision, ready to be persisted"""

    previous_state: RequestState
    new_state: RequestState
    approved_amount: Optional[Decimal]
    board_amount: Optional[Decimal]
    remark: str
    finalize: bool
    evidence_id: Optional[str] = None
