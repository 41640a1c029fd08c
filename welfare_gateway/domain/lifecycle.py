"""Request lifecycle rules - the dual-track review state machine

Pure functions: no I/O. The service layer feeds in a snapshot of the request,
the resolved category policy and a lookup for evidence, and persists the
returned TransitionPlan.

Tracks:
- fast:  submitted --reviewer--> approved | rejected
- board: submitted --board--> boardReviewed | rejected
         boardReviewed --reviewer (disbursement)--> approved | rejected
"""

from decimal import Decimal
from typing import Callable, Optional

from welfare_gateway.domain.exceptions import (
    AmountExceedsLimit,
    InvalidAmount,
    InvalidStateTransition,
    MissingEvidence,
    MissingRemark,
    Unauthorized,
)
from welfare_gateway.domain.models import (
    Actor,
    Capability,
    CategoryPolicy,
    Decision,
    DecisionPayload,
    RequestSnapshot,
    RequestState,
    TransitionPlan,
    Track,
)
from welfare_gateway.utils.money import to_money

REVIEW_CAPABILITIES = (Capability.REVIEWER, Capability.BOARD)

# (track, state) -> capability that may act on it
_REQUIRED_CAPABILITY = {
    (Track.FAST, RequestState.SUBMITTED): Capability.REVIEWER,
    (Track.BOARD, RequestState.SUBMITTED): Capability.BOARD,
    (Track.BOARD, RequestState.BOARD_REVIEWED): Capability.REVIEWER,
}


def required_capability(track: Track, state: RequestState) -> Capability:
    """Capability needed to decide a request in ``state`` on ``track``.

    Raises:
        InvalidStateTransition: when no decision is possible from this state
    """
    if state.is_terminal:
        raise InvalidStateTransition(f"Request is already {state.value}; no further decisions are accepted")
    capability = _REQUIRED_CAPABILITY.get((track, state))
    if capability is None:
        raise InvalidStateTransition(f"State {state.value} is not reachable on the {track.value} track")
    return capability


def authorize(actor: Actor, track: Track, state: RequestState) -> Capability:
    """Check the actor may act now.

    An actor with some review capability but the wrong one is attempting the
    wrong track; an actor with none is simply unauthorized.
    """
    needed = required_capability(track, state)
    if actor.has_capability(needed):
        return needed
    if any(actor.has_capability(c) for c in REVIEW_CAPABILITIES):
        if track == Track.BOARD and state == RequestState.SUBMITTED:
            raise InvalidStateTransition("This request requires board approval before the reviewer can decide")
        raise InvalidStateTransition(
            f"A {needed.value} decides {track.value}-track requests in state {state.value}"
        )
    raise Unauthorized(f"Capability '{needed.value}' required")


def validate_amount(raw: Optional[Decimal]) -> Decimal:
    if raw is None:
        raise InvalidAmount("An approved amount is required")
    try:
        amount = to_money(raw)
    except ValueError as e:
        raise InvalidAmount(str(e)) from e
    if amount <= 0:
        raise InvalidAmount("Approved amount must be greater than zero")
    return amount


def validate_remark(remark: Optional[str], min_length: int) -> str:
    """Rejection remarks must be non-empty and strictly longer than ``min_length``"""
    text = (remark or "").strip()
    if not text:
        raise MissingRemark("A remark is required to reject a request")
    if len(text) <= min_length:
        raise MissingRemark(f"Rejection remark must be longer than {min_length} characters")
    return text


def require_evidence(evidence_id: Optional[str], is_active_evidence: Callable[[str], bool]) -> str:
    if not evidence_id:
        raise MissingEvidence("A disbursement receipt must be attached before approval")
    if not is_active_evidence(evidence_id):
        raise MissingEvidence(f"Receipt {evidence_id} is not an active artifact of this request")
    return evidence_id


def plan_transition(
    request: RequestSnapshot,
    policy: CategoryPolicy,
    actor: Actor,
    decision: Decision,
    payload: DecisionPayload,
    is_active_evidence: Callable[[str], bool],
    board_remark_min_length: int = 10,
) -> TransitionPlan:
    """Validate a decision and compute the resulting transition.

    Check order: terminal state, capability/track, then decision-specific
    payload rules (remark, amount, limit, evidence).

    Raises:
        InvalidStateTransition, Unauthorized, MissingRemark, InvalidAmount,
        AmountExceedsLimit, MissingEvidence
    """
    state = request.state
    track = request.track
    authorize(actor, track, state)

    if decision == Decision.REJECT:
        min_length = board_remark_min_length if track == Track.BOARD else 0
        remark = validate_remark(payload.remark, min_length)
        return TransitionPlan(
            previous_state=state,
            new_state=RequestState.REJECTED,
            approved_amount=None,
            board_amount=request.board_amount,
            remark=remark,
            finalize=False,
        )

    remark = (payload.remark or "").strip()

    if track == Track.FAST:
        amount = validate_amount(payload.amount)
        if policy.max_amount is not None and amount > policy.max_amount:
            raise AmountExceedsLimit(
                f"Approved amount {amount} exceeds the category maximum of {to_money(policy.max_amount)}"
            )
        evidence_id = None
        if policy.evidence_required or payload.evidence_id:
            evidence_id = require_evidence(payload.evidence_id, is_active_evidence)
        if evidence_id is not None:
            default_remark = "Application approved by reviewer with payment receipt uploaded"
        else:
            default_remark = "Application approved by reviewer"
        return TransitionPlan(
            previous_state=state,
            new_state=RequestState.APPROVED,
            approved_amount=amount,
            board_amount=None,
            remark=remark or default_remark,
            finalize=True,
            evidence_id=evidence_id,
        )

    if state == RequestState.SUBMITTED:
        # Board may approve above the category cap
        amount = validate_amount(payload.amount)
        return TransitionPlan(
            previous_state=state,
            new_state=RequestState.BOARD_REVIEWED,
            approved_amount=None,
            board_amount=amount,
            remark=remark or "Approved by review board",
            finalize=False,
        )

    if request.board_amount is None:
        raise InvalidStateTransition("Board-reviewed request carries no board amount")
    evidence_id = require_evidence(payload.evidence_id, is_active_evidence)
    return TransitionPlan(
        previous_state=state,
        new_state=RequestState.APPROVED,
        approved_amount=to_money(request.board_amount),
        board_amount=request.board_amount,
        remark=remark or "Payment receipt uploaded by reviewer - application finalized",
        finalize=True,
        evidence_id=evidence_id,
    )
