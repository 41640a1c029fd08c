"""Review gateway - drives aid requests through the dual-track lifecycle"""

import logging
import time
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from welfare_gateway.config import settings
from welfare_gateway.domain.exceptions import (
    AlreadyDecided,
    DomainException,
    InvalidAmount,
    InvalidStateTransition,
    NotFound,
    Unauthorized,
)
from welfare_gateway.domain.lifecycle import plan_transition
from welfare_gateway.domain.models import (
    Actor,
    Capability,
    Decision,
    DecisionPayload,
    RequestSnapshot,
    RequestState,
    TransitionPlan,
    Track,
)
from welfare_gateway.infrastructure.clients.notifier import Notifier, NullNotifier
from welfare_gateway.infrastructure.database.models import AidRequest, LedgerEntry, StatusLogEntry
from welfare_gateway.infrastructure.database.repositories import (
    LedgerRepository,
    RequestRepository,
    StatusLogRepository,
)
from welfare_gateway.infrastructure.observability.logging import log_transition
from welfare_gateway.infrastructure.observability.metrics import (
    decision_rejection_counter,
    notification_failure_counter,
    record_decision,
)
from welfare_gateway.services.categories import CategoryDirectory
from welfare_gateway.services.evidence import EvidenceStore
from welfare_gateway.services.finalization import FinalizationCoordinator
from welfare_gateway.services.ledger import BalanceSnapshot
from welfare_gateway.utils.money import ZERO, format_rm, to_money

logger = logging.getLogger(__name__)

REVIEWER_POOL = "reviewers"


@dataclass
class DecisionOutcome:
    request: AidRequest
    status_log: StatusLogEntry
    ledger_entry: Optional[LedgerEntry] = None
    balance: Optional[BalanceSnapshot] = None


@dataclass
class ConsistencyReport:
    request_id: uuid.UUID
    state: str
    version: int
    log_count: int
    last_logged_state: Optional[str]
    outflow_count: int

    @property
    def consistent(self) -> bool:
        if self.log_count != self.version:
            return False
        if self.log_count and self.last_logged_state != self.state:
            return False
        expected_outflows = 1 if self.state == RequestState.APPROVED.value else 0
        return self.outflow_count == expected_outflows


@dataclass
class RequestStatistics:
    total: int
    by_state: Dict[str, int]
    pending: int
    completed: int
    rejected: int
    need_receipt: int
    approved_amount_total: Decimal
    board_amount_total: Decimal


class ReviewService:
    """Request lifecycle operations.

    ``decide`` is the only way a request changes state. The state
    compare-and-swap, the audit entry and (on approval) the disbursement
    outflow share one transaction.
    """

    def __init__(self, db: Session, notifier: Optional[Notifier] = None):
        self.db = db
        self.requests = RequestRepository(db)
        self.logs = StatusLogRepository(db)
        self.ledger_entries = LedgerRepository(db)
        self.directory = CategoryDirectory(db)
        self.evidence = EvidenceStore(db)
        self.finalizer = FinalizationCoordinator(db)
        self.notifier = notifier or NullNotifier()

    # Intake and reads

    def submit_request(
        self,
        actor: Actor,
        category_id: str,
        requested_amount,
        justification: str,
    ) -> AidRequest:
        """Create a request in ``submitted``; the track is fixed here, once"""
        if not (actor.has_capability(Capability.REQUESTER) or actor.has_capability(Capability.REVIEWER)):
            raise Unauthorized("Only requesters or reviewers can submit aid requests")
        try:
            amount = to_money(requested_amount)
        except ValueError as e:
            raise InvalidAmount(str(e)) from e
        if amount < 0:
            raise InvalidAmount("Requested amount cannot be negative")

        policy = self.directory.resolve(category_id)
        request = self.requests.create(
            requester_id=actor.actor_id,
            category_id=policy.category_id,
            track=policy.track.value,
            requested_amount=amount,
            justification=justification or "",
        )
        self.db.commit()
        logger.info(
            "Aid request submitted",
            extra={"request_id": str(request.id), "category_id": category_id, "track": policy.track.value},
        )
        return request

    def get_request(self, request_id: uuid.UUID) -> AidRequest:
        request = self.requests.get(request_id)
        if request is None:
            raise NotFound(f"Request {request_id} not found")
        return request

    def get_status_log(self, request_id: uuid.UUID) -> List[StatusLogEntry]:
        self.get_request(request_id)
        return self.logs.list_for_request(request_id)

    def list_requests(
        self,
        state: Optional[str] = None,
        track: Optional[str] = None,
        category_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[AidRequest]:
        parsed_state = RequestState.parse(state) if state is not None else None
        parsed_track = Track(track).value if track is not None else None
        return self.requests.list(parsed_state, parsed_track, category_id, limit=limit)

    def list_awaiting_disbursement(self) -> List[AidRequest]:
        """Board-approved requests waiting for a receipt and final approval"""
        return self.requests.list(RequestState.BOARD_REVIEWED, Track.BOARD.value)

    def statistics(self, track: Optional[str] = None) -> RequestStatistics:
        """Dashboard counts over active requests.

        ``pending`` is everything still awaiting a decision (submitted or
        board-reviewed); ``need_receipt`` counts board-reviewed requests with
        no active receipt yet.
        """
        parsed_track = Track(track).value if track is not None else None
        by_state = {state.value: 0 for state in RequestState}
        approved_total = board_total = ZERO
        for state, count, approved, board in self.requests.state_totals(parsed_track):
            by_state[state] = by_state.get(state, 0) + count
            board_total += board
            if state == RequestState.APPROVED.value:
                approved_total += approved

        awaiting = self.requests.list(RequestState.BOARD_REVIEWED, parsed_track, limit=None)
        need_receipt = sum(1 for r in awaiting if not self.evidence.has_active_evidence(r.id))

        return RequestStatistics(
            total=sum(by_state.values()),
            by_state=by_state,
            pending=by_state[RequestState.SUBMITTED.value] + by_state[RequestState.BOARD_REVIEWED.value],
            completed=by_state[RequestState.APPROVED.value],
            rejected=by_state[RequestState.REJECTED.value],
            need_receipt=need_receipt,
            approved_amount_total=approved_total,
            board_amount_total=board_total,
        )

    # Transitions

    def decide(
        self,
        request_id: uuid.UUID,
        actor: Actor,
        decision,
        payload: Optional[DecisionPayload] = None,
    ) -> DecisionOutcome:
        """
        Apply a reviewer or board decision to a request.

        Raises:
            NotFound, Unauthorized, InvalidStateTransition, InvalidAmount,
            AmountExceedsLimit, MissingEvidence, MissingRemark,
            AlreadyDecided, FinalizationFailed
        """
        start_time = time.time()
        payload = payload or DecisionPayload()
        try:
            decision = Decision(decision)
        except ValueError as e:
            raise InvalidStateTransition(f"Unknown decision {decision!r}") from e

        try:
            request = self.requests.get(request_id)
            if request is None or not request.is_active:
                raise NotFound(f"Request {request_id} not found")

            snapshot = RequestSnapshot(
                state=RequestState.parse(request.state),
                track=Track(request.track),
                board_amount=request.board_amount,
            )
            expected_version = request.version
            policy = self.directory.resolve(request.category_id)

            plan = plan_transition(
                snapshot,
                policy,
                actor,
                decision,
                payload,
                lambda artifact_id: self.evidence.is_active_for(request.id, artifact_id),
                settings.board_remark_min_length,
            )

            swapped = self.requests.compare_and_set_state(
                request.id,
                expected_state=plan.previous_state,
                expected_version=expected_version,
                new_state=plan.new_state,
                approved_amount=plan.approved_amount,
                board_amount=plan.board_amount,
            )
            if not swapped:
                raise AlreadyDecided("Another decision on this request was recorded first")

            status_log = self.logs.append(
                request.id,
                sequence=expected_version + 1,
                previous_state=plan.previous_state,
                new_state=plan.new_state,
                actor_id=actor.actor_id,
                remark=plan.remark,
            )

            ledger_entry = None
            if plan.finalize:
                ledger_entry = self.finalizer.finalize(request, plan.approved_amount, actor.actor_id)

            self.db.commit()

        except DomainException as e:
            self.db.rollback()
            decision_rejection_counter.labels(kind=e.kind).inc()
            logger.info(
                f"Decision refused: {e.remark}",
                extra={"request_id": str(request_id), "actor_id": actor.actor_id, "kind": e.kind},
            )
            raise
        except Exception:
            self.db.rollback()
            raise

        balance = self.finalizer.settle(actor.actor_id) if ledger_entry is not None else None
        request = self.get_request(request_id)

        duration_ms = (time.time() - start_time) * 1000
        record_decision(request.track, plan.new_state.value)
        log_transition(
            str(request.id),
            actor.actor_id,
            plan.previous_state.value,
            plan.new_state.value,
            request.track,
            plan.approved_amount,
            duration_ms,
        )
        self._notify_transition(request, plan)

        return DecisionOutcome(request=request, status_log=status_log, ledger_entry=ledger_entry, balance=balance)

    def update_justification(self, request_id: uuid.UUID, actor: Actor, justification: str) -> AidRequest:
        """Edit request content; terminal requests are immutable"""
        request = self.get_request(request_id)
        if actor.actor_id != request.requester_id and not actor.has_capability(Capability.REVIEWER):
            raise Unauthorized("Only the requester or a reviewer can edit this request")
        if RequestState.parse(request.state).is_terminal:
            raise InvalidStateTransition(f"Request is {request.state}; its content can no longer change")
        self.requests.update_fields(request, justification=justification)
        self.db.commit()
        return request

    def deactivate_request(self, request_id: uuid.UUID, actor: Actor) -> AidRequest:
        """Soft-deactivate; requests referenced by the ledger are never deleted"""
        if not actor.has_capability(Capability.REVIEWER):
            raise Unauthorized("Capability 'reviewer' required")
        request = self.get_request(request_id)
        self.requests.update_fields(request, is_active=False)
        self.db.commit()
        logger.info("Aid request deactivated", extra={"request_id": str(request_id), "actor_id": actor.actor_id})
        return request

    def check_consistency(self, request_id: uuid.UUID) -> ConsistencyReport:
        request = self.get_request(request_id)
        logs = self.logs.list_for_request(request_id)
        return ConsistencyReport(
            request_id=request.id,
            state=request.state,
            version=request.version,
            log_count=len(logs),
            last_logged_state=logs[-1].new_state if logs else None,
            outflow_count=self.ledger_entries.count_outflows_for_request(request_id),
        )

    def _notify_transition(self, request: AidRequest, plan: TransitionPlan) -> None:
        """Fire-and-forget; a failed notification never undoes the transition"""
        base = {"request_id": str(request.id), "remark": plan.remark}
        if plan.new_state == RequestState.APPROVED:
            amount = format_rm(plan.approved_amount or Decimal(0))
            messages = [(request.requester_id, "request.approved", {**base, "approved_amount": amount})]
        elif plan.new_state == RequestState.REJECTED:
            messages = [(request.requester_id, "request.rejected", base)]
        else:
            amount = format_rm(plan.board_amount or Decimal(0))
            messages = [
                (request.requester_id, "request.board_reviewed", {**base, "board_amount": amount}),
                (REVIEWER_POOL, "request.awaiting_disbursement", {**base, "board_amount": amount}),
            ]

        for user_id, event, payload in messages:
            try:
                self.notifier.notify(user_id, event, payload)
            except Exception as e:
                notification_failure_counter.inc()
                logger.warning(
                    f"Notification failed: {e}",
                    extra={"request_id": str(request.id), "event": event},
                )
