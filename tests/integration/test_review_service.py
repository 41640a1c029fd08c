"""Integration tests for the review gateway against a SQLite database"""

import uuid
import pytest
from decimal import Decimal
from types import SimpleNamespace
from welfare_gateway.domain.exceptions import (
    AlreadyDecided,
    AmountExceedsLimit,
    FinalizationFailed,
    InvalidAmount,
    InvalidStateTransition,
    MissingEvidence,
    MissingRemark,
    NotFound,
    Unauthorized,
)
from welfare_gateway.domain.models import DecisionPayload, Direction
from welfare_gateway.infrastructure.database.repositories import LedgerRepository, RequestRepository
from welfare_gateway.services.evidence import EvidenceStore
from welfare_gateway.services.finalization import FinalizationCoordinator
from welfare_gateway.services.ledger import LedgerService
from welfare_gateway.services.review import REVIEWER_POOL, ReviewService

pytestmark = pytest.mark.integration

BOARD_CATEGORY = "CAT-ILLNESS-INPATIENT"


@pytest.fixture
def funded(db, fund_manager):
    """Fund starts with a RM1,000 donation"""
    LedgerService(db).record_entry(Direction.INFLOW, Decimal("1000"), "donation", fund_manager.actor_id, "Alumni gift")


def test_fast_track_approval_disburses_once(db, review_service, make_request, attach_receipt, reviewer, funded, notifier):
    """Over-limit approval is refused, then a receipt-backed approval pays out"""
    request = make_request(amount="450.00")

    with pytest.raises(AmountExceedsLimit):
        review_service.decide(request.id, reviewer, "approve", DecisionPayload(amount=Decimal("600")))

    receipt_id = attach_receipt(request.id)
    outcome = review_service.decide(
        request.id, reviewer, "approve", DecisionPayload(amount=Decimal("400"), evidence_id=receipt_id)
    )

    assert outcome.request.state == "approved"
    assert outcome.request.approved_amount == Decimal("400.00")
    assert outcome.request.version == 1
    assert outcome.ledger_entry.direction == "outflow"
    assert outcome.ledger_entry.amount == Decimal("400.00")
    assert outcome.ledger_entry.request_id == request.id
    assert outcome.balance.current_balance == Decimal("600.00")
    assert LedgerService(db).get_current_balance().current_balance == Decimal("600.00")

    assert len(notifier.sent) == 1
    user_id, event, payload = notifier.sent[0]
    assert (user_id, event) == ("student-1", "request.approved")
    assert payload["request_id"] == str(request.id)
    assert payload["approved_amount"] == "RM400.00"


def test_board_track_flow(db, review_service, make_request, attach_receipt, reviewer, board_member, funded, notifier):
    """Board approves the amount, reviewer disburses with a receipt"""
    request = make_request(category_id=BOARD_CATEGORY, amount="1000.00", justification="Ward admission")

    with pytest.raises(InvalidStateTransition):
        review_service.decide(request.id, reviewer, "approve", DecisionPayload(amount=Decimal("1000")))

    outcome = review_service.decide(request.id, board_member, "approve", DecisionPayload(amount=Decimal("1000")))
    assert outcome.request.state == "boardReviewed"
    assert outcome.request.board_amount == Decimal("1000.00")
    assert outcome.ledger_entry is None
    assert [r.id for r in review_service.list_awaiting_disbursement()] == [request.id]
    assert {user for user, _, _ in notifier.sent} == {"student-1", REVIEWER_POOL}

    with pytest.raises(MissingEvidence):
        review_service.decide(request.id, reviewer, "approve")

    receipt_id = attach_receipt(request.id)
    outcome = review_service.decide(request.id, reviewer, "approve", DecisionPayload(evidence_id=receipt_id))

    assert outcome.request.state == "approved"
    assert outcome.request.approved_amount == Decimal("1000.00")
    assert outcome.ledger_entry.amount == Decimal("1000.00")
    assert LedgerService(db).get_current_balance().current_balance == Decimal("0.00")
    assert review_service.list_awaiting_disbursement() == []


def test_board_rejection_needs_a_real_remark(review_service, make_request, board_member):
    request = make_request(category_id=BOARD_CATEGORY, amount="3000.00")

    with pytest.raises(MissingRemark):
        review_service.decide(request.id, board_member, "reject", DecisionPayload(remark="no"))

    outcome = review_service.decide(
        request.id, board_member, "reject", DecisionPayload(remark="Insufficient documentation provided")
    )
    assert outcome.request.state == "rejected"
    assert outcome.status_log.remark == "Insufficient documentation provided"


def test_audit_trail_matches_version(review_service, make_request, attach_receipt, reviewer, board_member):
    request = make_request(category_id=BOARD_CATEGORY, amount="800.00")
    review_service.decide(request.id, board_member, "approve", DecisionPayload(amount=Decimal("750")))
    receipt_id = attach_receipt(request.id)
    review_service.decide(request.id, reviewer, "approve", DecisionPayload(evidence_id=receipt_id))

    logs = review_service.get_status_log(request.id)
    assert [log.sequence for log in logs] == [1, 2]
    assert [(log.previous_state, log.new_state) for log in logs] == [
        ("submitted", "boardReviewed"),
        ("boardReviewed", "approved"),
    ]
    assert [log.actor_id for log in logs] == ["board-1", "reviewer-1"]

    report = review_service.check_consistency(request.id)
    assert report.version == 2
    assert report.outflow_count == 1
    assert report.consistent


def test_refused_decision_leaves_no_trace(review_service, make_request, reviewer):
    request = make_request()

    with pytest.raises(MissingRemark):
        review_service.decide(request.id, reviewer, "reject", DecisionPayload(remark=""))

    request = review_service.get_request(request.id)
    assert request.state == "submitted"
    assert request.version == 0
    assert review_service.get_status_log(request.id) == []


def test_terminal_request_is_immutable(db, review_service, make_request, attach_receipt, reviewer, funded):
    request = make_request()
    receipt_id = attach_receipt(request.id)
    review_service.decide(request.id, reviewer, "approve", DecisionPayload(amount=Decimal("450"), evidence_id=receipt_id))

    with pytest.raises(InvalidStateTransition):
        review_service.decide(request.id, reviewer, "reject", DecisionPayload(remark="changed our mind"))
    with pytest.raises(InvalidStateTransition):
        review_service.decide(request.id, reviewer, "approve", DecisionPayload(amount=Decimal("1"), evidence_id=receipt_id))
    with pytest.raises(InvalidStateTransition):
        review_service.update_justification(request.id, reviewer, "rewritten after approval")
    with pytest.raises(InvalidStateTransition):
        EvidenceStore(db).void_evidence(receipt_id, reviewer.actor_id)

    assert review_service.check_consistency(request.id).outflow_count == 1


def test_voided_receipt_cannot_back_an_approval(db, review_service, make_request, attach_receipt, reviewer):
    request = make_request()
    receipt_id = attach_receipt(request.id)
    EvidenceStore(db).void_evidence(receipt_id, reviewer.actor_id)

    with pytest.raises(MissingEvidence):
        review_service.decide(
            request.id, reviewer, "approve", DecisionPayload(amount=Decimal("100"), evidence_id=receipt_id)
        )


def test_receipt_of_another_request_is_not_accepted(review_service, make_request, attach_receipt, reviewer):
    first = make_request()
    second = make_request()
    receipt_id = attach_receipt(first.id)

    with pytest.raises(MissingEvidence):
        review_service.decide(
            second.id, reviewer, "approve", DecisionPayload(amount=Decimal("100"), evidence_id=receipt_id)
        )


def test_losing_a_race_raises_already_decided(review_service, make_request, reviewer, monkeypatch):
    """A decision computed from a stale snapshot fails the compare-and-swap"""
    request = make_request()
    stale = SimpleNamespace(
        id=request.id,
        state="submitted",
        track="fast",
        board_amount=None,
        version=0,
        category_id=request.category_id,
        requester_id=request.requester_id,
        is_active=True,
    )
    review_service.decide(request.id, reviewer, "reject", DecisionPayload(remark="duplicate application"))

    monkeypatch.setattr(RequestRepository, "get", lambda self, request_id: stale)
    with pytest.raises(AlreadyDecided):
        review_service.decide(request.id, reviewer, "reject", DecisionPayload(remark="second opinion"))
    monkeypatch.undo()

    logs = review_service.get_status_log(request.id)
    assert len(logs) == 1
    assert logs[0].remark == "duplicate application"


def test_finalization_failure_rolls_back_the_approval(
    db, review_service, make_request, attach_receipt, reviewer, funded, monkeypatch
):
    request = make_request()
    receipt_id = attach_receipt(request.id)

    def broken_append(self, **kwargs):
        raise RuntimeError("ledger unavailable")

    monkeypatch.setattr(LedgerRepository, "append", broken_append)
    with pytest.raises(FinalizationFailed):
        review_service.decide(
            request.id, reviewer, "approve", DecisionPayload(amount=Decimal("300"), evidence_id=receipt_id)
        )
    monkeypatch.undo()

    request = review_service.get_request(request.id)
    assert request.state == "submitted"
    assert request.version == 0
    assert request.approved_amount is None
    assert review_service.get_status_log(request.id) == []
    assert review_service.check_consistency(request.id).outflow_count == 0
    assert LedgerService(db).get_current_balance().current_balance == Decimal("1000.00")


def test_deferred_balance_recompute_heals_on_next_read(
    db, review_service, make_request, attach_receipt, reviewer, funded, monkeypatch
):
    """An approval whose post-commit recompute failed still shows up in the balance"""
    request = make_request()
    receipt_id = attach_receipt(request.id)

    def unavailable(self, actor_id, _retry=True):
        raise RuntimeError("balance row locked")

    monkeypatch.setattr(LedgerService, "recompute_balance", unavailable)
    outcome = review_service.decide(
        request.id, reviewer, "approve", DecisionPayload(amount=Decimal("400"), evidence_id=receipt_id)
    )
    monkeypatch.undo()

    assert outcome.request.state == "approved"
    assert outcome.balance is None

    balance = LedgerService(db).get_current_balance()
    assert balance.current_balance == Decimal("600.00")
    assert balance.total_outflow == Decimal("400.00")
    assert balance.entry_count == 2


def test_finalize_is_idempotent(db, review_service, make_request, attach_receipt, reviewer, funded):
    request = make_request()
    receipt_id = attach_receipt(request.id)
    outcome = review_service.decide(
        request.id, reviewer, "approve", DecisionPayload(amount=Decimal("200"), evidence_id=receipt_id)
    )

    coordinator = FinalizationCoordinator(db)
    again = coordinator.finalize(outcome.request, Decimal("200"), reviewer.actor_id)
    db.commit()

    assert again.id == outcome.ledger_entry.id
    assert review_service.check_consistency(request.id).outflow_count == 1


def test_failed_notification_does_not_undo_transition(db, make_request, attach_receipt, reviewer):
    class BrokenNotifier:
        def notify(self, user_id, event, payload):
            raise ConnectionError("notifier down")

    service = ReviewService(db, notifier=BrokenNotifier())
    request = make_request()

    outcome = service.decide(request.id, reviewer, "reject", DecisionPayload(remark="not eligible"))

    assert outcome.request.state == "rejected"
    assert service.get_request(request.id).state == "rejected"


def test_only_review_capabilities_can_decide(review_service, make_request, student):
    request = make_request()
    with pytest.raises(Unauthorized):
        review_service.decide(request.id, student, "approve", DecisionPayload(amount=Decimal("10")))


def test_unknown_category_and_request(review_service, student, reviewer):
    with pytest.raises(NotFound):
        review_service.submit_request(student, "CAT-DOES-NOT-EXIST", Decimal("100"), "")

    with pytest.raises(NotFound):
        review_service.decide(uuid.uuid4(), reviewer, "reject", DecisionPayload(remark="missing"))


def test_deactivated_request_cannot_be_decided(review_service, make_request, reviewer):
    request = make_request()
    review_service.deactivate_request(request.id, reviewer)

    with pytest.raises(NotFound):
        review_service.decide(request.id, reviewer, "reject", DecisionPayload(remark="stale"))
    assert review_service.get_request(request.id).is_active is False


def test_track_is_fixed_at_submission(review_service, make_request):
    assert make_request().track == "fast"
    assert make_request(category_id=BOARD_CATEGORY).track == "board"
    assert make_request(category_id="CAT-EMERGENCY-OTHERS").track == "board"


def test_statistics_counts_by_state_and_missing_receipts(
    db, review_service, make_request, attach_receipt, reviewer, board_member, funded
):
    approved = make_request(amount="300.00")
    review_service.decide(
        approved.id,
        reviewer,
        "approve",
        DecisionPayload(amount=Decimal("300"), evidence_id=attach_receipt(approved.id)),
    )
    rejected = make_request()
    review_service.decide(rejected.id, reviewer, "reject", DecisionPayload(remark="not eligible"))
    make_request()

    waiting = make_request(category_id=BOARD_CATEGORY, amount="800.00")
    review_service.decide(waiting.id, board_member, "approve", DecisionPayload(amount=Decimal("750")))
    with_receipt = make_request(category_id=BOARD_CATEGORY, amount="200.00")
    review_service.decide(with_receipt.id, board_member, "approve", DecisionPayload(amount=Decimal("200")))
    attach_receipt(with_receipt.id)

    stats = review_service.statistics()

    assert stats.total == 5
    assert stats.by_state == {"submitted": 1, "boardReviewed": 2, "approved": 1, "rejected": 1}
    assert stats.pending == 3
    assert stats.completed == 1
    assert stats.rejected == 1
    assert stats.need_receipt == 1
    assert stats.approved_amount_total == Decimal("300.00")
    assert stats.board_amount_total == Decimal("950.00")

    board_only = review_service.statistics(track="board")
    assert board_only.total == 2
    assert board_only.completed == 0


def test_has_active_evidence_ignores_void_receipts(db, make_request, attach_receipt, reviewer):
    store = EvidenceStore(db)
    request = make_request()
    assert store.has_active_evidence(request.id) is False

    receipt_id = attach_receipt(request.id)
    assert store.has_active_evidence(request.id) is True

    store.void_evidence(receipt_id, reviewer.actor_id)
    assert store.has_active_evidence(request.id) is False


def test_non_finite_amounts_are_refused(review_service, make_request, attach_receipt, student, reviewer):
    with pytest.raises(InvalidAmount):
        review_service.submit_request(student, "CAT-BEREAVEMENT", Decimal("NaN"), "")

    request = make_request()
    receipt_id = attach_receipt(request.id)
    with pytest.raises(InvalidAmount):
        review_service.decide(
            request.id, reviewer, "approve", DecisionPayload(amount=Decimal("NaN"), evidence_id=receipt_id)
        )
    assert review_service.get_request(request.id).state == "submitted"
