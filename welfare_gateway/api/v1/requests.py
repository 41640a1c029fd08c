"""Aid request endpoints - intake, review decisions, receipts and audit trail"""

import logging
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from welfare_gateway.api.dependencies import get_current_actor, get_notifier, get_request_id
from welfare_gateway.api.errors import internal_error, to_http_exception
from welfare_gateway.api.v1.schemas import (
    BalanceResponse,
    ConsistencyResponse,
    DecisionBody,
    DecisionResponse,
    EvidenceBody,
    EvidenceResponse,
    JustificationBody,
    LedgerEntryResponse,
    RequestResponse,
    StatisticsResponse,
    StatusLogResponse,
    SubmitRequestBody,
)
from welfare_gateway.domain.exceptions import DomainException, Unauthorized
from welfare_gateway.domain.models import Actor, Capability, DecisionPayload
from welfare_gateway.infrastructure.clients.notifier import BackgroundNotifier
from welfare_gateway.infrastructure.database.models import AidRequest
from welfare_gateway.infrastructure.database.session import get_db
from welfare_gateway.services.evidence import EvidenceStore
from welfare_gateway.services.review import ReviewService

router = APIRouter()


def _review_service(db: Session, notifier: Optional[BackgroundNotifier] = None) -> ReviewService:
    return ReviewService(db, notifier=notifier)


def _ensure_can_view(service: ReviewService, request_id: uuid.UUID, actor: Actor) -> AidRequest:
    """Requesters see their own requests; reviewers and board members see all"""
    request = service.get_request(request_id)
    if request.requester_id != actor.actor_id and not (
        actor.has_capability(Capability.REVIEWER) or actor.has_capability(Capability.BOARD)
    ):
        raise Unauthorized("Not allowed to view this request")
    return request


@router.post("/requests", response_model=RequestResponse, status_code=201)
def submit_request(
    body: SubmitRequestBody,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Intake: create a request in the submitted state"""
    try:
        request = _review_service(db).submit_request(actor, body.category_id, body.requested_amount, body.justification)
        return RequestResponse.model_validate(request)
    except DomainException as e:
        raise to_http_exception(e)


@router.get("/requests", response_model=List[RequestResponse])
def list_requests(
    state: Optional[str] = Query(None),
    track: Optional[str] = Query(None),
    category_id: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Review queue, filtered by state, track or category"""
    if not (actor.has_capability(Capability.REVIEWER) or actor.has_capability(Capability.BOARD)):
        raise to_http_exception(Unauthorized("Review capability required"))
    try:
        requests = _review_service(db).list_requests(state, track, category_id, limit)
    except ValueError as e:
        raise HTTPException(status_code=422, detail={"error": "InvalidFilter", "remark": str(e)})
    return [RequestResponse.model_validate(r) for r in requests]


@router.get("/requests/awaiting-disbursement", response_model=List[RequestResponse])
def list_awaiting_disbursement(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Board-approved requests that still need a receipt and final approval"""
    if not actor.has_capability(Capability.REVIEWER):
        raise to_http_exception(Unauthorized("Capability 'reviewer' required"))
    return [RequestResponse.model_validate(r) for r in _review_service(db).list_awaiting_disbursement()]


@router.get("/requests/statistics", response_model=StatisticsResponse)
def get_statistics(
    track: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Dashboard counts: pending, completed, rejected and awaiting a receipt"""
    if not (actor.has_capability(Capability.REVIEWER) or actor.has_capability(Capability.BOARD)):
        raise to_http_exception(Unauthorized("Review capability required"))
    try:
        stats = _review_service(db).statistics(track)
    except ValueError as e:
        raise HTTPException(status_code=422, detail={"error": "InvalidFilter", "remark": str(e)})
    return StatisticsResponse(**vars(stats))


@router.get("/requests/{request_id}", response_model=RequestResponse)
def get_request(
    request_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    service = _review_service(db)
    try:
        request = _ensure_can_view(service, request_id, actor)
    except DomainException as e:
        raise to_http_exception(e)
    return RequestResponse.model_validate(request)


@router.post("/requests/{request_id}/decision", response_model=DecisionResponse)
def decide(
    request_id: uuid.UUID,
    body: DecisionBody,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    notifier: BackgroundNotifier = Depends(get_notifier),
):
    """
    Apply a review decision.

    Flow:
    1. Validate capability, track, remark, amount and receipt
    2. Compare-and-swap the request state
    3. Append the audit entry
    4. On final approval, write the disbursement outflow
    5. Commit, recompute the fund balance, queue notifications
    """
    trace_id = get_request_id(request)
    payload = DecisionPayload(amount=body.amount, evidence_id=body.evidence_id, remark=body.remark)
    try:
        outcome = _review_service(db, notifier).decide(request_id, actor, body.decision, payload)
    except DomainException as e:
        raise to_http_exception(e)
    except Exception as e:
        logging.error(f"Unexpected error: {e}", extra={"request_id": trace_id})
        raise internal_error()

    return DecisionResponse(
        request=RequestResponse.model_validate(outcome.request),
        status_log=StatusLogResponse.model_validate(outcome.status_log),
        ledger_entry=LedgerEntryResponse.model_validate(outcome.ledger_entry) if outcome.ledger_entry else None,
        balance=BalanceResponse(**vars(outcome.balance)) if outcome.balance else None,
    )


@router.patch("/requests/{request_id}", response_model=RequestResponse)
def update_justification(
    request_id: uuid.UUID,
    body: JustificationBody,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    try:
        request = _review_service(db).update_justification(request_id, actor, body.justification)
    except DomainException as e:
        raise to_http_exception(e)
    return RequestResponse.model_validate(request)


@router.delete("/requests/{request_id}", response_model=RequestResponse)
def deactivate_request(
    request_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Soft deactivation; the row and its audit trail are kept"""
    try:
        request = _review_service(db).deactivate_request(request_id, actor)
    except DomainException as e:
        raise to_http_exception(e)
    return RequestResponse.model_validate(request)


@router.get("/requests/{request_id}/history", response_model=List[StatusLogResponse])
def get_status_history(
    request_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Ordered audit trail of a request"""
    service = _review_service(db)
    try:
        _ensure_can_view(service, request_id, actor)
        logs = service.get_status_log(request_id)
    except DomainException as e:
        raise to_http_exception(e)
    return [StatusLogResponse.model_validate(entry) for entry in logs]


@router.get("/requests/{request_id}/consistency", response_model=ConsistencyResponse)
def check_consistency(
    request_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    service = _review_service(db)
    try:
        _ensure_can_view(service, request_id, actor)
        report = service.check_consistency(request_id)
    except DomainException as e:
        raise to_http_exception(e)
    return ConsistencyResponse(**vars(report), consistent=report.consistent)


@router.post("/requests/{request_id}/evidence", response_model=EvidenceResponse, status_code=201)
def attach_evidence(
    request_id: uuid.UUID,
    body: EvidenceBody,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Attach a disbursement receipt reference (bytes live in the document store)"""
    if not actor.has_capability(Capability.REVIEWER):
        raise to_http_exception(Unauthorized("Capability 'reviewer' required"))
    try:
        artifact = EvidenceStore(db).attach_evidence(request_id, actor.actor_id, body.locator, body.declared_amount)
    except DomainException as e:
        raise to_http_exception(e)
    return EvidenceResponse.model_validate(artifact)


@router.get("/requests/{request_id}/evidence", response_model=List[EvidenceResponse])
def list_evidence(
    request_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    try:
        _ensure_can_view(_review_service(db), request_id, actor)
    except DomainException as e:
        raise to_http_exception(e)
    return [EvidenceResponse.model_validate(a) for a in EvidenceStore(db).list_for_request(request_id)]


@router.delete("/evidence/{artifact_id}", response_model=EvidenceResponse)
def void_evidence(
    artifact_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    if not actor.has_capability(Capability.REVIEWER):
        raise to_http_exception(Unauthorized("Capability 'reviewer' required"))
    try:
        artifact = EvidenceStore(db).void_evidence(artifact_id, actor.actor_id)
    except DomainException as e:
        raise to_http_exception(e)
    return EvidenceResponse.model_validate(artifact)
