"""Welfare fund ledger endpoints - balance, entries, summary and reconciliation"""

import uuid
from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from welfare_gateway.api.dependencies import get_current_actor
from welfare_gateway.api.errors import to_http_exception
from welfare_gateway.api.v1.schemas import (
    BalanceResponse,
    LedgerEntryResponse,
    LedgerPageResponse,
    ReconciliationResponse,
    RecordEntryBody,
    SummaryResponse,
    UpdateEntryBody,
)
from welfare_gateway.domain.exceptions import DomainException
from welfare_gateway.domain.models import Actor, Capability
from welfare_gateway.infrastructure.auth.tokens import require_capability
from welfare_gateway.infrastructure.database.session import get_db
from welfare_gateway.services.ledger import LedgerService

router = APIRouter()


@router.get("/ledger/balance", response_model=BalanceResponse)
def get_balance(db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)):
    """Current welfare fund balance (recomputed once if never materialized)"""
    return BalanceResponse(**vars(LedgerService(db).get_current_balance()))


@router.get("/ledger/entries", response_model=LedgerPageResponse)
def list_entries(
    direction: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    request_id: Optional[uuid.UUID] = Query(None),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    try:
        entries, total = LedgerService(db).list_entries(direction, category, request_id, start, end, limit, offset)
    except DomainException as e:
        raise to_http_exception(e)
    return LedgerPageResponse(
        entries=[LedgerEntryResponse.model_validate(e) for e in entries],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post("/ledger/entries", response_model=LedgerEntryResponse, status_code=201)
def record_entry(
    body: RecordEntryBody,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Manual inflow (donations, allocations) or non-request outflow"""
    try:
        require_capability(actor, Capability.FUND_MANAGER)
        entry = LedgerService(db).record_entry(
            direction=body.direction,
            amount=body.amount,
            category=body.category,
            actor_id=actor.actor_id,
            description=body.description,
            request_id=body.request_id,
            remarks=body.remarks,
            receipt_number=body.receipt_number,
            metadata=body.metadata,
        )
    except DomainException as e:
        raise to_http_exception(e)
    return LedgerEntryResponse.model_validate(entry)


@router.get("/ledger/entries/{entry_id}", response_model=LedgerEntryResponse)
def get_entry(entry_id: str, db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)):
    try:
        return LedgerEntryResponse.model_validate(LedgerService(db).get_entry(entry_id))
    except DomainException as e:
        raise to_http_exception(e)


@router.patch("/ledger/entries/{entry_id}", response_model=LedgerEntryResponse)
def update_entry(
    entry_id: str,
    body: UpdateEntryBody,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Edit descriptive fields; amount, direction, category and request are immutable"""
    try:
        require_capability(actor, Capability.FUND_MANAGER)
        changes = body.model_dump(exclude_unset=True)
        changes.update(body.model_extra or {})
        entry = LedgerService(db).update_entry(entry_id, actor.actor_id, **changes)
    except DomainException as e:
        raise to_http_exception(e)
    return LedgerEntryResponse.model_validate(entry)


@router.get("/ledger/summary", response_model=SummaryResponse)
def get_summary(
    year: Optional[int] = Query(None),
    month: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    try:
        summary = LedgerService(db).summary(year or date.today().year, month)
    except DomainException as e:
        raise to_http_exception(e)
    return SummaryResponse(**vars(summary))


@router.post("/ledger/reconcile", response_model=ReconciliationResponse)
def reconcile(db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)):
    """Re-verify the cached balance against a full aggregation"""
    try:
        require_capability(actor, Capability.FUND_MANAGER)
    except DomainException as e:
        raise to_http_exception(e)
    return ReconciliationResponse(**vars(LedgerService(db).reconcile(actor.actor_id)))
