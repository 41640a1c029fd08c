"""Data access layer for requests, audit trail, receipts and the fund ledger

Repositories flush but never commit; the service owning the unit of work
decides when to commit or roll back.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from welfare_gateway.domain.models import ArtifactStatus, Direction, RequestState
from welfare_gateway.infrastructure.database.models import (
    AidRequest,
    EvidenceArtifact,
    FundBalance,
    FundingCategory,
    LedgerEntry,
    StatusLogEntry,
)
from welfare_gateway.utils.money import to_money

BALANCE_ROW_ID = 1


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _short_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12].upper()}"


class CategoryRepository:
    """Read access to funding categories"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, category_id: str) -> Optional[FundingCategory]:
        return self.db.get(FundingCategory, category_id)

    def list_active(self) -> List[FundingCategory]:
        return (
            self.db.query(FundingCategory)
            .filter(FundingCategory.is_active.is_(True))
            .order_by(FundingCategory.category_id)
            .all()
        )


class RequestRepository:
    """Repository for aid requests"""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        requester_id: str,
        category_id: str,
        track: str,
        requested_amount: Decimal,
        justification: str,
    ) -> AidRequest:
        request = AidRequest(
            requester_id=requester_id,
            category_id=category_id,
            track=track,
            requested_amount=requested_amount,
            justification=justification,
            state=RequestState.SUBMITTED.value,
            version=0,
        )
        self.db.add(request)
        self.db.flush()
        return request

    def get(self, request_id: uuid.UUID) -> Optional[AidRequest]:
        return self.db.get(AidRequest, request_id)

    def list(
        self,
        state: Optional[RequestState] = None,
        track: Optional[str] = None,
        category_id: Optional[str] = None,
        include_inactive: bool = False,
        limit: Optional[int] = 100,
    ) -> List[AidRequest]:
        query = self.db.query(AidRequest)
        if state is not None:
            query = query.filter(AidRequest.state == state.value)
        if track is not None:
            query = query.filter(AidRequest.track == track)
        if category_id is not None:
            query = query.filter(AidRequest.category_id == category_id)
        if not include_inactive:
            query = query.filter(AidRequest.is_active.is_(True))
        return query.order_by(AidRequest.updated_at.desc()).limit(limit).all()

    def state_totals(self, track: Optional[str] = None) -> List[Tuple[str, int, Decimal, Decimal]]:
        """Per-state (state, count, approved total, board total) over active requests"""
        query = self.db.query(
            AidRequest.state,
            func.count(AidRequest.id),
            func.coalesce(func.sum(AidRequest.approved_amount), 0),
            func.coalesce(func.sum(AidRequest.board_amount), 0),
        ).filter(AidRequest.is_active.is_(True))
        if track is not None:
            query = query.filter(AidRequest.track == track)
        rows = query.group_by(AidRequest.state).all()
        return [(state, int(count), to_money(approved), to_money(board)) for state, count, approved, board in rows]

    def compare_and_set_state(
        self,
        request_id: uuid.UUID,
        expected_state: RequestState,
        expected_version: int,
        new_state: RequestState,
        approved_amount: Optional[Decimal],
        board_amount: Optional[Decimal],
    ) -> bool:
        """Move the request to ``new_state`` only if nobody else did first.

        Returns:
            False when the (state, version) pair no longer matches
        """
        updated = (
            self.db.query(AidRequest)
            .filter(
                AidRequest.id == request_id,
                AidRequest.state == expected_state.value,
                AidRequest.version == expected_version,
            )
            .update(
                {
                    AidRequest.state: new_state.value,
                    AidRequest.version: AidRequest.version + 1,
                    AidRequest.approved_amount: approved_amount,
                    AidRequest.board_amount: board_amount,
                    AidRequest.updated_at: _now(),
                },
                synchronize_session=False,
            )
        )
        return updated == 1

    def update_fields(self, request: AidRequest, **fields) -> AidRequest:
        for name, value in fields.items():
            setattr(request, name, value)
        request.updated_at = _now()
        self.db.flush()
        return request


class StatusLogRepository:
    """Append-only audit trail"""

    def __init__(self, db: Session):
        self.db = db

    def append(
        self,
        request_id: uuid.UUID,
        sequence: int,
        previous_state: RequestState,
        new_state: RequestState,
        actor_id: str,
        remark: Optional[str],
    ) -> StatusLogEntry:
        entry = StatusLogEntry(
            request_id=request_id,
            sequence=sequence,
            previous_state=previous_state.value,
            new_state=new_state.value,
            actor_id=actor_id,
            remark=remark,
            created_at=_now(),
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def list_for_request(self, request_id: uuid.UUID) -> List[StatusLogEntry]:
        return (
            self.db.query(StatusLogEntry)
            .filter(StatusLogEntry.request_id == request_id)
            .order_by(StatusLogEntry.sequence.asc())
            .all()
        )


class EvidenceRepository:
    """Receipt metadata; never touches file bytes"""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        request_id: uuid.UUID,
        uploader_id: str,
        locator: str,
        declared_amount: Optional[Decimal] = None,
    ) -> EvidenceArtifact:
        artifact = EvidenceArtifact(
            id=_short_id("RCP"),
            request_id=request_id,
            uploader_id=uploader_id,
            locator=locator,
            declared_amount=declared_amount,
            status=ArtifactStatus.ACTIVE.value,
            uploaded_at=_now(),
        )
        self.db.add(artifact)
        self.db.flush()
        return artifact

    def get(self, artifact_id: str) -> Optional[EvidenceArtifact]:
        return self.db.get(EvidenceArtifact, artifact_id)

    def list_for_request(self, request_id: uuid.UUID) -> List[EvidenceArtifact]:
        return (
            self.db.query(EvidenceArtifact)
            .filter(EvidenceArtifact.request_id == request_id)
            .order_by(EvidenceArtifact.uploaded_at.asc())
            .all()
        )

    def count_active(self, request_id: uuid.UUID) -> int:
        return (
            self.db.query(func.count(EvidenceArtifact.id))
            .filter(
                EvidenceArtifact.request_id == request_id,
                EvidenceArtifact.status == ArtifactStatus.ACTIVE.value,
            )
            .scalar()
        )


class LedgerRepository:
    """Append-only store of fund movements"""

    def __init__(self, db: Session):
        self.db = db

    def append(
        self,
        direction: Direction,
        amount: Decimal,
        category: str,
        actor_id: str,
        description: str,
        balance_after: Decimal,
        request_id: Optional[uuid.UUID] = None,
        disbursement_for: Optional[uuid.UUID] = None,
        remarks: Optional[str] = None,
        receipt_number: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> LedgerEntry:
        now = _now()
        entry = LedgerEntry(
            id=f"TXN-{now:%Y%m%d}-{uuid.uuid4().hex[:12].upper()}",
            direction=direction.value,
            amount=amount,
            category=category,
            request_id=request_id,
            disbursement_for=disbursement_for,
            actor_id=actor_id,
            description=description,
            remarks=remarks,
            receipt_number=receipt_number,
            extra=metadata,
            balance_after=balance_after,
            created_at=now,
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def get(self, entry_id: str) -> Optional[LedgerEntry]:
        return self.db.get(LedgerEntry, entry_id)

    def find_disbursement(self, request_id: uuid.UUID) -> Optional[LedgerEntry]:
        return (
            self.db.query(LedgerEntry)
            .filter(LedgerEntry.disbursement_for == request_id)
            .first()
        )

    def count(self) -> int:
        return self.db.query(func.count(LedgerEntry.id)).scalar()

    def count_outflows_for_request(self, request_id: uuid.UUID) -> int:
        return (
            self.db.query(func.count(LedgerEntry.id))
            .filter(
                LedgerEntry.request_id == request_id,
                LedgerEntry.direction == Direction.OUTFLOW.value,
            )
            .scalar()
        )

    def list(
        self,
        direction: Optional[Direction] = None,
        category: Optional[str] = None,
        request_id: Optional[uuid.UUID] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[LedgerEntry], int]:
        query = self.db.query(LedgerEntry)
        if direction is not None:
            query = query.filter(LedgerEntry.direction == direction.value)
        if category is not None:
            query = query.filter(LedgerEntry.category == category)
        if request_id is not None:
            query = query.filter(LedgerEntry.request_id == request_id)
        if start is not None:
            query = query.filter(LedgerEntry.created_at >= start)
        if end is not None:
            query = query.filter(LedgerEntry.created_at < end)
        total = query.count()
        entries = (
            query.order_by(LedgerEntry.created_at.desc(), LedgerEntry.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return entries, total

    def totals(self) -> Tuple[Decimal, Decimal, int]:
        """Full aggregation: (total inflow, total outflow, entry count)"""
        inflow, outflow, count = self.db.query(
            func.coalesce(
                func.sum(case((LedgerEntry.direction == Direction.INFLOW.value, LedgerEntry.amount), else_=0)), 0
            ),
            func.coalesce(
                func.sum(case((LedgerEntry.direction == Direction.OUTFLOW.value, LedgerEntry.amount), else_=0)), 0
            ),
            func.count(LedgerEntry.id),
        ).one()
        return to_money(inflow), to_money(outflow), int(count)


class BalanceRepository:
    """The singleton balance row"""

    def __init__(self, db: Session):
        self.db = db

    def get(self) -> Optional[FundBalance]:
        return self.db.query(FundBalance).filter(FundBalance.id == BALANCE_ROW_ID).first()

    def lock(self) -> Optional[FundBalance]:
        """Read the balance row holding an exclusive row lock until commit"""
        return (
            self.db.query(FundBalance)
            .filter(FundBalance.id == BALANCE_ROW_ID)
            .with_for_update()
            .populate_existing()
            .first()
        )

    def upsert(
        self,
        row: Optional[FundBalance],
        current_balance: Decimal,
        total_inflow: Decimal,
        total_outflow: Decimal,
        entry_count: int,
        actor_id: str,
    ) -> FundBalance:
        if row is None:
            row = FundBalance(id=BALANCE_ROW_ID)
            self.db.add(row)
        row.current_balance = current_balance
        row.total_inflow = total_inflow
        row.total_outflow = total_outflow
        row.entry_count = entry_count
        row.last_recomputed_at = _now()
        row.last_actor_id = actor_id
        self.db.flush()
        return row
