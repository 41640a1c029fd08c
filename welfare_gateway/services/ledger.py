"""Ledger store and balance materializer for the welfare fund"""

import logging
import time
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from welfare_gateway.domain.exceptions import InvalidLedgerEntry, NotFound
from welfare_gateway.domain.models import Direction
from welfare_gateway.infrastructure.database.models import FundBalance, LedgerEntry
from welfare_gateway.infrastructure.database.repositories import (
    BalanceRepository,
    LedgerRepository,
    RequestRepository,
)
from welfare_gateway.infrastructure.observability.logging import log_ledger_entry
from welfare_gateway.infrastructure.observability.metrics import (
    balance_drift_counter,
    balance_recompute_histogram,
    ledger_entry_counter,
    record_balance,
)
from welfare_gateway.utils.money import ZERO, to_money

logger = logging.getLogger(__name__)

MUTABLE_ENTRY_FIELDS = {"description", "remarks", "receipt_number", "metadata"}
FINANCIAL_ENTRY_FIELDS = {"amount", "direction", "category", "request_id"}


@dataclass
class BalanceSnapshot:
    current_balance: Decimal
    total_inflow: Decimal
    total_outflow: Decimal
    entry_count: int
    last_recomputed_at: Optional[datetime]
    last_actor_id: Optional[str]

    @classmethod
    def from_row(cls, row: FundBalance) -> "BalanceSnapshot":
        return cls(
            current_balance=to_money(row.current_balance),
            total_inflow=to_money(row.total_inflow),
            total_outflow=to_money(row.total_outflow),
            entry_count=row.entry_count,
            last_recomputed_at=row.last_recomputed_at,
            last_actor_id=row.last_actor_id,
        )


@dataclass
class ReconciliationReport:
    cached_balance: Optional[Decimal]
    aggregated_balance: Decimal
    drift: bool


@dataclass
class LedgerSummary:
    year: int
    month: Optional[int]
    total_inflow: Decimal
    total_outflow: Decimal
    net_flow: Decimal
    current_balance: Decimal
    monthly: List[Dict] = field(default_factory=list)
    by_category: List[Dict] = field(default_factory=list)


def parse_direction(raw) -> Direction:
    try:
        return Direction(raw)
    except ValueError as e:
        raise InvalidLedgerEntry(f"Direction must be inflow or outflow, got {raw!r}") from e


def signed(direction: str, amount: Decimal) -> Decimal:
    return amount if direction == Direction.INFLOW.value else -amount


class LedgerService:
    """Append-only fund ledger plus the materialized balance.

    The balance row is a cache: ``recompute_balance`` rebuilds it from a full
    aggregation while holding an exclusive lock on the row, so concurrent
    writers never lose an update.
    """

    def __init__(self, db: Session):
        self.db = db
        self.entries = LedgerRepository(db)
        self.balance = BalanceRepository(db)
        self.requests = RequestRepository(db)

    def advisory_balance_after(self, direction: Direction, amount: Decimal) -> Decimal:
        """Best-effort running balance for the entry snapshot; never authoritative"""
        row = self.balance.get()
        base = to_money(row.current_balance) if row is not None else ZERO
        return base + signed(direction.value, amount)

    def record_entry(
        self,
        direction,
        amount,
        category: str,
        actor_id: str,
        description: str,
        request_id: Optional[uuid.UUID] = None,
        remarks: Optional[str] = None,
        receipt_number: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> LedgerEntry:
        """Append one immutable entry, commit it, then recompute the balance.

        Raises:
            InvalidLedgerEntry: non-positive amount, bad direction, missing
                category, or a manual outflow against a request
            NotFound: referenced request does not exist
        """
        direction = parse_direction(direction)
        try:
            amount = to_money(amount)
        except ValueError as e:
            raise InvalidLedgerEntry(str(e)) from e
        if amount <= 0:
            raise InvalidLedgerEntry("Amount must be greater than zero")
        if not category or not category.strip():
            raise InvalidLedgerEntry("Category is required")
        if request_id is not None:
            if self.requests.get(request_id) is None:
                raise NotFound(f"Request {request_id} not found")
            if direction == Direction.OUTFLOW:
                raise InvalidLedgerEntry("Request disbursements are created only by approval finalization")

        try:
            entry = self.entries.append(
                direction=direction,
                amount=amount,
                category=category.strip(),
                actor_id=actor_id,
                description=description,
                balance_after=self.advisory_balance_after(direction, amount),
                request_id=request_id,
                remarks=remarks,
                receipt_number=receipt_number,
                metadata=metadata,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        ledger_entry_counter.labels(direction=direction.value).inc()
        log_ledger_entry(entry.id, direction.value, amount, entry.category, actor_id)
        self.recompute_balance(actor_id)
        return entry

    def recompute_balance(self, actor_id: str, _retry: bool = True) -> BalanceSnapshot:
        """Rebuild the balance from every ledger entry under the row lock.

        Idempotent: with no new entries the stored values do not change.
        """
        started = time.perf_counter()
        try:
            row = self.balance.lock()
            previous = to_money(row.current_balance) if row is not None else None
            total_inflow, total_outflow, count = self.entries.totals()
            current = total_inflow - total_outflow
            row = self.balance.upsert(row, current, total_inflow, total_outflow, count, actor_id)
            self.db.commit()
        except IntegrityError:
            # Two cold-start writers raced to insert the singleton row
            self.db.rollback()
            if not _retry:
                raise
            return self.recompute_balance(actor_id, _retry=False)
        except Exception:
            self.db.rollback()
            logger.exception("Failed to update fund balance")
            raise
        finally:
            balance_recompute_histogram.observe(time.perf_counter() - started)

        record_balance(current)
        logger.info(
            "Fund balance recomputed",
            extra={
                "previous_balance": str(previous) if previous is not None else None,
                "new_balance": str(current),
                "total_inflow": str(total_inflow),
                "total_outflow": str(total_outflow),
                "updated_by": actor_id,
            },
        )
        return BalanceSnapshot.from_row(row)

    def get_current_balance(self) -> BalanceSnapshot:
        """Last materialized balance.

        Recomputed when the row is missing (cold start) or when it was built
        from fewer entries than the ledger now holds, which happens when a
        recompute after a committed append failed.
        """
        row = self.balance.get()
        if row is None:
            return self.recompute_balance("system")
        if row.entry_count != self.entries.count():
            logger.warning(
                "Fund balance is stale, recomputing",
                extra={"cached_entry_count": row.entry_count},
            )
            return self.recompute_balance("system")
        return BalanceSnapshot.from_row(row)

    def aggregate_balance(self) -> Decimal:
        total_inflow, total_outflow, _ = self.entries.totals()
        return total_inflow - total_outflow

    def reconcile(self, actor_id: str = "system") -> ReconciliationReport:
        """Compare the cached balance with a full aggregation, repair on drift"""
        row = self.balance.get()
        cached = to_money(row.current_balance) if row is not None else None
        aggregated = self.aggregate_balance()
        self.db.commit()
        drift = cached != aggregated
        if drift:
            balance_drift_counter.inc()
            logger.warning(
                "Fund balance drift detected",
                extra={"cached_balance": str(cached), "aggregated_balance": str(aggregated)},
            )
            self.recompute_balance(actor_id)
        return ReconciliationReport(cached_balance=cached, aggregated_balance=aggregated, drift=drift)

    def get_entry(self, entry_id: str) -> LedgerEntry:
        entry = self.entries.get(entry_id)
        if entry is None:
            raise NotFound(f"Ledger entry {entry_id} not found")
        return entry

    def list_entries(
        self,
        direction=None,
        category: Optional[str] = None,
        request_id: Optional[uuid.UUID] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[LedgerEntry], int]:
        if direction is not None:
            direction = parse_direction(direction)
        return self.entries.list(direction, category, request_id, start, end, limit, offset)

    def update_entry(self, entry_id: str, actor_id: str, **changes) -> LedgerEntry:
        """Edit descriptive metadata of an entry.

        Raises:
            InvalidLedgerEntry: when a financial or unknown field is touched
        """
        forbidden = set(changes) & FINANCIAL_ENTRY_FIELDS
        if forbidden:
            raise InvalidLedgerEntry(f"Financial fields are immutable: {', '.join(sorted(forbidden))}")
        unknown = set(changes) - MUTABLE_ENTRY_FIELDS
        if unknown:
            raise InvalidLedgerEntry(f"Unknown ledger fields: {', '.join(sorted(unknown))}")

        entry = self.get_entry(entry_id)
        for name, value in changes.items():
            setattr(entry, "extra" if name == "metadata" else name, value)
        self.db.commit()
        logger.info("Ledger entry metadata updated", extra={"entry_id": entry_id, "actor_id": actor_id})
        return entry

    def summary(self, year: int, month: Optional[int] = None) -> LedgerSummary:
        """Totals, monthly and per-category breakdown for a year (or one month)"""
        if month is not None and not 1 <= month <= 12:
            raise InvalidLedgerEntry("Month must be between 1 and 12")
        start = datetime(year, month or 1, 1, tzinfo=timezone.utc)
        if month is None or month == 12:
            end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
        else:
            end = datetime(year, month + 1, 1, tzinfo=timezone.utc)

        entries, _ = self.entries.list(start=start, end=end, limit=None)

        totals = {Direction.INFLOW.value: ZERO, Direction.OUTFLOW.value: ZERO}
        monthly: Dict[int, Dict] = defaultdict(
            lambda: {"total_inflow": ZERO, "total_outflow": ZERO, "transaction_count": 0}
        )
        by_category: Dict[Tuple[str, str], Dict] = defaultdict(
            lambda: {"total_amount": ZERO, "transaction_count": 0}
        )
        for entry in entries:
            amount = to_money(entry.amount)
            totals[entry.direction] += amount
            bucket = monthly[entry.created_at.month]
            bucket[f"total_{entry.direction}"] += amount
            bucket["transaction_count"] += 1
            cat = by_category[(entry.category, entry.direction)]
            cat["total_amount"] += amount
            cat["transaction_count"] += 1

        return LedgerSummary(
            year=year,
            month=month,
            total_inflow=totals[Direction.INFLOW.value],
            total_outflow=totals[Direction.OUTFLOW.value],
            net_flow=totals[Direction.INFLOW.value] - totals[Direction.OUTFLOW.value],
            current_balance=self.get_current_balance().current_balance,
            monthly=[{"month": m, **stats} for m, stats in sorted(monthly.items())],
            by_category=sorted(
                ({"category": c, "direction": d, **stats} for (c, d), stats in by_category.items()),
                key=lambda item: item["total_amount"],
                reverse=True,
            ),
        )
