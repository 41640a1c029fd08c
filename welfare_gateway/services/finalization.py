"""Finalization coordinator - ties an approval to exactly one fund outflow"""

import logging
from decimal import Decimal

from sqlalchemy.orm import Session

from welfare_gateway.config import settings
from welfare_gateway.domain.exceptions import FinalizationFailed
from welfare_gateway.domain.models import Direction
from welfare_gateway.infrastructure.database.models import AidRequest, LedgerEntry
from welfare_gateway.infrastructure.database.repositories import LedgerRepository
from welfare_gateway.infrastructure.observability.metrics import (
    finalization_failure_counter,
    ledger_entry_counter,
)
from welfare_gateway.services.ledger import BalanceSnapshot, LedgerService
from welfare_gateway.utils.money import to_money

logger = logging.getLogger(__name__)


class FinalizationCoordinator:
    """Creates the disbursement outflow inside the caller's transaction.

    ``finalize`` never commits: the caller commits the state change, the audit
    entry and the outflow together, or rolls all of them back when
    FinalizationFailed is raised. ``settle`` recomputes the balance afterwards
    in its own transaction.
    """

    def __init__(self, db: Session):
        self.db = db
        self.entries = LedgerRepository(db)
        self.ledger = LedgerService(db)

    def finalize(self, request: AidRequest, approved_amount: Decimal, actor_id: str) -> LedgerEntry:
        """Return the request's disbursement outflow, creating it at most once.

        Raises:
            FinalizationFailed: the outflow could not be written
        """
        try:
            existing = self.entries.find_disbursement(request.id)
            if existing is not None:
                logger.info(
                    "Disbursement already recorded",
                    extra={"request_id": str(request.id), "entry_id": existing.id},
                )
                return existing

            amount = to_money(approved_amount)
            entry = self.entries.append(
                direction=Direction.OUTFLOW,
                amount=amount,
                category=settings.disbursement_category,
                actor_id=actor_id,
                description=f"Approved student aid disbursement for request {request.id}",
                balance_after=self.ledger.advisory_balance_after(Direction.OUTFLOW, amount),
                request_id=request.id,
                disbursement_for=request.id,
                remarks=f"Auto-generated transaction for approved request {request.id}",
                metadata={"requester_id": request.requester_id, "category_id": request.category_id},
            )
        except Exception as e:
            finalization_failure_counter.inc()
            logger.error(
                f"Failed to create disbursement for request {request.id}: {e}",
                extra={"request_id": str(request.id)},
            )
            raise FinalizationFailed("The disbursement could not be recorded; the approval was not saved") from e

        ledger_entry_counter.labels(direction=Direction.OUTFLOW.value).inc()
        return entry

    def settle(self, actor_id: str) -> BalanceSnapshot | None:
        """Recompute the balance after the approval committed.

        A failure leaves a stale cache for get_current_balance/reconcile to
        heal; the ledger entry itself is already durable.
        """
        try:
            return self.ledger.recompute_balance(actor_id)
        except Exception as e:
            logger.warning(f"Balance recomputation deferred: {e}", extra={"actor_id": actor_id})
            return None
