"""Schema creation and default funding categories"""

from decimal import Decimal

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from welfare_gateway.infrastructure.database.models import Base, FundBalance, FundingCategory
from welfare_gateway.infrastructure.database.repositories import BALANCE_ROW_ID

DEFAULT_CATEGORIES = [
    # (category_id, name, max_amount, requires_board_approval)
    ("CAT-ILLNESS-INPATIENT", "Medical Treatment (Inpatient)", Decimal("10000.00"), True),
    ("CAT-ILLNESS-OUTPATIENT", "Medical Treatment (Outpatient)", Decimal("2000.00"), False),
    ("CAT-ILLNESS-CHRONIC", "Chronic Illness Treatment", Decimal("8000.00"), False),
    ("CAT-EMERGENCY-NATURAL", "Natural Disaster", Decimal("4000.00"), False),
    ("CAT-EMERGENCY-FAMILY", "Family Emergency", Decimal("3000.00"), False),
    ("CAT-EMERGENCY-OTHERS", "Other Emergencies", Decimal("2000.00"), True),
    ("CAT-BEREAVEMENT", "Bereavement (Khairat)", Decimal("500.00"), False),
]


def init_db(engine: Engine) -> None:
    Base.metadata.create_all(bind=engine)


def seed_defaults(db: Session) -> None:
    """Insert missing default categories and the balance singleton"""
    for category_id, name, max_amount, board in DEFAULT_CATEGORIES:
        if db.get(FundingCategory, category_id) is None:
            db.add(
                FundingCategory(
                    category_id=category_id,
                    name=name,
                    max_amount=max_amount,
                    requires_board_approval=board,
                    evidence_required=True,
                    is_active=True,
                )
            )
    if db.get(FundBalance, BALANCE_ROW_ID) is None:
        db.add(FundBalance(id=BALANCE_ROW_ID, current_balance=0, total_inflow=0, total_outflow=0, entry_count=0))
    db.commit()
