"""Category directory - resolves a category to its review policy"""

from decimal import Decimal
from typing import Dict, Optional

from sqlalchemy.orm import Session

from welfare_gateway.domain.exceptions import NotFound
from welfare_gateway.domain.models import CategoryPolicy, Track
from welfare_gateway.infrastructure.database.repositories import CategoryRepository
from welfare_gateway.utils.money import to_money


class CategoryDirectory:
    """Closed table mapping category -> {track, max amount, evidence required}.

    Policies are resolved per call from the category table, so configuration
    changes apply to the next transition attempt.
    """

    def __init__(self, db: Session):
        self.categories = CategoryRepository(db)

    def resolve(self, category_id: str) -> CategoryPolicy:
        """Raises NotFound for unknown or deactivated categories"""
        category = self.categories.get(category_id)
        if category is None or not category.is_active:
            raise NotFound(f"Category {category_id} not found")
        return CategoryPolicy(
            category_id=category.category_id,
            track=Track.BOARD if category.requires_board_approval else Track.FAST,
            max_amount=to_money(category.max_amount) if category.max_amount is not None else None,
            evidence_required=category.evidence_required,
        )

    def is_board_required(self, category_id: str) -> bool:
        return self.resolve(category_id).track == Track.BOARD

    def max_amount(self, category_id: str) -> Optional[Decimal]:
        return self.resolve(category_id).max_amount

    def all_policies(self) -> Dict[str, CategoryPolicy]:
        return {c.category_id: self.resolve(c.category_id) for c in self.categories.list_active()}
