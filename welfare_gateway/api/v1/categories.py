"""Funding category endpoints"""

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from welfare_gateway.api.dependencies import get_current_actor
from welfare_gateway.api.errors import to_http_exception
from welfare_gateway.api.v1.schemas import CategoryPolicyResponse
from welfare_gateway.domain.exceptions import DomainException
from welfare_gateway.domain.models import Actor
from welfare_gateway.infrastructure.database.session import get_db
from welfare_gateway.services.categories import CategoryDirectory

router = APIRouter()


def _to_response(policy) -> CategoryPolicyResponse:
    return CategoryPolicyResponse(
        category_id=policy.category_id,
        track=policy.track.value,
        max_amount=policy.max_amount,
        evidence_required=policy.evidence_required,
    )


@router.get("/categories", response_model=List[CategoryPolicyResponse])
def list_categories(db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)):
    """Active categories with their review track and limit"""
    return [_to_response(p) for p in CategoryDirectory(db).all_policies().values()]


@router.get("/categories/{category_id}", response_model=CategoryPolicyResponse)
def get_category(category_id: str, db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)):
    try:
        return _to_response(CategoryDirectory(db).resolve(category_id))
    except DomainException as e:
        raise to_http_exception(e)
