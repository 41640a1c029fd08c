"""Tests for category routing"""

import pytest
from decimal import Decimal
from welfare_gateway.domain.exceptions import NotFound
from welfare_gateway.domain.models import Track
from welfare_gateway.infrastructure.database.models import FundingCategory
from welfare_gateway.services.categories import CategoryDirectory

pytestmark = pytest.mark.integration


def test_board_required_set(db):
    directory = CategoryDirectory(db)

    assert directory.is_board_required("CAT-ILLNESS-INPATIENT")
    assert directory.is_board_required("CAT-EMERGENCY-OTHERS")
    assert not directory.is_board_required("CAT-BEREAVEMENT")
    assert directory.max_amount("CAT-BEREAVEMENT") == Decimal("500.00")

    policies = directory.all_policies()
    assert {cid for cid, p in policies.items() if p.track == Track.BOARD} == {
        "CAT-ILLNESS-INPATIENT",
        "CAT-EMERGENCY-OTHERS",
    }


def test_deactivated_category_is_not_found(db):
    db.get(FundingCategory, "CAT-EMERGENCY-NATURAL").is_active = False
    db.commit()

    directory = CategoryDirectory(db)
    with pytest.raises(NotFound):
        directory.resolve("CAT-EMERGENCY-NATURAL")
    assert "CAT-EMERGENCY-NATURAL" not in directory.all_policies()


def test_policy_changes_apply_to_the_next_lookup(db):
    """Limits are read on every call, not cached"""
    directory = CategoryDirectory(db)
    assert directory.max_amount("CAT-EMERGENCY-FAMILY") == Decimal("3000.00")

    db.get(FundingCategory, "CAT-EMERGENCY-FAMILY").max_amount = Decimal("3500.00")
    db.commit()

    assert directory.max_amount("CAT-EMERGENCY-FAMILY") == Decimal("3500.00")


def test_categories_endpoint(client, auth_headers, student):
    response = client.get("/v1/categories", headers=auth_headers(student))
    assert response.status_code == 200
    tracks = {c["category_id"]: c["track"] for c in response.json()}
    assert tracks["CAT-ILLNESS-INPATIENT"] == "board"
    assert tracks["CAT-BEREAVEMENT"] == "fast"

    response = client.get("/v1/categories/CAT-UNKNOWN", headers=auth_headers(student))
    assert response.status_code == 404
