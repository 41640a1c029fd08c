import pytest
from decimal import Decimal
from welfare_gateway.domain.models import RequestState
from welfare_gateway.utils.money import format_rm, to_money


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("submitted", RequestState.SUBMITTED),
        ("SUBMITTED", RequestState.SUBMITTED),
        ("boardReviewed", RequestState.BOARD_REVIEWED),
        ("committee_approved", RequestState.BOARD_REVIEWED),
        ("admin_approved", RequestState.APPROVED),
        ("REJECTED", RequestState.REJECTED),
        ("committee-rejected", RequestState.REJECTED),
    ],
)
def test_legacy_state_spellings_normalize(raw, expected):
    assert RequestState.parse(raw) == expected


def test_unknown_state_is_an_error():
    with pytest.raises(ValueError):
        RequestState.parse("escalated")


def test_terminal_states():
    assert RequestState.APPROVED.is_terminal
    assert RequestState.REJECTED.is_terminal
    assert not RequestState.SUBMITTED.is_terminal
    assert not RequestState.BOARD_REVIEWED.is_terminal


def test_to_money_quantizes_to_cents():
    assert to_money("12.345") == Decimal("12.34")
    assert to_money(100) == Decimal("100.00")
    assert to_money(0.1 + 0.2) == Decimal("0.30")
    assert to_money(None) == Decimal("0.00")


@pytest.mark.parametrize("raw", ["ten ringgit", "NaN", "sNaN", "Infinity", "-Infinity", float("nan"), Decimal("Inf")])
def test_to_money_rejects_garbage(raw):
    with pytest.raises(ValueError):
        to_money(raw)


def test_format_rm():
    assert format_rm(Decimal("1234.5")) == "RM1,234.50"
