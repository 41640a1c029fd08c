"""Unit tests for signed actor tokens"""

import pytest
from jose import jwt
from welfare_gateway.config import settings
from welfare_gateway.domain.exceptions import Unauthorized
from welfare_gateway.domain.models import Capability
from welfare_gateway.infrastructure.auth.tokens import issue_token, require_capability, verify_token


def test_round_trip_preserves_subject_and_capabilities():
    token = issue_token("board-7", [Capability.BOARD, Capability.REVIEWER])
    actor = verify_token(token)

    assert actor.actor_id == "board-7"
    assert actor.capabilities == frozenset({Capability.BOARD, Capability.REVIEWER})


def test_expired_token_is_rejected():
    token = issue_token("reviewer-1", [Capability.REVIEWER], ttl_minutes=-1)
    with pytest.raises(Unauthorized):
        verify_token(token)


def test_token_signed_with_another_key_is_rejected():
    forged = jwt.encode({"sub": "mallory", "caps": ["fund_manager"]}, "not-the-key", algorithm="HS256")
    with pytest.raises(Unauthorized):
        verify_token(forged)


def test_unknown_capabilities_are_ignored():
    token = jwt.encode(
        {"sub": "student-9", "caps": ["requester", "superuser"]},
        settings.token_secret_key,
        algorithm=settings.token_algorithm,
    )
    actor = verify_token(token)
    assert actor.capabilities == frozenset({Capability.REQUESTER})


def test_token_without_subject_is_rejected():
    token = jwt.encode({"caps": ["reviewer"]}, settings.token_secret_key, algorithm=settings.token_algorithm)
    with pytest.raises(Unauthorized):
        verify_token(token)


def test_require_capability():
    actor = verify_token(issue_token("finance-1", [Capability.FUND_MANAGER]))
    assert require_capability(actor, Capability.FUND_MANAGER) is actor
    with pytest.raises(Unauthorized):
        require_capability(actor, Capability.BOARD)
