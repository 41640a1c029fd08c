"""Mapping of domain failures to HTTP responses"""

from fastapi import HTTPException

from welfare_gateway.domain.exceptions import (
    AlreadyDecided,
    AmountExceedsLimit,
    DomainException,
    FinalizationFailed,
    InvalidAmount,
    InvalidLedgerEntry,
    InvalidStateTransition,
    MissingEvidence,
    MissingRemark,
    NotFound,
    Unauthorized,
)

STATUS_BY_KIND = {
    Unauthorized: 401,
    NotFound: 404,
    InvalidStateTransition: 409,
    AlreadyDecided: 409,
    AmountExceedsLimit: 422,
    InvalidAmount: 422,
    MissingEvidence: 422,
    MissingRemark: 422,
    InvalidLedgerEntry: 422,
    FinalizationFailed: 500,
}


def to_http_exception(error: DomainException) -> HTTPException:
    """Structured rejection: error kind plus remark, no internals"""
    status_code = STATUS_BY_KIND.get(type(error), 400)
    return HTTPException(status_code=status_code, detail=error.to_dict())


def internal_error() -> HTTPException:
    return HTTPException(
        status_code=500,
        detail={"error": "InternalError", "remark": "Internal server error"},
    )
