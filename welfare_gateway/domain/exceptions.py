"""Domain-specific exceptions

Every failure carries a discriminated ``kind`` and a human-readable remark.
"""


class DomainException(Exception):
    """Base exception for domain layer"""

    kind = "DomainError"

    def __init__(self, remark: str):
        super().__init__(remark)
        self.remark = remark

    def to_dict(self) -> dict:
        return {"error": self.kind, "remark": self.remark}


class Unauthorized(DomainException):
    """Actor lacks the capability required for the request's current state"""

    kind = "Unauthorized"


class NotFound(DomainException):
    """Unknown request, ledger entry, category or artifact"""

    kind = "NotFound"


class InvalidStateTransition(DomainException):
    """Terminal-state or wrong-track attempt"""

    kind = "InvalidStateTransition"


class AmountExceedsLimit(DomainException):
    """Approved amount is above the category maximum"""

    kind = "AmountExceedsLimit"


class InvalidAmount(DomainException):
    """Amount missing, non-positive or not a number"""

    kind = "InvalidAmount"


class MissingEvidence(DomainException):
    """No active evidentiary artifact backs the approval"""

    kind = "MissingEvidence"


class MissingRemark(DomainException):
    """Rejection remark absent or too short"""

    kind = "MissingRemark"


class AlreadyDecided(DomainException):
    """A concurrent decision already changed the request"""

    kind = "AlreadyDecided"


class FinalizationFailed(DomainException):
    """Ledger write failed; the state transition must not persist"""

    kind = "FinalizationFailed"


class InvalidLedgerEntry(DomainException):
    """Ledger entry input is malformed or touches immutable financial fields"""

    kind = "InvalidLedgerEntry"
