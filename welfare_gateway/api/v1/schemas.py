"""Pydantic schemas for API request/response validation"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class SubmitRequestBody(BaseModel):
    """Request body for POST /v1/requests"""

    category_id: str = Field(..., min_length=1)
    requested_amount: Decimal = Field(..., ge=0, description="Requested amount in RM")
    justification: str = Field("", max_length=2000)


class DecisionBody(BaseModel):
    """Request body for POST /v1/requests/{id}/decision"""

    decision: Literal["approve", "reject"]
    amount: Optional[Decimal] = None
    evidence_id: Optional[str] = None
    remark: Optional[str] = Field(None, max_length=1000)


class JustificationBody(BaseModel):
    justification: str = Field(..., max_length=2000)


class EvidenceBody(BaseModel):
    """Request body for POST /v1/requests/{id}/evidence"""

    locator: str = Field(..., min_length=1, description="Document store reference")
    declared_amount: Optional[Decimal] = Field(None, ge=0)


class RequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    requester_id: str
    category_id: str
    track: str
    state: str
    requested_amount: Decimal
    approved_amount: Optional[Decimal] = None
    board_amount: Optional[Decimal] = None
    justification: str
    version: int
    is_active: bool
    created_at: datetime
    updated_at: datetime


class StatusLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    sequence: int
    previous_state: str
    new_state: str
    actor_id: str
    remark: Optional[str] = None
    created_at: datetime


class EvidenceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    request_id: UUID
    uploader_id: str
    locator: str
    declared_amount: Optional[Decimal] = None
    status: str
    uploaded_at: datetime


class LedgerEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    direction: str
    amount: Decimal
    category: str
    request_id: Optional[UUID] = None
    actor_id: str
    description: str
    remarks: Optional[str] = None
    receipt_number: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = Field(None, validation_alias=AliasChoices("extra", "metadata"))
    balance_after: Decimal
    created_at: datetime


class BalanceResponse(BaseModel):
    current_balance: Decimal
    total_inflow: Decimal
    total_outflow: Decimal
    entry_count: int
    last_recomputed_at: Optional[datetime] = None
    last_actor_id: Optional[str] = None


class DecisionResponse(BaseModel):
    """Response for POST /v1/requests/{id}/decision"""

    request: RequestResponse
    status_log: StatusLogResponse
    ledger_entry: Optional[LedgerEntryResponse] = None
    balance: Optional[BalanceResponse] = None


class ConsistencyResponse(BaseModel):
    request_id: UUID
    state: str
    version: int
    log_count: int
    last_logged_state: Optional[str] = None
    outflow_count: int
    consistent: bool


class StatisticsResponse(BaseModel):
    """Response for GET /v1/requests/statistics"""

    total: int
    by_state: Dict[str, int]
    pending: int
    completed: int
    rejected: int
    need_receipt: int
    approved_amount_total: Decimal
    board_amount_total: Decimal


class RecordEntryBody(BaseModel):
    """Request body for POST /v1/ledger/entries"""

    direction: Literal["inflow", "outflow"]
    amount: Decimal = Field(..., gt=0)
    category: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1, max_length=500)
    request_id: Optional[UUID] = None
    remarks: Optional[str] = Field(None, max_length=1000)
    receipt_number: Optional[str] = Field(None, max_length=255)
    metadata: Optional[Dict[str, Any]] = None


class UpdateEntryBody(BaseModel):
    """Only descriptive fields; extra keys are passed through and rejected"""

    model_config = ConfigDict(extra="allow")

    description: Optional[str] = Field(None, max_length=500)
    remarks: Optional[str] = Field(None, max_length=1000)
    receipt_number: Optional[str] = Field(None, max_length=255)
    metadata: Optional[Dict[str, Any]] = None


class LedgerPageResponse(BaseModel):
    entries: List[LedgerEntryResponse]
    total: int
    limit: int
    offset: int


class SummaryResponse(BaseModel):
    year: int
    month: Optional[int] = None
    total_inflow: Decimal
    total_outflow: Decimal
    net_flow: Decimal
    current_balance: Decimal
    monthly: List[Dict[str, Any]]
    by_category: List[Dict[str, Any]]


class ReconciliationResponse(BaseModel):
    cached_balance: Optional[Decimal] = None
    aggregated_balance: Decimal
    drift: bool


class CategoryPolicyResponse(BaseModel):
    category_id: str
    track: str
    max_amount: Optional[Decimal] = None
    evidence_required: bool
