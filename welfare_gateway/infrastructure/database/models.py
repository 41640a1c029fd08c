"""SQLAlchemy ORM models for requests, audit trail, receipts and the fund ledger"""

import uuid
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()

MONEY = Numeric(15, 2)


class FundingCategory(Base):
    """Category master data read by the category directory"""

    __tablename__ = "funding_category"

    category_id = Column(String(64), primary_key=True)
    name = Column(Text, nullable=False, unique=True)
    max_amount = Column(MONEY, nullable=True)  # null = uncapped
    requires_board_approval = Column(Boolean, nullable=False, default=False)
    evidence_required = Column(Boolean, nullable=False, default=True)
    is_active = Column(Boolean, nullable=False, default=True)


class AidRequest(Base):
    """One financial-aid application"""

    __tablename__ = "aid_request"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    requester_id = Column(Text, nullable=False, index=True)
    category_id = Column(String(64), ForeignKey("funding_category.category_id"), nullable=False)
    track = Column(String(16), nullable=False)
    requested_amount = Column(MONEY, nullable=False)
    approved_amount = Column(MONEY, nullable=True)
    board_amount = Column(MONEY, nullable=True)
    state = Column(String(32), nullable=False, default="submitted", index=True)
    justification = Column(Text, nullable=False, default="")
    version = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    status_logs = relationship("StatusLogEntry", back_populates="request", order_by="StatusLogEntry.sequence")
    artifacts = relationship("EvidenceArtifact", back_populates="request")


class StatusLogEntry(Base):
    """Immutable audit record, one per accepted transition"""

    __tablename__ = "status_log_entry"

    request_id = Column(Uuid, ForeignKey("aid_request.id"), primary_key=True)
    sequence = Column(Integer, primary_key=True)  # == request version after the transition
    previous_state = Column(String(32), nullable=False)
    new_state = Column(String(32), nullable=False)
    actor_id = Column(Text, nullable=False)
    remark = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    request = relationship("AidRequest", back_populates="status_logs")


class EvidenceArtifact(Base):
    """Proof-of-disbursement receipt; bytes live in the document store"""

    __tablename__ = "evidence_artifact"

    id = Column(String(32), primary_key=True)
    request_id = Column(Uuid, ForeignKey("aid_request.id"), nullable=False, index=True)
    uploader_id = Column(Text, nullable=False)
    locator = Column(Text, nullable=False)
    declared_amount = Column(MONEY, nullable=True)
    status = Column(String(16), nullable=False, default="active")
    uploaded_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    request = relationship("AidRequest", back_populates="artifacts")


class LedgerEntry(Base):
    """One signed movement of the welfare fund; financial fields never change"""

    __tablename__ = "ledger_entry"

    id = Column(String(40), primary_key=True)
    direction = Column(String(16), nullable=False)
    amount = Column(MONEY, nullable=False)
    category = Column(Text, nullable=False)
    request_id = Column(Uuid, ForeignKey("aid_request.id"), nullable=True, index=True)
    # Set only on the finalization outflow; unique => one disbursement per request
    disbursement_for = Column(Uuid, nullable=True, unique=True)
    actor_id = Column(Text, nullable=False)
    description = Column(Text, nullable=False)
    remarks = Column(Text, nullable=True)
    receipt_number = Column(Text, nullable=True)
    extra = Column("metadata", JSON, nullable=True)
    balance_after = Column(MONEY, nullable=False)  # advisory snapshot
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)

    __table_args__ = (
        Index("ix_ledger_entry_direction_created", "direction", "created_at"),
        Index("ix_ledger_entry_category_created", "category", "created_at"),
    )


class FundBalance(Base):
    """Materialized fund balance; exactly one row with id=1"""

    __tablename__ = "fund_balance"

    id = Column(Integer, primary_key=True)
    current_balance = Column(MONEY, nullable=False, default=0)
    total_inflow = Column(MONEY, nullable=False, default=0)
    total_outflow = Column(MONEY, nullable=False, default=0)
    entry_count = Column(Integer, nullable=False, default=0)
    last_recomputed_at = Column(DateTime(timezone=True), nullable=True)
    last_actor_id = Column(Text, nullable=True)
