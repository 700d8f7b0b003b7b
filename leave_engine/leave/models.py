"""Leave ORM models: LeaveType, LeaveBalance, LeaveRequest, LeaveLedgerEntry."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import Mapped, mapped_column, relationship

from leave_engine.common.constants import (
    AccrualMethod,
    HalfDayType,
    LedgerTransactionType,
    LeaveStatus,
)
from leave_engine.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LeaveType(Base):
    __tablename__ = "leave_types"
    __table_args__ = (
        sa.Index("ix_leave_types_company_code", "company_id", "code"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    company_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    code: Mapped[str] = mapped_column(sa.String(50), nullable=False)
    name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(sa.Text)
    default_days_per_year: Mapped[Decimal] = mapped_column(
        sa.Numeric(6, 1), nullable=False, default=Decimal("0")
    )
    is_paid: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True)
    accrual_method: Mapped[AccrualMethod] = mapped_column(
        sa.Enum(AccrualMethod, name="accrual_method"),
        nullable=False,
        default=AccrualMethod.annual,
    )
    max_carry_over: Mapped[Decimal] = mapped_column(
        sa.Numeric(6, 1), nullable=False, default=Decimal("0")
    )
    requires_approval: Mapped[bool] = mapped_column(
        sa.Boolean, nullable=False, default=True
    )
    requires_attachment: Mapped[bool] = mapped_column(
        sa.Boolean, nullable=False, default=False
    )
    attachment_required_after_days: Mapped[Optional[Decimal]] = mapped_column(
        sa.Numeric(6, 1)
    )
    min_consecutive_days: Mapped[Optional[Decimal]] = mapped_column(sa.Numeric(6, 1))
    max_consecutive_days: Mapped[Optional[Decimal]] = mapped_column(sa.Numeric(6, 1))
    color: Mapped[Optional[str]] = mapped_column(sa.String(20))
    sort_order: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow
    )

    # Relationships
    balances: Mapped[list[LeaveBalance]] = relationship(back_populates="leave_type")
    requests: Mapped[list[LeaveRequest]] = relationship(back_populates="leave_type")


class LeaveBalance(Base):
    __tablename__ = "leave_balances"
    __table_args__ = (
        sa.UniqueConstraint(
            "employee_id", "leave_type_id", "cycle_year", name="uq_leave_balance"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    company_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    leave_type_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("leave_types.id"), nullable=False
    )
    cycle_year: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    cycle_start_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    cycle_end_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    opening_balance: Mapped[Decimal] = mapped_column(
        sa.Numeric(6, 1), nullable=False, default=Decimal("0")
    )
    accrued: Mapped[Decimal] = mapped_column(
        sa.Numeric(6, 1), nullable=False, default=Decimal("0")
    )
    taken: Mapped[Decimal] = mapped_column(
        sa.Numeric(6, 1), nullable=False, default=Decimal("0")
    )
    # Signed: administrative credits and debits
    adjusted: Mapped[Decimal] = mapped_column(
        sa.Numeric(6, 1), nullable=False, default=Decimal("0")
    )
    forfeited: Mapped[Decimal] = mapped_column(
        sa.Numeric(6, 1), nullable=False, default=Decimal("0")
    )
    carried_forward: Mapped[Decimal] = mapped_column(
        sa.Numeric(6, 1), nullable=False, default=Decimal("0")
    )
    last_accrual_date: Mapped[Optional[date]] = mapped_column(sa.Date)
    version: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow
    )

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    leave_type: Mapped[LeaveType] = relationship(back_populates="balances")
    entries: Mapped[list[LeaveLedgerEntry]] = relationship(
        back_populates="balance", order_by="LeaveLedgerEntry.created_at"
    )

    @hybrid_property
    def current_balance(self) -> Decimal:
        return (
            self.opening_balance
            + self.accrued
            + self.carried_forward
            + self.adjusted
            - self.taken
            - self.forfeited
        )


class LeaveRequest(Base):
    __tablename__ = "leave_requests"
    __table_args__ = (
        sa.Index("ix_leave_requests_company_status", "company_id", "status"),
        sa.Index("ix_leave_requests_employee_dates", "employee_id", "start_date", "end_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    company_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    leave_type_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("leave_types.id"), nullable=False
    )
    start_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    end_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    is_half_day: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)
    half_day_type: Mapped[Optional[HalfDayType]] = mapped_column(
        sa.Enum(HalfDayType, name="half_day_type")
    )
    working_days: Mapped[Decimal] = mapped_column(sa.Numeric(6, 1), nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    notes: Mapped[Optional[str]] = mapped_column(sa.Text)
    emergency_contact: Mapped[Optional[str]] = mapped_column(sa.String(200))
    attachments: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    attachment_required: Mapped[bool] = mapped_column(
        sa.Boolean, nullable=False, default=False
    )
    status: Mapped[LeaveStatus] = mapped_column(
        sa.Enum(LeaveStatus, name="leave_status"),
        nullable=False,
        default=LeaveStatus.draft,
    )
    # Append-only list of approval records (see ApprovalRecord schema)
    approval_history: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    submitted_date: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    cancelled_date: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    cancelled_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    cancellation_reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    created_by: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    version: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow
    )

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    leave_type: Mapped[LeaveType] = relationship(back_populates="requests")

    @property
    def cycle_year(self) -> int:
        return self.start_date.year


class LeaveLedgerEntry(Base):
    """Append-only journal of every balance mutation."""

    __tablename__ = "leave_ledger_entries"
    __table_args__ = (
        sa.Index("ix_leave_ledger_balance", "balance_id"),
        sa.Index("ix_leave_ledger_request", "leave_request_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    balance_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("leave_balances.id"), nullable=False
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    company_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    leave_type_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("leave_types.id"), nullable=False
    )
    leave_request_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("leave_requests.id")
    )
    transaction_type: Mapped[LedgerTransactionType] = mapped_column(
        sa.Enum(LedgerTransactionType, name="ledger_transaction_type"),
        nullable=False,
    )
    # Positive for additions, negative for deductions
    days: Mapped[Decimal] = mapped_column(sa.Numeric(6, 1), nullable=False)
    balance_after: Mapped[Decimal] = mapped_column(sa.Numeric(6, 1), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(sa.Text)
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow
    )

    # Relationships
    balance: Mapped[LeaveBalance] = relationship(back_populates="entries")
