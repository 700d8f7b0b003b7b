"""Leave Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Update / *Request  → request bodies (write)
  - *Out                           → response bodies (read)
  - *Brief                         → compact embedded representations
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from leave_engine.common.constants import (
    HALF_DAY,
    AccrualMethod,
    ApprovalAction,
    HalfDayType,
    LedgerTransactionType,
    LeaveStatus,
)


def _check_half_day_multiple(value: Optional[Decimal]) -> Optional[Decimal]:
    if value is not None and value % HALF_DAY != 0:
        raise ValueError("Day quantities must be multiples of 0.5.")
    return value


# ═════════════════════════════════════════════════════════════════════
# Embedded / shared
# ═════════════════════════════════════════════════════════════════════


class LeaveTypeBrief(BaseModel):
    """Minimal leave type info embedded in leave responses."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    code: str
    name: str
    is_paid: bool = True
    color: Optional[str] = None


class ApprovalRecord(BaseModel):
    """One entry of a request's append-only approval history."""

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    approver_id: uuid.UUID
    approver_name: Optional[str] = None
    action: ApprovalAction
    comments: Optional[str] = None
    action_date: datetime


class AttachmentRef(BaseModel):
    """Reference to a supporting document held by the document store."""

    file_name: str = Field(..., min_length=1, max_length=255)
    file_url: str = Field(..., min_length=1, max_length=2000)
    file_type: Optional[str] = None
    file_size: Optional[int] = Field(None, ge=0)


# ═════════════════════════════════════════════════════════════════════
# Leave Type
# ═════════════════════════════════════════════════════════════════════


class LeaveTypeCreate(BaseModel):
    """Payload for adding a leave type to a tenant's catalog."""

    code: str = Field(..., min_length=1, max_length=50, pattern=r"^[a-z0-9_]+$")
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    default_days_per_year: Decimal = Field(Decimal("0"), ge=0)
    is_paid: bool = True
    accrual_method: AccrualMethod = AccrualMethod.annual
    max_carry_over: Decimal = Field(Decimal("0"), ge=0)
    requires_approval: bool = True
    requires_attachment: bool = False
    attachment_required_after_days: Optional[Decimal] = Field(None, ge=0)
    min_consecutive_days: Optional[Decimal] = Field(None, gt=0)
    max_consecutive_days: Optional[Decimal] = Field(None, gt=0)
    color: Optional[str] = Field(None, max_length=20)
    sort_order: int = 0

    @field_validator(
        "default_days_per_year",
        "max_carry_over",
        "min_consecutive_days",
        "max_consecutive_days",
    )
    @classmethod
    def half_day_granularity(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        return _check_half_day_multiple(v)

    @model_validator(mode="after")
    def validate_consecutive_range(self) -> "LeaveTypeCreate":
        if (
            self.min_consecutive_days is not None
            and self.max_consecutive_days is not None
            and self.min_consecutive_days > self.max_consecutive_days
        ):
            raise ValueError("min_consecutive_days cannot exceed max_consecutive_days.")
        return self


class LeaveTypeUpdate(BaseModel):
    """Partial update of a leave type. Only supplied fields change."""

    code: Optional[str] = Field(None, min_length=1, max_length=50, pattern=r"^[a-z0-9_]+$")
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    default_days_per_year: Optional[Decimal] = Field(None, ge=0)
    is_paid: Optional[bool] = None
    accrual_method: Optional[AccrualMethod] = None
    max_carry_over: Optional[Decimal] = Field(None, ge=0)
    requires_approval: Optional[bool] = None
    requires_attachment: Optional[bool] = None
    attachment_required_after_days: Optional[Decimal] = Field(None, ge=0)
    min_consecutive_days: Optional[Decimal] = Field(None, gt=0)
    max_consecutive_days: Optional[Decimal] = Field(None, gt=0)
    color: Optional[str] = Field(None, max_length=20)
    sort_order: Optional[int] = None

    @field_validator(
        "default_days_per_year",
        "max_carry_over",
        "min_consecutive_days",
        "max_consecutive_days",
    )
    @classmethod
    def half_day_granularity(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        return _check_half_day_multiple(v)


class LeaveTypeOut(BaseModel):
    """Full leave type representation."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    company_id: uuid.UUID
    code: str
    name: str
    description: Optional[str] = None
    default_days_per_year: Decimal
    is_paid: bool = True
    accrual_method: AccrualMethod
    max_carry_over: Decimal
    requires_approval: bool = True
    requires_attachment: bool = False
    attachment_required_after_days: Optional[Decimal] = None
    min_consecutive_days: Optional[Decimal] = None
    max_consecutive_days: Optional[Decimal] = None
    color: Optional[str] = None
    sort_order: int = 0
    is_active: bool = True
    created_at: datetime
    updated_at: datetime


# ═════════════════════════════════════════════════════════════════════
# Leave Balance
# ═════════════════════════════════════════════════════════════════════


class LeaveBalanceOut(BaseModel):
    """Balance for a single leave type and cycle year."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    company_id: uuid.UUID
    leave_type_id: uuid.UUID
    cycle_year: int
    cycle_start_date: date
    cycle_end_date: date
    opening_balance: Decimal
    accrued: Decimal
    taken: Decimal
    adjusted: Decimal
    forfeited: Decimal
    carried_forward: Decimal
    current_balance: Decimal

    # Computed fields: filled by the query layer, not from ORM
    pending: Decimal = Decimal("0")
    projected_balance: Decimal = Decimal("0")
    leave_type_code: Optional[str] = None
    leave_type_name: Optional[str] = None


class BalanceInitializeRequest(BaseModel):
    """HR admin payload for seeding a balance row."""

    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    year: int = Field(..., ge=2000, le=2100)


class BalanceAdjustRequest(BaseModel):
    """HR admin balance adjustment payload."""

    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    adjustment: Decimal = Field(
        ..., description="Positive to credit, negative to debit"
    )
    reason: str = Field(..., min_length=5, max_length=500)
    year: Optional[int] = Field(
        None, description="Target cycle year; defaults to current year"
    )

    @field_validator("adjustment")
    @classmethod
    def adjustment_granularity(cls, v: Decimal) -> Decimal:
        if v == 0:
            raise ValueError("adjustment must be non-zero.")
        return _check_half_day_multiple(v)


class CarryForwardRequest(BaseModel):
    """Close a cycle year and carry the allowed remainder into the next."""

    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    from_year: int = Field(..., ge=2000, le=2100)


class LedgerEntryOut(BaseModel):
    """One journal line of a balance."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    balance_id: uuid.UUID
    leave_request_id: Optional[uuid.UUID] = None
    transaction_type: LedgerTransactionType
    days: Decimal
    balance_after: Decimal
    description: Optional[str] = None
    created_by: Optional[uuid.UUID] = None
    created_at: datetime


# ═════════════════════════════════════════════════════════════════════
# Leave Request: Create / Update
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestCreate(BaseModel):
    """Payload for creating a leave request (draft, or submitted directly)."""

    employee_id: Optional[uuid.UUID] = Field(
        None, description="Defaults to the caller; HR may file on behalf of an employee"
    )
    leave_type_id: uuid.UUID
    start_date: date = Field(..., description="Leave start date (inclusive)")
    end_date: Optional[date] = Field(
        None, description="Leave end date (inclusive); forced to start_date for half-days"
    )
    is_half_day: bool = False
    half_day_type: Optional[HalfDayType] = None
    reason: Optional[str] = Field(None, max_length=1000)
    notes: Optional[str] = Field(None, max_length=2000)
    emergency_contact: Optional[str] = Field(None, max_length=200)
    attachments: list[AttachmentRef] = Field(default_factory=list)
    submit: bool = Field(False, description="Submit immediately instead of saving a draft")

    @model_validator(mode="after")
    def normalise_half_day(self) -> "LeaveRequestCreate":
        if self.is_half_day:
            self.end_date = self.start_date
            if self.half_day_type is None:
                self.half_day_type = HalfDayType.morning
        else:
            self.half_day_type = None
            if self.end_date is None:
                self.end_date = self.start_date
        if (self.end_date - self.start_date).days > 366:
            raise ValueError("Leave request cannot span more than one year.")
        return self


class LeaveRequestUpdate(BaseModel):
    """Edit of a draft request. Only supplied fields change."""

    leave_type_id: Optional[uuid.UUID] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_half_day: Optional[bool] = None
    half_day_type: Optional[HalfDayType] = None
    reason: Optional[str] = Field(None, max_length=1000)
    notes: Optional[str] = Field(None, max_length=2000)
    emergency_contact: Optional[str] = Field(None, max_length=200)
    attachments: Optional[list[AttachmentRef]] = None


# ═════════════════════════════════════════════════════════════════════
# Leave Request: Response
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestOut(BaseModel):
    """Full leave request response."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    company_id: uuid.UUID
    leave_type_id: uuid.UUID
    start_date: date
    end_date: date
    is_half_day: bool = False
    half_day_type: Optional[HalfDayType] = None
    working_days: Decimal
    reason: Optional[str] = None
    notes: Optional[str] = None
    emergency_contact: Optional[str] = None
    attachments: list[AttachmentRef] = Field(default_factory=list)
    attachment_required: bool = False
    status: LeaveStatus
    approval_history: list[ApprovalRecord] = Field(default_factory=list)
    submitted_date: Optional[datetime] = None
    cancelled_date: Optional[datetime] = None
    cancelled_by: Optional[uuid.UUID] = None
    cancellation_reason: Optional[str] = None
    created_by: uuid.UUID
    created_at: datetime
    updated_at: datetime

    # View projections: never persisted
    employee_name: Optional[str] = None
    leave_type_name: Optional[str] = None


# ═════════════════════════════════════════════════════════════════════
# Leave Approve / Reject / Cancel
# ═════════════════════════════════════════════════════════════════════


class LeaveApproveRequest(BaseModel):
    """Payload for approving a leave request."""

    comments: Optional[str] = Field(None, max_length=500)


class LeaveRejectRequest(BaseModel):
    """Payload for rejecting a leave request."""

    comments: str = Field(..., min_length=5, max_length=500)


class LeaveCancelRequest(BaseModel):
    """Payload for cancelling a leave request."""

    reason: Optional[str] = Field(None, max_length=500)


# ═════════════════════════════════════════════════════════════════════
# Query facade
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestFilters(BaseModel):
    """Query filters for listing a company's leave requests."""

    status: Optional[LeaveStatus] = None
    leave_type_id: Optional[uuid.UUID] = None
    employee_id: Optional[uuid.UUID] = None
    from_date: Optional[date] = None
    to_date: Optional[date] = None


class LeaveCalendarEntry(BaseModel):
    """Single entry in the company leave calendar."""

    leave_request_id: uuid.UUID
    employee_id: uuid.UUID
    employee_name: Optional[str] = None
    leave_type: LeaveTypeBrief
    start_date: date
    end_date: date
    is_half_day: bool
    working_days: Decimal
    status: LeaveStatus


class LeaveCalendarOut(BaseModel):
    """Approved leave overlapping a date window."""

    start_date: date
    end_date: date
    entries: list[LeaveCalendarEntry]
    total_entries: int = 0


class LeaveSummaryOut(BaseModel):
    """Per-company request counts by status."""

    company_id: uuid.UUID
    draft: int = 0
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    cancelled: int = 0
    taken: int = 0
    total: int = 0


class WorkingDaysOut(BaseModel):
    """Result of the working-day calculator."""

    start_date: date
    end_date: date
    is_half_day: bool
    working_days: Decimal
