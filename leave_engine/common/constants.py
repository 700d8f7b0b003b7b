"""Enums and constants for the leave engine — matching PostgreSQL ENUM types."""

from __future__ import annotations

import enum
from decimal import Decimal


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    employee = "employee"
    line_manager = "line_manager"
    hr_manager = "hr_manager"
    hr_admin = "hr_admin"
    system_admin = "system_admin"


# ── Leave ───────────────────────────────────────────────────────────

class LeaveStatus(str, enum.Enum):
    draft = "draft"
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"
    taken = "taken"


TERMINAL_LEAVE_STATUSES: frozenset[LeaveStatus] = frozenset(
    {LeaveStatus.rejected, LeaveStatus.cancelled, LeaveStatus.taken}
)


class AccrualMethod(str, enum.Enum):
    none = "none"
    annual = "annual"
    monthly = "monthly"


class HalfDayType(str, enum.Enum):
    morning = "morning"
    afternoon = "afternoon"


class ApprovalAction(str, enum.Enum):
    approved = "approved"
    rejected = "rejected"


class LedgerTransactionType(str, enum.Enum):
    opening_balance = "opening_balance"
    accrual = "accrual"
    taken = "taken"
    cancelled = "cancelled"
    adjustment_add = "adjustment_add"
    adjustment_deduct = "adjustment_deduct"
    carry_forward = "carry_forward"
    forfeit = "forfeit"


# ── Role-based permissions ──────────────────────────────────────────

PERMISSIONS: dict[UserRole, list[str]] = {
    UserRole.employee: [
        "leave:request",
        "leave:read_own",
    ],
    UserRole.line_manager: [
        "leave:request",
        "leave:read_own",
        "leave:read_team",
        "leave:approve",
        "leave:reject",
    ],
    UserRole.hr_manager: [
        "leave:request",
        "leave:read_all",
        "leave:approve",
        "leave:reject",
        "leave:adjust",
    ],
    UserRole.hr_admin: [
        "leave:request",
        "leave:read_all",
        "leave:approve",
        "leave:reject",
        "leave:adjust",
        "leave:configure",
    ],
    UserRole.system_admin: [
        "leave:request",
        "leave:read_all",
        "leave:approve",
        "leave:reject",
        "leave:adjust",
        "leave:configure",
        "system:configure",
    ],
}

# ── Misc constants ──────────────────────────────────────────────────

TIMEZONE = "Africa/Johannesburg"
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 50

# Smallest bookable unit of leave (half-day support)
HALF_DAY = Decimal("0.5")
