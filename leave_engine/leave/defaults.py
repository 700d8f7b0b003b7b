"""Default South African leave catalog (Basic Conditions of Employment Act)."""

from __future__ import annotations

from decimal import Decimal

from leave_engine.common.constants import AccrualMethod
from leave_engine.leave.schemas import LeaveTypeCreate

DEFAULT_LEAVE_TYPES: list[LeaveTypeCreate] = [
    LeaveTypeCreate(
        code="annual",
        name="Annual Leave",
        description="Standard annual leave as per BCEA",
        default_days_per_year=Decimal("15"),  # BCEA minimum for a 5-day week
        is_paid=True,
        accrual_method=AccrualMethod.monthly,
        max_carry_over=Decimal("5"),
        color="#10B981",
        sort_order=1,
    ),
    LeaveTypeCreate(
        code="sick",
        name="Sick Leave",
        description="Sick leave as per BCEA (36 days per 3-year cycle)",
        default_days_per_year=Decimal("12"),
        is_paid=True,
        accrual_method=AccrualMethod.annual,
        requires_attachment=True,
        attachment_required_after_days=Decimal("2"),  # medical certificate
        color="#EF4444",
        sort_order=2,
    ),
    LeaveTypeCreate(
        code="family_responsibility",
        name="Family Responsibility Leave",
        description="Family responsibility leave as per BCEA",
        default_days_per_year=Decimal("3"),
        is_paid=True,
        accrual_method=AccrualMethod.annual,
        requires_attachment=True,
        color="#8B5CF6",
        sort_order=3,
    ),
    LeaveTypeCreate(
        code="maternity",
        name="Maternity Leave",
        description="Maternity leave as per BCEA (4 consecutive months)",
        default_days_per_year=Decimal("120"),
        is_paid=False,  # paid via UIF, not the employer
        accrual_method=AccrualMethod.none,
        requires_attachment=True,
        min_consecutive_days=Decimal("1"),
        max_consecutive_days=Decimal("120"),
        color="#EC4899",
        sort_order=4,
    ),
    LeaveTypeCreate(
        code="paternity",
        name="Paternity Leave",
        description="Paternity leave for fathers (10 consecutive days)",
        default_days_per_year=Decimal("10"),
        is_paid=False,
        accrual_method=AccrualMethod.none,
        requires_attachment=True,
        min_consecutive_days=Decimal("1"),
        max_consecutive_days=Decimal("10"),
        color="#3B82F6",
        sort_order=5,
    ),
    LeaveTypeCreate(
        code="parental",
        name="Parental Leave",
        description="Parental leave for adoptive parents",
        default_days_per_year=Decimal("10"),
        is_paid=False,
        accrual_method=AccrualMethod.none,
        requires_attachment=True,
        color="#06B6D4",
        sort_order=6,
    ),
    LeaveTypeCreate(
        code="study",
        name="Study Leave",
        description="Leave for approved study and examinations",
        default_days_per_year=Decimal("5"),
        is_paid=True,
        accrual_method=AccrualMethod.annual,
        requires_attachment=True,
        color="#F59E0B",
        sort_order=7,
    ),
    LeaveTypeCreate(
        code="birthday",
        name="Birthday Leave",
        description="Paid day off on your birthday",
        default_days_per_year=Decimal("1"),
        is_paid=True,
        accrual_method=AccrualMethod.annual,
        color="#A855F7",
        sort_order=8,
    ),
    LeaveTypeCreate(
        code="unpaid",
        name="Unpaid Leave",
        description="Leave without pay",
        default_days_per_year=Decimal("0"),
        is_paid=False,
        accrual_method=AccrualMethod.none,
        color="#6B7280",
        sort_order=9,
    ),
]
