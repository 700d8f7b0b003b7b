"""Leave router — leave types, requests and their transitions, balances, views.

All endpoints require authentication and are scoped to the caller's company.
Approve/reject consult the Authorization collaborator; catalog and ledger
administration require HR roles.
"""


import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from leave_engine.auth.dependencies import (
    CurrentUser,
    get_current_user,
    require_permission,
    require_role,
)
from leave_engine.collaborators import Authorization, EmployeeDirectory, HolidayProvider
from leave_engine.common.concurrency import run_atomic
from leave_engine.common.constants import LeaveStatus, UserRole
from leave_engine.common.exceptions import (
    ForbiddenException,
    NotFoundError,
    ValidationException,
)
from leave_engine.common.pagination import PaginatedResponse, PaginationParams
from leave_engine.database import get_db
from leave_engine.dependencies import (
    get_authorization,
    get_employee_directory,
    get_holiday_provider,
)
from leave_engine.leave.calculator import working_days
from leave_engine.leave.ledger import BalanceLedger
from leave_engine.leave.queries import LeaveQueryService
from leave_engine.leave.registry import LeaveTypeRegistry
from leave_engine.leave.schemas import (
    BalanceAdjustRequest,
    BalanceInitializeRequest,
    CarryForwardRequest,
    LeaveApproveRequest,
    LeaveBalanceOut,
    LeaveCalendarOut,
    LeaveCancelRequest,
    LeaveRejectRequest,
    LeaveRequestCreate,
    LeaveRequestFilters,
    LeaveRequestOut,
    LeaveRequestUpdate,
    LeaveSummaryOut,
    LeaveTypeCreate,
    LeaveTypeOut,
    LeaveTypeUpdate,
    LedgerEntryOut,
    WorkingDaysOut,
)
from leave_engine.leave.service import LeaveRequestService

router = APIRouter(prefix="", tags=["leave"])

APPROVER_ROLES = (
    UserRole.line_manager,
    UserRole.hr_manager,
    UserRole.hr_admin,
    UserRole.system_admin,
)
HR_ROLES = (UserRole.hr_manager, UserRole.hr_admin, UserRole.system_admin)


# ── Scoping helpers ─────────────────────────────────────────────────

async def _company_type(db: AsyncSession, leave_type_id: uuid.UUID, user: CurrentUser):
    leave_type = await LeaveTypeRegistry.get_type(db, leave_type_id)
    if leave_type.company_id != user.company_id:
        raise NotFoundError("LeaveType", leave_type_id)
    return leave_type


async def _visible_request(
    db: AsyncSession,
    request_id: uuid.UUID,
    user: CurrentUser,
    directory: Optional[EmployeeDirectory] = None,
) -> LeaveRequestOut:
    """Load a request in the caller's company that the caller may act on."""
    out = await LeaveQueryService.get_request(
        db, request_id, company_id=user.company_id, directory=directory,
    )
    if out.employee_id != user.id and not user.has_any_role(*APPROVER_ROLES):
        raise NotFoundError("LeaveRequest", request_id)
    return out


def _require_self_or(user: CurrentUser, employee_id: uuid.UUID, *roles: UserRole) -> None:
    if employee_id != user.id and not user.has_any_role(*roles):
        raise ForbiddenException("You can only act on your own leave.")


# ═════════════════════════════════════════════════════════════════════
# Leave types
# ═════════════════════════════════════════════════════════════════════


@router.get("/types", response_model=list[LeaveTypeOut])
async def list_types(
    include_inactive: bool = Query(False),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List the company's leave types in display order."""
    return await LeaveTypeRegistry.list_types(
        db, user.company_id, include_inactive=include_inactive,
    )


@router.post("/types", response_model=LeaveTypeOut, status_code=status.HTTP_201_CREATED)
async def create_type(
    body: LeaveTypeCreate,
    user: CurrentUser = Depends(require_permission("leave:configure")),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveTypeRegistry.create_type(db, user.company_id, body, actor_id=user.id)


@router.post("/types/seed", response_model=list[LeaveTypeOut])
async def seed_types(
    user: CurrentUser = Depends(require_permission("leave:configure")),
    db: AsyncSession = Depends(get_db),
):
    """Install the default South African catalog, or top up missing defaults."""
    created = await LeaveTypeRegistry.seed_default_types(db, user.company_id, actor_id=user.id)
    if not created:
        await LeaveTypeRegistry.add_missing_types(db, user.company_id, actor_id=user.id)
    return await LeaveTypeRegistry.list_types(db, user.company_id)


@router.patch("/types/{leave_type_id}", response_model=LeaveTypeOut)
async def update_type(
    leave_type_id: uuid.UUID,
    body: LeaveTypeUpdate,
    user: CurrentUser = Depends(require_permission("leave:configure")),
    db: AsyncSession = Depends(get_db),
):
    await _company_type(db, leave_type_id, user)
    return await LeaveTypeRegistry.update_type(db, leave_type_id, body, actor_id=user.id)


@router.post("/types/{leave_type_id}/deactivate", response_model=LeaveTypeOut)
async def deactivate_type(
    leave_type_id: uuid.UUID,
    user: CurrentUser = Depends(require_permission("leave:configure")),
    db: AsyncSession = Depends(get_db),
):
    await _company_type(db, leave_type_id, user)
    return await LeaveTypeRegistry.deactivate(db, leave_type_id, actor_id=user.id)


# ═════════════════════════════════════════════════════════════════════
# Requests
# ═════════════════════════════════════════════════════════════════════


@router.post("/requests", response_model=LeaveRequestOut, status_code=status.HTTP_201_CREATED)
async def create_request(
    body: LeaveRequestCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    directory: EmployeeDirectory = Depends(get_employee_directory),
    holidays: HolidayProvider = Depends(get_holiday_provider),
):
    """Save a draft, or submit straight away with ``submit: true``.

    HR may file on behalf of another employee by passing ``employee_id``.
    """
    employee_id = body.employee_id or user.id
    _require_self_or(user, employee_id, *HR_ROLES)

    leave_req = await LeaveRequestService.create_request(
        db, user.company_id, employee_id, body, created_by=user.id, holidays=holidays,
    )
    return await LeaveQueryService.get_request(db, leave_req.id, directory=directory)


@router.get("/requests", response_model=PaginatedResponse[LeaveRequestOut])
async def list_requests(
    status_filter: Optional[LeaveStatus] = Query(None, alias="status"),
    leave_type_id: Optional[uuid.UUID] = Query(None),
    employee_id: Optional[uuid.UUID] = Query(None),
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    pagination: PaginationParams = Depends(),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    directory: EmployeeDirectory = Depends(get_employee_directory),
):
    """Company requests for approvers; employees only ever see their own."""
    if not user.has_any_role(*APPROVER_ROLES):
        employee_id = user.id
    filters = LeaveRequestFilters(
        status=status_filter,
        leave_type_id=leave_type_id,
        employee_id=employee_id,
        from_date=from_date,
        to_date=to_date,
    )
    return await LeaveQueryService.list_requests(
        db,
        user.company_id,
        filters,
        page=pagination.page,
        page_size=pagination.page_size,
        directory=directory,
    )


@router.get("/requests/{request_id}", response_model=LeaveRequestOut)
async def get_request(
    request_id: uuid.UUID,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    directory: EmployeeDirectory = Depends(get_employee_directory),
):
    return await _visible_request(db, request_id, user, directory)


@router.patch("/requests/{request_id}", response_model=LeaveRequestOut)
async def update_draft(
    request_id: uuid.UUID,
    body: LeaveRequestUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    directory: EmployeeDirectory = Depends(get_employee_directory),
    holidays: HolidayProvider = Depends(get_holiday_provider),
):
    current = await _visible_request(db, request_id, user)
    _require_self_or(user, current.employee_id, *HR_ROLES)
    await LeaveRequestService.update_draft(
        db, request_id, body, actor_id=user.id, holidays=holidays,
    )
    return await LeaveQueryService.get_request(db, request_id, directory=directory)


@router.post("/requests/{request_id}/submit", response_model=LeaveRequestOut)
async def submit_request(
    request_id: uuid.UUID,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    directory: EmployeeDirectory = Depends(get_employee_directory),
):
    current = await _visible_request(db, request_id, user)
    _require_self_or(user, current.employee_id, *HR_ROLES)
    await LeaveRequestService.submit(db, request_id, actor_id=user.id)
    return await LeaveQueryService.get_request(db, request_id, directory=directory)


@router.post("/requests/{request_id}/approve", response_model=LeaveRequestOut)
async def approve_request(
    request_id: uuid.UUID,
    body: LeaveApproveRequest,
    user: CurrentUser = Depends(get_current_user),
    authz: Authorization = Depends(get_authorization),
    db: AsyncSession = Depends(get_db),
    directory: EmployeeDirectory = Depends(get_employee_directory),
):
    """Approve a pending request. Deducts the working days from the balance."""
    if not await authz.has_role(user.id, APPROVER_ROLES):
        raise ForbiddenException("You are not authorized to approve leave requests.")
    await _visible_request(db, request_id, user)
    await LeaveRequestService.approve(
        db, request_id, user.id, approver_name=user.name, comments=body.comments,
    )
    return await LeaveQueryService.get_request(db, request_id, directory=directory)


@router.post("/requests/{request_id}/reject", response_model=LeaveRequestOut)
async def reject_request(
    request_id: uuid.UUID,
    body: LeaveRejectRequest,
    user: CurrentUser = Depends(get_current_user),
    authz: Authorization = Depends(get_authorization),
    db: AsyncSession = Depends(get_db),
    directory: EmployeeDirectory = Depends(get_employee_directory),
):
    if not await authz.has_role(user.id, APPROVER_ROLES):
        raise ForbiddenException("You are not authorized to reject leave requests.")
    await _visible_request(db, request_id, user)
    await LeaveRequestService.reject(
        db, request_id, user.id, approver_name=user.name, comments=body.comments,
    )
    return await LeaveQueryService.get_request(db, request_id, directory=directory)


@router.post("/requests/{request_id}/cancel", response_model=LeaveRequestOut)
async def cancel_request(
    request_id: uuid.UUID,
    body: LeaveCancelRequest,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    directory: EmployeeDirectory = Depends(get_employee_directory),
):
    """Cancel a pending or approved request; approved days are restored."""
    current = await _visible_request(db, request_id, user)
    _require_self_or(user, current.employee_id, *HR_ROLES)
    await LeaveRequestService.cancel(db, request_id, user.id, reason=body.reason)
    return await LeaveQueryService.get_request(db, request_id, directory=directory)


# ═════════════════════════════════════════════════════════════════════
# Balances
# ═════════════════════════════════════════════════════════════════════


@router.get("/balances/{employee_id}", response_model=list[LeaveBalanceOut])
async def get_balances(
    employee_id: uuid.UUID,
    year: Optional[int] = Query(None, description="Cycle year; defaults to current year"),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    _require_self_or(user, employee_id, *APPROVER_ROLES)
    balances = await LeaveQueryService.get_balances(db, employee_id, year)
    return [b for b in balances if b.company_id == user.company_id]


@router.get("/balances/{employee_id}/entries", response_model=list[LedgerEntryOut])
async def get_balance_entries(
    employee_id: uuid.UUID,
    leave_type_id: uuid.UUID = Query(...),
    year: Optional[int] = Query(None, description="Cycle year; defaults to current year"),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """The journal behind one balance: every accrual, deduction and adjustment."""
    _require_self_or(user, employee_id, *APPROVER_ROLES)
    return await LeaveQueryService.balance_entries(
        db, employee_id, leave_type_id, year, company_id=user.company_id,
    )


@router.post("/balances/initialize", response_model=LeaveBalanceOut)
async def initialize_balance(
    body: BalanceInitializeRequest,
    user: CurrentUser = Depends(require_permission("leave:adjust")),
    db: AsyncSession = Depends(get_db),
):
    """Seed a balance row with the type's yearly entitlement. Idempotent."""
    await _company_type(db, body.leave_type_id, user)
    balance = await run_atomic(
        db,
        lambda: BalanceLedger.initialize(
            db, body.employee_id, body.leave_type_id, body.year, actor_id=user.id,
        ),
        entity_type="LeaveBalance",
        entity_id=f"{body.employee_id}/{body.leave_type_id}/{body.year}",
    )
    return await LeaveQueryService.project_balance(db, balance)


@router.post("/balances/adjust", response_model=LeaveBalanceOut)
async def adjust_balance(
    body: BalanceAdjustRequest,
    user: CurrentUser = Depends(require_permission("leave:adjust")),
    db: AsyncSession = Depends(get_db),
):
    """Credit or debit a balance by hand; may take it negative."""
    await _company_type(db, body.leave_type_id, user)
    balance = await run_atomic(
        db,
        lambda: BalanceLedger.adjust(
            db,
            body.employee_id,
            body.leave_type_id,
            body.adjustment,
            body.reason,
            year=body.year,
            actor_id=user.id,
        ),
        entity_type="LeaveBalance",
        entity_id=f"{body.employee_id}/{body.leave_type_id}",
    )
    return await LeaveQueryService.project_balance(db, balance)


@router.post("/balances/carry-forward", response_model=list[LeaveBalanceOut])
async def carry_forward(
    body: CarryForwardRequest,
    user: CurrentUser = Depends(require_permission("leave:adjust")),
    db: AsyncSession = Depends(get_db),
):
    """Close a cycle year; returns the closed balance and the next year's."""
    await _company_type(db, body.leave_type_id, user)
    source, target = await run_atomic(
        db,
        lambda: BalanceLedger.carry_forward(
            db,
            body.employee_id,
            body.leave_type_id,
            body.from_year,
            actor_id=user.id,
        ),
        entity_type="LeaveBalance",
        entity_id=f"{body.employee_id}/{body.leave_type_id}/{body.from_year}",
    )
    return [
        await LeaveQueryService.project_balance(db, source),
        await LeaveQueryService.project_balance(db, target),
    ]


# ═════════════════════════════════════════════════════════════════════
# Views
# ═════════════════════════════════════════════════════════════════════


@router.get("/on-leave-today", response_model=list[LeaveRequestOut])
async def on_leave_today(
    today: Optional[date] = Query(None),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    directory: EmployeeDirectory = Depends(get_employee_directory),
):
    return await LeaveQueryService.on_leave_today(
        db, user.company_id, today, directory=directory,
    )


@router.get("/calendar", response_model=LeaveCalendarOut)
async def leave_calendar(
    start_date: date = Query(...),
    end_date: date = Query(...),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    directory: EmployeeDirectory = Depends(get_employee_directory),
):
    if start_date > end_date:
        raise ValidationException({"end_date": ["End date cannot be before start date."]})
    return await LeaveQueryService.calendar(
        db, user.company_id, start_date, end_date, directory=directory,
    )


@router.get("/pending-approvals", response_model=list[LeaveRequestOut])
async def pending_approvals(
    user: CurrentUser = Depends(require_role(*APPROVER_ROLES)),
    db: AsyncSession = Depends(get_db),
    directory: EmployeeDirectory = Depends(get_employee_directory),
):
    return await LeaveQueryService.pending_approvals(
        db, user.company_id, directory=directory,
    )


@router.get("/summary", response_model=LeaveSummaryOut)
async def leave_summary(
    user: CurrentUser = Depends(require_role(*APPROVER_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveQueryService.summary_counts(db, user.company_id)


@router.get("/working-days", response_model=WorkingDaysOut)
async def count_working_days(
    start_date: date = Query(...),
    end_date: Optional[date] = Query(None),
    is_half_day: bool = Query(False),
    user: CurrentUser = Depends(get_current_user),
    holidays: HolidayProvider = Depends(get_holiday_provider),
):
    """Preview the working days a request over these dates would cost."""
    end = start_date if (is_half_day or end_date is None) else end_date
    excluded = await holidays.holidays_between(user.company_id, start_date, end)
    return WorkingDaysOut(
        start_date=start_date,
        end_date=end,
        is_half_day=is_half_day,
        working_days=working_days(start_date, end, is_half_day, frozenset(excluded)),
    )
