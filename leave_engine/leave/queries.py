"""Read-side projections over balances and requests for the UI layer.

Nothing here writes. ``employee_name`` comes from the employee directory and
``leave_type_name`` from the registry; both are computed per response and
never stored on the request.
"""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from leave_engine.collaborators import EmployeeDirectory
from leave_engine.common.constants import DEFAULT_PAGE_SIZE, LeaveStatus
from leave_engine.common.exceptions import NotFoundError
from leave_engine.common.pagination import PaginatedResponse, paginate
from leave_engine.leave.calculator import local_today
from leave_engine.leave.models import LeaveBalance, LeaveRequest, LeaveType
from leave_engine.leave.schemas import (
    LedgerEntryOut,
    LeaveBalanceOut,
    LeaveCalendarEntry,
    LeaveCalendarOut,
    LeaveRequestFilters,
    LeaveRequestOut,
    LeaveSummaryOut,
    LeaveTypeBrief,
)


async def pending_days(
    db: AsyncSession,
    employee_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    year: int,
    *,
    exclude_id: Optional[uuid.UUID] = None,
) -> Decimal:
    """Sum working_days of pending requests starting in the cycle year."""

    query = select(func.coalesce(func.sum(LeaveRequest.working_days), 0)).where(
        LeaveRequest.employee_id == employee_id,
        LeaveRequest.leave_type_id == leave_type_id,
        LeaveRequest.status == LeaveStatus.pending,
        LeaveRequest.start_date >= date(year, 1, 1),
        LeaveRequest.start_date <= date(year, 12, 31),
    )
    if exclude_id is not None:
        query = query.where(LeaveRequest.id != exclude_id)
    result = await db.execute(query)
    return Decimal(str(result.scalar_one()))


class LeaveQueryService:
    """Balances, request listings, calendar and summary views."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _employee_names(
        directory: Optional[EmployeeDirectory],
        employee_ids: Iterable[uuid.UUID],
    ) -> dict[uuid.UUID, str]:
        if directory is None:
            return {}
        names: dict[uuid.UUID, str] = {}
        for employee_id in set(employee_ids):
            info = await directory.get_employee(employee_id)
            if info is not None:
                names[employee_id] = info.display_name
        return names

    @staticmethod
    def build_request_out(
        req: LeaveRequest,
        *,
        employee_name: Optional[str] = None,
        leave_type_name: Optional[str] = None,
    ) -> LeaveRequestOut:
        out = LeaveRequestOut.model_validate(req)
        out.employee_name = employee_name
        out.leave_type_name = leave_type_name
        return out

    @staticmethod
    async def _project(
        requests: Sequence[LeaveRequest],
        directory: Optional[EmployeeDirectory],
    ) -> list[LeaveRequestOut]:
        """Requests must be loaded with their leave_type relationship."""
        names = await LeaveQueryService._employee_names(
            directory, (r.employee_id for r in requests),
        )
        return [
            LeaveQueryService.build_request_out(
                r,
                employee_name=names.get(r.employee_id),
                leave_type_name=r.leave_type.name,
            )
            for r in requests
        ]

    # ─────────────────────────────────────────────────────────────────
    # Balances
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_balances(
        db: AsyncSession,
        employee_id: uuid.UUID,
        year: Optional[int] = None,
    ) -> list[LeaveBalanceOut]:
        """All of an employee's balances for a cycle year, with pending and
        projected figures computed from outstanding requests."""

        year = year or local_today().year
        result = await db.execute(
            select(LeaveBalance)
            .where(
                LeaveBalance.employee_id == employee_id,
                LeaveBalance.cycle_year == year,
            )
            .options(selectinload(LeaveBalance.leave_type))
        )
        balances = sorted(
            result.scalars().all(),
            key=lambda b: (b.leave_type.sort_order, b.leave_type.name),
        )
        return [
            await LeaveQueryService.project_balance(db, bal, bal.leave_type)
            for bal in balances
        ]

    @staticmethod
    async def project_balance(
        db: AsyncSession,
        balance: LeaveBalance,
        leave_type: Optional[LeaveType] = None,
    ) -> LeaveBalanceOut:
        """Balance row plus its pending and projected figures."""

        if leave_type is None:
            leave_type = await db.get(LeaveType, balance.leave_type_id)
        pending = await pending_days(
            db, balance.employee_id, balance.leave_type_id, balance.cycle_year,
        )
        out = LeaveBalanceOut.model_validate(balance)
        out.pending = pending
        out.projected_balance = balance.current_balance - pending
        if leave_type is not None:
            out.leave_type_code = leave_type.code
            out.leave_type_name = leave_type.name
        return out

    @staticmethod
    async def balance_entries(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        year: Optional[int] = None,
        *,
        company_id: Optional[uuid.UUID] = None,
    ) -> list[LedgerEntryOut]:
        """Journal lines of one balance, oldest first."""

        year = year or local_today().year
        query = (
            select(LeaveBalance)
            .where(
                LeaveBalance.employee_id == employee_id,
                LeaveBalance.leave_type_id == leave_type_id,
                LeaveBalance.cycle_year == year,
            )
            .options(selectinload(LeaveBalance.entries))
        )
        if company_id is not None:
            query = query.where(LeaveBalance.company_id == company_id)
        balance = (await db.execute(query)).scalars().first()
        if balance is None:
            raise NotFoundError("LeaveBalance", f"{employee_id}/{leave_type_id}/{year}")
        return [LedgerEntryOut.model_validate(e) for e in balance.entries]

    # ─────────────────────────────────────────────────────────────────
    # Requests
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def list_requests(
        db: AsyncSession,
        company_id: uuid.UUID,
        filters: Optional[LeaveRequestFilters] = None,
        *,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
        directory: Optional[EmployeeDirectory] = None,
    ) -> PaginatedResponse[LeaveRequestOut]:
        """A company's requests, newest first, filtered by status, leave type,
        employee and overlap with a date range."""

        filters = filters or LeaveRequestFilters()
        query = (
            select(LeaveRequest)
            .where(LeaveRequest.company_id == company_id)
            .options(selectinload(LeaveRequest.leave_type))
            .order_by(LeaveRequest.created_at.desc(), LeaveRequest.id)
        )
        if filters.status:
            query = query.where(LeaveRequest.status == filters.status)
        if filters.leave_type_id:
            query = query.where(LeaveRequest.leave_type_id == filters.leave_type_id)
        if filters.employee_id:
            query = query.where(LeaveRequest.employee_id == filters.employee_id)
        if filters.from_date:
            query = query.where(LeaveRequest.end_date >= filters.from_date)
        if filters.to_date:
            query = query.where(LeaveRequest.start_date <= filters.to_date)

        rows, meta = await paginate(db, query, page=page, page_size=page_size)
        data = await LeaveQueryService._project(rows, directory)
        return PaginatedResponse[LeaveRequestOut](data=data, meta=meta)

    @staticmethod
    async def get_request(
        db: AsyncSession,
        request_id: uuid.UUID,
        *,
        company_id: Optional[uuid.UUID] = None,
        directory: Optional[EmployeeDirectory] = None,
    ) -> LeaveRequestOut:
        query = (
            select(LeaveRequest)
            .where(LeaveRequest.id == request_id)
            .options(selectinload(LeaveRequest.leave_type))
        )
        if company_id is not None:
            query = query.where(LeaveRequest.company_id == company_id)
        result = await db.execute(query)
        req = result.scalars().first()
        if req is None:
            raise NotFoundError("LeaveRequest", request_id)
        return (await LeaveQueryService._project([req], directory))[0]

    @staticmethod
    async def on_leave_today(
        db: AsyncSession,
        company_id: uuid.UUID,
        today: Optional[date] = None,
        *,
        directory: Optional[EmployeeDirectory] = None,
    ) -> list[LeaveRequestOut]:
        """Approved requests whose date range contains *today*."""

        today = today or local_today()
        result = await db.execute(
            select(LeaveRequest)
            .where(
                LeaveRequest.company_id == company_id,
                LeaveRequest.status == LeaveStatus.approved,
                LeaveRequest.start_date <= today,
                LeaveRequest.end_date >= today,
            )
            .options(selectinload(LeaveRequest.leave_type))
            .order_by(LeaveRequest.start_date)
        )
        return await LeaveQueryService._project(result.scalars().all(), directory)

    @staticmethod
    async def pending_approvals(
        db: AsyncSession,
        company_id: uuid.UUID,
        *,
        directory: Optional[EmployeeDirectory] = None,
    ) -> list[LeaveRequestOut]:
        """Requests awaiting a decision, oldest first."""

        result = await db.execute(
            select(LeaveRequest)
            .where(
                LeaveRequest.company_id == company_id,
                LeaveRequest.status == LeaveStatus.pending,
            )
            .options(selectinload(LeaveRequest.leave_type))
            .order_by(LeaveRequest.submitted_date.asc(), LeaveRequest.created_at.asc())
        )
        return await LeaveQueryService._project(result.scalars().all(), directory)

    # ─────────────────────────────────────────────────────────────────
    # Calendar / Summary
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def calendar(
        db: AsyncSession,
        company_id: uuid.UUID,
        start: date,
        end: date,
        *,
        directory: Optional[EmployeeDirectory] = None,
    ) -> LeaveCalendarOut:
        """Pending, approved and taken leave overlapping [start, end]."""

        result = await db.execute(
            select(LeaveRequest)
            .where(
                LeaveRequest.company_id == company_id,
                LeaveRequest.status.in_([
                    LeaveStatus.pending, LeaveStatus.approved, LeaveStatus.taken,
                ]),
                LeaveRequest.start_date <= end,
                LeaveRequest.end_date >= start,
            )
            .options(selectinload(LeaveRequest.leave_type))
            .order_by(LeaveRequest.start_date)
        )
        requests = result.scalars().all()
        names = await LeaveQueryService._employee_names(
            directory, (r.employee_id for r in requests),
        )

        entries = [
            LeaveCalendarEntry(
                leave_request_id=req.id,
                employee_id=req.employee_id,
                employee_name=names.get(req.employee_id),
                leave_type=LeaveTypeBrief.model_validate(req.leave_type),
                start_date=req.start_date,
                end_date=req.end_date,
                is_half_day=req.is_half_day,
                working_days=req.working_days,
                status=req.status,
            )
            for req in requests
        ]
        return LeaveCalendarOut(
            start_date=start,
            end_date=end,
            entries=entries,
            total_entries=len(entries),
        )

    @staticmethod
    async def summary_counts(
        db: AsyncSession,
        company_id: uuid.UUID,
    ) -> LeaveSummaryOut:
        """Request counts per status for a company."""

        result = await db.execute(
            select(LeaveRequest.status, func.count())
            .where(LeaveRequest.company_id == company_id)
            .group_by(LeaveRequest.status)
        )
        counts = {status: count for status, count in result.all()}
        return LeaveSummaryOut(
            company_id=company_id,
            **{status.value: counts.get(status, 0) for status in LeaveStatus},
            total=sum(counts.values()),
        )

