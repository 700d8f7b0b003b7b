"""Leave request state machine — creation, drafts, submission and decisions.

Business logic:
  - draft → pending (submit) with full validation and a balance sufficiency check
  - pending → approved / rejected, approval history appended, ledger deduction
  - pending / approved → cancelled, ledger restoration when it had been approved
  - approved → taken, the hook used by the batch that closes historical leave

Every transition is one atomic unit (``run_atomic``): the request and balance
rows are version-checked at flush and the whole unit is retried from a fresh
read when another writer got there first.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leave_engine.collaborators import HolidayProvider, NoHolidays
from leave_engine.common.audit import create_audit_entry
from leave_engine.common.concurrency import run_atomic
from leave_engine.common.constants import (
    ApprovalAction,
    HalfDayType,
    LeaveStatus,
)
from leave_engine.common.exceptions import (
    InsufficientBalanceError,
    InvalidTransitionError,
    NotFoundError,
    ValidationException,
)
from leave_engine.leave.calculator import working_days
from leave_engine.leave.ledger import BalanceLedger
from leave_engine.leave.models import LeaveRequest, LeaveType
from leave_engine.leave.queries import pending_days
from leave_engine.leave.schemas import (
    ApprovalRecord,
    LeaveRequestCreate,
    LeaveRequestUpdate,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ═════════════════════════════════════════════════════════════════════
# LeaveRequestService
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestService:
    """Async leave request operations driving the balance ledger."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _load_request(db: AsyncSession, request_id: uuid.UUID) -> LeaveRequest:
        result = await db.execute(
            select(LeaveRequest).where(LeaveRequest.id == request_id)
        )
        leave_req = result.scalars().first()
        if leave_req is None:
            raise NotFoundError("LeaveRequest", request_id)
        return leave_req

    @staticmethod
    async def _load_active_type(
        db: AsyncSession,
        company_id: uuid.UUID,
        leave_type_id: uuid.UUID,
    ) -> LeaveType:
        """Leave type must exist, belong to the company and be active."""

        leave_type = await db.get(LeaveType, leave_type_id)
        if leave_type is None or leave_type.company_id != company_id:
            raise NotFoundError("LeaveType", leave_type_id)
        if not leave_type.is_active:
            raise ValidationException(
                {"leave_type_id": [f"{leave_type.name} is no longer available."]}
            )
        return leave_type

    @staticmethod
    def _require_status(
        leave_req: LeaveRequest,
        allowed: Iterable[LeaveStatus],
        event: str,
    ) -> None:
        if leave_req.status not in allowed:
            raise InvalidTransitionError(leave_req.status, event)

    @staticmethod
    async def _compute_working_days(
        company_id: uuid.UUID,
        start: date,
        end: date,
        is_half_day: bool,
        holidays: Optional[HolidayProvider],
    ) -> Decimal:
        provider = holidays or NoHolidays()
        excluded = await provider.holidays_between(company_id, start, end)
        return working_days(start, end, is_half_day, frozenset(excluded))

    @staticmethod
    def _validate(leave_req: LeaveRequest, leave_type: LeaveType) -> bool:
        """Field rules checked at submit and again at approve.

        Returns whether the type demanded supporting documents for this request.
        """
        errors: dict[str, list[str]] = {}
        days = leave_req.working_days

        if not leave_req.is_half_day and leave_req.start_date > leave_req.end_date:
            errors.setdefault("end_date", []).append(
                "End date cannot be before start date."
            )
        if days <= 0:
            errors.setdefault("dates", []).append(
                "No working days found in the selected range."
            )
        if leave_type.min_consecutive_days and days < leave_type.min_consecutive_days:
            errors.setdefault("dates", []).append(
                f"{leave_type.name} requires at least "
                f"{leave_type.min_consecutive_days} consecutive days."
            )
        if leave_type.max_consecutive_days and days > leave_type.max_consecutive_days:
            errors.setdefault("dates", []).append(
                f"{leave_type.name} allows a maximum of "
                f"{leave_type.max_consecutive_days} consecutive days."
            )

        threshold = leave_type.attachment_required_after_days
        needs_attachment = leave_type.requires_attachment and (
            threshold is None or days > threshold
        )
        if needs_attachment and not leave_req.attachments:
            errors.setdefault("attachments", []).append(
                f"{leave_type.name} of {days} days requires a supporting document."
            )

        if errors:
            raise ValidationException(errors)
        return needs_attachment

    @staticmethod
    async def _available(
        db: AsyncSession,
        leave_req: LeaveRequest,
        leave_type: LeaveType,
    ) -> Decimal:
        """Current balance for the request's cycle year.

        A cycle that was never initialized is valued at the type's yearly
        entitlement, which is what ``initialize`` would seed.
        """
        balance = await BalanceLedger.get(
            db, leave_req.employee_id, leave_req.leave_type_id, leave_req.cycle_year,
        )
        if balance is None:
            return Decimal(leave_type.default_days_per_year)
        return balance.current_balance

    @staticmethod
    async def _check_sufficiency(
        db: AsyncSession,
        leave_req: LeaveRequest,
        leave_type: LeaveType,
        *,
        include_pending: bool,
    ) -> None:
        # Unpaid leave with no entitlement is unlimited; any paid type is always checked
        if not leave_type.is_paid and not leave_type.default_days_per_year:
            return

        available = await LeaveRequestService._available(db, leave_req, leave_type)
        outstanding = Decimal("0")
        if include_pending:
            outstanding = await pending_days(
                db,
                leave_req.employee_id,
                leave_req.leave_type_id,
                leave_req.cycle_year,
                exclude_id=leave_req.id,
            )
        if leave_req.working_days + outstanding > available:
            raise InsufficientBalanceError(
                available=available - outstanding,
                requested=leave_req.working_days,
            )

    @staticmethod
    async def _submit_loaded(
        db: AsyncSession,
        leave_req: LeaveRequest,
        actor_id: uuid.UUID,
    ) -> LeaveRequest:
        LeaveRequestService._require_status(leave_req, (LeaveStatus.draft,), "submit")
        leave_type = await LeaveRequestService._load_active_type(
            db, leave_req.company_id, leave_req.leave_type_id,
        )
        needs_attachment = LeaveRequestService._validate(leave_req, leave_type)
        await LeaveRequestService._check_sufficiency(
            db, leave_req, leave_type, include_pending=True,
        )

        now = _utcnow()
        leave_req.attachment_required = needs_attachment
        leave_req.status = LeaveStatus.pending
        leave_req.submitted_date = now
        leave_req.updated_at = now

        await create_audit_entry(
            db,
            action="submit",
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=actor_id,
            company_id=leave_req.company_id,
            old_values={"status": LeaveStatus.draft.value},
            new_values={
                "status": LeaveStatus.pending.value,
                "working_days": str(leave_req.working_days),
            },
        )
        logger.info(
            "Leave request %s submitted (%s days of %s)",
            leave_req.id, leave_req.working_days, leave_type.code,
        )
        return leave_req

    @staticmethod
    def _append_approval(
        leave_req: LeaveRequest,
        action: ApprovalAction,
        approver_id: uuid.UUID,
        approver_name: Optional[str],
        comments: Optional[str],
    ) -> None:
        record = ApprovalRecord(
            approver_id=approver_id,
            approver_name=approver_name,
            action=action,
            comments=comments,
            action_date=_utcnow(),
        )
        # Reassign so the JSON column registers the change
        leave_req.approval_history = [
            *(leave_req.approval_history or []),
            record.model_dump(mode="json"),
        ]

    # ─────────────────────────────────────────────────────────────────
    # Create / Edit
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def create_request(
        db: AsyncSession,
        company_id: uuid.UUID,
        employee_id: uuid.UUID,
        data: LeaveRequestCreate,
        *,
        created_by: uuid.UUID,
        holidays: Optional[HolidayProvider] = None,
    ) -> LeaveRequest:
        """Create a draft request, or submit it straight away when asked."""

        leave_type = await LeaveRequestService._load_active_type(
            db, company_id, data.leave_type_id,
        )

        leave_req = LeaveRequest(
            employee_id=employee_id,
            company_id=company_id,
            leave_type_id=leave_type.id,
            start_date=data.start_date,
            end_date=data.end_date,
            is_half_day=data.is_half_day,
            half_day_type=data.half_day_type,
            working_days=Decimal("0"),
            reason=data.reason,
            notes=data.notes,
            emergency_contact=data.emergency_contact,
            attachments=[a.model_dump(mode="json") for a in data.attachments],
            attachment_required=False,
            status=LeaveStatus.draft,
            approval_history=[],
            created_by=created_by,
        )
        leave_req.working_days = await LeaveRequestService._compute_working_days(
            company_id, data.start_date, data.end_date, data.is_half_day, holidays,
        )

        if data.submit:
            # Validate before anything is written so a refused submit leaves no draft
            LeaveRequestService._validate(leave_req, leave_type)
            await LeaveRequestService._check_sufficiency(
                db, leave_req, leave_type, include_pending=True,
            )

        db.add(leave_req)
        await db.flush()

        await create_audit_entry(
            db,
            action="create",
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=created_by,
            company_id=company_id,
            new_values={
                "leave_type": leave_type.code,
                "start_date": leave_req.start_date.isoformat(),
                "end_date": leave_req.end_date.isoformat(),
                "working_days": str(leave_req.working_days),
            },
        )

        if data.submit:
            await LeaveRequestService._submit_loaded(db, leave_req, created_by)
            await db.flush()
        return leave_req

    @staticmethod
    async def update_draft(
        db: AsyncSession,
        request_id: uuid.UUID,
        data: LeaveRequestUpdate,
        *,
        actor_id: uuid.UUID,
        holidays: Optional[HolidayProvider] = None,
    ) -> LeaveRequest:
        """Edit a draft; working days are recomputed from the new dates."""

        changes = data.model_dump(exclude_unset=True)

        async def _op() -> LeaveRequest:
            leave_req = await LeaveRequestService._load_request(db, request_id)
            LeaveRequestService._require_status(leave_req, (LeaveStatus.draft,), "edit")

            new_type: Optional[LeaveType] = None
            if changes.get("leave_type_id") is not None:
                new_type = await LeaveRequestService._load_active_type(
                    db, leave_req.company_id, changes["leave_type_id"],
                )

            start = changes.get("start_date") or leave_req.start_date
            end = changes.get("end_date") or leave_req.end_date
            is_half_day = changes.get("is_half_day")
            if is_half_day is None:
                is_half_day = leave_req.is_half_day
            half_day_type = changes.get("half_day_type") or leave_req.half_day_type

            if is_half_day:
                end = start
                half_day_type = half_day_type or HalfDayType.morning
            else:
                half_day_type = None
                if start > end:
                    raise ValidationException(
                        {"end_date": ["End date cannot be before start date."]}
                    )

            days = await LeaveRequestService._compute_working_days(
                leave_req.company_id, start, end, is_half_day, holidays,
            )

            if new_type is not None:
                leave_req.leave_type = new_type
            leave_req.start_date = start
            leave_req.end_date = end
            leave_req.is_half_day = is_half_day
            leave_req.half_day_type = half_day_type
            leave_req.working_days = days
            for field in ("reason", "notes", "emergency_contact"):
                if field in changes:
                    setattr(leave_req, field, changes[field])
            if "attachments" in changes:
                leave_req.attachments = [
                    a.model_dump(mode="json") for a in (data.attachments or [])
                ]
            leave_req.updated_at = _utcnow()

            await create_audit_entry(
                db,
                action="update",
                entity_type="leave_request",
                entity_id=leave_req.id,
                actor_id=actor_id,
                company_id=leave_req.company_id,
                new_values={
                    key: (
                        value.isoformat() if isinstance(value, date)
                        else getattr(value, "value", str(value))
                    )
                    for key, value in changes.items()
                    if key != "attachments"
                },
            )
            return leave_req

        return await run_atomic(
            db, _op, entity_type="LeaveRequest", entity_id=request_id,
        )

    # ─────────────────────────────────────────────────────────────────
    # Transitions
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def submit(
        db: AsyncSession,
        request_id: uuid.UUID,
        *,
        actor_id: uuid.UUID,
    ) -> LeaveRequest:
        """draft → pending."""

        async def _op() -> LeaveRequest:
            leave_req = await LeaveRequestService._load_request(db, request_id)
            return await LeaveRequestService._submit_loaded(db, leave_req, actor_id)

        return await run_atomic(
            db, _op, entity_type="LeaveRequest", entity_id=request_id,
        )

    @staticmethod
    async def approve(
        db: AsyncSession,
        request_id: uuid.UUID,
        approver_id: uuid.UUID,
        approver_name: Optional[str] = None,
        comments: Optional[str] = None,
    ) -> LeaveRequest:
        """pending → approved. Deducts the working days from the balance.

        The submit-time rules are re-checked against fresh state so a request
        that went stale while waiting (type deactivated, balance adjusted
        down) cannot be approved.
        """

        async def _op() -> LeaveRequest:
            leave_req = await LeaveRequestService._load_request(db, request_id)
            LeaveRequestService._require_status(
                leave_req, (LeaveStatus.pending,), "approve",
            )
            leave_type = await LeaveRequestService._load_active_type(
                db, leave_req.company_id, leave_req.leave_type_id,
            )
            needs_attachment = LeaveRequestService._validate(leave_req, leave_type)
            await LeaveRequestService._check_sufficiency(
                db, leave_req, leave_type, include_pending=False,
            )

            leave_req.attachment_required = needs_attachment
            leave_req.status = LeaveStatus.approved
            leave_req.updated_at = _utcnow()
            LeaveRequestService._append_approval(
                leave_req, ApprovalAction.approved, approver_id, approver_name, comments,
            )
            await BalanceLedger.deduct(
                db,
                leave_req.employee_id,
                leave_req.leave_type_id,
                leave_req.working_days,
                year=leave_req.cycle_year,
                leave_request_id=leave_req.id,
                actor_id=approver_id,
            )

            await create_audit_entry(
                db,
                action="approve",
                entity_type="leave_request",
                entity_id=leave_req.id,
                actor_id=approver_id,
                company_id=leave_req.company_id,
                old_values={"status": LeaveStatus.pending.value},
                new_values={"status": LeaveStatus.approved.value, "comments": comments},
            )
            logger.info("Leave request %s approved by %s", leave_req.id, approver_id)
            return leave_req

        return await run_atomic(
            db, _op, entity_type="LeaveRequest", entity_id=request_id,
        )

    @staticmethod
    async def reject(
        db: AsyncSession,
        request_id: uuid.UUID,
        approver_id: uuid.UUID,
        approver_name: Optional[str] = None,
        comments: Optional[str] = None,
    ) -> LeaveRequest:
        """pending → rejected. The balance is not touched."""

        async def _op() -> LeaveRequest:
            leave_req = await LeaveRequestService._load_request(db, request_id)
            LeaveRequestService._require_status(
                leave_req, (LeaveStatus.pending,), "reject",
            )

            leave_req.status = LeaveStatus.rejected
            leave_req.updated_at = _utcnow()
            LeaveRequestService._append_approval(
                leave_req, ApprovalAction.rejected, approver_id, approver_name, comments,
            )

            await create_audit_entry(
                db,
                action="reject",
                entity_type="leave_request",
                entity_id=leave_req.id,
                actor_id=approver_id,
                company_id=leave_req.company_id,
                old_values={"status": LeaveStatus.pending.value},
                new_values={"status": LeaveStatus.rejected.value, "comments": comments},
            )
            logger.info("Leave request %s rejected by %s", leave_req.id, approver_id)
            return leave_req

        return await run_atomic(
            db, _op, entity_type="LeaveRequest", entity_id=request_id,
        )

    @staticmethod
    async def cancel(
        db: AsyncSession,
        request_id: uuid.UUID,
        cancelled_by: uuid.UUID,
        reason: Optional[str] = None,
    ) -> LeaveRequest:
        """pending / approved → cancelled. Approved days go back to the balance."""

        async def _op() -> LeaveRequest:
            leave_req = await LeaveRequestService._load_request(db, request_id)
            LeaveRequestService._require_status(
                leave_req, (LeaveStatus.pending, LeaveStatus.approved), "cancel",
            )
            prior_status = leave_req.status

            now = _utcnow()
            leave_req.status = LeaveStatus.cancelled
            leave_req.cancelled_by = cancelled_by
            leave_req.cancelled_date = now
            leave_req.cancellation_reason = reason
            leave_req.updated_at = now

            if prior_status == LeaveStatus.approved:
                await BalanceLedger.restore(
                    db,
                    leave_req.employee_id,
                    leave_req.leave_type_id,
                    leave_req.working_days,
                    year=leave_req.cycle_year,
                    leave_request_id=leave_req.id,
                    actor_id=cancelled_by,
                )

            await create_audit_entry(
                db,
                action="cancel",
                entity_type="leave_request",
                entity_id=leave_req.id,
                actor_id=cancelled_by,
                company_id=leave_req.company_id,
                old_values={"status": prior_status.value},
                new_values={"status": LeaveStatus.cancelled.value, "reason": reason},
            )
            logger.info(
                "Leave request %s cancelled by %s (was %s)",
                leave_req.id, cancelled_by, prior_status.value,
            )
            return leave_req

        return await run_atomic(
            db, _op, entity_type="LeaveRequest", entity_id=request_id,
        )

    @staticmethod
    async def mark_taken(
        db: AsyncSession,
        request_id: uuid.UUID,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> LeaveRequest:
        """approved → taken. Days were already deducted at approval."""

        async def _op() -> LeaveRequest:
            leave_req = await LeaveRequestService._load_request(db, request_id)
            LeaveRequestService._require_status(
                leave_req, (LeaveStatus.approved,), "mark as taken",
            )
            leave_req.status = LeaveStatus.taken
            leave_req.updated_at = _utcnow()

            await create_audit_entry(
                db,
                action="mark_taken",
                entity_type="leave_request",
                entity_id=leave_req.id,
                actor_id=actor_id,
                company_id=leave_req.company_id,
                old_values={"status": LeaveStatus.approved.value},
                new_values={"status": LeaveStatus.taken.value},
            )
            return leave_req

        return await run_atomic(
            db, _op, entity_type="LeaveRequest", entity_id=request_id,
        )
