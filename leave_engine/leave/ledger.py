"""Balance ledger — the only code path that mutates leave balances.

One ``LeaveBalance`` row exists per (employee, leave type, cycle year). The
current balance is never stored; it is derived from the component columns
(see ``LeaveBalance.current_balance``). Every mutation appends a
``LeaveLedgerEntry`` so the balance can be reconstructed line by line.

The ledger does not check sufficiency. That is the state machine's job at
submit/approve time; administrative adjustments may take a balance negative.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from leave_engine.common.audit import create_audit_entry
from leave_engine.common.concurrency import WriteConflict
from leave_engine.common.constants import HALF_DAY, LedgerTransactionType
from leave_engine.common.exceptions import NotFoundError, ValidationException
from leave_engine.leave.calculator import local_today
from leave_engine.leave.models import LeaveBalance, LeaveLedgerEntry, LeaveType

logger = logging.getLogger(__name__)


def _check_days(days: Decimal, *, field: str = "days", signed: bool = False) -> Decimal:
    days = Decimal(str(days))
    if days % HALF_DAY != 0:
        raise ValidationException({field: ["Day quantities must be multiples of 0.5."]})
    if signed:
        if days == 0:
            raise ValidationException({field: ["Adjustment must be non-zero."]})
    elif days <= 0:
        raise ValidationException({field: ["Must be greater than zero."]})
    return days


class BalanceLedger:
    """Async balance operations keyed by (employee, leave type, cycle year)."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def _journal(
        db: AsyncSession,
        balance: LeaveBalance,
        transaction_type: LedgerTransactionType,
        days: Decimal,
        *,
        leave_request_id: Optional[uuid.UUID] = None,
        description: Optional[str] = None,
        actor_id: Optional[uuid.UUID] = None,
    ) -> LeaveLedgerEntry:
        """Append a journal line reflecting the balance *after* the change."""
        entry = LeaveLedgerEntry(
            balance_id=balance.id,
            employee_id=balance.employee_id,
            company_id=balance.company_id,
            leave_type_id=balance.leave_type_id,
            leave_request_id=leave_request_id,
            transaction_type=transaction_type,
            days=days,
            balance_after=balance.current_balance,
            description=description,
            created_by=actor_id,
        )
        db.add(entry)
        return entry

    @staticmethod
    async def _get_or_initialize(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        year: Optional[int],
        actor_id: Optional[uuid.UUID] = None,
    ) -> LeaveBalance:
        year = year or local_today().year
        balance = await BalanceLedger.get(db, employee_id, leave_type_id, year)
        if balance is None:
            balance = await BalanceLedger.initialize(
                db, employee_id, leave_type_id, year, actor_id=actor_id,
            )
        return balance

    # ─────────────────────────────────────────────────────────────────
    # Read
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        year: Optional[int] = None,
    ) -> Optional[LeaveBalance]:
        """Return the balance row for the cycle year (default: this year)."""

        year = year or local_today().year
        result = await db.execute(
            select(LeaveBalance).where(
                LeaveBalance.employee_id == employee_id,
                LeaveBalance.leave_type_id == leave_type_id,
                LeaveBalance.cycle_year == year,
            )
        )
        return result.scalars().first()

    # ─────────────────────────────────────────────────────────────────
    # Initialize
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def initialize(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        year: int,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> LeaveBalance:
        """Create the balance row for a cycle year, seeded with the type's
        yearly entitlement. Returns the existing row unchanged if present."""

        existing = await BalanceLedger.get(db, employee_id, leave_type_id, year)
        if existing is not None:
            return existing

        leave_type = await db.get(LeaveType, leave_type_id)
        if leave_type is None:
            raise NotFoundError("LeaveType", leave_type_id)

        cycle_start = date(year, 1, 1)
        now = datetime.now(timezone.utc)
        balance = LeaveBalance(
            employee_id=employee_id,
            company_id=leave_type.company_id,
            leave_type_id=leave_type_id,
            cycle_year=year,
            cycle_start_date=cycle_start,
            cycle_end_date=date(year, 12, 31),
            opening_balance=Decimal("0"),
            accrued=leave_type.default_days_per_year,
            taken=Decimal("0"),
            adjusted=Decimal("0"),
            forfeited=Decimal("0"),
            carried_forward=Decimal("0"),
            last_accrual_date=cycle_start,
            updated_at=now,
        )
        db.add(balance)
        try:
            await db.flush()
        except IntegrityError as exc:
            # uq_leave_balance: a concurrent writer created this cycle first
            raise WriteConflict(
                f"Balance {employee_id}/{leave_type_id}/{year} already exists"
            ) from exc

        BalanceLedger._journal(
            db,
            balance,
            LedgerTransactionType.accrual,
            balance.accrued,
            description=f"{leave_type.name} entitlement for {year}",
            actor_id=actor_id,
        )
        await create_audit_entry(
            db,
            action="initialize",
            entity_type="leave_balance",
            entity_id=balance.id,
            actor_id=actor_id,
            company_id=balance.company_id,
            new_values={"cycle_year": year, "accrued": str(balance.accrued)},
        )
        logger.info(
            "Initialized %s balance for employee %s (%d): %s days",
            leave_type.code, employee_id, year, balance.accrued,
        )
        return balance

    # ─────────────────────────────────────────────────────────────────
    # Deduct / Restore (driven by the request state machine)
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def deduct(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        days: Decimal,
        *,
        year: Optional[int] = None,
        leave_request_id: Optional[uuid.UUID] = None,
        actor_id: Optional[uuid.UUID] = None,
    ) -> LeaveBalance:
        """Record *days* as taken, initializing the balance row if needed."""

        days = _check_days(days)
        balance = await BalanceLedger._get_or_initialize(
            db, employee_id, leave_type_id, year, actor_id,
        )

        balance.taken = balance.taken + days
        balance.updated_at = datetime.now(timezone.utc)
        BalanceLedger._journal(
            db,
            balance,
            LedgerTransactionType.taken,
            -days,
            leave_request_id=leave_request_id,
            actor_id=actor_id,
        )
        return balance

    @staticmethod
    async def restore(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        days: Decimal,
        *,
        year: Optional[int] = None,
        leave_request_id: Optional[uuid.UUID] = None,
        actor_id: Optional[uuid.UUID] = None,
    ) -> Optional[LeaveBalance]:
        """Give back previously taken days. ``taken`` never drops below zero.

        Nothing was ever deducted when no balance row exists, so there is
        nothing to restore and ``None`` is returned.
        """
        days = _check_days(days)
        balance = await BalanceLedger.get(db, employee_id, leave_type_id, year)
        if balance is None:
            logger.warning(
                "No %s balance to restore for employee %s; skipping",
                leave_type_id, employee_id,
            )
            return None

        new_taken = max(Decimal("0"), balance.taken - days)
        restored = balance.taken - new_taken
        balance.taken = new_taken
        balance.updated_at = datetime.now(timezone.utc)
        BalanceLedger._journal(
            db,
            balance,
            LedgerTransactionType.cancelled,
            restored,
            leave_request_id=leave_request_id,
            actor_id=actor_id,
        )
        return balance

    # ─────────────────────────────────────────────────────────────────
    # Administrative changes
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def adjust(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        days: Decimal,
        reason: str,
        *,
        year: Optional[int] = None,
        actor_id: Optional[uuid.UUID] = None,
    ) -> LeaveBalance:
        """Credit (positive) or debit (negative) a balance by hand."""

        days = _check_days(days, field="adjustment", signed=True)
        balance = await BalanceLedger._get_or_initialize(
            db, employee_id, leave_type_id, year, actor_id,
        )
        old_adjusted = balance.adjusted

        balance.adjusted = balance.adjusted + days
        balance.updated_at = datetime.now(timezone.utc)
        BalanceLedger._journal(
            db,
            balance,
            (
                LedgerTransactionType.adjustment_add
                if days > 0
                else LedgerTransactionType.adjustment_deduct
            ),
            days,
            description=reason,
            actor_id=actor_id,
        )
        await create_audit_entry(
            db,
            action="adjust",
            entity_type="leave_balance",
            entity_id=balance.id,
            actor_id=actor_id,
            company_id=balance.company_id,
            old_values={"adjusted": str(old_adjusted)},
            new_values={"adjusted": str(balance.adjusted), "reason": reason},
        )
        logger.info(
            "Adjusted balance %s by %s days (%s)", balance.id, days, reason,
        )
        return balance

    @staticmethod
    async def carry_forward(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        from_year: int,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> tuple[LeaveBalance, LeaveBalance]:
        """Close *from_year*: carry up to ``max_carry_over`` of the remaining
        balance into the next cycle and forfeit the rest.

        Closing a cycle twice changes nothing; the close is recognised by the
        forfeit line written on the source balance.
        """
        source = await BalanceLedger.get(db, employee_id, leave_type_id, from_year)
        if source is None:
            raise NotFoundError(
                "LeaveBalance", f"{employee_id}/{leave_type_id}/{from_year}",
            )

        closed = await db.execute(
            select(LeaveLedgerEntry.id).where(
                LeaveLedgerEntry.balance_id == source.id,
                LeaveLedgerEntry.transaction_type == LedgerTransactionType.forfeit,
            )
        )
        if closed.first() is not None:
            target = await BalanceLedger._get_or_initialize(
                db, employee_id, leave_type_id, from_year + 1, actor_id,
            )
            return source, target

        leave_type = await db.get(LeaveType, leave_type_id)
        if leave_type is None:
            raise NotFoundError("LeaveType", leave_type_id)

        remaining = max(source.current_balance, Decimal("0"))
        carry = min(remaining, leave_type.max_carry_over)
        forfeit = remaining - carry
        now = datetime.now(timezone.utc)

        source.forfeited = source.forfeited + forfeit
        source.updated_at = now
        BalanceLedger._journal(
            db,
            source,
            LedgerTransactionType.forfeit,
            -forfeit,
            description=f"Cycle {from_year} closed: carried {carry}, forfeited {forfeit}",
            actor_id=actor_id,
        )

        target = await BalanceLedger._get_or_initialize(
            db, employee_id, leave_type_id, from_year + 1, actor_id,
        )
        if carry > 0:
            target.carried_forward = target.carried_forward + carry
            target.updated_at = now
            BalanceLedger._journal(
                db,
                target,
                LedgerTransactionType.carry_forward,
                carry,
                description=f"Carried forward from {from_year}",
                actor_id=actor_id,
            )

        await create_audit_entry(
            db,
            action="carry_forward",
            entity_type="leave_balance",
            entity_id=source.id,
            actor_id=actor_id,
            company_id=source.company_id,
            new_values={
                "from_year": from_year,
                "carried": str(carry),
                "forfeited": str(forfeit),
                "target_balance_id": str(target.id),
            },
        )
        logger.info(
            "Closed %s cycle %d for employee %s: carried %s, forfeited %s",
            leave_type.code, from_year, employee_id, carry, forfeit,
        )
        return source, target
