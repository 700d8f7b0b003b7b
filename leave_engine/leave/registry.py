"""Leave type registry — the per-company catalog of leave categories.

Leave types are soft-deactivated, never deleted: historical requests and
balances keep pointing at them.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leave_engine.common.audit import create_audit_entry
from leave_engine.common.exceptions import (
    DuplicateCodeError,
    NotFoundError,
    ValidationException,
)
from leave_engine.leave.defaults import DEFAULT_LEAVE_TYPES
from leave_engine.leave.models import LeaveType
from leave_engine.leave.schemas import LeaveTypeCreate, LeaveTypeUpdate

logger = logging.getLogger(__name__)


def _jsonable(values: dict) -> dict:
    return {
        k: (v.value if hasattr(v, "value") else str(v) if v is not None else None)
        for k, v in values.items()
    }


class LeaveTypeRegistry:
    """Async CRUD over a company's leave types."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _ensure_code_free(
        db: AsyncSession,
        company_id: uuid.UUID,
        code: str,
        *,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> None:
        query = select(LeaveType.id).where(
            LeaveType.company_id == company_id,
            LeaveType.code == code,
            LeaveType.is_active.is_(True),
        )
        if exclude_id is not None:
            query = query.where(LeaveType.id != exclude_id)
        result = await db.execute(query)
        if result.first() is not None:
            raise DuplicateCodeError(code)

    # ─────────────────────────────────────────────────────────────────
    # Read
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def list_types(
        db: AsyncSession,
        company_id: uuid.UUID,
        *,
        include_inactive: bool = False,
    ) -> Sequence[LeaveType]:
        """List a company's leave types ordered for display."""

        query = (
            select(LeaveType)
            .where(LeaveType.company_id == company_id)
            .order_by(LeaveType.sort_order, LeaveType.name)
        )
        if not include_inactive:
            query = query.where(LeaveType.is_active.is_(True))

        result = await db.execute(query)
        return result.scalars().all()

    @staticmethod
    async def get_type(db: AsyncSession, leave_type_id: uuid.UUID) -> LeaveType:
        leave_type = await db.get(LeaveType, leave_type_id)
        if leave_type is None:
            raise NotFoundError("LeaveType", leave_type_id)
        return leave_type

    # ─────────────────────────────────────────────────────────────────
    # Write
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def create_type(
        db: AsyncSession,
        company_id: uuid.UUID,
        data: LeaveTypeCreate,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> LeaveType:
        """Add a leave type; the code must be unique among active types."""

        await LeaveTypeRegistry._ensure_code_free(db, company_id, data.code)

        leave_type = LeaveType(company_id=company_id, is_active=True, **data.model_dump())
        db.add(leave_type)
        await db.flush()

        await create_audit_entry(
            db,
            action="create",
            entity_type="leave_type",
            entity_id=leave_type.id,
            actor_id=actor_id,
            company_id=company_id,
            new_values=_jsonable({"code": data.code, "name": data.name}),
        )
        logger.info("Created leave type %s for company %s", data.code, company_id)
        return leave_type

    @staticmethod
    async def update_type(
        db: AsyncSession,
        leave_type_id: uuid.UUID,
        data: LeaveTypeUpdate,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> LeaveType:
        """Apply a partial update. A changed code is re-checked for duplicates."""

        leave_type = await LeaveTypeRegistry.get_type(db, leave_type_id)
        changes = data.model_dump(exclude_unset=True)

        if "code" in changes and changes["code"] != leave_type.code and leave_type.is_active:
            await LeaveTypeRegistry._ensure_code_free(
                db, leave_type.company_id, changes["code"], exclude_id=leave_type.id,
            )

        min_days = changes.get("min_consecutive_days", leave_type.min_consecutive_days)
        max_days = changes.get("max_consecutive_days", leave_type.max_consecutive_days)
        if min_days is not None and max_days is not None and min_days > max_days:
            raise ValidationException(
                {"min_consecutive_days": ["Cannot exceed max_consecutive_days."]}
            )

        old_values = {field: getattr(leave_type, field) for field in changes}
        for field, value in changes.items():
            setattr(leave_type, field, value)
        leave_type.updated_at = datetime.now(timezone.utc)
        await db.flush()

        await create_audit_entry(
            db,
            action="update",
            entity_type="leave_type",
            entity_id=leave_type.id,
            actor_id=actor_id,
            company_id=leave_type.company_id,
            old_values=_jsonable(old_values),
            new_values=_jsonable(changes),
        )
        return leave_type

    @staticmethod
    async def deactivate(
        db: AsyncSession,
        leave_type_id: uuid.UUID,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> LeaveType:
        """Soft-deactivate a leave type. Deactivating twice is a no-op."""

        leave_type = await LeaveTypeRegistry.get_type(db, leave_type_id)
        if not leave_type.is_active:
            return leave_type

        leave_type.is_active = False
        leave_type.updated_at = datetime.now(timezone.utc)
        await db.flush()

        await create_audit_entry(
            db,
            action="deactivate",
            entity_type="leave_type",
            entity_id=leave_type.id,
            actor_id=actor_id,
            company_id=leave_type.company_id,
            old_values={"is_active": True},
            new_values={"is_active": False},
        )
        logger.info("Deactivated leave type %s (%s)", leave_type.code, leave_type.id)
        return leave_type

    # ─────────────────────────────────────────────────────────────────
    # Default catalog
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def seed_default_types(
        db: AsyncSession,
        company_id: uuid.UUID,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> Sequence[LeaveType]:
        """Seed the default catalog for a company that has no leave types yet.

        Returns the created types; an already-configured company gets an
        empty list and is left untouched.
        """
        existing = await LeaveTypeRegistry.list_types(
            db, company_id, include_inactive=True,
        )
        if existing:
            return []

        created = []
        for template in DEFAULT_LEAVE_TYPES:
            created.append(
                await LeaveTypeRegistry.create_type(
                    db, company_id, template, actor_id=actor_id,
                )
            )
        logger.info("Seeded %d default leave types for company %s", len(created), company_id)
        return created

    @staticmethod
    async def add_missing_types(
        db: AsyncSession,
        company_id: uuid.UUID,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> list[str]:
        """Add any default leave types the company lacks; return their names."""

        existing = await LeaveTypeRegistry.list_types(db, company_id)
        existing_codes = {lt.code for lt in existing}

        added: list[str] = []
        for template in DEFAULT_LEAVE_TYPES:
            if template.code in existing_codes:
                continue
            await LeaveTypeRegistry.create_type(db, company_id, template, actor_id=actor_id)
            added.append(template.name)
        return added
