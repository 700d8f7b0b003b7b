"""Common module — shared utilities for the leave engine."""

from leave_engine.common.audit import AuditTrail, create_audit_entry
from leave_engine.common.concurrency import run_atomic
from leave_engine.common.constants import (
    DEFAULT_PAGE_SIZE,
    HALF_DAY,
    MAX_PAGE_SIZE,
    PERMISSIONS,
    TERMINAL_LEAVE_STATUSES,
    TIMEZONE,
    AccrualMethod,
    ApprovalAction,
    HalfDayType,
    LedgerTransactionType,
    LeaveStatus,
    UserRole,
)
from leave_engine.common.exceptions import (
    AppException,
    ConcurrentModificationError,
    DuplicateCodeError,
    ForbiddenException,
    InsufficientBalanceError,
    InvalidTransitionError,
    NotFoundError,
    ValidationException,
    register_exception_handlers,
)
from leave_engine.common.pagination import (
    PaginatedResponse,
    PaginationMeta,
    PaginationParams,
    paginate,
)

__all__ = [
    # Audit
    "AuditTrail",
    "create_audit_entry",
    # Concurrency
    "run_atomic",
    # Constants / Enums
    "AccrualMethod",
    "ApprovalAction",
    "HalfDayType",
    "LedgerTransactionType",
    "LeaveStatus",
    "UserRole",
    "PERMISSIONS",
    "TERMINAL_LEAVE_STATUSES",
    "TIMEZONE",
    "HALF_DAY",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    # Exceptions
    "AppException",
    "ConcurrentModificationError",
    "DuplicateCodeError",
    "ForbiddenException",
    "InsufficientBalanceError",
    "InvalidTransitionError",
    "NotFoundError",
    "ValidationException",
    "register_exception_handlers",
    # Pagination
    "PaginatedResponse",
    "PaginationMeta",
    "PaginationParams",
    "paginate",
]
