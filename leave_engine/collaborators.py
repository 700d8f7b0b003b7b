"""External collaborators consumed by the leave engine.

The engine never owns employee records, roles or holiday calendars. It talks
to them through the small protocols below; the shipped implementations are
wired in ``leave_engine.dependencies`` and can be swapped per deployment.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import Iterable, Optional, Protocol

import httpx
from pydantic import BaseModel, ConfigDict

from leave_engine.common.constants import UserRole
from leave_engine.config import settings

logger = logging.getLogger(__name__)


# Each role implicitly includes the roles below it
ROLE_HIERARCHY: dict[UserRole, set[UserRole]] = {
    UserRole.system_admin: {
        UserRole.system_admin, UserRole.hr_admin, UserRole.hr_manager,
        UserRole.line_manager, UserRole.employee,
    },
    UserRole.hr_admin: {
        UserRole.hr_admin, UserRole.hr_manager, UserRole.line_manager, UserRole.employee,
    },
    UserRole.hr_manager: {UserRole.hr_manager, UserRole.line_manager, UserRole.employee},
    UserRole.line_manager: {UserRole.line_manager, UserRole.employee},
    UserRole.employee: {UserRole.employee},
}


def effective_roles(roles: Iterable[UserRole]) -> set[UserRole]:
    expanded: set[UserRole] = set()
    for role in roles:
        expanded |= ROLE_HIERARCHY.get(role, {role})
    return expanded


class EmployeeInfo(BaseModel):
    """Directory record used for display enrichment only."""

    model_config = ConfigDict(extra="ignore")

    id: uuid.UUID
    first_name: str
    last_name: str
    status: Optional[str] = None

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


# ── Protocols ───────────────────────────────────────────────────────

class EmployeeDirectory(Protocol):
    async def get_employee(self, employee_id: uuid.UUID) -> Optional[EmployeeInfo]:
        ...


class Authorization(Protocol):
    async def has_role(self, user_id: uuid.UUID, roles: Iterable[UserRole]) -> bool:
        ...


class HolidayProvider(Protocol):
    async def holidays_between(
        self, company_id: uuid.UUID, start: date, end: date,
    ) -> set[date]:
        ...


# ── Shipped implementations ─────────────────────────────────────────

class HttpEmployeeDirectory:
    """Looks employees up in the HR core service over HTTP.

    Lookups are best effort: any transport or HTTP failure is logged and the
    caller simply gets no name.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = (base_url if base_url is not None else settings.EMPLOYEE_DIRECTORY_URL).rstrip("/")
        self.timeout = timeout or settings.EMPLOYEE_DIRECTORY_TIMEOUT_SECONDS
        self._client = client
        self._cache: dict[uuid.UUID, Optional[EmployeeInfo]] = {}

    async def get_employee(self, employee_id: uuid.UUID) -> Optional[EmployeeInfo]:
        if not self.base_url:
            return None
        if employee_id in self._cache:
            return self._cache[employee_id]

        url = f"{self.base_url}/employees/{employee_id}"
        try:
            if self._client is not None:
                resp = await self._client.get(url, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    resp = await client.get(url)
            if resp.status_code == 404:
                info = None
            else:
                resp.raise_for_status()
                info = EmployeeInfo.model_validate(resp.json())
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Employee directory lookup failed for %s: %s", employee_id, exc)
            return None

        self._cache[employee_id] = info
        return info


class TokenAuthorization:
    """Answers role questions from the roles carried in the caller's JWT."""

    def __init__(self, user_id: uuid.UUID, roles: Iterable[UserRole]) -> None:
        self.user_id = user_id
        self.roles = effective_roles(roles)

    async def has_role(self, user_id: uuid.UUID, roles: Iterable[UserRole]) -> bool:
        if user_id != self.user_id:
            return False
        return bool(self.roles.intersection(roles))


class NoHolidays:
    """Default holiday provider: no dates are excluded."""

    async def holidays_between(
        self, company_id: uuid.UUID, start: date, end: date,
    ) -> set[date]:
        return set()
