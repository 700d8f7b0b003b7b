"""Shared FastAPI dependencies — collaborator providers.

Deployments override these through ``app.dependency_overrides`` to plug in a
different directory, authorization source or holiday calendar.
"""

from fastapi import Depends

from leave_engine.auth.dependencies import CurrentUser, get_current_user
from leave_engine.collaborators import (
    Authorization,
    EmployeeDirectory,
    HolidayProvider,
    HttpEmployeeDirectory,
    NoHolidays,
    TokenAuthorization,
)


async def get_employee_directory() -> EmployeeDirectory:
    # One per request: lookups are cached for the lifetime of the instance
    return HttpEmployeeDirectory()


async def get_holiday_provider() -> HolidayProvider:
    return NoHolidays()


async def get_authorization(
    user: CurrentUser = Depends(get_current_user),
) -> Authorization:
    return TokenAuthorization(user.id, user.roles)
