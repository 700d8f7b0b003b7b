"""Collaborator tests — role hierarchy, token authorization, HTTP employee directory."""

from __future__ import annotations

import uuid
from datetime import date

import httpx

from leave_engine.collaborators import (
    HttpEmployeeDirectory,
    NoHolidays,
    TokenAuthorization,
    effective_roles,
)
from leave_engine.common.constants import UserRole

DIRECTORY_URL = "http://hr-core.test/api/v1"


def _directory(handler) -> tuple[HttpEmployeeDirectory, httpx.AsyncClient]:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpEmployeeDirectory(DIRECTORY_URL, client=client), client


class TestRoles:

    def test_admin_inherits_lower_roles(self):
        roles = effective_roles([UserRole.hr_admin])
        assert UserRole.line_manager in roles
        assert UserRole.employee in roles
        assert UserRole.system_admin not in roles

    def test_employee_has_only_itself(self):
        assert effective_roles([UserRole.employee]) == {UserRole.employee}

    async def test_token_authorization_checks_hierarchy(self):
        user = uuid.uuid4()
        authz = TokenAuthorization(user, [UserRole.hr_manager])

        assert await authz.has_role(user, [UserRole.line_manager]) is True
        assert await authz.has_role(user, [UserRole.hr_admin]) is False

    async def test_token_authorization_only_speaks_for_its_user(self):
        authz = TokenAuthorization(uuid.uuid4(), [UserRole.system_admin])
        assert await authz.has_role(uuid.uuid4(), [UserRole.employee]) is False


class TestHttpEmployeeDirectory:

    async def test_found_employee_is_parsed_and_cached(self):
        employee_id = uuid.uuid4()
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url.path)
            return httpx.Response(200, json={
                "id": str(employee_id),
                "first_name": "Naledi",
                "last_name": "Khumalo",
                "status": "active",
                "department": "Finance",
            })

        directory, client = _directory(handler)
        async with client:
            info = await directory.get_employee(employee_id)
            again = await directory.get_employee(employee_id)

        assert info.display_name == "Naledi Khumalo"
        assert again is info
        assert calls == [f"/api/v1/employees/{employee_id}"]

    async def test_unknown_employee_is_none(self):
        directory, client = _directory(lambda request: httpx.Response(404))
        async with client:
            assert await directory.get_employee(uuid.uuid4()) is None

    async def test_server_error_is_swallowed_as_no_name(self, caplog):
        directory, client = _directory(lambda request: httpx.Response(503))
        async with client:
            assert await directory.get_employee(uuid.uuid4()) is None
        assert "Employee directory lookup failed" in caplog.text

    async def test_transport_error_is_swallowed(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        directory, client = _directory(handler)
        async with client:
            assert await directory.get_employee(uuid.uuid4()) is None

    async def test_malformed_payload_is_none(self):
        directory, client = _directory(lambda request: httpx.Response(200, json={"id": "x"}))
        async with client:
            assert await directory.get_employee(uuid.uuid4()) is None

    async def test_unconfigured_directory_never_calls_out(self):
        directory = HttpEmployeeDirectory("")
        assert await directory.get_employee(uuid.uuid4()) is None


class TestNoHolidays:

    async def test_no_dates_excluded(self):
        assert await NoHolidays().holidays_between(
            uuid.uuid4(), date(2026, 1, 1), date(2026, 12, 31),
        ) == set()


class TestPermissions:

    async def test_hr_manager_may_adjust_but_not_configure(self, client, auth_headers):
        headers = auth_headers(uuid.uuid4(), UserRole.hr_manager)
        resp = await client.post(
            "/api/v1/leave/types", json={"code": "study", "name": "Study"}, headers=headers,
        )
        assert resp.status_code == 403
        assert "leave:configure" in resp.json()["detail"]

    async def test_line_manager_may_not_adjust(self, client, auth_headers, employee_id):
        resp = await client.post(
            "/api/v1/leave/balances/carry-forward",
            json={
                "employee_id": str(employee_id),
                "leave_type_id": str(uuid.uuid4()),
                "from_year": 2026,
            },
            headers=auth_headers(uuid.uuid4(), UserRole.line_manager),
        )
        assert resp.status_code == 403
