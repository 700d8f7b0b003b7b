"""HTTP API tests — auth, role checks, problem+json errors and the request
lifecycle end to end through the FastAPI app."""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

from leave_engine.common.constants import UserRole

BASE = "/api/v1/leave"
PROBLEM_JSON = "application/problem+json"


def _draft(leave_type_id: uuid.UUID, **overrides) -> dict:
    body = {
        "leave_type_id": str(leave_type_id),
        "start_date": "2026-03-02",
        "end_date": "2026-03-06",
        "reason": "Family holiday",
    }
    body.update(overrides)
    return body


# ═════════════════════════════════════════════════════════════════════
# Auth
# ═════════════════════════════════════════════════════════════════════


class TestAuth:

    async def test_health_is_public(self, client):
        resp = await client.get("/api/v1/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"

    async def test_missing_token_is_401(self, client):
        resp = await client.get(f"{BASE}/types")
        assert resp.status_code == 401

    async def test_expired_token_is_401(self, client, token_factory, employee_id, company_id):
        token = token_factory(employee_id, company_id, expired=True)
        resp = await client.get(f"{BASE}/types", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Token has expired."

    async def test_refresh_token_rejected(self, client, token_factory, employee_id, company_id):
        token = token_factory(employee_id, company_id, token_type="refresh")
        resp = await client.get(f"{BASE}/types", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401

    async def test_tampered_token_is_401(self, client, auth_headers, employee_id):
        headers = auth_headers(employee_id)
        headers["Authorization"] += "x"
        resp = await client.get(f"{BASE}/types", headers=headers)
        assert resp.status_code == 401


# ═════════════════════════════════════════════════════════════════════
# Leave types
# ═════════════════════════════════════════════════════════════════════


class TestLeaveTypesAPI:

    async def test_admin_creates_type(self, client, auth_headers):
        resp = await client.post(
            f"{BASE}/types",
            json={"code": "study", "name": "Study Leave", "default_days_per_year": "5"},
            headers=auth_headers(uuid.uuid4(), UserRole.hr_admin),
        )
        assert resp.status_code == 201
        body = resp.json()
        assert body["code"] == "study"
        assert Decimal(body["default_days_per_year"]) == Decimal("5")
        assert body["is_active"] is True

    async def test_employee_cannot_create_type(self, client, auth_headers, employee_id):
        resp = await client.post(
            f"{BASE}/types",
            json={"code": "study", "name": "Study Leave"},
            headers=auth_headers(employee_id),
        )
        assert resp.status_code == 403
        assert resp.headers["content-type"].startswith(PROBLEM_JSON)
        assert resp.json()["type"].endswith("/forbidden")

    async def test_duplicate_code_is_409(self, client, auth_headers):
        headers = auth_headers(uuid.uuid4(), UserRole.system_admin)
        payload = {"code": "study", "name": "Study Leave"}
        assert (await client.post(f"{BASE}/types", json=payload, headers=headers)).status_code == 201

        resp = await client.post(f"{BASE}/types", json=payload, headers=headers)
        assert resp.status_code == 409
        body = resp.json()
        assert body["type"].endswith("/duplicate-code")
        assert body["instance"] == f"{BASE}/types"
        assert "code" in body["errors"]

    async def test_seed_and_list_in_display_order(self, client, auth_headers, employee_id):
        admin = auth_headers(uuid.uuid4(), UserRole.hr_admin)
        seeded = await client.post(f"{BASE}/types/seed", headers=admin)
        assert seeded.status_code == 200

        resp = await client.get(f"{BASE}/types", headers=auth_headers(employee_id))
        codes = [t["code"] for t in resp.json()]
        assert codes[:3] == ["annual", "sick", "family_responsibility"]
        assert codes == [t["code"] for t in seeded.json()]

    async def test_deactivate_hides_type(self, client, auth_headers, make_leave_type):
        lt = await make_leave_type()
        admin = auth_headers(uuid.uuid4(), UserRole.hr_admin)

        resp = await client.post(f"{BASE}/types/{lt.id}/deactivate", headers=admin)
        assert resp.status_code == 200
        assert resp.json()["is_active"] is False

        listed = await client.get(f"{BASE}/types", headers=admin)
        assert listed.json() == []
        everything = await client.get(f"{BASE}/types?include_inactive=true", headers=admin)
        assert len(everything.json()) == 1

    async def test_other_company_type_is_404(self, client, auth_headers, make_leave_type):
        lt = await make_leave_type(for_company=uuid.uuid4())
        resp = await client.patch(
            f"{BASE}/types/{lt.id}",
            json={"name": "Hijacked"},
            headers=auth_headers(uuid.uuid4(), UserRole.hr_admin),
        )
        assert resp.status_code == 404
        assert resp.json()["type"].endswith("/not-found")

    async def test_invalid_payload_is_problem_json(self, client, auth_headers):
        resp = await client.post(
            f"{BASE}/types",
            json={"code": "Bad Code", "name": ""},
            headers=auth_headers(uuid.uuid4(), UserRole.hr_admin),
        )
        assert resp.status_code == 422
        assert resp.headers["content-type"].startswith(PROBLEM_JSON)
        errors = resp.json()["errors"]
        assert "code" in errors
        assert "name" in errors


# ═════════════════════════════════════════════════════════════════════
# Requests
# ═════════════════════════════════════════════════════════════════════


class TestRequestLifecycleAPI:

    async def test_draft_submit_approve_cancel(
        self, client, auth_headers, make_leave_type, employee_id, manager_id, directory,
    ):
        lt = await make_leave_type()
        directory.add(employee_id, "Ayanda", "Zulu")
        me = auth_headers(employee_id)
        manager = auth_headers(manager_id, UserRole.line_manager, name="Pieter van Wyk")

        created = await client.post(f"{BASE}/requests", json=_draft(lt.id), headers=me)
        assert created.status_code == 201
        body = created.json()
        request_id = body["id"]
        assert body["status"] == "draft"
        assert Decimal(body["working_days"]) == Decimal("5")
        assert body["employee_name"] == "Ayanda Zulu"
        assert body["leave_type_name"] == "Annual Leave"

        submitted = await client.post(f"{BASE}/requests/{request_id}/submit", headers=me)
        assert submitted.json()["status"] == "pending"

        approved = await client.post(
            f"{BASE}/requests/{request_id}/approve",
            json={"comments": "Enjoy the break"},
            headers=manager,
        )
        assert approved.status_code == 200
        history = approved.json()["approval_history"]
        assert history[-1]["action"] == "approved"
        assert history[-1]["approver_name"] == "Pieter van Wyk"

        balances = await client.get(f"{BASE}/balances/{employee_id}?year=2026", headers=me)
        [annual] = balances.json()
        assert Decimal(annual["taken"]) == Decimal("5")
        assert Decimal(annual["current_balance"]) == Decimal("10")

        cancelled = await client.post(
            f"{BASE}/requests/{request_id}/cancel",
            json={"reason": "Flight cancelled"},
            headers=me,
        )
        assert cancelled.json()["status"] == "cancelled"

        balances = await client.get(f"{BASE}/balances/{employee_id}?year=2026", headers=me)
        assert Decimal(balances.json()[0]["current_balance"]) == Decimal("15")

    async def test_employee_cannot_approve(
        self, client, auth_headers, make_leave_type, employee_id,
    ):
        lt = await make_leave_type()
        me = auth_headers(employee_id)
        created = await client.post(
            f"{BASE}/requests", json=_draft(lt.id, submit=True), headers=me,
        )

        resp = await client.post(
            f"{BASE}/requests/{created.json()['id']}/approve", json={}, headers=me,
        )
        assert resp.status_code == 403

    async def test_second_approval_is_409(
        self, client, auth_headers, make_leave_type, employee_id, manager_id,
    ):
        lt = await make_leave_type()
        created = await client.post(
            f"{BASE}/requests", json=_draft(lt.id, submit=True), headers=auth_headers(employee_id),
        )
        url = f"{BASE}/requests/{created.json()['id']}/approve"
        manager = auth_headers(manager_id, UserRole.hr_manager)

        assert (await client.post(url, json={}, headers=manager)).status_code == 200
        resp = await client.post(url, json={}, headers=manager)
        assert resp.status_code == 409
        assert resp.headers["content-type"].startswith(PROBLEM_JSON)
        assert resp.json()["type"].endswith("/invalid-transition")

    async def test_insufficient_balance_is_422(
        self, client, auth_headers, make_leave_type, employee_id,
    ):
        lt = await make_leave_type(default_days_per_year=Decimal("2"))
        resp = await client.post(
            f"{BASE}/requests", json=_draft(lt.id, submit=True), headers=auth_headers(employee_id),
        )
        assert resp.status_code == 422
        body = resp.json()
        assert body["type"].endswith("/insufficient-balance")
        assert "Insufficient leave balance" in body["detail"]

        listing = await client.get(f"{BASE}/requests", headers=auth_headers(employee_id))
        assert listing.json()["meta"]["total"] == 0

    async def test_reject_requires_comments(
        self, client, auth_headers, make_leave_type, employee_id, manager_id,
    ):
        lt = await make_leave_type()
        created = await client.post(
            f"{BASE}/requests", json=_draft(lt.id, submit=True), headers=auth_headers(employee_id),
        )
        url = f"{BASE}/requests/{created.json()['id']}/reject"
        manager = auth_headers(manager_id, UserRole.line_manager)

        assert (await client.post(url, json={"comments": "no"}, headers=manager)).status_code == 422
        resp = await client.post(url, json={"comments": "Quarter-end freeze"}, headers=manager)
        assert resp.status_code == 200
        assert resp.json()["status"] == "rejected"

    async def test_employee_sees_only_own_requests(
        self, client, auth_headers, make_leave_type, employee_id,
    ):
        lt = await make_leave_type()
        colleague = uuid.uuid4()
        theirs = await client.post(
            f"{BASE}/requests", json=_draft(lt.id), headers=auth_headers(colleague),
        )
        await client.post(f"{BASE}/requests", json=_draft(lt.id), headers=auth_headers(employee_id))

        me = auth_headers(employee_id)
        listing = await client.get(f"{BASE}/requests?employee_id={colleague}", headers=me)
        assert [r["employee_id"] for r in listing.json()["data"]] == [str(employee_id)]

        resp = await client.get(f"{BASE}/requests/{theirs.json()['id']}", headers=me)
        assert resp.status_code == 404

    async def test_filing_for_someone_else_needs_hr(
        self, client, auth_headers, make_leave_type, employee_id,
    ):
        lt = await make_leave_type()
        colleague = uuid.uuid4()
        body = _draft(lt.id, employee_id=str(colleague))

        resp = await client.post(f"{BASE}/requests", json=body, headers=auth_headers(employee_id))
        assert resp.status_code == 403

        resp = await client.post(
            f"{BASE}/requests", json=body, headers=auth_headers(uuid.uuid4(), UserRole.hr_manager),
        )
        assert resp.status_code == 201
        assert resp.json()["employee_id"] == str(colleague)

    async def test_edit_draft(
        self, client, auth_headers, make_leave_type, employee_id,
    ):
        lt = await make_leave_type()
        me = auth_headers(employee_id)
        created = await client.post(f"{BASE}/requests", json=_draft(lt.id), headers=me)

        resp = await client.patch(
            f"{BASE}/requests/{created.json()['id']}",
            json={"end_date": "2026-03-03"},
            headers=me,
        )
        assert resp.status_code == 200
        assert Decimal(resp.json()["working_days"]) == Decimal("2")

    async def test_list_filters_by_status_for_managers(
        self, client, auth_headers, make_leave_type, employee_id, manager_id,
    ):
        lt = await make_leave_type()
        me = auth_headers(employee_id)
        await client.post(f"{BASE}/requests", json=_draft(lt.id), headers=me)
        await client.post(
            f"{BASE}/requests",
            json=_draft(lt.id, start_date="2026-03-09", end_date="2026-03-09", submit=True),
            headers=me,
        )

        resp = await client.get(
            f"{BASE}/requests?status=pending",
            headers=auth_headers(manager_id, UserRole.line_manager),
        )
        body = resp.json()
        assert body["meta"]["total"] == 1
        assert body["data"][0]["status"] == "pending"


# ═════════════════════════════════════════════════════════════════════
# Balances
# ═════════════════════════════════════════════════════════════════════


class TestBalancesAPI:

    async def test_initialize_adjust_and_carry_forward(
        self, client, auth_headers, make_leave_type, employee_id,
    ):
        lt = await make_leave_type(max_carry_over=Decimal("5"))
        hr = auth_headers(uuid.uuid4(), UserRole.hr_manager)

        init = await client.post(
            f"{BASE}/balances/initialize",
            json={"employee_id": str(employee_id), "leave_type_id": str(lt.id), "year": 2026},
            headers=hr,
        )
        assert init.status_code == 200
        assert Decimal(init.json()["current_balance"]) == Decimal("15")

        adjusted = await client.post(
            f"{BASE}/balances/adjust",
            json={
                "employee_id": str(employee_id),
                "leave_type_id": str(lt.id),
                "adjustment": "-3",
                "reason": "Days taken before go-live",
                "year": 2026,
            },
            headers=hr,
        )
        assert adjusted.status_code == 200
        assert Decimal(adjusted.json()["adjusted"]) == Decimal("-3")
        assert Decimal(adjusted.json()["current_balance"]) == Decimal("12")

        closed = await client.post(
            f"{BASE}/balances/carry-forward",
            json={"employee_id": str(employee_id), "leave_type_id": str(lt.id), "from_year": 2026},
            headers=hr,
        )
        assert closed.status_code == 200
        source, target = closed.json()
        assert Decimal(source["forfeited"]) == Decimal("7")
        assert target["cycle_year"] == 2027
        assert Decimal(target["carried_forward"]) == Decimal("5")

    async def test_journal_entries_endpoint(
        self, client, auth_headers, make_leave_type, employee_id,
    ):
        lt = await make_leave_type()
        hr = auth_headers(uuid.uuid4(), UserRole.hr_manager)
        await client.post(
            f"{BASE}/balances/adjust",
            json={
                "employee_id": str(employee_id),
                "leave_type_id": str(lt.id),
                "adjustment": "1.5",
                "reason": "Worked the public holiday",
                "year": 2026,
            },
            headers=hr,
        )

        url = f"{BASE}/balances/{employee_id}/entries?leave_type_id={lt.id}&year=2026"
        resp = await client.get(url, headers=auth_headers(employee_id))
        assert resp.status_code == 200
        entries = {e["transaction_type"]: Decimal(e["days"]) for e in resp.json()}
        assert entries == {"accrual": Decimal("15"), "adjustment_add": Decimal("1.5")}

        colleague = auth_headers(uuid.uuid4())
        assert (await client.get(url, headers=colleague)).status_code == 403

        missing = await client.get(
            f"{BASE}/balances/{employee_id}/entries?leave_type_id={lt.id}&year=2025",
            headers=hr,
        )
        assert missing.status_code == 404

    async def test_employee_cannot_adjust(
        self, client, auth_headers, make_leave_type, employee_id,
    ):
        lt = await make_leave_type()
        resp = await client.post(
            f"{BASE}/balances/adjust",
            json={
                "employee_id": str(employee_id),
                "leave_type_id": str(lt.id),
                "adjustment": "10",
                "reason": "Treating myself",
            },
            headers=auth_headers(employee_id),
        )
        assert resp.status_code == 403

    async def test_quarter_day_adjustment_rejected(
        self, client, auth_headers, make_leave_type, employee_id,
    ):
        lt = await make_leave_type()
        resp = await client.post(
            f"{BASE}/balances/adjust",
            json={
                "employee_id": str(employee_id),
                "leave_type_id": str(lt.id),
                "adjustment": "0.25",
                "reason": "Rounding test",
            },
            headers=auth_headers(uuid.uuid4(), UserRole.hr_admin),
        )
        assert resp.status_code == 422

    async def test_employee_cannot_read_colleague_balances(
        self, client, auth_headers, employee_id,
    ):
        resp = await client.get(f"{BASE}/balances/{uuid.uuid4()}", headers=auth_headers(employee_id))
        assert resp.status_code == 403

    async def test_carry_forward_without_balance_is_404(
        self, client, auth_headers, make_leave_type, employee_id,
    ):
        lt = await make_leave_type()
        resp = await client.post(
            f"{BASE}/balances/carry-forward",
            json={"employee_id": str(employee_id), "leave_type_id": str(lt.id), "from_year": 2026},
            headers=auth_headers(uuid.uuid4(), UserRole.hr_admin),
        )
        assert resp.status_code == 404


# ═════════════════════════════════════════════════════════════════════
# Views
# ═════════════════════════════════════════════════════════════════════


class TestViewsAPI:

    async def test_calendar_and_summary(
        self, client, auth_headers, make_leave_type, employee_id, manager_id,
    ):
        lt = await make_leave_type()
        await client.post(
            f"{BASE}/requests", json=_draft(lt.id, submit=True), headers=auth_headers(employee_id),
        )
        manager = auth_headers(manager_id, UserRole.line_manager)

        cal = await client.get(
            f"{BASE}/calendar?start_date=2026-03-01&end_date=2026-03-31", headers=manager,
        )
        assert cal.status_code == 200
        assert cal.json()["total_entries"] == 1

        summary = await client.get(f"{BASE}/summary", headers=manager)
        assert summary.json()["pending"] == 1
        assert summary.json()["total"] == 1

        queue = await client.get(f"{BASE}/pending-approvals", headers=manager)
        assert len(queue.json()) == 1

    async def test_inverted_calendar_window_is_422(self, client, auth_headers, employee_id):
        resp = await client.get(
            f"{BASE}/calendar?start_date=2026-03-31&end_date=2026-03-01",
            headers=auth_headers(employee_id),
        )
        assert resp.status_code == 422

    async def test_summary_needs_approver_role(self, client, auth_headers, employee_id):
        resp = await client.get(f"{BASE}/summary", headers=auth_headers(employee_id))
        assert resp.status_code == 403

    async def test_on_leave_today(
        self, client, auth_headers, make_leave_type, employee_id, manager_id,
    ):
        lt = await make_leave_type()
        created = await client.post(
            f"{BASE}/requests", json=_draft(lt.id, submit=True), headers=auth_headers(employee_id),
        )
        await client.post(
            f"{BASE}/requests/{created.json()['id']}/approve",
            json={},
            headers=auth_headers(manager_id, UserRole.hr_admin),
        )

        resp = await client.get(
            f"{BASE}/on-leave-today?today=2026-03-04", headers=auth_headers(manager_id),
        )
        assert [r["employee_id"] for r in resp.json()] == [str(employee_id)]

    async def test_working_days_preview_uses_holidays(
        self, client, auth_headers, employee_id, holidays,
    ):
        holidays.dates.add(date(2026, 3, 4))
        resp = await client.get(
            f"{BASE}/working-days?start_date=2026-03-02&end_date=2026-03-06",
            headers=auth_headers(employee_id),
        )
        assert resp.status_code == 200
        assert Decimal(resp.json()["working_days"]) == Decimal("4")
