"""Tests for the permissions HTTP endpoints."""

import pytest

from app.domain.permissions.exceptions import PermissionsUnavailableError
from app.domain.permissions.router import get_permission_service
from app.domain.permissions.service import PermissionService
from app.main import app
from conftest import add_employees, auth_headers, make_company, make_token, make_user


class _FailingService:
    """Stand-in service whose loads always fail with `error`"""

    def __init__(self, error):
        self.error = error

    def load_permissions(self, company_id):
        raise self.error


@pytest.fixture
def failing_service():
    def _install(error):
        app.dependency_overrides[get_permission_service] = lambda: _FailingService(error)

    return _install


class TestGetPermissions:
    def test_returns_camel_case_snapshot(self, client, db, plans):
        company = make_company(db, plan=plans["pro"])
        owner = make_user(db, company=company)

        response = client.get(f"/api/permissions/{company.id}", headers=auth_headers(owner))

        assert response.status_code == 200
        data = response.json()
        assert data["companyId"] == company.id
        assert data["subscription"]["status"] == "active"
        assert data["subscription"]["planName"] == "Pro"
        assert "expiresAt" in data["subscription"]
        assert data["modules"] == {
            "employee_management": True,
            "employee_schedules": True,
            "online_payments": True,
            "analytics": True,
            "multi_location": False,
            "api_access": False,
        }
        assert data["limits"] == {"maxEmployees": 20, "maxLocations": 3}

    def test_company_without_subscription(self, client, db):
        company = make_company(db)
        owner = make_user(db, company=company)

        response = client.get(f"/api/permissions/{company.id}", headers=auth_headers(owner))

        assert response.status_code == 200
        assert response.json()["subscription"]["status"] == "inactive"
        assert not any(response.json()["modules"].values())

    def test_missing_company_id(self, client):
        assert client.get("/api/permissions/").status_code == 400

    def test_blank_company_id(self, client, db):
        user = make_user(db)

        response = client.get("/api/permissions/%20", headers=auth_headers(user))

        assert response.status_code == 400
        assert response.json()["detail"] == "Company ID is required"

    def test_requires_authentication(self, client, db, plans):
        company = make_company(db, plan=plans["pro"])

        assert client.get(f"/api/permissions/{company.id}").status_code == 401

    def test_expired_token(self, client, db, plans):
        company = make_company(db, plan=plans["pro"])
        owner = make_user(db, company=company)
        token = make_token(owner.id, email=owner.email, expires_in=-60)

        response = client.get(f"/api/permissions/{company.id}", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401
        assert response.headers.get("X-Token-Expired") == "true"

    def test_token_signed_with_wrong_secret(self, client, db, plans):
        company = make_company(db, plan=plans["pro"])
        owner = make_user(db, company=company)
        token = make_token(owner.id, email=owner.email, secret="not-the-secret")

        response = client.get(f"/api/permissions/{company.id}", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401

    def test_non_member_is_forbidden(self, client, db, plans):
        company = make_company(db, plan=plans["pro"])
        outsider = make_user(db, company=make_company(db, name="Other Salon"))

        response = client.get(f"/api/permissions/{company.id}", headers=auth_headers(outsider))

        assert response.status_code == 403

    def test_admin_sees_any_company(self, client, db, plans):
        company = make_company(db, plan=plans["starter"])
        admin = make_user(db, role="admin")

        response = client.get(f"/api/permissions/{company.id}", headers=auth_headers(admin))

        assert response.status_code == 200

    def test_unknown_company(self, client, db):
        admin = make_user(db, role="admin")

        response = client.get("/api/permissions/no-such-company", headers=auth_headers(admin))

        assert response.status_code == 404
        assert response.json()["detail"] == "No permissions found for company"

    def test_store_unavailable(self, client, db, failing_service):
        admin = make_user(db, role="admin")
        failing_service(PermissionsUnavailableError("company-1", "connection refused"))

        response = client.get("/api/permissions/company-1", headers=auth_headers(admin))

        assert response.status_code == 503

    def test_unexpected_error(self, client, db, failing_service):
        admin = make_user(db, role="admin")
        failing_service(RuntimeError("boom"))

        response = client.get("/api/permissions/company-1", headers=auth_headers(admin))

        assert response.status_code == 500
        assert response.json()["detail"] == "Internal server error"

    def test_first_request_creates_local_user(self, client, db, plans):
        company = make_company(db, plan=plans["pro"])
        token = make_token("new-user-id", email="new@example.com")

        response = client.get(f"/api/permissions/{company.id}", headers={"Authorization": f"Bearer {token}"})

        # Authenticated but not a member yet
        assert response.status_code == 403


class TestLimitsAndRoutes:
    def test_employee_limit(self, client, db, plans):
        company = make_company(db, plan=plans["free"])
        owner = make_user(db, company=company)
        add_employees(db, company, 2)

        response = client.get(f"/api/permissions/{company.id}/limits/employees", headers=auth_headers(owner))

        assert response.status_code == 200
        assert response.json() == {"allowed": False, "current": 2, "max": 2}

    def test_location_limit(self, client, db, plans):
        company = make_company(db, plan=plans["enterprise"])
        owner = make_user(db, company=company)

        response = client.get(f"/api/permissions/{company.id}/limits/locations", headers=auth_headers(owner))

        assert response.json() == {"allowed": True, "current": 1, "max": None}

    def test_route_check(self, client, db, plans):
        company = make_company(db, plan=plans["starter"])
        owner = make_user(db, company=company)

        response = client.get(
            f"/api/permissions/{company.id}/route-check",
            params={"path": "/company_owner/analytics"},
            headers=auth_headers(owner),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["allowed"] is False
        assert data["missing_modules"] == ["analytics"]
        assert data["redirect_to"] == "/company_owner/subscription"


class TestAdminEndpoints:
    def test_non_admin_is_forbidden(self, client, db, plans):
        company = make_company(db, plan=plans["pro"])
        owner = make_user(db, company=company)

        response = client.put(
            f"/api/admin/companies/{company.id}/modules/analytics",
            json={"enabled": False},
            headers=auth_headers(owner),
        )

        assert response.status_code == 403

    def test_set_and_remove_override(self, client, db, plans):
        company = make_company(db, plan=plans["starter"])
        admin = make_user(db, role="admin")
        headers = auth_headers(admin)

        response = client.put(
            f"/api/admin/companies/{company.id}/modules/analytics",
            json={"enabled": True, "notes": "Trial"},
            headers=headers,
        )
        assert response.status_code == 200
        assert response.json()["permissions"]["modules"]["analytics"] is True

        response = client.delete(f"/api/admin/companies/{company.id}/modules/analytics", headers=headers)
        assert response.status_code == 200
        assert response.json()["permissions"]["modules"]["analytics"] is False

        response = client.get(f"/api/admin/companies/{company.id}/module-changes", headers=headers)
        assert response.status_code == 200
        assert sorted(c["action"] for c in response.json()) == ["override_removed", "overridden"]
        assert all(c["changedByUserId"] == admin.id for c in response.json())

    def test_unknown_module_is_rejected(self, client, db, plans):
        company = make_company(db, plan=plans["pro"])
        admin = make_user(db, role="admin")

        response = client.put(
            f"/api/admin/companies/{company.id}/modules/time_travel",
            json={"enabled": True},
            headers=auth_headers(admin),
        )

        assert response.status_code == 422

    def test_dependency_conflict(self, client, db, plans):
        company = make_company(db, plan=plans["pro"])
        admin = make_user(db, role="admin")

        response = client.put(
            f"/api/admin/companies/{company.id}/modules/employee_management",
            json={"enabled": False},
            headers=auth_headers(admin),
        )

        assert response.status_code == 409
        assert response.json()["conflicts"]

    def test_assign_plan(self, client, db, plans):
        company = make_company(db, plan=plans["free"])
        admin = make_user(db, role="admin")

        response = client.put(
            f"/api/admin/companies/{company.id}/subscription",
            json={"plan_id": plans["enterprise"].id},
            headers=auth_headers(admin),
        )

        assert response.status_code == 200
        data = response.json()
        assert len(data["transitions"]) == 6
        assert data["permissions"]["modules"]["api_access"] is True

    def test_assign_blank_plan(self, client, db):
        company = make_company(db)
        admin = make_user(db, role="admin")

        response = client.put(
            f"/api/admin/companies/{company.id}/subscription",
            json={"plan_id": "  "},
            headers=auth_headers(admin),
        )

        assert response.status_code == 422

    def test_remove_missing_override(self, client, db, plans):
        company = make_company(db, plan=plans["pro"])
        admin = make_user(db, role="admin")

        response = client.delete(
            f"/api/admin/companies/{company.id}/modules/analytics", headers=auth_headers(admin)
        )

        assert response.status_code == 404
        assert response.json() == {"detail": "No override for analytics"}

    def test_assign_unknown_plan(self, client, db):
        company = make_company(db)
        admin = make_user(db, role="admin")

        response = client.put(
            f"/api/admin/companies/{company.id}/subscription",
            json={"plan_id": "no-such-plan"},
            headers=auth_headers(admin),
        )

        assert response.status_code == 404
        assert response.json() == {"detail": "Plan not found"}

    def test_downgrade_reports_revocation_warnings(self, client, db, plans):
        company = make_company(db, plan=plans["starter"])
        admin = make_user(db, role="admin")

        response = client.put(
            f"/api/admin/companies/{company.id}/subscription",
            json={"plan_id": plans["free"].id},
            headers=auth_headers(admin),
        )

        assert response.status_code == 200
        transitions = {t["module"]: t for t in response.json()["transitions"]}
        management = transitions["employee_management"]
        assert management["toStatus"] is False
        assert management["dependenciesAffected"] == ["employee_schedules"]
        assert management["warnings"][0].endswith("You have 7 days to upgrade or export your data.")


class TestModuleWarnings:
    def _downgrade(self, db, plans):
        company = make_company(db, plan=plans["pro"])
        PermissionService(db).assign_plan(company.id, plans["starter"].id)
        return company

    def test_member_lists_and_acknowledges_warnings(self, client, db, plans):
        company = self._downgrade(db, plans)
        owner = make_user(db, company=company)
        headers = auth_headers(owner)

        response = client.get(f"/api/permissions/{company.id}/warnings", headers=headers)
        assert response.status_code == 200
        warnings = response.json()
        assert {w["moduleName"] for w in warnings} == {"analytics", "online_payments"}
        assert all(w["warningType"] == "downgrade_warning" for w in warnings)

        response = client.post(
            f"/api/permissions/{company.id}/warnings/{warnings[0]['id']}/acknowledge", headers=headers
        )
        assert response.status_code == 200
        assert response.json()["isAcknowledged"] is True
        assert response.json()["acknowledgedByUserId"] == owner.id

        response = client.get(f"/api/permissions/{company.id}/warnings", headers=headers)
        assert [w["id"] for w in response.json()] == [warnings[1]["id"]]

        response = client.get(
            f"/api/permissions/{company.id}/warnings",
            params={"include_acknowledged": True},
            headers=headers,
        )
        assert len(response.json()) == 2

    def test_acknowledge_unknown_warning(self, client, db, plans):
        company = make_company(db, plan=plans["pro"])
        owner = make_user(db, company=company)

        response = client.post(
            f"/api/permissions/{company.id}/warnings/999/acknowledge", headers=auth_headers(owner)
        )

        assert response.status_code == 404
        assert response.json() == {"detail": "Warning not found"}

    def test_non_member_cannot_see_warnings(self, client, db, plans):
        company = self._downgrade(db, plans)
        outsider = make_user(db, company=make_company(db, plan=plans["pro"], name="Other"))

        response = client.get(f"/api/permissions/{company.id}/warnings", headers=auth_headers(outsider))

        assert response.status_code == 403
