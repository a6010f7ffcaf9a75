"""Permissions router - FastAPI endpoints for company module permissions"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...config import PERMISSIONS_RATE_LIMIT, PERMISSIONS_RATE_WINDOW
from ...database import get_db
from ...models import User
from ...rate_limiter import create_rate_limiter
from .catalog import ModuleName
from .exceptions import PermissionsError
from .guard import GuardDecision, check_route, ensure_company_access, require_admin
from .schemas import (
    AssignPlanRequest,
    CompanyPermissions,
    LimitCheck,
    ModuleChangeResponse,
    ModuleOverrideRequest,
    ModuleWarningResponse,
    OverrideResult,
    PlanChangeResult,
)
from .service import PermissionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/permissions", tags=["Permissions"])
admin_router = APIRouter(prefix="/api/admin/companies", tags=["Admin Permissions"])

permissions_rate_limit = create_rate_limiter(
    limit=PERMISSIONS_RATE_LIMIT, window_seconds=PERMISSIONS_RATE_WINDOW, key_prefix="permissions"
)


def get_permission_service(db: Session = Depends(get_db)) -> PermissionService:
    """Dependency injection for PermissionService"""
    return PermissionService(db)


def _require_company_id(company_id: str) -> str:
    company_id = (company_id or "").strip()
    if not company_id:
        raise HTTPException(status_code=400, detail="Company ID is required")
    return company_id


# ============================================================================
# PERMISSIONS QUERY
# ============================================================================


@router.get("/", include_in_schema=False)
async def get_permissions_without_company():
    raise HTTPException(status_code=400, detail="Company ID is required")


@router.get("/{company_id}", response_model=CompanyPermissions)
async def get_company_permissions(
    company_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: PermissionService = Depends(get_permission_service),
    _: None = Depends(permissions_rate_limit),
):
    """Get the resolved module permissions of a company"""
    company_id = _require_company_id(company_id)
    ensure_company_access(db, user, company_id)

    try:
        return service.load_permissions(company_id)
    except (HTTPException, PermissionsError):
        raise
    except Exception as e:
        logger.error(f"❌ Error fetching permissions for company {company_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.get("/{company_id}/limits/employees", response_model=LimitCheck)
async def get_employee_limit(
    company_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: PermissionService = Depends(get_permission_service),
):
    """Check whether the company may add another employee"""
    company_id = _require_company_id(company_id)
    ensure_company_access(db, user, company_id)
    return service.check_employee_limit(company_id)


@router.get("/{company_id}/limits/locations", response_model=LimitCheck)
async def get_location_limit(
    company_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: PermissionService = Depends(get_permission_service),
):
    """Check whether the company is within its location limit"""
    company_id = _require_company_id(company_id)
    ensure_company_access(db, user, company_id)
    return service.check_location_limit(company_id)


@router.get("/{company_id}/route-check", response_model=GuardDecision)
async def get_route_decision(
    company_id: str,
    path: str = Query(..., min_length=1),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: PermissionService = Depends(get_permission_service),
):
    """Decide whether a dashboard page may render, and where to redirect if not"""
    company_id = _require_company_id(company_id)
    ensure_company_access(db, user, company_id)
    return check_route(service, company_id, path)


@router.get("/{company_id}/warnings", response_model=list[ModuleWarningResponse])
async def list_module_warnings(
    company_id: str,
    include_acknowledged: bool = False,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: PermissionService = Depends(get_permission_service),
):
    """Revocation warnings for modules the company is about to lose, newest first"""
    company_id = _require_company_id(company_id)
    ensure_company_access(db, user, company_id)
    return service.get_module_warnings(company_id, include_acknowledged)


@router.post("/{company_id}/warnings/{warning_id}/acknowledge", response_model=ModuleWarningResponse)
async def acknowledge_module_warning(
    company_id: str,
    warning_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: PermissionService = Depends(get_permission_service),
):
    """Mark a revocation warning as seen"""
    company_id = _require_company_id(company_id)
    ensure_company_access(db, user, company_id)
    return service.acknowledge_warning(company_id, warning_id, user_id=user.id)


# ============================================================================
# ADMIN: OVERRIDES, PLAN ASSIGNMENT, AUDIT TRAIL
# ============================================================================


@admin_router.put("/{company_id}/modules/{module}", response_model=OverrideResult)
async def set_module_override(
    company_id: str,
    module: ModuleName,
    body: ModuleOverrideRequest,
    admin: User = Depends(require_admin),
    service: PermissionService = Depends(get_permission_service),
):
    """Enable or disable a module for one company regardless of its plan"""
    return service.set_override(company_id, module, body.enabled, notes=body.notes, changed_by=admin.id)


@admin_router.delete("/{company_id}/modules/{module}", response_model=OverrideResult)
async def remove_module_override(
    company_id: str,
    module: ModuleName,
    admin: User = Depends(require_admin),
    service: PermissionService = Depends(get_permission_service),
):
    """Remove a company override so the plan decides again"""
    return service.remove_override(company_id, module, changed_by=admin.id)


@admin_router.get("/{company_id}/module-changes", response_model=list[ModuleChangeResponse])
async def list_module_changes(
    company_id: str,
    module: Optional[ModuleName] = None,
    limit: int = Query(50, ge=1, le=500),
    admin: User = Depends(require_admin),
    service: PermissionService = Depends(get_permission_service),
):
    """Audit trail of module changes, newest first"""
    return service.get_module_changes(company_id, module, limit)


@admin_router.put("/{company_id}/subscription", response_model=PlanChangeResult)
async def assign_company_plan(
    company_id: str,
    body: AssignPlanRequest,
    admin: User = Depends(require_admin),
    service: PermissionService = Depends(get_permission_service),
):
    """Manually put a company on a plan (admin function)"""
    return service.assign_plan(company_id, body.plan_id, changed_by=admin.id)
