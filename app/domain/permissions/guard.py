"""
Server-side module guards.

`require_module` and `check_route` only decide; rendering code turns a denial
into a redirect to SUBSCRIPTION_UPGRADE_PATH. `module_required` is the FastAPI
dependency for API routes and answers 403 with an upgrade message.
"""

import logging
from typing import Optional, Union

from fastapi import Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...config import SUBSCRIPTION_UPGRADE_PATH
from ...database import get_db
from ...models import User
from .catalog import ModuleName, get_upgrade_message, required_modules_for_route, to_module
from .repository import PermissionRepository
from .service import PermissionService

logger = logging.getLogger(__name__)


class GuardDecision(BaseModel):
    allowed: bool
    missing_modules: list[ModuleName] = Field(default_factory=list)
    redirect_to: Optional[str] = None
    message: Optional[str] = None


def upgrade_redirect_path() -> str:
    return SUBSCRIPTION_UPGRADE_PATH


def require_module(service: PermissionService, company_id: str, module: Union[str, ModuleName]) -> bool:
    """True when the module is enabled for the company.

    Store failures propagate as PermissionsUnavailableError; the caller picks
    between an error page and failing closed.
    """
    permissions = service.load_permissions(company_id)
    return permissions.module_enabled(to_module(module))


def check_route(service: PermissionService, company_id: str, pathname: str) -> GuardDecision:
    """Decide whether a page route may render for the company"""
    required = required_modules_for_route(pathname)
    if not required:
        return GuardDecision(allowed=True)

    permissions = service.load_permissions(company_id)
    missing = [module for module in required if not permissions.module_enabled(module)]
    if not missing:
        return GuardDecision(allowed=True)

    logger.info(f"🔒 Route {pathname} denied for company {company_id}: missing {[m.value for m in missing]}")
    return GuardDecision(
        allowed=False,
        missing_modules=missing,
        redirect_to=upgrade_redirect_path(),
        message=get_upgrade_message(missing[0]),
    )


def ensure_company_access(db: Session, user: User, company_id: str) -> None:
    """Raise 403 unless the user belongs to the company; admins see every company"""
    if user.role == "admin":
        return
    if not PermissionRepository.is_company_member(db, company_id, user.id):
        logger.warning(f"⚠️ User {user.id} denied access to company {company_id}")
        raise HTTPException(status_code=403, detail="Access denied")


def require_admin(user: User = Depends(get_current_user)) -> User:
    """FastAPI dependency allowing admins only"""
    if user.role != "admin":
        raise HTTPException(status_code=403, detail="Access denied. Admin privileges required.")
    return user


def module_required(module: Union[str, ModuleName]):
    """
    Create a dependency that gates an API route on a module.

    The route must take a `company_id` path parameter.

    Example usage:
        @router.get("/companies/{company_id}/analytics/revenue")
        async def revenue(company_id: str, _: None = Depends(module_required(ModuleName.ANALYTICS))):
            ...
    """
    required = to_module(module)

    def dependency(
        company_id: str,
        user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
    ) -> None:
        ensure_company_access(db, user, company_id)
        if not require_module(PermissionService(db), company_id, required):
            raise HTTPException(
                status_code=403,
                detail={
                    "message": get_upgrade_message(required),
                    "module": required.value,
                    "upgradePath": upgrade_redirect_path(),
                },
            )

    return dependency
