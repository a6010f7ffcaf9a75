"""
Permission resolver - computes the effective module state of a company.

Precedence, highest first:
1. A subscription that is not active disables every module.
2. A company override row decides the module, in either direction.
3. The plan grant; modules missing from the plan are disabled.
"""

import logging
from typing import Iterable, Optional

from .catalog import ModuleName, SubscriptionStatus, empty_grants
from .schemas import (
    CompanyPermissions,
    OverrideRecord,
    PermissionLimits,
    PlanRecord,
    SubscriptionInfo,
    SubscriptionRecord,
)

logger = logging.getLogger(__name__)


def resolve(
    company_id: str,
    subscription: Optional[SubscriptionRecord],
    plan: Optional[PlanRecord],
    overrides: Iterable[OverrideRecord] = (),
    overrides_apply_when_inactive: bool = False,
) -> CompanyPermissions:
    """Build the CompanyPermissions snapshot for one company.

    A missing subscription is treated as inactive. A subscription whose plan
    cannot be found resolves to no modules, overrides included. Override
    rows for other companies are ignored.
    """
    status = subscription.status if subscription else SubscriptionStatus.INACTIVE
    modules = empty_grants()

    plan_missing = bool(subscription and subscription.plan_id and plan is None)
    if plan_missing:
        # Billing data can be briefly inconsistent during plan changes
        logger.warning(
            f"⚠️ Subscription of company {company_id} references missing plan "
            f"{subscription.plan_id} - all modules disabled"
        )

    if status == SubscriptionStatus.ACTIVE and not plan_missing:
        for module in ModuleName:
            modules[module] = effective_plan_grant(plan, module)

    # Inactive subscriptions only see overrides when the owner opted in
    if not plan_missing and (status == SubscriptionStatus.ACTIVE or overrides_apply_when_inactive):
        for override in overrides:
            if override.company_id != company_id:
                continue
            modules[override.module] = override.is_enabled

    return CompanyPermissions(
        company_id=company_id,
        subscription=SubscriptionInfo(
            status=status,
            plan_name=(plan.display_name or plan.name) if plan else None,
            expires_at=subscription.current_period_end if subscription else None,
        ),
        modules=modules,
        overrides_apply_when_inactive=overrides_apply_when_inactive,
        limits=PermissionLimits(
            max_employees=plan.max_employees if plan else None,
            max_locations=plan.max_locations if plan else None,
        ),
    )


def effective_plan_grant(plan: Optional[PlanRecord], module: ModuleName) -> bool:
    """What the plan alone grants, ignoring overrides and subscription status"""
    if plan is None:
        return False
    return bool(plan.module_grants.get(module, False))
