"""
Module catalog - the closed set of gateable product modules.

Single source of truth for module display metadata, the plan tiers that
include each module, module dependencies and the page routes each module
protects. Defined at import time and never mutated.
"""

from enum import Enum
from types import MappingProxyType
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict


class ModuleName(str, Enum):
    """Independently gateable product modules"""

    EMPLOYEE_MANAGEMENT = "employee_management"
    EMPLOYEE_SCHEDULES = "employee_schedules"
    ONLINE_PAYMENTS = "online_payments"
    ANALYTICS = "analytics"
    MULTI_LOCATION = "multi_location"
    API_ACCESS = "api_access"


class PlanTier(str, Enum):
    """Plan tiers, declared from lowest to highest"""

    FREE = "free"
    STARTER = "starter"
    PRO = "pro"
    ENTERPRISE = "enterprise"

    @property
    def ordinal(self) -> int:
        return list(PlanTier).index(self)


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    PAST_DUE = "past_due"
    CANCELLED = "cancelled"


class ModuleCatalogEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    module: ModuleName
    display_name: str
    description: str
    minimum_plan_tiers: tuple[PlanTier, ...]  # lowest tier first
    requires: tuple[ModuleName, ...] = ()


_ENTRIES = (
    ModuleCatalogEntry(
        module=ModuleName.EMPLOYEE_MANAGEMENT,
        display_name="Employee Management",
        description="Add, edit and manage the employees of your company",
        minimum_plan_tiers=(PlanTier.STARTER, PlanTier.PRO, PlanTier.ENTERPRISE),
    ),
    ModuleCatalogEntry(
        module=ModuleName.EMPLOYEE_SCHEDULES,
        display_name="Employee Schedules",
        description="Plan employee working hours and availability",
        minimum_plan_tiers=(PlanTier.STARTER, PlanTier.PRO, PlanTier.ENTERPRISE),
        requires=(ModuleName.EMPLOYEE_MANAGEMENT,),
    ),
    ModuleCatalogEntry(
        module=ModuleName.ONLINE_PAYMENTS,
        display_name="Online Payments",
        description="Accept card payments for bookings through Stripe",
        minimum_plan_tiers=(PlanTier.PRO, PlanTier.ENTERPRISE),
    ),
    ModuleCatalogEntry(
        module=ModuleName.ANALYTICS,
        display_name="Analytics & Reporting",
        description="Revenue charts, booking statistics and business insights",
        minimum_plan_tiers=(PlanTier.PRO, PlanTier.ENTERPRISE),
    ),
    ModuleCatalogEntry(
        module=ModuleName.MULTI_LOCATION,
        display_name="Multiple Locations",
        description="Manage several branches of your business",
        minimum_plan_tiers=(PlanTier.ENTERPRISE,),
    ),
    ModuleCatalogEntry(
        module=ModuleName.API_ACCESS,
        display_name="API Access",
        description="Integrate external systems through the public API",
        minimum_plan_tiers=(PlanTier.ENTERPRISE,),
    ),
)

MODULE_CATALOG = MappingProxyType({entry.module: entry for entry in _ENTRIES})

# Every module must be described exactly once
assert set(MODULE_CATALOG) == set(ModuleName), "Module catalog out of sync with ModuleName"

# Page routes gated by modules (all listed modules are required)
ROUTE_MODULES = MappingProxyType(
    {
        "/company_owner/analytics": (ModuleName.ANALYTICS,),
        "/company_owner/employees": (ModuleName.EMPLOYEE_MANAGEMENT,),
        # Advanced customer features require employee management
        "/company_owner/customers": (ModuleName.EMPLOYEE_MANAGEMENT,),
        "/employee/schedule": (ModuleName.EMPLOYEE_SCHEDULES,),
        "/employee/services": (ModuleName.EMPLOYEE_SCHEDULES,),
    }
)


def to_module(value: Union[str, ModuleName]) -> ModuleName:
    """Convert a raw module name to ModuleName; raises ValueError for unknown names"""
    return value if isinstance(value, ModuleName) else ModuleName(value)


def parse_module(value: str) -> Optional[ModuleName]:
    """Lenient conversion for data-store rows: unknown names are ignored, not fatal"""
    try:
        return ModuleName(value)
    except ValueError:
        return None


def describe(module: Union[str, ModuleName]) -> ModuleCatalogEntry:
    return MODULE_CATALOG[to_module(module)]


def minimum_required_tier(module: Union[str, ModuleName]) -> PlanTier:
    """Lowest plan tier whose grants include this module"""
    return min(describe(module).minimum_plan_tiers, key=lambda tier: tier.ordinal)


# Upgrade prompts point at the cheapest plan that unlocks the module
upgrade_target_for_module = minimum_required_tier


def get_upgrade_message(module: Union[str, ModuleName]) -> str:
    entry = describe(module)
    return f"{entry.display_name} is not available on your current plan. Upgrade to access this feature."


REVOCATION_REASONS = MappingProxyType(
    {
        "subscription_change": "due to subscription plan change",
        "expiration": "due to subscription expiration",
        "downgrade": "due to plan downgrade",
        "admin_override": "by administrator",
    }
)


def get_revocation_warning(module: Union[str, ModuleName], reason: str, days: int) -> str:
    entry = describe(module)
    because = REVOCATION_REASONS.get(reason, "manually")
    return (
        f"{entry.display_name} will be disabled {because}. "
        f"You have {days} days to upgrade or export your data."
    )


def required_modules_for_route(pathname: str) -> list[ModuleName]:
    """Modules a page route needs; empty when the route is not gated"""
    path = pathname.split("?", 1)[0].rstrip("/") or "/"
    return list(ROUTE_MODULES.get(path, ()))


def dependents_of(module: ModuleName) -> list[ModuleName]:
    """Modules that require the given module"""
    return [entry.module for entry in _ENTRIES if module in entry.requires]


def empty_grants() -> dict[ModuleName, bool]:
    """A fully populated module map with everything disabled"""
    return {module: False for module in ModuleName}


def modules_for_tier(tier: Union[str, PlanTier]) -> dict[ModuleName, bool]:
    """Default module grants of a plan tier, as listed in the catalog"""
    tier = tier if isinstance(tier, PlanTier) else PlanTier(tier)
    return {entry.module: tier in entry.minimum_plan_tiers for entry in _ENTRIES}
