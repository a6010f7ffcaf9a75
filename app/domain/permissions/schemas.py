"""Permissions domain schemas - Pydantic models for validation and the wire format"""

from datetime import datetime
from types import MappingProxyType
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from pydantic.alias_generators import to_camel

from .catalog import ModuleName, SubscriptionStatus, empty_grants


class CamelModel(BaseModel):
    """Serializes with camelCase keys, accepts either form on input"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# RESOLVER INPUTS
# ============================================================================


class SubscriptionRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    company_id: str
    plan_id: Optional[str] = None
    status: SubscriptionStatus = SubscriptionStatus.INACTIVE
    current_period_end: Optional[datetime] = None


class PlanRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    display_name: Optional[str] = None
    tier_ordinal: int = 0
    max_employees: Optional[int] = None
    max_locations: Optional[int] = None
    module_grants: dict[ModuleName, bool] = Field(default_factory=dict)


class OverrideRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    company_id: str
    module: ModuleName
    is_enabled: bool


# ============================================================================
# COMPANY PERMISSIONS SNAPSHOT (GET /api/permissions/{company_id})
# ============================================================================


class SubscriptionInfo(CamelModel):
    model_config = ConfigDict(frozen=True)

    status: SubscriptionStatus = SubscriptionStatus.INACTIVE
    plan_name: Optional[str] = None
    expires_at: Optional[datetime] = None


class PermissionLimits(CamelModel):
    model_config = ConfigDict(frozen=True)

    max_employees: Optional[int] = None  # None means unlimited
    max_locations: Optional[int] = None


class CompanyPermissions(CamelModel):
    """Immutable point-in-time permissions of one company"""

    model_config = ConfigDict(frozen=True)

    company_id: str
    subscription: SubscriptionInfo = Field(default_factory=SubscriptionInfo)
    modules: Mapping[ModuleName, bool] = Field(default_factory=empty_grants, validate_default=True)
    limits: PermissionLimits = Field(default_factory=PermissionLimits)
    # Set when company overrides stay effective on a non-active subscription
    overrides_apply_when_inactive: bool = False

    @field_validator("modules")
    @classmethod
    def fill_missing_modules(cls, v: Mapping) -> Mapping:
        # Callers index by module name without existence checks
        grants = empty_grants()
        grants.update(v)
        return MappingProxyType(grants)

    @field_serializer("modules")
    def serialize_modules(self, modules: Mapping) -> dict:
        return {module.value: enabled for module, enabled in modules.items()}

    @property
    def is_active(self) -> bool:
        return self.subscription.status == SubscriptionStatus.ACTIVE

    def module_enabled(self, module: ModuleName) -> bool:
        """Effective module state; the resolver already applied the subscription gate"""
        if not self.is_active and not self.overrides_apply_when_inactive:
            return False
        return self.modules[module]


# ============================================================================
# ADMIN REQUESTS / RESPONSES
# ============================================================================


class ModuleOverrideRequest(BaseModel):
    """Schema for setting a company module override"""

    enabled: bool
    notes: Optional[str] = Field(default=None, max_length=1000)


class AssignPlanRequest(BaseModel):
    """Schema for manually assigning a plan to a company"""

    plan_id: str

    @field_validator("plan_id")
    @classmethod
    def validate_plan_id(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("plan_id is required")
        return v.strip()


class ModuleTransition(CamelModel):
    module: ModuleName
    from_status: bool
    to_status: bool
    # Modules that require this one and stop working when it is revoked
    dependencies_affected: list[ModuleName] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class OverrideResult(CamelModel):
    success: bool = True
    message: str
    warnings: list[str] = Field(default_factory=list)
    permissions: CompanyPermissions


class PlanChangeResult(CamelModel):
    success: bool = True
    message: str
    transitions: list[ModuleTransition] = Field(default_factory=list)
    permissions: CompanyPermissions


class ModuleChangeResponse(CamelModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    company_id: str
    module_name: str
    action: str
    reason: str
    previous_status: Optional[bool] = None
    new_status: Optional[bool] = None
    changed_by_user_id: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None


class ModuleWarningResponse(CamelModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    company_id: str
    module_name: str
    warning_type: str
    warning_message: str
    expires_at: datetime
    is_acknowledged: bool
    acknowledged_at: Optional[datetime] = None
    acknowledged_by_user_id: Optional[str] = None
    created_at: Optional[datetime] = None


class LimitCheck(CamelModel):
    allowed: bool
    current: int
    max: Optional[int] = None  # None means unlimited
