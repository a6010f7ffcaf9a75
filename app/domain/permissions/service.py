"""Permission service - Loads company permissions and manages module overrides"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...config import ADMIN_ASSIGNED_PERIOD_DAYS, OVERRIDES_APPLY_WHEN_INACTIVE, REVOCATION_WARNING_DAYS
from .catalog import ModuleName, SubscriptionStatus, dependents_of, describe, get_revocation_warning
from .exceptions import (
    CompanyNotFoundError,
    ModuleDependencyError,
    ModuleWarningNotFoundError,
    OverrideNotFoundError,
    PermissionsUnavailableError,
    PlanNotFoundError,
)
from .repository import PermissionRepository
from .resolver import effective_plan_grant, resolve
from .schemas import (
    CompanyPermissions,
    LimitCheck,
    ModuleTransition,
    OverrideResult,
    PlanChangeResult,
    PlanRecord,
)

logger = logging.getLogger(__name__)

# Single location until the multi-location feature stores locations
CURRENT_LOCATION_COUNT = 1


class PermissionService:
    """Service for company module permissions"""

    def __init__(self, db: Session, overrides_apply_when_inactive: bool = OVERRIDES_APPLY_WHEN_INACTIVE):
        self.db = db
        self.repo = PermissionRepository()
        self.overrides_apply_when_inactive = overrides_apply_when_inactive

    # ========================================================================
    # QUERY GATEWAY
    # ========================================================================

    def load_permissions(self, company_id: str) -> CompanyPermissions:
        """Load subscription, plan and overrides for a company and resolve them.

        Read-only and idempotent. A company without a subscription resolves to
        an inactive snapshot. Store failures raise PermissionsUnavailableError.
        """
        try:
            if self.repo.get_company(self.db, company_id) is None:
                raise CompanyNotFoundError(company_id)

            subscription_row = self.repo.get_subscription(self.db, company_id)
            override_rows = self.repo.get_overrides(self.db, company_id)

            subscription = plan = None
            if subscription_row is not None:
                subscription = self.repo.to_subscription_record(subscription_row)
                if subscription_row.plan is not None:
                    plan = self.repo.to_plan_record(subscription_row.plan)
            overrides = self.repo.to_override_records(override_rows)
        except SQLAlchemyError as e:
            logger.error(f"❌ Failed to load permissions for company {company_id}: {e}")
            raise PermissionsUnavailableError(company_id, str(e)) from e

        if subscription is None:
            logger.debug(f"No subscription for company {company_id} - resolving as inactive")

        return resolve(
            company_id,
            subscription,
            plan,
            overrides,
            overrides_apply_when_inactive=self.overrides_apply_when_inactive,
        )

    def check_module(self, company_id: str, module: ModuleName) -> bool:
        permissions = self.load_permissions(company_id)
        return permissions.module_enabled(module)

    # ========================================================================
    # PLAN LIMITS
    # ========================================================================

    def check_employee_limit(self, company_id: str) -> LimitCheck:
        """Check whether the company may add another employee"""
        permissions = self.load_permissions(company_id)
        limit = permissions.limits.max_employees

        try:
            current = self.repo.count_employees(self.db, company_id)
        except SQLAlchemyError as e:
            logger.error(f"❌ Error counting employees for company {company_id}: {e}")
            raise PermissionsUnavailableError(company_id, str(e)) from e

        if not permissions.is_active:
            return LimitCheck(allowed=False, current=current, max=limit)
        if limit is None:
            return LimitCheck(allowed=True, current=current, max=None)
        return LimitCheck(allowed=current < limit, current=current, max=limit)

    def check_location_limit(self, company_id: str) -> LimitCheck:
        """Check whether the company is within its location limit"""
        permissions = self.load_permissions(company_id)
        limit = permissions.limits.max_locations
        current = CURRENT_LOCATION_COUNT

        if not permissions.is_active:
            return LimitCheck(allowed=False, current=current, max=limit)
        if limit is None:
            return LimitCheck(allowed=True, current=current, max=None)
        return LimitCheck(allowed=current <= limit, current=current, max=limit)

    # ========================================================================
    # ADMIN: MODULE OVERRIDES
    # ========================================================================

    def validate_dependencies(
        self, permissions: CompanyPermissions, module: ModuleName, enabled: bool
    ) -> tuple[list[str], list[str]]:
        """Return (conflicts, warnings) for switching a module on or off"""
        conflicts, warnings = [], []
        if enabled:
            for required in describe(module).requires:
                if not permissions.modules[required]:
                    warnings.append(f"{module.value} requires {required.value} to function properly")
        else:
            for dependent in dependents_of(module):
                if permissions.modules[dependent]:
                    conflicts.append(f"Cannot disable {module.value} because {dependent.value} requires it")
        return conflicts, warnings

    def set_override(
        self,
        company_id: str,
        module: ModuleName,
        enabled: bool,
        notes: Optional[str] = None,
        changed_by: Optional[str] = None,
    ) -> OverrideResult:
        """Create or update a company module override and record it in the audit trail"""
        before = self.load_permissions(company_id)

        conflicts, warnings = self.validate_dependencies(before, module, enabled)
        if conflicts:
            logger.warning(f"⚠️ Override of {module.value} for company {company_id} refused: {conflicts}")
            raise ModuleDependencyError(conflicts)

        try:
            self.repo.upsert_override(self.db, company_id, module, enabled, notes)
            self.db.flush()
            after = self.load_permissions(company_id)
            self.repo.record_module_change(
                self.db,
                company_id=company_id,
                module_name=module.value,
                action="overridden",
                reason="admin_override",
                previous_status=before.modules[module],
                new_status=after.modules[module],
                changed_by_user_id=changed_by,
                notes=notes,
            )
            self.db.commit()
        except PermissionsUnavailableError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Failed to save override of {module.value} for company {company_id}: {e}")
            raise PermissionsUnavailableError(company_id, str(e)) from e

        logger.info(
            f"✅ Module {module.value} {'enabled' if enabled else 'disabled'} for company {company_id} "
            f"by {changed_by or 'system'}"
        )

        message = f"Module {module.value} {'enabled' if enabled else 'disabled'} for company"
        if warnings:
            message += f". Warnings: {', '.join(warnings)}"
        return OverrideResult(message=message, warnings=warnings, permissions=after)

    def remove_override(
        self, company_id: str, module: ModuleName, changed_by: Optional[str] = None
    ) -> OverrideResult:
        """Delete a company module override, reverting to the plan default"""
        before = self.load_permissions(company_id)
        if self.repo.get_override(self.db, company_id, module) is None:
            raise OverrideNotFoundError(company_id, module.value)

        try:
            self.repo.delete_override(self.db, company_id, module)
            self.db.flush()
            after = self.load_permissions(company_id)
            self.repo.record_module_change(
                self.db,
                company_id=company_id,
                module_name=module.value,
                action="override_removed",
                reason="admin_override",
                previous_status=before.modules[module],
                new_status=after.modules[module],
                changed_by_user_id=changed_by,
            )
            self.db.commit()
        except PermissionsUnavailableError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Failed to remove override of {module.value} for company {company_id}: {e}")
            raise PermissionsUnavailableError(company_id, str(e)) from e

        logger.info(f"✅ Override of {module.value} removed for company {company_id}")
        return OverrideResult(
            message=f"Removed custom access for {module.value}. Now using plan default.",
            permissions=after,
        )

    def get_module_changes(
        self, company_id: str, module: Optional[ModuleName] = None, limit: int = 50
    ) -> list:
        if self.repo.get_company(self.db, company_id) is None:
            raise CompanyNotFoundError(company_id)
        return self.repo.get_module_changes(self.db, company_id, module, limit)

    # ========================================================================
    # ADMIN: PLAN ASSIGNMENT
    # ========================================================================

    def plan_transitions(
        self,
        old_plan: Optional[PlanRecord],
        new_plan: PlanRecord,
        overridden: set,
        reason: str = "subscription_change",
    ) -> list[ModuleTransition]:
        """Modules whose plan grant changes between two plans.

        Overridden modules are skipped: the override keeps deciding them.
        A revoked module lists the modules that require it and carries a
        warning announcing the grace period.
        """
        transitions = []
        for module in ModuleName:
            if module in overridden:
                continue
            old_status = effective_plan_grant(old_plan, module)
            new_status = effective_plan_grant(new_plan, module)
            if old_status == new_status:
                continue

            revoked = old_status and not new_status
            transitions.append(
                ModuleTransition(
                    module=module,
                    from_status=old_status,
                    to_status=new_status,
                    dependencies_affected=dependents_of(module) if revoked else [],
                    warnings=[get_revocation_warning(module, reason, REVOCATION_WARNING_DAYS)] if revoked else [],
                )
            )
        return transitions

    def assign_plan(self, company_id: str, plan_id: str, changed_by: Optional[str] = None) -> PlanChangeResult:
        """Put a company on a plan, record module transitions and revocation warnings"""
        if self.repo.get_company(self.db, company_id) is None:
            raise CompanyNotFoundError(company_id)

        new_plan_row = self.repo.get_plan(self.db, plan_id)
        if new_plan_row is None:
            raise PlanNotFoundError(plan_id)

        current = self.repo.get_subscription(self.db, company_id)
        old_plan = self.repo.to_plan_record(current.plan) if current and current.plan else None
        new_plan = self.repo.to_plan_record(new_plan_row)
        overridden = {o.module for o in self.repo.to_override_records(self.repo.get_overrides(self.db, company_id))}
        transitions = self.plan_transitions(old_plan, new_plan, overridden)

        now = datetime.now(timezone.utc)
        try:
            self.repo.upsert_subscription(
                self.db,
                company_id,
                plan_id,
                SubscriptionStatus.ACTIVE,
                period_start=now,
                period_end=now + timedelta(days=ADMIN_ASSIGNED_PERIOD_DAYS),
            )
            for transition in transitions:
                self.repo.record_module_change(
                    self.db,
                    company_id=company_id,
                    module_name=transition.module.value,
                    action="granted" if transition.to_status else "revoked",
                    reason="subscription_change",
                    previous_status=transition.from_status,
                    new_status=transition.to_status,
                    changed_by_user_id=changed_by,
                )
                for message in transition.warnings:
                    self.repo.record_module_warning(
                        self.db,
                        company_id=company_id,
                        module_name=transition.module.value,
                        warning_type="downgrade_warning",
                        warning_message=message,
                        expires_at=now + timedelta(days=REVOCATION_WARNING_DAYS),
                    )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Failed to assign plan {plan_id} to company {company_id}: {e}")
            raise PermissionsUnavailableError(company_id, str(e)) from e

        revoked = [t.module.value for t in transitions if not t.to_status]
        if revoked:
            logger.warning(f"⚠️ Company {company_id} loses modules {revoked} on plan {new_plan.name}")
        logger.info(
            f"✅ Company {company_id} moved to plan {new_plan.name} ({len(transitions)} module transitions)"
        )
        return PlanChangeResult(
            message=f"Successfully applied {len(transitions)} module transitions",
            transitions=transitions,
            permissions=self.load_permissions(company_id),
        )

    # ========================================================================
    # REVOCATION WARNINGS
    # ========================================================================

    def get_module_warnings(self, company_id: str, include_acknowledged: bool = False) -> list:
        if self.repo.get_company(self.db, company_id) is None:
            raise CompanyNotFoundError(company_id)
        return self.repo.get_module_warnings(self.db, company_id, include_acknowledged)

    def acknowledge_warning(self, company_id: str, warning_id: int, user_id: Optional[str] = None):
        """Mark a warning as seen; acknowledging twice keeps the first acknowledgement"""
        warning = self.repo.get_module_warning(self.db, company_id, warning_id)
        if warning is None:
            raise ModuleWarningNotFoundError(warning_id)
        if warning.is_acknowledged:
            return warning

        try:
            warning.is_acknowledged = True
            warning.acknowledged_at = datetime.now(timezone.utc)
            warning.acknowledged_by_user_id = user_id
            self.db.commit()
            self.db.refresh(warning)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Failed to acknowledge warning {warning_id} for company {company_id}: {e}")
            raise PermissionsUnavailableError(company_id, str(e)) from e
        return warning
