"""Permissions repository - Database operations for subscriptions, plans and overrides"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from ...models import (
    Company,
    CompanyMember,
    CompanyModule,
    CompanySubscription,
    Employee,
    ModuleChange,
    ModuleWarning,
    PlanModule,
    SubscriptionPlan,
)
from .catalog import ModuleName, SubscriptionStatus, parse_module
from .schemas import OverrideRecord, PlanRecord, SubscriptionRecord

logger = logging.getLogger(__name__)


class PermissionRepository:
    """Repository for permission-related database operations"""

    @staticmethod
    def get_company(db: Session, company_id: str) -> Optional[Company]:
        return db.query(Company).filter(Company.id == company_id).first()

    @staticmethod
    def is_company_member(db: Session, company_id: str, user_id: str) -> bool:
        """Check whether a user owns or works for a company"""
        return (
            db.query(CompanyMember)
            .filter(CompanyMember.company_id == company_id, CompanyMember.user_id == user_id)
            .first()
            is not None
        )

    @staticmethod
    def get_subscription(db: Session, company_id: str) -> Optional[CompanySubscription]:
        """Get the company subscription joined with its plan and plan modules"""
        return (
            db.query(CompanySubscription)
            .options(selectinload(CompanySubscription.plan).selectinload(SubscriptionPlan.plan_modules))
            .filter(CompanySubscription.company_id == company_id)
            .first()
        )

    @staticmethod
    def get_plan(db: Session, plan_id: str) -> Optional[SubscriptionPlan]:
        return (
            db.query(SubscriptionPlan)
            .options(selectinload(SubscriptionPlan.plan_modules))
            .filter(SubscriptionPlan.id == plan_id)
            .first()
        )

    @staticmethod
    def get_overrides(db: Session, company_id: str) -> list[CompanyModule]:
        return db.query(CompanyModule).filter(CompanyModule.company_id == company_id).all()

    @staticmethod
    def get_override(db: Session, company_id: str, module: ModuleName) -> Optional[CompanyModule]:
        return (
            db.query(CompanyModule)
            .filter(CompanyModule.company_id == company_id, CompanyModule.module_name == module.value)
            .first()
        )

    @staticmethod
    def upsert_override(
        db: Session, company_id: str, module: ModuleName, is_enabled: bool, notes: Optional[str] = None
    ) -> CompanyModule:
        """Create or update the override row; caller commits"""
        override = PermissionRepository.get_override(db, company_id, module)
        if override is None:
            override = CompanyModule(company_id=company_id, module_name=module.value)
            db.add(override)
        override.is_enabled = is_enabled
        override.notes = notes
        return override

    @staticmethod
    def delete_override(db: Session, company_id: str, module: ModuleName) -> bool:
        """Delete the override row; caller commits. Returns False when there was none"""
        deleted = (
            db.query(CompanyModule)
            .filter(CompanyModule.company_id == company_id, CompanyModule.module_name == module.value)
            .delete(synchronize_session=False)
        )
        return deleted > 0

    @staticmethod
    def upsert_subscription(
        db: Session,
        company_id: str,
        plan_id: str,
        status: SubscriptionStatus,
        period_start: datetime,
        period_end: datetime,
    ) -> CompanySubscription:
        """Create or update the company subscription; caller commits"""
        subscription = (
            db.query(CompanySubscription).filter(CompanySubscription.company_id == company_id).first()
        )
        if subscription is None:
            subscription = CompanySubscription(company_id=company_id, billing_cycle="monthly")
            db.add(subscription)
        subscription.plan_id = plan_id
        subscription.status = status.value
        subscription.current_period_start = period_start
        subscription.current_period_end = period_end
        return subscription

    @staticmethod
    def count_employees(db: Session, company_id: str) -> int:
        return (
            db.query(func.count(Employee.id)).filter(Employee.company_id == company_id).scalar() or 0
        )

    @staticmethod
    def record_module_change(db: Session, **fields) -> ModuleChange:
        """Add an audit row; caller commits"""
        change = ModuleChange(**fields)
        db.add(change)
        return change

    @staticmethod
    def get_module_changes(
        db: Session, company_id: str, module: Optional[ModuleName] = None, limit: int = 50
    ) -> list[ModuleChange]:
        query = db.query(ModuleChange).filter(ModuleChange.company_id == company_id)
        if module is not None:
            query = query.filter(ModuleChange.module_name == module.value)
        return query.order_by(ModuleChange.created_at.desc(), ModuleChange.id.desc()).limit(limit).all()

    @staticmethod
    def record_module_warning(db: Session, **fields) -> ModuleWarning:
        """Add a revocation warning; caller commits"""
        warning = ModuleWarning(**fields)
        db.add(warning)
        return warning

    @staticmethod
    def get_module_warnings(
        db: Session, company_id: str, include_acknowledged: bool = False
    ) -> list[ModuleWarning]:
        query = db.query(ModuleWarning).filter(ModuleWarning.company_id == company_id)
        if not include_acknowledged:
            query = query.filter(ModuleWarning.is_acknowledged.is_(False))
        return query.order_by(ModuleWarning.created_at.desc(), ModuleWarning.id.desc()).all()

    @staticmethod
    def get_module_warning(db: Session, company_id: str, warning_id: int) -> Optional[ModuleWarning]:
        return (
            db.query(ModuleWarning)
            .filter(ModuleWarning.company_id == company_id, ModuleWarning.id == warning_id)
            .first()
        )

    # ========================================================================
    # ROW -> RECORD CONVERSION
    # ========================================================================

    @staticmethod
    def to_subscription_record(subscription: CompanySubscription) -> SubscriptionRecord:
        try:
            status = SubscriptionStatus(subscription.status)
        except ValueError:
            logger.warning(
                f"⚠️ Unknown subscription status '{subscription.status}' for company "
                f"{subscription.company_id} - treating as inactive"
            )
            status = SubscriptionStatus.INACTIVE
        return SubscriptionRecord(
            company_id=subscription.company_id,
            plan_id=subscription.plan_id,
            status=status,
            current_period_end=subscription.current_period_end,
        )

    @staticmethod
    def to_plan_record(plan: SubscriptionPlan) -> PlanRecord:
        return PlanRecord(
            id=plan.id,
            name=plan.name,
            display_name=plan.display_name,
            tier_ordinal=plan.tier_ordinal,
            max_employees=plan.max_employees,
            max_locations=plan.max_locations,
            module_grants=PermissionRepository.to_module_grants(plan.plan_modules),
        )

    @staticmethod
    def to_module_grants(plan_modules: list[PlanModule]) -> dict[ModuleName, bool]:
        grants = {}
        for plan_module in plan_modules:
            module = parse_module(plan_module.module_name)
            if module is None:
                logger.warning(f"⚠️ Ignoring unknown plan module '{plan_module.module_name}'")
                continue
            grants[module] = bool(plan_module.is_enabled)
        return grants

    @staticmethod
    def to_override_records(overrides: list[CompanyModule]) -> list[OverrideRecord]:
        records = []
        for override in overrides:
            module = parse_module(override.module_name)
            if module is None:
                logger.warning(f"⚠️ Ignoring unknown override module '{override.module_name}'")
                continue
            records.append(
                OverrideRecord(
                    company_id=override.company_id, module=module, is_enabled=bool(override.is_enabled)
                )
            )
        return records
