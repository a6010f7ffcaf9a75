#!/usr/bin/env python3
"""
Create or update the default subscription plans and their module grants
Usage: python seed_plans.py
"""

import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

from sqlalchemy.orm import Session

from app.database import Base, SessionLocal, engine
from app.domain.permissions.catalog import PlanTier, modules_for_tier
from app.models import PlanModule, SubscriptionPlan

logging.basicConfig(level=logging.INFO, format="%(message)s")
logger = logging.getLogger(__name__)

DEFAULT_PLANS = {
    PlanTier.FREE: {
        "display_name": "Free",
        "max_employees": 2,
        "max_locations": 1,
        "price_monthly": 0,
        "price_yearly": 0,
    },
    PlanTier.STARTER: {
        "display_name": "Starter",
        "max_employees": 5,
        "max_locations": 1,
        "price_monthly": 49,
        "price_yearly": 490,
    },
    PlanTier.PRO: {
        "display_name": "Pro",
        "max_employees": 20,
        "max_locations": 3,
        "price_monthly": 99,
        "price_yearly": 990,
    },
    PlanTier.ENTERPRISE: {
        "display_name": "Enterprise",
        "max_employees": None,  # unlimited
        "max_locations": None,
        "price_monthly": 249,
        "price_yearly": 2490,
    },
}


def seed_plans(db: Session) -> list[SubscriptionPlan]:
    """Upsert one plan per tier; module grants follow the module catalog"""
    plans = []
    for tier, settings in DEFAULT_PLANS.items():
        plan = db.query(SubscriptionPlan).filter(SubscriptionPlan.name == tier.value).first()
        if plan is None:
            plan = SubscriptionPlan(name=tier.value)
            db.add(plan)
            logger.info(f"➕ Creating plan '{tier.value}'")
        else:
            logger.info(f"🔄 Updating plan '{tier.value}'")

        plan.tier_ordinal = tier.ordinal
        for field, value in settings.items():
            setattr(plan, field, value)

        existing = {pm.module_name: pm for pm in plan.plan_modules}
        for module, enabled in modules_for_tier(tier).items():
            plan_module = existing.get(module.value)
            if plan_module is None:
                plan.plan_modules.append(PlanModule(module_name=module.value, is_enabled=enabled))
            else:
                plan_module.is_enabled = enabled
        plans.append(plan)

    db.commit()
    return plans


if __name__ == "__main__":
    Base.metadata.create_all(bind=engine, checkfirst=True)
    session = SessionLocal()
    try:
        seeded = seed_plans(session)
        logger.info(f"✅ Seeded {len(seeded)} plans")
    finally:
        session.close()
