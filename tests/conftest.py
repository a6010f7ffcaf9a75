"""Pytest configuration and fixtures for test suite."""

import os
import time

import pytest

# Set test environment BEFORE any app imports
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SUPABASE_JWT_SECRET"] = "test-jwt-secret"
os.environ["DB_LOG_SLOW_QUERIES"] = "false"
os.environ["PERMISSIONS_RATE_LIMIT"] = "10000"
os.environ.pop("REDIS_URL", None)

from fastapi.testclient import TestClient  # noqa: E402
from jose import jwt  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app import rate_limiter  # noqa: E402
from app.database import Base, get_db  # noqa: E402
from app.domain.permissions.catalog import ModuleName, SubscriptionStatus  # noqa: E402
from app.main import app  # noqa: E402
from app.models import (  # noqa: E402
    Company,
    CompanyMember,
    CompanyModule,
    CompanySubscription,
    Employee,
    PlanModule,
    SubscriptionPlan,
    User,
)
from seed_plans import seed_plans  # noqa: E402


@pytest.fixture
def db():
    """Fresh in-memory database per test"""
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def plans(db):
    """Default plans keyed by name (free, starter, pro, enterprise)"""
    return {plan.name: plan for plan in seed_plans(db)}


@pytest.fixture(autouse=True)
def _reset_rate_limits():
    rate_limiter.memory_cache.clear()
    yield
    rate_limiter.memory_cache.clear()


def make_plan(db, name, grants, tier_ordinal=0, max_employees=None, max_locations=None):
    """Create a plan whose module grants are exactly `grants`"""
    plan = SubscriptionPlan(
        name=name,
        display_name=name.title(),
        tier_ordinal=tier_ordinal,
        max_employees=max_employees,
        max_locations=max_locations,
    )
    for module, enabled in grants.items():
        plan.plan_modules.append(PlanModule(module_name=ModuleName(module).value, is_enabled=enabled))
    db.add(plan)
    db.commit()
    return plan


def make_company(db, plan=None, status=SubscriptionStatus.ACTIVE, overrides=None, name="Salon Aurora"):
    """Create a company, optionally subscribed to `plan` with module overrides"""
    company = Company(name=name)
    db.add(company)
    db.flush()
    if plan is not None:
        db.add(
            CompanySubscription(
                company_id=company.id, plan_id=plan.id, status=SubscriptionStatus(status).value
            )
        )
    for module, enabled in (overrides or {}).items():
        db.add(CompanyModule(company_id=company.id, module_name=ModuleName(module).value, is_enabled=enabled))
    db.commit()
    return company


def add_employees(db, company, count):
    for i in range(count):
        db.add(Employee(company_id=company.id, name=f"Employee {i + 1}"))
    db.commit()


def make_user(db, role="company_owner", company=None, email=None):
    user = User(email=email or f"{role}-{time.time_ns()}@example.com", role=role)
    db.add(user)
    db.flush()
    if company is not None:
        db.add(CompanyMember(company_id=company.id, user_id=user.id, role=role))
    db.commit()
    return user


def make_token(
    user_id, email="owner@example.com", role=None, expires_in=3600, secret="test-jwt-secret", user_metadata=None
):
    claims = {
        "sub": user_id,
        "email": email,
        "aud": "authenticated",
        "exp": int(time.time()) + expires_in,
        "iat": int(time.time()),
    }
    if role:
        claims["app_metadata"] = {"role": role}
    if user_metadata:
        claims["user_metadata"] = user_metadata
    return jwt.encode(claims, secret, algorithm="HS256")


def auth_headers(user):
    return {"Authorization": f"Bearer {make_token(user.id, email=user.email, role=user.role)}"}


@pytest.fixture
def client(db):
    def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
