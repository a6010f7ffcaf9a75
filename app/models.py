import uuid

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


def generate_uuid():
    """Generate a string UUID primary key (matches the auth provider's id format)"""
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    email = Column(String(255), unique=True, index=True, nullable=False)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    role = Column(String(50), default="customer", nullable=False)  # admin, company_owner, employee, customer
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    memberships = relationship("CompanyMember", back_populates="user", cascade="all, delete-orphan")


class Company(Base):
    __tablename__ = "companies"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), unique=True, index=True, nullable=True)  # public booking page
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    members = relationship("CompanyMember", back_populates="company", cascade="all, delete-orphan")
    subscription = relationship(
        "CompanySubscription", back_populates="company", uselist=False, cascade="all, delete-orphan"
    )
    module_overrides = relationship(
        "CompanyModule", back_populates="company", cascade="all, delete-orphan"
    )
    employees = relationship("Employee", back_populates="company", cascade="all, delete-orphan")


class CompanyMember(Base):
    """Links users to the companies they own or work for"""

    __tablename__ = "company_members"
    __table_args__ = (UniqueConstraint("company_id", "user_id", name="uq_company_member"),)

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(String(36), ForeignKey("companies.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    role = Column(String(50), default="company_owner", nullable=False)  # company_owner, employee

    company = relationship("Company", back_populates="members")
    user = relationship("User", back_populates="memberships")


class SubscriptionPlan(Base):
    __tablename__ = "subscription_plans"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    name = Column(String(50), unique=True, nullable=False)  # free, starter, pro, enterprise
    display_name = Column(String(100), nullable=False)
    tier_ordinal = Column(Integer, default=0, nullable=False)  # higher = more expensive tier
    max_employees = Column(Integer, nullable=True)  # None means unlimited
    max_locations = Column(Integer, nullable=True)  # None means unlimited
    price_monthly = Column(Float, default=0, nullable=False)
    price_yearly = Column(Float, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    plan_modules = relationship("PlanModule", back_populates="plan", cascade="all, delete-orphan")


class PlanModule(Base):
    """Module grant of a subscription plan"""

    __tablename__ = "plan_modules"
    __table_args__ = (UniqueConstraint("plan_id", "module_name", name="uq_plan_module"),)

    id = Column(Integer, primary_key=True, index=True)
    plan_id = Column(String(36), ForeignKey("subscription_plans.id"), nullable=False, index=True)
    module_name = Column(String(50), nullable=False)
    is_enabled = Column(Boolean, default=False, nullable=False)

    plan = relationship("SubscriptionPlan", back_populates="plan_modules")


class CompanySubscription(Base):
    __tablename__ = "company_subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(String(36), ForeignKey("companies.id"), unique=True, nullable=False)
    plan_id = Column(String(36), ForeignKey("subscription_plans.id"), nullable=True)
    status = Column(String(20), default="inactive", nullable=False)  # active, inactive, past_due, cancelled
    billing_cycle = Column(String(20), default="monthly", nullable=True)  # monthly, yearly
    current_period_start = Column(DateTime(timezone=True), nullable=True)
    current_period_end = Column(DateTime(timezone=True), nullable=True)
    # Set by the billing webhook; read-only here
    stripe_subscription_id = Column(String(255), nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    company = relationship("Company", back_populates="subscription")
    plan = relationship("SubscriptionPlan")


class CompanyModule(Base):
    """Per-company module override; supersedes the plan grant in both directions"""

    __tablename__ = "company_modules"
    __table_args__ = (UniqueConstraint("company_id", "module_name", name="uq_company_module"),)

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(String(36), ForeignKey("companies.id"), nullable=False, index=True)
    module_name = Column(String(50), nullable=False)
    is_enabled = Column(Boolean, nullable=False)
    notes = Column(Text, nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    company = relationship("Company", back_populates="module_overrides")


class Employee(Base):
    __tablename__ = "employees"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(String(36), ForeignKey("companies.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    company = relationship("Company", back_populates="employees")


class ModuleChange(Base):
    """Audit trail of module access changes"""

    __tablename__ = "module_changes"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(String(36), ForeignKey("companies.id"), nullable=False, index=True)
    module_name = Column(String(50), nullable=False)
    action = Column(String(30), nullable=False)  # granted, revoked, overridden, override_removed
    reason = Column(String(50), nullable=False)  # subscription_change, admin_override
    previous_status = Column(Boolean, nullable=True)
    new_status = Column(Boolean, nullable=True)
    changed_by_user_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)


class ModuleWarning(Base):
    """Notice shown to a company before a revoked module becomes unusable"""

    __tablename__ = "module_warnings"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(String(36), ForeignKey("companies.id"), nullable=False, index=True)
    module_name = Column(String(50), nullable=False)
    warning_type = Column(String(30), nullable=False)  # downgrade_warning, expiration_warning
    warning_message = Column(Text, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    is_acknowledged = Column(Boolean, default=False, nullable=False)
    acknowledged_at = Column(DateTime(timezone=True), nullable=True)
    acknowledged_by_user_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
