"""SQLAlchemy models for tenants, users, sessions and production tasks."""
from sqlalchemy import (
    JSON, Boolean, Column, String, Integer, DateTime, Text, Uuid,
    ForeignKey, CheckConstraint, Index,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from .database import Base


ROLES = ("super_admin", "factory_admin", "supervisor", "employee")
TENANT_STATUSES = ("pending", "active", "rejected", "frozen")
# "overdue" is never written by the engine; it is derived at read time.
TASK_STATUSES = ("active", "completed", "confirmed", "rejected", "overdue")


class Tenant(Base):
    """Factory account (unit of data partitioning)."""
    __tablename__ = "tenants"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    factory_name = Column(String(255), unique=True, nullable=False, index=True)
    address = Column(String(500), nullable=False)
    workers_count = Column(Integer, nullable=False)
    owner_email = Column(String(255), nullable=False, index=True)
    phone = Column(String(50), nullable=False)
    status = Column(String(20), nullable=False, default="pending", index=True)
    rejection_reason = Column(Text, nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(status.in_(TENANT_STATUSES), name="chk_tenant_status"),
        CheckConstraint(workers_count >= 1, name="chk_tenant_workers_positive"),
    )

    users = relationship("User", back_populates="tenant")


class User(Base):
    """User model."""
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    # Membership is fixed at creation; no operation moves a user between tenants.
    tenant_id = Column(Uuid, ForeignKey("tenants.id"), nullable=True, index=True)
    auto_id = Column(String(50), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    mobile = Column(String(50), nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(role.in_(ROLES), name="chk_user_role"),
        CheckConstraint(
            "(role = 'super_admin') OR (tenant_id IS NOT NULL)",
            name="chk_user_tenant_required",
        ),
        Index("idx_users_tenant_role", "tenant_id", "role"),
    )

    tenant = relationship("Tenant", back_populates="users")


class RefreshToken(Base):
    """Persisted refresh token (deleted at logout or when found expired)."""
    __tablename__ = "refresh_tokens"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    token = Column(String(1024), unique=True, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User")


class Product(Base):
    """Product manufactured by a tenant."""
    __tablename__ = "products"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenants.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("idx_products_tenant_name", "tenant_id", "name"),
    )

    stages = relationship("ProcessStage", back_populates="product", order_by="ProcessStage.order")


class ProcessStage(Base):
    """Ordered production stage of a product."""
    __tablename__ = "process_stages"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenants.id"), nullable=False, index=True)
    product_id = Column(Uuid, ForeignKey("products.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    order = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint(order >= 1, name="chk_stage_order_positive"),
        Index("idx_stages_product_order", "product_id", "order"),
    )

    product = relationship("Product", back_populates="stages")


class Task(Base):
    """Work assignment issued to one employee for one product stage."""
    __tablename__ = "tasks"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenants.id"), nullable=False, index=True)
    employee_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    product_id = Column(Uuid, ForeignKey("products.id"), nullable=False, index=True)
    process_stage_id = Column(Uuid, ForeignKey("process_stages.id"), nullable=False, index=True)
    # Set on residual tasks spawned by a partial confirmation.
    parent_task_id = Column(Uuid, ForeignKey("tasks.id"), nullable=True, index=True)
    target_qty = Column(Integer, nullable=False)
    completed_qty = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default="active", index=True)
    deadline = Column(DateTime(timezone=True), nullable=False, index=True)
    deadline_week = Column(String(10), nullable=False, index=True)
    notes = Column(Text, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    assigned_by = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    assigned_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(target_qty >= 1, name="chk_task_target_positive"),
        CheckConstraint(completed_qty >= 0, name="chk_task_completed_non_negative"),
        CheckConstraint(completed_qty <= target_qty, name="chk_task_completed_within_target"),
        CheckConstraint(status.in_(TASK_STATUSES), name="chk_task_status"),
        Index("idx_tasks_tenant_status", "tenant_id", "status"),
        Index("idx_tasks_employee_status", "employee_id", "status"),
    )

    employee = relationship("User", foreign_keys=[employee_id])
    product = relationship("Product")
    process_stage = relationship("ProcessStage")


class AuditEvent(Base):
    """Audit event model."""
    __tablename__ = "audit_events"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenants.id"), nullable=True, index=True)
    action = Column(String(50), nullable=False, index=True)
    entity_type = Column(String(20), nullable=False)
    entity_id = Column(Uuid, nullable=False)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=True, index=True)
    details = Column(JSON, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    __table_args__ = (
        CheckConstraint(
            action.in_([
                'task_created', 'task_progress_updated', 'task_confirmed', 'task_rejected',
                'task_deleted', 'task_residual_created',
                'tenant_signed_up', 'tenant_approved', 'tenant_rejected', 'tenant_frozen',
                'tenant_unfrozen', 'user_created', 'user_updated', 'user_deactivated', 'user_login',
                'user_logout',
            ]),
            name='chk_audit_action'
        ),
        CheckConstraint(
            entity_type.in_(['task', 'tenant', 'user']),
            name='chk_audit_entity_type'
        ),
        Index('idx_audit_events_entity', 'entity_type', 'entity_id'),
    )
