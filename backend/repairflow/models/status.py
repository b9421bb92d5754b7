from __future__ import annotations
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, Boolean, ForeignKey, UniqueConstraint, DateTime, func
from repairflow.models.authz import Base, STATUS_OPEN


class RepairOrderStatus(Base):
    __tablename__ = 'repair_order_statuses'
    # Terminal markers
    TYPE_COMPLETED = 'Completed'
    TYPE_CANCELLED = 'Cancelled'
    TERMINAL_TYPES = (TYPE_COMPLETED, TYPE_CANCELLED)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    branch_id: Mapped[int] = mapped_column(ForeignKey('branches.id', ondelete='CASCADE'), nullable=False, index=True)
    name_uz: Mapped[str] = mapped_column(String(80), nullable=False)
    name_ru: Mapped[str] = mapped_column(String(80), nullable=False)
    name_en: Mapped[str] = mapped_column(String(80), nullable=False)
    color: Mapped[str] = mapped_column(String(16), default='#000000')
    bg_color: Mapped[str] = mapped_column(String(16), default='#ffffff')
    sort: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    type: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    can_add_payment: Mapped[bool] = mapped_column(Boolean, default=False)
    is_protected: Mapped[bool] = mapped_column(Boolean, default=False)
    can_user_view: Mapped[bool] = mapped_column(Boolean, default=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    status: Mapped[str] = mapped_column(String(16), default=STATUS_OPEN, nullable=False)
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())


class RepairOrderStatusPermission(Base):
    """Capabilities one role holds at one status. Missing rows and unset columns both deny."""
    __tablename__ = 'repair_order_status_permissions'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    branch_id: Mapped[int] = mapped_column(ForeignKey('branches.id', ondelete='CASCADE'), nullable=False, index=True)
    role_id: Mapped[int] = mapped_column(ForeignKey('roles.id', ondelete='CASCADE'), nullable=False, index=True)
    status_id: Mapped[int] = mapped_column(ForeignKey('repair_order_statuses.id', ondelete='CASCADE'), nullable=False)
    can_add: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_view: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_update: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_delete: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_assign_admin: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_change_status: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_change_initial_problems: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_change_final_problems: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_comment: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_pickup_manage: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_delivery_manage: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_manage_rental_phone: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_view_history: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_payment_add: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_payment_cancel: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_view_payments: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    __table_args__ = (UniqueConstraint('branch_id', 'role_id', 'status_id', name='uq_status_permission'),)


class RepairOrderStatusTransition(Base):
    __tablename__ = 'repair_order_status_transitions'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    branch_id: Mapped[int] = mapped_column(ForeignKey('branches.id', ondelete='CASCADE'), nullable=False, index=True)
    from_status_id: Mapped[int] = mapped_column(ForeignKey('repair_order_statuses.id', ondelete='CASCADE'), nullable=False)
    to_status_id: Mapped[int] = mapped_column(ForeignKey('repair_order_statuses.id', ondelete='CASCADE'), nullable=False)
    __table_args__ = (UniqueConstraint('from_status_id', 'to_status_id', name='uq_status_transition'),)
