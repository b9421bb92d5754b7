from __future__ import annotations
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, Boolean, Numeric, Text, ForeignKey, UniqueConstraint, DateTime, func
from repairflow.models.authz import Base, STATUS_OPEN


class RepairOrder(Base):
    __tablename__ = 'repair_orders'
    # Priority constants (level drives numeric ordering)
    PRIORITY_LOW = 'Low'
    PRIORITY_MEDIUM = 'Medium'
    PRIORITY_HIGH = 'High'
    PRIORITY_HIGHEST = 'Highest'
    PRIORITY_LEVELS = {PRIORITY_LOW: 1, PRIORITY_MEDIUM: 2, PRIORITY_HIGH: 3, PRIORITY_HIGHEST: 4}
    ALL_PRIORITIES = tuple(PRIORITY_LEVELS)
    PICKUP_SELF = 'Self'
    PICKUP_COURIER = 'Pickup'
    DELIVERY_SELF = 'Self'
    DELIVERY_COURIER = 'Delivery'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    branch_id: Mapped[int] = mapped_column(ForeignKey('branches.id', ondelete='CASCADE'), nullable=False, index=True)
    status_id: Mapped[int] = mapped_column(ForeignKey('repair_order_statuses.id', ondelete='RESTRICT'), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    phone_category_id: Mapped[int] = mapped_column(ForeignKey('phone_categories.id', ondelete='RESTRICT'), nullable=False)
    imei: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    priority: Mapped[str] = mapped_column(String(16), nullable=False, default=PRIORITY_MEDIUM)
    priority_level: Mapped[int] = mapped_column(Integer, nullable=False, default=2)
    sort: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    pickup_method: Mapped[str] = mapped_column(String(16), nullable=False, default=PICKUP_SELF)
    delivery_method: Mapped[str] = mapped_column(String(16), nullable=False, default=DELIVERY_SELF)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=STATUS_OPEN, index=True)
    created_by: Mapped[int] = mapped_column(ForeignKey('admins.id', ondelete='RESTRICT'), nullable=False)
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class RepairOrderAssignAdmin(Base):
    __tablename__ = 'repair_order_assign_admins'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    repair_order_id: Mapped[int] = mapped_column(ForeignKey('repair_orders.id', ondelete='CASCADE'), nullable=False, index=True)
    admin_id: Mapped[int] = mapped_column(ForeignKey('admins.id', ondelete='CASCADE'), nullable=False)
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())
    __table_args__ = (UniqueConstraint('repair_order_id', 'admin_id', name='uq_repair_order_admin'),)


class RepairOrderInitialProblem(Base):
    __tablename__ = 'repair_order_initial_problems'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    repair_order_id: Mapped[int] = mapped_column(ForeignKey('repair_orders.id', ondelete='CASCADE'), nullable=False, index=True)
    problem_category_id: Mapped[int] = mapped_column(ForeignKey('problem_categories.id', ondelete='RESTRICT'), nullable=False)
    price: Mapped[float] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=False)
    estimated_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    created_by: Mapped[int] = mapped_column(ForeignKey('admins.id', ondelete='RESTRICT'), nullable=False)
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())


class RepairOrderFinalProblem(Base):
    __tablename__ = 'repair_order_final_problems'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    repair_order_id: Mapped[int] = mapped_column(ForeignKey('repair_orders.id', ondelete='CASCADE'), nullable=False, index=True)
    problem_category_id: Mapped[int] = mapped_column(ForeignKey('problem_categories.id', ondelete='RESTRICT'), nullable=False)
    price: Mapped[float] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=False)
    estimated_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    created_by: Mapped[int] = mapped_column(ForeignKey('admins.id', ondelete='RESTRICT'), nullable=False)
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())


class RepairOrderPart(Base):
    """Part used for one problem row; exactly one of the two problem links is set."""
    __tablename__ = 'repair_order_parts'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    repair_order_id: Mapped[int] = mapped_column(ForeignKey('repair_orders.id', ondelete='CASCADE'), nullable=False, index=True)
    repair_order_initial_problem_id: Mapped[Optional[int]] = mapped_column(ForeignKey('repair_order_initial_problems.id', ondelete='CASCADE'), nullable=True)
    repair_order_final_problem_id: Mapped[Optional[int]] = mapped_column(ForeignKey('repair_order_final_problems.id', ondelete='CASCADE'), nullable=True)
    repair_part_id: Mapped[int] = mapped_column(ForeignKey('repair_parts.id', ondelete='RESTRICT'), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    part_price: Mapped[float] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=False)
    created_by: Mapped[int] = mapped_column(ForeignKey('admins.id', ondelete='RESTRICT'), nullable=False)
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())


class RepairOrderComment(Base):
    __tablename__ = 'repair_order_comments'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    repair_order_id: Mapped[int] = mapped_column(ForeignKey('repair_orders.id', ondelete='CASCADE'), nullable=False, index=True)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=STATUS_OPEN)
    created_by: Mapped[int] = mapped_column(ForeignKey('admins.id', ondelete='RESTRICT'), nullable=False)
    # status the order had when the comment was written; edits are authorized against it
    status_by: Mapped[int] = mapped_column(ForeignKey('repair_order_statuses.id', ondelete='RESTRICT'), nullable=False)
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class RepairOrderPickup(Base):
    __tablename__ = 'repair_order_pickups'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    repair_order_id: Mapped[int] = mapped_column(ForeignKey('repair_orders.id', ondelete='CASCADE'), nullable=False, index=True)
    lat: Mapped[float] = mapped_column(Numeric(10, 7, asdecimal=False), nullable=False)
    long: Mapped[float] = mapped_column(Numeric(10, 7, asdecimal=False), nullable=False)
    description: Mapped[str] = mapped_column(String(1000), nullable=False)
    courier_id: Mapped[Optional[int]] = mapped_column(ForeignKey('admins.id', ondelete='SET NULL'), nullable=True)
    created_by: Mapped[int] = mapped_column(ForeignKey('admins.id', ondelete='RESTRICT'), nullable=False)
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())


class RepairOrderDelivery(Base):
    __tablename__ = 'repair_order_deliveries'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    repair_order_id: Mapped[int] = mapped_column(ForeignKey('repair_orders.id', ondelete='CASCADE'), nullable=False, index=True)
    lat: Mapped[float] = mapped_column(Numeric(10, 7, asdecimal=False), nullable=False)
    long: Mapped[float] = mapped_column(Numeric(10, 7, asdecimal=False), nullable=False)
    description: Mapped[str] = mapped_column(String(1000), nullable=False)
    courier_id: Mapped[Optional[int]] = mapped_column(ForeignKey('admins.id', ondelete='SET NULL'), nullable=True)
    created_by: Mapped[int] = mapped_column(ForeignKey('admins.id', ondelete='RESTRICT'), nullable=False)
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())
