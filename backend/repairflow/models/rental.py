from __future__ import annotations
from datetime import date
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, Boolean, Numeric, Text, Date, ForeignKey, DateTime, func
from repairflow.models.authz import Base


class RentalPhoneDevice(Base):
    __tablename__ = 'rental_phone_devices'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    is_available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class RepairOrderRentalPhone(Base):
    __tablename__ = 'repair_order_rental_phones'
    STATUS_ACTIVE = 'Active'
    STATUS_RETURNED = 'Returned'
    STATUS_CANCELLED = 'Cancelled'
    ALL_STATUSES = (STATUS_ACTIVE, STATUS_RETURNED, STATUS_CANCELLED)
    CURRENCIES = ('UZS', 'USD', 'EUR')
    DEFAULT_CURRENCY = 'UZS'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    repair_order_id: Mapped[int] = mapped_column(ForeignKey('repair_orders.id', ondelete='CASCADE'), nullable=False, index=True)
    rental_phone_device_id: Mapped[int] = mapped_column(ForeignKey('rental_phone_devices.id', ondelete='RESTRICT'), nullable=False)
    is_free: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    price: Mapped[Optional[float]] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=True)
    currency: Mapped[Optional[str]] = mapped_column(String(3), nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=STATUS_ACTIVE)
    rented_at: Mapped[str] = mapped_column(Date, default=date.today, nullable=False)
    returned_at: Mapped[Optional[str]] = mapped_column(Date, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by: Mapped[int] = mapped_column(ForeignKey('admins.id', ondelete='RESTRICT'), nullable=False)
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
