from __future__ import annotations
from typing import Any
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, JSON, DateTime, ForeignKey, Index, func

from .authz import Base  # reuse same metadata

class RepairOrderChangeHistory(Base):
    """Append-only change row. Never updated or deleted by application code."""
    __tablename__ = 'repair_order_change_histories'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    repair_order_id: Mapped[int] = mapped_column(ForeignKey('repair_orders.id', ondelete='CASCADE'), nullable=False)
    field: Mapped[str] = mapped_column(String(64), nullable=False)
    old_value: Mapped[Any] = mapped_column(JSON, nullable=True)
    new_value: Mapped[Any] = mapped_column(JSON, nullable=True)
    created_by: Mapped[int] = mapped_column(ForeignKey('admins.id', ondelete='RESTRICT'), nullable=False, index=True)
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (Index('ix_change_histories_order_created', 'repair_order_id', 'created_at'),)
