from __future__ import annotations
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, Boolean, ForeignKey, UniqueConstraint, DateTime, func
from repairflow.models.authz import Base, STATUS_OPEN

# Reference data: read-only to the order core, maintained elsewhere.

class Customer(Base):
    __tablename__ = 'users'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    first_name: Mapped[str] = mapped_column(String(80), nullable=False)
    last_name: Mapped[Optional[str]] = mapped_column(String(80))
    phone_number: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(16), default=STATUS_OPEN, nullable=False)
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())

class PhoneCategory(Base):
    __tablename__ = 'phone_categories'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name_uz: Mapped[str] = mapped_column(String(128), nullable=False)
    parent_id: Mapped[Optional[int]] = mapped_column(ForeignKey('phone_categories.id', ondelete='CASCADE'), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    status: Mapped[str] = mapped_column(String(16), default=STATUS_OPEN, nullable=False)

class ProblemCategory(Base):
    __tablename__ = 'problem_categories'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name_uz: Mapped[str] = mapped_column(String(128), nullable=False)
    parent_id: Mapped[Optional[int]] = mapped_column(ForeignKey('problem_categories.id', ondelete='CASCADE'), nullable=True, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    status: Mapped[str] = mapped_column(String(16), default=STATUS_OPEN, nullable=False)
    __table_args__ = (UniqueConstraint('name_uz', 'parent_id', name='uq_problem_category_name_parent'),)

class PhoneProblemMapping(Base):
    __tablename__ = 'phone_problem_mappings'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    phone_category_id: Mapped[int] = mapped_column(ForeignKey('phone_categories.id', ondelete='CASCADE'), nullable=False, index=True)
    problem_category_id: Mapped[int] = mapped_column(ForeignKey('problem_categories.id', ondelete='CASCADE'), nullable=False)
    __table_args__ = (UniqueConstraint('phone_category_id', 'problem_category_id', name='uq_phone_problem'),)

class RepairPart(Base):
    __tablename__ = 'repair_parts'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    part_name_uz: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(16), default=STATUS_OPEN, nullable=False)

class RepairPartAssignment(Base):
    __tablename__ = 'repair_part_assignments'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    repair_part_id: Mapped[int] = mapped_column(ForeignKey('repair_parts.id', ondelete='CASCADE'), nullable=False)
    problem_category_id: Mapped[int] = mapped_column(ForeignKey('problem_categories.id', ondelete='CASCADE'), nullable=False, index=True)
    is_required: Mapped[bool] = mapped_column(Boolean, default=False)
    __table_args__ = (UniqueConstraint('repair_part_id', 'problem_category_id', name='uq_part_problem'),)
