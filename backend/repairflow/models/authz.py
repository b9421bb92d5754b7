from __future__ import annotations
from sqlalchemy.orm import declarative_base, relationship, Mapped, mapped_column
from sqlalchemy import String, Integer, Boolean, ForeignKey, JSON, UniqueConstraint, DateTime, text
from typing import Optional, Dict, Any

Base = declarative_base()

# Lifecycle values shared by every soft-deletable table
STATUS_OPEN = 'Open'
STATUS_DELETED = 'Deleted'


# --- Core Models ---
class Permission(Base):
    """Global (not status-scoped) permission code, e.g. RPR.PERMISSION.MANAGE."""
    __tablename__ = 'permissions'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    service: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(32), nullable=False)
    description_i18n: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP'), server_onupdate=text('CURRENT_TIMESTAMP'))

class Role(Base):
    __tablename__ = 'roles'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    is_system: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    status: Mapped[str] = mapped_column(String(16), default=STATUS_OPEN, nullable=False)
    description_i18n: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    permissions = relationship('RolePermission', back_populates='role', cascade='all, delete-orphan')
    admin_roles = relationship('AdminRole', back_populates='role', cascade='all, delete-orphan')
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP'), server_onupdate=text('CURRENT_TIMESTAMP'))

class RolePermission(Base):
    __tablename__ = 'role_permissions'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    role_id: Mapped[int] = mapped_column(ForeignKey('roles.id', ondelete='CASCADE'), nullable=False)
    permission_id: Mapped[int] = mapped_column(ForeignKey('permissions.id', ondelete='CASCADE'), nullable=False)

    role = relationship('Role', back_populates='permissions')
    permission = relationship('Permission')

    __table_args__ = (UniqueConstraint('role_id', 'permission_id', name='uq_role_permission'),)

class Branch(Base):
    __tablename__ = 'branches'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    status: Mapped[str] = mapped_column(String(16), default=STATUS_OPEN, nullable=False)
    admin_branches = relationship('AdminBranch', back_populates='branch', cascade='all, delete-orphan')
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP'), server_onupdate=text('CURRENT_TIMESTAMP'))

class Admin(Base):
    """Staff account. Admins act on repair orders; customers live in ``users``."""
    __tablename__ = 'admins'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    email: Mapped[str] = mapped_column(String(128), unique=True, index=True, nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(32))
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    status: Mapped[str] = mapped_column(String(16), default=STATUS_OPEN, nullable=False)
    locale: Mapped[str] = mapped_column(String(8), default='uz')
    admin_roles = relationship('AdminRole', back_populates='admin', cascade='all, delete-orphan')
    admin_branches = relationship('AdminBranch', back_populates='admin', cascade='all, delete-orphan')
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP'), server_onupdate=text('CURRENT_TIMESTAMP'))

    def set_password(self, raw: str):
        from werkzeug.security import generate_password_hash
        self.password_hash = generate_password_hash(raw)

    def verify_password(self, raw: str) -> bool:
        from werkzeug.security import check_password_hash
        return check_password_hash(self.password_hash, raw)

class AdminRole(Base):
    __tablename__ = 'admin_roles'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    admin_id: Mapped[int] = mapped_column(ForeignKey('admins.id', ondelete='CASCADE'), nullable=False)
    role_id: Mapped[int] = mapped_column(ForeignKey('roles.id', ondelete='CASCADE'), nullable=False)
    __table_args__ = (UniqueConstraint('admin_id', 'role_id', name='uq_admin_role'),)
    admin = relationship('Admin', back_populates='admin_roles')
    role = relationship('Role', back_populates='admin_roles')

class AdminBranch(Base):
    __tablename__ = 'admin_branches'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    admin_id: Mapped[int] = mapped_column(ForeignKey('admins.id', ondelete='CASCADE'), nullable=False)
    branch_id: Mapped[int] = mapped_column(ForeignKey('branches.id', ondelete='CASCADE'), nullable=False)
    __table_args__ = (UniqueConstraint('admin_id', 'branch_id', name='uq_admin_branch'),)
    admin = relationship('Admin', back_populates='admin_branches')
    branch = relationship('Branch', back_populates='admin_branches')
