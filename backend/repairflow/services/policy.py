from __future__ import annotations
from dataclasses import dataclass, field
from typing import Set, Tuple
from flask_jwt_extended import get_jwt, get_jwt_identity
from sqlalchemy import select
from repairflow.models.authz import AdminRole, AdminBranch, RolePermission, Permission, Role, STATUS_OPEN
from repairflow.errors import PermissionDenied
from repairflow import get_db

SUPER_ADMIN_ROLE = 'Super Admin'


@dataclass(frozen=True)
class Actor:
    """Authenticated admin as seen by the order services."""
    admin_id: int
    role_ids: Tuple[int, ...] = ()
    branch_ids: Tuple[int, ...] = ()
    perms: frozenset = field(default_factory=frozenset)


def current_actor() -> Actor:
    claims = get_jwt()
    return Actor(
        admin_id=int(get_jwt_identity()),
        role_ids=tuple(int(r) for r in claims.get('roles', [])),
        branch_ids=tuple(int(b) for b in claims.get('branch_ids', [])),
        perms=frozenset(claims.get('perms', [])),
    )


def current_permissions() -> Set[str]:
    claims = get_jwt()
    return set(claims.get('perms', []))


def compute_effective_permissions(admin_id: int):
    session = get_db()
    role_ids = set()
    for ar in session.execute(
        select(AdminRole).join(Role, Role.id == AdminRole.role_id).where(AdminRole.admin_id == admin_id, Role.status == STATUS_OPEN)
    ).scalars():
        role_ids.add(ar.role_id)
    perm_codes = set()
    if role_ids:
        role_perms = session.execute(select(RolePermission).where(RolePermission.role_id.in_(role_ids))).scalars().all()
        perm_ids = [rp.permission_id for rp in role_perms]
        if perm_ids:
            for p in session.execute(select(Permission).where(Permission.id.in_(perm_ids))).scalars():
                perm_codes.add(p.code)
    # Super Admin wildcard: every global permission code
    super_role = session.execute(select(Role).where(Role.name == SUPER_ADMIN_ROLE)).scalar_one_or_none()
    if super_role and super_role.id in role_ids:
        for p in session.execute(select(Permission)).scalars():
            perm_codes.add(p.code)
    return {
        'roles': sorted(role_ids),
        'perms': sorted(perm_codes),
    }


def compute_branch_ids(admin_id: int):
    """Branches the admin is attached to. Unique & sorted."""
    session = get_db()
    rows = session.execute(select(AdminBranch.branch_id).where(AdminBranch.admin_id == admin_id)).scalars()
    return sorted(set(rows))


def assert_branch_access(actor: Actor, branch_id: int):
    if branch_id not in actor.branch_ids:
        raise PermissionDenied('Branch access denied', location='branch_id', branch_id=branch_id)


__all__ = [
    'Actor', 'current_actor', 'current_permissions', 'compute_effective_permissions', 'compute_branch_ids',
    'assert_branch_access', 'SUPER_ADMIN_ROLE',
]
