#!/usr/bin/env python
"""Idempotent seed script for the repair order workflow.

Creates global permission codes, the preset roles, a default branch with
its statuses and transitions, and per-status capability grants for every
preset role (the super admin gets every capability at every status).

Usage:
    python backend/scripts/seed_workflow.py                 # seed normally
    python backend/scripts/seed_workflow.py --dry-run       # run logic then rollback (no DB changes)
    python backend/scripts/seed_workflow.py --branch "Main" --show-grants
"""
from __future__ import annotations
import os, sys, argparse, textwrap
from sqlalchemy import select

# Allow running from repo root
sys.path.append(os.path.abspath('backend'))

from repairflow import create_app, get_db  # type: ignore
from repairflow.constants.capabilities import SERVICE_ACTIONS, ROLE_PRESETS, build_all_permission_codes, expand_preset
from repairflow.models.authz import Base, Permission, Role, RolePermission, Branch, Admin, AdminRole, AdminBranch
from repairflow.models.status import RepairOrderStatus, RepairOrderStatusPermission, RepairOrderStatusTransition
from repairflow.services.policy import SUPER_ADMIN_ROLE
import repairflow.models.catalog  # noqa: F401
import repairflow.models.repair_order  # noqa: F401
import repairflow.models.rental  # noqa: F401
import repairflow.models.audit  # noqa: F401

# (name_uz, name_ru, name_en, type)
DEFAULT_STATUSES = [
    ('Yangi', 'Новый', 'New', None),
    ('Diagnostika', 'Диагностика', 'Diagnostics', None),
    ("Ta'mirlashda", 'В ремонте', 'In repair', None),
    ('Tayyor', 'Готов', 'Ready', None),
    ('Topshirildi', 'Выдан', 'Delivered', RepairOrderStatus.TYPE_COMPLETED),
    ('Bekor qilindi', 'Отменён', 'Cancelled', RepairOrderStatus.TYPE_CANCELLED),
]

# by English name
DEFAULT_TRANSITIONS = {
    'New': ['Diagnostics', 'Cancelled'],
    'Diagnostics': ['In repair', 'Cancelled'],
    'In repair': ['Ready', 'Cancelled'],
    'Ready': ['Delivered', 'In repair'],
    'Delivered': [],
    'Cancelled': [],
}


def ensure_permissions(session):
    existing = {p.code for p in session.execute(select(Permission)).scalars().all()}
    created = 0
    for svc, actions in SERVICE_ACTIONS.items():
        for act in actions:
            code = f"{svc}.{act}"
            if code not in existing:
                session.add(Permission(code=code, service=svc, action=act, description_i18n={"en": code.replace('.', ' - ')}))
                created += 1
    session.flush()
    return created


def ensure_roles(session):
    existing_roles = {r.name: r for r in session.execute(select(Role)).scalars().all()}
    created = 0
    for role_name in ROLE_PRESETS:
        if role_name not in existing_roles:
            role = Role(name=role_name, is_system=True, description_i18n={"en": role_name})
            session.add(role)
            existing_roles[role_name] = role
            created += 1
    session.flush()
    # Only the super admin holds global codes; it is also wildcard-expanded at login
    super_role = existing_roles[SUPER_ADMIN_ROLE]
    current = {rp.permission.code for rp in super_role.permissions}
    missing = set(build_all_permission_codes()) - current
    if missing:
        for perm in session.execute(select(Permission).where(Permission.code.in_(sorted(missing)))).scalars():
            session.add(RolePermission(role=super_role, permission=perm))
    return created


def ensure_branch(session, name):
    branch = session.execute(select(Branch).where(Branch.name == name)).scalar_one_or_none()
    if not branch:
        branch = Branch(name=name)
        session.add(branch)
        session.flush()
    return branch


def ensure_statuses(session, branch):
    existing = {s.name_en: s for s in session.execute(
        select(RepairOrderStatus).where(RepairOrderStatus.branch_id == branch.id)
    ).scalars()}
    created = 0
    for idx, (name_uz, name_ru, name_en, status_type) in enumerate(DEFAULT_STATUSES, start=1):
        if name_en in existing:
            continue
        status = RepairOrderStatus(
            branch_id=branch.id, name_uz=name_uz, name_ru=name_ru, name_en=name_en,
            sort=idx, type=status_type, is_protected=True,
            can_add_payment=status_type is None,
        )
        session.add(status)
        existing[name_en] = status
        created += 1
    session.flush()
    return existing


def ensure_transitions(session, branch, statuses):
    existing = {
        (t.from_status_id, t.to_status_id)
        for t in session.execute(
            select(RepairOrderStatusTransition).where(RepairOrderStatusTransition.branch_id == branch.id)
        ).scalars()
    }
    created = 0
    for src, targets in DEFAULT_TRANSITIONS.items():
        for dst in targets:
            pair = (statuses[src].id, statuses[dst].id)
            if pair in existing:
                continue
            session.add(RepairOrderStatusTransition(branch_id=branch.id, from_status_id=pair[0], to_status_id=pair[1]))
            existing.add(pair)
            created += 1
    return created


def ensure_status_grants(session, branch, statuses):
    """One permission row per (preset role, status); existing rows are left untouched."""
    roles = {r.name: r for r in session.execute(select(Role).where(Role.name.in_(list(ROLE_PRESETS)))).scalars()}
    existing = {
        (p.role_id, p.status_id)
        for p in session.execute(
            select(RepairOrderStatusPermission).where(RepairOrderStatusPermission.branch_id == branch.id)
        ).scalars()
    }
    created = 0
    for role_name, preset in ROLE_PRESETS.items():
        role = roles.get(role_name)
        if role is None:
            print(f"[WARN] Role {role_name} missing; skipping grants")
            continue
        caps = expand_preset(preset)
        for status in statuses.values():
            if (role.id, status.id) in existing:
                continue
            row = RepairOrderStatusPermission(branch_id=branch.id, role_id=role.id, status_id=status.id)
            for cap in caps:
                setattr(row, cap, True)
            session.add(row)
            created += 1
    session.flush()
    return created


def ensure_initial_admin(session, branch):
    super_role = session.execute(select(Role).where(Role.name == SUPER_ADMIN_ROLE)).scalar_one_or_none()
    if not super_role:
        print('[WARN] Super Admin role missing; skipping admin creation')
        return None
    admin_email = os.getenv('SEED_ADMIN_EMAIL', 'admin@example.com')
    admin = session.execute(select(Admin).where(Admin.email == admin_email)).scalar_one_or_none()
    if not admin:
        admin = Admin(name='Super Admin', email=admin_email, password_hash='')
        admin.set_password(os.getenv('SEED_ADMIN_PASSWORD', 'ChangeMe123!'))
        session.add(admin)
        session.flush()
        session.add(AdminRole(admin_id=admin.id, role_id=super_role.id))
        print(f"[INFO] Created initial admin {admin_email} with temporary password.")
    if not session.execute(select(AdminBranch).where(AdminBranch.admin_id == admin.id, AdminBranch.branch_id == branch.id)).scalar_one_or_none():
        session.add(AdminBranch(admin_id=admin.id, branch_id=branch.id))
    return admin


def seed_workflow(session, branch_name='Main'):
    """Run every step; returns counters. Does not commit."""
    counters = {'permissions': ensure_permissions(session), 'roles': ensure_roles(session)}
    branch = ensure_branch(session, branch_name)
    statuses = ensure_statuses(session, branch)
    counters['transitions'] = ensure_transitions(session, branch, statuses)
    counters['grants'] = ensure_status_grants(session, branch, statuses)
    ensure_initial_admin(session, branch)
    counters['branch_id'] = branch.id
    return counters


def print_grant_summary(session, branch_id):
    rows = session.execute(
        select(Role.name, RepairOrderStatus.name_en, RepairOrderStatusPermission)
        .join(Role, Role.id == RepairOrderStatusPermission.role_id)
        .join(RepairOrderStatus, RepairOrderStatus.id == RepairOrderStatusPermission.status_id)
        .where(RepairOrderStatusPermission.branch_id == branch_id)
        .order_by(Role.name, RepairOrderStatus.sort)
    ).all()
    from repairflow.services.permissions import row_capabilities
    for role_name, status_name, perm in rows:
        print(f"{role_name:<12} | {status_name:<12} | {len(row_capabilities(perm))} capabilities")


def parse_args():
    p = argparse.ArgumentParser(
        description="Seed repair order statuses, transitions, roles & status permissions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""Examples:\n  seed normally: seed_workflow.py\n  dry run: seed_workflow.py --dry-run\n""")
    )
    p.add_argument('--branch', default='Main', help='Branch name to seed (created if missing)')
    p.add_argument('--show-grants', action='store_true', help='Print role/status capability counts after seeding')
    p.add_argument('--dry-run', action='store_true', help='Rollback after operations (no commit)')
    return p.parse_args()


def main():
    args = parse_args()
    app = create_app()
    with app.app_context():
        session = get_db()
        # Bootstrap schema; migrations are managed outside this repository
        Base.metadata.create_all(session.get_bind())
        try:
            counters = seed_workflow(session, args.branch)
            if args.dry_run:
                session.rollback()
                print(f"[DRY-RUN] (rolled back) {counters}")
            else:
                session.commit()
                print(f"[DONE] {counters}")
                if args.show_grants:
                    print_grant_summary(session, counters['branch_id'])
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

if __name__ == '__main__':
    main()
