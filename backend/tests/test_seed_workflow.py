from sqlalchemy import select
from repairflow.constants.capabilities import ALL_CAPABILITIES, CAN_ADD, CAN_VIEW
from repairflow.models.authz import Role
from repairflow.models.status import RepairOrderStatus, RepairOrderStatusPermission, RepairOrderStatusTransition
from repairflow.services.permissions import row_capabilities
from scripts.seed_workflow import DEFAULT_STATUSES, seed_workflow


def _grants(session, role_name, branch_id):
    role = session.execute(select(Role).where(Role.name == role_name)).scalar_one()
    return session.execute(
        select(RepairOrderStatusPermission).where(
            RepairOrderStatusPermission.role_id == role.id,
            RepairOrderStatusPermission.branch_id == branch_id,
        )
    ).scalars().all()


def test_seed_is_idempotent(session):
    first = seed_workflow(session)
    session.commit()
    second = seed_workflow(session)
    session.commit()
    assert first['transitions'] > 0 and first['grants'] > 0
    assert (second['permissions'], second['roles'], second['transitions'], second['grants']) == (0, 0, 0, 0)
    statuses = session.execute(select(RepairOrderStatus).where(RepairOrderStatus.branch_id == first['branch_id'])).scalars().all()
    assert len(statuses) == len(DEFAULT_STATUSES)
    assert session.execute(select(RepairOrderStatusTransition)).scalars().first() is not None


def test_super_admin_gets_everything(session):
    counters = seed_workflow(session)
    session.commit()
    rows = _grants(session, 'Super Admin', counters['branch_id'])
    assert len(rows) == len(DEFAULT_STATUSES)
    assert all(row_capabilities(r) == ALL_CAPABILITIES for r in rows)


def test_master_cannot_create_orders(session):
    counters = seed_workflow(session)
    session.commit()
    caps = row_capabilities(_grants(session, 'Master', counters['branch_id'])[0])
    assert CAN_VIEW in caps
    assert CAN_ADD not in caps
