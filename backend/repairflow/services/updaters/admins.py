from __future__ import annotations

from typing import List, Sequence

from sqlalchemy import delete, select

from repairflow.constants.capabilities import CAN_ASSIGN_ADMIN
from repairflow.errors import ValidationFailed
from repairflow.models.authz import Admin, STATUS_OPEN
from repairflow.models.repair_order import RepairOrder, RepairOrderAssignAdmin
from repairflow.services.policy import Actor
from repairflow.services.unit_of_work import UnitOfWork
from repairflow.services.updaters.base import SubEntityUpdater


def assigned_admin_ids(session, order_id: int) -> List[int]:
    return sorted(session.execute(
        select(RepairOrderAssignAdmin.admin_id).where(RepairOrderAssignAdmin.repair_order_id == order_id)
    ).scalars())


def ensure_active_admins(session, admin_ids: Sequence[int], location: str) -> None:
    if not admin_ids:
        return
    found = set(session.execute(
        select(Admin.id).where(Admin.id.in_(admin_ids), Admin.is_active.is_(True), Admin.status == STATUS_OPEN)
    ).scalars())
    missing = [a for a in admin_ids if a not in found]
    if missing:
        raise ValidationFailed('Some admins not found or inactive', location=location, missing_ids=missing)


class AdminsUpdater(SubEntityUpdater):
    """Replaces the assigned admin set, touching only the delta."""
    capability = CAN_ASSIGN_ADMIN
    location = 'admin_ids'

    def apply(self, uow: UnitOfWork, order: RepairOrder, value: Sequence[int], actor: Actor, status_id: int, **context) -> bool:
        session = uow.session
        new_ids = sorted(set(value))
        ensure_active_admins(session, new_ids, self.location)
        old_ids = assigned_admin_ids(session, order.id)
        to_add = [a for a in new_ids if a not in old_ids]
        to_remove = [a for a in old_ids if a not in new_ids]
        if not to_add and not to_remove:
            return False
        self._write_delta(uow, order, to_add, to_remove)
        self.log(uow, order, old_ids, new_ids, actor)
        return True

    def add(self, uow: UnitOfWork, order: RepairOrder, admin_ids: Sequence[int], actor: Actor, status_id: int) -> bool:
        self.authorize(order, actor, status_id)
        ensure_active_admins(uow.session, list(admin_ids), self.location)
        old_ids = assigned_admin_ids(uow.session, order.id)
        to_add = sorted(set(admin_ids) - set(old_ids))
        if not to_add:
            return False
        self._write_delta(uow, order, to_add, [])
        self.log(uow, order, old_ids, sorted(set(old_ids) | set(to_add)), actor)
        return True

    def remove(self, uow: UnitOfWork, order: RepairOrder, admin_ids: Sequence[int], actor: Actor, status_id: int) -> bool:
        self.authorize(order, actor, status_id)
        old_ids = assigned_admin_ids(uow.session, order.id)
        to_remove = sorted(set(admin_ids) & set(old_ids))
        if not to_remove:
            return False
        self._write_delta(uow, order, [], to_remove)
        self.log(uow, order, old_ids, [a for a in old_ids if a not in to_remove], actor)
        return True

    @staticmethod
    def _write_delta(uow: UnitOfWork, order: RepairOrder, to_add: Sequence[int], to_remove: Sequence[int]) -> None:
        if to_remove:
            uow.session.execute(
                delete(RepairOrderAssignAdmin).where(
                    RepairOrderAssignAdmin.repair_order_id == order.id,
                    RepairOrderAssignAdmin.admin_id.in_(list(to_remove)),
                )
            )
        for admin_id in to_add:
            uow.session.add(RepairOrderAssignAdmin(repair_order_id=order.id, admin_id=admin_id))
        uow.flush()
