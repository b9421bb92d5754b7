"""Shared protocol for sub-entity updaters.

``update(uow, order, value, actor, status_id)``:

- ``value`` UNSET: nothing happens, no permission check either.
- otherwise authorize ``capability`` at ``status_id`` first, then let the
  concrete updater diff and write. Audit rows are written only when the
  stored state actually changed.

Updaters never commit; the orchestrator's unit of work does.
"""
from __future__ import annotations

from typing import Any

from repairflow.models.repair_order import RepairOrder
from repairflow.services.audit import ChangeLogger
from repairflow.services.payloads import UNSET
from repairflow.services.permissions import StatusPermissionResolver
from repairflow.services.policy import Actor
from repairflow.services.unit_of_work import UnitOfWork


class SubEntityUpdater:
    capability: str = ''
    location: str = ''

    def __init__(self, resolver: StatusPermissionResolver, change_logger: ChangeLogger):
        self.resolver = resolver
        self.change_logger = change_logger

    def update(self, uow: UnitOfWork, order: RepairOrder, value: Any, actor: Actor, status_id: int, **context: Any) -> bool:
        """Returns True when storage changed."""
        if value is UNSET:
            return False
        self.authorize(order, actor, status_id)
        return self.apply(uow, order, value, actor, status_id, **context)

    def authorize(self, order: RepairOrder, actor: Actor, status_id: int) -> None:
        self.resolver.authorize(actor.role_ids, order.branch_id, status_id, self.capability, location=self.location)

    def apply(self, uow: UnitOfWork, order: RepairOrder, value: Any, actor: Actor, status_id: int, **context: Any) -> bool:
        raise NotImplementedError

    def log(self, uow: UnitOfWork, order: RepairOrder, old: Any, new: Any, actor: Actor, field: str = '') -> bool:
        return self.change_logger.log_if_changed(uow.session, order.id, field or self.location, old, new, actor.admin_id) is not None
