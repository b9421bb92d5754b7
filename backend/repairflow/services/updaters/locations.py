"""Pickup and delivery addresses (zero or one row per order, replace-on-write)."""
from __future__ import annotations

from typing import Any, Dict, Optional

from sqlalchemy import delete, select

from repairflow.constants.capabilities import CAN_DELIVERY_MANAGE, CAN_PICKUP_MANAGE
from repairflow.models.repair_order import RepairOrder, RepairOrderDelivery, RepairOrderPickup
from repairflow.services.payloads import LocationInput
from repairflow.services.policy import Actor
from repairflow.services.unit_of_work import UnitOfWork
from repairflow.services.updaters.admins import ensure_active_admins
from repairflow.services.updaters.base import SubEntityUpdater


class LocationUpdater(SubEntityUpdater):
    model: Any = None
    method_field: str = ''
    method_self: str = ''
    method_courier: str = ''

    def current(self, session, order_id: int) -> Optional[Dict[str, Any]]:
        row = session.execute(select(self.model).where(self.model.repair_order_id == order_id)).scalars().first()
        if row is None:
            return None
        return {
            'lat': float(row.lat),
            'long': float(row.long),
            'description': row.description,
            'courier_id': row.courier_id,
        }

    def apply(self, uow: UnitOfWork, order: RepairOrder, value: Optional[LocationInput], actor: Actor, status_id: int, **context) -> bool:
        session = uow.session
        if value is not None and value.courier_id is not None:
            ensure_active_admins(session, [value.courier_id], f'{self.location}.courier_id')
        old = self.current(session, order.id)
        new = value.snapshot() if value is not None else None
        if old == new:
            return False
        session.execute(delete(self.model).where(self.model.repair_order_id == order.id))
        if value is not None:
            session.add(self.model(
                repair_order_id=order.id,
                lat=value.lat,
                long=value.long,
                description=value.description,
                courier_id=value.courier_id,
                created_by=actor.admin_id,
            ))
        setattr(order, self.method_field, self.method_courier if value is not None else self.method_self)
        uow.flush()
        self.log(uow, order, old, new, actor)
        return True


class PickupUpdater(LocationUpdater):
    capability = CAN_PICKUP_MANAGE
    location = 'pickup'
    model = RepairOrderPickup
    method_field = 'pickup_method'
    method_self = RepairOrder.PICKUP_SELF
    method_courier = RepairOrder.PICKUP_COURIER


class DeliveryUpdater(LocationUpdater):
    capability = CAN_DELIVERY_MANAGE
    location = 'delivery'
    model = RepairOrderDelivery
    method_field = 'delivery_method'
    method_self = RepairOrder.DELIVERY_SELF
    method_courier = RepairOrder.DELIVERY_COURIER
