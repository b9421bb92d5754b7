"""Rental phone handed to the customer while the order is in repair.

At most one Active rental per order. A rental is never deleted: cancelling
moves it to Cancelled and frees the device again.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

from sqlalchemy import select

from repairflow.constants.capabilities import CAN_MANAGE_RENTAL_PHONE
from repairflow.errors import Conflict, NotFound, ValidationFailed
from repairflow.models.rental import RentalPhoneDevice, RepairOrderRentalPhone
from repairflow.models.repair_order import RepairOrder
from repairflow.services.payloads import RentalInput
from repairflow.services.policy import Actor
from repairflow.services.unit_of_work import UnitOfWork
from repairflow.services.updaters.base import SubEntityUpdater


def active_rental(session, order_id: int) -> Optional[RepairOrderRentalPhone]:
    return session.execute(
        select(RepairOrderRentalPhone).where(
            RepairOrderRentalPhone.repair_order_id == order_id,
            RepairOrderRentalPhone.status == RepairOrderRentalPhone.STATUS_ACTIVE,
        )
    ).scalars().first()


def rental_snapshot(row: Optional[RepairOrderRentalPhone]) -> Optional[Dict[str, Any]]:
    if row is None:
        return None
    return {
        'rental_phone_device_id': row.rental_phone_device_id,
        'is_free': row.is_free,
        'price': float(row.price) if row.price is not None else None,
        'currency': row.currency,
        'notes': row.notes,
        'status': row.status,
    }


def check_pricing(is_free: Optional[bool], price: Optional[float], location: str = 'rental_phone.price') -> Optional[float]:
    if is_free:
        if price not in (None, 0):
            raise ValidationFailed('Price must be 0 when is_free is true', location=location)
        return 0.0
    if price is None:
        if is_free is False:
            raise ValidationFailed('Price is required when is_free is false', location=location)
        return None
    if price <= 0:
        raise ValidationFailed('Price must be greater than 0 when is_free is false or undefined', location=location)
    return price


class RentalPhoneUpdater(SubEntityUpdater):
    capability = CAN_MANAGE_RENTAL_PHONE
    location = 'rental_phone'

    def apply(self, uow: UnitOfWork, order: RepairOrder, value: Optional[RentalInput], actor: Actor, status_id: int, **context) -> bool:
        current = active_rental(uow.session, order.id)
        if value is None:
            if current is None:
                return False
            self._cancel(uow, order, current, actor)
            return True
        if current is None:
            self._create(uow, order, value, actor)
            return True
        return self._change(uow, order, current, value, actor)

    def create(self, uow: UnitOfWork, order: RepairOrder, value: RentalInput, actor: Actor, status_id: int) -> RepairOrderRentalPhone:
        self.authorize(order, actor, status_id)
        if active_rental(uow.session, order.id) is not None:
            raise Conflict('Order already has an active rental phone', location=self.location)
        return self._create(uow, order, value, actor)

    def change(self, uow: UnitOfWork, order: RepairOrder, value: RentalInput, actor: Actor, status_id: int) -> RepairOrderRentalPhone:
        self.authorize(order, actor, status_id)
        current = active_rental(uow.session, order.id)
        if current is None:
            raise NotFound('No active rental phone for this order', location=self.location)
        self._change(uow, order, current, value, actor)
        return current

    def cancel(self, uow: UnitOfWork, order: RepairOrder, actor: Actor, status_id: int) -> RepairOrderRentalPhone:
        self.authorize(order, actor, status_id)
        current = active_rental(uow.session, order.id)
        if current is None:
            raise NotFound('No active rental phone for this order', location=self.location)
        self._cancel(uow, order, current, actor)
        return current

    def _create(self, uow: UnitOfWork, order: RepairOrder, value: RentalInput, actor: Actor) -> RepairOrderRentalPhone:
        session = uow.session
        device = session.execute(
            select(RentalPhoneDevice).where(RentalPhoneDevice.id == value.rental_phone_device_id).with_for_update()
        ).scalar_one_or_none()
        if device is None or not device.is_available:
            raise ValidationFailed(
                'Rental phone device not found or already in use',
                location=f'{self.location}.rental_phone_device_id',
            )
        row = RepairOrderRentalPhone(
            repair_order_id=order.id,
            rental_phone_device_id=device.id,
            is_free=value.is_free,
            price=check_pricing(value.is_free, value.price),
            currency=value.currency or RepairOrderRentalPhone.DEFAULT_CURRENCY,
            status=RepairOrderRentalPhone.STATUS_ACTIVE,
            notes=value.notes,
            created_by=actor.admin_id,
        )
        session.add(row)
        device.is_available = False
        uow.flush()
        self.log(uow, order, None, rental_snapshot(row), actor)
        return row

    def _change(self, uow: UnitOfWork, order: RepairOrder, row: RepairOrderRentalPhone, value: RentalInput, actor: Actor) -> bool:
        if value.rental_phone_device_id != row.rental_phone_device_id:
            raise ValidationFailed(
                'Rental phone device cannot be changed; cancel the rental and create a new one',
                location=f'{self.location}.rental_phone_device_id',
            )
        old = rental_snapshot(row)
        is_free = value.is_free if value.is_free is not None else row.is_free
        price = value.price
        if price is None and not (value.is_free is True):
            price = float(row.price) if row.price is not None else None
        row.is_free = is_free
        row.price = check_pricing(is_free, price)
        if value.currency is not None:
            row.currency = value.currency
        if value.notes is not None:
            row.notes = value.notes
        new = rental_snapshot(row)
        if old == new:
            return False
        uow.flush()
        self.log(uow, order, old, new, actor)
        return True

    def _cancel(self, uow: UnitOfWork, order: RepairOrder, row: RepairOrderRentalPhone, actor: Actor) -> None:
        old = rental_snapshot(row)
        row.status = RepairOrderRentalPhone.STATUS_CANCELLED
        device = uow.session.get(RentalPhoneDevice, row.rental_phone_device_id)
        if device is not None:
            device.is_available = True
        uow.flush()
        self.log(uow, order, old, rental_snapshot(row), actor)
