"""Repair order mutations and reads.

Every public mutation opens one UnitOfWork, loads (and locks) the order,
authorizes each aspect it touches at the order's current status, runs the
matching updater and registers the order list cache flush for the branch
as an after-commit hook. Any error rolls back everything, audit rows
included.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

from flask import current_app
from sqlalchemy import select

from repairflow.constants.capabilities import (
    CAN_ADD,
    CAN_CHANGE_STATUS,
    CAN_DELETE,
    CAN_UPDATE,
    CAN_VIEW,
    CAN_VIEW_HISTORY,
)
from repairflow.errors import NotFound, ValidationFailed
from repairflow.models.authz import Branch, STATUS_DELETED, STATUS_OPEN
from repairflow.models.catalog import Customer, PhoneCategory
from repairflow.models.repair_order import RepairOrder, RepairOrderComment
from repairflow.models.status import RepairOrderStatus
from repairflow.services.audit import ChangeLogger, history_for_order, values_differ
from repairflow.services.cache import CacheStore
from repairflow.services.order_cache import OrderListCache
from repairflow.services.payloads import (
    UNSET,
    CommentInput,
    LocationInput,
    OrderCreate,
    OrderUpdate,
    ProblemInput,
    RentalInput,
)
from repairflow.services.permissions import PermissionCache, StatusPermissionResolver
from repairflow.services.policy import Actor, assert_branch_access
from repairflow.services.positions import bucket_size, close_gap, next_sort_value, reorder
from repairflow.services.unit_of_work import UnitOfWork
from repairflow.services.updaters import (
    AdminsUpdater,
    CommentsUpdater,
    DeliveryUpdater,
    FinalProblemsUpdater,
    InitialProblemsUpdater,
    PickupUpdater,
    RentalPhoneUpdater,
)
from repairflow.services.updaters.admins import assigned_admin_ids
from repairflow.services.updaters.rental_phone import active_rental, rental_snapshot
from repairflow.utils.fsm import TransitionValidator
from repairflow.config.pagination import Page
from repairflow.utils.sorting import apply_multi_sort, parse_sort

logger = logging.getLogger(__name__)

SORTABLE_FIELDS = {
    'sort': RepairOrder.sort,
    'priority_level': RepairOrder.priority_level,
    'created_at': RepairOrder.created_at,
    'updated_at': RepairOrder.updated_at,
}


def _iso(value: Any) -> Any:
    return value.isoformat() if hasattr(value, 'isoformat') else value


def serialize_order(order: RepairOrder) -> Dict[str, Any]:
    return {
        'id': order.id,
        'branch_id': order.branch_id,
        'status_id': order.status_id,
        'user_id': order.user_id,
        'phone_category_id': order.phone_category_id,
        'imei': order.imei,
        'priority': order.priority,
        'priority_level': order.priority_level,
        'sort': order.sort,
        'pickup_method': order.pickup_method,
        'delivery_method': order.delivery_method,
        'status': order.status,
        'created_by': order.created_by,
        'created_at': _iso(order.created_at),
        'updated_at': _iso(order.updated_at),
    }


def serialize_comment(comment: RepairOrderComment) -> Dict[str, Any]:
    return {
        'id': comment.id,
        'text': comment.text,
        'status': comment.status,
        'status_by': comment.status_by,
        'created_by': comment.created_by,
        'created_at': _iso(comment.created_at),
    }


class RepairOrderService:
    def __init__(
        self,
        session,
        cache_store: Optional[CacheStore] = None,
        permission_ttl: int = 3600,
        list_ttl: int = 300,
        statement_timeout_ms: Optional[int] = None,
    ):
        self.session = session
        self.statement_timeout_ms = statement_timeout_ms
        self.permission_cache = PermissionCache(cache_store, permission_ttl) if cache_store is not None else None
        self.list_cache = OrderListCache(cache_store, list_ttl) if cache_store is not None else None
        self.resolver = StatusPermissionResolver(session, self.permission_cache)
        self.change_logger = ChangeLogger()
        self.admins = AdminsUpdater(self.resolver, self.change_logger)
        self.initial_problems = InitialProblemsUpdater(self.resolver, self.change_logger)
        self.final_problems = FinalProblemsUpdater(self.resolver, self.change_logger)
        self.comments = CommentsUpdater(self.resolver, self.change_logger)
        self.pickup = PickupUpdater(self.resolver, self.change_logger)
        self.delivery = DeliveryUpdater(self.resolver, self.change_logger)
        self.rental_phone = RentalPhoneUpdater(self.resolver, self.change_logger)

    # --- plumbing ---------------------------------------------------------

    def _uow(self) -> UnitOfWork:
        # grants may have changed since the previous call on this instance
        self.resolver.clear()
        return UnitOfWork(self.session, self.statement_timeout_ms)

    def _load_order(self, session, actor: Actor, order_id: int, lock: bool = False) -> RepairOrder:
        stmt = select(RepairOrder).where(RepairOrder.id == order_id, RepairOrder.status == STATUS_OPEN)
        if lock:
            stmt = stmt.with_for_update()
        order = session.execute(stmt).scalar_one_or_none()
        if order is None:
            raise NotFound('Repair order not found', location='order_id')
        assert_branch_access(actor, order.branch_id)
        return order

    def _invalidate(self, branch_id: int) -> None:
        if self.list_cache is not None:
            self.list_cache.invalidate_branch(branch_id)

    def _mutate(self, actor: Actor, order_id: int, action: Callable[[UnitOfWork, RepairOrder], Any]) -> Any:
        with self._uow() as uow:
            order = self._load_order(uow.session, actor, order_id, lock=True)
            result = action(uow, order)
            branch_id = order.branch_id
            uow.after_commit(lambda: self._invalidate(branch_id))
        return result

    @staticmethod
    def _status_in_branch(session, status_id: int, branch_id: int) -> RepairOrderStatus:
        status = session.get(RepairOrderStatus, status_id)
        if (
            status is None
            or status.branch_id != branch_id
            or status.status != STATUS_OPEN
            or not status.is_active
        ):
            raise ValidationFailed('Status not found in this branch', location='status_id', status_id=status_id)
        return status

    @staticmethod
    def initial_status_id(session, branch_id: int) -> int:
        """Lowest-sorted open, active, non-terminal status of the branch."""
        status_id = session.execute(
            select(RepairOrderStatus.id)
            .where(
                RepairOrderStatus.branch_id == branch_id,
                RepairOrderStatus.status == STATUS_OPEN,
                RepairOrderStatus.is_active.is_(True),
                (RepairOrderStatus.type.is_(None)) | (RepairOrderStatus.type.notin_(RepairOrderStatus.TERMINAL_TYPES)),
            )
            .order_by(RepairOrderStatus.sort.asc(), RepairOrderStatus.id.asc())
            .limit(1)
        ).scalar()
        if status_id is None:
            raise ValidationFailed('Branch has no initial status', location='status_id')
        return status_id

    @staticmethod
    def _check_customer(session, user_id: int) -> None:
        found = session.execute(
            select(Customer.id).where(Customer.id == user_id, Customer.status == STATUS_OPEN)
        ).scalar()
        if found is None:
            raise ValidationFailed('User not found', location='user_id')

    @staticmethod
    def _check_phone_category(session, phone_category_id: int) -> None:
        found = session.execute(
            select(PhoneCategory.id).where(
                PhoneCategory.id == phone_category_id,
                PhoneCategory.status == STATUS_OPEN,
                PhoneCategory.is_active.is_(True),
            )
        ).scalar()
        if found is None:
            raise ValidationFailed('Phone category not found or inactive', location='phone_category_id')

    def _change_status(self, session, order: RepairOrder, target_status_id: int) -> None:
        self._status_in_branch(session, target_status_id, order.branch_id)
        TransitionValidator.for_branch(session, order.branch_id).assert_can_transition(order.status_id, target_status_id)
        order.status_id = target_status_id

    def _run_updaters(self, uow: UnitOfWork, order: RepairOrder, payload, actor: Actor, status_id: int) -> None:
        # fixed order keeps error reporting deterministic
        self.admins.update(uow, order, payload.admin_ids, actor, status_id)
        self.initial_problems.update(uow, order, payload.initial_problems, actor, status_id)
        self.final_problems.update(uow, order, payload.final_problems, actor, status_id)
        self.comments.update(uow, order, payload.comments, actor, status_id)
        self.pickup.update(uow, order, payload.pickup, actor, status_id)
        self.delivery.update(uow, order, payload.delivery, actor, status_id)
        self.rental_phone.update(uow, order, getattr(payload, 'rental_phone', UNSET), actor, status_id)

    # --- create / update / move / delete ----------------------------------

    def create_order(self, actor: Actor, branch_id: int, payload: OrderCreate) -> RepairOrder:
        assert_branch_access(actor, branch_id)
        with self._uow() as uow:
            session = uow.session
            # serialises sort allocation per branch
            branch = session.execute(
                select(Branch).where(Branch.id == branch_id, Branch.status == STATUS_OPEN).with_for_update()
            ).scalar_one_or_none()
            if branch is None:
                raise NotFound('Branch not found', location='branch_id')
            status_id = payload.status_id or self.initial_status_id(session, branch_id)
            self._status_in_branch(session, status_id, branch_id)
            self.resolver.authorize(actor.role_ids, branch_id, status_id, CAN_ADD, location='status_id')
            self._check_customer(session, payload.user_id)
            self._check_phone_category(session, payload.phone_category_id)

            order = RepairOrder(
                branch_id=branch_id,
                status_id=status_id,
                user_id=payload.user_id,
                phone_category_id=payload.phone_category_id,
                imei=payload.imei,
                priority=payload.priority,
                priority_level=RepairOrder.PRIORITY_LEVELS[payload.priority],
                sort=next_sort_value(session, RepairOrder, branch_id=branch_id, status=STATUS_OPEN),
                created_by=actor.admin_id,
            )
            session.add(order)
            uow.flush()
            self.change_logger.log_change(session, order.id, 'order_created', {
                'status_id': status_id,
                'user_id': order.user_id,
                'phone_category_id': order.phone_category_id,
                'priority': order.priority,
                'sort': order.sort,
            }, actor.admin_id)
            self._run_updaters(uow, order, payload, actor, status_id)
            uow.after_commit(lambda: self._invalidate(branch_id))
        logger.info("repair order created order_id=%s branch_id=%s admin_id=%s", order.id, branch_id, actor.admin_id)
        return order

    def update_order(self, actor: Actor, order_id: int, payload: OrderUpdate) -> RepairOrder:
        def action(uow: UnitOfWork, order: RepairOrder) -> RepairOrder:
            session = uow.session
            start_status_id = order.status_id
            changes = []
            for name in OrderUpdate.SCALAR_FIELDS:
                new = getattr(payload, name)
                if new is UNSET:
                    continue
                old = getattr(order, name)
                if values_differ(old, new):
                    changes.append((name, old, new))
            if changes:
                self.resolver.authorize(actor.role_ids, order.branch_id, start_status_id, CAN_UPDATE, location=changes[0][0])
                for name, _old, new in changes:
                    if name == 'status_id':
                        self._change_status(session, order, new)
                    elif name == 'user_id':
                        self._check_customer(session, new)
                        order.user_id = new
                    elif name == 'phone_category_id':
                        self._check_phone_category(session, new)
                        order.phone_category_id = new
                    elif name == 'priority':
                        order.priority = new
                        order.priority_level = RepairOrder.PRIORITY_LEVELS[new]
                    else:
                        setattr(order, name, new)
                uow.flush()
                self.change_logger.log_many_if_changed(session, order.id, changes, actor.admin_id)
            # sub-entities are authorized against the status the request started from
            self._run_updaters(uow, order, payload, actor, start_status_id)
            return order

        order = self._mutate(actor, order_id, action)
        logger.info("repair order updated order_id=%s admin_id=%s", order_id, actor.admin_id)
        return order

    def move_order(self, actor: Actor, order_id: int, target_status_id: int, target_sort: Optional[int] = None) -> RepairOrder:
        """Change status and/or position inside the branch bucket.

        A status change needs ``can_change_status`` plus a configured
        transition; a pure reorder needs ``can_update``.
        """
        def action(uow: UnitOfWork, order: RepairOrder) -> RepairOrder:
            session = uow.session
            old_status_id = order.status_id
            status_changed = target_status_id != old_status_id
            if status_changed:
                self.resolver.authorize(actor.role_ids, order.branch_id, old_status_id, CAN_CHANGE_STATUS, location='status_id')
                self._change_status(session, order, target_status_id)
                self.change_logger.log_if_changed(session, order.id, 'status_id', old_status_id, target_status_id, actor.admin_id)
            if target_sort is not None and target_sort != order.sort:
                if not status_changed:
                    self.resolver.authorize(actor.role_ids, order.branch_id, old_status_id, CAN_UPDATE, location='sort')
                size = bucket_size(session, RepairOrder, branch_id=order.branch_id, status=STATUS_OPEN)
                if target_sort < 1 or target_sort > size:
                    raise ValidationFailed(f'sort must be between 1 and {size}', location='sort')
                old_sort = order.sort
                reorder(session, RepairOrder, order.id, old_sort, target_sort, branch_id=order.branch_id, status=STATUS_OPEN)
                self.change_logger.log_if_changed(session, order.id, 'sort', old_sort, target_sort, actor.admin_id)
            return order

        return self._mutate(actor, order_id, action)

    def soft_delete_order(self, actor: Actor, order_id: int) -> RepairOrder:
        def action(uow: UnitOfWork, order: RepairOrder) -> RepairOrder:
            session = uow.session
            self.resolver.authorize(actor.role_ids, order.branch_id, order.status_id, CAN_DELETE)
            removed_sort = order.sort
            order.status = STATUS_DELETED
            order.is_active = False
            uow.flush()
            close_gap(session, RepairOrder, removed_sort, branch_id=order.branch_id, status=STATUS_OPEN)
            self.change_logger.log_if_changed(session, order.id, 'status', STATUS_OPEN, STATUS_DELETED, actor.admin_id)
            return order

        order = self._mutate(actor, order_id, action)
        logger.info("repair order deleted order_id=%s admin_id=%s", order_id, actor.admin_id)
        return order

    # --- reads ------------------------------------------------------------

    def get_order(self, actor: Actor, order_id: int) -> Dict[str, Any]:
        self.resolver.clear()
        session = self.session
        order = self._load_order(session, actor, order_id)
        self.resolver.authorize(actor.role_ids, order.branch_id, order.status_id, CAN_VIEW)
        rental = active_rental(session, order.id)
        comments = session.execute(
            select(RepairOrderComment)
            .where(RepairOrderComment.repair_order_id == order.id, RepairOrderComment.status == STATUS_OPEN)
            .order_by(RepairOrderComment.id.asc())
        ).scalars().all()
        detail = serialize_order(order)
        detail.update({
            'admin_ids': assigned_admin_ids(session, order.id),
            'initial_problems': self.initial_problems.snapshot(session, order.id),
            'final_problems': self.final_problems.snapshot(session, order.id),
            'comments': [serialize_comment(c) for c in comments],
            'pickup': self.pickup.current(session, order.id),
            'delivery': self.delivery.current(session, order.id),
            'rental_phone': dict(rental_snapshot(rental), id=rental.id) if rental is not None else None,
        })
        return detail

    def get_history(self, actor: Actor, order_id: int) -> List[Dict[str, Any]]:
        self.resolver.clear()
        order = self._load_order(self.session, actor, order_id)
        self.resolver.authorize(actor.role_ids, order.branch_id, order.status_id, CAN_VIEW_HISTORY)
        return [
            {
                'id': row.id,
                'field': row.field,
                'old_value': row.old_value,
                'new_value': row.new_value,
                'created_by': row.created_by,
                'created_at': _iso(row.created_at),
            }
            for row in history_for_order(self.session, order.id)
        ]

    def list_orders_for_admin(
        self,
        actor: Actor,
        branch_id: int,
        page: int = 1,
        limit: int = 20,
        sort_by: str = 'sort',
        sort_order: str = 'asc',
    ) -> Dict[int, Dict[str, Any]]:
        """Orders of every status the actor may view, one page per status.

        Returns ``{status_id: {'total': n, 'orders': [...]}}`` in status order.
        """
        assert_branch_access(actor, branch_id)
        sort_pairs = parse_sort(sort_by, sort_order, SORTABLE_FIELDS)
        window = Page(page=page, limit=limit)
        self.resolver.clear()
        status_ids = self.resolver.viewable_status_ids(actor.role_ids, branch_id)
        if not status_ids:
            return {}
        key_args = (sort_by, sort_order, page, limit)
        found: Dict[int, Any] = {}
        if self.list_cache is not None:
            found = self.list_cache.get_many(branch_id, actor.admin_id, status_ids, *key_args)
        missing = [s for s in status_ids if found.get(s) is None]
        if missing:
            stmt = select(RepairOrder).where(
                RepairOrder.branch_id == branch_id,
                RepairOrder.status == STATUS_OPEN,
                RepairOrder.status_id.in_(missing),
            )
            stmt = apply_multi_sort(stmt, sort_pairs, SORTABLE_FIELDS, RepairOrder.id)
            by_status: Dict[int, List[RepairOrder]] = {s: [] for s in missing}
            for order in self.session.execute(stmt).scalars():
                by_status[order.status_id].append(order)
            for status_id in missing:
                rows = by_status[status_id]
                value = {'total': len(rows), 'orders': [serialize_order(o) for o in window.slice(rows)]}
                found[status_id] = value
                if self.list_cache is not None:
                    self.list_cache.put(branch_id, actor.admin_id, status_id, *key_args, value)
        return {status_id: found[status_id] for status_id in status_ids}

    # --- narrow per-aspect operations -------------------------------------

    def assign_admins(self, actor: Actor, order_id: int, admin_ids: Sequence[int]) -> bool:
        return self._mutate(actor, order_id, lambda uow, order: self.admins.add(uow, order, admin_ids, actor, order.status_id))

    def remove_admins(self, actor: Actor, order_id: int, admin_ids: Sequence[int]) -> bool:
        return self._mutate(actor, order_id, lambda uow, order: self.admins.remove(uow, order, admin_ids, actor, order.status_id))

    def set_initial_problems(self, actor: Actor, order_id: int, problems: Sequence[ProblemInput]) -> bool:
        return self._mutate(actor, order_id, lambda uow, order: self.initial_problems.update(uow, order, list(problems), actor, order.status_id))

    def set_final_problems(self, actor: Actor, order_id: int, problems: Sequence[ProblemInput]) -> bool:
        return self._mutate(actor, order_id, lambda uow, order: self.final_problems.update(uow, order, list(problems), actor, order.status_id))

    def add_comment(self, actor: Actor, order_id: int, text: str) -> RepairOrderComment:
        rows = self._mutate(actor, order_id, lambda uow, order: self.comments.add(uow, order, [CommentInput(text=text)], actor, order.status_id))
        return rows[0]

    def update_comment(self, actor: Actor, order_id: int, comment_id: int, text: str) -> RepairOrderComment:
        return self._mutate(actor, order_id, lambda uow, order: self.comments.edit(uow, order, comment_id, text, actor))

    def delete_comment(self, actor: Actor, order_id: int, comment_id: int) -> None:
        self._mutate(actor, order_id, lambda uow, order: self.comments.delete(uow, order, comment_id, actor))

    def set_pickup(self, actor: Actor, order_id: int, value: Optional[LocationInput]) -> bool:
        return self._mutate(actor, order_id, lambda uow, order: self.pickup.update(uow, order, value, actor, order.status_id))

    def set_delivery(self, actor: Actor, order_id: int, value: Optional[LocationInput]) -> bool:
        return self._mutate(actor, order_id, lambda uow, order: self.delivery.update(uow, order, value, actor, order.status_id))

    def set_rental_phone(self, actor: Actor, order_id: int, value: Optional[RentalInput]) -> bool:
        """``None`` cancels the active rental; a value creates or updates it."""
        return self._mutate(actor, order_id, lambda uow, order: self.rental_phone.update(uow, order, value, actor, order.status_id))

    def create_rental_phone(self, actor: Actor, order_id: int, value: RentalInput):
        return self._mutate(actor, order_id, lambda uow, order: self.rental_phone.create(uow, order, value, actor, order.status_id))

    def update_rental_phone(self, actor: Actor, order_id: int, value: RentalInput):
        return self._mutate(actor, order_id, lambda uow, order: self.rental_phone.change(uow, order, value, actor, order.status_id))

    def cancel_rental_phone(self, actor: Actor, order_id: int):
        return self._mutate(actor, order_id, lambda uow, order: self.rental_phone.cancel(uow, order, actor, order.status_id))


def build_order_service() -> RepairOrderService:
    from repairflow import get_cache, get_db
    cfg = current_app.config
    return RepairOrderService(
        get_db(),
        get_cache(),
        permission_ttl=cfg['PERMISSION_CACHE_TTL'],
        list_ttl=cfg['ORDER_LIST_CACHE_TTL'],
        statement_timeout_ms=cfg.get('ORDER_STATEMENT_TIMEOUT_MS'),
    )


__all__ = ['RepairOrderService', 'build_order_service', 'serialize_order', 'serialize_comment', 'SORTABLE_FIELDS']
