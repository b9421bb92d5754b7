from __future__ import annotations
import json
import logging
from typing import Any, Iterable, Optional, Tuple
from sqlalchemy import select
from sqlalchemy.orm import Session
from repairflow.models.audit import RepairOrderChangeHistory

logger = logging.getLogger(__name__)


def _drop_nulls(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _drop_nulls(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [_drop_nulls(v) for v in value]
    return value


def canonical(value: Any) -> Any:
    """JSON-safe, key-sorted copy of ``value`` used for both comparison and storage.

    Dates and decimals collapse to strings; tuples become lists. Keys whose
    value is None are dropped, so ``{'k': None}`` and ``{}`` compare equal.
    """
    if value is None:
        return None
    return _drop_nulls(json.loads(json.dumps(value, sort_keys=True, default=str)))


def values_differ(old: Any, new: Any) -> bool:
    return canonical(old) != canonical(new)


class ChangeLogger:
    """Writes repair_order_change_histories rows inside the caller's transaction.

    No commit and no exception handling here: a failed insert must abort the
    surrounding unit of work so the trail never disagrees with the data.
    """

    def log_if_changed(self, session: Session, order_id: int, field: str, old_value: Any, new_value: Any, actor_id: int) -> Optional[RepairOrderChangeHistory]:
        old_c, new_c = canonical(old_value), canonical(new_value)
        if old_c == new_c:
            return None
        row = RepairOrderChangeHistory(
            repair_order_id=order_id,
            field=field,
            old_value=old_c,
            new_value=new_c,
            created_by=actor_id,
        )
        session.add(row)
        return row

    def log_many_if_changed(self, session: Session, order_id: int, fields: Iterable[Tuple[str, Any, Any]], actor_id: int) -> int:
        written = 0
        for field, old_value, new_value in fields:
            if self.log_if_changed(session, order_id, field, old_value, new_value, actor_id) is not None:
                written += 1
        return written

    def log_change(self, session: Session, order_id: int, action: str, payload: Any, actor_id: int) -> RepairOrderChangeHistory:
        """Unconditional event row (e.g. order_created, comment_deleted)."""
        row = RepairOrderChangeHistory(
            repair_order_id=order_id,
            field=action,
            old_value=None,
            new_value=canonical(payload),
            created_by=actor_id,
        )
        session.add(row)
        logger.debug("change event order_id=%s action=%s", order_id, action)
        return row


def history_for_order(session: Session, order_id: int):
    return session.execute(
        select(RepairOrderChangeHistory)
        .where(RepairOrderChangeHistory.repair_order_id == order_id)
        .order_by(RepairOrderChangeHistory.created_at.asc(), RepairOrderChangeHistory.id.asc())
    ).scalars().all()


__all__ = ['ChangeLogger', 'canonical', 'values_differ', 'history_for_order']
