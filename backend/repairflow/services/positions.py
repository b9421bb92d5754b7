"""Dense ordering keys inside a bucket (e.g. all open orders of one branch).

A bucket is described by keyword filters on the model: ``branch_id=3,
status='Open'``. Values inside a bucket stay exactly 1..N. All functions
must run inside the caller's transaction; none of them commits.
"""
from __future__ import annotations
from typing import Any
from sqlalchemy import select, update, func
from sqlalchemy.orm import Session


def _scope_clauses(model, scope: dict):
    return [getattr(model, column) == value for column, value in scope.items()]


def next_sort_value(session: Session, model, column: str = 'sort', **scope: Any) -> int:
    """Return max(sort) + 1 inside the bucket, 1 for an empty bucket."""
    session.flush()
    col = getattr(model, column)
    current = session.execute(select(func.max(col)).where(*_scope_clauses(model, scope))).scalar()
    return (current or 0) + 1


def bucket_size(session: Session, model, **scope: Any) -> int:
    return session.execute(select(func.count()).select_from(model).where(*_scope_clauses(model, scope))).scalar() or 0


def reorder(session: Session, model, item_id: int, current_sort: int, target_sort: int, column: str = 'sort', **scope: Any) -> bool:
    """Move one item to ``target_sort`` shifting the items in between by one.

    Moving up (target < current) pushes [target, current) down by one;
    moving down pushes (current, target] up by one. Returns False for a no-op.
    """
    if target_sort == current_sort:
        return False
    session.flush()
    col = getattr(model, column)
    clauses = _scope_clauses(model, scope)
    if target_sort < current_sort:
        stmt = (
            update(model)
            .where(*clauses, col >= target_sort, col < current_sort)
            .values({column: col + 1})
        )
    else:
        stmt = (
            update(model)
            .where(*clauses, col > current_sort, col <= target_sort)
            .values({column: col - 1})
        )
    session.execute(stmt.execution_options(synchronize_session='fetch'))
    session.execute(
        update(model).where(model.id == item_id).values({column: target_sort}).execution_options(synchronize_session='fetch')
    )
    return True


def close_gap(session: Session, model, removed_sort: int, column: str = 'sort', **scope: Any) -> None:
    """Shift everything after ``removed_sort`` up by one once an item left the bucket."""
    session.flush()
    col = getattr(model, column)
    session.execute(
        update(model)
        .where(*_scope_clauses(model, scope), col > removed_sort)
        .values({column: col - 1})
        .execution_options(synchronize_session='fetch')
    )


__all__ = ['next_sort_value', 'bucket_size', 'reorder', 'close_gap']
