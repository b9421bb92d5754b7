"""Problem-category ancestor walk.

A problem category is allowed for a phone category when the category
itself or one of its ancestors is directly mapped to that phone
category in phone_problem_mappings. Submitting the parent of a mapped
category is therefore rejected unless the parent is mapped too.

The parent-pointer map is loaded once per request, level by level, and
the walk itself is a pure function so it can be tested without a database.
"""
from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Set
from sqlalchemy import select
from sqlalchemy.orm import Session

from repairflow.models.authz import STATUS_OPEN
from repairflow.models.catalog import PhoneProblemMapping, ProblemCategory

ParentMap = Dict[int, Optional[int]]


def load_parent_map(session: Session, category_ids: Iterable[int]) -> ParentMap:
    """Parent pointers for ``category_ids`` and all their ancestors.

    Only open, active categories are loaded; a missing id simply has no
    entry. Each level is one query; ids already seen are never fetched
    again, so a cycle in the data stops the loop.
    """
    parents: ParentMap = {}
    frontier: Set[int] = set(int(c) for c in category_ids)
    while frontier:
        rows = session.execute(
            select(ProblemCategory.id, ProblemCategory.parent_id).where(
                ProblemCategory.id.in_(frontier),
                ProblemCategory.status == STATUS_OPEN,
                ProblemCategory.is_active.is_(True),
            )
        ).all()
        next_frontier: Set[int] = set()
        for cat_id, parent_id in rows:
            parents[cat_id] = parent_id
            if parent_id is not None and parent_id not in parents:
                next_frontier.add(parent_id)
        frontier = next_frontier - set(parents)
    return parents


def mapped_problem_ids(session: Session, phone_category_id: int) -> Set[int]:
    return set(session.execute(
        select(PhoneProblemMapping.problem_category_id).where(PhoneProblemMapping.phone_category_id == phone_category_id)
    ).scalars())


class CycleDetected(ValueError):
    pass


def ancestors_or_self(category_id: int, parents: ParentMap) -> List[int]:
    """Chain from ``category_id`` up to its root, stopping at a missing link.

    Raises CycleDetected when the parent chain loops.
    """
    chain: List[int] = []
    seen: Set[int] = set()
    current: Optional[int] = category_id
    while current is not None and current in parents:
        if current in seen:
            raise CycleDetected(current)
        seen.add(current)
        chain.append(current)
        current = parents[current]
    return chain


def find_unreachable(submitted_ids: Iterable[int], mapped_ids: Set[int], parents: ParentMap) -> List[int]:
    invalid: List[int] = []
    for cat_id in submitted_ids:
        if cat_id not in parents:
            invalid.append(cat_id)
            continue
        try:
            chain = ancestors_or_self(cat_id, parents)
        except CycleDetected:
            invalid.append(cat_id)
            continue
        if not any(c in mapped_ids for c in chain):
            invalid.append(cat_id)
    return invalid


def find_inactive(submitted_ids: Iterable[int], parents: ParentMap) -> List[int]:
    return [c for c in submitted_ids if c not in parents]


__all__ = ['CycleDetected', 'load_parent_map', 'mapped_problem_ids', 'ancestors_or_self', 'find_unreachable', 'find_inactive']
