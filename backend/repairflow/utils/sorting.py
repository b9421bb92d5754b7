from __future__ import annotations
from typing import Dict, List, Tuple
from repairflow.errors import ValidationFailed

SORT_DIRECTIONS = ('asc', 'desc')


def parse_sort(sort_by: str | None, sort_order: str, allowed: Dict[str, object]) -> List[Tuple[str, bool]]:
    """Turn ``sort_by`` (comma separated keys) plus a default ``sort_order`` into (key, descending) pairs.

    A ``-`` prefix on a key flips the default direction for that key only,
    so ``sort_by=-priority_level,sort&sort_order=asc`` puts urgent orders first
    and keeps board order inside each priority.
    """
    if sort_order not in SORT_DIRECTIONS:
        raise ValidationFailed('sort_order invalid', location='sort_order', allowed=list(SORT_DIRECTIONS))
    default_desc = sort_order == 'desc'
    pairs: List[Tuple[str, bool]] = []
    seen = set()
    for raw in (sort_by or '').split(','):
        token = raw.strip()
        if not token:
            continue
        flip = token.startswith('-')
        key = token[1:] if flip else token
        if key not in allowed:
            raise ValidationFailed(f'Invalid sort field {key}', location='sort_by', allowed=sorted(allowed))
        if key in seen:
            continue
        seen.add(key)
        pairs.append((key, default_desc != flip))
    return pairs


def apply_multi_sort(stmt, pairs: List[Tuple[str, bool]], allowed: Dict[str, object], tie_breaker):
    """ORDER BY each (key, descending) pair, then ``tie_breaker`` ascending for stable pages."""
    clauses = [allowed[key].desc() if desc else allowed[key].asc() for key, desc in pairs]
    clauses.append(tie_breaker.asc())
    return stmt.order_by(*clauses)


__all__ = ['SORT_DIRECTIONS', 'parse_sort', 'apply_multi_sort']
