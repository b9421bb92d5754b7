"""Per-status pages of the repair order board, cached in Redis.

Keys: ``repair_orders:{branch}:{admin}:{status}:{sort_by}:{sort_order}:{page}:{limit}``.
Every write to a branch's orders drops the whole ``repair_orders:{branch}:``
prefix; entries are short lived, so coarse invalidation is enough.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from repairflow.services.cache import CacheStore

logger = logging.getLogger(__name__)


class OrderListCache:
    PREFIX = 'repair_orders'

    def __init__(self, store: CacheStore, ttl_seconds: int = 300):
        self.store = store
        self.ttl_seconds = ttl_seconds

    def key(self, branch_id: int, admin_id: int, status_id: int, sort_by: str, sort_order: str, page: int, limit: int) -> str:
        return f"{self.PREFIX}:{branch_id}:{admin_id}:{status_id}:{sort_by}:{sort_order}:{page}:{limit}"

    def get_many(self, branch_id: int, admin_id: int, status_ids: List[int], sort_by: str, sort_order: str, page: int, limit: int) -> Dict[int, Optional[Any]]:
        keys = [self.key(branch_id, admin_id, s, sort_by, sort_order, page, limit) for s in status_ids]
        return dict(zip(status_ids, self.store.mget(keys)))

    def put(self, branch_id: int, admin_id: int, status_id: int, sort_by: str, sort_order: str, page: int, limit: int, value: Any) -> bool:
        return self.store.set(self.key(branch_id, admin_id, status_id, sort_by, sort_order, page, limit), value, self.ttl_seconds)

    def invalidate_branch(self, branch_id: int) -> int:
        removed = self.store.delete_prefix(f"{self.PREFIX}:{branch_id}:")
        logger.debug("order list cache flushed branch_id=%s keys=%s", branch_id, removed)
        return removed


__all__ = ['OrderListCache']
