"""Redis-backed key/value store shared by the permission and order list caches.

The cache is best-effort: every Redis failure is logged and reported as a
miss (reads) or a skipped write, so callers never depend on Redis being up.
"""
from __future__ import annotations

import json
import logging
from typing import Any, List, Optional

import redis

logger = logging.getLogger(__name__)


class CacheStore:
    def __init__(self, client: "redis.Redis", prefix: str = 'repairflow'):
        self.client = client
        self.prefix = prefix

    def build_key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    def get(self, key: str) -> Optional[Any]:
        try:
            raw = self.client.get(self.build_key(key))
        except redis.RedisError as exc:
            logger.warning("cache get failed key=%s error=%s", key, exc)
            return None
        return self._decode(key, raw)

    def mget(self, keys: List[str]) -> List[Optional[Any]]:
        if not keys:
            return []
        try:
            raws = self.client.mget([self.build_key(k) for k in keys])
        except redis.RedisError as exc:
            logger.warning("cache mget failed count=%s error=%s", len(keys), exc)
            return [None] * len(keys)
        return [self._decode(k, raw) for k, raw in zip(keys, raws)]

    def set(self, key: str, value: Any, ttl_seconds: int) -> bool:
        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as exc:
            logger.warning("cache encode failed key=%s error=%s", key, exc)
            return False
        try:
            self.client.setex(self.build_key(key), ttl_seconds, payload)
        except redis.RedisError as exc:
            logger.warning("cache set failed key=%s error=%s", key, exc)
            return False
        return True

    def counter(self, key: str) -> Optional[int]:
        """Current value of an INCR counter; 0 when unset, None when Redis is unavailable."""
        try:
            raw = self.client.get(self.build_key(key))
        except redis.RedisError as exc:
            logger.warning("cache counter read failed key=%s error=%s", key, exc)
            return None
        if raw is None:
            return 0
        try:
            return int(raw)
        except (TypeError, ValueError):
            logger.warning("cache counter corrupt key=%s", key)
            return None

    def incr(self, key: str) -> Optional[int]:
        try:
            return int(self.client.incr(self.build_key(key)))
        except redis.RedisError as exc:
            logger.warning("cache incr failed key=%s error=%s", key, exc)
            return None

    def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        try:
            return int(self.client.delete(*[self.build_key(k) for k in keys]) or 0)
        except redis.RedisError as exc:
            logger.warning("cache delete failed keys=%s error=%s", keys, exc)
            return 0

    def delete_matching(self, pattern: str) -> int:
        """Delete every key matching a glob ``pattern`` (prefix applied). Uses SCAN, not KEYS."""
        try:
            keys = list(self.client.scan_iter(match=self.build_key(pattern), count=500))
            if not keys:
                return 0
            return int(self.client.delete(*keys) or 0)
        except redis.RedisError as exc:
            logger.warning("cache flush failed pattern=%s error=%s", pattern, exc)
            return 0

    def delete_prefix(self, prefix: str) -> int:
        return self.delete_matching(f"{prefix}*")

    @staticmethod
    def _decode(key: str, raw: Any) -> Optional[Any]:
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode('utf-8')
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.warning("cache decode failed key=%s error=%s", key, exc)
            return None
