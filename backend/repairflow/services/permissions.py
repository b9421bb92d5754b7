"""Status-scoped permission resolution.

A capability is granted to an actor at a status when ANY of the actor's
roles has a repair_order_status_permissions row for that status with the
capability column set. No row, a false column, a status from another
branch, or a deleted role/status/branch all mean denied.

Grants are cached per (branch, role) in an explicit PermissionCache.
Writers go through StatusPermissionService, which invalidates the cache
once its transaction commits.
"""
from __future__ import annotations
import logging
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence
from sqlalchemy import select, delete
from sqlalchemy.orm import Session

from repairflow.constants.capabilities import ALL_CAPABILITIES, CAN_VIEW
from repairflow.errors import PermissionDenied, ValidationFailed
from repairflow.models.authz import Branch, Role, STATUS_OPEN
from repairflow.models.status import RepairOrderStatus, RepairOrderStatusPermission
from repairflow.services.cache import CacheStore
from repairflow.services.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)

Grants = Dict[int, FrozenSet[str]]


def row_capabilities(row: RepairOrderStatusPermission) -> List[str]:
    return [cap for cap in ALL_CAPABILITIES if getattr(row, cap, False)]


class PermissionCache:
    """Per (branch, role) grant cache.

    Each branch carries a generation counter. Entries are stored under the
    generation that was current before the database read, and every
    invalidation bumps the counter, so a reader that loaded grants before a
    concurrent write can only populate a key nobody reads any more.
    """

    PREFIX = 'status_permissions'
    GENERATION_PREFIX = 'status_permissions_gen'

    def __init__(self, store: CacheStore, ttl_seconds: int = 3600):
        self.store = store
        self.ttl_seconds = ttl_seconds

    def _key(self, branch_id: int, role_id: int, generation: int) -> str:
        return f"{self.PREFIX}:{branch_id}:{role_id}:{generation}"

    def generation(self, branch_id: int) -> Optional[int]:
        return self.store.counter(f"{self.GENERATION_PREFIX}:{branch_id}")

    def get_many(self, branch_id: int, role_ids: Sequence[int], generation: int) -> Dict[int, Optional[Grants]]:
        raw = self.store.mget([self._key(branch_id, r, generation) for r in role_ids])
        out: Dict[int, Optional[Grants]] = {}
        for role_id, value in zip(role_ids, raw):
            if isinstance(value, dict):
                out[role_id] = {int(status_id): frozenset(caps) for status_id, caps in value.items()}
            else:
                out[role_id] = None
        return out

    def put(self, branch_id: int, role_id: int, generation: int, grants: Grants) -> None:
        payload = {str(status_id): sorted(caps) for status_id, caps in grants.items()}
        self.store.set(self._key(branch_id, role_id, generation), payload, self.ttl_seconds)

    def invalidate_branch(self, branch_id: int) -> None:
        self.store.incr(f"{self.GENERATION_PREFIX}:{branch_id}")
        self.store.delete_prefix(f"{self.PREFIX}:{branch_id}:")

    def invalidate_role(self, role_id: int, branch_ids: Iterable[int] = ()) -> None:
        for branch_id in branch_ids:
            self.store.incr(f"{self.GENERATION_PREFIX}:{branch_id}")
        self.store.delete_matching(f"{self.PREFIX}:*:{role_id}:*")


class StatusPermissionResolver:
    """Answers capability questions for one request.

    Results are memoised on the instance, so build one resolver per request
    (or per unit of work) and drop it afterwards.
    """

    def __init__(self, session: Session, cache: Optional[PermissionCache] = None):
        self.session = session
        self.cache = cache
        self._memo: Dict[tuple, Grants] = {}

    def clear(self) -> None:
        self._memo.clear()

    def grants_for_branch(self, role_ids: Iterable[int], branch_id: int) -> Grants:
        roles = tuple(sorted(set(int(r) for r in role_ids)))
        memo_key = (branch_id, roles)
        if memo_key in self._memo:
            return self._memo[memo_key]
        per_role: Dict[int, Optional[Grants]] = {r: None for r in roles}
        # read before the database so a concurrent invalidation orphans our write
        generation = self.cache.generation(branch_id) if self.cache is not None and roles else None
        if generation is not None:
            per_role.update(self.cache.get_many(branch_id, roles, generation))
        missing = [r for r, g in per_role.items() if g is None]
        if missing:
            loaded = self._load(missing, branch_id)
            for role_id in missing:
                per_role[role_id] = loaded.get(role_id, {})
                if generation is not None:
                    self.cache.put(branch_id, role_id, generation, per_role[role_id])
        merged: Dict[int, set] = {}
        for grants in per_role.values():
            for status_id, caps in (grants or {}).items():
                merged.setdefault(status_id, set()).update(caps)
        result = {status_id: frozenset(caps) for status_id, caps in merged.items()}
        self._memo[memo_key] = result
        return result

    def _load(self, role_ids: List[int], branch_id: int) -> Dict[int, Grants]:
        rows = self.session.execute(
            select(RepairOrderStatusPermission)
            .join(Role, Role.id == RepairOrderStatusPermission.role_id)
            .join(Branch, Branch.id == RepairOrderStatusPermission.branch_id)
            .join(RepairOrderStatus, RepairOrderStatus.id == RepairOrderStatusPermission.status_id)
            .where(
                RepairOrderStatusPermission.role_id.in_(role_ids),
                RepairOrderStatusPermission.branch_id == branch_id,
                RepairOrderStatus.branch_id == branch_id,
                Role.status == STATUS_OPEN,
                Branch.status == STATUS_OPEN,
                RepairOrderStatus.status == STATUS_OPEN,
            )
        ).scalars().all()
        out: Dict[int, Grants] = {}
        for row in rows:
            caps = row_capabilities(row)
            if caps:
                out.setdefault(row.role_id, {})[row.status_id] = frozenset(caps)
        return out

    def resolve(self, role_ids: Iterable[int], branch_id: int, status_id: int) -> FrozenSet[str]:
        status = self.session.get(RepairOrderStatus, status_id)
        if status is None or status.branch_id != branch_id or status.status != STATUS_OPEN:
            return frozenset()
        return self.grants_for_branch(role_ids, branch_id).get(status_id, frozenset())

    def can(self, role_ids: Iterable[int], branch_id: int, status_id: int, capability: str) -> bool:
        return capability in self.resolve(role_ids, branch_id, status_id)

    def authorize(self, role_ids: Iterable[int], branch_id: int, status_id: int, capability: str, location: Optional[str] = None) -> None:
        if not self.can(role_ids, branch_id, status_id, capability):
            raise PermissionDenied(
                f'Permission denied: {capability}',
                location=location,
                capability=capability,
                status_id=status_id,
            )

    def viewable_status_ids(self, role_ids: Iterable[int], branch_id: int) -> List[int]:
        grants = self.grants_for_branch(role_ids, branch_id)
        ids = [status_id for status_id, caps in grants.items() if CAN_VIEW in caps]
        if not ids:
            return []
        ordered = self.session.execute(
            select(RepairOrderStatus.id)
            .where(RepairOrderStatus.id.in_(ids), RepairOrderStatus.status == STATUS_OPEN)
            .order_by(RepairOrderStatus.sort.asc(), RepairOrderStatus.id.asc())
        ).scalars().all()
        return list(ordered)


class StatusPermissionService:
    """Writes role/status capability rows and keeps the permission cache honest."""

    def __init__(self, session: Session, cache: Optional[PermissionCache] = None):
        self.session = session
        self.cache = cache

    def assign(self, role_id: int, branch_id: int, status_ids: Sequence[int], capabilities: Mapping[str, bool]) -> List[RepairOrderStatusPermission]:
        unknown = [c for c in capabilities if c not in ALL_CAPABILITIES]
        if unknown:
            raise ValidationFailed('Unknown capabilities', location='capabilities', invalid=sorted(unknown))
        status_ids = list(dict.fromkeys(int(s) for s in status_ids))
        if not status_ids:
            raise ValidationFailed('status_ids required', location='status_ids')
        with UnitOfWork(self.session) as uow:
            role = uow.session.execute(select(Role).where(Role.id == role_id, Role.status == STATUS_OPEN)).scalar_one_or_none()
            if not role:
                raise ValidationFailed('Role not found or deleted', location='role_id')
            valid = set(uow.session.execute(
                select(RepairOrderStatus.id).where(
                    RepairOrderStatus.id.in_(status_ids),
                    RepairOrderStatus.branch_id == branch_id,
                    RepairOrderStatus.status == STATUS_OPEN,
                )
            ).scalars())
            invalid = [s for s in status_ids if s not in valid]
            if invalid:
                raise ValidationFailed(
                    'Some statuses not found or not assigned to the specified branch',
                    location='status_ids',
                    invalid_ids=invalid,
                )
            uow.session.execute(
                delete(RepairOrderStatusPermission).where(
                    RepairOrderStatusPermission.branch_id == branch_id,
                    RepairOrderStatusPermission.role_id == role_id,
                    RepairOrderStatusPermission.status_id.in_(status_ids),
                )
            )
            rows = []
            for status_id in status_ids:
                row = RepairOrderStatusPermission(branch_id=branch_id, role_id=role_id, status_id=status_id)
                for cap in ALL_CAPABILITIES:
                    setattr(row, cap, bool(capabilities.get(cap, False)))
                uow.session.add(row)
                rows.append(row)
            uow.after_commit(lambda: self._invalidate(branch_id=branch_id))
        logger.info("status permissions assigned role_id=%s branch_id=%s statuses=%s", role_id, branch_id, status_ids)
        return rows

    def revoke_role(self, role_id: int) -> int:
        with UnitOfWork(self.session) as uow:
            branch_ids = list(uow.session.execute(
                select(RepairOrderStatusPermission.branch_id)
                .where(RepairOrderStatusPermission.role_id == role_id)
                .distinct()
            ).scalars())
            result = uow.session.execute(delete(RepairOrderStatusPermission).where(RepairOrderStatusPermission.role_id == role_id))
            uow.after_commit(lambda: self._invalidate_role(role_id, branch_ids))
        return result.rowcount or 0

    def revoke_branch(self, branch_id: int) -> int:
        with UnitOfWork(self.session) as uow:
            result = uow.session.execute(delete(RepairOrderStatusPermission).where(RepairOrderStatusPermission.branch_id == branch_id))
            uow.after_commit(lambda: self._invalidate(branch_id=branch_id))
        logger.info("status permissions revoked branch_id=%s removed=%s", branch_id, result.rowcount)
        return result.rowcount or 0

    def revoke_status(self, status_id: int) -> int:
        with UnitOfWork(self.session) as uow:
            status = uow.session.get(RepairOrderStatus, status_id)
            result = uow.session.execute(delete(RepairOrderStatusPermission).where(RepairOrderStatusPermission.status_id == status_id))
            if status is not None:
                branch_id = status.branch_id
                uow.after_commit(lambda: self._invalidate(branch_id=branch_id))
        return result.rowcount or 0

    def _invalidate(self, branch_id: int) -> None:
        if self.cache is not None:
            self.cache.invalidate_branch(branch_id)

    def _invalidate_role(self, role_id: int, branch_ids: List[int]) -> None:
        if self.cache is not None:
            self.cache.invalidate_role(role_id, branch_ids)


__all__ = ['PermissionCache', 'StatusPermissionResolver', 'StatusPermissionService', 'row_capabilities']
