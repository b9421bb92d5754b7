"""Configuration of allowed status changes.

A status's outgoing transitions are replaced as a whole: the old rows are
deleted and the new set inserted inside one unit of work. Targets must be
open statuses of the same branch as the source status.
"""
from __future__ import annotations
import logging
from typing import List, Sequence
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from repairflow.errors import NotFound, ValidationFailed
from repairflow.models.authz import STATUS_OPEN
from repairflow.models.status import RepairOrderStatus, RepairOrderStatusTransition
from repairflow.services.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


class StatusTransitionService:
    def __init__(self, session: Session):
        self.session = session

    def _source(self, session: Session, from_status_id: int) -> RepairOrderStatus:
        status = session.execute(
            select(RepairOrderStatus).where(RepairOrderStatus.id == from_status_id, RepairOrderStatus.status == STATUS_OPEN)
        ).scalar_one_or_none()
        if status is None:
            raise NotFound('Status not found', location='status_id')
        return status

    def list_for(self, from_status_id: int) -> List[RepairOrderStatusTransition]:
        self._source(self.session, from_status_id)
        return list(self.session.execute(
            select(RepairOrderStatusTransition)
            .where(RepairOrderStatusTransition.from_status_id == from_status_id)
            .order_by(RepairOrderStatusTransition.to_status_id.asc())
        ).scalars())

    def replace(self, from_status_id: int, to_status_ids: Sequence[int]) -> List[RepairOrderStatusTransition]:
        to_status_ids = list(dict.fromkeys(int(s) for s in to_status_ids))
        if from_status_id in to_status_ids:
            raise ValidationFailed('A status cannot transition to itself', location='to_status_ids', invalid_ids=[from_status_id])
        with UnitOfWork(self.session) as uow:
            source = self._source(uow.session, from_status_id)
            valid = set()
            if to_status_ids:
                valid = set(uow.session.execute(
                    select(RepairOrderStatus.id).where(
                        RepairOrderStatus.id.in_(to_status_ids),
                        RepairOrderStatus.branch_id == source.branch_id,
                        RepairOrderStatus.status == STATUS_OPEN,
                    )
                ).scalars())
            invalid = [s for s in to_status_ids if s not in valid]
            if invalid:
                raise ValidationFailed(
                    'Some target statuses not found or not in the same branch',
                    location='to_status_ids',
                    invalid_ids=invalid,
                )
            uow.session.execute(
                delete(RepairOrderStatusTransition).where(RepairOrderStatusTransition.from_status_id == from_status_id)
            )
            rows = [
                RepairOrderStatusTransition(branch_id=source.branch_id, from_status_id=from_status_id, to_status_id=dst)
                for dst in to_status_ids
            ]
            uow.session.add_all(rows)
        logger.info("status transitions replaced from_status_id=%s to=%s", from_status_id, to_status_ids)
        return rows


__all__ = ['StatusTransitionService']
