from __future__ import annotations

from typing import List, Sequence

from sqlalchemy import select

from repairflow.constants.capabilities import CAN_COMMENT
from repairflow.errors import NotFound, PermissionDenied
from repairflow.models.authz import STATUS_DELETED, STATUS_OPEN
from repairflow.models.repair_order import RepairOrder, RepairOrderComment
from repairflow.services.payloads import CommentInput
from repairflow.services.policy import Actor
from repairflow.services.unit_of_work import UnitOfWork
from repairflow.services.updaters.base import SubEntityUpdater


class CommentsUpdater(SubEntityUpdater):
    """Comments are append-only through ``update``; edits and deletes go through their own methods.

    Each comment remembers the status the order had when it was written
    (``status_by``); edits and deletes are authorized at that status.
    """
    capability = CAN_COMMENT
    location = 'comments'

    def apply(self, uow: UnitOfWork, order: RepairOrder, value: Sequence[CommentInput], actor: Actor, status_id: int, **context) -> bool:
        return bool(self._append(uow, order, value, actor, status_id))

    def add(self, uow: UnitOfWork, order: RepairOrder, value: Sequence[CommentInput], actor: Actor, status_id: int) -> List[RepairOrderComment]:
        self.authorize(order, actor, status_id)
        return self._append(uow, order, value, actor, status_id)

    def _append(self, uow: UnitOfWork, order: RepairOrder, value: Sequence[CommentInput], actor: Actor, status_id: int) -> List[RepairOrderComment]:
        rows = [
            RepairOrderComment(repair_order_id=order.id, text=c.text, created_by=actor.admin_id, status_by=status_id)
            for c in value
        ]
        if not rows:
            return rows
        uow.session.add_all(rows)
        uow.flush()
        self.log(uow, order, None, [c.text for c in value], actor)
        return rows

    def _load(self, uow: UnitOfWork, order: RepairOrder, comment_id: int) -> RepairOrderComment:
        comment = uow.session.execute(
            select(RepairOrderComment).where(
                RepairOrderComment.id == comment_id,
                RepairOrderComment.repair_order_id == order.id,
                RepairOrderComment.status == STATUS_OPEN,
            )
        ).scalar_one_or_none()
        if comment is None:
            raise NotFound('Comment not found or already deleted', location='comment_id')
        return comment

    def edit(self, uow: UnitOfWork, order: RepairOrder, comment_id: int, text: str, actor: Actor) -> RepairOrderComment:
        comment = self._load(uow, order, comment_id)
        if comment.created_by != actor.admin_id:
            raise PermissionDenied('You can only edit your own comments', location='comment_id')
        self.authorize(order, actor, comment.status_by)
        if comment.text == text:
            return comment
        old_text = comment.text
        comment.text = text
        uow.flush()
        self.log(uow, order, {'id': comment.id, 'text': old_text}, {'id': comment.id, 'text': text}, actor, field='comment')
        return comment

    def delete(self, uow: UnitOfWork, order: RepairOrder, comment_id: int, actor: Actor) -> None:
        comment = self._load(uow, order, comment_id)
        self.authorize(order, actor, comment.status_by)
        comment.status = STATUS_DELETED
        uow.flush()
        self.change_logger.log_change(
            uow.session, order.id, 'comment_deleted', {'id': comment.id, 'text': comment.text}, actor.admin_id
        )
