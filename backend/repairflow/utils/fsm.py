"""Finite state machine check for repair order status changes.

Statuses are per-branch rows, so the graph is built from
repair_order_status_transitions instead of being hard-coded:

    fsm = TransitionValidator.for_branch(session, branch_id)
    fsm.assert_can_transition(order.status_id, target_status_id)

Raises ValidationFailed (400) if the pair is not configured.
"""
from __future__ import annotations
from typing import Dict, Hashable, Set
from sqlalchemy import select
from repairflow.errors import ValidationFailed
from repairflow.models.status import RepairOrderStatusTransition


class TransitionValidator:
    def __init__(self, graph: Dict[Hashable, Set[Hashable]], field_name: str = 'status_id'):
        self.graph = graph
        self.field_name = field_name

    @classmethod
    def for_branch(cls, session, branch_id: int) -> "TransitionValidator":
        graph: Dict[Hashable, Set[Hashable]] = {}
        rows = session.execute(
            select(RepairOrderStatusTransition.from_status_id, RepairOrderStatusTransition.to_status_id)
            .where(RepairOrderStatusTransition.branch_id == branch_id)
        ).all()
        for src, dst in rows:
            graph.setdefault(src, set()).add(dst)
        return cls(graph)

    def can_transition(self, current, target) -> bool:
        return target in self.graph.get(current, set())

    def assert_can_transition(self, current, target):
        if not self.can_transition(current, target):
            raise ValidationFailed(
                f"Invalid {self.field_name} transition {current} -> {target}",
                location=self.field_name,
                from_status_id=current,
                to_status_id=target,
            )
        return True

__all__ = ['TransitionValidator']
