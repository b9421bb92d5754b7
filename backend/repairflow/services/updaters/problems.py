"""Initial and final problem lists with their parts.

Both lists share the same validation:

- no category twice in one list, no part twice inside one problem;
- every category exists, is open and active, and is either mapped to the
  order's phone category or descends from a mapped category;
- every part is open and assigned to the problem's category.

Storage is replace-all: old problems and their parts are deleted, then
the new list is inserted.
"""
from __future__ import annotations

from typing import Any, Dict, List, Sequence, Set, Tuple

from sqlalchemy import delete, select

from repairflow.constants.capabilities import CAN_CHANGE_FINAL_PROBLEMS, CAN_CHANGE_INITIAL_PROBLEMS
from repairflow.errors import ValidationFailed
from repairflow.models.authz import STATUS_OPEN
from repairflow.models.catalog import RepairPart, RepairPartAssignment
from repairflow.models.repair_order import (
    RepairOrder,
    RepairOrderFinalProblem,
    RepairOrderInitialProblem,
    RepairOrderPart,
)
from repairflow.services.payloads import ProblemInput
from repairflow.services.policy import Actor
from repairflow.services.problem_tree import find_inactive, find_unreachable, load_parent_map, mapped_problem_ids
from repairflow.services.unit_of_work import UnitOfWork
from repairflow.services.updaters.base import SubEntityUpdater


class ProblemsUpdater(SubEntityUpdater):
    model: Any = None
    part_link: str = ''

    def apply(self, uow: UnitOfWork, order: RepairOrder, value: Sequence[ProblemInput], actor: Actor, status_id: int, **context) -> bool:
        problems = list(value)
        self.validate(uow.session, order, problems)
        old = self.snapshot(uow.session, order.id)
        new = sorted((p.snapshot() for p in problems), key=lambda p: p['problem_category_id'])
        if old == new:
            return False
        self._replace(uow, order, problems, actor)
        self.log(uow, order, old, new, actor)
        return True

    def validate(self, session, order: RepairOrder, problems: List[ProblemInput]) -> None:
        if not problems:
            return
        category_ids = [p.problem_category_id for p in problems]
        duplicates = sorted({c for c in category_ids if category_ids.count(c) > 1})
        if duplicates:
            raise ValidationFailed('Duplicate problem categories', location=self.location, duplicate_ids=duplicates)

        parents = load_parent_map(session, category_ids)
        inactive = find_inactive(category_ids, parents)
        if inactive:
            raise ValidationFailed(
                'Problem categories not found or inactive',
                location=self.location,
                invalid_problem_ids=inactive,
            )
        unreachable = find_unreachable(category_ids, mapped_problem_ids(session, order.phone_category_id), parents)
        if unreachable:
            raise ValidationFailed(
                'Problem categories not allowed for this phone category',
                location=self.location,
                invalid_problem_ids=unreachable,
            )

        for idx, problem in enumerate(problems):
            part_ids = [p.id for p in problem.parts]
            dup_parts = sorted({p for p in part_ids if part_ids.count(p) > 1})
            if dup_parts:
                raise ValidationFailed(
                    'Duplicate parts in one problem',
                    location=f'{self.location}[{idx}].parts',
                    duplicate_ids=dup_parts,
                )
        allowed = self._allowed_parts(session, problems)
        for idx, problem in enumerate(problems):
            invalid = [p.id for p in problem.parts if (p.id, problem.problem_category_id) not in allowed]
            if invalid:
                raise ValidationFailed(
                    'Parts not assigned to this problem category',
                    location=f'{self.location}[{idx}].parts',
                    invalid_part_ids=invalid,
                )

    @staticmethod
    def _allowed_parts(session, problems: List[ProblemInput]) -> Set[Tuple[int, int]]:
        part_ids = {p.id for problem in problems for p in problem.parts}
        if not part_ids:
            return set()
        rows = session.execute(
            select(RepairPartAssignment.repair_part_id, RepairPartAssignment.problem_category_id)
            .join(RepairPart, RepairPart.id == RepairPartAssignment.repair_part_id)
            .where(
                RepairPartAssignment.repair_part_id.in_(part_ids),
                RepairPartAssignment.problem_category_id.in_([p.problem_category_id for p in problems]),
                RepairPart.status == STATUS_OPEN,
            )
        ).all()
        return {(part_id, cat_id) for part_id, cat_id in rows}

    def snapshot(self, session, order_id: int) -> List[Dict[str, Any]]:
        rows = session.execute(select(self.model).where(self.model.repair_order_id == order_id)).scalars().all()
        if not rows:
            return []
        link = getattr(RepairOrderPart, self.part_link)
        parts_by_problem: Dict[int, List[Dict[str, Any]]] = {}
        for part in session.execute(select(RepairOrderPart).where(link.in_([r.id for r in rows]))).scalars():
            parts_by_problem.setdefault(getattr(part, self.part_link), []).append(
                {'id': part.repair_part_id, 'part_price': float(part.part_price), 'quantity': part.quantity}
            )
        out = []
        for row in rows:
            out.append({
                'problem_category_id': row.problem_category_id,
                'price': float(row.price),
                'estimated_minutes': row.estimated_minutes,
                'parts': sorted(parts_by_problem.get(row.id, []), key=lambda p: p['id']),
            })
        return sorted(out, key=lambda p: p['problem_category_id'])

    def _replace(self, uow: UnitOfWork, order: RepairOrder, problems: List[ProblemInput], actor: Actor) -> None:
        session = uow.session
        old_ids = list(session.execute(select(self.model.id).where(self.model.repair_order_id == order.id)).scalars())
        if old_ids:
            session.execute(delete(RepairOrderPart).where(getattr(RepairOrderPart, self.part_link).in_(old_ids)))
            session.execute(delete(self.model).where(self.model.id.in_(old_ids)))
        for problem in problems:
            row = self.model(
                repair_order_id=order.id,
                problem_category_id=problem.problem_category_id,
                price=problem.price,
                estimated_minutes=problem.estimated_minutes,
                created_by=actor.admin_id,
            )
            session.add(row)
            session.flush()
            for part in problem.parts:
                session.add(RepairOrderPart(
                    repair_order_id=order.id,
                    repair_part_id=part.id,
                    quantity=part.quantity,
                    part_price=part.part_price,
                    created_by=actor.admin_id,
                    **{self.part_link: row.id},
                ))
        uow.flush()


class InitialProblemsUpdater(ProblemsUpdater):
    capability = CAN_CHANGE_INITIAL_PROBLEMS
    location = 'initial_problems'
    model = RepairOrderInitialProblem
    part_link = 'repair_order_initial_problem_id'


class FinalProblemsUpdater(ProblemsUpdater):
    capability = CAN_CHANGE_FINAL_PROBLEMS
    location = 'final_problems'
    model = RepairOrderFinalProblem
    part_link = 'repair_order_final_problem_id'
