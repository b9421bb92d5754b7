from repairflow.errors import ValidationFailed
from repairflow.utils.fsm import TransitionValidator
import pytest


def test_transition_validator_allows_valid():
    fsm = TransitionValidator({1: {2}, 2: set()})
    assert fsm.assert_can_transition(1, 2) is True


def test_transition_validator_blocks_invalid():
    fsm = TransitionValidator({1: {2}, 2: set()})
    with pytest.raises(ValidationFailed) as exc:
        fsm.assert_can_transition(2, 1)
    assert exc.value.location == 'status_id'
    assert exc.value.details == {'from_status_id': 2, 'to_status_id': 1}


def test_graph_loaded_per_branch(session, world):
    from tests.test_utils_seed import allow_transition, make_branch, make_status
    other = make_branch(session, 'Other')
    a = make_status(session, other, 'A', 1)
    b = make_status(session, other, 'B', 2)
    allow_transition(session, other, a, b)
    fsm = TransitionValidator.for_branch(session, world.branch.id)
    assert fsm.can_transition(world.new.id, world.in_repair.id)
    assert fsm.can_transition(world.new.id, world.cancelled.id)
    assert not fsm.can_transition(world.in_repair.id, world.new.id)
    assert not fsm.can_transition(a.id, b.id)
