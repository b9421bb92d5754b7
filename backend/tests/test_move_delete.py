import pytest
from repairflow.errors import NotFound, PermissionDenied, ValidationFailed
from tests.test_utils_seed import actor_for, create_order, grant, make_admin, make_role, order_sorts


@pytest.fixture()
def sorter(session, world):
    """Role that may reorder but never change status."""
    role = make_role(session, 'Sorter')
    grant(session, role, world.new, ['can_view', 'can_add', 'can_update'])
    admin = make_admin(session, 'sorter@example.com', [role], [world.branch])
    return actor_for(admin, [role], [world.branch])


def test_pure_reorder_needs_only_can_update(session, service, world, sorter):
    o1, o2, o3, o4 = [create_order(service, world) for _ in range(4)]
    service.move_order(sorter, o4.id, world.new.id, 2)
    assert order_sorts(session, world.branch.id) == {o1.id: 1, o4.id: 2, o2.id: 3, o3.id: 4}


def test_status_change_needs_can_change_status(session, service, world, sorter):
    order = create_order(service, world)
    with pytest.raises(PermissionDenied) as exc:
        service.move_order(sorter, order.id, world.in_repair.id)
    assert exc.value.capability == 'can_change_status'


def test_move_rejects_unconfigured_transition(session, service, world):
    order = create_order(service, world)
    with pytest.raises(ValidationFailed):
        service.move_order(world.actor, order.id, world.ready.id)


def test_move_with_status_and_position(session, service, world):
    o1, o2, o3 = [create_order(service, world) for _ in range(3)]
    moved = service.move_order(world.actor, o3.id, world.in_repair.id, 1)
    assert moved.status_id == world.in_repair.id
    assert order_sorts(session, world.branch.id) == {o3.id: 1, o1.id: 2, o2.id: 3}
    fields = [h['field'] for h in service.get_history(world.actor, o3.id)]
    assert fields == ['order_created', 'status_id', 'sort']


def test_move_out_of_range(session, service, world):
    order = create_order(service, world)
    with pytest.raises(ValidationFailed) as exc:
        service.move_order(world.actor, order.id, world.new.id, 5)
    assert exc.value.location == 'sort'


def test_soft_delete_closes_gap(session, service, world):
    o1, o2, o3 = [create_order(service, world) for _ in range(3)]
    service.soft_delete_order(world.actor, o1.id)
    assert order_sorts(session, world.branch.id) == {o2.id: 1, o3.id: 2}
    with pytest.raises(NotFound):
        service.get_order(world.actor, o1.id)
    with pytest.raises(NotFound):
        service.soft_delete_order(world.actor, o1.id)


def test_soft_delete_requires_can_delete(session, service, world, sorter):
    order = create_order(service, world)
    with pytest.raises(PermissionDenied) as exc:
        service.soft_delete_order(sorter, order.id)
    assert exc.value.capability == 'can_delete'


def test_history_needs_can_view_history(session, service, world):
    order = create_order(service, world)
    with pytest.raises(PermissionDenied):
        service.get_history(world.viewer_actor, order.id)
    assert service.get_history(world.actor, order.id)[0]['field'] == 'order_created'
