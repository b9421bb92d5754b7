from repairflow.models.repair_order import RepairOrder
from repairflow.services.positions import bucket_size, close_gap, next_sort_value, reorder
from tests.test_utils_seed import create_order, order_sorts


def _orders(service, world, n):
    return [create_order(service, world) for _ in range(n)]


def test_next_sort_value_empty_bucket(session, world):
    assert next_sort_value(session, RepairOrder, branch_id=world.branch.id, status='Open') == 1


def test_creation_appends_to_bucket(session, service, world):
    orders = _orders(service, world, 3)
    assert [o.sort for o in orders] == [1, 2, 3]
    assert bucket_size(session, RepairOrder, branch_id=world.branch.id, status='Open') == 3


def test_move_up_shifts_range_down(session, service, world):
    o1, o2, o3, o4 = _orders(service, world, 4)
    assert reorder(session, RepairOrder, o4.id, 4, 2, branch_id=world.branch.id, status='Open') is True
    session.commit()
    assert order_sorts(session, world.branch.id) == {o1.id: 1, o4.id: 2, o2.id: 3, o3.id: 4}


def test_move_down_shifts_range_up(session, service, world):
    o1, o2, o3, o4 = _orders(service, world, 4)
    reorder(session, RepairOrder, o1.id, 1, 3, branch_id=world.branch.id, status='Open')
    session.commit()
    assert order_sorts(session, world.branch.id) == {o2.id: 1, o3.id: 2, o1.id: 3, o4.id: 4}


def test_same_position_is_noop(session, service, world):
    o1, o2 = _orders(service, world, 2)
    assert reorder(session, RepairOrder, o2.id, 2, 2, branch_id=world.branch.id, status='Open') is False
    assert order_sorts(session, world.branch.id) == {o1.id: 1, o2.id: 2}


def test_close_gap_keeps_bucket_dense(session, service, world):
    o1, o2, o3 = _orders(service, world, 3)
    o2.status = 'Deleted'
    session.flush()
    close_gap(session, RepairOrder, 2, branch_id=world.branch.id, status='Open')
    session.commit()
    assert order_sorts(session, world.branch.id) == {o1.id: 1, o3.id: 2}


def test_other_branch_bucket_untouched(session, service, world):
    from tests.test_utils_seed import make_branch, make_status
    other = make_branch(session, 'Other')
    other_new = make_status(session, other, 'New', 1)
    stranger = RepairOrder(branch_id=other.id, status_id=other_new.id, user_id=world.customer.id,
                           phone_category_id=world.phone.id, sort=2, created_by=world.admin.id)
    session.add(stranger); session.commit()
    o1, o2 = _orders(service, world, 2)
    reorder(session, RepairOrder, o2.id, 2, 1, branch_id=world.branch.id, status='Open')
    session.commit()
    assert order_sorts(session, other.id) == {stranger.id: 2}


def test_density_after_mixed_operations(session, service, world):
    orders = _orders(service, world, 5)
    service.move_order(world.actor, orders[4].id, world.new.id, 1)
    service.soft_delete_order(world.actor, orders[2].id)
    service.move_order(world.actor, orders[0].id, world.new.id, 4)
    create_order(service, world)
    sorts = sorted(order_sorts(session, world.branch.id).values())
    assert sorts == list(range(1, len(sorts) + 1))
    assert len(sorts) == 5
