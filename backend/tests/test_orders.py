import pytest
from sqlalchemy import func, select
from repairflow.errors import PermissionDenied, ValidationFailed
from repairflow.models.audit import RepairOrderChangeHistory
from repairflow.models.repair_order import (
    RepairOrder, RepairOrderAssignAdmin, RepairOrderDelivery, RepairOrderInitialProblem, RepairOrderPart,
)
from repairflow.services.payloads import LocationInput, OrderUpdate, PartInput, ProblemInput, parse_order_update
from tests.test_utils_seed import actor_for, create_order, grant, make_admin, make_role


def _count(session, model, **filters):
    stmt = select(func.count()).select_from(model)
    for name, value in filters.items():
        stmt = stmt.where(getattr(model, name) == value)
    return session.execute(stmt).scalar()


def _fields(session, order_id):
    return [h.field for h in session.execute(
        select(RepairOrderChangeHistory).where(RepairOrderChangeHistory.repair_order_id == order_id)
        .order_by(RepairOrderChangeHistory.id)
    ).scalars()]


def _lcd_problem(world, parts=()):
    return ProblemInput(problem_category_id=world.lcd.id, price=150000, estimated_minutes=60, parts=tuple(parts))


def test_create_uses_initial_status_and_appends(session, service, world):
    first = create_order(service, world)
    second = create_order(service, world, priority='High')
    assert first.status_id == world.new.id
    assert (first.sort, second.sort) == (1, 2)
    assert second.priority_level == RepairOrder.PRIORITY_LEVELS['High']
    assert _fields(session, first.id) == ['order_created']


def test_create_requires_can_add(session, service, world):
    with pytest.raises(PermissionDenied) as exc:
        create_order(service, world, actor=world.viewer_actor)
    assert exc.value.capability == 'can_add'
    assert _count(session, RepairOrder) == 0


def test_create_outside_actor_branches_denied(session, service, world):
    outsider = actor_for(world.admin, [world.manager], [])
    with pytest.raises(PermissionDenied):
        create_order(service, world, actor=outsider)


def test_create_with_sub_entities(session, service, world):
    order = create_order(
        service, world,
        admin_ids=[world.courier.id],
        initial_problems=[_lcd_problem(world, [PartInput(id=world.glass.id, part_price=50000, quantity=2)])],
        delivery=LocationInput(lat=41.3, long=69.2, description='Home', courier_id=world.courier.id),
    )
    detail = service.get_order(world.actor, order.id)
    assert detail['admin_ids'] == [world.courier.id]
    assert detail['initial_problems'][0]['parts'] == [{'id': world.glass.id, 'part_price': 50000.0, 'quantity': 2}]
    assert detail['delivery']['courier_id'] == world.courier.id
    assert detail['delivery_method'] == RepairOrder.DELIVERY_COURIER
    assert detail['pickup'] is None


def test_failed_create_leaves_nothing_behind(session, service, world):
    with pytest.raises(ValidationFailed) as exc:
        create_order(
            service, world,
            admin_ids=[world.courier.id],
            initial_problems=[_lcd_problem(world)],
            delivery=LocationInput(lat=41.3, long=69.2, description='Home', courier_id=9999),
        )
    assert exc.value.location == 'delivery.courier_id'
    for model in (RepairOrder, RepairOrderAssignAdmin, RepairOrderInitialProblem, RepairOrderDelivery, RepairOrderChangeHistory):
        assert _count(session, model) == 0


def test_failed_update_rolls_back_every_fragment(session, service, world):
    order = create_order(service, world)
    before = _fields(session, order.id)
    with pytest.raises(ValidationFailed) as exc:
        service.update_order(world.actor, order.id, OrderUpdate(
            priority='High',
            admin_ids=[world.courier.id],
            delivery=LocationInput(lat=41.3, long=69.2, description='Home', courier_id=9999),
        ))
    assert exc.value.location == 'delivery.courier_id'
    stored = session.execute(select(RepairOrder.priority).where(RepairOrder.id == order.id)).scalar()
    assert stored == 'Medium'
    assert _count(session, RepairOrderAssignAdmin, repair_order_id=order.id) == 0
    assert _count(session, RepairOrderDelivery, repair_order_id=order.id) == 0
    assert _fields(session, order.id) == before


def test_resubmitting_precise_location_is_a_no_op(session, service, world):
    order = create_order(service, world)
    body = {'delivery': {'lat': 41.123456789, 'long': 69.240000049, 'description': 'Home'}}
    service.update_order(world.actor, order.id, parse_order_update(body))
    after_first = _fields(session, order.id)
    service.update_order(world.actor, order.id, parse_order_update(body))
    assert _fields(session, order.id) == after_first
    stored = session.execute(select(RepairOrderDelivery.lat).where(RepairOrderDelivery.repair_order_id == order.id)).scalar()
    assert stored == 41.1234568


def test_update_priority_requires_can_update(session, service, world):
    order = create_order(service, world)
    with pytest.raises(PermissionDenied) as exc:
        service.update_order(world.viewer_actor, order.id, OrderUpdate(priority='High'))
    assert exc.value.capability == 'can_update'
    stored = session.execute(select(RepairOrder.priority).where(RepairOrder.id == order.id)).scalar()
    assert stored == 'Medium'


def test_update_writes_one_history_row_per_changed_field(session, service, world):
    order = create_order(service, world)
    service.update_order(world.actor, order.id, OrderUpdate(priority='High', imei='356938035643809'))
    assert _fields(session, order.id) == ['order_created', 'priority', 'imei']


def test_update_without_changes_is_silent(session, service, world):
    order = create_order(service, world, initial_problems=[_lcd_problem(world)])
    before = _fields(session, order.id)
    service.update_order(world.actor, order.id, OrderUpdate(priority='Medium', initial_problems=[_lcd_problem(world)]))
    assert _fields(session, order.id) == before


def test_update_status_follows_transitions(session, service, world):
    order = create_order(service, world)
    service.update_order(world.actor, order.id, OrderUpdate(status_id=world.in_repair.id))
    assert session.get(RepairOrder, order.id).status_id == world.in_repair.id
    with pytest.raises(ValidationFailed) as exc:
        service.update_order(world.actor, order.id, OrderUpdate(status_id=world.new.id))
    assert exc.value.location == 'status_id'


def test_parent_of_mapped_problem_is_rejected(session, service, world):
    order = create_order(service, world)
    bad = ProblemInput(problem_category_id=world.screen.id, price=1, estimated_minutes=10)
    with pytest.raises(ValidationFailed) as exc:
        service.update_order(world.actor, order.id, OrderUpdate(initial_problems=[bad]))
    assert exc.value.details['invalid_problem_ids'] == [world.screen.id]


def test_duplicate_parts_rejected(session, service, world):
    order = create_order(service, world)
    part = PartInput(id=world.glass.id, part_price=10)
    with pytest.raises(ValidationFailed) as exc:
        service.set_initial_problems(world.actor, order.id, [_lcd_problem(world, [part, part])])
    assert exc.value.location == 'initial_problems[0].parts'


def test_part_must_belong_to_problem(session, service, world):
    order = create_order(service, world)
    with pytest.raises(ValidationFailed) as exc:
        service.set_final_problems(world.actor, order.id, [_lcd_problem(world, [PartInput(id=world.cell.id, part_price=10)])])
    assert exc.value.details['invalid_part_ids'] == [world.cell.id]
    assert _count(session, RepairOrderPart) == 0


def test_problem_replacement_drops_old_parts(session, service, world):
    order = create_order(service, world, initial_problems=[_lcd_problem(world, [PartInput(id=world.glass.id, part_price=10)])])
    battery = ProblemInput(problem_category_id=world.battery.id, price=90000, estimated_minutes=30)
    service.set_initial_problems(world.actor, order.id, [battery])
    assert _count(session, RepairOrderPart) == 0
    assert service.get_order(world.actor, order.id)['initial_problems'][0]['problem_category_id'] == world.battery.id


def test_sub_entities_authorized_at_starting_status(session, service, world):
    # role may comment in New but not in In repair
    clerk = make_role(session, 'Clerk')
    grant(session, clerk, world.new, ['can_view', 'can_update', 'can_change_status', 'can_comment'])
    grant(session, clerk, world.in_repair, ['can_view'])
    admin = make_admin(session, 'clerk@example.com', [clerk], [world.branch])
    clerk_actor = actor_for(admin, [clerk], [world.branch])
    order = create_order(service, world)

    from repairflow.services.payloads import CommentInput
    service.update_order(clerk_actor, order.id, OrderUpdate(status_id=world.in_repair.id, comments=[CommentInput('moved')]))
    detail = service.get_order(clerk_actor, order.id)
    assert detail['status_id'] == world.in_repair.id
    assert detail['comments'][0]['status_by'] == world.new.id

    with pytest.raises(PermissionDenied):
        service.add_comment(clerk_actor, order.id, 'again')


def test_assign_and_remove_admins(session, service, world):
    order = create_order(service, world)
    assert service.assign_admins(world.actor, order.id, [world.courier.id, world.watcher.id]) is True
    assert service.assign_admins(world.actor, order.id, [world.courier.id]) is False
    assert service.remove_admins(world.actor, order.id, [world.watcher.id]) is True
    assert service.get_order(world.actor, order.id)['admin_ids'] == [world.courier.id]


def test_assign_inactive_admin_rejected(session, service, world):
    world.watcher.is_active = False
    session.commit()
    order = create_order(service, world)
    with pytest.raises(ValidationFailed) as exc:
        service.assign_admins(world.actor, order.id, [world.watcher.id])
    assert exc.value.details['missing_ids'] == [world.watcher.id]
