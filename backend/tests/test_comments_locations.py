import pytest
from repairflow.errors import NotFound, PermissionDenied
from repairflow.models.repair_order import RepairOrder
from repairflow.services.payloads import LocationInput, OrderUpdate
from tests.test_utils_seed import actor_for, create_order, make_admin


def _second_manager(session, world):
    admin = make_admin(session, 'second@example.com', [world.manager], [world.branch])
    return actor_for(admin, [world.manager], [world.branch])


def test_add_edit_delete_comment(session, service, world):
    order = create_order(service, world)
    comment = service.add_comment(world.actor, order.id, 'Screen cracked')
    assert comment.status_by == world.new.id
    service.update_comment(world.actor, order.id, comment.id, 'Screen cracked, touch works')
    service.delete_comment(world.actor, order.id, comment.id)
    assert service.get_order(world.actor, order.id)['comments'] == []
    fields = [h['field'] for h in service.get_history(world.actor, order.id)]
    assert fields[-3:] == ['comments', 'comment', 'comment_deleted']
    with pytest.raises(NotFound):
        service.delete_comment(world.actor, order.id, comment.id)


def test_only_author_edits_comment(session, service, world):
    order = create_order(service, world)
    comment = service.add_comment(world.actor, order.id, 'mine')
    with pytest.raises(PermissionDenied):
        service.update_comment(_second_manager(session, world), order.id, comment.id, 'theirs')


def test_any_permitted_admin_deletes_comment(session, service, world):
    order = create_order(service, world)
    comment = service.add_comment(world.actor, order.id, 'note')
    service.delete_comment(_second_manager(session, world), order.id, comment.id)
    assert service.get_order(world.actor, order.id)['comments'] == []


def test_comment_requires_can_comment(session, service, world):
    order = create_order(service, world)
    with pytest.raises(PermissionDenied) as exc:
        service.add_comment(world.viewer_actor, order.id, 'hi')
    assert exc.value.capability == 'can_comment'


def test_pickup_replace_and_remove(session, service, world):
    order = create_order(service, world)
    spot = LocationInput(lat=41.31, long=69.24, description='Office')
    assert service.set_pickup(world.actor, order.id, spot) is True
    assert service.set_pickup(world.actor, order.id, spot) is False
    detail = service.get_order(world.actor, order.id)
    assert detail['pickup']['description'] == 'Office'
    assert detail['pickup_method'] == RepairOrder.PICKUP_COURIER

    service.update_order(world.actor, order.id, OrderUpdate(pickup=None))
    detail = service.get_order(world.actor, order.id)
    assert detail['pickup'] is None
    assert detail['pickup_method'] == RepairOrder.PICKUP_SELF


def test_pickup_and_delivery_have_separate_capabilities(session, service, world):
    from tests.test_utils_seed import grant, make_role
    role = make_role(session, 'Dispatcher')
    grant(session, role, world.new, ['can_view', 'can_pickup_manage'])
    admin = make_admin(session, 'dispatch@example.com', [role], [world.branch])
    dispatcher = actor_for(admin, [role], [world.branch])
    order = create_order(service, world)
    spot = LocationInput(lat=1, long=2, description='Gate')
    service.set_pickup(dispatcher, order.id, spot)
    with pytest.raises(PermissionDenied) as exc:
        service.set_delivery(dispatcher, order.id, spot)
    assert exc.value.capability == 'can_delivery_manage'
