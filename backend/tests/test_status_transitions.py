import pytest
from repairflow.errors import NotFound, ValidationFailed
from repairflow.models.authz import STATUS_DELETED
from repairflow.services.transitions import StatusTransitionService
from tests.test_lifecycle_helpers import assert_error, jwt_headers
from tests.test_utils_seed import create_order, make_branch, make_status


def _targets(session, status_id):
    return [t.to_status_id for t in StatusTransitionService(session).list_for(status_id)]


def test_replace_swaps_outgoing_transitions(session, world):
    svc = StatusTransitionService(session)
    rows = svc.replace(world.new.id, [world.ready.id, world.in_repair.id, world.ready.id])
    assert [r.to_status_id for r in rows] == [world.ready.id, world.in_repair.id]
    assert all(r.branch_id == world.branch.id for r in rows)
    assert _targets(session, world.new.id) == sorted([world.in_repair.id, world.ready.id])
    assert _targets(session, world.in_repair.id) == [world.ready.id]


def test_empty_list_removes_every_transition(session, world):
    assert StatusTransitionService(session).replace(world.new.id, []) == []
    assert _targets(session, world.new.id) == []


def test_target_from_other_branch_rejected(session, world):
    other = make_branch(session, 'Other')
    foreign = make_status(session, other, 'New', 1)
    with pytest.raises(ValidationFailed) as exc:
        StatusTransitionService(session).replace(world.new.id, [world.ready.id, foreign.id])
    assert exc.value.location == 'to_status_ids'
    assert exc.value.details['invalid_ids'] == [foreign.id]
    assert _targets(session, world.new.id) == sorted([world.in_repair.id, world.cancelled.id])


def test_self_transition_rejected(session, world):
    with pytest.raises(ValidationFailed):
        StatusTransitionService(session).replace(world.new.id, [world.new.id])


def test_deleted_source_status_not_found(session, world):
    world.ready.status = STATUS_DELETED
    session.commit()
    with pytest.raises(NotFound):
        StatusTransitionService(session).replace(world.ready.id, [world.new.id])


def test_replaced_transitions_govern_moves(session, service, world):
    order = create_order(service, world)
    StatusTransitionService(session).replace(world.new.id, [world.ready.id])
    with pytest.raises(ValidationFailed):
        service.move_order(world.actor, order.id, world.in_repair.id)
    service.move_order(world.actor, order.id, world.ready.id)


def test_transition_endpoints_require_status_manage(client, world, app_instance):
    with app_instance.test_request_context():
        plain = jwt_headers(world.admin.id, [], branch_ids=[world.branch.id])
        admin = jwt_headers(world.admin.id, ['RPR.STATUS.MANAGE'], branch_ids=[world.branch.id])
    url = f'/repair-order-status-transitions/{world.new.id}'
    assert_error(client.put(url, json={'to_status_ids': [world.ready.id]}, headers=plain), 403, 'forbidden')
    assert_error(client.put(url, json={'to_status_ids': 'x'}, headers=admin), 400, 'bad_request', 'to_status_ids')

    resp = client.put(url, json={'to_status_ids': [world.ready.id]}, headers=admin)
    assert resp.status_code == 200, resp.get_json()
    assert resp.get_json()['data'] == [
        {'branch_id': world.branch.id, 'from_status_id': world.new.id, 'to_status_id': world.ready.id}
    ]
    assert client.get(url, headers=admin).get_json()['data'][0]['to_status_id'] == world.ready.id
