from repairflow.errors import Conflict, NotFound, PermissionDenied, StorageFailure, ValidationFailed
from tests.test_lifecycle_helpers import login_headers


def test_unknown_path_returns_error_json(client):
    resp = client.get('/non-existent-path')
    # Flask default 404 should be wrapped by error handler
    assert resp.status_code == 404
    body = resp.get_json()
    assert body['error']['status'] == 404
    assert 'detail' in body['error']


def test_domain_error_to_dict_carries_details():
    err = ValidationFailed('bad part', location='initial_problems[0].parts', invalid_part_ids=[3])
    body = err.to_dict()
    assert body['status'] == 400
    assert body['kind'] == 'bad_request'
    assert body['location'] == 'initial_problems[0].parts'
    assert body['invalid_part_ids'] == [3]


def test_error_kinds_and_codes():
    assert (NotFound.code, NotFound.kind) == (404, 'not_found')
    assert (Conflict.code, Conflict.kind) == (409, 'conflict')
    assert StorageFailure.retryable is True
    denied = PermissionDenied('nope', capability='can_view', status_id=7)
    assert (denied.capability, denied.status_id) == ('can_view', 7)


def test_missing_order_returns_not_found_shape(client, world):
    headers = login_headers(client, 'manager@example.com')
    resp = client.get('/repair-orders/999', headers=headers)
    assert resp.status_code == 404
    err = resp.get_json()['error']
    assert err['kind'] == 'not_found'
    assert err['location'] == 'order_id'


def test_internal_error_shape(client, world, monkeypatch):
    headers = login_headers(client, 'manager@example.com')
    # Monkeypatch AFTER login so auth works; only break the order read
    import repairflow.routes.repair_orders as orders_mod

    def boom():
        raise RuntimeError('explode')
    monkeypatch.setattr(orders_mod, 'build_order_service', boom)
    resp = client.get('/repair-orders/1', headers=headers)
    assert resp.status_code == 500
    body = resp.get_json()
    assert body['error']['status'] == 500
    assert body['error']['title'] == 'Internal Server Error'
