from tests.test_lifecycle_helpers import assert_error, assert_move, create_order_and_assert, jwt_headers, login_headers


def _order_body(world, **extra):
    body = {'branch_id': world.branch.id, 'user_id': world.customer.id, 'phone_category_id': world.phone.id}
    body.update(extra)
    return body


def test_login_and_me(client, world):
    headers = login_headers(client, 'manager@example.com')
    body = client.get('/iam/auth/me', headers=headers).get_json()
    assert body['email'] == 'manager@example.com'
    assert body['roles'] == [world.manager.id]
    assert body['branch_ids'] == [world.branch.id]


def test_login_rejects_bad_password(client, world):
    resp = client.post('/iam/auth/login', json={'email': 'manager@example.com', 'password': 'nope'})
    assert resp.status_code == 401


def test_order_lifecycle_over_http(client, world):
    headers = login_headers(client, 'manager@example.com')
    order = create_order_and_assert(client, headers, _order_body(world, priority='High'), expected_status_id=world.new.id)
    oid = order['id']

    resp = client.patch(f'/repair-orders/{oid}', json={
        'imei': '356938035643809',
        'initial_problems': [{'problem_category_id': world.lcd.id, 'price': 100, 'estimated_minutes': 30,
                              'parts': [{'id': world.glass.id, 'part_price': 40}]}],
        'pickup': {'lat': 41.3, 'long': 69.2, 'description': 'Home'},
    }, headers=headers)
    assert resp.status_code == 200, resp.get_json()
    assert resp.get_json()['pickup_method'] == 'Pickup'

    assert_move(client, oid, headers, world.in_repair.id, 200)
    detail = client.get(f'/repair-orders/{oid}', headers=headers).get_json()
    assert detail['status_id'] == world.in_repair.id
    assert detail['initial_problems'][0]['parts'][0]['id'] == world.glass.id

    listing = client.get(f'/repair-orders?branch_id={world.branch.id}', headers=headers).get_json()
    assert listing['data'][str(world.in_repair.id)]['total'] == 1
    assert listing['pagination'] == {'page': 1, 'limit': 20}

    history = client.get(f'/repair-orders/{oid}/history', headers=headers).get_json()['data']
    assert [h['field'] for h in history][:2] == ['order_created', 'imei']

    resp = client.delete(f'/repair-orders/{oid}', headers=headers)
    assert resp.get_json() == {'id': oid, 'status': 'Deleted'}


def test_forbidden_shape_names_capability(client, world):
    manager = login_headers(client, 'manager@example.com')
    viewer = login_headers(client, 'viewer@example.com')
    order = create_order_and_assert(client, manager, _order_body(world))
    resp = client.patch(f"/repair-orders/{order['id']}", json={'priority': 'High'}, headers=viewer)
    err = assert_error(resp, 403, 'forbidden')
    assert err['capability'] == 'can_update'
    assert err['status_id'] == world.new.id


def test_validation_shape_names_location(client, world):
    headers = login_headers(client, 'manager@example.com')
    resp = client.post('/repair-orders', json=_order_body(world, priority='Urgent'), headers=headers)
    assert_error(resp, 400, 'bad_request', 'priority')
    order = create_order_and_assert(client, headers, _order_body(world))
    resp = client.put(f"/repair-orders/{order['id']}/initial-problems", json={
        'problems': [{'problem_category_id': world.screen.id, 'price': 1, 'estimated_minutes': 1}],
    }, headers=headers)
    err = assert_error(resp, 400, 'bad_request', 'initial_problems')
    assert err['invalid_problem_ids'] == [world.screen.id]


def test_comment_and_rental_endpoints(client, world):
    headers = login_headers(client, 'manager@example.com')
    oid = create_order_and_assert(client, headers, _order_body(world))['id']
    resp = client.post(f'/repair-orders/{oid}/comments', json={'text': 'Call before pickup'}, headers=headers)
    assert resp.status_code == 201
    assert resp.get_json()['status_by'] == world.new.id

    body = {'rental_phone_device_id': world.device.id, 'is_free': False, 'price': 30000}
    assert client.post(f'/repair-orders/{oid}/rental-phone', json=body, headers=headers).status_code == 201
    resp = client.post(f'/repair-orders/{oid}/rental-phone', json=body, headers=headers)
    assert_error(resp, 409, 'conflict')
    resp = client.delete(f'/repair-orders/{oid}/rental-phone', headers=headers)
    assert resp.get_json()['status'] == 'Cancelled'


def test_status_permission_endpoints_require_manage(client, world, app_instance):
    with app_instance.test_request_context():
        plain = jwt_headers(world.admin.id, [], branch_ids=[world.branch.id])
        admin = jwt_headers(world.admin.id, ['RPR.PERMISSION.MANAGE'], branch_ids=[world.branch.id])
    body = {'role_id': world.viewer.id, 'branch_id': world.branch.id, 'status_ids': [world.new.id],
            'capabilities': {'can_view': True, 'can_comment': True}}
    assert_error(client.post('/repair-order-status-permissions', json=body, headers=plain), 403, 'forbidden')

    resp = client.post('/repair-order-status-permissions', json=body, headers=admin)
    assert resp.status_code == 201, resp.get_json()
    assert resp.get_json()['data'][0]['capabilities'] == ['can_view', 'can_comment']

    resp = client.delete(f'/repair-order-status-permissions/roles/{world.viewer.id}', headers=admin)
    assert resp.get_json() == {'removed': 4}

    resp = client.delete(f'/repair-order-status-permissions/branches/{world.branch.id}', headers=admin)
    assert resp.get_json() == {'removed': 4}


def test_unauthenticated_request_rejected(client, world):
    resp = client.get(f'/repair-orders?branch_id={world.branch.id}')
    assert resp.status_code == 401
