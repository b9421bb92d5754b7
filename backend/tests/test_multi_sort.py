import pytest
from sqlalchemy import select
from repairflow.config.pagination import Page, normalize_pagination
from repairflow.errors import ValidationFailed
from repairflow.models.repair_order import RepairOrder
from repairflow.services.orders import SORTABLE_FIELDS
from repairflow.utils.sorting import apply_multi_sort, parse_sort
from tests.test_utils_seed import create_order


def _ids(session, sort_by, sort_order='asc'):
    pairs = parse_sort(sort_by, sort_order, SORTABLE_FIELDS)
    stmt = apply_multi_sort(select(RepairOrder.id), pairs, SORTABLE_FIELDS, RepairOrder.id)
    return list(session.execute(stmt).scalars())


def test_parse_sort_prefix_flips_default_direction():
    assert parse_sort('-priority_level,sort', 'asc', SORTABLE_FIELDS) == [('priority_level', True), ('sort', False)]
    assert parse_sort('-priority_level,sort', 'desc', SORTABLE_FIELDS) == [('priority_level', False), ('sort', True)]
    assert parse_sort('sort,sort', 'asc', SORTABLE_FIELDS) == [('sort', False)]


def test_orders_multi_sort(session, service, world):
    low = create_order(service, world, priority='Low')
    high = create_order(service, world, priority='High')
    high2 = create_order(service, world, priority='High')
    assert _ids(session, '-priority_level,sort') == [high.id, high2.id, low.id]
    assert _ids(session, 'sort', 'desc') == [high2.id, high.id, low.id]
    assert _ids(session, None) == [low.id, high.id, high2.id]


def test_unknown_sort_field_rejected():
    with pytest.raises(ValidationFailed) as exc:
        parse_sort('imei', 'asc', SORTABLE_FIELDS)
    assert exc.value.location == 'sort_by'


def test_unknown_sort_order_rejected():
    with pytest.raises(ValidationFailed) as exc:
        parse_sort('sort', 'sideways', SORTABLE_FIELDS)
    assert exc.value.location == 'sort_order'


def test_pagination_defaults_and_clamps():
    assert normalize_pagination(None, None) == Page(1, 20)
    assert normalize_pagination('0', '1000') == Page(1, 200)
    assert Page(3, 10).offset == 20
    assert Page(2, 2).slice([1, 2, 3, 4, 5]) == [3, 4]
    with pytest.raises(ValidationFailed) as exc:
        normalize_pagination('x', None)
    assert exc.value.location == 'page'


def test_list_paginates_each_status(session, service, world):
    orders = [create_order(service, world) for _ in range(3)]
    result = service.list_orders_for_admin(world.actor, world.branch.id, page=2, limit=2)
    assert result[world.new.id]['total'] == 3
    assert [o['id'] for o in result[world.new.id]['orders']] == [orders[2].id]
