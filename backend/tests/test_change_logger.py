from datetime import date
from repairflow.models.audit import RepairOrderChangeHistory
from repairflow.services.audit import ChangeLogger, canonical, history_for_order, values_differ
from tests.test_utils_seed import create_order


def _history(session, order_id):
    return session.query(RepairOrderChangeHistory).filter_by(repair_order_id=order_id).all()


def test_canonical_ignores_key_order_and_normalizes_dates():
    assert canonical({'b': 1, 'a': [1, 2]}) == canonical({'a': [1, 2], 'b': 1})
    assert canonical(date(2024, 1, 2)) == '2024-01-02'
    assert canonical((1, 2)) == [1, 2]


def test_none_is_missing():
    assert not values_differ(None, None)
    assert values_differ(None, [])
    assert values_differ('High', 'Low')
    assert not values_differ({'courier_id': None, 'lat': 1.0}, {'lat': 1.0})
    assert not values_differ([{'note': None}], [{}])
    assert canonical({'k': None}) == {}


def test_log_if_changed_writes_only_on_difference(session, service, world):
    order = create_order(service, world)
    before = len(_history(session, order.id))
    logger = ChangeLogger()
    assert logger.log_if_changed(session, order.id, 'priority', 'Low', 'Low', world.admin.id) is None
    row = logger.log_if_changed(session, order.id, 'priority', 'Low', 'High', world.admin.id)
    session.commit()
    assert row is not None
    rows = _history(session, order.id)
    assert len(rows) == before + 1
    assert rows[-1].old_value == 'Low' and rows[-1].new_value == 'High'


def test_log_many_counts_written_rows(session, service, world):
    order = create_order(service, world)
    written = ChangeLogger().log_many_if_changed(session, order.id, [
        ('priority', 'Low', 'Low'),
        ('imei', None, '356938035643809'),
        ('user_id', 1, 2),
    ], world.admin.id)
    assert written == 2


def test_log_change_is_unconditional(session, service, world):
    order = create_order(service, world)
    ChangeLogger().log_change(session, order.id, 'attachment_uploaded', {'file': 'a.jpg'}, world.admin.id)
    session.commit()
    fields = [h.field for h in history_for_order(session, order.id)]
    assert fields[0] == 'order_created'
    assert fields[-1] == 'attachment_uploaded'
