import os, sys, pytest
# Ensure backend directory is on path so 'repairflow' can be imported
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
from repairflow import create_app, get_db
from repairflow.models.authz import Base
# Import all model modules to ensure tables are registered before create_all
import repairflow.models.catalog  # noqa: F401
import repairflow.models.status  # noqa: F401
import repairflow.models.repair_order  # noqa: F401
import repairflow.models.rental  # noqa: F401
import repairflow.models.audit  # noqa: F401
from tests.test_utils_seed import FakeRedis, seed_world

TEST_JWT_SECRET = 'test-secret-key-for-repairflow-tests-0123456789'


@pytest.fixture()
def redis_client():
    return FakeRedis()


@pytest.fixture()
def app_instance(redis_client):
    app = create_app({
        'DATABASE_URL': 'sqlite+pysqlite:///:memory:',
        'REDIS_CLIENT': redis_client,
        'JWT_SECRET_KEY': TEST_JWT_SECRET,
    })
    # Fresh in-memory database per test
    with app.app_context():
        Base.metadata.create_all(get_db().get_bind())
        yield app


@pytest.fixture()
def client(app_instance):
    return app_instance.test_client()


@pytest.fixture()
def session(app_instance):
    return get_db()


@pytest.fixture()
def world(session):
    return seed_world(session)


@pytest.fixture()
def service(session):
    from repairflow import get_cache
    from repairflow.services.orders import RepairOrderService
    return RepairOrderService(session, get_cache())
