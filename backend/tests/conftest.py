import os, sys, pytest
# Ensure the backend directory is on path so 'stallsync' and 'tests' can be imported
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
from stallsync import create_app, get_db, STORE_KEY
from stallsync.models.authz import Base
# Import all model modules to ensure tables are registered before create_all
import stallsync.models.documents  # noqa: F401
import stallsync.models.audit  # noqa: F401


@pytest.fixture(scope='session', autouse=True)
def app_instance():
    app = create_app({
        'DATABASE_URL': 'sqlite+pysqlite:///:memory:',
        'JWT_SECRET_KEY': 'test-secret',
        'COMMIT_BACKOFF_SECONDS': 0,
    })
    # After app and blueprints are registered, ensure all tables exist
    with app.app_context():
        engine = get_db().get_bind()
        Base.metadata.create_all(engine)
    yield app


@pytest.fixture()
def client(app_instance):
    return app_instance.test_client()


@pytest.fixture()
def store(app_instance):
    yield app_instance.extensions[STORE_KEY]
    # leave no open transaction behind for the next test
    get_db().rollback()
