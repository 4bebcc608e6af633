import os, sys, pytest
# Ensure backend directory is on path so 'issuedesk' and 'tests' can be imported
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
from issuedesk import create_app, get_db
from issuedesk.models.authz import Base
# Import all model modules to ensure tables are registered before create_all
import issuedesk.models.issue  # noqa: F401
import issuedesk.models.audit  # noqa: F401

TEST_JWT_SECRET = 'test-secret-key-that-is-long-enough-for-hs256'


@pytest.fixture(scope='session', autouse=True)
def app_instance():
    os.environ['DATABASE_URL'] = 'sqlite+pysqlite:///:memory:'
    app = create_app({'JWT_SECRET_KEY': TEST_JWT_SECRET, 'TESTING': True})
    with app.app_context():
        engine = get_db().get_bind()
        Base.metadata.create_all(engine)
    yield app


@pytest.fixture()
def client(app_instance):
    return app_instance.test_client()


@pytest.fixture()
def app_context(app_instance):
    with app_instance.app_context():
        yield app_instance
