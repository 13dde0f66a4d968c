import pytest

from dojo import create_app
from dojo.config import TestingConfig
from dojo.models import db
from dojo.outbox.executors import ExecutorRegistry
from tests.helpers import FakeClock, StubExecutor

ADMIN_HEADERS = {"X-Admin-Pin": TestingConfig.ADMIN_PIN}


@pytest.fixture
def email_executor():
    return StubExecutor(external_id="msg-123")


@pytest.fixture
def registry(email_executor):
    return ExecutorRegistry({"email": email_executor})


@pytest.fixture
def app(registry):
    """Flask app on an in-memory SQLite database with stub executors."""
    app = create_app(TestingConfig, executor_registry=registry)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_headers():
    return dict(ADMIN_HEADERS)


@pytest.fixture
def clock():
    return FakeClock()
