import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from config.database import Database
from config.settings import Settings
from main import create_app


@pytest.fixture
def mongo():
    """A fresh in-memory database installed as the application's connection."""
    Database.db = AsyncMongoMockClient()["salon_test"]
    yield Database.db
    Database.db = None


@pytest.fixture
def db(mongo):
    return Database()


@pytest.fixture
def settings():
    test_settings = Settings()
    test_settings.rate_limit_enabled = False
    test_settings.twilio_account_sid = None
    test_settings.log_level = "WARNING"
    test_settings.log_file = None
    return test_settings


@pytest.fixture
def app(mongo, settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    # Not used as a context manager so the startup hook does not dial MongoDB
    return TestClient(app)

