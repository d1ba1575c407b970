# tests/conftest.py
import logging
import os

import pytest

# Point the app at a throwaway database before it is imported
os.environ["DATABASE_URL"] = "sqlite:///:memory:"

from app import app, db  # noqa: E402
from database import init_db  # noqa: E402

# ---------------------------------------------------------------------------
# Global logging config for verbose, readable test output
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.DEBUG,
    format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"
)
logger = logging.getLogger("tests")


@pytest.fixture(scope="session", autouse=True)
def _show_versions():
    logger.info("Starting test session for RosterPro")
    logger.info("Database: %s", app.config["SQLALCHEMY_DATABASE_URI"])


@pytest.fixture(autouse=True)
def _is_testing_env():
    app.config["TESTING"] = True
    app.config["PROPAGATE_EXCEPTIONS"] = True


@pytest.fixture
def app_ctx():
    """
    - Drops & recreates all tables each test for isolation.
    - Seeds the sample user directory.
    """
    with app.app_context():
        db.drop_all()
        added = init_db(seed=True)
        logger.info("Seeded %d users", added)

        yield

        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app_ctx):
    return app.test_client()
