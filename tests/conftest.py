"""Pytest fixtures and configuration for looptrack tests."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
import uuid
from datetime import date, datetime
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from looptrack.database.database import Base
from looptrack.database.block_repository import BlockRepository
from looptrack.database.repository import TaskRepository
from looptrack.database.task_instance_repository import TaskInstanceRepository
from looptrack.database.user_repository import UserRepository
from looptrack.engine.dates import to_midnight
from looptrack.models.task_factory import create_block_base, create_task_base
from looptrack.models.user import User


# Use in-memory SQLite database for tests
TEST_DATABASE_URL = "sqlite:///:memory:"

# 2024-01-01 is a Monday.
MONDAY = date(2024, 1, 1)


def _seed_user(session: Session, user_id: str, email: str = "test@example.com") -> None:
    now = datetime.utcnow()
    UserRepository(session).create_or_update(
        User(id=user_id, email=email, name="Test User", created_at=now, updated_at=now)
    )


@pytest.fixture
def test_user_id():
    """Test user ID for multi-user testing."""
    return "test-user-123"


@pytest.fixture
def other_user_id():
    return "other-user-456"


@pytest.fixture(scope="function")
def db_session(test_user_id, other_user_id):
    """Database session on a fresh in-memory SQLite database.

    Seeds the test user and a second user for ownership checks.
    """
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    _seed_user(session, test_user_id)
    _seed_user(session, other_user_id, email="other@example.com")

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def file_session_factory(tmp_path, test_user_id):
    """Session factory on a temporary SQLite file, for tests that need several connections."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'looptrack-test.db'}",
        connect_args={"check_same_thread": False, "timeout": 15},
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = factory()
    _seed_user(session, test_user_id)
    session.close()
    try:
        yield factory
    finally:
        engine.dispose()


@pytest.fixture
def task_repository(db_session: Session):
    """Create a TaskRepository instance for testing."""
    return TaskRepository(db_session)


@pytest.fixture
def block_repository(db_session: Session):
    return BlockRepository(db_session)


@pytest.fixture
def instance_repository(db_session: Session):
    return TaskInstanceRepository(db_session)


@pytest.fixture
def user_repository(db_session: Session):
    return UserRepository(db_session)


@pytest.fixture
def make_block(db_session, test_user_id):
    """Factory creating a stored block for the test user."""
    def _make(**fields):
        block = create_block_base(fields.pop("user_id", test_user_id), fields, block_id=str(uuid.uuid4()))
        return BlockRepository(db_session).create(block)
    return _make


@pytest.fixture
def make_task(db_session, test_user_id):
    """Factory creating a stored task for the test user."""
    def _make(**fields):
        fields.setdefault("title", "Test Task")
        task = create_task_base(fields.pop("user_id", test_user_id), fields, task_id=str(uuid.uuid4()))
        return TaskRepository(db_session).create(task)
    return _make


@pytest.fixture
def set_status(db_session):
    """Write an instance status directly (no streak update)."""
    def _set(task_id, day, status):
        instance, _ = TaskInstanceRepository(db_session).upsert(task_id, to_midnight(day), {"status": status})
        return instance
    return _set


@pytest.fixture
def test_user(db_session, test_user_id):
    """The seeded test user."""
    return UserRepository(db_session).get(test_user_id)


@pytest.fixture
def test_client(db_session: Session, test_user):
    """Create a FastAPI test client with overridden database dependency and authentication."""
    from looptrack.api.app import app
    from looptrack.database.database import get_db, get_session_factory
    from looptrack.auth.dependencies import get_current_user

    # Override the get_db dependency to use our test database session
    def override_get_db():
        try:
            yield db_session
        finally:
            pass  # Don't close the session here, let the fixture handle it

    # Override authentication to return test user
    def override_get_current_user():
        return test_user

    app.dependency_overrides[get_db] = override_get_db
    # One shared in-memory connection: run full sync sequentially.
    app.dependency_overrides[get_session_factory] = lambda: None
    app.dependency_overrides[get_current_user] = override_get_current_user

    with TestClient(app) as client:
        yield client

    # Clean up dependency overrides
    app.dependency_overrides.clear()
