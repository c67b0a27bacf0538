import os
import sys
import pytest
from unittest.mock import MagicMock, patch

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.dirname(CURRENT_DIR)
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("RESEND_API_KEY", "re_test")

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from learnpro.infrastructure.db import get_db
from learnpro.infrastructure.models import Base, Course, Lesson, UserORM, UserPreferences
from learnpro.infrastructure.security import create_access_token
from learnpro.interfaces.http.routers.auth import get_limiter
from learnpro.main import app

# In-memory DB shared by every session in a test
test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(bind=test_engine, autocommit=False, autoflush=False)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


def override_get_limiter():
    """Limiter whose decorator leaves the endpoint untouched."""
    mock_limiter = MagicMock()
    def noop_limit(*args, **kwargs):
        def decorator(func):
            return func
        return decorator
    mock_limiter.limit = noop_limit
    return mock_limiter


@pytest.fixture(autouse=True)
def redis_client():
    """No Redis in tests: every lookup is a miss."""
    client = MagicMock()
    client.get.return_value = None
    client.scan_iter.return_value = iter(())
    with patch("learnpro.infrastructure.cache.get_redis", return_value=client):
        yield client


@pytest.fixture
def db():
    Base.metadata.drop_all(bind=test_engine)
    Base.metadata.create_all(bind=test_engine)
    session = TestingSessionLocal()
    yield session
    session.close()
    Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_limiter] = override_get_limiter
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_user(db, email="student@example.com", role="student", full_name="Test Student",
              is_active=True, **prefs) -> UserORM:
    user = UserORM(email=email, password_hash="not-used", role=role, full_name=full_name, is_active=is_active)
    user.preferences = UserPreferences(**prefs)
    db.add(user); db.commit(); db.refresh(user)
    return user


def auth_headers(user: UserORM) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id, user.role)}"}


def make_course(db, title="Python Basics", lessons=3, **fields) -> Course:
    data = {
        "description": "A practical introduction to Python for complete beginners.",
        "is_published": True,
        "subscription_tier": "free",
        "price": 0.0,
    }
    data.update(fields)
    course = Course(title=title, **data)
    course.lessons = [
        Lesson(title=f"Lesson {i + 1}", content="Some text", duration_minutes=10, order_index=i)
        for i in range(lessons)
    ]
    db.add(course); db.commit(); db.refresh(course)
    return course


@pytest.fixture
def student(db):
    return make_user(db)


@pytest.fixture
def instructor(db):
    return make_user(db, email="instructor@example.com", role="instructor", full_name="Ada Instructor")


@pytest.fixture
def admin(db):
    return make_user(db, email="admin@example.com", role="admin", full_name="Admin")
