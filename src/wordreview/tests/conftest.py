"""Test configuration."""
import os
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Callable, Generator, Optional

import pytest
from dotenv import load_dotenv

# Set test environment before any imports
os.environ["ENV"] = "test"

# Load test environment variables
test_env_path = Path(__file__).parent.parent.parent.parent / ".env.test"
load_dotenv(test_env_path)
os.environ.setdefault("DATABASE_URL", "sqlite:///test_wordreview.db")

# Import after environment setup
from faker import Faker
from sqlalchemy.orm import Session

from wordreview.config import LearningSettings, settings
from wordreview.models.base import SessionLocal, engine, init_db
from wordreview.models.codec import encode_json
from wordreview.models.learning_models import Scope
from wordreview.models.models import ReviewRecord, User, Vocabulary
from wordreview.timeutils import to_millis

fake = Faker()

NOW = datetime(2024, 3, 10, 12, 0, tzinfo=UTC)


class FakeClock:
    """Callable clock the tests can move forward."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture(autouse=True)
def setup_database():
    """Delete and recreate the database before each test."""
    engine.dispose()

    db_path = settings.database.url.replace("sqlite:///", "")
    if os.path.exists(db_path):
        os.remove(db_path)

    init_db()

    yield

    engine.dispose()


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create a fresh database session for each test."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def learning() -> LearningSettings:
    """Small limits that keep scenarios readable."""
    return LearningSettings(
        daily_new_words=2,
        daily_review_limit=5,
        review_intervals=(1, 2, 4, 7, 15, 30),
        mastery_threshold=3,
        timezone="UTC",
        contribution_days=180,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(NOW)


def _create_user(db: Session) -> User:
    user = User(username=fake.user_name(), email=fake.email())
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def user(db: Session) -> User:
    """Create a test user."""
    return _create_user(db)


@pytest.fixture
def other_user(db: Session) -> User:
    """Create a second test user."""
    return _create_user(db)


@pytest.fixture
def scope(user: User) -> Scope:
    return Scope(user.id)


@pytest.fixture
def other_scope(other_user: User) -> Scope:
    return Scope(other_user.id)


@pytest.fixture
def legacy_scope() -> Scope:
    return Scope(None)


@pytest.fixture
def make_word(db: Session) -> Callable[..., Vocabulary]:
    """Insert a vocabulary row directly, bypassing the daily limit."""
    counter = {"n": 0}

    def _make_word(
        word: str,
        scope: Scope,
        meaning: Optional[str] = None,
        pos: str = "n.",
        created_at: Optional[datetime] = None,
        mastered: bool = False,
        pronunciation: Optional[dict] = None,
    ) -> Vocabulary:
        counter["n"] += 1
        created = created_at or NOW - timedelta(days=30) + timedelta(minutes=counter["n"])
        vocab = Vocabulary(
            word=word,
            definitions=encode_json([{"pos": pos, "meaning": meaning or f"meaning of {word}"}]),
            pronunciation=encode_json(pronunciation or {"American": f"/{word}/", "British": ""}),
            memory_method=fake.sentence(),
            mastered=mastered,
            created_at=to_millis(created),
            owner_id=scope.owner_id,
            owner_key=scope.owner_key,
        )
        db.add(vocab)
        db.commit()
        db.refresh(vocab)
        return vocab

    return _make_word


@pytest.fixture
def make_review(db: Session) -> Callable[..., ReviewRecord]:
    """Insert a review row directly at a given moment."""

    def _make_review(word: str, scope: Scope, reviewed_at: datetime, was_correct: bool = True) -> ReviewRecord:
        record = ReviewRecord(
            word=word,
            owner_id=scope.owner_id,
            reviewed_at=to_millis(reviewed_at),
            was_correct=was_correct,
        )
        db.add(record)
        db.commit()
        db.refresh(record)
        return record

    return _make_review
