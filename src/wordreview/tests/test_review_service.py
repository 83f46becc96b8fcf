"""Tests for the review service facade."""
import random
from datetime import timedelta

import pytest
from prometheus_client import REGISTRY
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from wordreview.config import LearningSettings
from wordreview.exceptions import NotFoundError, QuotaExceededError, StorageError, ValidationError
from wordreview.models.base import Base, engine
from wordreview.models.models import User
from wordreview.services.review_service import ReviewService


@pytest.fixture
def service(db: Session, learning: LearningSettings, clock) -> ReviewService:
    """Create a review service in legacy mode."""
    return ReviewService(db, learning, legacy_mode=True, clock=clock, rng=random.Random(7))


@pytest.fixture
def strict_service(db: Session, learning: LearningSettings, clock) -> ReviewService:
    """Create a review service that requires a user."""
    return ReviewService(db, learning, legacy_mode=False, clock=clock)


def add(service, word: str, owner_id=None, meaning=None):
    return service.add_vocabulary(
        {
            "word": word,
            "definitions": [{"pos": "n.", "meaning": meaning or f"meaning of {word}"}],
            "pronunciation": {"American": f"/{word}/", "British": ""},
            "memory_method": f"remember {word}",
        },
        owner_id,
    )


def test_anonymous_calls_rejected_without_legacy_mode(strict_service, user: User) -> None:
    with pytest.raises(ValidationError):
        strict_service.get_today_words()
    with pytest.raises(ValidationError):
        strict_service.record_review("apple", True)

    add(strict_service, "apple", user.id)
    assert [entry.word for entry in strict_service.get_today_words(user.id)] == ["apple"]


@pytest.mark.parametrize("owner_id", [0, -3, "1", True])
def test_invalid_owner_id(service, owner_id) -> None:
    with pytest.raises(ValidationError):
        service.get_current_stats(owner_id)


def test_users_and_legacy_scope_are_isolated(service, user: User, other_user: User) -> None:
    """Test every read and write stays inside one scope."""
    add(service, "apple", user.id)
    add(service, "banana", other_user.id)
    add(service, "cherry")

    assert [entry.word for entry in service.list_vocabularies(user.id)] == ["apple"]
    assert [entry.word for entry in service.list_vocabularies()] == ["cherry"]
    with pytest.raises(NotFoundError):
        service.get_vocabulary("banana", user.id)
    with pytest.raises(NotFoundError):
        service.record_review("apple", True)

    service.record_review("apple", True, user.id)
    assert len(service.get_word_history("apple", user.id)) == 1
    assert service.get_word_history("apple", other_user.id) == []
    assert service.get_vocab_stats(other_user.id) == {"total": 1, "mastered": 0, "learning": 1}


def test_record_review_refreshes_progress(service, clock) -> None:
    add(service, "apple")
    add(service, "banana")
    progress = service.get_or_create_progress()
    assert progress.total_words == 2

    service.record_review("apple", True)
    service.record_review("banana", False)

    progress = service.get_or_create_progress()
    assert (progress.completed, progress.correct) == (2, 1)

    progress = service.update_progress({"current_index": 2, "completed": 99, "correct": 99})
    assert (progress.current_index, progress.completed, progress.correct) == (2, 2, 1)


def test_record_review_reaches_mastery(service, clock) -> None:
    add(service, "apple")
    outcomes = []
    for _ in range(3):
        outcomes.append(service.record_review("apple", True))
        clock.advance(days=1)

    assert [outcome.mastered for outcome in outcomes] == [False, False, True]
    assert service.get_vocabulary("apple").mastered is True
    assert service.get_current_stats().mastered_words_count == 1


def test_reset_today_returns_rebuilt_progress(service, clock) -> None:
    add(service, "apple")
    service.get_or_create_progress()
    service.record_review("apple", True)
    service.update_progress({"current_index": 1})

    progress = service.reset_today()

    assert (progress.current_index, progress.completed, progress.correct) == (0, 0, 0)
    assert progress.total_words == 1
    assert service.get_word_history("apple") == []
    assert [entry.is_new for entry in service.get_today_words()] == [True]


def test_generate_quiz(service) -> None:
    for word in ("apple", "banana", "cherry", "durian"):
        add(service, word)

    quiz = service.generate_quiz("Banana")

    assert quiz.correct_answer == "meaning of banana"
    assert len(quiz.options) == 4


def test_get_config_reports_remaining_quota(service, clock) -> None:
    config = service.get_config()
    assert config["daily_new_words"] == 2
    assert config["remaining_new_words"] == 2

    add(service, "apple")
    add(service, "banana")
    assert service.get_config()["remaining_new_words"] == 0
    with pytest.raises(QuotaExceededError) as exc_info:
        add(service, "cherry")
    assert exc_info.value.to_dict() == {
        "success": False,
        "message": "Daily new words limit (2) reached",
        "error": {"code": 429, "type": "QUOTA_EXCEEDED"},
    }

    clock.advance(days=1)
    assert service.get_config()["remaining_new_words"] == 2


def test_learning_history(service, clock) -> None:
    add(service, "apple")
    add(service, "banana")
    service.record_review("apple", True)
    clock.advance(hours=1)
    service.record_review("banana", False)

    page = service.get_learning_history({"word_type": "wrong", "limit": "10"})

    assert page.total == 1
    assert page.data[0].entry.word == "banana"
    assert page.limit == 10
    with pytest.raises(ValidationError):
        service.get_learning_history({"limit": 1000})


def test_contribution(service, clock) -> None:
    add(service, "apple")
    service.get_or_create_progress()
    service.record_review("apple", True)
    clock.advance(days=1)

    series = service.get_contribution()

    assert len(series) == 180
    assert series[-1].date == "2024-03-11"
    assert series[-1].completed == 0
    assert (series[-2].completed, series[-2].correct) == (1, 1)


def test_update_and_delete_vocabulary(service) -> None:
    add(service, "apple")

    entry = service.update_vocabulary("apple", {"memory_method": "an apple a day"})
    assert entry.memory_method == "an apple a day"

    assert service.delete_vocabulary("apple") is True
    with pytest.raises(NotFoundError):
        service.get_vocabulary("apple")


def test_export_import(service, user: User, clock) -> None:
    add(service, "apple")
    exported = service.export_vocabularies()

    result = service.import_vocabularies(exported, user.id)

    assert result == {"success": True, "count": 1}
    assert service.export_vocabularies(user.id) == exported


def test_old_answers_do_not_count_today(service, clock, make_review, legacy_scope) -> None:
    add(service, "apple")
    make_review("apple", legacy_scope, clock() - timedelta(days=2))
    progress = service.update_progress({"current_index": 0})
    assert progress.completed == 0


def test_storage_failure_rolls_back(service, db: Session, mocker) -> None:
    """Test a failed commit surfaces as StorageError and leaves no answer behind."""
    add(service, "apple")
    mocker.patch.object(
        db, "commit", side_effect=OperationalError("COMMIT", {}, Exception("disk I/O error"))
    )

    with pytest.raises(StorageError) as exc_info:
        service.record_review("apple", True)

    assert exc_info.value.to_dict()["error"] == {"code": 500, "type": "STORAGE_ERROR"}
    mocker.stopall()
    assert service.get_word_history("apple") == []


def test_read_failures_surface_as_storage_error(service) -> None:
    """Test reads report a broken database as StorageError and count it."""
    Base.metadata.drop_all(bind=engine)
    before = REGISTRY.get_sample_value("wordreview_db_errors_total", {"error_type": "OperationalError"}) or 0

    for operation in (service.get_today_words, service.get_current_stats, service.export_vocabularies):
        with pytest.raises(StorageError) as exc_info:
            operation()
        assert exc_info.value.to_dict()["error"]["type"] == "STORAGE_ERROR"

    after = REGISTRY.get_sample_value("wordreview_db_errors_total", {"error_type": "OperationalError"})
    assert after == before + 3


def test_readded_word_starts_fresh(service, clock, make_word, make_review, legacy_scope) -> None:
    """Test answers given before a word was deleted do not carry over to the new entry."""
    make_word("apple", legacy_scope)
    for days in (10, 9, 8):
        make_review("apple", legacy_scope, clock() - timedelta(days=days))

    service.delete_vocabulary("apple")
    add(service, "apple")

    today = service.get_today_words()
    assert [(entry.word, entry.is_new, entry.review_count) for entry in today] == [("apple", True, 0)]
    assert service.get_current_stats().new_words_count == 1

    assert service.record_review("apple", True).mastered is False
    assert service.get_vocabulary("apple").mastered is False
    assert len(service.get_word_history("apple")) == 4
    assert service.get_learning_history().data[0].review_count == 1


def test_claim_legacy_data(service, user: User) -> None:
    add(service, "apple")
    service.record_review("apple", True)

    result = service.claim_legacy_data(user.id)

    assert result["vocabularies"] == 1
    assert [entry.word for entry in service.list_vocabularies()] == []
    assert [entry.word for entry in service.list_vocabularies(user.id)] == ["apple"]
    assert len(service.get_word_history("apple", user.id)) == 1
