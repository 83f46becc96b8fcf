"""Entry points of the review core for the HTTP and CLI layers.

Every operation takes an optional `owner_id`. With legacy mode on, `None`
selects the shared anonymous scope; with legacy mode off it is rejected.
Database failures of any operation surface as StorageError.
"""
import logging
import random
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

from sqlalchemy.orm import Session

from wordreview.config import LearningSettings, settings
from wordreview.models.base import storage_guarded
from wordreview.models.learning_models import (
    DailyStat,
    HistoryFilters,
    HistoryPage,
    Quiz,
    ReviewOutcome,
    Scope,
    Stats,
    WordEntry,
)
from wordreview.models.models import ProgressSnapshot, ReviewRecord
from wordreview.services.quiz_generator import QuizGenerator
from wordreview.services.review_ledger import ReviewLedger
from wordreview.services.session_planner import SessionPlanner
from wordreview.services.stats_service import StatsAggregator
from wordreview.services.vocabulary_service import VocabularyStore
from wordreview.timeutils import utc_now

logger = logging.getLogger(__name__)


class ReviewService:
    """Facade composing the vocabulary, ledger, planner, quiz and stats services."""

    def __init__(
        self,
        db: Session,
        learning: Optional[LearningSettings] = None,
        legacy_mode: Optional[bool] = None,
        clock: Optional[Callable[[], datetime]] = None,
        rng: Optional[random.Random] = None,
    ):
        """Initialize the service with a database session."""
        self.db = db
        self.learning = learning or settings.learning
        self.legacy_mode = settings.auth.legacy_mode if legacy_mode is None else legacy_mode
        self.clock = clock or utc_now
        self.vocabularies = VocabularyStore(db, self.learning, self.clock)
        self.ledger = ReviewLedger(db, self.learning, self.clock)
        self.planner = SessionPlanner(db, self.learning, self.clock)
        self.quizzes = QuizGenerator(db, rng)
        self.stats = StatsAggregator(db, self.learning, self.clock)

    def scope(self, owner_id: Optional[int] = None) -> Scope:
        return Scope.for_owner(owner_id, self.legacy_mode)

    # Review session

    @storage_guarded
    def get_today_words(self, owner_id: Optional[int] = None) -> List[WordEntry]:
        return self.planner.get_today_words(self.scope(owner_id))

    @storage_guarded
    def get_or_create_progress(self, owner_id: Optional[int] = None) -> ProgressSnapshot:
        return self.planner.get_or_create_progress(self.scope(owner_id))

    @storage_guarded
    def update_progress(
        self, patch: Mapping[str, Any], owner_id: Optional[int] = None
    ) -> ProgressSnapshot:
        return self.planner.update_progress(self.scope(owner_id), patch)

    @storage_guarded
    def reset_today(self, owner_id: Optional[int] = None) -> ProgressSnapshot:
        """Clear today's answers and return the rebuilt progress snapshot."""
        scope = self.scope(owner_id)
        self.planner.reset_today(scope)
        return self.planner.get_or_create_progress(scope)

    @storage_guarded
    def generate_quiz(self, word: str, owner_id: Optional[int] = None) -> Quiz:
        return self.quizzes.generate(word, self.scope(owner_id))

    @storage_guarded
    def record_review(
        self, word: str, was_correct: bool, owner_id: Optional[int] = None
    ) -> ReviewOutcome:
        """Record an answer; today's snapshot counters follow in the same transaction."""
        scope = self.scope(owner_id)
        return self.ledger.record_review(
            word,
            scope,
            was_correct,
            on_recorded=lambda outcome: self.planner.refresh_counters(scope),
        )

    @storage_guarded
    def get_learning_history(
        self, filters: Optional[Mapping[str, Any]] = None, owner_id: Optional[int] = None
    ) -> HistoryPage:
        return self.ledger.history_filtered(HistoryFilters.from_params(filters), self.scope(owner_id))

    @storage_guarded
    def get_word_history(self, word: str, owner_id: Optional[int] = None) -> List[ReviewRecord]:
        return self.ledger.history(word, self.scope(owner_id))

    @storage_guarded
    def get_contribution(self, owner_id: Optional[int] = None) -> List[DailyStat]:
        return self.stats.contribution(self.scope(owner_id))

    @storage_guarded
    def get_current_stats(self, owner_id: Optional[int] = None) -> Stats:
        return self.stats.current_stats(self.scope(owner_id))

    @storage_guarded
    def get_config(self, owner_id: Optional[int] = None) -> Dict[str, Any]:
        """Learning settings plus the number of words that may still be added today."""
        config = self.learning.to_dict()
        config["remaining_new_words"] = self.vocabularies.remaining_new_words(self.scope(owner_id))
        return config

    # Vocabulary

    @storage_guarded
    def add_vocabulary(self, data: Mapping[str, Any], owner_id: Optional[int] = None) -> Dict[str, Any]:
        return self.vocabularies.add(data, self.scope(owner_id))

    @storage_guarded
    def get_vocabulary(self, word: str, owner_id: Optional[int] = None) -> WordEntry:
        return WordEntry.from_vocabulary(self.vocabularies.require(word, self.scope(owner_id)))

    @storage_guarded
    def list_vocabularies(self, owner_id: Optional[int] = None) -> List[WordEntry]:
        return [
            WordEntry.from_vocabulary(vocab)
            for vocab in self.vocabularies.list_vocabularies(self.scope(owner_id))
        ]

    @storage_guarded
    def update_vocabulary(
        self, word: str, changes: Mapping[str, Any], owner_id: Optional[int] = None
    ) -> WordEntry:
        vocab = self.vocabularies.update(word, changes, self.scope(owner_id))
        return WordEntry.from_vocabulary(vocab)

    @storage_guarded
    def delete_vocabulary(self, word: str, owner_id: Optional[int] = None) -> bool:
        return self.vocabularies.delete(word, self.scope(owner_id))

    @storage_guarded
    def import_vocabularies(self, vocabularies: Any, owner_id: Optional[int] = None) -> Dict[str, Any]:
        return self.vocabularies.import_vocabularies(vocabularies, self.scope(owner_id))

    @storage_guarded
    def export_vocabularies(self, owner_id: Optional[int] = None) -> Dict[str, Dict[str, Any]]:
        return self.vocabularies.export_vocabularies(self.scope(owner_id))

    @storage_guarded
    def get_vocab_stats(self, owner_id: Optional[int] = None) -> Dict[str, int]:
        return self.vocabularies.vocab_stats(self.scope(owner_id))

    @storage_guarded
    def claim_legacy_data(self, owner_id: int) -> Dict[str, int]:
        """Hand the shared anonymous scope's words, answers and progress to a user."""
        return self.vocabularies.claim_legacy_data(owner_id)
