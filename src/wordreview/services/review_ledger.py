"""Append-only log of review answers."""
import logging
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from sqlalchemy import and_, case, func
from sqlalchemy.orm import Session, aliased

from wordreview.config import LearningSettings, settings
from wordreview.exceptions import ValidationError
from wordreview.models.base import transaction
from wordreview.models.learning_models import (
    HistoryEntry,
    HistoryFilters,
    HistoryPage,
    ReviewOutcome,
    Scope,
    WordEntry,
    WordType,
)
from wordreview.models.models import ReviewRecord, Vocabulary
from wordreview.monitoring import reviews_recorded, words_mastered
from wordreview.services.interval_scheduler import IntervalScheduler
from wordreview.services.vocabulary_service import VocabularyStore, clean_word
from wordreview.timeutils import day_bounds_ms, to_millis, utc_now

logger = logging.getLogger(__name__)


def current_entry_records(query, scope: Scope):
    """Restrict a query over review records to the current entry of each word.

    Answers given before the entry was (re)created belong to a deleted
    entry and are left out, as are answers for words the scope no longer has.
    """
    entry = aliased(Vocabulary)
    return query.join(
        entry,
        and_(entry.word == ReviewRecord.word, entry.owner_key == scope.owner_key),
    ).filter(ReviewRecord.reviewed_at >= entry.created_at)


class ReviewLedger:
    """Service recording review answers and reading them back."""

    def __init__(
        self,
        db: Session,
        learning: Optional[LearningSettings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize the ledger with a database session."""
        self.db = db
        self.learning = learning or settings.learning
        self.clock = clock or utc_now
        self.scheduler = IntervalScheduler(self.learning)
        self.store = VocabularyStore(db, self.learning, self.clock)

    def _query(self, scope: Scope):
        return self.db.query(ReviewRecord).filter(scope.matches(ReviewRecord.owner_id))

    def history(self, word: str, scope: Scope) -> List[ReviewRecord]:
        """All answers for a word, oldest first."""
        return (
            self._query(scope)
            .filter(ReviewRecord.word == clean_word(word))
            .order_by(ReviewRecord.reviewed_at, ReviewRecord.id)
            .all()
        )

    def entry_history(self, vocab: Vocabulary, scope: Scope) -> List[ReviewRecord]:
        """Answers given since the entry was created, oldest first."""
        return (
            self._query(scope)
            .filter(ReviewRecord.word == vocab.word, ReviewRecord.reviewed_at >= vocab.created_at)
            .order_by(ReviewRecord.reviewed_at, ReviewRecord.id)
            .all()
        )

    def append_review(self, word: str, scope: Scope, was_correct: bool) -> ReviewOutcome:
        """Write one answer and apply mastery, without committing.

        Callers must run this inside `transaction()`.
        """
        if not isinstance(was_correct, bool):
            raise ValidationError("Review result must be true or false")

        vocab = self.store.require(word, scope)
        record = ReviewRecord(
            word=vocab.word,
            owner_id=scope.owner_id,
            reviewed_at=to_millis(self.clock()),
            was_correct=was_correct,
        )
        self.db.add(record)
        self.db.flush()

        newly_mastered = False
        if not vocab.mastered and self.scheduler.check_mastery(self.entry_history(vocab, scope)):
            vocab.mastered = True
            newly_mastered = True
            self.db.flush()

        return ReviewOutcome(word=vocab.word, result=was_correct, mastered=newly_mastered)

    def record_review(
        self,
        word: str,
        scope: Scope,
        was_correct: bool,
        on_recorded: Optional[Callable[[ReviewOutcome], None]] = None,
    ) -> ReviewOutcome:
        """Record an answer and update mastery in one transaction.

        `on_recorded` runs inside the same transaction, after the answer is
        written, so follow-up bookkeeping commits or rolls back with it.
        """
        with transaction(self.db):
            outcome = self.append_review(word, scope, was_correct)
            if on_recorded is not None:
                on_recorded(outcome)

        reviews_recorded.labels(result="correct" if was_correct else "wrong").inc()
        if outcome.mastered:
            words_mastered.inc()
            logger.info("Word %r mastered by owner %s", outcome.word, scope.owner_id)
        logger.info(
            "Recorded %s answer for %r (owner %s)",
            "correct" if was_correct else "wrong",
            outcome.word,
            scope.owner_id,
        )
        return outcome

    def counts_for_day(self, scope: Scope, day: str) -> Tuple[int, int]:
        """Return (answers, correct answers) recorded on a calendar day."""
        start, end = day_bounds_ms(day, self.learning.tzinfo)
        completed, correct = (
            self.db.query(
                func.count(ReviewRecord.id),
                func.sum(case((ReviewRecord.was_correct.is_(True), 1), else_=0)),
            )
            .filter(
                scope.matches(ReviewRecord.owner_id),
                ReviewRecord.reviewed_at >= start,
                ReviewRecord.reviewed_at < end,
            )
            .one()
        )
        return completed or 0, correct or 0

    def delete_for_day(self, scope: Scope, day: str) -> int:
        """Delete the answers of a calendar day, without committing."""
        start, end = day_bounds_ms(day, self.learning.tzinfo)
        return (
            self._query(scope)
            .filter(ReviewRecord.reviewed_at >= start, ReviewRecord.reviewed_at < end)
            .delete(synchronize_session=False)
        )

    def learned_word_count(self, scope: Scope) -> int:
        """Number of the scope's words answered at least once."""
        query = self.db.query(func.count(func.distinct(ReviewRecord.word))).select_from(ReviewRecord)
        return (
            current_entry_records(query, scope)
            .filter(scope.matches(ReviewRecord.owner_id))
            .scalar()
            or 0
        )

    def history_filtered(self, filters: HistoryFilters, scope: Scope) -> HistoryPage:
        """Reviewed words with their answer counts, most recently reviewed first."""
        records = current_entry_records(
            self.db.query(
                ReviewRecord.word.label("word"),
                func.count(ReviewRecord.id).label("review_count"),
                func.sum(case((ReviewRecord.was_correct.is_(True), 1), else_=0)).label("correct_count"),
                func.max(ReviewRecord.reviewed_at).label("last_review_date"),
            ).select_from(ReviewRecord),
            scope,
        ).filter(scope.matches(ReviewRecord.owner_id))
        if filters.start_date is not None:
            records = records.filter(ReviewRecord.reviewed_at >= filters.start_date)
        if filters.end_date is not None:
            records = records.filter(ReviewRecord.reviewed_at <= filters.end_date)
        stats = records.group_by(ReviewRecord.word).subquery()

        query = (
            self.db.query(
                Vocabulary,
                stats.c.review_count,
                stats.c.correct_count,
                stats.c.last_review_date,
            )
            .join(stats, stats.c.word == Vocabulary.word)
            .filter(scope.matches(Vocabulary.owner_id))
        )

        if filters.word_type is WordType.NEW:
            query = query.filter(stats.c.review_count == 1)
        elif filters.word_type is WordType.REVIEWING:
            query = query.filter(stats.c.review_count > 1, Vocabulary.mastered.is_(False))
        elif filters.word_type is WordType.MASTERED:
            query = query.filter(Vocabulary.mastered.is_(True))
        elif filters.word_type is WordType.WRONG:
            query = query.filter(
                stats.c.correct_count < stats.c.review_count, Vocabulary.mastered.is_(False)
            )

        total = query.count()
        rows = (
            query.order_by(stats.c.last_review_date.desc(), Vocabulary.id)
            .limit(filters.limit)
            .offset(filters.offset)
            .all()
        )
        data = [
            HistoryEntry(
                entry=WordEntry.from_vocabulary(
                    vocab, review_count=review_count, last_reviewed_at=last_review_date
                ),
                review_count=review_count,
                correct_count=correct_count or 0,
                last_review_date=last_review_date,
            )
            for vocab, review_count, correct_count, last_review_date in rows
        ]
        return HistoryPage(total=total, data=data, limit=filters.limit, offset=filters.offset)
