"""Planning service choosing today's words and tracking daily progress."""
import logging
from datetime import datetime
from typing import Any, Callable, List, Mapping, Optional

from sqlalchemy import func, insert
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from wordreview.config import LearningSettings, settings
from wordreview.exceptions import ValidationError
from wordreview.models.base import transaction
from wordreview.models.learning_models import Scope, WordEntry
from wordreview.models.models import ProgressSnapshot, ReviewRecord, Vocabulary
from wordreview.monitoring import progress_resets, today_words_duration
from wordreview.services.interval_scheduler import IntervalScheduler
from wordreview.services.review_ledger import ReviewLedger, current_entry_records
from wordreview.timeutils import local_date, utc_now

logger = logging.getLogger(__name__)


class SessionPlanner:
    """Service for building the daily word list and its progress snapshot."""

    def __init__(
        self,
        db: Session,
        learning: Optional[LearningSettings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize the planner with a database session."""
        self.db = db
        self.learning = learning or settings.learning
        self.clock = clock or utc_now
        self.scheduler = IntervalScheduler(self.learning)
        self.ledger = ReviewLedger(db, self.learning, self.clock)

    def today(self) -> str:
        """Today's calendar day in the learning timezone."""
        return local_date(self.clock(), self.learning.tzinfo)

    def get_today_words(self, scope: Scope) -> List[WordEntry]:
        """New words first (oldest first), then due words (most overdue first)."""
        with today_words_duration.time():
            now = self.clock()
            records = self.db.query(
                ReviewRecord.word.label("word"),
                func.count(ReviewRecord.id).label("review_count"),
                func.max(ReviewRecord.reviewed_at).label("last_reviewed_at"),
            ).select_from(ReviewRecord)
            stats = (
                current_entry_records(records, scope)
                .filter(scope.matches(ReviewRecord.owner_id))
                .group_by(ReviewRecord.word)
                .subquery()
            )
            candidates = (
                self.db.query(Vocabulary, stats.c.review_count, stats.c.last_reviewed_at)
                .outerjoin(stats, stats.c.word == Vocabulary.word)
                .filter(scope.matches(Vocabulary.owner_id), Vocabulary.mastered.is_(False))
            )

            new_words = []
            if self.learning.daily_new_words > 0:
                new_words = (
                    candidates.filter(stats.c.word.is_(None))
                    .order_by(Vocabulary.created_at, Vocabulary.id)
                    .limit(self.learning.daily_new_words)
                    .all()
                )

            due = []
            for vocab, review_count, last_reviewed_at in candidates.filter(stats.c.word.isnot(None)).all():
                overdue = self.scheduler.overdue_days(review_count, last_reviewed_at, now)
                if overdue is not None and overdue >= 0:
                    due.append((overdue, review_count, last_reviewed_at, vocab))
            # Most overdue first, then the least reviewed
            due.sort(key=lambda item: (-item[0], item[1], item[3].created_at, item[3].id))
            due = due[: self.learning.review_slots]

            words = [WordEntry.from_vocabulary(vocab, is_new=True) for vocab, _, _ in new_words]
            words.extend(
                WordEntry.from_vocabulary(vocab, review_count=count, last_reviewed_at=last)
                for _, count, last, vocab in due
            )

        logger.debug(
            "Today's words for owner %s: %d new, %d due", scope.owner_id, len(new_words), len(due)
        )
        return words

    def _get_snapshot(self, scope: Scope, day: str) -> Optional[ProgressSnapshot]:
        return (
            self.db.query(ProgressSnapshot)
            .filter(ProgressSnapshot.date == day, ProgressSnapshot.owner_key == scope.owner_key)
            .first()
        )

    def _insert_snapshot(self, values: Mapping[str, Any]) -> None:
        """Insert a snapshot unless one already exists for its (date, owner)."""
        dialect = self.db.get_bind().dialect.name
        if dialect in ("sqlite", "postgresql"):
            dialect_insert = sqlite_insert if dialect == "sqlite" else postgresql_insert
            stmt = dialect_insert(ProgressSnapshot).values(**values).on_conflict_do_nothing(
                index_elements=["date", "owner_key"]
            )
            with transaction(self.db):
                self.db.execute(stmt)
            return

        try:
            self.db.execute(insert(ProgressSnapshot).values(**values))
            self.db.commit()
        except IntegrityError:
            # Another request created the row first
            self.db.rollback()

    def get_or_create_progress(self, scope: Scope, day: Optional[str] = None) -> ProgressSnapshot:
        """Fetch the day's snapshot, creating it from today's word list on first access."""
        day = day or self.today()
        snapshot = self._get_snapshot(scope, day)
        if snapshot is not None:
            return snapshot

        total_words = len(self.get_today_words(scope))
        self._insert_snapshot(
            {
                "date": day,
                "owner_id": scope.owner_id,
                "owner_key": scope.owner_key,
                "total_words": total_words,
                "current_index": 0,
                "completed": 0,
                "correct": 0,
            }
        )
        logger.info("Progress for %s created for owner %s (%d words)", day, scope.owner_id, total_words)
        return self._get_snapshot(scope, day)

    def refresh_counters(self, scope: Scope, day: Optional[str] = None) -> Optional[ProgressSnapshot]:
        """Recount completed/correct of an existing snapshot from the ledger, without committing."""
        day = day or self.today()
        snapshot = self._get_snapshot(scope, day)
        if snapshot is None:
            return None
        snapshot.completed, snapshot.correct = self.ledger.counts_for_day(scope, day)
        self.db.flush()
        return snapshot

    def update_progress(
        self, scope: Scope, patch: Mapping[str, Any], day: Optional[str] = None
    ) -> ProgressSnapshot:
        """Move the position in today's list.

        Only `current_index` is taken from the caller. `completed` and `correct`
        are recounted from the day's answers in the ledger.
        """
        current_index = patch.get("current_index")
        if isinstance(current_index, bool) or not isinstance(current_index, int):
            raise ValidationError("current_index must be an integer")
        if current_index < 0:
            raise ValidationError("current_index cannot be negative")

        day = day or self.today()
        snapshot = self.get_or_create_progress(scope, day)
        with transaction(self.db):
            snapshot.current_index = min(current_index, snapshot.total_words)
            snapshot.completed, snapshot.correct = self.ledger.counts_for_day(scope, day)

        client_counts = (patch.get("completed"), patch.get("correct"))
        if client_counts != (None, None) and client_counts != (snapshot.completed, snapshot.correct):
            logger.debug(
                "Ignoring client counters %s for owner %s, ledger has %s",
                client_counts,
                scope.owner_id,
                (snapshot.completed, snapshot.correct),
            )
        return snapshot

    def reset_today(self, scope: Scope, day: Optional[str] = None) -> int:
        """Delete the day's answers and progress snapshot in one transaction."""
        day = day or self.today()
        with transaction(self.db):
            deleted = self.ledger.delete_for_day(scope, day)
            (
                self.db.query(ProgressSnapshot)
                .filter(ProgressSnapshot.date == day, ProgressSnapshot.owner_key == scope.owner_key)
                .delete(synchronize_session=False)
            )
        # Drop stale identity map entries for the deleted rows
        self.db.expire_all()

        progress_resets.inc()
        logger.info("Reset %s for owner %s: %d answers deleted", day, scope.owner_id, deleted)
        return deleted
