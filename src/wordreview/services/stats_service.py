"""Statistics computed from the ledger and the daily snapshots."""
import logging
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from wordreview.config import LearningSettings, settings
from wordreview.models.learning_models import DailyStat, Scope, Stats
from wordreview.models.models import ProgressSnapshot, ReviewRecord, Vocabulary
from wordreview.services.review_ledger import ReviewLedger, current_entry_records
from wordreview.timeutils import local_date, trailing_days, utc_now

logger = logging.getLogger(__name__)


class StatsAggregator:
    """Service computing mastery counts and the daily contribution series."""

    def __init__(
        self,
        db: Session,
        learning: Optional[LearningSettings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize the aggregator with a database session."""
        self.db = db
        self.learning = learning or settings.learning
        self.clock = clock or utc_now
        self.ledger = ReviewLedger(db, self.learning, self.clock)

    def current_stats(self, scope: Scope) -> Stats:
        """Real time totals.

        `review_words_count` is a coarse estimate of words in review, not a
        count of words due today.
        """
        vocabularies = self.db.query(Vocabulary).filter(scope.matches(Vocabulary.owner_id))
        total_words = vocabularies.count()
        mastered = vocabularies.filter(Vocabulary.mastered.is_(True)).count()

        reviewed_words = (
            current_entry_records(select(ReviewRecord.word), scope)
            .where(scope.matches(ReviewRecord.owner_id))
            .distinct()
        )
        new_words = vocabularies.filter(
            Vocabulary.mastered.is_(False), Vocabulary.word.notin_(reviewed_words)
        ).count()

        learned = self.ledger.learned_word_count(scope)
        review_words = max(0, learned - (mastered + self.learning.daily_new_words))

        return Stats(
            total_words=total_words,
            new_words_count=new_words,
            review_words_count=review_words,
            mastered_words_count=mastered,
        )

    def contribution(self, scope: Scope, days: Optional[int] = None) -> List[DailyStat]:
        """One entry per day of the trailing window, zeros where nothing was studied."""
        days = days or self.learning.contribution_days
        window = trailing_days(local_date(self.clock(), self.learning.tzinfo), days)

        snapshots = (
            self.db.query(ProgressSnapshot)
            .filter(
                ProgressSnapshot.owner_key == scope.owner_key,
                ProgressSnapshot.date >= window[0],
                ProgressSnapshot.date <= window[-1],
            )
            .all()
        )
        by_date = {snapshot.date: snapshot for snapshot in snapshots}

        series = []
        for day in window:
            snapshot = by_date.get(day)
            if snapshot is None:
                series.append(DailyStat(date=day))
            else:
                series.append(
                    DailyStat(
                        date=day,
                        total_words=snapshot.total_words,
                        completed=snapshot.completed,
                        correct=snapshot.correct,
                    )
                )
        return series
