"""Due-ness and mastery decisions from a word's review history."""
from datetime import datetime
from typing import Optional, Sequence

from wordreview.config import LearningSettings
from wordreview.models.models import ReviewRecord
from wordreview.timeutils import days_between, to_millis


class IntervalScheduler:
    """Pure scheduling rules driven by the interval table.

    The n-th review of a word is due `review_intervals[n-1]` days after the
    previous one; counts beyond the table reuse its last value. Words never
    reviewed are new-word candidates and are never due here.
    """

    def __init__(self, learning: LearningSettings):
        """Initialize the scheduler with the learning settings."""
        self.learning = learning

    def required_interval(self, review_count: int) -> int:
        """Days that must pass after the last of `review_count` reviews."""
        if review_count < 1:
            raise ValueError("A word without reviews has no review interval")
        intervals = self.learning.review_intervals
        return intervals[min(review_count - 1, len(intervals) - 1)]

    def overdue_days(
        self, review_count: int, last_reviewed_at: Optional[int], now: datetime
    ) -> Optional[float]:
        """Days past the required interval; negative when not yet due, None when never reviewed."""
        if review_count < 1 or last_reviewed_at is None:
            return None
        elapsed = days_between(last_reviewed_at, to_millis(now))
        return elapsed - self.required_interval(review_count)

    def is_due_at(self, review_count: int, last_reviewed_at: Optional[int], now: datetime) -> bool:
        overdue = self.overdue_days(review_count, last_reviewed_at, now)
        return overdue is not None and overdue >= 0

    def is_due(self, history: Sequence[ReviewRecord], now: datetime) -> bool:
        """Whether a previously reviewed word should be reviewed again at `now`."""
        if not history:
            return False
        last_reviewed_at = max(record.reviewed_at for record in history)
        return self.is_due_at(len(history), last_reviewed_at, now)

    @staticmethod
    def consecutive_correct(history: Sequence[ReviewRecord]) -> int:
        """Length of the run of correct answers ending with the latest review."""
        ordered = sorted(
            history,
            key=lambda record: (record.reviewed_at, record.id or 0),
            reverse=True,
        )
        streak = 0
        for record in ordered:
            if not record.was_correct:
                break
            streak += 1
        return streak

    def check_mastery(self, history: Sequence[ReviewRecord]) -> bool:
        return self.consecutive_correct(history) >= self.learning.mastery_threshold
