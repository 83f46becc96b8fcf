"""Monitoring configuration for the review service."""
from prometheus_client import Counter, Histogram, start_http_server

# Learning metrics
reviews_recorded = Counter(
    "wordreview_reviews_recorded_total",
    "Total number of review answers recorded",
    ["result"],
)

words_mastered = Counter(
    "wordreview_words_mastered_total",
    "Total number of words that reached mastery",
)

quizzes_generated = Counter(
    "wordreview_quizzes_generated_total",
    "Total number of multiple choice quizzes generated",
)

progress_resets = Counter(
    "wordreview_progress_resets_total",
    "Total number of daily progress resets",
)

# Word management metrics
words_added = Counter(
    "wordreview_words_added_total",
    "Total number of words added to vocabularies",
)

# Performance metrics
today_words_duration = Histogram(
    "wordreview_today_words_duration_seconds",
    "Duration of building today's word list in seconds",
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0],
)

# Database metrics
db_errors = Counter(
    "wordreview_db_errors_total",
    "Total number of database errors",
    ["error_type"],
)


def start_monitoring(port: int = 9090) -> None:
    """Start the Prometheus metrics server."""
    start_http_server(port)
