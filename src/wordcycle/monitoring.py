"""Monitoring configuration for the scheduling engine."""
from prometheus_client import Counter, Histogram

# Scheduling metrics
answers_processed = Counter(
    "wordcycle_answers_processed_total",
    "Total number of answers run through the scheduling engine",
    ["mode", "result"],
)

cycles_completed = Counter(
    "wordcycle_cycles_completed_total",
    "Total number of review cycles closed with all modes answered correctly",
    ["algorithm"],
)

box_changes = Counter(
    "wordcycle_box_changes_total",
    "Total number of Leitner box promotions and demotions",
    ["direction"],
)

validation_errors = Counter(
    "wordcycle_validation_errors_total",
    "Total number of rejected progress updates",
    ["reason"],
)

# Session metrics
sessions_completed = Counter(
    "wordcycle_sessions_completed_total",
    "Total number of practice sessions recorded",
    ["language"],
)

words_requeued = Counter(
    "wordcycle_words_requeued_total",
    "Total number of missed words reinserted into a session queue",
)

words_deferred = Counter(
    "wordcycle_words_deferred_total",
    "Total number of words deferred after hitting the session retry cap",
)

session_duration = Histogram(
    "wordcycle_session_duration_seconds",
    "Duration of practice sessions in seconds",
    buckets=[60, 300, 600, 1800, 3600],  # 1min, 5min, 10min, 30min, 1hour
)

# Store metrics
store_errors = Counter(
    "wordcycle_store_errors_total",
    "Total number of progress store failures",
    ["operation"],
)
