"""Monitoring configuration for the practice engine."""
from prometheus_client import Counter, Histogram, start_http_server

# Ledger metrics
attempts_recorded = Counter(
    "sounddrill_attempts_recorded_total",
    "Total number of attempts recorded in the ledger",
    ["kind", "outcome"],
)

sessions_recorded = Counter(
    "sounddrill_sessions_recorded_total",
    "Total number of practice sessions recorded",
    ["mode"],
)

# Practice metrics
practice_selections = Counter(
    "sounddrill_practice_selections_total",
    "Total number of practice items selected",
    ["focus_area"],
)

feedback_composed = Counter(
    "sounddrill_feedback_composed_total",
    "Total number of feedback results composed",
    ["type"],
)

round_duration = Histogram(
    "sounddrill_round_duration_seconds",
    "Time from stimulus load to evaluated answer",
    ["mode"],
    buckets=[2, 5, 10, 30, 60, 120],
)

# Storage metrics
storage_operations = Counter(
    "sounddrill_storage_operations_total",
    "Total number of ledger storage operations",
    ["operation_type"],
)

storage_errors = Counter(
    "sounddrill_storage_errors_total",
    "Total number of ledger storage errors",
    ["error_type"],
)

# Speech metrics
speech_requests = Counter(
    "sounddrill_speech_requests_total",
    "Total number of speech presentation requests",
    ["presenter"],
)

speech_errors = Counter(
    "sounddrill_speech_errors_total",
    "Total number of speech presentation errors",
    ["error_type"],
)


def start_monitoring(port: int = 9090) -> None:
    """Start the Prometheus metrics server."""
    start_http_server(port)
