"""Prometheus metrics for transaction lifecycle, OTP outcomes, chat and provider performance"""

from prometheus_client import Counter, Histogram

# Transaction metrics
transaction_counter = Counter(
    "finance_notes_transactions_total",
    "Transaction lifecycle events",
    ["event"],  # created | closed_direct | closed_otp
)

# OTP metrics
otp_generate_counter = Counter(
    "finance_notes_otp_generate_total",
    "One-time codes requested",
    ["provider", "outcome"],
)

otp_verify_counter = Counter(
    "finance_notes_otp_verify_total",
    "One-time code verifications",
    ["provider", "outcome"],
)

provider_latency_histogram = Histogram(
    "verification_provider_latency_seconds",
    "Remote verification service response time",
    ["operation"],  # generate | verify
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

provider_failure_counter = Counter(
    "verification_provider_failures_total",
    "Remote verification calls that failed or timed out",
    ["operation"],
)

# Chat metrics
chat_message_counter = Counter(
    "finance_notes_chat_messages_total",
    "Chat messages sent",
)

notification_failure_counter = Counter(
    "push_notification_failures_total",
    "Push notifications that could not be delivered",
    ["error"],
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_otp_outcome(operation: str, provider: str, outcome: str) -> None:
    """Record OTP generate/verify outcome; outcome is 'success' or a failure reason"""
    counter = otp_generate_counter if operation == "generate" else otp_verify_counter
    counter.labels(provider=provider, outcome=outcome).inc()
