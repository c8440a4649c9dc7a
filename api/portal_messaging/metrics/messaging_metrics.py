"""Prometheus metrics for message aggregation.

Provides observability into:
- Aggregation runs by trigger and outcome
- Per-source fetch failures (inbox / sent / directory)
- Identity lookups by resolution source
- Push events, sends and mark-as-read failures
"""

from prometheus_client import Counter, Histogram

# ============================================
# Aggregation runs
# ============================================

aggregation_runs_total = Counter(
    "messaging_aggregation_runs_total",
    "Conversation aggregation runs",
    ["trigger", "outcome"],  # trigger: initial, refresh, push, send
)

aggregation_duration_seconds = Histogram(
    "messaging_aggregation_duration_seconds",
    "Duration of a full fetch/resolve/group run",
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

source_fetch_failures_total = Counter(
    "messaging_source_fetch_failures_total",
    "Fetches that degraded to empty data",
    ["source"],  # inbox, sent, employers, candidates
)

# ============================================
# Identity resolution
# ============================================

identity_lookups_total = Counter(
    "messaging_identity_lookups_total",
    "Identity resolutions by the step that answered them",
    ["source"],  # invalid, cache, employers, candidates, employer_fetch, unknown
)

job_position_lookups_total = Counter(
    "messaging_job_position_lookups_total",
    "Job listing lookups issued to the employment service",
    ["outcome"],  # found, missing, error
)

# ============================================
# User actions and push channel
# ============================================

push_events_total = Counter(
    "messaging_push_events_total",
    "New-message events received from the push channel",
)

messages_sent_total = Counter(
    "messaging_messages_sent_total",
    "Outgoing messages by outcome",
    ["outcome"],  # success, failure
)

mark_read_failures_total = Counter(
    "messaging_mark_read_failures_total",
    "Mark-as-read calls that failed and were left to the next refresh",
)
