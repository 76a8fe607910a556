from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi.responses import Response

# Tag Store
tags_submitted = Counter(
    "tagtrust_tags_submitted_total",
    "Tags accepted by the Tag Store",
    ["status"],  # status: pending | approved
)

tags_withdrawn = Counter(
    "tagtrust_tags_withdrawn_total",
    "Pending tags withdrawn by their submitter",
)

# Vote Ledger
votes_recorded = Counter(
    "tagtrust_votes_recorded_total",
    "Vote writes that changed a tag's counts",
    ["direction", "kind"],  # kind: new | changed
)

# Moderation
moderation_decisions = Counter(
    "tagtrust_moderation_decisions_total",
    "Tag moderation decisions",
    ["decision", "source"],  # decision: approved | rejected; source: admin | auto
)

moderation_conflicts = Counter(
    "tagtrust_moderation_conflicts_total",
    "Moderation attempts that lost a race or hit an already decided tag",
)

# Reputation Ledger
trust_level_transitions = Counter(
    "tagtrust_trust_level_transitions_total",
    "Trust level changes after a reputation recompute",
    ["from_level", "to_level"],
)

reputation_recompute_retries = Counter(
    "tagtrust_reputation_recompute_retries_total",
    "Reputation recompute attempts retried after contention",
)

reputation_recompute_failures = Counter(
    "tagtrust_reputation_recompute_failures_total",
    "Reputation recomputes that exhausted their retries",
)

reconciliation_drift = Counter(
    "tagtrust_reconciliation_drift_total",
    "Reputation records whose live projection differed from event replay",
)

# HTTP request metrics (from middleware)
http_requests = Counter(
    "tagtrust_http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status_code"],
)

http_request_duration = Histogram(
    "tagtrust_http_request_duration_seconds",
    "HTTP request duration",
    ["method", "path"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)


async def metrics_endpoint():
    """FastAPI endpoint handler that returns Prometheus metrics."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
