from __future__ import annotations

WEBHOOK_PATH = "/v1/webhook"
ATTACHMENTS_PATH = "/v1/attachments"
HEALTH_PATH = "/v1/health"
AUDIT_PATH = "/v1/audit"
METRICS_PATH = "/metrics"

# Paths that read a request body; size limit and rate limit apply here.
BODY_LIMITED_PATHS = frozenset({WEBHOOK_PATH, ATTACHMENTS_PATH})

REQUEST_ID_HEADER = "X-Request-Id"
