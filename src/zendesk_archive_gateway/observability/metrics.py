from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Histogram,
    generate_latest,
)

FLOW_WEBHOOK = "webhook"
FLOW_ATTACHMENTS = "attachments"

processed_total = Counter(
    "gateway_processed_total",
    "Requests that completed successfully.",
    labelnames=("flow", "archive_type"),
)
rejected_total = Counter(
    "gateway_rejected_total",
    "Requests rejected before any upstream call (auth, validation, tenant).",
    labelnames=("flow", "reason"),
)
failed_total = Counter(
    "gateway_failed_total",
    "Requests that failed on Zendesk or the archive backend.",
    labelnames=("flow",),
)
attachments_forwarded_total = Counter(
    "gateway_attachments_forwarded_total",
    "Attachments uploaded to an archive backend.",
    labelnames=("archive_type",),
)
audit_write_failed_total = Counter(
    "gateway_audit_write_failed_total",
    "Audit records that could not be persisted.",
)

render_seconds = Histogram(
    "gateway_render_seconds",
    "Seconds spent rendering the PDF.",
)
total_seconds = Histogram(
    "gateway_total_seconds",
    "Seconds spent on a request end-to-end.",
    labelnames=("flow",),
)


def render_latest(*, registry=REGISTRY) -> tuple[bytes, str]:
    return generate_latest(registry), CONTENT_TYPE_LATEST
