"""Custom business metrics for the inbox pipeline.

Metrics are created lazily via ``opentelemetry.metrics.get_meter()`` which
resolves against the global ``MeterProvider``. If no provider is configured
the OTel API returns no-op instruments.

Usage in services::

    from core.metrics import INBOX_CAPTURE_COUNTER

    INBOX_CAPTURE_COUNTER.add(1, {"queued": True})
"""

from __future__ import annotations

from opentelemetry import metrics

_meter = metrics.get_meter("inbox_api")

# ── Capture metrics ───────────────────────────────────────────────────

INBOX_CAPTURE_COUNTER = _meter.create_counter(
    name="inbox.capture",
    description="Inbox items captured",
    unit="{item}",
)

AI_UNAVAILABLE_COUNTER = _meter.create_counter(
    name="inbox.ai_unavailable",
    description="Captures accepted while the AI provider was unavailable",
    unit="{item}",
)

# ── Approval metrics ──────────────────────────────────────────────────

APPROVAL_ENTITIES_COUNTER = _meter.create_counter(
    name="inbox.approval.entities",
    description="Tasks and projects created or skipped during approval",
    unit="{entity}",
)

# ── Background processing metrics ─────────────────────────────────────

PROCESSING_DURATION = _meter.create_histogram(
    name="inbox.processing.duration",
    description="Time taken by intelligent processing of one capture",
    unit="s",
)

PROCESSING_FAILURES_COUNTER = _meter.create_counter(
    name="inbox.processing.failures",
    description="Intelligent processing attempts that failed",
    unit="{attempt}",
)
