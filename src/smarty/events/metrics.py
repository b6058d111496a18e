"""Prometheus metrics for pipeline observability.

Metrics Defined:
- smarty_change_requests_total: Counter of finished runs by outcome
- smarty_stage_failures_total: Counter of fatal failures by stage
- smarty_run_duration_seconds: Histogram of successful run duration
- smarty_gate_rejections_total: Counter of requests refused by the gate

The MetricsEventEmitter updates the pipeline metrics from pipeline
events; the application records gate rejections directly. Each
application owns its own CollectorRegistry, exposed at ``/metrics``.
"""

import logging
from typing import Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

from src.smarty.events.emitter import EventEmitter
from src.smarty.events.models import EventType, PipelineEvent

logger = logging.getLogger(__name__)


# Covers a quick edit up to a long agent session
DEFAULT_DURATION_BUCKETS = (
    10.0,
    30.0,
    60.0,
    120.0,
    300.0,
    600.0,
    1200.0,
    1800.0,
    3600.0,
)


class PipelineMetrics:
    """Container for all service Prometheus metrics.

    Attributes:
        registry: The Prometheus registry for these metrics.

    Example:
        >>> metrics = PipelineMetrics()
        >>> metrics.record_outcome("acme/web", "success")
        >>> metrics.record_duration("acme/web", 45.5)
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry if registry is not None else CollectorRegistry()

        self.change_requests_total = Counter(
            "smarty_change_requests_total",
            "Total number of change requests that reached the pipeline",
            labelnames=["repository", "outcome"],
            registry=self.registry,
        )

        self.stage_failures_total = Counter(
            "smarty_stage_failures_total",
            "Total number of fatal pipeline failures by stage",
            labelnames=["repository", "stage"],
            registry=self.registry,
        )

        self.run_duration_seconds = Histogram(
            "smarty_run_duration_seconds",
            "Time from request acceptance to pull request creation",
            labelnames=["repository"],
            buckets=DEFAULT_DURATION_BUCKETS,
            registry=self.registry,
        )

        self.gate_rejections_total = Counter(
            "smarty_gate_rejections_total",
            "Requests refused before reaching the pipeline",
            labelnames=["reason"],
            registry=self.registry,
        )

    def record_outcome(self, repository: str, outcome: str) -> None:
        """Count a finished run (success, rejected or failed)."""
        self.change_requests_total.labels(
            repository=repository, outcome=outcome
        ).inc()

    def record_stage_failure(self, repository: str, stage: str) -> None:
        self.stage_failures_total.labels(repository=repository, stage=stage).inc()

    def record_duration(self, repository: str, duration_seconds: float) -> None:
        self.run_duration_seconds.labels(repository=repository).observe(
            duration_seconds
        )

    def record_gate_rejection(self, reason: str) -> None:
        """Count a request refused by the gate (unauthorized, rate_limited, ...)."""
        self.gate_rejections_total.labels(reason=reason).inc()

    def generate_output(self) -> bytes:
        """Prometheus text exposition of this registry."""
        return generate_latest(self.registry)


class MetricsEventEmitter(EventEmitter):
    """Event emitter that updates Prometheus metrics.

    - ERROR: counts a failed run and the failing stage
    - REJECTED: counts a rejected run
    - COMPLETION: counts a successful run and records its duration
    - STATE_TRANSITION: ignored
    """

    def __init__(self, metrics: PipelineMetrics):
        self._metrics = metrics

    @property
    def metrics(self) -> PipelineMetrics:
        return self._metrics

    async def emit(self, event: PipelineEvent) -> None:
        try:
            if event.event_type == EventType.ERROR:
                self._metrics.record_outcome(event.repository, "failed")
                self._metrics.record_stage_failure(
                    event.repository, event.details.get("stage", "unknown")
                )
            elif event.event_type == EventType.REJECTED:
                self._metrics.record_outcome(event.repository, "rejected")
            elif event.event_type == EventType.COMPLETION:
                self._metrics.record_outcome(event.repository, "success")
                duration = event.details.get("duration_seconds")
                if duration is not None:
                    self._metrics.record_duration(event.repository, float(duration))
        except Exception as e:
            logger.error(
                "Failed to update metrics for event %s: %s",
                event.event_type.value,
                str(e),
                extra={"run_id": event.run_id},
            )
