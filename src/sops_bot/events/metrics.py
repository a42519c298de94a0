"""Prometheus metrics for pipeline observability.

Metrics Defined:
- sops_bot_events_total: Counter of emitted pipeline events by type
- sops_bot_provisioning_total: Counter of finished runs by outcome
- sops_bot_failures_total: Counter of failed runs by stage
- sops_bot_provisioning_duration_seconds: Histogram of run duration

The MetricsEventEmitter updates these from pipeline events. Metrics are
exposed at the ``/metrics`` endpoint in Prometheus text format.

Source:
- src/sops_bot/events/models.py (PipelineEvent, EventType)
"""

import logging
from typing import Optional

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

from src.sops_bot.events.emitter import EventEmitter
from src.sops_bot.events.models import EventType, PipelineEvent


logger = logging.getLogger(__name__)


# RSA 4096 generation dominates; it can take from seconds to minutes
# depending on available entropy.
DEFAULT_DURATION_BUCKETS = (
    0.5,
    1.0,
    5.0,
    10.0,
    30.0,
    60.0,
    120.0,
    300.0,
)


class BotMetrics:
    """Container for the bot's Prometheus metrics.

    Supports custom registries so tests do not collide on the default
    registry.

    Attributes:
        registry: The Prometheus registry for these metrics.
        events_total: Counter labelled by event_type.
        provisioning_total: Counter labelled by outcome.
        failures_total: Counter labelled by stage.
        provisioning_duration_seconds: Histogram of run duration.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or REGISTRY

        self.events_total = Counter(
            "sops_bot_events_total",
            "Total number of pipeline events emitted",
            labelnames=["event_type"],
            registry=self.registry,
        )

        self.provisioning_total = Counter(
            "sops_bot_provisioning_total",
            "Total number of finished provisioning runs",
            labelnames=["outcome"],
            registry=self.registry,
        )

        self.failures_total = Counter(
            "sops_bot_failures_total",
            "Total number of provisioning runs that failed",
            labelnames=["stage"],
            registry=self.registry,
        )

        self.provisioning_duration_seconds = Histogram(
            "sops_bot_provisioning_duration_seconds",
            "Time spent in provisioning runs in seconds",
            buckets=DEFAULT_DURATION_BUCKETS,
            registry=self.registry,
        )

    def record_event(self, event_type: str) -> None:
        self.events_total.labels(event_type=event_type).inc()

    def record_outcome(self, outcome: str) -> None:
        self.provisioning_total.labels(outcome=outcome).inc()

    def record_failure(self, stage: str) -> None:
        self.failures_total.labels(stage=stage).inc()

    def record_duration(self, duration_seconds: float) -> None:
        self.provisioning_duration_seconds.observe(duration_seconds)


_default_metrics: Optional[BotMetrics] = None


def get_metrics(registry: Optional[CollectorRegistry] = None) -> BotMetrics:
    """Get the global metrics instance, or a new one for ``registry``.

    Args:
        registry: Optional Prometheus registry. If None, returns the
                  global metrics instance for the default registry.
    """
    global _default_metrics

    if registry is not None:
        return BotMetrics(registry=registry)

    if _default_metrics is None:
        _default_metrics = BotMetrics()

    return _default_metrics


def generate_metrics_output(registry: Optional[CollectorRegistry] = None) -> bytes:
    """Render metrics in Prometheus text format for the /metrics endpoint."""
    return generate_latest(registry or REGISTRY)


class MetricsEventEmitter(EventEmitter):
    """Event emitter that updates Prometheus metrics.

    - Every event increments ``events_total``.
    - NOT_APPLICABLE / PROVISIONED: record the outcome and duration.
    - ERROR: record a failure at ``details["stage"]``.

    Attributes:
        metrics: The BotMetrics instance to update.
    """

    def __init__(
        self,
        metrics: Optional[BotMetrics] = None,
        registry: Optional[CollectorRegistry] = None,
    ):
        if metrics is not None:
            self._metrics = metrics
        else:
            self._metrics = get_metrics(registry)

    @property
    def metrics(self) -> BotMetrics:
        return self._metrics

    async def emit(self, event: PipelineEvent) -> None:
        try:
            self._metrics.record_event(event.event_type.value)

            if event.event_type in (EventType.NOT_APPLICABLE, EventType.PROVISIONED):
                self._handle_finished(event)
            elif event.event_type == EventType.ERROR:
                self._metrics.record_failure(event.details.get("stage", "unknown"))
        except Exception as e:
            logger.error(
                "Failed to update metrics for event %s: %s",
                event.event_type.value,
                str(e),
                extra={
                    "event_type": event.event_type.value,
                    "repository": event.repository,
                },
            )

    def _handle_finished(self, event: PipelineEvent) -> None:
        outcome = event.details.get("outcome")
        if outcome:
            self._metrics.record_outcome(outcome)

        duration = event.details.get("duration_seconds")
        if duration is not None:
            self._metrics.record_duration(float(duration))
