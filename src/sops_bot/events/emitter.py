"""Event emitter implementations for pipeline observability.

Defines the abstract EventEmitter interface and the concrete sinks:

- LoggingEventEmitter: Emits events as structured log entries
- CompositeEventEmitter: Emits to multiple sinks simultaneously
- NullEventEmitter: Discards events (for testing)

The MetricsEventEmitter lives in metrics.py.

Source:
- src/sops_bot/events/models.py (PipelineEvent, EventType)
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, List, Optional

from src.sops_bot.events.models import EventType, PipelineEvent


logger = logging.getLogger(__name__)


class EventSinkType(str, Enum):
    """Types of event sinks supported by the pipeline.

    Attributes:
        LOGGING: Emit events as structured log entries.
        METRICS: Emit events as Prometheus metrics.
    """

    LOGGING = "logging"
    METRICS = "metrics"


class EventEmitter(ABC):
    """Abstract base class for pipeline event emitters.

    Implementations should be fault-tolerant: emit() failures are logged,
    never propagated into the provisioning run.
    """

    @abstractmethod
    async def emit(self, event: PipelineEvent) -> None:
        """Emit a pipeline event.

        Args:
            event: The pipeline event to emit.
        """
        pass

    async def close(self) -> None:
        """Release any resources held by the emitter."""
        pass


class LoggingEventEmitter(EventEmitter):
    """Event emitter that writes events as structured log entries.

    Errors are logged at ERROR, not-applicable outcomes at INFO, and
    everything else at INFO.

    Attributes:
        logger_name: Name of the logger events are written to.
    """

    def __init__(self, logger_name: Optional[str] = None):
        self.logger_name = logger_name or "sops_bot.events"
        self._logger = logging.getLogger(self.logger_name)
        self._log_level_map: Dict[EventType, int] = {
            EventType.TRIGGERED: logging.INFO,
            EventType.NOT_APPLICABLE: logging.INFO,
            EventType.PROVISIONED: logging.INFO,
            EventType.ERROR: logging.ERROR,
        }

    async def emit(self, event: PipelineEvent) -> None:
        log_level = self._log_level_map.get(event.event_type, logging.INFO)
        self._logger.log(
            log_level,
            "Pipeline event: %s for %s %s",
            event.event_type.value,
            event.repository,
            event.details,
            extra=event.to_log_dict(),
        )


class CompositeEventEmitter(EventEmitter):
    """Event emitter that delegates to multiple child emitters.

    Failures in one emitter do not affect the others.

    Attributes:
        emitters: List of child emitters to delegate to.
    """

    def __init__(self, emitters: Optional[List[EventEmitter]] = None):
        self._emitters: List[EventEmitter] = emitters or []

    @property
    def emitters(self) -> List[EventEmitter]:
        """Get the list of child emitters (read-only copy)."""
        return list(self._emitters)

    async def emit(self, event: PipelineEvent) -> None:
        for emitter in self._emitters:
            try:
                await emitter.emit(event)
            except Exception as e:
                logger.error(
                    "Failed to emit event to %s: %s",
                    type(emitter).__name__,
                    str(e),
                    extra={
                        "emitter_type": type(emitter).__name__,
                        "event_type": event.event_type.value,
                        "repository": event.repository,
                    },
                )

    async def close(self) -> None:
        for emitter in self._emitters:
            try:
                await emitter.close()
            except Exception as e:
                logger.error(
                    "Failed to close emitter %s: %s",
                    type(emitter).__name__,
                    str(e),
                )


class NullEventEmitter(EventEmitter):
    """Event emitter that discards all events."""

    async def emit(self, event: PipelineEvent) -> None:
        pass


def create_event_emitter(
    sink_types: Optional[List[EventSinkType]] = None,
    logger_name: Optional[str] = None,
) -> EventEmitter:
    """Create an emitter for the requested sinks.

    Args:
        sink_types: Sinks to enable. If None or empty, returns a
                    LoggingEventEmitter.
        logger_name: Optional logger name for the LoggingEventEmitter.

    Returns:
        A single emitter, or a CompositeEventEmitter for several sinks.

    Example:
        >>> emitter = create_event_emitter(
        ...     [EventSinkType.LOGGING, EventSinkType.METRICS]
        ... )
        >>> isinstance(emitter, CompositeEventEmitter)
        True
    """
    if not sink_types:
        return LoggingEventEmitter(logger_name=logger_name)

    emitters: List[EventEmitter] = []

    for sink_type in sink_types:
        if sink_type == EventSinkType.LOGGING:
            emitters.append(LoggingEventEmitter(logger_name=logger_name))
        elif sink_type == EventSinkType.METRICS:
            # metrics.py imports this module
            from src.sops_bot.events.metrics import MetricsEventEmitter

            emitters.append(MetricsEventEmitter())
        else:
            logger.warning("Unknown event sink type: %s, skipping", sink_type)

    if not emitters:
        return LoggingEventEmitter(logger_name=logger_name)

    if len(emitters) == 1:
        return emitters[0]

    return CompositeEventEmitter(emitters)
