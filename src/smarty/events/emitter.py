"""Sinks for pipeline events.

Every run reports its stage transitions, failures, rejections and
completion through an EventEmitter. The application combines a log sink
and a Prometheus sink behind a CompositeEventEmitter; tests and library
callers that want no output use NullEventEmitter.

A sink that raises is reported in the log and skipped. Events never
interrupt a change request.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from src.smarty.events.models import EventType, PipelineEvent

logger = logging.getLogger(__name__)


class EventEmitter(ABC):
    """Destination for pipeline events.

    ``emit`` is awaited inline by the orchestrator between stages, so
    sinks must return quickly.
    """

    @abstractmethod
    async def emit(self, event: PipelineEvent) -> None:
        """Deliver one event."""

    async def close(self) -> None:
        """Flush and release the sink on shutdown."""


class LoggingEventEmitter(EventEmitter):
    """Writes each event as a log record with its fields in ``extra``.

    REJECTED runs log at WARNING and failed runs at ERROR; everything
    else is INFO.
    """

    DEFAULT_LOG_LEVELS: Dict[EventType, int] = {
        EventType.STATE_TRANSITION: logging.INFO,
        EventType.COMPLETION: logging.INFO,
        EventType.REJECTED: logging.WARNING,
        EventType.ERROR: logging.ERROR,
    }

    def __init__(
        self,
        logger_name: Optional[str] = None,
        log_level_map: Optional[Dict[EventType, int]] = None,
    ):
        self._logger = logging.getLogger(logger_name or "smarty.events")
        self._log_level_map = log_level_map or dict(self.DEFAULT_LOG_LEVELS)

    async def emit(self, event: PipelineEvent) -> None:
        log_level = self._log_level_map.get(event.event_type, logging.INFO)
        self._logger.log(
            log_level,
            "Run %s: %s event",
            event.run_id,
            event.event_type.value,
            extra=event.to_log_dict(),
        )


class CompositeEventEmitter(EventEmitter):
    """Fans each event out to several sinks, in order.

    A sink that raises is logged and the remaining sinks still receive
    the event.
    """

    def __init__(self, emitters: Optional[List[EventEmitter]] = None):
        self._emitters: List[EventEmitter] = emitters or []

    @property
    def emitters(self) -> List[EventEmitter]:
        return list(self._emitters)

    async def emit(self, event: PipelineEvent) -> None:
        for emitter in self._emitters:
            try:
                await emitter.emit(event)
            except Exception as exc:
                logger.error(
                    "Event sink %s rejected %s event: %s",
                    type(emitter).__name__,
                    event.event_type.value,
                    str(exc),
                    extra={
                        "emitter_type": type(emitter).__name__,
                        "event_type": event.event_type.value,
                        "run_id": event.run_id,
                    },
                )

    async def close(self) -> None:
        for emitter in self._emitters:
            try:
                await emitter.close()
            except Exception as exc:
                logger.error(
                    "Event sink %s failed to close: %s",
                    type(emitter).__name__,
                    str(exc),
                )


class NullEventEmitter(EventEmitter):
    """Sink that drops every event."""

    async def emit(self, event: PipelineEvent) -> None:
        pass
