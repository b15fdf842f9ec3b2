# devbrain/core/trace.py
from __future__ import annotations

import logging
from typing import Any, List, Protocol, Tuple, runtime_checkable

from loguru import logger as trace_logger

logger = logging.getLogger("devbrain.trace")


@runtime_checkable
class TraceSink(Protocol):
    def emit(self, trace_id: str, event: str, **fields: Any) -> None: ...


class LoguruTraceSink:
    """Writes stage-boundary events through loguru with the trace id bound."""

    def __init__(self, *, service: str = "devbrain") -> None:
        self.service = service

    def emit(self, trace_id: str, event: str, **fields: Any) -> None:
        trace_logger.bind(trace_id=trace_id, service=self.service, **fields).info(
            "[{}] {}", trace_id, event
        )


class MemoryTraceSink:
    """Keeps events in a list; handy for tests and debugging sessions."""

    def __init__(self) -> None:
        self.events: List[Tuple[str, str, dict]] = []

    def emit(self, trace_id: str, event: str, **fields: Any) -> None:
        self.events.append((trace_id, event, dict(fields)))


def emit_safely(sink: TraceSink | None, trace_id: str, event: str, **fields: Any) -> None:
    """Fire-and-forget: a broken sink must never fail the request."""
    if sink is None:
        return
    try:
        sink.emit(trace_id, event, **fields)
    except Exception as e:
        logger.debug("[%s] trace sink failed on %s: %s", trace_id, event, e)
