# devbrain/core/context.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterator, List, Optional, Tuple
from uuid import uuid4

from .errors import ContextKeyLockedError, ContextKeyMissingError

logger = logging.getLogger("devbrain.context")


class ContextKeys:
    """Well-known RequestContext keys."""

    CONVERSATION_HISTORY = "conversation_history"
    AGENT_PLAN = "agent_plan"
    EMOTIONAL_CONTEXT = "emotional_context"
    MENTAL_MODEL = "mental_model"
    ACTIVE_STAGES = "active_stages"
    REQUESTED_TOOLS = "requested_tools"
    CONTEXT_INJECTION = "context_injection"
    TOOL_GATE = "tool_gate"
    TOOL_POLICY_INJECTION = "tool_policy_injection"
    TOOL_RESULTS = "tool_results"
    DRAFT = "draft"
    JUDGE_REPORT = "judge_report"
    DEGRADED = "degraded"
    SCENARIOS = "scenarios"
    BEST_SCENARIO = "best_scenario"
    PREDICTED_REACTION = "predicted_reaction"
    FINAL_TEXT = "final_text"


# written exactly once per request
WRITE_ONCE: FrozenSet[str] = frozenset({ContextKeys.AGENT_PLAN, ContextKeys.EMOTIONAL_CONTEXT})


@dataclass
class RequestContext:
    """
    Request-scoped key/value store threaded through the brain chain.

    One instance per request, passed explicitly to every stage. Reading a key
    nobody wrote is a logic error (ContextKeyMissingError), never a silent
    default; use get_optional() where absence is a legitimate outcome.
    """

    user_id: str
    conversation_id: str
    message: str
    trace_id: str = field(default_factory=lambda: str(uuid4()))
    write_once: FrozenSet[str] = WRITE_ONCE

    _values: Dict[str, Any] = field(default_factory=dict, init=False, repr=False)
    _writers: Dict[str, str] = field(default_factory=dict, init=False, repr=False)
    _journal: List[Tuple[str, str]] = field(default_factory=list, init=False, repr=False)

    def put(self, key: str, value: Any, *, writer: str) -> None:
        if key in self.write_once and key in self._values:
            raise ContextKeyLockedError(key, owner=self._writers[key], writer=writer)
        self._values[key] = value
        self._writers.setdefault(key, writer)
        self._journal.append((writer, key))

    def get(self, key: str, *, reader: Optional[str] = None) -> Any:
        try:
            return self._values[key]
        except KeyError:
            raise ContextKeyMissingError(key, reader=reader) from None

    def get_optional(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def has(self, key: str) -> bool:
        return key in self._values

    def first_writer(self, key: str) -> Optional[str]:
        return self._writers.get(key)

    def keys(self) -> Iterator[str]:
        return iter(list(self._values.keys()))

    @property
    def journal(self) -> List[Tuple[str, str]]:
        """(writer, key) pairs in write order."""
        return list(self._journal)

    def snapshot(self) -> Dict[str, str]:
        return {k: type(v).__name__ for k, v in self._values.items()}
