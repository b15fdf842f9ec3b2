# devbrain/core/tools.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple

from ..cognition.emotion_analyzer import count_matches, normalize_text
from ..schemas.chain import ToolCallOutcome, ToolCallStatus, ToolRejection
from .errors import ToolPolicyViolation

logger = logging.getLogger("devbrain.tools")

ToolHandler = Callable[[Dict[str, Any]], Awaitable[Any]]


@dataclass(frozen=True)
class ToolSpec:
    tool_id: str
    description: str
    handler: ToolHandler
    keywords: Tuple[str, ...] = ()
    # intents the conductor may approve this tool for; empty = any intent
    intents: FrozenSet[str] = frozenset()
    # declared substitute when this tool is not allowed
    fallback: Optional[str] = None


class ToolRegistry:
    """Tools known to this process, plus a keyword finder over their descriptions."""

    def __init__(self, specs: Iterable[ToolSpec] = ()) -> None:
        self._specs: Dict[str, ToolSpec] = {}
        for spec in specs:
            self.register(spec)

    def register(self, spec: ToolSpec) -> None:
        if spec.tool_id in self._specs:
            raise ValueError(f"tool {spec.tool_id!r} already registered")
        self._specs[spec.tool_id] = spec

    def get(self, tool_id: str) -> Optional[ToolSpec]:
        return self._specs.get(tool_id)

    def ids(self) -> List[str]:
        return list(self._specs.keys())

    def __contains__(self, tool_id: object) -> bool:
        return tool_id in self._specs

    def find_for(self, query: str) -> List[str]:
        """Tool ids whose keywords appear in the query, strongest match first."""
        text = normalize_text(query or "")
        scored = []
        for idx, spec in enumerate(self._specs.values()):
            raw, _ = count_matches(text, spec.keywords)
            if raw:
                scored.append((-raw, idx, spec.tool_id))
        return [tool_id for _, _, tool_id in sorted(scored)]


@dataclass
class ToolGate:
    """
    Fail-closed gate in front of every tool call made during one request.

    A call outside the allow-list is rejected explicitly. If the caller named
    a fallback that *is* allowed, the fallback runs instead and the outcome
    records the substitution; nothing else is ever substituted. A required
    call with no usable fallback raises ToolPolicyViolation.
    """

    allow_list: FrozenSet[str]
    registry: ToolRegistry
    trace_id: str
    timeout: float = 10.0
    outcomes: List[ToolCallOutcome] = field(default_factory=list)

    @property
    def rejections(self) -> List[ToolRejection]:
        return [o.rejection for o in self.outcomes if o.rejection is not None]

    def permits(self, tool_id: str) -> bool:
        return tool_id in self.allow_list and tool_id in self.registry

    async def request(
        self,
        tool_id: str,
        payload: Optional[Dict[str, Any]] = None,
        *,
        requested_by: str,
        fallback: Optional[str] = None,
        required: bool = False,
    ) -> ToolCallOutcome:
        payload = payload or {}
        if self.permits(tool_id):
            outcome = await self._invoke(tool_id, payload)
            self.outcomes.append(outcome)
            return outcome

        reason = "not in plan allow-list" if tool_id not in self.allow_list else "tool not registered"
        rejection = ToolRejection(
            tool_id=tool_id,
            reason=reason,
            allow_list=sorted(self.allow_list),
            requested_by=requested_by,
        )
        logger.warning("[%s] ToolGate: rejected %s for %s (%s)", self.trace_id, tool_id, requested_by, reason)

        if fallback is not None and fallback != tool_id and self.permits(fallback):
            logger.info("[%s] ToolGate: using declared fallback %s for %s", self.trace_id, fallback, tool_id)
            outcome = await self._invoke(fallback, payload)
            outcome = outcome.model_copy(update={"substituted_from": tool_id, "rejection": rejection})
            self.outcomes.append(outcome)
            return outcome

        outcome = ToolCallOutcome(tool_id=tool_id, status=ToolCallStatus.REJECTED, rejection=rejection)
        self.outcomes.append(outcome)
        if required:
            raise ToolPolicyViolation(rejection)
        return outcome

    async def _invoke(self, tool_id: str, payload: Dict[str, Any]) -> ToolCallOutcome:
        spec = self.registry.get(tool_id)
        if spec is None:
            logger.error("[%s] ToolGate: %s is not registered", self.trace_id, tool_id)
            return ToolCallOutcome(tool_id=tool_id, status=ToolCallStatus.FAILED, error="tool not registered")
        try:
            result = await asyncio.wait_for(spec.handler(payload), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("[%s] ToolGate: %s timed out after %.1fs", self.trace_id, tool_id, self.timeout)
            return ToolCallOutcome(tool_id=tool_id, status=ToolCallStatus.FAILED, error="timeout")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("[%s] ToolGate: %s failed: %s", self.trace_id, tool_id, e)
            return ToolCallOutcome(tool_id=tool_id, status=ToolCallStatus.FAILED, error=str(e))
        return ToolCallOutcome(tool_id=tool_id, status=ToolCallStatus.EXECUTED, result=result)
