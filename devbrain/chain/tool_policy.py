# devbrain/chain/tool_policy.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ..core.context import ContextKeys as K, RequestContext
from ..core.tools import ToolGate, ToolRegistry
from ..schemas.chain import StageOutcome, ToolCallStatus
from ..schemas.plan import AgentPlan
from ..settings import Settings, settings as default_settings
from .stage import Stage

logger = logging.getLogger("devbrain.chain.tool_policy")


class ToolPolicyStage(Stage):
    """Installs the request's ToolGate; every later tool call goes through it."""

    name = "tool_policy"
    order = 20

    def __init__(self, tools: Optional[ToolRegistry] = None, *, cfg: Optional[Settings] = None) -> None:
        self.tools = tools or ToolRegistry()
        self.cfg = cfg or default_settings

    async def execute(self, ctx: RequestContext) -> StageOutcome:
        plan: AgentPlan = ctx.get(K.AGENT_PLAN, reader=self.name)
        requested: List[str] = ctx.get_optional(K.REQUESTED_TOOLS, [])

        gate = ToolGate(
            allow_list=plan.tool_allow_list,
            registry=self.tools,
            trace_id=ctx.trace_id,
            timeout=self.cfg.tool_timeout_sec,
        )
        approved = [t for t in requested if gate.permits(t)]
        denied = [t for t in requested if not gate.permits(t)]

        ctx.put(K.TOOL_GATE, gate, writer=self.name)
        ctx.put(K.TOOL_POLICY_INJECTION, self.render_injection(approved, denied), writer=self.name)

        if denied:
            logger.info("[%s] ToolPolicy: approved=%s denied=%s", ctx.trace_id, approved, denied)
        return StageOutcome.ok(f"approved={len(approved)} denied={len(denied)}")

    @staticmethod
    def render_injection(approved: List[str], denied: List[str]) -> str:
        lines = ["[TOOL EXECUTION POLICY]"]
        lines.append(f"Approved tools: {', '.join(approved) if approved else 'none'}")
        if denied:
            lines.append(f"Not permitted for this request: {', '.join(denied)}")
        lines.append("Only rely on results from approved tools.")
        return "\n".join(lines)


class ToolExecutionStage(Stage):
    """
    Invokes the requested tools through the gate.

    With strict=True every call is required: a disallowed tool without an
    allowed fallback rejects the whole request instead of being skipped.
    """

    name = "tool_execution"
    order = 30
    optional = True

    def __init__(self, tools: Optional[ToolRegistry] = None, *, strict: bool = False) -> None:
        self.tools = tools or ToolRegistry()
        self.strict = strict

    async def execute(self, ctx: RequestContext) -> StageOutcome:
        gate: ToolGate = ctx.get(K.TOOL_GATE, reader=self.name)
        requested: List[str] = ctx.get(K.REQUESTED_TOOLS, reader=self.name)

        results: Dict[str, Any] = {}
        for tool_id in requested:
            spec = self.tools.get(tool_id)
            outcome = await gate.request(
                tool_id,
                {"query": ctx.message, "user_id": ctx.user_id},
                requested_by=self.name,
                fallback=spec.fallback if spec else None,
                required=self.strict,
            )
            if outcome.status is ToolCallStatus.EXECUTED:
                results[outcome.tool_id] = outcome.result

        ctx.put(K.TOOL_RESULTS, results, writer=self.name)
        rejected = sum(1 for o in gate.outcomes if o.status is ToolCallStatus.REJECTED)
        return StageOutcome.ok(f"executed={len(results)} rejected={rejected}")
