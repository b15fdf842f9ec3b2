# devbrain/chain/dynamic_context.py
from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from ..core.context import ContextKeys as K, RequestContext
from ..core.providers import ConversationDataProvider, EditRecord, NullDataProvider
from ..core.tools import ToolRegistry
from ..schemas.chain import StageOutcome
from ..schemas.plan import AgentPlan
from ..settings import Settings, settings as default_settings
from .stage import Stage

logger = logging.getLogger("devbrain.chain.dynamic_context")

RECENT_EDIT_LIMIT = 5


def core_stages_for(complexity: int, has_tools: bool) -> List[str]:
    """Stage set used when a plan arrives without an explicit selection."""
    stages = ["draft", "judge", "emotional_tone"]
    if complexity > 2:
        stages.append("mental_simulation")
    if complexity > 5 and has_tools:
        stages.append("tool_execution")
    return stages


class DynamicContextStage(Stage):
    """Turns the plan into the concrete stage/tool set for this request."""

    name = "dynamic_context"
    order = 10

    def __init__(
        self,
        tools: Optional[ToolRegistry] = None,
        provider: Optional[ConversationDataProvider] = None,
        *,
        cfg: Optional[Settings] = None,
    ) -> None:
        self.tools = tools or ToolRegistry()
        self.provider = provider or NullDataProvider()
        self.cfg = cfg or default_settings

    async def execute(self, ctx: RequestContext) -> StageOutcome:
        plan: AgentPlan = ctx.get(K.AGENT_PLAN, reader=self.name)

        requested = self.tools.find_for(ctx.message)
        if plan.selected_brains:
            active = list(plan.selected_brains)
        else:
            active = core_stages_for(plan.complexity, bool(requested))
        if requested and "tool_execution" not in active:
            # suggestions still go through the gate so disallowed ones are rejected on record
            active.append("tool_execution")

        edits = await self._recent_edits(ctx)

        ctx.put(K.ACTIVE_STAGES, frozenset(active), writer=self.name)
        ctx.put(K.REQUESTED_TOOLS, requested, writer=self.name)
        ctx.put(K.CONTEXT_INJECTION, self.render_injection(plan, active, edits), writer=self.name)

        logger.info(
            "[%s] DynamicContext: active=%s requested_tools=%s",
            ctx.trace_id,
            sorted(active),
            requested,
        )
        return StageOutcome.ok(f"{len(active)} stages")

    @staticmethod
    def render_injection(plan: AgentPlan, active: List[str], edits: List[EditRecord]) -> str:
        lines = [
            "[EXECUTION CONTEXT]",
            f"Strategy: {plan.strategy.value}",
            f"Intent: {plan.intent.value}",
            f"Focus: {plan.focus_area.value}",
            f"Complexity: {plan.complexity}/10",
            f"Active brains: {', '.join(active)}",
        ]
        if edits:
            files = ", ".join(dict.fromkeys(e.file_path for e in edits))
            lines.append(f"Recently edited files: {files}")
        return "\n".join(lines)

    async def _recent_edits(self, ctx: RequestContext) -> List[EditRecord]:
        try:
            return await asyncio.wait_for(
                self.provider.recent_edits(ctx.user_id, RECENT_EDIT_LIMIT),
                timeout=self.cfg.provider_timeout_sec,
            )
        except asyncio.TimeoutError:
            logger.warning("[%s] DynamicContext: recent edits lookup timed out", ctx.trace_id)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("[%s] DynamicContext: recent edits lookup failed: %s", ctx.trace_id, e)
        return []
