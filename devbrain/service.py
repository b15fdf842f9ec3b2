# devbrain/service.py
from __future__ import annotations

import asyncio
import logging
from typing import List, Optional
from uuid import uuid4

from .chain import (
    ChainExecutor,
    ConductorStage,
    DraftStage,
    DynamicContextStage,
    EmotionalContextStage,
    EmotionalToneStage,
    JudgeRefineStage,
    MentalSimulationStage,
    StageRegistry,
    TheoryOfMindStage,
    ToolExecutionStage,
    ToolPolicyStage,
)
from .cognition import EmotionalAnalyzer, EmotionalToneAdjuster, MentalSimulator, MentalStateInferencer
from .core.context import ContextKeys as K, RequestContext
from .core.llm_client import CompletionClient, HttpCompletionClient
from .core.providers import ConversationDataProvider, ConversationTurn, NullDataProvider
from .core.supervisor import Supervisor
from .core.tools import ToolRegistry
from .core.trace import LoguruTraceSink, TraceSink
from .schemas.chain import ProcessResult
from .settings import Settings, settings as default_settings

logger = logging.getLogger("devbrain.service")


def build_default_registry(
    *,
    completion: CompletionClient,
    provider: ConversationDataProvider,
    tools: ToolRegistry,
    analyzer: EmotionalAnalyzer,
    inferencer: MentalStateInferencer,
    adjuster: EmotionalToneAdjuster,
    simulator: MentalSimulator,
    cfg: Settings,
    strict_tools: bool = False,
) -> StageRegistry:
    registry = StageRegistry()
    registry.register(ConductorStage(tools, provider, cfg=cfg))
    registry.register(EmotionalContextStage(analyzer))
    registry.register(TheoryOfMindStage(inferencer))
    registry.register(DynamicContextStage(tools, provider, cfg=cfg))
    registry.register(ToolPolicyStage(tools, cfg=cfg))
    registry.register(ToolExecutionStage(tools, strict=strict_tools))
    registry.register(DraftStage(completion, adjuster=adjuster, cfg=cfg))
    registry.register(JudgeRefineStage(completion, cfg=cfg))
    registry.register(MentalSimulationStage(simulator))
    registry.register(EmotionalToneStage(adjuster))
    return registry


class BrainChainService:
    """
    Entry point for the chat backend: one call per inbound message.

    Shared across requests: the stage registry, the per-user mental model
    cache and the supervisor counters. Everything else (RequestContext, tool
    gate, drafts) is built per request and dropped when process() returns.
    """

    def __init__(
        self,
        *,
        completion: Optional[CompletionClient] = None,
        provider: Optional[ConversationDataProvider] = None,
        tools: Optional[ToolRegistry] = None,
        trace_sink: Optional[TraceSink] = None,
        cfg: Optional[Settings] = None,
        registry: Optional[StageRegistry] = None,
        strict_tools: bool = False,
    ) -> None:
        self.cfg = cfg or default_settings
        self.completion = completion or HttpCompletionClient(cfg=self.cfg)
        self.provider = provider or NullDataProvider()
        self.tools = tools or ToolRegistry()
        self.analyzer = EmotionalAnalyzer()
        self.inferencer = MentalStateInferencer(self.analyzer, cfg=self.cfg)
        self.adjuster = EmotionalToneAdjuster()
        self.simulator = MentalSimulator(cfg=self.cfg)
        self.supervisor = Supervisor()

        self.registry = registry or build_default_registry(
            completion=self.completion,
            provider=self.provider,
            tools=self.tools,
            analyzer=self.analyzer,
            inferencer=self.inferencer,
            adjuster=self.adjuster,
            simulator=self.simulator,
            cfg=self.cfg,
            strict_tools=strict_tools,
        )
        self.executor = ChainExecutor(
            self.registry,
            supervisor=self.supervisor,
            trace_sink=trace_sink if trace_sink is not None else LoguruTraceSink(service=self.cfg.service_name),
        )

    async def process(
        self,
        user_id: str,
        conversation_id: str,
        message_text: str,
        trace_id: Optional[str] = None,
        *,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ProcessResult:
        ctx = RequestContext(
            user_id=user_id,
            conversation_id=conversation_id,
            message=message_text or "",
            trace_id=trace_id or str(uuid4()),
        )
        history = await self._load_history(ctx)
        ctx.put(K.CONVERSATION_HISTORY, history, writer="service")

        logger.info("[%s] process user=%s conversation=%s", ctx.trace_id, user_id, conversation_id)
        return await self.executor.run(ctx, cancel_event=cancel_event)

    def process_blocking(
        self,
        user_id: str,
        conversation_id: str,
        message_text: str,
        trace_id: Optional[str] = None,
    ) -> ProcessResult:
        """Synchronous wrapper for callers without an event loop."""
        return asyncio.run(self.process(user_id, conversation_id, message_text, trace_id))

    def stats(self) -> dict:
        out = self.supervisor.snapshot()
        out["tracked_users"] = len(self.inferencer)
        return out

    async def _load_history(self, ctx: RequestContext) -> List[ConversationTurn]:
        try:
            return await asyncio.wait_for(
                self.provider.conversation_history(ctx.conversation_id, self.cfg.history_limit),
                timeout=self.cfg.provider_timeout_sec,
            )
        except asyncio.TimeoutError:
            logger.warning("[%s] history lookup timed out; continuing without history", ctx.trace_id)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("[%s] history lookup failed: %s", ctx.trace_id, e)
        return []
