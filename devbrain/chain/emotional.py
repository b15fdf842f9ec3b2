# devbrain/chain/emotional.py
from __future__ import annotations

import asyncio
import logging
from typing import Optional

from ..cognition.emotion_analyzer import EmotionalAnalyzer
from ..cognition.mental_state import MentalStateInferencer
from ..cognition.tone import EmotionalToneAdjuster
from ..core.context import ContextKeys as K, RequestContext
from ..core.errors import MentalModelLockError
from ..schemas.chain import StageOutcome
from ..schemas.emotion import EmotionalContext
from ..schemas.scenario import ResponseScenario
from .stage import Stage

logger = logging.getLogger("devbrain.chain.emotional")


# ─────────────────────────────────────────────
# Early: detection + theory of mind
# ─────────────────────────────────────────────


class EmotionalContextStage(Stage):
    name = "emotional_context"
    order = 1

    def __init__(self, analyzer: Optional[EmotionalAnalyzer] = None) -> None:
        self.analyzer = analyzer or EmotionalAnalyzer()

    async def execute(self, ctx: RequestContext) -> StageOutcome:
        emo = self.analyzer.analyze(ctx.message)
        ctx.put(K.EMOTIONAL_CONTEXT, emo, writer=self.name)
        logger.info(
            "[%s] EmotionalContext: state=%s intensity=%.2f frustration=%.2f urgency=%.2f",
            ctx.trace_id,
            emo.current_state.value,
            emo.emotional_intensity,
            emo.frustration_level,
            emo.urgency_level,
        )
        return StageOutcome.ok(emo.current_state.value)


class TheoryOfMindStage(Stage):
    """Folds the message into the user's longitudinal model."""

    name = "theory_of_mind"
    order = 2

    def __init__(self, inferencer: MentalStateInferencer) -> None:
        self.inferencer = inferencer

    async def execute(self, ctx: RequestContext) -> StageOutcome:
        try:
            # lock waits/backoff are blocking; keep them off the event loop
            model = await asyncio.to_thread(self.inferencer.infer_from_query, ctx.user_id, ctx.message)
        except MentalModelLockError as e:
            logger.error("[%s] TheoryOfMind: %s", ctx.trace_id, e)
            return StageOutcome.degraded("mental model busy")
        ctx.put(K.MENTAL_MODEL, model, writer=self.name)
        logger.debug("[%s] TheoryOfMind: %s", ctx.trace_id, model.summary())
        return StageOutcome.ok(f"level={model.knowledge_level}")


# ─────────────────────────────────────────────
# Late: presentation
# ─────────────────────────────────────────────


class EmotionalToneStage(Stage):
    name = "emotional_tone"
    order = 80

    def __init__(self, adjuster: Optional[EmotionalToneAdjuster] = None) -> None:
        self.adjuster = adjuster or EmotionalToneAdjuster()

    async def execute(self, ctx: RequestContext) -> StageOutcome:
        emo: EmotionalContext = ctx.get(K.EMOTIONAL_CONTEXT, reader=self.name)
        best: Optional[ResponseScenario] = ctx.get_optional(K.BEST_SCENARIO)
        base = best.text if best is not None else ctx.get(K.DRAFT, reader=self.name)

        final = self.adjuster.adjust_tone(base, emo)
        ctx.put(K.FINAL_TEXT, final, writer=self.name)
        return StageOutcome.ok(emo.current_state.value)
