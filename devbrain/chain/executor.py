# devbrain/chain/executor.py
from __future__ import annotations

import asyncio
import logging
import time
from typing import List, Optional, Tuple

from ..core.context import ContextKeys as K, RequestContext
from ..core.errors import ContextKeyMissingError, ToolPolicyViolation
from ..core.supervisor import Supervisor
from ..core.trace import TraceSink, emit_safely
from ..schemas.chain import (
    ChainState,
    Explainability,
    JudgeReport,
    ProcessResult,
    StageOutcome,
    StageRecord,
    StageStatus,
    ToolRejection,
)
from .stage import Stage, StageRegistry

logger = logging.getLogger("devbrain.chain.executor")

APOLOGY_TEXT = (
    "Sorry, I couldn't put together a proper answer just now. "
    "Please try again in a moment, or rephrase the question."
)


def rejection_text(rejection: ToolRejection) -> str:
    return (
        f"I can't complete this request: it needs the tool '{rejection.tool_id}', "
        f"which isn't permitted here ({rejection.reason})."
    )


class ChainExecutor:
    """
    Runs the registered stages for one request, strictly in ascending order.

      INIT -> RUNNING(stage_1) -> ... -> RUNNING(stage_n) -> DONE
                       \\-> REJECTED  (hard policy failure)
      refinement budget exhausted / critical stage lost  -> DEGRADED

    Stages share state only through the RequestContext they are handed.
    """

    def __init__(
        self,
        registry: StageRegistry,
        *,
        supervisor: Optional[Supervisor] = None,
        trace_sink: Optional[TraceSink] = None,
    ) -> None:
        self.registry = registry
        self.supervisor = supervisor or Supervisor()
        self.trace_sink = trace_sink

    async def run(
        self,
        ctx: RequestContext,
        *,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ProcessResult:
        state = ChainState.INIT
        records: List[StageRecord] = []
        rejection: Optional[ToolRejection] = None
        lost_critical = False

        emit_safely(self.trace_sink, ctx.trace_id, "chain.start", user_id=ctx.user_id, state=state.value)
        state = ChainState.RUNNING

        for stage in self.registry.ordered():
            if cancel_event is not None and cancel_event.is_set():
                logger.warning("[%s] Request cancelled before stage %s", ctx.trace_id, stage.name)
                emit_safely(self.trace_sink, ctx.trace_id, "chain.cancelled", before=stage.name)
                raise asyncio.CancelledError()

            if stage.optional and not self._is_active(ctx, stage):
                records.append(StageRecord(name=stage.name, order=stage.order, status=StageStatus.SKIPPED))
                logger.debug("[%s] Stage %s skipped (not in active set)", ctx.trace_id, stage.name)
                continue

            emit_safely(self.trace_sink, ctx.trace_id, "stage.start", stage=stage.name, order=stage.order)
            started = time.perf_counter()
            outcome, stage_rejection = await self._execute(stage, ctx)
            duration_ms = (time.perf_counter() - started) * 1000.0

            if stage_rejection is not None and rejection is None:
                rejection = stage_rejection

            self.supervisor.record_stage(
                stage.name,
                duration_ms=duration_ms,
                ok=outcome.status not in (StageStatus.FAILED, StageStatus.REJECTED),
            )
            records.append(
                StageRecord(
                    name=stage.name,
                    order=stage.order,
                    status=outcome.status,
                    duration_ms=round(duration_ms, 3),
                    note=outcome.note,
                )
            )
            emit_safely(
                self.trace_sink,
                ctx.trace_id,
                "stage.end",
                stage=stage.name,
                status=outcome.status.value,
                duration_ms=round(duration_ms, 3),
            )

            if outcome.status is StageStatus.REJECTED:
                state = ChainState.REJECTED
                logger.warning("[%s] Chain rejected at %s: %s", ctx.trace_id, stage.name, outcome.note)
                break
            if outcome.status is StageStatus.FAILED and stage.critical:
                lost_critical = True
                logger.error("[%s] Critical stage %s failed; returning best effort.", ctx.trace_id, stage.name)
                break

        if state is not ChainState.REJECTED:
            degraded = bool(ctx.get_optional(K.DEGRADED, False)) or lost_critical
            state = ChainState.DEGRADED if degraded else ChainState.DONE

        result = self._finalize(ctx, state, records, rejection)
        emit_safely(self.trace_sink, ctx.trace_id, "chain.end", state=state.value, stages=len(records))
        logger.info("[%s] Chain finished: %s (stages=%d)", ctx.trace_id, state.value, len(records))
        return result

    async def _execute(
        self, stage: Stage, ctx: RequestContext
    ) -> Tuple[StageOutcome, Optional[ToolRejection]]:
        try:
            return await stage.execute(ctx), None
        except ToolPolicyViolation as e:
            return StageOutcome.rejected(str(e)), e.rejection
        except asyncio.CancelledError:
            logger.warning("[%s] Cancelled during stage %s", ctx.trace_id, stage.name)
            emit_safely(self.trace_sink, ctx.trace_id, "chain.cancelled", during=stage.name)
            raise
        except ContextKeyMissingError:
            raise
        except Exception as e:
            logger.exception("[%s] Stage %s failed: %s", ctx.trace_id, stage.name, e)
            return StageOutcome(status=StageStatus.FAILED, note=f"{type(e).__name__}: {e}"), None

    @staticmethod
    def _is_active(ctx: RequestContext, stage: Stage) -> bool:
        active = ctx.get_optional(K.ACTIVE_STAGES)
        return bool(active) and stage.name in active

    def _finalize(
        self,
        ctx: RequestContext,
        state: ChainState,
        records: List[StageRecord],
        rejection: Optional[ToolRejection],
    ) -> ProcessResult:
        gate = ctx.get_optional(K.TOOL_GATE)
        rejections = list(gate.rejections) if gate is not None else []
        if rejection is not None and rejection not in rejections:
            rejections.append(rejection)

        if state is ChainState.REJECTED and rejection is not None:
            final_text = rejection_text(rejection)
        else:
            final_text = ctx.get_optional(K.FINAL_TEXT) or ctx.get_optional(K.DRAFT) or APOLOGY_TEXT

        report: Optional[JudgeReport] = ctx.get_optional(K.JUDGE_REPORT)
        if report is not None:
            self.supervisor.record_quality(
                ctx.conversation_id,
                quality=report.quality,
                degraded=state is ChainState.DEGRADED,
            )

        return ProcessResult(
            trace_id=ctx.trace_id,
            final_text=final_text,
            state=state,
            explainability=Explainability(
                selected_scenario=ctx.get_optional(K.BEST_SCENARIO),
                predicted_reaction=ctx.get_optional(K.PREDICTED_REACTION),
                degraded=state is ChainState.DEGRADED,
                rejections=rejections,
                judge=report,
                stages=records,
            ),
        )
