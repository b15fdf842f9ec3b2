# devbrain/chain/simulation.py
from __future__ import annotations

import logging
from typing import Optional

from ..cognition.simulator import MentalSimulator
from ..core.context import ContextKeys as K, RequestContext
from ..schemas.chain import StageOutcome
from .stage import Stage

logger = logging.getLogger("devbrain.chain.simulation")


class MentalSimulationStage(Stage):
    name = "mental_simulation"
    order = 70
    optional = True

    def __init__(self, simulator: Optional[MentalSimulator] = None) -> None:
        self.simulator = simulator or MentalSimulator()

    async def execute(self, ctx: RequestContext) -> StageOutcome:
        draft: str = ctx.get(K.DRAFT, reader=self.name)
        emo = ctx.get(K.EMOTIONAL_CONTEXT, reader=self.name)

        scenarios = self.simulator.simulate_scenarios(ctx.message, draft, emo)
        best = self.simulator.evaluate_and_select_best(scenarios)
        reaction = self.simulator.predict_user_reaction(best, emo)

        ctx.put(K.SCENARIOS, scenarios, writer=self.name)
        ctx.put(K.BEST_SCENARIO, best, writer=self.name)
        ctx.put(K.PREDICTED_REACTION, reaction, writer=self.name)

        logger.info("[%s] Simulation: best=%s score=%.3f", ctx.trace_id, best.style, best.overall_score)
        logger.debug("[%s] %s", ctx.trace_id, self.simulator.compare_scenarios(scenarios))
        return StageOutcome.ok(best.style)
