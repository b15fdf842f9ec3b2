# devbrain/chain/conductor.py
from __future__ import annotations

import asyncio
import logging
import re
from typing import List, Optional, Pattern, Sequence, Tuple

from ..core.context import ContextKeys as K, RequestContext
from ..core.providers import ConversationDataProvider, ConversationTurn, NullDataProvider
from ..core.tools import ToolRegistry
from ..schemas.chain import StageOutcome
from ..schemas.plan import AgentPlan, FocusArea, Intent, Strategy
from ..settings import Settings, settings as default_settings
from .stage import Stage

logger = logging.getLogger("devbrain.chain.conductor")

# first match wins
INTENT_PATTERNS: Sequence[Tuple[Intent, Pattern[str]]] = (
    (Intent.CALCULATION, re.compile(r"\b(calculate|compute|multiply|divide|subtract)\b|\d+\s*[-+*/x]\s*\d+")),
    (Intent.DEBUG, re.compile(r"\b(debug|error|exception|bug|crash|stack ?trace|traceback|not working|broken|fails?|failing)\b")),
    (Intent.REFACTOR, re.compile(r"\b(refactor|clean ?up|restructure|simplify|rename|extract)\b")),
    (Intent.TESTING, re.compile(r"\b(tests?|unit tests?|pytest|coverage|mock(?:ing)?)\b")),
    (Intent.IMPLEMENTATION, re.compile(r"\b(implement|create|build|write|generate|add an?)\b")),
    (Intent.EXPLANATION, re.compile(r"\b(explain|what is|what are|how does|how do|why does|describe|difference between)\b")),
)

FOCUS_KEYWORDS: Sequence[Tuple[FocusArea, Tuple[str, ...]]] = (
    (FocusArea.SECURITY, ("security", "auth", "vulnerab", "injection", "xss", "csrf", "encrypt")),
    (FocusArea.PERFORMANCE, ("performance", "slow", "latency", "optimi", "memory", "cache", "caching")),
    (FocusArea.ARCHITECTURE, ("architecture", "design", "microservice", "scalab", "module")),
    (FocusArea.TESTING, ("test", "coverage", "mock")),
    (FocusArea.DEBUG, ("bug", "error", "exception", "crash", "debug")),
    (FocusArea.REFACTOR, ("refactor", "clean", "restructure")),
    (FocusArea.IMPLEMENTATION, ("implement", "create", "build", "write")),
)

TECHNICAL_TERMS: Tuple[str, ...] = (
    "algorithm", "async", "concurrency", "thread", "database", "schema", "api", "cache",
    "distributed", "transaction", "index", "latency", "memory", "recursion", "deadlock",
    "architecture", "microservice", "protocol", "kubernetes", "docker",
)

VAGUE_WORDS: Tuple[str, ...] = ("something", "stuff", "thing", "things", "somehow", "whatever", "etc")

# stages every plan runs; optional extras are added per intent / complexity
BASE_BRAINS: Tuple[str, ...] = (
    "emotional_context",
    "theory_of_mind",
    "dynamic_context",
    "tool_policy",
    "draft",
    "judge",
    "emotional_tone",
)

LOW_ACCEPTANCE_RATE = 0.3
MIN_FEEDBACK_SAMPLES = 5


def classify_intent(text: str) -> Intent:
    lowered = text.lower()
    for intent, pattern in INTENT_PATTERNS:
        if pattern.search(lowered):
            return intent
    return Intent.GENERAL


def detect_focus(text: str) -> FocusArea:
    lowered = text.lower()
    for area, cues in FOCUS_KEYWORDS:
        if any(c in lowered for c in cues):
            return area
    return FocusArea.GENERAL


def estimate_complexity(text: str) -> int:
    lowered = text.lower()
    n_words = len(lowered.split())
    score = 1
    if n_words > 15:
        score += 1
    if n_words > 40:
        score += 1
    if n_words > 80:
        score += 1
    score += min(3, sum(1 for t in TECHNICAL_TERMS if t in lowered))
    if "```" in text:
        score += 2
    if re.search(r"\b(and then|also|additionally)\b", lowered) or re.search(r"^\s*\d+[.)]", text, re.MULTILINE):
        score += 1
    return max(1, min(10, score))


def estimate_ambiguity(text: str, history: Sequence[ConversationTurn]) -> int:
    lowered = text.lower()
    tokens = lowered.split()
    score = 2
    score += min(3, sum(1 for w in tokens if w.strip(".,?!") in VAGUE_WORDS))
    if len(tokens) < 5 and "?" not in text:
        score += 2
    if tokens and tokens[0] in ("it", "this", "that", "they") and not history:
        score += 2
    if history:
        score -= 1
    return max(1, min(10, score))


def choose_strategy(complexity: int, ambiguity: int) -> Strategy:
    if complexity <= 3 and ambiguity <= 3:
        return Strategy.FAST_RECALL
    if complexity <= 6 and ambiguity <= 6:
        return Strategy.BALANCED
    return Strategy.SLOW_REASONING


class ConductorStage(Stage):
    """
    Order 0: decides how this request will be handled.

    Builds the AgentPlan (strategy, selected stages, tool allow-list) from the
    query, the loaded conversation history and the user's acceptance record,
    and writes it once into the RequestContext.
    """

    name = "conductor"
    order = 0
    critical = True

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
        try:
            plan = await self.build_plan(ctx)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("[%s] Conductor: planning failed, using default plan: %s", ctx.trace_id, e)
            plan = self.default_plan()
        ctx.put(K.AGENT_PLAN, plan, writer=self.name)

        logger.info(
            "[%s] Conductor: intent=%s strategy=%s complexity=%d ambiguity=%d brains=%d tools=%s",
            ctx.trace_id,
            plan.intent.value,
            plan.strategy.value,
            plan.complexity,
            plan.ambiguity,
            len(plan.selected_brains),
            sorted(plan.tool_allow_list),
        )
        return StageOutcome.ok(plan.strategy.value)

    async def build_plan(self, ctx: RequestContext) -> AgentPlan:
        query = ctx.message
        history: List[ConversationTurn] = ctx.get_optional(K.CONVERSATION_HISTORY, [])

        intent = classify_intent(query)
        focus = detect_focus(query)
        complexity = estimate_complexity(query)
        ambiguity = estimate_ambiguity(query, history)
        strategy = choose_strategy(complexity, ambiguity)
        reasons = [f"complexity={complexity}", f"ambiguity={ambiguity}"]

        rate = await self._acceptance_rate(ctx)
        if rate is not None and rate < LOW_ACCEPTANCE_RATE:
            strategy = strategy.escalate()
            reasons.append(f"low acceptance ({rate:.2f}) -> {strategy.value}")

        allow = self._approve_tools(query, intent)

        brains = list(BASE_BRAINS)
        if allow:
            brains.insert(brains.index("draft"), "tool_execution")
        fast_path = strategy is Strategy.FAST_RECALL and not allow
        if not fast_path and (complexity > 3 or intent in (Intent.EXPLANATION, Intent.DEBUG)):
            brains.insert(brains.index("emotional_tone"), "mental_simulation")

        confidence = max(0.1, min(0.95, 1.0 - ambiguity / 10.0))
        return AgentPlan(
            strategy=strategy,
            selected_brains=tuple(brains),
            tool_allow_list=frozenset(allow),
            intent=intent,
            focus_area=focus,
            complexity=complexity,
            ambiguity=ambiguity,
            confidence=confidence,
            fast_path=fast_path,
            reasoning="; ".join(reasons),
        )

    @staticmethod
    def default_plan() -> AgentPlan:
        return AgentPlan(
            strategy=Strategy.BALANCED,
            selected_brains=BASE_BRAINS,
            tool_allow_list=frozenset(),
            reasoning="default plan",
        )

    def _approve_tools(self, query: str, intent: Intent) -> List[str]:
        approved = []
        for tool_id in self.tools.find_for(query):
            spec = self.tools.get(tool_id)
            if spec is None:
                continue
            if not spec.intents or intent.value in spec.intents:
                approved.append(tool_id)
        return approved

    async def _acceptance_rate(self, ctx: RequestContext) -> Optional[float]:
        try:
            stats = await asyncio.wait_for(
                self.provider.acceptance_stats(ctx.user_id),
                timeout=self.cfg.provider_timeout_sec,
            )
        except asyncio.TimeoutError:
            logger.warning("[%s] Conductor: acceptance lookup timed out", ctx.trace_id)
            return None
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("[%s] Conductor: acceptance lookup failed: %s", ctx.trace_id, e)
            return None
        if stats.total < MIN_FEEDBACK_SAMPLES:
            return None
        return stats.rate
