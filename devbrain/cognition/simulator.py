# devbrain/cognition/simulator.py
from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from ..schemas.emotion import EmotionalContext, EmotionalState
from ..schemas.scenario import ResponseScenario
from ..settings import Settings, settings as default_settings
from . import rules
from .textstats import avg_sentence_words, has_structure, prose, sentences, term_overlap, words

logger = logging.getLogger("devbrain.cognition.simulator")

CRITERIA: Tuple[str, ...] = ("clarity", "relevance", "empathy_fit", "risk_of_misunderstanding")


def _clamp01(x: float) -> float:
    return max(0.0, min(1.0, x))


class MentalSimulator:
    """
    Generates a fixed set of stylistic variants of a draft, scores each one
    against weighted criteria, and picks the best.

    All scoring is deterministic: identical (query, draft, context, weights)
    always yields identical scenarios in identical order.
    """

    def __init__(
        self,
        weights: Optional[Mapping[str, float]] = None,
        *,
        cfg: Optional[Settings] = None,
        styles: Sequence[str] = rules.SCENARIO_STYLES,
    ) -> None:
        cfg = cfg or default_settings
        self.weights: Dict[str, float] = dict(weights if weights is not None else cfg.scenario_weights)
        unknown = set(self.weights) - set(CRITERIA)
        if unknown:
            raise ValueError(f"unknown scenario criteria: {sorted(unknown)}")
        if abs(sum(self.weights.values()) - 1.0) > 1e-6:
            raise ValueError("scenario weights must sum to 1.0")
        self.styles = tuple(styles)

    # ---------- public API ----------

    def simulate_scenarios(
        self,
        query: str,
        candidate_response: str,
        context: Optional[EmotionalContext] = None,
    ) -> List[ResponseScenario]:
        state = context.current_state if context else EmotionalState.NEUTRAL
        base = candidate_response or ""
        scenarios: List[ResponseScenario] = []
        for idx, style in enumerate(self.styles):
            text = self._render(style, base)
            scores = {
                "clarity": self._clarity(text),
                "relevance": self._relevance(query, text),
                "empathy_fit": self._empathy_fit(style, state),
                "risk_of_misunderstanding": self._misunderstanding_risk(style, text, state),
            }
            scenarios.append(
                ResponseScenario(
                    style=style,
                    text=text,
                    criteria_scores=scores,
                    overall_score=self.overall(scores),
                    generation_index=idx,
                )
            )
        return scenarios

    def evaluate_and_select_best(self, scenarios: Sequence[ResponseScenario]) -> ResponseScenario:
        if not scenarios:
            raise ValueError("evaluate_and_select_best() needs at least one scenario")
        best = scenarios[0]
        for s in scenarios[1:]:
            # strict '>' keeps the earliest generated scenario on ties
            if s.overall_score > best.overall_score:
                best = s
        return best

    def predict_user_reaction(
        self,
        scenario: ResponseScenario,
        context: Optional[EmotionalContext] = None,
    ) -> str:
        audience = context.current_state.value if context else "typical"
        reaction = next(label for floor, label in rules.REACTION_BANDS if scenario.overall_score >= floor)
        criterion, contribution = self.dominant_criterion(scenario)
        return (
            f"A hypothetical {audience} user would probably be {reaction} with the "
            f"{scenario.style.replace('_', '-')} response (overall {scenario.overall_score:.2f}); "
            f"its strongest factor is {criterion.replace('_', '-')} "
            f"(weighted {contribution:.2f})."
        )

    def compare_scenarios(self, scenarios: Sequence[ResponseScenario]) -> str:
        ranked = sorted(scenarios, key=lambda s: (-s.overall_score, s.generation_index))
        lines = ["Scenario comparison:"]
        for rank, s in enumerate(ranked, start=1):
            marker = "  <- best" if rank == 1 else ""
            lines.append(f"{rank}. {s.style}: {s.overall_score:.3f}{marker}")
        return "\n".join(lines)

    # ---------- scoring ----------

    def contribution(self, criterion: str, value: float) -> float:
        w = self.weights.get(criterion, 0.0)
        if criterion in rules.INVERTED_CRITERIA:
            value = 1.0 - value
        return w * value

    def overall(self, scores: Mapping[str, float]) -> float:
        return round(sum(self.contribution(c, scores.get(c, 0.0)) for c in self.weights), 6)

    def dominant_criterion(self, scenario: ResponseScenario) -> Tuple[str, float]:
        best_name, best_val = CRITERIA[0], -1.0
        for name in CRITERIA:
            if name not in self.weights:
                continue
            val = self.contribution(name, scenario.criteria_scores.get(name, 0.0))
            if val > best_val:
                best_name, best_val = name, val
        return best_name, best_val

    @staticmethod
    def _clarity(text: str) -> float:
        if not text.strip():
            return 0.0
        avg = avg_sentence_words(text)
        if avg <= 15:
            score = 0.9
        elif avg <= 20:
            score = 0.8
        elif avg <= 30:
            score = 0.65
        else:
            score = 0.45
        if has_structure(text):
            score += 0.05
        return _clamp01(score)

    @staticmethod
    def _relevance(query: str, text: str) -> float:
        return _clamp01(0.3 + 0.7 * term_overlap(query, text))

    @staticmethod
    def _empathy_fit(style: str, state: EmotionalState) -> float:
        return rules.EMPATHY_FIT.get(style, {}).get(state, 0.5)

    @staticmethod
    def _misunderstanding_risk(style: str, text: str, state: EmotionalState) -> float:
        risk = rules.BASE_MISUNDERSTANDING_RISK.get(style, 0.3)
        tokens = words(text)
        if tokens:
            jargon = sum(1 for t in tokens if t in rules.JARGON_TERMS)
            risk += min(0.3, 5.0 * jargon / len(tokens))
        if style == "technical_advanced":
            if state is EmotionalState.CONFUSED:
                risk += 0.2
            elif state is EmotionalState.CONFIDENT:
                risk -= 0.2
        if style == "concise_direct" and state is EmotionalState.CONFUSED:
            risk += 0.15
        return _clamp01(risk)

    # ---------- variants ----------

    @staticmethod
    def _render(style: str, base: str) -> str:
        if style == "empathetic_detailed":
            parts = sentences(prose(base))
            if len(parts) < 2:
                return base
            recap = "\n".join(f"{i}. {p}" for i, p in enumerate(parts[:3], start=1))
            return f"{base}\n\nTo recap the key steps:\n{recap}"
        if style == "concise_direct":
            return _lead_first(base)
        if style == "technical_advanced":
            return (
                f"{base}\n\nImplementation notes: check the edge cases, the complexity of "
                "the approach and how it fails under load before relying on it."
            )
        return base


def _lead_first(base: str) -> str:
    """Opening sentence up front, the rest of the draft kept verbatim under it."""
    body = base.strip()
    if body.startswith("```"):
        return base
    parts = sentences(body.split("```", 1)[0])
    if not parts:
        return base
    lead = parts[0]
    rest = body[len(lead):].strip()
    if not rest:
        return base
    return f"{lead}\n\nDetails:\n{rest}"
