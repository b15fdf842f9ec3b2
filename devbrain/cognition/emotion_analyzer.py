# devbrain/cognition/emotion_analyzer.py
from __future__ import annotations

import logging
import re
from functools import lru_cache
from typing import Dict, Iterable, List, Mapping, Optional, Pattern, Sequence, Tuple

from ..schemas.emotion import EmotionalContext, EmotionalState
from . import rules

logger = logging.getLogger("devbrain.cognition.emotion")


@lru_cache(maxsize=1024)
def _phrase_pattern(phrase: str) -> Pattern[str]:
    return re.compile(r"(?<![\w'])" + re.escape(phrase) + r"(?![\w'])")


def phrase_weight(phrase: str) -> float:
    """Multi-word phrases are more specific than single keywords."""
    return 1.0 + 0.5 * (len(phrase.split()) - 1)


def normalize_text(text: str) -> str:
    return text.replace("’", "'").replace("‘", "'").lower()


def count_matches(text: str, phrases: Iterable[str]) -> Tuple[float, List[str]]:
    """Weighted match score and the phrases that matched. `text` must already be normalized."""
    raw = 0.0
    hits: List[str] = []
    for phrase in phrases:
        n = len(_phrase_pattern(phrase).findall(text))
        if n:
            raw += n * phrase_weight(phrase)
            hits.append(phrase)
    return raw, hits


def saturate(raw: float, k: float = rules.SATURATION) -> float:
    if raw <= 0:
        return 0.0
    return raw / (raw + k)


def _is_shouting(text: str) -> bool:
    words = [w for w in re.findall(r"[A-Za-z]{3,}", text)]
    if len(words) < 3:
        return False
    upper = sum(1 for w in words if w.isupper())
    return upper / len(words) >= 0.6


class EmotionalAnalyzer:
    """
    Keyword/punctuation emotional detector.

    analyze() is a pure function of the message text: the same text always
    produces an identical EmotionalContext, and bad input degrades to NEUTRAL
    instead of raising.
    """

    def __init__(
        self,
        *,
        triggers: Optional[Mapping[EmotionalState, Sequence[str]]] = None,
        exploratory: Optional[Sequence[str]] = None,
        priority: Sequence[EmotionalState] = rules.STATE_PRIORITY,
    ) -> None:
        self.triggers: Dict[EmotionalState, Tuple[str, ...]] = {
            state: tuple(p.lower() for p in phrases)
            for state, phrases in (triggers or rules.STATE_TRIGGERS).items()
        }
        self.exploratory = tuple(p.lower() for p in (exploratory or rules.EXPLORATORY_KEYWORDS))
        self._rank = {state: i for i, state in enumerate(priority)}

    def analyze(self, message_text: object) -> EmotionalContext:
        if not isinstance(message_text, str) or not message_text.strip():
            return EmotionalContext.neutral()
        try:
            return self._analyze(message_text)
        except Exception as e:
            logger.warning("EmotionalAnalyzer: detection failed, degrading to NEUTRAL: %s", e)
            return EmotionalContext.neutral()

    # ---------- internals ----------

    def _analyze(self, original: str) -> EmotionalContext:
        text = normalize_text(original)

        scores: Dict[EmotionalState, float] = {}
        keywords: List[str] = []
        for state, phrases in self.triggers.items():
            raw, hits = count_matches(text, phrases)
            scores[state] = raw
            keywords.extend(hits)

        state = self._select(scores)

        exclamations = min(original.count("!"), rules.MAX_EXCLAMATIONS) if "!!" in original else 0
        shouting = _is_shouting(original)

        amplifier = 0.0
        if state in (
            EmotionalState.FRUSTRATED,
            EmotionalState.URGENT,
            EmotionalState.RUSHED,
            EmotionalState.NEGATIVE,
            EmotionalState.POSITIVE,
        ):
            amplifier += exclamations * rules.EXCLAMATION_BOOST
            if shouting:
                amplifier += rules.SHOUTING_BOOST
        intensity = saturate(scores.get(state, 0.0) + amplifier) if state is not EmotionalState.NEUTRAL else 0.0

        frustration_raw = scores.get(EmotionalState.FRUSTRATED, 0.0)
        frustration_raw += exclamations * rules.EXCLAMATION_BOOST
        if shouting:
            frustration_raw += rules.SHOUTING_BOOST

        confusion_raw = scores.get(EmotionalState.CONFUSED, 0.0)
        if "??" in original:
            confusion_raw += rules.DOUBLE_QUESTION_BOOST

        urgency_raw = sum(scores.get(s, 0.0) for s in rules.URGENCY_STATES)
        learning, _ = count_matches(text, self.exploratory)

        return EmotionalContext(
            current_state=state,
            emotional_intensity=intensity,
            frustration_level=saturate(frustration_raw),
            urgency_level=saturate(urgency_raw),
            confidence_level=saturate(scores.get(EmotionalState.CONFIDENT, 0.0)),
            confusion_level=saturate(confusion_raw),
            learning_intent=learning > 0,
            trigger_keywords=tuple(keywords),
            recommended_tone=rules.RECOMMENDED_TONE.get(state, "neutral"),
        )

    def _select(self, scores: Mapping[EmotionalState, float]) -> EmotionalState:
        pool = {s: v for s, v in scores.items() if v > 0}
        if not pool:
            return EmotionalState.NEUTRAL
        return min(pool, key=lambda s: (-pool[s], self._rank.get(s, len(self._rank))))
