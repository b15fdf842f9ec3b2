# devbrain/cognition/tone.py
from __future__ import annotations

import logging
from typing import Mapping, Optional

from ..schemas.emotion import EmotionalContext, EmotionalState
from . import rules
from .rules import ToneRule

logger = logging.getLogger("devbrain.cognition.tone")

_PASS_THROUGH = ToneRule()


class EmotionalToneAdjuster:
    """
    Table-driven tone adjustment.

    adjust_tone() only wraps the base response (prefix / suffix); the body is
    never rewritten, so nothing the draft said is lost.
    """

    def __init__(self, table: Optional[Mapping[EmotionalState, ToneRule]] = None) -> None:
        self.table = dict(table or rules.TONE_RULES)

    def rule_for(self, context: Optional[EmotionalContext]) -> ToneRule:
        if context is None:
            return _PASS_THROUGH
        return self.table.get(context.current_state, _PASS_THROUGH)

    def adjust_tone(self, base_response: Optional[str], context: Optional[EmotionalContext]) -> str:
        base = base_response if isinstance(base_response, str) else ""
        rule = self.rule_for(context)
        if not rule.prefix and not rule.suffix:
            return base

        prefix = rule.prefix
        suffix = rule.suffix
        # don't stack the same wrapper twice (e.g. a refined draft that kept it)
        if prefix and base.startswith(prefix):
            prefix = ""
        if suffix and base.endswith(suffix):
            suffix = ""

        adjusted = f"{prefix}{base}{suffix}"
        logger.debug(
            "ToneAdjuster: state=%s +%d chars",
            context.current_state.value if context else "none",
            len(adjusted) - len(base),
        )
        return adjusted

    def should_include_examples(self, context: Optional[EmotionalContext]) -> bool:
        return self.rule_for(context).include_examples

    def should_include_step_by_step(self, context: Optional[EmotionalContext]) -> bool:
        return self.rule_for(context).step_by_step

    def should_simplify(self, context: Optional[EmotionalContext]) -> bool:
        if context is None:
            return False
        if context.current_state is EmotionalState.CONFUSED:
            return True
        return context.current_state is EmotionalState.FRUSTRATED and context.emotional_intensity > 0.7

    def get_recommended_response_length(self, context: Optional[EmotionalContext]) -> int:
        return self.rule_for(context).response_length
