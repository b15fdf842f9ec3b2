# devbrain/chain/draft.py
from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from ..cognition.tone import EmotionalToneAdjuster
from ..core.context import ContextKeys as K, RequestContext
from ..core.llm_client import CompletionClient, guarded_complete
from ..core.providers import ConversationTurn
from ..schemas.chain import StageOutcome
from ..schemas.emotion import EmotionalContext, UserMentalModel
from ..settings import Settings, settings as default_settings
from .executor import APOLOGY_TEXT
from .stage import Stage

logger = logging.getLogger("devbrain.chain.draft")

SYSTEM_PREAMBLE = (
    "You are a senior software engineer helping a developer. "
    "Answer the question directly and accurately."
)


def knowledge_guidance(model: Optional[UserMentalModel]) -> List[str]:
    if model is None:
        return []
    out: List[str] = []
    if model.knowledge_level <= 2:
        out.append("Explain from first principles, define terms and avoid jargon.")
    elif model.knowledge_level == 3:
        out.append("Assume working knowledge; focus on practical details.")
    else:
        out.append("Be concise and technical; cover trade-offs and edge cases.")
    if model.is_frustrated():
        out.append("The user has been frustrated lately: lead with the solution.")
    if model.is_confused():
        out.append("The user has been confused lately: use simple language and one concrete example.")
    if model.learning_style == "code-heavy":
        out.append("Prefer code over prose.")
    elif model.learning_style == "step-by-step":
        out.append("Use numbered steps.")
    elif model.learning_style == "visual":
        out.append("Where it helps, sketch the structure as an ASCII diagram.")
    return out


def tone_guidance(adjuster: EmotionalToneAdjuster, emo: Optional[EmotionalContext]) -> List[str]:
    if emo is None:
        return []
    out = [f"Tone: {emo.recommended_tone}. Aim for about {adjuster.get_recommended_response_length(emo)} words."]
    if adjuster.should_include_examples(emo):
        out.append("Include a short example.")
    if adjuster.should_include_step_by_step(emo):
        out.append("Break the answer into steps.")
    if adjuster.should_simplify(emo):
        out.append("Keep the language simple.")
    return out


def build_draft_prompt(
    query: str,
    *,
    history: List[ConversationTurn],
    injections: List[str],
    tool_results: Dict[str, Any],
    guidance: List[str],
) -> str:
    parts = [SYSTEM_PREAMBLE]
    parts.extend(i for i in injections if i)
    if guidance:
        parts.append("[GUIDANCE]\n" + "\n".join(f"- {g}" for g in guidance))
    if tool_results:
        rendered = "\n".join(f"- {k}: {json.dumps(v, default=str)[:500]}" for k, v in tool_results.items())
        parts.append("[TOOL RESULTS]\n" + rendered)
    if history:
        convo = "\n".join(f"{t.role}: {t.content}" for t in history)
        parts.append("[CONVERSATION SO FAR]\n" + convo)
    parts.append(f"[QUESTION]\n{query}")
    return "\n\n".join(parts)


class DraftStage(Stage):
    name = "draft"
    order = 40

    def __init__(
        self,
        completion: CompletionClient,
        *,
        adjuster: Optional[EmotionalToneAdjuster] = None,
        cfg: Optional[Settings] = None,
    ) -> None:
        self.completion = completion
        self.adjuster = adjuster or EmotionalToneAdjuster()
        self.cfg = cfg or default_settings

    async def execute(self, ctx: RequestContext) -> StageOutcome:
        emo = ctx.get_optional(K.EMOTIONAL_CONTEXT)
        guidance = knowledge_guidance(ctx.get_optional(K.MENTAL_MODEL)) + tone_guidance(self.adjuster, emo)
        prompt = build_draft_prompt(
            ctx.message,
            history=ctx.get_optional(K.CONVERSATION_HISTORY, []),
            injections=[
                ctx.get_optional(K.CONTEXT_INJECTION, ""),
                ctx.get_optional(K.TOOL_POLICY_INJECTION, ""),
            ],
            tool_results=ctx.get_optional(K.TOOL_RESULTS, {}),
            guidance=guidance,
        )

        text = await guarded_complete(
            self.completion,
            prompt,
            timeout=self.cfg.llm_timeout_sec,
            trace_id=ctx.trace_id,
            purpose="draft",
        )
        if text is None:
            ctx.put(K.DRAFT, APOLOGY_TEXT, writer=self.name)
            ctx.put(K.DEGRADED, True, writer=self.name)
            return StageOutcome.degraded("completion unavailable; templated apology")

        ctx.put(K.DRAFT, text.strip(), writer=self.name)
        logger.info("[%s] Draft: %d chars", ctx.trace_id, len(text))
        return StageOutcome.ok()
