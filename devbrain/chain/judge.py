# devbrain/chain/judge.py
from __future__ import annotations

import logging
import re
from typing import List, Optional, Sequence, Tuple

from ..cognition.textstats import avg_sentence_words, has_structure, term_overlap, words
from ..core.context import ContextKeys as K, RequestContext
from ..core.llm_client import CompletionClient, guarded_complete
from ..schemas.chain import CheckResult, JudgeReport, StageOutcome
from ..settings import Settings, settings as default_settings
from .stage import Stage

logger = logging.getLogger("devbrain.chain.judge")


def _clamp01(x: float) -> float:
    return max(0.0, min(1.0, x))


# ─────────────────────────────────────────────
# Checks
# ─────────────────────────────────────────────


class QualityCheck:
    name: str = "check"

    def score(self, query: str, text: str) -> Tuple[float, Optional[str]]:  # pragma: no cover
        raise NotImplementedError


class ClarityCheck(QualityCheck):
    name = "clarity"

    def score(self, query: str, text: str) -> Tuple[float, Optional[str]]:
        n = len(words(text))
        if n == 0:
            return 0.0, "response is empty"
        if n < 3:
            return 0.5, "response is too terse to be clear"
        avg = avg_sentence_words(text)
        if avg <= 20:
            return 0.9, None
        if avg <= 30:
            return 0.7, "some sentences are long; split them up"
        return 0.45, f"sentences average {avg:.0f} words; shorten them"


class RelevanceCheck(QualityCheck):
    name = "relevance"

    def score(self, query: str, text: str) -> Tuple[float, Optional[str]]:
        overlap = term_overlap(query, text)
        s = _clamp01(0.2 + 0.8 * overlap)
        issue = None if overlap >= 0.5 else "answer does not address the key terms of the question"
        return s, issue


_HEDGES = (
    r"\bi think maybe\b",
    r"\bi'm not sure\b",
    r"\bi am not sure\b",
    r"\bi cannot verify\b",
    r"\bas an ai\b",
    r"\[citation needed\]",
    r"\bprobably\b",
)
_PLACEHOLDERS = (r"\blorem ipsum\b", r"\bTODO\b", r"<insert [^>]+>")


class FactualConsistencyCheck(QualityCheck):
    """Cheap consistency signals: broken code fences, hedging, placeholders."""

    name = "factual"

    def score(self, query: str, text: str) -> Tuple[float, Optional[str]]:
        s = 1.0
        issues: List[str] = []
        if text.count("```") % 2:
            s -= 0.4
            issues.append("unbalanced code fence")
        lowered = text.lower()
        hedges = sum(len(re.findall(p, lowered)) for p in _HEDGES)
        if hedges:
            s -= min(0.45, 0.15 * hedges)
            issues.append(f"{hedges} hedging/unverifiable statement(s)")
        if any(re.search(p, text) for p in _PLACEHOLDERS):
            s -= 0.3
            issues.append("placeholder text left in answer")
        return _clamp01(s), "; ".join(issues) or None


class HelpfulnessCheck(QualityCheck):
    name = "helpfulness"

    def score(self, query: str, text: str) -> Tuple[float, Optional[str]]:
        n = len(words(text))
        if n < 10:
            s = 0.3
        elif n < 30:
            s = 0.5
        elif n < 80:
            s = 0.7
        else:
            s = 0.8
        lowered = text.lower()
        if "for example" in lowered or "e.g." in lowered:
            s += 0.1
        if "```" in text or re.search(r"`[^`]+`", text):
            s += 0.1
        if has_structure(text):
            s += 0.05
        s = _clamp01(s)
        return s, None if s >= 0.5 else "answer is too thin to be actionable; add specifics"


DEFAULT_CHECKS: Tuple[QualityCheck, ...] = (
    ClarityCheck(),
    RelevanceCheck(),
    FactualConsistencyCheck(),
    HelpfulnessCheck(),
)


class DraftJudge:
    def __init__(
        self,
        checks: Sequence[QualityCheck] = DEFAULT_CHECKS,
        *,
        cfg: Optional[Settings] = None,
    ) -> None:
        cfg = cfg or default_settings
        self.checks = tuple(checks)
        self.thresholds = {
            "clarity": cfg.judge_min_clarity,
            "relevance": cfg.judge_min_relevance,
            "factual": cfg.judge_min_factual,
            "helpfulness": cfg.judge_min_helpfulness,
        }

    def evaluate(self, query: str, text: str) -> List[CheckResult]:
        results = []
        for check in self.checks:
            score, issue = check.score(query, text)
            threshold = self.thresholds.get(check.name, 0.5)
            results.append(
                CheckResult(
                    name=check.name,
                    score=_clamp01(score),
                    threshold=threshold,
                    issue=issue if score < threshold else None,
                )
            )
        return results


def build_refine_prompt(query: str, draft: str, failing: Sequence[CheckResult]) -> str:
    issues = "\n".join(
        f"- {c.name} ({c.score:.2f} < {c.threshold:.2f}): {c.issue or 'below threshold'}" for c in failing
    )
    return (
        "Improve this response.\n\n"
        f"Question:\n{query}\n\n"
        f"Current response:\n{draft}\n\n"
        f"Issues to fix:\n{issues}\n\n"
        "Return only the improved response."
    )


# ─────────────────────────────────────────────
# Stage
# ─────────────────────────────────────────────


class JudgeRefineStage(Stage):
    """
    Judge the draft; refine and re-judge until every check passes.

    At most `max_iterations` judge passes (so at most max_iterations - 1
    refinements). Running out of budget is not an error: the last judged
    draft stays in place and the request is flagged DEGRADED.
    """

    name = "judge"
    order = 50

    def __init__(
        self,
        completion: CompletionClient,
        *,
        judge: Optional[DraftJudge] = None,
        max_iterations: Optional[int] = None,
        cfg: Optional[Settings] = None,
    ) -> None:
        self.cfg = cfg or default_settings
        self.completion = completion
        self.judge = judge or DraftJudge(cfg=self.cfg)
        self.max_iterations = max_iterations or self.cfg.max_refine_iterations

    async def execute(self, ctx: RequestContext) -> StageOutcome:
        draft: str = ctx.get(K.DRAFT, reader=self.name)
        report = JudgeReport()

        for i in range(self.max_iterations):
            checks = self.judge.evaluate(ctx.message, draft)
            report.history.append(checks)
            report.iterations = i + 1
            failing = [c for c in checks if not c.passed]

            logger.info(
                "[%s] Judge: iteration=%d quality=%.2f failing=%s",
                ctx.trace_id,
                report.iterations,
                report.quality,
                [c.name for c in failing],
            )
            if not failing:
                report.passed = True
                break
            if report.iterations >= self.max_iterations:
                break

            refined = await guarded_complete(
                self.completion,
                build_refine_prompt(ctx.message, draft, failing),
                timeout=self.cfg.llm_timeout_sec,
                trace_id=ctx.trace_id,
                purpose="refine",
            )
            if refined is None:
                # keep the last judged draft
                break
            draft = refined.strip()

        ctx.put(K.DRAFT, draft, writer=self.name)
        ctx.put(K.JUDGE_REPORT, report, writer=self.name)

        if not report.passed:
            ctx.put(K.DEGRADED, True, writer=self.name)
            logger.warning(
                "[%s] Judge: thresholds not met after %d iteration(s); returning degraded draft.",
                ctx.trace_id,
                report.iterations,
            )
            return StageOutcome.degraded(f"iterations={report.iterations}")
        return StageOutcome.ok(f"iterations={report.iterations}")
