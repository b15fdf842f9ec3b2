import asyncio

import pytest

from devbrain.chain.judge import (
    ClarityCheck,
    DraftJudge,
    FactualConsistencyCheck,
    HelpfulnessCheck,
    JudgeRefineStage,
    RelevanceCheck,
    build_refine_prompt,
)
from devbrain.core.context import ContextKeys as K
from devbrain.schemas.chain import StageStatus
from devbrain.settings import Settings

from conftest import BAD_DRAFT, GOOD_DRAFT, GOOD_QUERY, ScriptedCompletion, SlowCompletion, make_ctx


def run_judge(stage, draft):
    ctx = make_ctx(GOOD_QUERY)
    ctx.put(K.DRAFT, draft, writer="draft")
    outcome = asyncio.run(stage.execute(ctx))
    return ctx, outcome


def test_good_draft_passes_first_time(cfg):
    llm = ScriptedCompletion()
    ctx, outcome = run_judge(JudgeRefineStage(llm, cfg=cfg), GOOD_DRAFT)
    report = ctx.get(K.JUDGE_REPORT)
    assert outcome.status is StageStatus.OK
    assert report.passed and report.iterations == 1
    assert llm.prompts == []
    assert ctx.get(K.DRAFT) == GOOD_DRAFT
    assert not ctx.has(K.DEGRADED)


def test_refinement_fixes_a_bad_draft(cfg):
    llm = ScriptedCompletion(default=GOOD_DRAFT)
    ctx, outcome = run_judge(JudgeRefineStage(llm, cfg=cfg), BAD_DRAFT)
    report = ctx.get(K.JUDGE_REPORT)
    assert outcome.status is StageStatus.OK
    assert report.iterations == 2
    assert len(llm.prompts) == 1
    assert ctx.get(K.DRAFT) == GOOD_DRAFT
    assert "Improve this response" in llm.prompts[0]


@pytest.mark.parametrize("limit", [1, 2, 3, 5])
def test_iterations_never_exceed_budget(cfg, limit):
    llm = ScriptedCompletion(default=BAD_DRAFT)
    stage = JudgeRefineStage(llm, cfg=cfg, max_iterations=limit)
    ctx, outcome = run_judge(stage, BAD_DRAFT)
    report = ctx.get(K.JUDGE_REPORT)
    assert report.iterations == limit
    assert len(report.history) == limit
    assert len(llm.prompts) == limit - 1
    assert not report.passed
    assert outcome.status is StageStatus.DEGRADED
    assert ctx.get(K.DEGRADED) is True
    assert ctx.get(K.DRAFT) == BAD_DRAFT


def test_budget_comes_from_settings():
    cfg = Settings(max_refine_iterations=2)
    llm = ScriptedCompletion(default=BAD_DRAFT)
    ctx, _ = run_judge(JudgeRefineStage(llm, cfg=cfg), BAD_DRAFT)
    assert ctx.get(K.JUDGE_REPORT).iterations == 2


def test_refine_timeout_keeps_last_draft(cfg):
    llm = SlowCompletion(delay=5)
    ctx, outcome = run_judge(JudgeRefineStage(llm, cfg=cfg), BAD_DRAFT)
    assert outcome.status is StageStatus.DEGRADED
    assert ctx.get(K.DRAFT) == BAD_DRAFT
    assert ctx.get(K.JUDGE_REPORT).iterations == 1
    assert llm.calls == 1


def test_refine_prompt_lists_failing_checks(cfg):
    checks = DraftJudge(cfg=cfg).evaluate(GOOD_QUERY, BAD_DRAFT)
    failing = [c for c in checks if not c.passed]
    prompt = build_refine_prompt(GOOD_QUERY, BAD_DRAFT, failing)
    assert prompt.startswith("Improve this response.")
    for c in failing:
        assert f"- {c.name} (" in prompt
    assert GOOD_QUERY in prompt


def test_thresholds_are_configurable():
    strict = DraftJudge(cfg=Settings(judge_min_helpfulness=1.0))
    lenient = DraftJudge(cfg=Settings(judge_min_clarity=0.0, judge_min_relevance=0.0, judge_min_factual=0.0, judge_min_helpfulness=0.0))
    assert not all(c.passed for c in strict.evaluate(GOOD_QUERY, GOOD_DRAFT))
    assert all(c.passed for c in lenient.evaluate(GOOD_QUERY, BAD_DRAFT))


def test_individual_checks():
    assert ClarityCheck().score("q", "")[0] == 0.0
    long_sentence = " ".join(["word"] * 40) + "."
    assert ClarityCheck().score("q", long_sentence)[0] < 0.6

    assert RelevanceCheck().score("configure the endpoint caching", "unrelated text here")[0] == pytest.approx(0.2)
    assert RelevanceCheck().score("configure the endpoint caching", GOOD_DRAFT)[0] == pytest.approx(1.0)

    score, issue = FactualConsistencyCheck().score("q", "```python\nprint(1)\n I'm not sure, probably fine")
    assert score < 0.6
    assert "code fence" in issue and "hedging" in issue
    assert FactualConsistencyCheck().score("q", GOOD_DRAFT) == (1.0, None)

    assert HelpfulnessCheck().score("q", "yes")[0] == pytest.approx(0.3)
    assert HelpfulnessCheck().score("q", GOOD_DRAFT)[0] >= 0.8
