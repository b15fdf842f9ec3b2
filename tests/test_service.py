import asyncio

import pytest

from devbrain.chain.executor import APOLOGY_TEXT
from devbrain.core.providers import InMemoryDataProvider
from devbrain.core.tools import ToolRegistry, ToolSpec
from devbrain.core.trace import MemoryTraceSink
from devbrain.schemas.chain import ChainState, StageStatus
from devbrain.service import BrainChainService

from conftest import BAD_DRAFT, GOOD_DRAFT, GOOD_QUERY, FailingCompletion, ScriptedCompletion, SlowCompletion

TOOL_QUERY = "Calculate 12 * 7 and search the latest docs"


def make_service(cfg, completion=None, **kwargs):
    kwargs.setdefault("trace_sink", MemoryTraceSink())
    return BrainChainService(completion=completion or ScriptedCompletion(), cfg=cfg, **kwargs)


def tool_registry(calls):
    async def calculator(payload):
        calls.append(("calculator", payload["query"]))
        return {"value": 84}

    async def web_search(payload):
        calls.append(("web_search", payload["query"]))
        return {"hits": []}

    return ToolRegistry(
        [
            ToolSpec("calculator", "Arithmetic", calculator, keywords=("calculate", "multiply"), intents=frozenset({"calculation"})),
            ToolSpec("web_search", "Web search", web_search, keywords=("search", "latest"), intents=frozenset({"explanation"})),
        ]
    )


def test_happy_path_is_done_with_explainability(cfg):
    completion = ScriptedCompletion()
    svc = make_service(cfg, completion)
    result = asyncio.run(svc.process("u1", "c1", GOOD_QUERY, "trace-happy"))

    assert result.state is ChainState.DONE
    assert result.trace_id == "trace-happy"
    assert "To configure caching" in result.final_text
    assert len(completion.prompts) == 1

    exp = result.explainability
    assert exp.degraded is False
    assert exp.rejections == []
    assert exp.judge.passed and exp.judge.iterations == 1
    assert exp.selected_scenario is not None
    assert "hypothetical" in exp.predicted_reaction
    statuses = {r.name: r.status for r in exp.stages}
    assert statuses["mental_simulation"] is StageStatus.OK
    assert statuses["tool_execution"] is StageStatus.SKIPPED


def test_frustrated_user_gets_empathetic_framing(cfg):
    svc = make_service(cfg)
    result = asyncio.run(svc.process("u1", "c1", "This is so frustrating, my build keeps failing and nothing works!!"))

    assert result.final_text.startswith("I understand this is frustrating.")
    assert result.final_text.count("I understand this is frustrating.") == 1
    assert "You've got this!" in result.final_text


@pytest.mark.parametrize("completion", [FailingCompletion(), SlowCompletion(delay=5.0)], ids=["failing", "slow"])
def test_unavailable_backend_degrades_to_apology(cfg, completion):
    svc = make_service(cfg, completion)
    result = asyncio.run(svc.process("u1", "c1", GOOD_QUERY))

    assert result.state is ChainState.DEGRADED
    assert result.explainability.degraded is True
    assert "Sorry, I couldn't" in result.final_text
    assert APOLOGY_TEXT.split(".")[0] in result.final_text


def test_rushed_user_still_gets_every_step(cfg):
    svc = make_service(cfg)
    query = (
        "Quick fix needed asap: how do I make the cache expire for my API endpoint "
        "so database lookups stay fast under heavy load?"
    )
    result = asyncio.run(svc.process("u1", "c1", query))

    assert result.explainability.selected_scenario.style == "concise_direct"
    assert result.final_text.startswith("Short version first:")
    assert "Details:" in result.final_text
    for step in GOOD_DRAFT.split(". "):
        assert step.rstrip(".") in result.final_text


def test_refinement_budget_bounds_completion_calls(cfg):
    completion = ScriptedCompletion(default=BAD_DRAFT)
    svc = make_service(cfg, completion)
    result = asyncio.run(svc.process("u1", "c1", GOOD_QUERY))

    # one draft plus at most R - 1 refinements
    assert len(completion.prompts) == 1 + (cfg.max_refine_iterations - 1)
    assert result.state is ChainState.DEGRADED
    assert result.explainability.judge.iterations == cfg.max_refine_iterations
    assert result.explainability.judge.passed is False


def test_mental_model_decays_across_requests(cfg):
    svc = make_service(cfg)
    msg = "I'm confused and I don't understand decorators"
    signal = svc.analyzer.analyze(msg).confusion_level
    assert signal > 0

    asyncio.run(svc.process("u1", "c1", msg))
    first = svc.inferencer.get_mental_model("u1").confusion_level
    asyncio.run(svc.process("u1", "c1", msg))
    second = svc.inferencer.get_mental_model("u1")

    d = cfg.mental_decay
    assert first == pytest.approx((1 - d) * signal)
    assert second.confusion_level == pytest.approx(d * first + (1 - d) * signal)
    assert second.interaction_count == 2


def test_concurrent_requests_for_one_user_are_serialised(cfg):
    svc = make_service(cfg)
    n = 12

    async def go():
        return await asyncio.gather(*[svc.process("u1", f"c{i}", GOOD_QUERY) for i in range(n)])

    results = asyncio.run(go())
    assert len({r.trace_id for r in results}) == n
    assert svc.inferencer.get_mental_model("u1").interaction_count == n


def test_history_is_included_and_slow_history_is_tolerated(cfg):
    provider = InMemoryDataProvider()
    provider.add_turn("c1", "user", "what is a cache key?")
    completion = ScriptedCompletion()
    svc = make_service(cfg, completion, provider=provider)
    asyncio.run(svc.process("u1", "c1", GOOD_QUERY))
    assert "[CONVERSATION SO FAR]" in completion.prompts[0]
    assert "what is a cache key?" in completion.prompts[0]

    class SlowHistory(InMemoryDataProvider):
        async def conversation_history(self, conversation_id, limit):
            await asyncio.sleep(5)
            return []

    result = asyncio.run(make_service(cfg, provider=SlowHistory()).process("u1", "c1", GOOD_QUERY))
    assert result.state is ChainState.DONE


def test_trace_id_reaches_every_event(cfg):
    sink = MemoryTraceSink()
    svc = make_service(cfg, trace_sink=sink)
    asyncio.run(svc.process("u1", "c1", GOOD_QUERY, "trace-xyz"))

    names = [event for _, event, _ in sink.events]
    assert names[0] == "chain.start"
    assert names[-1] == "chain.end"
    assert {tid for tid, _, _ in sink.events} == {"trace-xyz"}


def test_cancellation_propagates(cfg):
    svc = make_service(cfg)
    cancel = asyncio.Event()
    cancel.set()
    with pytest.raises(asyncio.CancelledError):
        asyncio.run(svc.process("u1", "c1", GOOD_QUERY, cancel_event=cancel))


def test_blocking_wrapper_and_stats(cfg):
    svc = make_service(cfg)
    result = svc.process_blocking("u1", "c1", GOOD_QUERY)
    assert result.state is ChainState.DONE

    stats = svc.stats()
    assert stats["tracked_users"] == 1
    assert stats["conversations"] == 1
    assert stats["stages"]["draft"]["executions"] == 1
    assert "mental_simulation" in stats["stages"]


def test_disallowed_tool_is_rejected_on_record(cfg):
    calls = []
    completion = ScriptedCompletion()
    svc = make_service(cfg, completion, tools=tool_registry(calls))
    result = asyncio.run(svc.process("u1", "c1", TOOL_QUERY))

    assert result.state is not ChainState.REJECTED
    assert calls == [("calculator", TOOL_QUERY)]
    rejections = result.explainability.rejections
    assert [r.tool_id for r in rejections] == ["web_search"]
    assert rejections[0].allow_list == ["calculator"]
    assert "[TOOL RESULTS]" in completion.prompts[0]
    assert "calculator" in completion.prompts[0]


def test_required_tool_outside_allow_list_rejects_request(cfg):
    calls = []
    completion = ScriptedCompletion()
    svc = make_service(cfg, completion, tools=tool_registry(calls), strict_tools=True)
    result = asyncio.run(svc.process("u1", "c1", TOOL_QUERY))

    assert result.state is ChainState.REJECTED
    assert "web_search" in result.final_text
    assert completion.prompts == []
    assert calls == []
    assert [r.tool_id for r in result.explainability.rejections] == ["web_search"]
