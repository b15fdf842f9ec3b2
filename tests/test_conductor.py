import asyncio

import pytest

from devbrain.chain.conductor import (
    ConductorStage,
    choose_strategy,
    classify_intent,
    detect_focus,
    estimate_ambiguity,
    estimate_complexity,
)
from devbrain.chain.dynamic_context import DynamicContextStage, core_stages_for
from devbrain.chain.tool_policy import ToolPolicyStage
from devbrain.core.context import ContextKeys as K
from devbrain.core.providers import EditRecord, InMemoryDataProvider
from devbrain.core.tools import ToolGate, ToolRegistry, ToolSpec
from devbrain.schemas.plan import AgentPlan, FocusArea, Intent, Strategy

from conftest import GOOD_QUERY, make_ctx


async def _noop(payload):
    return None


def tools():
    return ToolRegistry(
        [
            ToolSpec("calculator", "Arithmetic", _noop, keywords=("calculate", "multiply"), intents=frozenset({"calculation"})),
            ToolSpec("web_search", "Web search", _noop, keywords=("search", "latest"), intents=frozenset({"explanation"})),
        ]
    )


@pytest.mark.parametrize(
    "query, intent",
    [
        ("calculate 12 * 7", Intent.CALCULATION),
        ("I get a KeyError exception in my loop", Intent.DEBUG),
        ("refactor this class into smaller functions", Intent.REFACTOR),
        ("write unit tests for the parser", Intent.TESTING),
        ("implement a retry decorator", Intent.IMPLEMENTATION),
        ("explain how generators work", Intent.EXPLANATION),
        ("hello there", Intent.GENERAL),
    ],
)
def test_intent_classification(query, intent):
    assert classify_intent(query) is intent


def test_focus_and_estimates():
    assert detect_focus("is this vulnerable to SQL injection?") is FocusArea.SECURITY
    assert detect_focus("the page is slow") is FocusArea.PERFORMANCE
    assert detect_focus("hi") is FocusArea.GENERAL

    assert estimate_complexity("hi") == 1
    big = "```py\n" + " ".join(["database cache api thread algorithm"] * 30) + "\n```\nand then also deploy"
    assert estimate_complexity(big) == 10
    assert 1 <= estimate_ambiguity("it broke", []) <= 10
    assert estimate_ambiguity("it broke", []) > estimate_ambiguity("it broke", ["previous turn"])


@pytest.mark.parametrize(
    "complexity, ambiguity, strategy",
    [
        (3, 3, Strategy.FAST_RECALL),
        (4, 2, Strategy.BALANCED),
        (6, 6, Strategy.BALANCED),
        (7, 1, Strategy.SLOW_REASONING),
        (2, 9, Strategy.SLOW_REASONING),
    ],
)
def test_strategy_thresholds(complexity, ambiguity, strategy):
    assert choose_strategy(complexity, ambiguity) is strategy


def test_plan_is_written_once_with_allow_list_matching_intent(cfg):
    ctx = make_ctx("Calculate 12 * 7 and search the latest docs")
    asyncio.run(ConductorStage(tools(), cfg=cfg).execute(ctx))
    plan = ctx.get(K.AGENT_PLAN)
    assert isinstance(plan, AgentPlan)
    assert plan.intent is Intent.CALCULATION
    assert plan.tool_allow_list == frozenset({"calculator"})
    assert "tool_execution" in plan.selected_brains
    assert plan.selected_brains.index("tool_execution") < plan.selected_brains.index("draft")


def test_simple_query_takes_fast_path(cfg):
    ctx = make_ctx("How do I reverse a list?")
    asyncio.run(ConductorStage(tools(), cfg=cfg).execute(ctx))
    plan = ctx.get(K.AGENT_PLAN)
    assert plan.strategy is Strategy.FAST_RECALL
    assert plan.fast_path is True
    assert "mental_simulation" not in plan.selected_brains


def test_richer_query_gets_simulation(cfg):
    ctx = make_ctx(GOOD_QUERY)
    asyncio.run(ConductorStage(tools(), cfg=cfg).execute(ctx))
    plan = ctx.get(K.AGENT_PLAN)
    assert plan.strategy is Strategy.BALANCED
    assert "mental_simulation" in plan.selected_brains


def test_low_acceptance_escalates_strategy(cfg):
    provider = InMemoryDataProvider()
    for _ in range(5):
        provider.record_feedback("u1", accepted=False)
    ctx = make_ctx("How do I reverse a list?")
    asyncio.run(ConductorStage(tools(), provider, cfg=cfg).execute(ctx))
    plan = ctx.get(K.AGENT_PLAN)
    assert plan.strategy is Strategy.BALANCED
    assert "low acceptance" in plan.reasoning


def test_slow_provider_does_not_block_planning(cfg):
    class SlowProvider(InMemoryDataProvider):
        async def acceptance_stats(self, user_id):
            await asyncio.sleep(5)

    ctx = make_ctx("How do I reverse a list?")
    asyncio.run(ConductorStage(tools(), SlowProvider(), cfg=cfg).execute(ctx))
    assert ctx.get(K.AGENT_PLAN).strategy is Strategy.FAST_RECALL


def test_planning_failure_falls_back_to_default_plan(cfg):
    class BrokenRegistry(ToolRegistry):
        def find_for(self, query):
            raise RuntimeError("index corrupted")

    ctx = make_ctx("anything")
    asyncio.run(ConductorStage(BrokenRegistry(), cfg=cfg).execute(ctx))
    plan = ctx.get(K.AGENT_PLAN)
    assert plan.reasoning == "default plan"
    assert plan.tool_allow_list == frozenset()


def test_dynamic_context_materializes_plan(cfg):
    provider = InMemoryDataProvider()
    provider.add_edit("u1", EditRecord(file_path="app/cache.py"))
    ctx = make_ctx("Calculate 12 * 7 and search the latest docs")
    registry = tools()
    asyncio.run(ConductorStage(registry, cfg=cfg).execute(ctx))
    asyncio.run(DynamicContextStage(registry, provider, cfg=cfg).execute(ctx))

    active = ctx.get(K.ACTIVE_STAGES)
    assert "tool_execution" in active and "draft" in active
    assert ctx.get(K.REQUESTED_TOOLS) == ["web_search", "calculator"]
    injection = ctx.get(K.CONTEXT_INJECTION)
    assert injection.startswith("[EXECUTION CONTEXT]")
    assert "app/cache.py" in injection


def test_dynamic_context_core_set_for_empty_selection(cfg):
    ctx = make_ctx("hello")
    ctx.put(K.AGENT_PLAN, AgentPlan(complexity=1), writer="conductor")
    asyncio.run(DynamicContextStage(ToolRegistry(), cfg=cfg).execute(ctx))
    assert ctx.get(K.ACTIVE_STAGES) == frozenset(core_stages_for(1, False))
    assert "mental_simulation" in core_stages_for(4, False)
    assert "tool_execution" in core_stages_for(8, True)


def test_dynamic_context_needs_a_plan(cfg):
    with pytest.raises(KeyError):
        asyncio.run(DynamicContextStage(cfg=cfg).execute(make_ctx()))


def test_tool_policy_installs_gate(cfg):
    registry = tools()
    ctx = make_ctx("Calculate 12 * 7 and search the latest docs")
    asyncio.run(ConductorStage(registry, cfg=cfg).execute(ctx))
    asyncio.run(DynamicContextStage(registry, cfg=cfg).execute(ctx))
    asyncio.run(ToolPolicyStage(registry, cfg=cfg).execute(ctx))
    gate = ctx.get(K.TOOL_GATE)
    assert isinstance(gate, ToolGate)
    assert gate.permits("calculator") and not gate.permits("web_search")
    policy = ctx.get(K.TOOL_POLICY_INJECTION)
    assert "[TOOL EXECUTION POLICY]" in policy
    assert "Not permitted for this request: web_search" in policy
