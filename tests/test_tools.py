import asyncio

import pytest

from devbrain.core.errors import ToolPolicyViolation
from devbrain.core.tools import ToolGate, ToolRegistry, ToolSpec
from devbrain.schemas.chain import ToolCallStatus


def make_registry(calls):
    async def calculator(payload):
        calls.append("calculator")
        return {"result": 84}

    async def web_search(payload):
        calls.append("web_search")
        return ["doc"]

    async def offline_docs(payload):
        calls.append("offline_docs")
        return ["cached doc"]

    async def slow(payload):
        calls.append("slow")
        await asyncio.sleep(5)

    async def broken(payload):
        calls.append("broken")
        raise RuntimeError("tool crashed")

    return ToolRegistry(
        [
            ToolSpec("calculator", "Arithmetic", calculator, keywords=("calculate", "multiply")),
            ToolSpec("web_search", "Web search", web_search, keywords=("search", "latest"), fallback="offline_docs"),
            ToolSpec("offline_docs", "Bundled docs", offline_docs, keywords=("docs",)),
            ToolSpec("slow", "Slow tool", slow),
            ToolSpec("broken", "Broken tool", broken),
        ]
    )


def gate_for(registry, allow, timeout=0.1):
    return ToolGate(allow_list=frozenset(allow), registry=registry, trace_id="t-tools", timeout=timeout)


def test_allowed_tool_executes():
    calls = []
    gate = gate_for(make_registry(calls), {"calculator"})
    outcome = asyncio.run(gate.request("calculator", {"q": "6*14"}, requested_by="test"))
    assert outcome.status is ToolCallStatus.EXECUTED
    assert outcome.result == {"result": 84}
    assert calls == ["calculator"]


def test_disallowed_tool_is_rejected_without_substitution():
    calls = []
    gate = gate_for(make_registry(calls), {"calculator"})
    outcome = asyncio.run(gate.request("web_search", requested_by="test"))
    assert outcome.status is ToolCallStatus.REJECTED
    assert outcome.rejection.tool_id == "web_search"
    assert outcome.rejection.allow_list == ["calculator"]
    assert outcome.substituted_from is None
    # nothing ran, not even the one allowed tool
    assert calls == []
    assert gate.rejections == [outcome.rejection]


def test_declared_allowed_fallback_is_used():
    calls = []
    gate = gate_for(make_registry(calls), {"offline_docs"})
    outcome = asyncio.run(gate.request("web_search", requested_by="test", fallback="offline_docs"))
    assert outcome.status is ToolCallStatus.EXECUTED
    assert outcome.tool_id == "offline_docs"
    assert outcome.substituted_from == "web_search"
    assert outcome.rejection is not None
    assert calls == ["offline_docs"]


def test_fallback_that_is_not_allowed_does_not_run():
    calls = []
    gate = gate_for(make_registry(calls), {"calculator"})
    outcome = asyncio.run(gate.request("web_search", requested_by="test", fallback="offline_docs"))
    assert outcome.status is ToolCallStatus.REJECTED
    assert calls == []


def test_required_call_without_fallback_raises():
    gate = gate_for(make_registry([]), {"calculator"})
    with pytest.raises(ToolPolicyViolation) as exc:
        asyncio.run(gate.request("web_search", requested_by="test", required=True))
    assert exc.value.rejection.tool_id == "web_search"


def test_unregistered_tool_is_rejected_even_if_listed():
    gate = gate_for(make_registry([]), {"ghost"})
    outcome = asyncio.run(gate.request("ghost", requested_by="test"))
    assert outcome.status is ToolCallStatus.REJECTED
    assert outcome.rejection.reason == "tool not registered"


def test_invoking_an_unknown_tool_fails_instead_of_crashing():
    gate = gate_for(make_registry([]), {"ghost"})
    outcome = asyncio.run(gate._invoke("ghost", {}))
    assert outcome.status is ToolCallStatus.FAILED
    assert outcome.error == "tool not registered"


def test_tool_timeouts_and_crashes_are_failures():
    calls = []
    gate = gate_for(make_registry(calls), {"slow", "broken"}, timeout=0.05)
    slow = asyncio.run(gate.request("slow", requested_by="test"))
    broken = asyncio.run(gate.request("broken", requested_by="test"))
    assert slow.status is ToolCallStatus.FAILED and slow.error == "timeout"
    assert broken.status is ToolCallStatus.FAILED and "crashed" in broken.error


def test_registry_finder_and_duplicates():
    registry = make_registry([])
    assert registry.find_for("search the latest docs") == ["web_search", "offline_docs"]
    assert registry.find_for("calculate 6 * 14") == ["calculator"]
    assert registry.find_for("") == []
    with pytest.raises(ValueError):
        registry.register(registry.get("calculator"))
