import pytest

from devbrain.core.context import ContextKeys as K, RequestContext
from devbrain.core.errors import ContextKeyLockedError, ContextKeyMissingError
from devbrain.schemas.plan import AgentPlan

from conftest import make_ctx


def test_read_before_write_is_an_error():
    ctx = make_ctx()
    with pytest.raises(ContextKeyMissingError) as exc:
        ctx.get(K.AGENT_PLAN, reader="judge")
    assert exc.value.key == K.AGENT_PLAN
    assert "judge" in str(exc.value)
    # also usable as a KeyError
    with pytest.raises(KeyError):
        ctx.get("anything")


def test_optional_reads_and_writes():
    ctx = make_ctx()
    assert ctx.get_optional(K.DRAFT) is None
    assert ctx.get_optional(K.TOOL_RESULTS, {}) == {}
    ctx.put(K.DRAFT, "v1", writer="draft")
    ctx.put(K.DRAFT, "v2", writer="judge")
    assert ctx.get(K.DRAFT) == "v2"
    assert ctx.first_writer(K.DRAFT) == "draft"
    assert ctx.journal == [("draft", K.DRAFT), ("judge", K.DRAFT)]


def test_plan_is_write_once():
    ctx = make_ctx()
    ctx.put(K.AGENT_PLAN, AgentPlan(), writer="conductor")
    with pytest.raises(ContextKeyLockedError):
        ctx.put(K.AGENT_PLAN, AgentPlan(), writer="rogue")


def test_plan_is_read_only():
    plan = AgentPlan(selected_brains=("draft", "judge", "draft"), tool_allow_list=frozenset({"calculator"}))
    assert plan.selected_brains == ("draft", "judge")
    assert plan.allows("calculator")
    with pytest.raises(Exception):
        plan.strategy = "slow_reasoning"


def test_contexts_do_not_share_state():
    a = RequestContext(user_id="u1", conversation_id="c1", message="hi")
    b = RequestContext(user_id="u1", conversation_id="c1", message="hi")
    a.put(K.DRAFT, "secret", writer="draft")
    assert not b.has(K.DRAFT)
    assert a.trace_id != b.trace_id
    assert a.snapshot() == {K.DRAFT: "str"}
