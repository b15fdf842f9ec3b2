import asyncio
from typing import List, Optional

import pytest

from devbrain.core.context import RequestContext
from devbrain.core.errors import CompletionError
from devbrain.settings import Settings


GOOD_QUERY = (
    "How do I configure caching for my API endpoint so that repeated database lookups "
    "stay fast under load?"
)

GOOD_DRAFT = (
    "To configure caching for the endpoint, put a cache in front of the database query. "
    "For example, store each response keyed by the request path and expire it after sixty seconds. "
    "Use `functools.lru_cache` for pure helpers. "
    "Repeated lookups then skip the database and stay fast under load."
)

BAD_DRAFT = "ok."


class ScriptedCompletion:
    """Returns queued replies in order, then `default` forever."""

    def __init__(self, replies: Optional[List[str]] = None, default: str = GOOD_DRAFT) -> None:
        self.replies = list(replies or [])
        self.default = default
        self.prompts: List[str] = []

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.replies:
            return self.replies.pop(0)
        return self.default


class FailingCompletion:
    def __init__(self) -> None:
        self.calls = 0

    async def complete(self, prompt: str) -> str:
        self.calls += 1
        raise CompletionError("backend down")


class SlowCompletion:
    def __init__(self, delay: float = 5.0) -> None:
        self.delay = delay
        self.calls = 0

    async def complete(self, prompt: str) -> str:
        self.calls += 1
        await asyncio.sleep(self.delay)
        return GOOD_DRAFT


@pytest.fixture
def cfg() -> Settings:
    return Settings(
        llm_timeout_sec=0.2,
        provider_timeout_sec=0.2,
        tool_timeout_sec=0.2,
        max_refine_iterations=3,
        lock_timeout_sec=1.0,
        lock_retries=2,
        lock_backoff_sec=0.01,
    )


def make_ctx(message: str = GOOD_QUERY, *, user_id: str = "u1", conversation_id: str = "c1", trace_id: str = "trace-test") -> RequestContext:
    return RequestContext(
        user_id=user_id,
        conversation_id=conversation_id,
        message=message,
        trace_id=trace_id,
    )
