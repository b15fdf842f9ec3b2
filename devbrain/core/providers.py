# devbrain/core/providers.py
"""
Read-only view of the conversation / edit / feedback store.

The store itself lives elsewhere; the brain chain only needs a handful of
queries, all of which may be slow or fail and are therefore awaited under a
timeout by the caller.
"""
from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConversationTurn(BaseModel):
    role: str  # "user" | "assistant"
    content: str
    created_at: datetime = Field(default_factory=_utcnow)


class EditRecord(BaseModel):
    file_path: str
    language: Optional[str] = None
    edit_type: str = "modify"
    lines_changed: int = 0
    created_at: datetime = Field(default_factory=_utcnow)


class AcceptanceStats(BaseModel):
    accepted: int = 0
    rejected: int = 0

    @property
    def total(self) -> int:
        return self.accepted + self.rejected

    @property
    def rate(self) -> Optional[float]:
        if self.total == 0:
            return None
        return self.accepted / self.total


@runtime_checkable
class ConversationDataProvider(Protocol):
    async def conversation_history(self, conversation_id: str, limit: int) -> List[ConversationTurn]: ...

    async def recent_edits(self, user_id: str, limit: int) -> List[EditRecord]: ...

    async def acceptance_stats(self, user_id: str) -> AcceptanceStats: ...


class NullDataProvider:
    """No backing store: every query is empty."""

    async def conversation_history(self, conversation_id: str, limit: int) -> List[ConversationTurn]:
        return []

    async def recent_edits(self, user_id: str, limit: int) -> List[EditRecord]:
        return []

    async def acceptance_stats(self, user_id: str) -> AcceptanceStats:
        return AcceptanceStats()


class InMemoryDataProvider:
    """Dict-backed provider for embedding and tests."""

    def __init__(self) -> None:
        self.history: Dict[str, List[ConversationTurn]] = defaultdict(list)
        self.edits: Dict[str, List[EditRecord]] = defaultdict(list)
        self.acceptance: Dict[str, AcceptanceStats] = {}

    def add_turn(self, conversation_id: str, role: str, content: str) -> None:
        self.history[conversation_id].append(ConversationTurn(role=role, content=content))

    def add_edit(self, user_id: str, edit: EditRecord) -> None:
        self.edits[user_id].append(edit)

    def record_feedback(self, user_id: str, *, accepted: bool) -> None:
        stats = self.acceptance.setdefault(user_id, AcceptanceStats())
        if accepted:
            stats.accepted += 1
        else:
            stats.rejected += 1

    async def conversation_history(self, conversation_id: str, limit: int) -> List[ConversationTurn]:
        return list(self.history.get(conversation_id, [])[-limit:]) if limit > 0 else []

    async def recent_edits(self, user_id: str, limit: int) -> List[EditRecord]:
        return list(self.edits.get(user_id, [])[-limit:]) if limit > 0 else []

    async def acceptance_stats(self, user_id: str) -> AcceptanceStats:
        return self.acceptance.get(user_id, AcceptanceStats()).model_copy()
