# devbrain/core/errors.py
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..schemas.chain import ToolRejection


class DevBrainError(Exception):
    """Base class for everything this package raises on purpose."""


class ContextKeyMissingError(DevBrainError, KeyError):
    """A stage read a RequestContext key that no earlier stage wrote."""

    def __init__(self, key: str, *, reader: str | None = None) -> None:
        self.key = key
        self.reader = reader
        who = f" (read by {reader})" if reader else ""
        super().__init__(f"context key {key!r} read before it was written{who}")

    def __str__(self) -> str:
        return self.args[0]


class ContextKeyLockedError(DevBrainError):
    """A write-once RequestContext key was written a second time."""

    def __init__(self, key: str, *, owner: str, writer: str | None = None) -> None:
        self.key = key
        self.owner = owner
        self.writer = writer
        super().__init__(f"context key {key!r} is write-once (owned by {owner}, rewrite by {writer})")


class ToolPolicyViolation(DevBrainError):
    """A required tool call was outside the allow-list and had no allowed fallback."""

    def __init__(self, rejection: "ToolRejection") -> None:
        self.rejection = rejection
        super().__init__(f"tool {rejection.tool_id!r} rejected: {rejection.reason}")


class CompletionError(DevBrainError):
    """The text-completion backend failed to produce a response."""


class MentalModelLockError(DevBrainError):
    """Per-user lock could not be acquired after retrying with backoff."""

    def __init__(self, user_id: str, *, attempts: int) -> None:
        self.user_id = user_id
        self.attempts = attempts
        super().__init__(f"could not lock mental model for user={user_id} after {attempts} attempts")
