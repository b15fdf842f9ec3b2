# devbrain/schemas/plan.py
from __future__ import annotations

import enum
from typing import FrozenSet, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Strategy(str, enum.Enum):
    FAST_RECALL = "fast_recall"
    BALANCED = "balanced"
    SLOW_REASONING = "slow_reasoning"

    def escalate(self) -> "Strategy":
        if self is Strategy.FAST_RECALL:
            return Strategy.BALANCED
        return Strategy.SLOW_REASONING


class Intent(str, enum.Enum):
    CALCULATION = "calculation"
    DEBUG = "debug"
    REFACTOR = "refactor"
    IMPLEMENTATION = "implementation"
    EXPLANATION = "explanation"
    TESTING = "testing"
    GENERAL = "general"


class FocusArea(str, enum.Enum):
    DEBUG = "debug"
    REFACTOR = "refactor"
    TESTING = "testing"
    ARCHITECTURE = "architecture"
    PERFORMANCE = "performance"
    SECURITY = "security"
    IMPLEMENTATION = "implementation"
    GENERAL = "general"


class AgentPlan(BaseModel):
    """Strategy and stage/tool selection for one request. Read-only after the conductor writes it."""

    model_config = ConfigDict(frozen=True)

    strategy: Strategy = Strategy.BALANCED
    selected_brains: Tuple[str, ...] = ()
    tool_allow_list: FrozenSet[str] = frozenset()

    intent: Intent = Intent.GENERAL
    focus_area: FocusArea = FocusArea.GENERAL
    complexity: int = Field(5, ge=1, le=10)
    ambiguity: int = Field(5, ge=1, le=10)
    confidence: float = Field(0.5, ge=0.0, le=1.0)
    fast_path: bool = False
    reasoning: str = ""

    @field_validator("selected_brains", mode="before")
    @classmethod
    def _ordered_unique(cls, v):
        seen = []
        for name in v or ():
            if name not in seen:
                seen.append(name)
        return tuple(seen)

    def allows(self, tool_id: str) -> bool:
        return tool_id in self.tool_allow_list
