# devbrain/schemas/chain.py
from __future__ import annotations

import enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field

from .scenario import ResponseScenario


class ChainState(str, enum.Enum):
    INIT = "init"
    RUNNING = "running"
    DONE = "done"
    REJECTED = "rejected"
    DEGRADED = "degraded"

    @property
    def terminal(self) -> bool:
        return self in (ChainState.DONE, ChainState.REJECTED, ChainState.DEGRADED)


class StageStatus(str, enum.Enum):
    OK = "ok"
    SKIPPED = "skipped"
    DEGRADED = "degraded"
    REJECTED = "rejected"
    FAILED = "failed"


class StageOutcome(BaseModel):
    status: StageStatus = StageStatus.OK
    note: str = ""

    @classmethod
    def ok(cls, note: str = "") -> "StageOutcome":
        return cls(status=StageStatus.OK, note=note)

    @classmethod
    def degraded(cls, note: str) -> "StageOutcome":
        return cls(status=StageStatus.DEGRADED, note=note)

    @classmethod
    def rejected(cls, note: str) -> "StageOutcome":
        return cls(status=StageStatus.REJECTED, note=note)


class StageRecord(BaseModel):
    name: str
    order: int
    status: StageStatus
    duration_ms: float = 0.0
    note: str = ""


# --- Judge ---


class CheckResult(BaseModel):
    name: str
    score: float = Field(..., ge=0.0, le=1.0)
    threshold: float = Field(..., ge=0.0, le=1.0)
    issue: Optional[str] = None

    @property
    def passed(self) -> bool:
        return self.score >= self.threshold


class JudgeReport(BaseModel):
    iterations: int = 0
    passed: bool = False
    history: List[List[CheckResult]] = Field(default_factory=list)

    @property
    def last_checks(self) -> List[CheckResult]:
        return self.history[-1] if self.history else []

    @property
    def quality(self) -> float:
        checks = self.last_checks
        if not checks:
            return 0.0
        return sum(c.score for c in checks) / len(checks)


# --- Tools ---


class ToolCallStatus(str, enum.Enum):
    EXECUTED = "executed"
    REJECTED = "rejected"
    FAILED = "failed"


class ToolRejection(BaseModel):
    tool_id: str
    reason: str
    allow_list: List[str] = Field(default_factory=list)
    requested_by: str = ""


class ToolCallOutcome(BaseModel):
    tool_id: str
    status: ToolCallStatus
    result: Any = None
    error: Optional[str] = None
    substituted_from: Optional[str] = None
    rejection: Optional[ToolRejection] = None


# --- Result surface ---


class Explainability(BaseModel):
    selected_scenario: Optional[ResponseScenario] = None
    predicted_reaction: Optional[str] = None
    degraded: bool = False
    rejections: List[ToolRejection] = Field(default_factory=list)
    judge: Optional[JudgeReport] = None
    stages: List[StageRecord] = Field(default_factory=list)


class ProcessResult(BaseModel):
    trace_id: str
    final_text: str
    state: ChainState
    explainability: Explainability = Field(default_factory=Explainability)
