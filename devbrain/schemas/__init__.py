from .emotion import EmotionalState, EmotionalContext, UserMentalModel
from .plan import AgentPlan, Strategy, Intent, FocusArea
from .scenario import ResponseScenario
from .chain import (
    ChainState,
    StageStatus,
    StageOutcome,
    StageRecord,
    CheckResult,
    JudgeReport,
    ToolCallStatus,
    ToolCallOutcome,
    ToolRejection,
    Explainability,
    ProcessResult,
)

__all__ = [
    "EmotionalState",
    "EmotionalContext",
    "UserMentalModel",
    "AgentPlan",
    "Strategy",
    "Intent",
    "FocusArea",
    "ResponseScenario",
    "ChainState",
    "StageStatus",
    "StageOutcome",
    "StageRecord",
    "CheckResult",
    "JudgeReport",
    "ToolCallStatus",
    "ToolCallOutcome",
    "ToolRejection",
    "Explainability",
    "ProcessResult",
]
