from .stage import Stage, StageRegistry
from .executor import ChainExecutor
from .conductor import ConductorStage
from .dynamic_context import DynamicContextStage
from .tool_policy import ToolPolicyStage, ToolExecutionStage
from .emotional import EmotionalContextStage, TheoryOfMindStage, EmotionalToneStage
from .draft import DraftStage
from .judge import JudgeRefineStage, DraftJudge
from .simulation import MentalSimulationStage

__all__ = [
    "Stage",
    "StageRegistry",
    "ChainExecutor",
    "ConductorStage",
    "DynamicContextStage",
    "ToolPolicyStage",
    "ToolExecutionStage",
    "EmotionalContextStage",
    "TheoryOfMindStage",
    "EmotionalToneStage",
    "DraftStage",
    "JudgeRefineStage",
    "DraftJudge",
    "MentalSimulationStage",
]
