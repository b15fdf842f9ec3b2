# devbrain/schemas/emotion.py
from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import List, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _clamp01(v: object) -> float:
    try:
        x = float(v)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0
    if x != x:  # NaN
        return 0.0
    return max(0.0, min(1.0, x))


class EmotionalState(str, enum.Enum):
    FRUSTRATED = "frustrated"
    CONFUSED = "confused"
    CONFIDENT = "confident"
    RUSHED = "rushed"
    CURIOUS = "curious"
    NEUTRAL = "neutral"
    POSITIVE = "positive"
    NEGATIVE = "negative"
    URGENT = "urgent"


class EmotionalContext(BaseModel):
    """Emotional signal detected for one inbound message. Frozen once built."""

    model_config = ConfigDict(frozen=True)

    current_state: EmotionalState = EmotionalState.NEUTRAL
    emotional_intensity: float = 0.0
    frustration_level: float = 0.0
    urgency_level: float = 0.0
    confidence_level: float = 0.0
    confusion_level: float = 0.0
    learning_intent: bool = False
    trigger_keywords: Tuple[str, ...] = ()
    recommended_tone: str = "neutral"

    @field_validator("current_state", mode="before")
    @classmethod
    def _state_never_null(cls, v):
        return EmotionalState.NEUTRAL if v is None else v

    @field_validator(
        "emotional_intensity",
        "frustration_level",
        "urgency_level",
        "confidence_level",
        "confusion_level",
        mode="before",
    )
    @classmethod
    def _clamp(cls, v):
        return _clamp01(v)

    @classmethod
    def neutral(cls) -> "EmotionalContext":
        return cls()

    def needs_empathy(self) -> bool:
        return self.current_state in (
            EmotionalState.FRUSTRATED,
            EmotionalState.CONFUSED,
            EmotionalState.NEGATIVE,
        )


class UserMentalModel(BaseModel):
    """
    Longitudinal estimate of one user's state.
    Owned by MentalStateInferencer; callers only ever receive copies.
    """

    user_id: str
    confusion_level: float = 0.0
    frustration_level: float = 0.0
    last_updated: datetime = Field(default_factory=_utcnow)

    knowledge_level: int = Field(2, ge=1, le=5)
    expertise_areas: List[str] = Field(default_factory=list)
    knowledge_gaps: List[str] = Field(default_factory=list)
    learning_style: str = "balanced"
    interaction_count: int = 0
    model_confidence: float = 0.5

    @field_validator("confusion_level", "frustration_level", "model_confidence", mode="before")
    @classmethod
    def _clamp(cls, v):
        return _clamp01(v)

    def is_confused(self) -> bool:
        return self.confusion_level > 0.6

    def is_frustrated(self) -> bool:
        return self.frustration_level > 0.6

    def summary(self) -> str:
        areas = ", ".join(self.expertise_areas) or "none yet"
        return (
            f"user={self.user_id} level={self.knowledge_level}/5 "
            f"confusion={self.confusion_level:.2f} frustration={self.frustration_level:.2f} "
            f"style={self.learning_style} expertise=[{areas}]"
        )
