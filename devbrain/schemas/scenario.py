# devbrain/schemas/scenario.py
from __future__ import annotations

from typing import Dict

from pydantic import BaseModel, Field


class ResponseScenario(BaseModel):
    style: str
    text: str
    criteria_scores: Dict[str, float] = Field(default_factory=dict)
    overall_score: float = 0.0
    generation_index: int = 0
