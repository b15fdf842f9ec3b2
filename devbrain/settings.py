# devbrain/settings.py
from typing import Dict

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_weights() -> Dict[str, float]:
    return {
        "clarity": 0.35,
        "relevance": 0.30,
        "empathy_fit": 0.20,
        "risk_of_misunderstanding": 0.15,
    }


class Settings(BaseSettings):
    # --- Service identity ---
    service_name: str = Field("devbrain", alias="SERVICE_NAME")
    service_version: str = Field("0.1.0", alias="SERVICE_VERSION")
    log_level: str = Field("INFO", alias="DEVBRAIN_LOG_LEVEL")

    # --- Completion backend ---
    llm_base_url: str = Field("http://localhost:8088", alias="DEVBRAIN_LLM_BASE_URL")
    llm_model: str = Field("mistral:instruct", alias="DEVBRAIN_LLM_MODEL")
    llm_timeout_sec: float = Field(30.0, alias="DEVBRAIN_LLM_TIMEOUT_SEC")
    llm_retries: int = Field(2, alias="DEVBRAIN_LLM_RETRIES")
    llm_backoff_sec: float = Field(0.25, alias="DEVBRAIN_LLM_BACKOFF_SEC")

    # --- External lookups ---
    provider_timeout_sec: float = Field(2.0, alias="DEVBRAIN_PROVIDER_TIMEOUT_SEC")
    tool_timeout_sec: float = Field(10.0, alias="DEVBRAIN_TOOL_TIMEOUT_SEC")
    history_limit: int = Field(10, alias="DEVBRAIN_HISTORY_LIMIT")

    # --- Judge / refine loop ---
    max_refine_iterations: int = Field(3, alias="DEVBRAIN_MAX_REFINE_ITERATIONS", ge=1)
    judge_min_clarity: float = Field(0.6, alias="DEVBRAIN_JUDGE_MIN_CLARITY", ge=0.0, le=1.0)
    judge_min_relevance: float = Field(0.5, alias="DEVBRAIN_JUDGE_MIN_RELEVANCE", ge=0.0, le=1.0)
    judge_min_factual: float = Field(0.6, alias="DEVBRAIN_JUDGE_MIN_FACTUAL", ge=0.0, le=1.0)
    judge_min_helpfulness: float = Field(0.5, alias="DEVBRAIN_JUDGE_MIN_HELPFULNESS", ge=0.0, le=1.0)

    # --- Mental model cache ---
    mental_decay: float = Field(0.6, alias="DEVBRAIN_MENTAL_DECAY")
    mental_cache_max_users: int = Field(10_000, alias="DEVBRAIN_MENTAL_CACHE_MAX_USERS", ge=1)
    lock_timeout_sec: float = Field(0.5, alias="DEVBRAIN_LOCK_TIMEOUT_SEC")
    lock_retries: int = Field(3, alias="DEVBRAIN_LOCK_RETRIES")
    lock_backoff_sec: float = Field(0.05, alias="DEVBRAIN_LOCK_BACKOFF_SEC")
    # last, longest wait before an update is given up on
    lock_max_wait_sec: float = Field(5.0, alias="DEVBRAIN_LOCK_MAX_WAIT_SEC", ge=0.0)

    # --- Scenario simulation ---
    scenario_weights: Dict[str, float] = Field(
        default_factory=_default_weights,
        alias="DEVBRAIN_SCENARIO_WEIGHTS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("mental_decay")
    @classmethod
    def _decay_in_open_interval(cls, v: float) -> float:
        if not 0.0 < v < 1.0:
            raise ValueError("mental_decay must lie strictly between 0 and 1")
        return v

    @model_validator(mode="after")
    def _weights_sum_to_one(self) -> "Settings":
        weights = self.scenario_weights
        if not weights:
            raise ValueError("scenario_weights must not be empty")
        if any(w < 0 for w in weights.values()):
            raise ValueError("scenario_weights must be non-negative")
        if abs(sum(weights.values()) - 1.0) > 1e-6:
            raise ValueError(f"scenario_weights must sum to 1.0 (got {sum(weights.values()):.6f})")
        return self


settings = Settings()
