"""Configuration models for the script review engine."""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator

DEFAULT_RUBRIC_WEIGHTS: dict[str, float] = {
    "structure": 0.15,
    "character": 0.15,
    "dialogue": 0.12,
    "pacing": 0.13,
    "market": 0.12,
    "cultural": 0.13,
    "platform": 0.12,
    "ethics": 0.08,
}


class ChunkingConfig(BaseModel):
    """Configures both chunking regimes.

    Token mode feeds agent context assembly (heading aware, word windows).
    Byte mode feeds raw ingestion (fixed character windows).
    """

    max_tokens: int = Field(default=800, ge=100, le=2000)
    overlap_tokens: int = Field(default=120, ge=0)
    window_chars: int = Field(default=6000, ge=1000)
    overlap_chars: int = Field(default=200, ge=0)
    max_input_chars: int = Field(default=200_000, ge=1)
    max_units: int = Field(default=500, ge=1)

    @model_validator(mode="after")
    def _check_overlaps(self) -> "ChunkingConfig":
        if self.overlap_tokens >= self.max_tokens:
            raise ValueError("overlap_tokens must be less than max_tokens")
        if self.overlap_chars >= self.window_chars:
            raise ValueError("overlap_chars must be less than window_chars")
        return self


class EmbeddingConfig(BaseModel):
    """Limits and batching for the embedding provider."""

    max_unit_chars: int = Field(default=6000, ge=1)
    batch_size: int = Field(default=64, ge=1)
    timeout_seconds: float = Field(default=30.0, gt=0.0)


class IngestionConfig(BaseModel):
    """Admission control and failure policy for ingestion runs."""

    max_concurrency: int = Field(default=3, ge=1)
    batch_pause_seconds: float = Field(default=0.2, ge=0.0)
    max_failure_rate: float = Field(default=0.5, ge=0.0, le=1.0)


class RetrievalConfig(BaseModel):
    """Result sizes for the two corpora."""

    docs_k: int = Field(default=12, ge=1)
    script_k: int = Field(default=8, ge=1)
    timeout_seconds: float = Field(default=15.0, gt=0.0)


class ReviewConfig(BaseModel):
    """Calibration policy and deadlines for a review run."""

    rubric_weights: dict[str, float] = Field(
        default_factory=lambda: dict(DEFAULT_RUBRIC_WEIGHTS)
    )
    ethics_cap: float = Field(default=5.9, ge=0.0, le=10.0)
    max_insights: int = Field(default=6, ge=2)
    agent_timeout_seconds: float = Field(default=120.0, gt=0.0)
    judge_timeout_seconds: float = Field(default=120.0, gt=0.0)
    synthesis_timeout_seconds: float = Field(default=120.0, gt=0.0)
