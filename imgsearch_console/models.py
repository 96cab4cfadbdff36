"""Pydantic schemas for the remote image-embedding service responses."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

# -- Training -----------------------------------------------------------------


class TrainStartResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    job_id: str | None = None

    @field_validator("job_id", mode="before")
    @classmethod
    def _coerce_job_id(cls, v: Any) -> Any:
        if v is None or v == "":
            return None
        if isinstance(v, (int, str)) and not isinstance(v, bool):
            return str(v)
        return v


class TrainStatusResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    status: str | None = None
    progress: float = Field(0.0, description="Percent complete, 0-100")
    processed: int = Field(0, ge=0)
    total: int = Field(0, ge=0)
    message: str | None = None

    @field_validator("progress", "processed", "total", mode="before")
    @classmethod
    def _null_is_zero(cls, v: Any) -> Any:
        return 0 if v is None else v

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower() or None
        return v


# -- Search -------------------------------------------------------------------


class SearchHit(BaseModel):
    model_config = ConfigDict(extra="ignore")

    path: str = Field(..., min_length=1)
    score: float


SEARCH_HITS = TypeAdapter(list[SearchHit])
