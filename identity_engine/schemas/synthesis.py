from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class SynthesisProgress(BaseModel):
    current: int
    total: int


class ClaimUpdate(BaseModel):
    action: Literal["created", "matched"]
    label: str


class SynthesisResult(BaseModel):
    claims_created: int = 0
    claims_updated: int = 0
    batches_total: int = 0
    batches_failed: int = 0
    evidence_skipped: int = 0
    cancelled: bool = False
    claim_updates: list[ClaimUpdate] = Field(default_factory=list)
