from __future__ import annotations

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from .evidence import SourceType

ClaimType = Literal["skill", "achievement", "attribute", "education", "certification"]
StrengthLevel = Literal["weak", "medium", "strong"]

CLAIM_TYPES: frozenset[str] = frozenset({"skill", "achievement", "attribute", "education", "certification"})


class Claim(BaseModel):
    id: str
    user_id: str | None = None
    type: ClaimType | None = None
    label: str
    description: str | None = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    embedding: list[float] | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    evidence_count: int = 0


class CandidateClaim(BaseModel):
    id: str
    type: str
    label: str
    description: str | None = None
    confidence: float = 0.0
    similarity: float = 0.0


class ClaimEvidenceLink(BaseModel):
    claim_id: str
    evidence_id: str
    strength: StrengthLevel = "medium"


class LinkedEvidence(BaseModel):
    evidence_id: str
    text: str = ""
    strength: str = "medium"
    source_type: SourceType | str = "resume"
    evidence_date: date | datetime | None = None


class ClaimWithEvidence(BaseModel):
    id: str
    type: str | None = None
    label: str
    description: str | None = None
    evidence: list[LinkedEvidence] = Field(default_factory=list)


class NewClaimProposal(BaseModel):
    type: ClaimType
    label: str = Field(min_length=1)
    description: str = ""

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("label")
    @classmethod
    def _strip_label(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("label must not be blank")
        return stripped


class BatchDecision(BaseModel):
    evidence_id: str = Field(min_length=1)
    match: str | None = None
    strength: StrengthLevel = "medium"
    new_claim: NewClaimProposal | None = None

    @field_validator("strength", mode="before")
    @classmethod
    def _normalize_strength(cls, value: object) -> str:
        normalized = str(value or "").strip().lower()
        if normalized not in {"weak", "medium", "strong"}:
            return "medium"
        return normalized

    @field_validator("match", mode="before")
    @classmethod
    def _blank_match_is_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value
