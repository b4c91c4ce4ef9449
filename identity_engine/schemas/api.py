from __future__ import annotations

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field

from .evidence import EvidenceContext, EvidenceKind, SourceType
from .issues import ClaimIssue


class EvidenceIn(BaseModel):
    id: str | None = Field(default=None, max_length=200)
    text: str = Field(min_length=1, max_length=5000)
    kind: EvidenceKind
    context: EvidenceContext | None = None
    source_type: SourceType = "resume"
    evidence_date: date | datetime | None = None
    embedding: list[float] | None = None


class EvidenceCreateRequest(BaseModel):
    items: list[EvidenceIn] = Field(min_length=1, max_length=500)


class EvidenceCreateResponse(BaseModel):
    evidence_ids: list[str] = Field(default_factory=list)


class SynthesizeRequest(BaseModel):
    evidence_ids: list[str] | None = None


class ClaimOut(BaseModel):
    id: str
    type: str | None = None
    label: str
    description: str | None = None
    confidence: float
    evidence_count: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ClaimListResponse(BaseModel):
    claims: list[ClaimOut] = Field(default_factory=list)


class EvaluateRequest(BaseModel):
    document_id: str | None = None
    max_claims_for_ai_eval: int = Field(default=5, ge=0, le=50)


class IssueListResponse(BaseModel):
    issues: list[ClaimIssue] = Field(default_factory=list)


class RequirementsIn(BaseModel):
    mustHave: list[str | dict[str, Any]] = Field(default_factory=list)
    niceToHave: list[str | dict[str, Any]] = Field(default_factory=list)


class OpportunityCreateRequest(BaseModel):
    id: str | None = Field(default=None, max_length=200)
    user_id: str = Field(min_length=1, max_length=200)
    title: str = Field(default="", max_length=300)
    company: str | None = Field(default=None, max_length=300)
    requirements: RequirementsIn = Field(default_factory=RequirementsIn)


class OpportunityCreateResponse(BaseModel):
    id: str
    requirement_count: int
