from __future__ import annotations

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field

EvidenceKind = Literal["accomplishment", "skill_listed", "trait_indicator", "education", "certification"]
SourceType = Literal["resume", "story", "certification", "inferred"]

EVIDENCE_TO_CLAIM_TYPE: dict[str, str] = {
    "skill_listed": "skill",
    "accomplishment": "achievement",
    "trait_indicator": "attribute",
    "education": "education",
    "certification": "certification",
}


class EvidenceContext(BaseModel):
    role: str | None = None
    company: str | None = None
    institution: str | None = None
    start_date: str | None = None
    end_date: str | None = None


class Evidence(BaseModel):
    id: str
    user_id: str | None = None
    text: str
    kind: EvidenceKind
    context: EvidenceContext | None = None
    source_type: SourceType = "resume"
    evidence_date: date | datetime | None = None
    embedding: list[float] = Field(default_factory=list)

    @property
    def expected_claim_type(self) -> str:
        return EVIDENCE_TO_CLAIM_TYPE[self.kind]
