from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from .claims import CandidateClaim

RequirementCategory = Literal["mustHave", "niceToHave"]
RequirementType = Literal["education", "certification", "skill", "experience"]


class Requirement(BaseModel):
    text: str
    category: RequirementCategory
    type: RequirementType = "skill"


class RequirementMatch(BaseModel):
    requirement: Requirement
    matches: list[CandidateClaim] = Field(default_factory=list)
    best_match: CandidateClaim | None = None


class MatchResult(BaseModel):
    overall_score: int = 0
    must_have_score: int = 0
    nice_to_have_score: int = 0
    requirement_matches: list[RequirementMatch] = Field(default_factory=list)
    gaps: list[Requirement] = Field(default_factory=list)
    strengths: list[RequirementMatch] = Field(default_factory=list)


class Opportunity(BaseModel):
    id: str
    user_id: str | None = None
    title: str = ""
    company: str | None = None
    requirements: dict[str, Any] | None = None
