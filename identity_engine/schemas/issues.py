from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

IssueType = Literal["duplicate", "missing_field", "not_grounded", "low_quality", "unevaluated"]
IssueSeverity = Literal["error", "warning"]


class ClaimIssue(BaseModel):
    claim_id: str
    issue_type: IssueType
    severity: IssueSeverity
    message: str
    related_claim_id: str | None = None
    document_id: str | None = None


class GroundingVerdict(BaseModel):
    claim_id: str
    grounded: bool = True
    issue: str | None = None
    quality_issue: str | None = None


class ClaimEvalResult(BaseModel):
    issues_found: int = 0
    issues_stored: int = 0
    issues: list[ClaimIssue] = Field(default_factory=list)
