from __future__ import annotations

import json
import logging
from typing import Any, Protocol, Sequence

from pydantic import ValidationError

from identity_engine.schemas import ClaimIssue, ClaimWithEvidence, GroundingVerdict
from identity_engine.services.llm import LLMError, json_completion_required

logger = logging.getLogger(__name__)

NOT_GROUNDED_MESSAGE = "Claim is not supported by evidence"
UNEVALUATED_MESSAGE = "Could not verify this claim - AI evaluation failed"

GROUNDING_SYSTEM_PROMPT = "You are evaluating identity claims for grounding AND semantic quality. Respond with JSON only."

GROUNDING_PROMPT_TEMPLATE = """Claims to evaluate:
{claims_json}

Each claim includes:
- label: the claim name (e.g., "React Development")
- description: what the user claims
- evidence: supporting evidence texts with their strength ratings

For each claim, check TWO things:

1. GROUNDING: Is the claim supported by evidence?
   - grounded = true if evidence reasonably supports the claim
   - grounded = false if the claim overstates, misrepresents, or lacks evidence

2. QUALITY: Is this a meaningful professional identity claim?
   - quality_issue = null if the claim represents a real skill, achievement, or attribute
   - quality_issue = short explanation if the claim is problematic

Flag as low quality:
- Raw metrics restated as claims ("Delivered Commits", "Wrote Lines of Code")
- Generic activity verbs ("Worked on Projects", "Used Tools")
- Metrics without abstraction ("High Commit Count" instead of "High Development Velocity")
- Non-transferable specifics ("411 Commits in 13 Days" is evidence, not a claim)

Do not flag skills ("PostgreSQL"), achievements ("Led Team of 5"), attributes
("Quality-Focused Engineering") or roles ("Technical Leadership").

Return:
{{
  "evaluations": [
    {{"claim_id": "id", "grounded": true, "quality_issue": null}}
  ]
}}"""


class GroundingEvaluator(Protocol):
    def evaluate(self, claims: Sequence[ClaimWithEvidence]) -> list[GroundingVerdict]:
        """Return one verdict per claim; raise when the evaluation itself fails."""


def build_grounding_prompt(claims: Sequence[ClaimWithEvidence]) -> str:
    claims_for_prompt = [
        {
            "id": claim.id,
            "label": claim.label,
            "description": claim.description,
            "evidence": [{"text": item.text, "strength": item.strength} for item in claim.evidence],
        }
        for claim in claims
    ]
    return GROUNDING_PROMPT_TEMPLATE.format(claims_json=json.dumps(claims_for_prompt, indent=2))


def parse_grounding_verdicts(payload: Any) -> list[GroundingVerdict]:
    items = payload.get("evaluations") if isinstance(payload, dict) else None
    if not isinstance(items, list):
        raise LLMError("Grounding response has no evaluations list.", code="llm_invalid")

    verdicts: list[GroundingVerdict] = []
    for raw in items:
        try:
            verdicts.append(GroundingVerdict.model_validate(raw))
        except ValidationError as exc:
            logger.warning("grounding_verdict_invalid errors=%s", exc.error_count())
    return verdicts


class LLMGroundingEvaluator(GroundingEvaluator):
    def __init__(self, operation: str = "claim_eval", max_output_tokens: int = 2000) -> None:
        self.operation = operation
        self.max_output_tokens = max_output_tokens

    def evaluate(self, claims: Sequence[ClaimWithEvidence]) -> list[GroundingVerdict]:
        if not claims:
            return []
        payload = json_completion_required(
            system_prompt=GROUNDING_SYSTEM_PROMPT,
            user_prompt=build_grounding_prompt(claims),
            operation=self.operation,
            temperature=0.0,
            max_output_tokens=self.max_output_tokens,
        )
        return parse_grounding_verdicts(payload)


def verdicts_to_issues(verdicts: Sequence[GroundingVerdict], claim_ids: set[str]) -> list[ClaimIssue]:
    issues: list[ClaimIssue] = []
    for verdict in verdicts:
        if verdict.claim_id not in claim_ids:
            logger.warning("grounding_verdict_unknown_claim claim_id=%s", verdict.claim_id)
            continue
        if not verdict.grounded:
            issues.append(
                ClaimIssue(
                    claim_id=verdict.claim_id,
                    issue_type="not_grounded",
                    severity="warning",
                    message=verdict.issue or NOT_GROUNDED_MESSAGE,
                )
            )
        # a claim can be grounded and still be low quality
        if verdict.quality_issue:
            issues.append(
                ClaimIssue(
                    claim_id=verdict.claim_id,
                    issue_type="low_quality",
                    severity="warning",
                    message=verdict.quality_issue,
                )
            )
    return issues


def run_claim_grounding_eval(
    claims: Sequence[ClaimWithEvidence],
    evaluator: GroundingEvaluator,
) -> list[ClaimIssue]:
    """Ask the evaluator about each claim; a failed call marks every claim unevaluated."""
    if not claims:
        return []

    try:
        verdicts = evaluator.evaluate(claims)
    except Exception as exc:  # noqa: BLE001
        logger.warning("claim_grounding_failed claims=%s: %s", len(claims), exc)
        return [
            ClaimIssue(claim_id=claim.id, issue_type="unevaluated", severity="warning", message=UNEVALUATED_MESSAGE)
            for claim in claims
        ]

    return verdicts_to_issues(verdicts, {claim.id for claim in claims})
