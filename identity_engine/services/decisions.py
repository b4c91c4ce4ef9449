from __future__ import annotations

import logging
from typing import Any, Protocol, Sequence

from pydantic import ValidationError

from identity_engine.schemas import EVIDENCE_TO_CLAIM_TYPE, BatchDecision, CandidateClaim, Evidence
from identity_engine.services.llm import LLMError, json_completion_required

logger = logging.getLogger(__name__)

BATCH_SYSTEM_PROMPT = (
    "You are an identity synthesizer. Given multiple evidence items and existing claims, determine if each "
    "evidence supports an existing claim or requires a new one. Return ONLY a valid JSON object with one "
    "decision per evidence item."
)


class EvidenceDecider(Protocol):
    def decide(self, existing_claims: Sequence[CandidateClaim], evidence_items: Sequence[Evidence]) -> list[BatchDecision]:
        """Return at most one decision per evidence item; raise when the call itself fails."""


def build_batch_prompt(evidence_items: Sequence[Evidence], existing_claims: Sequence[CandidateClaim]) -> str:
    if existing_claims:
        claims_list = "\n".join(
            f'{i + 1}. "{claim.label}" ({claim.type}) - {claim.description or "No description"}'
            for i, claim in enumerate(existing_claims)
        )
    else:
        claims_list = "No existing claims yet."

    evidence_list = "\n".join(
        f'{i + 1}. [ID: {item.id}] "{item.text}" (type: {item.kind} -> {EVIDENCE_TO_CLAIM_TYPE[item.kind]})'
        for i, item in enumerate(evidence_items)
    )

    return f"""For each evidence item, determine if it matches an existing claim or needs a new one.

EXISTING CLAIMS:
{claims_list}

EVIDENCE ITEMS:
{evidence_list}

Rules:
1. If evidence clearly supports an existing claim, return match with the claim's exact label
2. If evidence is new capability/achievement/trait/degree/cert, create a new claim
3. New claim labels: concise (2-4 words), semantic, reusable
4. Strength: "strong" = direct evidence, "medium" = related, "weak" = tangential
5. Respect evidence type -> claim type mapping shown in parentheses

Return a JSON object with EXACTLY {len(evidence_items)} decisions, one per evidence item:
{{
  "decisions": [
    {{
      "evidence_id": "id-from-above",
      "match": "Exact label" or null,
      "strength": "weak" | "medium" | "strong",
      "new_claim": null or {{"type": "skill|achievement|attribute|education|certification", "label": "...", "description": "..."}}
    }}
  ]
}}"""


def _decision_items(payload: Any) -> list[Any]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        items = payload.get("decisions")
        if isinstance(items, list):
            return items
    return []


def parse_batch_decisions(payload: Any, evidence_ids: Sequence[str]) -> list[BatchDecision]:
    """Validate raw decisions. Malformed items are dropped, never raised."""
    known_ids = set(evidence_ids)
    seen: set[str] = set()
    decisions: list[BatchDecision] = []

    items = _decision_items(payload)
    if not items:
        logger.warning("batch_decisions_missing payload_type=%s", type(payload).__name__)

    for raw in items:
        try:
            decision = BatchDecision.model_validate(raw)
        except ValidationError as exc:
            logger.warning("batch_decision_invalid errors=%s", exc.error_count())
            continue
        if decision.evidence_id not in known_ids:
            logger.warning("batch_decision_unknown_evidence evidence_id=%s", decision.evidence_id)
            continue
        if decision.evidence_id in seen:
            logger.warning("batch_decision_repeated evidence_id=%s", decision.evidence_id)
            continue
        seen.add(decision.evidence_id)
        decisions.append(decision)

    return decisions


class LLMEvidenceDecider(EvidenceDecider):
    def __init__(self, operation: str = "synthesize_claims", max_output_tokens: int = 2000) -> None:
        self.operation = operation
        self.max_output_tokens = max_output_tokens

    def decide(self, existing_claims: Sequence[CandidateClaim], evidence_items: Sequence[Evidence]) -> list[BatchDecision]:
        if not evidence_items:
            return []
        payload = json_completion_required(
            system_prompt=BATCH_SYSTEM_PROMPT,
            user_prompt=build_batch_prompt(evidence_items, existing_claims),
            operation=self.operation,
            temperature=0.0,
            max_output_tokens=self.max_output_tokens,
        )
        decisions = parse_batch_decisions(payload, [item.id for item in evidence_items])
        if not decisions:
            raise LLMError("No usable decisions in synthesis response.", code="llm_invalid")
        return decisions
