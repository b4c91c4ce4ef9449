"""Claim confidence scoring.

A claim's confidence is ``base(n) * mean(weight)`` capped at 0.95, where
``base`` steps up with the number of supporting evidence items and each
item's weight is ``strength * source * recency_decay``. Technical skills
decay faster than character traits; degrees and certifications never decay.

The score is always recomputed over the full evidence set of a claim.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Sequence

from identity_engine.core.config.scoring import get_scoring_value

SOURCE_WEIGHTS: dict[str, float] = {
    "certification": 1.5,
    "resume": 1.0,
    "story": 0.8,
    "inferred": 0.6,
}

CLAIM_HALF_LIVES: dict[str, float] = {
    "skill": 4.0,
    "achievement": 7.0,
    "attribute": 15.0,
    "education": math.inf,
    "certification": math.inf,
}

STRENGTH_MULTIPLIERS: dict[str, float] = {
    "strong": 1.2,
    "medium": 1.0,
    "weak": 0.7,
}

BASE_CONFIDENCE: tuple[float, ...] = (0.5, 0.7, 0.8, 0.9)
MAX_CONFIDENCE = 0.95

_SECONDS_PER_YEAR = 365.25 * 24 * 60 * 60


@dataclass(frozen=True)
class EvidenceWeightInput:
    strength: str
    source_type: str
    evidence_date: date | datetime | None
    claim_type: str


def _as_utc_datetime(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def calculate_recency_decay(
    evidence_date: date | datetime | None,
    claim_type: str | None,
    reference_date: date | datetime | None = None,
) -> float:
    """Return ``0.5 ** (age_years / half_life)``; 1.0 when there is nothing to decay."""
    if evidence_date is None:
        return 1.0

    half_life = CLAIM_HALF_LIVES.get(claim_type or "", math.inf)
    if math.isinf(half_life):
        return 1.0

    reference = _as_utc_datetime(reference_date) if reference_date is not None else datetime.now(timezone.utc)
    age_years = (reference - _as_utc_datetime(evidence_date)).total_seconds() / _SECONDS_PER_YEAR
    if age_years <= 0:
        return 1.0

    return math.pow(0.5, age_years / half_life)


def get_source_weight(source_type: str | None) -> float:
    return SOURCE_WEIGHTS.get(source_type or "", 1.0)


def calculate_evidence_weight(
    evidence: EvidenceWeightInput,
    reference_date: date | datetime | None = None,
) -> float:
    strength_multiplier = STRENGTH_MULTIPLIERS.get(evidence.strength, 1.0)
    recency_decay = calculate_recency_decay(evidence.evidence_date, evidence.claim_type, reference_date)
    return strength_multiplier * get_source_weight(evidence.source_type) * recency_decay


def base_confidence(evidence_count: int) -> float:
    if evidence_count <= 0:
        return 0.0
    return BASE_CONFIDENCE[min(evidence_count, len(BASE_CONFIDENCE)) - 1]


def calculate_claim_confidence(
    evidence_items: Sequence[EvidenceWeightInput],
    reference_date: date | datetime | None = None,
) -> float:
    if not evidence_items:
        return 0.0

    if reference_date is None:
        reference_date = datetime.now(timezone.utc)

    total_weight = sum(calculate_evidence_weight(item, reference_date) for item in evidence_items)
    average_weight = total_weight / len(evidence_items)

    cap = float(get_scoring_value("confidence.max_confidence", MAX_CONFIDENCE))
    confidence = base_confidence(len(evidence_items)) * average_weight
    return max(0.0, min(confidence, cap))
