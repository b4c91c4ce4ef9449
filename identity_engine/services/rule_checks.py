"""Rule-based claim checks: near-duplicate detection, required fields, sampling.

None of these checks call a model, so they run on every evaluation.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Sequence

from identity_engine.core.config.scoring import get_scoring_value
from identity_engine.schemas import Claim, ClaimIssue
from identity_engine.semantic.similarity import cosine_similarity, jaro_winkler

logger = logging.getLogger(__name__)

_FOUNDER_PATTERN = re.compile(r"^(?:co-?\s?)?found(?:ed|er of)\s+(?P<entity>.+)$", re.IGNORECASE)
_AWS_PATTERN = re.compile(r"^aws\s+(?P<service>.+)$", re.IGNORECASE)
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _normalize_label(label: str) -> str:
    return " ".join((label or "").lower().split())


def _created_at(claim: Claim) -> datetime:
    value = claim.created_at
    if value is None:
        return _EPOCH
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _pattern_rule(pattern: re.Pattern[str], group: str, left: str, right: str) -> bool | None:
    left_match = pattern.match(left)
    right_match = pattern.match(right)
    if not left_match and not right_match:
        return None
    if not left_match or not right_match:
        return False
    return left_match.group(group).strip() == right_match.group(group).strip()


def exclusion_verdict(left_label: str, right_label: str) -> bool | None:
    """Decide a pair from label heuristics alone.

    Returns True or False when a heuristic settles the pair, None when the
    similarity checks should decide.
    """
    left = _normalize_label(left_label)
    right = _normalize_label(right_label)

    founder = _pattern_rule(_FOUNDER_PATTERN, "entity", left, right)
    if founder is not None:
        return founder

    aws = _pattern_rule(_AWS_PATTERN, "service", left, right)
    if aws is not None:
        return aws

    short_length = int(get_scoring_value("dedup.short_label_length", 10))
    if len(left) < short_length or len(right) < short_length:
        return left == right

    return None


def is_duplicate_pair(left: Claim, right: Claim) -> bool:
    verdict = exclusion_verdict(left.label, right.label)
    if verdict is not None:
        return verdict

    jw_threshold = float(get_scoring_value("dedup.jaro_winkler_threshold", 0.92))
    if jaro_winkler(_normalize_label(left.label), _normalize_label(right.label)) >= jw_threshold:
        return True

    if left.embedding and right.embedding:
        cosine_threshold = float(get_scoring_value("dedup.cosine_threshold", 0.70))
        return cosine_similarity(left.embedding, right.embedding) >= cosine_threshold

    return False


def find_duplicates(claims: Sequence[Claim]) -> list[ClaimIssue]:
    """Flag the newer claim of every near-duplicate pair of the same type."""
    issues: list[ClaimIssue] = []
    processed: set[str] = set()

    for i, first in enumerate(claims):
        if first.id in processed:
            continue
        for second in claims[i + 1 :]:
            if second.id in processed or first.id in processed:
                continue
            if first.type != second.type:
                continue
            if not is_duplicate_pair(first, second):
                continue

            if _created_at(first) > _created_at(second):
                duplicate, original = first, second
            else:
                duplicate, original = second, first

            issues.append(
                ClaimIssue(
                    claim_id=duplicate.id,
                    issue_type="duplicate",
                    severity="warning",
                    message=f'Possible duplicate of "{original.label}"',
                    related_claim_id=original.id,
                )
            )
            processed.add(duplicate.id)

    if issues:
        logger.info("duplicate_claims_found count=%s claims=%s", len(issues), len(claims))
    return issues


def find_missing_fields(claims: Sequence[Claim]) -> list[ClaimIssue]:
    issues: list[ClaimIssue] = []
    for claim in claims:
        if not claim.type:
            issues.append(
                ClaimIssue(
                    claim_id=claim.id,
                    issue_type="missing_field",
                    severity="error",
                    message="Claim is missing a type (skill, achievement, attribute, education, or certification)",
                )
            )
        if not (claim.label or "").strip():
            issues.append(
                ClaimIssue(
                    claim_id=claim.id,
                    issue_type="missing_field",
                    severity="error",
                    message="Claim is missing a label",
                )
            )
    return issues


def run_rule_checks(claims: Sequence[Claim]) -> list[ClaimIssue]:
    return [*find_duplicates(claims), *find_missing_fields(claims)]


def sample_claims_for_eval(claims: Sequence[Claim], max_count: int = 5) -> list[Claim]:
    """Pick the claims most in need of a grounding check: least evidence first, then newest."""
    if max_count <= 0:
        return []
    if len(claims) <= max_count:
        return list(claims)

    ordered = sorted(
        claims,
        key=lambda claim: (claim.evidence_count, -_created_at(claim).timestamp()),
    )
    return ordered[:max_count]
