from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from identity_engine.core.config.scoring import get_scoring_value
from identity_engine.schemas import CandidateClaim, MatchResult, Requirement, RequirementMatch
from identity_engine.semantic.embeddings import EmbeddingProvider
from identity_engine.semantic.vector_search import SearchScope, VectorSearch
from identity_engine.storage.base import ClaimStore

logger = logging.getLogger(__name__)

VALID_CLAIM_TYPES: dict[str, frozenset[str]] = {
    "education": frozenset({"education"}),
    "certification": frozenset({"certification"}),
    "skill": frozenset({"skill", "achievement"}),
    "experience": frozenset({"skill", "achievement", "attribute"}),
}

_CATEGORIES = ("mustHave", "niceToHave")


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def normalize_requirements(payload: Mapping[str, Any] | None) -> list[Requirement]:
    """Flatten ``{"mustHave": [...], "niceToHave": [...]}`` into typed requirements.

    Items may be bare strings or ``{"text": ..., "type": ...}``; a missing
    type means ``skill``. Items that cannot be interpreted are dropped.
    """
    if not payload:
        return []

    requirements: list[Requirement] = []
    for category in _CATEGORIES:
        items = payload.get(category) or []
        if not isinstance(items, list):
            logger.warning("requirements_category_invalid category=%s type=%s", category, type(items).__name__)
            continue
        for item in items:
            if isinstance(item, str):
                text, req_type = item, "skill"
            elif isinstance(item, Mapping):
                text, req_type = item.get("text"), item.get("type") or "skill"
            else:
                logger.warning("requirement_invalid category=%s item_type=%s", category, type(item).__name__)
                continue

            if not isinstance(text, str) or not text.strip():
                logger.warning("requirement_missing_text category=%s", category)
                continue
            try:
                requirements.append(Requirement(text=text.strip(), category=category, type=str(req_type).strip().lower()))
            except ValidationError:
                logger.warning("requirement_invalid_type category=%s type=%r", category, req_type)
    return requirements


def _category_score(requirement_matches: list[RequirementMatch], category: str) -> int:
    in_category = [rm for rm in requirement_matches if rm.requirement.category == category]
    if not in_category:
        return 100
    satisfied = sum(1 for rm in in_category if rm.best_match is not None)
    return round_half_up(100 * satisfied / len(in_category))


def score_requirement_matches(requirement_matches: list[RequirementMatch]) -> MatchResult:
    if not requirement_matches:
        return MatchResult()

    must_have_score = _category_score(requirement_matches, "mustHave")
    nice_to_have_score = _category_score(requirement_matches, "niceToHave")

    must_weight = float(get_scoring_value("matching.weights.must_have", 0.7))
    nice_weight = float(get_scoring_value("matching.weights.nice_to_have", 0.3))
    overall_score = round_half_up(must_have_score * must_weight + nice_to_have_score * nice_weight)

    strength_threshold = float(get_scoring_value("matching.strength_threshold", 0.4))
    gaps = [rm.requirement for rm in requirement_matches if rm.best_match is None]
    strengths = sorted(
        (rm for rm in requirement_matches if rm.best_match is not None and rm.best_match.similarity > strength_threshold),
        key=lambda rm: rm.best_match.similarity if rm.best_match else 0.0,
        reverse=True,
    )

    return MatchResult(
        overall_score=overall_score,
        must_have_score=must_have_score,
        nice_to_have_score=nice_to_have_score,
        requirement_matches=requirement_matches,
        gaps=gaps,
        strengths=strengths,
    )


class OpportunityMatcher:
    def __init__(self, store: ClaimStore, embedder: EmbeddingProvider, vector_search: VectorSearch) -> None:
        self.store = store
        self.embedder = embedder
        self.vector_search = vector_search

    def compute_match(self, opportunity_id: str, user_id: str) -> MatchResult:
        opportunity = self.store.get_opportunity(opportunity_id)
        if opportunity is None or not opportunity.requirements:
            return MatchResult()
        return self.match_requirements(opportunity.requirements, user_id)

    def match_requirements(self, requirements_payload: Mapping[str, Any] | None, user_id: str) -> MatchResult:
        requirements = normalize_requirements(requirements_payload)
        if not requirements:
            return MatchResult()

        try:
            embeddings = self.embedder.embed([req.text for req in requirements])
        except Exception as exc:  # noqa: BLE001
            logger.warning("requirement_embedding_failed user=%s count=%s: %s", user_id, len(requirements), exc)
            embeddings = []
        if len(embeddings) != len(requirements):
            embeddings = [[] for _ in requirements]

        scope = SearchScope(
            user_id=user_id,
            similarity_threshold=float(get_scoring_value("matching.similarity_threshold", 0.4)),
            max_results=int(get_scoring_value("matching.max_candidates", 10)),
        )
        requirement_matches = [
            self._match_requirement(requirement, embedding, scope)
            for requirement, embedding in zip(requirements, embeddings)
        ]
        result = score_requirement_matches(requirement_matches)
        logger.info(
            "opportunity_match user=%s requirements=%s overall=%s must=%s nice=%s",
            user_id,
            len(requirements),
            result.overall_score,
            result.must_have_score,
            result.nice_to_have_score,
        )
        return result

    def _match_requirement(
        self,
        requirement: Requirement,
        embedding: list[float],
        scope: SearchScope,
    ) -> RequirementMatch:
        if not embedding:
            return RequirementMatch(requirement=requirement)

        try:
            candidates = self.vector_search.search(embedding, scope)
        except Exception as exc:  # noqa: BLE001 - a failed search counts as a gap
            logger.warning("requirement_search_failed text=%r: %s", requirement.text[:120], exc)
            candidates = []

        valid_types = VALID_CLAIM_TYPES[requirement.type]
        per_requirement = int(get_scoring_value("matching.matches_per_requirement", 3))
        matches: list[CandidateClaim] = sorted(
            (candidate for candidate in candidates if candidate.type in valid_types),
            key=lambda candidate: candidate.similarity,
            reverse=True,
        )[:per_requirement]

        return RequirementMatch(
            requirement=requirement,
            matches=matches,
            best_match=matches[0] if matches else None,
        )
