from __future__ import annotations

import logging

from identity_engine.core.config.scoring import get_scoring_value
from identity_engine.schemas import ClaimEvalResult, ClaimIssue
from identity_engine.services.grounding import GroundingEvaluator, run_claim_grounding_eval
from identity_engine.services.rule_checks import run_rule_checks, sample_claims_for_eval
from identity_engine.storage.base import ClaimStore

logger = logging.getLogger(__name__)


class ClaimEvaluator:
    """Runs rule checks over all of a user's claims plus a grounding check on a sample, then stores the issues."""

    def __init__(self, store: ClaimStore, grounding_evaluator: GroundingEvaluator) -> None:
        self.store = store
        self.grounding_evaluator = grounding_evaluator

    def evaluate(
        self,
        user_id: str,
        document_id: str | None = None,
        max_claims_for_ai_eval: int | None = None,
    ) -> ClaimEvalResult:
        if max_claims_for_ai_eval is None:
            max_claims_for_ai_eval = int(get_scoring_value("evaluation.max_claims_for_ai_eval", 5))

        try:
            claims = self.store.list_claims(user_id)
        except Exception as exc:  # noqa: BLE001
            logger.warning("claim_eval_fetch_failed user=%s: %s", user_id, exc)
            return ClaimEvalResult()

        issues: list[ClaimIssue] = run_rule_checks(claims)

        sampled = sample_claims_for_eval(claims, max_claims_for_ai_eval)
        if sampled:
            try:
                with_evidence = self.store.fetch_claims_with_evidence([claim.id for claim in sampled])
            except Exception as exc:  # noqa: BLE001
                logger.warning("claim_eval_evidence_fetch_failed user=%s: %s", user_id, exc)
                with_evidence = []
            issues.extend(run_claim_grounding_eval(with_evidence, self.grounding_evaluator))

        if not issues:
            logger.info("claim_eval_completed user=%s claims=%s issues=0", user_id, len(claims))
            return ClaimEvalResult()

        issues = [issue.model_copy(update={"document_id": document_id}) for issue in issues]
        try:
            stored = self.store.insert_issues(issues)
        except Exception as exc:  # noqa: BLE001
            logger.warning("claim_eval_store_failed user=%s issues=%s: %s", user_id, len(issues), exc)
            stored = 0

        logger.info(
            "claim_eval_completed user=%s claims=%s sampled=%s issues=%s stored=%s",
            user_id,
            len(claims),
            len(sampled),
            len(issues),
            stored,
        )
        return ClaimEvalResult(issues_found=len(issues), issues_stored=stored, issues=issues)
