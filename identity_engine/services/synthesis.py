"""Batch claim synthesis.

Evidence is processed in fixed-size batches, strictly in order: each batch
sees the claims created by the batches before it. Every batch retrieves the
relevant existing claims, asks the decider what each evidence item supports,
links or creates claims, and finally the confidence of every touched claim is
recomputed once over its complete evidence set.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Callable, Sequence

from identity_engine.core.config.scoring import get_scoring_value
from identity_engine.schemas import (
    CandidateClaim,
    Claim,
    ClaimEvidenceLink,
    ClaimUpdate,
    Evidence,
    NewClaimProposal,
    SynthesisProgress,
    SynthesisResult,
)
from identity_engine.semantic.embeddings import EmbeddingProvider
from identity_engine.semantic.vector_search import SearchScope, VectorSearch
from identity_engine.services.confidence import EvidenceWeightInput, calculate_claim_confidence
from identity_engine.services.decisions import EvidenceDecider
from identity_engine.storage.base import ClaimStore

logger = logging.getLogger(__name__)

LOCAL_CLAIM_CONFIDENCE = 0.5


def _label_key(label: str) -> str:
    return " ".join((label or "").lower().split())


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def chunk(items: Sequence[Evidence], size: int) -> list[list[Evidence]]:
    if size <= 0:
        raise ValueError("size must be greater than 0")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


@dataclass
class SynthesisRun:
    """Accumulator for one synthesis call. Never shared between calls."""

    user_id: str
    created_claims: list[CandidateClaim] = field(default_factory=list)
    claims_to_recalc: set[str] = field(default_factory=set)
    claim_updates: list[ClaimUpdate] = field(default_factory=list)
    claims_created: int = 0
    claims_updated: int = 0
    batches_total: int = 0
    batches_failed: int = 0
    evidence_skipped: int = 0
    cancelled: bool = False

    def record_match(self, claim_id: str, label: str) -> None:
        self.claims_to_recalc.add(claim_id)
        self.claim_updates.append(ClaimUpdate(action="matched", label=label))
        self.claims_updated += 1

    def record_created(self, claim: Claim) -> None:
        self.created_claims.append(
            CandidateClaim(
                id=claim.id,
                type=claim.type or "",
                label=claim.label,
                description=claim.description,
                confidence=LOCAL_CLAIM_CONFIDENCE,
                similarity=0.0,
            )
        )
        self.claim_updates.append(ClaimUpdate(action="created", label=claim.label))
        self.claims_created += 1

    def to_result(self) -> SynthesisResult:
        return SynthesisResult(
            claims_created=self.claims_created,
            claims_updated=self.claims_updated,
            batches_total=self.batches_total,
            batches_failed=self.batches_failed,
            evidence_skipped=self.evidence_skipped,
            cancelled=self.cancelled,
            claim_updates=list(self.claim_updates),
        )


@dataclass
class _PendingClaim:
    proposal: NewClaimProposal
    evidence: list[tuple[Evidence, str]] = field(default_factory=list)


class ClaimSynthesizer:
    def __init__(
        self,
        store: ClaimStore,
        embedder: EmbeddingProvider,
        vector_search: VectorSearch,
        decider: EvidenceDecider,
        *,
        batch_size: int | None = None,
        id_factory: Callable[[], str] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.embedder = embedder
        self.vector_search = vector_search
        self.decider = decider
        self.batch_size = batch_size or int(get_scoring_value("synthesis.batch_size", 10))
        self._new_id = id_factory or (lambda: str(uuid.uuid4()))
        self._now = clock or _utc_now

    def synthesize(
        self,
        user_id: str,
        evidence_items: Sequence[Evidence],
        *,
        on_progress: Callable[[SynthesisProgress], None] | None = None,
        on_claim_update: Callable[[ClaimUpdate], None] | None = None,
        cancel_event: threading.Event | None = None,
        reference_date: date | datetime | None = None,
    ) -> SynthesisResult:
        run = SynthesisRun(user_id=user_id)
        accepted = self._accept_evidence(run, evidence_items)
        batches = chunk(accepted, self.batch_size) if accepted else []
        run.batches_total = len(batches)

        for batch_index, batch in enumerate(batches):
            if cancel_event is not None and cancel_event.is_set():
                logger.info(
                    "synthesis_cancelled user=%s completed_batches=%s total=%s",
                    user_id,
                    batch_index,
                    len(batches),
                )
                run.cancelled = True
                break

            if on_progress is not None:
                on_progress(SynthesisProgress(current=batch_index + 1, total=len(batches)))

            try:
                self._process_batch(run, batch, reference_date)
            except Exception as exc:  # noqa: BLE001 - one failed batch must not stop the run
                run.batches_failed += 1
                logger.warning(
                    "synthesis_batch_failed batch=%s user=%s: %s",
                    batch_index + 1,
                    user_id,
                    exc,
                    exc_info=True,
                )

        if run.claims_to_recalc:
            try:
                self.recalculate_confidences(run.claims_to_recalc, reference_date)
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "synthesis_recalculate_failed user=%s claims=%s: %s",
                    user_id,
                    len(run.claims_to_recalc),
                    exc,
                    exc_info=True,
                )

        logger.info(
            "synthesis_completed user=%s created=%s updated=%s batches=%s failed=%s skipped=%s",
            user_id,
            run.claims_created,
            run.claims_updated,
            run.batches_total,
            run.batches_failed,
            run.evidence_skipped,
        )

        if on_claim_update is not None:
            for update in run.claim_updates:
                on_claim_update(update)

        return run.to_result()

    def _accept_evidence(self, run: SynthesisRun, evidence_items: Sequence[Evidence]) -> list[Evidence]:
        max_chars = int(get_scoring_value("synthesis.max_evidence_chars", 5000))
        accepted: list[Evidence] = []
        for item in evidence_items:
            if len(item.text) > max_chars:
                run.evidence_skipped += 1
                logger.warning(
                    "synthesis_evidence_too_long evidence_id=%s chars=%s max=%s",
                    item.id,
                    len(item.text),
                    max_chars,
                )
                continue
            accepted.append(item)
        return accepted

    def find_relevant_claims(self, user_id: str, evidence_items: Sequence[Evidence]) -> list[CandidateClaim]:
        """Vector-search candidates for every evidence item, de-duplicated by claim id."""
        scope = SearchScope(
            user_id=user_id,
            similarity_threshold=float(get_scoring_value("synthesis.retrieval.similarity_threshold", 0.5)),
            max_results=int(get_scoring_value("synthesis.retrieval.max_claims_per_query", 25)),
        )
        claims: dict[str, CandidateClaim] = {}
        for item in evidence_items:
            if not item.embedding:
                continue
            try:
                results = self.vector_search.search(item.embedding, scope)
            except Exception as exc:  # noqa: BLE001
                logger.warning("claim_retrieval_failed evidence_id=%s user=%s: %s", item.id, user_id, exc)
                continue
            for claim in results:
                claims.setdefault(claim.id, claim)
        return list(claims.values())

    def _candidates_for_batch(self, run: SynthesisRun, batch: Sequence[Evidence]) -> list[CandidateClaim]:
        candidates = self.find_relevant_claims(run.user_id, batch)
        known_ids = {claim.id for claim in candidates}
        for local in run.created_claims:
            if local.id not in known_ids:
                candidates.append(local)
                known_ids.add(local.id)
        return candidates

    def _process_batch(
        self,
        run: SynthesisRun,
        batch: Sequence[Evidence],
        reference_date: date | datetime | None,
    ) -> None:
        candidates = self._candidates_for_batch(run, batch)
        by_label: dict[str, CandidateClaim] = {}
        for claim in candidates:
            by_label.setdefault(_label_key(claim.label), claim)

        decisions = self.decider.decide(candidates, batch)
        evidence_by_id = {item.id: item for item in batch}

        matched: list[tuple[ClaimEvidenceLink, CandidateClaim]] = []
        pending: dict[str, _PendingClaim] = {}

        for decision in decisions:
            evidence = evidence_by_id.get(decision.evidence_id)
            if evidence is None:
                logger.warning("synthesis_decision_unknown_evidence evidence_id=%s", decision.evidence_id)
                continue

            target: CandidateClaim | None = None
            if decision.match:
                target = by_label.get(_label_key(decision.match))
                if target is None and decision.new_claim is None:
                    logger.warning(
                        "synthesis_decision_unknown_label evidence_id=%s label=%r",
                        decision.evidence_id,
                        decision.match,
                    )
                    continue

            if target is None and decision.new_claim is not None:
                target = by_label.get(_label_key(decision.new_claim.label))

            if target is not None:
                link = ClaimEvidenceLink(claim_id=target.id, evidence_id=evidence.id, strength=decision.strength)
                matched.append((link, target))
                continue

            if decision.new_claim is None:
                logger.warning("synthesis_decision_empty evidence_id=%s", decision.evidence_id)
                continue

            key = _label_key(decision.new_claim.label)
            entry = pending.setdefault(key, _PendingClaim(proposal=decision.new_claim))
            entry.evidence.append((evidence, decision.strength))

        new_claims, new_links = self._build_new_claims(run.user_id, list(pending.values()), reference_date)

        if not matched and not new_claims:
            return

        inserted = self.store.apply_synthesis_batch([link for link, _ in matched], new_claims, new_links)

        for link, target in matched:
            # an existing link keeps its strength, so nothing changed
            if (link.claim_id, link.evidence_id) in inserted:
                run.record_match(target.id, target.label)

        for claim, entry in zip(new_claims, pending.values()):
            run.record_created(claim)
            for _ in entry.evidence[1:]:
                run.record_match(claim.id, claim.label)

    def _build_new_claims(
        self,
        user_id: str,
        pending: list[_PendingClaim],
        reference_date: date | datetime | None,
    ) -> tuple[list[Claim], list[ClaimEvidenceLink]]:
        if not pending:
            return [], []

        embeddings = self.embedder.embed([entry.proposal.label for entry in pending])
        if len(embeddings) != len(pending):
            raise ValueError(f"expected {len(pending)} label embeddings, got {len(embeddings)}")

        now = self._now()
        claims: list[Claim] = []
        links: list[ClaimEvidenceLink] = []
        for entry, embedding in zip(pending, embeddings):
            first_evidence, first_strength = entry.evidence[0]
            initial = EvidenceWeightInput(
                strength=first_strength,
                source_type=first_evidence.source_type,
                evidence_date=first_evidence.evidence_date,
                claim_type=entry.proposal.type,
            )
            claim = Claim(
                id=self._new_id(),
                user_id=user_id,
                type=entry.proposal.type,
                label=entry.proposal.label,
                description=entry.proposal.description,
                confidence=calculate_claim_confidence([initial], reference_date),
                embedding=list(embedding),
                created_at=now,
                updated_at=now,
            )
            claims.append(claim)
            links.extend(
                ClaimEvidenceLink(claim_id=claim.id, evidence_id=evidence.id, strength=strength)
                for evidence, strength in entry.evidence
            )
        return claims, links

    def recalculate_confidences(
        self,
        claim_ids: set[str] | Sequence[str],
        reference_date: date | datetime | None = None,
    ) -> dict[str, float]:
        """Recompute confidence for the given claims with one bulk fetch and one bulk update."""
        ids = sorted(set(claim_ids))
        if not ids:
            return {}

        confidences: dict[str, float] = {}
        for claim in self.store.fetch_claims_with_evidence(ids):
            if not claim.evidence:
                continue
            inputs = [
                EvidenceWeightInput(
                    strength=item.strength,
                    source_type=str(item.source_type),
                    evidence_date=item.evidence_date,
                    claim_type=claim.type or "",
                )
                for item in claim.evidence
            ]
            confidences[claim.id] = calculate_claim_confidence(inputs, reference_date)

        if confidences:
            self.store.update_confidences(confidences, updated_at=self._now())
        return confidences
