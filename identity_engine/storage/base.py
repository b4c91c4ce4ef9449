from __future__ import annotations

from datetime import datetime
from typing import Iterable, Mapping, Protocol

from identity_engine.schemas import (
    Claim,
    ClaimEvidenceLink,
    ClaimIssue,
    ClaimWithEvidence,
    Evidence,
    Opportunity,
)


class ClaimStore(Protocol):
    """Persistence contract used by synthesis, matching and evaluation."""

    def add_evidence(self, user_id: str, items: Iterable[Evidence]) -> list[str]: ...

    def list_evidence(self, user_id: str, evidence_ids: Iterable[str] | None = None) -> list[Evidence]: ...

    def insert_claims(self, claims: Iterable[Claim]) -> int: ...

    def list_claims(self, user_id: str) -> list[Claim]: ...

    def list_claim_embeddings(self, user_id: str) -> list[Claim]: ...

    def upsert_evidence_links(self, links: Iterable[ClaimEvidenceLink]) -> int:
        """Insert links, ignoring pairs that already exist. Returns the number inserted."""

    def apply_synthesis_batch(
        self,
        matched_links: Iterable[ClaimEvidenceLink],
        claims: Iterable[Claim],
        new_links: Iterable[ClaimEvidenceLink],
    ) -> set[tuple[str, str]]:
        """Insert matched links, new claims and their links atomically. Returns the inserted link pairs."""

    def fetch_claims_with_evidence(self, claim_ids: Iterable[str]) -> list[ClaimWithEvidence]: ...

    def update_confidences(self, confidences: Mapping[str, float], updated_at: datetime | None = None) -> int: ...

    def insert_issues(self, issues: Iterable[ClaimIssue]) -> int: ...

    def list_issues(self, user_id: str) -> list[ClaimIssue]: ...

    def save_opportunity(self, opportunity: Opportunity) -> None: ...

    def get_opportunity(self, opportunity_id: str) -> Opportunity | None: ...
