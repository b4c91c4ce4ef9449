from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence

import faiss
import numpy as np

from identity_engine.schemas import CandidateClaim
from identity_engine.storage.base import ClaimStore


@dataclass(frozen=True)
class SearchScope:
    user_id: str
    similarity_threshold: float
    max_results: int


class VectorSearch(Protocol):
    def search(self, query_vector: Sequence[float], scope: SearchScope) -> list[CandidateClaim]:
        """Return the user's claims ranked by similarity, most similar first."""


def _normalize_rows(matrix: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    return matrix / norms


class FaissClaimSearch(VectorSearch):
    """Exact inner-product search over L2-normalized claim embeddings.

    Scores are cosine similarities. The index is rebuilt per query from the
    store, so newly inserted claims are visible immediately.
    """

    def __init__(self, store: ClaimStore) -> None:
        self._store = store

    def search(self, query_vector: Sequence[float], scope: SearchScope) -> list[CandidateClaim]:
        if scope.max_results <= 0 or not query_vector:
            return []

        query = np.asarray([query_vector], dtype="float32")
        dim = query.shape[1]
        claims = [
            claim
            for claim in self._store.list_claim_embeddings(scope.user_id)
            if claim.embedding and len(claim.embedding) == dim
        ]
        if not claims:
            return []

        vectors = _normalize_rows(np.asarray([claim.embedding for claim in claims], dtype="float32"))
        index = faiss.IndexFlatIP(dim)
        index.add(vectors)

        k = min(scope.max_results, len(claims))
        scores, idxs = index.search(_normalize_rows(query), k)

        results: list[CandidateClaim] = []
        for score, idx in zip(scores[0].tolist(), idxs[0].tolist()):
            if idx < 0 or idx >= len(claims):
                continue
            if score < scope.similarity_threshold:
                continue
            claim = claims[idx]
            results.append(
                CandidateClaim(
                    id=claim.id,
                    type=claim.type or "",
                    label=claim.label,
                    description=claim.description,
                    confidence=claim.confidence,
                    similarity=float(score),
                )
            )
        return results
