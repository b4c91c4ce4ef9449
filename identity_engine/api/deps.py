from __future__ import annotations

from functools import lru_cache

from fastapi import Depends

from identity_engine.core.config import settings
from identity_engine.semantic.embeddings import EmbeddingProvider, get_embedding_provider
from identity_engine.semantic.vector_search import FaissClaimSearch, VectorSearch
from identity_engine.services.decisions import EvidenceDecider, LLMEvidenceDecider
from identity_engine.services.evaluation import ClaimEvaluator
from identity_engine.services.grounding import GroundingEvaluator, LLMGroundingEvaluator
from identity_engine.services.matching import OpportunityMatcher
from identity_engine.services.synthesis import ClaimSynthesizer
from identity_engine.storage import ClaimStore, SQLiteClaimStore


@lru_cache(maxsize=1)
def get_store() -> SQLiteClaimStore:
    return SQLiteClaimStore(settings.store_db_path)


def get_embedder() -> EmbeddingProvider:
    return get_embedding_provider()


def get_vector_search(store: ClaimStore = Depends(get_store)) -> VectorSearch:
    return FaissClaimSearch(store)


def get_decider() -> EvidenceDecider:
    return LLMEvidenceDecider()


def get_grounding_evaluator() -> GroundingEvaluator:
    return LLMGroundingEvaluator()


def get_synthesizer(
    store: ClaimStore = Depends(get_store),
    embedder: EmbeddingProvider = Depends(get_embedder),
    vector_search: VectorSearch = Depends(get_vector_search),
    decider: EvidenceDecider = Depends(get_decider),
) -> ClaimSynthesizer:
    return ClaimSynthesizer(store, embedder, vector_search, decider)


def get_matcher(
    store: ClaimStore = Depends(get_store),
    embedder: EmbeddingProvider = Depends(get_embedder),
    vector_search: VectorSearch = Depends(get_vector_search),
) -> OpportunityMatcher:
    return OpportunityMatcher(store, embedder, vector_search)


def get_evaluator(
    store: ClaimStore = Depends(get_store),
    grounding_evaluator: GroundingEvaluator = Depends(get_grounding_evaluator),
) -> ClaimEvaluator:
    return ClaimEvaluator(store, grounding_evaluator)
