from .embeddings import EmbeddingProvider, SimpleEmbeddingProvider, get_embedding_provider
from .similarity import cosine_similarity, jaro_winkler
from .vector_search import FaissClaimSearch, SearchScope, VectorSearch

__all__ = [
    "EmbeddingProvider",
    "FaissClaimSearch",
    "SearchScope",
    "SimpleEmbeddingProvider",
    "VectorSearch",
    "cosine_similarity",
    "get_embedding_provider",
    "jaro_winkler",
]
