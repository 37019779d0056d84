"""Embedding-based table retrieval.

Contains the embedding client, its retry policy, and the in-memory
semantic index used to pick a table for a question.
"""

from .embeddings import Embedder, EmbeddingClient, LocalEmbedder, RetryingEmbedder, RetryPolicy, make_embedder
from .semantic_index import Neighbor, SemanticIndex, TableSelector

__all__ = [
    "Embedder",
    "EmbeddingClient",
    "LocalEmbedder",
    "make_embedder",
    "RetryingEmbedder",
    "RetryPolicy",
    "Neighbor",
    "SemanticIndex",
    "TableSelector",
]
