"""Semantic table index - nearest-neighbour search over table embeddings.

Catalogs hold tens of tables, so the index is an exact brute-force cosine
search over a row-normalised numpy matrix. The matrix is built once at
startup and flagged read-only; lookups never mutate it and can run from
any number of request threads.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Sequence

import numpy as np

from ..catalog.tables import TableCatalog, TableDescriptor
from ..core.exceptions import ConfigurationError, EmbeddingServiceError, EmptyResultError
from .embeddings import Embedder, RetryPolicy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Neighbor:
    """Result from index search."""
    name: str
    distance: float


def _normalize_rows(matrix: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    return matrix / norms


class SemanticIndex:
    """Exact cosine-distance index over one vector per table."""

    def __init__(self, names: list[str], matrix: np.ndarray):
        self._names = tuple(names)
        self._matrix = matrix
        self._matrix.flags.writeable = False

    @classmethod
    def from_vectors(cls, names: Sequence[str], vectors: Sequence[Sequence[float]]) -> "SemanticIndex":
        """Build from precomputed vectors (same order as ``names``).

        Raises:
            ConfigurationError: On empty input, duplicate names, zero or
                mismatched dimensions, or zero-norm vectors
        """
        if len(names) != len(vectors):
            raise ConfigurationError(f"Got {len(names)} names but {len(vectors)} vectors")
        if not names:
            raise ConfigurationError("Cannot build a semantic index with no tables")
        if len(set(names)) != len(names):
            raise ConfigurationError("Semantic index names must be unique")

        dims = {len(v) for v in vectors}
        if 0 in dims:
            empty = [n for n, v in zip(names, vectors) if not len(v)]
            raise ConfigurationError(f"Embedding service returned no vector for: {', '.join(empty)}")
        if len(dims) != 1:
            raise ConfigurationError(f"Embedding dimensions differ across tables: {sorted(dims)}")

        matrix = np.asarray(vectors, dtype=np.float64)
        zero = [n for n, row in zip(names, matrix) if not np.any(row)]
        if zero:
            raise ConfigurationError(f"Zero-norm embedding for: {', '.join(zero)}")

        return cls(list(names), _normalize_rows(matrix))

    @classmethod
    def build(
        cls,
        catalog: TableCatalog,
        embedder: Embedder,
        retry: RetryPolicy | None = None,
    ) -> "SemanticIndex":
        """Embed every table's embedding text and build the index.

        Rate-limited calls are retried per ``retry``. Exhausted retries and
        any other embedding failure propagate; callers treat them as fatal.
        """
        retry = retry or RetryPolicy()
        names: list[str] = []
        vectors: list[list[float]] = []

        for table in catalog:
            try:
                vector = retry.call(embedder.embed, table.embedding_text())
            except EmbeddingServiceError as e:
                logger.error(f"Failed to embed table {table.name}: {e}")
                raise
            logger.debug(f"Embedded table {table.name}: dim={len(vector)}")
            names.append(table.name)
            vectors.append(vector)

        index = cls.from_vectors(names, vectors)
        logger.info(f"Built semantic index: {len(index)} tables, dim={index.dimension}")
        return index

    @property
    def dimension(self) -> int:
        return int(self._matrix.shape[1])

    @property
    def names(self) -> tuple[str, ...]:
        return self._names

    def __len__(self) -> int:
        return len(self._names)

    def query(self, vector: Sequence[float], k: int, max_distance: float) -> list[Neighbor]:
        """Return up to ``k`` neighbours within ``max_distance``, nearest first.

        Raises:
            ConfigurationError: If the vector dimension differs from the index
            EmbeddingServiceError: If the query vector has zero norm
            EmptyResultError: If no table is within ``max_distance``
        """
        query = np.asarray(vector, dtype=np.float64)
        if query.ndim != 1 or query.shape[0] != self.dimension:
            raise ConfigurationError(
                f"Query vector has dimension {query.shape[-1] if query.ndim else 0}, index expects {self.dimension}"
            )
        norm = np.linalg.norm(query)
        if norm == 0:
            raise EmbeddingServiceError("Query embedding has zero norm")

        similarities = self._matrix @ (query / norm)
        distances = np.clip(1.0 - similarities, 0.0, 2.0)
        distances[distances < 1e-12] = 0.0

        # Stable sort keeps insertion order for exact ties
        order = np.argsort(distances, kind="stable")

        results = []
        for idx in order[: max(k, 0)]:
            distance = float(distances[idx])
            if distance > max_distance:
                break
            results.append(Neighbor(name=self._names[idx], distance=distance))

        if not results:
            raise EmptyResultError(f"No table within distance {max_distance}")
        return results


class TableSelector:
    """Picks the catalog table nearest to a question."""

    def __init__(
        self,
        catalog: TableCatalog,
        index: SemanticIndex,
        embedder: Embedder,
        top_k: int = 2,
        max_distance: float = 0.6,
    ):
        self.catalog = catalog
        self.index = index
        self.embedder = embedder
        self.top_k = top_k
        self.max_distance = max_distance

    def select_table(self, question: str) -> TableDescriptor:
        """Return the nearest table to ``question``.

        Embedding and empty-result failures propagate unchanged.
        """
        vector = self.embedder.embed(question)
        try:
            candidates = self.index.query(vector, k=self.top_k, max_distance=self.max_distance)
        except EmptyResultError as e:
            logger.info(f"No table found for question: {question[:100]}")
            raise EmptyResultError(str(e), question=question) from e

        logger.info(
            "Table candidates: "
            + ", ".join(f"{c.name} ({c.distance:.4f})" for c in candidates)
        )
        return self.catalog.get(candidates[0].name)
