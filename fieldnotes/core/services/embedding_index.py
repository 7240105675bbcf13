"""
EmbeddingIndex - nearest-neighbour lookup over stored note embeddings.

Scores notes by exhaustive cosine similarity, reading them from storage in
fixed-size batches so that at most one batch plus the running top-k list is
held in memory. Scanning stops early once the top-k list is full of
high-confidence matches, and always stops after a fixed number of batches.
"""

import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np

from fieldnotes.core.domain.note import Note
from fieldnotes.core.interfaces.ports import INoteRepository
from fieldnotes.core.services.similarity_cache import SimilarityCache

logger = logging.getLogger(__name__)

BATCH_SIZE = 25
MAX_BATCHES = 10
HIGH_CONFIDENCE = 0.8


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    dot(a, b) / (|a| * |b|).

    Raises ValueError for mismatched shapes, zero-magnitude vectors or
    non-finite results, so callers can drop the offending vector.
    """
    va = np.asarray(a, dtype=np.float32)
    vb = np.asarray(b, dtype=np.float32)
    if va.ndim != 1 or va.shape != vb.shape:
        raise ValueError(f"Embedding shape mismatch: {va.shape} vs {vb.shape}")
    norm = float(np.linalg.norm(va)) * float(np.linalg.norm(vb))
    if norm == 0.0:
        raise ValueError("Zero-magnitude embedding")
    score = float(np.dot(va, vb)) / norm
    if not np.isfinite(score):
        raise ValueError("Non-finite similarity")
    return score


class EmbeddingIndex:
    def __init__(
        self,
        notes: INoteRepository,
        cache: Optional[SimilarityCache] = None,
        batch_size: int = BATCH_SIZE,
        max_batches: int = MAX_BATCHES,
        confidence_threshold: float = HIGH_CONFIDENCE,
    ):
        self.notes = notes
        self.cache = cache if cache is not None else SimilarityCache()
        self.batch_size = batch_size
        self.max_batches = max_batches
        self.confidence_threshold = confidence_threshold

    def find_similar(self, query_vector: Optional[Sequence[float]], limit: int = 5) -> List[Note]:
        """
        Return up to `limit` notes ordered by descending cosine similarity.

        Falls back to the most recent notes when there is no query vector or
        nothing could be scored.
        """
        if limit <= 0:
            return []
        if query_vector is None or len(query_vector) == 0:
            logger.info("No query embedding, using recent notes")
            return self.recent(limit)

        fingerprint = self.cache.fingerprint(query_vector, limit)
        cached = self.cache.get(fingerprint)
        if cached is not None:
            logger.debug("Similarity cache hit")
            return cached

        ranked = self.rank(query_vector, limit)
        if not ranked:
            logger.warning("No usable embeddings scored, falling back to recent notes")
            return self.recent(limit)

        results = [note for _, note in ranked]
        self.cache.put(fingerprint, results)
        return results

    def rank(self, query_vector: Sequence[float], limit: int) -> List[Tuple[float, Note]]:
        """Batched scan returning (score, note) pairs, best first."""
        query = np.asarray(query_vector, dtype=np.float32)
        top: List[Tuple[float, Note]] = []

        for batch_no in range(self.max_batches):
            try:
                batch = self.notes.list_embedded(self.batch_size, offset=batch_no * self.batch_size)
            except Exception as e:
                logger.warning("Error reading embedding batch %d: %s", batch_no, e)
                continue
            if not batch:
                break

            for note in batch:
                if not note.has_embedding:
                    continue
                try:
                    score = cosine_similarity(query, note.embedding)
                except (ValueError, TypeError) as e:
                    logger.warning("Skipping note %s: %s", note.id, e)
                    continue
                top.append((score, note))

            top.sort(key=lambda pair: pair[0], reverse=True)
            del top[limit:]

            if len(top) >= limit and top[-1][0] > self.confidence_threshold:
                logger.debug("Early termination after batch %d", batch_no + 1)
                break
            if len(batch) < self.batch_size:
                break

        return top

    def recent(self, limit: int) -> List[Note]:
        return self.notes.list_notes(limit=limit)

    def store_embedding(self, note_id: int, embedding: Optional[List[float]]) -> None:
        """Persist a note's embedding; any change invalidates cached searches."""
        self.notes.update_embedding(note_id, embedding)
        self.invalidate()

    def invalidate(self) -> None:
        self.cache.clear()
