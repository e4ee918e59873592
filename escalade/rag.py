"""Embeddings, similarity search and semantic grounding checks."""
from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional, Sequence
import hashlib
import json
import logging
import math
import sqlite3
import threading

from escalade.models.base import ModelSpec
from escalade.verification import Verdict, VerificationRequest, verify_with_llm

logger = logging.getLogger(__name__)

GROUNDING_THRESHOLD = 0.75
EMBED_CACHE_SIZE = 512


def normalize_vector(vector: Sequence[float]) -> List[float]:
    norm = math.sqrt(sum(value * value for value in vector))
    if norm == 0:
        return list(vector)
    return [value / norm for value in vector]


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    if len(a) != len(b):
        raise ValueError(f"vector dimensions differ: {len(a)} != {len(b)}")
    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        norm_a += x * x
        norm_b += y * y
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return max(-1.0, min(1.0, dot / (math.sqrt(norm_a) * math.sqrt(norm_b))))


def embedding_key(text: str, model: str) -> str:
    return hashlib.sha256(f"{model}:{text}".encode("utf-8")).hexdigest()


@dataclass
class Embedder:
    """Embeds text through the backend, caching vectors per (model, text).

    The cache keeps the ``cache_size`` most recently used vectors.
    """
    client: Any
    model: str
    normalize: bool = True
    cache_size: int = EMBED_CACHE_SIZE
    _cache: "OrderedDict[str, List[float]]" = field(default_factory=OrderedDict)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def embed(self, text: str, model: Optional[str] = None) -> List[float]:
        model = model or self.model
        key = embedding_key(text, model)
        with self._lock:
            cached = self._cache.get(key)
            if cached is not None:
                self._cache.move_to_end(key)
                return cached
        vector = self.client.embed(text, model)
        if self.normalize:
            vector = normalize_vector(vector)
        with self._lock:
            self._cache[key] = vector
            self._cache.move_to_end(key)
            while len(self._cache) > max(0, self.cache_size):
                self._cache.popitem(last=False)
        return vector


@dataclass
class StoredEmbedding:
    id: str
    text: str
    vector: List[float]
    model: str


@dataclass
class QueryResult:
    id: str
    text: str
    score: float


class EmbeddingStore:
    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path)
        try:
            self._init_db(conn)
            conn.commit()
        finally:
            conn.close()

    def _init_db(self, conn: sqlite3.Connection) -> None:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS embeddings (
                id TEXT PRIMARY KEY,
                text TEXT NOT NULL,
                vector TEXT NOT NULL,
                model TEXT NOT NULL
            )
        """)
        conn.execute("CREATE INDEX IF NOT EXISTS idx_model ON embeddings(model)")

    def upsert(self, embedding: StoredEmbedding) -> None:
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute(
                """
                INSERT INTO embeddings (id, text, vector, model)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    text=excluded.text, vector=excluded.vector, model=excluded.model
                """,
                (embedding.id, embedding.text, json.dumps(embedding.vector), embedding.model),
            )
            conn.commit()
        finally:
            conn.close()

    def query(
        self,
        vector: Sequence[float],
        limit: int = 5,
        min_score: float = 0.0,
        model: Optional[str] = None,
    ) -> List[QueryResult]:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            if model:
                rows = conn.execute("SELECT id, text, vector FROM embeddings WHERE model = ?", (model,)).fetchall()
            else:
                rows = conn.execute("SELECT id, text, vector FROM embeddings").fetchall()
        finally:
            conn.close()
        results: List[QueryResult] = []
        for row in rows:
            stored = json.loads(row["vector"])
            if len(stored) != len(vector):
                continue
            score = cosine_similarity(vector, stored)
            if score >= min_score:
                results.append(QueryResult(id=row["id"], text=row["text"], score=score))
        results.sort(key=lambda item: item.score, reverse=True)
        return results[:limit]

    def delete(self, embedding_id: str) -> None:
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute("DELETE FROM embeddings WHERE id = ?", (embedding_id,))
            conn.commit()
        finally:
            conn.close()

    def clear(self) -> None:
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute("DELETE FROM embeddings")
            conn.commit()
        finally:
            conn.close()

    def count(self) -> int:
        conn = sqlite3.connect(self.db_path)
        try:
            return conn.execute("SELECT COUNT(*) FROM embeddings").fetchone()[0]
        finally:
            conn.close()


def grounding_score(embedder: Embedder, response: str, context: Sequence[str]) -> float:
    """Best cosine similarity between the response and any context chunk."""
    if not context:
        return 0.0
    response_vector = embedder.embed(response)
    best = 0.0
    for chunk in context:
        best = max(best, cosine_similarity(response_vector, embedder.embed(chunk)))
    return best


def review_response(
    provider: Any,
    embedder: Embedder,
    model: ModelSpec,
    prompt: str,
    response: str,
    context: Sequence[str],
    threshold: float = GROUNDING_THRESHOLD,
) -> Verdict:
    """LLM verification gated by semantic similarity to the reference context."""
    verdict = verify_with_llm(provider, model, VerificationRequest(prompt=prompt, response=response, context=tuple(context)))
    if not verdict.approved:
        return verdict
    score = grounding_score(embedder, response, context)
    if score < threshold:
        logger.info("grounding.rejected score=%.3f threshold=%.2f", score, threshold)
        return Verdict(
            approved=False,
            confidence=max(0.0, score),
            notes="Low semantic similarity to provided context",
        )
    return Verdict(approved=True, confidence=min(1.0, (verdict.confidence + score) / 2), notes=verdict.notes)
