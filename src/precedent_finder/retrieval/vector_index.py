"""In-process vector index (numpy cosine) over judgment chunks.

Stores chunk embeddings + metadata; supports filtered top-k similarity search.
On disk an index is a directory holding ``embeddings.npy``, ``segments.jsonl``
(one metadata object per row) and ``index_meta.json``.
"""
from __future__ import annotations
import hashlib
import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import numpy as np

from precedent_finder import config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VectorHit:
    doc_id: str
    chunk_id: str
    score: float
    text: str
    court: str = "UNKNOWN"
    title: Optional[str] = None
    url: Optional[str] = None
    source_version: Optional[str] = None
    date: Optional[str] = None


def sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def iso_date(value: Optional[str]) -> Optional[str]:
    """``d-m-yyyy`` (search filter form) or ISO ``yyyy-mm-dd`` -> ISO, else None."""
    if not value:
        return None
    parts = value.strip().split("-")
    if len(parts) != 3 or not all(p.isdigit() for p in parts):
        return None
    if len(parts[0]) == 4:
        y, m, d = parts
    else:
        d, m, y = parts
    return f"{int(y):04d}-{int(m):02d}-{int(d):02d}"


def _passes_filter(meta: Dict[str, Any], court: Optional[str], from_date: Optional[str],
                   to_date: Optional[str]) -> bool:
    if court and meta.get('court') not in (court, None):
        return False
    # ISO strings order lexically
    date = iso_date(meta.get('date'))
    low, high = iso_date(from_date), iso_date(to_date)
    if date and low and date < low:
        return False
    if date and high and date > high:
        return False
    return True


@dataclass
class VectorIndex:
    embeddings: np.ndarray
    meta: List[Dict[str, Any]] = field(default_factory=list)

    def __post_init__(self):
        self.embeddings = np.asarray(self.embeddings, dtype='float32')
        if self.embeddings.ndim != 2:
            raise ValueError("embeddings must be a 2-d array")
        if len(self.meta) != self.embeddings.shape[0]:
            raise ValueError("metadata rows must match embedding rows")
        # Pre-normalize for cosine
        norms = np.linalg.norm(self.embeddings, axis=1, keepdims=True) + 1e-12
        self.embeddings = self.embeddings / norms

    def __len__(self) -> int:
        return int(self.embeddings.shape[0])

    def search(self, query_vec, k: int = 5, court: Optional[str] = None,
               from_date: Optional[str] = None, to_date: Optional[str] = None) -> List[VectorHit]:
        q = np.asarray(query_vec, dtype='float32').reshape(-1)
        if len(self) == 0 or q.shape[0] != self.embeddings.shape[1]:
            return []
        qn = q / (np.linalg.norm(q) + 1e-12)
        sims = self.embeddings @ qn
        hits: List[VectorHit] = []
        for idx in np.argsort(-sims):
            meta = self.meta[int(idx)]
            if not _passes_filter(meta, court, from_date, to_date):
                continue
            hits.append(VectorHit(
                doc_id=str(meta.get('doc_id', idx)),
                chunk_id=str(meta.get('chunk_id', 0)),
                score=round(float(sims[idx]), 6),
                text=str(meta.get('text', '')),
                court=meta.get('court') or "UNKNOWN",
                title=meta.get('title'),
                url=meta.get('url'),
                source_version=meta.get('source_version'),
                date=meta.get('date'),
            ))
            if len(hits) >= k:
                break
        return hits

    def save(self, out_dir: str, model_name: str) -> Dict[str, Any]:
        os.makedirs(out_dir, exist_ok=True)
        emb_path = os.path.join(out_dir, 'embeddings.npy')
        np.save(emb_path, self.embeddings.astype('float32'))
        with open(os.path.join(out_dir, 'segments.jsonl'), 'w', encoding='utf-8') as f:
            for m in self.meta:
                f.write(json.dumps(m) + '\n')
        with open(emb_path, 'rb') as ef:
            emb_hash = sha256_bytes(ef.read())
        meta_json = {
            'model': model_name,
            'dimension': int(self.embeddings.shape[1]),
            'count': len(self),
            'embeddings_hash': emb_hash,
        }
        with open(os.path.join(out_dir, 'index_meta.json'), 'w', encoding='utf-8') as f:
            json.dump(meta_json, f, indent=2)
        return meta_json

    @classmethod
    def load(cls, index_dir: str) -> "VectorIndex":
        emb = np.load(os.path.join(index_dir, 'embeddings.npy'))
        meta: List[Dict[str, Any]] = []
        with open(os.path.join(index_dir, 'segments.jsonl'), 'r', encoding='utf-8') as f:
            for line_no, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                try:
                    meta.append(json.loads(line))
                except json.JSONDecodeError as e:
                    raise ValueError(f"segments.jsonl line {line_no}: {e}") from e
        return cls(embeddings=emb, meta=meta)


class SemanticStore:
    """Semantic vector collaborator over a lazily loaded :class:`VectorIndex`."""

    def __init__(self, index: Optional[VectorIndex] = None, index_dir: Optional[str] = None):
        self._index = index
        self.index_dir = index_dir if index_dir is not None else config.SEMANTIC_INDEX_DIR

    def is_configured(self) -> bool:
        if self._index is not None:
            return True
        return bool(self.index_dir) and os.path.exists(os.path.join(self.index_dir, 'embeddings.npy'))

    @property
    def index(self) -> VectorIndex:
        if self._index is None:
            self._index = VectorIndex.load(self.index_dir)
            logger.info("loaded semantic index from %s (%d rows)", self.index_dir, len(self._index))
        return self._index

    def query(self, vector, top_k: int, court: Optional[str] = None, from_date: Optional[str] = None,
              to_date: Optional[str] = None) -> List[VectorHit]:
        return self.index.search(vector, k=top_k, court=court, from_date=from_date, to_date=to_date)


__all__ = ['VectorIndex', 'VectorHit', 'SemanticStore']
