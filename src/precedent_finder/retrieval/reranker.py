"""Reranker collaborator: reorders the top of a fused list.

The default reranker scores each candidate by the share of query tokens
(length > 2) found in its title, snippet and detail text. Ties keep the
incoming (fused) order; items past ``top_n`` are appended unchanged.
"""
from __future__ import annotations
import re
from dataclasses import dataclass
from typing import List, Protocol

from precedent_finder.pipeline.types import CaseCandidate, RetrievalProvenance


@dataclass
class RerankResult:
    reranked: List[CaseCandidate]
    applied: bool


class Reranker(Protocol):
    def rerank(self, query: str, candidates: List[CaseCandidate], top_n: int) -> RerankResult:
        ...


def _tokens(value: str) -> set:
    cleaned = re.sub(r"[^a-z0-9\s]", " ", (value or "").lower())
    return {t for t in cleaned.split() if len(t) > 2}


class TokenOverlapReranker:
    def rerank(self, query: str, candidates: List[CaseCandidate], top_n: int) -> RerankResult:
        q = _tokens(query)
        head, tail = candidates[:max(0, top_n)], candidates[max(0, top_n):]
        if not q or not head:
            return RerankResult(reranked=list(candidates), applied=False)

        scored = []
        for c in head:
            ct = _tokens(f"{c.title} {c.snippet} {c.detail_text or ''}")
            score = round(min(1.0, len(q & ct) / len(q)), 6) if ct else 0.0
            retrieval = (c.retrieval or RetrievalProvenance()).model_copy(update={'rerank_score': score})
            scored.append(c.model_copy(update={'retrieval': retrieval}))
        scored.sort(key=lambda c: c.retrieval.rerank_score, reverse=True)
        return RerankResult(reranked=scored + tail, applied=True)


__all__ = ['Reranker', 'RerankResult', 'TokenOverlapReranker']
