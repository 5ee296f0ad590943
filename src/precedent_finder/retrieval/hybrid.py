"""Hybrid retrieval: lexical provider + optional semantic vector search.

Both sub-calls run concurrently with independent failure isolation; only both
failing fails the attempt (the lexical error is raised). When both return
results they are merged by URL and fused with weighted reciprocal-rank fusion:

    fusion = w_lex / (K + lexical_rank) + w_sem / (K + semantic_rank)

using only the components an item has. The emitted top-N keeps any single
dominant source under ``HYBRID_SOURCE_DOMINANCE_CAP`` and is optionally
reordered by a reranker (fusion metadata is kept on each candidate).

Future:
 - Persist per-source latency to tune the semantic top-k
"""
from __future__ import annotations
import logging
import math
import re
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Dict, List, Optional, Sequence

from precedent_finder import config
from precedent_finder.errors import ConfigurationError, ProviderError
from precedent_finder.metrics import COLLABORATOR_FAILURES, FUSION_LATENCY
from precedent_finder.pipeline.types import (
    AttemptDebug,
    CaseCandidate,
    RetrievalProvenance,
    RetrievalQuery,
    RetrievalResult,
)
from precedent_finder.retrieval.providers import RetrievalProvider
from precedent_finder.retrieval.reranker import Reranker, TokenOverlapReranker
from precedent_finder.retrieval.vector_index import VectorHit

logger = logging.getLogger(__name__)

SNIPPET_MAX = 500
# slack on top of the provider's own request timeout before a sub-call is abandoned
SUBCALL_GRACE_S = 0.25


def _unique(values: Sequence[Optional[str]]) -> List[str]:
    return list(dict.fromkeys(v for v in values if v))


def _provenance(c: CaseCandidate) -> RetrievalProvenance:
    return c.retrieval or RetrievalProvenance()


def semantic_candidate_from_hit(hit: VectorHit) -> CaseCandidate:
    text = re.sub(r"\s+", " ", hit.text or "").strip()
    snippet = f"{text[:SNIPPET_MAX - 3]}..." if len(text) > SNIPPET_MAX else text
    title = re.sub(r"\s+", " ", hit.title or "").strip() or f"Judgment {hit.doc_id}"
    url = (hit.url or "").strip() or f"{config.KANOON_BASE_URL}/doc/{hit.doc_id}/"
    return CaseCandidate(
        title=title,
        url=url,
        snippet=snippet,
        court=hit.court if hit.court in ("SC", "HC") else "UNKNOWN",
        full_document_url=url,
        retrieval=RetrievalProvenance(
            source_tags=["semantic_vector"],
            semantic_score=round(hit.score, 6),
            source_version=hit.source_version,
            semantic_hash=f"{hit.doc_id}:{hit.chunk_id}",
        ),
    )


def annotate_rank(items: Sequence[CaseCandidate], kind: str) -> List[CaseCandidate]:
    """Stamp 1-based ranks and the source tag for ``kind`` (lexical | semantic)."""
    out = []
    for rank, item in enumerate(items, start=1):
        prov = _provenance(item)
        if kind == "lexical":
            update = {'source_tags': _unique(prov.source_tags + ["lexical_api"]), 'lexical_rank': rank}
        else:
            update = {'source_tags': _unique(prov.source_tags + ["semantic_vector"]), 'semantic_rank': rank}
        out.append(item.model_copy(update={'retrieval': prov.model_copy(update=update)}))
    return out


def _min_rank(a: Optional[int], b: Optional[int]) -> Optional[int]:
    if a is not None and b is not None:
        return min(a, b)
    return a if a is not None else b


def merge_candidates(existing: CaseCandidate, incoming: CaseCandidate) -> CaseCandidate:
    """Merge two candidates for the same URL; the incoming one fills in fields."""
    base = existing.model_dump()
    base.update(incoming.model_dump(exclude_none=True))
    old, new = _provenance(existing), _provenance(incoming)
    prov = old.model_dump()
    prov.update(new.model_dump(exclude_none=True))
    prov.update({
        'source_tags': _unique(old.source_tags + new.source_tags),
        'lexical_rank': _min_rank(old.lexical_rank, new.lexical_rank),
        'semantic_rank': _min_rank(old.semantic_rank, new.semantic_rank),
    })
    base.update({
        'title': existing.title if len(existing.title) >= len(incoming.title) else incoming.title,
        'snippet': incoming.snippet if len(incoming.snippet) > len(existing.snippet) else existing.snippet,
        'court': existing.court if existing.court != "UNKNOWN" else incoming.court,
        'retrieval': prov,
    })
    return CaseCandidate.model_validate(base)


def rrf_score(rank: Optional[int], weight: float, k: int) -> float:
    if rank is None or rank <= 0:
        return 0.0
    return weight / (k + rank)


def fuse_candidates(lexical: Sequence[CaseCandidate], semantic: Sequence[CaseCandidate], limit: int,
                    rrf_k: Optional[int] = None, lexical_weight: Optional[float] = None,
                    semantic_weight: Optional[float] = None,
                    dominance_cap: Optional[float] = None) -> List[CaseCandidate]:
    k = rrf_k or config.HYBRID_RRF_K
    w_lex = config.HYBRID_LEXICAL_WEIGHT if lexical_weight is None else lexical_weight
    w_sem = config.HYBRID_SEMANTIC_WEIGHT if semantic_weight is None else semantic_weight
    cap = config.HYBRID_SOURCE_DOMINANCE_CAP if dominance_cap is None else dominance_cap

    merged: Dict[str, CaseCandidate] = {}
    for item in annotate_rank(lexical, "lexical") + annotate_rank(semantic, "semantic"):
        merged[item.url] = merge_candidates(merged[item.url], item) if item.url in merged else item

    scored = []
    for item in merged.values():
        prov = _provenance(item)
        lex = rrf_score(prov.lexical_rank, w_lex, k)
        sem = rrf_score(prov.semantic_rank, w_sem, k)
        scored.append(item.model_copy(update={'retrieval': prov.model_copy(update={
            'source_tags': _unique(prov.source_tags + ["fused"]),
            'lexical_score': round(lex, 8),
            'semantic_score': round(sem, 8),
            'fusion_score': round(lex + sem, 8),
        })}))
    scored.sort(key=lambda c: c.retrieval.fusion_score, reverse=True)

    target = max(1, min(limit, len(scored)))
    per_source = max(1, math.floor(target * cap))
    selected: List[CaseCandidate] = []
    counts = {'lexical': 0, 'semantic': 0}
    for item in scored:
        dominant = "semantic" if item.retrieval.semantic_score > item.retrieval.lexical_score else "lexical"
        if counts[dominant] >= per_source:
            continue
        selected.append(item)
        counts[dominant] += 1
        if len(selected) >= target:
            break
    if len(selected) < target:
        chosen = {c.url for c in selected}
        for item in scored:
            if item.url in chosen:
                continue
            selected.append(item)
            if len(selected) >= target:
                break
    return selected


class HybridRetriever:
    """Retrieval provider that fuses a lexical provider with semantic search."""

    def __init__(self, lexical: RetrievalProvider, semantic_store=None, embedder=None,
                 reranker: Optional[Reranker] = None, enabled: Optional[bool] = None,
                 rerank_enabled: Optional[bool] = None):
        self.lexical = lexical
        self.semantic_store = semantic_store
        self.embedder = embedder
        self.reranker = reranker or TokenOverlapReranker()
        self.enabled = config.HYBRID_RETRIEVAL if enabled is None else enabled
        self.rerank_enabled = config.HYBRID_RERANK_ENABLED if rerank_enabled is None else rerank_enabled
        self._pool = ThreadPoolExecutor(max_workers=4, thread_name_prefix="hybrid")

    @property
    def provider_id(self) -> str:
        return getattr(self.lexical, "provider_id", "lexical")

    def semantic_enabled(self) -> bool:
        if not self.enabled or self.semantic_store is None or self.embedder is None:
            return False
        try:
            return bool(self.semantic_store.is_configured())
        except Exception as e:
            logger.warning("semantic store configuration check failed: %s", e)
            return False

    def _semantic_search(self, query: RetrievalQuery) -> List[CaseCandidate]:
        vector = self.embedder.embed(query.phrase)
        hits = self.semantic_store.query(
            vector,
            top_k=max(config.HYBRID_SEMANTIC_TOPK, query.max_results),
            court=None if query.court_scope == "ANY" else query.court_scope,
            from_date=query.from_date,
            to_date=query.to_date,
        )
        return [semantic_candidate_from_hit(h) for h in hits]

    def close(self) -> None:
        self._pool.shutdown(wait=False)

    def search(self, query: RetrievalQuery) -> RetrievalResult:
        if not self.semantic_enabled():
            return self._lexical_only(self.lexical.search(query), query, time.monotonic())

        started = time.monotonic()
        timeout = query.timeout_ms / 1000 + SUBCALL_GRACE_S
        lexical_query = query.model_copy(update={'max_results': max(query.max_results, config.HYBRID_LEXICAL_TOPK)})
        lex_future = self._pool.submit(self.lexical.search, lexical_query)
        sem_future = self._pool.submit(self._semantic_search, query)

        lexical: Optional[RetrievalResult] = None
        lexical_error: Optional[Exception] = None
        try:
            lexical = lex_future.result(timeout=timeout)
        except FutureTimeout:
            # a late result is discarded; the call keeps its own request timeout
            lex_future.cancel()
            lexical_error = ProviderError(
                f"lexical search exceeded {query.timeout_ms}ms",
                AttemptDebug(search_query=query.phrase, status=408, timed_out=True),
            )
        except Exception as e:
            lexical_error = e

        semantic: List[CaseCandidate] = []
        semantic_failed = False
        remaining = max(0.05, timeout - (time.monotonic() - started))
        try:
            semantic = sem_future.result(timeout=remaining)
        except FutureTimeout:
            sem_future.cancel()
            semantic_failed = True
            logger.warning("semantic search timed out for %r", query.phrase)
        except ConfigurationError as e:
            semantic_failed = True
            logger.warning("semantic retrieval disabled: %s", e)
        except Exception as e:
            semantic_failed = True
            logger.warning("semantic search failed for %r: %s", query.phrase, e)
        if semantic_failed:
            COLLABORATOR_FAILURES.labels(collaborator='semantic').inc()

        if lexical is None:
            if semantic_failed:
                raise lexical_error
            return self._semantic_only(semantic, query, started)
        if not semantic:
            return self._lexical_only(lexical, query, started)
        return self._fused(lexical, semantic, query, started)

    def _semantic_only(self, semantic: List[CaseCandidate], query: RetrievalQuery,
                       started: float) -> RetrievalResult:
        cases = annotate_rank(semantic, "semantic")[:query.max_results]
        latency = time.monotonic() - started
        FUSION_LATENCY.observe(latency)
        return RetrievalResult(cases=cases, debug=AttemptDebug(
            search_query=query.phrase, status=200, ok=True, parsed_count=len(cases),
            parser_mode="semantic_vector", source_tag="semantic_vector", pages_scanned=1,
            semantic_candidate_count=len(cases), fused_candidate_count=len(cases),
            fusion_latency_ms=int(latency * 1000),
        ))

    def _lexical_only(self, lexical: RetrievalResult, query: RetrievalQuery,
                      started: float) -> RetrievalResult:
        cases = annotate_rank(lexical.cases, "lexical")[:query.max_results]
        latency = time.monotonic() - started
        return RetrievalResult(cases=cases, debug=lexical.debug.model_copy(update={
            'parsed_count': len(cases),
            'source_tag': lexical.debug.source_tag or "lexical_api",
            'lexical_candidate_count': len(lexical.cases),
            'semantic_candidate_count': 0,
            'fused_candidate_count': len(lexical.cases),
            'rerank_applied': False,
            'fusion_latency_ms': int(latency * 1000),
        }))

    def _fused(self, lexical: RetrievalResult, semantic: List[CaseCandidate], query: RetrievalQuery,
               started: float) -> RetrievalResult:
        fused = fuse_candidates(lexical.cases, semantic, limit=max(query.max_results, config.HYBRID_LEXICAL_TOPK))
        ordered, applied = fused, False
        if self.rerank_enabled:
            try:
                result = self.reranker.rerank(query.phrase, fused, top_n=max(8, min(24, len(fused))))
                ordered, applied = result.reranked, result.applied
            except Exception as e:
                COLLABORATOR_FAILURES.labels(collaborator='reranker').inc()
                logger.warning("reranker failed, keeping fused order: %s", e)
        cases = ordered[:query.max_results]
        latency = time.monotonic() - started
        FUSION_LATENCY.observe(latency)
        return RetrievalResult(cases=cases, debug=lexical.debug.model_copy(update={
            'parsed_count': len(cases),
            'source_tag': "fused",
            'lexical_candidate_count': len(lexical.cases),
            'semantic_candidate_count': len(semantic),
            'fused_candidate_count': len(fused),
            'rerank_applied': applied,
            'fusion_latency_ms': int(latency * 1000),
        }))


__all__ = [
    'HybridRetriever', 'fuse_candidates', 'merge_candidates', 'annotate_rank', 'rrf_score',
    'semantic_candidate_from_hit',
]
