import threading

import pytest

from precedent_finder.errors import ProviderError
from precedent_finder.pipeline.types import AttemptDebug, CaseCandidate, RetrievalProvenance, RetrievalQuery
from precedent_finder.retrieval.hybrid import HybridRetriever, fuse_candidates, merge_candidates
from precedent_finder.retrieval.providers import StaticProvider
from precedent_finder.retrieval.reranker import TokenOverlapReranker
from precedent_finder.retrieval.vector_index import VectorHit

URL_A = "https://indiankanoon.org/doc/1/"
URL_B = "https://indiankanoon.org/doc/2/"
URL_C = "https://indiankanoon.org/doc/3/"


def _cand(url, title="A vs B", snippet="", court="UNKNOWN"):
    return CaseCandidate(title=title, url=url, snippet=snippet, court=court)


class FakeStore:
    def __init__(self, hits):
        self.hits = hits

    def is_configured(self):
        return True

    def query(self, vector, top_k, court=None, from_date=None, to_date=None):
        return self.hits[:top_k]


class FakeEmbedder:
    def __init__(self, error=None):
        self.error = error

    def embed(self, text):
        if self.error:
            raise self.error
        return [1.0, 0.0]


class FailingProvider:
    provider_id = "failing"

    def search(self, query):
        raise ProviderError("down", AttemptDebug(status=500))


class StalledProvider:
    """Holds the lexical call until released, then answers late."""
    provider_id = "stalled"

    def __init__(self):
        self.release = threading.Event()

    def search(self, query):
        self.release.wait(5)
        return StaticProvider([_cand(URL_A)]).search(query)


def _hits():
    return [
        VectorHit(doc_id="2", chunk_id="2::0", score=0.9, text="semantic text for b", court="SC", url=URL_B),
        VectorHit(doc_id="3", chunk_id="3::0", score=0.8, text="semantic text for c", court="HC",
                  title="C vs D", url=URL_C),
    ]


def _retriever(lexical, embedder=None, hits=None):
    return HybridRetriever(lexical, semantic_store=FakeStore(hits if hits is not None else _hits()),
                           embedder=embedder or FakeEmbedder(), enabled=True, rerank_enabled=False)


def test_disabled_hybrid_is_lexical_only():
    retriever = HybridRetriever(StaticProvider([_cand(URL_A), _cand(URL_B)]), enabled=False)
    try:
        result = retriever.search(RetrievalQuery(phrase="sanction"))
    finally:
        retriever.close()
    assert [c.retrieval.lexical_rank for c in result.cases] == [1, 2]
    assert result.debug.semantic_candidate_count == 0
    assert "lexical_api" in result.cases[0].retrieval.source_tags


def test_fusion_merges_by_url():
    retriever = _retriever(StaticProvider([_cand(URL_A), _cand(URL_B, snippet="short")]))
    try:
        result = retriever.search(RetrievalQuery(phrase="sanction"))
    finally:
        retriever.close()
    assert [c.url for c in result.cases] == [URL_B, URL_C, URL_A]
    b = result.cases[0]
    assert (b.retrieval.lexical_rank, b.retrieval.semantic_rank) == (2, 1)
    assert "fused" in b.retrieval.source_tags
    assert b.court == "SC"
    assert result.debug.source_tag == "fused"
    assert result.debug.semantic_candidate_count == 2


def test_semantic_failure_falls_back_to_lexical():
    retriever = _retriever(StaticProvider([_cand(URL_A)]), embedder=FakeEmbedder(RuntimeError("model missing")))
    try:
        result = retriever.search(RetrievalQuery(phrase="sanction"))
    finally:
        retriever.close()
    assert [c.url for c in result.cases] == [URL_A]
    assert result.debug.semantic_candidate_count == 0


def test_lexical_failure_uses_semantic_only():
    retriever = _retriever(FailingProvider())
    try:
        result = retriever.search(RetrievalQuery(phrase="sanction"))
    finally:
        retriever.close()
    assert result.debug.parser_mode == "semantic_vector"
    assert [c.url for c in result.cases] == [URL_B, URL_C]


def test_both_failing_raises_lexical_error():
    retriever = _retriever(FailingProvider(), embedder=FakeEmbedder(RuntimeError("boom")))
    try:
        with pytest.raises(ProviderError):
            retriever.search(RetrievalQuery(phrase="sanction"))
    finally:
        retriever.close()


def test_dominance_cap_mixes_sources():
    lexical = [_cand(f"https://indiankanoon.org/doc/1{i}/") for i in range(3)]
    semantic = [_cand(f"https://indiankanoon.org/doc/2{i}/") for i in range(3)]
    fused = fuse_candidates(lexical, semantic, limit=2, rrf_k=60, lexical_weight=1.0, semantic_weight=1.0,
                            dominance_cap=0.5)
    assert {c.url for c in fused} == {lexical[0].url, semantic[0].url}


def test_merge_keeps_known_court_and_longer_snippet():
    existing = _cand(URL_A, snippet="short", court="SC").model_copy(
        update={'retrieval': RetrievalProvenance(source_tags=["lexical_api"], lexical_rank=3)})
    incoming = _cand(URL_A, snippet="a much longer snippet").model_copy(
        update={'retrieval': RetrievalProvenance(source_tags=["semantic_vector"], semantic_rank=1)})
    merged = merge_candidates(existing, incoming)
    assert merged.court == "SC"
    assert merged.snippet == "a much longer snippet"
    assert merged.retrieval.source_tags == ["lexical_api", "semantic_vector"]
    assert (merged.retrieval.lexical_rank, merged.retrieval.semantic_rank) == (3, 1)


def test_token_overlap_reranker_orders_head_only():
    a = _cand(URL_A, title="Unrelated vs Other")
    b = _cand(URL_B, title="Sanction refused vs State", snippet="prosecution sanction refused")
    c = _cand(URL_C, title="Sanction vs Tail")
    result = TokenOverlapReranker().rerank("sanction refused", [a, b, c], top_n=2)
    assert result.applied
    assert [x.url for x in result.reranked] == [URL_B, URL_A, URL_C]
    assert result.reranked[0].retrieval.rerank_score == 1.0
    assert result.reranked[2].retrieval is None


def test_reranker_skips_empty_query():
    result = TokenOverlapReranker().rerank("of", [_cand(URL_A)], top_n=5)
    assert not result.applied


def test_rerank_applied_flag_on_fused_results():
    retriever = HybridRetriever(StaticProvider([_cand(URL_A), _cand(URL_B, title="Sanction vs State")]),
                                semantic_store=FakeStore(_hits()), embedder=FakeEmbedder(), enabled=True,
                                rerank_enabled=True)
    try:
        result = retriever.search(RetrievalQuery(phrase="sanction"))
    finally:
        retriever.close()
    assert result.debug.rerank_applied is True
    assert all(c.retrieval.rerank_score is not None for c in result.cases)


def test_stalled_lexical_call_falls_back_to_semantic():
    lexical = StalledProvider()
    retriever = _retriever(lexical)
    try:
        result = retriever.search(RetrievalQuery(phrase="sanction", timeout_ms=100))
    finally:
        lexical.release.set()
        retriever.close()
    assert result.debug.parser_mode == "semantic_vector"
    assert [c.url for c in result.cases] == [URL_B, URL_C]


def test_stalled_lexical_call_with_failed_semantic_is_a_timeout():
    lexical = StalledProvider()
    retriever = _retriever(lexical, embedder=FakeEmbedder(RuntimeError("boom")))
    try:
        with pytest.raises(ProviderError) as exc:
            retriever.search(RetrievalQuery(phrase="sanction", timeout_ms=100))
    finally:
        lexical.release.set()
        retriever.close()
    assert exc.value.debug.status == 408
    assert exc.value.debug.timed_out is True
