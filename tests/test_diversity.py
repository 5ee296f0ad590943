from precedent_finder.pipeline.types import Classification, ScoredCase
from precedent_finder.ranking.diversity import diversify_ranked_cases, equivalent_citation_key


def _scored(title, url, snippet="", court="SC", detail=None, score=0.5):
    return ScoredCase(
        title=title, url=url, snippet=snippet, court=court, detail_text=detail,
        classification=Classification(kind="case"),
        score=score, ranking_score=score, confidence_score=score, confidence_band="LOW",
    )


def test_same_document_id_is_dropped():
    items = [
        _scored("A vs B", "https://indiankanoon.org/doc/101/", "alpha"),
        _scored("A v. B (fragment)", "https://indiankanoon.org/docfragment/101/?formInput=x", "beta"),
    ]
    kept = diversify_ranked_cases(items)
    assert [k.url for k in kept] == ["https://indiankanoon.org/doc/101/"]


def test_equivalent_citations_collapse():
    detail = "Equivalent citations: 2019 SCC 123, AIR 2019 SC 456"
    items = [
        _scored("X vs Y", "https://indiankanoon.org/doc/1/", "one", detail=detail),
        _scored("X vs Y reported", "https://indiankanoon.org/doc/2/", "two", detail=detail),
    ]
    assert len(diversify_ranked_cases(items)) == 1
    assert equivalent_citation_key("Equivalent citations: short") is None


def test_court_day_cap():
    items = [
        _scored(f"Party {n} vs State on 12 March 2019", f"https://indiankanoon.org/doc/{n}/", word)
        for n, word in enumerate(["alpha", "beta", "gamma"], start=1)
    ]
    kept = diversify_ranked_cases(items, max_per_court_day=2)
    assert [k.url for k in kept] == [i.url for i in items[:2]]


def test_undated_items_are_not_day_capped():
    items = [
        _scored(f"Party {n} vs State", f"https://indiankanoon.org/doc/{n}/", word, court="HC")
        for n, word in enumerate(["alpha", "beta", "gamma"], start=1)
    ]
    assert len(diversify_ranked_cases(items, max_per_court_day=1)) == 3


def test_fingerprint_cap_keeps_higher_ranked():
    items = [
        _scored("Same Title", "https://indiankanoon.org/doc/7/", "same snippet", score=0.8),
        _scored("Same Title", "https://indiankanoon.org/doc/8/", "same snippet", score=0.6),
    ]
    kept = diversify_ranked_cases(items, max_per_fingerprint=1)
    assert [k.score for k in kept] == [0.8]


def test_long_shared_body_collapses():
    body = "Body: " + "the appellant state filed the appeal beyond limitation and the delay was explained " * 3
    items = [
        _scored("P vs Q on 1 May 2020", "https://indiankanoon.org/doc/11/", "one", detail=body),
        _scored("P vs Q (copy) on 1 May 2020", "https://example.org/mirror/11", "two", detail=body),
    ]
    assert len(diversify_ranked_cases(items)) == 1
