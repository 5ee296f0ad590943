import pytest
import requests
from requests.structures import CaseInsensitiveDict

from precedent_finder.errors import BlockedSignal, ProviderError
from precedent_finder.pipeline.scheduler import RetrievalScheduler, SchedulerConfig
from precedent_finder.pipeline.types import ContextProfile, IntentProfile, QueryVariant, RetrievalQuery
from precedent_finder.retrieval.providers import (
    KanoonProvider,
    StaticProvider,
    build_search_query,
    parse_retry_after_ms,
    parse_search_page,
)

BASE = "https://indiankanoon.org"

RESULTS_HTML = """
<html><body>
<div class="result">
  <div class="result_title"><a href="/docfragment/123/?formInput=x">State Of Punjab vs Ram Singh on 12 March 2019</a></div>
  <div class="headline">criminal appeal dismissed as time barred</div>
  <div class="docsource">Supreme Court of India</div>
  <a href="/doc/123/">Full Document</a>
  <span>Cites 4</span> <span>Cited by 1,234</span>
</div>
<div class="result">
  <div class="result_title"><a href="/doc/456/">Union Of India vs Mohan on 2 May 2018</a></div>
  <div class="headline">sanction not required</div>
  <div class="docsource">Delhi High Court</div>
</div>
</body></html>
"""


class FakeResponse:
    def __init__(self, status_code=200, text="", headers=None):
        self.status_code = status_code
        self.text = text
        self.headers = CaseInsensitiveDict(headers or {})

    @property
    def ok(self):
        return self.status_code < 400


class FakeSession:
    def __init__(self, response=None, error=None, responses=None):
        self.response = response
        self.error = error
        self.responses = list(responses or [])
        self.calls = []

    def get(self, url, headers=None, timeout=None):
        self.calls.append(url)
        if self.error:
            raise self.error
        if self.responses:
            return self.responses.pop(0)
        return self.response


class FakeCache:
    def __init__(self, remaining_ms=0):
        self.remaining_ms = remaining_ms
        self.cooldowns = []

    def cooldown_remaining_ms(self, scope):
        return self.remaining_ms

    def set_cooldown(self, scope, duration_ms):
        self.cooldowns.append((scope, duration_ms))


class CooldownCache(FakeCache):
    """Reports the most recent cooldown as still active."""

    def set_cooldown(self, scope, duration_ms):
        super().set_cooldown(scope, duration_ms)
        self.remaining_ms = duration_ms


def _provider(response=None, error=None, remaining_ms=0):
    session = FakeSession(response, error)
    cache = FakeCache(remaining_ms)
    return KanoonProvider(session=session, cache=cache, base_url=BASE), session, cache


def test_parse_result_containers():
    cases, mode = parse_search_page(RESULTS_HTML, BASE)
    assert mode == "result_container"
    assert [c.url for c in cases] == [f"{BASE}/docfragment/123/", f"{BASE}/doc/456/"]
    first, second = cases
    assert first.court == "SC"
    assert first.snippet == "criminal appeal dismissed as time barred"
    assert first.full_document_url == f"{BASE}/doc/123/"
    assert (first.cites_count, first.cited_by_count) == (4, 1234)
    assert second.court == "HC"
    assert second.full_document_url == second.url


def test_parse_no_match_and_link_harvest():
    assert parse_search_page("<html><body>No matching results</body></html>", BASE) == ([], "no_match")
    html = "<html><body><a href='/doc/789/'>Some Judgment Title</a><a href='/search/?q=x'>Search</a></body></html>"
    cases, mode = parse_search_page(html, BASE)
    assert mode == "doc_link_harvest"
    assert [c.url for c in cases] == [f"{BASE}/doc/789/"]


def test_build_search_query_filters_and_exclusions():
    q = RetrievalQuery(phrase="sanction  not required", court_type="supremecourt", from_date="1-1-2019",
                       exclude_tokens=["acquittal", "two words"])
    assert build_search_query(q) == "doctypes:supremecourt fromdate:1-1-2019 sanction not required ANDNOT acquittal"


def test_retry_after_is_capped():
    assert parse_retry_after_ms("1", ceiling_ms=1500) == 1000
    assert parse_retry_after_ms("10", ceiling_ms=1500) == 1500
    assert parse_retry_after_ms(None, ceiling_ms=1500) == 1500
    assert parse_retry_after_ms("not a date", ceiling_ms=1500) == 1500


def test_kanoon_search_success():
    provider, session, _ = _provider(FakeResponse(200, RESULTS_HTML))
    result = provider.search(RetrievalQuery(phrase="delay condonation refused"))
    assert len(result.cases) == 2
    assert result.debug.ok is True
    assert result.debug.parser_mode == "result_container"
    assert result.debug.pages_scanned == 1
    assert len(session.calls) == 1
    assert session.calls[0].startswith(f"{BASE}/search/?formInput=delay+condonation+refused")


def test_kanoon_rate_limit_sets_cooldown():
    provider, _, cache = _provider(FakeResponse(429, "", {"Retry-After": "1"}))
    with pytest.raises(ProviderError) as exc:
        provider.search(RetrievalQuery(phrase="sanction required", cooldown_scope="ik"))
    debug = exc.value.debug
    assert debug.status == 429
    assert debug.blocked_type == "rate_limit"
    assert debug.retry_after_ms == 1000
    assert cache.cooldowns == [("ik", 2000)]
    assert BlockedSignal.from_debug(debug).kind == "rate_limit"


def test_kanoon_challenge_page_is_reported_not_raised():
    page = "<html><head><title>Just a moment...</title></head><body>cf-chl</body></html>"
    provider, _, cache = _provider(FakeResponse(403, page, {"Server": "cloudflare"}))
    result = provider.search(RetrievalQuery(phrase="sanction required"))
    assert result.cases == []
    assert result.debug.challenge_detected is True
    assert result.debug.cloudflare_detected is True
    assert result.debug.blocked_type == "cloudflare_challenge"
    assert len(cache.cooldowns) == 1
    assert BlockedSignal.from_debug(result.debug).kind == "cloudflare_challenge"


def test_kanoon_local_cooldown_skips_fetch():
    provider, session, _ = _provider(FakeResponse(200, RESULTS_HTML), remaining_ms=5000)
    with pytest.raises(ProviderError) as exc:
        provider.search(RetrievalQuery(phrase="sanction required"))
    assert exc.value.debug.blocked_type == "local_cooldown"
    assert exc.value.debug.retry_after_ms == 5000
    assert session.calls == []


def test_kanoon_timeout():
    provider, _, _ = _provider(error=requests.exceptions.Timeout())
    with pytest.raises(ProviderError) as exc:
        provider.search(RetrievalQuery(phrase="sanction required"))
    assert exc.value.debug.timed_out is True
    assert exc.value.debug.status == 408


def test_kanoon_http_error_raises():
    provider, _, _ = _provider(FakeResponse(500, "<html><body>oops</body></html>"))
    with pytest.raises(ProviderError):
        provider.search(RetrievalQuery(phrase="sanction required"))


def test_static_provider_caps_results():
    cases, _ = parse_search_page(RESULTS_HTML, BASE)
    result = StaticProvider(cases).search(RetrievalQuery(phrase="anything", max_results=1))
    assert len(result.cases) == 1
    assert result.debug.ok and result.debug.parser_mode == "static"


def test_kanoon_retry_fetches_through_its_own_cooldown():
    provider, session, _ = _provider(FakeResponse(200, RESULTS_HTML), remaining_ms=2000)
    result = provider.search(RetrievalQuery(phrase="sanction required", retry_index=1))
    assert len(result.cases) == 2
    assert len(session.calls) == 1


def test_scheduler_retries_kanoon_rate_limit():
    session = FakeSession(responses=[
        FakeResponse(429, "", {"Retry-After": "1"}),
        FakeResponse(200, RESULTS_HTML),
    ])
    cache = CooldownCache()
    provider = KanoonProvider(session=session, cache=cache, base_url=BASE)
    settings = SchedulerConfig(
        global_budget=4, blocked_threshold=2, max_elapsed_ms=20000, min_case_target=1,
        stop_on_candidate_target=True, fetch_timeout_ms=3000, fetch_timeout_cap_ms=3500,
        max_429_retries=1, max_retry_after_ms=1500, attempt_delay_ms=0, adaptive=False,
        max_pages_by_phase={},
    )
    sleeps = []
    scheduler = RetrievalScheduler(provider, settings=settings, sleep=sleeps.append, cooldown_scope="ik")
    variant = QueryVariant(id="primary_delay", phrase="delay condonation refused", phase="primary", priority=90)
    intent = IntentProfile(query="q", cleaned_query="q", context=ContextProfile())

    result = scheduler.run([variant], intent)

    assert len(session.calls) == 2
    assert sleeps == [1.0]
    assert cache.cooldowns == [("ik", 2000)]
    assert [(a.status, a.blocked_type, a.retry_index) for a in result.attempts] == [
        (429, "rate_limit", 0), (200, None, 1)]
    assert result.stop_reason == "enough_candidates"
    assert result.blocked_kind is None
