from precedent_finder.errors import ProviderError
from precedent_finder.pipeline.engine import EngineSettings, PrecedentSearchEngine
from precedent_finder.pipeline.scheduler import SchedulerConfig
from precedent_finder.pipeline.types import AttemptDebug, CaseCandidate
from precedent_finder.retrieval.providers import StaticProvider

DELAY_QUERY = "State criminal appeal dismissed as time barred after delay condonation refused"
SNIPPET = ("The criminal appeal filed by the State was dismissed as time barred since the delay "
           "was not condoned and condonation was refused.")

STRICT = CaseCandidate(
    title="State Of Maharashtra vs Ramesh on 3 March 2015",
    url="https://indiankanoon.org/doc/101/",
    snippet=SNIPPET,
    court="SC",
    detail_text="Criminal appeal by the State dismissed; delay not condoned.",
)
NOISE = CaseCandidate(title="Search", url="https://indiankanoon.org/search/?formInput=x")


class FakeClock:
    def __init__(self, now=50.0):
        self.now = now

    def __call__(self):
        return self.now


class RaisingProvider:
    provider_id = "raising"

    def __init__(self, error):
        self.error = error
        self.calls = 0

    def search(self, query):
        self.calls += 1
        raise self.error


def _engine(provider=None, **overrides):
    scheduler = SchedulerConfig(global_budget=4, blocked_threshold=2, max_elapsed_ms=20000, min_case_target=1,
                                max_429_retries=0, attempt_delay_ms=0)
    opts = {'always_return': True, 'synthetic_fallback': True, **overrides}
    settings = EngineSettings(scheduler=scheduler, **opts)
    return PrecedentSearchEngine(provider=provider, settings=settings, clock=FakeClock(), sleep=lambda s: None)


def test_prefetched_candidates_skip_retrieval():
    provider = RaisingProvider(RuntimeError("must not be called"))
    response = _engine(provider).search(DELAY_QUERY, candidates=[STRICT, NOISE])
    assert provider.calls == 0
    assert response.status == "completed"
    assert response.stop_reason == "completed"
    assert [c.url for c in response.cases_exact_strict] == [STRICT.url]
    assert response.cases[0].retrieval_tier == "exact_strict"
    assert response.fallback_reason is None
    assert response.trace is None
    assert response.proposition.outcome_required is True


def test_empty_pool_gets_synthetic_fallback():
    response = _engine().search(DELAY_QUERY, candidates=[])
    assert response.status == "no_match"
    assert response.cases == []
    assert len(response.near_miss) == 1
    assert response.near_miss[0].fallback_reason == "synthetic_advisory"
    assert response.fallback_reason == "retrieval_no_match"


def test_client_blocked_kind_with_empty_pool():
    response = _engine().search(DELAY_QUERY, candidates=[], client_blocked_kind="cloudflare_challenge")
    assert response.status == "blocked"
    assert response.stop_reason == "blocked"
    assert response.blocked_kind == "cloudflare_challenge"
    assert response.fallback_reason == "retrieval_blocked_cloudflare_challenge"


def test_client_blocked_kind_ignored_when_candidates_supplied():
    response = _engine().search(DELAY_QUERY, candidates=[STRICT], client_blocked_kind="rate_limit")
    assert response.stop_reason == "completed"
    assert response.blocked_kind is None


def test_fallback_can_be_disabled():
    response = _engine(always_return=False).search(DELAY_QUERY, candidates=[])
    assert response.near_miss == []
    assert response.status == "completed"


def test_live_retrieval_through_provider():
    response = _engine(StaticProvider([STRICT]), guarantee_min_results=1).search(DELAY_QUERY, debug=True)
    assert response.status == "completed"
    assert response.stop_reason == "enough_candidates"
    assert [c.url for c in response.cases] == [STRICT.url]
    trace = response.trace
    assert trace.scheduler.attempts_used == 1
    assert trace.scheduler.guarantee_pass_used is False
    assert trace.planner.variant_count == sum(trace.planner.phase_counts.values()) > 0
    assert trace.verification.strict_exact_count == 1


def test_guarantee_pass_resumes_scheduler():
    response = _engine(StaticProvider([STRICT]), guarantee_min_results=3).search(DELAY_QUERY, debug=True)
    trace = response.trace
    assert trace.scheduler.guarantee_pass_used is True
    assert trace.scheduler.attempts_used > 1
    assert [c.url for c in response.cases] == [STRICT.url]


def test_rate_limited_provider_ends_blocked():
    error = ProviderError("HTTP 429", AttemptDebug(status=429, blocked_type="rate_limit", retry_after_ms=900))
    provider = RaisingProvider(error)
    response = _engine(provider).search(DELAY_QUERY, debug=True)
    assert provider.calls == 2
    assert response.status == "blocked"
    assert response.blocked_kind == "rate_limit"
    assert response.fallback_reason == "retrieval_blocked_rate_limit"
    assert response.near_miss[0].fallback_reason == "synthetic_advisory"
    assert response.trace.scheduler.guarantee_pass_used is False


def test_provider_failures_still_respond():
    response = _engine(RaisingProvider(RuntimeError("connection reset"))).search(DELAY_QUERY, debug=True)
    assert response.status == "no_match"
    assert len(response.near_miss) == 1
    assert all(a.status == 500 for a in response.trace.scheduler.attempts)


def test_debug_trace_records_plan_warnings():
    response = _engine().search(DELAY_QUERY, debug=True, candidates=[STRICT], reasoner_plan="not a plan")
    trace = response.trace
    assert trace.planner.reasoner_plan_used is False
    assert "reasoner_plan:reasoner payload is not an object" in trace.warnings
    assert trace.intent.cleaned_query == DELAY_QUERY
    assert trace.classification['case'] == 1
