import json

import pytest

from precedent_finder.api import config
from precedent_finder.api.dependencies import set_engine
from precedent_finder.api.server import app
from precedent_finder.pipeline.engine import EngineSettings, PrecedentSearchEngine
from precedent_finder.pipeline.scheduler import SchedulerConfig
from precedent_finder.retrieval.providers import StaticProvider

DELAY_QUERY = "State criminal appeal dismissed as time barred after delay condonation refused"
STRICT = {
    "title": "State Of Maharashtra vs Ramesh on 3 March 2015",
    "url": "https://indiankanoon.org/doc/101/",
    "snippet": ("The criminal appeal filed by the State was dismissed as time barred since the delay "
                "was not condoned and condonation was refused."),
    "court": "SC",
    "detail_text": "Criminal appeal by the State dismissed; delay not condoned.",
}


@pytest.fixture(autouse=True)
def _offline_engine(monkeypatch):
    monkeypatch.setattr(config, "API_KEY", "")
    scheduler = SchedulerConfig(global_budget=1, max_elapsed_ms=5000, attempt_delay_ms=0)
    set_engine(PrecedentSearchEngine(provider=StaticProvider([]), settings=EngineSettings(scheduler=scheduler)))


def test_health():
    with app.test_client() as c:
        r = c.get('/api/health')
        assert r.status_code == 200
        j = r.get_json()
        assert j['status'] == 'ok'
        assert j['engine_loaded'] is True


def test_version():
    with app.test_client() as c:
        r = c.get('/api/version')
        assert r.status_code == 200
        j = r.get_json()
        assert j['version'] == config.APP_VERSION
        assert 'python' in j


def test_search_validation():
    with app.test_client() as c:
        r = c.post('/api/search', data=json.dumps({}), content_type='application/json')
        assert r.status_code == 400
        assert r.get_json().get('error') == 'validation_failed'

        r = c.post('/api/search', json={"query": DELAY_QUERY, "max_results": 50})
        assert r.status_code == 400
        assert r.get_json()['details']

        r = c.post('/api/search', json={"query": DELAY_QUERY, "client_blocked_kind": "teapot"})
        assert r.status_code == 400


def test_search_rejects_non_object_body():
    with app.test_client() as c:
        r = c.post('/api/search', data=json.dumps([1, 2]), content_type='application/json')
        assert r.status_code == 400


def test_search_with_prefetched_candidates():
    with app.test_client() as c:
        payload = {"query": DELAY_QUERY, "candidates": [STRICT], "debug": True}
        r = c.post('/api/search', json=payload)
        assert r.status_code == 200
        j = r.get_json()
        assert j['status'] == 'completed'
        assert j['cases_exact_strict'][0]['url'] == STRICT['url']
        assert 'trace' in j
        assert j['trace']['planner']['variant_count'] == 0


def test_search_without_matches_returns_advisory():
    with app.test_client() as c:
        r = c.post('/api/search', json={"query": DELAY_QUERY, "candidates": []})
        assert r.status_code == 200
        j = r.get_json()
        assert j['status'] == 'no_match'
        assert j['near_miss'][0]['fallback_reason'] == 'synthetic_advisory'
        assert 'trace' not in j


def test_query_coach():
    with app.test_client() as c:
        r = c.post('/api/query-coach', json={"query": DELAY_QUERY})
        assert r.status_code == 200
        j = r.get_json()
        assert j['grade'] == 'STRONG'
        assert j['readiness'] == 'READY_FOR_EXACT'
        assert len(j['checklist']) == 5

        r = c.post('/api/query-coach', json={"query": ""})
        assert r.status_code == 400


def test_api_key_required_when_configured(monkeypatch):
    monkeypatch.setattr(config, "API_KEY", "secret")
    with app.test_client() as c:
        r = c.post('/api/query-coach', json={"query": DELAY_QUERY})
        assert r.status_code == 401
        r = c.post('/api/query-coach', json={"query": DELAY_QUERY}, headers={"X-API-Key": "secret"})
        assert r.status_code == 200


def test_request_id_is_echoed():
    with app.test_client() as c:
        r = c.get('/api/health', headers={"X-Request-ID": "req-123"})
        assert r.headers.get("X-Request-ID") == "req-123"
        r = c.get('/api/health')
        assert r.headers.get("X-Request-ID")


def test_metrics_endpoint():
    with app.test_client() as c:
        c.get('/api/health')
        r = c.get('/metrics')
        assert r.status_code == 200
        assert 'text/plain' in r.content_type
        body = r.get_data(as_text=True)
        assert 'precedent_finder_requests_total' in body
