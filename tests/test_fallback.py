from precedent_finder.pipeline.fallback import (
    ADVISORY_SCORE,
    SEARCH_URL_PREFIX,
    build_synthetic_near_miss,
    failure_reason_label,
    fallback_search_url,
    fallback_status,
    missing_critical_elements,
    should_inject_fallback,
)
from precedent_finder.pipeline.intent import build_intent_profile
from precedent_finder.pipeline.query_coach import evaluate_intent
from precedent_finder.proposition.checklist import build_proposition_checklist

DELAY_QUERY = "State criminal appeal dismissed as time barred after delay condonation refused"


def _setup(query):
    intent = build_intent_profile(query)
    return intent, build_proposition_checklist(intent.context, intent.cleaned_query)


def test_should_inject_only_when_both_tiers_empty():
    assert should_inject_fallback(0, 0, always_return=True, synthetic_enabled=True)
    assert not should_inject_fallback(1, 0, always_return=True, synthetic_enabled=True)
    assert not should_inject_fallback(0, 2, always_return=True, synthetic_enabled=True)
    assert not should_inject_fallback(0, 0, always_return=False, synthetic_enabled=True)
    assert not should_inject_fallback(0, 0, always_return=True, synthetic_enabled=False)


def test_status_and_reason_labels():
    assert fallback_status("blocked") == "blocked"
    assert fallback_status("completed") == "no_match"
    assert fallback_status(None) == "no_match"
    assert failure_reason_label("blocked", "rate_limit") == "retrieval_blocked_rate_limit"
    assert failure_reason_label("blocked") == "retrieval_blocked"
    assert failure_reason_label("budget_exhausted") == "retrieval_budget_exhausted"
    assert failure_reason_label("enough_candidates") == "retrieval_no_match"


def test_synthetic_item_shape():
    intent, checklist = _setup(DELAY_QUERY)
    item = build_synthetic_near_miss(DELAY_QUERY, intent, checklist, "completed")
    assert item.fallback_reason == "synthetic_advisory"
    assert item.score == ADVISORY_SCORE
    assert item.confidence_score == ADVISORY_SCORE
    assert item.confidence_band == "LOW"
    assert item.retrieval_tier == "exploratory"
    assert item.classification.kind == "unknown"
    assert item.court == "UNKNOWN"
    assert item.missing_elements
    assert 0 < len(item.gap_summary) <= 5
    assert item.url.startswith(SEARCH_URL_PREFIX)
    assert item.reasons[0] == "Fallback generated because retrieval no match"


def test_blocked_reason_carries_kind():
    intent, checklist = _setup(DELAY_QUERY)
    item = build_synthetic_near_miss(DELAY_QUERY, intent, checklist, "blocked", blocked_kind="rate_limit")
    assert item.reasons[0] == "Fallback generated because retrieval blocked rate limit"
    assert "retrieval blocked rate limit" in item.selection_summary


def test_missing_elements_for_vague_query():
    query = "tell me something useful"
    intent, checklist = _setup(query)
    missing = missing_critical_elements(query, intent, checklist, evaluate_intent(intent).checklist)
    assert "Actor role" in missing
    assert "Proceeding/posture" in missing
    assert "Outcome polarity" in missing
    item = build_synthetic_near_miss(query, intent, checklist, None)
    assert item.missing_elements[:3] == ["Actor role", "Proceeding/posture", "Outcome polarity"]


def test_search_url_prefers_strict_phrase():
    intent, _ = _setup(DELAY_QUERY)
    coach = evaluate_intent(intent)
    url = fallback_search_url(DELAY_QUERY, coach, strict_phrase="sanction not required")
    assert url == SEARCH_URL_PREFIX + "sanction%20not%20required"
    assert fallback_search_url(DELAY_QUERY, coach).startswith(SEARCH_URL_PREFIX + "state%20in%20criminal%20appeal")
