from precedent_finder.pipeline.intent import (
    build_intent_profile,
    extract_date_window,
    infer_court_hint,
    sanitize_query,
)

DELAY_QUERY = "State criminal appeal dismissed as time barred after delay condonation refused"


def test_intent_extracts_structure():
    intent = build_intent_profile(DELAY_QUERY)
    assert intent.procedures == ['appeal', 'criminal appeal', 'delay condonation application']
    assert intent.actors == ['state']
    assert intent.issues == ['delay condonation refused', 'appeal dismissed as time barred']
    assert intent.domains == ['criminal', 'appellate']
    assert intent.court_hint == 'ANY'
    assert intent.date_window.from_date is None
    assert 'state' in intent.anchors


def test_intent_is_deterministic():
    assert build_intent_profile(DELAY_QUERY) == build_intent_profile(DELAY_QUERY)


def test_empty_query_yields_empty_profile():
    intent = build_intent_profile("")
    assert intent.cleaned_query == ""
    assert intent.issues == []
    assert intent.statutes == []
    assert intent.anchors == []
    assert intent.court_hint == 'ANY'


def test_sanitize_strips_conversational_filler():
    assert sanitize_query("Kindly find me precedents on sanction refusal") == "on sanction refusal"


def test_court_hint():
    assert infer_court_hint("Supreme Court view on sanction") == 'SC'
    assert infer_court_hint("a High Court revision") == 'HC'
    assert infer_court_hint("supreme court and high court") == 'ANY'


def test_date_window_year_and_month():
    w = extract_date_window("judgments of 2019")
    assert (w.from_date, w.to_date) == ("1-1-2019", "31-12-2019")
    w = extract_date_window("decided in february 2020")
    assert (w.from_date, w.to_date) == ("1-2-2020", "29-2-2020")
    assert extract_date_window("no year here").from_date is None


def test_section_197_with_pc_act_marks_interaction():
    intent = build_intent_profile("sanction under Section 197 CrPC for offences under the PC Act")
    assert 'section interaction between section 197 crpc and pc act' in intent.issues
    assert any('197' in s for s in intent.statutes)
    assert 'bnss' in intent.transition_aliases
