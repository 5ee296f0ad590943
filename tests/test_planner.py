import re

from precedent_finder.pipeline.intent import build_intent_profile
from precedent_finder.pipeline.planner import (
    MAX_VARIANTS_PER_PHASE,
    build_guarantee_backfill_variants,
    build_query_variants,
    build_variant,
    micro_templates,
    paraphrase_key,
    phase_counts,
    resolve_court_scope,
)
from precedent_finder.pipeline.reasoner_plan import validate_reasoner_plan
from precedent_finder.pipeline.types import PHASE_ORDER, ContextProfile

DELAY_QUERY = "State criminal appeal dismissed as time barred after delay condonation refused"


def _plan(**overrides):
    raw = {
        "query_variants_strict": ["state criminal appeal delay not condoned"],
        "must_have_terms": ["condonation", "time barred"],
        "must_not_have_terms": ["bail"],
        "case_anchors": ["collector anantnag katiji"],
        "proposition": {"jurisdiction_hint": "SC"},
    }
    raw.update(overrides)
    plan, _ = validate_reasoner_plan(raw)
    return plan


def test_variants_follow_phase_order_and_caps():
    variants = build_query_variants(build_intent_profile(DELAY_QUERY))
    assert variants
    order = [PHASE_ORDER.index(v.phase) for v in variants]
    assert order == sorted(order)
    assert all(n <= MAX_VARIANTS_PER_PHASE for n in phase_counts(variants).values())
    assert {'primary', 'fallback', 'micro'} <= set(phase_counts(variants))


def test_variant_ids_priorities_and_strictness():
    for v in build_query_variants(build_intent_profile(DELAY_QUERY)):
        assert re.match(rf"^{v.phase}_\d+_[0-9a-f]{{8}}$", v.id)
        if v.phase in ('primary', 'fallback'):
            assert v.strictness == 'strict'
            assert len(v.tokens) >= 4
        else:
            assert v.strictness == 'relaxed'
            assert len(v.tokens) >= 3
    primary = [v for v in build_query_variants(build_intent_profile(DELAY_QUERY)) if v.phase == 'primary']
    assert primary[0].priority == 104


def test_planning_is_deterministic():
    intent = build_intent_profile(DELAY_QUERY)
    first = build_query_variants(intent)
    second = build_query_variants(intent)
    assert [(v.id, v.phrase, v.canonical_key) for v in first] == [(v.id, v.phrase, v.canonical_key) for v in second]


def test_doctrine_phrases_for_criminal_delay():
    variants = build_query_variants(build_intent_profile(DELAY_QUERY))
    micro = [v.phrase for v in variants if v.phase == 'micro']
    assert "criminal appeal delay condonation" in micro


def test_paraphrase_key_is_order_insensitive():
    assert paraphrase_key("micro", "relaxed", "delay condonation appeal") == \
        paraphrase_key("micro", "relaxed", "appeal condonation delay")
    assert paraphrase_key("micro", "relaxed", "delay condonation appeal") != \
        paraphrase_key("fallback", "relaxed", "delay condonation appeal")


def test_build_variant_defaults():
    v = build_variant("micro", "test", "Delay condonation appeal was refused by Court!", 3,
                      strictness="relaxed")
    assert v.phrase == "delay condonation appeal was refused by court"
    assert v.priority == 56
    assert v.canonical_key.startswith("micro:relaxed:")
    assert v.id.startswith("micro_3_")

    long_phrase = " ".join(f"term{i}" for i in range(15))
    assert len(build_variant("browse", "t", long_phrase, 0).tokens) == 10
    assert len(build_variant("primary", "t", long_phrase, 0).tokens) == 12
    assert build_variant("browse", "t", long_phrase, 0, canonical_key=" Shared ").canonical_key == "shared"


def test_court_scope_prefers_plan_hint():
    intent = build_intent_profile("Supreme Court criminal appeal delay condonation refused")
    assert resolve_court_scope(intent) == 'SC'
    plan = _plan(proposition={"jurisdiction_hint": "HC"})
    assert resolve_court_scope(intent, plan) == 'HC'


def test_reasoner_plan_contributes_variants():
    variants = build_query_variants(build_intent_profile(DELAY_QUERY), _plan())
    primary = [v for v in variants if v.phase == 'primary']
    assert primary[0].purpose == 'reasoner-strict'
    assert primary[0].phrase == "state criminal appeal delay not condoned"
    assert primary[0].court_scope == 'SC'
    assert primary[0].must_include_tokens == ['condonation']
    assert primary[0].must_exclude_tokens == ['bail']
    browse = [v.phrase for v in variants if v.phase == 'browse']
    assert "collector anantnag katiji" in browse
    relaxed = [v for v in variants if v.strictness == 'relaxed']
    assert all(v.must_include_tokens == [] for v in relaxed)


def test_unusable_plan_is_ignored():
    intent = build_intent_profile(DELAY_QUERY)
    plan, _ = validate_reasoner_plan({"case_anchors": ["collector anantnag katiji"]})
    assert not plan.usable
    with_plan = build_query_variants(intent, plan)
    without = build_query_variants(intent)
    assert [v.id for v in with_plan] == [v.id for v in without]


def test_guarantee_backfill_from_near_miss_titles():
    intent = build_intent_profile(DELAY_QUERY)
    variants = build_guarantee_backfill_variants(intent, ["State Of Punjab vs Ram Singh on 12 March 2019"])
    assert variants
    assert all(v.phase == 'browse' and v.strictness == 'relaxed' for v in variants)
    assert all(v.purpose == 'guarantee-backfill' for v in variants)
    assert all('2019' not in v.phrase for v in variants)
    assert variants[0].phrase.startswith("state punjab ram singh")
    assert len(build_guarantee_backfill_variants(intent, ["State Of Punjab vs Ram Singh"], max_variants=2)) <= 2


def test_micro_templates_by_context():
    ctx = ContextProfile(domains=['criminal'], issues=['quashing of proceedings'])
    phrases = micro_templates(ctx)
    assert "quashing criminal proceedings" in phrases
    assert "criminal prosecution" in phrases
    assert micro_templates(ContextProfile(procedures=['writ petition'])) == ['writ petition']
