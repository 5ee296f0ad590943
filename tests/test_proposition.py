from precedent_finder import config
from precedent_finder.pipeline.intent import build_intent_profile
from precedent_finder.pipeline.types import CaseCandidate, ContextProfile
from precedent_finder.proposition.checklist import (
    HookGroupConstraint,
    OutcomeConstraint,
    PropositionAxis,
    PropositionChecklist,
    build_proposition_checklist,
    evaluate_proposition_signals,
    infer_outcome_polarity,
)
from precedent_finder.proposition.gate import near_miss_threshold, split_by_proposition
from precedent_finder.proposition.scoring import SCORE_CEILING, confidence_band, score_cases

DELAY_QUERY = "State criminal appeal dismissed as time barred after delay condonation refused"


def _delay_checklist():
    intent = build_intent_profile(DELAY_QUERY)
    return intent, build_proposition_checklist(intent.context, intent.cleaned_query)


def _sanction_checklist():
    return PropositionChecklist(
        axes=[
            PropositionAxis(key="actor", label="actor or party role", required=True, terms=["state"]),
            PropositionAxis(key="proceeding", label="proceeding or posture", required=True, terms=["appeal"]),
            PropositionAxis(key="legal_hook", label="statute/section/legal hook", required=True,
                            terms=["section 197", "pc act"]),
            PropositionAxis(key="outcome", label="required outcome", required=True,
                            terms=["sanction not required", "not required"]),
        ],
        required_elements=["actor or party role", "proceeding or posture", "statute/section/legal hook",
                           "required outcome"],
        optional_elements=[],
        contradiction_terms=["sanction required"],
        hook_groups=[
            HookGroupConstraint(group_id="sec_crpc_197", label="sec crpc 197", terms=["section 197"]),
            HookGroupConstraint(group_id="pc_act", label="pc act", terms=["pc act", "prevention of corruption act"]),
        ],
        outcome_constraint=OutcomeConstraint(
            polarity="not_required", required=True, terms=["sanction not required", "not required"],
            contradiction_terms=["sanction required"],
        ),
    )


def _cand(title, snippet, court="SC", detail=None, cited_by=None):
    slug = "-".join(title.lower().split())
    return CaseCandidate(title=title, url=f"https://indiankanoon.org/search/{slug}/",
                         snippet=snippet, court=court, detail_text=detail, cited_by_count=cited_by)


def test_checklist_from_delay_query():
    _, checklist = _delay_checklist()
    assert checklist.required_elements == ['actor or party role', 'proceeding or posture', 'required outcome']
    assert checklist.optional_elements == ['statute/section/legal hook']
    assert checklist.hook_groups == []
    assert checklist.outcome_constraint.polarity == 'refused'
    assert 'allowed' in checklist.contradiction_terms
    assert checklist.summary().outcome_required is True


def test_outcome_polarity_inference():
    assert infer_outcome_polarity("sanction not required under section 197", []) == 'not_required'
    assert infer_outcome_polarity("prior sanction is mandatory", []) == 'required'
    assert infer_outcome_polarity("delay was not condoned", []) == 'refused'
    assert infer_outcome_polarity("proceedings quashed", []) == 'quashed'
    assert infer_outcome_polarity("delay condoned and appeal restored", []) == 'allowed'
    assert infer_outcome_polarity("general question", []) == 'unknown'


def test_negated_outcome_is_not_a_contradiction():
    _, checklist = _delay_checklist()
    sig = evaluate_proposition_signals("the state appeal was dismissed as delay was not condoned", checklist)
    assert sig.contradiction is False
    assert sig.outcome_polarity_satisfied is True


def test_signals_report_missing_hook_group():
    sig = evaluate_proposition_signals("state appeal where sanction under section 197 was not required",
                                       _sanction_checklist())
    assert sig.matched_hook_groups == ["sec_crpc_197"]
    assert sig.missing_hook_groups == ["pc_act"]
    assert sig.hook_group_coverage == 0.5
    assert "hook group:pc_act" in sig.missing_core_elements


def test_confidence_bands():
    assert confidence_band(0.9) == "VERY_HIGH"
    assert confidence_band(0.75) == "HIGH"
    assert confidence_band(0.6) == "MEDIUM"
    assert confidence_band(0.3) == "LOW"


def test_score_never_exceeds_ceiling():
    intent, checklist = _delay_checklist()
    strong = _cand(
        "State Of Bihar vs Ram on 1 January 2015",
        DELAY_QUERY + " and the criminal appeal dismissed as time barred because delay condonation refused",
        cited_by=6000,
    )
    weak = _cand("Random note", "unrelated text", court="UNKNOWN")
    ranked = score_cases(intent.cleaned_query, intent.context, [weak, strong], checklist)
    assert ranked[0].url == strong.url
    assert ranked[0].ranking_score == SCORE_CEILING
    assert ranked[-1].ranking_score < ranked[0].ranking_score
    assert all(s.ranking_score <= SCORE_CEILING for s in ranked)


def test_scoring_is_deterministic():
    intent, checklist = _delay_checklist()
    cands = [
        _cand("State vs A on 1 May 2016", "criminal appeal dismissed as time barred"),
        _cand("State vs B on 2 May 2016", "delay condonation refused by the high court", court="HC"),
    ]
    first = score_cases(intent.cleaned_query, intent.context, cands, checklist)
    second = score_cases(intent.cleaned_query, intent.context, cands, checklist)
    assert [s.model_dump() for s in first] == [s.model_dump() for s in second]


def test_reworded_query_selects_same_top_case():
    _, checklist = _delay_checklist()
    strong = _cand(
        "State Of Bihar vs Ram on 1 January 2015",
        "The criminal appeal filed by the State was dismissed as time barred because the delay "
        "was not condoned and condonation of delay was refused.",
        cited_by=600,
    )
    contrary = _cand("State Of Kerala vs Joseph on 3 June 2012",
                     "criminal appeal allowed and the delay condoned", court="HC")
    unrelated = _cand("Mohan vs Union Of India on 2 May 2018", "service matter about pension arrears")
    candidates = [unrelated, contrary, strong]
    rewording = "Appeal by the State in a criminal case dismissed as barred by time when condonation of delay was refused"

    tops = []
    for query in (DELAY_QUERY, rewording):
        intent = build_intent_profile(query)
        ranked = score_cases(intent.cleaned_query, intent.context, candidates, checklist)
        tops.append(ranked[0].url)
    assert tops == [strong.url, strong.url]


def test_gate_tiers_strict_provisional_and_contradiction():
    intent, checklist = _delay_checklist()
    snippet = ("The criminal appeal filed by the State was dismissed as time barred since the delay "
               "was not condoned and condonation was refused.")
    strict = _cand("State Of Maharashtra vs Ramesh on 3 March 2015", snippet,
                   detail="Criminal appeal by the State dismissed; delay not condoned.")
    provisional = _cand("State Of Gujarat vs Suresh on 9 July 2014", snippet)
    contradicted = _cand("State Of Kerala vs Joseph on 4 April 2017",
                         "The criminal appeal of the State was allowed and the delay was condoned.", court="HC")
    ranked = score_cases(intent.cleaned_query, intent.context, [strict, provisional, contradicted], checklist)
    summary = split_by_proposition(ranked, checklist)

    assert [c.url for c in summary.exact_strict] == [strict.url]
    assert [c.url for c in summary.exact_provisional] == [provisional.url]
    assert summary.near_miss == []
    assert summary.contradiction_reject_count == 1
    assert summary.exact_strict[0].retrieval_tier == "exact_strict"
    assert summary.exact_strict[0].exactness_type == "strict"
    # no sentence-level evidence, so even strict matches stay under the provisional cap
    assert summary.exact_strict[0].confidence_score <= config.PROVISIONAL_CONFIDENCE_CAP
    assert summary.exact_provisional[0].confidence_score <= config.PROVISIONAL_CONFIDENCE_CAP


def test_gate_near_miss_lists_missing_elements():
    checklist = _sanction_checklist()
    near = _cand("State Of Haryana vs Officer on 2 June 2018",
                 "In this appeal sanction under section 197 was held not required for the officer.")
    exact = _cand("State Of Punjab vs Clerk on 5 June 2018",
                  "State appeal: sanction under section 197 for offences under the pc act was held not required.")
    ranked = score_cases("sanction section 197 pc act not required", ContextProfile(), [near, exact], checklist)
    summary = split_by_proposition(ranked, checklist)

    assert [c.url for c in summary.exact_provisional] == [exact.url]
    assert [c.url for c in summary.near_miss] == [near.url]
    nm = summary.near_miss[0]
    assert nm.retrieval_tier == "exploratory"
    assert "hook group:pc_act" in nm.missing_elements
    assert nm.confidence_score <= config.EXPLORATORY_CONFIDENCE_CAP
    assert nm.fallback_reason == "none"


def test_near_miss_threshold_grows_with_components():
    assert near_miss_threshold(1) == 1.0
    assert near_miss_threshold(2) == 0.5
    assert near_miss_threshold(3) == 2 / 3
    assert near_miss_threshold(6) == 0.75
