from precedent_finder.parsing.legal_references import (
    expand_transition_aliases,
    is_likely_legal_disjunction,
    parse_legal_references,
)


def test_section_with_act_context():
    refs = parse_legal_references("Section 13(1)(e) of the Prevention of Corruption Act")
    assert refs.sections == ['section 13(1)(e) prevention of corruption act']


def test_crpc_expands_to_bnss_aliases():
    refs = parse_legal_references("Section 197 CrPC")
    assert 'crpc' in refs.statutes
    assert 'bnss' in refs.transition_aliases
    assert 'bharatiya nagarik suraksha sanhita, 2023' in refs.transition_aliases
    assert 'statutory reference substitution' in refs.soft_hint_terms


def test_notification_ids_and_dates():
    refs = parse_legal_references("notification S.O. 1234(E) dated 5th March 2020")
    assert refs.notification_ids == ['s.o. 1234(e)']
    assert refs.notification_dates == ['5 march 2020']
    # a notification id is not a sub-section
    assert refs.sections == []


def test_expand_transition_aliases_without_signal():
    assert expand_transition_aliases(["limitation act"]) == []


def test_procedure_disjunction():
    q = "appeal or revision against discharge"
    assert is_likely_legal_disjunction(q, parse_legal_references(q)) is True


def test_generic_or_is_not_a_disjunction():
    q = "how the provision was interpreted or applied"
    assert is_likely_legal_disjunction(q, parse_legal_references(q)) is False
    q = "no alternatives in this query"
    assert is_likely_legal_disjunction(q, parse_legal_references(q)) is False
