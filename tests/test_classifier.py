from precedent_finder.pipeline.classifier import classification_counts, classify_candidate, classify_candidates
from precedent_finder.pipeline.types import CaseCandidate


def _cand(title, snippet="", court="UNKNOWN"):
    return CaseCandidate(title=title, url="https://indiankanoon.org/doc/1/", snippet=snippet, court=court)


def test_case_title():
    c = classify_candidate(_cand("State Of Punjab vs Ram Singh on 12 March 2019"))
    assert c.kind == 'case'


def test_pseudo_title_is_noise():
    assert classify_candidate(_cand("Search")).kind == 'noise'
    assert classify_candidate(_cand("")).kind == 'noise'


def test_statute_title():
    c = classify_candidate(_cand("The Prevention of Corruption Act, 1988", "Section 19 previous sanction"))
    assert c.kind == 'statute'


def test_penal_provision_in_body_is_statute():
    c = classify_candidate(_cand("Section 304A", "section 304a whoever causes death shall be punished"))
    assert c.kind == 'statute'


def test_court_tagged_unknown_and_noise():
    assert classify_candidate(_cand("Some document heading", court="HC")).kind == 'unknown'
    assert classify_candidate(_cand("Random note")).kind == 'noise'


def test_classify_candidates_and_counts():
    items = classify_candidates([
        _cand("A vs B on 1 January 2020"),
        _cand("Search"),
        _cand("Indian Penal Code"),
    ])
    assert [i.classification.kind for i in items] == ['case', 'noise', 'statute']
    assert classification_counts(items) == {'case': 1, 'statute': 1, 'noise': 1, 'unknown': 0}
