"""Candidate classification: case | statute | noise | unknown.

Rule order matters; the first matching rule decides the kind and its reason.
"""
from __future__ import annotations
import re
from collections import Counter
from typing import Dict, Iterable, List

from precedent_finder.pipeline.types import CaseCandidate, Classification, ClassifiedCandidate

PSEUDO_TITLE_RE = re.compile(r"^(search|full document|similar judgments?)$")

CASE_RES = [
    re.compile(r"\b v(?:s\.?|\.?) \b"),
    re.compile(r"\bon\s+\d{1,2}\s+[a-z]{3,9}\s+\d{4}\b"),
    re.compile(r"\b(?:petitioner|respondent|appellant|appeal|criminal appeal|writ petition|judgment)\b"),
]

STATUTE_TITLE_RES = [
    re.compile(r"\bconstitution of india\b"),
    re.compile(r"\b(indian penal code|code of criminal procedure)\b"),
    re.compile(r"\bact,\s*\d{4}\b"),
    re.compile(r"\bcode,\s*\d{4}\b"),
    re.compile(r"\brules,\s*\d{4}\b"),
]
# Penal-provision wording only counts in the body
STATUTE_BODY_RES = STATUTE_TITLE_RES + [
    re.compile(r"\bsection\s+\d+[a-z]?\b[\s\S]{0,70}\b(?:punishment|whoever|shall be punished)\b"),
]


def _any(patterns, text: str) -> bool:
    return any(p.search(text) for p in patterns)


def classify_candidate(candidate: CaseCandidate) -> Classification:
    text = f"{candidate.title} {candidate.snippet} {candidate.detail_text or ''}".lower()
    title = (candidate.title or "").lower().strip()
    if not title or PSEUDO_TITLE_RE.match(title):
        return Classification(kind="noise", reasons=["pseudo-result title"])

    title_case = _any(CASE_RES, title)
    body_case = _any(CASE_RES, text)
    title_statute = _any(STATUTE_TITLE_RES, title)
    body_statute = _any(STATUTE_BODY_RES, text)

    if title_case or (body_case and not title_statute):
        return Classification(kind="case", reasons=["case-law signals"])
    if title_statute or body_statute:
        return Classification(kind="statute", reasons=["statute-like body"])
    if body_case:
        return Classification(kind="case", reasons=["case-law signals"])
    if candidate.court != "UNKNOWN" and len(title) > 8:
        return Classification(kind="unknown", reasons=["court-tagged candidate"])
    return Classification(kind="noise", reasons=["insufficient legal case signals"])


def classify_candidates(candidates: Iterable[CaseCandidate]) -> List[ClassifiedCandidate]:
    return [
        ClassifiedCandidate(**c.model_dump(include=set(CaseCandidate.model_fields)), classification=classify_candidate(c))
        for c in candidates
    ]


def classification_counts(items: Iterable[ClassifiedCandidate]) -> Dict[str, int]:
    counts = Counter({'case': 0, 'statute': 0, 'noise': 0, 'unknown': 0})
    counts.update(item.classification.kind for item in items)
    return dict(counts)


__all__ = ['classify_candidate', 'classify_candidates', 'classification_counts']
