"""Lexical + proposition scoring of classified candidates.

raw = 0.38 * token overlap
      + bounded keyword-count bonuses (anchors, issues, procedures, statutes)
      + checklist coverage contributions - relation/polarity/contradiction penalties
      + court weighting + citation nudge
score = min(clamp(sigmoid(3.1 * (raw - 0.45))), 0.92)

The 0.92 ceiling keeps headroom: no candidate is ever reported as certain.
"""
from __future__ import annotations
import math
import re
from typing import Iterable, List, Optional, Set

from precedent_finder.pipeline.classifier import classify_candidate
from precedent_finder.pipeline.types import (
    CaseCandidate,
    ClassifiedCandidate,
    ContextProfile,
    ScoredCase,
    Verification,
)
from precedent_finder.proposition.checklist import PropositionChecklist, evaluate_proposition_signals

SCORE_CEILING = 0.92

QUERY_STOPWORDS = {
    'the', 'and', 'for', 'with', 'this', 'that', 'into', 'under', 'where', 'when', 'from',
    'between', 'about', 'case', 'precedent',
}

PREFERRED_REASON_RE = re.compile(
    r"proposition coverage|issue match|procedure match|context anchors|statute/section match|token overlap",
    re.IGNORECASE,
)


def _tokens(text: str) -> Set[str]:
    cleaned = re.sub(r"[^a-z0-9\s]", " ", (text or "").lower())
    return {t for t in cleaned.split() if len(t) > 2 and t not in QUERY_STOPWORDS}


def _overlap(query: Set[str], corpus: Set[str]) -> float:
    if not query:
        return 0.0
    return len(query & corpus) / len(query)


def _count_matches(haystack: str, needles: Iterable[str]) -> int:
    lower = haystack.lower()
    return sum(1 for n in needles if n and n.lower() in lower)


def _sigmoid(x: float) -> float:
    return 1.0 / (1.0 + math.exp(-x))


def confidence_band(score: float) -> str:
    if score >= 0.86:
        return "VERY_HIGH"
    if score >= 0.71:
        return "HIGH"
    if score >= 0.51:
        return "MEDIUM"
    return "LOW"


def selection_summary(reasons: List[str], court: str) -> str:
    preferred = [r for r in reasons if PREFERRED_REASON_RE.search(r)]
    top = (preferred or reasons)[:2]
    if not top:
        return f"Selected as a {court} case match."
    return f"{court} case selected because {'; '.join(top).lower()}."


def _pct(value: float) -> str:
    return f"{value * 100:.0f}%"


def score_case(query_tokens: Set[str], context: ContextProfile, candidate: ClassifiedCandidate,
               checklist: Optional[PropositionChecklist] = None) -> ScoredCase:
    corpus = f"{candidate.title} {candidate.snippet} {candidate.detail_text or ''}"
    overlap = _overlap(query_tokens, _tokens(corpus))
    anchors = _count_matches(corpus, context.anchors)
    issues = _count_matches(corpus, context.issues)
    procedures = _count_matches(corpus, context.procedures)
    statutes = _count_matches(corpus, context.statutes_or_sections)

    raw = overlap * 0.38
    reasons: List[str] = []
    evidence: List[str] = []
    if overlap > 0.18:
        reasons.append(f"Token overlap {_pct(overlap)}")
    if anchors:
        raw += min(anchors * 0.02, 0.14)
        reasons.append(f"Context anchors matched: {anchors}")
    if issues:
        raw += min(issues * 0.06, 0.18)
        reasons.append(f"Issue match count: {issues}")
    if procedures:
        raw += min(procedures * 0.05, 0.14)
        reasons.append(f"Procedure match count: {procedures}")
    if statutes:
        raw += min(statutes * 0.04, 0.12)
        reasons.append(f"Statute/section match count: {statutes}")

    if checklist is not None:
        sig = evaluate_proposition_signals(corpus, checklist)
        evidence = sig.evidence[:8]
        if sig.required_coverage > 0:
            raw += sig.required_coverage * 0.2
            reasons.append(f"Proposition coverage {_pct(sig.required_coverage)}")
        if sig.core_coverage > 0:
            raw += sig.core_coverage * 0.2
            reasons.append(f"Core coverage {_pct(sig.core_coverage)}")
        if sig.peripheral_coverage > 0:
            raw += sig.peripheral_coverage * 0.08
            reasons.append(f"Peripheral coverage {_pct(sig.peripheral_coverage)}")
        if sig.hook_group_coverage > 0:
            raw += sig.hook_group_coverage * 0.16
            reasons.append(f"Hook-group coverage {_pct(sig.hook_group_coverage)}")
        if sig.relation_satisfied and checklist.has_required_relations:
            raw += 0.06
            reasons.append("Required hook interaction satisfied")
        if sig.outcome_polarity_satisfied and checklist.outcome_constraint.required:
            raw += 0.07
            reasons.append(f"Outcome polarity matched ({checklist.outcome_constraint.polarity})")
        if sig.matched_elements:
            reasons.append(f"Matched elements: {', '.join(sig.matched_elements)}")
        if sig.missing_elements:
            reasons.append(f"Missing elements: {', '.join(sig.missing_elements)}")
        if not sig.relation_satisfied and checklist.has_required_relations:
            raw -= 0.13
            reasons.append("Required hook interaction not satisfied")
        if sig.polarity_mismatch:
            raw -= 0.2
            reasons.append("Outcome polarity mismatch")
        if sig.contradiction:
            raw -= 0.28
            reasons.append("Contradiction signal present against required outcome")
        if sig.hook_group_coverage < 1:
            raw -= 0.08

    if candidate.court == "SC":
        raw += 0.05
        reasons.append("Supreme Court weighting")
    elif candidate.court == "HC":
        raw += 0.04
        reasons.append("High Court weighting")
    if candidate.cited_by_count is not None and candidate.cited_by_count >= 50:
        raw += min(candidate.cited_by_count / 8000, 0.05)
        reasons.append(f"Citation influence (cited by {candidate.cited_by_count})")

    ranking = min(max(0.0, min(1.0, _sigmoid((raw - 0.45) * 3.1))), SCORE_CEILING)
    ranking = round(ranking, 3)
    if not reasons:
        reasons.append("Weak semantic proximity")

    quality = candidate.evidence_quality
    verification = Verification(
        anchors_matched=anchors,
        issues_matched=issues,
        procedures_matched=procedures,
        detail_checked=bool(candidate.detail_text),
        has_role_sentence=bool(quality and quality.has_role_sentence),
        has_relation_sentence=bool(quality and quality.has_relation_sentence),
        has_polarity_sentence=bool(quality and quality.has_polarity_sentence),
        has_hook_intersection_sentence=bool(quality and quality.has_hook_intersection_sentence),
    )
    return ScoredCase(
        **candidate.model_dump(include=set(ClassifiedCandidate.model_fields)),
        score=ranking,
        ranking_score=ranking,
        confidence_score=ranking,
        confidence_band=confidence_band(ranking),
        reasons=reasons,
        selection_summary=selection_summary(reasons, candidate.court),
        match_evidence=evidence,
        verification=verification,
    )


def score_cases(query: str, context: ContextProfile, candidates: Iterable[CaseCandidate],
                checklist: Optional[PropositionChecklist] = None) -> List[ScoredCase]:
    """Score and sort by ranking score, highest first. Pure and deterministic."""
    query_tokens = _tokens(query)
    scored = []
    for c in candidates:
        if not isinstance(c, ClassifiedCandidate):
            c = ClassifiedCandidate(**c.model_dump(include=set(CaseCandidate.model_fields)), classification=classify_candidate(c))
        scored.append(score_case(query_tokens, context, c, checklist))
    # stable sort keeps retrieval order among ties
    return sorted(scored, key=lambda s: s.ranking_score, reverse=True)


__all__ = ['score_cases', 'score_case', 'confidence_band', 'selection_summary', 'SCORE_CEILING']
