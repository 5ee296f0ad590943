"""Proposition gate: tier scored cases into exact / near-miss / reject.

exact_strict       detail checked, every core check satisfied, no contradiction,
                   peripheral coverage >= 0.6
exact_provisional  core checks satisfied without the detail/peripheral bar
near_miss          doctrinal checklist, no contradiction, coverage above a
                   threshold that grows with the number of required components
reject             anything else

Confidence is recalibrated per tier (base * 0.45 + structural * 0.55) and capped
so that provisional and exploratory results never look like strict matches.
"""
from __future__ import annotations
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from precedent_finder import config
from precedent_finder.pipeline.types import NearMissCase, ScoredCase
from precedent_finder.proposition.checklist import (
    PropositionChecklist,
    PropositionSignals,
    evaluate_proposition_signals,
)
from precedent_finder.proposition.scoring import SCORE_CEILING, confidence_band

logger = logging.getLogger(__name__)

STRICT_PERIPHERAL_COVERAGE_MIN = 0.6
NEAR_MISS_CORE_THRESHOLD = 0.65
UNVERIFIED_BACKFILL_MAX = 8


@dataclass
class GateResult:
    match: str
    signals: PropositionSignals

    @property
    def missing_elements(self) -> List[str]:
        return [] if self.match == "exact_strict" else self.signals.missing_elements

    @property
    def missing_core_elements(self) -> List[str]:
        return [] if self.match == "exact_strict" else self.signals.missing_core_elements


@dataclass
class GateSummary:
    exact_strict: List[ScoredCase] = field(default_factory=list)
    exact_provisional: List[ScoredCase] = field(default_factory=list)
    near_miss: List[NearMissCase] = field(default_factory=list)
    missing_element_breakdown: Dict[str, int] = field(default_factory=dict)
    core_failure_breakdown: Dict[str, int] = field(default_factory=dict)
    required_element_coverage_avg: float = 0.0
    hook_group_coverage_avg: float = 0.0
    contradiction_reject_count: int = 0
    relation_failure_count: int = 0
    polarity_mismatch_count: int = 0
    high_confidence_eligible_count: int = 0
    max_confidence: float = 0.0
    saturation_prevented_count: int = 0

    @property
    def exact(self) -> List[ScoredCase]:
        return self.exact_strict + self.exact_provisional


def near_miss_threshold(required_count: int) -> float:
    if required_count <= 1:
        return 1.0
    if required_count == 2:
        return 0.5
    if required_count == 3:
        return 2 / 3
    return 0.75


def exploratory_band(score: float) -> str:
    return "MEDIUM" if score >= 0.4 else "LOW"


def gate_candidate(candidate: ScoredCase, checklist: PropositionChecklist) -> GateResult:
    artifact = candidate.detail_artifact
    evidence_text = " ".join(artifact.evidence_windows) if artifact else ""
    body = " ".join(artifact.body_excerpt) if artifact and artifact.body_excerpt else (candidate.detail_text or "")
    sig = evaluate_proposition_signals(f"{candidate.title} {candidate.snippet} {body}", checklist, evidence_text)
    detail_checked = candidate.verification.detail_checked

    core_complete = (
        not sig.contradiction
        and sig.core_coverage >= 1
        and sig.hook_group_coverage >= 1
        and sig.relation_satisfied
        and sig.outcome_polarity_satisfied
    )
    if core_complete and detail_checked and sig.peripheral_coverage >= STRICT_PERIPHERAL_COVERAGE_MIN:
        return GateResult("exact_strict", sig)
    if core_complete:
        return GateResult("exact_provisional", sig)

    core_threshold = max(NEAR_MISS_CORE_THRESHOLD, near_miss_threshold(sig.core_component_count))
    near = (
        checklist.has_doctrinal_signals
        and not sig.contradiction
        and sig.core_coverage >= core_threshold
        and sig.required_coverage >= near_miss_threshold(sig.required_component_count)
        and bool(sig.matched_core_elements or sig.matched_elements or sig.matched_hook_groups)
    )
    return GateResult("near_miss" if near else "reject", sig)


def _high_confidence_eligible(candidate: ScoredCase, result: GateResult) -> bool:
    v = candidate.verification
    return (
        result.match == "exact_strict"
        and v.detail_checked
        and v.has_role_sentence
        and v.has_relation_sentence
        and v.has_polarity_sentence
        and v.has_hook_intersection_sentence
    )


def calibrate_confidence(candidate: ScoredCase, result: GateResult) -> Tuple[float, bool]:
    """Return (calibrated confidence, whether a tier cap lowered it)."""
    sig = result.signals
    v = candidate.verification
    structural = (
        sig.core_coverage * 0.34
        + 0.22  # mandatory step coverage, no step graph configured
        + 0.1   # chain coverage, no step graph configured
        + sig.hook_group_coverage * 0.12
        + (0.08 if sig.relation_satisfied else 0)
        + (0.08 if sig.outcome_polarity_satisfied else 0)
        + sig.peripheral_coverage * 0.06
    )
    confidence = max(0.0, min(1.0, candidate.ranking_score * 0.45 + structural * 0.55))
    if not v.detail_checked:
        confidence -= 0.06
    if v.has_role_sentence:
        confidence += 0.02
    if v.has_relation_sentence:
        confidence += 0.03
    if v.has_polarity_sentence:
        confidence += 0.03
    if v.has_hook_intersection_sentence:
        confidence += 0.03
    if not v.has_relation_sentence and not sig.relation_satisfied:
        confidence -= 0.03
    if not v.has_polarity_sentence and not sig.outcome_polarity_satisfied:
        confidence -= 0.04
    if sig.polarity_mismatch:
        confidence -= 0.16
    if sig.contradiction:
        confidence -= 0.25
    confidence = max(0.0, min(1.0, confidence))

    cap = {
        "exact_strict": SCORE_CEILING,
        "exact_provisional": config.PROVISIONAL_CONFIDENCE_CAP,
        "near_miss": config.EXPLORATORY_CONFIDENCE_CAP,
    }.get(result.match, 0.5)
    if not _high_confidence_eligible(candidate, result):
        cap = min(cap, config.PROVISIONAL_CONFIDENCE_CAP)
    if not v.detail_checked:
        cap = min(cap, 0.55)
    return round(min(confidence, cap), 3), confidence > cap


def _exploratory_eligible(candidate: ScoredCase, result: GateResult) -> bool:
    sig = result.signals
    v = candidate.verification
    relevance = v.issues_matched + v.procedures_matched + v.anchors_matched >= 2
    return (
        not sig.contradiction
        and not sig.polarity_mismatch
        and candidate.court in ("SC", "HC")
        and (sig.required_coverage >= 0.25 or sig.core_coverage >= 0.25 or relevance)
    )


def _as_near_miss(case: ScoredCase, score: float, missing: List[str], missing_core: List[str]) -> NearMissCase:
    score = min(score, config.EXPLORATORY_CONFIDENCE_CAP)
    missing = missing or ["proposition coverage below exact threshold"]
    return NearMissCase(
        **case.model_dump(exclude={'score', 'confidence_score', 'confidence_band', 'retrieval_tier',
                                   'missing_core_elements', 'gap_summary'}),
        score=score,
        confidence_score=score,
        confidence_band=exploratory_band(score),
        retrieval_tier="exploratory",
        missing_core_elements=missing_core,
        gap_summary=missing,
        missing_elements=missing,
    )


def _avg(values: List[float]) -> float:
    return round(sum(values) / len(values), 3) if values else 0.0


def split_by_proposition(ranked: List[ScoredCase], checklist: PropositionChecklist) -> GateSummary:
    """Tier ranked cases against the checklist; order within each tier follows the input."""
    summary = GateSummary()
    backfill: List[Tuple[float, ScoredCase, GateResult]] = []
    missing_counter: Counter = Counter()
    core_counter: Counter = Counter()
    coverage: List[float] = []
    hook_coverage: List[float] = []
    confidences: List[float] = []

    for item in ranked:
        result = gate_candidate(item, checklist)
        sig = result.signals
        calibrated, saturated = calibrate_confidence(item, result)
        enriched = item.model_copy(update={
            'score': calibrated,
            'confidence_score': calibrated,
            'confidence_band': confidence_band(calibrated),
            'fallback_reason': 'none',
            'missing_core_elements': result.missing_core_elements,
            'match_evidence': sig.evidence,
        })
        summary.saturation_prevented_count += int(saturated)
        if _high_confidence_eligible(item, result) and calibrated >= 0.71:
            summary.high_confidence_eligible_count += 1
        coverage.append(sig.required_coverage)
        hook_coverage.append(sig.hook_group_coverage)
        confidences.append(calibrated)

        if result.match == "exact_strict":
            summary.exact_strict.append(enriched.model_copy(
                update={'exactness_type': 'strict', 'retrieval_tier': 'exact_strict'}))
            continue
        if result.match == "exact_provisional":
            summary.exact_provisional.append(enriched.model_copy(
                update={'exactness_type': 'provisional', 'retrieval_tier': 'exact_provisional'}))
            continue

        eligible = _exploratory_eligible(item, result)
        if result.match == "near_miss" and eligible:
            summary.near_miss.append(_as_near_miss(
                enriched, calibrated, result.missing_elements, result.missing_core_elements))
        elif eligible and not item.verification.detail_checked and (
            sig.required_coverage >= 0.25 or sig.core_coverage >= 0.2
            or sig.matched_elements or sig.matched_core_elements
        ):
            strength = (
                sig.required_coverage * 0.45 + sig.core_coverage * 0.35 + sig.hook_group_coverage * 0.1
                + (0.1 if sig.outcome_polarity_satisfied else 0)
            )
            backfill.append((strength + calibrated * 0.4, enriched, result))

        if sig.contradiction:
            summary.contradiction_reject_count += 1
        if not sig.relation_satisfied and checklist.has_required_relations:
            summary.relation_failure_count += 1
        if sig.polarity_mismatch:
            summary.polarity_mismatch_count += 1
        core_counter.update(result.missing_core_elements)
        missing_counter.update(result.missing_elements)

    if checklist.has_doctrinal_signals and not summary.exact and not summary.near_miss and backfill:
        seen = set()
        for _, case, result in sorted(backfill, key=lambda entry: entry[0], reverse=True):
            if case.url in seen:
                continue
            seen.add(case.url)
            summary.near_miss.append(_as_near_miss(
                case, case.confidence_score, result.missing_elements, result.missing_core_elements))
            if len(summary.near_miss) >= min(UNVERIFIED_BACKFILL_MAX, len(ranked)):
                break
        logger.info("unverified near-miss backfill used: %d item(s)", len(summary.near_miss))

    summary.missing_element_breakdown = dict(missing_counter)
    summary.core_failure_breakdown = dict(core_counter)
    summary.required_element_coverage_avg = _avg(coverage)
    summary.hook_group_coverage_avg = _avg(hook_coverage)
    summary.max_confidence = round(max(confidences), 3) if confidences else 0.0
    return summary


__all__ = [
    'GateResult', 'GateSummary', 'gate_candidate', 'calibrate_confidence', 'split_by_proposition',
    'near_miss_threshold', 'exploratory_band',
]
