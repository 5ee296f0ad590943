"""Synthetic advisory fallback.

When a run leaves nothing in the exact or exploratory tiers the response still
carries one clearly-labelled, low-confidence advisory near-miss: why nothing
came back, what the query is missing, and a ready-made search link for a
stricter rewrite. Its missing-element list is computed with the same checks
the proposition gate uses so synthetic and real near-misses read alike.
"""
from __future__ import annotations
import logging
import re
from typing import Iterable, List, Optional
from urllib.parse import quote

from precedent_finder import config
from precedent_finder.metrics import SYNTHETIC_FALLBACKS
from precedent_finder.pipeline.query_coach import CoachItem, QueryCoachResult, evaluate_intent
from precedent_finder.pipeline.types import IntentProfile, NearMissCase, Verification
from precedent_finder.proposition.checklist import PropositionChecklist

logger = logging.getLogger(__name__)

ADVISORY_SCORE = 0.22
ADVISORY_TITLE = "Advisory fallback (non-citation): refine query and retry"
SEARCH_URL_PREFIX = "https://indiankanoon.org/search/?formInput="
MAX_MISSING_ELEMENTS = 8
MAX_NEXT_ACTIONS = 5


def _unique_ci(values: Iterable[str]) -> List[str]:
    out: List[str] = []
    seen = set()
    for value in values:
        cleaned = (value or "").strip()
        if cleaned and cleaned.lower() not in seen:
            seen.add(cleaned.lower())
            out.append(cleaned)
    return out


def _normalize_label(value: str) -> str:
    return re.sub(r"\s+", " ", re.sub(r"[^a-z0-9\s]", " ", (value or "").lower())).strip()


def _tokens(value: str) -> List[str]:
    return [t for t in _normalize_label(value).split() if len(t) > 1]


def _mentioned(query: str, term: str, width: int = 5) -> bool:
    tokens = _tokens(term)[:width]
    return bool(tokens) and all(t in query for t in tokens)


def should_inject_fallback(exact_count: int, exploratory_count: int, always_return: Optional[bool] = None,
                           synthetic_enabled: Optional[bool] = None) -> bool:
    always_return = config.ALWAYS_RETURN if always_return is None else always_return
    synthetic_enabled = config.SYNTHETIC_FALLBACK if synthetic_enabled is None else synthetic_enabled
    if not always_return or not synthetic_enabled:
        return False
    return exact_count == 0 and exploratory_count == 0


def fallback_status(stop_reason: Optional[str]) -> str:
    return "blocked" if stop_reason == "blocked" else "no_match"


def failure_reason_label(stop_reason: Optional[str], blocked_kind: Optional[str] = None) -> str:
    if stop_reason == "blocked":
        return f"retrieval_blocked_{blocked_kind}" if blocked_kind else "retrieval_blocked"
    if stop_reason == "budget_exhausted":
        return "retrieval_budget_exhausted"
    return "retrieval_no_match"


def missing_critical_elements(query: str, intent: IntentProfile, checklist: PropositionChecklist,
                              coach_checklist: List[CoachItem]) -> List[str]:
    q = _normalize_label(query)
    missing = [item.label for item in coach_checklist if item.priority == "critical" and not item.satisfied]
    missing += [e for e in checklist.required_elements if _tokens(e) and not _mentioned(q, e)]
    missing += [
        f"required legal hook group: {g.label}"
        for g in checklist.hook_groups
        if g.required and not any(_mentioned(q, term) for term in g.terms)
    ]
    outcome = checklist.outcome_constraint
    if outcome.required and outcome.terms and not any(_mentioned(q, t) for t in outcome.terms):
        missing.append("explicit outcome polarity phrase")
    if intent.actors and not any(_mentioned(q, a, 4) for a in intent.actors):
        missing.append("named actor/party role")
    if intent.procedures and not any(_mentioned(q, p, 4) for p in intent.procedures):
        missing.append("proceeding/posture term")
    return _unique_ci(missing)[:MAX_MISSING_ELEMENTS]


def next_actions(coach_actions: List[str], missing: List[str], include_terms: Optional[List[str]] = None) -> List[str]:
    if missing:
        gap_actions = [f"Add missing element: {item}" for item in missing[:3]]
    else:
        gap_actions = ["Add one statute/section and one explicit outcome phrase."]
    hints = [f"Include term: {t}" for t in (include_terms or [])[:4]]
    return _unique_ci(coach_actions + gap_actions + hints)[:MAX_NEXT_ACTIONS]


def fallback_search_url(query: str, coach: QueryCoachResult, strict_phrase: Optional[str] = None) -> str:
    seed = strict_phrase or coach.stricter_rewrite or coach.recommended_pattern or query
    return SEARCH_URL_PREFIX + quote(seed, safe="")


def build_synthetic_near_miss(query: str, intent: IntentProfile, checklist: PropositionChecklist,
                              stop_reason: Optional[str], blocked_kind: Optional[str] = None,
                              include_terms: Optional[List[str]] = None,
                              strict_phrase: Optional[str] = None) -> NearMissCase:
    """The single advisory near-miss; ``fallback_reason`` is always ``synthetic_advisory``."""
    coach = evaluate_intent(intent)
    reason = failure_reason_label(stop_reason, blocked_kind)
    missing = missing_critical_elements(query, intent, checklist, coach.checklist)
    if not missing:
        missing = ["verifiable precedent satisfying the stated proposition"]
    gaps = next_actions(coach.next_actions, missing, include_terms)

    key_terms = (include_terms or [])[:4] or missing[:4]
    snippet = " ".join(part for part in (
        "No verifiable citation could be returned in this run.",
        coach.readiness_message,
        f"Key terms: {', '.join(key_terms)}." if key_terms else "",
        f"Next actions: {' | '.join(gaps)}." if gaps else "",
    ) if part)
    label = _normalize_label(reason)
    item = NearMissCase(
        title=ADVISORY_TITLE,
        url=fallback_search_url(query, coach, strict_phrase),
        snippet=snippet,
        court=intent.court_hint if intent.court_hint in ("SC", "HC") else "UNKNOWN",
        classification={'kind': "unknown", 'reasons': ["synthetic advisory"]},
        score=ADVISORY_SCORE,
        ranking_score=ADVISORY_SCORE,
        confidence_score=ADVISORY_SCORE,
        confidence_band="LOW",
        retrieval_tier="exploratory",
        fallback_reason="synthetic_advisory",
        gap_summary=gaps,
        reasons=[f"Fallback generated because {label}", "Synthetic advisory item (non-citation)"],
        selection_summary=(
            f"Best-available advisory fallback (not a citation). Reason: {label}. "
            "Add actor/proceeding/outcome and known legal hooks."
        ),
        missing_elements=missing,
        verification=Verification(),
    )
    SYNTHETIC_FALLBACKS.labels(reason=reason).inc()
    logger.info("synthetic fallback injected: %s (%d missing elements)", reason, len(missing))
    return item


__all__ = [
    'build_synthetic_near_miss', 'should_inject_fallback', 'fallback_status', 'failure_reason_label',
    'missing_critical_elements', 'fallback_search_url', 'ADVISORY_SCORE',
]
