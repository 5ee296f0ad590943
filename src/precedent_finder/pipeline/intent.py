"""Intent & context extraction.

Turns a free-text research query into an IntentProfile: domains, issues,
statutes/sections, procedures, actors, anchors, a court hint and an optional
date window. Pure and deterministic; never raises on odd input (an empty query
yields empty lists and court hint ANY).
"""
from __future__ import annotations
import calendar
import logging
import re
from typing import Iterable, List

from precedent_finder.parsing.legal_references import (
    ParsedLegalReferences,
    is_likely_legal_disjunction,
    parse_legal_references,
)
from precedent_finder.pipeline.keyword_tables import (
    ACTOR_TERMS,
    DOMAIN_MAP,
    ISSUE_PATTERNS,
    MONTHS,
    NLQ_NOISE_PATTERNS,
    PROCEDURE_TERMS,
    STOPWORDS,
)
from precedent_finder.pipeline.types import ContextProfile, DateWindow, IntentProfile

logger = logging.getLogger(__name__)

YEAR_RE = re.compile(r"\b(19[5-9]\d|20\d{2})\b")
MONTH_NAME_RE = re.compile(r"\b(" + "|".join(MONTHS) + r")\b")
MONTH_NUMBER_RE = re.compile(r"\bmonth[:\s]+(1[0-2]|0?[1-9])\b")
SECTION_SPECIFIC_RE = re.compile(r"\bsection\s*\d+|\b\d+\([0-9a-z]+\)(?:\([a-z]\))?", re.IGNORECASE)
SECTION_197_RE = re.compile(r"\bsection\s*197\b|\b197\s*crpc\b|\bcrpc\b")
PC_ACT_RE = re.compile(r"\bprevention of corruption act\b|\bpc act\b|\bsection\s*13(?:\(\d+\))?(?:\([a-z]\))?", re.IGNORECASE)
INTERPLAY_RE = re.compile(r"\binterplay|interaction|read with|vis[-\s]?a[-\s]?vis|requires under\b")
SUBSTITUTION_RES = [
    re.compile(r"\b(?:construed as|to be construed as|read as references?|to be read as references?)\b"),
    re.compile(r"\breferences?\s+to\b[\s\S]{0,80}\bread as\b"),
]
NOTIFICATION_RE = re.compile(r"\b(?:notification|s\.?\s*o\.?|g\.?\s*s\.?\s*r\.?)\b")
INTERPRETATION_RE = re.compile(r"\b(?:interpreted|applied|construed|read as)\b")


def _normalize(text: str) -> str:
    return re.sub(r"\s+", " ", (text or "").lower()).strip()


def _unique(values: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(v for v in values if v))


def tokenize(text: str) -> List[str]:
    cleaned = re.sub(r"[^a-z0-9\s]", " ", _normalize(text))
    return [t for t in cleaned.split() if len(t) > 2 and t not in STOPWORDS]


def sanitize_query(text: str) -> str:
    """Strip conversational filler ("find me cases where", "please")."""
    for pattern in NLQ_NOISE_PATTERNS:
        text = pattern.sub(" ", text or "")
    return re.sub(r"\s+", " ", text or "").strip()


def _match_table(q: str, table) -> List[str]:
    return [label for label, terms in table.items() if any(term in q for term in terms)]


def _statutes(q: str, refs: ParsedLegalReferences) -> List[str]:
    acts = ['gst'] if re.search(r"\bgst\b", q) else []
    return _unique(refs.sections + refs.statutes + refs.transition_aliases + acts)[:24]


def _issues(q: str, refs: ParsedLegalReferences) -> List[str]:
    issues = [label for label, pattern in ISSUE_PATTERNS if pattern.search(q)]
    has_section_specific = bool(SECTION_SPECIFIC_RE.search(q))
    has_197 = bool(SECTION_197_RE.search(q))
    has_pc_act = bool(PC_ACT_RE.search(q))

    if has_197 and has_pc_act:
        issues.append('section interaction between section 197 crpc and pc act')
    if re.search(r"\bsanction\b", q) and not has_section_specific and not any(i.startswith('sanction') for i in issues):
        issues.append('sanction issue')
    if INTERPLAY_RE.search(q) and has_197 and has_pc_act:
        issues.append('statutory interaction required')
    if any(p.search(q) for p in SUBSTITUTION_RES):
        issues.append('statutory reference substitution')
    if NOTIFICATION_RE.search(q) and INTERPRETATION_RE.search(q):
        issues.append('notification interpretation')
    aliases = refs.transition_aliases
    if any('crpc' in a for a in aliases) and any('bnss' in a for a in aliases):
        issues.append('crpc bnss transition interpretation')
    return _unique(issues)[:16]


def build_context_profile(query: str) -> ContextProfile:
    q = _normalize(query)
    refs = parse_legal_references(query)
    statutes = _statutes(q, refs)
    procedures = _match_table(q, PROCEDURE_TERMS)
    actors = _match_table(q, ACTOR_TERMS)
    issues = _issues(q, refs)
    anchors = _unique(
        statutes + procedures + actors + issues + refs.soft_hint_terms[:8] + tokenize(query)
    )[:28]
    return ContextProfile(
        domains=_match_table(q, DOMAIN_MAP),
        issues=issues,
        statutes_or_sections=statutes,
        procedures=procedures,
        actors=actors,
        anchors=anchors,
    )


def infer_court_hint(text: str) -> str:
    q = (text or "").lower()
    has_sc = bool(re.search(r"\bsupreme court\b|\bsc\b", q))
    has_hc = bool(re.search(r"\bhigh court\b|\bhc\b", q))
    if has_sc and not has_hc:
        return 'SC'
    if has_hc and not has_sc:
        return 'HC'
    return 'ANY'


def extract_date_window(text: str) -> DateWindow:
    q = (text or "").lower()
    year_match = YEAR_RE.search(q)
    if not year_match:
        return DateWindow()
    year = int(year_match.group(1))
    month = None
    name_match = MONTH_NAME_RE.search(q)
    number_match = MONTH_NUMBER_RE.search(q)
    if name_match:
        month = MONTHS.index(name_match.group(1)) + 1
    elif number_match:
        month = int(number_match.group(1))
    if not month:
        return DateWindow(from_date=f"1-1-{year}", to_date=f"31-12-{year}")
    last_day = calendar.monthrange(year, month)[1]
    return DateWindow(from_date=f"1-{month}-{year}", to_date=f"{last_day}-{month}-{year}")


def build_intent_profile(query: str) -> IntentProfile:
    cleaned = sanitize_query(query)
    context = build_context_profile(cleaned)
    refs = parse_legal_references(cleaned)
    intent = IntentProfile(
        query=query,
        cleaned_query=cleaned,
        context=context,
        court_hint=infer_court_hint(cleaned),
        date_window=extract_date_window(cleaned),
        transition_aliases=refs.transition_aliases,
        legal_disjunction=is_likely_legal_disjunction(cleaned, refs),
    )
    logger.debug("intent built: issues=%s statutes=%s court=%s", intent.issues, intent.statutes, intent.court_hint)
    return intent


__all__ = [
    'build_intent_profile', 'build_context_profile', 'tokenize', 'sanitize_query',
    'infer_court_hint', 'extract_date_window',
]
