"""Legal reference parsing for free-text research queries.

Heuristics for Indian statute references such as:
  - Section 197 CrPC / Sec. 19 of the PC Act
  - bare sub-sections with legal context: 13(1)(e) of the prevention of corruption act
  - notification ids: S.O. 1234(E), G.S.R. 55(E)
  - CrPC <-> BNSS transition aliases

Returns a ParsedLegalReferences bundle of normalized lists. The alias table is
deliberately small and declarative; new aliases are added to TRANSITION_ALIASES.
Future: canonical act dictionary shared with the ontology.
"""
from __future__ import annotations
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Pattern, Sequence, Tuple

MONTH_NAMES = "january|february|march|april|may|june|july|august|september|october|november|december"

CRPC_PATTERNS: List[Pattern] = [
    re.compile(r"\bcr\.?\s*p\.?\s*c\.?\b", re.IGNORECASE),
    re.compile(r"\bcrpc\b", re.IGNORECASE),
    re.compile(r"\bcode\s+of\s+criminal\s+procedure(?:\s*,?\s*1973)?\b", re.IGNORECASE),
    re.compile(r"\bcriminal\s+procedure\s+code\b", re.IGNORECASE),
]

BNSS_PATTERNS: List[Pattern] = [
    re.compile(r"\bbnss\b", re.IGNORECASE),
    re.compile(r"\bbharatiya\s+nagarik\s+suraksha\s+sanhita(?:\s*,?\s*2023)?\b", re.IGNORECASE),
]

GENERAL_CLAUSES_PATTERNS: List[Pattern] = [
    re.compile(r"\bgeneral\s+clauses\s+act(?:\s*,?\s*1897)?\b", re.IGNORECASE),
]

NOTIFICATION_ID_RE = re.compile(
    r"(?:^|[^a-z0-9])((?:s\.?\s*o\.?|g\.?\s*s\.?\s*r\.?))\s*([0-9]{1,6}\([a-z]\))(?=$|[^a-z0-9])",
    re.IGNORECASE,
)
DATE_RE = re.compile(
    rf"\b([0-3]?\d)(?:st|nd|rd|th)?\s+({MONTH_NAMES})\s+(19\d{{2}}|20\d{{2}})\b", re.IGNORECASE
)
SECTION_RE = re.compile(r"\b(?:section|sec\.?|s\.)\s*([0-9]+(?:\([0-9a-z]+\))*(?:\([a-z]\))?)", re.IGNORECASE)
BARE_SUBSECTION_RE = re.compile(
    r"(?:^|[^a-z0-9])([0-9]+(?:\([0-9a-z]+\)){1,3}(?:\([a-z]\))?)(?=$|[^a-z0-9])", re.IGNORECASE
)
GENERIC_ACT_RE = re.compile(r"\b([a-z][a-z\s]{2,70}?\sact(?:\s*,\s*\d{4})?)\b", re.IGNORECASE)
NOTIFICATION_SIGNAL_RE = re.compile(r"\b(?:s\.?\s*o\.?|g\.?\s*s\.?\s*r\.?|notification|gazette)\b", re.IGNORECASE)

# (left patterns, right aliases): any left match expands to every right alias
TRANSITION_ALIASES: List[Tuple[Sequence[Pattern], Sequence[str]]] = [
    (
        CRPC_PATTERNS + BNSS_PATTERNS,
        [
            "crpc",
            "code of criminal procedure, 1973",
            "bnss",
            "bharatiya nagarik suraksha sanhita, 2023",
            "code of criminal procedure reference read as bnss reference",
        ],
    ),
]

# Order matters; the first act found near a section wins
SECTION_CONTEXT_ACTS: List[Tuple[Pattern, str]] = [
    (re.compile(r"\bprevention\s+of\s+corruption\s+act\b", re.IGNORECASE), "prevention of corruption act"),
    (re.compile(r"\bpc\s*act\b", re.IGNORECASE), "pc act"),
    (re.compile(r"\bgeneral\s+clauses\s+act\b", re.IGNORECASE), "general clauses act"),
    (re.compile(r"\blimitation\s+act\b", re.IGNORECASE), "limitation act"),
    (re.compile(r"\bcode\s+of\s+criminal\s+procedure\b|\bcrpc\b|\bcr\.?\s*p\.?\s*c\.?\b", re.IGNORECASE), "crpc"),
    (re.compile(r"\bindian\s+penal\s+code\b|\bipc\b", re.IGNORECASE), "ipc"),
    (re.compile(r"\bcode\s+of\s+civil\s+procedure\b|\bcpc\b", re.IGNORECASE), "cpc"),
]

DISJUNCTION_CUE_RE = re.compile(r"\b(?:or|either|alternatively|versus|vs\.?|instead\s+of)\b")
PROCEDURE_DISJUNCTION_RE = re.compile(
    r"\b(?:appeal|revision|petition|application|charge)\s+or\s+(?:appeal|revision|petition|application|charge)\b"
)
SECTION_DISJUNCTION_RE = re.compile(
    r"\bsection\s*\d+[a-z]?(?:\([0-9a-z]+\))*(?:\([a-z]\))?\s+or\s+section\s*\d+", re.IGNORECASE
)
CONNECTOR_RE = re.compile(r"\b(?:or|versus|vs\.?|instead\s+of|alternatively)\b")
GENERIC_FALSE_POSITIVE_RES: List[Pattern] = [
    re.compile(r"\blaws?\s+or\s+proceedings?\b"),
    re.compile(r"\binterpreted\s+or\s+applied\b"),
    re.compile(r"\bapplied\s+or\s+interpreted\b"),
    re.compile(r"\brules?\s+or\s+regulations?\b"),
    re.compile(r"\bacts?\s+or\s+rules?\b"),
]
EITHER_RE = re.compile(r"\beither\b")


def normalize_text(value: str) -> str:
    value = re.sub(r"[^a-z0-9\s().,:/-]", " ", (value or "").lower())
    return re.sub(r"\s+", " ", value).strip()


def unique(values: Iterable[str]) -> List[str]:
    """Normalize, drop empties and de-duplicate preserving first occurrence."""
    out: List[str] = []
    seen = set()
    for value in values:
        norm = normalize_text(value)
        if not norm or norm in seen:
            continue
        seen.add(norm)
        out.append(norm)
    return out


@dataclass
class ParsedLegalReferences:
    sections: List[str] = field(default_factory=list)
    statutes: List[str] = field(default_factory=list)
    references: List[str] = field(default_factory=list)
    notification_ids: List[str] = field(default_factory=list)
    notification_dates: List[str] = field(default_factory=list)
    hard_include_tokens: List[str] = field(default_factory=list)
    soft_hint_terms: List[str] = field(default_factory=list)
    transition_aliases: List[str] = field(default_factory=list)

    @property
    def needles(self) -> List[str]:
        return unique(self.sections + self.statutes + self.transition_aliases + self.notification_ids)


def _detect_act_hint(window: str) -> Optional[str]:
    for pattern, value in SECTION_CONTEXT_ACTS:
        if pattern.search(window):
            return value
    return None


def _section_term(token: str, act_hint: Optional[str]) -> str:
    return f"section {token} {act_hint}" if act_hint else f"section {token}"


def _canonical_statutes(query: str) -> List[str]:
    statutes: List[str] = []
    if any(p.search(query) for p in CRPC_PATTERNS):
        statutes += ["crpc", "code of criminal procedure, 1973"]
    if any(p.search(query) for p in BNSS_PATTERNS):
        statutes += ["bnss", "bharatiya nagarik suraksha sanhita, 2023"]
    if any(p.search(query) for p in GENERAL_CLAUSES_PATTERNS):
        statutes += ["general clauses act, 1897", "general clauses act"]
    statutes += [m.group(1) for m in GENERIC_ACT_RE.finditer(query)]
    return unique(statutes)[:20]


def _notification_ids(query: str) -> List[str]:
    ids: List[str] = []
    for m in NOTIFICATION_ID_RE.finditer(query):
        prefix = "g.s.r." if normalize_text(m.group(1)).replace(" ", "").startswith("g") else "s.o."
        ident = normalize_text(m.group(2))
        if ident:
            ids.append(f"{prefix} {ident}")
    return unique(ids)[:8]


def _notification_dates(query: str) -> List[str]:
    dates = [f"{int(m.group(1))} {m.group(2).lower()} {m.group(3)}" for m in DATE_RE.finditer(query)]
    return unique(dates)[:8]


def _sections(query: str) -> List[str]:
    normalized = normalize_text(query)
    sections: List[str] = []
    explicit = set()
    for m in SECTION_RE.finditer(normalized):
        token = normalize_text(m.group(1))
        if not token:
            continue
        explicit.add(token)
        idx = m.start()
        window = normalized[max(0, idx - 20): idx + 140]
        sections.append(_section_term(token, _detect_act_hint(window)))

    for m in BARE_SUBSECTION_RE.finditer(normalized):
        token = normalize_text(m.group(1))
        if not token or token in explicit:
            continue
        idx = m.start(1)
        window = normalized[max(0, idx - 50): idx + 80]
        if NOTIFICATION_SIGNAL_RE.search(window):
            continue
        act_hint = _detect_act_hint(window)
        if not act_hint and not re.search(r"\bsection\b", window):
            continue
        sections.append(_section_term(token, act_hint))
    return unique(sections)[:24]


def has_transition_signal(text: str) -> bool:
    return any(any(p.search(text) for p in left) for left, _ in TRANSITION_ALIASES)


def expand_transition_aliases(terms: Iterable[str]) -> List[str]:
    bag = normalize_text(" ".join(terms))
    expanded: List[str] = []
    for left, right in TRANSITION_ALIASES:
        if any(p.search(bag) for p in left):
            expanded.extend(right)
    return unique(expanded)[:12]


def parse_legal_references(query: str) -> ParsedLegalReferences:
    normalized = normalize_text(query)
    sections = _sections(normalized)
    statutes = _canonical_statutes(normalized)
    aliases = expand_transition_aliases(sections + statutes + [normalized])
    notification_ids = _notification_ids(normalized)
    notification_dates = _notification_dates(normalized)
    soft = aliases + statutes + sections + notification_ids + notification_dates
    if has_transition_signal(normalized):
        soft.append("statutory reference substitution")
    return ParsedLegalReferences(
        sections=sections,
        statutes=statutes,
        references=unique(sections + statutes + notification_ids)[:28],
        notification_ids=notification_ids,
        notification_dates=notification_dates,
        hard_include_tokens=unique(sections + statutes + aliases + notification_ids)[:18],
        soft_hint_terms=unique(soft)[:26],
        transition_aliases=aliases,
    )


def _has_legal_needle(text: str, refs: ParsedLegalReferences) -> bool:
    normalized = normalize_text(text)
    return any(needle in normalized for needle in refs.needles)


def is_likely_legal_disjunction(query: str, refs: ParsedLegalReferences) -> bool:
    """True when an 'or'/'versus' in the query separates two legal alternatives."""
    normalized = normalize_text(query)
    if not DISJUNCTION_CUE_RE.search(normalized):
        return False
    if PROCEDURE_DISJUNCTION_RE.search(normalized) or SECTION_DISJUNCTION_RE.search(normalized):
        return True
    has_either = bool(EITHER_RE.search(normalized))
    if any(p.search(normalized) for p in GENERIC_FALSE_POSITIVE_RES) and not has_either:
        return False
    for m in CONNECTOR_RE.finditer(normalized):
        left = normalized[max(0, m.start() - 80): m.start()]
        right = normalized[m.end(): m.start() + 80]
        if any(p.search(f"{left} {right}") for p in GENERIC_FALSE_POSITIVE_RES):
            continue
        if _has_legal_needle(left, refs) and _has_legal_needle(right, refs):
            return True
    return has_either and _has_legal_needle(normalized, refs)


__all__ = [
    'ParsedLegalReferences', 'parse_legal_references', 'is_likely_legal_disjunction',
    'expand_transition_aliases', 'has_transition_signal', 'normalize_text', 'unique',
]
