"""Declarative keyword tables used by intent extraction.

Kept as plain data so new domains, actors or procedures can be added without
touching extraction logic. Matching is substring based on the normalized query.
"""
import re
from typing import Dict, List, Pattern, Tuple

STOPWORDS = {
    'a', 'an', 'and', 'or', 'the', 'to', 'of', 'in', 'for', 'with', 'on', 'at', 'by', 'from',
    'under', 'into', 'after', 'before', 'where', 'when', 'whether', 'please', 'kindly', 'find',
    'show', 'give', 'cases', 'case', 'precedent', 'precedents', 'judgment', 'judgments',
}

DOMAIN_MAP: Dict[str, List[str]] = {
    'criminal': ['criminal', 'crpc', 'bnss', 'ipc', 'prosecution', 'acquittal', 'conviction', 'fir'],
    'civil': ['civil', 'cpc', 'decree', 'contract', 'plaintiff', 'defendant'],
    'tax': ['tax', 'gst', 'assessment', 'adjudication', 'customs', 'excise'],
    'appellate': ['appeal', 'appellate', 'limitation', 'condonation'],
    'anti-corruption': ['corruption', 'disproportionate assets', 'public servant', 'pc act'],
    'corporate': ['company', 'director', 'corporate'],
}

ACTOR_TERMS: Dict[str, List[str]] = {
    'state': ['state', 'state of', 'government', 'union of india'],
    'prosecution': ['prosecution'],
    'department': ['department', 'authority'],
    'director': ['director'],
    'company': ['company', 'corporation'],
    'accused': ['accused'],
    'complainant': ['complainant'],
    'public servant': ['public servant', 'officer'],
    'appellant': ['appellant', 'appellants'],
    'respondent': ['respondent', 'respondents'],
}

PROCEDURE_TERMS: Dict[str, List[str]] = {
    'appeal': ['appeal', 'appellate'],
    'criminal appeal': ['criminal appeal', 'appeal against acquittal', 'section 378 crpc'],
    'appeal against acquittal': ['appeal against acquittal', 'leave to appeal', 'section 378'],
    'delay condonation application': ['condonation', 'delay condonation', 'section 5 limitation'],
    'revision': ['revision'],
    'discharge': ['discharge', 'section 227 crpc'],
    'framing of charge': ['framing of charge', 'frame charge', 'charge framed', 'section 228 crpc'],
    'writ petition': ['writ petition', 'article 226', 'article 32'],
    'section 482 crpc': ['section 482 crpc', 'quashing'],
    'investigation': ['investigation', 'enquiry', 'inquiry'],
    'trial': ['trial'],
    'sanction for prosecution': ['sanction for prosecution', 'previous sanction', 'prior sanction'],
}

_ISSUES: List[Tuple[str, str]] = [
    ('delay condonation refused', r"\bdelay\s+(?:has|was|is|had)?\s*not\s+(?:been\s+)?condon(?:ed|able)\b"),
    ('delay condonation refused',
     r"\bcondonation\s+of\s+delay\s+(?:was\s+|is\s+|has\s+been\s+)?(?:refused|rejected|denied|dismissed|declined)\b"),
    ('delay condonation refused', r"\bcondonation(?:\s+of\s+delay)?\s+not\s+granted\b"),
    ('delay condonation refused',
     r"\b(?:delay\s+condonation|condonation(?:\s+of\s+delay)?|application\s+for\s+condonation)\b[\s\S]{0,80}"
     r"\b(?:refused|rejected|dismissed|declined|denied)\b"),
    ('appeal dismissed as time barred', r"\bappeal\s+(?:was\s+)?(?:dismissed|rejected)\s+(?:as\s+)?time[-\s]*barred\b"),
    ('barred by limitation', r"\bbarred\s+by\s+limitation\b"),
    ('quashing of proceedings', r"\bproceedings?\s+(?:were\s+)?quashed\b"),
    ('sanction required', r"\b(?:sanction\s+(?:is\s+)?required|sanction\s+must\s+be\s+required|prior\s+sanction)\b"),
    ('sanction not required', r"\b(?:sanction\s+not\s+required|without\s+sanction|no\s+sanction\s+required)\b"),
    ('delay condoned', r"\bdelay\s+(?:has|was|is|had)?\s*(?:been\s+)?condoned\b"),
    ('discharge', r"\b(?:order\s+of\s+)?discharge\b"),
    ('refused to interfere', r"\b(?:refused|declined|not\s+inclined)\s+to\s+interfere\b"),
    ('discharge upheld', r"\b(?:upheld|affirmed|confirmed)\s+(?:the\s+)?(?:order\s+of\s+)?discharge\b"),
    ('framing of charge', r"\bframing\s+of\s+charge\b|\bcharge\s+(?:was\s+)?framed\b|\bframe\s+charge\b"),
    ('quashing of proceedings', r"\b(?:quash|quashing)\s+(?:of\s+)?(?:fir|f\.?i\.?r\.?|proceedings?|complaint)\b"),
    ('civil nature allegations', r"\b(?:civil\s+in\s+nature|civil\s+dispute|purely\s+civil)\b"),
    ('road accident', r"\b(?:road\s+accident|motor(?:\s+vehicle)?\s+accident)\b"),
    ('rash and negligent driving', r"\b(?:rash\s+and\s+negligent\s+driving|rash\s+driving|negligent\s+driving)\b"),
    ('drunken driving', r"\b(?:drunk(?:en)?\s+driving|driving\s+under\s+the\s+influence)\b"),
    ('knowledge versus negligence', r"\bknowledge\s+(?:versus|vs\.?|v\.?)\s+negligence\b"),
    ('condonation granted', r"\bcondonation(?:\s+of\s+delay)?\s+(?:was\s+|is\s+|has\s+been\s+)?granted\b"),
    ('appeal restored', r"\bappeal\s+(?:was\s+|is\s+|has\s+been\s+)?restored\b"),
    ('appeal allowed', r"\bappeal\s+(?:was\s+)?allowed\b"),
]

ISSUE_PATTERNS: List[Tuple[str, Pattern]] = [(label, re.compile(rx, re.IGNORECASE)) for label, rx in _ISSUES]

# Conversational filler stripped before any extraction
NLQ_NOISE_PATTERNS: List[Pattern] = [re.compile(rx, re.IGNORECASE) for rx in (
    r"\bcases?\s+where\b",
    r"\bprecedents?\s+where\b",
    r"\bjudgments?\s+where\b",
    r"\bfind\s+(?:me\s+)?(?:cases?|precedents?|judgments?)\b",
    r"\bshow\s+(?:me\s+)?(?:cases?|precedents?|judgments?)\b",
    r"\blooking\s+for\s+(?:cases?|precedents?|judgments?)\b",
    r"\bis\s+there\s+(?:any|a)\b",
    r"\b(?:can|could|would)\s+you\s+(?:find|show|give|list)\b",
    r"\b(?:please|kindly)\b",
    r"\banything\s+found\b",
)]

MONTHS = [
    'january', 'february', 'march', 'april', 'may', 'june', 'july', 'august',
    'september', 'october', 'november', 'december',
]

__all__ = [
    'STOPWORDS', 'DOMAIN_MAP', 'ACTOR_TERMS', 'PROCEDURE_TERMS', 'ISSUE_PATTERNS',
    'NLQ_NOISE_PATTERNS', 'MONTHS',
]
