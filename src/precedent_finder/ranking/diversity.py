"""Diversity filter over a final ranked list.

Single pass, order dependent: the higher-ranked of two duplicates survives, so
call it after final ranking. An item is dropped when any of its identity keys
was already emitted:

  eq:<equivalent citations>      from the "Equivalent citations:" detail line
  sem:<doc:chunk>                semantic hit hash
  doc:<id>                       /doc/<id>/ or /docfragment/<id>/ in url or full document url
  content:<court>:<date>:<seed>  detail body (or snippet) prefix, if long enough
  core:<court>:<date>:<tokens>   infrequent content tokens, if enough signal

Content and core keys are best-effort heuristics; their seed thresholds are
settings rather than guarantees. Independently, repetition is bounded per
title+snippet fingerprint and per court+judgment day.
"""
from __future__ import annotations
import logging
import re
from collections import defaultdict
from typing import Dict, List, Optional, Sequence, TypeVar

from precedent_finder import config
from precedent_finder.pipeline.types import ScoredCase

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=ScoredCase)

LEGAL_CORE_STOPWORDS = {
    'the', 'and', 'for', 'with', 'that', 'this', 'from', 'into', 'under', 'where', 'when', 'case',
    'appeal', 'application', 'filed', 'state', 'order', 'court', 'high', 'supreme', 'condonation', 'delay',
}

DATE_STAMP_RE = re.compile(r"\bon\s+\d{1,2}\s+[a-z]{3,9},?\s+\d{4}\b")
DATE_LABEL_RE = re.compile(r"\bon\s+(\d{1,2}\s+[a-z]{3,9},?\s+\d{4})\b", re.IGNORECASE)
DOC_ID_RE = re.compile(r"/(?:doc|docfragment)/(\d+)/?", re.IGNORECASE)
EQUIVALENT_RE = re.compile(r"^Equivalent citations:\s*(.+)$", re.IGNORECASE | re.MULTILINE)
BODY_RE = re.compile(r"Body:\s*([\s\S]+)", re.IGNORECASE)


def normalize(value: str) -> str:
    value = DATE_STAMP_RE.sub(" ", (value or "").lower())
    value = re.sub(r"\bvs\.?\b", " v ", value)
    value = re.sub(r"[^a-z0-9\s]", " ", value)
    return re.sub(r"\s+", " ", value).strip()


def date_label(title: str) -> Optional[str]:
    m = DATE_LABEL_RE.search(title or "")
    return m.group(1).lower() if m else None


def doc_id(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    m = DOC_ID_RE.search(url)
    return m.group(1) if m else None


def equivalent_citation_key(detail: Optional[str]) -> Optional[str]:
    if not detail:
        return None
    m = EQUIVALENT_RE.search(detail)
    if not m:
        return None
    value = m.group(1).strip()
    while value.lower().startswith("equivalent citations:"):
        value = value[len("equivalent citations:"):].strip()
    compact = normalize(value).replace(" ", "")
    if len(compact) < 8:
        return None
    return f"eq:{compact[:180]}"


def _body_seed(detail: Optional[str]) -> str:
    if not detail:
        return ""
    m = BODY_RE.search(detail)
    source = (m.group(1) if m else detail)[:1000]
    return normalize(source)[:280]


def _core_seed(item: ScoredCase) -> str:
    tokens = [
        t for t in normalize(f"{item.snippet} {item.detail_text or ''}").split()
        if len(t) > 4 and t not in LEGAL_CORE_STOPWORDS
    ][:28]
    return " ".join(list(dict.fromkeys(tokens))[:14])


def content_key(item: ScoredCase) -> Optional[str]:
    label = date_label(item.title) or "unknown"
    body = _body_seed(item.detail_text)
    seed = body if len(body) >= 80 else normalize(item.snippet)[:220]
    if len(seed) < config.DIVERSITY_CONTENT_SEED_MIN:
        return None
    return f"content:{item.court}:{label}:{seed}"


def core_key(item: ScoredCase) -> Optional[str]:
    core = _core_seed(item)
    if len(core) < config.DIVERSITY_CORE_SEED_MIN:
        return None
    return f"core:{item.court}:{date_label(item.title) or 'unknown'}:{core}"


def identity_keys(item: ScoredCase) -> List[str]:
    keys = [
        equivalent_citation_key(item.detail_text),
        f"sem:{item.retrieval.semantic_hash}" if item.retrieval and item.retrieval.semantic_hash else None,
        f"doc:{doc_id(item.url)}" if doc_id(item.url) else None,
        f"doc:{doc_id(item.full_document_url)}" if doc_id(item.full_document_url) else None,
        content_key(item),
        core_key(item),
    ]
    return list(dict.fromkeys(k for k in keys if k))


def fingerprint(item: ScoredCase) -> str:
    return f"{normalize(item.title)} {normalize(item.snippet)[:220]}"[:280]


def diversify_ranked_cases(items: Sequence[T], max_per_fingerprint: Optional[int] = None,
                           max_per_court_day: Optional[int] = None) -> List[T]:
    per_fingerprint = max(1, max_per_fingerprint or config.DIVERSITY_MAX_PER_FINGERPRINT)
    per_court_day = max(1, max_per_court_day or config.DIVERSITY_MAX_PER_COURT_DAY)
    kept: List[T] = []
    seen: set = set()
    fingerprints: Dict[str, int] = defaultdict(int)
    court_days: Dict[str, int] = defaultdict(int)

    for item in items:
        keys = identity_keys(item)
        if any(k in seen for k in keys):
            continue
        fp = fingerprint(item)
        if fingerprints[fp] >= per_fingerprint:
            continue
        # undated items carry no day to cap on
        label = date_label(item.title)
        court_day = f"{item.court}:{label}" if label else None
        if court_day and court_days[court_day] >= per_court_day:
            continue
        kept.append(item)
        fingerprints[fp] += 1
        if court_day:
            court_days[court_day] += 1
        seen.update(keys)

    if len(kept) < len(items):
        logger.debug("diversity filter dropped %d of %d item(s)", len(items) - len(kept), len(items))
    return kept


__all__ = ['diversify_ranked_cases', 'identity_keys', 'fingerprint', 'equivalent_citation_key', 'doc_id']
