"""Lexical retrieval providers.

A provider turns one :class:`RetrievalQuery` into a :class:`RetrievalResult`
or raises :class:`ProviderError` carrying the partial attempt debug (status,
parser mode, challenge flags, retry-after). Throttling that is merely observed
(a challenge page, a local cooldown) is reported through the debug fields.

KanoonProvider scrapes the public Indian Kanoon search pages with requests +
BeautifulSoup. StaticProvider serves a fixed candidate list (pre-fetched
candidates supplied by a client, tests).
"""
from __future__ import annotations
import logging
import re
import time
from email.utils import parsedate_to_datetime
from typing import Iterable, List, Optional, Protocol, Tuple
from urllib.parse import quote_plus, urljoin

import requests  # type: ignore[import-untyped]
from bs4 import BeautifulSoup

from precedent_finder import config
from precedent_finder.cache import SharedCache, get_shared_cache
from precedent_finder.errors import ProviderError
from precedent_finder.pipeline.types import AttemptDebug, CaseCandidate, RetrievalQuery, RetrievalResult

logger = logging.getLogger(__name__)

IRRELEVANT_TITLE_RE = re.compile(r"^(full document|similar judgments?|search)$", re.IGNORECASE)
DOC_HREF_RE = re.compile(r"/(doc|docfragment)/(\d+)/?", re.IGNORECASE)
CITES_RE = re.compile(r"\bCites\s*([0-9,]+)", re.IGNORECASE)
CITED_BY_RE = re.compile(r"\bCited\s*by\s*([0-9,]+)", re.IGNORECASE)
CHALLENGE_MARKERS = ("attention required", "just a moment", "cf-chl", "cloudflare")
NO_MATCH_RE = re.compile(r"no matching results", re.IGNORECASE)
MAX_PAGES = 10


class RetrievalProvider(Protocol):
    provider_id: str

    def search(self, query: RetrievalQuery) -> RetrievalResult:
        ...


def infer_court_level(text: str) -> str:
    t = (text or "").lower()
    if "supreme court" in t:
        return "SC"
    if "high court" in t:
        return "HC"
    return "UNKNOWN"


def normalize_doc_href(href: str, base_url: Optional[str] = None) -> Optional[str]:
    if not href:
        return None
    m = DOC_HREF_RE.search(urljoin((base_url or config.KANOON_BASE_URL) + "/", href))
    if not m:
        return None
    return f"{base_url or config.KANOON_BASE_URL}/{m.group(1).lower()}/{m.group(2)}/"


def detect_challenge(html: str) -> bool:
    lower = (html or "").lower()
    return any(marker in lower for marker in CHALLENGE_MARKERS)


def parse_retry_after_ms(value: Optional[str], ceiling_ms: Optional[int] = None) -> int:
    """Retry-After header (seconds or HTTP date) in ms, capped at the accepted ceiling."""
    ceiling = ceiling_ms or config.IK_MAX_RETRY_AFTER_MS
    default = min(1500, ceiling)
    if not value:
        return default
    value = value.strip()
    if value.isdigit():
        return min(int(value) * 1000, ceiling)
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return default
    return min(max(int((when.timestamp() - time.time()) * 1000), 500), ceiling)


def _int_or_none(raw: Optional[str]) -> Optional[int]:
    if not raw:
        return None
    try:
        return int(raw.replace(",", "").strip())
    except ValueError:
        return None


def build_search_query(query: RetrievalQuery) -> str:
    parts: List[str] = []
    if query.court_type:
        parts.append(f"doctypes:{query.court_type}")
    if query.from_date:
        parts.append(f"fromdate:{query.from_date}")
    if query.to_date:
        parts.append(f"todate:{query.to_date}")
    parts.append(query.phrase.strip())
    parts.extend(f"ANDNOT {t}" for t in query.exclude_tokens if t and " " not in t)
    return re.sub(r"\s+", " ", " ".join(p for p in parts if p)).strip()


def _candidate_from_block(block, base_url: str) -> Optional[CaseCandidate]:
    anchor = block.select_one("div.result_title a") or block.select_one("h4 a")
    if anchor is None:
        anchors = [a for a in block.find_all("a", href=True) if DOC_HREF_RE.search(a["href"])]
        anchors = [a for a in anchors if not IRRELEVANT_TITLE_RE.match(a.get_text(" ", strip=True))]
        anchor = anchors[0] if anchors else None
    if anchor is None:
        return None
    url = normalize_doc_href(anchor.get("href", ""), base_url)
    title = anchor.get_text(" ", strip=True)
    if not url or not title or IRRELEVANT_TITLE_RE.match(title):
        return None

    snippet_el = block.select_one(".headline, .result_snippet, .snippet, .citation") or block.find("p")
    snippet = snippet_el.get_text(" ", strip=True) if snippet_el else ""
    text = block.get_text(" ", strip=True)
    source_el = block.select_one(".docsource")
    court_text = source_el.get_text(" ", strip=True) if source_el else None
    full_doc = None
    for a in block.find_all("a", href=True):
        if a.get_text(" ", strip=True).lower() == "full document":
            full_doc = normalize_doc_href(a["href"], base_url)
            break
    cites = CITES_RE.search(text)
    cited_by = CITED_BY_RE.search(text)
    return CaseCandidate(
        title=title,
        url=url,
        snippet=snippet,
        court=infer_court_level(f"{court_text or ''} {title} {snippet}"),
        court_text=court_text,
        full_document_url=full_doc or url,
        cites_count=_int_or_none(cites.group(1)) if cites else None,
        cited_by_count=_int_or_none(cited_by.group(1)) if cited_by else None,
    )


def parse_search_page(html: str, base_url: Optional[str] = None) -> Tuple[List[CaseCandidate], str]:
    """Parse a search result page; returns (candidates, parser mode)."""
    base_url = base_url or config.KANOON_BASE_URL
    soup = BeautifulSoup(html, "html.parser")
    if NO_MATCH_RE.search(soup.get_text(" ", strip=True)):
        return [], "no_match"

    seen = set()
    out: List[CaseCandidate] = []

    def _collect(blocks: Iterable) -> None:
        for block in blocks:
            cand = _candidate_from_block(block, base_url)
            if cand and cand.url not in seen:
                seen.add(cand.url)
                out.append(cand)

    _collect(soup.select("div.result"))
    if out:
        return out, "result_container"
    _collect(t.parent for t in soup.select("div.result_title"))
    if out:
        return out, "result_title"
    # doc link harvest
    for a in soup.find_all("a", href=True):
        url = normalize_doc_href(a["href"], base_url)
        title = a.get_text(" ", strip=True)
        if not url or url in seen or len(title) < 3 or IRRELEVANT_TITLE_RE.match(title):
            continue
        seen.add(url)
        out.append(CaseCandidate(title=title, url=url, court=infer_court_level(title), full_document_url=url))
    return out, "doc_link_harvest" if out else "generic_anchor"


def next_page_url(html: str, base_url: Optional[str] = None) -> Optional[str]:
    soup = BeautifulSoup(html, "html.parser")
    link = soup.find("a", rel="next")
    if link is None:
        link = next((a for a in soup.find_all("a", href=True) if a.get_text(strip=True) == "Next"), None)
    if link is None or not link.get("href"):
        return None
    return urljoin((base_url or config.KANOON_BASE_URL) + "/", link["href"])


class KanoonProvider:
    provider_id = "indiankanoon"

    def __init__(self, session: Optional[requests.Session] = None, cache: Optional[SharedCache] = None,
                 base_url: Optional[str] = None):
        self.session = session or requests.Session()
        self.cache = cache or get_shared_cache()
        self.base_url = (base_url or config.KANOON_BASE_URL).rstrip("/")
        self.headers = {
            'User-Agent': config.KANOON_USER_AGENT,
            'Accept': 'text/html,application/xhtml+xml',
            'Accept-Language': 'en-US,en;q=0.9',
        }

    def search(self, query: RetrievalQuery) -> RetrievalResult:
        search_query = build_search_query(query)
        debug = AttemptDebug(search_query=search_query, parser_mode="generic_anchor", source_tag="lexical_html")

        # A scheduled 429 retry has already waited out the Retry-After that set this cooldown.
        remaining = 0 if query.retry_index > 0 else self.cache.cooldown_remaining_ms(query.cooldown_scope)
        if remaining > 0:
            debug = debug.model_copy(update={
                'status': 429, 'blocked_type': 'local_cooldown', 'retry_after_ms': remaining,
            })
            raise ProviderError(f"local cooldown active ({remaining // 1000 + 1}s remaining)", debug)

        collected: List[CaseCandidate] = []
        seen = set()
        url: Optional[str] = f"{self.base_url}/search/?formInput={quote_plus(search_query)}"
        page = 0
        max_pages = max(1, min(query.max_pages, MAX_PAGES))
        timeout = max(0.5, query.timeout_ms / 1000)

        while url and debug.pages_scanned < max_pages and len(collected) < query.max_results:
            page_url = url if page == 0 else f"{url}&pagenum={page}"
            try:
                resp = self.session.get(page_url, headers=self.headers, timeout=timeout)
            except requests.exceptions.Timeout:
                debug = debug.model_copy(update={'status': 408, 'timed_out': True, 'parsed_count': len(collected)})
                raise ProviderError(f"search fetch timed out after {query.timeout_ms}ms", debug)
            except requests.exceptions.RequestException as e:
                debug = debug.model_copy(update={'parsed_count': len(collected)})
                raise ProviderError(f"search fetch failed: {e}", debug) from e

            cloudflare = (
                "cloudflare" in resp.headers.get("server", "").lower() or bool(resp.headers.get("cf-ray"))
            )
            debug = debug.model_copy(update={
                'status': debug.status or resp.status_code,
                'ok': debug.ok or resp.ok,
                'pages_scanned': debug.pages_scanned + 1,
                'cloudflare_detected': debug.cloudflare_detected or cloudflare,
            })

            if resp.status_code == 429:
                retry_after = parse_retry_after_ms(resp.headers.get("retry-after"))
                self.cache.set_cooldown(query.cooldown_scope or "global", retry_after + 1000)
                debug = debug.model_copy(update={
                    'status': 429, 'ok': False, 'blocked_type': 'rate_limit', 'retry_after_ms': retry_after,
                    'parsed_count': len(collected),
                })
                raise ProviderError("search rate limited (429)", debug)

            html = resp.text
            if detect_challenge(html):
                self.cache.set_cooldown(query.cooldown_scope or "global", config.KANOON_CHALLENGE_COOLDOWN_MS)
                debug = debug.model_copy(update={
                    'challenge_detected': True, 'blocked_type': 'cloudflare_challenge',
                    'retry_after_ms': config.KANOON_CHALLENGE_COOLDOWN_MS,
                })
                logger.warning("challenge page detected for %r", search_query)
                break

            cases, mode = parse_search_page(html, self.base_url)
            debug = debug.model_copy(update={'parser_mode': mode})
            for c in cases:
                if c.url in seen:
                    continue
                seen.add(c.url)
                if c.court == "UNKNOWN" and query.court_scope != "ANY":
                    c = c.model_copy(update={'court': query.court_scope})
                collected.append(c)
            if not resp.ok or mode == "no_match":
                break
            url = url if next_page_url(html, self.base_url) else None
            page += 1

        collected = collected[:query.max_results]
        debug = debug.model_copy(update={
            'parsed_count': len(collected), 'lexical_candidate_count': len(collected),
        })
        if not debug.ok and not debug.challenge_detected:
            raise ProviderError(f"search returned HTTP {debug.status}", debug)
        return RetrievalResult(cases=collected, debug=debug)


class StaticProvider:
    """Serves a fixed candidate list, ignoring the query phrase."""
    provider_id = "static"

    def __init__(self, candidates: Iterable[CaseCandidate]):
        self.candidates = list(candidates)

    def search(self, query: RetrievalQuery) -> RetrievalResult:
        cases = self.candidates[:query.max_results]
        return RetrievalResult(cases=cases, debug=AttemptDebug(
            search_query=query.phrase, status=200, ok=True, parsed_count=len(cases),
            parser_mode="static", source_tag="lexical_api", pages_scanned=1,
            lexical_candidate_count=len(cases),
        ))


__all__ = [
    'RetrievalProvider', 'KanoonProvider', 'StaticProvider', 'build_search_query', 'parse_search_page',
    'parse_retry_after_ms', 'detect_challenge', 'normalize_doc_href', 'infer_court_level',
]
