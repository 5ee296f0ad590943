"""Build the on-disk semantic index from a judgment dump.

Input is JSON lines, one judgment per line:
  {"doc_id", "title", "url", "court", "date", "text" | "html", "source_version"?}

Each judgment is segmented into paragraph chunks (HTML is flattened with
BeautifulSoup first), chunks are embedded in batches, and the result is written
as a :class:`VectorIndex` directory.
"""
from __future__ import annotations
import hashlib
import json
import logging
import re
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence

import numpy as np
from bs4 import BeautifulSoup

from precedent_finder.retrieval.providers import infer_court_level
from precedent_finder.retrieval.vector_index import VectorIndex

logger = logging.getLogger(__name__)

BLOCK_TAGS = {"p", "div", "section", "article", "li", "pre"}
MIN_CHUNK_CHARS = 80
MAX_CHUNK_CHARS = 1200


def html_to_text(html: Optional[str]) -> str:
    if not html:
        return ""
    soup = BeautifulSoup(html, 'html.parser')
    for bad in soup(["script", "style", "noscript"]):
        bad.decompose()
    lines = [el.get_text(" ", strip=True) for el in soup.find_all(BLOCK_TAGS)]
    lines = [line for line in lines if line]
    if not lines:
        return soup.get_text(" ", strip=True)
    return "\n\n".join(dict.fromkeys(lines))


def chunk_text(text: str, min_chars: int = MIN_CHUNK_CHARS, max_chars: int = MAX_CHUNK_CHARS) -> List[str]:
    """Paragraph chunks; short paragraphs are merged forward, long ones split on sentence ends."""
    paragraphs = [re.sub(r"\s+", " ", p).strip() for p in re.split(r"\n{2,}", text or "")]
    chunks: List[str] = []
    buf = ""
    for para in (p for p in paragraphs if p):
        while len(para) > max_chars:
            cut = para.rfind(". ", 0, max_chars)
            cut = cut + 1 if cut > min_chars else max_chars
            chunks.append(para[:cut].strip())
            para = para[cut:].strip()
        buf = f"{buf} {para}".strip() if buf else para
        if len(buf) >= min_chars:
            chunks.append(buf)
            buf = ""
    if buf:
        if chunks and len(chunks[-1]) + len(buf) < max_chars:
            chunks[-1] = f"{chunks[-1]} {buf}"
        else:
            chunks.append(buf)
    return chunks


def _doc_id(record: Dict[str, Any]) -> str:
    if record.get('doc_id'):
        return str(record['doc_id'])
    return hashlib.sha256(str(record.get('url', '')).encode('utf-8')).hexdigest()[:20]


def iter_chunks(records: Iterable[Dict[str, Any]]) -> Iterator[Dict[str, Any]]:
    for record in records:
        text = record.get('text') or html_to_text(record.get('html'))
        if not text:
            continue
        doc_id = _doc_id(record)
        court = record.get('court')
        court = court if court in ("SC", "HC") else infer_court_level(f"{court or ''} {record.get('title', '')}")
        for i, chunk in enumerate(chunk_text(text)):
            yield {
                'doc_id': doc_id,
                'chunk_id': f"{doc_id}::{i}",
                'text': chunk,
                'court': court,
                'title': record.get('title'),
                'url': record.get('url'),
                'date': record.get('date'),
                'source_version': record.get('source_version'),
            }


def read_jsonl(path: str) -> Iterator[Dict[str, Any]]:
    with open(path, 'r', encoding='utf-8') as f:
        for line_no, line in enumerate(f, start=1):
            if not line.strip():
                continue
            try:
                yield json.loads(line)
            except json.JSONDecodeError:
                logger.warning("skipping malformed line %d in %s", line_no, path)


def build_index(records: Iterable[Dict[str, Any]], encode: Callable[[Sequence[str]], Any],
                batch_size: int = 64) -> VectorIndex:
    meta = list(iter_chunks(records))
    if not meta:
        raise ValueError("no judgment text to index")
    vectors = []
    for start in range(0, len(meta), batch_size):
        batch = [m['text'] for m in meta[start:start + batch_size]]
        vectors.append(np.asarray(encode(batch), dtype='float32'))
    logger.info("embedded %d chunk(s)", len(meta))
    return VectorIndex(embeddings=np.vstack(vectors), meta=meta)


__all__ = ['build_index', 'chunk_text', 'html_to_text', 'iter_chunks', 'read_jsonl']
