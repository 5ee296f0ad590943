import json

import numpy as np
import pytest

from precedent_finder.retrieval.index_builder import build_index, chunk_text, html_to_text, iter_chunks, read_jsonl
from precedent_finder.retrieval.vector_index import SemanticStore, VectorIndex, iso_date


def _index():
    meta = [
        {'doc_id': '1', 'chunk_id': '1::0', 'text': 'sanction', 'court': 'SC', 'date': '2019-05-01'},
        {'doc_id': '2', 'chunk_id': '2::0', 'text': 'limitation', 'court': 'HC', 'date': '2018-05-01'},
        {'doc_id': '3', 'chunk_id': '3::0', 'text': 'sanction again', 'court': 'HC', 'date': '2020-01-10'},
    ]
    return VectorIndex(embeddings=np.array([[1.0, 0.0], [0.0, 1.0], [0.9, 0.1]]), meta=meta)


def test_search_orders_by_cosine():
    hits = _index().search([1.0, 0.0], k=2)
    assert [h.doc_id for h in hits] == ['1', '3']
    assert hits[0].score == pytest.approx(1.0, abs=1e-5)


def test_search_filters_court_and_dates():
    idx = _index()
    assert [h.doc_id for h in idx.search([1.0, 0.0], k=3, court='HC')] == ['3', '2']
    assert [h.doc_id for h in idx.search([0.0, 1.0], k=3, from_date='1-1-2019')] == ['3', '1']


def test_dimension_mismatch_returns_nothing():
    assert _index().search([1.0, 0.0, 0.0], k=3) == []


def test_metadata_rows_must_match():
    with pytest.raises(ValueError):
        VectorIndex(embeddings=np.ones((2, 3)), meta=[{}])


def test_iso_date():
    assert iso_date("5-3-2019") == "2019-03-05"
    assert iso_date("2019-03-05") == "2019-03-05"
    assert iso_date("March 2019") is None


def test_save_and_load(tmp_path):
    meta_json = _index().save(str(tmp_path), model_name="test-model")
    assert meta_json['count'] == 3 and meta_json['dimension'] == 2
    loaded = VectorIndex.load(str(tmp_path))
    assert len(loaded) == 3
    assert loaded.meta[2]['chunk_id'] == '3::0'
    store = SemanticStore(index_dir=str(tmp_path))
    assert store.is_configured()
    assert store.query([1.0, 0.0], top_k=1)[0].doc_id == '1'


def test_unconfigured_store():
    assert SemanticStore(index_dir="").is_configured() is False


def test_html_to_text_drops_scripts():
    html = "<html><script>var x=1;</script><p>First para.</p><p>Second para.</p></html>"
    assert html_to_text(html) == "First para.\n\nSecond para."


def test_chunk_text_merges_short_and_splits_long():
    assert chunk_text("a" * 50 + "\n\n" + "b" * 50) == ["a" * 50 + " " + "b" * 50]
    long_para = "The appeal was filed beyond time and the delay was not explained. " * 40
    chunks = chunk_text(long_para)
    assert len(chunks) > 1
    assert all(len(c) <= 1200 for c in chunks)


def test_iter_chunks_infers_court_and_ids():
    records = [{'doc_id': 'd1', 'title': 'A vs B', 'court': 'Delhi High Court',
                'html': '<p>' + 'x' * 100 + '</p>', 'url': 'https://indiankanoon.org/doc/1/'}]
    chunks = list(iter_chunks(records))
    assert [c['chunk_id'] for c in chunks] == ['d1::0']
    assert chunks[0]['court'] == 'HC'


def test_build_index_and_read_jsonl(tmp_path):
    path = tmp_path / "dump.jsonl"
    lines = [json.dumps({'doc_id': 'd1', 'title': 'A vs B', 'court': 'SC', 'text': 'y' * 120}), "{broken", ""]
    path.write_text("\n".join(lines), encoding="utf-8")
    records = list(read_jsonl(str(path)))
    assert len(records) == 1

    def encode(texts):
        return [[float(len(t)), 1.0] for t in texts]

    index = build_index(records, encode, batch_size=1)
    assert len(index) == 1
    assert index.meta[0]['court'] == 'SC'
    with pytest.raises(ValueError):
        build_index([], encode)
