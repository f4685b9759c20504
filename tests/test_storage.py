"""Tests for the store backends and the store factory."""

import sqlite3
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from types import SimpleNamespace

import pytest

from ptm.errors import EmbeddingDecodeError, ScanTimeoutError
from ptm.models import InfluenceEdge, SemanticChangeEvent
from ptm.storage import get_store
from ptm.storage.sqlite import SqlitePtmStore
from ptm.vectors import decode_embedding, encode_embedding

from conftest import add_change, add_note


def _ts(year, month, day, hour=12):
    return int(datetime(year, month, day, hour, tzinfo=timezone.utc).timestamp())


def test_get_store_sqlite():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = get_store({"storage_backend": "sqlite", "db_path": str(Path(tmpdir) / "a" / "ptm.db")})
        assert isinstance(store, SqlitePtmStore)
        assert store.db_path.exists()


def test_get_store_unknown_backend():
    with pytest.raises(ValueError):
        get_store({"storage_backend": "mongo"})


def test_embeddings_join_notes(store):
    add_note(store, "b", [0.0, 1.0], cluster_id=2)
    add_note(store, "a", [1.0, 0.0])

    rows = store.fetch_note_embeddings()

    assert [r.note_id for r in rows] == ["a", "b"]
    assert rows[0].cluster_id is None
    assert decode_embedding(rows[1].vector).tolist() == pytest.approx([0.0, 1.0])


def test_set_embedding_supersedes(store):
    add_note(store, "a", [1.0, 0.0])
    store.set_embedding("a", [0.5, 0.5])

    rows = store.fetch_note_embeddings()

    assert len(rows) == 1
    assert decode_embedding(rows[0].vector).tolist() == pytest.approx([0.5, 0.5])


def test_negative_weight_rejected(store):
    with pytest.raises(sqlite3.IntegrityError):
        store.insert_influence_edge(InfluenceEdge("a", "b", -0.1))


def test_daily_totals_group_by_utc_day(store):
    store.insert_semantic_change(SemanticChangeEvent("a", _ts(2024, 6, 1, 1), 0.5))
    store.insert_semantic_change(SemanticChangeEvent("b", _ts(2024, 6, 1, 23), 0.25))
    store.insert_semantic_change(SemanticChangeEvent("c", _ts(2024, 6, 2, 0), 1.0))
    store.insert_semantic_change(SemanticChangeEvent("d", _ts(2024, 6, 2, 5), None))

    totals = store.fetch_daily_drift_totals(datetime(2024, 5, 1, tzinfo=timezone.utc))

    assert totals == [("2024-06-01", 0.75), ("2024-06-02", 1.0)]


def test_sum_drift_window_and_cluster(store):
    add_change(store, "a", 1.0, days_ago=1, cluster_id=1)
    add_change(store, "b", 2.0, days_ago=4, cluster_id=1)
    add_change(store, "c", 4.0, days_ago=1, cluster_id=2)
    now = datetime.now(timezone.utc)

    assert store.sum_drift(now - timedelta(days=7)) == 7.0
    assert store.sum_drift(now - timedelta(days=7), cluster_id=1) == 3.0
    assert store.sum_drift(now - timedelta(days=7), now - timedelta(days=3)) == 2.0
    assert store.sum_drift(now - timedelta(days=7), cluster_id=9) == 0.0


def test_replace_snapshot_keeps_one_row_per_date(store):
    store.replace_snapshot("2024-06-01", '{"v": 1}', "[]", 0.1, 100)
    store.replace_snapshot("2024-06-01", '{"v": 2}', "[]", 0.2, 200)

    assert store.fetch_snapshot("2024-06-01") == '{"v": 2}'
    assert store.fetch_snapshot_history() == ['{"v": 2}']
    assert store.fetch_snapshot("2024-06-02") is None


def test_chroma_store_reads_vectors_from_collection():
    from ptm.storage.chromadb import ChromaPtmStore

    with tempfile.TemporaryDirectory() as tmpdir:
        store = ChromaPtmStore(str(Path(tmpdir) / "ptm.db"), str(Path(tmpdir) / "chroma"), collection="test")
        store.add_note_vectors(
            ["n1", "n2"],
            [[1.0, 0.0], [0.0, 1.0]],
            [{"cluster_id": 3, "title": "Graphs"}, {"cluster_id": None, "title": "Loose"}],
        )

        by_id = {e.note_id: e for e in store.fetch_note_embeddings()}
        members = store.fetch_cluster_members(3)

    assert by_id["n1"].cluster_id == 3
    assert by_id["n2"].cluster_id is None
    assert [m.note_id for m in members] == ["n1"]
    assert members[0].title == "Graphs"


def test_negative_semantic_diff_rejected(store):
    with pytest.raises(sqlite3.IntegrityError):
        store.insert_semantic_change(SemanticChangeEvent("a", _ts(2024, 6, 1), -0.5))


def _bigquery_store(rows):
    from ptm.storage.bigquery import BigQueryPtmStore

    store = BigQueryPtmStore.__new__(BigQueryPtmStore)
    store.project, store.dataset = "proj", "ptm"
    store.embedding_dim = None
    store.scan_timeout = None
    store._client = None
    store._query = lambda sql, params=None, timeout=None: rows
    return store


def test_bigquery_byte_embeddings_decode_to_floats():
    store = _bigquery_store([SimpleNamespace(note_id="a", embedding=encode_embedding([1.0, 0.5]), cluster_id=1)])

    rows = store.fetch_note_embeddings()

    assert decode_embedding(rows[0].vector).tolist() == [1.0, 0.5]


def test_bigquery_float_array_embeddings_and_members():
    row = SimpleNamespace(note_id="a", title=None, category="tech", embedding=[0.25, 0.75], cluster_id=2)
    store = _bigquery_store([row])

    assert decode_embedding(store.fetch_note_embeddings()[0].vector).tolist() == [0.25, 0.75]
    member = store.fetch_cluster_members(2)[0]
    assert member.title == ""
    assert decode_embedding(member.embedding).tolist() == [0.25, 0.75]


def test_bigquery_truncated_buffer_fails_loudly():
    store = _bigquery_store([SimpleNamespace(note_id="a", embedding=b"\x00\x00\x80", cluster_id=1)])

    with pytest.raises(EmbeddingDecodeError):
        decode_embedding(store.fetch_note_embeddings()[0].vector)


def test_bigquery_dynamics_centroid_kept_as_bytes():
    row = SimpleNamespace(
        cluster_id=1, date="2024-06-01", centroid=encode_embedding([0.0, 1.0]),
        cohesion=0.9, stability_score=None, note_count=2,
    )
    empty = SimpleNamespace(
        cluster_id=2, date="2024-06-01", centroid=[], cohesion=0.5, stability_score=None, note_count=1,
    )
    store = _bigquery_store([row, empty])

    records = store.fetch_cluster_dynamics_by_date("2024-06-01")

    assert decode_embedding(records[0].centroid).tolist() == [0.0, 1.0]
    assert records[1].centroid is None


def test_sqlite_scan_deadline(store):
    for i in range(300):
        add_note(store, f"n{i:03d}", [1.0, float(i)], cluster_id=i % 3)
    store.scan_timeout = -1

    with pytest.raises(ScanTimeoutError) as exc:
        store.fetch_note_embeddings()
    assert isinstance(exc.value, TimeoutError)

    with pytest.raises(ScanTimeoutError):
        store.fetch_cluster_members(1)


def _chroma_store(tmpdir, **kwargs):
    from ptm.storage.chromadb import ChromaPtmStore

    return ChromaPtmStore(str(Path(tmpdir) / "ptm.db"), str(Path(tmpdir) / "chroma"), collection="test", **kwargs)


def test_chroma_scan_deadline():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = _chroma_store(tmpdir)
        ids = [f"n{i:03d}" for i in range(300)]
        store.add_note_vectors(ids, [[1.0, float(i)] for i in range(300)], [{"cluster_id": 1}] * 300)
        store.scan_timeout = -1

        with pytest.raises(ScanTimeoutError) as exc:
            store.fetch_note_embeddings()
        assert isinstance(exc.value, TimeoutError)

        with pytest.raises(ScanTimeoutError):
            store.fetch_cluster_members(1)


def test_chroma_scan_pages_through_collection(monkeypatch):
    monkeypatch.setattr("ptm.storage.chromadb.PAGE_SIZE", 2)
    with tempfile.TemporaryDirectory() as tmpdir:
        store = _chroma_store(tmpdir, scan_timeout=30.0)
        ids = [f"n{i}" for i in range(5)]
        store.add_note_vectors(ids, [[1.0, float(i)] for i in range(5)], [{"cluster_id": 1}] * 5)

        rows = store.fetch_note_embeddings()
        members = store.fetch_cluster_members(1)

    assert sorted(r.note_id for r in rows) == ids
    assert len(members) == 5


def test_chroma_cluster_matches_influence_joins():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = _chroma_store(tmpdir)
        store.add_note_vectors(
            ["a", "b"],
            [[1.0, 0.0], [0.0, 1.0]],
            [{"cluster_id": 1, "title": "A"}, {"cluster_id": 2, "title": "B"}],
        )
        store.insert_influence_edge(InfluenceEdge("a", "b", 0.5))
        assert store.fetch_cluster_influence_flow() == [(1, 2, 0.5)]

        store.add_note_vectors(["b"], [[0.0, 1.0]], [{"cluster_id": 3, "title": "B"}])
        by_id = {e.note_id: e.cluster_id for e in store.fetch_note_embeddings()}

        assert by_id["b"] == 3
        assert store.fetch_cluster_influence_flow() == [(1, 3, 0.5)]
