"""SQLite store backend.

Holds the relational tables the PTM engine reads (notes, embeddings, cluster
dynamics, note history, influence edges) and the per-date snapshot slot.
Every call opens its own connection, so concurrent readers never share one.
"""

import logging
import sqlite3
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator

from ..errors import ScanTimeoutError
from ..models import (
    ClusterDynamicsRecord,
    ClusterMember,
    InfluenceEdge,
    NoteEmbedding,
    SemanticChangeEvent,
)
from ..vectors import encode_embedding
from .base import PtmStoreBase

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS notes (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL DEFAULT '',
    category TEXT,
    cluster_id INTEGER
);

CREATE TABLE IF NOT EXISTS note_embeddings (
    note_id TEXT PRIMARY KEY REFERENCES notes(id) ON DELETE CASCADE,
    embedding BLOB NOT NULL,
    updated_at INTEGER NOT NULL DEFAULT (strftime('%s','now'))
);

CREATE TABLE IF NOT EXISTS cluster_dynamics (
    cluster_id INTEGER NOT NULL,
    date TEXT NOT NULL,
    centroid BLOB,
    cohesion REAL NOT NULL,
    stability_score REAL,
    note_count INTEGER NOT NULL,
    PRIMARY KEY (cluster_id, date)
);

CREATE TABLE IF NOT EXISTS note_history (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    note_id TEXT NOT NULL,
    created_at INTEGER NOT NULL,
    semantic_diff REAL CHECK (semantic_diff IS NULL OR semantic_diff >= 0),
    new_cluster_id INTEGER
);
CREATE INDEX IF NOT EXISTS idx_note_history_created_at ON note_history(created_at);

CREATE TABLE IF NOT EXISTS note_influence_edges (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    source_note_id TEXT NOT NULL,
    target_note_id TEXT NOT NULL,
    weight REAL NOT NULL CHECK (weight >= 0)
);

CREATE TABLE IF NOT EXISTS ptm_snapshots (
    date TEXT PRIMARY KEY,
    captured_at INTEGER NOT NULL,
    cluster_strengths TEXT,
    imbalance_score REAL,
    summary TEXT NOT NULL
);
"""


def _ts(dt: datetime) -> int:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp())


def _dynamics_row(row: sqlite3.Row) -> ClusterDynamicsRecord:
    return ClusterDynamicsRecord(
        cluster_id=row["cluster_id"],
        date=row["date"],
        centroid=row["centroid"],
        cohesion=row["cohesion"],
        stability_score=row["stability_score"],
        note_count=row["note_count"],
    )


class SqlitePtmStore(PtmStoreBase):
    """SQLite-backed PTM store."""

    def __init__(self, db_path: str, embedding_dim: int | None = None, scan_timeout: float | None = None):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.embedding_dim = embedding_dim
        self.scan_timeout = scan_timeout
        self._ensure_schema()

    @contextmanager
    def _get_connection(self, deadline: float | None = None) -> Iterator[sqlite3.Connection]:
        """Open a connection; with ``deadline`` seconds, long queries are interrupted."""
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        if deadline is not None:
            stop_at = time.monotonic() + deadline
            conn.set_progress_handler(lambda: 1 if time.monotonic() > stop_at else 0, 1000)
        try:
            yield conn
        except sqlite3.OperationalError as e:
            if deadline is not None and "interrupted" in str(e):
                raise ScanTimeoutError(f"Scan of {self.db_path} exceeded {deadline}s") from e
            raise
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self._get_connection() as conn:
            conn.executescript(SCHEMA)

    # --- writers used by ingestion jobs and tests ---------------------------

    def upsert_note(self, note_id: str, title: str = "", category: str | None = None,
                    cluster_id: int | None = None) -> None:
        with self._get_connection() as conn, conn:
            conn.execute(
                """
                INSERT INTO notes (id, title, category, cluster_id) VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    title = excluded.title,
                    category = excluded.category,
                    cluster_id = excluded.cluster_id
                """,
                (note_id, title, category, cluster_id),
            )

    def set_embedding(self, note_id: str, vector: Any) -> None:
        """Store (supersede) a note's embedding."""
        with self._get_connection() as conn, conn:
            conn.execute(
                """
                INSERT INTO note_embeddings (note_id, embedding) VALUES (?, ?)
                ON CONFLICT(note_id) DO UPDATE SET
                    embedding = excluded.embedding,
                    updated_at = strftime('%s','now')
                """,
                (note_id, encode_embedding(vector)),
            )

    def insert_cluster_dynamics(self, record: ClusterDynamicsRecord) -> None:
        centroid = record.centroid
        if centroid is not None and not isinstance(centroid, (bytes, bytearray, memoryview)):
            centroid = encode_embedding(centroid)
        with self._get_connection() as conn, conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO cluster_dynamics
                    (cluster_id, date, centroid, cohesion, stability_score, note_count)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (record.cluster_id, record.date, centroid, record.cohesion,
                 record.stability_score, record.note_count),
            )

    def insert_semantic_change(self, event: SemanticChangeEvent) -> None:
        with self._get_connection() as conn, conn:
            conn.execute(
                "INSERT INTO note_history (note_id, created_at, semantic_diff, new_cluster_id) VALUES (?, ?, ?, ?)",
                (event.note_id, event.created_at, event.semantic_diff, event.new_cluster_id),
            )

    def insert_influence_edge(self, edge: InfluenceEdge) -> None:
        with self._get_connection() as conn, conn:
            conn.execute(
                "INSERT INTO note_influence_edges (source_note_id, target_note_id, weight) VALUES (?, ?, ?)",
                (edge.source_note_id, edge.target_note_id, edge.weight),
            )

    # --- notes and embeddings -------------------------------------------

    def fetch_note_embeddings(self) -> list[NoteEmbedding]:
        with self._get_connection(self.scan_timeout) as conn:
            rows = conn.execute(
                """
                SELECT ne.note_id, ne.embedding, n.cluster_id
                FROM note_embeddings ne
                JOIN notes n ON ne.note_id = n.id
                ORDER BY ne.note_id
                """
            ).fetchall()
        return [NoteEmbedding(r["note_id"], r["embedding"], r["cluster_id"]) for r in rows]

    def fetch_cluster_members(self, cluster_id: int) -> list[ClusterMember]:
        with self._get_connection(self.scan_timeout) as conn:
            rows = conn.execute(
                """
                SELECT n.id AS note_id, n.title, n.category, ne.embedding
                FROM notes n
                JOIN note_embeddings ne ON n.id = ne.note_id
                WHERE n.cluster_id = ?
                ORDER BY n.id
                """,
                (cluster_id,),
            ).fetchall()
        return [ClusterMember(r["note_id"], r["title"], r["category"], r["embedding"]) for r in rows]

    # --- cluster dynamics ------------------------------------------------

    def fetch_latest_cluster_dynamics(self, cluster_id: int) -> ClusterDynamicsRecord | None:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM cluster_dynamics WHERE cluster_id = ? ORDER BY date DESC LIMIT 1",
                (cluster_id,),
            ).fetchone()
        return _dynamics_row(row) if row else None

    def fetch_cluster_dynamics_by_date(self, date: str) -> list[ClusterDynamicsRecord]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM cluster_dynamics WHERE date = ? ORDER BY cluster_id",
                (date,),
            ).fetchall()
        return [_dynamics_row(r) for r in rows]

    def fetch_dynamics_cluster_ids(self) -> list[int]:
        with self._get_connection() as conn:
            rows = conn.execute("SELECT DISTINCT cluster_id FROM cluster_dynamics ORDER BY cluster_id").fetchall()
        return [r["cluster_id"] for r in rows]

    # --- semantic change history -------------------------------------------

    def fetch_daily_drift_totals(self, since: datetime) -> list[tuple[str, float]]:
        with self._get_connection() as conn:
            rows = conn.execute(
                """
                SELECT date(created_at, 'unixepoch') AS day, SUM(semantic_diff) AS total
                FROM note_history
                WHERE semantic_diff IS NOT NULL AND created_at >= ?
                GROUP BY day
                ORDER BY day ASC
                """,
                (_ts(since),),
            ).fetchall()
        return [(r["day"], r["total"] or 0.0) for r in rows]

    def fetch_cluster_drift_sums(self, since: datetime) -> list[tuple[int, float]]:
        with self._get_connection() as conn:
            rows = conn.execute(
                """
                SELECT new_cluster_id, SUM(semantic_diff) AS drift_sum
                FROM note_history
                WHERE semantic_diff IS NOT NULL
                  AND new_cluster_id IS NOT NULL
                  AND created_at >= ?
                GROUP BY new_cluster_id
                ORDER BY new_cluster_id
                """,
                (_ts(since),),
            ).fetchall()
        return [(r["new_cluster_id"], r["drift_sum"] or 0.0) for r in rows]

    def sum_drift(self, since: datetime, until: datetime | None = None, cluster_id: int | None = None) -> float:
        sql = "SELECT SUM(semantic_diff) AS total FROM note_history WHERE semantic_diff IS NOT NULL AND created_at >= ?"
        params: list[Any] = [_ts(since)]
        if until is not None:
            sql += " AND created_at < ?"
            params.append(_ts(until))
        if cluster_id is not None:
            sql += " AND new_cluster_id = ?"
            params.append(cluster_id)
        with self._get_connection() as conn:
            row = conn.execute(sql, params).fetchone()
        return row["total"] or 0.0

    # --- influence edges ---------------------------------------------------

    def fetch_influence_stats(self) -> tuple[int, float]:
        with self._get_connection() as conn:
            row = conn.execute("SELECT COUNT(*) AS total_edges, AVG(weight) AS avg_weight FROM note_influence_edges").fetchone()
        return row["total_edges"] or 0, row["avg_weight"] or 0.0

    def _top_notes(self, column: str, limit: int) -> list[tuple[str, float, int]]:
        with self._get_connection() as conn:
            rows = conn.execute(
                f"""
                SELECT {column} AS note_id, SUM(weight) AS total, COUNT(*) AS edge_count
                FROM note_influence_edges
                GROUP BY {column}
                ORDER BY total DESC, note_id ASC
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
        return [(r["note_id"], r["total"], r["edge_count"]) for r in rows]

    def fetch_top_influencers(self, limit: int = 5) -> list[tuple[str, float, int]]:
        return self._top_notes("source_note_id", limit)

    def fetch_top_influenced(self, limit: int = 5) -> list[tuple[str, float, int]]:
        return self._top_notes("target_note_id", limit)

    def _cluster_influence(self, column: str) -> list[tuple[int, float]]:
        with self._get_connection() as conn:
            rows = conn.execute(
                f"""
                SELECT n.cluster_id, SUM(e.weight) AS total
                FROM note_influence_edges e
                JOIN notes n ON e.{column} = n.id
                WHERE n.cluster_id IS NOT NULL
                GROUP BY n.cluster_id
                ORDER BY n.cluster_id
                """
            ).fetchall()
        return [(r["cluster_id"], r["total"]) for r in rows]

    def fetch_cluster_given_influence(self) -> list[tuple[int, float]]:
        return self._cluster_influence("source_note_id")

    def fetch_cluster_received_influence(self) -> list[tuple[int, float]]:
        return self._cluster_influence("target_note_id")

    def fetch_cluster_influence_flow(self) -> list[tuple[int, int, float]]:
        with self._get_connection() as conn:
            rows = conn.execute(
                """
                SELECT src.cluster_id AS source_cluster,
                       tgt.cluster_id AS target_cluster,
                       SUM(e.weight) AS total_weight
                FROM note_influence_edges e
                JOIN notes src ON e.source_note_id = src.id
                JOIN notes tgt ON e.target_note_id = tgt.id
                WHERE src.cluster_id IS NOT NULL
                  AND tgt.cluster_id IS NOT NULL
                GROUP BY src.cluster_id, tgt.cluster_id
                ORDER BY total_weight DESC, source_cluster ASC, target_cluster ASC
                """
            ).fetchall()
        return [(r["source_cluster"], r["target_cluster"], r["total_weight"]) for r in rows]

    def fetch_cluster_influence_totals(self, cluster_id: int) -> tuple[float, float]:
        with self._get_connection() as conn:
            out_row = conn.execute(
                """
                SELECT SUM(e.weight) AS total FROM note_influence_edges e
                JOIN notes n ON e.source_note_id = n.id
                WHERE n.cluster_id = ?
                """,
                (cluster_id,),
            ).fetchone()
            in_row = conn.execute(
                """
                SELECT SUM(e.weight) AS total FROM note_influence_edges e
                JOIN notes n ON e.target_note_id = n.id
                WHERE n.cluster_id = ?
                """,
                (cluster_id,),
            ).fetchone()
        return out_row["total"] or 0.0, in_row["total"] or 0.0

    # --- snapshot slot -------------------------------------------------------

    def replace_snapshot(self, date: str, summary: str, cluster_strengths: str,
                         imbalance_score: float, captured_at: int) -> None:
        # Delete and insert commit together; readers see the old row or the new one.
        with self._get_connection() as conn, conn:
            conn.execute("DELETE FROM ptm_snapshots WHERE date = ?", (date,))
            conn.execute(
                """
                INSERT INTO ptm_snapshots (date, captured_at, cluster_strengths, imbalance_score, summary)
                VALUES (?, ?, ?, ?, ?)
                """,
                (date, captured_at, cluster_strengths, imbalance_score, summary),
            )
        logger.debug(f"Replaced PTM snapshot for {date}")

    def fetch_latest_snapshot(self) -> str | None:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT summary FROM ptm_snapshots ORDER BY date DESC, captured_at DESC LIMIT 1"
            ).fetchone()
        return row["summary"] if row else None

    def fetch_snapshot(self, date: str) -> str | None:
        with self._get_connection() as conn:
            row = conn.execute("SELECT summary FROM ptm_snapshots WHERE date = ?", (date,)).fetchone()
        return row["summary"] if row else None

    def fetch_snapshot_history(self, limit: int = 7) -> list[str]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT summary FROM ptm_snapshots ORDER BY date DESC, captured_at DESC LIMIT ?",
                (limit,),
            ).fetchall()
        return [r["summary"] for r in rows]
