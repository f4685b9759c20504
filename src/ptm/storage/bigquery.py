"""BigQuery store backend.

Reads the same tables as the SQLite backend from one BigQuery dataset.
Embedding and centroid columns may be BYTES (float32 buffers) or REPEATED
FLOAT64; values are handed to the engine untouched and decoded there.
GCP imports are lazy; this module is only loaded when storage_backend=bigquery.
"""

import logging
from concurrent.futures import TimeoutError as FutureTimeout
from datetime import datetime, timezone
from typing import Any

from ..errors import ScanTimeoutError
from ..models import ClusterDynamicsRecord, ClusterMember, NoteEmbedding
from .base import PtmStoreBase

logger = logging.getLogger(__name__)


def _get_bq_client(project: str):
    from google.cloud import bigquery
    return bigquery.Client(project=project)


def _ts(dt: datetime) -> int:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp())


class BigQueryPtmStore(PtmStoreBase):
    """BigQuery-backed PTM store."""

    def __init__(self, project: str, dataset: str, embedding_dim: int | None = None,
                 scan_timeout: float | None = None):
        self.project = project
        self.dataset = dataset
        self.embedding_dim = embedding_dim
        self.scan_timeout = scan_timeout
        self._client = None
        self._ensure_snapshot_table()

    @property
    def client(self):
        if self._client is None:
            self._client = _get_bq_client(self.project)
        return self._client

    def _table(self, name: str) -> str:
        return f"`{self.project}.{self.dataset}.{name}`"

    def _ensure_snapshot_table(self):
        """Create the snapshot table if it doesn't exist; the other tables are owned upstream."""
        from google.api_core.exceptions import NotFound
        from google.cloud import bigquery

        schema = [
            bigquery.SchemaField("date", "STRING", mode="REQUIRED"),
            bigquery.SchemaField("captured_at", "INT64", mode="REQUIRED"),
            bigquery.SchemaField("cluster_strengths", "STRING"),
            bigquery.SchemaField("imbalance_score", "FLOAT64"),
            bigquery.SchemaField("summary", "STRING", mode="REQUIRED"),
        ]
        full_table = f"{self.project}.{self.dataset}.ptm_snapshots"
        try:
            self.client.get_table(full_table)
        except NotFound:
            self.client.create_table(bigquery.Table(full_table, schema=schema))

    def _query(self, sql: str, params: list[tuple[str, str, Any]] | None = None,
               timeout: float | None = None) -> list[Any]:
        from google.cloud.bigquery import QueryJobConfig, ScalarQueryParameter

        job_config = QueryJobConfig(query_parameters=[
            ScalarQueryParameter(name, type_, value) for name, type_, value in (params or [])
        ])
        job = self.client.query(sql, job_config=job_config)
        if timeout is not None:
            try:
                return list(job.result(timeout=timeout))
            except FutureTimeout as e:
                job.cancel()
                raise ScanTimeoutError(f"BigQuery scan exceeded {timeout}s") from e
        return list(job.result())

    # --- notes and embeddings -------------------------------------------

    def fetch_note_embeddings(self) -> list[NoteEmbedding]:
        rows = self._query(
            f"""
            SELECT ne.note_id, ne.embedding, n.cluster_id
            FROM {self._table("note_embeddings")} ne
            JOIN {self._table("notes")} n ON ne.note_id = n.id
            ORDER BY ne.note_id
            """,
            timeout=self.scan_timeout,
        )
        return [NoteEmbedding(r.note_id, r.embedding, r.cluster_id) for r in rows]

    def fetch_cluster_members(self, cluster_id: int) -> list[ClusterMember]:
        rows = self._query(
            f"""
            SELECT n.id AS note_id, n.title, n.category, ne.embedding
            FROM {self._table("notes")} n
            JOIN {self._table("note_embeddings")} ne ON n.id = ne.note_id
            WHERE n.cluster_id = @cluster_id
            ORDER BY n.id
            """,
            [("cluster_id", "INT64", cluster_id)],
            timeout=self.scan_timeout,
        )
        return [ClusterMember(r.note_id, r.title or "", r.category, r.embedding) for r in rows]

    # --- cluster dynamics ------------------------------------------------

    @staticmethod
    def _dynamics(row) -> ClusterDynamicsRecord:
        return ClusterDynamicsRecord(
            cluster_id=row.cluster_id,
            date=str(row.date),
            centroid=None if row.centroid == [] else row.centroid,
            cohesion=row.cohesion,
            stability_score=row.stability_score,
            note_count=row.note_count,
        )

    def fetch_latest_cluster_dynamics(self, cluster_id: int) -> ClusterDynamicsRecord | None:
        rows = self._query(
            f"""
            SELECT * FROM {self._table("cluster_dynamics")}
            WHERE cluster_id = @cluster_id
            ORDER BY date DESC LIMIT 1
            """,
            [("cluster_id", "INT64", cluster_id)],
        )
        return self._dynamics(rows[0]) if rows else None

    def fetch_cluster_dynamics_by_date(self, date: str) -> list[ClusterDynamicsRecord]:
        rows = self._query(
            f"SELECT * FROM {self._table('cluster_dynamics')} WHERE CAST(date AS STRING) = @date ORDER BY cluster_id",
            [("date", "STRING", date)],
        )
        return [self._dynamics(r) for r in rows]

    def fetch_dynamics_cluster_ids(self) -> list[int]:
        rows = self._query(f"SELECT DISTINCT cluster_id FROM {self._table('cluster_dynamics')} ORDER BY cluster_id")
        return [r.cluster_id for r in rows]

    # --- semantic change history -------------------------------------------

    def fetch_daily_drift_totals(self, since: datetime) -> list[tuple[str, float]]:
        rows = self._query(
            f"""
            SELECT CAST(DATE(TIMESTAMP_SECONDS(created_at)) AS STRING) AS day,
                   SUM(semantic_diff) AS total
            FROM {self._table("note_history")}
            WHERE semantic_diff IS NOT NULL AND created_at >= @since
            GROUP BY day
            ORDER BY day ASC
            """,
            [("since", "INT64", _ts(since))],
        )
        return [(r.day, r.total or 0.0) for r in rows]

    def fetch_cluster_drift_sums(self, since: datetime) -> list[tuple[int, float]]:
        rows = self._query(
            f"""
            SELECT new_cluster_id, SUM(semantic_diff) AS drift_sum
            FROM {self._table("note_history")}
            WHERE semantic_diff IS NOT NULL
              AND new_cluster_id IS NOT NULL
              AND created_at >= @since
            GROUP BY new_cluster_id
            ORDER BY new_cluster_id
            """,
            [("since", "INT64", _ts(since))],
        )
        return [(r.new_cluster_id, r.drift_sum or 0.0) for r in rows]

    def sum_drift(self, since: datetime, until: datetime | None = None, cluster_id: int | None = None) -> float:
        sql = (
            f"SELECT SUM(semantic_diff) AS total FROM {self._table('note_history')} "
            "WHERE semantic_diff IS NOT NULL AND created_at >= @since"
        )
        params = [("since", "INT64", _ts(since))]
        if until is not None:
            sql += " AND created_at < @until"
            params.append(("until", "INT64", _ts(until)))
        if cluster_id is not None:
            sql += " AND new_cluster_id = @cluster_id"
            params.append(("cluster_id", "INT64", cluster_id))
        rows = self._query(sql, params)
        return (rows[0].total if rows else None) or 0.0

    # --- influence edges ---------------------------------------------------

    def fetch_influence_stats(self) -> tuple[int, float]:
        rows = self._query(
            f"SELECT COUNT(*) AS total_edges, AVG(weight) AS avg_weight FROM {self._table('note_influence_edges')}"
        )
        if not rows:
            return 0, 0.0
        return rows[0].total_edges or 0, rows[0].avg_weight or 0.0

    def _top_notes(self, column: str, limit: int) -> list[tuple[str, float, int]]:
        rows = self._query(
            f"""
            SELECT {column} AS note_id, SUM(weight) AS total, COUNT(*) AS edge_count
            FROM {self._table("note_influence_edges")}
            GROUP BY note_id
            ORDER BY total DESC, note_id ASC
            LIMIT @limit
            """,
            [("limit", "INT64", limit)],
        )
        return [(r.note_id, r.total, r.edge_count) for r in rows]

    def fetch_top_influencers(self, limit: int = 5) -> list[tuple[str, float, int]]:
        return self._top_notes("source_note_id", limit)

    def fetch_top_influenced(self, limit: int = 5) -> list[tuple[str, float, int]]:
        return self._top_notes("target_note_id", limit)

    def _cluster_influence(self, column: str) -> list[tuple[int, float]]:
        rows = self._query(
            f"""
            SELECT n.cluster_id, SUM(e.weight) AS total
            FROM {self._table("note_influence_edges")} e
            JOIN {self._table("notes")} n ON e.{column} = n.id
            WHERE n.cluster_id IS NOT NULL
            GROUP BY n.cluster_id
            ORDER BY n.cluster_id
            """
        )
        return [(r.cluster_id, r.total) for r in rows]

    def fetch_cluster_given_influence(self) -> list[tuple[int, float]]:
        return self._cluster_influence("source_note_id")

    def fetch_cluster_received_influence(self) -> list[tuple[int, float]]:
        return self._cluster_influence("target_note_id")

    def fetch_cluster_influence_flow(self) -> list[tuple[int, int, float]]:
        rows = self._query(
            f"""
            SELECT src.cluster_id AS source_cluster,
                   tgt.cluster_id AS target_cluster,
                   SUM(e.weight) AS total_weight
            FROM {self._table("note_influence_edges")} e
            JOIN {self._table("notes")} src ON e.source_note_id = src.id
            JOIN {self._table("notes")} tgt ON e.target_note_id = tgt.id
            WHERE src.cluster_id IS NOT NULL AND tgt.cluster_id IS NOT NULL
            GROUP BY source_cluster, target_cluster
            ORDER BY total_weight DESC, source_cluster, target_cluster
            """
        )
        return [(r.source_cluster, r.target_cluster, r.total_weight) for r in rows]

    def fetch_cluster_influence_totals(self, cluster_id: int) -> tuple[float, float]:
        rows = self._query(
            f"""
            SELECT
              SUM(IF(src.cluster_id = @cluster_id, e.weight, 0)) AS out_total,
              SUM(IF(tgt.cluster_id = @cluster_id, e.weight, 0)) AS in_total
            FROM {self._table("note_influence_edges")} e
            LEFT JOIN {self._table("notes")} src ON e.source_note_id = src.id
            LEFT JOIN {self._table("notes")} tgt ON e.target_note_id = tgt.id
            """,
            [("cluster_id", "INT64", cluster_id)],
        )
        if not rows:
            return 0.0, 0.0
        return rows[0].out_total or 0.0, rows[0].in_total or 0.0

    # --- snapshot slot -------------------------------------------------------

    def replace_snapshot(self, date: str, summary: str, cluster_strengths: str,
                         imbalance_score: float, captured_at: int) -> None:
        table = self._table("ptm_snapshots")
        self._query(
            f"""
            BEGIN TRANSACTION;
            DELETE FROM {table} WHERE date = @date;
            INSERT INTO {table} (date, captured_at, cluster_strengths, imbalance_score, summary)
            VALUES (@date, @captured_at, @cluster_strengths, @imbalance_score, @summary);
            COMMIT TRANSACTION;
            """,
            [
                ("date", "STRING", date),
                ("captured_at", "INT64", captured_at),
                ("cluster_strengths", "STRING", cluster_strengths),
                ("imbalance_score", "FLOAT64", imbalance_score),
                ("summary", "STRING", summary),
            ],
        )
        logger.debug(f"Replaced PTM snapshot for {date} in {self.dataset}")

    def fetch_latest_snapshot(self) -> str | None:
        rows = self._query(
            f"SELECT summary FROM {self._table('ptm_snapshots')} ORDER BY date DESC, captured_at DESC LIMIT 1"
        )
        return rows[0].summary if rows else None

    def fetch_snapshot(self, date: str) -> str | None:
        rows = self._query(
            f"SELECT summary FROM {self._table('ptm_snapshots')} WHERE date = @date LIMIT 1",
            [("date", "STRING", date)],
        )
        return rows[0].summary if rows else None

    def fetch_snapshot_history(self, limit: int = 7) -> list[str]:
        rows = self._query(
            f"SELECT summary FROM {self._table('ptm_snapshots')} ORDER BY date DESC, captured_at DESC LIMIT @limit",
            [("limit", "INT64", limit)],
        )
        return [r.summary for r in rows]
