"""Abstract base class for PTM stores and factory function."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from ..models import ClusterDynamicsRecord, ClusterMember, NoteEmbedding


class PtmStoreBase(ABC):
    """Read contract the PTM engine needs from the knowledge base.

    Timestamps passed as ``since``/``until`` are aware or naive UTC datetimes;
    every aggregate only considers rows with a non-null ``semantic_diff``.
    """

    embedding_dim: int | None = None

    # --- notes and embeddings -------------------------------------------

    @abstractmethod
    def fetch_note_embeddings(self) -> list[NoteEmbedding]:
        """All notes with an embedding, joined with their current cluster."""

    @abstractmethod
    def fetch_cluster_members(self, cluster_id: int) -> list[ClusterMember]:
        """Notes currently assigned to ``cluster_id`` with title, category and embedding."""

    # --- cluster dynamics ------------------------------------------------

    @abstractmethod
    def fetch_latest_cluster_dynamics(self, cluster_id: int) -> ClusterDynamicsRecord | None:
        """The dynamics row with the greatest date for a cluster."""

    @abstractmethod
    def fetch_cluster_dynamics_by_date(self, date: str) -> list[ClusterDynamicsRecord]:
        """All dynamics rows for one date, ordered by cluster id."""

    @abstractmethod
    def fetch_dynamics_cluster_ids(self) -> list[int]:
        """Distinct cluster ids present in dynamics rows, ascending."""

    # --- semantic change history -------------------------------------------

    @abstractmethod
    def fetch_daily_drift_totals(self, since: datetime) -> list[tuple[str, float]]:
        """``(YYYY-MM-DD, sum of semantic_diff)`` per UTC day, ascending."""

    @abstractmethod
    def fetch_cluster_drift_sums(self, since: datetime) -> list[tuple[int, float]]:
        """``(new_cluster_id, sum of semantic_diff)`` for events with a cluster."""

    @abstractmethod
    def sum_drift(
        self,
        since: datetime,
        until: datetime | None = None,
        cluster_id: int | None = None,
    ) -> float:
        """Sum of semantic_diff in ``[since, until)``; all clusters when ``cluster_id`` is None."""

    # --- influence edges ---------------------------------------------------

    @abstractmethod
    def fetch_influence_stats(self) -> tuple[int, float]:
        """``(edge count, average weight)``."""

    @abstractmethod
    def fetch_top_influencers(self, limit: int = 5) -> list[tuple[str, float, int]]:
        """``(source note, summed weight, edge count)`` by weight descending."""

    @abstractmethod
    def fetch_top_influenced(self, limit: int = 5) -> list[tuple[str, float, int]]:
        """``(target note, summed weight, edge count)`` by weight descending."""

    @abstractmethod
    def fetch_cluster_given_influence(self) -> list[tuple[int, float]]:
        """Summed weight of edges whose source note is in each cluster."""

    @abstractmethod
    def fetch_cluster_received_influence(self) -> list[tuple[int, float]]:
        """Summed weight of edges whose target note is in each cluster."""

    @abstractmethod
    def fetch_cluster_influence_flow(self) -> list[tuple[int, int, float]]:
        """``(source cluster, target cluster, summed weight)``, both clusters non-null."""

    @abstractmethod
    def fetch_cluster_influence_totals(self, cluster_id: int) -> tuple[float, float]:
        """``(out weight, in weight)`` over edges touching the cluster's notes."""

    # --- snapshot slot -------------------------------------------------------

    @abstractmethod
    def replace_snapshot(
        self,
        date: str,
        summary: str,
        cluster_strengths: str,
        imbalance_score: float,
        captured_at: int,
    ) -> None:
        """Atomically replace the snapshot row for ``date``."""

    @abstractmethod
    def fetch_latest_snapshot(self) -> str | None:
        """JSON summary of the most recent snapshot."""

    @abstractmethod
    def fetch_snapshot(self, date: str) -> str | None:
        """JSON summary of the snapshot for ``date``."""

    @abstractmethod
    def fetch_snapshot_history(self, limit: int = 7) -> list[str]:
        """JSON summaries of the most recent snapshots, newest first."""


def get_store(config: dict[str, Any]) -> PtmStoreBase:
    """Factory: return the right store based on config."""
    backend = config.get("storage_backend", "sqlite")
    dim = config.get("embedding_dim")
    timeout = config.get("scan_timeout")

    if backend == "sqlite":
        from .sqlite import SqlitePtmStore
        return SqlitePtmStore(config["db_path"], embedding_dim=dim, scan_timeout=timeout)
    elif backend == "chromadb":
        from .chromadb import ChromaPtmStore
        return ChromaPtmStore(
            config["db_path"],
            config["chroma_path"],
            collection=config.get("chroma", {}).get("collection", "notes"),
            embedding_dim=dim,
            scan_timeout=timeout,
        )
    elif backend == "bigquery":
        from .bigquery import BigQueryPtmStore
        bq_cfg = config.get("bigquery", {})
        return BigQueryPtmStore(
            project=bq_cfg.get("project", ""),
            dataset=bq_cfg.get("dataset", "ptm"),
            embedding_dim=dim,
            scan_timeout=timeout,
        )
    else:
        raise ValueError(f"Unknown storage_backend: {backend}")
