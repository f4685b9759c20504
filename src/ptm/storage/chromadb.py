"""ChromaDB-backed note vectors on top of the SQLite relational store.

Note embeddings live in a ChromaDB collection whose metadata carries the
note's ``cluster_id`` (``-1`` for unclustered notes), ``title`` and
``category``. History, dynamics, influence edges and snapshots stay in SQLite.

``add_note_vectors`` writes the note row to SQLite as well, so the cluster
seen by vector reads and by influence joins is the same.
"""

import time
from pathlib import Path
from typing import Any

import chromadb

from ..errors import ScanTimeoutError
from ..models import ClusterMember, NoteEmbedding
from .sqlite import SqlitePtmStore

NOISE_CLUSTER = -1
PAGE_SIZE = 500


def _cluster_from_meta(meta: dict[str, Any] | None) -> int | None:
    cluster_id = (meta or {}).get("cluster_id", NOISE_CLUSTER)
    return None if cluster_id is None or cluster_id == NOISE_CLUSTER else int(cluster_id)


class ChromaPtmStore(SqlitePtmStore):
    """Reads note vectors from ChromaDB and everything else from SQLite."""

    def __init__(
        self,
        db_path: str,
        chroma_path: str,
        collection: str = "notes",
        embedding_dim: int | None = None,
        scan_timeout: float | None = None,
    ):
        super().__init__(db_path, embedding_dim=embedding_dim, scan_timeout=scan_timeout)
        self.chroma_path = Path(chroma_path)
        self.chroma_path.mkdir(parents=True, exist_ok=True)
        self.client = chromadb.PersistentClient(path=str(self.chroma_path))
        self.collection_name = collection

    def get_or_create_collection(self) -> chromadb.Collection:
        return self.client.get_or_create_collection(
            name=self.collection_name,
            metadata={"hnsw:space": "cosine"},
        )

    def add_note_vectors(
        self,
        ids: list[str],
        embeddings: list[list[float]],
        metadatas: list[dict[str, Any]],
    ) -> None:
        """Upsert note vectors and their SQLite note rows; ``cluster_id`` None is stored as -1."""
        cleaned = []
        for note_id, meta in zip(ids, metadatas):
            self.upsert_note(
                note_id,
                title=meta.get("title") or "",
                category=meta.get("category"),
                cluster_id=_cluster_from_meta(meta),
            )
            meta = {k: v for k, v in meta.items() if v is not None}
            meta.setdefault("cluster_id", NOISE_CLUSTER)
            cleaned.append(meta)
        self.get_or_create_collection().upsert(ids=ids, embeddings=embeddings, metadatas=cleaned)

    def _scan(self, where: dict[str, Any] | None = None) -> tuple[list[str], list[Any], list[dict]]:
        """Page through the collection, giving up once ``scan_timeout`` has passed."""
        collection = self.get_or_create_collection()
        stop_at = None if self.scan_timeout is None else time.monotonic() + self.scan_timeout
        ids, embeddings, metadatas = [], [], []
        offset = 0
        while True:
            if stop_at is not None and time.monotonic() > stop_at:
                raise ScanTimeoutError(
                    f"Scan of collection {self.collection_name} exceeded {self.scan_timeout}s"
                )
            page = collection.get(
                where=where,
                include=["metadatas", "embeddings"],
                limit=PAGE_SIZE,
                offset=offset,
            )
            page_ids = page["ids"] or []
            if not page_ids:
                break
            ids.extend(page_ids)
            embeddings.extend(page["embeddings"])
            metadatas.extend(page["metadatas"] or [{}] * len(page_ids))
            if len(page_ids) < PAGE_SIZE:
                break
            offset += PAGE_SIZE
        return ids, embeddings, metadatas

    def fetch_note_embeddings(self) -> list[NoteEmbedding]:
        ids, embeddings, metadatas = self._scan()
        return [
            NoteEmbedding(note_id, embeddings[i], _cluster_from_meta(metadatas[i]))
            for i, note_id in enumerate(ids)
        ]

    def fetch_cluster_members(self, cluster_id: int) -> list[ClusterMember]:
        ids, embeddings, metadatas = self._scan(where={"cluster_id": cluster_id})
        members = []
        for i, note_id in enumerate(ids):
            meta = metadatas[i] or {}
            members.append(ClusterMember(
                note_id=note_id,
                title=meta.get("title", ""),
                category=meta.get("category"),
                embedding=embeddings[i],
            ))
        return members
