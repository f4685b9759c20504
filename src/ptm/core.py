"""Core metrics: global centroid and cluster composition of note embeddings."""

import logging

import numpy as np

from .models import ClusterCentroid, ClusterWeight, CoreMetrics
from .storage import PtmStoreBase
from .vectors import decode_all, mean_vector, normalize_vector, round4

logger = logging.getLogger(__name__)


def _group_by_cluster(cluster_ids: list[int | None], vectors: list[np.ndarray]) -> dict[int, list[np.ndarray]]:
    clusters: dict[int, list[np.ndarray]] = {}
    for cluster_id, vec in zip(cluster_ids, vectors):
        if cluster_id is None:
            continue
        clusters.setdefault(cluster_id, []).append(vec)
    return clusters


def compute_core_metrics(store: PtmStoreBase) -> CoreMetrics:
    """Compute the global centroid and per-cluster weights over all notes.

    Notes without a cluster count toward ``total_notes`` and the global
    centroid but not toward any cluster weight.
    """
    embeddings = store.fetch_note_embeddings()

    if not embeddings:
        return CoreMetrics(
            total_notes=0,
            cluster_count=0,
            global_centroid=None,
            cluster_weights=[],
            dominant_cluster=None,
        )

    vectors = decode_all([e.vector for e in embeddings], store.embedding_dim)
    clusters = _group_by_cluster([e.cluster_id for e in embeddings], vectors)
    total = len(vectors)

    global_centroid = normalize_vector(mean_vector(vectors))

    cluster_weights = [
        ClusterWeight(cluster_id=cid, note_count=len(vecs), weight=round4(len(vecs) / total))
        for cid, vecs in clusters.items()
    ]
    # Equal weights fall back to ascending cluster id
    cluster_weights.sort(key=lambda w: (-w.weight, w.cluster_id))

    dominant_cluster = cluster_weights[0].cluster_id if cluster_weights else None
    logger.debug(f"Core metrics: {total} notes across {len(clusters)} clusters")

    return CoreMetrics(
        total_notes=total,
        cluster_count=len(clusters),
        global_centroid=global_centroid.tolist(),
        cluster_weights=cluster_weights,
        dominant_cluster=dominant_cluster,
    )


def compute_cluster_centroids(store: PtmStoreBase) -> list[ClusterCentroid]:
    """L2-normalized mean vector of each cluster, ordered by cluster id."""
    embeddings = [e for e in store.fetch_note_embeddings() if e.cluster_id is not None]
    vectors = decode_all([e.vector for e in embeddings], store.embedding_dim)
    clusters = _group_by_cluster([e.cluster_id for e in embeddings], vectors)

    return [
        ClusterCentroid(
            cluster_id=cid,
            centroid=normalize_vector(mean_vector(vecs)).tolist(),
            note_count=len(vecs),
        )
        for cid, vecs in sorted(clusters.items())
    ]
