"""Cluster identity: what a cluster is about and how it behaves.

An identity is derived on every call from the stored primitives (latest
dynamics row, member embeddings, change history and influence edges); it is
never cached or persisted.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from typing import Any

from ..models import (
    ClusterDriftSummary,
    ClusterIdentity,
    ClusterInfluenceSummary,
    RepresentativeNote,
)
from ..storage import PtmStoreBase
from ..vectors import cosine_similarity, decode_embedding, round4
from .keywords import extract_keywords

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 4
RECENT_DAYS = 3
RISING_FACTOR = 1.2
FALLING_FACTOR = 0.8


def get_representative_notes(store: PtmStoreBase, cluster_id: int, top: int = 5) -> list[RepresentativeNote]:
    """Member notes closest to the cluster's latest centroid."""
    latest = store.fetch_latest_cluster_dynamics(cluster_id)
    if latest is None or latest.centroid is None:
        return []

    centroid = decode_embedding(latest.centroid, store.embedding_dim)
    members = store.fetch_cluster_members(cluster_id)
    if not members:
        return []

    scored = [
        RepresentativeNote(
            id=m.note_id,
            title=m.title,
            category=m.category,
            cosine=round4(cosine_similarity(centroid, decode_embedding(m.embedding, len(centroid)))),
        )
        for m in members
    ]
    scored.sort(key=lambda n: -n.cosine)
    return scored[:top]


def get_cluster_drift_summary(store: PtmStoreBase, cluster_id: int, range_days: int = 7) -> ClusterDriftSummary:
    """Drift share of a cluster over the window and its short-term trend.

    The trend compares the last 3 days with the rest of the window.
    """
    now = datetime.now(timezone.utc)
    start = now - timedelta(days=range_days)
    mid = now - timedelta(days=RECENT_DAYS)

    cluster_sum = store.sum_drift(start, cluster_id=cluster_id)
    total_sum = store.sum_drift(start)
    recent_sum = store.sum_drift(mid, cluster_id=cluster_id)
    older_sum = store.sum_drift(start, until=mid, cluster_id=cluster_id)

    if recent_sum > older_sum * RISING_FACTOR:
        trend = "rising"
    elif recent_sum < older_sum * FALLING_FACTOR:
        trend = "falling"
    else:
        trend = "flat"

    return ClusterDriftSummary(
        contribution=round4(cluster_sum / total_sum) if total_sum > 0 else 0.0,
        trend=trend,
        recent_drift_sum=round4(cluster_sum),
    )


def get_cluster_influence_summary(store: PtmStoreBase, cluster_id: int) -> ClusterInfluenceSummary:
    """Outgoing vs incoming influence weight of the cluster's notes."""
    out_degree, in_degree = store.fetch_cluster_influence_totals(cluster_id)
    total = out_degree + in_degree

    return ClusterInfluenceSummary(
        out_degree=round4(out_degree),
        in_degree=round4(in_degree),
        hubness=round4(out_degree / total) if total > 0 else 0.0,
        authority=round4(in_degree / total) if total > 0 else 0.0,
    )


def get_cluster_identity(
    store: PtmStoreBase,
    cluster_id: int,
    max_workers: int = DEFAULT_MAX_WORKERS,
) -> ClusterIdentity | None:
    """Full identity of one cluster, or None if it has never been analyzed."""
    latest = store.fetch_latest_cluster_dynamics(cluster_id)
    if latest is None:
        return None

    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        f_reps = pool.submit(get_representative_notes, store, cluster_id, 5)
        f_drift = pool.submit(get_cluster_drift_summary, store, cluster_id, 7)
        f_influence = pool.submit(get_cluster_influence_summary, store, cluster_id)
        representatives = f_reps.result()
        drift = f_drift.result()
        influence = f_influence.result()

    return ClusterIdentity(
        cluster_id=cluster_id,
        keywords=extract_keywords([r.title for r in representatives]),
        representatives=representatives,
        drift=drift,
        influence=influence,
        cohesion=latest.cohesion,
        note_count=latest.note_count,
    )


def get_all_cluster_identities(store: PtmStoreBase, max_workers: int = DEFAULT_MAX_WORKERS) -> list[ClusterIdentity]:
    """Identities of every cluster seen in dynamics rows, ordered by cluster id."""
    cluster_ids = store.fetch_dynamics_cluster_ids()
    if not cluster_ids:
        return []

    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        identities = list(pool.map(lambda cid: get_cluster_identity(store, cid, max_workers), cluster_ids))

    result = [i for i in identities if i is not None]
    logger.debug(f"Built {len(result)} cluster identities")
    return result


def format_identity_for_prompt(identity: ClusterIdentity) -> dict[str, Any]:
    """Compact payload describing a cluster for persona generation."""
    return {
        "task": "cluster_identity",
        "cluster_id": identity.cluster_id,
        "identity_data": {
            "keywords": identity.keywords,
            "representatives": [
                {"title": r.title, "cosine": r.cosine} for r in identity.representatives
            ],
            "drift": {
                "contribution": identity.drift.contribution,
                "trend": identity.drift.trend,
                "recent_drift_sum": identity.drift.recent_drift_sum,
            },
            "influence": {
                "out_degree": identity.influence.out_degree,
                "in_degree": identity.influence.in_degree,
                "hubness": identity.influence.hubness,
                "authority": identity.influence.authority,
            },
            "cohesion": identity.cohesion,
            "note_count": identity.note_count,
        },
    }
