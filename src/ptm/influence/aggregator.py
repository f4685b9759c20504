"""Aggregate note-level influence edges into note and cluster summaries."""

import logging

from ..models import (
    ClusterFlow,
    ClusterInfluence,
    InfluencedSummary,
    InfluenceMetrics,
    InfluencerSummary,
)
from ..storage import PtmStoreBase
from ..vectors import round4

logger = logging.getLogger(__name__)

TOP_N = 5


def compute_influence_metrics(store: PtmStoreBase) -> InfluenceMetrics:
    """Edge totals, top influencer/influenced notes and per-cluster flow.

    Edges between the same pair are never deduplicated, only summed.
    """
    total_edges, avg_weight = store.fetch_influence_stats()

    if total_edges == 0:
        return InfluenceMetrics(
            total_edges=0,
            avg_weight=0,
            top_influencers=[],
            top_influenced=[],
            cluster_influence=[],
            primary_hub_note=None,
        )

    top_influencers = [
        InfluencerSummary(note_id=note_id, out_weight=round4(weight), edge_count=count)
        for note_id, weight, count in store.fetch_top_influencers(TOP_N)
    ]
    top_influenced = [
        InfluencedSummary(note_id=note_id, in_weight=round4(weight), edge_count=count)
        for note_id, weight, count in store.fetch_top_influenced(TOP_N)
    ]

    merged: dict[int, ClusterInfluence] = {}
    for cluster_id, total in store.fetch_cluster_given_influence():
        merged[cluster_id] = ClusterInfluence(cluster_id=cluster_id, given=round4(total), received=0.0)
    for cluster_id, total in store.fetch_cluster_received_influence():
        entry = merged.setdefault(cluster_id, ClusterInfluence(cluster_id=cluster_id, given=0.0, received=0.0))
        entry.received = round4(total)

    cluster_influence = sorted(merged.values(), key=lambda c: (-(c.given + c.received), c.cluster_id))

    logger.debug(f"Influence: {total_edges} edges, {len(cluster_influence)} clusters involved")

    return InfluenceMetrics(
        total_edges=total_edges,
        avg_weight=round4(avg_weight or 0.0),
        top_influencers=top_influencers,
        top_influenced=top_influenced,
        cluster_influence=cluster_influence,
        primary_hub_note=top_influencers[0].note_id if top_influencers else None,
    )


def compute_cluster_influence_flow(store: PtmStoreBase) -> list[ClusterFlow]:
    """Summed edge weight per (source cluster, target cluster), heaviest first."""
    flows = [
        ClusterFlow(source=source, target=target, weight=round4(weight))
        for source, target, weight in store.fetch_cluster_influence_flow()
    ]
    flows.sort(key=lambda f: (-f.weight, f.source, f.target))
    return flows
