"""Snapshot writer: merge every metric into one daily PtmSnapshot and persist it."""

import json
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

from ..core import compute_core_metrics
from ..dynamics.engine import (
    compute_drift_metrics,
    compute_dynamics_metrics,
    compute_stability_metrics,
    today_utc,
)
from ..influence.aggregator import compute_influence_metrics
from ..models import PtmSnapshot, PtmSummary, to_record
from ..storage import PtmStoreBase
from ..vectors import round4

logger = logging.getLogger(__name__)

DRIFT_RANGE_DAYS = 30
DYNAMICS_RANGE_DAYS = 7


def generate_ptm_snapshot(
    store: PtmStoreBase,
    date: str | None = None,
    max_workers: int = 5,
    drift_range_days: int = DRIFT_RANGE_DAYS,
    dynamics_range_days: int = DYNAMICS_RANGE_DAYS,
) -> PtmSnapshot:
    """Compute all metrics concurrently and flatten them. Nothing is written."""
    date = date or today_utc()

    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        f_core = pool.submit(compute_core_metrics, store)
        f_influence = pool.submit(compute_influence_metrics, store)
        f_drift = pool.submit(compute_drift_metrics, store, drift_range_days)
        f_dynamics = pool.submit(compute_dynamics_metrics, store, dynamics_range_days)
        f_stability = pool.submit(compute_stability_metrics, store, date)
        core = f_core.result()
        influence = f_influence.result()
        drift = f_drift.result()
        dynamics = f_dynamics.result()
        stability = f_stability.result()

    return PtmSnapshot(
        date=date,
        total_notes=core.total_notes,
        cluster_count=core.cluster_count,
        dominant_cluster=core.dominant_cluster,
        cluster_weights=core.cluster_weights,
        drift_today=round4(drift.drift_today),
        drift_ema=round4(drift.drift_ema),
        growth_angle=round4(drift.growth_angle),
        trend=drift.trend,
        state=drift.state,
        total_influence_edges=influence.total_edges,
        primary_hub_note=influence.primary_hub_note,
        top_influencers=influence.top_influencers[:3],
        top_clusters_by_drift=dynamics.cluster_drift_contributions[:3],
        mode=dynamics.mode,
        season=dynamics.season,
        avg_cohesion=stability.avg_cohesion,
        avg_stability=stability.avg_stability,
        captured_at=datetime.now(timezone.utc).isoformat(),
    )


def capture_ptm_snapshot(store: PtmStoreBase, date: str | None = None, **kwargs) -> PtmSnapshot:
    """Generate a snapshot and replace the stored row for its date."""
    snapshot = generate_ptm_snapshot(store, date, **kwargs)

    store.replace_snapshot(
        date=snapshot.date,
        summary=json.dumps(snapshot.to_dict(), ensure_ascii=False),
        cluster_strengths=json.dumps(to_record(snapshot.cluster_weights)),
        imbalance_score=1 - snapshot.avg_cohesion,
        captured_at=int(time.time()),
    )
    logger.info(f"Captured PTM snapshot for {snapshot.date}")
    return snapshot


def _parse_snapshot(raw: str) -> PtmSnapshot | None:
    try:
        return PtmSnapshot.from_dict(json.loads(raw))
    except (json.JSONDecodeError, TypeError, KeyError) as e:
        logger.warning(f"Skipping unreadable snapshot row: {e}")
        return None


def get_latest_ptm_snapshot(store: PtmStoreBase) -> PtmSnapshot | None:
    """Most recently stored snapshot, or None if none (or it is unreadable)."""
    raw = store.fetch_latest_snapshot()
    if raw is None:
        return None
    return _parse_snapshot(raw)


def get_ptm_snapshot_history(store: PtmStoreBase, limit: int = 7) -> list[PtmSnapshot]:
    """Up to ``limit`` stored snapshots, newest first; unreadable rows are skipped."""
    snapshots = []
    for raw in store.fetch_snapshot_history(limit):
        snapshot = _parse_snapshot(raw)
        if snapshot is not None:
            snapshots.append(snapshot)
    return snapshots


def generate_ptm_summary(store: PtmStoreBase, date: str | None = None) -> PtmSummary:
    """Just the headline fields of today's snapshot."""
    snapshot = generate_ptm_snapshot(store, date)
    return PtmSummary(
        date=snapshot.date,
        total_notes=snapshot.total_notes,
        cluster_count=snapshot.cluster_count,
        dominant_cluster=snapshot.dominant_cluster,
        mode=snapshot.mode,
        season=snapshot.season,
        top_drift_cluster=(
            snapshot.top_clusters_by_drift[0].cluster_id if snapshot.top_clusters_by_drift else None
        ),
    )
