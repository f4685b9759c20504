"""Dynamics engine: how drift and influence combine across clusters.

Answers which clusters produced the recent growth, where that growth spread
through the influence graph, and what thinking mode and season follow.
"""

import logging
from datetime import date as date_cls
from datetime import datetime, timezone

from ..drift.core import calc_growth_angle, detect_warning, get_daily_drift_data, window_start
from ..influence.aggregator import compute_cluster_influence_flow
from ..models import (
    ClusterDriftContribution,
    ClusterStability,
    DriftMetrics,
    DriftPropagation,
    DynamicsMetrics,
    StabilityMetrics,
)
from ..rules import Rule, first_match
from ..storage import PtmStoreBase
from ..vectors import round4

logger = logging.getLogger(__name__)

MIN_EFFECTIVE_INFLUENCE = 0.01


def today_utc() -> str:
    return datetime.now(timezone.utc).date().isoformat()


def compute_drift_metrics(store: PtmStoreBase, range_days: int = 30) -> DriftMetrics:
    """Compact projection of the drift engine's last day."""
    data = get_daily_drift_data(store, range_days)
    angle = calc_growth_angle(data)
    warning = detect_warning(data)
    today = data[-1] if data else None

    return DriftMetrics(
        drift_today=today.drift if today else 0.0,
        drift_ema=today.ema if today else 0.0,
        growth_angle=angle.angle_degrees,
        trend=angle.trend,
        state=warning.state,
    )


def compute_cluster_drift_contribution(store: PtmStoreBase, range_days: int = 7) -> list[ClusterDriftContribution]:
    """Share of the window's drift produced by each (new) cluster, largest first."""
    rows = store.fetch_cluster_drift_sums(window_start(range_days))
    if not rows:
        return []

    total = sum(drift_sum or 0.0 for _, drift_sum in rows)
    contributions = [
        ClusterDriftContribution(
            cluster_id=cluster_id,
            drift_sum=round4(drift_sum or 0.0),
            ratio=round4((drift_sum or 0.0) / total) if total > 0 else 0.0,
        )
        for cluster_id, drift_sum in rows
    ]
    contributions.sort(key=lambda c: (-c.ratio, c.cluster_id))
    return contributions


def compute_drift_propagation(
    store: PtmStoreBase,
    range_days: int = 7,
    contributions: list[ClusterDriftContribution] | None = None,
) -> list[DriftPropagation]:
    """Spread of drift along cluster influence flow.

    effective influence = source cluster's drift ratio x flow weight; entries
    below 0.01 are dropped.
    """
    if contributions is None:
        contributions = compute_cluster_drift_contribution(store, range_days)
    ratios = {c.cluster_id: c.ratio for c in contributions}

    propagation = []
    for flow in compute_cluster_influence_flow(store):
        source_ratio = ratios.get(flow.source, 0.0)
        if source_ratio == 0:
            continue
        effective = round4(source_ratio * flow.weight)
        if effective >= MIN_EFFECTIVE_INFLUENCE:
            propagation.append(DriftPropagation(
                source_cluster=flow.source,
                target_cluster=flow.target,
                effective_influence=effective,
            ))

    propagation.sort(key=lambda p: -p.effective_influence)
    return propagation


def _mode_context(drift: DriftMetrics, contributions, propagation) -> dict:
    internal = sum(1 for p in propagation if p.source_cluster == p.target_cluster)
    return {
        "drift": drift,
        "sources": len({p.source_cluster for p in propagation}),
        "targets": len({p.target_cluster for p in propagation}),
        "top_ratio": contributions[0].ratio if contributions else 0.0,
        "internal": internal,
        "edges": len(propagation),
    }


THINKING_MODE_RULES = (
    Rule("unbalanced", lambda c: c["drift"].state in ("overheat", "stagnation"), "rest"),
    Rule("quiet", lambda c: c["drift"].drift_today < 0.05, "rest"),
    # few sources feeding many targets
    Rule("hub_broadcast", lambda c: c["sources"] <= 2 and c["targets"] >= 4, "consolidation"),
    Rule(
        "mutual_spread",
        lambda c: c["sources"] >= 3 and c["targets"] >= 3 and c["drift"].trend == "rising",
        "exploration",
    ),
    Rule("wide_spread", lambda c: c["targets"] >= 3 and c["drift"].trend == "rising", "exploration"),
    Rule("concentrated", lambda c: c["top_ratio"] > 0.6, "consolidation"),
    Rule("inward", lambda c: c["internal"] > c["edges"] * 0.5, "consolidation"),
    Rule(
        "restructuring",
        lambda c: c["drift"].drift_today > 0.3 and c["drift"].trend == "falling",
        "refactoring",
    ),
)


def detect_thinking_mode(
    drift_metrics: DriftMetrics,
    contributions: list[ClusterDriftContribution],
    propagation: list[DriftPropagation],
) -> str:
    """exploration / consolidation / refactoring / rest."""
    ctx = _mode_context(drift_metrics, contributions, propagation)
    return first_match(THINKING_MODE_RULES, ctx, default="exploration")


def detect_thinking_season(contributions: list[ClusterDriftContribution], cluster_count: int) -> str:
    """deep_focus / structuring / broad_search / balanced.

    Active clusters (ratio > 0.1) are judged both as an absolute count and
    as a share of ``cluster_count``.
    """
    if not contributions:
        return "balanced"

    if contributions[0].ratio > 0.5:
        return "deep_focus"

    if len(contributions) >= 2 and contributions[0].ratio + contributions[1].ratio > 0.7:
        return "structuring"

    active = sum(1 for c in contributions if c.ratio > 0.1)
    active_ratio = active / cluster_count if cluster_count > 0 else 0.0
    if active_ratio >= 0.5 or active >= 3:
        return "broad_search"

    return "balanced"


def compute_stability_metrics(store: PtmStoreBase, date: str | date_cls | None = None) -> StabilityMetrics:
    """Cohesion/stability averages across the clusters recorded on ``date``.

    A lower stability score means less change, so the most stable cluster
    has the minimum score. Equal scores resolve to the lowest cluster id.
    """
    if date is None:
        date = today_utc()
    elif isinstance(date, date_cls):
        date = date.isoformat()

    rows = store.fetch_cluster_dynamics_by_date(date)
    if not rows:
        return StabilityMetrics(
            avg_cohesion=0.0,
            avg_stability=None,
            most_stable_cluster=None,
            most_unstable_cluster=None,
            clusters=[],
        )

    clusters = [
        ClusterStability(
            cluster_id=r.cluster_id,
            cohesion=r.cohesion,
            stability_score=r.stability_score,
            note_count=r.note_count,
        )
        for r in rows
    ]
    avg_cohesion = round4(sum(r.cohesion for r in rows) / len(rows))

    scored = [r for r in rows if r.stability_score is not None]
    if scored:
        avg_stability = round4(sum(r.stability_score for r in scored) / len(scored))
        most_stable = min(scored, key=lambda r: (r.stability_score, r.cluster_id)).cluster_id
        most_unstable = max(scored, key=lambda r: (r.stability_score, -r.cluster_id)).cluster_id
    else:
        avg_stability = most_stable = most_unstable = None

    return StabilityMetrics(
        avg_cohesion=avg_cohesion,
        avg_stability=avg_stability,
        most_stable_cluster=most_stable,
        most_unstable_cluster=most_unstable,
        clusters=clusters,
    )


def compute_dynamics_metrics(store: PtmStoreBase, range_days: int = 7) -> DynamicsMetrics:
    """Contributions, propagation, mode and season over one window."""
    drift_metrics = compute_drift_metrics(store, range_days)
    contributions = compute_cluster_drift_contribution(store, range_days)
    propagation = compute_drift_propagation(store, range_days, contributions=contributions)

    mode = detect_thinking_mode(drift_metrics, contributions, propagation)
    season = detect_thinking_season(contributions, len(contributions))
    logger.debug(f"Dynamics over {range_days}d: mode={mode}, season={season}")

    return DynamicsMetrics(
        cluster_drift_contributions=contributions,
        top_drift_cluster=contributions[0].cluster_id if contributions else None,
        drift_propagation=propagation,
        mode=mode,
        season=season,
    )
