"""Meta state: snapshot, cluster identities and interactions in one view.

The lite variant is a compact summary with coaching text; the full variant
also carries every identity, every interaction and the role of each cluster.
"""

import logging
from concurrent.futures import ThreadPoolExecutor

from .clustering.identity import get_all_cluster_identities
from .dynamics.engine import today_utc
from .influence.aggregator import compute_cluster_influence_flow
from .models import (
    ClusterFlow,
    ClusterIdentity,
    ClusterInteraction,
    ClusterPersonaSummary,
    CoachAdvice,
    MetaStateFull,
    MetaStateLite,
    PtmSnapshot,
)
from .rules import Rule, first_match
from .snapshot.writer import generate_ptm_snapshot
from .storage import PtmStoreBase

logger = logging.getLogger(__name__)

TOP_CLUSTERS = 5


# --- roles ------------------------------------------------------------------

def _has_outgoing(ctx) -> bool:
    identity, interactions = ctx
    return any(i.source == identity.cluster_id for i in interactions)


def _has_incoming(ctx) -> bool:
    identity, interactions = ctx
    return any(i.target == identity.cluster_id for i in interactions)


ROLE_RULES = (
    Rule("driver", lambda c: c[0].drift.contribution > 0.3, "driver"),
    Rule(
        "stabilizer",
        lambda c: c[0].cohesion > 0.8 and c[0].drift.contribution < 0.1 and c[0].influence.hubness > 0.5,
        "stabilizer",
    ),
    Rule("bridge", lambda c: _has_outgoing(c) and _has_incoming(c), "bridge"),
)


def determine_cluster_role(identity: ClusterIdentity, interactions: list[ClusterInteraction]) -> str:
    """driver, stabilizer, bridge or isolated; exactly one for any input."""
    return first_match(ROLE_RULES, (identity, interactions), default="isolated")


def classify_interaction(weight: float) -> str:
    if weight > 1.0:
        return "strong"
    if weight > 0.3:
        return "moderate"
    return "weak"


def to_interactions(flows: list[ClusterFlow]) -> list[ClusterInteraction]:
    return [
        ClusterInteraction(source=f.source, target=f.target, weight=f.weight, type=classify_interaction(f.weight))
        for f in flows
    ]


def summarize_cluster(identity: ClusterIdentity, role: str) -> ClusterPersonaSummary:
    return ClusterPersonaSummary(
        cluster_id=identity.cluster_id,
        keywords=identity.keywords,
        note_count=identity.note_count,
        cohesion=identity.cohesion,
        role=role,
        drift_contribution=identity.drift.contribution,
        drift_trend=identity.drift.trend,
        hubness=identity.influence.hubness,
        authority=identity.influence.authority,
    )


# --- coach advice -------------------------------------------------------------

def _topic(cluster: ClusterPersonaSummary) -> str:
    return ", ".join(cluster.keywords[:2]) or f"cluster {cluster.cluster_id}"


def _focused_today(ctx) -> str:
    _, top = ctx
    if top:
        return (
            f"Focused on cluster {top[0].cluster_id} ({_topic(top[0])}). "
            "Try linking related notes together."
        )
    return "Consolidation phase. Look back over existing notes and find connections."


TODAY_RULES = (
    Rule(
        "overheat",
        lambda c: c[0].state == "overheat",
        "Thinking is overheating. Take time to stop and organize, and keep new input light.",
    ),
    Rule(
        "stagnation",
        lambda c: c[0].state == "stagnation",
        "Thinking has stalled. Try a new theme; approaching from a different angle works well.",
    ),
    Rule(
        "broad_exploration",
        lambda c: c[0].mode == "exploration" and c[0].season == "broad_search",
        "Exploration is spreading out. Pick one theme that caught your interest and dig deeper.",
    ),
    Rule(
        "deep_consolidation",
        lambda c: c[0].mode == "consolidation" and c[0].season == "deep_focus",
        _focused_today,
    ),
    Rule("rising", lambda c: c[0].trend == "rising", "A good growth rhythm. Keep it going."),
)


def _driver_tomorrow(ctx) -> str:
    _, top = ctx
    drivers = [c for c in top if c.role == "driver"]
    if drivers:
        return f"The {_topic(drivers[0])} cluster is active. Keep building on this area tomorrow."
    return "Tomorrow, time spent organizing your thinking will pay off."


TOMORROW_RULES = (
    Rule(
        "steep",
        lambda c: c[0].trend == "rising" and c[0].growth_angle > 15,
        "The growth angle is steep. Slow down a little tomorrow and make time to organize.",
    ),
    Rule(
        "falling",
        lambda c: c[0].trend == "falling",
        "Growth is settling down. Bring in some new stimulus tomorrow.",
    ),
)

BALANCE_RULES = (
    Rule(
        "driver_heavy",
        lambda c: c["drivers"] > 2 and c["stabilizers"] == 0,
        "Growth is lopsided. Nurturing a stable, foundational cluster matters too.",
    ),
    Rule(
        "stabilizer_heavy",
        lambda c: c["stabilizers"] > 2 and c["drivers"] == 0,
        "Things are stable, but open up a new area of growth.",
    ),
)

WARNINGS = {
    "overheat": "Overheat: cut back on intake and organize what you already know.",
    "stagnation": "Stagnation: new stimulus is needed. Try a different genre.",
}


def generate_coach_advice(snapshot: PtmSnapshot, top_clusters: list[ClusterPersonaSummary]) -> CoachAdvice:
    ctx = (snapshot, top_clusters)
    counts = {
        "drivers": sum(1 for c in top_clusters if c.role == "driver"),
        "stabilizers": sum(1 for c in top_clusters if c.role == "stabilizer"),
    }
    return CoachAdvice(
        today=first_match(
            TODAY_RULES, ctx,
            default="Growth continues steadily. Write another good note today.",
        ),
        tomorrow=first_match(TOMORROW_RULES, ctx, default=_driver_tomorrow),
        balance=first_match(BALANCE_RULES, counts, default="Growth and stability are in balance."),
        warning=WARNINGS.get(snapshot.state),
    )


# --- meta state -----------------------------------------------------------------

def _gather(store: PtmStoreBase, date: str, max_workers: int):
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        f_snapshot = pool.submit(generate_ptm_snapshot, store, date)
        f_identities = pool.submit(get_all_cluster_identities, store)
        f_flow = pool.submit(compute_cluster_influence_flow, store)
        return f_snapshot.result(), f_identities.result(), f_flow.result()


def _rank(summaries: list[ClusterPersonaSummary]) -> list[ClusterPersonaSummary]:
    return sorted(summaries, key=lambda c: (-c.drift_contribution, c.cluster_id))[:TOP_CLUSTERS]


def generate_meta_state_lite(store: PtmStoreBase, date: str | None = None, max_workers: int = 3) -> MetaStateLite:
    date = date or today_utc()
    snapshot, identities, flows = _gather(store, date, max_workers)
    interactions = to_interactions(flows)

    summaries = [summarize_cluster(i, determine_cluster_role(i, interactions)) for i in identities]
    top_clusters = _rank(summaries)

    return MetaStateLite(
        date=date,
        mode=snapshot.mode,
        season=snapshot.season,
        state=snapshot.state,
        growth_angle=snapshot.growth_angle,
        trend=snapshot.trend,
        dominant_cluster=snapshot.dominant_cluster,
        top_clusters=top_clusters,
        coach=generate_coach_advice(snapshot, top_clusters),
    )


def generate_meta_state_full(store: PtmStoreBase, date: str | None = None, max_workers: int = 3) -> MetaStateFull:
    date = date or today_utc()
    snapshot, identities, flows = _gather(store, date, max_workers)
    interactions = to_interactions(flows)

    role_map = {i.cluster_id: determine_cluster_role(i, interactions) for i in identities}
    summaries = [summarize_cluster(i, role_map[i.cluster_id]) for i in identities]
    top_clusters = _rank(summaries)
    logger.debug(f"Meta state for {date}: {len(identities)} clusters, {len(interactions)} interactions")

    return MetaStateFull(
        date=date,
        snapshot=snapshot,
        clusters=identities,
        interactions=interactions,
        role_map=role_map,
        top_clusters=top_clusters,
        coach=generate_coach_advice(snapshot, top_clusters),
    )
