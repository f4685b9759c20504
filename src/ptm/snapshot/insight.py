"""Plain-language interpretation of a snapshot.

Each of the four texts comes from its own decision table over the snapshot;
the tables are independent of each other.
"""

from ..models import PtmInsight, PtmInterpretation, PtmSnapshot
from ..rules import Rule, first_match
from ..storage import PtmStoreBase
from .writer import generate_ptm_snapshot

MODE_LABELS = {
    "exploration": "exploration",
    "consolidation": "consolidation",
    "refactoring": "restructuring",
    "rest": "rest",
}

SEASON_LABELS = {
    "deep_focus": "focused",
    "broad_search": "wide-ranging",
    "structuring": "structuring",
    "balanced": "balanced",
}


GROWTH_RULES = (
    Rule(
        "overheat",
        lambda s: s.state == "overheat",
        lambda s: f"Thinking is overheating (drift: {s.drift_today:.2f}). Take time to stop and organize.",
    ),
    Rule(
        "stagnation",
        lambda s: s.state == "stagnation",
        lambda s: f"Thinking has stalled (drift: {s.drift_today:.2f}). Try taking in new information.",
    ),
    Rule(
        "rising",
        lambda s: s.trend == "rising",
        lambda s: (
            f"Growth is accelerating (angle: {s.growth_angle:.1f}°). "
            f"A {SEASON_LABELS.get(s.season, s.season)} stretch in the "
            f"{MODE_LABELS.get(s.mode, s.mode)} phase."
        ),
    ),
    Rule(
        "falling",
        lambda s: s.trend == "falling",
        "Growth is settling down. This is the phase where learning takes hold.",
    ),
)


def _steady_growth(s: PtmSnapshot) -> str:
    return f"A steady growth rhythm (EMA: {s.drift_ema:.3f})."


INFLUENCE_RULES = (
    Rule("no_edges", lambda s: s.total_influence_edges == 0, "No influence relationships have formed yet."),
    Rule(
        "hub",
        lambda s: bool(s.top_influencers) and s.top_influencers[0].out_weight > 1.5,
        lambda s: f"{s.total_influence_edges} influence relationships; a particular note plays a central role.",
    ),
)


def _broad_influence(s: PtmSnapshot) -> str:
    return f"{s.total_influence_edges} influence relationships; knowledge is broadly connected."


STABILITY_RULES = (
    Rule(
        "cohesive",
        lambda s: s.avg_cohesion > 0.8,
        lambda s: f"Clusters are highly cohesive ({s.avg_cohesion:.2f}); thinking is clearly organized.",
    ),
    Rule(
        "loose",
        lambda s: s.avg_cohesion < 0.7,
        lambda s: (
            f"Cluster cohesion is somewhat low ({s.avg_cohesion:.2f}). "
            "Reviewing how notes are categorized may help."
        ),
    ),
)


def _stable_clusters(s: PtmSnapshot) -> str:
    return f"Stable across {s.cluster_count} clusters (average cohesion: {s.avg_cohesion:.2f})."


def _focused_recommendation(s: PtmSnapshot) -> str:
    if s.top_clusters_by_drift:
        return f"Focused on cluster {s.top_clusters_by_drift[0].cluster_id}. Try linking related notes together."
    return "Consolidation phase. Look back over existing notes and find connections."


RECOMMENDATION_RULES = (
    Rule(
        "overheat",
        lambda s: s.state == "overheat",
        "Spend today reviewing and organizing. Keep new input light.",
    ),
    Rule(
        "stagnation",
        lambda s: s.state == "stagnation",
        "Try a new theme. Approaching from a different angle works well.",
    ),
    Rule(
        "broad_exploration",
        lambda s: s.mode == "exploration" and s.season == "broad_search",
        "Exploration is spreading out. Pick one theme that caught your interest and dig deeper.",
    ),
    Rule(
        "deep_consolidation",
        lambda s: s.mode == "consolidation" and s.season == "deep_focus",
        _focused_recommendation,
    ),
    Rule("rising", lambda s: s.trend == "rising", "A good growth rhythm. Keep it going."),
)

STEADY_RECOMMENDATION = "Growth continues steadily. Write another good note today."


def interpret_snapshot(snapshot: PtmSnapshot) -> PtmInterpretation:
    return PtmInterpretation(
        growth_summary=first_match(GROWTH_RULES, snapshot, default=_steady_growth),
        influence_summary=first_match(INFLUENCE_RULES, snapshot, default=_broad_influence),
        stability_summary=first_match(STABILITY_RULES, snapshot, default=_stable_clusters),
        recommendation=first_match(RECOMMENDATION_RULES, snapshot, default=STEADY_RECOMMENDATION),
    )


def generate_ptm_insight(store: PtmStoreBase, date: str | None = None) -> PtmInsight:
    """Generate (without capturing) a snapshot and interpret it."""
    snapshot = generate_ptm_snapshot(store, date)
    return PtmInsight(date=snapshot.date, snapshot=snapshot, interpretation=interpret_snapshot(snapshot))
