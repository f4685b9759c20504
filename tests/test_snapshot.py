"""Tests for snapshot generation, persistence and interpretation."""

import dataclasses
import json

from ptm.models import PtmSnapshot
from ptm.snapshot.insight import generate_ptm_insight, interpret_snapshot
from ptm.snapshot.writer import (
    capture_ptm_snapshot,
    generate_ptm_snapshot,
    generate_ptm_summary,
    get_latest_ptm_snapshot,
    get_ptm_snapshot_history,
)

from conftest import add_change, add_dynamics, add_edge, add_note


def _seed(store):
    add_note(store, "a", [1.0, 0.0], cluster_id=1, title="Alpha")
    add_note(store, "b", [0.9, 0.1], cluster_id=1, title="Beta")
    add_note(store, "c", [0.0, 1.0], cluster_id=2, title="Gamma")
    add_change(store, "a", 0.3333, days_ago=2, cluster_id=1)
    add_change(store, "b", 0.25, days_ago=1, cluster_id=1)
    add_change(store, "c", 0.12345, days_ago=0, cluster_id=2)
    add_edge(store, "a", "c", 0.7)
    add_dynamics(store, 1, "2024-06-01", centroid=[1.0, 0.0], cohesion=0.9, stability_score=0.1, note_count=2)
    add_dynamics(store, 2, "2024-06-01", centroid=[0.0, 1.0], cohesion=0.6, stability_score=0.4, note_count=1)


def _numeric_fields(snapshot):
    return {k: v for k, v in snapshot.to_dict().items() if isinstance(v, (int, float)) and not isinstance(v, bool)}


def test_generate_snapshot(store):
    _seed(store)

    snapshot = generate_ptm_snapshot(store, "2024-06-01")

    assert snapshot.date == "2024-06-01"
    assert snapshot.total_notes == 3
    assert snapshot.dominant_cluster == 1
    assert snapshot.total_influence_edges == 1
    assert snapshot.primary_hub_note == "a"
    assert snapshot.avg_cohesion == 0.75
    assert snapshot.avg_stability == 0.25
    assert len(snapshot.top_influencers) <= 3
    assert len(snapshot.top_clusters_by_drift) <= 3
    assert get_latest_ptm_snapshot(store) is None


def test_capture_then_latest_round_trip(store):
    _seed(store)

    captured = capture_ptm_snapshot(store, "2024-06-01")
    latest = get_latest_ptm_snapshot(store)

    assert latest == captured
    for key, value in _numeric_fields(captured).items():
        assert round(getattr(latest, key), 4) == round(value, 4)


def test_capture_replaces_same_date(store):
    _seed(store)
    capture_ptm_snapshot(store, "2024-06-01")
    add_note(store, "d", [0.0, 1.0], cluster_id=2)
    capture_ptm_snapshot(store, "2024-06-01")

    history = get_ptm_snapshot_history(store)

    assert len(history) == 1
    assert history[0].total_notes == 4


def test_history_newest_first_and_limit(store):
    for date in ["2024-06-01", "2024-06-03", "2024-06-02"]:
        capture_ptm_snapshot(store, date)

    history = get_ptm_snapshot_history(store, limit=2)

    assert [s.date for s in history] == ["2024-06-03", "2024-06-02"]


def test_history_skips_unreadable_rows(store):
    capture_ptm_snapshot(store, "2024-06-01")
    store.replace_snapshot("2024-06-02", "{not json", "[]", 0.0, 0)

    history = get_ptm_snapshot_history(store)

    assert [s.date for s in history] == ["2024-06-01"]


def test_snapshot_json_round_trip():
    snapshot = PtmSnapshot(
        date="2024-06-01", total_notes=1, cluster_count=0, dominant_cluster=None, cluster_weights=[],
        drift_today=0.1235, drift_ema=0.0371, growth_angle=-3.1416, trend="falling", state="stable",
        total_influence_edges=0, primary_hub_note=None, top_influencers=[], top_clusters_by_drift=[],
        mode="rest", season="balanced", avg_cohesion=0.0, avg_stability=None,
        captured_at="2024-06-01T00:00:00+00:00",
    )
    assert PtmSnapshot.from_dict(json.loads(json.dumps(snapshot.to_dict()))) == snapshot


def test_summary(store):
    _seed(store)

    summary = generate_ptm_summary(store, "2024-06-01")

    assert summary.total_notes == 3
    assert summary.cluster_count == 2
    assert summary.top_drift_cluster == 1


def test_insight_on_empty_store(store):
    insight = generate_ptm_insight(store, "2024-06-01")
    text = insight.interpretation

    assert insight.snapshot.mode == "rest"
    assert text.influence_summary == "No influence relationships have formed yet."
    assert text.growth_summary.startswith("A steady growth rhythm")
    assert text.recommendation == "Growth continues steadily. Write another good note today."


def test_interpretation_rules():
    base = PtmSnapshot(
        date="2024-06-01", total_notes=5, cluster_count=2, dominant_cluster=1, cluster_weights=[],
        drift_today=0.5, drift_ema=0.4, growth_angle=12.5, trend="rising", state="stable",
        total_influence_edges=3, primary_hub_note="a", top_influencers=[], top_clusters_by_drift=[],
        mode="consolidation", season="deep_focus", avg_cohesion=0.75, avg_stability=0.2,
        captured_at="2024-06-01T00:00:00+00:00",
    )

    text = interpret_snapshot(base)
    assert "12.5°" in text.growth_summary
    assert text.influence_summary.startswith("3 influence relationships; knowledge")
    assert text.stability_summary.startswith("Stable across 2 clusters")
    assert text.recommendation.startswith("Consolidation phase")

    overheated = interpret_snapshot(dataclasses.replace(base, state="overheat", avg_cohesion=0.85))
    assert overheated.growth_summary.startswith("Thinking is overheating (drift: 0.50)")
    assert overheated.stability_summary.startswith("Clusters are highly cohesive (0.85)")
    assert overheated.recommendation.startswith("Spend today reviewing")
