"""Tests for cluster identity and keyword extraction."""

from ptm.clustering.identity import (
    format_identity_for_prompt,
    get_all_cluster_identities,
    get_cluster_drift_summary,
    get_cluster_identity,
    get_cluster_influence_summary,
    get_representative_notes,
)
from ptm.clustering.keywords import STOP_WORDS, extract_keywords, tokenize_title

from conftest import add_change, add_dynamics, add_edge, add_note


def test_extract_keywords_typescript_titles():
    keywords = extract_keywords(["TypeScriptの基礎", "TypeScriptでReact開発", "TypeScript入門ガイド"])

    assert keywords[0] == "typescript"
    assert all(k not in STOP_WORDS for k in keywords)
    assert all(len(k) >= 2 for k in keywords)


def test_extract_keywords_ties_keep_first_seen_order():
    keywords = extract_keywords(["Python and Rust", "Rust notes", "Python basics"], max_keywords=3)
    assert keywords == ["python", "rust", "notes"]


def test_tokenize_strips_punctuation_digits_and_stop_words():
    tokens = tokenize_title("【2024年】Slack まとめ: the design (v2) 設計レビュー")
    assert "slack" not in tokens
    assert "the" not in tokens
    assert "まとめ" not in tokens
    assert "design" in tokens
    assert "設計" in tokens
    assert "レビュー" in tokens
    assert not any(ch.isdigit() for t in tokens for ch in t)


def test_tokenize_drops_overlong_tokens():
    assert tokenize_title("a" * 25 + " ok") == ["ok"]


def _seed_cluster(store):
    add_dynamics(store, 1, "2024-05-01", centroid=[0.0, 1.0], cohesion=0.5, note_count=1)
    add_dynamics(store, 1, "2024-05-02", centroid=[1.0, 0.0], cohesion=0.85, note_count=3)
    add_note(store, "a", [1.0, 0.0], cluster_id=1, title="Graph databases")
    add_note(store, "b", [1.0, 1.0], cluster_id=1, title="Graph queries")
    add_note(store, "c", [0.0, 1.0], cluster_id=1, title="Cooking notes")
    add_note(store, "d", [1.0, 0.0], cluster_id=2, title="Elsewhere")


def test_representative_notes(store):
    _seed_cluster(store)

    reps = get_representative_notes(store, 1, top=2)

    assert [r.id for r in reps] == ["a", "b"]
    assert reps[0].cosine == 1.0
    assert reps[1].cosine == 0.7071
    assert reps[0].title == "Graph databases"


def test_representative_notes_without_dynamics(store):
    add_note(store, "a", [1.0, 0.0], cluster_id=9)
    assert get_representative_notes(store, 9) == []


def test_cluster_drift_summary(store):
    add_change(store, "a", 1.0, days_ago=1, cluster_id=1)
    add_change(store, "b", 0.2, days_ago=5, cluster_id=1)
    add_change(store, "c", 1.0, days_ago=1, cluster_id=2)

    summary = get_cluster_drift_summary(store, 1, range_days=7)

    assert summary.contribution == 0.5455
    assert summary.recent_drift_sum == 1.2
    assert summary.trend == "rising"


def test_cluster_drift_summary_falling_and_empty(store):
    add_change(store, "a", 0.1, days_ago=1, cluster_id=1)
    add_change(store, "b", 1.0, days_ago=5, cluster_id=1)

    assert get_cluster_drift_summary(store, 1).trend == "falling"

    empty = get_cluster_drift_summary(store, 42)
    assert empty.contribution == 0.0
    assert empty.trend == "flat"


def test_cluster_influence_summary(store):
    _seed_cluster(store)
    add_edge(store, "a", "d", 3.0)
    add_edge(store, "d", "b", 1.0)

    summary = get_cluster_influence_summary(store, 1)

    assert summary.out_degree == 3.0
    assert summary.in_degree == 1.0
    assert summary.hubness == 0.75
    assert summary.authority == 0.25

    lonely = get_cluster_influence_summary(store, 77)
    assert lonely.hubness == 0.0
    assert lonely.authority == 0.0


def test_cluster_identity(store):
    _seed_cluster(store)

    identity = get_cluster_identity(store, 1)

    assert identity.cluster_id == 1
    assert identity.cohesion == 0.85
    assert identity.note_count == 3
    assert identity.keywords[0] == "graph"
    assert len(identity.representatives) == 3
    assert identity.name is None


def test_cluster_identity_missing(store):
    assert get_cluster_identity(store, 123) is None


def test_all_cluster_identities(store):
    _seed_cluster(store)
    add_dynamics(store, 2, "2024-05-02", centroid=[1.0, 0.0], cohesion=0.9, note_count=1)

    identities = get_all_cluster_identities(store, max_workers=2)

    assert [i.cluster_id for i in identities] == [1, 2]


def test_format_identity_for_prompt(store):
    _seed_cluster(store)
    payload = format_identity_for_prompt(get_cluster_identity(store, 1))

    assert payload["task"] == "cluster_identity"
    assert payload["cluster_id"] == 1
    data = payload["identity_data"]
    assert set(data) == {"keywords", "representatives", "drift", "influence", "cohesion", "note_count"}
    assert set(data["representatives"][0]) == {"title", "cosine"}
