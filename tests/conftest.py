"""Shared fixtures: a throwaway sqlite store and helpers to seed it."""

import tempfile
import time
from pathlib import Path

import pytest

from ptm.models import ClusterDynamicsRecord, InfluenceEdge, SemanticChangeEvent
from ptm.storage.sqlite import SqlitePtmStore

DAY = 86400


@pytest.fixture
def store():
    with tempfile.TemporaryDirectory() as tmpdir:
        yield SqlitePtmStore(str(Path(tmpdir) / "ptm.db"))


def add_note(store, note_id, vector, cluster_id=None, title="", category=None):
    store.upsert_note(note_id, title=title, category=category, cluster_id=cluster_id)
    store.set_embedding(note_id, vector)


def add_change(store, note_id, semantic_diff, days_ago=0.0, cluster_id=None):
    created_at = int(time.time() - days_ago * DAY)
    store.insert_semantic_change(SemanticChangeEvent(note_id, created_at, semantic_diff, cluster_id))


def add_edge(store, source, target, weight):
    store.insert_influence_edge(InfluenceEdge(source, target, weight))


def add_dynamics(store, cluster_id, date, centroid=None, cohesion=0.8, stability_score=None, note_count=1):
    store.insert_cluster_dynamics(ClusterDynamicsRecord(
        cluster_id=cluster_id,
        date=date,
        centroid=centroid,
        cohesion=cohesion,
        stability_score=stability_score,
        note_count=note_count,
    ))
