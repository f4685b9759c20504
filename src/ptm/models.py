"""Data models used throughout PTM."""

from dataclasses import asdict, dataclass, field
from typing import Any, Literal

Trend = Literal["rising", "falling", "flat"]
DriftState = Literal["stable", "overheat", "stagnation"]
Severity = Literal["none", "low", "mid", "high"]
Phase = Literal["creation", "destruction", "neutral"]
ThinkingMode = Literal["exploration", "consolidation", "refactoring", "rest"]
ThinkingSeason = Literal["deep_focus", "broad_search", "structuring", "balanced"]
ClusterRole = Literal["driver", "stabilizer", "bridge", "isolated"]


# ============================================================
# Store rows
# ============================================================

@dataclass
class NoteEmbedding:
    """A note's current embedding and cluster assignment."""
    note_id: str
    vector: Any  # float32 bytes or a float sequence, see vectors.decode_embedding
    cluster_id: int | None = None


@dataclass
class ClusterMember:
    """A note assigned to a cluster, joined with its embedding."""
    note_id: str
    title: str
    category: str | None
    embedding: Any


@dataclass
class ClusterDynamicsRecord:
    """One row of the daily clustering job's output."""
    cluster_id: int
    date: str
    centroid: Any
    cohesion: float
    stability_score: float | None
    note_count: int


@dataclass
class SemanticChangeEvent:
    """A meaningfully changed note revision."""
    note_id: str
    created_at: int  # unix seconds, UTC
    semantic_diff: float | None
    new_cluster_id: int | None = None


@dataclass
class InfluenceEdge:
    source_note_id: str
    target_note_id: str
    weight: float


# ============================================================
# Core metrics
# ============================================================

@dataclass
class ClusterWeight:
    cluster_id: int
    note_count: int
    weight: float


@dataclass
class ClusterCentroid:
    cluster_id: int
    centroid: list[float]
    note_count: int


@dataclass
class CoreMetrics:
    total_notes: int
    cluster_count: int
    global_centroid: list[float] | None
    cluster_weights: list[ClusterWeight]
    dominant_cluster: int | None


# ============================================================
# Drift
# ============================================================

@dataclass
class DailyDrift:
    date: str
    drift: float
    ema: float


@dataclass
class GrowthAngle:
    angle: float  # radians
    angle_degrees: float
    trend: Trend
    velocity: float


@dataclass
class DriftForecast:
    forecast_3d: float
    forecast_7d: float
    confidence: Literal["high", "medium", "low"]


@dataclass
class DriftWarning:
    state: DriftState
    severity: Severity
    recommendation: str


@dataclass
class ExtendedWarning:
    base_state: DriftState
    extended_type: str
    phase: Phase | None
    severity: Severity
    is_creative_overheat: bool
    recommendation: str
    insight: str


@dataclass
class DriftInsight:
    angle: GrowthAngle
    forecast: DriftForecast
    warning: DriftWarning
    extended_warning: ExtendedWarning
    mode: str
    advice: str
    today_drift: float
    today_ema: float


@dataclass
class DriftMetrics:
    drift_today: float
    drift_ema: float
    growth_angle: float  # degrees
    trend: Trend
    state: DriftState


# ============================================================
# Influence
# ============================================================

@dataclass
class InfluencerSummary:
    note_id: str
    out_weight: float
    edge_count: int


@dataclass
class InfluencedSummary:
    note_id: str
    in_weight: float
    edge_count: int


@dataclass
class ClusterInfluence:
    cluster_id: int
    given: float
    received: float


@dataclass
class InfluenceMetrics:
    total_edges: int
    avg_weight: float
    top_influencers: list[InfluencerSummary]
    top_influenced: list[InfluencedSummary]
    cluster_influence: list[ClusterInfluence]
    primary_hub_note: str | None


@dataclass
class ClusterFlow:
    """Summed influence weight from one cluster to another."""
    source: int
    target: int
    weight: float


# ============================================================
# Dynamics and stability
# ============================================================

@dataclass
class ClusterDriftContribution:
    cluster_id: int
    drift_sum: float
    ratio: float


@dataclass
class DriftPropagation:
    source_cluster: int
    target_cluster: int
    effective_influence: float


@dataclass
class DynamicsMetrics:
    cluster_drift_contributions: list[ClusterDriftContribution]
    top_drift_cluster: int | None
    drift_propagation: list[DriftPropagation]
    mode: ThinkingMode
    season: ThinkingSeason


@dataclass
class ClusterStability:
    cluster_id: int
    cohesion: float
    stability_score: float | None
    note_count: int


@dataclass
class StabilityMetrics:
    avg_cohesion: float
    avg_stability: float | None
    most_stable_cluster: int | None
    most_unstable_cluster: int | None
    clusters: list[ClusterStability] = field(default_factory=list)


# ============================================================
# Snapshot
# ============================================================

@dataclass
class PtmSnapshot:
    """Flat daily rollup of every PTM metric."""
    date: str

    total_notes: int
    cluster_count: int
    dominant_cluster: int | None
    cluster_weights: list[ClusterWeight]

    drift_today: float
    drift_ema: float
    growth_angle: float
    trend: Trend
    state: DriftState

    total_influence_edges: int
    primary_hub_note: str | None
    top_influencers: list[InfluencerSummary]
    top_clusters_by_drift: list[ClusterDriftContribution]

    mode: ThinkingMode
    season: ThinkingSeason

    avg_cohesion: float
    avg_stability: float | None

    captured_at: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PtmSnapshot":
        data = dict(data)
        data["cluster_weights"] = [ClusterWeight(**w) for w in data.get("cluster_weights", [])]
        data["top_influencers"] = [InfluencerSummary(**i) for i in data.get("top_influencers", [])]
        data["top_clusters_by_drift"] = [
            ClusterDriftContribution(**c) for c in data.get("top_clusters_by_drift", [])
        ]
        return cls(**data)


@dataclass
class PtmInterpretation:
    growth_summary: str
    influence_summary: str
    stability_summary: str
    recommendation: str


@dataclass
class PtmInsight:
    date: str
    snapshot: PtmSnapshot
    interpretation: PtmInterpretation


@dataclass
class PtmSummary:
    date: str
    total_notes: int
    cluster_count: int
    dominant_cluster: int | None
    mode: ThinkingMode
    season: ThinkingSeason
    top_drift_cluster: int | None


# ============================================================
# Cluster identity
# ============================================================

@dataclass
class RepresentativeNote:
    id: str
    title: str
    category: str | None
    cosine: float


@dataclass
class ClusterDriftSummary:
    contribution: float
    trend: Trend
    recent_drift_sum: float


@dataclass
class ClusterInfluenceSummary:
    out_degree: float
    in_degree: float
    hubness: float
    authority: float


@dataclass
class ClusterIdentity:
    cluster_id: int
    keywords: list[str]
    representatives: list[RepresentativeNote]
    drift: ClusterDriftSummary
    influence: ClusterInfluenceSummary
    cohesion: float
    note_count: int
    name: str | None = None
    summary: str | None = None


# ============================================================
# Meta state
# ============================================================

@dataclass
class ClusterInteraction:
    source: int
    target: int
    weight: float
    type: Literal["strong", "moderate", "weak"]


@dataclass
class ClusterPersonaSummary:
    cluster_id: int
    keywords: list[str]
    note_count: int
    cohesion: float
    role: ClusterRole
    drift_contribution: float
    drift_trend: Trend
    hubness: float
    authority: float


@dataclass
class CoachAdvice:
    today: str
    tomorrow: str
    balance: str
    warning: str | None


@dataclass
class MetaStateLite:
    date: str
    mode: ThinkingMode
    season: ThinkingSeason
    state: DriftState
    growth_angle: float
    trend: Trend
    dominant_cluster: int | None
    top_clusters: list[ClusterPersonaSummary]
    coach: CoachAdvice


@dataclass
class MetaStateFull:
    date: str
    snapshot: PtmSnapshot
    clusters: list[ClusterIdentity]
    interactions: list[ClusterInteraction]
    role_map: dict[int, ClusterRole]
    top_clusters: list[ClusterPersonaSummary]
    coach: CoachAdvice


def to_record(obj: Any) -> Any:
    """Convert a result dataclass (or list of them) into plain JSON-ready data."""
    if isinstance(obj, list):
        return [to_record(o) for o in obj]
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    return obj
