"""Warning texts and the phase-aware extended warning table."""

from ..models import DriftWarning, ExtendedWarning

INSUFFICIENT_DATA = "Not enough data yet. Keep recording notes."
OVERHEAT_RECOMMENDATION = (
    "Intellectual activity is running hot. Pause to organize and integrate what you have learned."
)
STAGNATION_RECOMMENDATION = (
    "Thinking activity has stalled. Seek out new information or approach a topic from a different angle."
)
STABLE_RECOMMENDATION = "A steady growth rhythm. Keep it up."

MODE_ADVICE = {
    "exploration": "Exploration phase. Writing notes on new themes will accelerate growth.",
    "consolidation": "Consolidation phase. Revisit existing notes and look for connections.",
    "growth": "Growth phase. Use the momentum and keep digging deeper.",
    "rest": "Rest phase. Take a short break while what you learned settles in.",
}

# (base state, phase) -> (extended type, recommendation, insight).
# Phase "neutral" and an unknown phase share the None column.
EXTENDED_WARNINGS: dict[tuple[str, str | None], tuple[str, str, str]] = {
    ("overheat", "creation"): (
        "creative_overheat",
        "Creative activity is surging. Ride the momentum, but build in some rest.",
        "Lots of new ideas and discoveries: a creative overheat. Record results as you go so you don't burn out.",
    ),
    ("overheat", "destruction"): (
        "destructive_overheat",
        "Your thinking is over-converging. Step away and bring in a fresh perspective.",
        "Pruning and reorganizing existing knowledge has gone too far: a draining overheat. Increase your input.",
    ),
    ("overheat", None): (
        "neutral_overheat",
        "Activity is high. Check your direction and decide whether you are creating or integrating.",
        "High activity without a settled direction. Clarifying the goal will help.",
    ),
    ("stagnation", "creation"): (
        "exploratory_stagnation",
        "You want to explore but the pace has dropped. Start with small steps.",
        "Curiosity is there but action is lagging. Lower the bar and start small.",
    ),
    ("stagnation", "destruction"): (
        "deepening_stagnation",
        "Organizing existing knowledge has stalled. Look for touch points with other fields.",
        "Stalled during a converging, organizing phase. New stimulus will revive it.",
    ),
    ("stagnation", None): (
        "rest_stagnation",
        "A rest period continues. Ease back in with whatever interests you.",
        "Thinking activity is resting. This may be a natural part of the cycle.",
    ),
}

STABLE_INSIGHT = "Maintaining a steady growth rhythm."


def detect_extended_warning(warning: DriftWarning, phase: str | None) -> ExtendedWarning:
    """Qualify an overheat/stagnation warning by the day's creation/destruction phase."""
    if warning.state == "stable":
        return ExtendedWarning(
            base_state="stable",
            extended_type="stable",
            phase=phase,
            severity="none",
            is_creative_overheat=False,
            recommendation=warning.recommendation,
            insight=STABLE_INSIGHT,
        )

    column = phase if phase in ("creation", "destruction") else None
    extended_type, recommendation, insight = EXTENDED_WARNINGS[(warning.state, column)]
    return ExtendedWarning(
        base_state=warning.state,
        extended_type=extended_type,
        phase=phase,
        severity=warning.severity,
        is_creative_overheat=extended_type == "creative_overheat",
        recommendation=recommendation,
        insight=insight,
    )
