"""Personal Thinking Model: growth, drift and influence analytics over notes."""

__version__ = "0.1.0"
