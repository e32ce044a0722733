"""AI Event Planner: session, role resolution and navigation gating."""

__version__ = "0.1.0"
