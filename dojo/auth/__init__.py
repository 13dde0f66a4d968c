"""Admin authentication for operator-facing routes."""
