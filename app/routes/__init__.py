"""HTTP routes: image transform, health/status and metrics."""
