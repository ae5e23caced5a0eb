"""Infrastructure layers: telemetry, caching, health and the execution runtime."""
