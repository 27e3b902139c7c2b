"""Core configuration, constants and telemetry."""
