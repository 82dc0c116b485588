"""loadscope — page-load telemetry, scoring, attribution and session history."""

__version__ = "0.1.0"
