"""Refresh-token rotation use cases (orchestrator, audit recorder, maintenance)."""
