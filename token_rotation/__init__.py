"""Refresh-token rotation and abuse-detection core."""

from token_rotation.factory import build_rotation_service

__all__ = ["build_rotation_service"]
