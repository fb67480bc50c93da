"""Shared service-layer building blocks: errors, ports, policies and the base service."""
