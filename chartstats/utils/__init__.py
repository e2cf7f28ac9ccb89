"""Shared numeric, field geometry and serialization helpers."""
