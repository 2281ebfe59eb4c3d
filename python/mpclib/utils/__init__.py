"""Argument conversion helpers."""

from .validation import as_horizon_matrix, as_matrix, as_vector

__all__ = ["as_vector", "as_matrix", "as_horizon_matrix"]
