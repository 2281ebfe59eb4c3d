"""Input validation utilities."""

from typing import Any, Optional, Tuple

import numpy as np

from ..exceptions import DimensionError, InvalidInputError


def as_vector(value: Any, size: int, name: str) -> np.ndarray:
    """
    Convert ``value`` to a float vector of length ``size``.

    Scalars are broadcast. Column/row matrices are flattened. The
    result never shares memory with ``value``.

    Raises:
        DimensionError: if the length does not match
        InvalidInputError: if the data contains NaN
    """
    if np.isscalar(value):
        vec = np.full(size, float(value))
    else:
        vec = np.array(value, dtype=np.float64).ravel()
    if vec.shape != (size,):
        raise DimensionError(f"{name} must have {size} elements, got {vec.size}")
    if np.any(np.isnan(vec)):
        raise InvalidInputError(f"{name} contains NaN values")
    return vec


def as_matrix(value: Any, shape: Tuple[int, int], name: str) -> np.ndarray:
    """
    Convert ``value`` to a float matrix of the given shape.

    Always returns a new array; callers may keep it without aliasing
    the argument.

    Raises:
        DimensionError: if the shape does not match
        InvalidInputError: if the data contains NaN
    """
    mat = np.array(value, dtype=np.float64)
    if mat.ndim == 1 and shape[1] == 1:
        mat = mat.reshape(-1, 1)
    elif mat.ndim == 1 and shape[0] == 1:
        mat = mat.reshape(1, -1)
    if mat.shape != tuple(shape):
        raise DimensionError(f"{name} must be {tuple(shape)}, got {mat.shape}")
    if np.any(np.isnan(mat)):
        raise InvalidInputError(f"{name} contains NaN values")
    return mat


def as_horizon_matrix(
    value: Optional[Any],
    rows: int,
    cols: int,
    name: str,
    fill: float = 0.0,
) -> np.ndarray:
    """
    Per-step matrix with one column per horizon step.

    A 1-D vector (or scalar) is replicated into every column; a 2-D
    matrix must already be ``(rows, cols)``. ``None`` yields ``fill``.
    """
    if value is None:
        return np.full((rows, cols), fill)
    arr = np.asarray(value, dtype=np.float64)
    if arr.ndim <= 1:
        vec = as_vector(arr if arr.ndim else float(arr), rows, name)
        return np.tile(vec.reshape(-1, 1), (1, cols))
    return as_matrix(arr, (rows, cols), name)
