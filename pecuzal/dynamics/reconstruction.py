"""
Phase Space Reconstruction

Embedding constructors for building delay-coordinate trajectories from
one or several scalar time series, column by column.

References:
    Takens, F. (1981). "Detecting strange attractors in turbulence"
"""

from typing import Sequence

import numpy as np


def normalize(x: np.ndarray) -> np.ndarray:
    """
    Z-score every column (zero mean, unit standard deviation, ddof=1).

    Returns a new array; the input is left untouched.
    """
    x = np.asarray(x, dtype=float)
    std = x.std(axis=0, ddof=1)

    if np.any(std == 0) or not np.all(np.isfinite(std)):
        raise ValueError("Cannot normalize a constant (zero-variance) time series")

    return (x - x.mean(axis=0)) / std


def embed(x: np.ndarray, tau: int = 0) -> np.ndarray:
    """
    One-dimensional delay embedding of a scalar series at lag tau.

    Returns
    -------
    Y : array, shape (n_samples - tau, 1)
    """
    x = np.asarray(x, dtype=float).reshape(-1)
    if tau < 0 or tau >= len(x):
        raise ValueError(f"Lag {tau} outside series of length {len(x)}")
    return x[tau:].reshape(-1, 1).copy()


def extend_embedding(Y: np.ndarray, x: np.ndarray, tau: int) -> np.ndarray:
    """
    Append `x` lagged by `tau` as a new trajectory column.

    Row i of the result is (Y[i], x[i + tau]); the trajectory is shortened
    to min(len(Y), len(x) - tau) rows. `Y` is not modified.

    Examples
    --------
    >>> Y = embed(np.arange(10.0))
    >>> extend_embedding(Y, np.arange(10.0), 3)[:2]
    array([[0., 3.],
           [1., 4.]])
    """
    Y = np.asarray(Y, dtype=float)
    if Y.ndim == 1:
        Y = Y.reshape(-1, 1)
    x = np.asarray(x, dtype=float).reshape(-1)

    if tau < 0:
        raise ValueError(f"Lag must be non-negative, got {tau}")

    n = min(len(Y), len(x) - tau)
    if n <= 0:
        raise ValueError(f"Time series too short for tau={tau}")

    return np.column_stack([Y[:n], x[tau:tau + n]])


def assemble_trajectory(
    x: np.ndarray,
    delays: Sequence[int],
    channels: Sequence[int],
) -> np.ndarray:
    """
    Replay a sequence of (delay, channel) columns against a series matrix.

    The first column is the 1-D embedding of channels[0] at delays[0];
    every further column extends the trajectory in order.

    Parameters
    ----------
    x : array, shape (n_samples, n_channels)
    delays, channels : sequences of equal length >= 1

    Returns
    -------
    Y : array, shape (n_samples - max(delays), len(delays))
    """
    x = np.asarray(x, dtype=float)
    if x.ndim == 1:
        x = x.reshape(-1, 1)

    if len(delays) != len(channels) or len(delays) == 0:
        raise ValueError("delays and channels must be non-empty and of equal length")

    Y = embed(x[:, channels[0]], int(delays[0]))
    for tau, channel in zip(delays[1:], channels[1:]):
        Y = extend_embedding(Y, x[:, channel], int(tau))
    return Y
