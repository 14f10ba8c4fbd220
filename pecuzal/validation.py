"""
Input Validation
================

Everything the embedding search consumes is checked here, before any
computation starts. Invalid input raises EmbeddingInputError (a ValueError);
nothing is coerced silently beyond the documented shape conventions:

    - a 1-D series becomes a single column
    - an array with fewer rows than columns is read as channels x samples
      and transposed (DataFrames are always samples x channels)
    - a pandas DataFrame keeps its column labels as channel names
    - candidate delays may be given as a 1-D or 2-D array (flattened in order)

Usage:
    from pecuzal.validation import validate_series, validate_delays

    x, names = validate_series(data)
    delays = validate_delays(None)      # default 0..50
"""

from typing import Any, List, Optional, Tuple

import numpy as np
import pandas as pd


DEFAULT_DELAYS = np.arange(51)


class EmbeddingInputError(ValueError):
    """Raised when series, delays or options cannot be embedded."""
    pass


def validate_series(series: Any) -> Tuple[np.ndarray, List[str]]:
    """
    Check and shape the input series matrix.

    Returns
    -------
    x : float array, shape (n_samples, n_channels)
        A copy of the data, never a view on the caller's array
    names : list of str
        Channel names (DataFrame/Series labels, else x0, x1, ...)
    """
    names: Optional[List[str]] = None

    if isinstance(series, pd.DataFrame):
        names = [str(c) for c in series.columns]
        values = series.to_numpy()
    elif isinstance(series, pd.Series):
        names = [str(series.name) if series.name is not None else 'x0']
        values = series.to_numpy()
    else:
        values = series

    try:
        x = np.array(values, dtype=float)
    except (TypeError, ValueError) as e:
        raise EmbeddingInputError(f"Time series must be numeric: {e}") from e

    if x.ndim == 1:
        x = x.reshape(-1, 1)
    elif x.ndim == 2 and x.shape[0] < x.shape[1] and names is None:
        # channels x samples
        x = x.T
    elif x.ndim != 2:
        raise EmbeddingInputError(
            f"Time series must be one- or two-dimensional, got {x.ndim} dimensions"
        )

    if x.shape[0] < 2 or x.shape[1] == 0:
        raise EmbeddingInputError(
            f"Time series is empty or too short: shape {x.shape} (samples x channels)"
        )

    if not np.all(np.isfinite(x)):
        raise EmbeddingInputError("Time series contains NaN or infinite values")

    std = x.std(axis=0, ddof=1)
    constant = np.flatnonzero(std == 0)
    if len(constant):
        raise EmbeddingInputError(f"Constant time series cannot be embedded: channels {constant.tolist()}")

    if names is None:
        names = [f"x{i}" for i in range(x.shape[1])]

    return x, names


def validate_delays(delays: Any = None) -> np.ndarray:
    """
    Check the candidate delay set.

    Returns
    -------
    delays : int array, shape (n_delays,)
        Non-negative, distinct, in the order given. Default 0..50.
    """
    if delays is None:
        return DEFAULT_DELAYS.copy()

    d = np.asarray(delays)
    if d.dtype.kind not in 'iuf':
        raise EmbeddingInputError(f"Candidate delays must be numeric, got dtype {d.dtype}")
    if d.ndim not in (1, 2):
        raise EmbeddingInputError(
            f"Candidate delays must be one- or two-dimensional, got {d.ndim} dimensions"
        )

    d = d.reshape(-1)
    if d.size == 0:
        raise EmbeddingInputError("Candidate delay set is empty")
    if not np.all(np.isfinite(d)) or np.any(d != np.round(d)):
        raise EmbeddingInputError("Candidate delays must be integers")
    if np.any(d < 0):
        raise EmbeddingInputError("Candidate delays must be non-negative")

    d = d.astype(int)
    if len(np.unique(d)) != len(d):
        raise EmbeddingInputError("Candidate delays must be distinct")

    return d


def validate_length(n_samples: int, delays: np.ndarray, config) -> None:
    """
    Check the series is long enough for every statistic of the search.

    The working trajectory loses up to max(delays) rows to committed columns
    and the continuity statistic trims another max(delays), so that many rows
    must still hold a Theiler-windowed neighbourhood and a full horizon.
    """
    usable = n_samples - 2 * int(np.max(delays))
    needed = max(
        config.max_neighbors + 2 * config.theiler + 1,
        config.k + 2 * config.theiler + 1 + config.horizon,
    )

    if usable <= needed:
        raise EmbeddingInputError(
            f"Time series of {n_samples} samples too short for delays up to "
            f"{int(np.max(delays))}: need more than {needed + 2 * int(np.max(delays))} samples"
        )
