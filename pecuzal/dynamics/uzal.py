"""
Uzal's L-Statistic

Cost function for a reconstructed trajectory: the average conditional
variance of the future of small neighbourhoods, normalized by the
neighbourhood size, over a horizon of `horizon` samples. Lower values mean
neighbours stay neighbours, i.e. a better unfolded attractor.

    L = log10( sqrt(<sigma^2>) * alpha_k )

    sigma^2(n) = E^2(n) / eps^2(n)
    alpha_k^2  = 1 / < eps^-2 >

References:
    Uzal, L. C., Grinblat, G. L., & Verdes, P. F. (2011).
    "Optimal reconstruction of dynamical systems: A noise amplification
    approach"
"""

from typing import Optional

import numpy as np
from scipy.spatial import KDTree

from .distances import all_neighbors, fiducial_sample


def uzal_cost(
    Y: np.ndarray,
    theiler: int = 1,
    k: int = 3,
    horizon: int = 4,
    sample_fraction: float = 1.0,
    rng: Optional[np.random.Generator] = None,
) -> float:
    """
    L-statistic of a trajectory.

    Parameters
    ----------
    Y : array, shape (n, D)
        Trajectory (a 1-D array is treated as a single column)
    theiler : int
        Theiler window for the neighbour search
    k : int
        Neighbours per neighbourhood
    horizon : int
        Maximal prediction horizon (in samples)
    sample_fraction : float
        Fraction of points used as fiducial points
    rng : Generator, optional
        Sampling source, only used when sample_fraction < 1

    Returns
    -------
    L : float
        NaN when every neighbourhood is degenerate (zero size)

    Examples
    --------
    >>> t = np.arange(2000)
    >>> x = np.sin(t / 16.0)
    >>> Y1 = x.reshape(-1, 1)
    >>> Y2 = np.column_stack([x[:-25], x[25:]])
    >>> uzal_cost(Y2) < uzal_cost(Y1)
    True
    """
    Y = np.asarray(Y, dtype=float)
    if Y.ndim == 1:
        Y = Y.reshape(-1, 1)

    NN = len(Y) - horizon
    if NN <= k + 2 * theiler + 1:
        raise ValueError(
            f"Trajectory of {len(Y)} points too short for k={k}, "
            f"theiler={theiler}, horizon={horizon}"
        )

    ns = fiducial_sample(NN, sample_fraction, rng)
    tree = KDTree(Y[:NN])
    neighbors, _ = all_neighbors(tree, Y[ns], ns, k, theiler)

    # fiducial point + its k neighbours
    hood = np.column_stack([ns, neighbors])

    # mean squared pairwise distance inside each neighbourhood
    pts = Y[hood]
    centered = pts - pts.mean(axis=1, keepdims=True)
    eps2 = 2.0 / k * np.sum(centered ** 2, axis=(1, 2))

    E2 = np.zeros(len(ns))
    for T in range(1, horizon + 1):
        future = Y[hood + T]
        spread = future - future.mean(axis=1, keepdims=True)
        E2 += np.mean(np.sum(spread ** 2, axis=2), axis=1)
    E2 /= horizon

    valid = eps2 > 0
    if not np.any(valid):
        return np.nan
    eps2 = eps2[valid]
    E2 = E2[valid]

    sigma2 = E2 / eps2
    alpha2 = 1.0 / np.mean(1.0 / eps2)

    return float(np.log10(np.sqrt(np.mean(sigma2)) * np.sqrt(alpha2)))
