"""
Continuity Statistic

Pecora's averaged epsilon-star: for each candidate channel and delay, how
well the delta-neighbourhoods of the current trajectory map onto
epsilon-neighbourhoods of the candidate coordinate. Large values mean the
candidate coordinate carries information the trajectory does not yet have;
local maxima over the delay axis are the delay candidates of a cycle.

References:
    Pecora, L. M., Moniz, L., Nichols, J., & Carroll, T. L. (2007).
    "A unified approach to attractor reconstruction"
"""

from typing import Optional, Sequence, Tuple

import numpy as np
from scipy.spatial import KDTree
from scipy.stats import binom

from .distances import all_distances, all_neighbors, fiducial_sample, resolve_norm


MIN_NEIGHBORHOOD = 8


def binomial_thresholds(
    max_neighbors: int,
    alpha: float = 0.05,
    p: float = 0.5,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Points required inside the epsilon set for every delta-neighbourhood size.

    For k neighbours, l_k is the smallest count with P(Binom(k, p) >= l_k) < alpha,
    i.e. the continuity null hypothesis is rejected at level alpha.

    Returns
    -------
    ks : int array
        Neighbourhood sizes MIN_NEIGHBORHOOD..max_neighbors
    ls : int array
        Required counts, 1 <= l_k <= k
    """
    ks = np.arange(MIN_NEIGHBORHOOD, max_neighbors + 1)
    ls = binom.ppf(1 - alpha, ks, p).astype(int) + 1
    return ks, np.clip(ls, 1, ks)


def continuity_statistic(
    Y: np.ndarray,
    x: np.ndarray,
    delays: Sequence[int],
    theiler: int = 1,
    alpha: float = 0.05,
    p: float = 0.5,
    max_neighbors: int = 13,
    sample_fraction: float = 1.0,
    norm: str = 'euclidean',
    rng: Optional[np.random.Generator] = None,
) -> np.ndarray:
    """
    Averaged epsilon-star for every (candidate delay, candidate channel).

    Parameters
    ----------
    Y : array, shape (n, D)
        Current (working) trajectory
    x : array, shape (N, M)
        Normalized candidate channels, N >= n
    delays : sequence of int
        Candidate delays
    theiler : int
        Theiler window for the neighbour search
    alpha, p : float
        Significance level and binomial parameter
    max_neighbors : int
        Largest delta-neighbourhood considered (at least 8)
    sample_fraction : float
        Fraction of trajectory points used as fiducial points
    norm : str
        Norm for the neighbour search
    rng : Generator, optional
        Sampling source, only used when sample_fraction < 1

    Returns
    -------
    eps : array, shape (len(delays), M)
    """
    Y = np.asarray(Y, dtype=float)
    if Y.ndim == 1:
        Y = Y.reshape(-1, 1)
    x = np.asarray(x, dtype=float)
    if x.ndim == 1:
        x = x.reshape(-1, 1)
    delays = np.asarray(delays, dtype=int).reshape(-1)
    norm = resolve_norm(norm)

    if max_neighbors < MIN_NEIGHBORHOOD:
        raise ValueError(f"max_neighbors must be at least {MIN_NEIGHBORHOOD}")

    # every row must stay valid for the largest candidate delay
    n = len(Y) - int(delays.max())
    if n <= 0:
        raise ValueError(
            f"Trajectory of {len(Y)} points too short for delays up to {delays.max()}"
        )
    vspace = Y[:n]

    ns = fiducial_sample(n, sample_fraction, rng)
    tree = KDTree(vspace)
    neighbors, _ = all_neighbors(tree, vspace[ns], ns, max_neighbors, theiler, norm)

    ks, ls = binomial_thresholds(max_neighbors, alpha, p)

    eps = np.empty((len(delays), x.shape[1]))
    for channel in range(x.shape[1]):
        s = x[:, channel]
        comps = np.empty((len(ns), max_neighbors, len(delays)))
        for row, (i, nn) in enumerate(zip(ns, neighbors)):
            # one column per candidate delay
            _, comps[row] = all_distances(
                s[i + delays], s[nn[:, None] + delays], norm, return_components=True
            )
        eps[:, channel] = _average_eps_star(comps, ks, ls)

    return eps


def _average_eps_star(comps: np.ndarray, ks: np.ndarray, ls: np.ndarray) -> np.ndarray:
    """Mean over fiducial points of the minimal epsilon over neighbourhood sizes."""
    eps_star = np.full((comps.shape[0], comps.shape[2]), np.inf)
    for k, l in zip(ks, ls):
        kth = np.partition(comps[:, :k, :], l - 1, axis=1)[:, l - 1, :]
        eps_star = np.minimum(eps_star, kth)
    return eps_star.mean(axis=0)
