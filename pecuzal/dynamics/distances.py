"""
Point-to-Set Distances and Neighbour Search

Distances from one fiducial point to a set of points, without building the
full pairwise distance matrix, plus the Theiler-windowed nearest-neighbour
query shared by the continuity statistic and the L-statistic.

Norms:
    - euclidean: sqrt(sum of squared component differences)
    - maximum:   max of absolute component differences (Chebyshev)
"""

import warnings
from typing import Optional, Tuple, Union

import numpy as np
from scipy.spatial import KDTree


# Minkowski order used by scipy for each supported norm
NORMS = {
    'euclidean': 2,
    'maximum': np.inf,
}

_ALIASES = {
    'euc': 'euclidean',
    'max': 'maximum',
    'chebyshev': 'maximum',
}

DEFAULT_NORM = 'euclidean'


def resolve_norm(norm: str) -> str:
    """
    Map a norm selector to its canonical name.

    Unknown selectors do not abort the run: a UserWarning is emitted and
    the default (euclidean) norm is used instead.
    """
    if isinstance(norm, str):
        key = norm.lower()
        key = _ALIASES.get(key, key)
        if key in NORMS:
            return key

    warnings.warn(
        f"Unknown norm {norm!r}, expected one of {sorted(NORMS) + sorted(_ALIASES)}. "
        f"Falling back to '{DEFAULT_NORM}'.",
        UserWarning,
        stacklevel=2,
    )
    return DEFAULT_NORM


def all_distances(
    point: np.ndarray,
    points: np.ndarray,
    norm: str = DEFAULT_NORM,
    return_components: bool = False,
) -> Union[np.ndarray, Tuple[np.ndarray, np.ndarray]]:
    """
    Distances from a single reference point to every row of `points`.

    Parameters
    ----------
    point : array, shape (M,) or (1, M)
        Reference (fiducial) point
    points : array, shape (P, M)
        Points to measure against
    norm : str
        'euclidean' or 'maximum' (aliases: 'euc', 'max', 'chebyshev')
    return_components : bool
        Also return the component-wise absolute differences

    Returns
    -------
    distances : array, shape (P,)
    components : array, shape (P, M)
        Only when return_components is True

    Examples
    --------
    >>> d = all_distances([0.0, 0.0], [[3.0, 4.0], [1.0, -2.0]])
    >>> d.tolist()
    [5.0, 2.23606797749979]
    """
    norm = resolve_norm(norm)

    point = np.asarray(point, dtype=float).reshape(-1)
    points = np.asarray(points, dtype=float)
    if points.ndim == 1:
        points = points.reshape(-1, 1) if point.size == 1 else points.reshape(1, -1)

    if points.shape[1] != point.size:
        raise ValueError(
            f"Dimension mismatch: point has {point.size} components, "
            f"points have {points.shape[1]}"
        )

    components = np.abs(points - point)

    if norm == 'maximum':
        distances = components.max(axis=1)
    else:
        distances = np.sqrt(np.sum(components ** 2, axis=1))

    if return_components:
        return distances, components
    return distances


def fiducial_sample(
    n: int,
    sample_fraction: float = 1.0,
    rng: Optional[np.random.Generator] = None,
) -> np.ndarray:
    """
    Indices of the fiducial points a statistic is averaged over.

    With sample_fraction == 1 every point is used and `rng` is not touched;
    otherwise floor(sample_fraction * n) distinct indices are drawn from it
    and returned in increasing order.
    """
    if sample_fraction >= 1.0:
        return np.arange(n)

    size = max(1, int(np.floor(sample_fraction * n)))
    if rng is None:
        rng = np.random.default_rng()
    return np.sort(rng.choice(n, size=size, replace=False))


def all_neighbors(
    tree: KDTree,
    points: np.ndarray,
    indices: np.ndarray,
    k: int,
    theiler: int,
    norm: str = DEFAULT_NORM,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    k nearest neighbours of each query point outside its Theiler window.

    Neighbours j of the query point with index i are only accepted when
    |j - i| > theiler, which also excludes the point itself.

    Parameters
    ----------
    tree : KDTree
        Tree built on the trajectory the indices refer to
    points : array, shape (n, D)
        Query points
    indices : array, shape (n,)
        Trajectory index of each query point
    k : int
        Number of neighbours to return
    theiler : int
        Temporal exclusion radius
    norm : str
        Norm selector

    Returns
    -------
    neighbors : int array, shape (n, k)
        Neighbour indices sorted by increasing distance
    distances : array, shape (n, k)
    """
    p = NORMS[resolve_norm(norm)]
    indices = np.asarray(indices)

    k_query = k + 2 * theiler + 1
    if k_query > tree.n:
        raise ValueError(
            f"Trajectory too short: {tree.n} points cannot provide {k} neighbours "
            f"outside a Theiler window of {theiler}"
        )

    dists, idx = tree.query(points, k=k_query, p=p)
    dists = np.atleast_2d(dists)
    idx = np.atleast_2d(idx)

    valid = np.abs(idx - indices[:, None]) > theiler
    # at most 2*theiler+1 entries fall inside the window, so k always remain
    order = np.argsort(~valid, axis=1, kind='stable')[:, :k]

    rows = np.arange(len(idx))[:, None]
    return idx[rows, order], dists[rows, order]
