"""
Peak extraction on continuity curves.

A delay is a candidate when the continuity statistic has a local maximum
there; a flat-topped maximum is located at its first index. The first
candidate delay has no left neighbour: it counts as a peak whenever its
value is positive and the curve drops below it after it (directly or at
the end of a plateau), so the smallest delay (usually 0) can always be
chosen.
"""

from typing import List, Tuple

import numpy as np
from scipy.signal import find_peaks


def continuity_peaks(curve: np.ndarray, min_distance: int = 2) -> List[Tuple[int, float]]:
    """
    Local maxima of a continuity curve over the candidate delays.

    Peaks closer than or at `min_distance` samples to a taller peak are
    dropped (the earlier one wins a height tie).

    Parameters
    ----------
    curve : array, shape (n_delays,)
        Averaged epsilon-star per candidate delay
    min_distance : int
        Minimum separation between two kept peaks

    Returns
    -------
    peaks : list of (delay_index, height), in increasing index order.
        Empty when the curve has no peak.

    Examples
    --------
    >>> continuity_peaks([0.5, 0.2, 0.4, 0.1, 0.1, 0.9, 0.3])
    [(0, 0.5), (5, 0.9)]
    """
    curve = np.asarray(curve, dtype=float).reshape(-1)
    if len(curve) < 2:
        return []

    clean = np.where(np.isfinite(curve), curve, -np.inf)

    # flat-topped maxima are reported at their first index
    _, properties = find_peaks(clean, plateau_size=1)
    candidates = [int(i) for i in properties['left_edges']]

    if clean[0] > 0:
        changed = np.flatnonzero(clean != clean[0])
        if len(changed) and clean[changed[0]] < clean[0]:
            candidates.insert(0, 0)

    if not candidates:
        return []

    # tallest first, earlier index first among equal heights
    order = sorted(candidates, key=lambda i: (-clean[i], i))
    kept: List[int] = []
    for i in order:
        if all(abs(i - j) > min_distance for j in kept):
            kept.append(i)

    return [(int(i), float(curve[i])) for i in sorted(kept)]
