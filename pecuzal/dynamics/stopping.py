"""
Break criteria for the embedding cycle loop.
"""

import logging
from typing import Optional, Sequence, Tuple

import numpy as np

logger = logging.getLogger(__name__)


NO_PEAKS = 'no_peaks'
FIRST_CYCLE_NO_GAIN = 'first_cycle_no_gain'
MINIMUM_REACHED = 'minimum_reached'
MAX_CYCLES = 'max_cycles'

STOP_MESSAGES = {
    NO_PEAKS: "no continuity peaks left in any channel. Valid embedding NOT achieved.",
    FIRST_CYCLE_NO_GAIN: "increasing L-value in the first embedding cycle. Valid embedding NOT achieved.",
    MINIMUM_REACHED: "minimum L-value reached. VALID embedding achieved.",
    MAX_CYCLES: "hitting max cycle number. Valid embedding NOT achieved.",
}


def should_stop(
    delays: Sequence[int],
    L: Sequence[float],
    max_cycles: int,
    cycle: int,
    L_init: float,
) -> Tuple[bool, Optional[str]]:
    """
    Decide whether the embedding search must stop after `cycle`.

    Parameters
    ----------
    delays : sequence of int
        Delays committed so far, including the candidate of this cycle
    L : sequence of float
        L-statistic of every cycle so far (NaN = no candidate found)
    max_cycles : int
        Cycle budget
    cycle : int
        Index of the cycle just evaluated (1-based)
    L_init : float
        Best L-statistic of the plain 1-D embeddings

    Returns
    -------
    (stop, reason) : reason is None when the search continues
    """
    reason = None
    current = L[cycle - 1]

    if np.isnan(current):
        reason = NO_PEAKS
    elif cycle == 1 and current > L_init:
        reason = FIRST_CYCLE_NO_GAIN
    elif cycle > 1 and current > L[cycle - 2]:
        reason = MINIMUM_REACHED
    elif cycle >= max_cycles:
        reason = MAX_CYCLES

    if reason is None:
        return False, None

    logger.info(f"Algorithm stopped after cycle {cycle} due to {STOP_MESSAGES[reason]}")
    logger.debug(f"Committed delays at stop: {list(delays)}")
    return True, reason
