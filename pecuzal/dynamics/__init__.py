"""
PECUZAL Dynamics

Building blocks of the embedding search:
- Distances and Theiler-windowed neighbour search
- Delay-coordinate reconstruction
- Continuity statistic (Pecora)
- L-statistic (Uzal)
- Continuity peak extraction and stopping criteria

The cycle orchestration lives in pecuzal.engine.
"""

from .distances import (
    all_distances,
    all_neighbors,
    fiducial_sample,
    resolve_norm,
)
from .reconstruction import (
    assemble_trajectory,
    embed,
    extend_embedding,
    normalize,
)
from .continuity import (
    binomial_thresholds,
    continuity_statistic,
)
from .uzal import uzal_cost
from .peaks import continuity_peaks
from .stopping import should_stop

__all__ = [
    # Distances
    'all_distances',
    'all_neighbors',
    'fiducial_sample',
    'resolve_norm',
    # Reconstruction
    'assemble_trajectory',
    'embed',
    'extend_embedding',
    'normalize',
    # Continuity
    'binomial_thresholds',
    'continuity_statistic',
    # L-statistic
    'uzal_cost',
    # Cycle control
    'continuity_peaks',
    'should_stop',
]
