"""
PECUZAL Embedding Engine

Main orchestration of the embedding-cycle search. Every cycle:
    - continuity statistic for all candidate channels and delays
    - local maxima of each continuity curve become delay candidates
    - each candidate is scored by the L-statistic of the extended trajectory
    - the best candidate over all channels is committed
until the stopping predicate fires. The final trajectory replays the
committed (delay, channel) columns on the original data.

References:
    Kraemer, K. H., Datseris, G., Kurths, J., Kiss, I. Z., Ocampo-Espindola,
    J. L., & Marwan, N. (2021). "A unified and automated approach to
    attractor reconstruction"
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from joblib import Parallel, delayed

from pecuzal.config import EmbeddingConfig, load_embedding_config
from pecuzal.validation import (
    EmbeddingInputError,
    validate_delays,
    validate_length,
    validate_series,
)
from pecuzal.dynamics.continuity import continuity_statistic
from pecuzal.dynamics.peaks import continuity_peaks
from pecuzal.dynamics.reconstruction import assemble_trajectory, embed, extend_embedding, normalize
from pecuzal.dynamics.stopping import MINIMUM_REACHED, STOP_MESSAGES, should_stop
from pecuzal.dynamics.uzal import uzal_cost

logger = logging.getLogger(__name__)


# =============================================================================
# SCORING
# =============================================================================

def cost_only(L: float, height: float) -> float:
    """Univariate score: the L-statistic alone."""
    return L


def peak_weighted(L: float, height: float) -> float:
    """Multivariate score: L-statistic times continuity peak height."""
    return L * height


def scoring_strategy(n_channels: int) -> Callable[[float, float], float]:
    """Score used for every selection of a run, fixed by the channel count."""
    return peak_weighted if n_channels > 1 else cost_only


@dataclass
class Candidate:
    """A (delay, channel) proposal for the next trajectory column."""
    delay: int
    channel: int
    L: float
    score: float


def select_minimum(candidates: Sequence[Optional[Candidate]]) -> Optional[int]:
    """
    Position of the lowest-score candidate.

    Missing (None) and NaN-scored candidates never win; among equal scores
    the earliest position wins. Returns None when nothing is eligible.
    """
    best = None
    for i, candidate in enumerate(candidates):
        if candidate is None or not np.isfinite(candidate.score):
            continue
        if best is None or candidate.score < candidates[best].score:
            best = i
    return best


# =============================================================================
# STATE AND RESULT
# =============================================================================

@dataclass
class CycleHistory:
    """
    Append-only log of one run.

    `delays`/`channels` hold every committed column in commit order;
    `L`/`continuity` hold one record per attempted cycle. Nothing is ever
    rewritten: the result keeps the first D columns.
    """
    delays: List[int] = field(default_factory=list)
    channels: List[int] = field(default_factory=list)
    L: List[float] = field(default_factory=list)
    continuity: List[np.ndarray] = field(default_factory=list)

    def commit(self, delay: int, channel: int):
        self.delays.append(int(delay))
        self.channels.append(int(channel))

    def record(self, L: float, snapshot: np.ndarray):
        self.L.append(float(L))
        self.continuity.append(snapshot)

    @property
    def n_cycles(self) -> int:
        return len(self.L)

    def columns(self, n: int) -> Tuple[List[int], List[int]]:
        """First n committed (delays, channels)."""
        return self.delays[:n], self.channels[:n]


@dataclass
class EmbeddingResult:
    """Outcome of an embedding run."""
    trajectory: np.ndarray
    delays: List[int]
    channels: List[int]
    L: List[float]
    continuity: List[np.ndarray]
    L_init: float
    L_channels: List[float]
    stop_reason: str
    channel_names: List[str]
    config: EmbeddingConfig

    @property
    def dimension(self) -> int:
        return self.trajectory.shape[1]

    @property
    def valid(self) -> bool:
        """True when the search ended on an L-statistic minimum."""
        return self.stop_reason == MINIMUM_REACHED

    @property
    def column_labels(self) -> List[str]:
        """Unique column names such as 'x_lag0', 'y_lag12'."""
        labels = []
        for i, (tau, channel) in enumerate(zip(self.delays, self.channels)):
            label = f"{self.channel_names[channel]}_lag{tau}"
            if label in labels:
                label = f"{label}_{i}"
            labels.append(label)
        return labels

    def to_frame(self) -> pd.DataFrame:
        """
        One row per trajectory column.

        `L` is the L-statistic of the cycle that added the column; the first
        column carries the 1-D baseline of its channel.
        """
        rows = []
        labels = self.column_labels
        for i, (tau, channel) in enumerate(zip(self.delays, self.channels)):
            L = self.L_channels[channel] if i == 0 else self.L[i - 1]
            rows.append({
                'column': i,
                'label': labels[i],
                'channel': channel,
                'signal_id': self.channel_names[channel],
                'delay': tau,
                'L': L,
            })
        return pd.DataFrame(rows, columns=['column', 'label', 'channel', 'signal_id', 'delay', 'L'])

    def summary(self) -> str:
        """Human-readable summary."""
        lines = [
            f"Embedding dimension: {self.dimension}",
            f"Delays: {self.delays}",
            f"Channels: {[self.channel_names[c] for c in self.channels]}",
            f"L per cycle: {[round(v, 4) for v in self.L]}",
            f"L_init: {self.L_init:.4f}",
            f"Stopped: {STOP_MESSAGES.get(self.stop_reason, self.stop_reason)}",
        ]
        return "\n".join(lines)


# =============================================================================
# ENGINE
# =============================================================================

class PecuzalEngine:
    """
    Automated delay embedding of univariate or multivariate time series.

    Parameters
    ----------
    config : EmbeddingConfig, optional
        Run parameters (packaged defaults if None)
    **overrides
        Individual options replacing config values (e.g. theiler=5)

    Examples
    --------
    >>> t = np.arange(2000)
    >>> engine = PecuzalEngine(theiler=2)
    >>> result = engine.run(np.sin(t / 16.0))
    >>> result.delays[0]
    0
    """

    def __init__(self, config: Optional[EmbeddingConfig] = None, **overrides):
        if config is None:
            config = load_embedding_config(**overrides)
        elif overrides:
            values = config.to_dict()
            values.update({k: v for k, v in overrides.items() if v is not None})
            config = EmbeddingConfig.from_dict(values)
        else:
            config.validate()
        self.config = config

    # -------------------------------------------------------------------------
    # statistics with an explicit sampling source
    # -------------------------------------------------------------------------

    def _rng(self) -> np.random.Generator:
        # fresh per call: samples never depend on evaluation order
        return np.random.default_rng(self.config.random_state)

    def _cost(self, Y: np.ndarray) -> float:
        c = self.config
        return uzal_cost(
            Y,
            theiler=c.theiler,
            k=c.k,
            horizon=c.horizon,
            sample_fraction=c.sample_fraction,
            rng=self._rng(),
        )

    def _continuity(self, Y: np.ndarray, x: np.ndarray, delays: np.ndarray) -> np.ndarray:
        c = self.config
        return continuity_statistic(
            Y, x, delays,
            theiler=c.theiler,
            alpha=c.alpha,
            p=c.p,
            max_neighbors=c.max_neighbors,
            sample_fraction=c.sample_fraction,
            norm=c.norm,
            rng=self._rng(),
        )

    # -------------------------------------------------------------------------
    # candidate search
    # -------------------------------------------------------------------------

    def _channel_nominee(
        self,
        Y: np.ndarray,
        s: np.ndarray,
        channel: int,
        delays: np.ndarray,
        curve: np.ndarray,
        score: Callable[[float, float], float],
    ) -> Optional[Candidate]:
        """Best delay of one channel, or None if its curve has no peak."""
        peaks = continuity_peaks(curve)
        if not peaks:
            logger.debug(f"  channel {channel}: no continuity peak, skipped")
            return None

        candidates = []
        for index, height in peaks:
            tau = int(delays[index])
            L = self._cost(extend_embedding(Y, s, tau))
            candidates.append(Candidate(tau, channel, L, score(L, height)))

        best = select_minimum(candidates)
        if best is None:
            return None

        nominee = candidates[best]
        logger.debug(
            f"  channel {channel}: {len(peaks)} peak(s), "
            f"best delay {nominee.delay} (L={nominee.L:.4f})"
        )
        return nominee

    def _evaluate(
        self,
        Y: np.ndarray,
        x: np.ndarray,
        delays: np.ndarray,
        score: Callable[[float, float], float],
    ) -> Tuple[np.ndarray, Optional[Candidate]]:
        """Continuity snapshot and winning candidate for one working trajectory."""
        snapshot = self._continuity(Y, x, delays)

        tasks = [
            (Y, x[:, channel], channel, delays, snapshot[:, channel], score)
            for channel in range(x.shape[1])
        ]
        if self.config.n_jobs == 1:
            nominees = [self._channel_nominee(*task) for task in tasks]
        else:
            # Parallel returns in task order, so ties resolve as in the serial loop
            nominees = Parallel(n_jobs=self.config.n_jobs)(
                delayed(self._channel_nominee)(*task) for task in tasks
            )

        best = select_minimum(nominees)
        return snapshot, (nominees[best] if best is not None else None)

    def _first_cycle(
        self,
        x: np.ndarray,
        delays: np.ndarray,
        score: Callable[[float, float], float],
        L_channels: List[float],
        history: CycleHistory,
    ):
        """Cycle 1: also choose the channel the trajectory starts from."""
        trials = []
        for trial in range(x.shape[1]):
            snapshot, winner = self._evaluate(embed(x[:, trial]), x, delays, score)
            trials.append((snapshot, winner))
            if winner is not None:
                logger.debug(
                    f"  trial start {trial}: delay {winner.delay} of channel "
                    f"{winner.channel} (L={winner.L:.4f})"
                )

        best = select_minimum([winner for _, winner in trials])

        if best is None:
            start = int(np.nanargmin(L_channels))
            history.commit(0, start)
            history.record(np.nan, trials[start][0])
            return

        snapshot, winner = trials[best]
        history.commit(0, best)
        history.commit(winner.delay, winner.channel)
        history.record(winner.L, snapshot)

    def _next_cycle(
        self,
        x: np.ndarray,
        delays: np.ndarray,
        score: Callable[[float, float], float],
        history: CycleHistory,
    ):
        """Cycle >= 2: extend the committed trajectory by one column."""
        Y = assemble_trajectory(x, history.delays, history.channels)
        snapshot, winner = self._evaluate(Y, x, delays, score)

        if winner is None:
            history.record(np.nan, snapshot)
            return

        history.commit(winner.delay, winner.channel)
        history.record(winner.L, snapshot)

    # -------------------------------------------------------------------------
    # public API
    # -------------------------------------------------------------------------

    def run(self, series: Any, delays: Any = None) -> EmbeddingResult:
        """
        Reconstruct the phase space of `series`.

        Parameters
        ----------
        series : array (n_samples,) or (n_samples, n_channels), or DataFrame
            Time series; an array with fewer rows than columns is read as
            channels x samples
        delays : array, optional
            Candidate delays (default 0..50)

        Returns
        -------
        EmbeddingResult
        """
        x_orig, names = validate_series(series)
        delays = validate_delays(delays)
        validate_length(len(x_orig), delays, self.config)

        x = normalize(x_orig)
        n_channels = x.shape[1]
        score = scoring_strategy(n_channels)

        L_channels = [self._cost(x[:, channel]) for channel in range(n_channels)]
        if np.all(np.isnan(L_channels)):
            raise EmbeddingInputError("No channel has a non-degenerate neighbourhood structure")
        L_init = float(np.nanmin(L_channels))

        logger.info(
            f"Embedding {n_channels} channel(s) of {len(x)} samples over "
            f"{len(delays)} candidate delays (L_init={L_init:.4f})"
        )

        history = CycleHistory()
        cycle = 1
        while True:
            logger.info(f"Embedding cycle {cycle} of maximum {self.config.max_cycles}")

            if cycle == 1:
                self._first_cycle(x, delays, score, L_channels, history)
            else:
                self._next_cycle(x, delays, score, history)

            if len(history.delays) > cycle:
                logger.info(
                    f"  cycle {cycle}: delay {history.delays[cycle]} of "
                    f"'{names[history.channels[cycle]]}' (L={history.L[-1]:.4f})"
                )

            stop, reason = should_stop(
                history.delays, history.L, self.config.max_cycles, cycle, L_init
            )
            if stop:
                break
            cycle += 1

        used_delays, used_channels = history.columns(cycle)
        trajectory = assemble_trajectory(x_orig, used_delays, used_channels)

        return EmbeddingResult(
            trajectory=trajectory,
            delays=used_delays,
            channels=used_channels,
            L=list(history.L),
            continuity=list(history.continuity),
            L_init=L_init,
            L_channels=[float(v) for v in L_channels],
            stop_reason=reason,
            channel_names=names,
            config=self.config,
        )

    def run_signals(self, signals: Dict[str, np.ndarray], delays: Any = None) -> EmbeddingResult:
        """
        Embed a set of named, equally long signals.

        Parameters
        ----------
        signals : dict
            {signal_name: time_series_array}
        """
        lengths = {name: len(np.asarray(x).reshape(-1)) for name, x in signals.items()}
        if not lengths:
            raise EmbeddingInputError("No signals given")
        if len(set(lengths.values())) != 1:
            raise EmbeddingInputError(f"Signals must have equal length, got {lengths}")

        frame = pd.DataFrame({name: np.asarray(x, dtype=float).reshape(-1) for name, x in signals.items()})
        return self.run(frame, delays)


def pecuzal_embedding(
    series: Any,
    delays: Any = None,
    config: Optional[EmbeddingConfig] = None,
    **options,
) -> EmbeddingResult:
    """
    Automated phase space reconstruction (PECUZAL).

    Parameters
    ----------
    series : array or DataFrame
        Univariate or multivariate time series (samples x channels)
    delays : array, optional
        Candidate delays (default 0..50)
    config : EmbeddingConfig, optional
        Base configuration
    **options
        sample_fraction, theiler, alpha, p, max_neighbors, k,
        horizon_factor, max_cycles, norm, random_state, n_jobs

    Returns
    -------
    EmbeddingResult
    """
    return PecuzalEngine(config, **options).run(series, delays)


def embed_observations(
    observations: pd.DataFrame,
    delays: Any = None,
    config: Optional[EmbeddingConfig] = None,
    progress: bool = True,
    **options,
) -> pd.DataFrame:
    """
    Embed every entity of a long-format observation table.

    Parameters
    ----------
    observations : DataFrame
        Columns: entity_id, signal_id, I (sample index), y (value)
    delays : array, optional
        Candidate delays shared by all entities
    config : EmbeddingConfig, optional
        Base configuration
    progress : bool
        Log progress messages

    Returns
    -------
    DataFrame with one row per entity and trajectory column
    (entity_id, column, channel, signal_id, delay, L, dimension, stop_reason)
    """
    required = {'entity_id', 'signal_id', 'I', 'y'}
    missing = required - set(observations.columns)
    if missing:
        raise EmbeddingInputError(f"Observations missing columns: {sorted(missing)}")

    engine = PecuzalEngine(config, **options)
    entities = observations['entity_id'].unique()

    if progress:
        logger.info(f"Embedding {len(entities)} entities...")

    all_results = []
    for i, entity_id in enumerate(entities):
        entity = observations[observations['entity_id'] == entity_id]
        wide = entity.pivot(index='I', columns='signal_id', values='y').sort_index()

        result = engine.run(wide, delays)

        frame = result.to_frame()
        frame.insert(0, 'entity_id', entity_id)
        frame['dimension'] = result.dimension
        frame['stop_reason'] = result.stop_reason
        all_results.append(frame)

        if progress and (i + 1) % 10 == 0:
            logger.info(f"  Processed {i + 1}/{len(entities)} entities")

    if not all_results:
        return pd.DataFrame()

    return pd.concat(all_results, ignore_index=True)
