"""
Tests for the embedding-cycle search.

Scenarios run on short records with few candidate delays where possible,
the sine scenario uses the full default delay range.
"""

import numpy as np
import pandas as pd
import pytest

from pecuzal.config import load_embedding_config
from pecuzal.dynamics.peaks import continuity_peaks
from pecuzal.dynamics.reconstruction import embed, extend_embedding, normalize
from pecuzal.dynamics.stopping import MAX_CYCLES, MINIMUM_REACHED, NO_PEAKS
from pecuzal.engine import (
    Candidate,
    CycleHistory,
    PecuzalEngine,
    cost_only,
    embed_observations,
    peak_weighted,
    pecuzal_embedding,
    scoring_strategy,
    select_minimum,
)
from pecuzal.validation import EmbeddingInputError

from conftest import make_henon_xy, make_sine


# ─────────────────────────────────────────────────────────────────────
# Selection helpers
# ─────────────────────────────────────────────────────────────────────

class TestScoring:

    def test_strategy_fixed_by_channel_count(self):
        assert scoring_strategy(1) is cost_only
        assert scoring_strategy(2) is peak_weighted
        assert scoring_strategy(5) is peak_weighted

    def test_scores(self):
        assert cost_only(-1.2, 0.8) == -1.2
        assert peak_weighted(-1.2, 0.5) == pytest.approx(-0.6)


class TestSelectMinimum:

    def test_lowest_score(self):
        cands = [Candidate(5, 0, -1.0, -1.0), Candidate(9, 0, -2.0, -2.0)]
        assert select_minimum(cands) == 1

    def test_ties_go_to_first(self):
        cands = [Candidate(5, 1, -1.0, -1.0), Candidate(9, 0, -1.0, -1.0)]
        assert select_minimum(cands) == 0

    def test_missing_and_nan_never_win(self):
        cands = [None, Candidate(3, 1, np.nan, np.nan), Candidate(4, 2, 0.5, 0.5)]
        assert select_minimum(cands) == 2

    def test_nothing_eligible(self):
        assert select_minimum([None, Candidate(3, 1, np.nan, np.nan)]) is None
        assert select_minimum([]) is None


class TestCycleHistory:

    def test_append_only_log(self):
        history = CycleHistory()
        history.commit(0, 1)
        history.commit(25, 0)
        history.record(-1.5, np.zeros((3, 2)))
        history.commit(7, 1)
        history.record(-1.2, np.zeros((3, 2)))

        assert history.n_cycles == 2
        assert history.columns(2) == ([0, 25], [1, 0])
        assert history.delays == [0, 25, 7]


# ─────────────────────────────────────────────────────────────────────
# Univariate scenarios
# ─────────────────────────────────────────────────────────────────────

class TestSineScenario:

    @pytest.fixture(scope='class')
    def result(self):
        return pecuzal_embedding(make_sine())

    def test_two_dimensional(self, result):
        assert result.dimension == 2
        assert result.stop_reason in (MINIMUM_REACHED, NO_PEAKS)

    def test_delays(self, result):
        assert result.delays[0] == 0
        assert 15 <= result.delays[1] <= 35
        assert result.channels == [0, 0]

    def test_first_cycle_improves(self, result):
        assert result.L[0] < result.L_init
        assert result.L_init == min(result.L_channels)

    def test_rows(self, result):
        assert result.trajectory.shape == (2000 - max(result.delays), 2)

    def test_trajectory_on_original_scale(self, result):
        x = make_sine()
        tau = result.delays[1]
        np.testing.assert_allclose(result.trajectory[:, 0], x[:2000 - tau])
        np.testing.assert_allclose(result.trajectory[:, 1], x[tau:])

    def test_history_lengths(self, result):
        assert len(result.L) == result.dimension
        assert len(result.continuity) == len(result.L)
        assert result.continuity[0].shape == (51, 1)

    def test_frame_and_summary(self, result):
        frame = result.to_frame()
        assert list(frame.columns) == ['column', 'label', 'channel', 'signal_id', 'delay', 'L']
        assert len(frame) == 2
        assert frame['L'].iloc[0] == result.L_channels[0]
        assert frame['L'].iloc[1] == result.L[0]
        assert frame['label'].tolist() == ['x0_lag0', f"x0_lag{result.delays[1]}"]
        assert "Embedding dimension: 2" in result.summary()


class TestUnivariateProperties:

    def test_input_not_mutated(self, sine):
        before = sine.copy()
        pecuzal_embedding(sine, delays=np.arange(31))
        np.testing.assert_array_equal(sine, before)

    def test_affine_invariance(self, sine):
        a = pecuzal_embedding(sine, delays=np.arange(41))
        b = pecuzal_embedding(3.0 * sine + 5.0, delays=np.arange(41))
        assert a.delays == b.delays
        assert a.channels == b.channels
        np.testing.assert_allclose(b.trajectory, 3.0 * a.trajectory + 5.0)

    def test_deterministic_with_sampling(self, henon):
        kwargs = dict(delays=np.arange(11), sample_fraction=0.5, random_state=42)
        a = pecuzal_embedding(henon, **kwargs)
        b = pecuzal_embedding(henon, **kwargs)
        assert a.delays == b.delays
        np.testing.assert_array_equal(a.L, b.L)

    def test_delays_come_from_candidates(self, henon):
        candidates = np.arange(11)
        result = pecuzal_embedding(henon, delays=candidates)
        assert set(result.delays) <= set(candidates.tolist())
        assert result.trajectory.shape[0] == len(henon) - max(result.delays)

    def test_l_decreases_over_accepted_cycles(self, henon):
        result = pecuzal_embedding(henon, delays=np.arange(11))
        accepted = result.L[:-1] if result.stop_reason in (MINIMUM_REACHED, NO_PEAKS) else result.L
        assert np.all(np.diff(accepted) <= 0)

    def test_cycle_budget(self, henon):
        result = pecuzal_embedding(henon, delays=np.arange(11), max_cycles=2)
        assert result.dimension <= 2

    def test_single_cycle(self, sine):
        result = pecuzal_embedding(sine, delays=np.arange(41), max_cycles=1)
        assert result.dimension == 1
        assert result.stop_reason == MAX_CYCLES
        assert len(result.L) == 1

    def test_no_peaks(self, sine):
        # continuity grows from delay 0 to 1: no local maximum
        result = pecuzal_embedding(sine, delays=[0, 1])
        assert result.stop_reason == NO_PEAKS
        assert result.dimension == 1
        assert np.isnan(result.L[0])
        assert not result.valid


# ─────────────────────────────────────────────────────────────────────
# Multivariate scenarios
# ─────────────────────────────────────────────────────────────────────

@pytest.fixture
def two_channels():
    t = np.arange(1500)
    return pd.DataFrame({'x': np.sin(t / 16.0), 'y': np.sin(t / 9.0 + 1.0)})


class TestMultivariate:

    def test_channels_and_names(self, two_channels):
        result = pecuzal_embedding(two_channels, delays=np.arange(31))
        assert set(result.channels) <= {0, 1}
        assert result.channel_names == ['x', 'y']
        assert result.continuity[0].shape == (31, 2)
        assert result.trajectory.shape[0] == 1500 - max(result.delays)

    def test_parallel_matches_serial(self, two_channels):
        serial = pecuzal_embedding(two_channels, delays=np.arange(31), n_jobs=1)
        parallel = pecuzal_embedding(two_channels, delays=np.arange(31), n_jobs=2)
        assert serial.delays == parallel.delays
        assert serial.channels == parallel.channels
        np.testing.assert_array_equal(serial.trajectory, parallel.trajectory)

    def test_run_signals(self, two_channels):
        engine = PecuzalEngine()
        result = engine.run_signals(
            {'x': two_channels['x'].to_numpy(), 'y': two_channels['y'].to_numpy()},
            delays=np.arange(31),
        )
        assert result.channel_names == ['x', 'y']

    def test_run_signals_unequal(self):
        with pytest.raises(EmbeddingInputError, match="equal length"):
            PecuzalEngine().run_signals({'a': np.arange(10.0), 'b': np.arange(12.0)})


class TestNoiseChannel:
    """Henon x, white noise, Henon y: the noise channel carries no dynamics."""

    @pytest.fixture(scope='class')
    def result(self):
        hx, hy = make_henon_xy()
        noise = np.random.default_rng(1).normal(size=len(hx))
        return pecuzal_embedding(np.column_stack([hx, noise, hy]), delays=np.arange(11))

    def test_noise_never_chosen(self, result):
        assert 1 not in result.channels

    def test_starts_on_a_dynamical_channel(self, result):
        assert result.delays[0] == 0
        assert result.channels[0] in (0, 2)
        assert result.dimension >= 2

    def test_snapshots_cover_all_channels(self, result):
        for snapshot in result.continuity:
            assert snapshot.shape == (11, 3)


class TestCycleSelection:

    def test_first_cycle_commits_winning_trial(self, monkeypatch):
        engine = PecuzalEngine()
        x = np.random.default_rng(0).normal(size=(200, 3))
        snapshots = [np.full((4, 3), float(i)) for i in range(3)]
        winners = [Candidate(5, 2, -1.0, -1.0), Candidate(7, 0, -3.0, -3.0), None]
        trials = iter(range(3))

        def evaluate(Y, x, delays, score):
            i = next(trials)
            return snapshots[i], winners[i]

        monkeypatch.setattr(engine, '_evaluate', evaluate)
        history = CycleHistory()
        engine._first_cycle(x, np.arange(4), peak_weighted, [-0.5, -0.7, -0.6], history)

        assert history.delays == [0, 7]
        assert history.channels == [1, 0]
        assert history.L == [-3.0]
        np.testing.assert_array_equal(history.continuity[0], snapshots[1])

    def test_first_cycle_without_peaks_starts_on_best_baseline(self, monkeypatch):
        engine = PecuzalEngine()
        x = np.random.default_rng(0).normal(size=(200, 3))
        monkeypatch.setattr(engine, '_evaluate', lambda Y, x, delays, score: (np.zeros((4, 3)), None))

        history = CycleHistory()
        engine._first_cycle(x, np.arange(4), peak_weighted, [-0.5, -0.7, -0.7], history)

        assert history.delays == [0]
        assert history.channels == [1]
        assert np.isnan(history.L[0])

    def test_nominee_score_is_cost_times_peak_height(self, sine):
        engine = PecuzalEngine()
        x = normalize(sine.reshape(-1, 1))
        Y = embed(x[:, 0])
        curve = np.array([0.1, 0.4, 0.2, 0.2, 0.2, 0.9, 0.3, 0.1])
        heights = dict(continuity_peaks(curve))
        assert set(heights) == {1, 5}

        nominee = engine._channel_nominee(Y, x[:, 0], 0, np.arange(8), curve, peak_weighted)

        scores = {
            tau: engine._cost(extend_embedding(Y, x[:, 0], tau)) * height
            for tau, height in heights.items()
        }
        assert nominee.score == pytest.approx(nominee.L * heights[nominee.delay])
        assert nominee.score == pytest.approx(min(scores.values()))

    def test_multivariate_scores_every_cycle_by_peak_height(self, two_channels, monkeypatch):
        engine = PecuzalEngine()
        strategies = []
        evaluate = engine._evaluate

        def spy(Y, x, delays, score):
            strategies.append(score)
            return evaluate(Y, x, delays, score)

        monkeypatch.setattr(engine, '_evaluate', spy)
        result = engine.run(two_channels, delays=np.arange(31))

        # two start trials in cycle 1, one evaluation per later cycle
        assert len(strategies) == 2 + len(result.L) - 1
        assert all(s is peak_weighted for s in strategies)

    def test_univariate_scores_by_cost_only(self, sine, monkeypatch):
        engine = PecuzalEngine()
        strategies = []
        evaluate = engine._evaluate

        def spy(Y, x, delays, score):
            strategies.append(score)
            return evaluate(Y, x, delays, score)

        monkeypatch.setattr(engine, '_evaluate', spy)
        result = engine.run(sine, delays=np.arange(41))

        assert len(strategies) == len(result.L)
        assert all(s is cost_only for s in strategies)


class TestEmbedObservations:

    def test_long_format(self):
        t = np.arange(1200)
        rows = []
        for entity_id, freq in [('unit_1', 16.0), ('unit_2', 12.0)]:
            for signal_id, phase in [('a', 0.0), ('b', 2.0)]:
                rows.append(pd.DataFrame({
                    'entity_id': entity_id,
                    'signal_id': signal_id,
                    'I': t,
                    'y': np.sin(t / freq + phase),
                }))
        observations = pd.concat(rows, ignore_index=True)

        frame = embed_observations(observations, delays=np.arange(31), progress=False)

        assert set(frame['entity_id']) == {'unit_1', 'unit_2'}
        assert {'dimension', 'stop_reason', 'delay', 'signal_id'} <= set(frame.columns)
        for _, group in frame.groupby('entity_id'):
            assert len(group) == group['dimension'].iloc[0]

    def test_missing_columns(self):
        with pytest.raises(EmbeddingInputError, match="missing columns"):
            embed_observations(pd.DataFrame({'entity_id': [1], 'y': [0.0]}))


# ─────────────────────────────────────────────────────────────────────
# Engine construction and input errors
# ─────────────────────────────────────────────────────────────────────

class TestEngineSetup:

    def test_overrides(self):
        engine = PecuzalEngine(theiler=3, max_cycles=4)
        assert engine.config.theiler == 3
        assert engine.config.max_cycles == 4

    def test_config_plus_overrides(self):
        config = load_embedding_config(profile='fast')
        engine = PecuzalEngine(config, theiler=2)
        assert engine.config.theiler == 2
        assert engine.config.sample_fraction == 0.5
        assert config.theiler == 1

    def test_too_short(self):
        with pytest.raises(EmbeddingInputError, match="too short"):
            pecuzal_embedding(np.sin(np.arange(100) / 5.0))

    def test_nan_input(self, sine):
        sine[10] = np.nan
        with pytest.raises(EmbeddingInputError):
            pecuzal_embedding(sine)

    def test_bad_option(self, sine):
        with pytest.raises(EmbeddingInputError):
            pecuzal_embedding(sine, alpha=2.0)
