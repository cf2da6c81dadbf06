"""Unit tests for the Ensemble Kalman Filter cycle."""
import numpy as np
import pytest

from pyenkf import EnsembleKalmanFilter, AdditiveDriftModel, ConfigurationError, \
    NumericalError, assimilate, analysis_update, update_ensemble
from pyenkf.gain import kalman_gain
from pyenkf.observation import build_observation_matrix
from pyenkf.stats import ensemble_covariance


def _forecast_ensemble(seed=1, n_particles=10):
    rng = np.random.default_rng(seed)
    return np.array([30.0, 17.0, 8.0]) + rng.standard_normal((n_particles, 3))


class TestUpdateEnsemble:
    """Tests for update_ensemble and the gain it is fed with."""

    def test_scalar_posterior_mean(self):
        """With D = M = 1 the posterior mean is mean + K (y - mean), K = C / (C + R)."""
        x_pred = np.array([[1.0], [2.0], [3.0], [4.0]])
        R = np.array([[0.5]])
        H = build_observation_matrix([0], 1)
        C = 5.0 / 3.0

        K = kalman_gain(ensemble_covariance(x_pred), H, R)
        x_filt = update_ensemble(x_pred, np.full((4, 1), 10.0), H, K)

        np.testing.assert_allclose(K, [[C / (C + 0.5)]])
        np.testing.assert_allclose(x_filt.mean(axis=0), 2.5 + C / (C + 0.5) * (10.0 - 2.5))

    def test_larger_observation_variance_shrinks_correction(self):
        """Multiplying R by 100 makes every member's correction strictly smaller."""
        x_pred = _forecast_ensemble()
        H = build_observation_matrix([0], 3)
        Cxx = ensemble_covariance(x_pred)
        y_perturbed = np.full((10, 1), 25.0)

        corrections = []
        for variance in [0.1, 10.0]:
            K = kalman_gain(Cxx, H, np.array([[variance]]))
            corrections.append(update_ensemble(x_pred, y_perturbed, H, K) - x_pred)

        small = np.linalg.norm(corrections[0], axis=1)
        large = np.linalg.norm(corrections[1], axis=1)
        assert np.all(large < small)


class TestAnalysisUpdate:
    """Tests for analysis_update."""

    def test_observed_index_moves_to_observation(self):
        """A precise observation pulls the observed component onto it."""
        x_pred = _forecast_ensemble()

        x_filt = analysis_update(x_pred, np.array([25.0]), [0], np.array([[0.001]]),
                                 np.random.default_rng(5))

        assert x_filt.shape == x_pred.shape
        assert abs(x_filt[:, 0].mean() - 25.0) < 0.1
        assert abs(x_pred[:, 0].mean() - 25.0) > 3.0

    def test_uncorrelated_index_is_untouched(self):
        """Without cross-covariance the unobserved component keeps its value."""
        x_pred = _forecast_ensemble()
        x_pred[:, 1] = 17.0

        x_filt = analysis_update(x_pred, np.array([25.0]), [0], np.array([[0.001]]),
                                 np.random.default_rng(5))

        np.testing.assert_array_equal(x_filt[:, 1], x_pred[:, 1])

    def test_all_missing_returns_prediction(self):
        x_pred = _forecast_ensemble()

        x_filt = analysis_update(x_pred, np.array([np.nan, np.nan]), [0, 2], np.eye(2),
                                 np.random.default_rng(5))

        np.testing.assert_array_equal(x_filt, x_pred)

    def test_partially_missing(self):
        """Missing slots are dropped, the others are assimilated as usual."""
        x_pred = _forecast_ensemble()

        partial = analysis_update(x_pred, np.array([25.0, np.nan]), [0, 2], 0.01 * np.eye(2),
                                  np.random.default_rng(7))
        single = analysis_update(x_pred, np.array([25.0]), [0], 0.01 * np.eye(1),
                                 np.random.default_rng(7))

        np.testing.assert_allclose(partial, single)

    def test_degenerate_ensemble_with_exact_observation(self):
        """Zero spread and zero observation variance give a singular S."""
        x_pred = np.tile([30.0, 17.0, 8.0], (5, 1))

        with pytest.raises(NumericalError) as excinfo:
            analysis_update(x_pred, np.array([25.0]), [0], np.zeros((1, 1)),
                            np.random.default_rng(0), cycle=2)
        assert excinfo.value.matrix == "innovation_covariance"
        assert excinfo.value.cycle == 2
        assert "cycle=2" in str(excinfo.value)


class TestAssimilate:
    """Tests for assimilate."""

    def test_shape(self):
        x = _forecast_ensemble()

        x_filt = assimilate(x, np.array([25.0]), AdditiveDriftModel(0.5), np.eye(3),
                            0.001, [0], random_state=0)

        assert x_filt.shape == x.shape

    def test_deterministic_with_seed(self):
        x = _forecast_ensemble()
        kwargs = dict(process_model=AdditiveDriftModel(0.5), transition_covariance=0.1 * np.eye(3),
                      observation_covariance=0.01, observation_indices=[0, 2])

        first = assimilate(x, np.array([25.0, 9.0]), random_state=11, **kwargs)
        second = assimilate(x, np.array([25.0, 9.0]), random_state=11, **kwargs)

        np.testing.assert_array_equal(first, second)

    def test_deterministic_with_seed_sequence(self):
        """Reusing one SeedSequence gives the same posterior and leaves it untouched."""
        x = _forecast_ensemble()
        seed_sequence = np.random.SeedSequence(11)

        first = assimilate(x, np.array([1.0]), observation_indices=[0],
                           random_state=seed_sequence)
        second = assimilate(x, np.array([1.0]), observation_indices=[0],
                            random_state=seed_sequence)

        np.testing.assert_array_equal(first, second)
        assert seed_sequence.n_children_spawned == 0

    def test_seed_sequence_matches_int_seed(self):
        x = _forecast_ensemble()

        first = assimilate(x, np.array([1.0]), observation_indices=[0], random_state=11)
        second = assimilate(x, np.array([1.0]), observation_indices=[0],
                            random_state=np.random.SeedSequence(11))

        np.testing.assert_array_equal(first, second)

    def test_shared_generator(self):
        """A Generator feeds transition noise, then perturbation, from one stream."""
        x = _forecast_ensemble()

        first = assimilate(x, np.array([1.0]), observation_indices=[0],
                           random_state=np.random.default_rng(5))
        second = assimilate(x, np.array([1.0]), observation_indices=[0],
                            random_state=np.random.default_rng(5))
        rng = np.random.default_rng(5)
        third = assimilate(x, np.array([1.0]), observation_indices=[0], random_state=rng)
        fourth = assimilate(x, np.array([1.0]), observation_indices=[0], random_state=rng)

        np.testing.assert_array_equal(first, second)
        np.testing.assert_array_equal(first, third)
        assert not np.array_equal(third, fourth)

    def test_default_indices(self):
        """Without indices, slot i observes state variable i."""
        x = _forecast_ensemble()

        x_filt = assimilate(x, np.array([25.0, 10.0]), observation_covariance=0.001,
                            random_state=3)

        assert x_filt.shape == x.shape

    def test_single_member(self):
        with pytest.raises(ConfigurationError):
            assimilate(np.ones((1, 3)), np.array([1.0]), observation_indices=[0])

    def test_transition_covariance_shape(self):
        with pytest.raises(ConfigurationError) as excinfo:
            assimilate(_forecast_ensemble(), np.array([1.0]), transition_covariance=np.eye(2),
                       observation_indices=[0])
        assert excinfo.value.name == "transition_covariance"

    def test_index_out_of_range(self):
        with pytest.raises(ConfigurationError):
            assimilate(_forecast_ensemble(), np.array([1.0]), observation_indices=[3])

    def test_length_mismatch(self):
        with pytest.raises(ConfigurationError):
            assimilate(_forecast_ensemble(), np.array([1.0, 2.0]), observation_indices=[0])

    def test_process_model_shape(self):
        with pytest.raises(ConfigurationError):
            assimilate(_forecast_ensemble(), np.array([1.0]), lambda x: x[:2],
                       observation_indices=[0])

    def test_transition_covariance_not_positive_semi_definite(self):
        Q = np.diag([1.0, -1.0, 1.0])

        with pytest.raises(NumericalError) as excinfo:
            assimilate(_forecast_ensemble(), np.array([1.0]), transition_covariance=Q,
                       observation_indices=[0], random_state=0, cycle=4)
        assert excinfo.value.matrix == "transition_covariance"
        assert excinfo.value.cycle == 4


class TestEnsembleKalmanFilter:
    """Tests for EnsembleKalmanFilter."""

    def _filter(self, **kwargs):
        params = dict(process_model=AdditiveDriftModel(0.0), transition_covariance=np.eye(3),
                      observation_covariance=0.001, observation_indices=[0],
                      initial_mean=np.array([30.0, 17.0, 8.0]), n_particles=10, seed=0)
        params.update(kwargs)
        return EnsembleKalmanFilter(**params)

    def test_initialize(self):
        enkf = self._filter()

        x0 = enkf.initialize()

        assert x0.shape == (10, 3)
        np.testing.assert_array_equal(x0, enkf.initialize())

    def test_initial_ensemble(self):
        x = _forecast_ensemble(n_particles=6)

        enkf = self._filter(initial_ensemble=x, n_particles=None)

        assert enkf.n_particles == 6
        np.testing.assert_array_equal(enkf.initialize(), x)

    def test_initial_ensemble_with_matching_n_particles(self):
        enkf = self._filter(initial_ensemble=_forecast_ensemble(n_particles=6), n_particles=6)

        assert enkf.n_particles == 6

    def test_initial_ensemble_contradicts_n_particles(self):
        with pytest.raises(ConfigurationError) as excinfo:
            self._filter(initial_ensemble=_forecast_ensemble(n_particles=6), n_particles=10)
        assert excinfo.value.name == "n_particles"

    def test_default_n_particles(self):
        enkf = self._filter(n_particles=None)

        assert enkf.n_particles == 100

    def test_scenario(self):
        """N=10, D=3, observation 25 at index 0 with variance 0.001."""
        enkf = self._filter()
        x0 = enkf.initialize()

        x_pred = enkf.forecast(x0, 1)
        x_filt = enkf.step(x0, np.array([25.0]), 1)

        pred_mean = x_pred.mean(axis=0)
        filt_mean = x_filt.mean(axis=0)
        assert abs(filt_mean[0] - 25.0) < 0.2
        assert abs(filt_mean[0] - 25.0) < abs(pred_mean[0] - 25.0) / 10

        # index 1 only follows index 0 through the cross-covariance
        Cxx = ensemble_covariance(x_pred)
        change = filt_mean - pred_mean
        np.testing.assert_allclose(change[1], Cxx[1, 0] / Cxx[0, 0] * change[0],
                                   rtol=1e-8, atol=1e-10)

    def test_missing_observation_returns_forecast(self):
        """An all-missing cycle returns the forecast bit for bit."""
        enkf = self._filter(observation_indices=[0, 2])
        x0 = enkf.initialize()

        x_filt = enkf.step(x0, np.array([np.nan, np.nan]), 3)

        np.testing.assert_array_equal(x_filt, enkf.forecast(x0, 3))

    def test_masked_observation_returns_forecast(self):
        enkf = self._filter()
        x0 = enkf.initialize()

        x_filt = enkf.step(x0, np.ma.array([25.0], mask=[True]), 2)

        np.testing.assert_array_equal(x_filt, enkf.forecast(x0, 2))

    def test_deterministic(self):
        """Same seed and inputs give identical posteriors."""
        x0 = _forecast_ensemble()
        y = np.array([25.0])

        first = self._filter(seed=3).step(x0, y, 5)
        second = self._filter(seed=3).step(x0, y, 5)

        np.testing.assert_array_equal(first, second)

    def test_cycles_draw_different_noise(self):
        enkf = self._filter()
        x0 = enkf.initialize()

        assert not np.array_equal(enkf.forecast(x0, 1), enkf.forecast(x0, 2))

    def test_step_is_forecast_then_update(self):
        enkf = self._filter()
        x0 = enkf.initialize()
        y = np.array([25.0])

        np.testing.assert_array_equal(enkf.step(x0, y, 4), enkf.update(enkf.forecast(x0, 4), y, 4))

    def test_too_few_particles(self):
        with pytest.raises(ConfigurationError):
            self._filter(n_particles=1)

    def test_inconsistent_dimensions(self):
        with pytest.raises(ConfigurationError) as excinfo:
            self._filter(transition_covariance=np.eye(2))
        assert excinfo.value.name == "n_dim_sys"

    def test_observation_covariance_matrix(self):
        """A full observation covariance fixes n_dim_obs."""
        enkf = self._filter(observation_indices=None,
                            observation_covariance=np.array([[0.1, 0.05], [0.05, 0.2]]))

        assert enkf.n_dim_obs == 2
        np.testing.assert_array_equal(enkf.observation_indices, [0, 1])

    def test_asymmetric_transition_covariance(self):
        Q = np.array([[1.0, 0.5, 0.0],
                      [0.0, 1.0, 0.0],
                      [0.0, 0.0, 1.0]])

        with pytest.raises(ConfigurationError):
            self._filter(transition_covariance=Q)

    def test_ensemble_shape_checked(self):
        enkf = self._filter()

        with pytest.raises(ConfigurationError):
            enkf.step(np.ones((10, 2)), np.array([25.0]), 1)
        with pytest.raises(ConfigurationError):
            enkf.step(np.ones((4, 3)), np.array([25.0]), 1)


class TestForward:
    """Tests for EnsembleKalmanFilter.forward."""

    def _run(self):
        T = 12
        truth = np.column_stack([30.0 - 0.5 * np.arange(T), np.full(T, 17.0)])
        observation = truth.copy()
        observation[[3, 4], :] = np.nan
        observation[7, 1] = np.nan

        enkf = EnsembleKalmanFilter(process_model=AdditiveDriftModel([-0.5, 0.0]),
                                    transition_covariance=0.01 * np.eye(2),
                                    observation_covariance=0.1,
                                    observation_indices=[0, 1],
                                    initial_mean=np.array([30.0, 17.0]),
                                    n_particles=20, seed=1)
        enkf.forward(observation)
        return enkf, T

    def test_shapes(self):
        enkf, T = self._run()

        assert enkf.get_filtered_value().shape == (T, 2)
        assert enkf.get_predicted_value().shape == (T, 2)
        assert enkf.get_filtered_value(0).shape == (T,)
        assert enkf.get_filtered_value(get_particles=True).shape == (T, 20, 2)
        assert enkf.get_predicted_value(1, get_particles=True).shape == (T, 20)

    def test_missing_rows_keep_prediction(self):
        enkf, _ = self._run()

        np.testing.assert_array_equal(enkf.x_filt[3], enkf.x_pred[3])
        np.testing.assert_array_equal(enkf.x_filt[4], enkf.x_pred[4])
        assert not np.array_equal(enkf.x_filt[7], enkf.x_pred[7])

    def test_first_prediction_is_prior(self):
        enkf, _ = self._run()

        np.testing.assert_array_equal(enkf.x_pred[0], enkf.initialize())

    def test_finite(self):
        enkf, _ = self._run()

        assert np.all(np.isfinite(enkf.get_filtered_value()))

    def test_single_row(self):
        """A one-cycle series of two slots is not read as two cycles of one slot."""
        enkf = EnsembleKalmanFilter(observation_indices=[0, 2], initial_mean=np.zeros(3),
                                    n_particles=5, seed=0)

        enkf.forward(np.array([[1.0, 2.0]]))

        assert enkf.get_filtered_value().shape == (1, 3)
        assert enkf.get_filtered_value(get_particles=True).shape == (1, 5, 3)

    def test_one_dimensional_series_of_one_slot(self):
        enkf = EnsembleKalmanFilter(observation_indices=[1], initial_mean=np.zeros(2),
                                    n_particles=5, seed=0)

        enkf.forward(np.array([1.0, np.nan, 2.0]))

        assert enkf.get_filtered_value().shape == (3, 2)
        np.testing.assert_array_equal(enkf.x_filt[1], enkf.x_pred[1])

    def test_wrong_observation_width(self):
        enkf = EnsembleKalmanFilter(initial_mean=np.zeros(2), n_particles=5)

        with pytest.raises(ConfigurationError):
            enkf.forward(np.zeros((4, 3)))

    def test_dim_out_of_range(self):
        enkf, _ = self._run()

        with pytest.raises(ValueError):
            enkf.get_filtered_value(2)

    def test_before_forward(self):
        enkf = EnsembleKalmanFilter(initial_mean=np.zeros(2), n_particles=5)

        with pytest.raises(RuntimeError):
            enkf.get_filtered_value()
