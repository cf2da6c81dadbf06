"""
=========================================
Inference with Ensemble Kalman Filter
=========================================
This module implements the stochastic (perturbed observation) Ensemble
Kalman Filter for nonlinear state space models with a linear observation
operator picking observed components out of the state vector.
"""
from logging import getLogger, StreamHandler, DEBUG, INFO
logger = getLogger("enkf")
handler = StreamHandler()
handler.setLevel(DEBUG)
logger.setLevel(INFO)
logger.addHandler(handler)
logger.propagate = False

import numpy as np

from .exceptions import ConfigurationError, NumericalError
from .gain import kalman_gain
from .observation import build_observation_matrix, build_observation_covariance, \
    perturb_observations, select_valid_observations, _check_observation_indices
from .stats import ensemble_covariance, sample_multivariate_normal
from .utils import array1d, array2d, spawn_random_states
from .util_functions import _determine_dimensionality, _parse_observations, \
    _check_square_symmetric, judge_xp_type


def _check_ensemble(x, n_particles=None, n_dim_sys=None, dtype=None, xp=np):
    x = xp.asarray(x, dtype = dtype)
    if not np.issubdtype(x.dtype, np.floating):
        x = x.astype("float64")
    if x.ndim != 2:
        raise ConfigurationError("ensemble must be a 2-d array [n_particles, n_dim_sys], "
                                + "but ndim is {}.".format(x.ndim), "ensemble")
    if x.shape[0] < 2:
        raise ConfigurationError("ensemble needs at least 2 particles, "
                                + "but {} is given.".format(x.shape[0]), "n_particles")
    if n_particles is not None and x.shape[0] != n_particles:
        raise ConfigurationError("ensemble has {} particles, but n_particles is {}."
                                .format(x.shape[0], n_particles), "n_particles")
    if n_dim_sys is not None and x.shape[1] != n_dim_sys:
        raise ConfigurationError("ensemble has {} state variables, but n_dim_sys is {}."
                                .format(x.shape[1], n_dim_sys), "n_dim_sys")
    return x


def forecast_ensemble(x, process_model, transition_covariance, random_state, cycle=None, xp=np):
    """Calculate prediction ensemble

    Args:
        x [n_particles, n_dim_sys] {xp-array, float}
            : filtered (prior) ensemble
        process_model {function}
            : advance(state) -> state, applied to each particle
        transition_covariance [n_dim_sys, n_dim_sys] {xp-array, float}
            : covariance of transition noise
        random_state {np.random.Generator}
            : stream for transition noise

    Returns:
        x_pred [n_particles, n_dim_sys] {xp-array, float}
    """
    n_particles, n_dim_sys = x.shape
    x_advanced = xp.stack([xp.asarray(process_model(member), dtype = x.dtype) for member in x])
    if x_advanced.shape != x.shape:
        raise ConfigurationError("process model returned shape {} for ensemble of shape {}."
                                .format(x_advanced.shape[1:], x.shape[1:]), "process_model")

    Q = transition_covariance.get() if hasattr(transition_covariance, "get") else transition_covariance
    try:
        v = sample_multivariate_normal(random_state, np.zeros(n_dim_sys), Q,
                                       n_particles, "transition_covariance")
    except NumericalError as e:
        e.cycle = cycle
        logger.error("cycle %s: %s", cycle, e)
        raise
    return x_advanced + xp.asarray(v, dtype = x.dtype)


def update_ensemble(x_pred, y_perturbed, H, K):
    """Calculate filtered ensemble

    Args:
        x_pred [n_particles, n_dim_sys] {xp-array, float}
        y_perturbed [n_particles, n_dim_obs] {xp-array, float}
        H [n_dim_obs, n_dim_sys] {xp-array, float}
        K [n_dim_sys, n_dim_obs] {xp-array, float}

    Returns:
        x_filt [n_particles, n_dim_sys] {xp-array, float}
    """
    # innovation for each particle
    innovation = y_perturbed - x_pred @ H.T
    return x_pred + innovation @ K.T


def analysis_update(x_pred, y, observation_indices, R, random_state,
                    max_condition_number=1e12, cycle=None, xp=np):
    """Assimilate observation `y` into the prediction ensemble

    Missing slots of `y` (NaN or masked) are dropped before the observation
    matrix is built; without any valid slot `x_pred` is returned as it is.

    Args:
        x_pred [n_particles, n_dim_sys] {xp-array, float}
            : prediction ensemble
        y [n_dim_obs] {xp-array or masked array, float}
            : observation
        observation_indices [n_dim_obs] {array-like, int}
            : state index measured by each observation slot
        R [n_dim_obs, n_dim_obs] {xp-array, float}
            : observation covariance of all slots
        random_state {np.random.Generator}
            : stream for observation perturbation
        max_condition_number {float}
            : limit for the condition number of the innovation covariance
        cycle {int}
            : cycle index reported with numerical errors

    Returns:
        x_filt [n_particles, n_dim_sys] {xp-array, float}
    """
    y_valid, indices_valid, R_valid = select_valid_observations(y, observation_indices, R, xp)
    if len(indices_valid) == 0:
        logger.debug("cycle %s: all observations are missing, keep prediction", cycle)
        return x_pred
    logger.debug("cycle %s: assimilate %d observations", cycle, len(indices_valid))

    n_particles, n_dim_sys = x_pred.shape
    try:
        H = build_observation_matrix(indices_valid, n_dim_sys, x_pred.dtype, xp)
        Cxx = ensemble_covariance(x_pred, xp)
        y_perturbed = perturb_observations(y_valid, R_valid, n_particles, random_state, xp)
        K = kalman_gain(Cxx, H, R_valid, max_condition_number, xp)
    except NumericalError as e:
        e.cycle = cycle
        logger.error("cycle %s: %s", cycle, e)
        raise
    return update_ensemble(x_pred, y_perturbed, H, K)


def assimilate(x, y, process_model=None, transition_covariance=None,
               observation_covariance=1.0, observation_indices=None,
               random_state=None, max_condition_number=1e12, cycle=None, xp=np):
    """Run one assimilation cycle: forecast, then update against `y`

    Args:
        x [n_particles, n_dim_sys] {xp-array, float}
            : prior ensemble
        y [n_dim_obs] {xp-array or masked array, float}
            : observation, missing slots are NaN or masked
        process_model {function}
            : advance(state) -> state, identity if None
        transition_covariance [n_dim_sys, n_dim_sys] {xp-array, float}
            : covariance of transition noise, identity if None
        observation_covariance {float or [n_dim_obs, n_dim_obs] xp-array}
            : scalar observation variance or full covariance
        observation_indices [n_dim_obs] {array-like, int}
            : state index measured by each observation slot,
            `arange(n_dim_obs)` if None
        random_state {None, int, SeedSequence, Generator, RandomState}
            : source of transition noise and observation perturbation.
            An int or SeedSequence gives two independent child streams and
            is not advanced. A Generator or RandomState is shared: the
            transition noise is drawn from it first, then the perturbation
        max_condition_number {float}
            : limit for the condition number of the innovation covariance
        cycle {int}
            : cycle index reported with numerical errors

    Returns:
        x_filt [n_particles, n_dim_sys] {xp-array, float}
    """
    x = _check_ensemble(x, xp=xp)
    n_particles, n_dim_sys = x.shape

    if process_model is None:
        process_model = lambda state: state

    if transition_covariance is None:
        Q = xp.eye(n_dim_sys, dtype = x.dtype)
    else:
        Q = xp.asarray(transition_covariance, dtype = x.dtype)
    _check_square_symmetric(Q, n_dim_sys, "transition_covariance", xp)

    if observation_indices is None:
        observation_indices = np.arange(len(y))
    indices = _check_observation_indices(observation_indices, n_dim_sys)
    if len(y) != len(indices):
        raise ConfigurationError("length of observation ({}) and observation_indices ({}) "
                                .format(len(y), len(indices)) + "must be equal.",
                                "observation")
    R = build_observation_covariance(observation_covariance, len(indices), x.dtype, xp)

    process_random_state, observation_random_state = spawn_random_states(random_state, 2)
    x_pred = forecast_ensemble(x, process_model, Q, process_random_state, cycle, xp)
    return analysis_update(x_pred, y, indices, R, observation_random_state,
                           max_condition_number, cycle, xp)


class EnsembleKalmanFilter(object):
    """Implements the stochastic Ensemble Kalman Filter.
    This class implements the perturbed observation Ensemble Kalman Filter
    for a nonlinear model with linear observation specified by,
    .. math::
        x_{t+1}   &= f(x_{t}) + v_{t}, v_{t} &\\sim N(0, Q) \\\\
        y_{t}     &= H_{t} x_{t} + w_{t}, w_{t} &\\sim N(0, R) \\\\
    where row i of :math:`H_{t}` picks state variable `observation_indices[i]`
    and only valid slots of :math:`y_{t}` enter :math:`H_{t}`.

    Args:
        process_model {function}
            : advance(state) -> state, applied to each particle
            システムモデルの遷移関数
        transition_covariance [n_dim_sys, n_dim_sys] {numpy-array, float}
            also known as :math:`Q`. covariance of transition noise
            システムノイズの共分散行列
        observation_covariance {float} or [n_dim_obs, n_dim_obs] {numpy-array, float}
            also known as :math:`R`. scalar observation variance
            or covariance of observation noise
            観測ノイズの分散 or 共分散行列
        observation_indices [n_dim_obs] {numpy-array, int}
            : state index measured by each observation slot
            各観測スロットに対応する状態変数のインデックス
        initial_mean [n_dim_sys] {numpy-array, float}
            also known as :math:`\\mu_0`. initial state mean
        initial_covariance [n_dim_sys, n_dim_sys] {numpy-array, float}
            also known as :math:`\\Sigma_0`. initial state covariance
        initial_ensemble [n_particles, n_dim_sys] {numpy-array, float}
            : prior ensemble, drawn from initial mean and covariance if None
        n_particles {int}
            : number of particles or ensemble members, taken from
            `initial_ensemble` if given, else 100
        n_dim_sys {int}
            : dimension of system variable
        n_dim_obs {int}
            : dimension of observation variable
        max_condition_number {float}
            : limit for the condition number of the innovation covariance
        use_gpu {bool}
            : calculate on cupy instead of numpy
        dtype {str}
            : dtype of numpy-array
        seed {int}
            : random seed, each cycle draws from its own child stream
    """

    def __init__(self, process_model = None, transition_covariance = None,
                observation_covariance = None, observation_indices = None,
                initial_mean = None, initial_covariance = None,
                initial_ensemble = None,
                n_particles = None, n_dim_sys = None, n_dim_obs = None,
                max_condition_number = 1e12,
                use_gpu = False, dtype = "float64", seed = 10):

        self.use_gpu = use_gpu
        self.xp = judge_xp_type(use_gpu)

        scalar_R = observation_covariance is None or np.ndim(observation_covariance) == 0

        # determine dimensionality
        self.n_dim_sys = _determine_dimensionality(
            [(transition_covariance, array2d, -2),
             (initial_mean, array1d, -1),
             (initial_covariance, array2d, -2),
             (initial_ensemble, array2d, -1)],
            n_dim_sys, "n_dim_sys"
        )

        self.n_dim_obs = _determine_dimensionality(
            [(observation_indices, array1d, -1),
             (None if scalar_R else observation_covariance, array2d, -2)],
            n_dim_obs, "n_dim_obs"
        )

        # process_model
        # None -> identity
        if process_model is None:
            self.f = lambda x: x
        else:
            self.f = process_model

        # transition_covariance
        # None -> self.xp.eye
        if transition_covariance is None:
            self.Q = self.xp.eye(self.n_dim_sys, dtype = dtype)
        else:
            self.Q = _check_square_symmetric(self.xp.asarray(transition_covariance, dtype = dtype),
                                             self.n_dim_sys, "transition_covariance", self.xp)

        # observation_indices
        # None -> self.xp.arange
        if observation_indices is None:
            observation_indices = np.arange(self.n_dim_obs)
        self.observation_indices = _check_observation_indices(observation_indices, self.n_dim_sys)

        # observation_covariance
        # None -> unit variance
        if observation_covariance is None:
            observation_covariance = 1.0
        self.R = build_observation_covariance(observation_covariance, self.n_dim_obs,
                                              dtype, self.xp)

        # initial_mean
        # None -> self.xp.zeros
        if initial_mean is None:
            self.initial_mean = np.zeros(self.n_dim_sys, dtype = dtype)
        else:
            self.initial_mean = np.asarray(initial_mean, dtype = dtype)

        if initial_covariance is None:
            self.initial_covariance = np.eye(self.n_dim_sys, dtype = dtype)
        else:
            self.initial_covariance = _check_square_symmetric(
                np.asarray(initial_covariance, dtype = dtype),
                self.n_dim_sys, "initial_covariance")

        # n_particles
        # None -> size of initial_ensemble or 100
        if initial_ensemble is None:
            self.initial_ensemble = None
            if n_particles is None:
                n_particles = 100
        else:
            self.initial_ensemble = _check_ensemble(initial_ensemble, n_particles, self.n_dim_sys,
                                                    dtype, self.xp)
            n_particles = self.initial_ensemble.shape[0]

        if n_particles < 2:
            raise ConfigurationError("n_particles must be at least 2, "
                                    + "but {} is given.".format(n_particles), "n_particles")
        self.n_particles = n_particles
        self.max_condition_number = max_condition_number
        self.seed = seed
        self.dtype = dtype


    def _random_states(self, cycle):
        """Independent streams for transition noise and observation perturbation of `cycle`"""
        return spawn_random_states(self.seed, 2, (0, cycle))


    def initialize(self):
        """Prior ensemble [n_particles, n_dim_sys]"""
        if self.initial_ensemble is not None:
            return self.initial_ensemble.copy()
        random_state, = spawn_random_states(self.seed, 1, (1,))
        x0 = sample_multivariate_normal(random_state, self.initial_mean, self.initial_covariance,
                                        self.n_particles, "initial_covariance")
        return self.xp.asarray(x0, dtype = self.dtype)


    def forecast(self, x, cycle = 0):
        """Calculate prediction ensemble of `cycle` from filtered ensemble `x`"""
        x = _check_ensemble(x, self.n_particles, self.n_dim_sys, self.dtype, self.xp)
        process_random_state, _ = self._random_states(cycle)
        return forecast_ensemble(x, self.f, self.Q, process_random_state, cycle, self.xp)


    def update(self, x_pred, y, cycle = 0):
        """Assimilate observation `y` of `cycle` into prediction ensemble `x_pred`"""
        x_pred = _check_ensemble(x_pred, self.n_particles, self.n_dim_sys, self.dtype, self.xp)
        _, observation_random_state = self._random_states(cycle)
        return analysis_update(x_pred, y, self.observation_indices, self.R,
                               observation_random_state, self.max_condition_number,
                               cycle, self.xp)


    def step(self, x, y, cycle = 0):
        """Run one assimilation cycle

        Args:
            x [n_particles, n_dim_sys] {xp-array, float}
                : filtered ensemble of the previous cycle
            y [n_dim_obs] {xp-array, float}
                : observation, missing slots are NaN or masked
            cycle {int}
                : cycle index, selects the random streams

        Returns:
            x_filt [n_particles, n_dim_sys] {xp-array, float}
        """
        return self.update(self.forecast(x, cycle), y, cycle)


    def forward(self, observation):
        """Calculate prediction and filter for observation times.

        Args:
            observation [n_time, n_dim_obs] {numpy-array, float}
                : observation series, missing values are NaN or masked

        Attributes (self):
            x_pred [n_time, n_particles, n_dim_sys] {xp-array, float}
                : prediction ensemble
                状態変数の予測アンサンブル [時間軸，粒子軸，状態変数軸]
            x_pred_mean [n_time, n_dim_sys] {xp-array, float}
                : mean of `x_pred` regarding to particles
            x_filt [n_time, n_particles, n_dim_sys] {xp-array, float}
                : filtered ensemble
                状態変数のフィルタアンサンブル [時間軸，粒子軸，状態変数軸]
            x_filt_mean [n_time, n_dim_sys] {xp-array, float}
                : mean of `x_filt` regarding to particles
        """
        self.y = _parse_observations(observation, self.n_dim_obs,
                                     "cupy" if self.use_gpu else "numpy")
        if self.y.shape[1] != self.n_dim_obs:
            raise ConfigurationError("observation has {} slots, but n_dim_obs is {}."
                                    .format(self.y.shape[1], self.n_dim_obs), "observation")

        # lenght of time-series
        T = self.y.shape[0]

        self.x_pred = self.xp.zeros((T, self.n_particles, self.n_dim_sys), dtype = self.dtype)
        self.x_filt = self.xp.zeros((T, self.n_particles, self.n_dim_sys), dtype = self.dtype)

        for t in range(T):
            logger.debug("filter calculating... t=%d/%d", t + 1, T)
            if t == 0:
                self.x_pred[0] = self.initialize()
            else:
                self.x_pred[t] = self.forecast(self.x_filt[t-1], t)

            self.x_filt[t] = self.update(self.x_pred[t], self.y[t], t)

        self.x_pred_mean = self.xp.mean(self.x_pred, axis=1)
        self.x_filt_mean = self.xp.mean(self.x_filt, axis=1)

        if np.ma.isMaskedArray(self.y):
            missing = np.ma.getmaskarray(self.y)
        else:
            missing = self.xp.isnan(self.y)
        logger.info("filter finished: %d cycles, %d without assimilation",
                    T, int(missing.all(axis=1).sum()))


    def _get_value(self, name, dim, get_particles):
        if not hasattr(self, name):
            raise RuntimeError("forward must be called before getting estimated values.")
        if get_particles:
            result = getattr(self, name)
        else:
            result = getattr(self, name + "_mean")

        if dim is None:
            return result
        elif 0 <= dim < self.n_dim_sys:
            return result[..., int(dim)]
        else:
            raise ValueError("The dim must be less than {}.".format(self.n_dim_sys))


    def get_predicted_value(self, dim=None, get_particles=False):
        """Get predicted value

        Args:
            dim {int} : dimensionality for extract from predicted result
            get_particles {bool} : return ensemble instead of its mean

        Returns (xp-array, float)
            : mean of hidden state at time t given observations
            from times [0...t-1]
        """
        return self._get_value("x_pred", dim, get_particles)


    def get_filtered_value(self, dim=None, get_particles=False):
        """Get filtered value

        Args:
            dim {int} : dimensionality for extract from filtered result
            get_particles {bool} : return ensemble instead of its mean

        Returns (xp-array, float)
            : mean of hidden state at time t given observations
            from times [0...t]
        """
        return self._get_value("x_filt", dim, get_particles)
