"""
=============================
Observation machinery
=============================
This module builds the linear observation operator which picks the observed
components out of the state vector, the observation-error covariance, and
the perturbed observation ensemble used by the stochastic EnKF.
"""

import numbers

import numpy as np

from .exceptions import ConfigurationError
from .stats import sample_multivariate_normal
from .util_functions import _check_square_symmetric


def build_observation_matrix(observation_indices, n_dim_sys, dtype="float64", xp=np):
    """Build observation operator from observation indices

    Args:
        observation_indices [n_dim_obs] {array-like, int}
            : state index measured by each observation slot
            観測スロットが測る状態変数のインデックス
        n_dim_sys {int}
            : dimension of system variable
        dtype {str}
            : dtype of the returned matrix

    Returns:
        H [n_dim_obs, n_dim_sys] {xp-array, float}
            : row i holds a single 1 at column `observation_indices[i]`

    Raises:
        ConfigurationError : index outside [0, n_dim_sys) or not integer
    """
    indices = _check_observation_indices(observation_indices, n_dim_sys)
    H = xp.zeros((len(indices), n_dim_sys), dtype = dtype)
    H[xp.arange(len(indices)), xp.asarray(indices)] = 1
    return H


def _check_observation_indices(observation_indices, n_dim_sys):
    indices = np.asarray(observation_indices)
    if indices.ndim != 1:
        raise ConfigurationError("observation_indices must be 1-d, "
                                + "but ndim is {}.".format(indices.ndim), "observation_indices")
    if indices.size and not np.issubdtype(indices.dtype, np.integer):
        raise ConfigurationError("observation_indices must be integers, "
                                + "but dtype is {}.".format(indices.dtype), "observation_indices")
    out_of_range = (indices < 0) | (indices >= n_dim_sys)
    if np.any(out_of_range):
        raise ConfigurationError("observation_indices {} are out of range [0, {})."
                                .format(indices[out_of_range].tolist(), n_dim_sys),
                                "observation_indices")
    return indices.astype(int)


def build_observation_covariance(observation_covariance, n_dim_obs, dtype="float64", xp=np):
    """Expand the observation-error model into an [n_dim_obs, n_dim_obs] matrix

    Args:
        observation_covariance {float or [n_dim_obs, n_dim_obs] xp-array}
            : scalar variance shared by every slot, or a full symmetric
            covariance when observation errors are correlated

    Returns:
        R [n_dim_obs, n_dim_obs] {xp-array, float}
    """
    if isinstance(observation_covariance, numbers.Real):
        if observation_covariance < 0:
            raise ConfigurationError("observation variance must be non-negative, "
                                    + "but {} is given.".format(observation_covariance),
                                    "observation_covariance")
        return observation_covariance * xp.eye(n_dim_obs, dtype = dtype)

    R = xp.asarray(observation_covariance, dtype = dtype)
    if R.ndim == 0:
        return build_observation_covariance(float(R), n_dim_obs, dtype, xp)
    return _check_square_symmetric(R, n_dim_obs, "observation_covariance", xp)


def select_valid_observations(y, observation_indices, R, xp=np):
    """Drop missing observation slots

    Args:
        y [n_dim_obs] {xp-array or masked array, float}
            : observation, missing slots are NaN or masked
        observation_indices [n_dim_obs] {array-like, int}
        R [n_dim_obs, n_dim_obs] {xp-array, float}

    Returns:
        y_valid [n_valid] {xp-array, float}
        indices_valid [n_valid] {numpy-array, int}
        R_valid [n_valid, n_valid] {xp-array, float}
    """
    indices = np.asarray(observation_indices)
    if np.ma.isMaskedArray(y):
        missing = np.ma.getmaskarray(y) | np.isnan(np.ma.getdata(y))
        y = np.ma.getdata(y)
    else:
        missing = xp.isnan(xp.asarray(y, dtype = float))
    if len(y) != len(indices):
        raise ConfigurationError("length of observation ({}) and observation_indices ({}) "
                                .format(len(y), len(indices)) + "must be equal.",
                                "observation")

    valid = ~xp.asarray(missing)
    valid_host = np.asarray(valid.get() if hasattr(valid, "get") else valid, dtype=bool)
    y_valid = xp.asarray(y, dtype = R.dtype)[valid]
    R_valid = R[xp.ix_(valid, valid)]
    return y_valid, indices[valid_host], R_valid


def perturb_observations(y, R, n_particles, random_state, xp=np):
    """Raise perturbed observation ensemble

    Args:
        y [n_dim_obs] {xp-array, float}
            : observation
        R [n_dim_obs, n_dim_obs] {xp-array, float}
            : observation covariance
        n_particles {int}
            : number of particles
        random_state {np.random.Generator}
            : stream kept apart from the transition noise stream

    Returns:
        y_perturbed [n_particles, n_dim_obs] {xp-array, float}
            : row m is y + w_m, w_m ~ N(0, R)
    """
    R_host = R.get() if hasattr(R, "get") else R
    w_ensemble = sample_multivariate_normal(random_state, np.zeros(len(R_host)), R_host,
                                            n_particles, "observation_covariance")
    return y + xp.asarray(w_ensemble, dtype = R.dtype)
