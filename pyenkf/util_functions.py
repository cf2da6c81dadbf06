# Copyright (c) The pyakalman developers.
# All rights reserved.
"""
utility functions
"""

import numpy as np

from .exceptions import ConfigurationError


def judge_xp_type(xp_type = "numpy"):
    if xp_type in ["numpy", False]:
        return np
    elif xp_type in ["cupy", True]:
        import cupy
        return cupy
    raise ValueError("xp_type must be \"numpy\" or \"cupy\", but {!r} is given.".format(xp_type))


def _determine_dimensionality(variables, default = None, name = None):
    """Derive the dimensionality of the state space
    Parameters
    ----------
    variables : list of ({None, array}, conversion function, index)
        variables, functions to convert them to arrays, and indices in those
        arrays to derive dimensionality from.

    default : {None, int}
        default dimensionality to return if variables is empty

    name : {None, str}
        name of the dimension reported on inconsistency

    Returns
    -------
    dim : int
        dimensionality of state space as derived from variables or default.
    """
    # gather possible values based on the variables
    candidates = []
    for (v, converter, idx) in variables:
        if v is not None:
            v = converter(v)
            candidates.append(v.shape[idx])

    # also use the manually specified default
    if default is not None:
        candidates.append(default)

    # ensure consistency of all derived values
    if len(candidates) == 0:
        return 1
    if not np.all(np.array(candidates) == candidates[0]):
        raise ConfigurationError(
            "The shape of all parameters is not consistent "
            + "({} candidates: {}). ".format(name or "dimension", candidates)
            + "Please re-check their values.", name
        )
    return int(candidates[0])


def _parse_observations(obs, n_dim_obs=None, xp_type="numpy"):
    """Safely convert observations to their expected format

    Missing values are given as NaN or as masked entries and are returned
    masked, time on the first axis. A 1-d series, or a single row when
    `n_dim_obs` is 1, is read as one slot observed over time.
    """
    xp = judge_xp_type(xp_type)
    one_dimensional = np.ndim(obs) <= 1
    obs = np.ma.atleast_2d(obs)

    # time axis must come first
    if obs.shape[0] == 1 and obs.shape[1] > 1 \
        and (n_dim_obs == 1 or (one_dimensional and n_dim_obs is None)):
        obs = obs.T

    mask = np.ma.getmaskarray(obs) | np.isnan(np.ma.getdata(obs))
    obs = np.ma.array(np.ma.getdata(obs), mask = mask, dtype = float)
    if xp is not np:
        # cupy has no masked array, missing values travel as NaN
        return xp.asarray(obs.filled(np.nan))
    return obs


def _check_square_symmetric(A, n_dim, name, xp=np):
    """Check `A` is a symmetric [n_dim, n_dim] matrix

    Raises:
        ConfigurationError : shape mismatch or asymmetry
    """
    if A.ndim != 2 or A.shape != (n_dim, n_dim):
        raise ConfigurationError("Shape of {} must be ({},{}), ".format(name, n_dim, n_dim)
                                + "however, shape of correspondence is {}.".format(A.shape), name)
    if not bool(xp.allclose(A, A.T)):
        raise ConfigurationError("{} must be symmetric.".format(name), name)
    return A


# calculate MSE
def mean_squared_error(x, y, xp_type="numpy"):
    assert x.shape == y.shape
    xp = judge_xp_type(xp_type)
    return xp.square(x - y).mean()

