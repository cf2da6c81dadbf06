# statistical functions

import numpy as np

from .exceptions import ConfigurationError, NumericalError


### Ensemble statistics
def ensemble_mean(x, xp=np):
    """
    Attributes:
        x [n_particles, n_dim_sys] {xp-array, float}
    """
    return xp.mean(x, axis=0)


def ensemble_covariance(x, xp=np):
    """Unbiased sample covariance of the ensemble about its mean

    Deviation outer products of all members are sum-reduced and divided
    by `n_particles - 1`.

    Args:
        x [n_particles, n_dim_sys] {xp-array, float}
            : ensemble

    Returns:
        Cxx [n_dim_sys, n_dim_sys] {xp-array, float}
    """
    if x.ndim != 2:
        raise ConfigurationError("ensemble must be a 2-d array [n_particles, n_dim_sys], "
                                + "but ndim is {}.".format(x.ndim), "ensemble")
    n_particles = x.shape[0]
    if n_particles < 2:
        raise ConfigurationError("ensemble covariance needs at least 2 particles, "
                                + "but {} is given.".format(n_particles), "n_particles")

    x_center = x - ensemble_mean(x, xp)
    return xp.einsum("ni,nj->ij", x_center, x_center) / (n_particles - 1)


### Random source
def sample_multivariate_normal(random_state, mean, cov, size, name="covariance"):
    """Draw `size` samples from N(mean, cov)

    Args:
        random_state {np.random.Generator, np.random.RandomState}
        mean [n_dim] {numpy-array, float}
        cov [n_dim, n_dim] {numpy-array, float}
            : symmetric positive semi-definite covariance
        size {int}
            : number of samples
        name {str}
            : name of `cov` reported on failure

    Returns:
        samples [size, n_dim] {numpy-array, float}

    Raises:
        NumericalError : `cov` is not positive semi-definite
    """
    mean = np.asarray(mean, dtype=float)
    cov = np.asarray(cov, dtype=float)
    if not np.all(np.isfinite(cov)):
        raise NumericalError("{} has non-finite entries".format(name), name)

    try:
        if isinstance(random_state, np.random.Generator):
            # eigh keeps semi-definite covariances usable
            return random_state.multivariate_normal(mean, cov, size=size,
                                                    check_valid="raise", method="eigh")
        return random_state.multivariate_normal(mean, cov, size=size, check_valid="raise")
    except (ValueError, np.linalg.LinAlgError) as e:
        raise NumericalError("{} is not positive semi-definite: {}".format(name, e), name) from e
