"""
kalman gain calculation
"""

import numpy as np
from scipy import linalg

from .exceptions import NumericalError


def innovation_covariance(Cxx, H, R):
    """Calculate innovation covariance S = H Cxx H^T + R

    Args:
        Cxx [n_dim_sys, n_dim_sys] {xp-array, float}
            : ensemble covariance
        H [n_dim_obs, n_dim_sys] {xp-array, float}
            : observation matrix
        R [n_dim_obs, n_dim_obs] {xp-array, float}
            : observation covariance

    Returns:
        S [n_dim_obs, n_dim_obs] {xp-array, float}
    """
    return H @ Cxx @ H.T + R


def kalman_gain(Cxx, H, R, max_condition_number=1e12, xp=np):
    """Calculate kalman gain K = Cxx H^T S^{-1}

    S is symmetric, so K^T = S^{-1} H Cxx is obtained from a Cholesky solve
    instead of an explicit inverse.

    Args:
        Cxx [n_dim_sys, n_dim_sys] {xp-array, float}
            : ensemble covariance
        H [n_dim_obs, n_dim_sys] {xp-array, float}
            : observation matrix
        R [n_dim_obs, n_dim_obs] {xp-array, float}
            : observation covariance
        max_condition_number {float}
            : S with larger 2-norm condition number is rejected

    Returns:
        K [n_dim_sys, n_dim_obs] {xp-array, float}

    Raises:
        NumericalError : S is non-finite, ill-conditioned or not positive definite
    """
    S = innovation_covariance(Cxx, H, R)
    if not bool(xp.all(xp.isfinite(S))):
        raise NumericalError("innovation covariance has non-finite entries",
                             "innovation_covariance")

    # S is only n_dim_obs x n_dim_obs, condition on host
    S_host = S.get() if hasattr(S, "get") else S
    condition_number = float(np.linalg.cond(S_host))
    if not condition_number <= max_condition_number:
        raise NumericalError("innovation covariance is singular or ill-conditioned "
                             + "(condition number {:.3e} > {:.3e})".format(condition_number,
                                                                           max_condition_number),
                             "innovation_covariance")

    HC = H @ Cxx
    try:
        if xp is np:
            K_T = linalg.cho_solve(linalg.cho_factor(S), HC)
        else:
            xp.linalg.cholesky(S)
            K_T = xp.linalg.solve(S, HC)
    except (linalg.LinAlgError, np.linalg.LinAlgError) as e:
        raise NumericalError("innovation covariance is not positive definite: {}".format(e),
                             "innovation_covariance") from e
    return K_T.T
