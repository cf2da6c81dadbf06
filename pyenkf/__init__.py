'''
=============
Ensemble Kalman Filter Module
=============
This module provides the stochastic (perturbed observation) Ensemble Kalman
Filter update step for state-space estimation in continuous spaces.
'''

from .ensemble import EnsembleKalmanFilter, assimilate, analysis_update, \
    forecast_ensemble, update_ensemble
from .exceptions import EnKFError, ConfigurationError, NumericalError
from .gain import innovation_covariance, kalman_gain
from .model import AdditiveDriftModel, ODE, Lorenz63Model
from .observation import build_observation_matrix, build_observation_covariance, \
    perturb_observations, select_valid_observations
from .scheme import EulerScheme, RungeKuttaScheme
from .stats import ensemble_mean, ensemble_covariance, sample_multivariate_normal
from .util_functions import mean_squared_error
