"""
sample code for the stochastic EnKF
a drifting 3-layer state observed at the surface and bottom layers,
with a sensor outage in the middle of the series
"""

import sys

import numpy as np

sys.path.append("..")
from pyenkf import EnsembleKalmanFilter, AdditiveDriftModel, mean_squared_error


def main():
    seed = 121
    rng = np.random.default_rng(seed)

    # parameters
    x0 = np.array([30., 17., 8.])
    drift = np.array([-0.2, 0.05, 0.01])
    sys_sd = 0.3
    obs_sd = 0.1
    timestep = 100
    depths = [0, 2]

    # synthetic truth and observation
    true = x0 + np.cumsum(drift + rng.normal(0, sys_sd, size=(timestep, 3)), axis=0)
    obs = true[:, depths] + rng.normal(0, obs_sd, size=(timestep, len(depths)))
    obs[40:50] = np.nan

    Q = sys_sd**2 * np.eye(3)
    enkf = EnsembleKalmanFilter(process_model=AdditiveDriftModel(drift),
                                transition_covariance=Q,
                                observation_covariance=obs_sd**2,
                                observation_indices=depths,
                                initial_mean=x0, initial_covariance=np.eye(3),
                                n_particles=10, seed=seed)
    enkf.forward(obs)

    for i in range(3):
        print("state {}: rmse of prediction {:.3f}, of filter {:.3f}".format(
            i,
            np.sqrt(mean_squared_error(enkf.get_predicted_value(i), true[:, i])),
            np.sqrt(mean_squared_error(enkf.get_filtered_value(i), true[:, i]))))


if __name__ == "__main__":
    main()
