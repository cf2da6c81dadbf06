import numpy as np

from .utils import check_random_state


class Scheme(object):
    """Time integration of an `ODE` system

    Args:
        dt {float} : time step
        system {ODE} : system with `f(t, x)`
        seed {int} : random seed for simulated noise
    """
    def __init__(self, dt, system, seed=121, xp_type="numpy"):
        self.dt = dt
        self.system = system
        if xp_type=="numpy":
            self.xp = np
        elif xp_type=="cupy":
            import cupy
            self.xp = cupy
        self.random_state = check_random_state(seed)


    def _forward(self, t, x):
        raise NotImplementedError


    def integrate(self, x, t=0, n_steps=1):
        """Advance `x` by `n_steps` time steps starting at time `t`"""
        current_x = x
        for s in range(n_steps):
            current_x = self._forward(t + s*self.dt, current_x)
        return current_x


    def get_advance_function(self, t=0, n_steps=1):
        """Process model advance(state) -> state covering `n_steps` time steps"""
        def advance(x):
            return self.integrate(x, t, n_steps)
        return advance


    def noise_added_simulation(self, initial_x, timestep, sys_sd, obs_sd, n_steps=1):
        """Simulate truth with system noise and its noisy observation

        Args:
            initial_x [n_dim_sys] {numpy-array, float}
            timestep {int} : length of simulated series
            sys_sd {float} : standard deviation of system noise per record
            obs_sd {float} : standard deviation of observation noise
            n_steps {int} : time steps between consecutive records

        Returns:
            true_x [timestep, n_dim_sys] {numpy-array, float}
            obs_x [timestep, n_dim_sys] {numpy-array, float}
        """
        true_x = self.xp.zeros((timestep, len(initial_x)))
        obs_x = self.xp.zeros((timestep, len(initial_x)))
        current_x = self.xp.asarray(initial_x, dtype=float).copy()
        true_x[0] = current_x
        obs_x[0] = current_x

        for s in range(timestep-1):
            current_x = self.integrate(current_x, s*n_steps*self.dt, n_steps) \
                        + self.xp.asarray(self.random_state.normal(0, sys_sd, size=len(initial_x)))
            true_x[s+1] = current_x
            obs_x[s+1] = current_x \
                        + self.xp.asarray(self.random_state.normal(0, obs_sd, size=len(initial_x)))

        return true_x, obs_x



class EulerScheme(Scheme):
    def _forward(self, t, x):
        return x + self.system.f(t, x) * self.dt



class RungeKuttaScheme(Scheme):
    def _forward(self, t, x):
        k1 = self.system.f(t, x)
        k2 = self.system.f(t + self.dt/2, x + k1*self.dt/2)
        k3 = self.system.f(t + self.dt/2, x + k2*self.dt/2)
        k4 = self.system.f(t + self.dt, x + k3*self.dt)
        return x + (k1 + 2*k2 + 2*k3 + k4) * self.dt / 6
