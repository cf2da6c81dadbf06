import numpy as np


class AdditiveDriftModel(object):
    """Placeholder process model, advance(x) = x + drift

    Args:
        drift {float} or [n_dim_sys] {numpy-array, float}
            : constant increment per cycle
    """
    def __init__(self, drift=0., xp_type="numpy"):
        if xp_type=="numpy":
            self.xp = np
        elif xp_type=="cupy":
            import cupy
            self.xp = cupy
        self.drift = self.xp.asarray(drift, dtype=float)

    def advance(self, x):
        return x + self.drift

    def __call__(self, x):
        return self.advance(x)


class ODE(object):
    def __init__(self, xp_type="numpy"):
        if xp_type=="numpy":
            self.xp = np
        elif xp_type=="cupy":
            import cupy
            self.xp = cupy

    def f(self, t, x):
        raise NotImplementedError


class Lorenz63Model(ODE):
    def __init__(self, sigma=10., rho=28., beta=8/3, xp_type="numpy"):
        super(Lorenz63Model, self).__init__(xp_type)
        self.sigma = sigma
        self.rho = rho
        self.beta = beta

    def f(self, t, x):
        dx = self.xp.zeros_like(x)
        dx[0] = self.sigma * (x[1] - x[0])
        dx[1] = x[0] * (self.rho - x[2]) - x[1]
        dx[2] = x[0] * x[1] - self.beta * x[2]
        return dx
