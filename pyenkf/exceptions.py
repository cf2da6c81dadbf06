"""
errors raised by the ensemble kalman filter
"""

import numpy as np


class EnKFError(Exception):
    """Base class of every error raised by pyenkf"""


class ConfigurationError(EnKFError, ValueError):
    """Inputs are inconsistent and were rejected before any computation.

    Args:
        message {str}
            : description of the problem
        name {str}
            : name of the offending argument
    """

    def __init__(self, message, name=None):
        super(ConfigurationError, self).__init__(message)
        self.name = name


class NumericalError(EnKFError, np.linalg.LinAlgError):
    """A matrix could not be sampled from or factorized during a cycle.

    Args:
        message {str}
            : description of the failure
        matrix {str}
            : name of the matrix which failed
        cycle {int}
            : index of the assimilation cycle, filled by the orchestration
    """

    def __init__(self, message, matrix=None, cycle=None):
        super(NumericalError, self).__init__(message)
        self.message = message
        self.matrix = matrix
        self.cycle = cycle

    def __str__(self):
        context = []
        if self.matrix is not None:
            context.append("matrix={}".format(self.matrix))
        if self.cycle is not None:
            context.append("cycle={}".format(self.cycle))
        if context:
            return "{} ({})".format(self.message, ", ".join(context))
        return self.message
