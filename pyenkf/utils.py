"""
array and random state coercion helpers
"""

import numbers

import numpy as np


def array1d(X, dtype=None, order=None):
    """Returns at least 1-d array with data from X"""
    return np.asarray(np.atleast_1d(X), dtype=dtype, order=order)


def array2d(X, dtype=None, order=None):
    """Returns at least 2-d array with data from X"""
    return np.asarray(np.atleast_2d(X), dtype=dtype, order=order)


def check_random_state(seed):
    """Turn seed into a np.random.Generator instance

    Args:
        seed {None, int, SeedSequence, Generator, RandomState}
            : None -> fresh entropy,
            int or SeedSequence -> new Generator seeded with it,
            Generator or RandomState -> returned as it is

    Returns:
        random state which provides `multivariate_normal`
    """
    if seed is None or isinstance(seed, (numbers.Integral, np.random.SeedSequence)):
        return np.random.default_rng(seed)
    if isinstance(seed, (np.random.Generator, np.random.RandomState)):
        return seed
    raise ValueError("{!r} cannot be used to seed a random generator".format(seed))


def spawn_random_states(seed, n_streams=2, spawn_key=()):
    """Derive independent random streams from one seed

    Args:
        seed {None, int, SeedSequence, Generator, RandomState}
            : a Generator or RandomState is shared by all streams, which then
            draw from it one after another. Anything else seeds a
            `SeedSequence` whose children feed the streams
        n_streams {int}
            : number of streams
        spawn_key {tuple of int}
            : distinguishes e.g. cycles drawn from the same seed

    Returns:
        list of `n_streams` random states

    A given `SeedSequence` is not advanced, so passing it again yields the
    same streams.
    """
    if isinstance(seed, (np.random.Generator, np.random.RandomState)):
        return [seed] * n_streams
    if isinstance(seed, np.random.SeedSequence):
        seed_sequence = np.random.SeedSequence(seed.entropy,
                                               spawn_key=tuple(seed.spawn_key) + tuple(spawn_key),
                                               pool_size=seed.pool_size)
    elif seed is None or isinstance(seed, numbers.Integral):
        seed_sequence = np.random.SeedSequence(seed, spawn_key=tuple(spawn_key))
    else:
        raise ValueError("{!r} cannot be used to seed a random generator".format(seed))
    return [np.random.default_rng(s) for s in seed_sequence.spawn(n_streams)]
