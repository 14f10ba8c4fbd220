"""
Shared signals for the embedding tests.

The sine uses a non-integer period (~100.5 samples) so that no two samples
of the record coincide exactly.
"""

import numpy as np
import pytest


def make_sine(n=2000):
    t = np.arange(n)
    return np.sin(t / 16.0)


def make_henon(n=2000, transient=200):
    """x-coordinate of the Henon map (a=1.4, b=0.3)."""
    x, y = 0.1, 0.1
    out = np.empty(n + transient)
    for i in range(n + transient):
        x, y = 1.0 - 1.4 * x * x + y, 0.3 * x
        out[i] = x
    return out[transient:]


def make_henon_xy(n=2000, transient=200):
    """Both coordinates of the Henon map (a=1.4, b=0.3)."""
    x, y = 0.1, 0.1
    out = np.empty((n + transient, 2))
    for i in range(n + transient):
        x, y = 1.0 - 1.4 * x * x + y, 0.3 * x
        out[i] = x, y
    return out[transient:, 0], out[transient:, 1]


@pytest.fixture
def sine():
    return make_sine()


@pytest.fixture
def henon():
    return make_henon()
