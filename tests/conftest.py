"""Pytest configuration and shared fixtures for cgopt tests.

This module provides:
- A deterministic numpy RNG fixture
- Small reference problems shared by the minimizer tests
"""

import os

import numpy as np
import pytest


@pytest.fixture(scope="function")
def rng() -> np.random.Generator:
    """Provide a deterministic numpy RNG for tests.

    Uses seed from TEST_RNG_SEED environment variable (default: 0).
    This ensures tests are reproducible while allowing override for debugging.

    Returns:
        A seeded numpy.random.Generator instance.
    """
    seed = int(os.environ.get("TEST_RNG_SEED", "0"))
    return np.random.default_rng(seed)


@pytest.fixture(scope="session")
def gram_matrix() -> np.ndarray:
    """Positive-definite Gram matrix of the box-constrained QP tests."""
    return np.array(
        [
            [3.0, 1.0, 3.0, 0.0, 1.0],
            [1.0, 3.0, 3.0, 0.0, 1.0],
            [3.0, 3.0, 5.0, 1.0, 3.0],
            [0.0, 0.0, 1.0, 2.0, 3.0],
            [1.0, 1.0, 3.0, 3.0, 5.0],
        ]
    )


@pytest.fixture(scope="session")
def box_constraints():
    """Constraints ``0 <= x_i <= 10`` of a 5-dimensional box.

    Returns ``(count, values, gradients)`` as index -> callable maps; indices
    below 5 are the lower bounds ``-x_i <= 0``.
    """
    n = 5

    def values(i):
        if i < n:
            return lambda x: -x[i]
        return lambda x: x[i - n] - 10.0

    def gradients(i):
        grad = np.zeros(n)
        if i < n:
            grad[i] = -1.0
        else:
            grad[i - n] = 1.0
        return lambda x: grad

    return 2 * n, values, gradients
