"""Random variate generation for path simulation.

All draws come from an explicit ``numpy.random.Generator`` so callers control
entropy. An unseeded generator (the default) is not reproducible between runs.
"""

import numpy as np

LOG_EPSILON = 1e-10
STUDENT_T_CLIP = 10.0

Size = int | tuple[int, ...] | None


def make_rng(seed: int | None = None) -> np.random.Generator:
    """Create a generator; ``seed=None`` draws fresh OS entropy."""
    return np.random.default_rng(seed)


def standard_normal(rng: np.random.Generator, size: Size = None) -> np.ndarray | float:
    """Standard normal draws via the Box-Muller transform."""
    u1 = rng.random(size)
    u2 = rng.random(size)
    z = np.sqrt(-2.0 * np.log(u1 + LOG_EPSILON)) * np.cos(2.0 * np.pi * u2)
    return float(z) if size is None else z


def student_t(
    rng: np.random.Generator,
    degrees_of_freedom: float,
    size: Size = None,
) -> np.ndarray | float:
    """Student-t draws as a normal over the root of a scaled chi-square.

    Output is clipped to [-10, 10]; with small degrees of freedom the ratio
    occasionally explodes when the chi-square draw lands near zero.
    """
    if degrees_of_freedom <= 0:
        raise ValueError(f"degrees_of_freedom must be positive, got {degrees_of_freedom}")

    z = standard_normal(rng, size)
    chi2 = rng.chisquare(degrees_of_freedom, size)
    t = z / np.sqrt(chi2 / degrees_of_freedom + LOG_EPSILON)
    t = np.clip(t, -STUDENT_T_CLIP, STUDENT_T_CLIP)
    return float(t) if size is None else t


def unit_student_t(
    rng: np.random.Generator,
    degrees_of_freedom: float,
    size: Size = None,
) -> np.ndarray | float:
    """Student-t draws rescaled to unit variance (requires df > 2)."""
    if degrees_of_freedom <= 2:
        raise ValueError("unit-variance Student-t needs degrees_of_freedom > 2")
    scale = np.sqrt(degrees_of_freedom / (degrees_of_freedom - 2.0))
    t = student_t(rng, degrees_of_freedom, size)
    return t / scale


def correlated_shock(
    market_factor: np.ndarray | float,
    idiosyncratic: np.ndarray | float,
    correlation: float,
) -> np.ndarray | float:
    """Blend a shared market shock with an item-specific one.

    ``rho * market + sqrt(1 - rho^2) * idiosyncratic`` keeps unit variance when
    both inputs have unit variance.
    """
    if not -1.0 <= correlation <= 1.0:
        raise ValueError(f"correlation must lie in [-1, 1], got {correlation}")
    return correlation * market_factor + np.sqrt(1.0 - correlation**2) * idiosyncratic
