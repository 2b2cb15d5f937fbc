"""Pytest configuration and shared fixtures."""

from datetime import date

import numpy as np
import pytest

from brickcast.analysis.sim_models import ItemState
from brickcast.config import Settings


@pytest.fixture
def settings():
    """Default settings pinned to January so seasonality is deterministic."""
    return Settings(simulation_start_month=1, garch_fit_enabled=False)


@pytest.fixture
def rng():
    return np.random.default_rng(12345)


@pytest.fixture
def monthly_history():
    """Three years of noisy monthly valuations (~8% annual growth)."""
    rng = np.random.default_rng(42)
    rets = rng.normal(0.08 / 12, 0.05, 36)
    values = 100.0 * np.exp(np.cumsum(rets))
    return tuple(
        (date(2021 + i // 12, i % 12 + 1, 1), float(v))
        for i, v in enumerate(values)
    )


@pytest.fixture
def sample_item(monthly_history):
    return ItemState(
        item_id="75192-1",
        current_value=850.0,
        history=monthly_history,
        theme="Star Wars / UCS",
        age_years=3.0,
        is_licensed=True,
        months_until_retirement=8.0,
    )


@pytest.fixture
def bare_item():
    """No history, no retirement estimate: every input falls back to defaults."""
    return ItemState(item_id="10305-1", current_value=500.0)
