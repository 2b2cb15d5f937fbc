"""Market regimes and seasonal adjustments.

A regime depends only on elapsed simulation time and the item's estimated
time to retirement, so the simulator never needs to know how the estimate
was produced.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Mapping

import numpy as np

logger = logging.getLogger(__name__)

RETIRING_LEAD_MONTHS = 6.0
RETIRED_LAG_MONTHS = 12.0


class Regime(str, Enum):
    ACTIVE = "active"
    RETIRING = "retiring"
    RETIRED = "retired"


def regime_at(
    elapsed_years: float,
    months_until_retirement: float | None,
    retiring_lead_months: float = RETIRING_LEAD_MONTHS,
    retired_lag_months: float = RETIRED_LAG_MONTHS,
) -> Regime:
    """Regime of an item ``elapsed_years`` into the simulation.

    Retiring from ``lead`` months before the estimated exit until ``lag``
    months after it, retired afterwards. No estimate means active forever.
    """
    if months_until_retirement is None:
        return Regime.ACTIVE

    elapsed_months = elapsed_years * 12.0
    if elapsed_months > months_until_retirement + retired_lag_months:
        return Regime.RETIRED
    if elapsed_months > months_until_retirement - retiring_lead_months:
        return Regime.RETIRING
    return Regime.ACTIVE


@dataclass(frozen=True)
class RegimeSchedule:
    """Per-step drift/volatility multipliers for one item."""

    months_until_retirement: float | None
    drift_multipliers: Mapping[Regime, float]
    volatility_multipliers: Mapping[Regime, float]
    retiring_lead_months: float = RETIRING_LEAD_MONTHS
    retired_lag_months: float = RETIRED_LAG_MONTHS

    @classmethod
    def from_settings(cls, months_until_retirement: float | None, settings) -> "RegimeSchedule":
        mults = settings.regime_multipliers
        return cls(
            months_until_retirement=months_until_retirement,
            drift_multipliers={r: mults[r.value].drift for r in Regime},
            volatility_multipliers={r: mults[r.value].volatility for r in Regime},
            retiring_lead_months=settings.regime_retiring_lead_months,
            retired_lag_months=settings.regime_retired_lag_months,
        )

    def regimes(self, num_steps: int, steps_per_year: int) -> list[Regime]:
        return [
            regime_at(
                t / steps_per_year,
                self.months_until_retirement,
                self.retiring_lead_months,
                self.retired_lag_months,
            )
            for t in range(num_steps)
        ]

    def step_arrays(
        self, num_steps: int, steps_per_year: int
    ) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Return (drift multiplier, vol multiplier, is-retiring mask) per step."""
        regimes = self.regimes(num_steps, steps_per_year)
        drift = np.array([self.drift_multipliers[r] for r in regimes], dtype=float)
        vol = np.array([self.volatility_multipliers[r] for r in regimes], dtype=float)
        retiring = np.array([r is Regime.RETIRING for r in regimes], dtype=bool)
        return drift, vol, retiring


@dataclass(frozen=True)
class SeasonalTable:
    """Fixed month -> multiplicative price factor table."""

    factors: Mapping[int, float]

    def factor(self, month: int) -> float:
        return float(self.factors.get(month, 1.0))

    def step_log_adjustments(
        self, num_steps: int, steps_per_year: int, start_month: int
    ) -> np.ndarray:
        """Log-return contribution of seasonality for each step.

        A month's factor ``f`` is spread over the steps of that month as
        ``log(1 + (f - 1) * dt)`` per step.
        """
        dt = 1.0 / steps_per_year
        adj = np.empty(num_steps)
        for t in range(num_steps):
            month = (start_month - 1 + int(t * 12 // steps_per_year)) % 12 + 1
            adj[t] = np.log1p((self.factor(month) - 1.0) * dt)
        return adj
