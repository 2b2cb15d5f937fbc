"""Integration tests for ensemble combination, orchestration and result records."""

import numpy as np
import pytest

from brickcast.analysis.sim_models import ItemState, ModelResult, SimModel
from brickcast.analysis.sim_models.ensemble import (
    combine_ensemble,
    model_agreement,
    recommendations,
    validate_weights,
)
from brickcast.analysis.simulation import derive_seed, simulate, simulate_portfolio
from brickcast.analysis.statistics import compute_statistics, growth_pct
from brickcast.schemas import PortfolioRecord, ProjectionRecord

NUM_TRIALS = 2000  # smaller for test speed


def _model_result(name: str, trials, current_value: float = 100.0) -> ModelResult:
    trials = np.asarray(trials, dtype=float)
    return ModelResult(
        model=name,
        horizon_years=1.0,
        trials=trials,
        statistics=compute_statistics(trials, current_value),
    )


# ---------------------------------------------------------------------------
# Ensemble Tests
# ---------------------------------------------------------------------------

class TestEnsemble:
    def test_constant_arrays(self):
        results = {
            "monte_carlo": _model_result("monte_carlo", np.full(1000, 120.0)),
            "scenario": _model_result("scenario", np.full(1000, 80.0)),
        }
        combined = combine_ensemble(results, {"monte_carlo": 0.7, "scenario": 0.3})
        np.testing.assert_allclose(combined, 0.7 * 120.0 + 0.3 * 80.0)

    def test_index_aligned(self):
        a = np.arange(1.0, 6.0)
        b = np.arange(10.0, 60.0, 10.0)
        combined = combine_ensemble({"garch": a, "bootstrap": b}, {"garch": 0.5, "bootstrap": 0.5})
        np.testing.assert_allclose(combined, 0.5 * a + 0.5 * b)

    def test_length_mismatch_raises(self):
        with pytest.raises(ValueError, match="equal length"):
            combine_ensemble(
                {"garch": np.ones(10), "bootstrap": np.ones(11)},
                {"garch": 0.5, "bootstrap": 0.5},
            )

    def test_weights_must_sum_to_one(self):
        with pytest.raises(ValueError, match="sum to 1.0"):
            combine_ensemble({"garch": np.ones(3)}, {"garch": 0.9})

    def test_missing_result_raises(self):
        with pytest.raises(ValueError, match="without results"):
            combine_ensemble({"garch": np.ones(3)}, {"garch": 0.5, "stress": 0.5})

    def test_zero_weight_model_ignored(self):
        combined = combine_ensemble({"garch": np.ones(3) * 2}, {"garch": 1.0, "stress": 0.0})
        np.testing.assert_allclose(combined, 2.0)

    def test_unknown_model_rejected(self):
        with pytest.raises(ValueError, match="unknown"):
            validate_weights({"heston": 1.0})

    def test_enum_keys_accepted(self):
        weights = validate_weights({SimModel.GARCH: 0.6, SimModel.STRESS: 0.4})
        assert weights == {"garch": 0.6, "stress": 0.4}
        combined = combine_ensemble(
            {SimModel.GARCH: np.full(3, 10.0), "stress": np.full(3, 20.0)},
            {SimModel.GARCH: 0.6, "stress": 0.4},
        )
        np.testing.assert_allclose(combined, 14.0)

    def test_negative_weight_rejected(self):
        with pytest.raises(ValueError):
            validate_weights({"garch": 1.5, "stress": -0.5})

    def test_agreement_identical_models(self):
        results = {
            "garch": _model_result("garch", np.full(10, 150.0)),
            "stress": _model_result("stress", np.full(10, 150.0)),
        }
        assert model_agreement(results) == pytest.approx(100.0)

    def test_agreement_diverging_models(self):
        results = {
            "garch": _model_result("garch", np.full(10, 150.0)),
            "stress": _model_result("stress", np.full(10, 110.0)),
        }
        # growths 50% and 10%: stdev 20, mean 30
        assert model_agreement(results) == pytest.approx(100.0 - 20.0 / 30.0 * 100.0)

    def test_agreement_needs_two_models(self):
        assert model_agreement({"garch": _model_result("garch", np.full(10, 150.0))}) is None


# ---------------------------------------------------------------------------
# Recommendations
# ---------------------------------------------------------------------------

def _stats(median_pct: float, prob_loss: float) -> dict:
    return {"growth": {"median_pct": median_pct}, "risk": {"prob_loss": prob_loss}}


class TestRecommendations:
    @pytest.mark.parametrize("prob_loss, level", [
        (0.0, "LOW"), (0.0099, "LOW"), (0.01, "MODERATE"), (0.049, "MODERATE"),
        (0.05, "ELEVATED"), (0.099, "ELEVATED"), (0.10, "HIGH"), (0.60, "HIGH"),
    ])
    def test_risk_level_from_fractional_prob_loss(self, prob_loss, level):
        assert recommendations(_stats(15.0, prob_loss))["risk_level"] == level

    @pytest.mark.parametrize("median_pct, level", [
        (45.0, "EXCELLENT"), (30.0, "GOOD"), (20.5, "GOOD"), (20.0, "MODERATE"),
        (10.5, "MODERATE"), (10.0, "LOW"), (-8.0, "LOW"),
    ])
    def test_return_level(self, median_pct, level):
        assert recommendations(_stats(median_pct, 0.02))["return_level"] == level

    def test_risk_adjusted_score(self):
        # 25% growth over 2% P(loss)
        assert recommendations(_stats(25.0, 0.02))["risk_adjusted_score"] == pytest.approx(12.5)
        # P(loss) floored at 0.1%
        assert recommendations(_stats(25.0, 0.0))["risk_adjusted_score"] == pytest.approx(250.0)

    def test_summary(self):
        rec = recommendations(_stats(25.0, 0.005), agreement=90.0)
        assert rec["summary"] == "Strong growth expected with very low downside risk (high model confidence)"
        rec = recommendations(_stats(12.0, 0.03), agreement=50.0)
        assert rec["summary"] == "Moderate growth expected with acceptable risk levels (models show uncertainty)"
        rec = recommendations(_stats(2.0, 0.2), agreement=70.0)
        assert rec["summary"] == "Conservative growth expected but with notable risk exposure"
        assert recommendations(_stats(2.0, 0.2))["summary"] == rec["summary"]


# ---------------------------------------------------------------------------
# Single-item simulation
# ---------------------------------------------------------------------------

class TestSimulate:
    def test_end_to_end_default_parameters(self, bare_item, settings):
        """500 at drift 0.05 / vol 0.20 for 5 years lands near 500 * 1.05^5."""
        result = simulate(bare_item, 5.0, num_trials=10_000, settings=settings, seed=2024)
        stats = result["statistics"]
        assert 540.0 < stats["median"] < 760.0
        assert stats["percentiles"]["p5"] < stats["median"] < stats["percentiles"]["p95"]
        assert result["calibration"]["source"] == "default"

    def test_end_to_end_monte_carlo_only(self, bare_item, settings):
        result = simulate(
            bare_item, 5.0, num_trials=10_000, weights={"monte_carlo": 1.0},
            settings=settings, seed=2024,
        )
        stats = result["statistics"]
        assert 540.0 < stats["median"] < 740.0
        assert stats["percentiles"]["p5"] < stats["median"] < stats["percentiles"]["p95"]

    def test_result_structure(self, sample_item, settings):
        result = simulate(sample_item, 3.0, num_trials=NUM_TRIALS, settings=settings, seed=1)
        assert result["item_id"] == sample_item.item_id
        assert result["trials"].shape == (NUM_TRIALS,)
        assert set(result["model_results"]) == {
            "monte_carlo", "scenario", "stress", "bootstrap", "garch", "bayesian",
        }
        assert sum(result["weights"].values()) == pytest.approx(1.0)
        for mr in result["model_results"].values():
            assert mr["trials"].shape == (NUM_TRIALS,)
        agreement = result["model_agreement"]
        assert agreement is None or 0.0 <= agreement <= 100.0
        assert result["theme"] == "Star Wars / UCS"
        assert result["recommendations"] == recommendations(result["statistics"], agreement)

    def test_combined_is_weighted_sum(self, sample_item, settings):
        result = simulate(sample_item, 1.0, num_trials=NUM_TRIALS, settings=settings, seed=3)
        expected = sum(
            w * result["model_results"][m]["trials"] for m, w in result["weights"].items()
        )
        np.testing.assert_allclose(result["trials"], expected)

    def test_combined_within_model_bounds(self, sample_item, settings):
        result = simulate(sample_item, 10.0, num_trials=NUM_TRIALS, settings=settings, seed=4)
        floors = [settings.bounds_for(m)[0] for m in result["weights"]]
        caps = [settings.bounds_for(m)[1] for m in result["weights"]]
        assert result["trials"].min() >= sample_item.current_value * min(floors)
        assert result["trials"].max() <= sample_item.current_value * max(caps)

    def test_invalid_weights_raise(self, bare_item, settings):
        with pytest.raises(ValueError):
            simulate(bare_item, 1.0, num_trials=10, weights={"monte_carlo": 0.5}, settings=settings)

    def test_invalid_horizon_raises(self, bare_item, settings):
        with pytest.raises(ValueError):
            simulate(bare_item, 0.0, num_trials=10, settings=settings, seed=1)

    def test_non_positive_value_rejected(self):
        with pytest.raises(ValueError):
            ItemState(item_id="x", current_value=0.0)


# ---------------------------------------------------------------------------
# Seed Stability Tests
# ---------------------------------------------------------------------------

class TestSeedStability:
    def test_same_seed_reproducible(self, sample_item, settings):
        r1 = simulate(sample_item, 1.0, num_trials=500, settings=settings, seed=11)
        r2 = simulate(sample_item, 1.0, num_trials=500, settings=settings, seed=11)
        np.testing.assert_array_equal(r1["trials"], r2["trials"])

    def test_seeded_generator_reproducible(self, bare_item, settings):
        r1 = simulate(bare_item, 1.0, num_trials=200, settings=settings, rng=np.random.default_rng(7))
        r2 = simulate(bare_item, 1.0, num_trials=200, settings=settings, rng=np.random.default_rng(7))
        np.testing.assert_array_equal(r1["trials"], r2["trials"])

    def test_different_seeds_differ(self, sample_item, settings):
        r1 = simulate(sample_item, 1.0, num_trials=500, settings=settings, seed=11)
        r2 = simulate(sample_item, 1.0, num_trials=500, settings=settings, seed=12)
        assert r1["statistics"]["median"] != r2["statistics"]["median"]

    def test_model_isolation(self, sample_item, settings):
        """A model's trials do not depend on which other models run alongside it."""
        alone = simulate(
            sample_item, 1.0, num_trials=500, weights={"garch": 1.0}, settings=settings, seed=5
        )
        mixed = simulate(
            sample_item, 1.0, num_trials=500, weights={"garch": 0.5, "stress": 0.5},
            settings=settings, seed=5,
        )
        np.testing.assert_array_equal(
            alone["model_results"]["garch"]["trials"], mixed["model_results"]["garch"]["trials"]
        )

    def test_derive_seed_stable(self):
        assert derive_seed(1, "a", "garch") == derive_seed(1, "a", "garch")
        assert derive_seed(1, "a", "garch") != derive_seed(1, "b", "garch")
        assert 0 <= derive_seed(1, "a") < 2**63


# ---------------------------------------------------------------------------
# Portfolio Tests
# ---------------------------------------------------------------------------

@pytest.fixture
def portfolio(sample_item, bare_item):
    return [sample_item, bare_item]


class TestPortfolio:
    def test_sums_items_index_wise(self, portfolio, settings):
        projections = simulate_portfolio(
            portfolio, horizons=(1.0, 5.0), num_trials=NUM_TRIALS, settings=settings, seed=8
        )
        assert list(projections) == [1.0, 5.0]
        for horizon, projection in projections.items():
            assert projection["current_value"] == pytest.approx(850.0 + 500.0)
            item_sum = sum(r["trials"] for r in projection["items"].values())
            np.testing.assert_allclose(projection["trials"], item_sum)
            assert projection["statistics"]["num_trials"] == NUM_TRIALS
            assert projection["items"]["75192-1"]["horizon_years"] == horizon

    def test_reproducible_with_seed(self, portfolio, settings):
        a = simulate_portfolio(portfolio, horizons=(1.0,), num_trials=300, settings=settings, seed=9)
        b = simulate_portfolio(portfolio, horizons=(1.0,), num_trials=300, settings=settings, seed=9)
        np.testing.assert_array_equal(a[1.0]["trials"], b[1.0]["trials"])

    def test_items_share_market_factor(self, settings):
        items = [ItemState(item_id=f"set-{i}", current_value=100.0) for i in range(2)]
        projections = simulate_portfolio(
            items, horizons=(3.0,), num_trials=4000, weights={"monte_carlo": 1.0},
            settings=settings, seed=21,
        )
        results = projections[3.0]["items"]
        corr = np.corrcoef(np.log(results["set-0"]["trials"]), np.log(results["set-1"]["trials"]))[0, 1]
        assert corr > 0.05

    def test_parallel_matches_sequential(self, portfolio, settings):
        seq = simulate_portfolio(
            portfolio, horizons=(1.0,), num_trials=300, settings=settings, seed=10, max_workers=1
        )
        par = simulate_portfolio(
            portfolio, horizons=(1.0,), num_trials=300, settings=settings, seed=10, max_workers=2
        )
        np.testing.assert_array_equal(seq[1.0]["trials"], par[1.0]["trials"])

    def test_bad_history_falls_back(self, settings):
        broken = ItemState(
            item_id="broken", current_value=50.0,
            history=tuple((f"garbage-{i}", 10.0) for i in range(10)),
        )
        projections = simulate_portfolio([broken], horizons=(1.0,), num_trials=200, settings=settings, seed=1)
        assert projections[1.0]["items"]["broken"]["calibration"]["source"] == "default"

    def test_empty_portfolio_raises(self, settings):
        with pytest.raises(ValueError):
            simulate_portfolio([], settings=settings)

    def test_duplicate_ids_raise(self, bare_item, settings):
        with pytest.raises(ValueError, match="duplicate"):
            simulate_portfolio([bare_item, bare_item], num_trials=10, settings=settings)


# ---------------------------------------------------------------------------
# Record round-trip
# ---------------------------------------------------------------------------

class TestRecords:
    def test_growth_round_trip(self, sample_item, settings):
        result = simulate(sample_item, 5.0, num_trials=NUM_TRIALS, settings=settings, seed=13)
        record = ProjectionRecord.model_validate_json(
            ProjectionRecord.from_result(result).model_dump_json()
        )
        stats = record.statistics
        current = record.current_value
        assert growth_pct(stats.median, current) == pytest.approx(stats.growth.median_pct)
        assert growth_pct(stats.mean, current) == pytest.approx(stats.growth.mean_pct)
        assert growth_pct(stats.percentiles["p10"], current) == pytest.approx(stats.growth.bear_pct)
        assert growth_pct(stats.percentiles["p90"], current) == pytest.approx(stats.growth.bull_pct)
        assert growth_pct(stats.percentiles["p5"], current) == pytest.approx(stats.growth.worst_pct)
        assert growth_pct(stats.percentiles["p95"], current) == pytest.approx(stats.growth.best_pct)
        assert stats.growth.median_pct == pytest.approx(result["statistics"]["growth"]["median_pct"])

    def test_model_summaries(self, sample_item, settings):
        result = simulate(sample_item, 1.0, num_trials=NUM_TRIALS, settings=settings, seed=14)
        record = ProjectionRecord.from_result(result)
        assert {m.model for m in record.models} == set(result["model_results"])
        assert sum(m.weight for m in record.models) == pytest.approx(1.0)

    def test_portfolio_record(self, portfolio, settings):
        projections = simulate_portfolio(portfolio, horizons=(1.0,), num_trials=300, settings=settings, seed=15)
        record = PortfolioRecord.from_projection(projections[1.0])
        data = record.model_dump(mode="json")
        assert data["item_count"] == 2
        assert [i["item_id"] for i in data["items"]] == ["75192-1", "10305-1"]
        assert "timestamp" in data["meta"]
        assert data["recommendations"]["risk_level"] in {"LOW", "MODERATE", "ELEVATED", "HIGH"}
        assert data["recommendations"] == dict(projections[1.0]["recommendations"])
        assert data["items"][0]["theme"] == "Star Wars / UCS"
        assert data["items"][1]["theme"] is None
