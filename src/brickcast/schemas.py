"""Serialisable result records for persistence and presentation layers.

Built from the TypedDict results of :mod:`brickcast.analysis.simulation`;
trial arrays are left out, only derived statistics are kept.
"""

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field

from brickcast.analysis.sim_models import EnsembleResult, PortfolioProjection, TrialStatistics


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Meta(BaseModel):
    timestamp: datetime = Field(default_factory=_utcnow)


class GrowthRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    mean_pct: float = Field(description="Growth of the mean value (%)")
    median_pct: float = Field(description="Growth of the median value (%)")
    bear_pct: float = Field(description="Growth at the 10th percentile (%)")
    bull_pct: float = Field(description="Growth at the 90th percentile (%)")
    worst_pct: float = Field(description="Growth at the 5th percentile (%)")
    best_pct: float = Field(description="Growth at the 95th percentile (%)")


class RiskRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    var_95: float = Field(description="Value-at-risk at 95% confidence")
    var_99: float = Field(description="Value-at-risk at 99% confidence")
    cvar_95: float = Field(description="Conditional value-at-risk at 95% confidence")
    cvar_99: float = Field(description="Conditional value-at-risk at 99% confidence")
    expected_shortfall_95: float = Field(description="Mean value in the worst 5% of trials")
    prob_loss: float = Field(ge=0.0, le=1.0)
    prob_breakeven: float = Field(ge=0.0, le=1.0)
    prob_gain: float = Field(ge=0.0, le=1.0)
    gain_probs: dict[str, float] = Field(description="Probability of exceeding each gain threshold")


class StatisticsRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    current_value: float = Field(gt=0.0)
    num_trials: int = Field(ge=1)
    mean: float
    median: float
    std: float
    min: float
    max: float
    percentiles: dict[str, float] = Field(description="Percentile label (p5) -> value")
    confidence_intervals: dict[str, tuple[float, float]] = Field(
        description="Interval width (90%) -> (low, high)"
    )
    growth: GrowthRecord
    risk: RiskRecord

    @classmethod
    def from_statistics(cls, stats: TrialStatistics) -> "StatisticsRecord":
        return cls.model_validate(stats)


class ModelSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    model: str
    weight: float
    median: float
    median_growth_pct: float
    prob_loss: float


class RecommendationRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    risk_level: str = Field(description="LOW, MODERATE, ELEVATED or HIGH by P(loss)")
    return_level: str = Field(description="EXCELLENT, GOOD, MODERATE or LOW by median growth")
    risk_adjusted_score: float = Field(description="Median growth % per % of P(loss)")
    summary: str


class ProjectionRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    item_id: str
    theme: str | None = None
    horizon_years: float
    current_value: float
    calibration: dict[str, float | int | str | bool | None]
    statistics: StatisticsRecord
    models: list[ModelSummary]
    model_agreement: float | None = Field(None, description="0-100 agreement of model medians")
    recommendations: RecommendationRecord

    @classmethod
    def from_result(cls, result: EnsembleResult) -> "ProjectionRecord":
        models = [
            ModelSummary(
                model=name,
                weight=result["weights"].get(name, 0.0),
                median=mr["statistics"]["median"],
                median_growth_pct=mr["statistics"]["growth"]["median_pct"],
                prob_loss=mr["statistics"]["risk"]["prob_loss"],
            )
            for name, mr in result["model_results"].items()
        ]
        return cls(
            item_id=result["item_id"],
            theme=result["theme"],
            horizon_years=result["horizon_years"],
            current_value=result["current_value"],
            calibration=result["calibration"],
            statistics=StatisticsRecord.from_statistics(result["statistics"]),
            models=models,
            model_agreement=result["model_agreement"],
            recommendations=RecommendationRecord.model_validate(result["recommendations"]),
        )


class PortfolioRecord(BaseModel):
    horizon_years: float
    current_value: float
    item_count: int
    statistics: StatisticsRecord
    items: list[ProjectionRecord]
    recommendations: RecommendationRecord
    meta: Meta = Field(default_factory=Meta)

    @classmethod
    def from_projection(cls, projection: PortfolioProjection) -> "PortfolioRecord":
        return cls(
            horizon_years=projection["horizon_years"],
            current_value=projection["current_value"],
            item_count=len(projection["items"]),
            statistics=StatisticsRecord.from_statistics(projection["statistics"]),
            items=[ProjectionRecord.from_result(r) for r in projection["items"].values()],
            recommendations=RecommendationRecord.model_validate(projection["recommendations"]),
        )
