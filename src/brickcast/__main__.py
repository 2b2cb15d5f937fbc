import json
import logging
from pathlib import Path

import click

from brickcast.analysis.sim_models import ItemState
from brickcast.config import Settings
from brickcast.logging_config import setup_logging

logger = logging.getLogger(__name__)


def load_portfolio(path: str | Path) -> list[ItemState]:
    """Read items from a JSON file: ``{"items": [{...}, ...]}`` or a bare list.

    Each item needs ``item_id`` and ``current_value``; ``history`` is a list of
    ``[date, value]`` pairs. Other keys map onto :class:`ItemState` fields.
    """
    with open(path, encoding="utf-8") as f:
        data = json.load(f)

    rows = data["items"] if isinstance(data, dict) else data
    items = []
    for row in rows:
        row = dict(row)
        row["history"] = tuple(tuple(pair) for pair in row.get("history", ()))
        items.append(ItemState(**row))
    return items


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.option("--log-file/--no-log-file", default=True, help="Also log to logs/brickcast.log")
def cli(verbose: bool, log_file: bool):
    """Brickcast - collectible valuation projections"""
    setup_logging(log_to_file=log_file, verbose=verbose)


@cli.command()
@click.argument("portfolio_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--horizon", "-h", "horizons", type=float, multiple=True,
              help="Horizon in years (repeatable, default: settings)")
@click.option("--trials", "-n", type=int, default=None, help="Trials per model")
@click.option("--seed", type=int, default=None, help="Seed for a reproducible run")
@click.option("--workers", "-w", type=int, default=None, help="Worker processes")
@click.option("--json", "as_json", is_flag=True, help="Print JSON records instead of a summary")
def project(
    portfolio_file: str,
    horizons: tuple[float, ...],
    trials: int | None,
    seed: int | None,
    workers: int | None,
    as_json: bool,
):
    """Project portfolio values at each horizon."""
    from brickcast.analysis.simulation import simulate_portfolio
    from brickcast.schemas import PortfolioRecord

    settings = Settings()
    try:
        items = load_portfolio(portfolio_file)
    except (KeyError, TypeError, ValueError) as e:
        raise click.ClickException(f"Invalid portfolio file: {e}")

    projections = simulate_portfolio(
        items,
        horizons=horizons or None,
        num_trials=trials,
        settings=settings,
        seed=seed,
        max_workers=workers,
    )

    if as_json:
        records = [PortfolioRecord.from_projection(p).model_dump(mode="json") for p in projections.values()]
        click.echo(json.dumps(records, indent=2))
        return

    click.echo(f"Portfolio: {len(items)} items, current value {sum(i.current_value for i in items):,.2f}")
    for horizon, projection in projections.items():
        stats = projection["statistics"]
        low, high = stats["confidence_intervals"].get("90%", (stats["percentiles"]["p5"], stats["percentiles"]["p95"]))
        click.echo(
            f"  {horizon:g}y: median {stats['median']:,.2f} ({stats['growth']['median_pct']:+.1f}%), "
            f"90% CI [{low:,.2f}, {high:,.2f}], P(loss) {stats['risk']['prob_loss']:.1%}"
        )
        rec = projection["recommendations"]
        click.echo(f"    outlook: risk {rec['risk_level']}, return {rec['return_level']}: {rec['summary']}")
        for item_id, result in projection["items"].items():
            item_stats = result["statistics"]
            click.echo(
                f"    {item_id}: median {item_stats['median']:,.2f} "
                f"({item_stats['growth']['median_pct']:+.1f}%)"
            )


if __name__ == "__main__":
    cli()
