"""
cogbox command line: simulate raw data, engineer features, train the
classifier artifact and serve the playback API.
"""
import json
import logging
import sys

import click
import pandas as pd

from cogbox.classifier.training import DEFAULT_PARAM_GRID, save_artifact, train_classifier
from cogbox.config import Settings, configure_logging
from cogbox.data.loader import SeriesLoader
from cogbox.data.simulator import simulate_series
from cogbox.errors import CogboxError
from cogbox.features.engine import WindowedFeatureExtractor, build_feature_frame

logger = logging.getLogger(__name__)


@click.group()
@click.option("--log-level", default=None, help="Logging level (defaults to COGBOX_LOG_LEVEL or INFO)")
@click.pass_context
def cli(ctx, log_level):
    """Surgeon cognitive-state playback tools."""
    settings = Settings.from_env()
    configure_logging(log_level or settings.log_level)
    ctx.obj = settings


@cli.command()
@click.argument("out", type=click.Path(dir_okay=False))
@click.option("--owners", default=3, show_default=True, help="Number of simulated surgeons")
@click.option("--duration", default=10800, show_default=True, help="Seconds per surgery")
@click.option("--seed", default=123, show_default=True, help="Random seed")
def simulate(out, owners, duration, seed):
    """Write a simulated raw series CSV."""
    df = simulate_series(n_owners=owners, duration_s=duration, seed=seed)
    df.to_csv(out, index=False)
    click.echo(f"Wrote {len(df)} samples for {owners} owners to {out}")


@cli.command()
@click.argument("source", type=click.Path(exists=True, dir_okay=False))
@click.argument("out", type=click.Path(dir_okay=False))
@click.pass_obj
def features(settings, source, out):
    """Compute windowed features for every owner in SOURCE."""
    loader = SeriesLoader(
        channels=settings.channels,
        owner_column=settings.owner_column,
        time_column=settings.time_column,
        label_column=settings.label_column,
        channel_ranges=settings.channel_ranges,
    )
    extractor = WindowedFeatureExtractor()
    try:
        series = loader.load_csv(source)
        for owner_series in series.values():
            extractor.validate_series(owner_series)
        tables = extractor.compute_all(series)
    except CogboxError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    frame = build_feature_frame(
        series,
        tables,
        owner_column=settings.owner_column,
        time_column=settings.time_column,
        label_column=settings.label_column,
    )
    frame.to_csv(out, index=False)
    click.echo(f"Wrote {len(frame)} rows x {len(extractor.feature_names)} features to {out}")


@cli.command()
@click.argument("source", type=click.Path(exists=True, dir_okay=False))
@click.argument("model_out", type=click.Path(dir_okay=False))
@click.option("--balance-classes/--no-balance-classes", default=False, help="Weight classes inversely to frequency")
@click.option("--grid", "grid_json", default=None, help="Parameter grid as JSON, overrides the default grid")
@click.option("--cv-folds", default=3, show_default=True)
@click.option("--seed", default=123, show_default=True)
@click.pass_obj
def train(settings, source, model_out, balance_classes, grid_json, cv_folds, seed):
    """Train the state classifier on a features CSV and write the artifact."""
    data = pd.read_csv(source)
    feature_names = WindowedFeatureExtractor().feature_names
    try:
        param_grid = json.loads(grid_json) if grid_json else DEFAULT_PARAM_GRID
    except json.JSONDecodeError as e:
        click.echo(f"Error: --grid is not valid JSON: {e}", err=True)
        sys.exit(1)
    try:
        model, report = train_classifier(
            data,
            feature_names,
            label_column=settings.label_column or "cognitive_state",
            param_grid=param_grid,
            cv_folds=cv_folds,
            balance_classes=balance_classes,
            random_state=seed,
        )
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    save_artifact(model, feature_names, model_out, meta=report.meta)
    click.echo(f"Test accuracy: {report.test_accuracy:.4f}  kappa: {report.kappa:.3f}")
    for label, metrics in report.per_class.items():
        click.echo(f"  {label:<18} sensitivity {metrics['sensitivity']:.3f}  specificity {metrics['specificity']:.3f}")
    click.echo(f"Artifact written to {model_out}")


@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8000, show_default=True)
def serve(host, port):
    """Run the playback API."""
    import uvicorn

    logger.info(f"[SERVE] Starting cogbox API on {host}:{port}")
    uvicorn.run("cogbox.main:app", host=host, port=port)


def main():
    cli()


if __name__ == "__main__":
    main()
