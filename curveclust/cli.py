"""Command-line interface for curveclust.

Provides the `curveclust` command with subcommands:
- `analyze`: Cluster the curves in a long-format CSV file
- `version`: Show version information
"""

import json
import logging
import sys
from pathlib import Path
from typing import Any

import click
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from curveclust import __version__
from curveclust.analyzer import CurveClusterAnalyzer
from curveclust.config import load_config, merge_cli_overrides
from curveclust.errors import CurveClustError
from curveclust.models.schemas import AnalysisResult

console = Console()


def setup_logging(debug: bool = False) -> None:
    """Set up logging configuration.

    Args:
        debug: If True, enable debug logging.
    """
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, debug: bool) -> None:
    """curveclust - cluster growth curves by shape."""
    setup_logging(debug)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.argument("input_csv", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "-o", "--output",
    type=click.Path(file_okay=False),
    default="./output",
    help="Output directory for results",
)
@click.option(
    "-c", "--config",
    type=click.Path(exists=True),
    default=None,
    help="Path to config file",
)
@click.option("-k", "--clusters", type=int, default=None, help="Number of clusters for the final partition")
@click.option("--k-min", type=int, default=None, help="Smallest candidate k")
@click.option("--k-max", type=int, default=None, help="Largest candidate k")
@click.option("--replicates", type=int, default=None, help="Gap statistic reference datasets")
@click.option("--step", type=float, default=None, help="Grid step")
@click.option("--span", type=float, default=None, help="Loess span")
@click.option("--degree", type=click.IntRange(0, 2), default=None, help="Loess degree")
@click.option("--group-col", default="group", show_default=True, help="Group key column")
@click.option("--x-col", default="x", show_default=True, help="Independent variable column")
@click.option("--y-col", default="y", show_default=True, help="Response column")
@click.option(
    "--exclude-insufficient",
    is_flag=True,
    help="Exclude groups with too few points instead of aborting",
)
@click.option("--no-select", is_flag=True, help="Skip the per-k metrics table")
@click.pass_context
def analyze(
    ctx: click.Context,
    input_csv: str,
    output: str,
    config: str | None,
    clusters: int | None,
    k_min: int | None,
    k_max: int | None,
    replicates: int | None,
    step: float | None,
    span: float | None,
    degree: int | None,
    group_col: str,
    x_col: str,
    y_col: str,
    exclude_insufficient: bool,
    no_select: bool,
) -> None:
    """Cluster the curves in a long-format CSV file.

    INPUT_CSV: CSV with one (group, x, y) observation per row.
    """
    debug = ctx.obj.get("debug", False)

    try:
        cfg = load_config(config)
        cfg = merge_cli_overrides(
            cfg,
            selection__k_min=k_min,
            selection__k_max=k_max,
            selection__bootstrap_replicates=replicates,
            grid__step=step,
            smoothing__span=span,
            smoothing__degree=degree,
            processing__on_insufficient_data="exclude" if exclude_insufficient else None,
        )
    except ValueError as e:
        console.print(f"[bold red]Configuration error:[/] {e}")
        sys.exit(1)

    output_dir = Path(output)
    output_dir.mkdir(parents=True, exist_ok=True)

    input_path = Path(input_csv)
    console.print(f"[bold blue]Analyzing:[/] {input_path.name}")

    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            progress.add_task("Running curveclust analysis...", total=None)

            analyzer = CurveClusterAnalyzer(config=cfg)
            result = analyzer.analyze_file(
                input_path,
                group_col=group_col,
                x_col=x_col,
                y_col=y_col,
                k=clusters,
                select=not no_select,
            )

        _display_summary(result)
        _export_results(result, output_dir)

        console.print(f"\n[bold green]Done![/] Results saved to: {output_dir}")

    except (CurveClustError, ValueError) as e:
        console.print(f"[bold red]Analysis failed:[/] {e}")
        if debug:
            console.print_exception()
        sys.exit(1)


def _fmt(value: float | None) -> str:
    return "-" if value is None else f"{value:.4f}"


def _display_summary(result: AnalysisResult) -> None:
    """Display analysis summary tables."""
    table = Table(title="Analysis Summary")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Source", result.metadata.source or "Unknown")
    table.add_row("Groups", str(result.metadata.n_groups))
    if result.metadata.grid is not None:
        grid = result.metadata.grid
        table.add_row("Grid", f"[{grid.start}, {grid.stop}] step {grid.step}")
    table.add_row("Undefined pairs", str(len(result.distances.undefined_pairs())))
    if result.excluded_groups:
        table.add_row("Excluded", ", ".join(result.excluded_groups))

    console.print(table)

    if result.metrics is not None and result.metrics.rows:
        metrics_table = Table(title="Cluster Metrics")
        metrics_table.add_column("k", style="cyan")
        metrics_table.add_column("Dispersion", style="green")
        metrics_table.add_column("Silhouette", style="yellow")
        metrics_table.add_column("Gap", style="magenta")
        metrics_table.add_column("Gap SE", style="red")

        for row in result.metrics.rows:
            metrics_table.add_row(
                str(row.k),
                _fmt(row.dispersion),
                _fmt(row.silhouette),
                _fmt(row.gap),
                _fmt(row.gap_se),
            )

        console.print(metrics_table)

    if result.assignment is not None:
        assignment = result.assignment
        cluster_table = Table(title=f"Clusters (k={assignment.k})")
        cluster_table.add_column("Cluster", style="cyan")
        cluster_table.add_column("Medoid", style="green")
        cluster_table.add_column("Size", style="yellow")
        cluster_table.add_column("Members")

        sizes = assignment.cluster_sizes
        for cluster_id, medoid in enumerate(assignment.medoids):
            cluster_table.add_row(
                str(cluster_id),
                medoid,
                str(sizes[cluster_id]),
                ", ".join(assignment.members(cluster_id)),
            )

        console.print(cluster_table)


def _write_json(path: Path, data: Any) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, default=str)
    console.print(f"  [dim]JSON:[/] {path}")


def _export_results(result: AnalysisResult, output_dir: Path) -> None:
    """Export analysis results to JSON files."""
    _write_json(
        output_dir / "distance_matrix.json",
        {
            "keys": list(result.distances.keys),
            "values": [list(row) for row in result.distances.values],
            "undefined_pairs": [list(pair) for pair in result.distances.undefined_pairs()],
        },
    )

    if result.metrics is not None:
        _write_json(output_dir / "cluster_metrics.json", result.metrics.model_dump(mode="json"))

    if result.assignment is not None:
        _write_json(output_dir / "assignment.json", result.assignment.model_dump(mode="json"))

    _write_json(
        output_dir / "resampled_curves.json",
        {
            "metadata": result.metadata.model_dump(mode="json"),
            "curves": {key: curve.model_dump(mode="json") for key, curve in result.resampled.items()},
            "excluded_groups": result.excluded_groups,
        },
    )


@cli.command()
def version() -> None:
    """Show curveclust version information."""
    console.print(f"curveclust version {__version__}")
    console.print("Clustering of growth curves by shape")


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
