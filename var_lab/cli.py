"""
cli.py - Rich Command Line Interface for var_lab

Usage:
    var-lab --help
    var-lab run data/ --trials 1000000 --parallelism 100
    var-lab fit data/ --output model.npz
    var-lab simulate model.npz --trials 1000000 --alpha 0.01 --plot density.png
    var-lab info model.npz

Data layout expected by `run` and `fit`:

    data/
      stocks/     one Yahoo-style CSV per instrument
      factors/    crudeoil.tsv, us30yeartreasurybonds.tsv (investing.com)
                  SNP.csv, NDX.csv (Yahoo)
"""

from __future__ import annotations

import dataclasses
import sys
from enum import Enum
from pathlib import Path
from typing import List, Optional

import numpy as np
import typer
from loguru import logger
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from .config import SimulationConfig
from .io import (
    ModelFormat,
    load_model,
    read_histories,
    read_investing_history,
    read_yahoo_history,
    save_model,
)
from .metrics import density_estimate
from .pipeline import build_risk_model, prepare_returns
from .simulation import SimulationCoordinator
from .types import RiskModel, SimulationResult

# Initialize Typer app and Rich console
app = typer.Typer(
    name="var-lab",
    help="Factor-model Monte Carlo Value-at-Risk",
    add_completion=False,
    rich_markup_mode="rich",
)
console = Console()

DEFAULT_INVESTING_FACTORS = ["crudeoil.tsv", "us30yeartreasurybonds.tsv"]
DEFAULT_YAHOO_FACTORS = ["SNP.csv", "NDX.csv"]


# =============================================================================
# ENUMS FOR CLI OPTIONS
# =============================================================================

class ExecutorOption(str, Enum):
    """Chunk executors."""
    serial = "serial"
    thread = "thread"
    process = "process"


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

def configure_logging(level: str) -> None:
    """Route loguru output to stderr at `level`."""
    logger.remove()
    logger.add(
        lambda message: sys.stderr.write(message),
        format="[{time:HH:mm:ss}] {level: <8} {message}",
        level=level.upper(),
    )


def fail(message: str) -> None:
    """Print an error and exit with status 1."""
    console.print(f"[red]Error:[/red] {message}")
    raise typer.Exit(1)


def build_config(config_file: Optional[Path], **overrides) -> SimulationConfig:
    """Config file (or defaults) with every non-None CLI option applied on top."""
    try:
        base = SimulationConfig.from_json(config_file) if config_file else SimulationConfig()
        given = {k: v for k, v in overrides.items() if v is not None}
        return dataclasses.replace(base, **given)
    except (ValueError, FileNotFoundError) as e:
        fail(str(e))


def load_data_model(
    data_dir: Path,
    config: SimulationConfig,
    investing_factors: List[str],
    yahoo_factors: List[str],
) -> RiskModel:
    """Read stock and factor histories from `data_dir` and fit a RiskModel."""
    stocks_dir = data_dir / "stocks"
    factors_dir = data_dir / "factors"

    with console.status("[bold blue]Reading histories..."):
        stocks = read_histories(stocks_dir)
        factors = (
            [read_investing_history(factors_dir / name) for name in investing_factors]
            + [read_yahoo_history(factors_dir / name) for name in yahoo_factors]
        )

    console.print(
        f"  Loaded [cyan]{len(stocks)}[/cyan] stock histories, "
        f"[cyan]{len(factors)}[/cyan] factor histories"
    )

    stock_returns, stock_names = prepare_returns(
        stocks, config.start, config.end,
        min_observations=config.min_observations, window=config.window,
    )
    factor_returns, factor_names = prepare_returns(
        factors, config.start, config.end, window=config.window,
    )
    if not stock_returns:
        fail(f"No stock history has at least {config.min_observations} observations")

    with console.status("[bold blue]Fitting factor model..."):
        model = build_risk_model(
            stock_returns, factor_returns,
            stock_names=stock_names, factor_names=factor_names,
        )
    console.print(
        f"  [green]✓[/green] Fitted {model.n_instruments} instruments "
        f"on {model.k} factors\n"
    )
    return model


def run_simulation(model: RiskModel, config: SimulationConfig) -> SimulationResult:
    """Run the coordinator with a spinner."""
    coordinator = SimulationCoordinator(
        model,
        parallelism=config.parallelism,
        base_seed=config.base_seed,
        executor=config.executor,
        max_workers=config.max_workers,
        max_retries=config.max_retries,
        batch_size=config.batch_size,
    )
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        transient=True,
        console=console
    ) as progress:
        progress.add_task(
            f"Simulating {config.n_trials:,} trials in {config.parallelism} chunks...",
            total=None,
        )
        return coordinator.run(config.n_trials)


def print_model_summary(model: RiskModel, title: str = "Risk Model Summary"):
    """Print a rich summary of a risk model."""
    table = Table(title=title, box=box.ROUNDED, show_header=False, title_style="bold cyan")
    table.add_column("Property", style="dim")
    table.add_column("Value", style="bold")

    dist = model.distribution
    table.add_row("Instruments", str(model.n_instruments))
    table.add_row("Factors (k)", str(model.k))
    if dist.names:
        table.add_row("Factor Names", ", ".join(dist.names))
    table.add_row("Factor Means", ", ".join(f"{m:.4f}" for m in dist.means))
    table.add_row("Factor Vols", ", ".join(f"{v:.4f}" for v in np.sqrt(np.diag(dist.covariance))))
    table.add_row("Intercept Sum", f"{model.weights.intercepts.sum():.4f}")

    console.print(table)


def print_result(result: SimulationResult, alpha: float):
    """Print VaR and summary statistics of a simulation."""
    returns = result.trial_returns

    summary = Table.grid(padding=(0, 2))
    summary.add_column(style="dim")
    summary.add_column(style="bold")
    summary.add_row(f"VaR {alpha:.0%}", f"[bold red]{result.value_at_risk(alpha):.4f}[/bold red]")
    summary.add_row(f"Expected Shortfall {alpha:.0%}", f"{result.expected_shortfall(alpha):.4f}")
    summary.add_row("Trials", f"{result.n_trials:,}")
    summary.add_row("Chunks", f"{len(result.chunks)} ({result.n_retries} retried)")
    console.print(Panel(summary, title="📉 Value at Risk", border_style="green"))

    stats_table = Table(title="Trial Return Statistics", box=box.ROUNDED)
    stats_table.add_column("Statistic", style="dim")
    stats_table.add_column("Value", justify="right")
    stats_table.add_row("Mean", f"{np.mean(returns):.4f}")
    stats_table.add_row("Std Dev", f"{np.std(returns):.4f}")
    stats_table.add_row("Min", f"{np.min(returns):.4f}")
    stats_table.add_row("Max", f"{np.max(returns):.4f}")
    console.print(stats_table)


def save_trials(returns: np.ndarray, path: Path) -> None:
    """Write trial returns as .npy, or CSV for any other suffix."""
    if path.suffix == ".npy":
        np.save(path, returns)
    else:
        np.savetxt(path, returns, delimiter=",", header="trial_return")


def plot_density(returns: np.ndarray, path: Path) -> None:
    """Render the kernel density of the trial returns to an image file."""
    try:
        import matplotlib
        matplotlib.use("Agg")
        import matplotlib.pyplot as plt
    except ImportError:
        fail("Install matplotlib for plotting: pip install var_lab[plot]")

    domain, densities = density_estimate(returns)
    fig, ax = plt.subplots(figsize=(8, 5))
    ax.plot(domain, densities)
    ax.set_xlabel("Two-week portfolio return")
    ax.set_ylabel("Density")
    fig.savefig(path, dpi=120, bbox_inches="tight")
    plt.close(fig)


def emit_outputs(
    result: SimulationResult,
    alpha: float,
    output: Optional[Path],
    plot: Optional[Path],
) -> None:
    print_result(result, alpha)
    if output:
        save_trials(result.trial_returns, output)
        console.print(f"\n  💾 Trial returns saved to: [bold]{output}[/bold]")
    if plot:
        plot_density(result.trial_returns, plot)
        console.print(f"  📈 Density plot saved to: [bold]{plot}[/bold]")


# =============================================================================
# COMMANDS
# =============================================================================

@app.callback()
def main(
    log_level: str = typer.Option("WARNING", "--log-level", "-l", help="loguru level (DEBUG, INFO, WARNING, ...)"),
):
    """Factor-model Monte Carlo Value-at-Risk."""
    configure_logging(log_level)


@app.command()
def run(
    data_dir: Path = typer.Argument(..., help="Directory with stocks/ and factors/ subdirectories"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="JSON run configuration"),
    trials: Optional[int] = typer.Option(None, "--trials", "-n", help="Total number of trials"),
    parallelism: Optional[int] = typer.Option(None, "--parallelism", "-p", help="Number of seeded chunks"),
    seed: Optional[int] = typer.Option(None, "--seed", "-s", help="Base seed"),
    alpha: Optional[float] = typer.Option(None, "--alpha", "-a", help="Tail probability"),
    start: Optional[str] = typer.Option(None, "--start", help="Start date (YYYY-MM-DD)"),
    end: Optional[str] = typer.Option(None, "--end", help="End date (YYYY-MM-DD)"),
    executor: Optional[ExecutorOption] = typer.Option(None, "--executor", "-e", help="Chunk executor"),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", help="Pool size"),
    investing_factors: List[str] = typer.Option(DEFAULT_INVESTING_FACTORS, "--investing-factor", help="investing.com TSV factor file in factors/"),
    yahoo_factors: List[str] = typer.Option(DEFAULT_YAHOO_FACTORS, "--yahoo-factor", help="Yahoo CSV factor file in factors/"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Save trial returns (.npy or .csv)"),
    plot: Optional[Path] = typer.Option(None, "--plot", help="Save a density plot (PNG)"),
    save_model_to: Optional[Path] = typer.Option(None, "--save-model", help="Also save the fitted model"),
):
    """
    Read histories, fit the factor model, simulate and report VaR.

    Example:
        var-lab run data/ --trials 1000000 --parallelism 100 --executor process
    """
    console.print(Panel.fit("🎲 [bold]Monte Carlo Value at Risk[/bold]", border_style="blue"))

    config = build_config(
        config_file, n_trials=trials, parallelism=parallelism, base_seed=seed,
        alpha=alpha, start=start, end=end,
        executor=executor.value if executor else None, max_workers=workers,
    )

    try:
        model = load_data_model(data_dir, config, investing_factors, yahoo_factors)
        if save_model_to:
            save_model(model, save_model_to, _format_for(save_model_to))
        result = run_simulation(model, config)
    except (ValueError, FileNotFoundError) as e:
        fail(str(e))

    emit_outputs(result, config.alpha, output, plot)


@app.command()
def fit(
    data_dir: Path = typer.Argument(..., help="Directory with stocks/ and factors/ subdirectories"),
    output: Path = typer.Option(Path("risk_model.npz"), "--output", "-o", help="Model file (.npz or .json)"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="JSON run configuration"),
    start: Optional[str] = typer.Option(None, "--start", help="Start date (YYYY-MM-DD)"),
    end: Optional[str] = typer.Option(None, "--end", help="End date (YYYY-MM-DD)"),
    investing_factors: List[str] = typer.Option(DEFAULT_INVESTING_FACTORS, "--investing-factor", help="investing.com TSV factor file in factors/"),
    yahoo_factors: List[str] = typer.Option(DEFAULT_YAHOO_FACTORS, "--yahoo-factor", help="Yahoo CSV factor file in factors/"),
):
    """
    Fit the factor model from histories and save it.

    Example:
        var-lab fit data/ --output model.npz
    """
    console.print(Panel.fit("🔬 [bold]Factor Model Fitting[/bold]", border_style="blue"))

    config = build_config(config_file, start=start, end=end)

    try:
        model = load_data_model(data_dir, config, investing_factors, yahoo_factors)
    except (ValueError, FileNotFoundError) as e:
        fail(str(e))

    print_model_summary(model, title="Fitted Model")
    save_model(model, output, _format_for(output))
    console.print(f"\n  💾 Saved to: [bold]{output}[/bold]")


@app.command()
def simulate(
    model_file: Path = typer.Argument(..., help="Risk model file (.npz or .json)"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="JSON run configuration"),
    trials: Optional[int] = typer.Option(None, "--trials", "-n", help="Total number of trials"),
    parallelism: Optional[int] = typer.Option(None, "--parallelism", "-p", help="Number of seeded chunks"),
    seed: Optional[int] = typer.Option(None, "--seed", "-s", help="Base seed"),
    alpha: Optional[float] = typer.Option(None, "--alpha", "-a", help="Tail probability"),
    executor: Optional[ExecutorOption] = typer.Option(None, "--executor", "-e", help="Chunk executor"),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", help="Pool size"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Save trial returns (.npy or .csv)"),
    plot: Optional[Path] = typer.Option(None, "--plot", help="Save a density plot (PNG)"),
):
    """
    Simulate trials from a saved risk model and report VaR.

    Example:
        var-lab simulate model.npz --trials 100000 --parallelism 10 --seed 7
    """
    console.print(Panel.fit("🎲 [bold]Monte Carlo Value at Risk[/bold]", border_style="blue"))

    config = build_config(
        config_file, n_trials=trials, parallelism=parallelism, base_seed=seed,
        alpha=alpha, executor=executor.value if executor else None, max_workers=workers,
    )

    try:
        model = load_model(model_file)
        console.print(f"  Model: [cyan]{model.n_instruments}[/cyan] instruments, [cyan]{model.k}[/cyan] factors")
        result = run_simulation(model, config)
    except (ValueError, FileNotFoundError) as e:
        fail(str(e))

    emit_outputs(result, config.alpha, output, plot)


@app.command()
def info(
    model_file: Path = typer.Argument(..., help="Risk model file (.npz or .json)"),
):
    """
    Display information about a saved risk model.

    Example:
        var-lab info model.npz
    """
    console.print(Panel.fit("ℹ️  [bold]Model Information[/bold]", border_style="blue"))

    try:
        model = load_model(model_file)
    except (ValueError, FileNotFoundError) as e:
        fail(str(e))

    console.print(f"  File: [bold]{model_file}[/bold]\n")
    print_model_summary(model)


def _format_for(path: Path) -> ModelFormat:
    return ModelFormat.JSON if path.suffix == ".json" else ModelFormat.NPZ


if __name__ == "__main__":
    app()
