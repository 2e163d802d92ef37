from __future__ import annotations

import argparse
import logging
import multiprocessing as mp
from pathlib import Path

import matplotlib.pyplot as plt

from mcsde import CubicDoubleWell, EnsembleFramework, EnsembleSimulation, OrnsteinUhlenbeck, SamplerConfig

logger = logging.getLogger(__name__)


def progress(completed: int, total: int):
    step = max(1, total // 10)
    if completed % step == 0 or completed == total:
        print(f"Progress: {completed}/{total} ({100 * completed / total:.0f}%)")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Terminal-value histograms of Euler-Maruyama ensembles (OU and cubic double-well).",
    )
    parser.add_argument("--paths", type=int, default=100_000, help="ensemble size per experiment")
    parser.add_argument("--t1", type=float, default=10.0, help="integration horizon")
    parser.add_argument("--dt", type=float, default=0.01, help="Euler-Maruyama step size")
    parser.add_argument("--seed", type=int, default=43, help="root seed; negative values use OS entropy")
    parser.add_argument("--backend", default="auto", choices=("auto", "sequential", "thread", "process"))
    parser.add_argument("--workers", type=int, default=None, help="worker count (default: CPU count)")
    parser.add_argument("--output-dir", type=Path, default=Path("."), help="where to write the PNG files")
    parser.add_argument("--show", action="store_true", help="open the figures after saving them")
    return parser.parse_args(argv)


def build_experiments(t1: float) -> list[EnsembleSimulation]:
    return [
        EnsembleSimulation(OrnsteinUhlenbeck(theta=1.0, sigma=0.1), 0.0, t1, name="OU (theta=1, sigma=0.1)"),
        EnsembleSimulation(CubicDoubleWell(theta=1.0, sigma=0.1), 0.0, t1, name="Cubic (theta=1, sigma=0.1)"),
        EnsembleSimulation(CubicDoubleWell(theta=1.0, sigma=1.5), 0.0, t1, name="Cubic (theta=1, sigma=1.5)"),
    ]


def create_histogram(result, title: str):
    """Histogram of the terminal values with mean, median and detected modes."""
    fig, ax = plt.subplots(figsize=(8, 5))
    counts, edges = result.histogram(bins=100, density=True)
    ax.stairs(counts, edges, fill=True, alpha=0.7, color='skyblue', edgecolor='black')

    ax.axvline(result.mean,
               color='orange',
               linestyle='--',
               linewidth=2,
               label=f'Mean = {result.mean:.4f}')
    ax.axvline(result.percentiles[50],
               color='green',
               linestyle=':',
               linewidth=2,
               label=f'Median = {result.percentiles[50]:.4f}')
    for loc in result.stats.get('modes', {}).get('locations', []):
        ax.axvline(loc, color='red', alpha=0.6, linewidth=1)

    meta = result.metadata
    ax.set_xlabel(f"x(t1), t1 = {meta['t1']:g}, dt = {meta['dt']:g}")
    ax.set_ylabel('Density')
    ax.set_title(f"{title} ({result.n_paths:,} paths)")
    ax.legend()
    ax.grid(True, alpha=0.3)
    fig.tight_layout()
    return fig


def create_comparison_chart(fw: EnsembleFramework, names: list[str]):
    """Overlayed histograms of all experiments."""
    fig, ax = plt.subplots(figsize=(10, 5))
    for name in names:
        counts, edges = fw.results[name].histogram(bins=120, density=True)
        ax.stairs(counts, edges, label=name, linewidth=1.5)
    ax.set_yscale('log')
    ax.set_xlabel('x(t1)')
    ax.set_ylabel('Density (log)')
    ax.set_title('Terminal distributions')
    ax.legend()
    ax.grid(True, alpha=0.3)
    fig.tight_layout()
    return fig


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")

    fw = EnsembleFramework()
    config = SamplerConfig(dt=args.dt, backend=args.backend, n_workers=args.workers)
    sims = build_experiments(args.t1)
    for sim in sims:
        sim.config = config
        # Reproducible across backends and worker counts
        sim.set_seed(None if args.seed < 0 else args.seed)
        fw.register_simulation(sim)

    names = [sim.name for sim in sims]
    for name in names:
        print(f"Running {name}…")
        fw.run_simulation(name, args.paths, progress_callback=progress, percentiles=[1, 99])

    print("\n" + "*" * 50)
    print("COMPARISON METRICS (std):")
    for name, value in fw.compare_results(names, metric="std").items():
        print(f"  {name}: {value:.5f}")
    print("*" * 50 + "\n")

    for name in names:
        print(fw.results[name].result_to_string())
        print("\n")

    print("\nGenerating visualizations...")
    plt.style.use('default')
    plt.rcParams['figure.dpi'] = 100

    args.output_dir.mkdir(parents=True, exist_ok=True)
    files = ["ou_hist.png", "cubic_hist_sigma_0.1.png", "cubic_hist_sigma_1.5.png"]
    for name, fname in zip(names, files):
        fig = create_histogram(fw.results[name], name)
        fig.savefig(args.output_dir / fname, bbox_inches='tight', dpi=300)
    comp_fig = create_comparison_chart(fw, names)
    comp_fig.savefig(args.output_dir / "terminal_distributions.png", bbox_inches='tight', dpi=300)
    logger.info("Plots saved to %s", args.output_dir.resolve())

    nonfinite = fw.compare_results(names, metric="nonfinite")
    if any(v > 0 for v in nonfinite.values()):
        logger.warning("Some paths blew up: %s", nonfinite)

    if args.show:
        plt.show()


if __name__ == "__main__":

    try:
        mp.set_start_method("spawn", force=True)
    except RuntimeError:
        pass
    main()
