from __future__ import annotations

import argparse
import logging
from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np

from mcsde.oscillators import NTMD, Duffing, integrate_duffing, integrate_ntmd_ode

logger = logging.getLogger(__name__)


def plot_duffing(t1: float):
    """Displacement of the forced Duffing oscillator started at rest."""
    p = Duffing()
    sol = integrate_duffing([0, 0], p, (0, t1), t_eval=np.linspace(0.0, t1, 4001))

    fig, (ax1, ax2) = plt.subplots(1, 2, figsize=(14, 5))
    fig.suptitle('Forced Duffing Oscillator', fontsize=16, fontweight='bold')

    ax1.plot(sol.t, sol.y[0], color='blue', linewidth=1)
    ax1.set_xlabel('t')
    ax1.set_ylabel('x(t)')
    ax1.set_title(f'Displacement (F0={p.F0}, omega={p.omega})')
    ax1.grid(True, alpha=0.3)

    ax2.plot(sol.y[0], sol.y[1], color='purple', linewidth=0.8)
    ax2.set_xlabel('x')
    ax2.set_ylabel("x'")
    ax2.set_title('Phase portrait')
    ax2.grid(True, alpha=0.3)

    fig.tight_layout()
    return fig


def plot_ntmd(n_transient: int, n_periods: int):
    """Steady forced response of the tuned-mass-damper after discarding the transient."""
    p = NTMD(omega=1.1)
    logger.info("Integrating %d forcing periods to remove the transient", n_transient)
    warm = integrate_ntmd_ode(np.ones(4), p, p.period * n_transient)
    u0 = warm.y[:, -1]

    t1 = p.period * n_periods
    sol = integrate_ntmd_ode(u0, p, t1, t_eval=np.linspace(0.0, t1, 2001), rtol=1e-8)

    fig, ax = plt.subplots(figsize=(12, 5))
    ax.plot(sol.t, sol.y[0], label='primary mass x1', color='blue', linewidth=1.2)
    ax.plot(sol.t, sol.y[2], label='absorber x2', color='orange', linewidth=1.0, alpha=0.8)
    ax.set_xlabel('t')
    ax.set_ylabel('Displacement')
    ax.set_title(f'Tuned-mass-damper, deterministic part (omega={p.omega}, {n_periods} periods)')
    ax.legend()
    ax.grid(True, alpha=0.3)
    fig.tight_layout()
    return fig


def main(argv=None):
    parser = argparse.ArgumentParser(description="Duffing and tuned-mass-damper trajectories.")
    parser.add_argument("--t1", type=float, default=100.0, help="Duffing horizon")
    parser.add_argument("--transient", type=int, default=1000, help="NTMD forcing periods discarded")
    parser.add_argument("--periods", type=int, default=20, help="NTMD forcing periods plotted")
    parser.add_argument("--output-dir", type=Path, default=Path("."))
    parser.add_argument("--show", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")

    args.output_dir.mkdir(parents=True, exist_ok=True)
    duffing_fig = plot_duffing(args.t1)
    duffing_fig.savefig(args.output_dir / 'duffing.png', bbox_inches='tight', dpi=300)
    ntmd_fig = plot_ntmd(args.transient, args.periods)
    ntmd_fig.savefig(args.output_dir / 'ntmd.png', bbox_inches='tight', dpi=300)
    logger.info("Plots saved to %s", args.output_dir.resolve())

    if args.show:
        plt.show()


if __name__ == "__main__":
    main()
