"""
Plotting utilities for absolute localization runs.
Estimate-vs-truth time histories with covariance bands, and NIS consistency.
"""

import os

import numpy as np
import matplotlib
matplotlib.use('Agg')  # Non-interactive backend for saving
import matplotlib.pyplot as plt
import pandas as pd

from absloc.simulation.scenario import AXES

# 95% two-sided chi-squared bounds for 3 degrees of freedom
NIS_BOUNDS_3DOF = (0.216, 9.348)


class PlotStyle:
    """Shared styling and figure management for all project plots."""

    # Colorblind-friendly palette
    COLORS = {
        'truth': '#2E86AB',      # Steel blue
        'estimate': '#F18F01',   # Orange
        'band': '#A23B72',       # Magenta
        'bound': '#C73E1D',      # Red
        'neutral': '#546E7A',    # Blue grey
    }

    @staticmethod
    def setup_style():
        """Set matplotlib rcParams used by every figure."""
        plt.rcParams.update({
            'font.family': 'sans-serif',
            'font.size': 11,
            'axes.labelsize': 12,
            'axes.titlesize': 13,
            'axes.titleweight': 'bold',
            'axes.grid': True,
            'axes.spines.top': False,
            'axes.spines.right': False,
            'grid.color': '#E0E0E0',
            'grid.linewidth': 0.5,
            'lines.linewidth': 1.5,
            'legend.fontsize': 9,
            'savefig.dpi': 150,
        })

    @staticmethod
    def save_figure(fig, filepath, dpi=150):
        """Save *fig* to *filepath*, creating directories as needed."""
        directory = os.path.dirname(filepath)
        if directory:
            os.makedirs(directory, exist_ok=True)
        fig.savefig(filepath, dpi=dpi, bbox_inches='tight',
                    facecolor='white', edgecolor='none')
        plt.close(fig)


def plot_position_estimate(df: pd.DataFrame, filepath: str, n_sigma: float = 3.0):
    """Per-axis estimation error with +/- n_sigma covariance bands.

    Parameters
    ----------
    df : pd.DataFrame
        Scenario telemetry (``time``, ``err_*``, ``sigma_*`` columns).
    filepath : str
        Output PNG path.
    n_sigma : float
        Width of the shaded band in standard deviations.
    """
    PlotStyle.setup_style()
    fig, axes = plt.subplots(len(AXES), 1, figsize=(10, 8), sharex=True)
    t = df['time'].to_numpy()

    for ax, axis in zip(axes, AXES):
        err = df[f'err_{axis}'].to_numpy()
        bound = n_sigma * df[f'sigma_{axis}'].to_numpy()
        ax.fill_between(t, -bound, bound, color=PlotStyle.COLORS['band'],
                        alpha=0.15, label=f'±{n_sigma:g}σ')
        ax.plot(t, err, color=PlotStyle.COLORS['estimate'], label='error')
        ax.set_ylabel(f'{axis} error (m)')
        ax.legend(loc='upper right')

    axes[0].set_title('Absolute localization: position error')
    axes[-1].set_xlabel('time (s)')
    PlotStyle.save_figure(fig, filepath)


def plot_nis(df: pd.DataFrame, filepath: str):
    """NIS history against the 95% chi-squared bounds for 3 dof."""
    PlotStyle.setup_style()
    fig, ax = plt.subplots(figsize=(10, 4))
    valid = df['nis'].notna()
    t = df.loc[valid, 'time'].to_numpy()
    nis = df.loc[valid, 'nis'].to_numpy()

    ax.plot(t, nis, color=PlotStyle.COLORS['estimate'], marker='.', linestyle='none',
            label='NIS')
    for bound in NIS_BOUNDS_3DOF:
        ax.axhline(bound, color=PlotStyle.COLORS['bound'], linestyle='--', linewidth=1.0)
    if nis.size:
        inside = np.mean((nis > NIS_BOUNDS_3DOF[0]) & (nis < NIS_BOUNDS_3DOF[1]))
        ax.set_title(f'NIS consistency ({100.0 * inside:.1f}% inside 95% bounds)')
    ax.set_xlabel('time (s)')
    ax.set_ylabel('NIS')
    ax.legend(loc='upper right')
    PlotStyle.save_figure(fig, filepath)
