#!/usr/bin/env python3
"""
===============================================================================
ABSLOC SIMULATION - MAIN ENTRY POINT
===============================================================================
Runs a closed-loop absolute localization scenario: a robot on a circular
track, an absolute position sensor on a lever arm, and the EKF fusing it.

USAGE:
    absloc-sim                          # Scenario from the default config
    absloc-sim --relative               # Sensor does not define the frame
    absloc-sim --no-init                # First reading taken raw, no seeding
    absloc-sim --monte-carlo 20         # 20 seeds, summary table
    absloc-sim --plot                   # Also write PNG plots

OUTPUTS:
    <output>/telemetry.csv              - Per-reading telemetry
    <output>/position_error.png         - Error with 3-sigma bands (--plot)
    <output>/nis.png                    - NIS consistency (--plot)
    <output>/monte_carlo.csv            - Per-run summary (--monte-carlo)
===============================================================================
"""

import argparse
import copy
import logging
import sys
import time
from pathlib import Path
from typing import Any, Dict, Optional

import pandas as pd
import yaml

from absloc.core.exceptions import AbslocError
from absloc.simulation.scenario import AbslocScenario

logger = logging.getLogger('ABSLOC_MAIN')

DEFAULT_CONFIG = Path(__file__).resolve().parents[2] / 'config' / 'absloc_config.yaml'
LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'


def setup_logging(verbose: bool = False, log_file: Optional[str] = None) -> None:
    """Console logging, plus a log file when one is given."""
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode='w'))
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        handlers=handlers,
    )


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load scenario configuration from a YAML file.

    Args:
        config_path: Path to YAML config. Defaults to config/absloc_config.yaml

    Returns:
        Dictionary of configuration sections (empty if the file is empty)
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG
    logger.info("Loading configuration from: %s", path)
    with open(path, 'r') as f:
        config = yaml.safe_load(f)
    return config or {}


def apply_overrides(config: Dict[str, Any], args: argparse.Namespace) -> Dict[str, Any]:
    """Command line options take precedence over the YAML file."""
    config = copy.deepcopy(config)
    sim = config.setdefault('simulation', {})
    sensor = config.setdefault('sensor', {})
    if args.duration is not None:
        sim['duration'] = args.duration
    if args.seed is not None:
        sim['seed'] = args.seed
    if args.relative:
        sensor['absolute'] = False
    if args.no_init:
        sensor['use_for_init'] = False
    return config


def run_scenario(config: Dict[str, Any], output_dir: Path, plot: bool = False) -> Dict[str, Any]:
    """Run one scenario, save its telemetry (and plots), return the summary."""
    scenario = AbslocScenario(config)
    df = scenario.run()
    output_dir.mkdir(parents=True, exist_ok=True)
    scenario.save_telemetry(str(output_dir / 'telemetry.csv'))

    if plot:
        from absloc.simulation.plot_utils import plot_nis, plot_position_estimate
        plot_position_estimate(df, str(output_dir / 'position_error.png'))
        plot_nis(df, str(output_dir / 'nis.png'))
        logger.info("Plots saved to %s", output_dir)

    return scenario.summary()


def run_monte_carlo(config: Dict[str, Any], output_dir: Path, num_runs: int) -> pd.DataFrame:
    """Repeat the scenario over consecutive seeds and tabulate the summaries."""
    base_seed = config.get('simulation', {}).get('seed', 0) or 0
    rows = []
    for run in range(num_runs):
        run_config = copy.deepcopy(config)
        run_config.setdefault('simulation', {})['seed'] = base_seed + run
        run_config.setdefault('source', {})['seed'] = base_seed + run
        scenario = AbslocScenario(run_config)
        scenario.run()
        row = scenario.summary()
        row['run'] = run
        rows.append(row)
        logger.info("Monte Carlo run %d/%d: rms=(%.3f, %.3f, %.3f) mean NIS=%.2f",
                    run + 1, num_runs, row['rms_x'], row['rms_y'], row['rms_z'],
                    row['mean_nis'])

    table = pd.DataFrame(rows).set_index('run')
    output_dir.mkdir(parents=True, exist_ok=True)
    table.to_csv(output_dir / 'monte_carlo.csv')
    return table


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Absolute localization EKF scenario',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  absloc-sim                         Default scenario
  absloc-sim --relative --plot       Relative frame, with plots
  absloc-sim --monte-carlo 20        Monte Carlo (20 runs)
        """
    )
    parser.add_argument('--config', type=str, default=None,
                        help='Path to scenario config YAML')
    parser.add_argument('--duration', type=float, default=None,
                        help='Scenario duration in seconds')
    parser.add_argument('--seed', type=int, default=None,
                        help='Random seed')
    parser.add_argument('--relative', action='store_true',
                        help='Sensor does not define the global frame')
    parser.add_argument('--no-init', action='store_true',
                        help='Use the raw first reading instead of the seed estimate')
    parser.add_argument('--monte-carlo', type=int, default=0,
                        help='Run Monte Carlo with N runs')
    parser.add_argument('--plot', action='store_true',
                        help='Write PNG plots')
    parser.add_argument('--output', type=str, default=None,
                        help='Output directory (default: simulation.output_dir or output)')
    parser.add_argument('--log-file', type=str, default=None,
                        help='Also write the log to this file')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Debug logging (per-correction innovations)')
    return parser


def main(argv=None) -> int:
    """
    Main entry point. Parses command line arguments and runs the
    requested mode. Returns the process exit code.
    """
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose, args.log_file)

    try:
        config = apply_overrides(load_config(args.config), args)
    except FileNotFoundError as exc:
        logger.error("Configuration file not found: %s (pass --config PATH)",
                     exc.filename)
        return 1
    sim_cfg = config.get('simulation', {})
    output_dir = Path(args.output or sim_cfg.get('output_dir', 'output'))
    plot = args.plot or bool(sim_cfg.get('plot', False))
    start = time.time()

    try:
        if args.monte_carlo > 0:
            table = run_monte_carlo(config, output_dir, args.monte_carlo)
            print(table.describe().loc[['mean', 'std', 'max']].to_string())
        else:
            summary = run_scenario(config, output_dir, plot=plot)
            print("=" * 70)
            for key, value in summary.items():
                print(f"  {key:>12}: {value}")
            print("=" * 70)
    except AbslocError as exc:
        logger.error("Scenario aborted: %s", exc)
        return 1

    logger.info("Done in %.1f s, outputs in %s", time.time() - start, output_dir)
    return 0


if __name__ == '__main__':
    sys.exit(main())
