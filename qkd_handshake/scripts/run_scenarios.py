#!/usr/bin/env python3
"""Run handshake scenarios from configuration files.

This script provides batch execution of handshakes with different
configurations, collecting and saving results for analysis.

Usage:
    python -m qkd_handshake.scripts.run_scenarios                         # All scenarios
    python -m qkd_handshake.scripts.run_scenarios --scenario eavesdropper # One scenario
    python -m qkd_handshake.scripts.run_scenarios --list                  # List scenarios

Examples:
    # Run one scenario with verbose output
    qkd-scenarios --scenario quick_test --log-level DEBUG

    # Run with custom output directory
    qkd-scenarios --output-dir ./my_results
"""

import argparse
import sys
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from qkd_handshake.configs import list_scenarios, load_scenario, protocol_config
from qkd_handshake.core.session import HandshakeSession
from qkd_handshake.utils.logging import get_logger, set_log_level
from qkd_handshake.utils.results import (
    ScenarioResult,
    generate_summary_report,
    save_results_csv,
    save_results_json,
)

logger = get_logger(__name__)


def run_scenario(name: str, config: Dict[str, Any]) -> ScenarioResult:
    """Run every handshake of one scenario.

    Parameters
    ----------
    name : str
        Scenario name, used in reports.
    config : Dict[str, Any]
        Merged scenario configuration.

    Returns
    -------
    ScenarioResult
        Per-run results with the summary already computed.

    Raises
    ------
    ValueError
        If the protocol section is invalid.
    """
    protocol = protocol_config(config)
    simulation = config.get("simulation", {})
    num_runs = int(simulation.get("num_runs", 1))
    seed = simulation.get("seed")
    auth_key = simulation.get("auth_key")

    logger.info(f"Running scenario {name}: {num_runs} run(s)")
    start_time = time.time()

    runs = []
    for i in range(num_runs):
        session = HandshakeSession(
            protocol,
            seed=None if seed is None else seed + i,
            auth_key=auth_key.encode() if auth_key else None,
        )
        runs.append(session.run())

    logger.info(f"Scenario {name} finished in {time.time() - start_time:.2f}s")

    result = ScenarioResult(scenario_name=name, config=config, runs=runs)
    result.compute_summary()
    return result


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Run BB84 handshake scenarios",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--scenario",
        type=str,
        default=None,
        help="Run a single scenario (default: all)",
    )
    parser.add_argument(
        "--list",
        action="store_true",
        help="List available scenarios and exit",
    )
    parser.add_argument(
        "--output-dir",
        type=str,
        default="results",
        help="Directory for result files (default: results)",
    )
    parser.add_argument(
        "--output-format",
        choices=["json", "csv", "both"],
        default="both",
        help="Result file format (default: both)",
    )
    parser.add_argument(
        "--no-save",
        action="store_true",
        help="Do not write result files",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Logging level (default: WARNING)",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point.

    Returns
    -------
    int
        Exit code (0 if every requested scenario ran).
    """
    args = parse_args(argv)
    set_log_level(args.log_level)

    if args.list:
        print("Available scenarios:")
        for s in list_scenarios():
            print(f"  - {s}")
        return 0

    scenarios = [args.scenario] if args.scenario else list_scenarios()
    if not scenarios:
        print("No scenarios found!")
        return 1

    all_results: List[ScenarioResult] = []
    failed = 0

    for scenario_name in scenarios:
        try:
            result = run_scenario(scenario_name, load_scenario(scenario_name))
        except (FileNotFoundError, ValueError) as e:
            logger.error(f"Failed to run scenario {scenario_name}: {e}")
            failed += 1
            continue

        all_results.append(result)
        print(f"\n{scenario_name}:")
        print(f"  Success rate: {result.summary.get('success_rate', 0) * 100:.1f}%")
        if result.summary.get("avg_qber") is not None:
            print(f"  Avg QBER: {result.summary['avg_qber']:.4f}")
        if result.summary.get("avg_key_length") is not None:
            print(f"  Avg key length: {result.summary['avg_key_length']:.1f}")

    if not args.no_save and all_results:
        output_dir = Path(args.output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        timestamp = all_results[0].timestamp.replace(":", "-").replace(".", "-")
        base_filename = f"results_{timestamp}"

        if args.output_format in ("json", "both"):
            save_results_json(all_results, output_dir / f"{base_filename}.json")
        if args.output_format in ("csv", "both"):
            save_results_csv(all_results, output_dir / f"{base_filename}.csv")

        report = generate_summary_report(all_results, output_dir / f"{base_filename}_report.txt")
        print("\n" + report)

    return 0 if failed == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
