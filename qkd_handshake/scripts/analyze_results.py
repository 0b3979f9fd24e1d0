#!/usr/bin/env python3
"""Analyze saved handshake results.

This script provides post-simulation statistics, scenario comparison and
plots for files written by ``run_scenarios``.

Usage:
    python -m qkd_handshake.scripts.analyze_results results/results_*.json
    python -m qkd_handshake.scripts.analyze_results --all
    python -m qkd_handshake.scripts.analyze_results --all --compare --metric qber

Examples:
    # Generate plots only
    qkd-analyze results/*.json --plot --no-report

    # Save the analysis as JSON
    qkd-analyze --all --output analysis.json
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from qkd_handshake.utils.logging import get_logger, set_log_level
from qkd_handshake.utils.results import (
    ScenarioResult,
    load_results_json,
    plot_key_length_vs_qber,
    plot_qber_distribution,
    plot_success_rate_comparison,
)

logger = get_logger(__name__)

RESULTS_DIR = Path("results")

METRICS = ("success_rate", "qber", "key_length")


def find_result_files(directory: Path = RESULTS_DIR, pattern: str = "*.json") -> List[Path]:
    """Result files in ``directory``, sorted by name."""
    if not directory.exists():
        return []
    return sorted(directory.glob(pattern))


def _describe(values: List[float]) -> Dict[str, float]:
    return {
        "mean": float(np.mean(values)),
        "std": float(np.std(values)),
        "min": float(np.min(values)),
        "max": float(np.max(values)),
        "median": float(np.median(values)),
    }


def analyze_results(results: List[ScenarioResult]) -> Dict[str, Any]:
    """Per-scenario and global statistics.

    Parameters
    ----------
    results : List[ScenarioResult]
        Results to analyze.

    Returns
    -------
    Dict[str, Any]
        Run counts, success rates, QBER and key length statistics, and
        abort reasons, per scenario and over all scenarios.
    """
    analysis: Dict[str, Any] = {
        "total_scenarios": len(results),
        "total_runs": sum(len(r.runs) for r in results),
        "scenarios": {},
    }

    all_qbers: List[float] = []
    all_key_lengths: List[float] = []

    for scenario in results:
        qbers = [r.qber for r in scenario.runs if r.qber is not None]
        key_lengths = [r.final_key_length for r in scenario.runs if r.success]
        failed = [r for r in scenario.runs if not r.success]
        all_qbers.extend(qbers)
        all_key_lengths.extend(key_lengths)

        scenario_analysis: Dict[str, Any] = {
            "num_runs": len(scenario.runs),
            "successful": len(scenario.runs) - len(failed),
            "failed": len(failed),
            "success_rate": (
                (len(scenario.runs) - len(failed)) / len(scenario.runs) if scenario.runs else 0.0
            ),
        }
        if qbers:
            scenario_analysis["qber"] = _describe(qbers)
        if key_lengths:
            scenario_analysis["key_length"] = _describe(key_lengths)
        if failed:
            reasons: Dict[str, int] = {}
            for r in failed:
                reason = r.abort_reason or "Unknown"
                reasons[reason] = reasons.get(reason, 0) + 1
            scenario_analysis["abort_reasons"] = reasons

        analysis["scenarios"][scenario.scenario_name] = scenario_analysis

    if all_qbers:
        analysis["global_qber"] = _describe(all_qbers)
    if all_key_lengths:
        analysis["global_key_length"] = _describe(all_key_lengths)

    return analysis


def compare_scenarios(
    results: List[ScenarioResult],
    metric: str = "success_rate",
) -> Dict[str, Any]:
    """Rank scenarios by one metric.

    Lower is better for ``qber``; higher is better otherwise. Scenarios with
    no value for the metric are listed but not ranked.

    Raises
    ------
    ValueError
        If ``metric`` is unknown.
    """
    if metric not in METRICS:
        raise ValueError(f"Unknown metric {metric!r}, expected one of {METRICS}")

    comparison: Dict[str, Any] = {"metric": metric, "scenarios": {}, "ranking": []}

    values = []
    for scenario in results:
        value: Optional[float]
        if metric == "success_rate":
            successful = sum(1 for r in scenario.runs if r.success)
            value = successful / len(scenario.runs) if scenario.runs else 0.0
        elif metric == "qber":
            qbers = [r.qber for r in scenario.runs if r.qber is not None]
            value = float(np.mean(qbers)) if qbers else None
        else:
            lengths = [r.final_key_length for r in scenario.runs if r.success]
            value = float(np.mean(lengths)) if lengths else None

        comparison["scenarios"][scenario.scenario_name] = value
        if value is not None:
            values.append((scenario.scenario_name, value))

    values.sort(key=lambda item: item[1], reverse=metric != "qber")
    comparison["ranking"] = [name for name, _ in values]
    return comparison


def print_analysis(analysis: Dict[str, Any]) -> None:
    print("=" * 70)
    print("BB84 HANDSHAKE ANALYSIS")
    print("=" * 70)
    print(f"Total scenarios: {analysis['total_scenarios']}")
    print(f"Total runs: {analysis['total_runs']}")
    print()

    for name, data in analysis.get("scenarios", {}).items():
        print("-" * 70)
        print(f"Scenario: {name}")
        print(f"  Runs: {data['num_runs']} (success: {data['successful']}, failed: {data['failed']})")
        print(f"  Success rate: {data['success_rate'] * 100:.1f}%")
        if "qber" in data:
            q = data["qber"]
            print(f"  QBER: {q['mean']:.4f} ± {q['std']:.4f} [{q['min']:.4f}, {q['max']:.4f}]")
        if "key_length" in data:
            k = data["key_length"]
            print(f"  Key length: {k['mean']:.1f} ± {k['std']:.1f} [{k['min']:.0f}, {k['max']:.0f}]")
        if "abort_reasons" in data:
            print("  Abort reasons:")
            for reason, count in data["abort_reasons"].items():
                print(f"    - {reason}: {count}")
        print()

    if "global_qber" in analysis:
        print("-" * 70)
        print("Global Statistics:")
        q = analysis["global_qber"]
        print(f"  QBER: {q['mean']:.4f} ± {q['std']:.4f}")
    if "global_key_length" in analysis:
        k = analysis["global_key_length"]
        print(f"  Key length: {k['mean']:.1f} ± {k['std']:.1f}")
    print("=" * 70)


def print_comparison(comparison: Dict[str, Any]) -> None:
    print("=" * 70)
    print(f"SCENARIO COMPARISON: {comparison['metric']}")
    print("=" * 70)
    print("\nRanking:")
    for i, name in enumerate(comparison["ranking"], 1):
        value = comparison["scenarios"][name]
        if comparison["metric"] == "success_rate":
            value_str = f"{value * 100:.1f}%"
        elif comparison["metric"] == "qber":
            value_str = f"{value:.4f}"
        else:
            value_str = f"{value:.1f}"
        print(f"  {i}. {name}: {value_str}")
    print("=" * 70)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Analyze BB84 handshake results",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("files", nargs="*", help="Result files to analyze (JSON format)")
    parser.add_argument(
        "--all", "-a",
        action="store_true",
        help="Analyze every JSON file in the results directory",
    )
    parser.add_argument(
        "--results-dir",
        type=str,
        default=str(RESULTS_DIR),
        help="Directory searched by --all (default: results)",
    )
    parser.add_argument("--compare", "-c", action="store_true", help="Compare scenarios")
    parser.add_argument(
        "--metric",
        choices=METRICS,
        default="success_rate",
        help="Metric for comparison (default: success_rate)",
    )
    parser.add_argument("--plot", "-p", action="store_true", help="Generate plots")
    parser.add_argument(
        "--plot-dir",
        type=str,
        default=None,
        help="Directory for plot output (default: <results-dir>/plots)",
    )
    parser.add_argument("--no-report", action="store_true", help="Skip the text report")
    parser.add_argument(
        "--output", "-o",
        type=str,
        default=None,
        help="Output file for analysis results (JSON)",
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
        Exit code (0 for success, 1 if nothing could be loaded).
    """
    args = parse_args(argv)
    set_log_level(args.log_level)
    results_dir = Path(args.results_dir)

    if args.all:
        files = find_result_files(results_dir)
    elif args.files:
        files = [Path(f) for f in args.files]
    else:
        print("No result files specified. Use --all or provide file paths.")
        return 1

    if not files:
        print("No result files found!")
        return 1

    all_results: List[ScenarioResult] = []
    for file_path in files:
        try:
            results = load_results_json(file_path)
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.error(f"Failed to load {file_path}: {e}")
            continue
        all_results.extend(results)
        logger.info(f"Loaded {len(results)} scenario(s) from {file_path}")

    if not all_results:
        print("No valid results loaded!")
        return 1

    analysis = analyze_results(all_results)
    if not args.no_report:
        print_analysis(analysis)

    if args.compare:
        print_comparison(compare_scenarios(all_results, args.metric))

    if args.plot:
        plot_dir = Path(args.plot_dir) if args.plot_dir else results_dir / "plots"
        plot_dir.mkdir(parents=True, exist_ok=True)
        print("\nGenerating plots...")
        for plot, filename in (
            (plot_qber_distribution, "qber_distribution.png"),
            (plot_key_length_vs_qber, "key_length_vs_qber.png"),
            (plot_success_rate_comparison, "success_rate_comparison.png"),
        ):
            plot(all_results, output_path=plot_dir / filename, show=False)
            print(f"  - Saved: {plot_dir / filename}")

    if args.output:
        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "w") as f:
            json.dump(analysis, f, indent=2)
        print(f"\nSaved analysis to {output_path}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
