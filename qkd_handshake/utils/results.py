"""Result handling for handshake simulations.

Saves, loads and summarizes batches of handshake runs in JSON and CSV
formats, with a plain-text report and matplotlib plots.

Notes
-----
Results are stored with timestamps and scenario metadata for traceability.
"""

import csv
import json
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import numpy as np

from qkd_handshake.core.constants import QBER_THRESHOLD
from qkd_handshake.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class RunResult:
    """Result from a single handshake run.

    Attributes
    ----------
    run_id : str
        Run identifier carried by the protocol messages.
    success : bool
        Whether both peers reached the success phase.
    qber : Optional[float]
        Measured QBER (if the run got that far).
    sifted_length : int
        Sifted key length before sampling.
    final_key_length : int
        Length of the final secret key (0 if failed).
    bits_revealed : int
        Parity bits disclosed during reconciliation.
    abort_reason : Optional[str]
        Why the run aborted, if it did.
    keys_match : Optional[bool]
        Whether Alice's and Bob's final keys are identical.
    duration_ms : float
        Execution time in milliseconds.
    """

    run_id: str
    success: bool
    qber: Optional[float] = None
    sifted_length: int = 0
    final_key_length: int = 0
    bits_revealed: int = 0
    abort_reason: Optional[str] = None
    keys_match: Optional[bool] = None
    duration_ms: float = 0.0


@dataclass
class ScenarioResult:
    """Aggregated results from a scenario execution.

    Attributes
    ----------
    scenario_name : str
        Name of the scenario.
    timestamp : str
        ISO timestamp when the scenario was executed.
    config : Dict[str, Any]
        Configuration used for the scenario.
    runs : List[RunResult]
        Results from individual runs.
    summary : Dict[str, Any]
        Computed summary statistics.
    """

    scenario_name: str
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())
    config: Dict[str, Any] = field(default_factory=dict)
    runs: List[RunResult] = field(default_factory=list)
    summary: Dict[str, Any] = field(default_factory=dict)

    def compute_summary(self) -> Dict[str, Any]:
        """Compute summary statistics from runs.

        Returns
        -------
        Dict[str, Any]
            Success rate, QBER and key length statistics, and the
            distribution of abort reasons.
        """
        if not self.runs:
            return {}

        successful_runs = [r for r in self.runs if r.success]
        failed_runs = [r for r in self.runs if not r.success]

        summary: Dict[str, Any] = {
            "total_runs": len(self.runs),
            "successful_runs": len(successful_runs),
            "failed_runs": len(failed_runs),
            "success_rate": len(successful_runs) / len(self.runs),
        }

        qbers = [r.qber for r in self.runs if r.qber is not None]
        if qbers:
            summary.update({
                "avg_qber": float(np.mean(qbers)),
                "std_qber": float(np.std(qbers)),
                "min_qber": float(np.min(qbers)),
                "max_qber": float(np.max(qbers)),
            })

        if successful_runs:
            key_lengths = [r.final_key_length for r in successful_runs]
            summary.update({
                "avg_key_length": float(np.mean(key_lengths)),
                "std_key_length": float(np.std(key_lengths)),
                "min_key_length": int(np.min(key_lengths)),
                "max_key_length": int(np.max(key_lengths)),
                "keys_match_rate": sum(1 for r in successful_runs if r.keys_match)
                / len(successful_runs),
            })

        if failed_runs:
            reasons: Dict[str, int] = {}
            for r in failed_runs:
                reason = r.abort_reason or "Unknown"
                reasons[reason] = reasons.get(reason, 0) + 1
            summary["abort_reasons"] = reasons

        self.summary = summary
        return summary


def save_results_json(
    results: Union[ScenarioResult, List[ScenarioResult]],
    output_path: Union[str, Path],
) -> Path:
    """Save results to JSON file.

    Parameters
    ----------
    results : Union[ScenarioResult, List[ScenarioResult]]
        Results to save.
    output_path : Union[str, Path]
        Output file path (will add .json extension if missing).

    Returns
    -------
    Path
        Path to the saved file.
    """
    output_path = Path(output_path)
    if output_path.suffix != ".json":
        output_path = output_path.with_suffix(".json")

    output_path.parent.mkdir(parents=True, exist_ok=True)

    if isinstance(results, ScenarioResult):
        results = [results]

    data = [
        {
            "scenario_name": result.scenario_name,
            "timestamp": result.timestamp,
            "config": result.config,
            "runs": [asdict(run) for run in result.runs],
            "summary": result.summary,
        }
        for result in results
    ]

    with open(output_path, "w") as f:
        json.dump(data, f, indent=2, default=str)

    logger.info(f"Saved results to {output_path}")
    return output_path


def save_results_csv(
    results: Union[ScenarioResult, List[ScenarioResult]],
    output_path: Union[str, Path],
) -> Path:
    """Save results to CSV file, one row per run.

    Parameters
    ----------
    results : Union[ScenarioResult, List[ScenarioResult]]
        Results to save.
    output_path : Union[str, Path]
        Output file path (will add .csv extension if missing).

    Returns
    -------
    Path
        Path to the saved file.
    """
    output_path = Path(output_path)
    if output_path.suffix != ".csv":
        output_path = output_path.with_suffix(".csv")

    output_path.parent.mkdir(parents=True, exist_ok=True)

    if isinstance(results, ScenarioResult):
        results = [results]

    rows = []
    for scenario in results:
        protocol = scenario.config.get("protocol", {}) if scenario.config else {}
        for run in scenario.runs:
            row = {"scenario": scenario.scenario_name, "timestamp": scenario.timestamp}
            row.update(asdict(run))
            row["config_eve_enabled"] = protocol.get("eve_enabled")
            row["config_noise"] = protocol.get("noise")
            row["config_qubit_count"] = protocol.get("qubit_count")
            rows.append(row)

    if not rows:
        logger.warning("No results to save")
        return output_path

    fieldnames = list(rows[0].keys())
    with open(output_path, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=fieldnames)
        writer.writeheader()
        writer.writerows(rows)

    logger.info(f"Saved results to {output_path}")
    return output_path


def load_results_json(input_path: Union[str, Path]) -> List[ScenarioResult]:
    """Load results saved by ``save_results_json``."""
    input_path = Path(input_path)

    with open(input_path, "r") as f:
        data = json.load(f)

    results = []
    for item in data:
        runs = [RunResult(**run) for run in item.get("runs", [])]
        results.append(
            ScenarioResult(
                scenario_name=item["scenario_name"],
                timestamp=item.get("timestamp", ""),
                config=item.get("config", {}),
                runs=runs,
                summary=item.get("summary", {}),
            )
        )

    return results


def load_results_csv(input_path: Union[str, Path]) -> List[Dict[str, Any]]:
    """Load CSV rows as dictionaries (all values are strings)."""
    input_path = Path(input_path)

    with open(input_path, "r", newline="") as f:
        reader = csv.DictReader(f)
        return list(reader)


def generate_result_filename(scenario_name: str, extension: str = "json") -> str:
    """Generate a timestamped filename for results.

    Examples
    --------
    >>> generate_result_filename("no_eve")  # doctest: +SKIP
    'no_eve_20250101_120000.json'
    """
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return f"{scenario_name}_{timestamp}.{extension}"


def _axes(title: str, xlabel: str, ylabel: str):
    import matplotlib.pyplot as plt

    fig, ax = plt.subplots(figsize=(10, 6))
    ax.set_title(title)
    ax.set_xlabel(xlabel)
    ax.set_ylabel(ylabel)
    return plt, ax


def _finish(plt, ax, output_path: Optional[Union[str, Path]], show: bool) -> None:
    if ax.get_legend_handles_labels()[0]:
        ax.legend()
    if output_path:
        plt.savefig(output_path, dpi=150, bbox_inches="tight")
        logger.info(f"Saved plot to {output_path}")
    if show:
        plt.show()
    plt.close()


def plot_qber_distribution(
    results: List[ScenarioResult],
    output_path: Optional[Union[str, Path]] = None,
    show: bool = True,
    threshold: float = QBER_THRESHOLD,
) -> None:
    """Histogram of the measured QBER per scenario, aborted runs included.

    Parameters
    ----------
    results : List[ScenarioResult]
        Scenarios to draw, one histogram each.
    output_path : Optional[Union[str, Path]]
        Image file to write, if any.
    show : bool
        Open an interactive window.
    threshold : float
        Abort threshold, drawn as a dashed line.
    """
    plt, ax = _axes("Sample QBER by scenario", "QBER", "Runs")
    for scenario in results:
        measured = [run.qber for run in scenario.runs if run.qber is not None]
        if measured:
            ax.hist(measured, bins=20, alpha=0.5, label=scenario.scenario_name)
    ax.axvline(threshold, color="red", linestyle="--", label="abort threshold")
    ax.grid(True, alpha=0.3)
    _finish(plt, ax, output_path, show)


def plot_key_length_vs_qber(
    results: List[ScenarioResult],
    output_path: Optional[Union[str, Path]] = None,
    show: bool = True,
    threshold: float = QBER_THRESHOLD,
) -> None:
    """Final key length against QBER, one point per successful run."""
    plt, ax = _axes("Final key length against QBER", "QBER", "Final key length (bits)")
    for scenario in results:
        succeeded = [run for run in scenario.runs if run.success]
        if succeeded:
            ax.scatter(
                [run.qber for run in succeeded],
                [run.final_key_length for run in succeeded],
                alpha=0.7,
                label=scenario.scenario_name,
            )
    ax.axvline(threshold, color="red", linestyle="--", label="abort threshold")
    ax.grid(True, alpha=0.3)
    _finish(plt, ax, output_path, show)


def plot_success_rate_comparison(
    results: List[ScenarioResult],
    output_path: Optional[Union[str, Path]] = None,
    show: bool = True,
) -> None:
    """Bar chart of scenario success rates.

    Scenarios without a computed summary are skipped; nothing is drawn if
    none has one.
    """
    summarized = [s for s in results if s.summary]
    if not summarized:
        logger.warning("No summary data available for plotting")
        return

    plt, ax = _axes("Handshake success rate by scenario", "Scenario", "Success rate (%)")
    bars = ax.bar(
        [s.scenario_name for s in summarized],
        [s.summary.get("success_rate", 0) * 100 for s in summarized],
        color="steelblue",
        alpha=0.8,
    )
    ax.bar_label(bars, fmt="%.1f%%", padding=2)
    ax.set_ylim(0, 110)
    ax.grid(True, alpha=0.3, axis="y")
    ax.tick_params(axis="x", labelrotation=45)
    _finish(plt, ax, output_path, show)


def generate_summary_report(
    results: List[ScenarioResult],
    output_path: Optional[Union[str, Path]] = None,
) -> str:
    """Generate a text summary report of results.

    Parameters
    ----------
    results : List[ScenarioResult]
        Results to summarize.
    output_path : Optional[Union[str, Path]]
        If provided, save report to this path.

    Returns
    -------
    str
        The generated report text.
    """
    lines = [
        "=" * 70,
        "BB84 HANDSHAKE RESULTS SUMMARY",
        "=" * 70,
        f"Generated: {datetime.now().isoformat()}",
        f"Total scenarios: {len(results)}",
        "",
    ]

    for scenario in results:
        lines.append("-" * 70)
        lines.append(f"Scenario: {scenario.scenario_name}")
        lines.append(f"Timestamp: {scenario.timestamp}")
        lines.append("")

        s = scenario.summary
        if not s:
            lines.append("  No summary available")
            lines.append("")
            continue

        lines.append(f"  Total runs:      {s.get('total_runs', 0)}")
        lines.append(f"  Successful:      {s.get('successful_runs', 0)}")
        lines.append(f"  Aborted:         {s.get('failed_runs', 0)}")
        lines.append(f"  Success rate:    {s.get('success_rate', 0) * 100:.1f}%")
        lines.append("")

        if s.get("avg_qber") is not None:
            lines.append(f"  QBER (avg±std):  {s['avg_qber']:.4f} ± {s.get('std_qber', 0):.4f}")
            lines.append(
                f"  QBER (range):    [{s.get('min_qber', 0):.4f}, {s.get('max_qber', 0):.4f}]"
            )

        if s.get("avg_key_length") is not None:
            lines.append(f"  Key length (avg): {s['avg_key_length']:.1f}")
            lines.append(
                f"  Key length (range): [{s.get('min_key_length', 0)}, {s.get('max_key_length', 0)}]"
            )
            lines.append(f"  Keys matched:    {s.get('keys_match_rate', 0) * 100:.1f}%")

        if s.get("abort_reasons"):
            lines.append("  Abort reasons:")
            for reason, count in s["abort_reasons"].items():
                lines.append(f"    - {reason}: {count}")

        lines.append("")

    lines.append("=" * 70)
    report = "\n".join(lines)

    if output_path:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "w") as f:
            f.write(report)
        logger.info(f"Saved report to {output_path}")

    return report
