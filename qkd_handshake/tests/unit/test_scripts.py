"""Tests for the command line entry points."""

import json

import pytest

from qkd_handshake.core.base import ProtocolConfig
from qkd_handshake.scripts import analyze_results, run_scenarios, run_simulation
from qkd_handshake.utils.results import RunResult, ScenarioResult


class TestRunSimulation:
    """Test suite for ``qkd-simulate``."""

    def test_successful_batch(self, capsys):
        code = run_simulation.main(
            ["--num-runs", "2", "--seed", "3", "--num-qubits", "1000", "--sample-size", "100"]
        )
        assert code == 0
        out = capsys.readouterr().out
        assert "Status: SUCCESS" in out
        assert "Successful: 2" in out

    def test_eavesdropper_aborts(self, capsys):
        code = run_simulation.main(
            [
                "--eve",
                "--num-runs", "1",
                "--seed", "5",
                "--num-qubits", "1000",
                "--sample-size", "200",
            ]
        )
        assert code == 1
        assert "Reason: QBER too high" in capsys.readouterr().out

    def test_authenticated_batch(self):
        code = run_simulation.main(
            [
                "--quiet",
                "--num-runs", "1",
                "--seed", "8",
                "--num-qubits", "1000",
                "--sample-size", "100",
                "--auth-key", "pre-shared",
            ]
        )
        assert code == 0

    def test_invalid_parameters(self):
        assert run_simulation.main(["--num-qubits", "100", "--sample-size", "80"]) == 2

    def test_missing_config_file(self, tmp_path):
        assert run_simulation.main(["--config", str(tmp_path / "missing.yaml")]) == 2

    def test_config_file(self, tmp_path, capsys):
        path = tmp_path / "run.yaml"
        path.write_text(
            "protocol:\n  qubit_count: 1000\n  sample_size: 100\n"
            "simulation:\n  num_runs: 1\n  seed: 2\n"
        )
        assert run_simulation.main(["--config", str(path), "--quiet"]) == 0
        assert "Total Runs: 1" in capsys.readouterr().out

    def test_run_batch_is_reproducible(self):
        config = ProtocolConfig(qubit_count=1000, sample_size=100)
        first = run_simulation.run_batch(config, num_runs=2, seed=10)
        second = run_simulation.run_batch(config, num_runs=2, seed=10)
        assert [r.final_key_length for r in first] == [r.final_key_length for r in second]
        assert all(r.success for r in first)


class TestRunScenarios:
    """Test suite for ``qkd-scenarios``."""

    def test_list(self, capsys):
        assert run_scenarios.main(["--list"]) == 0
        out = capsys.readouterr().out
        assert "no_eve" in out
        assert "eavesdropper" in out

    def test_single_scenario_saved(self, tmp_path, capsys):
        code = run_scenarios.main(
            ["--scenario", "quick_test", "--output-dir", str(tmp_path), "--output-format", "json"]
        )
        assert code == 0
        files = sorted(p.name for p in tmp_path.iterdir())
        assert any(name.endswith(".json") for name in files)
        assert any(name.endswith("_report.txt") for name in files)
        assert not any(name.endswith(".csv") for name in files)

        json_file = next(p for p in tmp_path.iterdir() if p.suffix == ".json")
        data = json.loads(json_file.read_text())
        assert data[0]["scenario_name"] == "quick_test"
        assert data[0]["summary"]["total_runs"] == 3
        assert "quick_test:" in capsys.readouterr().out

    def test_run_scenario(self):
        result = run_scenarios.run_scenario(
            "eve", run_scenarios.load_scenario("eavesdropper")
        )
        assert result.summary["success_rate"] == 0.0
        assert result.summary["abort_reasons"] == {"QBER too high": 20}

    def test_noisy_scenario_always_confirms(self):
        result = run_scenarios.run_scenario(
            "noisy", run_scenarios.load_scenario("noisy_channel")
        )
        assert result.summary["success_rate"] == 1.0
        assert all(run.keys_match for run in result.runs)

    def test_missing_scenario(self):
        assert run_scenarios.main(["--scenario", "nope", "--no-save"]) == 1


class TestAnalyzeResults:
    """Test suite for ``qkd-analyze``."""

    @pytest.fixture
    def results_dir(self, tmp_path):
        run_scenarios.main(
            ["--scenario", "quick_test", "--output-dir", str(tmp_path), "--output-format", "json"]
        )
        return tmp_path

    def test_requires_input(self, capsys):
        assert analyze_results.main([]) == 1

    def test_no_files_found(self, tmp_path):
        assert analyze_results.main(["--all", "--results-dir", str(tmp_path)]) == 1

    def test_report_and_output(self, results_dir, tmp_path, capsys):
        output = tmp_path / "analysis" / "out.json"
        code = analyze_results.main(
            ["--all", "--results-dir", str(results_dir), "--compare", "--output", str(output)]
        )
        assert code == 0
        out = capsys.readouterr().out
        assert "Scenario: quick_test" in out
        assert "SCENARIO COMPARISON: success_rate" in out
        analysis = json.loads(output.read_text())
        assert analysis["total_runs"] == 3

    def test_plots(self, results_dir):
        import matplotlib

        matplotlib.use("Agg")
        plot_dir = results_dir / "figures"
        code = analyze_results.main(
            ["--all", "--results-dir", str(results_dir), "--plot", "--plot-dir", str(plot_dir),
             "--no-report"]
        )
        assert code == 0
        assert (plot_dir / "qber_distribution.png").exists()
        assert (plot_dir / "success_rate_comparison.png").exists()

    def test_unreadable_file(self, tmp_path):
        bad = tmp_path / "bad.json"
        bad.write_text("{not json")
        assert analyze_results.main([str(bad)]) == 1

    def test_compare_ranking(self):
        ok = ScenarioResult(
            scenario_name="ok", runs=[RunResult(run_id="a", success=True, qber=0.01)]
        )
        eve = ScenarioResult(
            scenario_name="eve", runs=[RunResult(run_id="b", success=False, qber=0.25)]
        )
        by_rate = analyze_results.compare_scenarios([eve, ok], "success_rate")
        assert by_rate["ranking"] == ["ok", "eve"]
        by_qber = analyze_results.compare_scenarios([eve, ok], "qber")
        assert by_qber["ranking"] == ["ok", "eve"]
        by_length = analyze_results.compare_scenarios([eve, ok], "key_length")
        assert by_length["scenarios"]["eve"] is None

    def test_unknown_metric(self):
        with pytest.raises(ValueError):
            analyze_results.compare_scenarios([], "speed")

    def test_analysis_abort_reasons(self):
        eve = ScenarioResult(
            scenario_name="eve",
            runs=[RunResult(run_id="b", success=False, qber=0.25, abort_reason="QBER too high")],
        )
        analysis = analyze_results.analyze_results([eve])
        assert analysis["scenarios"]["eve"]["abort_reasons"] == {"QBER too high": 1}
        assert "global_key_length" not in analysis
