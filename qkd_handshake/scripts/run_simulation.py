#!/usr/bin/env python3
"""Run BB84 handshake simulations.

This script provides a command-line interface for executing complete
handshakes between two in-process peers with configurable parameters.

Usage:
    python -m qkd_handshake.scripts.run_simulation                  # Base config
    python -m qkd_handshake.scripts.run_simulation --num-qubits 1000
    python -m qkd_handshake.scripts.run_simulation --eve            # Add Eve

Examples:
    # Low noise simulation
    qkd-simulate --noise 0.02 --num-runs 5 --num-qubits 2000 --sample-size 200

    # Eavesdropper (should abort)
    qkd-simulate --eve --num-qubits 1000 --sample-size 200

    # Debug mode
    qkd-simulate --log-level DEBUG --seed 7
"""

import argparse
import sys
from typing import Any, Dict, List, Optional, Sequence

from qkd_handshake.configs import load_base_config, load_config_file, protocol_config
from qkd_handshake.core.base import COMMITMENT_SCHEMES, ProtocolConfig
from qkd_handshake.core.exceptions import ProtocolError
from qkd_handshake.core.session import HandshakeSession
from qkd_handshake.privacy.utils import bits_to_hex
from qkd_handshake.utils.logging import get_logger, set_log_level
from qkd_handshake.utils.results import RunResult

logger = get_logger(__name__)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command line arguments.

    Protocol options default to None so that values from the configuration
    file apply unless overridden on the command line.
    """
    parser = argparse.ArgumentParser(
        description="Run BB84 handshake simulations",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    # Simulation parameters
    parser.add_argument(
        "--num-runs",
        type=int,
        default=None,
        help="Number of independent handshakes (default: from config)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Base RNG seed; run i uses seed + i (default: unseeded)",
    )

    # Protocol parameters
    parser.add_argument("--num-qubits", type=int, default=None, help="Qubits Alice prepares")
    parser.add_argument(
        "--sample-size", type=int, default=None, help="Sifted bits sacrificed for QBER estimation"
    )
    parser.add_argument("--threshold", type=float, default=None, help="QBER abort threshold")
    parser.add_argument(
        "--eve",
        action="store_true",
        default=None,
        help="Insert an intercept-resend eavesdropper",
    )
    parser.add_argument(
        "--noise", type=float, default=None, help="Channel bit-flip probability (0-0.5)"
    )
    parser.add_argument(
        "--security-margin",
        type=int,
        default=None,
        help="Bits sacrificed in privacy amplification",
    )
    parser.add_argument(
        "--commitment",
        choices=COMMITMENT_SCHEMES,
        default=None,
        help="Final key commitment scheme",
    )
    parser.add_argument(
        "--auth-key",
        type=str,
        default=None,
        help="Pre-shared key; enables HMAC authentication of every message",
    )

    # Configuration file
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to YAML config file (command line values take precedence)",
    )

    # Logging
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Logging level (default: WARNING)",
    )

    # Output
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress per-run output",
    )

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> Dict[str, Any]:
    """Merge the configuration file with command line overrides."""
    config = load_config_file(args.config) if args.config else load_base_config()
    simulation = dict(config.get("simulation", {}))
    if args.num_runs is not None:
        simulation["num_runs"] = args.num_runs
    if args.seed is not None:
        simulation["seed"] = args.seed
    if args.auth_key is not None:
        simulation["auth_key"] = args.auth_key
    config["simulation"] = simulation
    return config


def protocol_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    return {
        "qubit_count": args.num_qubits,
        "sample_size": args.sample_size,
        "qber_threshold": args.threshold,
        "eve_enabled": args.eve,
        "noise": args.noise,
        "security_margin": args.security_margin,
        "commitment": args.commitment,
    }


def run_batch(
    config: ProtocolConfig,
    num_runs: int,
    seed: Optional[int] = None,
    auth_key: Optional[bytes] = None,
) -> List[RunResult]:
    """Run ``num_runs`` independent handshakes, keeping the sessions' keys in the log."""
    results = []
    for i in range(num_runs):
        run_seed = None if seed is None else seed + i
        session = HandshakeSession(config, seed=run_seed, auth_key=auth_key)
        result = session.run()
        if result.success:
            logger.debug(f"Run {i + 1} key: {bits_to_hex(session.alice.final_key)}")
        results.append(result)
    return results


def print_results(results: List[RunResult], config: ProtocolConfig, quiet: bool) -> None:
    """Print simulation results in a readable format."""
    print("\n" + "=" * 60)
    print("BB84 HANDSHAKE RESULTS")
    print("=" * 60)

    if not quiet:
        for i, result in enumerate(results):
            print(f"\n--- Run {i + 1} ({result.run_id[:8]}) ---")
            qber = f"{result.qber:.4f}" if result.qber is not None else "n/a"
            if result.success:
                match = "✓" if result.keys_match else "✗ (KEYS MISMATCH!)"
                print(f"  Status: SUCCESS {match}")
                print(f"  QBER: {qber}")
                print(f"  Sifted Length: {result.sifted_length} bits")
                print(f"  Parity Bits Revealed: {result.bits_revealed}")
                print(f"  Key Length: {result.final_key_length} bits")
            else:
                print("  Status: ABORTED")
                print(f"  QBER: {qber}")
                print(f"  Reason: {result.abort_reason}")

    success_count = sum(1 for r in results if r.success)
    print("\n" + "=" * 60)
    print("SUMMARY")
    print("=" * 60)
    print(f"  Total Runs: {len(results)}")
    print(f"  Successful: {success_count}")
    print(f"  Aborted: {len(results) - success_count}")
    if success_count:
        avg_key_length = sum(r.final_key_length for r in results if r.success) / success_count
        print(f"  Average Key Length: {avg_key_length:.1f} bits")
    print(f"  Qubits: {config.qubit_count}, Eve: {config.eve_enabled}, Noise: {config.noise}")
    print("=" * 60)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point.

    Returns
    -------
    int
        Exit code (0 if every run succeeded, 1 otherwise, 2 on bad input).
    """
    args = parse_args(argv)
    set_log_level(args.log_level)

    try:
        config = build_config(args)
        protocol = protocol_config(config, protocol_overrides(args))
    except (OSError, ValueError) as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    simulation = config["simulation"]
    auth_key = simulation.get("auth_key")

    try:
        results = run_batch(
            protocol,
            num_runs=int(simulation.get("num_runs", 1)),
            seed=simulation.get("seed"),
            auth_key=auth_key.encode() if auth_key else None,
        )
    except ProtocolError as e:
        logger.error(f"Simulation failed: {e}")
        return 1

    print_results(results, protocol, args.quiet)
    return 0 if results and all(r.success for r in results) else 1


if __name__ == "__main__":
    sys.exit(main())
