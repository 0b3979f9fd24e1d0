"""Configuration package for BB84 handshake simulations.

Usage:
    from qkd_handshake.configs import load_scenario, list_scenarios

    # List available scenarios
    scenarios = list_scenarios()

    # Load a specific scenario
    config = load_scenario("eavesdropper")
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from qkd_handshake.core.base import ProtocolConfig

CONFIGS_DIR = Path(__file__).parent
SCENARIOS_DIR = CONFIGS_DIR / "scenarios"


def _load_yaml(path: Path) -> Dict[str, Any]:
    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Top level of {path} must be a mapping")
    return data


def load_base_config() -> Dict[str, Any]:
    """Load the base configuration.

    Returns
    -------
    Dict[str, Any]
        Base configuration dictionary.
    """
    base_path = CONFIGS_DIR / "base.yaml"
    if not base_path.exists():
        return {}
    return _load_yaml(base_path)


def load_config_file(path: Union[str, Path]) -> Dict[str, Any]:
    """Load an arbitrary YAML file merged on top of the base configuration."""
    return _deep_merge(load_base_config(), _load_yaml(Path(path)))


def load_scenario(name: str) -> Dict[str, Any]:
    """Load a scenario configuration with base inheritance.

    Parameters
    ----------
    name : str
        Scenario name (without .yaml extension).

    Returns
    -------
    Dict[str, Any]
        Merged configuration dictionary.

    Raises
    ------
    FileNotFoundError
        If scenario file doesn't exist.
    """
    scenario_path = SCENARIOS_DIR / f"{name}.yaml"
    if not scenario_path.exists():
        raise FileNotFoundError(f"Scenario not found: {scenario_path}")
    return load_config_file(scenario_path)


def protocol_config(
    config: Dict[str, Any],
    overrides: Optional[Dict[str, Any]] = None,
) -> ProtocolConfig:
    """Build a ``ProtocolConfig`` from the ``protocol`` section of a config.

    Parameters
    ----------
    config : Dict[str, Any]
        Loaded configuration.
    overrides : Optional[Dict[str, Any]]
        Values taking precedence over the file, e.g. from the command line.
        ``None`` values are skipped.

    Raises
    ------
    ValueError
        If the section has unknown keys or invalid values.
    """
    values = dict(config.get("protocol", {}))
    for key, value in (overrides or {}).items():
        if value is not None:
            values[key] = value
    return ProtocolConfig.from_dict(values)


def list_scenarios() -> List[str]:
    """List available scenarios.

    Returns
    -------
    List[str]
        List of scenario names.
    """
    if not SCENARIOS_DIR.exists():
        return []
    return sorted(f.stem for f in SCENARIOS_DIR.glob("*.yaml"))


def _deep_merge(base: Dict, override: Dict) -> Dict:
    """Deep merge two dictionaries.

    Parameters
    ----------
    base : Dict
        Base dictionary.
    override : Dict
        Override dictionary (values take precedence).

    Returns
    -------
    Dict
        Merged dictionary.
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


__all__ = [
    "load_base_config",
    "load_config_file",
    "load_scenario",
    "protocol_config",
    "list_scenarios",
    "CONFIGS_DIR",
    "SCENARIOS_DIR",
]
