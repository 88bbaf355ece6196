"""Config loader: read a YAML file and build a VerifierConfig."""

from __future__ import annotations

from pathlib import Path

import yaml

from callgate.config import VerifierConfig

MAX_CONFIG_SIZE = 1_048_576  # 1 MB


def load_config(source: str | Path) -> VerifierConfig:
    """Load and validate a verifier configuration file.

    The document may be the verifier mapping itself or wrap it under a
    top-level ``verifier`` key.

    Args:
        source: Path to a YAML (or JSON) file.

    Raises:
        CallGateConfigError: If the file is too large, is not valid YAML,
            is not a mapping, or fails schema validation.
        FileNotFoundError: If the file does not exist.
    """
    from callgate import CallGateConfigError

    path = Path(source)

    file_size = path.stat().st_size
    if file_size > MAX_CONFIG_SIZE:
        raise CallGateConfigError(f"Config file too large ({file_size} bytes, max {MAX_CONFIG_SIZE})")

    try:
        data = yaml.safe_load(path.read_bytes())
    except yaml.YAMLError as e:
        raise CallGateConfigError(f"YAML parse error: {e}") from e

    if not isinstance(data, dict):
        raise CallGateConfigError("Config document must be a mapping")

    if "verifier" in data:
        data = data["verifier"]

    return VerifierConfig.from_dict(data)
