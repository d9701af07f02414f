"""Run configuration loading and validation.

Accepts YAML or JSON (a JSON document is valid YAML). Validation problems are
reported per field, e.g. ``jobs.6016: Input should be a valid string``.
"""

from pathlib import Path

import yaml
from pydantic import ValidationError

from parkreserve.errors import ConfigError
from parkreserve.models import RunConfig

DEFAULT_CONFIG_PATH = "config.yaml"


def _describe(error: ValidationError) -> str:
    parts = []
    for e in error.errors():
        where = ".".join(str(p) for p in e["loc"]) or "config"
        parts.append(f"{where}: {e['msg']}")
    return "; ".join(parts)


def load_run_config(path: str | Path = DEFAULT_CONFIG_PATH) -> RunConfig:
    """Load and validate a run config file."""
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file must contain a YAML mapping, got {type(data).__name__}")

    if isinstance(data.get("cookie"), str):
        data["cookie"] = data["cookie"].strip() or None

    try:
        return RunConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid config {path}: {_describe(e)}") from e
