"""
Reading voicebridge.yaml from disk.

Relative config paths are anchored at the checkout root rather than the
process working directory, so `python -m voicebridge` behaves the same from
any directory. `${VAR}` references are expanded before parsing; unset
variables are left in place for validation to report.
"""

import os
import yaml
from pathlib import Path


# Checkout root: the directory holding the voicebridge package
_PROJ_DIR = Path(__file__).parent.parent.parent.resolve()

DEFAULT_CONFIG_PATH = "config/voicebridge.yaml"


def resolve_config_path(path: str) -> str:
    """Anchor a relative config path at the checkout root; absolute paths pass through."""
    if os.path.isabs(path):
        return path
    return os.path.join(_PROJ_DIR, path)


def load_yaml_with_env_expansion(path: str) -> dict:
    """
    Parse the YAML file at path after expanding environment references.

    An empty file yields {}. A document whose top level is not a mapping
    (a bare list or scalar) is rejected.

    Raises:
        FileNotFoundError: no file at path
        yaml.YAMLError: unparseable YAML or a non-mapping root
    """
    try:
        with open(path, 'r') as f:
            raw = f.read()
    except FileNotFoundError:
        raise FileNotFoundError(f"voicebridge config not found at: {path}")

    try:
        data = yaml.safe_load(os.path.expandvars(raw))
    except yaml.YAMLError as e:
        raise yaml.YAMLError(f"Invalid YAML in {path}: {e}")

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise yaml.YAMLError(f"Config root in {path} must be a mapping, got {type(data).__name__}")
    return data
