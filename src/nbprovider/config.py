from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from .errors import ConfigError

logger = logging.getLogger(__name__)


@dataclass
class ProviderConfig:
    """Settings for a NotebookProvider.

    max_execution_delay: upper bound (seconds) of the simulated execution delay.
    kernel_announce_delay: seconds before the kernel list is announced.
    """

    view_type: str = "jupyter"
    extension_path: str = "."
    fill_outputs: bool = False
    max_execution_delay: float = 2.5
    kernel_announce_delay: float = 5.0
    kernel_label: str = "Jupyter"
    indent: int = 4


_EXPECTED_TYPES = {
    "view_type": (str,),
    "extension_path": (str,),
    "fill_outputs": (bool,),
    "max_execution_delay": (int, float),
    "kernel_announce_delay": (int, float),
    "kernel_label": (str,),
    "indent": (int,),
}


def config_from_mapping(data: dict) -> ProviderConfig:
    known = {f.name for f in fields(ProviderConfig)}
    kwargs = {}
    for key, value in data.items():
        if key not in known:
            logger.warning("Ignoring unknown config key: %s", key)
            continue
        expected = _EXPECTED_TYPES[key]
        # bool is an int subclass; only accept it where bool is expected
        if isinstance(value, bool) and bool not in expected:
            raise ConfigError(f"Config key {key!r} has invalid value {value!r}")
        if not isinstance(value, expected):
            raise ConfigError(f"Config key {key!r} has invalid value {value!r}")
        kwargs[key] = value
    return ProviderConfig(**kwargs)


def load_config(path: Optional[str] = None) -> ProviderConfig:
    """Load provider settings from a YAML file; defaults when path is None."""
    if path is None:
        return ProviderConfig()
    text = Path(path).read_text(encoding="utf-8")
    try:
        yaml = YAML(typ="safe")
        data = yaml.load(text)
    except YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if data is None:
        return ProviderConfig()
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    logger.debug("Loaded config from %s", path)
    return config_from_mapping(data)
