from __future__ import annotations
from .schemas import Config
from pathlib import Path
from typing import Any, Dict, Optional
import json

try:
    import tomllib  # py311+
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # py<=310


def _merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(base)
    for k, v in overrides.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _merge(out[k], v)
        else:
            out[k] = v
    return out


def config_from_toml(text: str, overrides: Optional[Dict[str, Any]] = None) -> Config:
    """
    Parse TOML text into a validated Config.

    `overrides` is a nested dict (e.g. {"run": {"max_events": 10}}) merged
    over the parsed tables before validation.
    """
    data = tomllib.loads(text)
    if overrides:
        data = _merge(data, overrides)
    return Config(**data)


def load_config(path: str | Path, overrides: Optional[Dict[str, Any]] = None) -> Config:
    return config_from_toml(Path(path).read_text(), overrides)


def snapshot_config_toml(path: str | Path) -> str:
    """Return the raw TOML text for embedding in HDF5 metadata."""
    return Path(path).read_text()


def json_dumps(obj) -> str:
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False)
