"""
Adapter settings

Settings live in a small JSON file next to whatever else the deployment keeps:

    {"read_policy": "legacy", "chunk_size": 65536, "spool_max_size": 2097152}

Missing keys fall back to defaults, unknown keys are ignored.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict

from .exceptions import ConfigurationError
from .streams import DEFAULT_SPOOL_SIZE
from ..security.crypto import DEFAULT_CHUNK_SIZE, MAX_CHUNK_SIZE
from ..security.transform import ReadPolicy


@dataclass(frozen=True)
class AdapterSettings:
    """Tunables for one EncryptionAdapter; the key is passed separately."""

    read_policy: ReadPolicy = ReadPolicy.STRICT
    chunk_size: int = DEFAULT_CHUNK_SIZE
    # scratch buffers above this size spill from memory to a temp file
    spool_max_size: int = DEFAULT_SPOOL_SIZE

    def __post_init__(self):
        try:
            object.__setattr__(self, "read_policy", ReadPolicy(self.read_policy))
        except ValueError as exc:
            raise ConfigurationError(f"unknown read policy: {self.read_policy!r}") from exc
        if not isinstance(self.chunk_size, int) or not 0 < self.chunk_size <= MAX_CHUNK_SIZE:
            raise ConfigurationError(f"chunk_size must be between 1 and {MAX_CHUNK_SIZE}")
        if not isinstance(self.spool_max_size, int) or self.spool_max_size <= 0:
            raise ConfigurationError("spool_max_size must be a positive integer")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "read_policy": self.read_policy.value,
            "chunk_size": self.chunk_size,
            "spool_max_size": self.spool_max_size,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AdapterSettings":
        if not isinstance(data, dict):
            raise ConfigurationError("settings must be a JSON object")
        known = {k: data[k] for k in ("read_policy", "chunk_size", "spool_max_size") if k in data}
        return cls(**known)


def load_settings(path) -> AdapterSettings:
    p = Path(path).expanduser()
    if not p.exists():
        return AdapterSettings()
    try:
        with open(p, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"cannot read settings from {p}: {exc}") from exc
    return AdapterSettings.from_dict(data)


def save_settings(path, settings: AdapterSettings) -> None:
    p = Path(path).expanduser()
    p.parent.mkdir(parents=True, exist_ok=True)
    with open(p, "w", encoding="utf-8") as f:
        json.dump(settings.to_dict(), f, ensure_ascii=False)
