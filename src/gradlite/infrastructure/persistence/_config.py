"""
Persistence configuration.

`PersistenceConfig` holds the knobs of the persistence layer. A module-level
default is used when `save` / `asave` / `load` are called without an explicit
``config=``; `set_default_config` replaces it.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Mapping, Optional

# Practical size limit of a single atomic payload assignment, in characters.
DEFAULT_CHUNK_THRESHOLD = 199_900
# Wait before the incremental edit of an oversized payload, in seconds.
DEFAULT_CHUNK_DELAY = 1.0


@dataclass(frozen=True)
class PersistenceConfig:
    """
    Settings for saving and loading tensor groups.

    Attributes
    ----------
    chunk_threshold : int
        Payloads whose length is at least this many characters are written
        through the incremental editor instead of atomically.
    chunk_delay : float
        Seconds to wait after opening the editor and before the edit.
    default_name : str
        Group name prefix used when `save` is called without a name.
    group_suffix : str
        Suffix appended to group names.
    unit_suffix : str
        Suffix appended to unit names.
    storage_root : str
        Root directory of the default filesystem backend.
    """

    chunk_threshold: int = DEFAULT_CHUNK_THRESHOLD
    chunk_delay: float = DEFAULT_CHUNK_DELAY
    default_name: str = "stored"
    group_suffix: str = "_folder_rdata"
    unit_suffix: str = "_rdata"
    storage_root: str = "."

    def __post_init__(self) -> None:
        if self.chunk_threshold < 1:
            raise ValueError(f"chunk_threshold must be >= 1, got {self.chunk_threshold}")
        if self.chunk_delay < 0:
            raise ValueError(f"chunk_delay must be >= 0, got {self.chunk_delay}")

    def group_name(self, name: Optional[str] = None) -> str:
        return f"{name if name else self.default_name}{self.group_suffix}"

    def unit_name(self, index: int) -> str:
        return f"tensor{index}{self.unit_suffix}"

    def with_overrides(self, **changes) -> "PersistenceConfig":
        return replace(self, **changes)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "PersistenceConfig":
        """
        Build a config from ``GRADLITE_*`` environment variables.

        Recognized variables: ``GRADLITE_CHUNK_THRESHOLD``,
        ``GRADLITE_CHUNK_DELAY``, ``GRADLITE_STORAGE_ROOT``. Unset variables
        keep their defaults.
        """
        env = os.environ if environ is None else environ
        kwargs = {}
        if "GRADLITE_CHUNK_THRESHOLD" in env:
            kwargs["chunk_threshold"] = int(env["GRADLITE_CHUNK_THRESHOLD"])
        if "GRADLITE_CHUNK_DELAY" in env:
            kwargs["chunk_delay"] = float(env["GRADLITE_CHUNK_DELAY"])
        if "GRADLITE_STORAGE_ROOT" in env:
            kwargs["storage_root"] = env["GRADLITE_STORAGE_ROOT"]
        return cls(**kwargs)


_default_config: Optional[PersistenceConfig] = None


def get_default_config() -> PersistenceConfig:
    """
    Return the default config, reading the environment on first use.
    """
    global _default_config
    if _default_config is None:
        _default_config = PersistenceConfig.from_env()
    return _default_config


def set_default_config(config: Optional[PersistenceConfig]) -> None:
    """
    Replace the default config. Passing None re-reads the environment lazily.
    """
    global _default_config
    _default_config = config
