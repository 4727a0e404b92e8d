"""Configuration for a notestack corpus.

Values are resolved in this order, later sources winning:

1. dataclass defaults
2. the ``[notestack]`` table of a TOML file (``<root>/notestack.toml`` unless
   another path is given)::

       [notestack]
       tag_prefix    = "#"
       default_limit = 20
       body_fallback = true

3. environment variables (all optional):
    NOTESTACK_ROOT               - corpus root directory
    NOTESTACK_TAG_PREFIX         - inline tag marker (default ``#``)
    NOTESTACK_ACTIONABLE_MARKER  - actionable marker (default ``#actionable``)
    NOTESTACK_NOTE_EXTENSION     - note file extension (default ``.md``)
    NOTESTACK_INDEX_NAME         - index file name inside the root
    NOTESTACK_DEFAULT_LIMIT      - default search result cap
    NOTESTACK_BATCH_SIZE         - default streaming batch size
    NOTESTACK_BODY_FALLBACK      - also rank notes whose only match is in the body
    NOTESTACK_FAST_WORD_COUNT    - estimate word counts from file size
    NOTESTACK_PERF               - record operation timings
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Mapping

from notestack.index import DEFAULT_INDEX_NAME

CONFIG_FILE_NAME = "notestack.toml"
ENV_PREFIX = "NOTESTACK_"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _as_bool(value: Any, *, name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in _TRUE | _FALSE:
        return value.strip().lower() in _TRUE
    raise ValueError(f"Invalid config: {name} must be a boolean")


def _as_int(value: Any, *, name: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"Invalid config: {name} must be an int")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str) and value.strip().isdigit():
        result = int(value.strip())
    else:
        raise ValueError(f"Invalid config: {name} must be an int")
    if result <= 0:
        raise ValueError(f"Invalid config: {name} must be > 0")
    return result


def _as_str(value: Any, *, name: str) -> str:
    if not isinstance(value, str) or not value:
        raise ValueError(f"Invalid config: {name} must be a non-empty string")
    return value


@dataclass
class VaultConfig:
    root: Path = Path(".")
    tag_prefix: str = "#"
    actionable_marker: str = "#actionable"
    note_extension: str = ".md"
    index_name: str = DEFAULT_INDEX_NAME
    default_limit: int = 20
    batch_size: int = 10
    body_fallback: bool = True
    fast_word_count: bool = False
    perf: bool = True

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, base: "VaultConfig | None" = None) -> "VaultConfig":
        """Overlay the known keys of *data* on *base* (or the defaults)."""
        values = {f.name: getattr(base, f.name) for f in fields(cls)} if base else {}
        converters = {
            "root": lambda v, name: Path(_as_str(str(v), name=name)).expanduser(),
            "tag_prefix": _as_str,
            "actionable_marker": _as_str,
            "note_extension": _as_str,
            "index_name": _as_str,
            "default_limit": _as_int,
            "batch_size": _as_int,
            "body_fallback": _as_bool,
            "fast_word_count": _as_bool,
            "perf": _as_bool,
        }
        for key, convert in converters.items():
            if key in data and data[key] is not None:
                values[key] = convert(data[key], name=key)
        return cls(**values)

    @classmethod
    def load(
        cls,
        root: Path | str | None = None,
        config_path: Path | str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> "VaultConfig":
        env = os.environ if env is None else env
        base_root = Path(root or env.get(f"{ENV_PREFIX}ROOT") or ".").expanduser()
        config = cls(root=base_root)

        path = Path(config_path) if config_path else base_root / CONFIG_FILE_NAME
        if path.is_file():
            with open(path, "rb") as fh:
                data = tomllib.load(fh)
            section = data.get("notestack", data)
            if not isinstance(section, dict):
                raise ValueError(f"Invalid config: [notestack] in {path} must be a table")
            config = cls.from_mapping(section, base=config)

        overrides = {
            f.name: env[f"{ENV_PREFIX}{f.name.upper()}"]
            for f in fields(cls)
            if f"{ENV_PREFIX}{f.name.upper()}" in env
        }
        if root is not None:
            overrides.pop("root", None)
            config.root = Path(root).expanduser()
        return cls.from_mapping(overrides, base=config)
