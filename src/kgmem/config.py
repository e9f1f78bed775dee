"""MemoryConfig: process-wide settings for the project memory store.

Resolution order (later wins):

    1. defaults              base_dir = ~/.mcp_server_memory
    2. TOML file (optional)  passed via --config
    3. environment           MCP_BASE_MEMORY_DIR, KGMEM_LOG_LEVEL

Config file example:

    [memory]
    base_dir = "~/.mcp_server_memory"
    # record_name = "memory.jsonl"

    [logging]
    level = "INFO"

On-disk layout under base_dir:

    <project>/
        memory.jsonl      # one JSON object per line (entities, then relations)
        .lock             # flock target for serialized writes
"""

from __future__ import annotations

import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

ENV_BASE_DIR = "MCP_BASE_MEMORY_DIR"
ENV_LOG_LEVEL = "KGMEM_LOG_LEVEL"

_DEFAULT_BASE_DIR = "~/.mcp_server_memory"
_DEFAULT_RECORD_NAME = "memory.jsonl"
_DEFAULT_LOG_LEVEL = "INFO"
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class MemoryConfig:
    """Resolved configuration. base_dir is always absolute."""

    base_dir: Path
    record_name: str = _DEFAULT_RECORD_NAME
    log_level: str = _DEFAULT_LOG_LEVEL


def _absolute(path: str | Path) -> Path:
    return Path(path).expanduser().resolve()


def load_config(
    config_path: Path | str | None = None,
    env: Mapping[str, str] | None = None,
) -> MemoryConfig:
    """Build a MemoryConfig from defaults, an optional TOML file and the environment."""
    environ = os.environ if env is None else env

    raw: dict[str, Any] = {}
    if config_path is not None:
        path = Path(config_path)
        try:
            with path.open("rb") as f:
                raw = tomllib.load(f)
        except FileNotFoundError as exc:
            msg = f"config file not found: {path}"
            raise FileNotFoundError(msg) from exc

    mem_section = _section(raw, "memory")
    log_section = _section(raw, "logging")

    base_dir = str(mem_section.get("base_dir", _DEFAULT_BASE_DIR))
    record_name = str(mem_section.get("record_name", _DEFAULT_RECORD_NAME))
    log_level = str(log_section.get("level", _DEFAULT_LOG_LEVEL))

    # Relative overrides resolve against the cwd, same as a relative --base-dir
    if environ.get(ENV_BASE_DIR):
        base_dir = environ[ENV_BASE_DIR]
    if environ.get(ENV_LOG_LEVEL):
        log_level = environ[ENV_LOG_LEVEL]

    log_level = log_level.upper()
    if log_level not in _LOG_LEVELS:
        msg = f"invalid log level {log_level!r} (expected one of {', '.join(_LOG_LEVELS)})"
        raise ValueError(msg)

    return MemoryConfig(
        base_dir=_absolute(base_dir),
        record_name=record_name,
        log_level=log_level,
    )


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    section = raw.get(name, {})
    if not isinstance(section, dict):
        msg = f"config section [{name}] must be a table, got {type(section).__name__}"
        raise ValueError(msg)
    return section
