"""Client settings with global/project hierarchy.

Settings are loaded from:
1. Global: ~/.agentstream/settings.json
2. Project: <cwd>/.agentstream/settings.json
3. Environment: AGENTSTREAM_BASE_URL, AGENTSTREAM_ACCESS_TOKEN

Later sources override earlier ones.
"""

import asyncio
import json
import logging
import os
import re
import subprocess
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Mapping

logger = logging.getLogger(__name__)

CONFIG_DIR_NAME = ".agentstream"

ENV_BASE_URL = "AGENTSTREAM_BASE_URL"
ENV_ACCESS_TOKEN = "AGENTSTREAM_ACCESS_TOKEN"


@dataclass
class ChatSettings:
    """Client and relay settings with sensible defaults."""

    # Endpoint
    base_url: str = "http://localhost:3000"
    chat_path: str = "/api/agent-chat"

    # Bearer token; may be a literal, an env var name, or "!command"
    access_token: str | None = None

    # Timeouts (seconds). turn_timeout_seconds aborts a whole turn as an error.
    timeout_seconds: float = 120.0
    connect_timeout_seconds: float = 10.0
    turn_timeout_seconds: float | None = None

    # Relay defaults
    default_provider: str = "anthropic"
    default_model: str = "sonnet"
    max_steps: int = 5


def get_default_config_dir() -> Path:
    """Get the global configuration directory."""
    return Path.home() / CONFIG_DIR_NAME


def deep_merge(base: dict, overrides: dict) -> dict:
    """Deep merge two dictionaries. Overrides take precedence; None is skipped."""
    result = base.copy()

    for key, value in overrides.items():
        if value is None:
            continue

        base_value = result.get(key)
        if isinstance(value, dict) and isinstance(base_value, dict):
            result[key] = deep_merge(base_value, value)
        else:
            result[key] = value

    return result


_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


def migrate_settings(data: dict) -> dict:
    """Rename camelCase keys (as written by the web app) to snake_case."""
    migrated = {}
    for key, value in data.items():
        snake = _CAMEL_RE.sub("_", key).lower()
        # Explicit snake_case wins over its camelCase spelling
        if snake == key:
            migrated[snake] = value
        else:
            migrated.setdefault(snake, value)
    return migrated


def dict_to_settings(data: dict) -> ChatSettings:
    """Convert a dictionary to ChatSettings, ignoring unknown keys."""
    valid_fields = {f.name for f in fields(ChatSettings)}
    unknown = set(data) - valid_fields
    if unknown:
        logger.debug(f"Ignoring unknown settings: {sorted(unknown)}")
    return ChatSettings(**{k: v for k, v in data.items() if k in valid_fields})


def _load_from_file(path: Path) -> dict:
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as e:
        logger.warning(f"Could not load settings from {path}: {e}")
        return {}
    if not isinstance(data, dict):
        logger.warning(f"Ignoring settings in {path}: expected a JSON object")
        return {}
    return migrate_settings(data)


def load_settings(
    cwd: str | Path | None = None,
    config_dir: str | Path | None = None,
    env: Mapping[str, str] | None = None,
) -> ChatSettings:
    """Load settings from global file, project file and environment."""
    cwd = Path(cwd) if cwd else Path.cwd()
    config_dir = Path(config_dir) if config_dir else get_default_config_dir()
    env = os.environ if env is None else env

    merged = deep_merge(
        _load_from_file(config_dir / "settings.json"),
        _load_from_file(cwd / CONFIG_DIR_NAME / "settings.json"),
    )
    merged = deep_merge(
        merged,
        {
            "base_url": env.get(ENV_BASE_URL),
            "access_token": env.get(ENV_ACCESS_TOKEN),
        },
    )
    return dict_to_settings(merged)


# "!command" token sources run once per process; keyed by the command text
_command_cache: dict[str, str | None] = {}


def resolve_config_value(value: str, env: Mapping[str, str] | None = None) -> str | None:
    """Resolve a token setting to the token itself.

    ``"!cmd"`` runs cmd in a shell and uses its stdout. Anything else is
    looked up as an environment variable in ``env`` (default: os.environ)
    and falls back to the literal value.
    """
    if value.startswith("!"):
        return _run_token_command(value[1:])
    env = os.environ if env is None else env
    return env.get(value) or value


async def aresolve_config_value(value: str, env: Mapping[str, str] | None = None) -> str | None:
    """Like resolve_config_value, but commands run in a worker thread."""
    if value.startswith("!"):
        return await asyncio.to_thread(_run_token_command, value[1:])
    return resolve_config_value(value, env)


def _run_token_command(command: str) -> str | None:
    if command in _command_cache:
        return _command_cache[command]

    token = None
    try:
        proc = subprocess.run(command, shell=True, capture_output=True, text=True, timeout=10)
    except (subprocess.TimeoutExpired, OSError) as e:
        logger.warning(f"Token command failed: {e}")
    else:
        if proc.returncode != 0:
            logger.warning(f"Token command exited {proc.returncode}: {proc.stderr.strip()[:200]}")
        else:
            token = proc.stdout.strip() or None

    _command_cache[command] = token
    return token


def clear_config_value_cache() -> None:
    """Forget cached token command output (e.g. after a token refresh)."""
    _command_cache.clear()
