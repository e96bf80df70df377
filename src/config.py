"""YAML configuration loader with env var resolution and Pydantic validation.

Loads config from (priority order):
1. --config <path> CLI flag
2. ./infraflow.yaml (working directory)
3. ~/.infraflow/config.yaml (user home)

Environment variables override YAML: INFRAFLOW_<SECTION>_<KEY>.
${VAR} references in YAML values resolve from environment at load time.
When no file is found, defaults apply (env overrides still do).
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")
_ENV_PREFIX = "INFRAFLOW_"


def resolve_env_vars(value: str) -> str:
    """Resolve ${VAR} references in a string from environment variables.

    Args:
        value: String potentially containing ${VAR} references.

    Returns:
        String with all ${VAR} references replaced by their env values.
        Missing env vars resolve to empty string.
    """
    def _replace(match: re.Match) -> str:
        return os.environ.get(match.group(1), "")

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _resolve_env_vars_recursive(data: Any) -> Any:
    """Recursively resolve ${VAR} references in a nested data structure."""
    if isinstance(data, str):
        return resolve_env_vars(data)
    elif isinstance(data, dict):
        return {k: _resolve_env_vars_recursive(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_resolve_env_vars_recursive(item) for item in data]
    return data


class DaemonConfig(BaseModel):
    """HTTP server settings."""

    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "info"


class BackendConfig(BaseModel):
    """LLM/tool backend endpoints."""

    chat_url: str = "http://127.0.0.1:9000/api/chat"
    tools_url: str = "http://127.0.0.1:9000/api/tools"
    timeout_seconds: float = 120.0
    api_key: str = ""


class LoopConfig(BaseModel):
    """Autonomous loop budgets and throttling."""

    max_iterations: int = Field(default=10, ge=1)
    token_budget: int = Field(default=50000, ge=1)
    history_window: int = Field(default=5, ge=0)
    delay_base_ms: int = Field(default=1000, ge=0)
    delay_step_ms: int = Field(default=200, ge=0)
    delay_cap_ms: int = Field(default=3000, ge=0)

    def delay_seconds(self, iteration: int) -> float:
        """Throttle delay after an iteration, in seconds."""
        millis = min(self.delay_base_ms + iteration * self.delay_step_ms, self.delay_cap_ms)
        return millis / 1000


class RecoveryConfig(BaseModel):
    """Error recovery bounds."""

    max_attempts: int = Field(default=3, ge=1)
    backoff_seconds: float = Field(default=2.0, ge=0)


class ChatConfig(BaseModel):
    """Plain chat turn settings."""

    history_window: int = Field(default=10, ge=0)


class InfraflowConfig(BaseModel):
    """Top-level configuration for the orchestration service."""

    daemon: DaemonConfig = DaemonConfig()
    backend: BackendConfig = BackendConfig()
    loop: LoopConfig = LoopConfig()
    recovery: RecoveryConfig = RecoveryConfig()
    chat: ChatConfig = ChatConfig()
    rules_path: str | None = None


def _find_config_file() -> Path | None:
    """Search for config file in standard locations.

    Returns:
        Path to config file if found, None otherwise.
    """
    candidates = [
        Path.cwd() / "infraflow.yaml",
        Path.cwd() / "infraflow.yml",
        Path.home() / ".infraflow" / "config.yaml",
        Path.home() / ".infraflow" / "config.yml",
    ]
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return None


def _coerce(value: str) -> Any:
    """Coerce an env string to int, float, bool, or leave it as a string."""
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        pass
    if value.lower() in ("true", "false"):
        return value.lower() == "true"
    return value


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Apply INFRAFLOW_<SECTION>_<KEY> env var overrides to config data.

    ``INFRAFLOW_LOOP_MAX_ITERATIONS`` maps to section ``loop``, field
    ``max_iterations``. ``INFRAFLOW_RULES_PATH`` sets the top-level
    ``rules_path``.

    Args:
        data: Parsed YAML config dict.

    Returns:
        Config dict with env var overrides applied.
    """
    sections = sorted(
        (
            name for name, info in InfraflowConfig.model_fields.items()
            if isinstance(info.default, BaseModel)
        ),
        key=len,
        reverse=True,
    )
    for key, value in os.environ.items():
        if not key.startswith(_ENV_PREFIX):
            continue
        suffix = key[len(_ENV_PREFIX):].lower()
        if suffix == "rules_path":
            data["rules_path"] = value
            continue
        for section in sections:
            section_prefix = section + "_"
            if suffix.startswith(section_prefix) and len(suffix) > len(section_prefix):
                field_name = suffix[len(section_prefix):]
                section_data = data.setdefault(section, {})
                if isinstance(section_data, dict):
                    section_data[field_name] = _coerce(value)
                break
    return data


def load_config(config_path: str | None = None) -> InfraflowConfig:
    """Load configuration from YAML with env var resolution.

    Args:
        config_path: Explicit path to config file. If None, searches
            standard locations (cwd, then ~/.infraflow/).

    Returns:
        Parsed and validated InfraflowConfig.

    Raises:
        FileNotFoundError: If an explicit config path does not exist.
    """
    if config_path:
        path: Path | None = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        path = _find_config_file()

    raw_data: dict[str, Any] = {}
    if path is not None:
        logger.info("Loading config from %s", path)
        with open(path) as f:
            raw_data = yaml.safe_load(f) or {}

    data = _resolve_env_vars_recursive(raw_data)
    data = _apply_env_overrides(data)
    return InfraflowConfig(**data)
