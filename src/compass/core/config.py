"""3-layer configuration for a Compass workspace.

Loads and merges configuration from:
1. Default settings (built-in)
2. Workspace config (.compass/config.yaml)
3. CLI parameters (override)
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Optional

import yaml

WORKSPACE_DIR = ".compass"

DEFAULT_CONFIG: dict = {
    "workspace": {
        "default_user": "",
        "state_file": "state.yaml",
        "audit_file": "audit.jsonl",
    },
    "logging": {
        "level": "WARNING",
    },
    "guidance": {
        "cache_hours": 24,
    },
    "ai": {
        "provider": "openai",
        "temperature": 0.3,
        "timeout_seconds": 120,
        "retry_attempts": 3,
        "retry_delay_seconds": 5,
        "openai": {
            "model": "gpt-4o",
            "api_key_env": "OPENAI_API_KEY",
            "endpoint": "https://api.openai.com/v1/chat/completions",
            "max_tokens": 1500,
        },
        "anthropic": {
            "model": "claude-sonnet-4-5-20250929",
            "api_key_env": "ANTHROPIC_API_KEY",
            "max_tokens": 1500,
        },
    },
}


def deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dicts. Arrays are replaced, not merged."""
    result = dict(base)
    for key, value in override.items():
        base_value = result.get(key)
        if isinstance(base_value, dict) and isinstance(value, dict):
            result[key] = deep_merge(base_value, value)
        else:
            result[key] = value
    return result


def workspace_dir(workspace: Path) -> Path:
    return workspace / WORKSPACE_DIR


def load_workspace_config(workspace: Path) -> dict:
    """Load .compass/config.yaml; missing or unreadable files yield {}."""
    config_path = workspace_dir(workspace) / "config.yaml"
    if not config_path.exists():
        return {}
    try:
        content = config_path.read_text(encoding="utf-8-sig")  # utf-8-sig strips BOM
        data = yaml.safe_load(content)
    except (OSError, yaml.YAMLError):
        return {}
    return data if isinstance(data, dict) else {}


def save_workspace_config(workspace: Path, config: dict) -> Path:
    config_path = workspace_dir(workspace) / "config.yaml"
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(
        yaml.safe_dump(config, default_flow_style=False, sort_keys=False, allow_unicode=True),
        encoding="utf-8",
    )
    return config_path


def get_effective_config(workspace: Path, cli_overrides: Optional[dict] = None) -> dict:
    """Get the fully resolved configuration for a workspace."""
    config = copy.deepcopy(DEFAULT_CONFIG)

    workspace_config = load_workspace_config(workspace)
    if workspace_config:
        config = deep_merge(config, workspace_config)

    if cli_overrides:
        config = deep_merge(config, cli_overrides)

    config["_workspace"] = str(workspace)
    return config
