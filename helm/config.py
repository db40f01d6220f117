"""
Configuration loading.

Settings come from config.yaml at the repository root, or the file named
by HELM_CONFIG. Missing files and keys fall back to defaults. The
OpenRouter key is taken from OPENROUTER_API_KEY when set.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from llm import ContinuationSettings, ModelSettings
from llm.src.client import DEFAULT_BASE_URL
from llm.src.models import DEFAULT_ASSISTANT_SETTINGS, DEFAULT_CONTINUATION_SETTINGS

from .models import AgentConfig, CopilotConfig

ROOT_DIR = Path(__file__).resolve().parent.parent
CONFIG_PATH = ROOT_DIR / "config.yaml"


@dataclass
class Settings:
    api_key: Optional[str] = None
    base_url: str = DEFAULT_BASE_URL
    requests_per_minute: int = 60
    timeout_seconds: int = 120
    retry_max_attempts: int = 3
    retry_base_delay: float = 1.0
    continuations: ContinuationSettings = field(
        default_factory=lambda: ContinuationSettings(**DEFAULT_CONTINUATION_SETTINGS.to_dict())
    )
    assistant: ModelSettings = field(
        default_factory=lambda: ModelSettings(**DEFAULT_ASSISTANT_SETTINGS.to_dict())
    )
    trees_dir: Path = ROOT_DIR / "trees"
    save_debounce_seconds: float = 0.5
    copilot: CopilotConfig = field(default_factory=CopilotConfig)
    agents: list[AgentConfig] = field(default_factory=list)


def _read_yaml(path: Path) -> dict:
    if not path.exists():
        return {}
    return yaml.safe_load(path.read_text(encoding="utf-8")) or {}


def load_config(path: Optional[Path] = None) -> Settings:
    """
    Load settings.

    Args:
        path: Config file (default: HELM_CONFIG, else config.yaml at the root)
    """
    if path is None:
        env_path = os.environ.get("HELM_CONFIG")
        path = Path(env_path) if env_path else CONFIG_PATH
    config = _read_yaml(Path(path))

    llm_config = config.get("llm", {}) or {}
    retry_config = llm_config.get("retry", {}) or {}
    storage_config = config.get("storage", {}) or {}

    trees_dir = Path(storage_config.get("trees_dir", "trees"))
    if not trees_dir.is_absolute():
        trees_dir = Path(path).resolve().parent / trees_dir

    return Settings(
        api_key=os.environ.get("OPENROUTER_API_KEY") or llm_config.get("api_key"),
        base_url=llm_config.get("base_url", DEFAULT_BASE_URL),
        requests_per_minute=int(llm_config.get("requests_per_minute", 60)),
        timeout_seconds=int(llm_config.get("timeout_seconds", 120)),
        retry_max_attempts=int(retry_config.get("max_attempts", 3)),
        retry_base_delay=float(retry_config.get("base_delay_seconds", 1.0)),
        continuations=ContinuationSettings.from_dict(
            llm_config.get("continuations", {}) or {}, DEFAULT_CONTINUATION_SETTINGS,
        ),
        assistant=ModelSettings.from_dict(
            llm_config.get("assistant", {}) or {}, DEFAULT_ASSISTANT_SETTINGS,
        ),
        trees_dir=trees_dir,
        save_debounce_seconds=float(storage_config.get("save_debounce_seconds", 0.5)),
        copilot=CopilotConfig.from_dict(config.get("copilot", {}) or {}),
        agents=[AgentConfig.from_dict(a) for a in config.get("agents", []) or []],
    )
