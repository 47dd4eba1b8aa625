"""Configuration and constants for orgai."""
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

from pattern import DEFAULT_SHADOW_PREFIX

# Directories never descended into while matching files
DEFAULT_HIDDEN = {
    ".git", ".svn", ".hg", ".DS_Store", "Thumbs.db",
    "__pycache__", ".pytest_cache", ".mypy_cache", ".ruff_cache", ".tox",
    ".vscode", ".idea", ".vs",
    "venv", ".venv", "env", "node_modules", "site-packages",
    "dist", "build", "target", "out", "bin", "obj",
    "vendor", "coverage"
}

logger = logging.getLogger(__name__)

def get_app_data_dir() -> Path:
    """Get the application data directory for the current platform."""
    override = os.getenv("ORGAI_HOME")
    if override:
        return Path(override)
    home = Path.home()
    if sys.platform == "win32":
        return Path(os.getenv("APPDATA") or home / "AppData" / "Roaming") / "orgai"
    elif sys.platform == "darwin":
        return home / "Library" / "Application Support" / "orgai"
    return Path(os.getenv("XDG_CONFIG_HOME") or home / ".config") / "orgai"

APP_DATA_DIR = get_app_data_dir()
APP_DATA_DIR.mkdir(parents=True, exist_ok=True)

SETTINGS_FILENAME = "settings.json"
SETTINGS_PATH = APP_DATA_DIR / SETTINGS_FILENAME

def load_json_file(path: Path | str, default: Any = None) -> Any:
    """Load a JSON file, returning `default` when it is missing or unreadable."""
    try:
        p = Path(path)
        if p.exists():
            with open(p, "r", encoding="utf-8") as f:
                return json.load(f)
    except (OSError, ValueError) as e:
        logger.warning(f"Ignoring unreadable JSON {path}: {e}")
    return default

def save_json_file(path: Path | str, data: Any, indent: int = 2) -> bool:
    """Save data to a JSON file safely."""
    try:
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        with open(p, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=indent)
        return True
    except (OSError, TypeError) as e:
        logger.error(f"Failed to save JSON {path}: {e}")
        return False

def _load_settings() -> dict:
    data = load_json_file(SETTINGS_PATH)
    return data if isinstance(data, dict) else {}

def _save_settings(settings: dict) -> None:
    save_json_file(SETTINGS_PATH, settings)

_settings = _load_settings()

API_KEY = (
    _settings.get("api_key")
    or os.environ.get("ORGAI_API_KEY")
    or os.environ.get("OPENAI_API_KEY")
    or ""
)
API_BASE_URL = _settings.get("api_base_url", "https://api.openai.com/v1")
DEFAULT_MODEL = _settings.get("default_model", "gpt-4o")
TOKENS_PER_CHAR_ESTIMATE = _settings.get("tokens_per_char_estimate", 4)
QUEUE_POLL_INTERVAL_MS = _settings.get("queue_poll_interval_ms", 100)

def update_core_settings(api_key: str, base_url: str) -> None:
    """Update and save API settings."""
    global API_KEY, API_BASE_URL

    _settings["api_key"] = api_key
    _settings["api_base_url"] = base_url
    _save_settings(_settings)

    API_KEY = api_key
    API_BASE_URL = base_url

class OrgAIConfig:
    """User-tunable settings, persisted to settings.json on every change."""

    def __init__(self):
        self.model = _settings.get("default_model", DEFAULT_MODEL)
        self.streaming = _settings.get("streaming", True)
        self.shadow_prefix = _settings.get("shadow_prefix", DEFAULT_SHADOW_PREFIX)
        self.default_pattern = _settings.get("default_pattern", "**/*")
        self.use_project_index = _settings.get("use_project_index", True)
        self.extra_system_prompt = _settings.get("extra_system_prompt", "")

    def set_model(self, model_name: str) -> None:
        self.model = model_name
        _settings["default_model"] = model_name
        _save_settings(_settings)

    def set_streaming(self, enabled: bool) -> None:
        self.streaming = enabled
        _settings["streaming"] = enabled
        _save_settings(_settings)

    def set_shadow_prefix(self, prefix: str) -> None:
        if not prefix or "/" in prefix or "\\" in prefix:
            raise ValueError(f"Invalid shadow prefix: {prefix!r}")
        self.shadow_prefix = prefix
        _settings["shadow_prefix"] = prefix
        _save_settings(_settings)

    def set_default_pattern(self, pattern: str) -> None:
        self.default_pattern = pattern
        _settings["default_pattern"] = pattern
        _save_settings(_settings)

    def set_use_project_index(self, enabled: bool) -> None:
        self.use_project_index = enabled
        _settings["use_project_index"] = enabled
        _save_settings(_settings)

    def set_extra_system_prompt(self, prompt: str) -> None:
        self.extra_system_prompt = prompt
        _settings["extra_system_prompt"] = prompt
        _save_settings(_settings)

config = OrgAIConfig()

def estimate_tokens(text: str) -> int:
    """Estimate the number of tokens in text."""
    return len(text) // TOKENS_PER_CHAR_ESTIMATE
