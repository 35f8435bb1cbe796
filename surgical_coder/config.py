"""
Configuration — loads settings from .surgical.yaml, environment variables,
and built-in defaults (in that priority order: CLI args > env > YAML > defaults).
"""

import os

import yaml

from .editing.syntax import DEFAULT_CODE_EXTENSIONS
from .editing.metrics import DEFAULT_EVENT_LOG
from .editing.response_parser import DEFAULT_TOOL_NAME


_DEFAULTS = {
    "model": "gpt-4o-mini",
    "gateway_base_url": "https://api.openai.com/v1",
    "api_key": "",
    "temperature": 0.2,
    "llm_max_retries": 3,
    "llm_retry_delay": 2.0,
    "stream": False,
    "backup_db": ".surgical/backups.db",
    "backup_retention": None,
    "event_log": DEFAULT_EVENT_LOG,
    "log_dir": ".surgical/logs",
    "code_extensions": list(DEFAULT_CODE_EXTENSIONS),
    "syntax_check": "brackets",
    "recognized_tool": DEFAULT_TOOL_NAME,
}

_SYNTAX_MODES = ("brackets", "tree_sitter", "off")

# Config file search locations
_CONFIG_FILENAMES = [".surgical.yaml", ".surgical.yml"]


def _find_config_file(explicit_path: str | None = None) -> str | None:
    """Find the config file. Checks explicit path, CWD, then user home."""
    if explicit_path:
        if os.path.isfile(explicit_path):
            return explicit_path
        return None

    search_dirs = [os.getcwd(), os.path.expanduser("~")]
    for d in search_dirs:
        for name in _CONFIG_FILENAMES:
            path = os.path.join(d, name)
            if os.path.isfile(path):
                return path
    return None


def _load_yaml(path: str) -> dict:
    """Load YAML file, returns empty dict on failure."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        return data if isinstance(data, dict) else {}
    except (OSError, yaml.YAMLError):
        return {}


def _split_extensions(value) -> list[str]:
    if isinstance(value, str):
        value = value.split(",")
    exts = []
    for item in value or []:
        item = str(item).strip().lower()
        if item:
            exts.append(item if item.startswith(".") else "." + item)
    return exts


class Config:
    """Application configuration.

    Settings are resolved in priority order:
    1. CLI arguments (handled by caller)
    2. Environment variables (``SURGICAL_*``)
    3. .surgical.yaml config file
    4. Built-in defaults
    """

    def __init__(self, yaml_data: dict | None = None):
        yd = yaml_data or {}

        # Helper: env var > yaml > default
        def _get(env_key: str, yaml_key: str, default, cast=str):
            env_val = os.getenv(env_key)
            if env_val is not None:
                return cast(env_val)
            yaml_val = yd.get(yaml_key)
            if yaml_val is not None:
                return cast(yaml_val)
            return default

        def _get_bool(env_key: str, yaml_key: str, default: bool) -> bool:
            env_val = os.getenv(env_key)
            if env_val is not None:
                return env_val.lower() == "true"
            yaml_val = yd.get(yaml_key)
            if yaml_val is not None:
                return bool(yaml_val)
            return default

        # LLM gateway
        self.MODEL = _get("SURGICAL_MODEL", "model", _DEFAULTS["model"])
        self.GATEWAY_BASE_URL = _get("SURGICAL_GATEWAY_URL", "gateway_base_url",
                                     _DEFAULTS["gateway_base_url"])
        self.API_KEY = (os.getenv("SURGICAL_API_KEY") or os.getenv("OPENAI_API_KEY")
                        or str(yd.get("api_key") or _DEFAULTS["api_key"]))
        self.TEMPERATURE = _get("SURGICAL_TEMPERATURE", "temperature",
                                _DEFAULTS["temperature"], cast=float)
        self.LLM_MAX_RETRIES = _get("LLM_MAX_RETRIES", "llm_max_retries",
                                    _DEFAULTS["llm_max_retries"], cast=int)
        self.LLM_RETRY_DELAY = _get("LLM_RETRY_DELAY", "llm_retry_delay",
                                    _DEFAULTS["llm_retry_delay"], cast=float)
        self.STREAM_RESPONSES = _get_bool("STREAM_RESPONSES", "stream",
                                          _DEFAULTS["stream"])

        # Backups and learning events
        self.BACKUP_DB = _get("SURGICAL_BACKUP_DB", "backup_db", _DEFAULTS["backup_db"])
        self.BACKUP_RETENTION = _get("SURGICAL_BACKUP_RETENTION", "backup_retention",
                                     _DEFAULTS["backup_retention"], cast=int)
        self.EVENT_LOG = _get("SURGICAL_EVENT_LOG", "event_log", _DEFAULTS["event_log"])
        self.LOG_DIR = _get("SURGICAL_LOG_DIR", "log_dir", _DEFAULTS["log_dir"])

        # Validation
        self.CODE_EXTENSIONS: list[str] = _split_extensions(
            _get("SURGICAL_CODE_EXTENSIONS", "code_extensions",
                 _DEFAULTS["code_extensions"], cast=lambda v: v)
        )
        self.SYNTAX_CHECK = _get("SURGICAL_SYNTAX_CHECK", "syntax_check",
                                 _DEFAULTS["syntax_check"])
        if self.SYNTAX_CHECK not in _SYNTAX_MODES:
            self.SYNTAX_CHECK = _DEFAULTS["syntax_check"]

        self.RECOGNIZED_TOOL = _get("SURGICAL_RECOGNIZED_TOOL", "recognized_tool",
                                    _DEFAULTS["recognized_tool"])

    @classmethod
    def load(cls, config_path: str | None = None) -> "Config":
        """Load config from YAML file (if found) + env vars + defaults."""
        path = _find_config_file(config_path)
        yaml_data = _load_yaml(path) if path else {}
        return cls(yaml_data)
