"""
Configuration — loads settings from .codecli.yaml, environment variables,
and built-in defaults (in that priority order: CLI args > env > YAML > defaults).
"""

import os

import yaml


_DEFAULTS = {
    "provider": "ollama",
    "ollama_base_url": "http://localhost:11434",
    "embedding_model": "nomic-embed-text",
    "openai_api_key": "",
    "openai_base_url": "https://api.openai.com/v1",
    "embed_timeout": 30.0,
    "embed_max_retries": 3,
    "embed_retry_delay": 2.0,
    "index_path": ".codecli/index/metadata.json",
    "chunk_lines": 50,
    "chunk_overlap": 5,
    "search_limit": 10,
    "workspace_root": ".",
    "include_extensions": [".go", ".py", ".js", ".ts", ".java", ".cpp",
                           ".c", ".h", ".php"],
    "exclude_dirs": None,   # None → walker defaults
    "log_dir": ".codecli/logs",
    "log_level": "INFO",
}

# Config file search locations
_CONFIG_FILENAMES = [".codecli.yaml", ".codecli.yml"]


def _find_config_file(explicit_path: str | None = None) -> str | None:
    """Find the config file. Checks explicit path, CWD, then user home."""
    if explicit_path:
        if os.path.isfile(explicit_path):
            return explicit_path
        return None

    # Search CWD first, then home directory
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


def _split_list(value) -> list[str]:
    """Accept a YAML list or a comma-separated env string."""
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    return [str(v) for v in value]


class Config:
    """Application configuration.

    Settings are resolved in priority order:
    1. CLI arguments (handled by caller)
    2. Environment variables (``CODECLI_*``)
    3. .codecli.yaml config file
    4. Built-in defaults
    """

    def __init__(self, yaml_data: dict | None = None):
        yd = yaml_data or {}

        # Helper: env var > yaml > default
        def _get(env_key: str, yaml_key: str, default, cast=str, section: dict | None = None):
            env_val = os.getenv(env_key)
            if env_val is not None:
                return cast(env_val)
            yaml_val = (section if section is not None else yd).get(yaml_key)
            if yaml_val is not None:
                return cast(yaml_val)
            return default

        self.PROVIDER = _get("CODECLI_PROVIDER", "provider",
                             _DEFAULTS["provider"]).lower()
        self.OLLAMA_BASE_URL = _get("OLLAMA_BASE_URL", "ollama_base_url",
                                    _DEFAULTS["ollama_base_url"])
        self.EMBEDDING_MODEL = _get("EMBEDDING_MODEL", "embedding_model",
                                    _DEFAULTS["embedding_model"])

        # OpenAI-compatible provider
        openai_section = yd.get("openai", {}) if isinstance(yd.get("openai"), dict) else {}
        self.OPENAI_API_KEY = os.getenv("OPENAI_API_KEY") or openai_section.get(
            "api_key", _DEFAULTS["openai_api_key"])
        self.OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL") or openai_section.get(
            "base_url", _DEFAULTS["openai_base_url"])

        self.EMBED_TIMEOUT = _get("CODECLI_EMBED_TIMEOUT", "embed_timeout",
                                  _DEFAULTS["embed_timeout"], cast=float)
        self.EMBED_MAX_RETRIES = _get("CODECLI_EMBED_MAX_RETRIES", "embed_max_retries",
                                      _DEFAULTS["embed_max_retries"], cast=int)
        self.EMBED_RETRY_DELAY = _get("CODECLI_EMBED_RETRY_DELAY", "embed_retry_delay",
                                      _DEFAULTS["embed_retry_delay"], cast=float)

        # Index
        self.INDEX_PATH = _get("CODECLI_INDEX_PATH", "index_path",
                               _DEFAULTS["index_path"])
        self.CHUNK_LINES = _get("CODECLI_CHUNK_LINES", "chunk_lines",
                                _DEFAULTS["chunk_lines"], cast=int)
        self.CHUNK_OVERLAP = _get("CODECLI_CHUNK_OVERLAP", "chunk_overlap",
                                  _DEFAULTS["chunk_overlap"], cast=int)
        self.SEARCH_LIMIT = _get("CODECLI_SEARCH_LIMIT", "search_limit",
                                 _DEFAULTS["search_limit"], cast=int)

        # Workspace
        ws = yd.get("workspace", {}) if isinstance(yd.get("workspace"), dict) else {}
        self.WORKSPACE_ROOT = _get("CODECLI_WORKSPACE_ROOT", "root",
                                   _DEFAULTS["workspace_root"], section=ws)
        self.INCLUDE_EXTENSIONS: list[str] = _get(
            "CODECLI_INCLUDE_EXTENSIONS", "include_extensions",
            list(_DEFAULTS["include_extensions"]), cast=_split_list, section=ws)
        self.EXCLUDE_DIRS: list[str] | None = _get(
            "CODECLI_EXCLUDE_DIRS", "exclude_dirs",
            _DEFAULTS["exclude_dirs"], cast=_split_list, section=ws)

        # Logging
        self.LOG_DIR = _get("CODECLI_LOG_DIR", "log_dir", _DEFAULTS["log_dir"])
        self.LOG_LEVEL = _get("CODECLI_LOG_LEVEL", "log_level",
                              _DEFAULTS["log_level"]).upper()

    @classmethod
    def load(cls, config_path: str | None = None) -> "Config":
        """Load config from YAML file (if found) + env vars + defaults."""
        path = _find_config_file(config_path)
        yaml_data = _load_yaml(path) if path else {}
        return cls(yaml_data)
