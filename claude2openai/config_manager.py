"""
Locations and default contents of the claude2openai config files.

``~/.config/claude2openai`` holds ``config.json`` and ``models.yaml``; logs
and the PID file live under ``~/.claude2openai/log``.
"""

import json
import logging
from pathlib import Path

from .types import ModelDefaults

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path.home() / ".config" / "claude2openai"
DEFAULT_LOG_DIR = Path.home() / ".claude2openai" / "log"
DEFAULT_MODELS_FILE = DEFAULT_CONFIG_DIR / "models.yaml"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.json"
# stdout and stderr of the running service share one file
DEFAULT_LOG_FILE_NAME = "claude2openai.log"

DEFAULT_MODELS_TEMPLATE = """# Claude2OpenAI model list
# Requests naming a model outside this list fall back to the FIRST entry.
# Required fields: model_id
# Optional fields: max_tokens (default max_tokens sent upstream), owned_by
#
# Token notation: 4K = 4000 tokens, plain numbers are taken as-is

- model_id: claude-3-haiku-20240307
  max_tokens: 4096
- model_id: claude-3-sonnet-20240229
  max_tokens: 4096
- model_id: claude-3-opus-20240229
  max_tokens: 4096
- model_id: claude-3-5-sonnet-20240620
  max_tokens: 4096
"""

DEFAULT_CONFIG_TEMPLATE = {
    "host": ModelDefaults.DEFAULT_HOST,
    "port": ModelDefaults.DEFAULT_PORT,
    "log_level": ModelDefaults.DEFAULT_LOG_LEVEL,
    "log_file_path": str(DEFAULT_LOG_DIR / DEFAULT_LOG_FILE_NAME),
    "cleanup_logs_on_start": False,
    "anthropic_api_base": ModelDefaults.ANTHROPIC_API_BASE,
    "anthropic_version": ModelDefaults.ANTHROPIC_VERSION,
    "default_max_tokens": ModelDefaults.DEFAULT_MAX_TOKENS,
    "request_timeout": ModelDefaults.DEFAULT_REQUEST_TIMEOUT,
}


def _make_dir(path: Path, label: str) -> Path:
    if not path.exists():
        logger.info(f"Creating {label} directory: {path}")
        path.mkdir(parents=True, exist_ok=True)
    return path


def _write_default(path: Path, content: str, force: bool, label: str) -> Path:
    """Write ``content`` to ``path`` unless it exists and ``force`` is off."""
    if path.exists() and not force:
        logger.debug(f"Keeping existing {label}: {path}")
        return path

    logger.info(f"Writing default {label}: {path}")
    path.write_text(content, encoding="utf-8")
    return path


def ensure_config_dir() -> Path:
    return _make_dir(DEFAULT_CONFIG_DIR, "config")


def ensure_log_dir() -> Path:
    return _make_dir(DEFAULT_LOG_DIR, "log")


def create_default_models_file(force: bool = False) -> Path:
    ensure_config_dir()
    return _write_default(DEFAULT_MODELS_FILE, DEFAULT_MODELS_TEMPLATE, force, "models file")


def create_default_config_file(force: bool = False) -> Path:
    ensure_config_dir()
    content = json.dumps(DEFAULT_CONFIG_TEMPLATE, indent=2) + "\n"
    return _write_default(DEFAULT_CONFIG_FILE, content, force, "config file")


def initialize_config(force: bool = False) -> tuple[Path, Path]:
    """Create the config and log directories and the default files.

    ``force`` resets config.json only; an existing models.yaml is kept since
    it usually holds the user's own model list.

    Returns:
        (models.yaml path, config.json path)
    """
    ensure_log_dir()
    return create_default_models_file(force=False), create_default_config_file(force=force)


def load_config_file(config_path: Path | None = None) -> dict:
    """Read config.json as a dict.

    A missing, unreadable or non-object file yields an empty dict so callers
    fall back to defaults.
    """
    path = config_path or DEFAULT_CONFIG_FILE
    if not path.exists():
        logger.debug(f"No config file at {path}")
        return {}

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        logger.error(f"Config file {path} is not valid JSON: {e}")
        return {}
    except OSError as e:
        logger.error(f"Cannot read config file {path}: {e}")
        return {}

    if not isinstance(data, dict):
        logger.error(f"Config file {path} must contain a JSON object")
        return {}

    logger.debug(f"Loaded config from {path}")
    return data


def get_default_log_file_path() -> Path:
    return DEFAULT_LOG_DIR / DEFAULT_LOG_FILE_NAME
