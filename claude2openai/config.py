"""
Configuration management for the claude2openai package.
This module handles configuration loading and logging setup.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from .config_manager import (
    DEFAULT_CONFIG_DIR,
    DEFAULT_CONFIG_FILE,
    DEFAULT_MODELS_FILE,
    get_default_log_file_path,
    load_config_file,
)
from .types import ModelDefaults

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"

# Selects config.json when no path is passed explicitly
CONFIG_FILE_ENV = "CLAUDE2OPENAI_CONFIG"


def parse_token_value(value, default_value=None):
    """Parse token value that can be in 'k' format (4k, 8K) or a plain number.

    Examples:
        parse_token_value("4K") -> 4000
        parse_token_value("8k") -> 8000
        parse_token_value(4096) -> 4096
        parse_token_value(None, 4096) -> 4096
    """
    if value is None:
        return default_value

    if isinstance(value, bool):
        logger.warning(f"Unexpected boolean token value '{value}', using default {default_value}")
        return default_value

    if isinstance(value, int):
        return value

    if isinstance(value, str):
        value = value.strip().lower()
        try:
            if value.endswith("k"):
                # SI standard: 1K = 1000
                return int(float(value[:-1]) * 1000)
            return int(value)
        except (ValueError, TypeError):
            logger.warning(
                f"Could not parse token value '{value}', using default {default_value}"
            )
            return default_value

    logger.warning(
        f"Unexpected token value type '{type(value)}' for value '{value}', using default {default_value}"
    )
    return default_value


def load_config_from_file(config_path: Path | None = None) -> dict:
    """Load config.json and export its ``env`` section.

    Variables from the ``env`` section are only set when absent from the
    environment, so real environment variables win.
    """
    config_data = load_config_file(config_path)

    env_section = config_data.get("env")
    if isinstance(env_section, dict):
        for key, value in env_section.items():
            if key not in os.environ:
                os.environ[key] = str(value)

    return config_data


class Config:
    """Proxy server configuration.

    Priority for every setting: environment variable > config.json > default.
    """

    def __init__(self, config_path: Path | None = None):
        self.load(config_path)

    def load(self, config_path: Path | None = None) -> None:
        if config_path is None and os.environ.get(CONFIG_FILE_ENV):
            config_path = Path(os.environ[CONFIG_FILE_ENV]).expanduser()
        file_config = load_config_from_file(config_path)

        # Server configuration
        self.host = os.environ.get("HOST", file_config.get("host", ModelDefaults.DEFAULT_HOST))
        self.port = int(os.environ.get("PORT", file_config.get("port", ModelDefaults.DEFAULT_PORT)))

        log_path_str = os.environ.get(
            "LOG_FILE_PATH", file_config.get("log_file_path", str(get_default_log_file_path()))
        )
        self.log_file_path = Path(log_path_str).expanduser()
        self.log_level = os.environ.get(
            "LOG_LEVEL", file_config.get("log_level", ModelDefaults.DEFAULT_LOG_LEVEL)
        )
        self.cleanup_logs_on_start = bool(file_config.get("cleanup_logs_on_start", False))

        # Upstream Anthropic API
        self.anthropic_api_base = os.environ.get(
            "ANTHROPIC_API_BASE",
            file_config.get("anthropic_api_base", ModelDefaults.ANTHROPIC_API_BASE),
        ).rstrip("/")
        self.anthropic_version = file_config.get(
            "anthropic_version", ModelDefaults.ANTHROPIC_VERSION
        )
        self.default_max_tokens = parse_token_value(
            file_config.get("default_max_tokens"), ModelDefaults.DEFAULT_MAX_TOKENS
        )
        self.request_timeout = float(
            os.environ.get(
                "REQUEST_TIMEOUT",
                file_config.get("request_timeout", ModelDefaults.DEFAULT_REQUEST_TIMEOUT),
            )
        )

        # Allowed models list (models.yaml)
        self.models_file = Path(
            os.environ.get("MODELS_FILE", str(DEFAULT_MODELS_FILE))
        ).expanduser()

        # Config file locations (for reference)
        self.config_dir = DEFAULT_CONFIG_DIR
        self.config_file = config_path or DEFAULT_CONFIG_FILE


# Global configuration instance
config = Config()


class MessageFilter(logging.Filter):
    """Drop noisy per-request lines emitted by the HTTP client."""

    blocked_phrases = ("HTTP Request:",)

    def filter(self, record):
        message = record.getMessage()
        return not any(phrase in message for phrase in self.blocked_phrases)


def _resolve_log_level(level_name: str) -> int:
    level = logging.getLevelName(str(level_name).upper())
    if isinstance(level, int):
        return level
    logger.warning(f"Invalid log level: {level_name}, using INFO")
    return logging.INFO


def setup_logging(log_to_file: bool = False, log_file_path: Path | None = None) -> None:
    """Setup logging configuration. Safe to call more than once.

    Records always go to stderr. When the server runs as a service, the
    supervisor appends stderr to the combined log file, so the rotating file
    handler is only added on request for plain foreground runs.

    Args:
        log_to_file: Also write to a rotating log file.
        log_file_path: Override for the rotating log file path.
    """
    root_logger = logging.getLogger()
    log_level = _resolve_log_level(config.log_level)
    root_logger.setLevel(log_level)

    logging.getLogger("uvicorn").setLevel(log_level)
    logging.getLogger("uvicorn.error").setLevel(log_level)

    # Access logs only at INFO or below
    uvicorn_access_logger = logging.getLogger("uvicorn.access")
    if log_level <= logging.INFO:
        uvicorn_access_logger.setLevel(logging.INFO)
        uvicorn_access_logger.propagate = True
    else:
        uvicorn_access_logger.setLevel(logging.WARNING)
        uvicorn_access_logger.propagate = False

    if log_level <= logging.DEBUG:
        logging.getLogger("httpx").setLevel(logging.INFO)
    else:
        logging.getLogger("httpx").setLevel(logging.WARNING)

    if root_logger.handlers:
        return

    formatter = logging.Formatter(LOG_FORMAT)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    stream_handler.addFilter(MessageFilter())
    root_logger.addHandler(stream_handler)

    if not log_to_file:
        return

    log_file = Path(log_file_path or config.log_file_path)
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        # 2MB max size, 1 backup
        file_handler = RotatingFileHandler(
            log_file,
            mode="a",
            maxBytes=2 * 1024 * 1024,
            backupCount=1,
            encoding="utf-8",
        )
    except OSError as e:
        logger.critical(f"Error setting up logging: {e}")
        sys.exit(1)

    file_handler.setFormatter(formatter)
    file_handler.addFilter(MessageFilter())
    root_logger.addHandler(file_handler)
    logger.debug(f"Logging to file: {log_file}")
