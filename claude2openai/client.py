"""
Anthropic client management and the allowed model list.
"""

import logging
import time
from pathlib import Path
from typing import Any

import httpx
import yaml

from .config import config, parse_token_value

logger = logging.getLogger(__name__)

DEFAULT_ALLOWED_MODELS = [
    "claude-3-haiku-20240307",
    "claude-3-sonnet-20240229",
    "claude-3-opus-20240229",
    "claude-3-5-sonnet-20240620",
]

# model_id -> model settings, in configured order; the first entry is the default
ALLOWED_MODELS: dict[str, dict[str, Any]] = {}


def _model_entry(model_id: str, max_tokens=None, owned_by: str | None = None) -> dict[str, Any]:
    return {
        "model_id": model_id,
        "max_tokens": parse_token_value(max_tokens, config.default_max_tokens),
        "owned_by": owned_by or "user",
    }


def reset_models() -> None:
    """Restore the built-in model list."""
    ALLOWED_MODELS.clear()
    for model_id in DEFAULT_ALLOWED_MODELS:
        ALLOWED_MODELS[model_id] = _model_entry(model_id)


def load_models_config(models_file: Path | str | None = None) -> None:
    """Load the allowed model list from models.yaml.

    A missing, empty or invalid file leaves the built-in list in place.
    """
    reset_models()

    path = Path(models_file or config.models_file)
    if not path.exists():
        logger.debug(f"Models file not found, using built-in list: {path}")
        return

    try:
        with path.open(encoding="utf-8") as f:
            models = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Error loading models file {path}: {e}")
        return

    if not models or not isinstance(models, list):
        logger.warning(f"No models found in models file: {path}")
        return

    loaded: dict[str, dict[str, Any]] = {}
    for model in models:
        if not isinstance(model, dict) or not model.get("model_id"):
            logger.warning(f"Invalid model configuration, missing model_id: {model}")
            continue
        model_id = str(model["model_id"])
        loaded[model_id] = _model_entry(model_id, model.get("max_tokens"), model.get("owned_by"))
        logger.info(f"Loaded model: {model_id}")

    if not loaded:
        logger.warning(f"No valid models in {path}, using built-in list")
        return

    ALLOWED_MODELS.clear()
    ALLOWED_MODELS.update(loaded)


def get_default_model() -> str:
    if not ALLOWED_MODELS:
        reset_models()
    return next(iter(ALLOWED_MODELS))


def resolve_model(model: str | None) -> str:
    """Return ``model`` if it is allowed, otherwise the default model."""
    if model and model in ALLOWED_MODELS:
        return model
    default_model = get_default_model()
    logger.debug(f"MODEL MAPPING: '{model}' is not allowed, using {default_model}")
    return default_model


def get_model_max_tokens(model: str) -> int:
    entry = ALLOWED_MODELS.get(model)
    if entry:
        return entry["max_tokens"]
    return config.default_max_tokens


def list_models() -> dict[str, Any]:
    """OpenAI ``/v1/models`` payload for the allowed models."""
    if not ALLOWED_MODELS:
        reset_models()
    created = int(time.time())
    return {
        "object": "list",
        "data": [
            {
                "id": model_id,
                "object": "model",
                "created": created,
                "owned_by": entry["owned_by"],
            }
            for model_id, entry in ALLOWED_MODELS.items()
        ],
    }


def build_claude_headers(api_key: str) -> dict[str, str]:
    return {
        "Content-Type": "application/json",
        "x-api-key": api_key,
        "anthropic-version": config.anthropic_version,
    }


def create_claude_client(
    api_key: str,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create an httpx client for the Anthropic Messages API.

    Args:
        api_key: Anthropic API key taken from the caller's bearer token
        transport: Optional transport override
    """
    return httpx.AsyncClient(
        base_url=config.anthropic_api_base,
        headers=build_claude_headers(api_key),
        timeout=httpx.Timeout(config.request_timeout),
        transport=transport,
    )


reset_models()
