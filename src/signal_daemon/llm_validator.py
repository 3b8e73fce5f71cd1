"""Simple LLM configuration validator."""

import asyncio
from typing import Any, Dict

import litellm


def validate_llm_config(config: Dict[str, Any]) -> None:
    """Validate LLM configuration can connect to the provider.

    Args:
        config: Dict with provider, model, api_key, and optional api_base

    Raises:
        ValueError: If configuration is invalid
        Exception: If LLM connection fails
    """
    if not config.get("model"):
        raise ValueError("Model must be specified in config")

    provider = config.get("provider", "anthropic").lower()
    if provider == "ollama" and not config.get("api_base"):
        raise ValueError(
            "Ollama provider requires 'api_base' in config (e.g., 'http://localhost:11434')"
        )

    model_params = {"model": config["model"]}
    if config.get("api_key"):
        model_params["api_key"] = config["api_key"]
    if config.get("api_base"):
        model_params["api_base"] = config["api_base"]

    result = asyncio.run(litellm.ahealth_check(model_params))
    if isinstance(result, dict) and result.get("error"):
        raise ValueError(f"LLM health check failed: {result['error']}")
