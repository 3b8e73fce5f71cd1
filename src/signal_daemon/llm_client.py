"""Single-shot LLM completion client built on LiteLLM."""

import logging
import time
from typing import Any, Dict, Optional

import litellm
from litellm import completion_cost

from .observability import log as obs_log

logger = logging.getLogger(__name__)


class LLMClient:
    """Sends one prompt to the configured model and returns the text reply.

    No retry wrapper: a failed call surfaces immediately so callers can
    degrade to their fallback path without compounding latency.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """Initialize the client with LLM configuration.

        Args:
            config: Configuration dict with:
                - model: LiteLLM model name (required)
                - api_key: API key for the provider
                - api_base: Endpoint for Ollama/custom providers
                - max_tokens: Completion token limit (default: 5000)
                - temperature: Sampling temperature (default: 0.3)
        """
        self.config = config or {}
        if not self.config or "model" not in self.config:
            raise ValueError("Model must be specified in config")
        self.model = self.config["model"]

        self.api_key = self.config.get("api_key")
        self.api_base = self.config.get("api_base")

        provider = self.config.get("provider", "anthropic").lower()
        if provider == "ollama" and not self.api_base:
            raise ValueError(
                "Ollama provider requires 'api_base' in config (e.g., 'http://localhost:11434')"
            )

        self.max_tokens = self.config.get("max_tokens", 5000)
        self.temperature = self.config.get("temperature", 0.3)

        litellm.drop_params = True  # Drop unsupported params instead of erroring

        logger.info(f"LLMClient initialized with model: {self.model}")

    def complete(self, prompt: str, action: str = "insights") -> str:
        """Send a single user prompt and return the model's text.

        Args:
            prompt: Full prompt text
            action: Label recorded on the llm.call observability event

        Returns:
            Stripped response text

        Raises:
            Exception: Whatever LiteLLM raises for transport/provider failures
        """
        kwargs = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.api_base:
            kwargs["api_base"] = self.api_base

        logger.debug(f"Calling {self.model} ({len(prompt):,} char prompt)")
        start_time = time.time()

        try:
            response = litellm.completion(**kwargs)
        except Exception as e:
            obs_log(
                "llm.call",
                action=action,
                model=self.model,
                status="error",
                error=str(e),
                duration_ms=int((time.time() - start_time) * 1000),
            )
            raise

        duration_ms = int((time.time() - start_time) * 1000)

        tokens = {
            "prompt": response.usage.prompt_tokens if response.usage else 0,
            "completion": response.usage.completion_tokens if response.usage else 0,
            "total": response.usage.total_tokens if response.usage else 0,
        }

        try:
            cost_usd = completion_cost(response)
        except Exception:
            cost_usd = 0.0

        obs_log(
            "llm.call",
            action=action,
            model=self.model,
            tokens=tokens,
            cost_usd=cost_usd,
            duration_ms=duration_ms,
            status="success",
        )

        return (response.choices[0].message.content or "").strip()
