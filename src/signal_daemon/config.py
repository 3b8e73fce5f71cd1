"""Configuration loading from TOML."""

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .models import Category


def config_dir() -> Path:
    """Configuration directory: $XDG_CONFIG_HOME/signal (or ~/.config/signal)."""
    xdg_config_home = os.environ.get("XDG_CONFIG_HOME", str(Path.home() / ".config"))
    return Path(xdg_config_home) / "signal"


def expand_env_var(value: Optional[str]) -> Optional[str]:
    """Expand "env:NAME" to the value of $NAME, leaving the placeholder if unset."""
    if isinstance(value, str) and value.startswith("env:"):
        return os.environ.get(value[4:], value)
    return value


@dataclass
class Config:
    """Configuration dataclass with validation.

    Loads from ~/.config/signal/config.toml - config file is required.
    Sections other than [llm] fall back to defaults when omitted.
    """

    # LLM settings
    llm_provider: str
    llm_model: str
    llm_api_key: str = ""
    llm_api_base: Optional[str] = None  # For Ollama and custom endpoints
    llm_max_tokens: int = 5000
    llm_temperature: float = 0.3
    audience: str = (
        "a Product Manager responsible for a mortgage lender's digital experience"
    )

    # Insight settings
    max_articles: int = 50
    dedup_minutes: int = 60
    timezone: str = "America/New_York"

    # Storage settings
    max_summary_chars: int = 1000
    max_content_chars: int = 5000
    query_limit: int = 100
    retention_days: int = 90

    # Fetch settings
    max_items_per_feed: int = 10
    max_retries: int = 3
    fetch_concurrency: int = 5
    fetch_timeout: int = 30
    fetch_cron: str = "0 8 * * 1,4"  # Monday and Thursday 8 AM
    cleanup_cron: str = "0 0 * * 0"  # Sunday midnight

    # API settings
    api_host: str = "127.0.0.1"
    api_port: int = 3001

    # Feed sources: [{"name", "category", "rss"}]
    sources: List[Dict[str, str]] = field(default_factory=list)

    @property
    def llm_configured(self) -> bool:
        """Whether a usable LLM credential is configured.

        An unexpanded "env:" placeholder means the variable was not set.
        Local providers (Ollama) only need an api_base.
        """
        key = self.llm_api_key or ""
        if key and not key.startswith("env:"):
            return True
        return self.llm_provider.lower() == "ollama" and bool(self.llm_api_base)

    @property
    def tz(self) -> ZoneInfo:
        """Reference timezone for calendar-day boundaries and schedules."""
        return ZoneInfo(self.timezone)

    def llm_config(self) -> Dict[str, Any]:
        """LLM settings as a dict for LLMClient and the startup validator."""
        llm_config = {
            "provider": self.llm_provider,
            "model": self.llm_model,
            "api_key": self.llm_api_key,
            "max_tokens": self.llm_max_tokens,
            "temperature": self.llm_temperature,
        }
        if self.llm_api_base:
            llm_config["api_base"] = self.llm_api_base
        return llm_config

    def validate(self) -> None:
        """Validate configuration values.

        Raises:
            ValueError: If any configuration values are invalid.
        """
        if not self.llm_model:
            raise ValueError("llm.model must be set")

        if self.llm_provider.lower() == "ollama" and not self.llm_api_base:
            raise ValueError(
                "Ollama provider requires 'api_base' in config (e.g., 'http://localhost:11434')"
            )

        for field_name, value, low, high in [
            ("max_articles", self.max_articles, 1, 200),
            ("dedup_minutes", self.dedup_minutes, 0, 1440),
            ("retention_days", self.retention_days, 1, 3650),
            ("query_limit", self.query_limit, 1, 1000),
            ("max_items_per_feed", self.max_items_per_feed, 1, 100),
            ("max_retries", self.max_retries, 1, 10),
            ("fetch_concurrency", self.fetch_concurrency, 1, 50),
            ("max_summary_chars", self.max_summary_chars, 100, 100000),
            ("max_content_chars", self.max_content_chars, 100, 100000),
        ]:
            if not low <= value <= high:
                raise ValueError(
                    f"{field_name} must be between {low} and {high}, got {value}"
                )

        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {self.timezone}")

        for source in self.sources:
            for key in ("name", "category", "rss"):
                if not source.get(key):
                    raise ValueError(f"Source is missing '{key}': {source}")
            category = Category.parse(source["category"])
            if category == Category.ALL:
                raise ValueError(
                    f"Source '{source['name']}' must use a concrete category, not 'all'"
                )

    @classmethod
    def from_file(cls, config_path: Optional[Path] = None) -> "Config":
        """Load configuration from TOML file.

        Args:
            config_path: Optional path to config file.
                        Defaults to $XDG_CONFIG_HOME/signal/config.toml

        Returns:
            Config instance with loaded values.
        """
        if config_path is None:
            config_path = config_dir() / "config.toml"

        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Run 'signal-daemon init-config' to create default configuration."
            )

        try:
            with open(config_path, "rb") as f:
                config_dict = tomllib.load(f)
        except Exception as e:
            raise ValueError(f"Failed to parse config file {config_path}: {e}")

        return cls.from_dict(config_dict)

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> "Config":
        """Build and validate a Config from parsed TOML sections."""
        llm = config_dict.get("llm", {})
        insights = config_dict.get("insights", {})
        storage = config_dict.get("storage", {})
        fetch = config_dict.get("fetch", {})
        api = config_dict.get("api", {})

        defaults = {f.name: f.default for f in cls.__dataclass_fields__.values()}

        try:
            config = cls(
                llm_provider=llm["provider"],
                llm_model=llm["model"],
                llm_api_key=expand_env_var(llm.get("api_key", "env:ANTHROPIC_API_KEY"))
                or "",
                llm_api_base=expand_env_var(llm.get("api_base")),
                llm_max_tokens=llm.get("max_tokens", defaults["llm_max_tokens"]),
                llm_temperature=llm.get("temperature", defaults["llm_temperature"]),
                audience=llm.get("audience", defaults["audience"]),
                max_articles=insights.get("max_articles", defaults["max_articles"]),
                dedup_minutes=insights.get("dedup_minutes", defaults["dedup_minutes"]),
                timezone=insights.get("timezone", defaults["timezone"]),
                max_summary_chars=storage.get(
                    "max_summary_chars", defaults["max_summary_chars"]
                ),
                max_content_chars=storage.get(
                    "max_content_chars", defaults["max_content_chars"]
                ),
                query_limit=storage.get("query_limit", defaults["query_limit"]),
                retention_days=storage.get(
                    "retention_days", defaults["retention_days"]
                ),
                max_items_per_feed=fetch.get(
                    "max_items_per_feed", defaults["max_items_per_feed"]
                ),
                max_retries=fetch.get("max_retries", defaults["max_retries"]),
                fetch_concurrency=fetch.get(
                    "concurrency", defaults["fetch_concurrency"]
                ),
                fetch_timeout=fetch.get("timeout", defaults["fetch_timeout"]),
                fetch_cron=fetch.get("fetch_cron", defaults["fetch_cron"]),
                cleanup_cron=fetch.get("cleanup_cron", defaults["cleanup_cron"]),
                api_host=api.get("host", defaults["api_host"]),
                api_port=api.get("port", defaults["api_port"]),
                sources=[dict(source) for source in config_dict.get("sources", [])],
            )
        except KeyError as e:
            raise ValueError(f"Missing required config field: {e}")

        config.validate()

        return config
