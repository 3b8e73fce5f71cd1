"""Default configuration for Signal daemon."""

from .config import config_dir


DEFAULT_CONFIG_TOML = """# Signal Configuration

[llm]
# Any LiteLLM model string works. Without an API key the daemon still runs
# and serves non-AI fallback insights (articles grouped by source).
provider = "anthropic"
model = "claude-3-5-haiku-20241022"
api_key = "env:ANTHROPIC_API_KEY"
max_tokens = 5000
audience = "a Product Manager responsible for a mortgage lender's digital experience"

# Ollama (local models) - replace above config with:
# provider = "ollama"
# model = "ollama/llama3"
# api_base = "http://localhost:11434"

[insights]
max_articles = 50  # articles sent to the model per generation
dedup_minutes = 60  # don't archive a second generation within this window
timezone = "America/New_York"  # calendar-day boundary for "today's insights"

[storage]
max_summary_chars = 1000
max_content_chars = 5000
query_limit = 100
retention_days = 90  # articles older than this are purged weekly

[fetch]
max_items_per_feed = 10
max_retries = 3
concurrency = 5
timeout = 30
fetch_cron = "0 8 * * 1,4"  # Monday and Thursday 8 AM
cleanup_cron = "0 0 * * 0"  # Sunday midnight

[api]
host = "127.0.0.1"  # 0.0.0.0 to listen on all interfaces
port = 3001

# Categories: mortgage, product-management, competitor-intel

[[sources]]
name = "HousingWire"
category = "mortgage"
rss = "https://www.housingwire.com/feed/"

[[sources]]
name = "Mortgage News Daily"
category = "mortgage"
rss = "https://www.mortgagenewsdaily.com/rss/news"

[[sources]]
name = "Mind the Product"
category = "product-management"
rss = "https://www.mindtheproduct.com/feed/"

[[sources]]
name = "Lenny's Newsletter"
category = "product-management"
rss = "https://www.lennysnewsletter.com/feed"

[[sources]]
name = "National Mortgage News"
category = "competitor-intel"
rss = "https://www.nationalmortgagenews.com/feed"
"""


def ensure_config() -> None:
    """Create default configuration directory and files if they don't exist.

    Creates $XDG_CONFIG_HOME/signal/ (or ~/.config/signal/) with config.toml.
    """
    directory = config_dir()
    directory.mkdir(parents=True, exist_ok=True)

    config_file = directory / "config.toml"
    if not config_file.exists():
        config_file.write_text(DEFAULT_CONFIG_TOML)
        print(f"Created {config_file}")
    else:
        print(f"Config already exists: {config_file}")


if __name__ == "__main__":
    ensure_config()
