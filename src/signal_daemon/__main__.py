"""Main entry point for Signal daemon - just wiring, no logic."""

import asyncio
import logging
import os
import signal
import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import Tuple

import typer
import uvicorn
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler

from .archive import InsightArchive
from .config import Config
from .database import init_db
from .defaults import ensure_config
from .fetchers.rss import RSSFetcher
from .insight_cache import InsightCache
from .insights import InsightGenerator
from .llm_client import LLMClient
from .orchestrator import SignalOrchestrator
from .storage import Storage

# Load environment variables from ~/.config/signal/.env
config_home = os.getenv("XDG_CONFIG_HOME", str(Path.home() / ".config"))
dotenv_path = Path(config_home) / "signal" / ".env"
if dotenv_path.exists():
    load_dotenv(dotenv_path)

console = Console()
scheduler = None  # Global for signal handler


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )
    # LiteLLM and httpx are chatty at INFO
    for noisy in ("LiteLLM", "litellm", "httpx", "apscheduler"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def build_components(
    config: Config,
) -> Tuple[Storage, RSSFetcher, InsightCache, InsightArchive, SignalOrchestrator]:
    """Create the daemon's long-lived components from config."""
    console.print("🔧 Initializing components...")
    init_db()
    storage = Storage(
        max_summary_chars=config.max_summary_chars,
        max_content_chars=config.max_content_chars,
        query_limit=config.query_limit,
    )

    fetcher = RSSFetcher(config=config)

    llm_client = None
    if config.llm_configured:
        llm_client = LLMClient(config.llm_config())
    else:
        console.print(
            "[yellow]⚠️  No LLM API key configured - serving fallback insights[/yellow]"
        )

    generator = InsightGenerator(
        llm_client=llm_client,
        max_articles=config.max_articles,
        audience=config.audience,
    )
    insight_cache = InsightCache(
        storage,
        generator,
        tz=config.tz,
        dedup_window=timedelta(minutes=config.dedup_minutes),
    )
    archive = InsightArchive(storage, tz=config.tz)

    orchestrator = SignalOrchestrator(
        storage=storage,
        fetcher=fetcher,
        insight_cache=insight_cache,
        console=console,
    )
    return storage, fetcher, insight_cache, archive, orchestrator


async def run_scheduler(config: Config) -> None:
    """Run the daemon: cron-scheduled fetch and cleanup plus the API server.

    Args:
        config: Already loaded and validated configuration
    """
    global scheduler

    try:
        storage, fetcher, insight_cache, archive, orchestrator = build_components(
            config
        )

        scheduler = AsyncIOScheduler(timezone=config.tz)

        scheduler.add_job(
            func=run_orchestrator_sync,
            args=(orchestrator, True),
            trigger=CronTrigger.from_crontab(config.fetch_cron, timezone=config.tz),
            id="fetch_and_generate",
            name="Fetch feeds and generate insights",
            replace_existing=True,
            max_instances=1,  # Prevent overlapping runs
        )

        # Also run immediately on startup, reusing today's insights if cached
        scheduler.add_job(
            func=run_orchestrator_sync,
            args=(orchestrator, False),
            trigger="date",
            id="initial_run",
            name="Initial fetch on startup",
        )

        scheduler.add_job(
            func=run_cleanup_sync,
            args=(orchestrator, config.retention_days),
            trigger=CronTrigger.from_crontab(config.cleanup_cron, timezone=config.tz),
            id="cleanup",
            name="Purge old articles",
            replace_existing=True,
            max_instances=1,
        )

        def signal_handler(sig, frame) -> None:
            console.print(
                "\n[yellow]Received shutdown signal, stopping scheduler...[/yellow]"
            )
            if scheduler and scheduler.running:
                scheduler.shutdown(wait=False)
            sys.exit(0)

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

        scheduler.start()
        console.print(
            f"[green]✅ Scheduler started - fetch '{config.fetch_cron}', "
            f"cleanup '{config.cleanup_cron}' ({config.timezone})[/green]"
        )

        console.print(
            f"[yellow]🌐 Starting API server on port {config.api_port}...[/yellow]"
        )
        from .api import configure_app

        app_instance = configure_app(
            storage=storage,
            insight_cache=insight_cache,
            archive=archive,
            fetcher=fetcher,
            orchestrator=orchestrator,
        )

        api_config = uvicorn.Config(
            app_instance,
            host=config.api_host,
            port=config.api_port,
            log_level="warning",  # Reduce noise
            access_log=False,
        )
        api_server = uvicorn.Server(api_config)

        asyncio.create_task(api_server.serve())
        console.print(
            f"[green]✅ API server running on http://{config.api_host}:{config.api_port}[/green]"
        )
        console.print("[dim]Press Ctrl+C to stop[/dim]\n")

        try:
            await asyncio.Event().wait()
        except KeyboardInterrupt:
            pass

    except Exception as e:
        console.print(f"[bold red]❌ Fatal error: {e}[/bold red]")
        sys.exit(1)
    finally:
        if scheduler and scheduler.running:
            scheduler.shutdown(wait=True)


def run_orchestrator_sync(orchestrator: SignalOrchestrator, force: bool) -> None:
    """Synchronous wrapper to run orchestrator for scheduler."""
    console.print(
        f"\n[blue]⏰ Running scheduled fetch at {datetime.now().strftime('%H:%M:%S')}[/blue]"
    )
    try:
        orchestrator.run_once(force=force)
    except Exception as e:
        console.print(f"[red]Scheduled fetch failed: {e}[/red]")


def run_cleanup_sync(orchestrator: SignalOrchestrator, retention_days: int) -> None:
    """Synchronous wrapper for the weekly cleanup job."""
    console.print(
        f"\n[blue]🧹 Running cleanup at {datetime.now().strftime('%H:%M:%S')}[/blue]"
    )
    try:
        orchestrator.run_cleanup(retention_days)
    except Exception as e:
        console.print(f"[red]Cleanup failed: {e}[/red]")


app = typer.Typer(help="Signal daemon: news feeds in, themed insights out.")


def load_config() -> Config:
    """Load config and check the LLM connection; exits on failure."""
    try:
        ensure_config()
        console.print("📂 Loading configuration...")
        config = Config.from_file()
    except Exception as e:
        console.print(f"[bold red]❌ Fatal error: {e}[/bold red]")
        sys.exit(1)

    if config.llm_configured:
        validate_llm_config(config)
    return config


def validate_llm_config(config: Config) -> None:
    """Validate LLM configuration at startup.

    Args:
        config: Loaded configuration

    Raises:
        SystemExit: If LLM configuration is invalid
    """
    console.print("🔌 Validating LLM configuration...")
    from .llm_validator import validate_llm_config

    try:
        console.print("🧪 Testing LLM connection...")
        validate_llm_config(config.llm_config())

        console.print(
            f"[green]✅ LLM connection successful: {config.llm_provider} / {config.llm_model}[/green]"
        )
    except ValueError as e:
        console.print(f"[bold red]❌ LLM configuration error: {e}[/bold red]")
        sys.exit(1)
    except Exception as e:
        console.print(f"[bold red]❌ LLM connection failed: {e}[/bold red]")
        console.print(
            "[yellow]💡 Check your model name format and server availability[/yellow]"
        )
        sys.exit(1)


@app.command()
def run(
    once: bool = typer.Option(False, "--once", help="Run one cycle and exit"),
    force: bool = typer.Option(
        False, "--force", help="Regenerate insights even if cached today (--once)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Run the daemon (scheduler and API), or a single cycle with --once."""
    setup_logging(verbose)
    config = load_config()

    if once:
        console.print("[bold blue]Starting Signal daemon (--once mode)[/bold blue]")
        try:
            storage, _, _, _, orchestrator = build_components(config)
            with storage:
                stats = orchestrator.run_once(force=force)

            # Exit with error if nothing could be fetched
            if stats["errors"] and stats["fetched"] == 0:
                sys.exit(1)
        except Exception as e:
            console.print(f"[bold red]❌ Fatal error: {e}[/bold red]")
            sys.exit(1)
    else:
        console.print("[bold blue]Starting Signal daemon (scheduler mode)[/bold blue]")
        asyncio.run(run_scheduler(config))


@app.command()
def cleanup(
    days: int = typer.Option(
        None, "--days", help="Retention window in days (default from config)"
    ),
) -> None:
    """Purge articles older than the retention window and exit."""
    setup_logging()
    try:
        ensure_config()
        config = Config.from_file()
        init_db()
        with Storage() as storage:
            orchestrator = SignalOrchestrator(
                storage=storage,
                fetcher=None,
                insight_cache=None,
                console=console,
            )
            orchestrator.run_cleanup(days or config.retention_days)
    except Exception as e:
        console.print(f"[bold red]❌ Cleanup failed: {e}[/bold red]")
        sys.exit(1)


@app.command("init-config")
def init_config() -> None:
    """Write the default config file if none exists."""
    ensure_config()


if __name__ == "__main__":
    app()
