"""Observability logging for Signal daemon - JSONL event tracking.

One JSON object per line in $XDG_DATA_HOME/signal/observability, one file per
day. Events emitted by the daemon:

    fetcher.complete / fetcher.error   per RSS source
    llm.call                           every model request, with tokens and cost
    insights.generate                  generator outcome (model or fallback)
    insights.cache                     cache outcome: hit-memory, hit-archive,
                                       miss, archived, dedup, archive-error
    articles.purge                     retention cleanup
    api.request                        every /api/* request
"""

import fcntl
import json
import os
import sys
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any


class ObservabilityLogger:
    """Thread-safe and process-safe JSONL event logger with daily rotation.

    The scheduler's worker threads and the API threadpool all append to the
    same file; an exclusive fcntl lock keeps lines whole.
    """

    def __init__(self, base_dir: Path | None = None):
        """Initialize observability logger.

        Args:
            base_dir: Directory for JSONL files.
                      Defaults to $XDG_DATA_HOME/signal/observability
        """
        if base_dir is None:
            data_home = os.environ.get(
                "XDG_DATA_HOME", str(Path.home() / ".local" / "share")
            )
            base_dir = Path(data_home) / "signal" / "observability"

        self.base_dir = base_dir
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def log(self, event: str, **metadata: Any) -> None:
        """Log an event with metadata to daily JSONL file.

        Thread-safe and process-safe via fcntl file locking.
        Gracefully degrades on failure - prints to stderr but doesn't crash.

        Args:
            event: Event name (e.g., "insights.cache", "llm.call")
            **metadata: Additional event metadata. Values that are not JSON
                        types (datetimes, enums) are written with str()
        """
        today = datetime.now().strftime("%Y-%m-%d")
        log_file = self.base_dir / f"{today}_events.jsonl"

        entry = {
            "ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "event": event,
            **metadata,
        }

        # Retry wrapper for lock failures (3 attempts with backoff)
        for attempt in range(3):
            try:
                with open(log_file, "a") as f:
                    # Exclusive lock: cache, fetcher and API threads share the file
                    fcntl.flock(f.fileno(), fcntl.LOCK_EX)
                    try:
                        f.write(json.dumps(entry, default=str) + "\n")
                        f.flush()  # Visible to tailing readers immediately
                    finally:
                        # Always release lock
                        fcntl.flock(f.fileno(), fcntl.LOCK_UN)
                return  # Success
            except BlockingIOError:
                # Lock timeout - retry with backoff
                if attempt < 2:
                    time.sleep(0.01 * (attempt + 1))  # 10ms, 20ms
                else:
                    print(
                        f"[Observability] Failed to log event after 3 attempts: {event}",
                        file=sys.stderr,
                    )
            except Exception as e:
                # Any other error - log to stderr and give up
                print(
                    f"[Observability] Error logging event '{event}': {e}",
                    file=sys.stderr,
                )
                return

    def cleanup_old_files(self, retention_days: int = 30) -> int:
        """Remove JSONL files older than retention_days.

        Called from the weekly cleanup job alongside the article purge.

        Args:
            retention_days: Number of days to keep. Default: 30

        Returns:
            Number of files removed
        """
        if not self.base_dir.exists():
            return 0

        cutoff_date = datetime.now() - timedelta(days=retention_days)
        removed_count = 0

        for file_path in self.base_dir.glob("*_events.jsonl"):
            try:
                # Extract date from filename: YYYY-MM-DD_events.jsonl
                date_str = file_path.stem.split("_")[0]
                file_date = datetime.strptime(date_str, "%Y-%m-%d")

                if file_date < cutoff_date:
                    file_path.unlink()
                    removed_count += 1
            except (ValueError, IndexError):
                # Not one of ours - skip
                continue
            except OSError as e:
                print(
                    f"[Observability] Error removing old file {file_path}: {e}",
                    file=sys.stderr,
                )
                continue

        return removed_count


# Process-wide instance; tests swap it for one rooted in a temp dir
_logger: ObservabilityLogger | None = None


def get_logger() -> ObservabilityLogger:
    """Get global observability logger instance (singleton pattern)."""
    global _logger
    if _logger is None:
        _logger = ObservabilityLogger()
    return _logger


def log(event: str, **metadata: Any) -> None:
    """Convenience function to log events using global logger.

    Usage:
        from signal_daemon.observability import log
        log("insights.cache", category="mortgage", outcome="hit-archive")
        log("llm.call", action="insights", tokens={"prompt": 4200, "completion": 900})
    """
    get_logger().log(event, **metadata)
