"""
Logging utilities for the news cache.
Contains helper functions for consistent logging across modules.
"""
import logging
import os
from logging.handlers import TimedRotatingFileHandler
from typing import List


def log_merge_results(logger: logging.Logger, region: str, mode: str, incoming: int, added: int, total: int) -> None:
    """
    Log the outcome of a region merge in a consistent format.

    Args:
        logger: Logger instance to use
        region: Region that was merged
        mode: "reset" or "incremental"
        incoming: Number of incoming articles
        added: Number of articles that were not cached before
        total: Number of articles cached after the merge
    """
    if incoming == 0:
        logger.info(f"Merge for '{region}': no incoming articles, freshness refreshed ({total} cached)")
        return

    duplicates = incoming - added if mode == "incremental" else 0
    logger.info(f"Merge for '{region}' ({mode}): {incoming} incoming, {added} new, {total} cached")

    if duplicates > 0:
        logger.debug(f"Skipped {duplicates} already cached articles for '{region}'")


def log_fetch_failure(logger: logging.Logger, source: str, error: str, attempts: int) -> None:
    """
    Log a failed source fetch.

    Args:
        logger: Logger instance to use
        source: Source that failed
        error: Error message
        attempts: Number of attempts made
    """
    logger.error(f"Failed to fetch '{source}' after {attempts} attempts: {error}")


def log_refresh_summary(logger: logging.Logger, regions: List[str], failed: List[str], articles: int,
                        duration: float) -> None:
    """
    Log a refresh run summary.

    Args:
        logger: Logger instance to use
        regions: Regions that were updated
        failed: Sources that were unavailable
        articles: Number of articles fetched
        duration: Total duration in seconds
    """
    logger.info(f"Refresh completed in {format_duration(duration)}: {articles} articles "
                f"for {len(regions)} regions ({len(failed)} sources unavailable)")

    if failed:
        logger.warning(f"Unavailable sources: {', '.join(failed)}")


def format_duration(seconds: float) -> str:
    """
    Format duration in human-readable format.

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted string (e.g., "2m 30s", "1h 5m")
    """
    if seconds < 60:
        return f"{seconds:.1f}s"

    minutes = int(seconds // 60)
    remaining_seconds = int(seconds % 60)

    if minutes < 60:
        return f"{minutes}m {remaining_seconds}s"

    hours = int(minutes // 60)
    remaining_minutes = int(minutes % 60)

    return f"{hours}h {remaining_minutes}m"


def setup_logging(log_level: str = "INFO", log_dir: str = "logs") -> logging.Logger:
    """
    Configure console and file logging.

    Args:
        log_level: Minimum logging level (e.g., "INFO", "DEBUG")
        log_dir: Directory to store log files

    Returns:
        The configured root logger instance.
    """
    os.makedirs(log_dir, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter('%(levelname)s: %(message)s'))
    root_logger.addHandler(console_handler)

    # File handler (daily rotation)
    file_handler = TimedRotatingFileHandler(os.path.join(log_dir, 'news_cache.log'), when='midnight',
                                            interval=1, backupCount=7)
    file_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
    root_logger.addHandler(file_handler)

    root_logger.info(f"Logging configured to level {log_level.upper()}. Log files in {log_dir}")
    return root_logger
