"""
Helper functions for the news cache.
Contains utility functions for link canonicalization, date handling and
source/region detection.
"""
import logging
import random
import re
import time
import urllib.parse
from datetime import datetime, timedelta, timezone
from typing import Optional

from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

# Known publisher domains, checked in order (first match wins).
SOURCE_DOMAINS = [
    ("err.ee", "ERR"),
    ("postimees.ee", "Postimees"),
    ("delfi.ee", "Delfi"),
    ("lrt.lt", "LRT"),
    ("delfi.lt", "Delfi Lithuania"),
    ("lsm.lv", "LSM"),
    ("delfi.lv", "Delfi Latvia"),
    ("yle.fi", "Yle"),
    ("hs.fi", "Helsingin Sanomat"),
]

REGION_TLDS = {
    "ee": "Estonia",
    "lt": "Lithuania",
    "lv": "Latvia",
    "fi": "Finland",
}

LANGUAGE_CODES = ("en", "et", "lt", "lv", "fi")


def canonicalize_link(link: str) -> str:
    """
    Build the canonical form of an article link, used as the article id.

    Scheme and host are lower-cased and the fragment is dropped; path and
    query are kept verbatim since publishers use them to address stories.

    Args:
        link: Raw link from the feed

    Returns:
        Canonical URL, or empty string if the link is blank
    """
    if not link or not link.strip():
        return ""

    link = link.strip()
    try:
        parts = urllib.parse.urlsplit(link)
    except ValueError:
        logger.debug(f"Could not split link '{link}', using it verbatim")
        return link

    if not parts.scheme or not parts.netloc:
        return link

    return urllib.parse.urlunsplit((
        parts.scheme.lower(),
        parts.netloc.lower(),
        parts.path,
        parts.query,
        ""
    ))


def parse_published_date(date_string: Optional[str]) -> Optional[datetime]:
    """
    Parse an RSS publication date into a timezone-aware datetime.

    Handles RFC 822 dates ("Mon, 01 Jan 2024 12:00:00 GMT"), ISO 8601 with or
    without fractional seconds, and the day-first variants seen in regional
    feeds. Naive results are assumed to be UTC.

    Args:
        date_string: Raw date string from the feed

    Returns:
        Aware datetime, or None when the string cannot be parsed
    """
    if not date_string or not date_string.strip():
        return None

    try:
        parsed = date_parser.parse(date_string.strip())
    except (ValueError, TypeError, OverflowError) as e:
        logger.warning(f"Failed to parse date '{date_string}': {e}")
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)

    return parsed


def clean_text(text: str, max_length: int = None) -> str:
    """
    Clean and normalize text content.

    Args:
        text: Raw text to clean
        max_length: Maximum length to truncate to (optional)

    Returns:
        Cleaned text string
    """
    if not text:
        return ""

    # Remove HTML tags
    cleaned = re.sub(r'<[^>]+>', ' ', text)

    # Normalize whitespace
    cleaned = re.sub(r'\s+', ' ', cleaned).strip()

    if max_length and len(cleaned) > max_length:
        cleaned = cleaned[:max_length].rstrip() + "..."

    return cleaned


def validate_url(url: str) -> bool:
    """
    Validate if a string is a proper URL.

    Args:
        url: URL string to validate

    Returns:
        True if valid URL, False otherwise
    """
    if not url or not isinstance(url, str):
        return False

    try:
        parsed = urllib.parse.urlparse(url)
        return bool(parsed.scheme and parsed.netloc)
    except ValueError:
        return False


def extract_domain(url: str) -> str:
    """
    Extract domain name from a URL.

    Args:
        url: Full URL string

    Returns:
        Domain name or empty string if extraction fails
    """
    if not url:
        return ""

    try:
        parsed = urllib.parse.urlparse(url)
        return parsed.netloc.lower()
    except ValueError:
        return ""


def determine_source(url: str) -> str:
    """Publisher name for a feed URL, falling back to the bare domain."""
    domain = extract_domain(url)
    for known_domain, name in SOURCE_DOMAINS:
        if domain == known_domain or domain.endswith("." + known_domain):
            return name

    if domain.startswith("www."):
        domain = domain[4:]
    return domain or "Unknown"


def determine_region(url: str) -> str:
    """Region for a feed URL, based on its country-code TLD."""
    domain = extract_domain(url)
    tld = domain.rsplit(".", 1)[-1] if "." in domain else ""
    return REGION_TLDS.get(tld, "Unknown")


def determine_language(url: str, default: str = "en") -> str:
    """Language code for a feed URL, from a subdomain or path prefix."""
    parsed = urllib.parse.urlparse(url or "")
    host = parsed.netloc.lower()
    path = parsed.path.lower()

    for code in LANGUAGE_CODES:
        if host.startswith(f"{code}.") or path.startswith(f"/{code}/"):
            return code

    return default


def format_age(age: Optional[timedelta]) -> str:
    """
    Format a cache age in human-readable form.

    Args:
        age: Age as a timedelta, or None if never cached

    Returns:
        Formatted string (e.g., "12 minutes ago", "3 hours ago", "Never")
    """
    if age is None:
        return "Never"

    seconds = max(age.total_seconds(), 0)

    if seconds < 3600:
        return f"{int(seconds // 60)} minutes ago"
    if seconds < 86400:
        return f"{int(seconds // 3600)} hours ago"
    return f"{int(seconds // 86400)} days ago"


def retry_with_backoff(func, max_retries: int, initial_delay: float, backoff_factor: float = 2.0,
                       retry_on: tuple = (Exception,)):
    """
    Retry a function call with exponential backoff.

    Args:
        func: The function to call.
        max_retries: The maximum number of retries.
        initial_delay: The initial delay in seconds before the first retry.
        backoff_factor: The factor by which the delay increases each retry.
        retry_on: Exception types that trigger a retry; others propagate at once.

    Returns:
        The result of the function call if successful.

    Raises:
        Exception: The last error if the function fails after max_retries.
    """
    for attempt in range(max_retries + 1):
        try:
            return func()
        except retry_on as e:
            if attempt == max_retries:
                raise
            delay = initial_delay * (backoff_factor ** attempt) + random.uniform(0, initial_delay * 0.5)  # Add jitter
            logger.warning(f"Attempt {attempt + 1} failed. Retrying in {delay:.2f}s: {e}")
            time.sleep(delay)
