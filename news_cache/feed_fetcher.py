#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
feed_fetcher.py - Module for fetching regional RSS feeds using requests and proxy.
"""

import logging
from typing import Any, Dict, List, Optional

import requests
from user_agent import generate_user_agent

from news_cache.exceptions import FetchError
from news_cache.feed_reader import FeedReader, normalize_item
from news_cache.models import ArticleRecord, FeedSource
from news_cache.utils.helpers import retry_with_backoff
from news_cache.utils.logging_utils import log_fetch_failure
from news_cache.utils.proxy_utils import ProxyConfig, create_proxy_aware_session

logger = logging.getLogger(__name__)


class FeedFetcher:
    """
    Fetches one source's feed over a requests session and hands the document
    to a FeedReader.
    """

    def __init__(self, timeout: float = 30, retry_attempts: int = 3, backoff_factor: float = 2.0,
                 proxy_config: Optional[ProxyConfig] = None, reader: Optional[FeedReader] = None,
                 user_agent: Optional[str] = None, rotate_user_agent: bool = True):
        """
        Initialize the feed fetcher.

        Args:
            timeout (float): Request timeout in seconds.
            retry_attempts (int): Retries after the first failed request.
            backoff_factor (float): Growth factor of the delay between retries.
            proxy_config (Optional[ProxyConfig]): Proxy configuration.
            reader (Optional[FeedReader]): Reader used to extract items.
            user_agent (Optional[str]): Fixed User-Agent for the session.
            rotate_user_agent (bool): Send a generated User-Agent per request.
        """
        self.timeout = timeout
        self.retry_attempts = retry_attempts
        self.backoff_factor = backoff_factor
        self.proxy_config = proxy_config
        self.reader = reader or FeedReader()
        self.rotate_user_agent = rotate_user_agent

        self.session = create_proxy_aware_session(self.proxy_config, user_agent)

        logger.debug("FeedFetcher initialized with requests session and reader")

    def _headers(self) -> Dict[str, str]:
        headers = {
            'Accept': 'application/rss+xml, application/xml, text/xml;q=0.9',
            'Accept-Language': 'en-US,en;q=0.5'
        }
        if self.rotate_user_agent:
            headers['User-Agent'] = generate_user_agent()
        return headers

    def fetch_raw(self, source: FeedSource) -> str:
        """
        Fetch a source's feed document with retries and backoff.

        Args:
            source (FeedSource): Source to fetch

        Returns:
            str: Raw feed document

        Raises:
            FetchError: If the document could not be fetched after all retries
        """
        def fetch():
            logger.debug(f"Attempting to fetch {source.url}")
            response = self.session.get(source.url, headers=self._headers(), timeout=self.timeout)
            response.raise_for_status()
            return response.text

        try:
            return retry_with_backoff(
                func=fetch,
                max_retries=self.retry_attempts,
                initial_delay=1,
                backoff_factor=self.backoff_factor,
                retry_on=(requests.exceptions.RequestException,)
            )
        except requests.exceptions.RequestException as e:
            log_fetch_failure(logger, source.name, str(e), self.retry_attempts + 1)
            raise FetchError(source.name, str(e)) from e

    def fetch_items(self, source: FeedSource) -> List[Dict[str, Any]]:
        """Fetch a source and extract its raw items."""
        content = self.fetch_raw(source)
        return self.reader.read_items(content, source.name)

    def fetch_articles(self, source: FeedSource) -> List[ArticleRecord]:
        """
        Fetch a source and normalize its items into articles.

        Args:
            source (FeedSource): Source to fetch

        Returns:
            List[ArticleRecord]: Articles that carry a link

        Raises:
            FetchError: If the feed could not be fetched or read
        """
        logger.info(f"Fetching '{source.name}' ({source.region})")
        items = self.fetch_items(source)

        articles = []
        for item in items:
            article = normalize_item(item, source)
            if article is not None:
                articles.append(article)

        logger.info(f"Fetched '{source.name}': {len(articles)} articles from {len(items)} items")
        return articles

    def close(self) -> None:
        self.session.close()
