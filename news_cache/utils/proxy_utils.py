"""
Proxy Utilities

Utility functions for configuring proxy settings on the requests session
used to fetch feeds.
"""

import logging
from typing import Dict, Optional, Tuple

import requests

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; RegionalNewsCache/1.0)"


class ProxyConfig:
    """
    Manages proxy configuration for feed fetching.
    """

    def __init__(self, proxy_config: Optional[Dict] = None):
        """
        Initialize proxy configuration.

        Args:
            proxy_config: Proxy configuration dictionary
        """
        proxy_config = proxy_config or {}
        self.enabled = proxy_config.get('enabled', False)
        self.host = proxy_config.get('host', 'localhost')
        self.port = proxy_config.get('port', 8081)
        self.protocol = proxy_config.get('protocol', 'http')
        self.username = proxy_config.get('username')
        self.password = proxy_config.get('password')

        self._proxy_url = self._build_proxy_url()

    def _build_proxy_url(self) -> Optional[str]:
        """Build proxy URL from configuration."""
        if not self.enabled:
            return None

        if self.username and self.password:
            return f"{self.protocol}://{self.username}:{self.password}@{self.host}:{self.port}"
        return f"{self.protocol}://{self.host}:{self.port}"

    @property
    def proxy_url(self) -> Optional[str]:
        return self._proxy_url

    @property
    def proxy_dict(self) -> Optional[Dict[str, str]]:
        """Proxy mapping for requests."""
        if not self._proxy_url:
            return None
        return {
            'http': self._proxy_url,
            'https': self._proxy_url
        }


def validate_proxy_settings(proxy_settings: Dict) -> Tuple[bool, str]:
    """
    Validate proxy settings.

    Args:
        proxy_settings: Proxy configuration dictionary

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not isinstance(proxy_settings, dict):
        return False, "Proxy settings must be a dictionary"

    # If proxy is disabled, it's valid
    if not proxy_settings.get('enabled', False):
        return True, ""

    for field in ('host', 'port'):
        if field not in proxy_settings:
            return False, f"Missing required field: {field}"

    try:
        port = int(proxy_settings['port'])
        if not (1 <= port <= 65535):
            return False, "Port must be between 1 and 65535"
    except (ValueError, TypeError):
        return False, "Port must be a valid integer"

    protocol = proxy_settings.get('protocol', 'http')
    if protocol not in ['http', 'https', 'socks5']:
        return False, "Protocol must be 'http', 'https', or 'socks5'"

    # Authentication needs both or neither
    if bool(proxy_settings.get('username')) != bool(proxy_settings.get('password')):
        return False, "Both username and password must be provided for authentication"

    return True, ""


def create_proxy_aware_session(proxy_config: Optional[ProxyConfig] = None,
                               user_agent: Optional[str] = None) -> requests.Session:
    """
    Create a requests session with proxy configuration.

    Args:
        proxy_config: Optional proxy configuration
        user_agent: Default User-Agent header for the session

    Returns:
        Configured requests session
    """
    session = requests.Session()

    if proxy_config and proxy_config.enabled:
        session.proxies.update(proxy_config.proxy_dict)
        logger.debug(f"Created proxy-aware session using {proxy_config.host}:{proxy_config.port}")
    else:
        logger.debug("Created session without proxy")

    session.headers.update({
        'User-Agent': user_agent or DEFAULT_USER_AGENT
    })

    return session
