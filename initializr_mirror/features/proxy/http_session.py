"""
HTTP session setup for upstream forwarding (connection pooling + retry).
"""

from http.cookiejar import DefaultCookiePolicy

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry


def create_proxy_session(pool_maxsize: int = 20) -> requests.Session:
    """Create a requests session tuned for proxy traffic to a single upstream."""
    session = requests.Session()
    # Ignore HTTP(S)_PROXY/netrc from the environment.
    session.trust_env = False
    # The session is shared by all clients: never store upstream cookies in it.
    session.cookies.set_policy(DefaultCookiePolicy(allowed_domains=[]))

    retry_strategy = Retry(
        total=1,
        backoff_factor=0.1,
        status_forcelist=[502, 503, 504],
        # Hand the upstream's last error response to the client instead of raising.
        raise_on_status=False,
    )

    adapter = HTTPAdapter(pool_connections=1, pool_maxsize=pool_maxsize, max_retries=retry_strategy)
    session.mount("http://", adapter)
    session.mount("https://", adapter)

    return session


_SESSION = create_proxy_session()
