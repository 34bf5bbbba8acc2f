"""
URL helpers for forwarding to the upstream site.
"""

from urllib.parse import urlparse

from flask import current_app

DEFAULT_UPSTREAM_URL = "https://start.spring.io/"


def get_upstream_url() -> str:
    """Get the upstream base URL from config."""
    try:
        if current_app and hasattr(current_app, "config"):
            upstream = current_app.config.get("UPSTREAM_URL", DEFAULT_UPSTREAM_URL)
            if upstream:
                return upstream
    except Exception:
        pass
    return DEFAULT_UPSTREAM_URL


def upstream_host(upstream_url: str) -> str:
    """Host header value (host[:port]) for the upstream."""
    return urlparse(upstream_url).netloc


def build_target_url(upstream_url: str, path: str, query_string: str = "") -> str:
    """
    Join the upstream base with the incoming path and query.

    The upstream's own path (if any) is kept as a prefix, like a single-host reverse proxy.
    """
    parsed = urlparse(upstream_url)
    base_path = parsed.path.rstrip("/")
    if not path.startswith("/"):
        path = "/" + path

    target = f"{parsed.scheme}://{parsed.netloc}{base_path}{path}"
    if query_string:
        target += f"?{query_string}"
    return target
