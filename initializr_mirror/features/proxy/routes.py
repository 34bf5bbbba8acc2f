"""
Proxy routes: forward every request to the upstream site and rewrite the home page.
"""

from __future__ import annotations

import logging
import traceback
from typing import Optional

import requests
from flask import Response, current_app, request
from urllib3.exceptions import MaxRetryError, ProtocolError, ReadTimeoutError, ResponseError
from werkzeug.datastructures import Headers

from .blueprint import IS_PRODUCTION, bp
from .http_session import _SESSION
from .services.envelope import ResponseEnvelope
from .services.rewrite import RewriteState, is_rewrite_candidate, rewrite_response
from .services.urls import build_target_url, get_upstream_url, upstream_host

logger = logging.getLogger(__name__)

PROXY_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS", "HEAD"]
STREAM_CHUNK_SIZE = 8192

HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "transfer-encoding",
    "upgrade",
}
EXCLUDED_REQUEST_HEADERS = HOP_BY_HOP_HEADERS | {
    "host",
    "content-length",
    "x-forwarded-for",
    "x-forwarded-proto",
    "x-forwarded-host",
}


class UpstreamResponse(Response):
    """Flask response that never invents a Content-Type the upstream did not send."""

    default_mimetype = None


def forward_request_headers(upstream_url: str) -> dict:
    """Headers for the upstream request, derived from the current client request."""
    headers = {}
    for name, value in request.headers:
        if name.lower() not in EXCLUDED_REQUEST_HEADERS:
            headers[name] = value

    client_ip = request.remote_addr or ""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        client_ip = f"{forwarded_for}, {client_ip}" if client_ip else forwarded_for

    headers["Host"] = upstream_host(upstream_url)
    headers["X-User-Agent"] = current_app.config["USER_AGENT_MARKER"]
    headers["X-Forwarded-For"] = client_ip
    headers["X-Forwarded-Proto"] = "https" if request.is_secure else "http"
    headers["X-Forwarded-Host"] = request.host
    # Without this, requests would ask for gzip on behalf of a client that never did.
    headers.setdefault("Accept-Encoding", "identity")
    return headers


def upstream_response_headers(resp: requests.Response) -> Headers:
    """Ordered, multi-valued copy of the upstream headers minus hop-by-hop ones."""
    try:
        raw_headers = resp.raw.headers.items()
    except (AttributeError, Exception) as e:
        logger.warning(f"Error reading raw upstream headers: {e}")
        raw_headers = resp.headers.items()

    headers = Headers()
    for name, value in raw_headers:
        if name.lower() not in HOP_BY_HOP_HEADERS:
            headers.add(name, value)
    return headers


def rewritten_response(path: str, status: int, headers: Headers, raw: bytes) -> Response:
    """Run the rewrite pipeline over a buffered body and build the client response."""
    envelope = ResponseEnvelope(path=path, status=status, headers=headers.copy(), body=raw)
    try:
        state = rewrite_response(envelope, current_app.config["REWRITE_RULES"])
    except Exception as e:
        # The pipeline absorbs its own errors; anything else still must not break the exchange.
        logger.error(f"Unexpected error rewriting {path}: {e}\n{traceback.format_exc()}")
        return UpstreamResponse(raw, status=status, headers=headers)

    if not IS_PRODUCTION:
        logger.debug(f"Rewrite of {path} finished in state {state.value}")
    if state is RewriteState.PASSTHROUGH:
        return UpstreamResponse(raw, status=status, headers=headers)
    return UpstreamResponse(envelope.body, status=envelope.status, headers=envelope.headers)


def streamed_response(resp: requests.Response, headers: Headers, prefix: bytes = b"") -> Response:
    """
    Relay the upstream body unchanged (still encoded), closing the upstream on exit.

    `prefix` holds bytes already read off `resp.raw`; they go out first.
    """

    def generate():
        try:
            if prefix:
                yield prefix
            for chunk in resp.raw.stream(STREAM_CHUNK_SIZE, decode_content=False):
                if chunk:
                    yield chunk
        except Exception as e:
            logger.error(f"Error streaming upstream content for {resp.url}: {e}")
        finally:
            resp.close()

    response = UpstreamResponse(generate(), status=resp.status_code, headers=headers)
    # Client disconnects close the WSGI iterable without exhausting it.
    response.call_on_close(resp.close)
    return response


def declared_length(resp: requests.Response) -> Optional[int]:
    content_length = resp.headers.get("Content-Length")
    if content_length is None:
        return None
    try:
        return int(content_length)
    except ValueError:
        return None


def buffered_or_streamed(resp: requests.Response, headers: Headers) -> Response:
    """
    Buffer a rewrite candidate, unless it is larger than REWRITE_MAX_BYTES.

    A declared Content-Length over the limit streams without reading anything.
    Without one (chunked bodies) at most limit + 1 bytes are read; if the body
    turns out larger, those bytes are relayed ahead of the rest of the stream.
    """
    max_bytes = current_app.config["REWRITE_MAX_BYTES"]
    content_length = declared_length(resp)
    if content_length is not None and content_length > max_bytes:
        logger.info(f"{request.path} declares {content_length} bytes (limit {max_bytes}); not rewriting")
        return streamed_response(resp, headers)

    try:
        raw = resp.raw.read(max_bytes + 1, decode_content=False)
    except Exception:
        resp.close()
        raise

    if len(raw) > max_bytes:
        logger.info(f"Body of {request.path} exceeds {max_bytes} bytes; not rewriting")
        return streamed_response(resp, headers, prefix=raw)

    resp.close()
    return rewritten_response(request.path, resp.status_code, headers, raw)


@bp.route("/", defaults={"path": ""}, methods=PROXY_METHODS)
@bp.route("/<path:path>", methods=PROXY_METHODS)
def proxy_path(path: str):
    """
    Forward the request to the upstream site.

    The site root's HTML is buffered and rewritten; everything else streams through.
    """
    upstream_url = get_upstream_url()
    target_url = build_target_url(upstream_url, request.path, request.query_string.decode("latin-1"))

    try:
        if not IS_PRODUCTION:
            logger.debug(f"Proxy request: {request.method} {request.full_path} -> {target_url}")

        data = request.get_data()
        resp = _SESSION.request(
            method=request.method,
            url=target_url,
            headers=forward_request_headers(upstream_url),
            data=data or None,
            allow_redirects=False,
            stream=True,
            timeout=current_app.config["UPSTREAM_TIMEOUT"],
        )

        headers = upstream_response_headers(resp)

        if request.method != "HEAD" and is_rewrite_candidate(request.path, resp.status_code, headers):
            return buffered_or_streamed(resp, headers)

        return streamed_response(resp, headers)

    except requests.exceptions.ConnectionError as e:
        logger.error(f"Connection error proxying to {target_url}: {e}")
        return "Upstream is not responding.", 503
    except requests.exceptions.Timeout as e:
        logger.error(f"Timeout error proxying to {target_url}: {e}")
        return "Request to upstream timed out.", 504
    except ReadTimeoutError as e:
        # Raised by resp.raw while the home page is buffered, outside requests' wrapping.
        logger.error(f"Timeout reading upstream body from {target_url}: {e}")
        return "Request to upstream timed out.", 504
    except ProtocolError as e:
        logger.error(f"Upstream connection broken reading {target_url}: {e}")
        return f"Error proxying request: {str(e)}", 502
    except (ResponseError, MaxRetryError) as e:
        logger.error(f"Retry error proxying to {target_url}: {e}")
        return f"Error proxying request: {str(e)}", 502
    except requests.exceptions.RequestException as e:
        logger.error(f"Request error proxying to {target_url}: {e}")
        return f"Error proxying request: {str(e)}", 502
    except Exception as e:
        error_trace = traceback.format_exc()
        logger.error(f"Unexpected error in proxy route for {request.path}: {e}\n{error_trace}")
        return f"Internal proxy error: {str(e)}. Check server logs for details.", 500
