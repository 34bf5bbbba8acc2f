"""
Response-rewrite pipeline for the site home page.

IMPORTANT: nothing raised in here may reach the client. Every stage failure ends in
either PASSTHROUGH (envelope untouched) or FALLBACK (a complete, correctly labelled
pre-mutation buffer).

    PASSTHROUGH -> GATED -> DECODED -> PARSED -> MUTATED -> SERIALIZED -> COMMITTED
                      \\________\\_________\\_________\\___________\\-> FALLBACK
"""

from __future__ import annotations

import enum
import logging

from werkzeug.datastructures import Headers
from werkzeug.http import parse_options_header

from .encoding import decode_body, detect_encoding
from .envelope import ResponseEnvelope
from .errors import DecodeFailure, RewriteError, UnsupportedEncoding
from .mutations import RewriteRules, apply_mutations
from .serializer import render_document
from .tree import parse_document

logger = logging.getLogger(__name__)

SITE_ROOT = "/"
# A partial body cannot be rewritten without breaking its Content-Range.
PARTIAL_CONTENT = 206


class RewriteState(enum.Enum):
    PASSTHROUGH = "passthrough"
    GATED = "gated"
    DECODED = "decoded"
    PARSED = "parsed"
    MUTATED = "mutated"
    SERIALIZED = "serialized"
    COMMITTED = "committed"
    FALLBACK = "fallback"


def is_html(content_type: str | None) -> bool:
    return (content_type or "").strip().lower().startswith("text/html")


def declared_charset(content_type: str | None) -> str | None:
    """The charset parameter of a Content-Type value, if any."""
    _, options = parse_options_header(content_type or "")
    return options.get("charset") or None


def is_rewrite_candidate(path: str, status: int, headers: Headers) -> bool:
    """Only successful, complete HTML responses for the site root are rewritten."""
    if not 200 <= status < 300 or status == PARTIAL_CONTENT:
        return False
    if path != SITE_ROOT:
        return False
    return is_html(headers.get("Content-Type"))


def rewrite_response(envelope: ResponseEnvelope, rules: RewriteRules) -> RewriteState:
    """
    Run the pipeline over a fully buffered envelope, mutating it in place.

    Returns the terminal state:
    - PASSTHROUGH: not a candidate, or an unknown Content-Encoding. Envelope untouched.
    - COMMITTED: body replaced by the rewritten page, Content-Encoding removed,
      Content-Length set to the rendered size.
    - FALLBACK: on decode failure the envelope is untouched (the original bytes are
      the last good buffer). On parse/anchor/serialize failure the body becomes the
      decoded page with headers relabelled to match it.
    """
    if not is_rewrite_candidate(envelope.path, envelope.status, envelope.headers):
        return RewriteState.PASSTHROUGH

    state = RewriteState.GATED
    declared = envelope.content_encoding
    token = detect_encoding(declared)

    try:
        decoded = decode_body(token, envelope.body, declared)
    except UnsupportedEncoding as e:
        logger.info(f"Unknown Content-Encoding on {envelope.path}, passing through: {e}")
        return RewriteState.PASSTHROUGH
    except DecodeFailure as e:
        logger.warning(f"Decode failed on {envelope.path}, forwarding original body: {e}")
        return RewriteState.FALLBACK
    state = RewriteState.DECODED

    charset = declared_charset(envelope.headers.get("Content-Type"))
    try:
        document = parse_document(decoded, charset)
        state = RewriteState.PARSED
        apply_mutations(document, rules)
        state = RewriteState.MUTATED
        # The Content-Type header is kept, so the page goes out in the charset it names.
        rendered = render_document(document, charset or document.original_encoding or "utf-8")
        state = RewriteState.SERIALIZED
    except RewriteError as e:
        logger.warning(f"Rewrite of {envelope.path} failed after {state.value} ({type(e).__name__}): {e}")
        envelope.replace_body(decoded)
        return RewriteState.FALLBACK

    envelope.replace_body(rendered)
    logger.debug(f"Rewrote {envelope.path}: {len(decoded)} -> {len(rendered)} bytes ({token.value})")
    return RewriteState.COMMITTED
