"""
Content-Encoding detection and decoding for buffered upstream bodies.
"""

from __future__ import annotations

import enum
import gzip
import zlib

import brotli

from .errors import DecodeFailure, UnsupportedEncoding


class EncodingToken(enum.Enum):
    IDENTITY = "identity"
    GZIP = "gzip"
    DEFLATE = "deflate"
    BR = "br"
    UNKNOWN = "unknown"


# Matching is case-sensitive, as upstreams send these lowercase.
_KNOWN_TOKENS = {
    "": EncodingToken.IDENTITY,
    "identity": EncodingToken.IDENTITY,
    "gzip": EncodingToken.GZIP,
    "deflate": EncodingToken.DEFLATE,
    "br": EncodingToken.BR,
}


def detect_encoding(header_value: str | None) -> EncodingToken:
    """Map a Content-Encoding header value to an EncodingToken."""
    return _KNOWN_TOKENS.get((header_value or "").strip(), EncodingToken.UNKNOWN)


def _inflate(raw: bytes, wbits: int) -> bytes:
    decompressor = zlib.decompressobj(wbits)
    data = decompressor.decompress(raw) + decompressor.flush()
    if not decompressor.eof:
        raise EOFError("deflate stream ended before the end-of-stream marker")
    return data


def _decode_deflate(raw: bytes) -> bytes:
    try:
        return _inflate(raw, -zlib.MAX_WBITS)
    except zlib.error:
        # Some servers send zlib-wrapped data under "deflate".
        return _inflate(raw, zlib.MAX_WBITS)


def decode_body(token: EncodingToken, raw: bytes, header_value: str = "") -> bytes:
    """
    Decode a fully buffered body according to its encoding token.

    Raises UnsupportedEncoding for UNKNOWN (caller must pass the response through)
    and DecodeFailure when decompression fails.
    """
    if token is EncodingToken.UNKNOWN:
        raise UnsupportedEncoding(header_value)
    if token is EncodingToken.IDENTITY:
        return raw

    try:
        if token is EncodingToken.BR:
            return brotli.decompress(raw)
        if token is EncodingToken.GZIP:
            return gzip.decompress(raw)
        return _decode_deflate(raw)
    except (brotli.error, zlib.error, OSError, EOFError) as e:
        raise DecodeFailure(f"Could not decode {token.value} body ({len(raw)} bytes): {e}") from e
