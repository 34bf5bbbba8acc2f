"""
Error kinds raised by the response-rewrite pipeline.

All of them are absorbed by `rewrite.rewrite_response`; none reaches the client.
"""


class RewriteError(Exception):
    """Base class for rewrite pipeline failures."""


class UnsupportedEncoding(RewriteError):
    """Content-Encoding is not one we can decode. The response passes through untouched."""

    def __init__(self, token: str):
        super().__init__(f"Unsupported Content-Encoding: {token!r}")
        self.token = token


class DecodeFailure(RewriteError):
    """The body could not be decompressed (corrupt or truncated stream)."""


class ParseFailure(RewriteError):
    """The decoded body could not be parsed into a document tree."""


class MissingMandatoryAnchor(RewriteError):
    """A node the mutation rules depend on (e.g. <head>) is absent."""

    def __init__(self, anchor: str):
        super().__init__(f"Document has no <{anchor}> element")
        self.anchor = anchor


class SerializeFailure(RewriteError):
    """The mutated tree could not be rendered back to bytes."""
