"""
The mutable response unit handed to the rewrite pipeline.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from werkzeug.datastructures import Headers


@dataclass
class ResponseEnvelope:
    """
    Upstream response after forwarding, before delivery to the client.

    `body` is the fully buffered raw upstream payload; the pipeline replaces it
    (and fixes `headers`) in place. The envelope lives for one request only.
    """

    path: str
    status: int
    headers: Headers = field(default_factory=Headers)
    body: bytes = b""

    @property
    def content_encoding(self) -> str:
        return self.headers.get("Content-Encoding", "")

    def replace_body(self, body: bytes) -> None:
        """Install a new (uncompressed) body and make the framing headers match it."""
        self.body = body
        self.headers.remove("Content-Encoding")
        self.headers["Content-Length"] = str(len(body))
