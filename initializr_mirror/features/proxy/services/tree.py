"""
Document tree parsing and the first-match search used to locate rewrite anchors.
"""

from __future__ import annotations

from typing import Callable, Optional

from bs4 import BeautifulSoup
from bs4.element import PageElement, Tag

from .errors import ParseFailure

Predicate = Callable[[PageElement], bool]


def parse_document(data: bytes, charset: Optional[str] = None) -> BeautifulSoup:
    """
    Parse a decoded HTML payload.

    `charset` is the one declared by the response headers; bs4 tries it first and only
    sniffs the bytes when it is absent or does not decode them.
    The charset actually used is left on `original_encoding`.
    """
    try:
        return BeautifulSoup(data, "html.parser", from_encoding=charset)
    except Exception as e:
        raise ParseFailure(f"Could not parse HTML ({len(data)} bytes): {e}") from e


def find_node(root: PageElement, predicate: Predicate) -> Optional[PageElement]:
    """
    Return the first node under `root` (inclusive) matching `predicate`, or None.

    Pre-order depth-first: a node is tested before its children, and a child's
    whole subtree is searched before its next sibling. So <head> is found before
    <body>, and the description meta nearest document order wins.
    An explicit stack keeps deeply nested markup from hitting the recursion limit.
    """
    stack = [root]
    while stack:
        node = stack.pop()
        if predicate(node):
            return node
        if isinstance(node, Tag) and node.contents:
            stack.extend(reversed(node.contents))
    return None


def element_named(name: str) -> Predicate:
    """Predicate matching element nodes with the given tag name."""
    name = name.lower()

    def predicate(node: PageElement) -> bool:
        return isinstance(node, Tag) and (node.name or "").lower() == name

    return predicate


def is_description_meta(node: PageElement) -> bool:
    """<meta name="description">, with key and value compared case-insensitively."""
    if not isinstance(node, Tag) or (node.name or "").lower() != "meta":
        return False
    for key, value in node.attrs.items():
        if key.lower() == "name" and isinstance(value, str) and value.lower() == "description":
            return True
    return False
