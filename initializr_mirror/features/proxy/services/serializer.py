"""
Render a mutated document tree back to bytes.
"""

from bs4 import BeautifulSoup
from bs4.dammit import EntitySubstitution
from bs4.formatter import HTMLFormatter

from .errors import SerializeFailure

# Escape only &, < and > (never non-ASCII text) and write void elements as <meta ...>.
# Script and style bodies are emitted verbatim.
HTML_FORMATTER = HTMLFormatter(
    entity_substitution=EntitySubstitution.substitute_xml,
    void_element_close_prefix=None,
)


def render_document(soup: BeautifulSoup, encoding: str = "utf-8") -> bytes:
    try:
        return soup.encode(encoding, formatter=HTML_FORMATTER)
    except Exception as e:
        raise SerializeFailure(f"Could not render document: {e}") from e
