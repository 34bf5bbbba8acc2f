"""
The fixed set of edits applied to the home page before it reaches the client.

IMPORTANT: rules run in a fixed order (see `apply_mutations`). Running them twice on
the same tree duplicates the inserted keywords meta and scripts.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from bs4 import BeautifulSoup, Tag

from .errors import MissingMandatoryAnchor
from .tree import element_named, find_node, is_description_meta

logger = logging.getLogger(__name__)

DEFAULT_DESCRIPTION = "快速构建你的 spring boot 应用。"
DEFAULT_KEYWORDS = "Spring Initializr, spring boot 脚手架"
DEFAULT_SCRIPT_SRC = "https://guohuihui.gitee.io/guohui-blog/spring/spring.js"
DEFAULT_ANALYTICS_SCRIPT = """
var _hmt = _hmt || [];
(function() {
  var hm = document.createElement("script");
  hm.src = "https://hm.baidu.com/hm.js?01a8b83d4f38d7c890e8dbcaa8e661d3";
  var s = document.getElementsByTagName("script")[0];
  s.parentNode.insertBefore(hm, s);
})();

"""


@dataclass(frozen=True)
class RewriteRules:
    """Immutable values the mutation rules write into the page."""

    description: str = DEFAULT_DESCRIPTION
    keywords: str = DEFAULT_KEYWORDS
    script_src: str = DEFAULT_SCRIPT_SRC
    analytics_script: str = DEFAULT_ANALYTICS_SCRIPT
    # Upstream ships its own analytics scripts at the end of <body>.
    remove_body_scripts: bool = False


def remove_body_scripts(body: Tag) -> int:
    """Detach every direct <script> child of <body>. Returns how many were removed."""
    # Collect first: extracting while walking would break the sibling chain.
    scripts = [child for child in reversed(body.contents) if isinstance(child, Tag) and child.name == "script"]
    for script in scripts:
        script.extract()
    return len(scripts)


def rewrite_description(description: Tag | None, text: str) -> bool:
    """Overwrite the description meta's content. Never creates a new meta."""
    if description is None:
        return False
    key = next((k for k in description.attrs if k.lower() == "content"), "content")
    description[key] = text
    return True


def insert_keywords(soup: BeautifulSoup, head: Tag, description: Tag | None, keywords: str) -> Tag:
    """Insert <meta name="keywords"> right before the description meta, else first in <head>."""
    meta = soup.new_tag("meta", attrs={"content": keywords, "name": "keywords"})
    if description is not None:
        description.insert_before(meta)
    else:
        head.insert(0, meta)
    return meta


def append_script_src(soup: BeautifulSoup, head: Tag, src: str) -> Tag:
    script = soup.new_tag("script", attrs={"src": src})
    head.append(script)
    return script


def append_inline_script(soup: BeautifulSoup, head: Tag, payload: str) -> Tag:
    script = soup.new_tag("script")
    script.string = payload
    head.append(script)
    return script


def apply_mutations(soup: BeautifulSoup, rules: RewriteRules) -> None:
    """
    Locate the anchors and apply every rule in order:
    script removal (optional), description rewrite, keywords insertion,
    custom script, inline analytics.

    Raises MissingMandatoryAnchor when <head> is absent, or when <body> is absent
    and script removal is enabled.
    """
    head = find_node(soup, element_named("head"))
    if head is None:
        raise MissingMandatoryAnchor("head")

    if rules.remove_body_scripts:
        body = find_node(soup, element_named("body"))
        if body is None:
            raise MissingMandatoryAnchor("body")
        removed = remove_body_scripts(body)
        logger.debug(f"Removed {removed} script(s) from <body>")

    description = find_node(head, is_description_meta)
    if not rewrite_description(description, rules.description):
        logger.debug("No description meta found; leaving <head> description untouched")

    insert_keywords(soup, head, description, rules.keywords)
    append_script_src(soup, head, rules.script_src)
    append_inline_script(soup, head, rules.analytics_script)
