"""
Static text loader for the locally served endpoints.
"""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any

from flask import current_app


def _get_nested(d: dict[str, Any], dotted_key: str) -> Any:
    cur: Any = d
    for part in dotted_key.split("."):
        if not isinstance(cur, dict) or part not in cur:
            return None
        cur = cur[part]
    return cur


@lru_cache(maxsize=4)
def _load_content(root_path: str, name: str) -> dict[str, Any]:
    path = Path(root_path) / "content" / f"{name}.json"
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return data if isinstance(data, dict) else {}
    except (OSError, ValueError):
        return {}


def t(key: str, default: str | None = None, name: str = "site") -> str:
    """
    Look up a text key from <package>/content/<name>.json.

    - key: dotted key (e.g. "about.body")
    - Missing or non-string values yield `default` (or the key itself).
    """
    value = _get_nested(_load_content(current_app.root_path, name), key)
    if not isinstance(value, str):
        return default if default is not None else key
    return value
