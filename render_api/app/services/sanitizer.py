"""
Render-context sanitization.

Walks caller-supplied JSON data and tags URL-shaped strings as
``SafeValue(URL)`` so that images, links and inline ``data:`` payloads
render inside URL attributes without each template having to wrap
them in ``safeURL``. The tag only lifts the URL-context scheme filter;
in any other context the string is escaped like plain text.

Trust boundary:
- Recognition is a case-sensitive prefix match, nothing more.
- The input tree is never mutated; a new tree is returned.
"""

from __future__ import annotations

from typing import Any, List, Tuple

from render_api.app.services.safe_values import ContentKind, SafeValue

URL_PREFIXES = ("http://", "https://", "data:", "file://")


def is_url_like(value: str) -> bool:
    return value.startswith(URL_PREFIXES)


def sanitize(data: Any) -> Any:
    """
    Return a copy of ``data`` with URL-like strings tagged for URL context.

    Mappings keep their keys (and insertion order), lists keep their
    order, every other value passes through unchanged. Already tagged
    values are left alone, so the function is idempotent.

    Nesting depth is bounded by memory only: the walk uses an explicit
    work stack instead of recursion.
    """
    root: List[Any] = [None]
    stack: List[Tuple[Any, Any, Any]] = [(data, root, 0)]

    while stack:
        node, parent, slot = stack.pop()

        if isinstance(node, dict):
            copy = {}
            for key, child in node.items():
                copy[key] = None
                stack.append((child, copy, key))
            parent[slot] = copy

        elif isinstance(node, (list, tuple)):
            items: List[Any] = [None] * len(node)
            for index, child in enumerate(node):
                stack.append((child, items, index))
            parent[slot] = items

        elif isinstance(node, str) and is_url_like(node):
            parent[slot] = SafeValue(node, ContentKind.URL)

        else:
            parent[slot] = node

    return root[0]
