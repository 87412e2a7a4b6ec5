"""
Content-kind tagging for pre-vetted strings.

A ``SafeValue`` is a string that somebody (the data sanitizer or a
template helper) has vouched for in exactly one output context. The
template engine exempts it from that context's escaping and treats it
as an ordinary string everywhere else.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ContentKind(str, Enum):
    URL = "url"
    HTML = "html"
    CSS = "css"


@dataclass(frozen=True)
class SafeValue:
    text: str
    kind: ContentKind

    def __str__(self) -> str:
        return self.text


def unwrap(value):
    """Return the plain string behind a ``SafeValue``; other values as-is."""
    if isinstance(value, SafeValue):
        return value.text
    return value
