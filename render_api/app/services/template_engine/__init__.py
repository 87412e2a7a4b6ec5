"""
Context-aware HTML template engine.

Templates use ``{{ ... }}`` actions: field lookups (``{{.name}}``),
pipelines (``{{.price | printf "%.2f"}}``), variables, ``if``/``with``/
``range`` blocks, and a small function library (see ``functions``).

Rendering contract:
- Syntax is checked in full before evaluation (``TemplateParseError``).
- Runtime failures raise ``TemplateExecError``; no partial output is
  ever returned.
- Every interpolated value is escaped for the HTML context it lands in.
  ``SafeValue`` instances skip the escaper of the context they were
  vetted for, and only that one.

A parsed ``Template`` is meant for the current request only; there is
no cross-request cache.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from render_api.app.core.errors import TemplateExecError, TemplateParseError
from render_api.app.services.template_engine.contexts import ContextAnnotator
from render_api.app.services.template_engine.executor import Executor
from render_api.app.services.template_engine.functions import (
    FUNCTIONS,
    TemplateFunction,
)
from render_api.app.services.template_engine.nodes import ListNode
from render_api.app.services.template_engine.parser import Parser

logger = logging.getLogger("render_api.template_engine")


class Template:
    """A parsed, context-annotated template."""

    def __init__(
        self,
        tree: ListNode,
        functions: Dict[str, TemplateFunction],
        name: str = "template",
    ):
        self.tree = tree
        self.functions = functions
        self.name = name

    @classmethod
    def parse(
        cls,
        source: str,
        *,
        name: str = "template",
        functions: Optional[Dict[str, TemplateFunction]] = None,
    ) -> "Template":
        functions = FUNCTIONS if functions is None else functions
        try:
            tree = Parser(source, functions).parse()
            ContextAnnotator(source).annotate(tree)
        except RecursionError:
            raise TemplateParseError("template nesting too deep") from None
        return cls(tree, functions, name)

    def execute(self, data: Any) -> str:
        try:
            return Executor(self.functions).execute(self.tree, data)
        except RecursionError:
            raise TemplateExecError("template nesting too deep") from None


def render(source: str, data: Any, *, name: str = "template") -> str:
    """Parse ``source`` and execute it against ``data``."""
    template = Template.parse(source, name=name)
    html = template.execute(data)
    logger.debug(
        "template_rendered",
        extra={"template_name": name, "output_chars": len(html)},
    )
    return html


__all__ = [
    "Template",
    "TemplateExecError",
    "TemplateParseError",
    "render",
]
