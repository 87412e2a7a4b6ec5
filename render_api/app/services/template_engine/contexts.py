"""
HTML output-context tracking.

A lightweight HTML state machine is run over the literal text of a
parsed template. Every output action is annotated with the context in
which its value will land (element text, attribute value, URL, CSS,
script, comment), so that the executor can pick the right escaper.

Branches of ``if``/``with`` must leave the document in the same
context, and a ``range`` body must end where it started; otherwise the
template is rejected at parse time.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from render_api.app.core.errors import TemplateParseError
from render_api.app.services.template_engine import lexer
from render_api.app.services.template_engine.nodes import (
    ActionNode,
    BranchNode,
    ListNode,
    TextNode,
)


class State(Enum):
    TEXT = "text"
    RCDATA = "rcdata"
    TAG = "tag"
    ATTR_NAME = "attr_name"
    AFTER_NAME = "after_name"
    BEFORE_VALUE = "before_value"
    ATTR_VALUE = "attr_value"
    SCRIPT = "script"
    STYLE = "style"
    COMMENT = "comment"


class AttrKind(Enum):
    NONE = "none"
    OTHER = "other"
    URL = "url"
    CSS = "css"
    JS = "js"


class Delim(Enum):
    NONE = "none"
    DOUBLE = "double"
    SINGLE = "single"
    SPACE = "space"


class UrlPart(Enum):
    NONE = "none"
    START = "start"
    REST = "rest"


class JsState(Enum):
    """Lexical position inside script text."""

    CODE = "code"
    DQ_STRING = "dq_string"
    SQ_STRING = "sq_string"
    TEMPLATE = "template"
    LINE_COMMENT = "line_comment"
    BLOCK_COMMENT = "block_comment"


JS_STRING_STATES = frozenset(
    {JsState.DQ_STRING, JsState.SQ_STRING, JsState.TEMPLATE}
)
JS_COMMENT_STATES = frozenset({JsState.LINE_COMMENT, JsState.BLOCK_COMMENT})


@dataclass(frozen=True)
class HtmlContext:
    state: State = State.TEXT
    element: str = ""
    attr: AttrKind = AttrKind.NONE
    delim: Delim = Delim.NONE
    url_part: UrlPart = UrlPart.NONE
    attr_name: str = ""
    js: JsState = JsState.CODE


URL_ATTRIBUTES = frozenset(
    {
        "action",
        "archive",
        "background",
        "cite",
        "classid",
        "codebase",
        "data",
        "formaction",
        "href",
        "icon",
        "longdesc",
        "manifest",
        "ping",
        "poster",
        "profile",
        "src",
        "srcset",
        "usemap",
        "xmlns",
    }
)

_RAW_TEXT_ELEMENTS = {
    "script": State.SCRIPT,
    "style": State.STYLE,
    "title": State.RCDATA,
    "textarea": State.RCDATA,
}

_WHITESPACE = " \t\r\n\f"
_TAG_NAME_RE = re.compile(r"[A-Za-z][A-Za-z0-9:-]*")
_ATTR_NAME_STOP = set(_WHITESPACE) | {"=", ">", "/"}


def attr_kind(name: str) -> AttrKind:
    name = name.lower()
    if ":" in name:
        name = name.split(":", 1)[1]
    if name.startswith("data-"):
        name = name[len("data-"):]
    if name.startswith("on"):
        return AttrKind.JS
    if name == "style":
        return AttrKind.CSS
    if name in URL_ATTRIBUTES or "url" in name or "uri" in name or "src" in name:
        return AttrKind.URL
    return AttrKind.OTHER


def _enter_tag(ctx: HtmlContext) -> HtmlContext:
    return HtmlContext(State.TAG, element=ctx.element)


def _close_tag(ctx: HtmlContext) -> HtmlContext:
    state = _RAW_TEXT_ELEMENTS.get(ctx.element)
    if state is None:
        return HtmlContext(State.TEXT)
    return HtmlContext(state, element=ctx.element)


def _find_end_tag(text: str, start: int, element: str) -> int:
    """Offset of ``</element`` (case-insensitive) at or after start, or -1."""
    return text.lower().find("</" + element, start)


_JS_QUOTES = {
    '"': JsState.DQ_STRING,
    "'": JsState.SQ_STRING,
    "`": JsState.TEMPLATE,
}
_JS_CLOSERS = {state: quote for quote, state in _JS_QUOTES.items()}


def advance_js(js: JsState, text: str) -> JsState:
    """Track string literals and comments across a run of script text."""
    i = 0
    length = len(text)

    while i < length:
        char = text[i]

        if js == JsState.CODE:
            if char in _JS_QUOTES:
                js = _JS_QUOTES[char]
            elif text.startswith("//", i):
                js = JsState.LINE_COMMENT
                i += 1
            elif text.startswith("/*", i):
                js = JsState.BLOCK_COMMENT
                i += 1

        elif js in JS_STRING_STATES:
            if char == "\\":
                i += 1
            elif char == _JS_CLOSERS[js]:
                js = JsState.CODE
            elif char == "\n" and js != JsState.TEMPLATE:
                js = JsState.CODE

        elif js == JsState.LINE_COMMENT:
            if char == "\n":
                js = JsState.CODE

        elif text.startswith("*/", i):
            js = JsState.CODE
            i += 1

        i += 1

    return js


def advance(ctx: HtmlContext, text: str) -> HtmlContext:
    """Return the context reached after emitting ``text`` from ``ctx``."""
    i = 0
    length = len(text)

    while i < length:
        state = ctx.state

        if state == State.TEXT:
            lt = text.find("<", i)
            if lt < 0:
                return ctx
            if text.startswith("<!--", lt):
                ctx = HtmlContext(State.COMMENT)
                i = lt + 4
                continue
            closing = text.startswith("</", lt)
            name = _TAG_NAME_RE.match(text, lt + (2 if closing else 1))
            if name is None:
                i = lt + 1
                continue
            element = "" if closing else name.group().lower()
            ctx = HtmlContext(State.TAG, element=element)
            i = name.end()

        elif state in (State.RCDATA, State.SCRIPT, State.STYLE):
            end = _find_end_tag(text, i, ctx.element)
            if end < 0:
                if state == State.SCRIPT:
                    return replace(ctx, js=advance_js(ctx.js, text[i:]))
                return ctx
            ctx = HtmlContext(State.TAG)
            i = _TAG_NAME_RE.match(text, end + 2).end()

        elif state == State.COMMENT:
            end = text.find("-->", i)
            if end < 0:
                return ctx
            ctx = HtmlContext(State.TEXT)
            i = end + 3

        elif state == State.TAG:
            char = text[i]
            if char in _WHITESPACE or char == "/":
                i += 1
            elif char == ">":
                ctx = _close_tag(ctx)
                i += 1
            else:
                ctx = HtmlContext(State.ATTR_NAME, element=ctx.element)

        elif state == State.ATTR_NAME:
            j = i
            while j < length and text[j] not in _ATTR_NAME_STOP:
                j += 1
            name = ctx.attr_name + text[i:j]
            if j == length:
                return replace(ctx, attr_name=name, attr=attr_kind(name))
            ctx = HtmlContext(
                State.AFTER_NAME, element=ctx.element, attr=attr_kind(name)
            )
            i = j

        elif state == State.AFTER_NAME:
            char = text[i]
            if char in _WHITESPACE:
                i += 1
            elif char == "=":
                ctx = replace(ctx, state=State.BEFORE_VALUE)
                i += 1
            else:
                ctx = _enter_tag(ctx)

        elif state == State.BEFORE_VALUE:
            char = text[i]
            if char in _WHITESPACE:
                i += 1
            elif char == '"' or char == "'":
                ctx = replace(
                    ctx,
                    state=State.ATTR_VALUE,
                    delim=Delim.DOUBLE if char == '"' else Delim.SINGLE,
                    url_part=_start_part(ctx.attr),
                )
                i += 1
            elif char == ">":
                ctx = _enter_tag(ctx)
            else:
                ctx = replace(
                    ctx,
                    state=State.ATTR_VALUE,
                    delim=Delim.SPACE,
                    url_part=_start_part(ctx.attr),
                )

        elif state == State.ATTR_VALUE:
            if ctx.delim == Delim.SPACE:
                j = i
                while j < length and text[j] not in _WHITESPACE and text[j] != ">":
                    j += 1
            else:
                quote = '"' if ctx.delim == Delim.DOUBLE else "'"
                j = text.find(quote, i)
                if j < 0:
                    j = length

            if j > i and ctx.url_part == UrlPart.START:
                ctx = replace(ctx, url_part=UrlPart.REST)
            if ctx.attr == AttrKind.JS:
                ctx = replace(ctx, js=advance_js(ctx.js, text[i:j]))
            if j == length:
                return ctx

            # Quoted values consume their closing quote; unquoted values
            # leave the terminator for the tag state.
            i = j if ctx.delim == Delim.SPACE else j + 1
            ctx = _enter_tag(ctx)

    return ctx


def _start_part(kind: AttrKind) -> UrlPart:
    return UrlPart.START if kind == AttrKind.URL else UrlPart.NONE


# ---------------------------------------------------------------------------
# Action contexts
# ---------------------------------------------------------------------------


def action_context(ctx: HtmlContext) -> HtmlContext:
    """Context in which an action emitted at ``ctx`` is interpreted."""
    if ctx.state == State.BEFORE_VALUE:
        return replace(
            ctx,
            state=State.ATTR_VALUE,
            delim=Delim.SPACE,
            url_part=_start_part(ctx.attr),
        )
    return ctx


def after_action(ctx: HtmlContext) -> HtmlContext:
    """Context after an action has written (possibly non-empty) output."""
    ctx = action_context(ctx)
    if ctx.state == State.ATTR_VALUE and ctx.url_part == UrlPart.START:
        return replace(ctx, url_part=UrlPart.REST)
    if ctx.state == State.TAG:
        return replace(ctx, state=State.ATTR_NAME)
    return ctx


def join(a: HtmlContext, b: HtmlContext) -> Optional[HtmlContext]:
    """
    Merge the end contexts of two branches.

    Branches that differ only in how much of a URL has been written are
    merged pessimistically (later actions are fully query-escaped).
    """
    if a == b:
        return a
    if replace(a, url_part=UrlPart.REST) == replace(b, url_part=UrlPart.REST):
        return replace(a, url_part=UrlPart.REST)
    return None


# ---------------------------------------------------------------------------
# Tree annotation
# ---------------------------------------------------------------------------


class ContextAnnotator:
    def __init__(self, source: str):
        self.source = source

    def _error(self, pos: int, message: str) -> TemplateParseError:
        line, column = lexer.position(self.source, pos)
        return TemplateParseError(message, line=line, column=column)

    def annotate(self, tree: ListNode) -> HtmlContext:
        return self._walk_list(tree, HtmlContext())

    def _walk_list(self, tree: ListNode, ctx: HtmlContext) -> HtmlContext:
        for node in tree.nodes:
            ctx = self._walk(node, ctx)
        return ctx

    def _walk(self, node, ctx: HtmlContext) -> HtmlContext:
        if isinstance(node, TextNode):
            return advance(ctx, node.text)

        if isinstance(node, ActionNode):
            if node.pipe.decl:
                return ctx
            node.context = action_context(ctx)
            return after_action(ctx)

        if isinstance(node, BranchNode):
            body_end = self._walk_list(node.body, ctx)

            if node.keyword == "range" and join(body_end, ctx) is None:
                raise self._error(
                    node.pos,
                    "{{range}} body changes the HTML context "
                    f"({ctx.state.value} -> {body_end.state.value})",
                )

            else_end = (
                self._walk_list(node.else_body, ctx)
                if node.else_body is not None
                else ctx
            )
            merged = join(body_end, else_end)
            if merged is None:
                raise self._error(
                    node.pos,
                    f"{{{{{node.keyword}}}}} branches end in different "
                    f"HTML contexts ({body_end.state.value} vs "
                    f"{else_end.state.value})",
                )
            if node.keyword == "range":
                merged = join(merged, ctx) or merged
            return merged

        # break / continue
        return ctx
