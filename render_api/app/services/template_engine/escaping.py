"""
Context-specific escapers.

Each output action is escaped according to the ``HtmlContext`` the
context pass assigned to it. A ``SafeValue`` is exempt from the inner
escaper of the context it was vetted for (HTML for element text, URL
for URL attributes, CSS for style sheets and ``style=``). Attribute
quoting still applies on top, because the browser HTML-decodes
attribute values before handing them to the URL or CSS parser.

A ``SafeValue`` of any other kind is escaped as a plain string.
"""

from __future__ import annotations

import json
import re
from urllib.parse import quote

from markupsafe import escape

from render_api.app.services.safe_values import ContentKind, SafeValue
from render_api.app.services.template_engine.contexts import (
    JS_COMMENT_STATES,
    JS_STRING_STATES,
    AttrKind,
    Delim,
    HtmlContext,
    JsState,
    State,
    UrlPart,
    attr_kind,
)
from render_api.app.services.template_engine.values import stringify

# Replacement for values that cannot be made safe in their context.
FILTERED = "ZgotmplZ"

SAFE_URL_SCHEMES = frozenset({"http", "https", "mailto"})

_URL_NORMALIZE_SAFE = "!#$&*+,/:;=?@[]%-._~"
_URL_QUERY_SAFE = "-._~"

_CSS_SAFE_RE = re.compile(r"[A-Za-z0-9 #%.,_\-]")
_ATTR_NAME_RE = re.compile(r"[A-Za-z0-9_\-]+")
_SCHEME_RE = re.compile(r"^([A-Za-z][A-Za-z0-9+.\-]*):")

_UNQUOTED_EXTRA = {
    " ": "&#32;",
    "\t": "&#9;",
    "\n": "&#10;",
    "\r": "&#13;",
    "\f": "&#12;",
    "=": "&#61;",
    "`": "&#96;",
}

_JS_REPLACEMENTS = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
}

_JS_STRING_REPLACEMENTS = {
    **_JS_REPLACEMENTS,
    "\\": "\\\\",
    '"': "\\u0022",
    "'": "\\u0027",
    "`": "\\u0060",
    "$": "\\u0024",
    "/": "\\/",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
}


def _plain(value) -> str:
    return stringify(value)


def _trusted(value, kind: ContentKind) -> bool:
    return isinstance(value, SafeValue) and value.kind == kind


# ---------------------------------------------------------------------------
# Element text
# ---------------------------------------------------------------------------


def escape_html_text(value) -> str:
    if _trusted(value, ContentKind.HTML):
        return value.text
    return str(escape(_plain(value)))


# ---------------------------------------------------------------------------
# Attributes
# ---------------------------------------------------------------------------


def escape_attr(text: str, delim: Delim) -> str:
    escaped = str(escape(text))
    if delim != Delim.SPACE:
        return escaped
    if not escaped:
        return FILTERED
    return "".join(_UNQUOTED_EXTRA.get(char, char) for char in escaped)


def filter_attr_name(value) -> str:
    name = _plain(value)
    if _ATTR_NAME_RE.fullmatch(name) and attr_kind(name) == AttrKind.OTHER:
        return name
    return FILTERED


# ---------------------------------------------------------------------------
# URLs
# ---------------------------------------------------------------------------


def has_safe_scheme(url: str) -> bool:
    match = _SCHEME_RE.match(url)
    if match is None:
        return True
    return match.group(1).lower() in SAFE_URL_SCHEMES


def normalize_url(url: str) -> str:
    """Percent-encode everything outside the URL grammar; keep %XX as is."""
    return quote(url, safe=_URL_NORMALIZE_SAFE)


def escape_url(value, part: UrlPart) -> str:
    if _trusted(value, ContentKind.URL):
        return normalize_url(value.text)

    url = _plain(value)
    if part == UrlPart.START:
        if not has_safe_scheme(url):
            return "#" + FILTERED
        return normalize_url(url)
    return quote(url, safe=_URL_QUERY_SAFE)


# ---------------------------------------------------------------------------
# CSS
# ---------------------------------------------------------------------------


def escape_css(value) -> str:
    if _trusted(value, ContentKind.CSS):
        return value.text
    return "".join(
        char if _CSS_SAFE_RE.fullmatch(char) else f"\\{ord(char):x} "
        for char in _plain(value)
    )


# ---------------------------------------------------------------------------
# JavaScript
# ---------------------------------------------------------------------------


def _json_default(obj):
    if isinstance(obj, SafeValue):
        return obj.text
    return str(obj)


def escape_js(value) -> str:
    if isinstance(value, SafeValue):
        value = value.text
    encoded = json.dumps(value, default=_json_default)
    return "".join(_JS_REPLACEMENTS.get(char, char) for char in encoded)


def _js_string_char(char: str) -> str:
    if char in _JS_STRING_REPLACEMENTS:
        return _JS_STRING_REPLACEMENTS[char]
    if ord(char) < 0x20 or char in "\u2028\u2029":
        return f"\\u{ord(char):04x}"
    return char


def escape_js_string(value) -> str:
    """Escape a value for the body of a quoted or template JS literal."""
    text = value.text if isinstance(value, SafeValue) else _plain(value)
    return "".join(_js_string_char(char) for char in text)


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


def _escape_script(value, js: JsState) -> str:
    if js in JS_STRING_STATES:
        return escape_js_string(value)
    if js in JS_COMMENT_STATES:
        return ""
    return escape_js(value)


def escape_for_context(value, ctx: HtmlContext) -> str:
    state = ctx.state

    if state in (State.TEXT, State.RCDATA):
        if state == State.RCDATA:
            return str(escape(_plain(value)))
        return escape_html_text(value)

    if state == State.COMMENT:
        return ""

    if state == State.SCRIPT:
        return _escape_script(value, ctx.js)

    if state == State.STYLE:
        return escape_css(value)

    if state in (State.TAG, State.ATTR_NAME, State.AFTER_NAME):
        return filter_attr_name(value)

    # Attribute values
    if ctx.attr == AttrKind.URL:
        inner = escape_url(value, ctx.url_part)
    elif ctx.attr == AttrKind.CSS:
        inner = escape_css(value)
    elif ctx.attr == AttrKind.JS:
        inner = _escape_script(value, ctx.js)
    else:
        inner = _plain(value)
    return escape_attr(inner, ctx.delim)
