"""
Functions callable from templates.

Besides the comparison/formatting builtins, templates get:

- ``safeURL``, ``safeHTML``, ``safeCSS``: mark a string as already
  vetted for one output context. The template author accepts the
  injection risk.
- ``add``, ``sub``, ``mul``, ``div``: integer arithmetic. ``div`` by
  zero yields 0 so that templates keep rendering when a divisor is
  missing from the data.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional
from urllib.parse import quote_plus

from render_api.app.core.errors import TemplateExecError
from render_api.app.services.safe_values import ContentKind, SafeValue, unwrap
from render_api.app.services.template_engine.values import (
    stringify,
    truthy,
    type_name,
)


@dataclass(frozen=True)
class TemplateFunction:
    func: Callable[..., Any]
    min_args: int
    max_args: Optional[int]

    def check_arity(self, name: str, count: int) -> None:
        if count < self.min_args or (
            self.max_args is not None and count > self.max_args
        ):
            if self.max_args == self.min_args:
                want = str(self.min_args)
            elif self.max_args is None:
                want = f"at least {self.min_args}"
            else:
                want = f"{self.min_args}-{self.max_args}"
            raise TemplateExecError(
                f"wrong number of args for {name}: want {want} got {count}"
            )


# ---------------------------------------------------------------------------
# Safe-value constructors
# ---------------------------------------------------------------------------


def _safe(kind: ContentKind) -> Callable[[Any], SafeValue]:
    def wrap(value: Any) -> SafeValue:
        value = unwrap(value)
        if not isinstance(value, str):
            raise TemplateExecError(
                f"wrong type for value; expected string; got {type_name(value)}"
            )
        return SafeValue(value, kind)

    return wrap


# ---------------------------------------------------------------------------
# Integer arithmetic
# ---------------------------------------------------------------------------


def _as_int(value: Any) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    raise TemplateExecError(
        f"wrong type for value; expected int; got {type_name(value)}"
    )


def add(a: Any, b: Any) -> int:
    return _as_int(a) + _as_int(b)


def sub(a: Any, b: Any) -> int:
    return _as_int(a) - _as_int(b)


def mul(a: Any, b: Any) -> int:
    return _as_int(a) * _as_int(b)


def div(a: Any, b: Any) -> int:
    """Integer division truncating toward zero; a zero divisor yields 0."""
    a, b = _as_int(a), _as_int(b)
    if b == 0:
        return 0
    quotient = abs(a) // abs(b)
    return -quotient if (a < 0) != (b < 0) else quotient


# ---------------------------------------------------------------------------
# Logic and comparison
# ---------------------------------------------------------------------------


def and_(*args: Any) -> Any:
    for arg in args:
        if not truthy(arg):
            return arg
    return args[-1]


def or_(*args: Any) -> Any:
    for arg in args:
        if truthy(arg):
            return arg
    return args[-1]


def not_(value: Any) -> bool:
    return not truthy(value)


def _kind(value: Any) -> str:
    value = unwrap(value)
    if value is None:
        return "nil"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    return "other"


def _comparable(a: Any, b: Any, ordered: bool) -> None:
    kind_a, kind_b = _kind(a), _kind(b)
    if "other" in (kind_a, kind_b):
        raise TemplateExecError(
            f"non-comparable type {type_name(a if kind_a == 'other' else b)}"
        )
    if ordered and ("nil" in (kind_a, kind_b) or "bool" in (kind_a, kind_b)):
        raise TemplateExecError(
            f"invalid type for comparison: {type_name(a)}, {type_name(b)}"
        )
    if kind_a != kind_b and "nil" not in (kind_a, kind_b):
        raise TemplateExecError(
            f"incompatible types for comparison: {type_name(a)}, {type_name(b)}"
        )


def eq(first: Any, *others: Any) -> bool:
    for other in others:
        _comparable(first, other, ordered=False)
        if unwrap(first) == unwrap(other):
            return True
    return False


def ne(a: Any, b: Any) -> bool:
    return not eq(a, b)


def lt(a: Any, b: Any) -> bool:
    _comparable(a, b, ordered=True)
    return unwrap(a) < unwrap(b)


def le(a: Any, b: Any) -> bool:
    _comparable(a, b, ordered=True)
    return unwrap(a) <= unwrap(b)


def gt(a: Any, b: Any) -> bool:
    _comparable(a, b, ordered=True)
    return unwrap(a) > unwrap(b)


def ge(a: Any, b: Any) -> bool:
    _comparable(a, b, ordered=True)
    return unwrap(a) >= unwrap(b)


# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------


def length(value: Any) -> int:
    value = unwrap(value)
    if value is None:
        return 0
    if isinstance(value, (str, list, tuple, dict)):
        return len(value)
    raise TemplateExecError(f"len of type {type_name(value)}")


def index(value: Any, *keys: Any) -> Any:
    for key in keys:
        if value is None:
            return None
        key = unwrap(key)
        if isinstance(value, dict):
            value = value.get(stringify(key))
        elif isinstance(value, (list, tuple)):
            position = _as_int(key)
            if not 0 <= position < len(value):
                raise TemplateExecError(f"index out of range: {position}")
            value = value[position]
        else:
            raise TemplateExecError(f"can't index item of type {type_name(value)}")
    return value


# ---------------------------------------------------------------------------
# Printing
# ---------------------------------------------------------------------------


def print_(*args: Any) -> str:
    """Concatenate operands, spacing them when neither side is a string."""
    out = []
    previous_is_string = True
    for position, arg in enumerate(args):
        is_string = isinstance(unwrap(arg), str)
        if position > 0 and not is_string and not previous_is_string:
            out.append(" ")
        out.append(stringify(arg))
        previous_is_string = is_string
    return "".join(out)


def println(*args: Any) -> str:
    return " ".join(stringify(arg) for arg in args) + "\n"


_VERB_RE = re.compile(r"%([-+# 0]*)(\d+)?(?:\.(\d+))?([a-zA-Z%])")


def _format_verb(verb: str, flags: str, width: str, precision: str, arg: Any) -> str:
    align = "<" if "-" in flags else ""
    sign = "+" if "+" in flags else (" " if " " in flags else "")
    zero = "0" if "0" in flags and not align else ""
    spec = f"{align}{sign}{zero}{width or ''}"
    value = unwrap(arg)

    if verb in ("v", "s"):
        text = stringify(arg)
        if precision:
            text = text[: int(precision)]
        return format(text, ("<" if "-" in flags else ">") + (width or ""))

    if verb == "q":
        return json.dumps(stringify(arg), ensure_ascii=False)

    if verb == "t":
        if not isinstance(value, bool):
            return f"%!t({type_name(value)}={stringify(arg)})"
        return "true" if value else "false"

    if verb in ("d", "x", "X", "o", "b"):
        try:
            number = _as_int(value)
        except TemplateExecError:
            return f"%!{verb}({type_name(value)}={stringify(arg)})"
        return format(number, spec + verb)

    if verb in ("f", "F", "e", "E", "g", "G"):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return f"%!{verb}({type_name(value)}={stringify(arg)})"
        if precision is None and verb in "fFeE":
            precision = "6"
        code = verb.lower() if verb == "F" else verb
        return format(
            float(value),
            spec + (f".{precision}" if precision else "") + code,
        )

    return f"%!{verb}({type_name(value)}={stringify(arg)})"


def printf(fmt: Any, *args: Any) -> str:
    fmt = unwrap(fmt)
    if not isinstance(fmt, str):
        raise TemplateExecError(
            f"wrong type for value; expected string; got {type_name(fmt)}"
        )

    remaining = list(args)
    out = []
    last = 0

    for match in _VERB_RE.finditer(fmt):
        out.append(fmt[last:match.start()])
        last = match.end()
        flags, width, precision, verb = match.groups()
        if verb == "%":
            out.append("%")
            continue
        if not remaining:
            out.append(f"%!{verb}(MISSING)")
            continue
        out.append(_format_verb(verb, flags, width, precision, remaining.pop(0)))

    out.append(fmt[last:])
    if remaining:
        extra = ", ".join(
            f"{type_name(unwrap(arg))}={stringify(arg)}" for arg in remaining
        )
        out.append(f"%!(EXTRA {extra})")
    return "".join(out)


def urlquery(*args: Any) -> str:
    return quote_plus(print_(*args))


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


FUNCTIONS: Dict[str, TemplateFunction] = {
    # Context-tagging helpers
    "safeURL": TemplateFunction(_safe(ContentKind.URL), 1, 1),
    "safeHTML": TemplateFunction(_safe(ContentKind.HTML), 1, 1),
    "safeCSS": TemplateFunction(_safe(ContentKind.CSS), 1, 1),
    # Integer arithmetic
    "add": TemplateFunction(add, 2, 2),
    "sub": TemplateFunction(sub, 2, 2),
    "mul": TemplateFunction(mul, 2, 2),
    "div": TemplateFunction(div, 2, 2),
    # Builtins
    "and": TemplateFunction(and_, 1, None),
    "or": TemplateFunction(or_, 1, None),
    "not": TemplateFunction(not_, 1, 1),
    "len": TemplateFunction(length, 1, 1),
    "index": TemplateFunction(index, 1, None),
    "eq": TemplateFunction(eq, 2, None),
    "ne": TemplateFunction(ne, 2, 2),
    "lt": TemplateFunction(lt, 2, 2),
    "le": TemplateFunction(le, 2, 2),
    "gt": TemplateFunction(gt, 2, 2),
    "ge": TemplateFunction(ge, 2, 2),
    "print": TemplateFunction(print_, 0, None),
    "printf": TemplateFunction(printf, 1, None),
    "println": TemplateFunction(println, 0, None),
    "urlquery": TemplateFunction(urlquery, 0, None),
}
