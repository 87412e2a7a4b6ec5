"""
Tree-walking evaluator.

Lookups are lenient: a key absent from the data (or any field chained
through a missing value) evaluates to None, which prints as the empty
string. Output is buffered and only returned once execution has
completed, so callers never see a partial render.
"""

from __future__ import annotations

from typing import Any, Dict, List, Tuple

from render_api.app.core.errors import TemplateExecError
from render_api.app.services.template_engine.escaping import escape_for_context
from render_api.app.services.template_engine.functions import TemplateFunction
from render_api.app.services.template_engine.nodes import (
    ActionNode,
    BranchNode,
    BreakNode,
    ChainNode,
    CommandNode,
    ContinueNode,
    DotNode,
    FieldNode,
    IdentifierNode,
    ListNode,
    LiteralNode,
    PipeNode,
    TextNode,
    VariableNode,
)
from render_api.app.services.template_engine.values import truthy, type_name

_NO_FINAL = object()


class _BreakLoop(Exception):
    pass


class _ContinueLoop(Exception):
    pass


def lookup_path(value: Any, path: Tuple[str, ...]) -> Any:
    for name in path:
        if value is None:
            return None
        if isinstance(value, dict):
            value = value.get(name)
        else:
            raise TemplateExecError(
                f"can't evaluate field {name} in type {type_name(value)}"
            )
    return value


def _range_items(value: Any) -> List[Tuple[Any, Any]]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(enumerate(value))
    if isinstance(value, dict):
        return [(key, value[key]) for key in sorted(value, key=str)]
    if isinstance(value, int) and not isinstance(value, bool):
        return [(i, i) for i in range(value)]
    raise TemplateExecError(f"range can't iterate over {type_name(value)}")


class Executor:
    def __init__(self, functions: Dict[str, TemplateFunction]):
        self.functions = functions
        self.out: List[str] = []
        self.variables: List[List[Any]] = []

    def execute(self, tree: ListNode, data: Any) -> str:
        self.out = []
        self.variables = [["$", data]]
        self._walk_list(tree, data)
        return "".join(self.out)

    # ------------------------------------------------------------------
    # Variables
    # ------------------------------------------------------------------

    def _push(self, name: str, value: Any) -> None:
        self.variables.append([name, value])

    def _set(self, name: str, value: Any) -> None:
        for entry in reversed(self.variables):
            if entry[0] == name:
                entry[1] = value
                return
        raise TemplateExecError(f"undefined variable: {name}")

    def _get(self, name: str) -> Any:
        for entry_name, value in reversed(self.variables):
            if entry_name == name:
                return value
        raise TemplateExecError(f"undefined variable: {name}")

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    def _walk_list(self, tree: ListNode, dot: Any) -> None:
        mark = len(self.variables)
        try:
            for node in tree.nodes:
                self._walk(node, dot)
        finally:
            del self.variables[mark:]

    def _walk(self, node, dot: Any) -> None:
        if isinstance(node, TextNode):
            self.out.append(node.text)

        elif isinstance(node, ActionNode):
            value = self._eval_pipe(node.pipe, dot)
            if not node.pipe.decl:
                self.out.append(escape_for_context(value, node.context))

        elif isinstance(node, BranchNode):
            if node.keyword == "range":
                self._walk_range(node, dot)
            else:
                self._walk_branch(node, dot)

        elif isinstance(node, BreakNode):
            raise _BreakLoop()

        elif isinstance(node, ContinueNode):
            raise _ContinueLoop()

        else:
            raise TemplateExecError(f"unknown node {type(node).__name__}")

    def _walk_branch(self, node: BranchNode, dot: Any) -> None:
        mark = len(self.variables)
        try:
            value = self._eval_pipe(node.pipe, dot)
            if truthy(value):
                self._walk_list(
                    node.body, value if node.keyword == "with" else dot
                )
            elif node.else_body is not None:
                self._walk_list(node.else_body, dot)
        finally:
            del self.variables[mark:]

    def _walk_range(self, node: BranchNode, dot: Any) -> None:
        value = self._eval_pipe(node.pipe, dot, bind=False)
        items = _range_items(value)

        if not items:
            if node.else_body is not None:
                self._walk_list(node.else_body, dot)
            return

        decl = node.pipe.decl
        for key, element in items:
            mark = len(self.variables)
            if len(decl) == 1:
                self._push(decl[0], element)
            elif len(decl) == 2:
                self._push(decl[0], key)
                self._push(decl[1], element)
            try:
                self._walk_list(node.body, element)
            except _ContinueLoop:
                continue
            except _BreakLoop:
                break
            finally:
                del self.variables[mark:]

    # ------------------------------------------------------------------
    # Pipelines
    # ------------------------------------------------------------------

    def _eval_pipe(self, pipe: PipeNode, dot: Any, bind: bool = True) -> Any:
        value: Any = _NO_FINAL
        for command in pipe.commands:
            value = self._eval_command(command, dot, value)

        if bind and pipe.decl:
            if pipe.is_assign:
                self._set(pipe.decl[0], value)
            else:
                self._push(pipe.decl[0], value)
        return value

    def _eval_command(self, command: CommandNode, dot: Any, final: Any) -> Any:
        first = command.args[0]

        if isinstance(first, IdentifierNode):
            args = [self._eval_arg(arg, dot) for arg in command.args[1:]]
            if final is not _NO_FINAL:
                args.append(final)
            return self._call(first.name, args)

        return self._eval_arg(first, dot)

    def _eval_arg(self, node, dot: Any) -> Any:
        if isinstance(node, FieldNode):
            return lookup_path(dot, node.path)
        if isinstance(node, DotNode):
            return dot
        if isinstance(node, VariableNode):
            return lookup_path(self._get(node.name), node.path)
        if isinstance(node, LiteralNode):
            return node.value
        if isinstance(node, IdentifierNode):
            return self._call(node.name, [])
        if isinstance(node, PipeNode):
            return self._eval_pipe(node, dot, bind=False)
        if isinstance(node, ChainNode):
            return lookup_path(self._eval_pipe(node.pipe, dot, bind=False), node.path)
        raise TemplateExecError(f"can't evaluate {type(node).__name__}")

    def _call(self, name: str, args: List[Any]) -> Any:
        function = self.functions[name]
        function.check_arity(name, len(args))
        try:
            return function.func(*args)
        except TemplateExecError as exc:
            raise TemplateExecError(f"error calling {name}: {exc}") from exc
        except (TypeError, ValueError, ArithmeticError) as exc:
            raise TemplateExecError(f"error calling {name}: {exc}") from exc

