"""
Recursive-descent parser producing a ``ListNode`` tree.

Syntax is validated in full before anything is evaluated: balanced
control blocks, known keywords, known function names and declared
variables. Errors carry the line and column of the offending token.
"""

from __future__ import annotations

from typing import Collection, List, Optional, Set, Tuple

from render_api.app.core.errors import TemplateParseError
from render_api.app.services.template_engine import lexer
from render_api.app.services.template_engine.lexer import Token
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

CONTROL_KEYWORDS = ("if", "range", "with")
UNSUPPORTED_KEYWORDS = ("define", "template", "block")


def _parse_number(text: str):
    cleaned = text.replace("_", "")
    unsigned = cleaned.lstrip("+-")
    if unsigned[:2] in ("0x", "0X"):
        value = int(unsigned, 16)
        return -value if cleaned.startswith("-") else value
    if any(c in unsigned for c in ".eE"):
        return float(cleaned)
    return int(cleaned)


class Parser:
    def __init__(self, source: str, functions: Collection[str]):
        self.source = source
        self.functions = set(functions)
        self.tokens = lexer.tokenize(source)
        self.index = 0
        self.range_depth = 0
        self.scopes: List[Set[str]] = [{"$"}]

    # ------------------------------------------------------------------
    # Token helpers
    # ------------------------------------------------------------------

    def _peek(self, offset: int = 0) -> Token:
        index = min(self.index + offset, len(self.tokens) - 1)
        return self.tokens[index]

    def _next(self) -> Token:
        token = self._peek()
        self.index += 1
        return token

    def _expect(self, kind: str, context: str) -> Token:
        token = self._next()
        if token.kind != kind:
            raise self._error(
                token, f"unexpected {self._describe(token)} in {context}"
            )
        return token

    def _error(self, token: Token, message: str) -> TemplateParseError:
        line, column = lexer.position(self.source, token.pos)
        return TemplateParseError(message, line=line, column=column)

    @staticmethod
    def _describe(token: Token) -> str:
        if token.kind == lexer.EOF:
            return "EOF"
        if token.kind == lexer.ACTION_END:
            return "closing delimiter"
        return f"{token.value!r}"

    # ------------------------------------------------------------------
    # Variable scopes
    # ------------------------------------------------------------------

    def _declared(self, name: str) -> bool:
        return any(name in scope for scope in self.scopes)

    def _push_scope(self) -> None:
        self.scopes.append(set())

    def _pop_scope(self) -> None:
        self.scopes.pop()

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def parse(self) -> ListNode:
        tree, _ = self._parse_list(stop=())
        return tree

    # ------------------------------------------------------------------
    # Lists and control structures
    # ------------------------------------------------------------------

    def _parse_list(
        self, stop: Tuple[str, ...]
    ) -> Tuple[ListNode, Optional[Token]]:
        """
        Parse nodes until EOF or a ``{{end}}``/``{{else}}`` keyword.

        Returns the list and the terminating keyword token (consumed,
        together with its opening delimiter), or None at EOF.
        """
        nodes: List[object] = []
        start = self._peek().pos

        while True:
            token = self._peek()

            if token.kind == lexer.EOF:
                if stop:
                    raise self._error(token, "unexpected EOF: missing {{end}}")
                return ListNode(nodes, start), None

            if token.kind == lexer.TEXT:
                self._next()
                nodes.append(TextNode(token.value, token.pos))
                continue

            # ACTION_START
            keyword = self._peek(1)
            word = keyword.value if keyword.kind == lexer.IDENT else None

            if word in ("end", "else"):
                self._next()
                self._next()
                if word not in stop:
                    raise self._error(keyword, f"unexpected {{{{{word}}}}}")
                return ListNode(nodes, start), keyword

            if word in CONTROL_KEYWORDS:
                self._next()
                self._next()
                nodes.append(self._parse_branch(word, token.pos))
                continue

            if word in ("break", "continue"):
                self._next()
                self._next()
                if self.range_depth == 0:
                    raise self._error(
                        keyword, f"{{{{{word}}}}} outside {{{{range}}}}"
                    )
                self._expect(lexer.ACTION_END, word)
                node_type = BreakNode if word == "break" else ContinueNode
                nodes.append(node_type(token.pos))
                continue

            if word in UNSUPPORTED_KEYWORDS:
                raise self._error(keyword, f"unsupported action {word!r}")

            self._next()
            pipe = self._parse_pipe("command", lexer.ACTION_END)
            nodes.append(ActionNode(pipe, token.pos))

    def _parse_branch(self, keyword: str, pos: int) -> BranchNode:
        self._push_scope()
        pipe = self._parse_pipe(
            keyword, lexer.ACTION_END, allow_pair=(keyword == "range")
        )

        if keyword == "range":
            self.range_depth += 1
        self._push_scope()
        body, terminator = self._parse_list(stop=("end", "else"))
        self._pop_scope()
        if keyword == "range":
            self.range_depth -= 1

        else_body = None
        if terminator.value == "else":
            follow = self._peek()
            if (
                keyword != "range"
                and follow.kind == lexer.IDENT
                and follow.value == keyword
            ):
                # {{else if ...}} nests a branch that shares our {{end}}.
                self._next()
                nested = self._parse_branch(keyword, follow.pos)
                else_body = ListNode([nested], follow.pos)
            else:
                self._expect(lexer.ACTION_END, "else")
                self._push_scope()
                else_body, terminator = self._parse_list(stop=("end",))
                self._pop_scope()
                self._expect(lexer.ACTION_END, "end")
        else:
            self._expect(lexer.ACTION_END, "end")

        self._pop_scope()
        return BranchNode(keyword, pipe, body, else_body, pos)

    # ------------------------------------------------------------------
    # Pipelines
    # ------------------------------------------------------------------

    def _parse_pipe(
        self,
        context: str,
        end: str,
        allow_pair: bool = False,
    ) -> PipeNode:
        pos = self._peek().pos
        decl, is_assign = self._parse_declaration(allow_pair)

        commands: List[CommandNode] = []
        while True:
            token = self._peek()
            if token.kind == end and commands:
                self._next()
                break
            if token.kind == end:
                raise self._error(token, f"missing value for {context}")

            command = self._parse_command()
            if commands and not isinstance(command.args[0], IdentifierNode):
                raise self._error(
                    token, "non executable command in pipeline stage "
                    f"{len(commands) + 1}"
                )
            commands.append(command)

            token = self._peek()
            if token.kind == lexer.PIPE:
                self._next()
                continue
            if token.kind != end:
                raise self._error(
                    token, f"unexpected {self._describe(token)} in {context}"
                )

        if decl and not is_assign:
            self.scopes[-1].update(decl)

        return PipeNode(commands, pos, decl, is_assign)

    def _parse_declaration(self, allow_pair: bool) -> Tuple[List[str], bool]:
        first = self._peek()
        if first.kind != lexer.VARIABLE or "." in first.value:
            return [], False

        follow = self._peek(1)
        if follow.kind in (lexer.DECLARE, lexer.ASSIGN):
            self._next()
            self._next()
            if follow.kind == lexer.ASSIGN and not self._declared(first.value):
                raise self._error(first, f"undefined variable {first.value}")
            return [first.value], follow.kind == lexer.ASSIGN

        if allow_pair and follow.kind == lexer.COMMA:
            second = self._peek(2)
            operator = self._peek(3)
            if (
                second.kind == lexer.VARIABLE
                and "." not in second.value
                and operator.kind == lexer.DECLARE
            ):
                for _ in range(4):
                    self._next()
                return [first.value, second.value], False
            raise self._error(follow, "too many declarations in range")

        return [], False

    def _parse_command(self) -> CommandNode:
        pos = self._peek().pos
        args = []
        while self._peek().kind not in (
            lexer.PIPE,
            lexer.ACTION_END,
            lexer.RPAREN,
            lexer.EOF,
        ):
            args.append(self._parse_operand())

        if not args:
            raise self._error(self._peek(), "empty command")
        if len(args) > 1 and not isinstance(args[0], IdentifierNode):
            line, column = lexer.position(self.source, args[0].pos)
            raise TemplateParseError(
                "can't give argument to non-function",
                line=line,
                column=column,
            )
        return CommandNode(args, pos)

    def _parse_operand(self):
        token = self._next()
        kind = token.kind

        if kind == lexer.FIELD:
            return FieldNode(tuple(token.value.split(".")), token.pos)

        if kind == lexer.DOT:
            return DotNode(token.pos)

        if kind == lexer.VARIABLE:
            name, _, rest = token.value.partition(".")
            if not self._declared(name):
                raise self._error(token, f"undefined variable {name}")
            path = tuple(rest.split(".")) if rest else ()
            return VariableNode(name, path, token.pos)

        if kind == lexer.STRING:
            return LiteralNode(token.value, token.pos)

        if kind == lexer.NUMBER:
            try:
                return LiteralNode(_parse_number(token.value), token.pos)
            except ValueError:
                raise self._error(
                    token, f"bad number syntax: {token.value!r}"
                ) from None

        if kind == lexer.BOOL:
            return LiteralNode(token.value == "true", token.pos)

        if kind == lexer.NIL:
            return LiteralNode(None, token.pos)

        if kind == lexer.IDENT:
            if token.value not in self.functions:
                raise self._error(
                    token, f"function {token.value!r} not defined"
                )
            return IdentifierNode(token.value, token.pos)

        if kind == lexer.LPAREN:
            pipe = self._parse_pipe("parenthesized pipeline", lexer.RPAREN)
            if self._peek().kind == lexer.CHAIN:
                chain = self._next()
                return ChainNode(pipe, tuple(chain.value.split(".")), token.pos)
            return pipe

        raise self._error(token, f"unexpected {self._describe(token)} in operand")


def parse(source: str, functions: Collection[str]) -> ListNode:
    return Parser(source, functions).parse()
