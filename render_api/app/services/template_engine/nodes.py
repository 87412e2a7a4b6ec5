"""Parse-tree node types for the template minilanguage."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple, Union


@dataclass
class TextNode:
    text: str
    pos: int


@dataclass
class FieldNode:
    path: Tuple[str, ...]
    pos: int


@dataclass
class DotNode:
    pos: int


@dataclass
class VariableNode:
    name: str
    path: Tuple[str, ...]
    pos: int


@dataclass
class IdentifierNode:
    name: str
    pos: int


@dataclass
class LiteralNode:
    value: Any
    pos: int


@dataclass
class ChainNode:
    pipe: "PipeNode"
    path: Tuple[str, ...]
    pos: int


Operand = Union[
    FieldNode,
    DotNode,
    VariableNode,
    IdentifierNode,
    LiteralNode,
    ChainNode,
    "PipeNode",
]


@dataclass
class CommandNode:
    args: List[Operand]
    pos: int


@dataclass
class PipeNode:
    commands: List[CommandNode]
    pos: int
    decl: List[str] = field(default_factory=list)
    is_assign: bool = False


@dataclass
class ActionNode:
    pipe: PipeNode
    pos: int
    # Filled in by the context pass; None until then.
    context: Optional[Any] = None


@dataclass
class ListNode:
    nodes: List[Any]
    pos: int


@dataclass
class BranchNode:
    """Shared shape of ``if``, ``with`` and ``range``."""

    keyword: str
    pipe: PipeNode
    body: ListNode
    else_body: Optional[ListNode]
    pos: int


@dataclass
class BreakNode:
    pos: int


@dataclass
class ContinueNode:
    pos: int
