"""Immutable node tree produced by the Markdown parser.

Children are stored as tuples so a parsed tree cannot be changed after
construction. Traversal order is source order.
"""

from dataclasses import dataclass, field
from typing import Iterator, Union


@dataclass(frozen=True)
class Text:
    """A run of literal text."""

    literal: str


@dataclass(frozen=True)
class Link:
    """An inline link; its children are the visible link text."""

    target: str
    children: tuple["Inline", ...] = ()


Inline = Union[Text, Link]


@dataclass(frozen=True)
class Heading:
    """An ATX heading with level 1 to 6."""

    level: int
    children: tuple[Inline, ...] = ()

    def __post_init__(self):
        if not 1 <= self.level <= 6:
            raise ValueError(f"Heading level must be between 1 and 6, got {self.level}")


@dataclass(frozen=True)
class Paragraph:
    children: tuple[Inline, ...] = ()


@dataclass(frozen=True)
class CodeBlock:
    """A fenced code block. The literal is never parsed as Markdown."""

    literal: str
    info: str = ""


@dataclass(frozen=True)
class ListItem:
    """A list item holding inline content and any nested lists."""

    children: tuple["Node", ...] = ()


@dataclass(frozen=True)
class List:
    ordered: bool
    items: tuple[ListItem, ...] = ()
    start: int = 1


Block = Union[Heading, Paragraph, CodeBlock, List]


@dataclass(frozen=True)
class Document:
    children: tuple[Block, ...] = field(default_factory=tuple)


Node = Union[Document, Heading, Paragraph, List, ListItem, CodeBlock, Link, Text]


def children_of(node: Node) -> tuple[Node, ...]:
    """Return the child nodes of any node, in source order."""
    if isinstance(node, List):
        return node.items
    return getattr(node, "children", ())


def walk(node: Node) -> Iterator[Node]:
    """Yield a node and all of its descendants in pre-order."""
    yield node
    for child in children_of(node):
        yield from walk(child)


def plain_text(node: Node) -> str:
    """Concatenate the literal text below a node."""
    if isinstance(node, Text):
        return node.literal
    if isinstance(node, CodeBlock):
        return node.literal
    return "".join(plain_text(child) for child in children_of(node))
