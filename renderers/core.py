"""
Shared renderer machinery.

TemplateRenderer dispatches on IR node kind; each grammar subclass supplies
the per-node markup and its expression serializer.
"""

import re
from typing import Iterable

from ir_nodes import (
    IrNode, Text, Output, Conditional, Loop, Assignment, Comment, Raw, Include, Tag,
)
from errors import RenderError


_END_RAW = re.compile(r"\{%-?\s*endraw\s*-?%\}")


def tag_markup(body: str, trim_left: bool = False, trim_right: bool = False) -> str:
    """`{% body %}` with whitespace-control hyphens as requested."""
    left = "{%-" if trim_left else "{%"
    right = "-%}" if trim_right else "%}"
    return f"{left} {body} {right}"


def output_markup(body: str, trim_left: bool = False, trim_right: bool = False) -> str:
    left = "{{-" if trim_left else "{{"
    right = "-}}" if trim_right else "}}"
    return f"{left} {body} {right}"


class TemplateRenderer:
    """Recursive-descent IR renderer"""

    language = ""

    def render(self, nodes: Iterable[IrNode]) -> str:
        return "".join(self.render_node(node) for node in nodes)

    def render_node(self, node: IrNode) -> str:
        if isinstance(node, Text):
            return node.content
        elif isinstance(node, Output):
            return self.render_output(node)
        elif isinstance(node, Conditional):
            return self.render_conditional(node)
        elif isinstance(node, Loop):
            return self.render_loop(node)
        elif isinstance(node, Assignment):
            return self.render_assignment(node)
        elif isinstance(node, Comment):
            return self.render_comment(node)
        elif isinstance(node, Raw):
            return self.render_raw(node)
        elif isinstance(node, Include):
            return self.render_include(node)
        elif isinstance(node, Tag):
            return self.render_tag(node)
        raise RenderError(f"Unsupported IR node type: {type(node).__name__}")

    def render_raw(self, node: Raw) -> str:
        if _END_RAW.search(node.content):
            raise RenderError(f"{self.language} raw content cannot contain an 'endraw' tag")
        return (tag_markup("raw", node.trim_left, node.trim_right) + node.content
                + tag_markup("endraw", node.close_trim_left, node.close_trim_right))

    def render_loop_tags(self, node: Loop, collection: str) -> str:
        """for/else/endfor, identical in both grammars apart from the collection."""
        out = tag_markup(f"for {node.variable} in {collection}", node.trim_left, node.trim_right)
        out += self.render(node.children)
        if node.else_children is not None:
            out += tag_markup("else", node.else_trim_left, node.else_trim_right) + self.render(node.else_children)
        return out + tag_markup("endfor", node.close_trim_left, node.close_trim_right)

    def render_output(self, node: Output) -> str:
        raise NotImplementedError

    def render_conditional(self, node: Conditional) -> str:
        raise NotImplementedError

    def render_loop(self, node: Loop) -> str:
        raise NotImplementedError

    def render_assignment(self, node: Assignment) -> str:
        raise NotImplementedError

    def render_comment(self, node: Comment) -> str:
        raise NotImplementedError

    def render_include(self, node: Include) -> str:
        raise NotImplementedError

    def render_tag(self, node: Tag) -> str:
        raise NotImplementedError
