"""
Nunjucks Comment Placeholders

The jinja2 lexer drops {# ... #} comments before any tree is built, so they
are swapped for `{{ __COMMENT_n__ }}` outputs ahead of parsing and kept in a
side table. The builder turns each placeholder back into a Comment.

A raw block whose body is only whitespace gets the same treatment: jinja2
emits no data node for it once the body is empty or trimmed away.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from ir_nodes import IrNode, Comment, Raw


COMMENT_PREFIX = "__COMMENT_"

# raw regions come first in the alternation so comments inside them survive untouched
_COMMENT_OR_RAW = re.compile(
    r"(?P<raw>\{%(?P<raw_left>-?)\s*raw\s*(?P<raw_right>-?)%\}(?P<body>.*?)"
    r"\{%(?P<end_left>-?)\s*endraw\s*(?P<end_right>-?)%\})"
    r"|\{#(?P<comment_left>-?)(?P<comment>.*?)(?P<comment_right>-?)#\}",
    re.DOTALL,
)


def unused_prefix(source: str) -> str:
    """COMMENT_PREFIX lengthened until no name in source can start with it."""
    prefix = COMMENT_PREFIX
    while prefix in source:
        prefix += "_"
    return prefix


@dataclass
class CommentTable:
    """Nodes taken out of the source, keyed by placeholder variable name."""
    prefix: str = COMMENT_PREFIX
    nodes: List[IrNode] = field(default_factory=list)

    def add(self, node: IrNode) -> str:
        self.nodes.append(node)
        return self.placeholder(len(self.nodes) - 1)

    def placeholder(self, index: int) -> str:
        return f"{self.prefix}{index}__"

    def lookup(self, name: str) -> Optional[IrNode]:
        """Placeholder variable name -> node, None for ordinary names."""
        match = re.fullmatch(re.escape(self.prefix) + r"(\d+)__", name)
        if match is None:
            return None
        index = int(match.group(1))
        return self.nodes[index] if index < len(self.nodes) else None


def extract_comments(source: str) -> Tuple[str, CommentTable]:
    """
    Replace comments and whitespace-only raw blocks with output placeholders.

    Returns:
        Tuple of (rewritten source, table of the swapped-out nodes)
    """
    table = CommentTable(unused_prefix(source))

    def replace(match):
        if match.group("raw") is not None:
            body = match.group("body")
            if body.strip():
                return match.group("raw")
            node = Raw(body, bool(match.group("raw_left")), bool(match.group("raw_right")),
                       bool(match.group("end_left")), bool(match.group("end_right")))
        else:
            node = Comment(match.group("comment"), trim_left=bool(match.group("comment_left")),
                           close_trim_right=bool(match.group("comment_right")))
        return "{{ " + table.add(node) + " }}"

    return _COMMENT_OR_RAW.sub(replace, source), table
