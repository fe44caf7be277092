"""
Liquid Syntax Tree

Concrete syntax for Liquid templates:
- Delimiter tokenizer classifying literal text, {{ output }} and {% tag %}
- Block builder pairing if/unless/case/for/capture with their sections
- Lark grammar for expressions, flattened to postfix operand/operator streams

raw and comment bodies are never tokenized; their offsets are recorded so the
front-end can slice them from the source.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple, Union

from lark import Lark, Tree, Token as LarkToken
from lark.exceptions import LarkError

from errors import ParseError


# ============================================================================
# Tokens
# ============================================================================

class TokenKind(Enum):
    TEXT = "text"
    OUTPUT = "output"
    TAG = "tag"
    VERBATIM = "verbatim"


@dataclass
class Token:
    """One template-level token.

    inner is the text between the delimiters (without trim hyphens) and
    inner_begin its offset in the source. VERBATIM tokens are raw/comment
    tags whose body spans body_begin..body_end; the close_* trims are those
    of their end tag.
    """
    kind: TokenKind
    begin: int
    end: int
    inner: str = ""
    inner_begin: int = 0
    trim_left: bool = False
    trim_right: bool = False
    name: str = ""
    args: str = ""
    body_begin: int = 0
    body_end: int = 0
    close_trim_left: bool = False
    close_trim_right: bool = False


_OPENER = re.compile(r"\{[{%]")
_QUOTED_OR_CHAR = r"""(?:'[^']*'|"[^"]*"|[^'"])*?"""
_OUTPUT = re.compile(r"\{\{(-?)(" + _QUOTED_OR_CHAR + r")(-?)\}\}", re.DOTALL)
_TAG = re.compile(r"\{%(-?)(" + _QUOTED_OR_CHAR + r")(-?)%\}", re.DOTALL)
_TAG_NAME = re.compile(r"\s*(\S+)\s*(.*?)\s*$", re.DOTALL)
VERBATIM_TAGS = ("raw", "comment")


def _end_tag(name: str):
    return re.compile(r"\{%(-?)\s*end" + name + r"\s*(-?)%\}")


def tokenize(source: str) -> List[Token]:
    """Split source into TEXT, OUTPUT, TAG and VERBATIM tokens."""
    tokens: List[Token] = []
    pos = 0
    while pos < len(source):
        opener = _OPENER.search(source, pos)
        if opener is None:
            tokens.append(Token(TokenKind.TEXT, pos, len(source), inner=source[pos:]))
            break
        start = opener.start()
        if start > pos:
            tokens.append(Token(TokenKind.TEXT, pos, start, inner=source[pos:start]))

        is_output = source.startswith("{{", start)
        match = (_OUTPUT if is_output else _TAG).match(source, start)
        if match is None:
            raise ParseError(f"Unclosed Liquid delimiter at offset {start}")
        pos = match.end()
        if is_output:
            tokens.append(Token(
                TokenKind.OUTPUT, start, pos,
                inner=match.group(2), inner_begin=match.start(2),
                trim_left=bool(match.group(1)), trim_right=bool(match.group(3)),
            ))
            continue

        inner = match.group(2)
        name_match = _TAG_NAME.match(inner)
        if name_match is None:
            raise ParseError(f"Empty Liquid tag at offset {start}")
        token = Token(
            TokenKind.TAG, start, pos,
            inner=inner, inner_begin=match.start(2),
            trim_left=bool(match.group(1)), trim_right=bool(match.group(3)),
            name=name_match.group(1), args=name_match.group(2),
        )

        if token.name in VERBATIM_TAGS:
            closing = _end_tag(token.name).search(source, pos)
            if closing is None:
                raise ParseError(f"Liquid tag '{token.name}' was never closed")
            token.kind = TokenKind.VERBATIM
            token.body_begin = pos
            token.body_end = closing.start()
            token.end = closing.end()
            token.close_trim_left = bool(closing.group(1))
            token.close_trim_right = bool(closing.group(2))
            pos = closing.end()

        tokens.append(token)
    return tokens


# ============================================================================
# Syntax tree
# ============================================================================

@dataclass
class TextNode:
    token: Token

    @property
    def text(self) -> str:
        return self.token.inner


@dataclass
class OutputNode:
    token: Token


@dataclass
class TagNode:
    """Tag with no body of its own (assign, include, break, custom tags)."""
    token: Token


@dataclass
class VerbatimNode:
    """raw or comment; the body is sliced, never parsed."""
    token: Token
    body: str


@dataclass
class BlockSection:
    """Opening tag or intermediate tag (elsif/else/when) and what follows it."""
    token: Token
    children: List["Node"] = field(default_factory=list)


@dataclass
class BlockNode:
    name: str
    sections: List[BlockSection]
    close: Optional[Token] = None

    @property
    def token(self) -> Token:
        return self.sections[0].token


Node = Union[TextNode, OutputNode, TagNode, VerbatimNode, BlockNode]

# Block tag -> intermediate tags that open a new section
BLOCK_TAGS = {
    "if": ("elsif", "else"),
    "unless": ("elsif", "else"),
    "case": ("when", "else"),
    "for": ("else",),
    "capture": (),
}

_STRUCTURAL = frozenset(
    ["elsif", "else", "when"] + ["end" + name for name in BLOCK_TAGS]
)


def parse_template(source: str) -> List[Node]:
    """Tokenize source and pair block tags into a tree."""
    tokens = tokenize(source)
    nodes, pos, stop = _parse_nodes(tokens, 0, frozenset(), source)
    if stop is not None:
        raise ParseError(f"Unexpected Liquid tag '{stop.name}'")
    return nodes


def _parse_nodes(tokens: List[Token], pos: int, stops: frozenset,
                 source: str) -> Tuple[List[Node], int, Optional[Token]]:
    nodes: List[Node] = []
    while pos < len(tokens):
        token = tokens[pos]
        pos += 1
        if token.kind == TokenKind.TEXT:
            nodes.append(TextNode(token))
        elif token.kind == TokenKind.OUTPUT:
            nodes.append(OutputNode(token))
        elif token.kind == TokenKind.VERBATIM:
            nodes.append(VerbatimNode(token, source[token.body_begin:token.body_end]))
        elif token.name in stops:
            return nodes, pos, token
        elif token.name in _STRUCTURAL:
            raise ParseError(f"Unexpected Liquid tag '{token.name}'")
        elif token.name in BLOCK_TAGS:
            block, pos = _parse_block(tokens, pos, token, source)
            nodes.append(block)
        else:
            nodes.append(TagNode(token))
    return nodes, pos, None


def _parse_block(tokens: List[Token], pos: int, opening: Token,
                 source: str) -> Tuple[BlockNode, int]:
    end_name = "end" + opening.name
    stops = frozenset(BLOCK_TAGS[opening.name] + (end_name,))
    block = BlockNode(opening.name, [BlockSection(opening)])
    while True:
        children, pos, stop = _parse_nodes(tokens, pos, stops, source)
        block.sections[-1].children = children
        if stop is None:
            raise ParseError(f"Liquid tag '{opening.name}' was never closed")
        if stop.name == end_name:
            block.close = stop
            return block, pos
        block.sections.append(BlockSection(stop))


# ============================================================================
# Expressions
# ============================================================================

EXPRESSION_GRAMMAR = r"""
output: expression filter*
condition: expression
when_values: value (("," | OR) value)*
operand: value

expression: comparison ((AND | OR) expression)?
comparison: value ((COMPARE_OP | CONTAINS) value)?

value: primary accessor*
?primary: NAME -> variable
        | STRING -> string
        | NUMBER -> number
?accessor: "." NAME -> property
         | "[" value "]" -> subscript

filter: "|" NAME (":" filter_arg ("," filter_arg)*)?
?filter_arg: value
           | NAME ":" value -> keyword_arg

AND: "and"
OR: "or"
CONTAINS: "contains"
COMPARE_OP: "==" | "!=" | "<>" | ">=" | "<=" | ">" | "<"
STRING: /'[^']*'|"[^"]*"/
NUMBER: /-?\d+(\.\d+)?/
NAME: /[a-zA-Z_][\w-]*\??/

%import common.WS
%ignore WS
"""

_parser = Lark(
    EXPRESSION_GRAMMAR,
    start=["output", "condition", "when_values", "operand"],
    parser="lalr",
    propagate_positions=True,
)


@dataclass
class Accessor:
    """Property (str), index (int), quoted key (str with quotes) or nested operand."""
    kind: str
    value: Union[str, int, "Operand"]


@dataclass
class Operand:
    """A value with its access chain.

    kind is variable, string or number; text is the head's exact source
    spelling. begin/end are offsets of the whole value in the source.
    """
    kind: str
    text: str
    begin: int
    end: int
    accessors: List[Accessor] = field(default_factory=list)


@dataclass
class Operator:
    op: str
    begin: int
    end: int


PostfixItem = Union[Operand, Operator]


@dataclass
class FilterCall:
    name: str
    args: List[Operand] = field(default_factory=list)
    kwargs: List[Tuple[str, Operand]] = field(default_factory=list)


@dataclass
class OutputExpression:
    postfix: List[PostfixItem]
    filters: List[FilterCall]


def _parse(text: str, start: str) -> Tree:
    try:
        return _parser.parse(text, start=start)
    except LarkError as e:
        raise ParseError(f"Invalid Liquid expression {text.strip()!r}: {e}") from e


def parse_output(text: str, offset: int = 0) -> OutputExpression:
    """Parse `expression | filter: args ...`."""
    tree = _parse(text, "output")
    expression, *filters = tree.children
    return OutputExpression(
        postfix=ExpressionFlattener(text, offset).flatten(expression),
        filters=[_FilterReader(text, offset).read(f) for f in filters],
    )


def parse_condition(text: str, offset: int = 0) -> List[PostfixItem]:
    tree = _parse(text, "condition")
    return ExpressionFlattener(text, offset).flatten(tree.children[0])


def parse_when_values(text: str, offset: int = 0) -> List[Operand]:
    tree = _parse(text, "when_values")
    flattener = ExpressionFlattener(text, offset)
    return [flattener.operand(child) for child in tree.children if isinstance(child, Tree)]


def parse_operand(text: str, offset: int = 0) -> Operand:
    tree = _parse(text, "operand")
    return ExpressionFlattener(text, offset).operand(tree.children[0])


class ExpressionFlattener:
    """Turns expression trees into postfix streams: `a >= b and c` -> [a, b, >=, c, and]."""

    def __init__(self, text: str, offset: int):
        self.text = text
        self.offset = offset

    def flatten(self, tree: Tree) -> List[PostfixItem]:
        if tree.data == "expression":
            items = self.flatten(tree.children[0])
            if len(tree.children) == 3:
                op = tree.children[1]
                items.extend(self.flatten(tree.children[2]))
                items.append(self.operator(op))
            return items
        if tree.data == "comparison":
            items = [self.operand(tree.children[0])]
            if len(tree.children) == 3:
                items.append(self.operand(tree.children[2]))
                items.append(self.operator(tree.children[1]))
            return items
        raise ParseError(f"Unexpected Liquid expression node '{tree.data}'")

    def operator(self, token: LarkToken) -> Operator:
        return Operator(str(token), token.start_pos + self.offset, token.end_pos + self.offset)

    def operand(self, tree: Tree) -> Operand:
        head, *accessors = tree.children
        token = head.children[0]
        return Operand(
            kind=head.data,
            text=str(token),
            begin=tree.meta.start_pos + self.offset,
            end=tree.meta.end_pos + self.offset,
            accessors=[self.accessor(a) for a in accessors],
        )

    def accessor(self, tree: Tree) -> Accessor:
        if tree.data == "property":
            return Accessor("property", str(tree.children[0]))
        inner = self.operand(tree.children[0])
        if not inner.accessors and inner.kind == "number" and "." not in inner.text:
            return Accessor("index", int(inner.text))
        if not inner.accessors and inner.kind == "string":
            return Accessor("key", inner.text)
        return Accessor("dynamic", inner)


class _FilterReader:

    def __init__(self, text: str, offset: int):
        self.flattener = ExpressionFlattener(text, offset)

    def read(self, tree: Tree) -> FilterCall:
        name, *args = tree.children
        call = FilterCall(str(name))
        for arg in args:
            if arg.data == "keyword_arg":
                key, value = arg.children
                call.kwargs.append((str(key), self.flattener.operand(value)))
            elif call.kwargs:
                raise ParseError(f"Positional argument after keyword argument in filter '{name}'")
            else:
                call.args.append(self.flattener.operand(arg))
        return call
