"""
Nunjucks IR Builder

Walks the jinja2 syntax tree of a Nunjucks template and lowers it to IR nodes.

jinja2 nodes carry line numbers only, so a SourceScanner pre-lexes the source
into text and delimiter spans and hands them out in document order as the
walk reaches each construct. The claimed spans supply what the tree lacks:
- whitespace-control hyphens on {{- -}} / {%- -%}
- exact literal spellings ('a' vs "a", 1.50)
- the untrimmed text around trimmed delimiters
"""

import logging
import re
from dataclasses import dataclass, replace
from typing import List, Optional, Tuple

from jinja2 import Environment, nodes
from jinja2.exceptions import TemplateSyntaxError

from ir_nodes import (
    IrExpression, IrNode, IrFilter, Filter, Truncate, Replace, Where, Sort,
    FilterId, ConditionalVariant,
    Text, Output, Branch, Conditional, Loop, Assignment, Raw, Include,
)
from ir_algebra import (
    NUNJUCKS_FILTERS_TO_IR, NUNJUCKS_LOOP_NAME, NUNJUCKS_LOOP_PROPERTIES,
    BuildContext, append_operator, canonical_filter_name, canonicalize_loop_reference,
)
from nunjucks_comments import extract_comments
from errors import ParseError


logger = logging.getLogger(__name__)


# ============================================================================
# Source scanner
# ============================================================================

@dataclass
class SourceSpan:
    """A run of literal text or one {{ }} / {% %} delimiter pair."""
    kind: str
    begin: int
    end: int
    inner: str = ""
    inner_begin: int = 0
    trim_left: bool = False
    trim_right: bool = False
    keyword: str = ""


@dataclass
class Literal:
    kind: str
    begin: int
    end: int
    text: str


_OPENER = re.compile(r"\{[{%]")
_QUOTED_OR_CHAR = r"""(?:'(?:\\.|[^'\\])*'|"(?:\\.|[^"\\])*"|[^'"])*?"""
_OUTPUT = re.compile(r"\{\{(-?)(" + _QUOTED_OR_CHAR + r")(-?)\}\}", re.DOTALL)
_TAG = re.compile(r"\{%(-?)(" + _QUOTED_OR_CHAR + r")(-?)%\}", re.DOTALL)
_RAW_BLOCK = re.compile(r"\{%(-?)\s*raw\s*(-?)%\}(.*?)\{%(-?)\s*endraw\s*(-?)%\}", re.DOTALL)
# After a dot only an integer is read, as in `items.0.1`
_LITERAL = re.compile(
    r"""(?P<string>'(?:\\.|[^'\\])*'|"(?:\\.|[^"\\])*")"""
    r"""|(?<![\w.])(?P<number>\d+(?:\.\d+)?)|(?<=\.)(?P<index>\d+)"""
)

# Raw detection looks this many characters back from a text run
RAW_WINDOW = 16
_RAW_OPENING = re.compile(r"\{%(-?)\s*raw\s*(-?)%\}")


def lex_spans(source: str) -> List[SourceSpan]:
    """Split source into text and delimiter spans; raw bodies stay text."""
    spans: List[SourceSpan] = []
    pos = 0
    while pos < len(source):
        opener = _OPENER.search(source, pos)
        if opener is None:
            spans.append(SourceSpan("text", pos, len(source)))
            break
        start = opener.start()
        if start > pos:
            spans.append(SourceSpan("text", pos, start))

        raw = _RAW_BLOCK.match(source, start)
        if raw is not None:
            spans.append(SourceSpan("tag", start, raw.start(3), keyword="raw",
                                    trim_left=bool(raw.group(1)), trim_right=bool(raw.group(2))))
            if raw.end(3) > raw.start(3):
                spans.append(SourceSpan("text", raw.start(3), raw.end(3)))
            spans.append(SourceSpan("tag", raw.end(3), raw.end(), keyword="endraw",
                                    trim_left=bool(raw.group(4)), trim_right=bool(raw.group(5))))
            pos = raw.end()
            continue

        is_output = source[start + 1] == "{"
        match = (_OUTPUT if is_output else _TAG).match(source, start)
        if match is None:
            raise ParseError(f"Unclosed Nunjucks delimiter at offset {start}")
        inner = match.group(2)
        words = inner.split()
        spans.append(SourceSpan(
            "output" if is_output else "tag", start, match.end(),
            inner=inner, inner_begin=match.start(2),
            trim_left=bool(match.group(1)), trim_right=bool(match.group(3)),
            keyword="" if is_output or not words else words[0],
        ))
        pos = match.end()
    return spans


def unescape_string(text: str) -> str:
    """Value of a quoted literal, decoded the way the jinja2 lexer decodes it."""
    return text[1:-1].encode("ascii", "backslashreplace").decode("unicode-escape")


class SourceScanner:
    """Hands out source spans in document order.

    Each claimed delimiter span loads a queue of its string and number
    literals, consumed as the walk meets Const nodes.
    """

    def __init__(self, source: str):
        self.source = source
        self.spans = lex_spans(source)
        self.index = 0
        self.literals: List[Literal] = []

    def claim_output(self) -> SourceSpan:
        return self._claim(lambda span: span.kind == "output", "output")

    def claim_tag(self, *keywords: str) -> SourceSpan:
        return self._claim(lambda span: span.kind == "tag" and span.keyword in keywords,
                           "/".join(keywords))

    def _claim(self, accept, what: str) -> SourceSpan:
        for i in range(self.index, len(self.spans)):
            span = self.spans[i]
            if accept(span):
                self.index = i + 1
                self.literals = [
                    Literal("string" if m.group("string") else "number",
                            span.inner_begin + m.start(), span.inner_begin + m.end(), m.group(0))
                    for m in _LITERAL.finditer(span.inner)
                ]
                return span
        raise ParseError(f"Could not locate Nunjucks {what} in source")

    def claim_text(self, data: str) -> SourceSpan:
        """Text run holding data; jinja2 may have trimmed whitespace from either end."""
        for i in range(self.index, len(self.spans)):
            span = self.spans[i]
            if span.kind != "text":
                continue
            text = self.source[span.begin:span.end]
            if data in text and text.strip() == data.strip():
                self.index = i + 1
                return span
        raise ParseError(f"Could not locate Nunjucks text {data!r} in source")

    def raw_opening(self, span: SourceSpan):
        """Heuristic: a raw opening tag within RAW_WINDOW characters before the text.

        Text that merely follows something spelled like `{% raw %}` (for
        instance inside a string literal) is misread as raw content.
        """
        window = self.source[max(0, span.begin - RAW_WINDOW):span.begin]
        return _RAW_OPENING.search(window)

    def raw_closing(self) -> Optional[SourceSpan]:
        """The endraw tag directly after the last claimed span, if any."""
        if self.index < len(self.spans) and self.spans[self.index].keyword == "endraw":
            return self.spans[self.index]
        return None

    def pop_string(self, value: str) -> str:
        # Adjacent literals are concatenated by the parser: 'it''s' -> "its"
        joined = ""
        first = None
        while self.literals and self.literals[0].kind == "string":
            literal = self.literals.pop(0)
            first = first or literal
            joined += unescape_string(literal.text)
            if joined == value:
                return self.source[first.begin:literal.end]
        raise ParseError(f"Could not recover the spelling of string literal {value!r}")

    def pop_number(self, value) -> str:
        if not self.literals or self.literals[0].kind != "number":
            raise ParseError(f"Could not recover the spelling of number literal {value!r}")
        literal = self.literals.pop(0)
        if float(literal.text) != value:
            raise ParseError(f"Number literal {literal.text} does not match parsed value {value!r}")
        return literal.text


# ============================================================================
# Builder
# ============================================================================

BINARY_OPERATORS = {
    nodes.Add: FilterId.ADD,
    nodes.Sub: FilterId.SUBTRACT,
    nodes.Mul: FilterId.MULTIPLY,
    nodes.Div: FilterId.DIVIDE,
    nodes.Mod: FilterId.MODULO,
    nodes.And: FilterId.LOGICAL_AND,
    nodes.Or: FilterId.LOGICAL_OR,
}

COMPARE_OPERATORS = {
    "eq": FilterId.COMPARE_EQ,
    "ne": FilterId.COMPARE_NE,
    "gt": FilterId.COMPARE_GT,
    "gteq": FilterId.COMPARE_GTE,
    "lt": FilterId.COMPARE_LT,
    "lteq": FilterId.COMPARE_LTE,
}

# Statement shapes, matched on the node's field names
STATEMENT_SHAPES = (
    ("include", {"template", "ignore_missing"}),
    ("loop", {"target", "iter", "body", "else_"}),
    ("conditional", {"test", "body", "elif_", "else_"}),
    ("block_assignment", {"target", "filter", "body"}),
    ("assignment", {"target", "node"}),
    ("output", {"nodes"}),
)

NULL_NAMES = ("null",)


def classify_statement(node: nodes.Node) -> str:
    fields = set(node.fields)
    for kind, shape in STATEMENT_SHAPES:
        if shape <= fields:
            return kind
    raise ParseError(f"Unsupported Nunjucks statement: {type(node).__name__}")


def parse(source: str) -> List[IrNode]:
    """Parse Nunjucks source into IR nodes."""
    return NunjucksBuilder(source).build()


class NunjucksBuilder:
    """Converts a jinja2 template tree to IR"""

    def __init__(self, source: str):
        self.source, self.comments = extract_comments(source)
        self.scanner = SourceScanner(self.source)

    def build(self) -> List[IrNode]:
        environment = Environment(keep_trailing_newline=True)
        try:
            template = environment.parse(self.source)
        except TemplateSyntaxError as e:
            raise ParseError(f"Nunjucks syntax error on line {e.lineno}: {e.message}") from e
        return list(self.visit_body(template.body, BuildContext()))

    def visit_body(self, body, ctx: BuildContext) -> Tuple[IrNode, ...]:
        result: List[IrNode] = []
        for node in body:
            result.extend(self.visit_statement(node, ctx))
        return tuple(result)

    def visit_statement(self, node: nodes.Node, ctx: BuildContext) -> List[IrNode]:
        kind = classify_statement(node)
        if kind == "output":
            return [self.visit_output_item(item, ctx) for item in node.nodes]
        elif kind == "conditional":
            return [self.visit_if(node, ctx)]
        elif kind == "loop":
            return [self.visit_for(node, ctx)]
        elif kind == "assignment":
            return [self.visit_assign(node, ctx)]
        elif kind == "block_assignment":
            return [self.visit_assign_block(node, ctx)]
        return [self.visit_include(node, ctx)]

    # ========================================================================
    # Statements
    # ========================================================================

    def visit_output_item(self, item: nodes.Node, ctx: BuildContext) -> IrNode:
        if isinstance(item, nodes.TemplateData):
            return self.visit_template_data(item)

        span = self.scanner.claim_output()
        if isinstance(item, nodes.Name):
            swapped = self.comments.lookup(item.name)
            if swapped is not None:
                return swapped
        return Output(self.visit_expr(item, ctx), span.trim_left, span.trim_right)

    def visit_template_data(self, item: nodes.TemplateData) -> IrNode:
        span = self.scanner.claim_text(item.data)
        text = self.source[span.begin:span.end]
        opening = self.scanner.raw_opening(span)
        if opening is None:
            return Text(text)
        logger.debug("text at offset %d follows a raw tag, treating it as raw content", span.begin)
        closing = self.scanner.raw_closing()
        close_trims = (closing.trim_left, closing.trim_right) if closing else (False, False)
        return Raw(text, bool(opening.group(1)), bool(opening.group(2)), *close_trims)

    def visit_if(self, node: nodes.If, ctx: BuildContext) -> Conditional:
        span = self.scanner.claim_tag("if")
        branches = [Branch(self.visit_expr(node.test, ctx), self.visit_body(node.body, ctx), (),
                           span.trim_left, span.trim_right)]
        for elif_node in node.elif_:
            span = self.scanner.claim_tag("elif")
            branches.append(Branch(self.visit_expr(elif_node.test, ctx), self.visit_body(elif_node.body, ctx), (),
                                   span.trim_left, span.trim_right))
        span = self.scanner.claim_tag("else", "endif")
        if span.keyword == "else":
            branches.append(Branch(None, self.visit_body(node.else_, ctx), (), span.trim_left, span.trim_right))
            span = self.scanner.claim_tag("endif")

        variant = ConditionalVariant.IF
        head = branches[0].condition
        if head.filters and head.filters[-1] == Filter(FilterId.LOGICAL_NOT):
            variant = ConditionalVariant.UNLESS
            logger.debug("negated if condition read as unless")
            branches[0] = replace(branches[0], condition=IrExpression(head.postfix, head.filters[:-1]))
        return Conditional(variant, tuple(branches), span.trim_left, span.trim_right)

    def visit_for(self, node: nodes.For, ctx: BuildContext) -> Loop:
        span = self.scanner.claim_tag("for")
        if not isinstance(node.target, nodes.Name):
            raise ParseError("Nunjucks loops over several variables are not supported")
        if node.test is not None or node.recursive:
            raise ParseError("Nunjucks loop filters and recursive loops are not supported")

        collection = self.visit_expr(node.iter, ctx)
        body = self.visit_body(node.body, BuildContext(in_loop=True))
        else_children = None
        else_trims = (False, False)
        close = self.scanner.claim_tag("else", "endfor")
        if close.keyword == "else":
            else_children = self.visit_body(node.else_, ctx)
            else_trims = (close.trim_left, close.trim_right)
            close = self.scanner.claim_tag("endfor")
        return Loop(node.target.name, collection, body, else_children, span.trim_left, span.trim_right,
                    *else_trims, close.trim_left, close.trim_right)

    def visit_assign(self, node: nodes.Assign, ctx: BuildContext) -> Assignment:
        span = self.scanner.claim_tag("set")
        target = self._assign_target(node.target)
        return Assignment(target, self.visit_expr(node.node, ctx), (), span.trim_left, span.trim_right)

    def visit_assign_block(self, node: nodes.AssignBlock, ctx: BuildContext) -> Assignment:
        span = self.scanner.claim_tag("set")
        target = self._assign_target(node.target)
        if node.filter is not None:
            raise ParseError("Filtered Nunjucks block assignments are not supported")
        children = self.visit_body(node.body, ctx)
        close = self.scanner.claim_tag("endset")
        return Assignment(target, None, children, span.trim_left, span.trim_right, close.trim_left, close.trim_right)

    def _assign_target(self, target: nodes.Node) -> str:
        if not isinstance(target, nodes.Name):
            raise ParseError("Nunjucks assignments to several variables are not supported")
        return target.name

    def visit_include(self, node: nodes.Include, ctx: BuildContext) -> Include:
        span = self.scanner.claim_tag("include")
        if node.ignore_missing or not node.with_context:
            raise ParseError("Nunjucks include modifiers are not supported")
        return Include(self.visit_expr(node.template, ctx), span.trim_left, span.trim_right)

    # ========================================================================
    # Expressions
    # ========================================================================

    def visit_expr(self, node: nodes.Expr, ctx: BuildContext) -> IrExpression:
        if isinstance(node, nodes.Filter):
            return self.visit_filter_chain(node, ctx)
        elif type(node) in BINARY_OPERATORS:
            left = self.visit_expr(node.left, ctx)
            right = self.visit_expr(node.right, ctx)
            return append_operator(left, BINARY_OPERATORS[type(node)], right)
        elif isinstance(node, nodes.Not):
            return self.visit_expr(node.node, ctx).with_filter(Filter(FilterId.LOGICAL_NOT))
        elif isinstance(node, nodes.Compare):
            return self.visit_compare(node, ctx)
        return IrExpression(self.visit_path(node, ctx))

    def visit_compare(self, node: nodes.Compare, ctx: BuildContext) -> IrExpression:
        if len(node.ops) != 1:
            raise ParseError("Chained Nunjucks comparisons are not supported")
        operand = node.ops[0]
        left = self.visit_expr(node.expr, ctx)
        right = self.visit_expr(operand.expr, ctx)

        # `needle in haystack` is canonically "haystack contains needle"
        if operand.op in ("in", "notin"):
            result = append_operator(right, FilterId.CONTAINS, left)
            if operand.op == "notin":
                result = result.with_filter(Filter(FilterId.LOGICAL_NOT))
            return result
        if operand.op not in COMPARE_OPERATORS:
            raise ParseError(f"Unsupported Nunjucks comparison '{operand.op}'")
        return append_operator(left, COMPARE_OPERATORS[operand.op], right)

    def visit_path(self, node: nodes.Expr, ctx: BuildContext) -> tuple:
        """Name / Getattr / Getitem / Const chains -> postfix parts."""
        parts = self._path_parts(node, ctx)
        return canonicalize_loop_reference(parts, ctx.in_loop, NUNJUCKS_LOOP_NAME, NUNJUCKS_LOOP_PROPERTIES)

    def _path_parts(self, node: nodes.Expr, ctx: BuildContext) -> tuple:
        if isinstance(node, nodes.Name):
            return (None if node.name in NULL_NAMES else node.name,)
        elif isinstance(node, nodes.Const):
            return (self.visit_const(node),)
        elif isinstance(node, nodes.Neg) and isinstance(node.node, nodes.Const) \
                and type(node.node.value) in (int, float):
            return ("-" + self.scanner.pop_number(node.node.value),)
        elif isinstance(node, nodes.Getattr):
            return self._path_parts(node.node, ctx) + (node.attr,)
        elif isinstance(node, nodes.Getitem):
            return self._path_parts(node.node, ctx) + (self.visit_subscript(node.arg, ctx),)
        raise ParseError(f"Unsupported Nunjucks expression: {type(node).__name__}")

    def visit_subscript(self, node: nodes.Expr, ctx: BuildContext):
        if isinstance(node, nodes.Slice):
            raise ParseError("Nunjucks slices are not supported")
        if isinstance(node, nodes.Const) and type(node.value) is int:
            self.scanner.pop_number(node.value)
            return node.value
        if isinstance(node, nodes.Const) and isinstance(node.value, str):
            return self.scanner.pop_string(node.value)
        return self.visit_expr(node, ctx)

    def visit_const(self, node: nodes.Const):
        value = node.value
        if value is None or isinstance(value, bool):
            return value
        if isinstance(value, str):
            return self.scanner.pop_string(value)
        if isinstance(value, (int, float)):
            return self.scanner.pop_number(value)
        raise ParseError(f"Unsupported Nunjucks literal {value!r}")

    # ========================================================================
    # Filters
    # ========================================================================

    def visit_filter_chain(self, node: nodes.Filter, ctx: BuildContext) -> IrExpression:
        if node.node is None:
            raise ParseError("Nunjucks filter blocks are not supported")
        base = self.visit_expr(node.node, ctx)
        return base.with_filter(self.visit_filter(node, ctx))

    def visit_filter(self, node: nodes.Filter, ctx: BuildContext) -> IrFilter:
        if node.dyn_args is not None or node.dyn_kwargs is not None:
            raise ParseError(f"Dynamic arguments to Nunjucks filter '{node.name}' are not supported")
        args = [self.visit_expr(arg, ctx) for arg in node.args]
        kwargs = {kw.key: self.visit_expr(kw.value, ctx) for kw in node.kwargs}

        if node.name == "truncate":
            return self._truncate(args, kwargs)
        if node.name == "replace":
            old, new, flags = self._bind("replace", args, kwargs, ("old", "new", "count"), required=2)
            return Replace(old, new, flags)
        if node.name == "selectattr":
            attribute, value = self._bind("selectattr", args, kwargs, ("attribute", "value"), required=1)
            return Where(attribute, value)
        if node.name == "sort":
            return self._sort(args, kwargs)

        name = canonical_filter_name(node.name, NUNJUCKS_FILTERS_TO_IR)
        return Filter(name, tuple(args), tuple((kw.key, kwargs[kw.key]) for kw in node.kwargs))

    def _bind(self, name: str, args: List[IrExpression], kwargs: dict,
              params: Tuple[str, ...], required: int) -> List[Optional[IrExpression]]:
        """Positional and named arguments -> one slot per parameter, named ones win."""
        unknown = set(kwargs) - set(params)
        if unknown or len(args) > len(params):
            raise ParseError(f"Unsupported arguments to Nunjucks filter '{name}'")
        bound = [kwargs.get(param, args[i] if i < len(args) else None) for i, param in enumerate(params)]
        if any(slot is None for slot in bound[:required]):
            raise ParseError(f"Nunjucks filter '{name}' is missing arguments")
        return bound

    def _truncate(self, args, kwargs) -> Truncate:
        length, killwords, end = self._bind("truncate", args, kwargs, ("length", "killwords", "end"), required=1)
        kill_words = None if killwords is None else self._bool_literal("truncate", killwords)
        return Truncate(length, end, kill_words)

    def _sort(self, args, kwargs) -> Sort:
        reverse, case_sensitive, attribute = self._bind(
            "sort", args, kwargs, ("reverse", "case_sensitive", "attribute"), required=0)
        if case_sensitive is not None:
            raise ParseError("Case-sensitive Nunjucks sort is not supported")
        return Sort(attribute, reverse is not None and self._bool_literal("sort", reverse))

    def _bool_literal(self, name: str, expression: IrExpression) -> bool:
        if expression.filters or len(expression.postfix) != 1 or not isinstance(expression.postfix[0], bool):
            raise ParseError(f"Nunjucks filter '{name}' expects a true/false literal")
        return expression.postfix[0]
