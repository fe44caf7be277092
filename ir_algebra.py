"""
Template IR Expression Algebra

Shared by both front-ends and both back-ends:
- Canonical filter identifiers and each grammar's native spelling
- Operator precedence tiers
- Postfix fold (operator stream -> pseudo-filter pipeline)
- Loop-variable canonicalization
- Access-path serialization
"""

from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, NamedTuple, Optional, Sequence, Union

from ir_nodes import (
    FilterId, IrExpression, IrFilter, Filter, Sort, PostfixPart,
    LOOP_VAR, LOOP_REVINDEX, LOOP_REVINDEX0, EMPTY_EXPRESSION,
)


# ============================================================================
# Operators
# ============================================================================

ARITHMETIC_OPERATORS = frozenset([
    FilterId.ADD, FilterId.SUBTRACT, FilterId.MULTIPLY, FilterId.DIVIDE, FilterId.MODULO,
])

LOGICAL_OPERATORS = frozenset([FilterId.LOGICAL_AND, FilterId.LOGICAL_OR])

# Higher binds tighter
OPERATOR_PRECEDENCE: Dict[FilterId, float] = {
    FilterId.LOGICAL_OR: 1,
    FilterId.LOGICAL_AND: 2,
    FilterId.COMPARE_EQ: 3,
    FilterId.COMPARE_NE: 3,
    FilterId.COMPARE_GT: 3,
    FilterId.COMPARE_GTE: 3,
    FilterId.COMPARE_LT: 3,
    FilterId.COMPARE_LTE: 3,
    FilterId.CONTAINS: 3,
    FilterId.ADD: 4,
    FilterId.SUBTRACT: 4,
    FilterId.MULTIPLY: 5,
    FilterId.DIVIDE: 5,
    FilterId.MODULO: 5,
}

# Prefix `not` sits between `and` and the comparisons
NOT_PRECEDENCE = 2.5

# Chains of the same operator that may be regrouped freely
ASSOCIATIVE_OPERATORS = frozenset([FilterId.LOGICAL_AND, FilterId.LOGICAL_OR])


def is_operator(name: Union[FilterId, str]) -> bool:
    """True for binary operator pseudo-filters."""
    return name in OPERATOR_PRECEDENCE


def is_binary_step(ir_filter: IrFilter) -> bool:
    return isinstance(ir_filter, Filter) and is_operator(ir_filter.name)


class Rendered(NamedTuple):
    """Serialized (sub)expression plus its outermost unparenthesized operator.

    tier is None for atoms, filter applications and parenthesized text.
    """
    text: str
    tier: Optional[float] = None
    op: Optional[FilterId] = None


def parenthesize(rendered: Rendered) -> Rendered:
    return Rendered(f"({rendered.text})")


def left_needs_parens(accumulator: Rendered, tier: float) -> bool:
    """Accumulator built from a lower-precedence operator than the one applied next."""
    return accumulator.tier is not None and accumulator.tier < tier


def right_needs_parens(operand: Rendered, tier: float, op: FilterId) -> bool:
    """Right-hand operand that would otherwise re-associate to the left."""
    if operand.tier is None:
        return False
    if operand.tier < tier:
        return True
    if operand.tier == tier:
        return not (operand.op == op and op in ASSOCIATIVE_OPERATORS)
    return False


# ============================================================================
# Native spellings
# ============================================================================

LIQUID_FILTER_NAMES: Dict[FilterId, str] = {
    FilterId.ADD: "plus",
    FilterId.SUBTRACT: "minus",
    FilterId.MULTIPLY: "times",
    FilterId.DIVIDE: "divided_by",
    FilterId.MODULO: "modulo",
    FilterId.UPPERCASE: "upcase",
    FilterId.LOWERCASE: "downcase",
    FilterId.TRIM: "strip",
    FilterId.CAPITALIZE: "capitalize",
    FilterId.ESCAPE: "escape",
    FilterId.FIRST: "first",
    FilterId.LAST: "last",
    FilterId.JOIN: "join",
    FilterId.LENGTH: "size",
    FilterId.DEFAULT: "default",
    FilterId.REVERSE: "reverse",
    FilterId.ROUND: "round",
    FilterId.ABS: "abs",
    FilterId.STRIP_HTML: "strip_html",
    FilterId.URL_ENCODE: "url_encode",
    FilterId.NEWLINE_TO_BR: "newline_to_br",
    FilterId.TRUNCATE: "truncate",
    FilterId.REPLACE: "replace",
    FilterId.WHERE: "where",
    FilterId.SORT: "sort",
}

NUNJUCKS_FILTER_NAMES: Dict[FilterId, str] = {
    FilterId.UPPERCASE: "upper",
    FilterId.LOWERCASE: "lower",
    FilterId.TRIM: "trim",
    FilterId.CAPITALIZE: "capitalize",
    FilterId.ESCAPE: "escape",
    FilterId.FIRST: "first",
    FilterId.LAST: "last",
    FilterId.JOIN: "join",
    FilterId.LENGTH: "length",
    FilterId.DEFAULT: "default",
    FilterId.REVERSE: "reverse",
    FilterId.ROUND: "round",
    FilterId.ABS: "abs",
    FilterId.STRIP_HTML: "striptags",
    FilterId.URL_ENCODE: "urlencode",
    FilterId.NEWLINE_TO_BR: "nl2br",
    FilterId.TRUNCATE: "truncate",
    FilterId.REPLACE: "replace",
    FilterId.WHERE: "selectattr",
    FilterId.SORT: "sort",
}

LIQUID_OPERATOR_SYMBOLS: Dict[FilterId, str] = {
    FilterId.COMPARE_EQ: "==",
    FilterId.COMPARE_NE: "!=",
    FilterId.COMPARE_GT: ">",
    FilterId.COMPARE_GTE: ">=",
    FilterId.COMPARE_LT: "<",
    FilterId.COMPARE_LTE: "<=",
    FilterId.CONTAINS: "contains",
    FilterId.LOGICAL_AND: "and",
    FilterId.LOGICAL_OR: "or",
}

NUNJUCKS_OPERATOR_SYMBOLS: Dict[FilterId, str] = {
    FilterId.ADD: "+",
    FilterId.SUBTRACT: "-",
    FilterId.MULTIPLY: "*",
    FilterId.DIVIDE: "/",
    FilterId.MODULO: "%",
    FilterId.COMPARE_EQ: "==",
    FilterId.COMPARE_NE: "!=",
    FilterId.COMPARE_GT: ">",
    FilterId.COMPARE_GTE: ">=",
    FilterId.COMPARE_LT: "<",
    FilterId.COMPARE_LTE: "<=",
    FilterId.CONTAINS: "in",
    FilterId.LOGICAL_AND: "and",
    FilterId.LOGICAL_OR: "or",
}


def _invert(table: Dict[FilterId, str]) -> Dict[str, FilterId]:
    return {native: canonical for canonical, native in table.items()}


LIQUID_FILTERS_TO_IR = _invert(LIQUID_FILTER_NAMES)
NUNJUCKS_FILTERS_TO_IR = _invert(NUNJUCKS_FILTER_NAMES)
LIQUID_OPERATORS_TO_IR = _invert(LIQUID_OPERATOR_SYMBOLS)
LIQUID_OPERATORS_TO_IR["<>"] = FilterId.COMPARE_NE


def canonical_filter_name(name: str, table: Dict[str, FilterId]) -> Union[FilterId, str]:
    """Native filter name -> FilterId, unknown names pass through unchanged."""
    return table.get(name, name)


def native_filter_name(name: Union[FilterId, str], table: Dict[FilterId, str]) -> Optional[str]:
    """FilterId -> native name, None when the grammar has no spelling for it."""
    if isinstance(name, FilterId):
        return table.get(name)
    return name


# ============================================================================
# Postfix fold
# ============================================================================

def fold_postfix(items: Iterable,
                 is_operator_item: Callable[[object], bool],
                 operator_id: Callable[[object], FilterId],
                 convert_operand: Callable[[object], IrExpression]) -> IrExpression:
    """Fold a flattened postfix stream into one filter pipeline.

    Operands are pushed; an operator pops the right then the left operand
    (an empty expression when the left is missing) and appends itself to the
    left operand's filters with the right operand as its argument. The stack
    top is the result.
    """
    stack: List[IrExpression] = []
    for item in items:
        if is_operator_item(item):
            right = stack.pop() if stack else EMPTY_EXPRESSION
            left = stack.pop() if stack else EMPTY_EXPRESSION
            stack.append(left.with_filter(Filter(operator_id(item), (right,))))
        else:
            stack.append(convert_operand(item))
    return stack[-1] if stack else EMPTY_EXPRESSION


def append_operator(left: IrExpression, op: FilterId, right: IrExpression) -> IrExpression:
    return left.with_filter(Filter(op, (right,)))


# ============================================================================
# Loop variables
# ============================================================================

@dataclass(frozen=True)
class BuildContext:
    """Lexical scope flags a front-end threads through its walk."""
    in_loop: bool = False


LIQUID_LOOP_NAME = "forloop"
NUNJUCKS_LOOP_NAME = "loop"

LIQUID_LOOP_PROPERTIES = {"rindex": LOOP_REVINDEX, "rindex0": LOOP_REVINDEX0}
NUNJUCKS_LOOP_PROPERTIES = {"revindex": LOOP_REVINDEX, "revindex0": LOOP_REVINDEX0}


def canonicalize_loop_reference(postfix: Sequence[PostfixPart], in_loop: bool,
                                loop_name: str,
                                properties: Dict[str, str]) -> tuple:
    """Rewrite the loop magic variable to the sentinel inside a loop body only."""
    parts = list(postfix)
    if not in_loop or not parts or parts[0] != loop_name:
        return tuple(parts)
    parts[0] = LOOP_VAR
    if len(parts) > 1 and isinstance(parts[1], str) and parts[1] in properties:
        parts[1] = properties[parts[1]]
    return tuple(parts)


# ============================================================================
# Access paths
# ============================================================================

class Spelling(NamedTuple):
    """Per-grammar spellings needed to serialize an access path."""
    loop_name: str
    loop_properties: Dict[str, str]
    null: str
    blank: str


def is_quoted(part: PostfixPart) -> bool:
    return isinstance(part, str) and len(part) >= 2 and part[0] in "'\"" and part[-1] == part[0]


def render_access_path(postfix: Sequence[PostfixPart], spelling: Spelling,
                       render_subscript: Callable[[IrExpression], str]) -> str:
    """Serialize postfix as `head.prop[0]['key'][expr]`."""
    out = []
    for i, part in enumerate(postfix):
        if i == 0:
            out.append(_render_head(part, spelling))
        elif isinstance(part, IrExpression):
            out.append(f"[{render_subscript(part)}]")
        elif isinstance(part, bool):
            out.append(f"[{'true' if part else 'false'}]")
        elif isinstance(part, int):
            out.append(f"[{part}]")
        elif is_quoted(part):
            out.append(f"[{part}]")
        elif postfix[0] == LOOP_VAR and part in spelling.loop_properties:
            out.append(f".{spelling.loop_properties[part]}")
        else:
            out.append(f".{part}")
    return "".join(out)


def _render_head(part: PostfixPart, spelling: Spelling) -> str:
    if part is None:
        return spelling.null
    if part is True:
        return "true"
    if part is False:
        return "false"
    if part == "":
        return spelling.blank
    if part == LOOP_VAR:
        return spelling.loop_name
    return str(part)


# ============================================================================
# Filter inspection
# ============================================================================

def uses_named_arguments(ir_filter: IrFilter) -> bool:
    """Filters rendered with key=value arguments in call syntax."""
    if isinstance(ir_filter, Sort):
        return ir_filter.attribute is not None or ir_filter.reverse
    if isinstance(ir_filter, Filter):
        return bool(ir_filter.kwargs)
    return False


def is_true_literal(expression: Optional[IrExpression]) -> bool:
    return (expression is not None and not expression.filters
            and len(expression.postfix) == 1
            and (expression.postfix[0] is True or expression.postfix[0] == "true"))


LIQUID_SPELLING = Spelling(
    loop_name=LIQUID_LOOP_NAME,
    loop_properties={v: k for k, v in LIQUID_LOOP_PROPERTIES.items()},
    null="nil",
    blank="blank",
)

NUNJUCKS_SPELLING = Spelling(
    loop_name=NUNJUCKS_LOOP_NAME,
    loop_properties={v: k for k, v in NUNJUCKS_LOOP_PROPERTIES.items()},
    null="null",
    blank="''",
)
