"""
Template IR Node Definitions

Language-neutral intermediate representation shared by every front-end and
back-end. Nodes are frozen dataclasses holding tuples, so a tree is immutable
once a parser has produced it.
"""

from dataclasses import dataclass
from typing import Optional, Tuple, Union
from enum import Enum


# ============================================================================
# Enums
# ============================================================================

class FilterId(Enum):
    """Canonical pseudo-filter identifiers, independent of any grammar."""
    # Arithmetic
    ADD = "__ADD__"
    SUBTRACT = "__SUBTRACT__"
    MULTIPLY = "__MULTIPLY__"
    DIVIDE = "__DIVIDE__"
    MODULO = "__MODULO__"
    # Comparison
    COMPARE_EQ = "__COMPARE_EQ__"
    COMPARE_NE = "__COMPARE_NE__"
    COMPARE_GT = "__COMPARE_GT__"
    COMPARE_GTE = "__COMPARE_GTE__"
    COMPARE_LT = "__COMPARE_LT__"
    COMPARE_LTE = "__COMPARE_LTE__"
    CONTAINS = "__CONTAINS__"
    # Logical
    LOGICAL_AND = "__LOGICAL_AND__"
    LOGICAL_OR = "__LOGICAL_OR__"
    LOGICAL_NOT = "__LOGICAL_NOT__"
    # Built-in filters
    UPPERCASE = "__UPPERCASE__"
    LOWERCASE = "__LOWERCASE__"
    TRIM = "__TRIM__"
    CAPITALIZE = "__CAPITALIZE__"
    ESCAPE = "__ESCAPE__"
    FIRST = "__FIRST__"
    LAST = "__LAST__"
    JOIN = "__JOIN__"
    LENGTH = "__LENGTH__"
    DEFAULT = "__DEFAULT__"
    REVERSE = "__REVERSE__"
    ROUND = "__ROUND__"
    ABS = "__ABS__"
    STRIP_HTML = "__STRIP_HTML__"
    URL_ENCODE = "__URL_ENCODE__"
    NEWLINE_TO_BR = "__NEWLINE_TO_BR__"
    # Filters with a specialized shape
    TRUNCATE = "__TRUNCATE__"
    REPLACE = "__REPLACE__"
    WHERE = "__WHERE__"
    SORT = "__SORT__"


class ConditionalVariant(Enum):
    IF = "if"
    UNLESS = "unless"
    CASE = "case"


# Loop-scoped magic variable and the properties whose spelling differs
LOOP_VAR = "__LOOP_VAR__"
LOOP_REVINDEX = "__REVINDEX__"
LOOP_REVINDEX0 = "__REVINDEX0__"


# ============================================================================
# Expressions
# ============================================================================

@dataclass(frozen=True)
class IrExpression:
    """A property/index access chain followed by a filter pipeline.

    postfix holds identifiers and literal spellings as str, array indices as
    int, true/false as bool, the null sentinel as None, the blank sentinel as
    "" and dynamic subscripts as nested IrExpression values.
    filters are applied left to right; binary operators appear as
    pseudo-filters whose single argument is the right-hand operand.
    """
    postfix: Tuple["PostfixPart", ...] = ()
    filters: Tuple["IrFilter", ...] = ()

    def with_filter(self, ir_filter: "IrFilter") -> "IrExpression":
        return IrExpression(self.postfix, self.filters + (ir_filter,))


PostfixPart = Union[str, int, bool, None, IrExpression]

EMPTY_EXPRESSION = IrExpression()


# ============================================================================
# Filters
# ============================================================================

@dataclass(frozen=True)
class Filter:
    """Generic filter or operator pseudo-filter."""
    name: Union[FilterId, str]
    args: Tuple[IrExpression, ...] = ()
    kwargs: Tuple[Tuple[str, IrExpression], ...] = ()


@dataclass(frozen=True)
class Truncate:
    length: IrExpression
    end: Optional[IrExpression] = None
    kill_words: Optional[bool] = None

    @property
    def name(self) -> FilterId:
        return FilterId.TRUNCATE


@dataclass(frozen=True)
class Replace:
    old: IrExpression
    new: IrExpression
    flags: Optional[IrExpression] = None

    @property
    def name(self) -> FilterId:
        return FilterId.REPLACE


@dataclass(frozen=True)
class Where:
    attribute: IrExpression
    value: Optional[IrExpression] = None

    @property
    def name(self) -> FilterId:
        return FilterId.WHERE


@dataclass(frozen=True)
class Sort:
    attribute: Optional[IrExpression] = None
    reverse: bool = False

    @property
    def name(self) -> FilterId:
        return FilterId.SORT


IrFilter = Union[Filter, Truncate, Replace, Where, Sort]


# ============================================================================
# Nodes
# ============================================================================

@dataclass(frozen=True)
class Text:
    content: str


@dataclass(frozen=True)
class Output:
    expression: IrExpression
    trim_left: bool = False
    trim_right: bool = False


@dataclass(frozen=True)
class Branch:
    """One arm of a conditional; condition None marks else/default.

    alternatives holds the extra values of a multi-value case/when arm.
    trim_left/trim_right belong to the tag that opens this arm
    (if, elsif, else, case or when).
    """
    condition: Optional[IrExpression]
    children: Tuple["IrNode", ...] = ()
    alternatives: Tuple[IrExpression, ...] = ()
    trim_left: bool = False
    trim_right: bool = False


@dataclass(frozen=True)
class Conditional:
    """if/unless/case.

    For CASE the first branch holds the subject expression; its children are
    the whitespace between the case tag and the first when, which Liquid
    never outputs. The opening tag's trims are those of the first branch.
    """
    variant: ConditionalVariant
    branches: Tuple[Branch, ...]
    close_trim_left: bool = False
    close_trim_right: bool = False

    @property
    def trim_left(self) -> bool:
        return self.branches[0].trim_left if self.branches else False

    @property
    def trim_right(self) -> bool:
        return self.branches[0].trim_right if self.branches else False


@dataclass(frozen=True)
class Loop:
    variable: str
    collection: IrExpression
    children: Tuple["IrNode", ...] = ()
    else_children: Optional[Tuple["IrNode", ...]] = None
    trim_left: bool = False
    trim_right: bool = False
    else_trim_left: bool = False
    else_trim_right: bool = False
    close_trim_left: bool = False
    close_trim_right: bool = False


@dataclass(frozen=True)
class Assignment:
    """Inline assignment, or block form when expression is None.

    The close_* trims belong to the closing tag of the block form.
    """
    target: str
    expression: Optional[IrExpression]
    children: Tuple["IrNode", ...] = ()
    trim_left: bool = False
    trim_right: bool = False
    close_trim_left: bool = False
    close_trim_right: bool = False


@dataclass(frozen=True)
class Comment:
    """Comment text.

    trim_left and close_trim_right face the surrounding text; trim_right and
    close_trim_left only trim the comment body, which never renders.
    """
    content: str
    trim_left: bool = False
    trim_right: bool = False
    close_trim_left: bool = False
    close_trim_right: bool = False


@dataclass(frozen=True)
class Raw:
    content: str
    trim_left: bool = False
    trim_right: bool = False
    close_trim_left: bool = False
    close_trim_right: bool = False


@dataclass(frozen=True)
class Include:
    template: IrExpression
    trim_left: bool = False
    trim_right: bool = False


@dataclass(frozen=True)
class Tag:
    """Opaque passthrough for tags with no dedicated node."""
    name: str
    args: str = ""
    children: Tuple["IrNode", ...] = ()
    trim_left: bool = False
    trim_right: bool = False


IrNode = Union[Text, Output, Conditional, Loop, Assignment, Comment, Raw, Include, Tag]

IR_NODE_TYPES = (Text, Output, Conditional, Loop, Assignment, Comment, Raw, Include, Tag)
