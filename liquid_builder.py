"""
Liquid IR Builder

Walks the Liquid syntax tree and lowers it to IR nodes.
"""

import logging
import re
from typing import List, Optional, Tuple

import liquid_syntax
from liquid_syntax import (
    TextNode, OutputNode, TagNode, VerbatimNode, BlockNode, BlockSection,
    Operand, Operator, FilterCall, PostfixItem,
)
from ir_nodes import (
    IrExpression, IrNode, IrFilter, Filter, Truncate, Replace, Where, Sort,
    FilterId, ConditionalVariant,
    Text, Output, Branch, Conditional, Loop, Assignment, Comment, Raw, Include, Tag,
)
from ir_algebra import (
    LIQUID_FILTERS_TO_IR, LIQUID_OPERATORS_TO_IR, LIQUID_LOOP_NAME, LIQUID_LOOP_PROPERTIES,
    BuildContext, canonical_filter_name, canonicalize_loop_reference, fold_postfix,
)
from errors import ParseError


logger = logging.getLogger(__name__)

_LOOP_PARAMETERS = re.compile(r"\b(limit|offset)\s*:|\breversed\b")
_IDENTIFIER = re.compile(r"^[a-zA-Z_][\w-]*$")


def parse(source: str) -> List[IrNode]:
    """Parse Liquid source into IR nodes."""
    return LiquidBuilder(source).build()


class LiquidBuilder:
    """Converts a Liquid syntax tree to IR"""

    def __init__(self, source: str):
        self.source = source

    def build(self) -> List[IrNode]:
        tree = liquid_syntax.parse_template(self.source)
        return list(self.visit_nodes(tree, BuildContext()))

    def visit_nodes(self, nodes, ctx: BuildContext) -> Tuple[IrNode, ...]:
        return tuple(self.visit(node, ctx) for node in nodes)

    def visit(self, node, ctx: BuildContext) -> IrNode:
        if isinstance(node, TextNode):
            return Text(node.text)
        elif isinstance(node, OutputNode):
            return self.visit_output(node, ctx)
        elif isinstance(node, BlockNode):
            return self.visit_block(node, ctx)
        elif isinstance(node, VerbatimNode):
            return self.visit_verbatim(node)
        elif isinstance(node, TagNode):
            return self.visit_tag(node, ctx)
        raise ParseError(f"Unsupported Liquid token kind: {type(node).__name__}")

    # ========================================================================
    # Outputs and expressions
    # ========================================================================

    def visit_output(self, node: OutputNode, ctx: BuildContext) -> Output:
        token = node.token
        parsed = liquid_syntax.parse_output(token.inner, token.inner_begin)
        expression = self.fold(parsed.postfix, ctx)
        for call in parsed.filters:
            expression = expression.with_filter(self.visit_filter(call, ctx))
        return Output(expression, token.trim_left, token.trim_right)

    def fold(self, items: List[PostfixItem], ctx: BuildContext) -> IrExpression:
        return fold_postfix(
            items,
            lambda item: isinstance(item, Operator),
            self._operator_id,
            lambda operand: self.visit_operand(operand, ctx),
        )

    def _operator_id(self, item: Operator) -> FilterId:
        if item.op not in LIQUID_OPERATORS_TO_IR:
            raise ParseError(f"Unsupported Liquid operator '{item.op}'")
        return LIQUID_OPERATORS_TO_IR[item.op]

    def visit_operand(self, operand: Operand, ctx: BuildContext) -> IrExpression:
        parts = [self._head(operand)]
        for accessor in operand.accessors:
            if accessor.kind == "dynamic":
                parts.append(self.visit_operand(accessor.value, ctx))
            else:
                parts.append(accessor.value)
        if operand.kind == "variable":
            parts = canonicalize_loop_reference(parts, ctx.in_loop, LIQUID_LOOP_NAME, LIQUID_LOOP_PROPERTIES)
        return IrExpression(tuple(parts))

    def _head(self, operand: Operand):
        # String and number spellings are the exact source slice
        if operand.kind != "variable":
            return operand.text
        if operand.text in ("nil", "null"):
            return None
        if operand.text == "blank":
            return ""
        if operand.text == "true":
            return True
        if operand.text == "false":
            return False
        return operand.text

    def visit_filter(self, call: FilterCall, ctx: BuildContext) -> IrFilter:
        args = [self.visit_operand(a, ctx) for a in call.args]
        kwargs = tuple((key, self.visit_operand(value, ctx)) for key, value in call.kwargs)

        if call.name == "truncate":
            self._expect_args(call, 1, 2)
            return Truncate(args[0], args[1] if len(args) > 1 else None)
        if call.name == "replace":
            self._expect_args(call, 2, 2)
            return Replace(args[0], args[1])
        if call.name == "where":
            self._expect_args(call, 1, 2)
            return Where(args[0], args[1] if len(args) > 1 else None)
        if call.name == "sort":
            self._expect_args(call, 0, 1)
            return Sort(args[0] if args else None)

        return Filter(canonical_filter_name(call.name, LIQUID_FILTERS_TO_IR), tuple(args), kwargs)

    def _expect_args(self, call: FilterCall, low: int, high: int):
        if call.kwargs:
            raise ParseError(f"Liquid filter '{call.name}' takes no keyword arguments")
        if not low <= len(call.args) <= high:
            raise ParseError(f"Liquid filter '{call.name}' takes {low} to {high} arguments, got {len(call.args)}")

    def parse_fragment(self, text: str, ctx: BuildContext) -> IrExpression:
        """Re-enter the builder on a synthesized `{{ text }}` fragment."""
        fragment = "{{ " + text + " }}"
        nodes = self.visit_nodes(liquid_syntax.parse_template(fragment), ctx)
        if len(nodes) != 1 or not isinstance(nodes[0], Output):
            raise ParseError(f"Invalid Liquid expression {text!r}")
        return nodes[0].expression

    def condition(self, section: BlockSection, ctx: BuildContext) -> IrExpression:
        token = section.token
        offset = token.inner_begin + token.inner.find(token.args)
        return self.fold(liquid_syntax.parse_condition(token.args, offset), ctx)

    # ========================================================================
    # Blocks
    # ========================================================================

    def visit_block(self, node: BlockNode, ctx: BuildContext) -> IrNode:
        if node.name in ("if", "unless"):
            return self.visit_if(node, ctx)
        elif node.name == "case":
            return self.visit_case(node, ctx)
        elif node.name == "for":
            return self.visit_for(node, ctx)
        elif node.name == "capture":
            return self.visit_capture(node, ctx)
        raise ParseError(f"Unsupported Liquid block '{node.name}'")

    def visit_if(self, node: BlockNode, ctx: BuildContext) -> Conditional:
        branches = []
        for section in node.sections:
            token = section.token
            condition = None if token.name == "else" else self.condition(section, ctx)
            branches.append(Branch(condition, self.visit_nodes(section.children, ctx), (),
                                   token.trim_left, token.trim_right))
        variant = ConditionalVariant.UNLESS if node.name == "unless" else ConditionalVariant.IF
        return Conditional(variant, tuple(branches), node.close.trim_left, node.close.trim_right)

    def visit_case(self, node: BlockNode, ctx: BuildContext) -> Conditional:
        head, *arms = node.sections
        for child in head.children:
            if not (isinstance(child, TextNode) and not child.text.strip()):
                raise ParseError("Liquid 'case' may only contain 'when' and 'else' sections")

        # whitespace before the first when is kept on the subject branch
        branches = [Branch(self.condition(head, ctx), self.visit_nodes(head.children, ctx), (),
                           head.token.trim_left, head.token.trim_right)]
        for section in arms:
            token = section.token
            children = self.visit_nodes(section.children, ctx)
            if token.name == "else":
                branches.append(Branch(None, children, (), token.trim_left, token.trim_right))
                continue
            values = [self.visit_operand(v, ctx) for v in liquid_syntax.parse_when_values(token.args)]
            branches.append(Branch(values[0], children, tuple(values[1:]), token.trim_left, token.trim_right))
        return Conditional(ConditionalVariant.CASE, tuple(branches), node.close.trim_left, node.close.trim_right)

    def visit_for(self, node: BlockNode, ctx: BuildContext) -> Loop:
        token = node.token
        variable, separator, remainder = token.args.partition(" in ")
        variable = variable.strip()
        if not separator or not _IDENTIFIER.match(variable):
            raise ParseError(f"Invalid Liquid loop '{token.args}'")
        if _LOOP_PARAMETERS.search(remainder):
            raise ParseError(f"Liquid loop parameters are not supported: '{remainder.strip()}'")

        collection = self.parse_fragment(remainder.strip(), ctx)
        body = self.visit_nodes(node.sections[0].children, BuildContext(in_loop=True))
        else_children = None
        else_trims = (False, False)
        if len(node.sections) > 1:
            else_section = node.sections[1]
            else_children = self.visit_nodes(else_section.children, ctx)
            else_trims = (else_section.token.trim_left, else_section.token.trim_right)
        return Loop(variable, collection, body, else_children, token.trim_left, token.trim_right,
                    *else_trims, node.close.trim_left, node.close.trim_right)

    def visit_capture(self, node: BlockNode, ctx: BuildContext) -> Assignment:
        token = node.token
        target = token.args.strip()
        if not _IDENTIFIER.match(target):
            raise ParseError(f"Invalid Liquid capture target '{target}'")
        children = self.visit_nodes(node.sections[0].children, ctx)
        return Assignment(target, None, children, token.trim_left, token.trim_right,
                          node.close.trim_left, node.close.trim_right)

    # ========================================================================
    # Leaf tags
    # ========================================================================

    def visit_verbatim(self, node: VerbatimNode) -> IrNode:
        token = node.token
        node_type = Raw if token.name == "raw" else Comment
        return node_type(node.body, token.trim_left, token.trim_right,
                         token.close_trim_left, token.close_trim_right)

    def visit_tag(self, node: TagNode, ctx: BuildContext) -> IrNode:
        token = node.token
        if token.name == "assign":
            return self.visit_assign(node, ctx)
        if token.name == "include":
            template = self._include_template(token.args, ctx)
            if template is not None:
                return Include(template, token.trim_left, token.trim_right)
        logger.debug("passing Liquid tag '%s' through as a generic tag", token.name)
        return Tag(token.name, token.args, (), token.trim_left, token.trim_right)

    def visit_assign(self, node: TagNode, ctx: BuildContext) -> Assignment:
        token = node.token
        target, separator, expression = token.args.partition("=")
        target = target.strip()
        if not separator or not _IDENTIFIER.match(target):
            raise ParseError(f"Invalid Liquid assignment '{token.args}'")
        return Assignment(target, self.parse_fragment(expression.strip(), ctx),
                          (), token.trim_left, token.trim_right)

    def _include_template(self, args: str, ctx: BuildContext) -> Optional[IrExpression]:
        """Single-value includes map to Include; anything with parameters stays a Tag."""
        try:
            operand = liquid_syntax.parse_operand(args)
        except ParseError:
            logger.debug("include with parameters kept as a generic tag: %s", args)
            return None
        return self.visit_operand(operand, ctx)
