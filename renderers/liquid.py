"""
Liquid renderer.

Liquid has no parentheses and no `not`; its and/or share one precedence and
group to the right, and arithmetic exists only as filters. IR whose
evaluation order cannot be spelled under those rules raises RenderError.
"""

import logging
from dataclasses import replace

from ir_nodes import (
    IrExpression, IrFilter, Filter, Truncate, Replace, Where, Sort, FilterId,
    ConditionalVariant, Output, Conditional, Loop, Assignment, Comment, Include, Tag,
)
from ir_algebra import (
    ARITHMETIC_OPERATORS, LOGICAL_OPERATORS, LIQUID_FILTER_NAMES, LIQUID_OPERATOR_SYMBOLS,
    LIQUID_SPELLING, OPERATOR_PRECEDENCE, Rendered,
    is_binary_step, native_filter_name, render_access_path,
)
from errors import RenderError
from renderers.core import TemplateRenderer, tag_markup, output_markup


logger = logging.getLogger(__name__)


class LiquidRenderer(TemplateRenderer):
    """Renders IR nodes as Liquid source"""

    language = "Liquid"

    # ========================================================================
    # Expressions
    # ========================================================================

    def render_expression(self, expression: IrExpression, allow_filters: bool = True) -> str:
        """Serialize an expression; tag conditions pass allow_filters=False."""
        return self.expression(expression, allow_filters).text

    def expression(self, expression: IrExpression, allow_filters: bool = True) -> Rendered:
        acc = Rendered(self.value(expression.postfix))
        filtered = False
        for ir_filter in expression.filters:
            if ir_filter.name == FilterId.LOGICAL_NOT:
                raise RenderError("Liquid has no 'not' operator")
            if is_binary_step(ir_filter) and ir_filter.name not in ARITHMETIC_OPERATORS:
                if filtered:
                    raise RenderError(
                        f"Liquid cannot apply '{LIQUID_OPERATOR_SYMBOLS[ir_filter.name]}' to a filtered value")
                acc = self.infix(acc, ir_filter)
                continue
            if not allow_filters:
                raise RenderError(f"Liquid tag conditions cannot use the '{self.filter_name(ir_filter)}' filter")
            acc = Rendered(f"{acc.text} | {self.render_filter(ir_filter)}", acc.tier, acc.op)
            filtered = True
        return acc

    def infix(self, acc: Rendered, ir_filter: Filter) -> Rendered:
        op = ir_filter.name
        symbol = LIQUID_OPERATOR_SYMBOLS[op]
        tier = OPERATOR_PRECEDENCE[op]
        arg = ir_filter.args[0] if ir_filter.args else IrExpression()

        if op in LOGICAL_OPERATORS:
            # and/or group to the right, so only a chain of the same operator may sit on the left
            if acc.tier is not None and acc.tier < 3 and acc.op != op:
                raise RenderError(f"Liquid cannot group a logical chain before '{symbol}' without parentheses")
            right = self.expression(arg, allow_filters=False)
            mixed = right.tier is not None and right.tier < 3 and right.op != op
            return Rendered(f"{acc.text} {symbol} {right.text}", tier, None if mixed else op)

        if acc.tier is not None:
            raise RenderError(f"Liquid cannot apply '{symbol}' to a compound expression without parentheses")
        return Rendered(f"{acc.text} {symbol} {self.plain_value(arg, symbol)}", tier, op)

    def value(self, postfix) -> str:
        return render_access_path(postfix, LIQUID_SPELLING, self._subscript)

    def _subscript(self, expression: IrExpression) -> str:
        return self.plain_value(expression, "[]")

    def plain_value(self, expression: IrExpression, context: str) -> str:
        """Liquid operands and filter arguments are bare values."""
        if expression.filters:
            raise RenderError(f"Liquid '{context}' arguments must be plain values")
        return self.value(expression.postfix)

    def filter_name(self, ir_filter: IrFilter) -> str:
        name = native_filter_name(ir_filter.name, LIQUID_FILTER_NAMES)
        if name is None:
            raise RenderError(f"Liquid has no filter for '{ir_filter.name.name}'")
        return name

    def render_filter(self, ir_filter: IrFilter) -> str:
        name = self.filter_name(ir_filter)

        def arg(expression):
            return self.plain_value(expression, name)

        if isinstance(ir_filter, Truncate):
            if ir_filter.kill_words:
                logger.debug("dropping killwords from truncate; Liquid always cuts mid-word")
            args = [arg(ir_filter.length)]
            if ir_filter.end is not None:
                args.append(arg(ir_filter.end))
        elif isinstance(ir_filter, Replace):
            if ir_filter.flags is not None:
                raise RenderError("Liquid 'replace' does not accept flags")
            args = [arg(ir_filter.old), arg(ir_filter.new)]
        elif isinstance(ir_filter, Where):
            args = [arg(ir_filter.attribute)]
            if ir_filter.value is not None:
                args.append(arg(ir_filter.value))
        elif isinstance(ir_filter, Sort):
            # Liquid sort has no reverse flag
            text = name if ir_filter.attribute is None else f"{name}: {arg(ir_filter.attribute)}"
            return text + " | reverse" if ir_filter.reverse else text
        else:
            args = [arg(a) for a in ir_filter.args]
            args += [f"{key}: {arg(value)}" for key, value in ir_filter.kwargs]

        return f"{name}: {', '.join(args)}" if args else name

    def condition(self, expression: IrExpression) -> str:
        return self.render_expression(expression, allow_filters=False)

    # ========================================================================
    # Nodes
    # ========================================================================

    def render_output(self, node: Output) -> str:
        return output_markup(self.render_expression(node.expression), node.trim_left, node.trim_right)

    def render_conditional(self, node: Conditional) -> str:
        if node.variant == ConditionalVariant.CASE:
            return self._render_case(node)

        variant = node.variant
        branches = list(node.branches)
        head = branches[0].condition
        if variant == ConditionalVariant.IF and head.filters and head.filters[-1] == Filter(FilterId.LOGICAL_NOT):
            variant = ConditionalVariant.UNLESS
            branches[0] = replace(branches[0], condition=IrExpression(head.postfix, head.filters[:-1]))

        keyword = variant.value
        out = ""
        for i, branch in enumerate(branches):
            if branch.condition is None:
                body = "else"
            else:
                body = f"{keyword if i == 0 else 'elsif'} {self.condition(branch.condition)}"
            out += tag_markup(body, branch.trim_left, branch.trim_right) + self.render(branch.children)
        return out + tag_markup(f"end{keyword}", node.close_trim_left, node.close_trim_right)

    def _render_case(self, node: Conditional) -> str:
        subject, *arms = node.branches
        out = tag_markup(f"case {self.condition(subject.condition)}", subject.trim_left, subject.trim_right)
        out += self.render(subject.children)
        for branch in arms:
            if branch.condition is None:
                body = "else"
            else:
                values = [branch.condition, *branch.alternatives]
                body = "when " + ", ".join(self.plain_value(v, "when") for v in values)
            out += tag_markup(body, branch.trim_left, branch.trim_right) + self.render(branch.children)
        return out + tag_markup("endcase", node.close_trim_left, node.close_trim_right)

    def render_loop(self, node: Loop) -> str:
        return self.render_loop_tags(node, self.condition(node.collection))

    def render_assignment(self, node: Assignment) -> str:
        if node.expression is not None:
            body = f"assign {node.target} = {self.render_expression(node.expression)}"
            return tag_markup(body, node.trim_left, node.trim_right)
        return (tag_markup(f"capture {node.target}", node.trim_left, node.trim_right)
                + self.render(node.children)
                + tag_markup("endcapture", node.close_trim_left, node.close_trim_right))

    def render_comment(self, node: Comment) -> str:
        if "endcomment" in node.content:
            raise RenderError("Liquid comments cannot contain 'endcomment'")
        return (tag_markup("comment", node.trim_left, node.trim_right)
                + node.content
                + tag_markup("endcomment", node.close_trim_left, node.close_trim_right))

    def render_include(self, node: Include) -> str:
        return tag_markup(f"include {self.condition(node.template)}", node.trim_left, node.trim_right)

    def render_tag(self, node: Tag) -> str:
        if node.children:
            raise RenderError(f"Generic tag '{node.name}' cannot carry children")
        body = f"{node.name} {node.args}" if node.args else node.name
        return tag_markup(body, node.trim_left, node.trim_right)


def render(nodes) -> str:
    """Render IR nodes as Liquid source."""
    return LiquidRenderer().render(nodes)
