"""
Nunjucks renderer.

Operators render infix with parentheses wherever the IR's left-to-right
evaluation order differs from Nunjucks precedence. unless and case have no
Nunjucks tag and are lowered to if/elif chains.
"""

from typing import List, Optional

from ir_nodes import (
    IrExpression, IrFilter, Filter, Truncate, Replace, Where, Sort, FilterId,
    ConditionalVariant, Output, Conditional, Loop, Assignment, Comment, Include, Tag,
)
from ir_algebra import (
    NUNJUCKS_FILTER_NAMES, NUNJUCKS_OPERATOR_SYMBOLS, NUNJUCKS_SPELLING,
    OPERATOR_PRECEDENCE, NOT_PRECEDENCE, Rendered,
    append_operator, is_binary_step, is_true_literal, left_needs_parens,
    native_filter_name, parenthesize, render_access_path, right_needs_parens,
    uses_named_arguments,
)
from errors import RenderError
from renderers.core import TemplateRenderer, tag_markup, output_markup


class NunjucksRenderer(TemplateRenderer):
    """Renders IR nodes as Nunjucks source"""

    language = "Nunjucks"

    # ========================================================================
    # Expressions
    # ========================================================================

    def render_expression(self, expression: IrExpression) -> str:
        return self.expression(expression).text

    def expression(self, expression: IrExpression) -> Rendered:
        acc = Rendered(render_access_path(expression.postfix, NUNJUCKS_SPELLING, self.render_expression))
        for ir_filter in expression.filters:
            if is_binary_step(ir_filter):
                acc = self.binary(acc, ir_filter)
            elif ir_filter.name == FilterId.LOGICAL_NOT:
                operand = parenthesize(acc) if left_needs_parens(acc, NOT_PRECEDENCE) else acc
                acc = Rendered(f"not {operand.text}", NOT_PRECEDENCE, FilterId.LOGICAL_NOT)
            else:
                operand = parenthesize(acc) if acc.tier is not None else acc
                acc = Rendered(f"{operand.text} | {self.render_filter(ir_filter)}")

        if len(expression.filters) > 1 and any(uses_named_arguments(f) for f in expression.filters):
            return parenthesize(acc)
        return acc

    def binary(self, acc: Rendered, ir_filter: Filter) -> Rendered:
        op = ir_filter.name
        tier = OPERATOR_PRECEDENCE[op]
        arg = self.expression(ir_filter.args[0]) if ir_filter.args else Rendered("")

        if op == FilterId.CONTAINS:
            # acc contains arg -> `arg in acc`
            needle = parenthesize(arg) if left_needs_parens(arg, tier) else arg
            haystack = parenthesize(acc) if right_needs_parens(acc, tier, op) else acc
            return Rendered(f"{needle.text} in {haystack.text}", tier, op)

        left = parenthesize(acc) if left_needs_parens(acc, tier) else acc
        right = parenthesize(arg) if right_needs_parens(arg, tier, op) else arg
        return Rendered(f"{left.text} {NUNJUCKS_OPERATOR_SYMBOLS[op]} {right.text}", tier, op)

    def render_filter(self, ir_filter: IrFilter) -> str:
        name = native_filter_name(ir_filter.name, NUNJUCKS_FILTER_NAMES)
        if name is None:
            raise RenderError(f"Nunjucks has no filter for '{ir_filter.name.name}'")

        if isinstance(ir_filter, Truncate):
            args = [self.render_expression(ir_filter.length)]
            if ir_filter.kill_words is not None or ir_filter.end is not None:
                args.append("true" if ir_filter.kill_words else "false")
            if ir_filter.end is not None:
                args.append(self.render_expression(ir_filter.end))
        elif isinstance(ir_filter, Replace):
            args = [self.render_expression(ir_filter.old), self.render_expression(ir_filter.new)]
            if ir_filter.flags is not None:
                args.append(self.render_expression(ir_filter.flags))
        elif isinstance(ir_filter, Where):
            # selectattr(attr) already tests for truthiness
            args = [self.render_expression(ir_filter.attribute)]
            if ir_filter.value is not None and not is_true_literal(ir_filter.value):
                args.append(self.render_expression(ir_filter.value))
        elif isinstance(ir_filter, Sort):
            args = []
            if ir_filter.attribute is not None:
                args.append(f"attribute={self.render_expression(ir_filter.attribute)}")
            if ir_filter.reverse:
                args.append("reverse=true")
        else:
            args = [self.render_expression(arg) for arg in ir_filter.args]
            args += [f"{key}={self.render_expression(value)}" for key, value in ir_filter.kwargs]

        return f"{name}({', '.join(args)})" if args else name

    # ========================================================================
    # Nodes
    # ========================================================================

    def render_output(self, node: Output) -> str:
        return output_markup(self.render_expression(node.expression), node.trim_left, node.trim_right)

    def render_conditional(self, node: Conditional) -> str:
        if node.variant == ConditionalVariant.CASE:
            arms = self._case_arms(node)
        else:
            arms = [(branch.condition, branch.children, branch.trim_left, branch.trim_right)
                    for branch in node.branches]
            if node.variant == ConditionalVariant.UNLESS:
                head, *rest = arms[0]
                arms[0] = (head.with_filter(Filter(FilterId.LOGICAL_NOT)), *rest)

        if not arms or arms[0][0] is None:
            # case with nothing but a default arm
            trims = [node.trim_left, node.close_trim_left, node.close_trim_right]
            trims += [trim for arm in arms for trim in arm[2:]]
            if any(trims):
                raise RenderError("Nunjucks cannot keep whitespace control on a 'case' with only an 'else' arm")
            return "".join(self.render(children) for _, children, _, _ in arms)

        out = ""
        for i, (condition, children, trim_left, trim_right) in enumerate(arms):
            if condition is None:
                body = "else"
            else:
                body = f"{'if' if i == 0 else 'elif'} {self.render_expression(condition)}"
            out += tag_markup(body, trim_left, trim_right) + self.render(children)
        return out + tag_markup("endif", node.close_trim_left, node.close_trim_right)

    def _case_arms(self, node: Conditional) -> List[tuple]:
        """case/when -> (subject == value, children, trim_left, trim_right) arms.

        The case tag's left trim moves to the first arm; whitespace between
        case and the first when is never output and is dropped.
        """
        subject = node.branches[0]
        arms = []
        for i, branch in enumerate(node.branches[1:]):
            if branch.alternatives:
                raise RenderError("Nunjucks has no equivalent for multi-value 'when' clauses")
            condition: Optional[IrExpression] = None
            if branch.condition is not None:
                condition = append_operator(subject.condition, FilterId.COMPARE_EQ, branch.condition)
            trim_left = subject.trim_left if i == 0 else branch.trim_left
            arms.append((condition, branch.children, trim_left, branch.trim_right))
        return arms

    def render_loop(self, node: Loop) -> str:
        return self.render_loop_tags(node, self.render_expression(node.collection))

    def render_assignment(self, node: Assignment) -> str:
        if node.expression is not None:
            body = f"set {node.target} = {self.render_expression(node.expression)}"
            return tag_markup(body, node.trim_left, node.trim_right)
        return (tag_markup(f"set {node.target}", node.trim_left, node.trim_right)
                + self.render(node.children)
                + tag_markup("endset", node.close_trim_left, node.close_trim_right))

    def render_comment(self, node: Comment) -> str:
        """{# #} carries one hyphen per side; trims inside a comment body have no effect."""
        if "#}" in node.content:
            raise RenderError("Nunjucks comments cannot contain '#}'")
        if node.content.startswith("-") or node.content.endswith("-"):
            raise RenderError("Nunjucks comment text cannot start or end with '-'")
        left = "{#-" if node.trim_left else "{#"
        right = "-#}" if node.close_trim_right else "#}"
        return left + node.content + right

    def render_include(self, node: Include) -> str:
        return tag_markup(f"include {self.render_expression(node.template)}", node.trim_left, node.trim_right)

    def render_tag(self, node: Tag) -> str:
        raise RenderError(f"Nunjucks does not support '{node.name}' statements")


def render(nodes) -> str:
    """Render IR nodes as Nunjucks source."""
    return NunjucksRenderer().render(nodes)
