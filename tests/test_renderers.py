"""
Tests for the Liquid and Nunjucks renderers.

IR is built by hand here so each renderer is checked in isolation from
the front-ends.
"""

import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from renderers import render_liquid, render_nunjucks, RENDERERS
from renderers.core import tag_markup, output_markup
from ir_nodes import (
    IrExpression, Filter, Truncate, Replace, Where, Sort, FilterId, ConditionalVariant,
    Text, Output, Branch, Conditional, Loop, Assignment, Comment, Raw, Include, Tag,
    LOOP_VAR, LOOP_REVINDEX,
)
from errors import RenderError


def var(*parts):
    return IrExpression(tuple(parts))


def op(name, right):
    return Filter(name, (right,))


def out(expression):
    return [Output(expression)]


class TestMarkup:

    def test_tag_markup(self):
        assert tag_markup("if a") == "{% if a %}"
        assert tag_markup("if a", True, True) == "{%- if a -%}"

    def test_output_markup(self):
        assert output_markup("a", trim_right=True) == "{{ a -}}"

    def test_registry(self):
        assert set(RENDERERS) == {"liquid", "nunjucks"}


class TestNunjucksExpressions:
    """Tests for Nunjucks operator and filter serialization."""

    def test_arithmetic(self):
        assert render_nunjucks(out(var("a").with_filter(op(FilterId.ADD, var("1"))))) == "{{ a + 1 }}"

    def test_left_grouping_parenthesized(self):
        expression = var("a").with_filter(op(FilterId.ADD, var("1"))).with_filter(op(FilterId.MULTIPLY, var("2")))
        assert render_nunjucks(out(expression)) == "{{ (a + 1) * 2 }}"

    def test_right_grouping_parenthesized(self):
        right = var("b").with_filter(op(FilterId.SUBTRACT, var("c")))
        expression = var("a").with_filter(op(FilterId.SUBTRACT, right))
        assert render_nunjucks(out(expression)) == "{{ a - (b - c) }}"

    def test_mixed_logic(self):
        right = var("b").with_filter(op(FilterId.LOGICAL_OR, var("c")))
        expression = var("a").with_filter(op(FilterId.LOGICAL_AND, right))
        assert render_nunjucks(out(expression)) == "{{ a and (b or c) }}"

    def test_contains_swaps_operands(self):
        expression = var("tags").with_filter(op(FilterId.CONTAINS, var("'sale'")))
        assert render_nunjucks(out(expression)) == "{{ 'sale' in tags }}"

    def test_not(self):
        expression = var("a").with_filter(op(FilterId.LOGICAL_AND, var("b"))).with_filter(Filter(FilterId.LOGICAL_NOT))
        assert render_nunjucks(out(expression)) == "{{ not (a and b) }}"

    def test_filter_after_operator(self):
        expression = var("a").with_filter(op(FilterId.ADD, var("1"))).with_filter(Filter(FilterId.ROUND))
        assert render_nunjucks(out(expression)) == "{{ (a + 1) | round }}"

    def test_specialized_filters(self):
        expression = var("s").with_filter(Truncate(var("20"), var("'...'")))
        assert render_nunjucks(out(expression)) == "{{ s | truncate(20, false, '...') }}"
        assert render_nunjucks(out(var("s").with_filter(Replace(var("'a'"), var("'b'"))))) \
            == "{{ s | replace('a', 'b') }}"
        assert render_nunjucks(out(var("p").with_filter(Where(var("'on'"), var(True))))) \
            == "{{ p | selectattr('on') }}"
        assert render_nunjucks(out(var("p").with_filter(Sort(var("'title'"), True)))) \
            == "{{ p | sort(attribute='title', reverse=true) }}"

    def test_named_arguments_in_chain_wrapped(self):
        expression = var("p").with_filter(Sort(var("'title'"))).with_filter(Filter(FilterId.FIRST))
        assert render_nunjucks(out(expression)) == "{{ (p | sort(attribute='title') | first) }}"

    def test_loop_variable(self):
        assert render_nunjucks(out(var(LOOP_VAR, LOOP_REVINDEX))) == "{{ loop.revindex }}"

    def test_null(self):
        assert render_nunjucks(out(var(None))) == "{{ null }}"


class TestNunjucksNodes:
    """Tests for Nunjucks statements."""

    def test_unless_lowered_to_not(self):
        node = Conditional(ConditionalVariant.UNLESS, (Branch(var("a"), (Text("x"),)),))
        assert render_nunjucks([node]) == "{% if not a %}x{% endif %}"

    def test_case_lowered_to_if_chain(self):
        node = Conditional(ConditionalVariant.CASE, (
            Branch(var("x")),
            Branch(var("1"), (Text("a"),)),
            Branch(None, (Text("b"),)),
        ))
        assert render_nunjucks([node]) == "{% if x == 1 %}a{% else %}b{% endif %}"

    def test_case_multi_value_rejected(self):
        node = Conditional(ConditionalVariant.CASE, (
            Branch(var("x")),
            Branch(var("1"), (Text("a"),), (var("2"),)),
        ))
        with pytest.raises(RenderError):
            render_nunjucks([node])

    def test_loop(self):
        node = Loop("p", var("ps"), (Output(var("p")),), (Text("none"),), True, False)
        assert render_nunjucks([node]) == "{%- for p in ps %}{{ p }}{% else %}none{% endfor %}"

    def test_loop_tag_trims(self):
        node = Loop("p", var("ps"), (Output(var("p")),), (Text("none"),), False, True, True, False, False, True)
        assert render_nunjucks([node]) == "{% for p in ps -%}{{ p }}{%- else %}none{% endfor -%}"

    def test_per_tag_trims(self):
        node = Conditional(ConditionalVariant.IF, (
            Branch(var("a"), (Text(" x "),), (), False, True),
            Branch(None, (Text("y"),), (), True, False),
        ), True, False)
        assert render_nunjucks([node]) == "{% if a -%} x {%- else %}y{%- endif %}"

    def test_case_trims(self):
        node = Conditional(ConditionalVariant.CASE, (
            Branch(var("x"), (Text("\n"),), (), True, False),
            Branch(var("1"), (Text("a"),), (), True, True),
            Branch(None, (Text("b"),), (), False, True),
        ), False, True)
        assert render_nunjucks([node]) == "{%- if x == 1 -%}a{% else -%}b{% endif -%}"

    def test_default_only_case_with_trims_rejected(self):
        node = Conditional(ConditionalVariant.CASE, (Branch(var("x")), Branch(None, (Text("b"),))), True, False)
        with pytest.raises(RenderError):
            render_nunjucks([node])

    def test_block_assignment_close_trims(self):
        node = Assignment("g", None, (Text("hi"),), False, False, True, False)
        assert render_nunjucks([node]) == "{% set g %}hi{%- endset %}"

    def test_comment_trims(self):
        assert render_nunjucks([Comment(" x ", True, True, True, True)]) == "{#- x -#}"
        with pytest.raises(RenderError):
            render_nunjucks([Comment("- x")])

    def test_raw_close_trims(self):
        assert render_nunjucks([Raw("x", False, True, True, False)]) == "{% raw -%}x{%- endraw %}"

    def test_block_assignment(self):
        node = Assignment("g", None, (Text("hi"),))
        assert render_nunjucks([node]) == "{% set g %}hi{% endset %}"

    def test_comment(self):
        assert render_nunjucks([Comment(" note ")]) == "{# note #}"
        with pytest.raises(RenderError):
            render_nunjucks([Comment("a #} b")])

    def test_raw(self):
        assert render_nunjucks([Raw("{{ x }}")]) == "{% raw %}{{ x }}{% endraw %}"
        with pytest.raises(RenderError):
            render_nunjucks([Raw("{% endraw %}")])

    def test_generic_tag_rejected(self):
        with pytest.raises(RenderError):
            render_nunjucks([Tag("cycle", "'a', 'b'")])


class TestLiquidExpressions:
    """Tests for Liquid operator and filter serialization."""

    def test_arithmetic_as_filters(self):
        expression = var("a").with_filter(op(FilterId.ADD, var("1"))).with_filter(op(FilterId.MULTIPLY, var("2")))
        assert render_liquid(out(expression)) == "{{ a | plus: 1 | times: 2 }}"

    def test_mixed_logic_right_grouped(self):
        right = var("b").with_filter(op(FilterId.LOGICAL_OR, var("c")))
        node = Conditional(ConditionalVariant.IF, (
            Branch(var("a").with_filter(op(FilterId.LOGICAL_AND, right))),))
        assert render_liquid([node]) == "{% if a and b or c %}{% endif %}"

    def test_left_grouped_mixed_logic_rejected(self):
        left = var("a").with_filter(op(FilterId.LOGICAL_OR, var("b")))
        node = Conditional(ConditionalVariant.IF, (
            Branch(left.with_filter(op(FilterId.LOGICAL_AND, var("c")))),))
        with pytest.raises(RenderError):
            render_liquid([node])

    def test_contains(self):
        node = Conditional(ConditionalVariant.IF, (
            Branch(var("tags").with_filter(op(FilterId.CONTAINS, var("'sale'")))),))
        assert render_liquid([node]) == "{% if tags contains 'sale' %}{% endif %}"

    def test_not_rejected(self):
        with pytest.raises(RenderError):
            render_liquid(out(var("a").with_filter(Filter(FilterId.LOGICAL_NOT))))

    def test_filter_in_condition_rejected(self):
        node = Conditional(ConditionalVariant.IF, (Branch(var("a").with_filter(Filter(FilterId.LENGTH))),))
        with pytest.raises(RenderError):
            render_liquid([node])

    def test_compound_filter_argument_rejected(self):
        argument = var("b").with_filter(op(FilterId.MULTIPLY, var("c")))
        with pytest.raises(RenderError):
            render_liquid(out(var("a").with_filter(op(FilterId.ADD, argument))))

    def test_specialized_filters(self):
        assert render_liquid(out(var("s").with_filter(Truncate(var("20"), var("'...'"), True)))) \
            == "{{ s | truncate: 20, '...' }}"
        assert render_liquid(out(var("p").with_filter(Where(var("'on'"))))) == "{{ p | where: 'on' }}"
        assert render_liquid(out(var("p").with_filter(Sort(var("'title'"), True)))) \
            == "{{ p | sort: 'title' | reverse }}"

    def test_replace_flags_rejected(self):
        with pytest.raises(RenderError):
            render_liquid(out(var("s").with_filter(Replace(var("'a'"), var("'b'"), var("1")))))

    def test_keyword_arguments(self):
        expression = var("price").with_filter(Filter("money", (var("'EUR'"),), (("precision", var("2")),)))
        assert render_liquid(out(expression)) == "{{ price | money: 'EUR', precision: 2 }}"

    def test_null_and_loop_spelling(self):
        assert render_liquid(out(var(None))) == "{{ nil }}"
        assert render_liquid(out(var(LOOP_VAR, LOOP_REVINDEX))) == "{{ forloop.rindex }}"


class TestLiquidNodes:
    """Tests for Liquid tags."""

    def test_negated_if_becomes_unless(self):
        node = Conditional(ConditionalVariant.IF, (
            Branch(var("a").with_filter(Filter(FilterId.LOGICAL_NOT)), (Text("x"),)),))
        assert render_liquid([node]) == "{% unless a %}x{% endunless %}"

    def test_elsif(self):
        node = Conditional(ConditionalVariant.IF, (
            Branch(var("a"), (Text("1"),)),
            Branch(var("b"), (Text("2"),)),
        ))
        assert render_liquid([node]) == "{% if a %}1{% elsif b %}2{% endif %}"

    def test_case(self):
        node = Conditional(ConditionalVariant.CASE, (
            Branch(var("x")),
            Branch(var("1"), (Text("a"),), (var("2"),)),
            Branch(None, (Text("b"),)),
        ))
        assert render_liquid([node]) == "{% case x %}{% when 1, 2 %}a{% else %}b{% endcase %}"

    def test_case_keeps_whitespace_and_trims(self):
        node = Conditional(ConditionalVariant.CASE, (
            Branch(var("x"), (Text("\n  "),), (), True, False),
            Branch(var("1"), (Text("a"),), (), False, True),
        ), True, False)
        assert render_liquid([node]) == "{%- case x %}\n  {% when 1 -%}a{%- endcase %}"

    def test_per_tag_trims(self):
        node = Conditional(ConditionalVariant.IF, (
            Branch(var("a"), (Text("1"),), (), True, False),
            Branch(var("b"), (Text("2"),), (), False, True),
            Branch(None, (Text("3"),), (), True, True),
        ), False, True)
        assert render_liquid([node]) == "{%- if a %}1{% elsif b -%}2{%- else -%}3{% endif -%}"

    def test_negated_if_keeps_trims(self):
        node = Conditional(ConditionalVariant.IF, (
            Branch(var("a").with_filter(Filter(FilterId.LOGICAL_NOT)), (Text("x"),), (), True, False),), False, True)
        assert render_liquid([node]) == "{%- unless a %}x{% endunless -%}"

    def test_assign_and_capture(self):
        assert render_liquid([Assignment("t", var("a"))]) == "{% assign t = a %}"
        assert render_liquid([Assignment("g", None, (Text("hi"),))]) == "{% capture g %}hi{% endcapture %}"
        assert render_liquid([Assignment("g", None, (Text("hi"),), True, False, False, True)]) \
            == "{%- capture g %}hi{% endcapture -%}"

    def test_comment(self):
        assert render_liquid([Comment(" note ")]) == "{% comment %} note {% endcomment %}"

    def test_comment_trims(self):
        assert render_liquid([Comment(" x ", trim_left=True, close_trim_right=True)]) \
            == "{%- comment %} x {% endcomment -%}"

    def test_include(self):
        assert render_liquid([Include(var("'header'"))]) == "{% include 'header' %}"

    def test_generic_tag(self):
        assert render_liquid([Tag("cycle", "'a', 'b'")]) == "{% cycle 'a', 'b' %}"
        with pytest.raises(RenderError):
            render_liquid([Tag("paginate", "x", (Text("y"),))])
