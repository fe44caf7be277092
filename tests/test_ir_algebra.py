"""
Tests for the shared IR expression algebra.

These tests verify:
- Postfix streams fold into filter pipelines
- Parenthesization decisions from precedence tiers
- Loop variable canonicalization and access-path spelling
"""

import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from ir_nodes import (
    IrExpression, Filter, Sort, Truncate, FilterId, EMPTY_EXPRESSION,
    LOOP_VAR, LOOP_REVINDEX,
)
from ir_algebra import (
    Rendered, fold_postfix, append_operator, left_needs_parens, right_needs_parens,
    canonicalize_loop_reference, render_access_path, canonical_filter_name, native_filter_name,
    uses_named_arguments, is_true_literal,
    LIQUID_FILTERS_TO_IR, LIQUID_FILTER_NAMES, NUNJUCKS_FILTER_NAMES, LIQUID_OPERATORS_TO_IR,
    LIQUID_LOOP_NAME, LIQUID_LOOP_PROPERTIES, LIQUID_SPELLING, NUNJUCKS_SPELLING,
)


def var(*parts):
    return IrExpression(tuple(parts))


def fold(items):
    return fold_postfix(
        items,
        lambda item: isinstance(item, FilterId),
        lambda item: item,
        lambda item: var(item),
    )


class TestFoldPostfix:
    """Tests for folding operator streams into pseudo-filters."""

    def test_single_operand(self):
        assert fold(["a"]) == var("a")

    def test_binary_operator(self):
        assert fold(["a", "b", FilterId.COMPARE_GTE]) == var("a").with_filter(
            Filter(FilterId.COMPARE_GTE, (var("b"),)))

    def test_right_grouped_chain(self):
        # a and (b or c)
        result = fold(["a", "b", "c", FilterId.LOGICAL_OR, FilterId.LOGICAL_AND])
        inner = var("b").with_filter(Filter(FilterId.LOGICAL_OR, (var("c"),)))
        assert result == var("a").with_filter(Filter(FilterId.LOGICAL_AND, (inner,)))

    def test_missing_left_operand_is_empty(self):
        result = fold(["a", FilterId.LOGICAL_AND])
        assert result == EMPTY_EXPRESSION.with_filter(Filter(FilterId.LOGICAL_AND, (var("a"),)))

    def test_empty_stream(self):
        assert fold([]) == EMPTY_EXPRESSION

    def test_append_operator(self):
        result = append_operator(var("a"), FilterId.ADD, var("1"))
        assert result.filters == (Filter(FilterId.ADD, (var("1"),)),)


class TestParenthesization:
    """Tests for precedence-driven grouping."""

    def test_atoms_never_need_parens(self):
        assert not left_needs_parens(Rendered("a"), 5)
        assert not right_needs_parens(Rendered("a"), 5, FilterId.MULTIPLY)

    def test_lower_tier_on_left(self):
        assert left_needs_parens(Rendered("a + b", 4, FilterId.ADD), 5)
        assert not left_needs_parens(Rendered("a * b", 5, FilterId.MULTIPLY), 4)

    def test_equal_tier_on_right(self):
        assert right_needs_parens(Rendered("b - c", 4, FilterId.SUBTRACT), 4, FilterId.SUBTRACT)
        assert right_needs_parens(Rendered("b + c", 4, FilterId.ADD), 4, FilterId.SUBTRACT)

    def test_same_logical_operator_regroups(self):
        assert not right_needs_parens(Rendered("b or c", 1, FilterId.LOGICAL_OR), 1, FilterId.LOGICAL_OR)

    def test_mixed_logical_operator(self):
        assert right_needs_parens(Rendered("b or c", 1, FilterId.LOGICAL_OR), 2, FilterId.LOGICAL_AND)


class TestLoopVariables:
    """Tests for loop magic variable handling."""

    def test_canonicalized_inside_loop(self):
        parts = canonicalize_loop_reference(("forloop", "rindex"), True, LIQUID_LOOP_NAME, LIQUID_LOOP_PROPERTIES)
        assert parts == (LOOP_VAR, LOOP_REVINDEX)

    def test_shared_property_names_unchanged(self):
        parts = canonicalize_loop_reference(("forloop", "first"), True, LIQUID_LOOP_NAME, LIQUID_LOOP_PROPERTIES)
        assert parts == (LOOP_VAR, "first")

    def test_plain_identifier_outside_loop(self):
        parts = canonicalize_loop_reference(("forloop", "index"), False, LIQUID_LOOP_NAME, LIQUID_LOOP_PROPERTIES)
        assert parts == ("forloop", "index")


class TestAccessPaths:
    """Tests for access-path serialization."""

    def render(self, postfix, spelling):
        return render_access_path(postfix, spelling, lambda e: render_access_path(e.postfix, spelling, None))

    def test_properties_and_indices(self):
        assert self.render(("user", "tags", 0, "'first name'"), LIQUID_SPELLING) == "user.tags[0]['first name']"

    def test_dynamic_subscript(self):
        assert self.render(("items", var("key")), NUNJUCKS_SPELLING) == "items[key]"

    def test_null_and_blank(self):
        assert self.render((None,), LIQUID_SPELLING) == "nil"
        assert self.render((None,), NUNJUCKS_SPELLING) == "null"
        assert self.render(("",), LIQUID_SPELLING) == "blank"
        assert self.render(("",), NUNJUCKS_SPELLING) == "''"

    def test_booleans(self):
        assert self.render((True,), NUNJUCKS_SPELLING) == "true"
        assert self.render((False,), LIQUID_SPELLING) == "false"

    def test_loop_sentinel_per_grammar(self):
        postfix = (LOOP_VAR, LOOP_REVINDEX)
        assert self.render(postfix, LIQUID_SPELLING) == "forloop.rindex"
        assert self.render(postfix, NUNJUCKS_SPELLING) == "loop.revindex"


class TestFilterNames:
    """Tests for native filter spellings."""

    def test_liquid_to_canonical(self):
        assert canonical_filter_name("upcase", LIQUID_FILTERS_TO_IR) == FilterId.UPPERCASE
        assert canonical_filter_name("plus", LIQUID_FILTERS_TO_IR) == FilterId.ADD

    def test_unknown_passes_through(self):
        assert canonical_filter_name("money", LIQUID_FILTERS_TO_IR) == "money"
        assert native_filter_name("money", NUNJUCKS_FILTER_NAMES) == "money"

    def test_no_native_spelling(self):
        assert native_filter_name(FilterId.ADD, NUNJUCKS_FILTER_NAMES) is None
        assert native_filter_name(FilterId.ADD, LIQUID_FILTER_NAMES) == "plus"

    def test_liquid_diamond_operator(self):
        assert LIQUID_OPERATORS_TO_IR["<>"] == FilterId.COMPARE_NE


class TestFilterInspection:

    def test_named_arguments(self):
        assert uses_named_arguments(Sort(var("'name'")))
        assert uses_named_arguments(Sort(reverse=True))
        assert not uses_named_arguments(Sort())
        assert uses_named_arguments(Filter("money", (), (("currency", var("'EUR'")),)))
        assert not uses_named_arguments(Truncate(var("10")))

    def test_true_literal(self):
        assert is_true_literal(var(True))
        assert is_true_literal(var("true"))
        assert not is_true_literal(var(False))
        assert not is_true_literal(None)
