"""Tests for the parser: precedence, chaining, statements and block layout."""
import sys

import pytest

from lexer import Lexer, ParseError
from parser import (
    Assign,
    BinaryOp,
    Break,
    CompareChain,
    Continue,
    ExpressionStatement,
    Identifier,
    If,
    Literal,
    Parser,
    UnaryOp,
    While,
)
from values import TYPE_FLT, TYPE_INT, TYPE_STR, TRUE


def parse(source):
    tokens = Lexer(source).tokenize()
    return Parser(tokens, "<test>", source.splitlines()).parse()


def parse_expr(source):
    program = parse(source)
    assert len(program.statements) == 1
    statement = program.statements[0]
    assert isinstance(statement, ExpressionStatement)
    return statement.expression


def shape(node):
    """Compact s-expression view of an expression tree."""
    if isinstance(node, Literal):
        return node.value.value
    if isinstance(node, Identifier):
        return node.name
    if isinstance(node, BinaryOp):
        return (node.op, shape(node.left), shape(node.right))
    if isinstance(node, UnaryOp):
        return (node.op, shape(node.operand))
    if isinstance(node, CompareChain):
        return ("chain", node.ops, [shape(o) for o in node.operands])
    raise AssertionError(f"unexpected node {node!r}")


class TestPrecedence:
    def test_multiplication_binds_tighter_than_addition(self):
        assert shape(parse_expr("2 + 3 * 4")) == ("+", 2, ("*", 3, 4))

    def test_parentheses(self):
        assert shape(parse_expr("(2 + 3) * 4")) == ("*", ("+", 2, 3), 4)

    def test_left_associativity(self):
        assert shape(parse_expr("100 - 10 - 5")) == ("-", ("-", 100, 10), 5)
        assert shape(parse_expr("100 // 10 // 3")) == ("//", ("//", 100, 10), 3)

    def test_power_is_right_associative(self):
        assert shape(parse_expr("2 ** 3 ** 2")) == ("**", 2, ("**", 3, 2))

    def test_unary_minus_applies_to_whole_power(self):
        assert shape(parse_expr("-2 ** 2")) == ("-", ("**", 2, 2))

    def test_power_exponent_may_be_signed(self):
        assert shape(parse_expr("2 ** -2")) == ("**", 2, ("-", 2))

    def test_parenthesized_negative_base(self):
        assert shape(parse_expr("(-2) ** 2")) == ("**", ("-", 2), 2)

    def test_unary_binds_tighter_than_multiplication(self):
        assert shape(parse_expr("-2 * 3")) == ("*", ("-", 2), 3)

    def test_repeated_signs(self):
        assert shape(parse_expr("- + -x")) == ("-", ("+", ("-", "x")))

    def test_power_then_multiplication(self):
        assert shape(parse_expr("2 ** 2 * 5")) == ("*", ("**", 2, 2), 5)


class TestComparisonChains:
    def test_chain_is_flat(self):
        assert shape(parse_expr("1 < 2 < 3")) == ("chain", ["<", "<"], [1, 2, 3])

    def test_mixed_operators(self):
        assert shape(parse_expr("1 == 1 < 2 != 5")) == ("chain", ["==", "<", "!="], [1, 1, 2, 5])

    def test_operands_are_additive_expressions(self):
        assert shape(parse_expr("1 + 2 <= 5 - 1")) == ("chain", ["<="], [("+", 1, 2), ("-", 5, 1)])

    def test_single_comparison_is_a_two_operand_chain(self):
        node = parse_expr("a != b")
        assert isinstance(node, CompareChain)
        assert len(node.operands) == 2 and node.ops == ["!="]


class TestLiterals:
    def test_literal_kinds(self):
        assert parse_expr("17").value.type == TYPE_INT
        assert parse_expr("2.5").value.type == TYPE_FLT
        assert parse_expr("'x'").value.type == TYPE_STR
        assert parse_expr("True").value == TRUE


class TestStatements:
    def test_assignment(self):
        statement = parse("x = 1 + 2").statements[0]
        assert isinstance(statement, Assign)
        assert statement.name == "x"
        assert shape(statement.expression) == ("+", 1, 2)

    def test_break_and_continue(self):
        program = parse("while x:\n    break\n    continue\n")
        loop = program.statements[0]
        assert isinstance(loop, While)
        assert [type(s) for s in loop.block.statements] == [Break, Continue]

    def test_if_elif_else(self):
        source = (
            "if a > b:\n"
            "    c = 'greater'\n"
            "elif a < b:\n"
            "    c = 'less'\n"
            "else:\n"
            "    c = 'equal'\n"
        )
        statement = parse(source).statements[0]
        assert isinstance(statement, If)
        assert len(statement.branches) == 2
        assert statement.else_block is not None
        assert statement.else_block.statements[0].name == "c"

    def test_while_else(self):
        statement = parse("while a < 3:\n    a = a + 1\nelse:\n    s = 404\n").statements[0]
        assert isinstance(statement, While)
        assert statement.else_block is not None

    def test_nested_blocks(self):
        source = (
            "while a < 101:\n"
            "    s = s + a\n"
            "    if a == 5:\n"
            "        break\n"
            "    a = a + 1\n"
            "s = 0\n"
        )
        program = parse(source)
        assert len(program.statements) == 2
        loop = program.statements[0]
        assert len(loop.block.statements) == 3
        assert isinstance(loop.block.statements[1].branches[0].block.statements[0], Break)

    def test_suite_on_header_line(self):
        statement = parse("if x: y = 1\nelse: y = 2\n").statements[0]
        assert statement.branches[0].block.statements[0].name == "y"
        assert statement.else_block.statements[0].name == "y"

    def test_multiple_top_level_statements(self):
        program = parse("a = 1\nb = 2\na + b\n")
        assert [type(s) for s in program.statements] == [Assign, Assign, ExpressionStatement]

    def test_locations(self):
        program = parse("a = 1\n\nb = oops\n")
        location = program.statements[1].location
        assert location.line == 3
        assert location.statement == "b = oops"


class TestErrors:
    def test_missing_colon(self):
        with pytest.raises(ParseError) as info:
            parse("if x\n    y = 1\n")
        assert info.value.expected == "':'"
        assert info.value.found == "end of line"

    def test_unclosed_parenthesis(self):
        with pytest.raises(ParseError) as info:
            parse("(1 + 2")
        assert info.value.message == "'(' was never closed"
        assert info.value.column == 1

    def test_unmatched_closing_parenthesis(self):
        with pytest.raises(ParseError) as info:
            parse("1 + 2)")
        assert info.value.message == "unmatched ')'"

    def test_dangling_operator(self):
        with pytest.raises(ParseError) as info:
            parse("1 +")
        assert info.value.found == "end of line"

    def test_missing_indented_block(self):
        with pytest.raises(ParseError) as info:
            parse("if x:\ny = 1\n")
        assert info.value.message.startswith("expected an indented block")

    def test_unexpected_indent(self):
        with pytest.raises(ParseError) as info:
            parse("if x:\n    y = 1\n        z = 2\n")
        assert info.value.message == "unexpected indent"

    def test_inconsistent_dedent(self):
        with pytest.raises(ParseError) as info:
            parse("if x:\n    y = 1\n  z = 2\n")
        assert info.value.message == "unindent does not match any outer indentation level"

    def test_indented_first_line(self):
        with pytest.raises(ParseError) as info:
            parse("  x = 1")
        assert info.value.message == "unexpected indent"

    def test_else_without_if(self):
        with pytest.raises(ParseError):
            parse("else:\n    x = 1\n")

    def test_assignment_to_literal(self):
        with pytest.raises(ParseError):
            parse("1 = x")

    def test_keyword_cannot_be_assigned(self):
        with pytest.raises(ParseError):
            parse("while = 3")

    def test_two_expressions_on_one_line(self):
        with pytest.raises(ParseError) as info:
            parse("1 2")
        assert info.value.found == "'2'"

    @pytest.mark.skipif(
        not hasattr(sys, "get_int_max_str_digits"), reason="integer string conversion is unbounded"
    )
    def test_overlong_integer_literal(self):
        with pytest.raises(ParseError) as info:
            parse("1" * 5000)
        assert "limit" in info.value.message
        assert info.value.column == 1
