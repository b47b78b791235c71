"""Tests for the SymPy-backed solver."""
from __future__ import annotations

import time

import pytest

from services.solver.expression_solver import (
    Failure,
    Value,
    VariableAssignment,
    solve,
)


class TestArithmetic:
    def test_integer_sum(self) -> None:
        assert solve("2+2") == Value(4)

    def test_decimal_result(self) -> None:
        result = solve("1/4+0.5")
        assert isinstance(result, Value)
        assert result.value == pytest.approx(0.75)

    def test_exponent(self) -> None:
        assert solve("2^(10)") == Value(1024)

    def test_known_functions_evaluate(self) -> None:
        assert solve("sqrt(16)") == Value(4)

    def test_division_by_zero_fails(self) -> None:
        result = solve("1/0")
        assert isinstance(result, Failure)
        assert result.kind == "EvaluationError"

    def test_overflowing_float_fails(self) -> None:
        result = solve("10^(400)/3")
        assert result == Failure("result out of range")
        assert result.kind == "EvaluationError"

    def test_large_exact_integer_stays_exact(self) -> None:
        assert solve("10^(400)") == Value(10**400)


class TestSizeLimits:
    def test_tower_of_powers_is_rejected(self) -> None:
        started = time.monotonic()
        result = solve("9^(9^(9))")
        assert time.monotonic() - started < 5
        assert result == Failure("exponent too large")
        assert result.kind == "UnsupportedError"

    def test_nested_powers_are_rejected_by_magnitude(self) -> None:
        assert solve("(10^(999))^(999)") == Failure("number too large")

    def test_huge_degree_is_rejected(self) -> None:
        assert solve("x^(100000)=1") == Failure("exponent too large")

    def test_modest_powers_still_solve(self) -> None:
        assert solve("2^(1000)/2^(999)") == Value(2)


class TestEquations:
    def test_linear(self) -> None:
        assert solve("2*x+3=7") == VariableAssignment("x", ["2"])

    def test_quadratic_has_two_roots(self) -> None:
        result = solve("x^(2)=4")
        assert isinstance(result, VariableAssignment)
        assert sorted(result.values) == ["-2", "2"]
        assert str(result) in ("x = -2 or 2", "x = 2 or -2")

    def test_complex_roots(self) -> None:
        result = solve("x^(2)+1=0")
        assert isinstance(result, VariableAssignment)
        assert set(result.values) == {"-I", "I"}

    def test_letter_without_equals_is_set_to_zero(self) -> None:
        assert solve("x-5") == VariableAssignment("x", ["5"])

    def test_latex_rendering(self) -> None:
        result = solve("2*x=1")
        assert result.to_latex() == r"x = \frac{1}{2}"

    def test_multiple_variables_rejected(self) -> None:
        result = solve("x+y=5")
        assert isinstance(result, Failure)
        assert "x" in result.reason and "y" in result.reason
        assert result.kind == "UnsupportedError"

    def test_no_solution(self) -> None:
        result = solve("exp(x)=0")
        assert isinstance(result, Failure)
        assert result.reason == "no solution for x"

    def test_cancelled_variable_evaluates_zero_form(self) -> None:
        assert solve("x+1=x") == Value(1)


class TestMalformedInput:
    @pytest.mark.parametrize("expr", ["", "2*x+=7", "=7", "(2+3", "2**/3", "2+2?"])
    def test_returns_failure(self, expr: str) -> None:
        result = solve(expr)
        assert isinstance(result, Failure)
        assert result.reason

    def test_never_raises_on_garbage(self) -> None:
        for expr in ("((((", "^^^", "....", "x=y=z", "import os"):
            assert isinstance(solve(expr), (Value, VariableAssignment, Failure))
