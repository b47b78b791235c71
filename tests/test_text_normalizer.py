"""Tests for the OCR text normalizer."""
from __future__ import annotations

import pytest

from services.ocr.text_normalizer import TextNormalizer, normalize


class TestTextNormalizer:
    """Rewrite rules applied to raw recognized text."""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("2x+3=7", "2*x+3=7"),
            ("2 x + 3 = 7", "2*x+3=7"),
            ("3×4", "3*4"),
            ("3 x 4", "3*4"),
            ("6÷2", "6/2"),
            ("x^2=4", "x^(2)=4"),
            ("2(x+1)", "2*(x+1)"),
            ("(x+1)(x-1)", "(x+1)*(x-1)"),
            ("(x+1)2", "(x+1)*2"),
            ("[x+1]", "x+1"),
            ("X+1", "x+1"),
        ],
    )
    def test_rewrites(self, raw: str, expected: str) -> None:
        assert normalize(raw) == expected

    def test_function_names_keep_their_parenthesis(self) -> None:
        assert normalize("sqrt(16)") == "sqrt(16)"
        assert normalize("3sin(x)") == "3*sin(x)"

    def test_confusable_letters_become_digits(self) -> None:
        assert normalize("lO+5") == "10+5"

    def test_corrections_feed_back_into_earlier_rules(self) -> None:
        normalizer = TextNormalizer()
        assert normalizer.apply_once("lx") == "1x"
        assert normalizer.normalize("lx") == "1*x"

    def test_drops_unknown_symbols(self) -> None:
        assert normalize("2+2?!") == "2+2"

    def test_never_fails(self) -> None:
        assert normalize("") == ""
        assert normalize("   ") == ""
        assert normalize("@#$%") == ""

    def test_output_alphabet(self) -> None:
        allowed = set("0123456789abcdefghijklmnopqrstuvwxyz+-*/^().=")
        for raw in ("Σx² + ½ = 3", "2x ≥ 5", "y = 3x + 'b'"):
            assert set(normalize(raw)) <= allowed

    @pytest.mark.parametrize("raw", ["2x+3=7", "(x+1)(x-1)", "xl2(3)", "lO+5", "3sin(2x)"])
    def test_idempotent(self, raw: str) -> None:
        once = normalize(raw)
        assert normalize(once) == once


class TestEquationAwarePolicy:
    def test_eq_and_t_become_operators(self) -> None:
        assert normalize("2xT3Eq7", equation_aware=True) == "2*x+3=7"

    def test_default_policy_leaves_them_alone(self) -> None:
        assert "=" not in normalize("2xT3Eq7")

    def test_function_names_are_protected(self) -> None:
        assert normalize("tan(x)", equation_aware=True) == "tan(x)"


def test_trace_reports_every_rule() -> None:
    normalizer = TextNormalizer()
    steps = normalizer.trace("2x+3=7")
    assert [name for name, _ in steps] == [rule.name for rule in normalizer.rules]
    names = dict(steps)
    assert names["strip-whitespace"] == "2x+3=7"
    assert names["digit-letter"] == "2*x+3=7"
    assert steps[-1][1] == "2*x+3=7"
