"""Rewrite raw OCR text into a parseable algebraic string.

The rewrite is an ordered table of ``RewriteRule`` entries applied one after
another, each on the output of the previous. The order matters:

1. strip whitespace
2. multiplication/division look-alikes (``×``, ``x`` between digits, ``÷``)
3. implicit multiplication between digits and letters
4. ``^N`` -> ``^(N)``
5. implicit multiplication around parentheses (function names excepted)
6. strip quotes and square brackets
7. letter/digit confusion correction (plus ``Eq``/``T`` under the
   equation-aware policy)
8. lowercase and drop anything outside ``0-9 a-z + - * / ^ ( ) . =``

The table is re-applied until the text stops changing, so the output is a
fixed point of the rewrite. Normalization never fails.
"""
from __future__ import annotations

import re
from typing import Callable, List, NamedTuple, Tuple, Union

from core.logger import logger
from services.solver.expression_solver import KNOWN_NAMES

Replacement = Union[str, Callable[[re.Match], str]]

MAX_PASSES = 5

CONFUSABLES = {
    "o": "0",
    "O": "0",
    "l": "1",
    "I": "1",
    "S": "5",
    "B": "8",
    "Z": "2",
}


class RewriteRule(NamedTuple):
    name: str
    pattern: re.Pattern
    replacement: Replacement

    def apply(self, text: str) -> str:
        return self.pattern.sub(self.replacement, text)


def _rule(name: str, pattern: str, replacement: Replacement) -> RewriteRule:
    return RewriteRule(name, re.compile(pattern), replacement)


def _is_known_name(word: str) -> bool:
    return word.lower() in KNOWN_NAMES


def _star_before_paren(match: re.Match) -> str:
    word = match.group(1)
    return f"{word}(" if _is_known_name(word) else f"{word}*("


def _fix_confusables(match: re.Match) -> str:
    word = match.group(0)
    if _is_known_name(word):
        return word
    return "".join(CONFUSABLES.get(ch, ch) for ch in word)


def _eq_to_equals(match: re.Match) -> str:
    word = match.group(0)
    if _is_known_name(word):
        return word
    return re.sub(r"eq", "=", word, flags=re.IGNORECASE)


def _t_to_plus(match: re.Match) -> str:
    word = match.group(0)
    if _is_known_name(word):
        return word
    return word.replace("T", "+").replace("t", "+")


BASE_RULES: Tuple[RewriteRule, ...] = (
    # 1
    _rule("strip-whitespace", r"\s+", ""),
    # 2
    _rule("times-sign", r"[×✕✖⋅·]", "*"),
    _rule("x-operator", r"(?<=\d)[xX](?=\d)", "*"),
    _rule("divide-sign", r"÷", "/"),
    # 3
    _rule("digit-letter", r"(\d)([A-Za-z])", r"\1*\2"),
    _rule("letter-digit", r"([A-Za-z])(\d)", r"\1*\2"),
    # 4
    _rule("exponent-parens", r"\^(\d+(?:\.\d+)?)", r"^(\1)"),
    # 5
    _rule("letter-paren", r"([A-Za-z]+)\(", _star_before_paren),
    _rule("paren-letter", r"\)([A-Za-z])", r")*\1"),
    _rule("digit-paren", r"(\d)\(", r"\1*("),
    _rule("paren-digit", r"\)(\d)", r")*\1"),
    _rule("paren-paren", r"\)\(", ")*("),
    # 6
    _rule("strip-quotes-brackets", r"[\"'`\[\]]", ""),
)

CONFUSION_RULES: Tuple[RewriteRule, ...] = (
    _rule("confusables", r"[A-Za-z]+", _fix_confusables),
)

EQUATION_AWARE_RULES: Tuple[RewriteRule, ...] = (
    _rule("eq-word", r"[A-Za-z]+", _eq_to_equals),
    _rule("t-plus", r"[A-Za-z]+", _t_to_plus),
    _rule("operator-stars", r"\*?([=+])\*?", r"\1"),
)

FINAL_RULES: Tuple[RewriteRule, ...] = (
    _rule("lowercase", r"[A-Z]+", lambda m: m.group(0).lower()),
    _rule("drop-disallowed", r"[^0-9a-z+\-*/^().=]", ""),
)


class TextNormalizer:
    """Apply the rewrite table to raw recognized text."""

    def __init__(self, equation_aware: bool = False) -> None:
        self.equation_aware = equation_aware
        rules = list(BASE_RULES)
        if equation_aware:
            rules.extend(EQUATION_AWARE_RULES)
        rules.extend(CONFUSION_RULES)
        rules.extend(FINAL_RULES)
        self.rules: List[RewriteRule] = rules

    def apply_once(self, text: str) -> str:
        """Run every rule exactly once, in table order."""
        for rule in self.rules:
            text = rule.apply(text)
        return text

    def trace(self, raw: str) -> List[Tuple[str, str]]:
        """Output after each rule of a single pass, for debugging."""
        steps: List[Tuple[str, str]] = []
        text = raw or ""
        for rule in self.rules:
            text = rule.apply(text)
            steps.append((rule.name, text))
        return steps

    def normalize(self, raw: str) -> str:
        text = raw or ""
        for _ in range(MAX_PASSES):
            rewritten = self.apply_once(text)
            if rewritten == text:
                break
            text = rewritten
        logger.info("[NORMALIZE] %r -> %r", raw, text)
        return text


def normalize(raw: str, equation_aware: bool = False) -> str:
    """Normalize raw OCR text with the default or equation-aware policy."""
    return TextNormalizer(equation_aware=equation_aware).normalize(raw)
