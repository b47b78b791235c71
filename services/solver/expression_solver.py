"""Symbolic solving of normalized expressions with SymPy.

``solve`` never raises: every parse or evaluation problem comes back as a
``Failure``. Plain arithmetic evaluates to a ``Value``; an equation in one
variable yields a ``VariableAssignment`` holding the roots in the order
``sympy.solve`` returns them; two or more variables are rejected.
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Dict, List, Union

import sympy as sp
from sympy.parsing.sympy_parser import (
    convert_xor,
    parse_expr,
    standard_transformations,
)

from core.exceptions import (
    EquationSolverError,
    EvaluationError,
    ParseError,
    UnsupportedError,
)
from core.logger import logger

# Names the solver understands as functions or constants rather than variables
KNOWN_NAMES: Dict[str, object] = {
    "sqrt": sp.sqrt,
    "sin": sp.sin,
    "cos": sp.cos,
    "tan": sp.tan,
    "log": sp.log,
    "ln": sp.log,
    "exp": sp.exp,
    "pi": sp.pi,
}

ALLOWED_CHARS = re.compile(r"^[0-9a-z+\-*/^().=]*$")
ARITHMETIC = re.compile(r"^[0-9+\-*/^().]+$")
LETTER_RUN = re.compile(r"[a-z]+")

TRANSFORMATIONS = standard_transformations + (convert_xor,)

# Bounds checked on the unevaluated tree before SymPy computes anything exactly
MAX_EXPONENT = 1000
MAX_MAGNITUDE = sp.Float("1e1000")

Number = Union[int, float, complex]


@dataclass
class Value:
    value: Number
    latex: str = field(default="", compare=False)

    def __str__(self) -> str:
        return str(self.value)

    def to_latex(self) -> str:
        return self.latex or str(self.value)


@dataclass
class VariableAssignment:
    variable: str
    values: List[str]
    latex_values: List[str] = field(default_factory=list, compare=False)

    def __str__(self) -> str:
        return f"{self.variable} = " + " or ".join(self.values)

    def to_latex(self) -> str:
        roots = self.latex_values or self.values
        return f"{self.variable} = " + r" \text{ or } ".join(roots)


@dataclass
class Failure:
    reason: str
    kind: str = field(default="", compare=False)

    def __str__(self) -> str:
        return self.reason

    def to_latex(self) -> str:
        return rf"\text{{{self.reason}}}"


SolveResult = Union[Value, VariableAssignment, Failure]


def solve(expr: str) -> SolveResult:
    """Solve or evaluate a normalized expression."""
    try:
        result = _solve(expr)
    except EquationSolverError as exc:
        logger.info("[SOLVER] %s for %r: %s", type(exc).__name__, expr, exc.message)
        return Failure(exc.message, kind=type(exc).__name__)
    except Exception as exc:  # noqa: BLE001
        logger.warning("[SOLVER] Unexpected failure for %r: %s", expr, exc)
        return Failure(str(exc) or type(exc).__name__, kind=EvaluationError.__name__)

    logger.info("[SOLVER] %r -> %s", expr, result)
    return result


def _solve(expr: str) -> SolveResult:
    expr = (expr or "").strip()
    if not expr:
        raise ParseError("empty expression")
    if not ALLOWED_CHARS.match(expr):
        bad = sorted(set(re.sub(r"[0-9a-z+\-*/^().=]", "", expr)))
        raise ParseError(f"unsupported characters: {' '.join(bad)}")

    if "=" not in expr and ARITHMETIC.match(expr):
        return _evaluate(_parse(expr))

    if "=" in expr:
        lhs, rhs = expr.split("=", 1)
        if not lhs or not rhs:
            raise ParseError("equation is missing a side")
        # Sides parse independently: "2*x+=7" must fail rather than become "2*x+-(7)"
        parsed = _parse(lhs) - _parse(rhs)
    else:
        parsed = _parse(expr)

    variables = sorted(parsed.free_symbols, key=lambda s: s.name)

    if not variables:
        return _evaluate(parsed)
    if len(variables) > 1:
        names = ", ".join(v.name for v in variables)
        raise UnsupportedError(f"multiple variables: {names}")

    variable = variables[0]
    try:
        roots = sp.solve(parsed, variable)
    except NotImplementedError as exc:
        raise UnsupportedError(f"cannot solve for {variable.name}: {exc}") from exc
    if not roots:
        raise EvaluationError(f"no solution for {variable.name}")

    return VariableAssignment(
        variable=variable.name,
        values=[str(root) for root in roots],
        latex_values=[sp.latex(root) for root in roots],
    )


def _parse(text: str) -> sp.Expr:
    """Parse with an explicit symbol table; multi-letter runs become products."""
    local_dict: Dict[str, object] = {}
    for run in set(LETTER_RUN.findall(text)):
        if run in KNOWN_NAMES:
            local_dict[run] = KNOWN_NAMES[run]
    for letter in set("".join(LETTER_RUN.findall(text))):
        local_dict.setdefault(letter, sp.Symbol(letter))

    text = LETTER_RUN.sub(lambda m: _split_unknown(m.group(0)), text)
    try:
        unevaluated = parse_expr(
            text, local_dict=local_dict, transformations=TRANSFORMATIONS, evaluate=False
        )
        _check_size(unevaluated)
        parsed = parse_expr(text, local_dict=local_dict, transformations=TRANSFORMATIONS)
    except EquationSolverError:
        raise
    except (SyntaxError, TypeError, ValueError) as exc:
        raise ParseError(f"could not parse expression: {text}") from exc
    except Exception as exc:  # noqa: BLE001
        # tokenize.TokenError for unbalanced parentheses and friends
        raise ParseError(f"could not parse expression: {text} ({exc})") from exc

    if not isinstance(parsed, sp.Expr):
        raise ParseError(f"not an algebraic expression: {text}")
    return parsed


def _check_size(expr: sp.Basic) -> None:
    """Reject powers whose exact value would be too large to compute.

    Children are visited before their parents, so an exponent is already
    known to be bounded by the time its own power is estimated.
    """
    for node in sp.postorder_traversal(expr):
        if not isinstance(node, sp.Pow) or not node.exp.is_number:
            continue
        exponent = node.exp.evalf(15)
        if exponent.is_finite and abs(exponent) > MAX_EXPONENT:
            raise UnsupportedError("exponent too large")
        if node.base.is_number:
            magnitude = node.evalf(15)
            if magnitude.is_finite and abs(magnitude) > MAX_MAGNITUDE:
                raise UnsupportedError("number too large")


def _split_unknown(run: str) -> str:
    if run in KNOWN_NAMES or len(run) == 1:
        return run
    return "*".join(run)


def _evaluate(parsed: sp.Expr) -> Value:
    if parsed.has(sp.zoo, sp.nan, sp.oo, -sp.oo):
        raise EvaluationError("division by zero or undefined result")
    if parsed.free_symbols:
        raise EvaluationError("expression still contains variables")

    numeric = parsed.evalf()
    if not numeric.is_number or numeric.has(sp.zoo, sp.nan):
        raise EvaluationError("result is not a number")

    return Value(_to_python_number(parsed, numeric), latex=sp.latex(parsed))


def _to_python_number(exact: sp.Expr, numeric: sp.Expr) -> Number:
    if exact.is_Integer:
        return int(exact)
    if numeric.is_real:
        number: Number = float(numeric)
        parts = [number]
    else:
        number = complex(numeric)
        parts = [number.real, number.imag]
    if not all(math.isfinite(part) for part in parts):
        raise EvaluationError("result out of range")
    return number

