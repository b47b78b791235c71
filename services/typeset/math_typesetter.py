"""LaTeX -> display MathML with a plain-text fallback."""
from __future__ import annotations

import html
from typing import Callable

from latex2mathml.converter import convert as latex2mathml_convert

from core.exceptions import PresentationError
from core.logger import logger

EMPTY_MATHML = '<math xmlns="http://www.w3.org/1998/Math/MathML" display="block"></math>'


def strip_math_delimiters(tex: str) -> str:
    """Remove ``$``/``$$``/``\\[ \\]`` wrappers and collapse whitespace."""
    s = tex.strip()
    if s.startswith(r"\[") and s.endswith(r"\]"):
        s = s[2:-2]
    s = s.replace("$", "")
    return " ".join(s.split())


class MathTypesetter:
    """Typeset LaTeX for display; never raises."""

    def __init__(self, converter: Callable[..., str] = latex2mathml_convert) -> None:
        self._convert = converter

    def render(self, tex: str) -> str:
        """Convert to block MathML, raising ``PresentationError`` on failure."""
        try:
            mathml = self._convert(tex, display="block")
        except Exception as exc:  # noqa: BLE001
            raise PresentationError(f"could not typeset: {exc}") from exc
        if not mathml or "<math" not in mathml:
            raise PresentationError("typesetter returned no markup")
        if "display=" not in mathml:
            mathml = mathml.replace("<math", '<math display="block"', 1)
        return mathml

    def to_display_markup(self, tex: str) -> str:
        """MathML for ``tex``, or the HTML-escaped input when it cannot be typeset.

        The fallback is inserted into pages as markup, so ``<`` and ``&`` come
        back as entities rather than verbatim.
        """
        cleaned = strip_math_delimiters(tex or "")
        if not cleaned:
            return EMPTY_MATHML
        # Close up to three dangling braces
        brace_diff = cleaned.count("{") - cleaned.count("}")
        if 0 < brace_diff <= 3:
            cleaned = cleaned + "}" * brace_diff
        try:
            return self.render(cleaned)
        except PresentationError as exc:
            logger.warning("[TYPESET] Falling back to raw text for %r: %s", tex, exc.message)
            return html.escape(tex, quote=False)


_default = MathTypesetter()


def to_display_markup(tex: str) -> str:
    """Module-level shortcut around the default typesetter."""
    return _default.to_display_markup(tex)
