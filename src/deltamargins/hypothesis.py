"""Hypothesis specifications: linear combinations and functions of estimates.

A hypothesis maps the vector of estimates ``b`` (length ``k``) to a
vector of tested quantities.  :func:`parse_hypothesis` accepts:

* ``None`` — no hypothesis.
* a number — the null value; estimates are tested against it.
* a shorthand string — ``"pairwise"``, ``"revpairwise"``,
  ``"sequential"``, ``"revsequential"``, ``"reference"``,
  ``"revreference"`` — expanded deterministically to a contrast matrix
  ``L`` (``m × k``).
* an equation string ``"lhs = rhs"`` over ``b1 … bk`` (and, when row
  names are known, valid identifier names), e.g. ``"b2 = b1"`` or
  ``"b1 / b2 = 1"``.  The tested quantity is ``lhs − rhs``.
* a vector (one combination) or a matrix ``L`` with ``k`` columns.
* a callable ``f(b) -> array``.

Linear specifications propagate exactly: the new Jacobian is ``L · J``.
Nonlinear ones (equations, callables) are differentiated numerically
with the same finite-difference discipline as the delta-method engine.
"""

from __future__ import annotations

import ast
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

import numpy as np
import pandas as pd

from .delta import jacobian
from .exceptions import InvalidHypothesisSpec

SHORTHANDS = (
    "pairwise",
    "revpairwise",
    "sequential",
    "revsequential",
    "reference",
    "revreference",
)


# ------------------------------------------------------------------ #
# Contrast matrices
# ------------------------------------------------------------------ #


def _difference_row(k: int, plus: int, minus: int) -> np.ndarray:
    row = np.zeros(k)
    row[plus] += 1.0
    row[minus] -= 1.0
    return row


def contrast_matrix(name: str, k: int) -> tuple[np.ndarray, list[str]]:
    """Expand a shorthand into ``(L, labels)``.

    Rows are enumerated in input order.  For ``"pairwise"`` on ``k``
    rows this yields ``k(k − 1)/2`` rows ``b[j] − b[i]`` for ``i < j``.

    Raises:
        InvalidHypothesisSpec: If *name* is unknown or ``k < 2``.
    """
    if name not in SHORTHANDS:
        msg = f"Unknown hypothesis {name!r}.  Choose from: {', '.join(SHORTHANDS)}."
        raise InvalidHypothesisSpec(msg)
    if k < 2:
        msg = f"hypothesis={name!r} requires at least 2 estimates, got {k}."
        raise InvalidHypothesisSpec(msg)

    pairs: list[tuple[int, int]] = []
    if name in ("pairwise", "revpairwise"):
        pairs = [(j, i) for i in range(k) for j in range(i + 1, k)]
    elif name in ("sequential", "revsequential"):
        pairs = [(i + 1, i) for i in range(k - 1)]
    else:
        pairs = [(j, 0) for j in range(1, k)]
    if name.startswith("rev"):
        pairs = [(minus, plus) for plus, minus in pairs]

    L = np.vstack([_difference_row(k, plus, minus) for plus, minus in pairs])
    labels = [f"b{plus + 1} - b{minus + 1}" for plus, minus in pairs]
    return L, labels


# ------------------------------------------------------------------ #
# Equation strings
# ------------------------------------------------------------------ #

_FUNCTIONS: dict[str, Callable[[Any], Any]] = {
    "exp": np.exp,
    "log": np.log,
    "sqrt": np.sqrt,
    "abs": np.abs,
}

_BINOPS: dict[type, Callable[[Any, Any], Any]] = {
    ast.Add: np.add,
    ast.Sub: np.subtract,
    ast.Mult: np.multiply,
    ast.Div: np.divide,
    ast.Pow: np.power,
}

_B_INDEX = re.compile(r"^b(\d+)$")


def _compile_equation(
    equation: str,
    k: int,
    names: Sequence[str] | None,
) -> Callable[[np.ndarray], np.ndarray]:
    """Compile ``"lhs = rhs"`` into ``f(b) = lhs − rhs``."""
    if equation.count("=") != 1 or any(op in equation for op in ("==", "<=", ">=", "!=")):
        msg = (
            f"Hypothesis equation {equation!r} must contain exactly one '=' "
            "separating the left and right hand sides."
        )
        raise InvalidHypothesisSpec(msg)
    lhs, rhs = equation.split("=")
    try:
        tree = ast.parse(f"({lhs.strip()}) - ({rhs.strip()})", mode="eval")
    except SyntaxError as exc:
        msg = f"Could not parse hypothesis {equation!r}: {exc.msg}."
        raise InvalidHypothesisSpec(msg) from None

    lookup = {}
    if names is not None:
        lookup = {str(n): i for i, n in enumerate(names) if str(n).isidentifier()}

    def _index(identifier: str) -> int:
        match = _B_INDEX.match(identifier)
        if match and identifier not in lookup:
            idx = int(match.group(1)) - 1
            if not 0 <= idx < k:
                msg = f"{identifier!r} in hypothesis {equation!r} is out of range: there are {k} estimates."
                raise InvalidHypothesisSpec(msg)
            return idx
        if identifier in lookup:
            return lookup[identifier]
        msg = (
            f"Unknown name {identifier!r} in hypothesis {equation!r}.  Use "
            f"b1 … b{k} to refer to estimates by position."
        )
        raise InvalidHypothesisSpec(msg)

    def _build(node: ast.AST) -> Callable[[np.ndarray], Any]:
        if isinstance(node, ast.Expression):
            return _build(node.body)
        if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)) and not isinstance(node.value, bool):
            value = float(node.value)
            return lambda b: value
        if isinstance(node, ast.Name):
            idx = _index(node.id)
            return lambda b: b[idx]
        if isinstance(node, ast.BinOp) and type(node.op) in _BINOPS:
            op = _BINOPS[type(node.op)]
            left, right = _build(node.left), _build(node.right)
            return lambda b: op(left(b), right(b))
        if isinstance(node, ast.UnaryOp) and isinstance(node.op, (ast.USub, ast.UAdd)):
            operand = _build(node.operand)
            if isinstance(node.op, ast.USub):
                return lambda b: -operand(b)
            return operand
        if (
            isinstance(node, ast.Call)
            and isinstance(node.func, ast.Name)
            and node.func.id in _FUNCTIONS
            and len(node.args) == 1
            and not node.keywords
        ):
            fn = _FUNCTIONS[node.func.id]
            arg = _build(node.args[0])
            return lambda b: fn(arg(b))
        msg = (
            f"Unsupported expression {ast.unparse(node)!r} in hypothesis "
            f"{equation!r}.  Allowed: numbers, b1 … b{k}, + - * / **, "
            f"and {', '.join(_FUNCTIONS)}."
        )
        raise InvalidHypothesisSpec(msg)

    evaluate = _build(tree)
    return lambda b: np.atleast_1d(np.asarray(evaluate(np.asarray(b, dtype=float)), dtype=float))


# ------------------------------------------------------------------ #
# Hypothesis object
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class Hypothesis:
    """A parsed hypothesis.

    Attributes:
        kind: ``"null"`` (identity map, tested against ``null``),
            ``"linear"`` (``L @ b``) or ``"function"``.
        labels: Output labels, or ``None`` to keep the input rows.
        matrix: ``L`` for linear hypotheses.
        func: ``f(b)`` for nonlinear hypotheses.
        null: Null value(s) for the tested quantities.
    """

    kind: str
    labels: tuple[str, ...] | None = None
    matrix: np.ndarray | None = field(default=None, repr=False)
    func: Callable[[np.ndarray], np.ndarray] | None = field(default=None, repr=False)
    null: float | np.ndarray = 0.0

    @property
    def is_linear(self) -> bool:
        return self.kind in ("null", "linear")

    @property
    def replaces_rows(self) -> bool:
        """``True`` when the output rows differ from the input rows."""
        return self.kind != "null"

    def apply(self, b: np.ndarray) -> np.ndarray:
        """Map estimates *b* to the tested quantities."""
        b = np.asarray(b, dtype=float)
        if self.kind == "null":
            return b
        if self.kind == "linear":
            return self.matrix @ b
        return np.asarray(self.func(b), dtype=float).ravel()

    def chain(
        self,
        estimate: np.ndarray,
        jac: np.ndarray | None,
        method: str = "fdcentral",
        eps: float = 1e-4,
    ) -> tuple[np.ndarray, np.ndarray | None]:
        """Apply to an existing estimate vector and its Jacobian.

        Linear maps compose exactly (``L · J``); nonlinear ones use the
        numerical Jacobian ``G`` of the map at *estimate* (``G · J``).
        """
        estimate = np.asarray(estimate, dtype=float)
        new = self.apply(estimate)
        if jac is None:
            return new, None
        if self.kind == "null":
            return new, jac
        if self.kind == "linear":
            return new, self.matrix @ jac
        G = jacobian(self.apply, estimate, method=method, eps=eps, baseline=new)
        return new, G @ jac


def parse_hypothesis(
    spec: Any,
    k: int,
    names: Sequence[str] | None = None,
) -> Hypothesis | None:
    """Parse a user hypothesis for ``k`` input estimates.

    Args:
        spec: See module docstring.
        k: Number of estimates the hypothesis applies to.
        names: Optional row names usable in equation strings.

    Returns:
        A :class:`Hypothesis`, or ``None`` when *spec* is ``None``.

    Raises:
        InvalidHypothesisSpec: For unknown strings, unparseable
            equations, or a matrix whose column count is not ``k``.
    """
    if spec is None:
        return None

    if isinstance(spec, (int, float, np.integer, np.floating)) and not isinstance(spec, bool):
        return Hypothesis(kind="null", null=float(spec))

    if isinstance(spec, str):
        if "=" in spec:
            func = _compile_equation(spec, k, names)
            return Hypothesis(kind="function", labels=(spec.strip(),), func=func)
        L, labels = contrast_matrix(spec, k)
        return Hypothesis(kind="linear", labels=tuple(labels), matrix=L)

    if callable(spec):
        return Hypothesis(kind="function", func=_callable_map(spec))

    if isinstance(spec, (list, tuple, np.ndarray, pd.Series, pd.DataFrame)):
        try:
            L = np.asarray(spec, dtype=float)
        except (TypeError, ValueError):
            msg = "A hypothesis matrix must be numeric."
            raise InvalidHypothesisSpec(msg) from None
        if L.ndim == 1:
            L = L[None, :]
        if L.ndim != 2 or L.shape[1] != k:
            msg = (
                f"Hypothesis matrix has shape {L.shape}, but the estimate "
                f"table has {k} rows.  The matrix needs {k} columns (one per "
                "estimate) and one row per tested combination."
            )
            raise InvalidHypothesisSpec(msg)
        labels = [f"H{r + 1}" for r in range(L.shape[0])]
        if isinstance(spec, pd.DataFrame):
            labels = [str(i) for i in spec.index]
        return Hypothesis(kind="linear", labels=tuple(labels), matrix=L)

    msg = (
        "'hypothesis' must be None, a number, a string, a numeric vector or "
        f"matrix, or a callable; got {type(spec).__name__}."
    )
    raise InvalidHypothesisSpec(msg)


def _callable_map(fn: Callable[..., Any]) -> Callable[[np.ndarray], np.ndarray]:
    def _wrapped(b: np.ndarray) -> np.ndarray:
        return np.atleast_1d(np.asarray(fn(b), dtype=float)).ravel()

    return _wrapped


def hypothesis_labels(hyp: Hypothesis, n_out: int) -> list[str]:
    """Labels for the output rows of *hyp*."""
    if hyp.labels is not None and len(hyp.labels) == n_out:
        return list(hyp.labels)
    if n_out == 1 and hyp.labels:
        return [hyp.labels[0]]
    return [f"H{r + 1}" for r in range(n_out)]


__all__ = [
    "SHORTHANDS",
    "Hypothesis",
    "contrast_matrix",
    "hypothesis_labels",
    "parse_hypothesis",
]
