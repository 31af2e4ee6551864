"""Typed result object for estimates.

:class:`EstimateResult` is a frozen dataclass that provides:

* **Attribute access** — ``result.table``, ``result.jacobian``, etc.
* **Dict-like access** — ``result["table"]``, ``result.get("key")``,
  ``"key" in result`` for consumers that prefer bracket syntax.
* **Serialisation** — ``.to_dict()`` returns a plain ``dict[str, Any]``
  with all NumPy and pandas types converted to native Python.

Auxiliary outputs that downstream calls need (the Jacobian, the
covariance of the estimates, the parameter covariance, the scale) are
named fields rather than attributes attached to the table, so that
:func:`deltamargins.hypotheses` can chain on a previous result without
re-evaluating the model.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, ClassVar

import numpy as np
import pandas as pd

# ------------------------------------------------------------------ #
# Serialisation helper
# ------------------------------------------------------------------ #


def _numpy_to_python(obj: Any) -> Any:
    """Recursively convert NumPy/pandas objects to Python-native types.

    Handles nested dicts, lists, np.ndarray, np.integer, np.floating and
    DataFrames (as a list of records) so that :meth:`to_dict` returns a
    fully JSON-serialisable structure.
    """
    if isinstance(obj, pd.DataFrame):
        return [_numpy_to_python(r) for r in obj.to_dict(orient="records")]
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, (np.integer, np.bool_)):
        return int(obj)
    if isinstance(obj, np.floating):
        return float(obj)
    if isinstance(obj, dict):
        return {k: _numpy_to_python(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        converted = [_numpy_to_python(item) for item in obj]
        return type(obj)(converted)
    return obj


# ------------------------------------------------------------------ #
# Dict-compatibility mixin
# ------------------------------------------------------------------ #


class _DictAccessMixin:
    """Dict-like access convenience for result dataclasses.

    Supports three access patterns:

    1. ``result["key"]``     — raises ``KeyError`` on miss
    2. ``result.get(key, d)`` — returns *d* on miss (default ``None``)
    3. ``"key" in result``   — membership test
    """

    # Fields to exclude from to_dict() serialisation.
    _EXCLUDE_FROM_DICT: ClassVar[frozenset[str]] = frozenset()

    def __getitem__(self, key: str) -> Any:
        """Attribute lookup via bracket syntax."""
        try:
            return getattr(self, key)
        except AttributeError:
            raise KeyError(key) from None

    def get(self, key: str, default: Any = None) -> Any:
        """Attribute lookup with a fallback default."""
        return getattr(self, key, default)

    def __contains__(self, key: object) -> bool:
        """Membership test: ``"key" in result``."""
        if not isinstance(key, str):
            return False
        return hasattr(self, key)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain dictionary.

        Runs :func:`_numpy_to_python` on every value.
        """
        result: dict[str, Any] = {}
        for f in fields(self):  # type: ignore[arg-type]
            if f.name in self._EXCLUDE_FROM_DICT:
                continue
            result[f.name] = _numpy_to_python(getattr(self, f.name))
        return result


# ------------------------------------------------------------------ #
# EstimateResult
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class EstimateResult(_DictAccessMixin):
    """Estimates with uncertainty and the auxiliaries needed to chain.

    Returned by every public entry point (``predictions``,
    ``comparisons``, ``slopes``, ``marginal_means``, ``hypotheses``).

    Attributes:
        table: Flat estimate table: identifier columns, ``estimate``
            and, when standard errors were computed, ``std.error``,
            ``statistic``, ``p.value``, ``s.value``, ``conf.low``,
            ``conf.high`` (plus TOST columns with ``equivalence``).
        estimate: Estimates on the differentiated scale, before any
            back-transform, shape ``(k,)``.
        jacobian: ``(k, p)`` Jacobian with respect to the model
            parameters, or ``None`` when the delta method was skipped.
        vcov: ``(k, k)`` covariance of *estimate*, or ``None``.
        model_vcov: ``(p, p)`` parameter covariance used, or ``None``.
        coef: Parameter vector θ.
        coef_names: Parameter labels.
        type: Prediction scale.
        calling_function: Public function that produced the result.
        by: Grouping columns of the aggregation.
        variables: Focal variables.
        conf_level: Interval coverage.
        df: Degrees of freedom of the reference distribution.
        draws: ``(k, S)`` posterior draws of *estimate*, or ``None``.
        transformed: Whether a back-transform was applied to *table*.
    """

    _EXCLUDE_FROM_DICT: ClassVar[frozenset[str]] = frozenset({"draws", "jacobian"})

    table: pd.DataFrame
    estimate: np.ndarray = field(repr=False)
    jacobian: np.ndarray | None = field(default=None, repr=False)
    vcov: np.ndarray | None = field(default=None, repr=False)
    model_vcov: np.ndarray | None = field(default=None, repr=False)
    coef: np.ndarray | None = field(default=None, repr=False)
    coef_names: tuple[str, ...] = field(default=(), repr=False)
    type: str | None = None
    calling_function: str = "predictions"
    by: tuple[str, ...] = ()
    variables: tuple[str, ...] = ()
    conf_level: float = 0.95
    df: float = np.inf
    draws: np.ndarray | None = field(default=None, repr=False)
    transformed: bool = False

    def __len__(self) -> int:
        return len(self.table)

    @property
    def std_error(self) -> np.ndarray | None:
        """Standard errors, or ``None`` when not computed."""
        if "std.error" not in self.table.columns:
            return None
        return self.table["std.error"].to_numpy(dtype=float)

    def to_frame(self) -> pd.DataFrame:
        """Copy of the estimate table."""
        return self.table.copy()


__all__ = ["EstimateResult"]
