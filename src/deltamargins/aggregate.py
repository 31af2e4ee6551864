"""Grouped weighted averages as an explicit linear map.

An :class:`Aggregation` holds the averaging matrix ``A`` (``g × n``)
whose row *j* contains the normalised weights of the rows that belong
to group *j*, together with the table of group keys.  Aggregated
estimates are ``A @ b``.

The matrix is computed once from the grid and re-applied inside the
differentiated closure, so the delta-method engine differentiates the
same weighted mean that produced the point estimate.  Because the map
is linear, its Jacobian contribution is exactly ``A @ J``.

``by`` specifications
~~~~~~~~~~~~~~~~~~~~~
* ``False`` / ``None`` — no aggregation.
* ``True`` — one group per ``(term, contrast)`` block (one group in
  total for predictions).
* ``str`` / ``list[str]`` — group by these columns (plus the block
  identifiers ``term`` and ``contrast`` where present).
* ``DataFrame`` — a mapping table with a ``by`` column; the other
  columns are matched against the estimate table and rows sharing a
  ``by`` label are averaged together.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import numpy as np
import pandas as pd

from ._compat import _ensure_pandas_df, _is_dataframe_like

_BLOCK_COLUMNS = ("term", "contrast")


@dataclass(frozen=True)
class Aggregation:
    """Averaging map from per-row estimates to group estimates.

    Attributes:
        matrix: ``(g, n)`` averaging matrix; each row sums to 1.
        keys: Group key table with ``g`` rows.
        by: Names of the grouping columns.
    """

    matrix: np.ndarray = field(repr=False)
    keys: pd.DataFrame = field(repr=False)
    by: tuple[str, ...] = ()

    @property
    def n_groups(self) -> int:
        return int(self.matrix.shape[0])

    def apply(self, values: np.ndarray) -> np.ndarray:
        """Weighted group means of *values* (``(n,)`` or ``(n, m)``)."""
        return self.matrix @ values


def _group_columns(table: pd.DataFrame, by: Any) -> list[str]:
    block = [c for c in _BLOCK_COLUMNS if c in table.columns]
    if by is True:
        return block
    cols = [by] if isinstance(by, str) else list(by)
    missing = [c for c in cols if c not in table.columns]
    if missing:
        available = ", ".join(str(c) for c in table.columns)
        msg = (
            f"'by' columns {missing} are not in the estimate table.  "
            f"Available columns: {available}."
        )
        raise ValueError(msg)
    return list(dict.fromkeys([*block, *cols]))


def _attach_by_labels(table: pd.DataFrame, by: pd.DataFrame) -> pd.DataFrame:
    """Merge a ``by`` mapping table onto *table* (row order preserved)."""
    if "by" not in by.columns:
        msg = "A 'by' data frame must contain a column named 'by'."
        raise ValueError(msg)
    on = [c for c in by.columns if c != "by"]
    missing = [c for c in on if c not in table.columns]
    if not on or missing:
        msg = (
            "The columns of a 'by' data frame (other than 'by') must all "
            f"appear in the estimate table; missing: {missing or ['<none>']}."
        )
        raise ValueError(msg)
    left = table[on].astype(object).reset_index(drop=True)
    left["__row"] = np.arange(len(table))
    right = by[[*on, "by"]].astype({c: object for c in on}).drop_duplicates(on)
    merged = left.merge(right, on=on, how="left").sort_values("__row")
    out = table.copy()
    out["by"] = merged["by"].to_numpy()
    if out["by"].isna().any():
        msg = "Some estimate rows have no matching entry in the 'by' data frame."
        raise ValueError(msg)
    return out


def build_aggregation(
    table: pd.DataFrame,
    by: Any,
    weights: Sequence[float] | np.ndarray | None = None,
) -> tuple[Aggregation | None, pd.DataFrame]:
    """Build the averaging map for *table* under the ``by`` spec.

    Args:
        table: Per-row estimate metadata (grid columns, ``term``,
            ``contrast``, optional ``wts``).
        by: ``by`` specification (see module docstring).
        weights: Row weights; defaults to the ``wts`` column, else 1.

    Returns:
        ``(aggregation, table)``.  *aggregation* is ``None`` when no
        averaging is requested.  The returned table carries the ``by``
        label column when a mapping frame was supplied.

    Raises:
        ValueError: For unknown columns, negative weights, or a group
            whose total weight is zero.
    """
    if by is None or by is False:
        return None, table

    if _is_dataframe_like(by):
        table = _attach_by_labels(table, _ensure_pandas_df(by, name="by"))
        by = ["by"]
    elif not (by is True or isinstance(by, (str, list, tuple))):
        msg = (
            "'by' must be True, False, a column name, a list of column "
            f"names, or a data frame with a 'by' column; got {by!r}."
        )
        raise TypeError(msg)

    cols = _group_columns(table, by)
    n = len(table)

    if weights is None:
        w = table["wts"].to_numpy(dtype=float) if "wts" in table.columns else np.ones(n)
    else:
        w = np.asarray(weights, dtype=float).ravel()
    if w.shape[0] != n:
        msg = f"Got {w.shape[0]} weights for {n} estimate rows."
        raise ValueError(msg)
    if np.any(w < 0) or not np.all(np.isfinite(w)):
        msg = "Weights must be finite and non-negative."
        raise ValueError(msg)

    if cols:
        grouped = table[cols].groupby(cols, sort=True, dropna=False, observed=True)
        codes = grouped.ngroup().to_numpy()
        keys = grouped.size().reset_index()[cols]
    else:
        codes = np.zeros(n, dtype=int)
        keys = pd.DataFrame(index=range(1))

    g = len(keys)
    A = np.zeros((g, n))
    A[codes, np.arange(n)] = w
    totals = A.sum(axis=1)
    if np.any(totals <= 0):
        bad = keys.iloc[np.flatnonzero(totals <= 0)].to_dict("records")
        msg = f"Groups with zero total weight cannot be averaged: {bad}."
        raise ValueError(msg)
    A /= totals[:, None]
    return Aggregation(matrix=A, keys=keys.reset_index(drop=True), by=tuple(cols)), table


def average_rows(
    values: np.ndarray,
    table: pd.DataFrame,
    by: Any = True,
    weights: Sequence[float] | np.ndarray | None = None,
) -> pd.DataFrame:
    """Convenience wrapper: grouped weighted means of *values* as a frame."""
    agg, table = build_aggregation(table, by, weights)
    if agg is None:
        out = table.copy()
        out["estimate"] = np.asarray(values, dtype=float)
        return out
    out = agg.keys.copy()
    out["estimate"] = agg.apply(np.asarray(values, dtype=float))
    return out


__all__ = ["Aggregation", "average_rows", "build_aggregation"]
