"""Grid construction and weight resolution.

A *grid* is the covariate table over which predictions, comparisons
and slopes are evaluated.  Two construction modes are supported:

* **typical** (:func:`datagrid`) — the Cartesian product of the values
  the caller lists, with every unlisted predictor held at a typical
  value: the mean for numeric columns, the mode for categorical,
  string and boolean columns.
* **counterfactual** (:func:`datagridcf`) — the full source dataset is
  replicated once per combination of the listed values.  A
  ``rowidcf`` column links each replicate back to its source row.

Every grid carries a ``rowid`` column.  Weighted averages downstream
read an optional ``wts`` column, resolved by :func:`resolve_weights`.

Column dtypes follow the source data: a categorical column with known
categories stays categorical with the same categories, so that patsy
rebuilds the same dummy coding that was used at fit time.
"""

from __future__ import annotations

import itertools
from collections.abc import Mapping, Sequence
from typing import Any

import numpy as np
import pandas as pd

from ._compat import _ensure_pandas_df

# ------------------------------------------------------------------ #
# Column classification
# ------------------------------------------------------------------ #


def is_categorical(series: pd.Series) -> bool:
    """``True`` for categorical, string, object and boolean columns."""
    dtype = series.dtype
    return bool(
        isinstance(dtype, pd.CategoricalDtype)
        or pd.api.types.is_bool_dtype(dtype)
        or pd.api.types.is_object_dtype(dtype)
        or pd.api.types.is_string_dtype(dtype)
    )


def unique_levels(series: pd.Series) -> list[Any]:
    """Observed levels of *series*, in category order or sorted."""
    if isinstance(series.dtype, pd.CategoricalDtype):
        present = set(series.dropna().unique())
        return [c for c in series.cat.categories if c in present]
    values = list(pd.unique(series.dropna()))
    try:
        return sorted(values)
    except TypeError:
        return values


def typical_value(series: pd.Series) -> Any:
    """Mean of a numeric column, mode of anything else."""
    if is_categorical(series):
        mode = series.mode(dropna=True)
        if mode.empty:
            msg = f"Column {series.name!r} has no non-missing values."
            raise ValueError(msg)
        return mode.iloc[0]
    return float(series.mean())


def _coerce_like(values: Sequence[Any], source: pd.Series) -> pd.Series | np.ndarray:
    """Cast *values* to the dtype family of *source*."""
    if isinstance(source.dtype, pd.CategoricalDtype):
        return pd.Categorical(values, categories=source.cat.categories)
    if pd.api.types.is_bool_dtype(source.dtype):
        return np.asarray(values, dtype=bool)
    return np.asarray(values)


def _as_values(spec: Any, source: pd.Series | None) -> list[Any]:
    """Normalise a user value spec (scalar, sequence, callable) to a list."""
    if callable(spec):
        if source is None:
            msg = "Callable grid values require the source data column."
            raise ValueError(msg)
        spec = spec(source)
    if isinstance(spec, (pd.Series, pd.Index, np.ndarray)):
        return list(np.asarray(spec).ravel())
    if isinstance(spec, (list, tuple, set, range)):
        return list(spec)
    return [spec]


# ------------------------------------------------------------------ #
# Grid builders
# ------------------------------------------------------------------ #


def build_grid(
    data: pd.DataFrame,
    predictors: Sequence[str],
    fixed: Mapping[str, Any],
    grid_type: str = "typical",
) -> pd.DataFrame:
    """Build a grid from source *data*.

    Args:
        data: Source data (usually the data the model was fit on).
        predictors: Predictor columns the grid must contain.
        fixed: Mapping of column → values (scalar, sequence, or a
            callable applied to the source column).
        grid_type: ``"typical"`` or ``"counterfactual"``.

    Returns:
        The grid, with a ``rowid`` column (and ``rowidcf`` for
        counterfactual grids).

    Raises:
        ValueError: If *grid_type* is unknown, or a fixed column is
            absent from *data* in counterfactual mode.
    """
    if grid_type not in ("typical", "counterfactual"):
        msg = (
            f"Unknown grid_type {grid_type!r}.  "
            "Choose from: 'typical', 'counterfactual'."
        )
        raise ValueError(msg)

    values = {
        k: _as_values(v, data[k] if k in data.columns else None)
        for k, v in fixed.items()
    }
    for k, v in values.items():
        if len(v) == 0:
            msg = f"Grid values for {k!r} are empty."
            raise ValueError(msg)

    if grid_type == "counterfactual":
        missing = [k for k in values if k not in data.columns]
        if missing:
            msg = f"Counterfactual grid columns are missing from the data: {missing}."
            raise ValueError(msg)
        base = data.reset_index(drop=True)
        keys = list(values)
        combos = list(itertools.product(*(values[k] for k in keys))) or [()]
        blocks = []
        for combo in combos:
            block = base.copy()
            for k, v in zip(keys, combo, strict=True):
                block[k] = _coerce_like([v] * len(block), data[k])
            block["rowidcf"] = np.arange(len(base))
            blocks.append(block)
        grid = pd.concat(blocks, ignore_index=True)
    else:
        columns = list(dict.fromkeys([*predictors, *values]))
        for col in columns:
            if col not in values:
                if col not in data.columns:
                    msg = f"Predictor {col!r} is missing from the data."
                    raise ValueError(msg)
                values[col] = [typical_value(data[col])]
        combos = list(itertools.product(*(values[c] for c in columns)))
        grid = pd.DataFrame(combos, columns=columns)
        for col in columns:
            if col in data.columns:
                grid[col] = _coerce_like(list(grid[col]), data[col])

    grid = grid.drop(columns=["rowid"], errors="ignore")
    grid.insert(0, "rowid", np.arange(len(grid)))
    return grid


def datagrid(
    model: Any = None,
    newdata: Any = None,
    grid_type: str = "typical",
    adapter: Any = None,
    **fixed: Any,
) -> pd.DataFrame:
    """Build a typical (or counterfactual) grid.

    Unlisted predictors are held at their mean (numeric) or mode
    (categorical).  Listed predictors take every combination of the
    supplied values.

    Args:
        model: Fitted model; supplies the predictor list and, when
            *newdata* is omitted, the source data.
        newdata: Source data frame (pandas or Polars).
        grid_type: ``"typical"`` (default) or ``"counterfactual"``.
        adapter: Optional adapter name or instance.
        **fixed: Column → values.

    Returns:
        The grid as a pandas DataFrame.

    Examples:
        >>> datagrid(model, x=[-1, 0, 1], g=["a", "b"])  # doctest: +SKIP
    """
    data, predictors = _source(model, newdata, adapter)
    return build_grid(data, predictors, fixed, grid_type=grid_type)


def datagridcf(
    model: Any = None,
    newdata: Any = None,
    adapter: Any = None,
    **fixed: Any,
) -> pd.DataFrame:
    """Counterfactual grid: replicate the data for each value combination."""
    data, predictors = _source(model, newdata, adapter)
    return build_grid(data, predictors, fixed, grid_type="counterfactual")


def balanced_grid(
    data: pd.DataFrame,
    predictors: Sequence[str],
    categorical: Sequence[str] | None = None,
) -> pd.DataFrame:
    """All combinations of categorical levels, numerics at their means."""
    if categorical is None:
        categorical = [p for p in predictors if is_categorical(data[p])]
    fixed = {c: unique_levels(data[c]) for c in categorical}
    return build_grid(data, predictors, fixed, grid_type="typical")


def _source(model: Any, newdata: Any, adapter: Any) -> tuple[pd.DataFrame, list[str]]:
    if model is None:
        if newdata is None:
            msg = "datagrid() requires 'model' or 'newdata'."
            raise ValueError(msg)
        data = _ensure_pandas_df(newdata, name="newdata")
        return data, list(data.columns)

    from .adapters import resolve_adapter

    resolved = resolve_adapter(model, adapter)
    if newdata is not None:
        data = _ensure_pandas_df(newdata, name="newdata")
    else:
        data = resolved.get_data(model)
        if data is None:
            msg = (
                f"The {resolved.name!r} adapter does not retain the fitting "
                "data; pass 'newdata' explicitly."
            )
            raise ValueError(msg)
    predictors = [p for p in resolved.find_predictors(model) if p in data.columns]
    return data, predictors


# ------------------------------------------------------------------ #
# Weights
# ------------------------------------------------------------------ #
#
# "cells" weights a grid row by the share of observations in the
# source data falling in the same cell (all grid variables);
# "proportional" uses the share of the non-focal combination only, so
# each focal level is averaged with the population's mix of the other
# variables.  Grid cells absent from the data get weight 0.


def _frequency_weights(
    grid: pd.DataFrame,
    data: pd.DataFrame,
    columns: Sequence[str],
) -> np.ndarray:
    columns = [c for c in columns if c in data.columns and c in grid.columns]
    if not columns:
        return np.ones(len(grid))
    counts = data.groupby(list(columns), observed=True, dropna=False).size()
    shares = counts / counts.sum()
    lookup: dict[tuple[Any, ...], float] = {}
    for key, share in shares.items():
        lookup[key if isinstance(key, tuple) else (key,)] = float(share)
    rows = grid[list(columns)].itertuples(index=False, name=None)
    return np.array([lookup.get(tuple(r), 0.0) for r in rows], dtype=float)


def check_row_weights(wts: Any, calling_function: str) -> None:
    """Reject the marginal-means weighting schemes for row-level estimands.

    ``"cells"`` and ``"proportional"`` are defined over a balanced grid
    of focal and non-focal levels, which only :func:`marginal_means`
    builds.

    Raises:
        ValueError: If *wts* is ``"cells"`` or ``"proportional"``.
    """
    if isinstance(wts, str) and wts in ("cells", "proportional"):
        msg = (
            f"wts={wts!r} is only available in marginal_means().  "
            f"{calling_function}() accepts 'equal', a column name of the grid, "
            "or a numeric vector."
        )
        raise ValueError(msg)


def resolve_weights(
    grid: pd.DataFrame,
    wts: Any = None,
    data: pd.DataFrame | None = None,
    focal: Sequence[str] = (),
    nonfocal: Sequence[str] = (),
) -> pd.DataFrame:
    """Attach a non-negative ``wts`` column to *grid*.

    Args:
        grid: The evaluation grid (not modified).
        wts: ``None`` (keep an existing ``wts`` column, else equal),
            ``"equal"``, ``"cells"``, ``"proportional"``, a column name
            of *grid*, or a numeric vector of length ``len(grid)``.
        data: Source data for ``"cells"`` / ``"proportional"``.
        focal: Focal variables (``"cells"`` uses focal + non-focal).
        nonfocal: Non-focal grouping variables.

    Returns:
        A copy of *grid* with a ``wts`` column.

    Raises:
        ValueError: For unknown strings, length mismatches, or
            negative / non-finite weights.
    """
    out = grid.copy()
    if wts is None:
        if "wts" not in out.columns:
            out["wts"] = 1.0
    elif isinstance(wts, str) and wts == "equal":
        out["wts"] = 1.0
    elif isinstance(wts, str) and wts in ("cells", "proportional"):
        if data is None:
            msg = f"wts={wts!r} requires the data the model was fit on."
            raise ValueError(msg)
        cols = [*focal, *nonfocal] if wts == "cells" else list(nonfocal)
        out["wts"] = _frequency_weights(out, data, cols)
    elif isinstance(wts, str):
        if wts not in out.columns:
            msg = (
                f"Unknown wts {wts!r}.  Use 'equal', 'cells', 'proportional', "
                "a column name of the grid, or a numeric vector."
            )
            raise ValueError(msg)
        out["wts"] = out[wts].to_numpy(dtype=float)
    else:
        arr = np.asarray(wts, dtype=float).ravel()
        if arr.shape[0] != len(out):
            msg = f"'wts' has {arr.shape[0]} values for a grid of {len(out)} rows."
            raise ValueError(msg)
        out["wts"] = arr

    w = out["wts"].to_numpy(dtype=float)
    if not np.all(np.isfinite(w)) or np.any(w < 0):
        msg = "'wts' must be finite and non-negative."
        raise ValueError(msg)
    return out


__all__ = [
    "balanced_grid",
    "build_grid",
    "check_row_weights",
    "datagrid",
    "datagridcf",
    "is_categorical",
    "resolve_weights",
    "typical_value",
    "unique_levels",
]

