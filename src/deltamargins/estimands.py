"""Estimand functions: predictions, comparisons and slopes.

Every estimand is a pure function of the parameter vector θ at fixed
data.  This module builds the fixed parts:

* **Contrast grids** — for each focal variable and each (lo, hi)
  pair, two copies of the evaluation grid that differ only in the
  focal column.  :func:`comparison_contrasts` handles numeric steps
  (``1``, ``"sd"``, ``"2sd"``, ``"iqr"``, ``"minmax"``, explicit pairs,
  callables) and categorical level pairs (``"reference"``,
  ``"sequential"``, ``"pairwise"`` and their reverses).
  :func:`slope_contrasts` builds the ``x ± eps/2`` pair for numeric
  focal variables and falls back to reference contrasts for
  categorical ones.
* **Combine functions** — how two prediction vectors become a
  comparison: ``difference``, ``ratio``, ``lnratio``, ``lnor``,
  ``lift``, their ``…avg`` variants (combine group means instead of
  rows), or a user callable ``f(hi, lo)``.

The grids carry every column of the base grid, so formula-fitted
models rebuild all terms derived from the focal variable (powers,
logs, interactions) from its perturbed value.  Perturbations are not
checked against the support of the variable.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import numpy as np
import pandas as pd

from ._compat import _ensure_pandas_df, _is_dataframe_like
from .exceptions import EmptyFocalSet
from .grid import _coerce_like, is_categorical, unique_levels

# ------------------------------------------------------------------ #
# Combine functions
# ------------------------------------------------------------------ #


def _lnor(hi: np.ndarray, lo: np.ndarray) -> np.ndarray:
    return np.log((hi / (1.0 - hi)) / (lo / (1.0 - lo)))


COMPARISONS: dict[str, Callable[[np.ndarray, np.ndarray], np.ndarray]] = {
    "difference": lambda hi, lo: hi - lo,
    "ratio": lambda hi, lo: hi / lo,
    "lnratio": lambda hi, lo: np.log(hi / lo),
    "lnor": _lnor,
    "lift": lambda hi, lo: (hi - lo) / lo,
}

SLOPES = ("dydx", "eyex", "eydx", "dyex")

_SLOPE_LABELS = {
    "dydx": "dY/dX",
    "eyex": "eY/eX",
    "eydx": "eY/dX",
    "dyex": "dY/eX",
}


@dataclass(frozen=True)
class Comparison:
    """A resolved ``comparison`` argument.

    Attributes:
        fn: ``fn(hi, lo) -> ndarray``.
        avg: Combine group means of *hi* and *lo* instead of rows.
        name: Label of the comparison.
    """

    fn: Callable[[np.ndarray, np.ndarray], np.ndarray] = field(repr=False)
    avg: bool = False
    name: str = "difference"

    def __call__(self, hi: np.ndarray, lo: np.ndarray) -> np.ndarray:
        out = np.asarray(self.fn(hi, lo), dtype=float)
        if out.shape != np.shape(hi):
            msg = (
                f"The comparison function returned shape {out.shape}; "
                f"expected {np.shape(hi)} (one value per row)."
            )
            raise ValueError(msg)
        return out


def resolve_comparison(comparison: str | Callable[..., Any]) -> Comparison:
    """Resolve a ``comparison`` name or callable.

    Raises:
        ValueError: For unknown names.
    """
    if callable(comparison):
        return Comparison(fn=comparison, avg=False, name=getattr(comparison, "__name__", "custom"))
    if isinstance(comparison, str):
        if comparison in COMPARISONS:
            return Comparison(fn=COMPARISONS[comparison], avg=False, name=comparison)
        base = comparison.removesuffix("avg")
        if comparison.endswith("avg") and base in COMPARISONS:
            return Comparison(fn=COMPARISONS[base], avg=True, name=comparison)
    valid = [*COMPARISONS, *(f"{c}avg" for c in COMPARISONS)]
    msg = (
        f"Unknown comparison {comparison!r}.  Choose from: "
        f"{', '.join(valid)}, or pass a callable f(hi, lo)."
    )
    raise ValueError(msg)


def slope_value(
    slope: str,
    hi: np.ndarray,
    lo: np.ndarray,
    eps: float,
    x: np.ndarray,
    y: np.ndarray | None,
) -> np.ndarray:
    """Finite-difference derivative and its elasticity variants."""
    dydx = (hi - lo) / eps
    if slope == "dydx":
        return dydx
    if slope == "eyex":
        return dydx * (x / y)
    if slope == "eydx":
        return dydx / y
    if slope == "dyex":
        return dydx * x
    msg = f"Unknown slope {slope!r}.  Choose from: {', '.join(SLOPES)}."
    raise ValueError(msg)


# ------------------------------------------------------------------ #
# Contrast grids
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class Contrast:
    """One (term, contrast) block: two grids differing in *term*.

    Attributes:
        term: Focal variable.
        label: Human-readable contrast label (``"+1"``, ``"b - a"``,
            ``"dY/dX"``).
        lo: Grid at the low value.
        hi: Grid at the high value.
        eps: Step width for numeric slopes; ``None`` for discrete
            contrasts.
    """

    term: str
    label: str
    lo: pd.DataFrame = field(repr=False)
    hi: pd.DataFrame = field(repr=False)
    eps: float | None = None


def set_values(grid: pd.DataFrame, var: str, values: Any) -> pd.DataFrame:
    """Copy of *grid* with column *var* replaced (scalar or per row)."""
    out = grid.copy()
    arr = list(np.broadcast_to(np.asarray(values, dtype=object), (len(grid),)))
    if is_categorical(grid[var]):
        out[var] = _coerce_like(arr, grid[var])
    else:
        out[var] = np.asarray(arr, dtype=float)
    return out


def normalize_variables(
    variables: Any,
    predictors: Sequence[str],
    response: str | None = None,
) -> dict[str, Any]:
    """Normalise ``variables`` to a ``{name: spec}`` dict.

    ``None`` selects every predictor; a string or list selects those
    names with default specs.

    Raises:
        EmptyFocalSet: If no focal variable remains.
    """
    if variables is None:
        out = {p: None for p in predictors if p != response}
    elif isinstance(variables, str):
        out = {variables: None}
    elif isinstance(variables, Mapping):
        out = dict(variables)
    elif isinstance(variables, (list, tuple)):
        out = {str(v): None for v in variables}
    else:
        msg = (
            "'variables' must be None, a column name, a list of column "
            f"names or a dict; got {type(variables).__name__}."
        )
        raise TypeError(msg)
    if response is not None and response in out:
        msg = f"The response {response!r} cannot be a focal variable."
        raise ValueError(msg)
    if not out:
        msg = "No focal variables were found.  Pass 'variables' explicitly."
        raise EmptyFocalSet(msg)
    return out


def _numeric_pairs(
    x: np.ndarray,
    spec: Any,
    source: pd.Series,
    var: str,
) -> list[tuple[str, Any, Any]]:
    if spec is None:
        spec = 1
    if isinstance(spec, bool):
        msg = f"Invalid contrast for numeric variable {var!r}: {spec!r}."
        raise ValueError(msg)
    if isinstance(spec, (int, float, np.integer, np.floating)):
        h = float(spec)
        return [(f"+{spec}", x, x + h)]
    if isinstance(spec, str):
        s = source.astype(float)
        if spec == "sd":
            sd = float(s.std())
            return [("+sd", x - sd / 2.0, x + sd / 2.0)]
        if spec == "2sd":
            sd = float(s.std())
            return [("+2sd", x - sd, x + sd)]
        if spec == "iqr":
            q1, q3 = np.nanquantile(s, [0.25, 0.75])
            return [("Q3 - Q1", q1, q3)]
        if spec == "minmax":
            return [("Max - Min", float(s.min()), float(s.max()))]
    if isinstance(spec, (tuple, list)) and len(spec) == 2:
        lo, hi = spec
        return [(f"{hi} - {lo}", float(lo), float(hi))]
    if callable(spec):
        frame = spec(x)
        if not _is_dataframe_like(frame):
            msg = f"The contrast function for {var!r} must return a data frame with two columns (lo, hi)."
            raise ValueError(msg)
        frame = _ensure_pandas_df(frame, name=f"variables[{var!r}]")
        if frame.shape != (len(x), 2):
            msg = (
                f"The contrast function for {var!r} returned shape {frame.shape}; "
                f"expected ({len(x)}, 2)."
            )
            raise ValueError(msg)
        return [("custom", frame.iloc[:, 0].to_numpy(dtype=float), frame.iloc[:, 1].to_numpy(dtype=float))]
    msg = (
        f"Invalid contrast for numeric variable {var!r}: {spec!r}.  Use a "
        "number, 'sd', '2sd', 'iqr', 'minmax', a (lo, hi) pair, or a "
        "function returning a two-column data frame."
    )
    raise ValueError(msg)


def _categorical_pairs(spec: Any, source: pd.Series, var: str) -> list[tuple[str, Any, Any]]:
    if pd.api.types.is_bool_dtype(source.dtype):
        return [("True - False", False, True)]
    levels = unique_levels(source)
    if spec is None:
        spec = "reference"
    if isinstance(spec, (tuple, list)) and len(spec) == 2:
        lo, hi = spec
        unknown = [v for v in (lo, hi) if v not in levels]
        if unknown:
            msg = f"Levels {unknown} are not observed for {var!r}.  Observed: {levels}."
            raise ValueError(msg)
        return [(f"{hi} - {lo}", lo, hi)]
    if not isinstance(spec, str):
        msg = f"Invalid contrast for categorical variable {var!r}: {spec!r}."
        raise ValueError(msg)
    if len(levels) < 2:
        return []

    if spec in ("reference", "revreference"):
        pairs = [(levels[0], lv) for lv in levels[1:]]
    elif spec in ("sequential", "revsequential"):
        pairs = [(levels[i], levels[i + 1]) for i in range(len(levels) - 1)]
    elif spec in ("pairwise", "revpairwise"):
        pairs = [(levels[i], levels[j]) for i in range(len(levels)) for j in range(i + 1, len(levels))]
    else:
        msg = (
            f"Invalid contrast for categorical variable {var!r}: {spec!r}.  "
            "Use 'reference', 'revreference', 'sequential', 'pairwise', "
            "'revpairwise', or a pair of levels."
        )
        raise ValueError(msg)
    if spec.startswith("rev"):
        pairs = [(hi, lo) for lo, hi in pairs]
    return [(f"{hi} - {lo}", lo, hi) for lo, hi in pairs]


def _source_column(var: str, grid: pd.DataFrame, data: pd.DataFrame | None) -> pd.Series:
    if data is not None and var in data.columns:
        return data[var]
    return grid[var]


def _check_columns(grid: pd.DataFrame, variables: Mapping[str, Any]) -> None:
    missing = [v for v in variables if v not in grid.columns]
    if missing:
        msg = f"Focal variables {missing} are not columns of the evaluation grid."
        raise ValueError(msg)


def comparison_contrasts(
    grid: pd.DataFrame,
    variables: Mapping[str, Any],
    data: pd.DataFrame | None = None,
) -> list[Contrast]:
    """Contrast blocks for ``comparisons``.

    Args:
        grid: Evaluation grid.
        variables: ``{name: spec}`` (see module docstring).
        data: Source data used for level sets and ``sd``/``iqr``
            statistics; defaults to *grid*.

    Raises:
        EmptyFocalSet: If no variable yields a contrast.
    """
    _check_columns(grid, variables)
    blocks: list[Contrast] = []
    for var, spec in variables.items():
        source = _source_column(var, grid, data)
        if is_categorical(source):
            pairs = _categorical_pairs(spec, source, var)
        else:
            pairs = _numeric_pairs(grid[var].to_numpy(dtype=float), spec, source, var)
        for label, lo, hi in pairs:
            blocks.append(
                Contrast(
                    term=var,
                    label=label,
                    lo=set_values(grid, var, lo),
                    hi=set_values(grid, var, hi),
                )
            )
    if not blocks:
        msg = "None of the focal variables yields a contrast (categorical variables need at least two levels)."
        raise EmptyFocalSet(msg)
    return blocks


def default_eps(source: pd.Series) -> float:
    """``1e-4 × range`` of *source*, or ``1e-4`` for a zero range."""
    s = source.astype(float)
    spread = float(np.nanmax(s) - np.nanmin(s)) if len(s) else 0.0
    return 1e-4 * spread if spread > 0 and np.isfinite(spread) else 1e-4


def slope_contrasts(
    grid: pd.DataFrame,
    variables: Mapping[str, Any],
    data: pd.DataFrame | None = None,
    eps: float | None = None,
    slope: str = "dydx",
) -> list[Contrast]:
    """Contrast blocks for ``slopes``.

    Numeric focal variables get the pair ``x ± eps/2``.  Categorical
    and boolean ones degrade to reference contrasts.
    """
    if slope not in SLOPES:
        msg = f"Unknown slope {slope!r}.  Choose from: {', '.join(SLOPES)}."
        raise ValueError(msg)
    if eps is not None and not (np.isfinite(eps) and eps > 0):
        msg = f"'eps' must be a positive finite number, got {eps!r}."
        raise ValueError(msg)
    _check_columns(grid, variables)
    blocks: list[Contrast] = []
    for var in variables:
        source = _source_column(var, grid, data)
        if is_categorical(source):
            for label, lo, hi in _categorical_pairs("reference", source, var):
                blocks.append(
                    Contrast(
                        term=var,
                        label=label,
                        lo=set_values(grid, var, lo),
                        hi=set_values(grid, var, hi),
                    )
                )
            continue
        step = float(eps) if eps is not None else default_eps(source)
        x = grid[var].to_numpy(dtype=float)
        blocks.append(
            Contrast(
                term=var,
                label=_SLOPE_LABELS[slope],
                lo=set_values(grid, var, x - step / 2.0),
                hi=set_values(grid, var, x + step / 2.0),
                eps=step,
            )
        )
    if not blocks:
        msg = "None of the focal variables yields a slope or contrast."
        raise EmptyFocalSet(msg)
    return blocks


def stack_contrast_table(grid: pd.DataFrame, blocks: Sequence[Contrast]) -> pd.DataFrame:
    """Identification table: one copy of *grid* per block.

    ``term`` and ``contrast`` are placed after ``rowid``.
    """
    frames = []
    for block in blocks:
        frame = grid.copy()
        insert_at = 1 if "rowid" in frame.columns else 0
        frame.insert(insert_at, "term", block.term)
        frame.insert(insert_at + 1, "contrast", block.label)
        frames.append(frame)
    return pd.concat(frames, ignore_index=True)


__all__ = [
    "COMPARISONS",
    "SLOPES",
    "Comparison",
    "Contrast",
    "comparison_contrasts",
    "default_eps",
    "normalize_variables",
    "resolve_comparison",
    "set_values",
    "slope_contrasts",
    "slope_value",
    "stack_contrast_table",
]
