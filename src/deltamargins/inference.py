"""Inference finalizer: test statistics, p-values, intervals, TOST.

Turns ``estimate`` and ``std.error`` columns into ``statistic``,
``p.value``, ``s.value`` (``−log₂ p``), ``conf.low`` and ``conf.high``
using a Normal reference distribution (``df = inf``) or Student's t
(finite ``df``).  Optional steps:

* **Multiple comparisons** — ``p_adjust`` names a standard procedure,
  applied to the p-value vector through
  :func:`statsmodels.stats.multitest.multipletests`.  Intervals are
  not adjusted.
* **Equivalence** — ``equivalence=(lower, upper)`` adds two one-sided
  tests (non-inferiority against *lower*, non-superiority against
  *upper*) and their maximum as ``p.value.equiv``.

Back-transforms (``transform`` and the inverse link behind
``type="invlink(link)"``) are applied after inference to ``estimate``
and the interval bounds; statistics that no longer refer to the
transformed scale are dropped.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any

import numpy as np
import pandas as pd
from scipy import stats
from scipy.special import expit
from statsmodels.stats.multitest import multipletests

from .exceptions import ConflictingOptions

# Names accepted by ``p_adjust`` → statsmodels method names.
P_ADJUST_METHODS: dict[str, str | None] = {
    "holm": "holm",
    "hochberg": "simes-hochberg",
    "hommel": "hommel",
    "bonferroni": "bonferroni",
    "BH": "fdr_bh",
    "BY": "fdr_by",
    "fdr": "fdr_bh",
    "none": None,
}

TRANSFORMS: dict[str, Callable[[np.ndarray], np.ndarray]] = {
    "exp": np.exp,
    "expm1": np.expm1,
    "invlogit": expit,
    "log": np.log,
}

INFERENCE_COLUMNS = (
    "std.error",
    "statistic",
    "p.value",
    "s.value",
    "conf.low",
    "conf.high",
    "statistic.noninf",
    "statistic.nonsup",
    "p.value.noninf",
    "p.value.nonsup",
    "p.value.equiv",
)


# ------------------------------------------------------------------ #
# Validation
# ------------------------------------------------------------------ #


def validate_inference_args(
    conf_level: float,
    df: float = np.inf,
    p_adjust: str | None = None,
    equivalence: Sequence[float] | None = None,
) -> None:
    """Reject invalid or conflicting inference arguments.

    Raises:
        ValueError: If *conf_level* is outside ``(0, 1)``, *df* is not
            positive, *p_adjust* is unknown, or *equivalence* is not a
            pair with ``lower <= upper``.
        ConflictingOptions: If both *p_adjust* and *equivalence* are
            supplied.
    """
    if not (isinstance(conf_level, (int, float)) and 0 < conf_level < 1):
        msg = f"'conf_level' must be strictly between 0 and 1, got {conf_level!r}."
        raise ValueError(msg)
    if not (np.isscalar(df) and float(df) > 0):
        msg = f"'df' must be a positive number or numpy.inf, got {df!r}."
        raise ValueError(msg)
    if p_adjust is not None and p_adjust not in P_ADJUST_METHODS:
        msg = (
            f"Unknown p_adjust {p_adjust!r}.  "
            f"Choose from: {', '.join(P_ADJUST_METHODS)}."
        )
        raise ValueError(msg)
    if equivalence is not None:
        eq = np.asarray(equivalence, dtype=float).ravel()
        if eq.size != 2 or not np.all(np.isfinite(eq)) or eq[0] > eq[1]:
            msg = (
                "'equivalence' must be a pair (lower, upper) of finite numbers "
                f"with lower <= upper, got {equivalence!r}."
            )
            raise ValueError(msg)
    if p_adjust is not None and equivalence is not None:
        msg = "'p_adjust' and 'equivalence' cannot be used together."
        raise ConflictingOptions(msg)


# ------------------------------------------------------------------ #
# Reference distribution
# ------------------------------------------------------------------ #


def _dist(df: float) -> Any:
    return stats.norm if np.isinf(df) else stats.t(df)


def critical_value(conf_level: float, df: float = np.inf) -> float:
    """Two-sided critical value for a ``conf_level`` interval."""
    return float(_dist(df).ppf(1.0 - (1.0 - conf_level) / 2.0))


def adjust_pvalues(pvalues: np.ndarray, method: str | None) -> np.ndarray:
    """Adjust *pvalues* for multiple comparisons (NaNs left in place)."""
    p = np.asarray(pvalues, dtype=float).copy()
    sm_method = P_ADJUST_METHODS.get(method) if method is not None else None
    if sm_method is None:
        return p
    mask = np.isfinite(p)
    if mask.any():
        p[mask] = multipletests(p[mask], method=sm_method)[1]
    return p


# ------------------------------------------------------------------ #
# Finalizer
# ------------------------------------------------------------------ #


def finalize(
    table: pd.DataFrame,
    conf_level: float = 0.95,
    df: float = np.inf,
    null: float | np.ndarray = 0.0,
    p_adjust: str | None = None,
    equivalence: Sequence[float] | None = None,
) -> pd.DataFrame:
    """Add inference columns to an estimate table.

    Args:
        table: Table with ``estimate`` and ``std.error``.
        conf_level: Interval coverage.
        df: Degrees of freedom; ``numpy.inf`` selects the Normal.
        null: Null value, scalar or one per row.
        p_adjust: Multiple-comparison procedure (see
            :data:`P_ADJUST_METHODS`).
        equivalence: ``(lower, upper)`` bounds for TOST.

    Returns:
        A new table with ``statistic``, ``p.value``, ``s.value``,
        ``conf.low``, ``conf.high`` and, with *equivalence*, the TOST
        columns.
    """
    validate_inference_args(conf_level, df, p_adjust, equivalence)
    out = table.copy()
    est = out["estimate"].to_numpy(dtype=float)
    se = out["std.error"].to_numpy(dtype=float)
    dist = _dist(df)

    with np.errstate(divide="ignore", invalid="ignore"):
        z = (est - np.asarray(null, dtype=float)) / se
        p = 2.0 * dist.sf(np.abs(z))
        p = adjust_pvalues(p, p_adjust)
        crit = critical_value(conf_level, df)
        out["statistic"] = z
        out["p.value"] = p
        out["s.value"] = -np.log2(p)
        out["conf.low"] = est - crit * se
        out["conf.high"] = est + crit * se

        if equivalence is not None:
            lower, upper = (float(v) for v in equivalence)
            z_noninf = (est - lower) / se
            z_nonsup = (est - upper) / se
            p_noninf = dist.sf(z_noninf)
            p_nonsup = dist.cdf(z_nonsup)
            out["statistic.noninf"] = z_noninf
            out["statistic.nonsup"] = z_nonsup
            out["p.value.noninf"] = p_noninf
            out["p.value.nonsup"] = p_nonsup
            out["p.value.equiv"] = np.maximum(p_noninf, p_nonsup)
    return out


def summarize_draws(
    table: pd.DataFrame,
    draws: np.ndarray,
    conf_level: float = 0.95,
) -> pd.DataFrame:
    """Posterior summary: median estimate and equal-tailed interval.

    Args:
        table: Estimate table (its ``estimate`` column is replaced).
        draws: ``(k, S)`` evaluations, one column per draw.
        conf_level: Interval coverage.
    """
    validate_inference_args(conf_level)
    alpha = (1.0 - conf_level) / 2.0
    out = table.copy()
    out["estimate"] = np.median(draws, axis=1)
    out["conf.low"] = np.quantile(draws, alpha, axis=1)
    out["conf.high"] = np.quantile(draws, 1.0 - alpha, axis=1)
    return out


# ------------------------------------------------------------------ #
# Back-transforms
# ------------------------------------------------------------------ #


def resolve_transform(
    transform: str | Callable[[np.ndarray], np.ndarray] | None,
) -> Callable[[np.ndarray], np.ndarray] | None:
    """Map a ``transform`` argument to a vectorised function."""
    if transform is None or callable(transform):
        return transform
    if isinstance(transform, str) and transform in TRANSFORMS:
        return TRANSFORMS[transform]
    msg = (
        f"Unknown transform {transform!r}.  Pass a callable or one of: "
        f"{', '.join(TRANSFORMS)}."
    )
    raise ValueError(msg)


def backtransform(
    table: pd.DataFrame,
    fn: Callable[[np.ndarray], np.ndarray],
) -> pd.DataFrame:
    """Apply *fn* to ``estimate`` and the interval bounds.

    ``std.error`` and ``statistic`` are dropped since they describe the
    untransformed scale.  Bounds are re-sorted so that
    ``conf.low <= conf.high`` for decreasing functions.
    """
    out = table.copy()
    out["estimate"] = np.asarray(fn(out["estimate"].to_numpy(dtype=float)), dtype=float)
    if "conf.low" in out.columns and "conf.high" in out.columns:
        lo = np.asarray(fn(out["conf.low"].to_numpy(dtype=float)), dtype=float)
        hi = np.asarray(fn(out["conf.high"].to_numpy(dtype=float)), dtype=float)
        out["conf.low"] = np.fmin(lo, hi)
        out["conf.high"] = np.fmax(lo, hi)
    return out.drop(columns=["std.error", "statistic"], errors="ignore")


def order_columns(table: pd.DataFrame) -> pd.DataFrame:
    """Move ``estimate`` and inference columns after the identifiers."""
    ident = [c for c in table.columns if c != "estimate" and c not in INFERENCE_COLUMNS]
    infer = [c for c in INFERENCE_COLUMNS if c in table.columns]
    return table[[*ident, "estimate", *infer]]


__all__ = [
    "INFERENCE_COLUMNS",
    "P_ADJUST_METHODS",
    "TRANSFORMS",
    "adjust_pvalues",
    "backtransform",
    "critical_value",
    "finalize",
    "order_columns",
    "resolve_transform",
    "summarize_draws",
    "validate_inference_args",
]
