"""Comparisons: contrasts between predictions at two values of a focal variable.

For each focal variable and each (lo, hi) pair the model is evaluated
on two copies of the grid that differ only in that variable, and the
two prediction vectors are combined (difference, ratio, …).
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import numpy as np

from ._results import EstimateResult
from .aggregate import build_aggregation
from .engine import MarginsEngine
from .estimands import (
    comparison_contrasts,
    normalize_variables,
    resolve_comparison,
    stack_contrast_table,
)
from .grid import check_row_weights, resolve_weights
from .hypothesis import parse_hypothesis
from .pipeline import EstimandPipeline


def comparisons(
    model: Any,
    variables: Any = None,
    newdata: Any = None,
    comparison: Any = "difference",
    vcov: Any = True,
    conf_level: float = 0.95,
    type: str | None = None,
    by: Any = False,
    wts: Any = None,
    hypothesis: Any = None,
    equivalence: Sequence[float] | None = None,
    p_adjust: str | None = None,
    df: float = np.inf,
    transform: Any = None,
    numderiv: Any = None,
    n_jobs: int = 1,
    adapter: Any = None,
) -> EstimateResult:
    """Contrasts with delta-method standard errors.

    Args:
        model: A fitted model.
        variables: Focal variables: ``None`` (every predictor), a
            name, a list of names, or a dict ``{name: contrast}``.
            Numeric contrasts: a step (default 1), ``"sd"``, ``"2sd"``,
            ``"iqr"``, ``"minmax"``, a ``(lo, hi)`` pair or a function
            returning a two-column frame.  Categorical contrasts:
            ``"reference"`` (default), ``"revreference"``,
            ``"sequential"``, ``"pairwise"``, ``"revpairwise"`` or a
            pair of levels.
        newdata: Evaluation grid (see :func:`~deltamargins.predictions`).
        comparison: ``"difference"``, ``"ratio"``, ``"lnratio"``,
            ``"lnor"``, ``"lift"``, an ``…avg`` variant, or a callable
            ``f(hi, lo)``.
        by: Grouping for averages (``True`` averages each contrast).

    The remaining arguments are those of
    :func:`~deltamargins.predictions`.

    Returns:
        An :class:`~deltamargins.EstimateResult` with ``term`` and
        ``contrast`` columns.
    """
    cmp = resolve_comparison(comparison)
    check_row_weights(wts, "comparisons")
    engine = MarginsEngine(
        model,
        calling_function="comparisons",
        type=type,
        vcov=vcov,
        conf_level=conf_level,
        df=df,
        p_adjust=p_adjust,
        equivalence=equivalence,
        transform=transform,
        numderiv=numderiv,
        n_jobs=n_jobs,
        hypothesis=hypothesis,
        adapter=adapter,
    )
    grid = engine.grid(newdata)
    focal = normalize_variables(variables, engine.predictors, engine.response)
    if wts is not None:
        grid = resolve_weights(grid, wts)
    contrasts = comparison_contrasts(grid, focal, engine.data)
    table = stack_contrast_table(grid, contrasts)

    if cmp.avg and (by is False or by is None):
        by = True
    aggregation, table = build_aggregation(table, by)

    pipeline = EstimandPipeline.for_contrasts(
        engine.adapter, model, grid, contrasts, engine.predict_type, comparison=cmp
    )
    if aggregation is None and hypothesis is None:
        hi, lo = pipeline.contrast_parts(engine.coef)
        table = table.assign(predicted_lo=lo, predicted_hi=hi)
    else:
        table = aggregation.keys if aggregation is not None else table

    pipeline = pipeline.with_aggregation(aggregation).with_hypothesis(
        parse_hypothesis(hypothesis, len(table))
    )
    return engine.run(
        pipeline,
        table,
        by=aggregation.by if aggregation is not None else (),
        variables=list(focal),
    )


def avg_comparisons(model: Any, variables: Any = None, *, by: Any = True, **kwargs: Any) -> EstimateResult:
    """Average comparisons; ``by=True`` averages each contrast over the grid."""
    return comparisons(model, variables=variables, by=by, **kwargs)


__all__ = ["avg_comparisons", "comparisons"]
