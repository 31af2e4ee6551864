"""Adjusted predictions.

:func:`predictions` evaluates the model on a grid (the model data, a
user frame, a typical grid or a counterfactual grid) at the fitted
parameters and attaches delta-method standard errors.
:func:`avg_predictions` averages the predictions, optionally within
groups.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

import numpy as np
import pandas as pd

from ._results import EstimateResult
from .aggregate import build_aggregation
from .engine import MarginsEngine
from .grid import build_grid, check_row_weights, is_categorical, resolve_weights, unique_levels
from .hypothesis import parse_hypothesis
from .pipeline import EstimandPipeline


def _counterfactual_values(
    variables: Any,
    source: pd.DataFrame,
) -> dict[str, Any]:
    """Values for a counterfactual grid.

    A mapping is used as-is.  Names without values take every observed
    level (categorical) or Tukey's five numbers (numeric).
    """
    if isinstance(variables, Mapping):
        return dict(variables)
    names = [variables] if isinstance(variables, str) else list(variables)
    out: dict[str, Any] = {}
    for name in names:
        if name not in source.columns:
            msg = f"'variables' entry {name!r} is not a column of the data."
            raise ValueError(msg)
        col = source[name]
        if is_categorical(col):
            out[name] = unique_levels(col)
        else:
            out[name] = list(np.nanquantile(col.astype(float), [0.0, 0.25, 0.5, 0.75, 1.0]))
    return out


def predictions(
    model: Any,
    newdata: Any = None,
    variables: Mapping[str, Any] | Sequence[str] | str | None = None,
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
    """Predictions with delta-method standard errors.

    Args:
        model: A fitted model supported by a registered adapter, or a
            :class:`~deltamargins.FittedModel`.
        newdata: ``None`` (the model data), a pandas or Polars data
            frame, ``"mean"`` (typical grid) or ``"balanced"`` (all
            combinations of categorical levels).
        variables: Counterfactual values: a dict ``{column: values}``,
            or column names (every level / Tukey's five numbers).  The
            grid is replicated once per combination.
        vcov: ``True`` (model covariance), ``False`` (no standard
            errors), a robust estimator name (``"HC0"`` … ``"HC3"`` for
            linear models) or a ``(p, p)`` matrix.
        conf_level: Interval coverage in ``(0, 1)``.
        type: Prediction scale; ``None`` selects the model's default.
        by: ``False``, ``True`` (average everything), column name(s),
            or a data frame with a ``by`` column.
        wts: Weights for averaging: ``"equal"``, a column name of the
            grid, or a numeric vector.  ``"cells"`` and
            ``"proportional"`` belong to :func:`marginal_means`.
        hypothesis: Hypothesis on the estimates (see
            :func:`~deltamargins.hypothesis.parse_hypothesis`).
        equivalence: ``(lower, upper)`` bounds for TOST.
        p_adjust: Multiple-comparison adjustment of p-values.
        df: Degrees of freedom; ``numpy.inf`` for Normal inference.
        transform: Back-transform applied to estimates and intervals.
        numderiv: ``"fdcentral"``, ``"fdforward"`` or ``(method, eps)``.
        n_jobs: joblib workers for the Jacobian columns.
        adapter: Adapter name or instance, overriding detection.

    Returns:
        An :class:`~deltamargins.EstimateResult`.
    """
    check_row_weights(wts, "predictions")
    engine = MarginsEngine(
        model,
        calling_function="predictions",
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
    focal: list[str] = []
    if variables is not None:
        values = _counterfactual_values(variables, engine.data if engine.data is not None else grid)
        focal = list(values)
        grid = build_grid(grid.drop(columns=["rowid"]), engine.predictors, values, grid_type="counterfactual")
    if wts is not None:
        grid = resolve_weights(grid, wts)

    aggregation, grid = build_aggregation(grid, by)
    table = aggregation.keys if aggregation is not None else grid
    hyp = parse_hypothesis(hypothesis, len(table))

    pipeline = (
        EstimandPipeline.for_predictions(engine.adapter, model, grid, engine.predict_type)
        .with_aggregation(aggregation)
        .with_hypothesis(hyp)
    )
    return engine.run(
        pipeline,
        table,
        by=aggregation.by if aggregation is not None else (),
        variables=focal,
    )


def avg_predictions(model: Any, *, by: Any = True, **kwargs: Any) -> EstimateResult:
    """Average predictions; ``by=True`` averages over the whole grid."""
    return predictions(model, by=by, **kwargs)


__all__ = ["avg_predictions", "predictions"]
