"""Slopes (marginal effects) and elasticities.

The partial derivative of the prediction with respect to a numeric
focal variable is the symmetric finite difference

    (f(x + eps/2) − f(x − eps/2)) / eps

with ``eps = 1e-4 × range(x)`` unless given.  Terms derived from the
focal variable in the model formula are recomputed from the perturbed
value.  Categorical focal variables yield reference contrasts instead.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import numpy as np

from ._results import EstimateResult
from .aggregate import build_aggregation
from .engine import MarginsEngine
from .estimands import normalize_variables, slope_contrasts, stack_contrast_table
from .grid import check_row_weights, resolve_weights
from .hypothesis import parse_hypothesis
from .pipeline import EstimandPipeline


def slopes(
    model: Any,
    variables: Any = None,
    newdata: Any = None,
    slope: str = "dydx",
    eps: float | None = None,
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
    """Partial derivatives with delta-method standard errors.

    Args:
        model: A fitted model.
        variables: Focal variables (``None`` selects every predictor).
        newdata: Evaluation grid (see :func:`~deltamargins.predictions`).
        slope: ``"dydx"`` (default), ``"eyex"``, ``"eydx"`` or
            ``"dyex"``.
        eps: Finite-difference step in units of the focal variable.

    The remaining arguments are those of
    :func:`~deltamargins.predictions`.

    Returns:
        An :class:`~deltamargins.EstimateResult` with ``term`` and
        ``contrast`` columns.

    Examples:
        >>> import numpy as np, pandas as pd
        >>> import statsmodels.formula.api as smf
        >>> rng = np.random.default_rng(0)
        >>> df = pd.DataFrame({"x": rng.normal(size=200)})
        >>> df["y"] = 1 + df.x + 2 * df.x**2 + rng.normal(size=200)
        >>> fit = smf.ols("y ~ x + I(x**2)", data=df).fit()
        >>> slopes(fit, "x", newdata=pd.DataFrame({"x": [0.0]})).table.estimate.round(1).tolist()  # doctest: +SKIP
        [1.0]
    """
    check_row_weights(wts, "slopes")
    engine = MarginsEngine(
        model,
        calling_function="slopes",
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
    contrasts = slope_contrasts(grid, focal, engine.data, eps=eps, slope=slope)
    table = stack_contrast_table(grid, contrasts)
    aggregation, table = build_aggregation(table, by)
    if aggregation is not None:
        table = aggregation.keys

    pipeline = (
        EstimandPipeline.for_contrasts(
            engine.adapter, model, grid, contrasts, engine.predict_type, slope=slope
        )
        .with_aggregation(aggregation)
        .with_hypothesis(parse_hypothesis(hypothesis, len(table)))
    )
    return engine.run(
        pipeline,
        table,
        by=aggregation.by if aggregation is not None else (),
        variables=list(focal),
    )


def avg_slopes(model: Any, variables: Any = None, *, by: Any = True, **kwargs: Any) -> EstimateResult:
    """Average slopes; ``by=True`` averages each term over the grid."""
    return slopes(model, variables=variables, by=by, **kwargs)


__all__ = ["avg_slopes", "slopes"]
