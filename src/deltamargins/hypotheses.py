"""Hypothesis tests on model coefficients or on previous estimates.

:func:`hypotheses` accepts either a fitted model, in which case the
hypothesis is a function of the coefficient vector, or an
:class:`~deltamargins.EstimateResult` returned by another call.  In
the second case the stored estimates and Jacobian are reused: linear
hypotheses compose exactly (``L · J``), nonlinear ones through the
numerical Jacobian of the hypothesis map (``G · J``).  The model is
not evaluated again.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import numpy as np
import pandas as pd

from ._config import resolve_numderiv
from ._results import EstimateResult
from .delta import propagate, standard_errors
from .engine import MarginsEngine
from .hypothesis import hypothesis_labels, parse_hypothesis
from .inference import (
    INFERENCE_COLUMNS,
    backtransform,
    finalize,
    order_columns,
    resolve_transform,
    summarize_draws,
    validate_inference_args,
)
from .pipeline import CoefficientPipeline


def hypotheses(
    model: Any,
    hypothesis: Any = None,
    vcov: Any = True,
    conf_level: float = 0.95,
    equivalence: Sequence[float] | None = None,
    p_adjust: str | None = None,
    df: float = np.inf,
    null: float | Sequence[float] | None = None,
    transform: Any = None,
    numderiv: Any = None,
    n_jobs: int = 1,
    adapter: Any = None,
) -> EstimateResult:
    """Test (non)linear hypotheses with delta-method standard errors.

    Args:
        model: A fitted model, or an ``EstimateResult`` to chain on.
        hypothesis: ``None`` (test every row against *null*), a number,
            a shorthand (``"pairwise"``, ``"reference"``, …), an
            equation such as ``"b2 = b1"`` (coefficient names may be
            used when they are valid identifiers), a contrast matrix or
            a callable.
        vcov: Covariance option for models (see
            :func:`~deltamargins.predictions`); ignored for results.
        null: Null value(s) of the tested quantities, one per output
            row or a scalar.

    Returns:
        An :class:`~deltamargins.EstimateResult`.

    Raises:
        InvalidHypothesisSpec: If the hypothesis does not fit the
            number of estimates.
        ValueError: If a back-transformed result is chained on.
    """
    if isinstance(model, EstimateResult):
        return _chain(
            model,
            hypothesis,
            conf_level=conf_level,
            equivalence=equivalence,
            p_adjust=p_adjust,
            df=df,
            null=null,
            transform=transform,
            numderiv=numderiv,
        )

    engine = MarginsEngine(
        model,
        calling_function="hypotheses",
        vcov=vcov,
        conf_level=conf_level,
        df=df,
        p_adjust=p_adjust,
        equivalence=equivalence,
        transform=transform,
        numderiv=numderiv,
        n_jobs=n_jobs,
        adapter=adapter,
    )
    if engine.coef.size == 0:
        msg = f"The {engine.adapter.name!r} model exposes no parameters to test."
        raise ValueError(msg)
    hyp = parse_hypothesis(hypothesis, engine.coef.size, names=engine.coef_names)
    table = pd.DataFrame({"term": list(engine.coef_names)})
    return engine.run(CoefficientPipeline(hypothesis=hyp), table, null=null)


def _chain(
    result: EstimateResult,
    hypothesis: Any,
    *,
    conf_level: float,
    equivalence: Sequence[float] | None,
    p_adjust: str | None,
    df: float,
    null: Any,
    transform: Any,
    numderiv: Any,
) -> EstimateResult:
    validate_inference_args(conf_level, df, p_adjust, equivalence)
    if result.transformed:
        msg = (
            "Cannot test hypotheses on back-transformed estimates.  Recompute "
            "the result without 'transform' (and without type='invlink(link)')."
        )
        raise ValueError(msg)
    method, eps = resolve_numderiv(numderiv)
    transform_fn = resolve_transform(transform)

    k = result.estimate.size
    hyp = parse_hypothesis(hypothesis, k)
    if hyp is not None and hyp.replaces_rows:
        estimate = hyp.apply(result.estimate)
        table = pd.DataFrame({"term": hypothesis_labels(hyp, estimate.size)})
    else:
        estimate = result.estimate
        keep = [c for c in result.table.columns if c != "estimate" and c not in INFERENCE_COLUMNS]
        table = result.table[keep].copy()
    table["estimate"] = estimate
    if null is None:
        null = hyp.null if hyp is not None else 0.0

    jac = cov = draws = None
    if result.draws is not None:
        draws = result.draws
        if hyp is not None:
            draws = np.column_stack([hyp.apply(d) for d in result.draws.T])
        table = summarize_draws(table, draws, conf_level=conf_level)
        estimate = np.median(draws, axis=1)
    elif result.jacobian is not None and result.model_vcov is not None:
        jac = result.jacobian
        if hyp is not None:
            estimate, jac = hyp.chain(result.estimate, result.jacobian, method=method, eps=eps)
        cov = propagate(jac, result.model_vcov)
        table["std.error"] = standard_errors(cov)
        table = finalize(
            table,
            conf_level=conf_level,
            df=df,
            null=null,
            p_adjust=p_adjust,
            equivalence=equivalence,
        )

    if transform_fn is not None:
        table = backtransform(table, transform_fn)

    return EstimateResult(
        table=order_columns(table),
        estimate=estimate,
        jacobian=jac,
        vcov=cov,
        model_vcov=result.model_vcov,
        coef=result.coef,
        coef_names=result.coef_names,
        type=result.type,
        calling_function="hypotheses",
        by=result.by,
        variables=result.variables,
        conf_level=float(conf_level),
        df=float(df),
        draws=draws,
        transformed=transform_fn is not None,
    )


__all__ = ["hypotheses"]
