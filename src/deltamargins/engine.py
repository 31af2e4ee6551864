"""Margins engine — Builder for resolution, validation and the uncertainty run.

The :class:`MarginsEngine` centralises everything that happens around an
estimand pipeline:

1. **Argument validation** — confidence level, degrees of freedom,
   ``p_adjust`` / ``equivalence`` conflicts, ``n_jobs``; raised before
   any model evaluation.
2. **Adapter resolution** — map the fitted model to a
   :class:`~deltamargins.adapters.ModelAdapter`.
3. **Scale resolution** — validate ``type``; ``"invlink(link)"`` is
   evaluated on the link scale and back-transformed after inference.
4. **Numerical-derivative settings** — per-call ``numderiv`` over the
   global configuration.
5. **Uncertainty source** — the parameter covariance (delta method),
   posterior draws, or neither (estimate-only output when the model
   has no covariance or ``vcov=False``).

:meth:`MarginsEngine.run` then evaluates the pipeline at θ, computes
the Jacobian and ``J Σ Jᵀ`` (or evaluates the draws), finalises
inference and packages an :class:`~deltamargins._results.EstimateResult`.
"""

from __future__ import annotations

import logging
import warnings
from collections.abc import Sequence
from typing import Any

import numpy as np
import pandas as pd

from ._compat import _ensure_pandas_df, _is_dataframe_like
from ._config import resolve_numderiv
from ._results import EstimateResult
from .adapters import (
    ModelAdapter,
    allowed_types,
    model_class_name,
    resolve_adapter,
    sanitize_type,
)
from .delta import evaluate_draws, jacobian, propagate, standard_errors
from .exceptions import NoCovariance
from .grid import balanced_grid, build_grid
from .hypothesis import hypothesis_labels
from .inference import (
    backtransform,
    finalize,
    order_columns,
    resolve_transform,
    summarize_draws,
    validate_inference_args,
)
from .pipeline import CoefficientPipeline, EstimandPipeline

logger = logging.getLogger(__name__)

INVLINK = "invlink(link)"


class MarginsEngine:
    """Builder that resolves adapter, scale and uncertainty source.

    Construct an engine for one call, build an
    :class:`~deltamargins.pipeline.EstimandPipeline` with the engine's
    :attr:`predict_type`, then call :meth:`run`.  The engine never
    mutates the model.

    Attributes:
        adapter: The resolved ``ModelAdapter``.
        type: The validated scale requested by the caller.
        predict_type: Scale passed to the adapter (``"link"`` when
            ``type="invlink(link)"``).
        coef: Parameter vector θ.
        coef_names: Parameter labels.
        model_vcov: Parameter covariance Σ, or ``None``.
        draws: Posterior draws ``(S, p)``, or ``None``.
        data: Complete-case model data, or ``None``.
        predictors: Predictor names.
        response: Response name, or ``None``.
    """

    def __init__(
        self,
        model: Any,
        *,
        calling_function: str = "predictions",
        type: str | None = None,
        vcov: Any = True,
        conf_level: float = 0.95,
        df: float = np.inf,
        p_adjust: str | None = None,
        equivalence: Sequence[float] | None = None,
        transform: Any = None,
        numderiv: Any = None,
        n_jobs: int = 1,
        hypothesis: Any = None,
        adapter: str | ModelAdapter | None = None,
    ) -> None:
        # ---- Validation (before any evaluation) --------------------
        validate_inference_args(conf_level, df, p_adjust, equivalence)
        if not isinstance(n_jobs, (int, np.integer)) or isinstance(n_jobs, bool) or n_jobs == 0:
            msg = f"'n_jobs' must be a non-zero integer (-1 for all cores), got {n_jobs!r}."
            raise ValueError(msg)
        self.method, self.eps = resolve_numderiv(numderiv)
        self.transform_fn = resolve_transform(transform)

        self.model = model
        self.calling_function = calling_function
        self.conf_level = float(conf_level)
        self.df = float(df)
        self.p_adjust = p_adjust
        self.equivalence = equivalence
        self.n_jobs = int(n_jobs)

        # ---- Adapter and scale -------------------------------------
        self.adapter: ModelAdapter = resolve_adapter(model, adapter)
        requested = sanitize_type(self.adapter, type, calling_function, model)
        if requested == INVLINK and hypothesis is not None:
            fallback = [t for t in allowed_types(self.adapter, model) if t != INVLINK]
            replacement = "response" if "response" in fallback else fallback[0]
            warnings.warn(
                f"type='invlink(link)' cannot be combined with a hypothesis; "
                f"using type={replacement!r} instead.",
                UserWarning,
                stacklevel=3,
            )
            requested = replacement
        self.type = requested
        self.link_inv = None
        if requested == INVLINK:
            self.link_inv = self.adapter.link_inverse(model)
            if self.link_inv is None:
                msg = (
                    f"type='invlink(link)' requires an inverse link, but none is "
                    f"available for models of class {model_class_name(model)!r}."
                )
                raise ValueError(msg)
            self.predict_type = "link"
        else:
            self.predict_type = requested
        logger.debug("Adapter %r, type %r (predict on %r)", self.adapter.name, self.type, self.predict_type)

        # ---- Parameters and uncertainty ----------------------------
        self.coef = self.adapter.get_coef(model)
        self.coef_names = tuple(self.adapter.coef_names(model))
        self.draws = None if vcov is False else self.adapter.get_draws(model)
        self.model_vcov: np.ndarray | None = None
        if vcov is not False and self.draws is None:
            try:
                self.model_vcov = self.adapter.get_vcov(model, True if vcov is None else vcov)
            except NoCovariance as exc:
                logger.debug("No covariance for %s; returning estimates only (%s)", model_class_name(model), exc)
        if self.draws is not None and (p_adjust is not None or equivalence is not None):
            warnings.warn(
                "'p_adjust' and 'equivalence' are ignored for models with "
                "posterior draws.",
                UserWarning,
                stacklevel=3,
            )

        # ---- Data ---------------------------------------------------
        self.response = self.adapter.find_response(model)
        self.predictors = list(self.adapter.find_predictors(model))
        raw = self.adapter.get_data(model)
        self.data = None if raw is None else self._complete_cases(raw)

    def _complete_cases(self, data: pd.DataFrame) -> pd.DataFrame:
        cols = [c for c in [*self.predictors, self.response] if c is not None and c in data.columns]
        if not cols:
            return data
        return data.dropna(subset=cols).reset_index(drop=True)

    # -------------------------------------------------------------- #
    # Grids
    # -------------------------------------------------------------- #

    def require_data(self) -> pd.DataFrame:
        if self.data is None:
            msg = (
                f"The data used to fit the {model_class_name(self.model)!r} model "
                "are not available; pass 'newdata' explicitly."
            )
            raise ValueError(msg)
        return self.data

    def grid(self, newdata: Any = None) -> pd.DataFrame:
        """Resolve a ``newdata`` argument to an evaluation grid.

        ``None`` selects the model data, ``"mean"`` a typical grid,
        ``"balanced"`` all combinations of categorical levels.
        """
        if newdata is None:
            grid = self.require_data().copy()
        elif isinstance(newdata, str):
            data = self.require_data()
            predictors = [p for p in self.predictors if p in data.columns]
            if newdata == "mean":
                grid = build_grid(data, predictors, {})
            elif newdata == "balanced":
                grid = balanced_grid(data, predictors)
            else:
                msg = (
                    f"Unknown newdata {newdata!r}.  Pass a data frame, None, "
                    "'mean' or 'balanced'."
                )
                raise ValueError(msg)
        elif _is_dataframe_like(newdata):
            grid = _ensure_pandas_df(newdata, name="newdata").reset_index(drop=True).copy()
        else:
            msg = f"'newdata' must be a data frame, None, 'mean' or 'balanced'; got {newdata!r}."
            raise TypeError(msg)
        if len(grid) == 0:
            msg = "The evaluation grid is empty."
            raise ValueError(msg)
        if "rowid" not in grid.columns:
            grid.insert(0, "rowid", np.arange(len(grid)))
        return grid

    # -------------------------------------------------------------- #
    # Execution
    # -------------------------------------------------------------- #

    def run(
        self,
        pipeline: EstimandPipeline | CoefficientPipeline,
        table: pd.DataFrame,
        *,
        by: Sequence[str] = (),
        variables: Sequence[str] = (),
        null: Any = None,
    ) -> EstimateResult:
        """Evaluate *pipeline*, propagate uncertainty and package the result.

        Args:
            pipeline: The composed closure ``h(θ')``.
            table: Identification rows of the pre-hypothesis estimates
                (one per output of ``pipeline.estimand``).
            by: Grouping columns (recorded on the result).
            variables: Focal variables (recorded on the result).
            null: Null value(s); defaults to the hypothesis' null.

        Returns:
            An :class:`EstimateResult`.

        Raises:
            JacobianEvaluationError: If the closure fails at a
                perturbed parameter vector.
        """
        estimate = np.asarray(pipeline(self.coef), dtype=float).ravel()
        hyp = pipeline.hypothesis
        if hyp is not None and hyp.replaces_rows:
            out = pd.DataFrame({"term": hypothesis_labels(hyp, estimate.size)})
        else:
            out = table.reset_index(drop=True).copy()
            if len(out) != estimate.size:
                msg = (
                    f"The estimand produced {estimate.size} values for "
                    f"{len(out)} table rows."
                )
                raise RuntimeError(msg)
        out["estimate"] = estimate
        if null is None:
            null = hyp.null if hyp is not None else 0.0

        jac = cov = draws = None
        if self.draws is not None:
            draws = evaluate_draws(pipeline, self.draws, n_jobs=self.n_jobs)
            out = summarize_draws(out, draws, conf_level=self.conf_level)
        elif self.model_vcov is not None:
            jac = jacobian(
                pipeline,
                self.coef,
                method=self.method,
                eps=self.eps,
                n_jobs=self.n_jobs,
                names=self.coef_names,
                baseline=estimate,
            )
            cov = propagate(jac, self.model_vcov)
            out["std.error"] = standard_errors(cov)
            out = finalize(
                out,
                conf_level=self.conf_level,
                df=self.df,
                null=null,
                p_adjust=self.p_adjust,
                equivalence=self.equivalence,
            )
        else:
            logger.debug("Delta method skipped: no covariance available")

        transformed = False
        if self.link_inv is not None:
            out = backtransform(out, self.link_inv)
            transformed = True
        if self.transform_fn is not None:
            out = backtransform(out, self.transform_fn)
            transformed = True

        return EstimateResult(
            table=order_columns(out),
            estimate=estimate if draws is None else np.median(draws, axis=1),
            jacobian=jac,
            vcov=cov,
            model_vcov=self.model_vcov,
            coef=self.coef,
            coef_names=self.coef_names,
            type=self.type,
            calling_function=self.calling_function,
            by=tuple(by),
            variables=tuple(variables),
            conf_level=self.conf_level,
            df=self.df,
            draws=draws,
            transformed=transformed,
        )


__all__ = ["INVLINK", "MarginsEngine"]
