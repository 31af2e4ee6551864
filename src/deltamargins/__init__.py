"""deltamargins — Predictions, comparisons, slopes and marginal means.

Post-estimation quantities for fitted regression models (statsmodels
linear, generalized linear, discrete and mixed models, scikit-learn
estimators, or any prediction function wrapped in
:class:`FittedModel`), with standard errors from the delta method: the
numerical Jacobian of the estimand with respect to the model
parameters, propagated through the parameter covariance as
``J Σ Jᵀ``.

Public API:
    .. autosummary::
        predictions
        avg_predictions
        comparisons
        avg_comparisons
        slopes
        avg_slopes
        marginal_means
        hypotheses
        datagrid
        datagridcf
        resolve_weights
        get_numderiv
        get_eps
        set_numderiv
        FittedModel
        ModelAdapter
        register_adapter
        resolve_adapter
        EstimateResult
        MarginsEngine
"""

from ._config import get_eps, get_numderiv, set_numderiv
from ._results import EstimateResult
from .adapters import FittedModel, ModelAdapter, register_adapter, resolve_adapter
from .comparisons import avg_comparisons, comparisons
from .engine import MarginsEngine
from .exceptions import (
    ConflictingOptions,
    DeltaMarginsError,
    EmptyFocalSet,
    InvalidHypothesisSpec,
    JacobianEvaluationError,
    NoCovariance,
    UnsupportedScale,
)
from .grid import datagrid, datagridcf, resolve_weights
from .hypotheses import hypotheses
from .marginal_means import marginal_means
from .predictions import avg_predictions, predictions
from .slopes import avg_slopes, slopes

__version__ = "0.1.0"

__all__ = [
    "ConflictingOptions",
    "DeltaMarginsError",
    "EmptyFocalSet",
    "EstimateResult",
    "FittedModel",
    "InvalidHypothesisSpec",
    "JacobianEvaluationError",
    "MarginsEngine",
    "ModelAdapter",
    "NoCovariance",
    "UnsupportedScale",
    "avg_comparisons",
    "avg_predictions",
    "avg_slopes",
    "comparisons",
    "datagrid",
    "datagridcf",
    "get_eps",
    "get_numderiv",
    "hypotheses",
    "marginal_means",
    "predictions",
    "register_adapter",
    "resolve_adapter",
    "resolve_weights",
    "set_numderiv",
    "slopes",
]
