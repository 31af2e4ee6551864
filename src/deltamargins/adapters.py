"""Model adapter protocol and resolution logic.

The ``ModelAdapter`` protocol defines the capability interface that the
rest of the package needs from a fitted model: its coefficient vector
θ, its parameter covariance Σ, and a prediction function that can be
evaluated at *any* candidate parameter vector θ', not only the fitted
one.  Estimand functions, the aggregator and the delta-method engine
program against this protocol and never branch on the model class.

Each concrete adapter is a frozen ``@dataclass`` that carries no
mutable state.  The fitted model is only read, never mutated.  The
``resolve_adapter`` helper maps a model object (or a registered name)
to the appropriate adapter instance.

Prediction scales
~~~~~~~~~~~~~~~~~
Which ``type`` values a model accepts is explicit configuration: the
read-only :data:`DEFAULT_TYPE_TABLE` maps adapter names to the allowed
scales (first entry is the default), and ``resolve_adapter`` passes the
relevant entry into the adapter at construction.  Callers may supply
their own table.

Design matrices
~~~~~~~~~~~~~~~
Prediction is split into ``design(model, newdata)``, which turns a grid
into whatever the model needs (a numeric design matrix for statsmodels,
the feature frame for scikit-learn), and ``predict_design(model,
params, design, type)``, which is cheap and is what the delta-method
engine calls ``O(p)`` times.  The pipeline builds each design once per
grid.

For formula-fitted statsmodels models the design is rebuilt from the
stored patsy ``design_info``, so every term derived from a base
variable (``I(x**2)``, ``np.log(x)``, interactions, ``C(g)``) is
recomputed from the grid value of that variable.  Perturbing ``x`` in
a slope therefore moves ``x**2`` consistently.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Protocol, runtime_checkable

import numpy as np
import pandas as pd
import patsy
from sklearn.base import BaseEstimator, is_classifier
from statsmodels.discrete.discrete_model import (
    BinaryModel,
    CountModel,
    MultinomialModel,
)
from statsmodels.genmod.generalized_linear_model import GLM
from statsmodels.regression.linear_model import RegressionModel
from statsmodels.regression.mixed_linear_model import MixedLM

from .exceptions import NoCovariance, UnsupportedScale

# ------------------------------------------------------------------ #
# Prediction-scale configuration
# ------------------------------------------------------------------ #
#
# ``invlink(link)`` means: compute on the link scale, build intervals
# there, then back-transform estimates and interval bounds with the
# inverse link.  It is only offered by ``predictions`` and
# ``marginal_means`` (see ``sanitize_type``).

DEFAULT_TYPE_TABLE: Mapping[str, tuple[str, ...]] = MappingProxyType(
    {
        "ols": ("response",),
        "glm": ("invlink(link)", "response", "link"),
        "discrete": ("invlink(link)", "response", "link"),
        "mixedlm": ("response",),
        "sklearn": ("response", "prob"),
        "callable": ("response",),
    }
)
"""Read-only mapping of adapter name → allowed ``type`` values."""

_INVLINK = "invlink(link)"


# ------------------------------------------------------------------ #
# ModelAdapter protocol
# ------------------------------------------------------------------ #


@runtime_checkable
class ModelAdapter(Protocol):
    """Interface that every model adapter must implement.

    Attributes:
        name: Short identifier used in the registry and in result
            metadata (e.g. ``"ols"``, ``"glm"``).
        types: Allowed prediction scales; the first entry is the
            default.
    """

    @property
    def name(self) -> str: ...

    types: tuple[str, ...]

    def supports(self, model: Any) -> bool:
        """Return ``True`` if this adapter can handle *model*."""
        ...

    def get_coef(self, model: Any) -> np.ndarray:
        """Return the parameter vector θ of shape ``(p,)``."""
        ...

    def coef_names(self, model: Any) -> list[str]:
        """Return one label per element of θ."""
        ...

    def get_vcov(self, model: Any, vcov: Any = True) -> np.ndarray:
        """Return the ``(p, p)`` covariance of θ.

        Args:
            model: The fitted model.
            vcov: ``True`` for the model's own covariance, a ``(p, p)``
                array supplied by the caller, or an adapter-specific
                estimator name.

        Raises:
            NoCovariance: When the model carries no covariance.
        """
        ...

    def get_draws(self, model: Any) -> np.ndarray | None:
        """Posterior draws ``(S, p)``, or ``None`` for frequentist models."""
        ...

    def design(self, model: Any, newdata: pd.DataFrame) -> Any:
        """Prepare *newdata* for repeated calls to ``predict_design``."""
        ...

    def predict_design(
        self,
        model: Any,
        params: np.ndarray,
        design: Any,
        type: str,
    ) -> np.ndarray:
        """Predict at parameter vector *params* on a prepared design."""
        ...

    def predict(
        self,
        model: Any,
        params: np.ndarray,
        newdata: pd.DataFrame,
        type: str,
    ) -> np.ndarray:
        """Predict at parameter vector *params* on *newdata*.

        Returns:
            Prediction vector of shape ``(n,)``.
        """
        ...

    def link_inverse(self, model: Any) -> Callable[[np.ndarray], np.ndarray] | None:
        """Inverse link used by ``type="invlink(link)"``, or ``None``."""
        ...

    def find_predictors(self, model: Any) -> list[str]:
        """Names of the predictor columns the model was fit on."""
        ...

    def find_response(self, model: Any) -> str | None:
        """Name of the response variable, when known."""
        ...

    def get_data(self, model: Any) -> pd.DataFrame | None:
        """Data the model was fit on, or ``None`` if not retained."""
        ...


def _check_type(adapter: ModelAdapter, type: str) -> None:
    if type not in adapter.types or type == _INVLINK:
        valid = [t for t in adapter.types if t != _INVLINK]
        raise UnsupportedScale(type, valid, adapter.name)


# ------------------------------------------------------------------ #
# statsmodels helpers
# ------------------------------------------------------------------ #

_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


def _design_info(results: Any) -> patsy.DesignInfo | None:
    """Return the patsy ``DesignInfo`` of a formula-fitted model.

    statsmodels 0.14 stores it as ``data.design_info``; later releases
    keep it as ``data.model_spec``.
    """
    data = getattr(results.model, "data", None)
    for attr in ("design_info", "model_spec"):
        info = getattr(data, attr, None)
        if isinstance(info, patsy.DesignInfo):
            return info
    return None


class _StatsmodelsMixin:
    """Shared θ / Σ / design handling for statsmodels results objects.

    Only the first ``k_exog`` parameters enter the linear predictor;
    extra parameters (negative-binomial ``alpha``, mixed-model
    variance components) are excluded from θ and Σ.
    """

    types: tuple[str, ...]

    @property
    def name(self) -> str:
        raise NotImplementedError

    def _k_exog(self, model: Any) -> int:
        return int(np.asarray(model.model.exog).shape[1])

    def get_coef(self, model: Any) -> np.ndarray:
        k = self._k_exog(model)
        return np.asarray(model.params, dtype=float)[:k].copy()

    def coef_names(self, model: Any) -> list[str]:
        k = self._k_exog(model)
        return [str(c) for c in list(model.model.exog_names)[:k]]

    def _robust_vcov(self, model: Any, name: str) -> np.ndarray:  # noqa: ARG002
        msg = (
            f"vcov={name!r} is not available for {self.name!r} models.  "
            "Pass vcov=True, vcov=False or a (p, p) covariance matrix."
        )
        raise ValueError(msg)

    def get_vcov(self, model: Any, vcov: Any = True) -> np.ndarray:
        k = self._k_exog(model)
        if isinstance(vcov, str):
            return np.asarray(self._robust_vcov(model, vcov), dtype=float)[:k, :k]
        if vcov is True:
            try:
                V = np.asarray(model.cov_params(), dtype=float)
            except (AttributeError, ValueError, np.linalg.LinAlgError) as exc:
                raise NoCovariance(
                    f"{type(model.model).__name__} results expose no covariance: {exc}"
                ) from exc
            V = V[:k, :k]
            if not np.all(np.isfinite(V)):
                raise NoCovariance(
                    f"{type(model.model).__name__} covariance contains non-finite values."
                )
            return V
        V = np.asarray(vcov, dtype=float)
        if V.shape != (k, k):
            msg = f"'vcov' must be a ({k}, {k}) matrix, got shape {V.shape}."
            raise ValueError(msg)
        return V

    def get_draws(self, model: Any) -> np.ndarray | None:  # noqa: ARG002
        return None

    def design(self, model: Any, newdata: pd.DataFrame) -> np.ndarray:
        """Numeric design matrix ``(n, k_exog)`` for *newdata*."""
        info = _design_info(model)
        if info is not None:
            (X,) = patsy.build_design_matrices([info], newdata, NA_action="raise")
            X = np.asarray(X, dtype=float)
        else:
            names = list(model.model.exog_names)
            frame = newdata.copy()
            for const in ("const", "Intercept"):
                if const in names and const not in frame.columns:
                    frame[const] = 1.0
            missing = [c for c in names if c not in frame.columns]
            if missing:
                msg = f"'newdata' is missing model columns: {missing}."
                raise ValueError(msg)
            X = frame[names].to_numpy(dtype=float)
        return X[:, : self._k_exog(model)]

    def predict(
        self,
        model: Any,
        params: np.ndarray,
        newdata: pd.DataFrame,
        type: str,
    ) -> np.ndarray:
        return self.predict_design(model, params, self.design(model, newdata), type)

    def find_predictors(self, model: Any) -> list[str]:
        info = _design_info(model)
        data = self.get_data(model)
        response = self.find_response(model)
        if info is not None and data is not None:
            found: list[str] = []
            for term in info.terms:
                for factor in term.factors:
                    code = getattr(factor, "code", None) or factor.name()
                    for token in _IDENTIFIER.findall(code):
                        if token in data.columns and token != response and token not in found:
                            found.append(token)
            return found
        return [
            str(c)
            for c in model.model.exog_names
            if str(c) not in ("const", "Intercept")
        ]

    def find_response(self, model: Any) -> str | None:
        name = getattr(model.model, "endog_names", None)
        return str(name) if name is not None else None

    def get_data(self, model: Any) -> pd.DataFrame | None:
        frame = getattr(model.model.data, "frame", None)
        if isinstance(frame, pd.DataFrame):
            return frame
        exog = getattr(model.model, "exog", None)
        if exog is None:
            return None
        names = [str(c) for c in model.model.exog_names]
        return pd.DataFrame(np.asarray(exog), columns=names)


# ------------------------------------------------------------------ #
# Concrete adapters
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class OLSAdapter(_StatsmodelsMixin):
    """Linear regression results (OLS, WLS, GLS).

    Predictions are the linear predictor ``Xθ``.  Besides ``vcov=True``
    the heteroskedasticity-consistent estimators ``"HC0"`` to ``"HC3"``
    are available through the results object.
    """

    types: tuple[str, ...] = DEFAULT_TYPE_TABLE["ols"]

    @property
    def name(self) -> str:
        return "ols"

    def supports(self, model: Any) -> bool:
        return isinstance(getattr(model, "model", None), RegressionModel) and hasattr(
            model, "params"
        )

    def _robust_vcov(self, model: Any, name: str) -> np.ndarray:
        key = name.strip().upper()
        if key not in ("HC0", "HC1", "HC2", "HC3"):
            msg = (
                f"Unknown vcov estimator {name!r}.  "
                "Choose from: 'HC0', 'HC1', 'HC2', 'HC3'."
            )
            raise ValueError(msg)
        return np.asarray(getattr(model, f"cov_{key}"), dtype=float)

    def predict_design(
        self,
        model: Any,  # noqa: ARG002
        params: np.ndarray,
        design: np.ndarray,
        type: str,
    ) -> np.ndarray:
        _check_type(self, type)
        return design @ params

    def link_inverse(self, model: Any) -> None:  # noqa: ARG002
        return None


@dataclass(frozen=True)
class GLMAdapter(_StatsmodelsMixin):
    """Generalized linear model results (``statsmodels.api.GLM``).

    ``type="link"`` returns ``η = Xθ``; ``type="response"`` applies the
    family's inverse link.  Offsets and exposures used at fit time are
    not carried to new grids.
    """

    types: tuple[str, ...] = DEFAULT_TYPE_TABLE["glm"]

    @property
    def name(self) -> str:
        return "glm"

    def supports(self, model: Any) -> bool:
        return isinstance(getattr(model, "model", None), GLM) and hasattr(model, "params")

    def predict_design(
        self,
        model: Any,
        params: np.ndarray,
        design: np.ndarray,
        type: str,
    ) -> np.ndarray:
        _check_type(self, type)
        eta = design @ params
        if type == "link":
            return eta
        return np.asarray(model.model.family.link.inverse(eta), dtype=float)

    def link_inverse(self, model: Any) -> Callable[[np.ndarray], np.ndarray]:
        return model.model.family.link.inverse


@dataclass(frozen=True)
class DiscreteAdapter(_StatsmodelsMixin):
    """Binary and count models from ``statsmodels.discrete``.

    Logit and Probit map ``η`` through the model's ``cdf``; Poisson and
    negative-binomial models through ``exp``.  Multinomial models are
    not supported because their prediction is a matrix.
    """

    types: tuple[str, ...] = DEFAULT_TYPE_TABLE["discrete"]

    @property
    def name(self) -> str:
        return "discrete"

    def supports(self, model: Any) -> bool:
        inner = getattr(model, "model", None)
        if isinstance(inner, MultinomialModel):
            return False
        return isinstance(inner, (BinaryModel, CountModel)) and hasattr(model, "params")

    def predict_design(
        self,
        model: Any,
        params: np.ndarray,
        design: np.ndarray,
        type: str,
    ) -> np.ndarray:
        _check_type(self, type)
        eta = design @ params
        if type == "link":
            return eta
        return self.link_inverse(model)(eta)

    def link_inverse(self, model: Any) -> Callable[[np.ndarray], np.ndarray]:
        if isinstance(model.model, BinaryModel):
            cdf = model.model.cdf
            return lambda eta: np.asarray(cdf(eta), dtype=float)
        return np.exp


@dataclass(frozen=True)
class MixedLMAdapter(_StatsmodelsMixin):
    """Linear mixed-effects results (``statsmodels MixedLM``).

    Predictions use the fixed effects only (population-level), so θ is
    ``fe_params`` and Σ the matching block of ``cov_params()``.
    """

    types: tuple[str, ...] = DEFAULT_TYPE_TABLE["mixedlm"]

    @property
    def name(self) -> str:
        return "mixedlm"

    def supports(self, model: Any) -> bool:
        return isinstance(getattr(model, "model", None), MixedLM) and hasattr(
            model, "fe_params"
        )

    def _k_exog(self, model: Any) -> int:
        return int(model.model.k_fe)

    def predict_design(
        self,
        model: Any,  # noqa: ARG002
        params: np.ndarray,
        design: np.ndarray,
        type: str,
    ) -> np.ndarray:
        _check_type(self, type)
        return design @ params

    def link_inverse(self, model: Any) -> None:  # noqa: ARG002
        return None


@dataclass(frozen=True)
class SklearnAdapter:
    """Fitted scikit-learn estimators and pipelines.

    Machine-learning models carry no parameter covariance, so θ is
    empty and ``get_vcov`` raises :class:`NoCovariance`; results are
    estimate-only.  ``type="prob"`` returns the positive-class column
    of ``predict_proba`` for classifiers.
    """

    types: tuple[str, ...] = DEFAULT_TYPE_TABLE["sklearn"]

    @property
    def name(self) -> str:
        return "sklearn"

    def supports(self, model: Any) -> bool:
        return isinstance(model, BaseEstimator) and hasattr(model, "predict")

    def get_coef(self, model: Any) -> np.ndarray:  # noqa: ARG002
        return np.empty(0)

    def coef_names(self, model: Any) -> list[str]:  # noqa: ARG002
        return []

    def get_vcov(self, model: Any, vcov: Any = True) -> np.ndarray:  # noqa: ARG002
        raise NoCovariance(
            f"{type(model).__name__} is a scikit-learn estimator without a "
            "parameter covariance; only point estimates are available."
        )

    def get_draws(self, model: Any) -> None:  # noqa: ARG002
        return None

    def design(self, model: Any, newdata: pd.DataFrame) -> pd.DataFrame:
        names = getattr(model, "feature_names_in_", None)
        if names is None:
            return newdata
        return newdata[list(names)]

    def predict_design(
        self,
        model: Any,
        params: np.ndarray,  # noqa: ARG002
        design: pd.DataFrame,
        type: str,
    ) -> np.ndarray:
        _check_type(self, type)
        if type == "prob":
            if not (is_classifier(model) and hasattr(model, "predict_proba")):
                raise UnsupportedScale(type, ["response"], model.__class__.__name__)
            return np.asarray(model.predict_proba(design), dtype=float)[:, -1]
        return np.asarray(model.predict(design), dtype=float).ravel()

    def predict(
        self,
        model: Any,
        params: np.ndarray,
        newdata: pd.DataFrame,
        type: str,
    ) -> np.ndarray:
        return self.predict_design(model, params, self.design(model, newdata), type)

    def link_inverse(self, model: Any) -> None:  # noqa: ARG002
        return None

    def find_predictors(self, model: Any) -> list[str]:
        names = getattr(model, "feature_names_in_", None)
        return [str(n) for n in names] if names is not None else []

    def find_response(self, model: Any) -> None:  # noqa: ARG002
        return None

    def get_data(self, model: Any) -> None:  # noqa: ARG002
        return None


# ------------------------------------------------------------------ #
# Generic fitted model
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class FittedModel:
    """Wrap an arbitrary prediction function as a fitted model.

    Use this for model families without a dedicated adapter, or for
    Bayesian models: supply posterior ``draws`` of shape ``(S, p)`` and
    every estimand is evaluated once per draw instead of through the
    delta method.

    Attributes:
        coef: Parameter vector θ, shape ``(p,)``.
        predict_fn: ``predict_fn(params, newdata, type) -> (n,)``.
            Must be deterministic and smooth in *params*.
        vcov: Covariance of θ, or ``None`` for estimate-only output.
        data: Data the model was fit on (needed when ``newdata`` is
            omitted or a typical grid is requested).
        predictors: Predictor column names.
        response: Response column name.
        names: Parameter labels; defaults to ``b1 … bp``.
        types: Allowed prediction scales, default first.
        draws: Optional posterior draws ``(S, p)``.
        link_inv: Inverse link for ``type="invlink(link)"``.
    """

    coef: np.ndarray
    predict_fn: Callable[[np.ndarray, pd.DataFrame, str], np.ndarray]
    vcov: np.ndarray | None = None
    data: pd.DataFrame | None = None
    predictors: Sequence[str] = ()
    response: str | None = None
    names: Sequence[str] | None = None
    types: tuple[str, ...] = ("response",)
    draws: np.ndarray | None = field(default=None, repr=False)
    link_inv: Callable[[np.ndarray], np.ndarray] | None = None


@dataclass(frozen=True)
class CallableAdapter:
    """Adapter for :class:`FittedModel` wrappers.

    The model's own ``types`` take precedence over the table entry so
    that each wrapped model declares its scales.
    """

    types: tuple[str, ...] = DEFAULT_TYPE_TABLE["callable"]

    @property
    def name(self) -> str:
        return "callable"

    def supports(self, model: Any) -> bool:
        return isinstance(model, FittedModel)

    def get_coef(self, model: FittedModel) -> np.ndarray:
        return np.asarray(model.coef, dtype=float).ravel().copy()

    def coef_names(self, model: FittedModel) -> list[str]:
        p = np.asarray(model.coef).size
        if model.names is None:
            return [f"b{i + 1}" for i in range(p)]
        return [str(n) for n in model.names]

    def get_vcov(self, model: FittedModel, vcov: Any = True) -> np.ndarray:
        p = np.asarray(model.coef).size
        if vcov is True:
            if model.vcov is None:
                raise NoCovariance("FittedModel was constructed without 'vcov'.")
            V = np.asarray(model.vcov, dtype=float)
        elif isinstance(vcov, str):
            msg = (
                f"vcov={vcov!r} is not available for 'callable' models.  "
                "Pass vcov=True, vcov=False or a (p, p) covariance matrix."
            )
            raise ValueError(msg)
        else:
            V = np.asarray(vcov, dtype=float)
        if V.shape != (p, p):
            msg = f"'vcov' must be a ({p}, {p}) matrix, got shape {V.shape}."
            raise ValueError(msg)
        return V

    def get_draws(self, model: FittedModel) -> np.ndarray | None:
        if model.draws is None:
            return None
        draws = np.asarray(model.draws, dtype=float)
        p = np.asarray(model.coef).size
        if draws.ndim != 2 or draws.shape[1] != p:
            msg = f"'draws' must have shape (S, {p}), got {draws.shape}."
            raise ValueError(msg)
        return draws

    def design(self, model: FittedModel, newdata: pd.DataFrame) -> pd.DataFrame:  # noqa: ARG002
        return newdata

    def predict_design(
        self,
        model: FittedModel,
        params: np.ndarray,
        design: pd.DataFrame,
        type: str,
    ) -> np.ndarray:
        if type not in model.types or type == _INVLINK:
            valid = [t for t in model.types if t != _INVLINK]
            raise UnsupportedScale(type, valid, "FittedModel")
        out = np.asarray(model.predict_fn(params, design, type), dtype=float).ravel()
        if out.shape[0] != len(design):
            msg = (
                f"predict_fn returned {out.shape[0]} values for a grid of "
                f"{len(design)} rows."
            )
            raise ValueError(msg)
        return out

    def predict(
        self,
        model: FittedModel,
        params: np.ndarray,
        newdata: pd.DataFrame,
        type: str,
    ) -> np.ndarray:
        return self.predict_design(model, params, newdata, type)

    def link_inverse(
        self, model: FittedModel
    ) -> Callable[[np.ndarray], np.ndarray] | None:
        return model.link_inv

    def find_predictors(self, model: FittedModel) -> list[str]:
        return [str(p) for p in model.predictors]

    def find_response(self, model: FittedModel) -> str | None:
        return model.response

    def get_data(self, model: FittedModel) -> pd.DataFrame | None:
        return model.data


# ------------------------------------------------------------------ #
# Type sanitisation
# ------------------------------------------------------------------ #


def model_class_name(model: Any) -> str:
    """Class name shown in messages (the statsmodels model, not the wrapper)."""
    inner = getattr(model, "model", None)
    if inner is not None and not isinstance(model, FittedModel):
        return type(inner).__name__
    return type(model).__name__


def allowed_types(adapter: ModelAdapter, model: Any) -> tuple[str, ...]:
    """Scales for *model*: a :class:`FittedModel` declares its own."""
    if isinstance(model, FittedModel):
        return tuple(model.types)
    return tuple(adapter.types)


def sanitize_type(
    adapter: ModelAdapter,
    type: str | None,
    calling_function: str = "predictions",
    model: Any = None,
) -> str:
    """Validate a requested prediction scale and fill the default.

    ``"invlink(link)"`` is only offered to ``predictions`` and
    ``marginal_means``; every other caller sees the remaining entries.

    Args:
        adapter: The resolved adapter.
        type: Requested scale, or ``None`` for the default (first
            allowed entry).
        calling_function: Name of the public function.
        model: The fitted model, used for its declared scales and in
            error messages.

    Returns:
        The validated scale string.

    Raises:
        UnsupportedScale: If *type* is not allowed.
        TypeError: If *type* is neither ``None`` nor a string.
    """
    valid = list(allowed_types(adapter, model) if model is not None else adapter.types)
    if calling_function not in ("predictions", "marginal_means"):
        valid = [t for t in valid if t != _INVLINK]
    if type is None:
        return valid[0]
    if not isinstance(type, str):
        msg = f"'type' must be a string or None, got {type!r}."
        raise TypeError(msg)
    if type not in valid:
        label = model_class_name(model) if model is not None else adapter.name
        raise UnsupportedScale(type, valid, label)
    return type


# ------------------------------------------------------------------ #
# Adapter resolution
# ------------------------------------------------------------------ #
#
# The registry maps names to adapter classes.  Resolution by model
# object walks the registry in insertion order and picks the first
# adapter whose ``supports`` accepts the model, so more specific
# adapters must be registered first.

_ADAPTERS: dict[str, type] = {}
"""Registry mapping adapter names to concrete ModelAdapter classes."""


def register_adapter(name: str, cls: type) -> None:
    """Register a concrete ``ModelAdapter`` class under *name*.

    Args:
        name: Lookup key (e.g. ``"ols"``, ``"glm"``).
        cls: A class implementing the ``ModelAdapter`` protocol.  It
            must be constructible with no arguments.

    Raises:
        TypeError: If *cls* does not satisfy the ``ModelAdapter``
            protocol.
    """
    try:
        instance = cls()
    except Exception:  # noqa: BLE001
        msg = f"{cls!r} could not be instantiated for protocol check."
        raise TypeError(msg) from None
    if not isinstance(instance, ModelAdapter):
        msg = f"{cls!r} does not implement the ModelAdapter protocol."
        raise TypeError(msg)
    _ADAPTERS[name] = cls


def _build(name: str, type_table: Mapping[str, tuple[str, ...]]) -> ModelAdapter:
    cls = _ADAPTERS[name]
    if name in type_table:
        return cls(types=tuple(type_table[name]))
    return cls()


def resolve_adapter(
    model: Any,
    adapter: str | ModelAdapter | None = None,
    type_table: Mapping[str, tuple[str, ...]] | None = None,
) -> ModelAdapter:
    """Resolve the adapter for *model*.

    Args:
        model: A fitted model object.
        adapter: ``None`` for detection from the model class, a
            registered name, or a pre-built ``ModelAdapter`` instance
            (returned as-is).
        type_table: Scale configuration passed to the adapter at
            construction; defaults to :data:`DEFAULT_TYPE_TABLE`.

    Returns:
        A ``ModelAdapter`` instance.

    Raises:
        ValueError: If *adapter* is an unknown name.
        TypeError: If no registered adapter supports *model*.
    """
    if isinstance(adapter, ModelAdapter):
        return adapter
    table = DEFAULT_TYPE_TABLE if type_table is None else type_table

    if adapter is not None:
        if adapter not in _ADAPTERS:
            available = ", ".join(sorted(_ADAPTERS)) or "(none registered)"
            msg = f"Unknown adapter {adapter!r}.  Available adapters: {available}."
            raise ValueError(msg)
        return _build(adapter, table)

    for name in _ADAPTERS:
        candidate = _build(name, table)
        if candidate.supports(model):
            return candidate

    available = ", ".join(_ADAPTERS)
    msg = (
        f"No adapter supports models of class {type(model).__name__!r}.  "
        f"Registered adapters: {available}.  Wrap the model in "
        "deltamargins.FittedModel or register a custom adapter."
    )
    raise TypeError(msg)


# ------------------------------------------------------------------ #
# Register built-in adapters
# ------------------------------------------------------------------ #

register_adapter("ols", OLSAdapter)
register_adapter("glm", GLMAdapter)
register_adapter("discrete", DiscreteAdapter)
register_adapter("mixedlm", MixedLMAdapter)
register_adapter("sklearn", SklearnAdapter)
register_adapter("callable", CallableAdapter)
