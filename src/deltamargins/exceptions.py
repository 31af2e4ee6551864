"""Exception hierarchy with actionable error messages.

Every error raised deliberately by the package derives from
:class:`DeltaMarginsError`.  Argument-validation errors also derive
from :class:`ValueError` so that callers who already catch
``ValueError`` keep working, and evaluation failures in the Jacobian
loop derive from :class:`RuntimeError`.

Only :class:`NoCovariance` is non-fatal: adapters raise it when a
model carries no parameter covariance, and the engine catches it and
returns point estimates without standard errors.
"""

from __future__ import annotations

from collections.abc import Iterable

__all__ = [
    "DeltaMarginsError",
    "UnsupportedScale",
    "NoCovariance",
    "JacobianEvaluationError",
    "ConflictingOptions",
    "InvalidHypothesisSpec",
    "EmptyFocalSet",
]


class DeltaMarginsError(Exception):
    """Base exception for all deltamargins errors."""


class UnsupportedScale(DeltaMarginsError, ValueError):
    """The requested ``type`` is not a prediction scale of the model.

    The message enumerates the scales the model's adapter accepts.
    """

    def __init__(self, requested: str, valid: Iterable[str], model_name: str) -> None:
        self.requested = requested
        self.valid = tuple(valid)
        self.model_name = model_name
        super().__init__(
            f"type={requested!r} is not supported for models of class "
            f"{model_name!r}.  Valid values: {', '.join(repr(v) for v in self.valid)}."
        )


class NoCovariance(DeltaMarginsError):
    """The model exposes no parameter covariance matrix.

    Raised by adapters and caught by the engine, which then degrades to
    estimate-only output.
    """


class JacobianEvaluationError(DeltaMarginsError, RuntimeError):
    """The estimand closure failed at a perturbed parameter vector.

    Attributes:
        index: Zero-based index of the perturbed parameter.
        name: Parameter name, when known.
    """

    def __init__(self, index: int, name: str | None = None, reason: str = "") -> None:
        self.index = index
        self.name = name
        label = f"{index} ({name!r})" if name is not None else f"{index}"
        msg = (
            f"Jacobian evaluation failed when perturbing parameter {label}"
            + (f": {reason}" if reason else ".")
            + "  The prediction function must be defined and finite in a "
            "neighbourhood of the fitted parameters."
        )
        super().__init__(msg)


class ConflictingOptions(DeltaMarginsError, ValueError):
    """Mutually exclusive arguments were supplied together."""


class InvalidHypothesisSpec(DeltaMarginsError, ValueError):
    """A hypothesis could not be parsed or does not match the estimates."""


class EmptyFocalSet(DeltaMarginsError, ValueError):
    """No valid focal variable was found for the requested estimand."""
