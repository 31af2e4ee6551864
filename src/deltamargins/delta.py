"""Delta-method standard errors via a numerical Jacobian.

Given any closure ``h(θ') -> ℝᵏ`` (an estimand, optionally followed by
aggregation and a hypothesis), this module computes

1. the baseline ``h(θ)``;
2. the Jacobian ``J`` (``k × p``) by finite differences, one parameter
   at a time, with step ``δᵢ = max(|θᵢ|, 1) · eps``:

   * ``"fdcentral"`` (default) — ``(h(θ + δᵢeᵢ) − h(θ − δᵢeᵢ)) / 2δᵢ``
   * ``"fdforward"`` — ``(h(θ + δᵢeᵢ) − h(θ)) / δᵢ``

3. the covariance ``J Σ Jᵀ`` and the standard errors
   ``sqrt(diag(J Σ Jᵀ))``.

The closure is treated as a black box: the engine never inspects the
model, the grid or the composition of the pipeline.  It costs ``p``
(forward) or ``2p`` (central) closure evaluations and is deterministic.

Parallelism
~~~~~~~~~~~
Jacobian columns are independent.  When ``n_jobs != 1`` they are
dispatched with ``joblib.Parallel(prefer="threads")``; each task
returns its own column and the columns are stacked afterwards, so no
shared state is written concurrently.  Threads suit the workload:
the closures spend their time in NumPy matrix products, which release
the GIL.

Failure handling
~~~~~~~~~~~~~~~~
An exception raised by the closure at a perturbed parameter vector, a
change in output length, or a non-finite value where the baseline was
finite aborts the computation with :class:`JacobianEvaluationError`
naming the parameter.  No partial Jacobian is returned.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

import numpy as np
from joblib import Parallel, delayed

from .exceptions import JacobianEvaluationError

logger = logging.getLogger(__name__)

_METHODS = ("fdcentral", "fdforward")


def step_sizes(params: np.ndarray, eps: float = 1e-4) -> np.ndarray:
    """Per-parameter finite-difference steps ``max(|θᵢ|, 1) · eps``."""
    return np.maximum(np.abs(np.asarray(params, dtype=float)), 1.0) * eps


def jacobian(
    func: Callable[[np.ndarray], np.ndarray],
    params: np.ndarray,
    method: str = "fdcentral",
    eps: float = 1e-4,
    n_jobs: int = 1,
    names: Sequence[str] | None = None,
    baseline: np.ndarray | None = None,
) -> np.ndarray:
    """Numerical Jacobian of *func* at *params*.

    Args:
        func: Closure mapping a parameter vector ``(p,)`` to ``(k,)``.
        params: Point of evaluation θ.
        method: ``"fdcentral"`` or ``"fdforward"``.
        eps: Relative step size.
        n_jobs: Number of joblib workers; 1 runs sequentially, -1 uses
            all cores.
        names: Parameter labels used in error messages.
        baseline: ``func(params)`` if already computed.

    Returns:
        Array of shape ``(k, p)``.

    Raises:
        ValueError: If *method* or *eps* is invalid.
        JacobianEvaluationError: If an evaluation at a perturbed
            vector fails.
    """
    if method not in _METHODS:
        msg = f"Unknown numderiv method {method!r}.  Choose from: {', '.join(_METHODS)}."
        raise ValueError(msg)
    if not np.isfinite(eps) or eps <= 0:
        msg = f"'eps' must be a positive finite number, got {eps!r}."
        raise ValueError(msg)

    theta = np.asarray(params, dtype=float).ravel()
    base = np.asarray(func(theta) if baseline is None else baseline, dtype=float).ravel()
    finite_base = np.isfinite(base)
    steps = step_sizes(theta, eps)
    p = theta.size

    def _label(i: int) -> str | None:
        return str(names[i]) if names is not None and i < len(names) else None

    def _evaluate(theta_i: np.ndarray, i: int) -> np.ndarray:
        try:
            out = np.asarray(func(theta_i), dtype=float).ravel()
        except JacobianEvaluationError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise JacobianEvaluationError(i, _label(i), f"{type(exc).__name__}: {exc}") from exc
        if out.shape != base.shape:
            raise JacobianEvaluationError(
                i,
                _label(i),
                f"output length changed from {base.size} to {out.size}",
            )
        bad = finite_base & ~np.isfinite(out)
        if np.any(bad):
            raise JacobianEvaluationError(
                i,
                _label(i),
                f"non-finite value in output row {int(np.flatnonzero(bad)[0])}",
            )
        return out

    def _column(i: int) -> np.ndarray:
        up = theta.copy()
        up[i] += steps[i]
        f_up = _evaluate(up, i)
        if method == "fdforward":
            return (f_up - base) / steps[i]
        down = theta.copy()
        down[i] -= steps[i]
        return (f_up - _evaluate(down, i)) / (2.0 * steps[i])

    logger.debug(
        "Jacobian: %d outputs x %d parameters, method=%s, eps=%g, n_jobs=%d",
        base.size,
        p,
        method,
        eps,
        n_jobs,
    )

    if p == 0:
        return np.zeros((base.size, 0))

    # Sequential path.
    if n_jobs == 1:
        columns = [_column(i) for i in range(p)]
    else:
        columns = Parallel(n_jobs=n_jobs, prefer="threads")(
            delayed(_column)(i) for i in range(p)
        )
    return np.column_stack(columns)


def propagate(jac: np.ndarray, vcov: np.ndarray) -> np.ndarray:
    """Covariance ``J Σ Jᵀ`` of the derived estimates (symmetrised)."""
    J = np.asarray(jac, dtype=float)
    V = np.asarray(vcov, dtype=float)
    if V.shape != (J.shape[1], J.shape[1]):
        msg = (
            f"Covariance shape {V.shape} does not match the {J.shape[1]} "
            "parameters of the Jacobian."
        )
        raise ValueError(msg)
    cov = J @ V @ J.T
    return (cov + cov.T) / 2.0


def standard_errors(cov: np.ndarray) -> np.ndarray:
    """Square roots of the diagonal; round-off negatives clipped to 0."""
    return np.sqrt(np.clip(np.diag(cov), 0.0, None))


@dataclass(frozen=True)
class DeltaResult:
    """Output of :func:`delta_method`.

    Attributes:
        estimate: ``h(θ)``, shape ``(k,)``.
        jacobian: ``(k, p)``.
        covariance: ``J Σ Jᵀ``, ``(k, k)``.
        std_error: ``(k,)``.
    """

    estimate: np.ndarray
    jacobian: np.ndarray = field(repr=False)
    covariance: np.ndarray = field(repr=False)
    std_error: np.ndarray = field(repr=False)


def delta_method(
    func: Callable[[np.ndarray], np.ndarray],
    params: np.ndarray,
    vcov: np.ndarray,
    method: str = "fdcentral",
    eps: float = 1e-4,
    n_jobs: int = 1,
    names: Sequence[str] | None = None,
) -> DeltaResult:
    """Delta-method covariance of ``func(params)``.

    Examples:
        >>> import numpy as np
        >>> res = delta_method(lambda t: t[:1] * t[1:], np.array([2.0, 3.0]), np.eye(2))
        >>> np.round(res.std_error, 6)
        array([3.605551])
    """
    theta = np.asarray(params, dtype=float).ravel()
    estimate = np.asarray(func(theta), dtype=float).ravel()
    jac = jacobian(func, theta, method=method, eps=eps, n_jobs=n_jobs, names=names, baseline=estimate)
    cov = propagate(jac, vcov)
    return DeltaResult(estimate=estimate, jacobian=jac, covariance=cov, std_error=standard_errors(cov))


def evaluate_draws(
    func: Callable[[np.ndarray], np.ndarray],
    draws: np.ndarray,
    n_jobs: int = 1,
) -> np.ndarray:
    """Evaluate *func* once per posterior draw.

    Args:
        func: Closure mapping ``(p,)`` to ``(k,)``.
        draws: Parameter draws of shape ``(S, p)``.
        n_jobs: joblib workers.

    Returns:
        Array of shape ``(k, S)``.
    """
    draws = np.asarray(draws, dtype=float)
    logger.debug("Evaluating closure at %d posterior draws", draws.shape[0])
    if n_jobs == 1:
        out = [np.asarray(func(d), dtype=float).ravel() for d in draws]
    else:
        out = Parallel(n_jobs=n_jobs, prefer="threads")(
            delayed(func)(d) for d in draws
        )
        out = [np.asarray(o, dtype=float).ravel() for o in out]
    return np.column_stack(out)


__all__ = [
    "DeltaResult",
    "delta_method",
    "evaluate_draws",
    "jacobian",
    "propagate",
    "standard_errors",
    "step_sizes",
]
