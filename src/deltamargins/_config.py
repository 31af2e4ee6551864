"""Numerical-differentiation configuration for the deltamargins package.

Controls the finite-difference scheme used by the delta-method engine
to build Jacobians, and the relative step size.

Resolution order (first match wins):
    1. Per-call ``numderiv=`` argument on the public API functions.
    2. Programmatic override via :func:`set_numderiv`.
    3. The ``DELTAMARGINS_NUMDERIV`` / ``DELTAMARGINS_EPS``
       environment variables.
    4. Defaults: ``"fdcentral"`` with a relative step of ``1e-4``.

Valid method names are ``"fdcentral"`` and ``"fdforward"``
(case-insensitive).

Examples:
    Switch to forward differences from the shell::

        export DELTAMARGINS_NUMDERIV=fdforward

    Switch programmatically::

        import deltamargins
        deltamargins.set_numderiv("fdforward", eps=1e-6)

    Restore the default resolution order::

        deltamargins.set_numderiv("auto")
"""

from __future__ import annotations

import os

_VALID_METHODS = {"fdcentral", "fdforward", "auto"}

_DEFAULT_METHOD = "fdcentral"
_DEFAULT_EPS = 1e-4

# Sentinels indicating "no programmatic override has been set".
_method_override: str | None = None
_eps_override: float | None = None


def get_numderiv() -> str:
    """Return the active finite-difference method.

    Resolution order:
        1. Value set by :func:`set_numderiv` (unless ``"auto"``).
        2. ``DELTAMARGINS_NUMDERIV`` environment variable.
        3. ``"fdcentral"``.

    Returns:
        ``"fdcentral"`` or ``"fdforward"``.
    """
    # 1. Programmatic override
    if _method_override is not None and _method_override != "auto":
        return _method_override

    # 2. Environment variable
    env = os.environ.get("DELTAMARGINS_NUMDERIV", "").strip().lower()
    if env in ("fdcentral", "fdforward"):
        return env

    # 3. Default
    return _DEFAULT_METHOD


def get_eps() -> float:
    """Return the active relative step for parameter perturbation.

    The absolute step for parameter ``i`` is
    ``max(|θᵢ|, 1) × get_eps()``.
    """
    if _eps_override is not None:
        return _eps_override

    env = os.environ.get("DELTAMARGINS_EPS", "").strip()
    if env:
        try:
            value = float(env)
        except ValueError:
            return _DEFAULT_EPS
        if value > 0:
            return value
    return _DEFAULT_EPS


def set_numderiv(name: str, eps: float | None = None) -> None:
    """Override the finite-difference method and, optionally, the step.

    Args:
        name: One of ``"fdcentral"``, ``"fdforward"``, or ``"auto"``
            (case-insensitive).  ``"auto"`` restores the default
            resolution order for both the method and the step.
        eps: Relative step size.  Must be strictly positive.

    Raises:
        ValueError: If *name* is not a recognised method or *eps* is
            not positive.
    """
    global _method_override, _eps_override
    normalised = name.strip().lower()
    if normalised not in _VALID_METHODS:
        raise ValueError(
            f"Unknown numderiv method '{name}'. Choose from: {sorted(_VALID_METHODS)}"
        )
    if eps is not None and not eps > 0:
        raise ValueError(f"'eps' must be strictly positive, got {eps!r}.")
    _method_override = normalised
    if normalised == "auto":
        _eps_override = None
    elif eps is not None:
        _eps_override = float(eps)


def resolve_numderiv(
    numderiv: str | tuple[str, float] | None = None,
) -> tuple[str, float]:
    """Resolve a per-call ``numderiv`` argument to ``(method, eps)``.

    Args:
        numderiv: ``None`` (use global configuration), a method name,
            or a ``(method, eps)`` tuple.

    Returns:
        ``(method, eps)`` with *method* in ``{"fdcentral", "fdforward"}``.
    """
    if numderiv is None:
        return get_numderiv(), get_eps()

    if isinstance(numderiv, str):
        method, eps = numderiv, get_eps()
    elif isinstance(numderiv, (tuple, list)) and len(numderiv) == 2:
        method, eps = numderiv[0], float(numderiv[1])
    else:
        raise ValueError(
            "'numderiv' must be a method name or a (method, eps) tuple, "
            f"got {numderiv!r}."
        )

    method = str(method).strip().lower()
    if method == "auto":
        method = get_numderiv()
    if method not in ("fdcentral", "fdforward"):
        raise ValueError(
            f"Unknown numderiv method '{method}'. "
            "Choose from: ['fdcentral', 'fdforward']"
        )
    if not eps > 0:
        raise ValueError(f"'eps' must be strictly positive, got {eps!r}.")
    return method, eps
