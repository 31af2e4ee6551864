"""The composed estimand closure differentiated by the delta method.

An :class:`EstimandPipeline` is a frozen description of

    estimand (predictions or contrasts) → aggregation → hypothesis

at fixed data.  Calling it with a parameter vector θ' re-runs the whole
composition, so the delta-method engine can treat it as an opaque
function ``h(θ') -> ℝᵏ``.  Design matrices are built once, at
construction; each call only performs the cheap ``predict_design``
products.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from typing import Any

import numpy as np
import pandas as pd

from .adapters import ModelAdapter
from .aggregate import Aggregation
from .estimands import Comparison, Contrast, slope_value
from .hypothesis import Hypothesis


@dataclass(frozen=True)
class _Block:
    """Prebuilt designs for one contrast block."""

    lo: Any = field(repr=False)
    hi: Any = field(repr=False)
    x: np.ndarray | None = field(default=None, repr=False)
    eps: float | None = None


@dataclass(frozen=True)
class EstimandPipeline:
    """Callable ``h(θ')`` for one request.

    Build instances with :meth:`for_predictions` or
    :meth:`for_contrasts`.

    Attributes:
        adapter: Resolved model adapter.
        model: The fitted model (read only).
        type: Prediction scale passed to the adapter.
        kind: ``"predictions"`` or ``"contrasts"``.
        designs: For predictions, the design of the grid.  For
            contrasts, the design of the base grid (used by slope
            elasticities), or ``None``.
        blocks: Contrast blocks (empty for predictions).
        comparison: Combine function for discrete contrasts.
        slope: Slope kind for numeric slope blocks, else ``None``.
        aggregation: Averaging map, or ``None``.
        hypothesis: Parsed hypothesis, or ``None``.
    """

    adapter: ModelAdapter = field(repr=False)
    model: Any = field(repr=False)
    type: str
    kind: str = "predictions"
    designs: Any = field(default=None, repr=False)
    blocks: tuple[_Block, ...] = field(default=(), repr=False)
    comparison: Comparison | None = None
    slope: str | None = None
    aggregation: Aggregation | None = field(default=None, repr=False)
    hypothesis: Hypothesis | None = None

    # -------------------------------------------------------------- #
    # Constructors
    # -------------------------------------------------------------- #

    @classmethod
    def for_predictions(
        cls,
        adapter: ModelAdapter,
        model: Any,
        grid: pd.DataFrame,
        type: str,
    ) -> EstimandPipeline:
        return cls(
            adapter=adapter,
            model=model,
            type=type,
            kind="predictions",
            designs=adapter.design(model, grid),
        )

    @classmethod
    def for_contrasts(
        cls,
        adapter: ModelAdapter,
        model: Any,
        grid: pd.DataFrame,
        contrasts: Sequence[Contrast],
        type: str,
        comparison: Comparison | None = None,
        slope: str | None = None,
    ) -> EstimandPipeline:
        needs_y = slope is not None and slope != "dydx"
        blocks = tuple(
            _Block(
                lo=adapter.design(model, c.lo),
                hi=adapter.design(model, c.hi),
                x=grid[c.term].to_numpy(dtype=float) if c.eps is not None else None,
                eps=c.eps,
            )
            for c in contrasts
        )
        return cls(
            adapter=adapter,
            model=model,
            type=type,
            kind="contrasts",
            designs=adapter.design(model, grid) if needs_y else None,
            blocks=blocks,
            comparison=comparison,
            slope=slope,
        )

    def with_aggregation(self, aggregation: Aggregation | None) -> EstimandPipeline:
        return replace(self, aggregation=aggregation)

    def with_hypothesis(self, hypothesis: Hypothesis | None) -> EstimandPipeline:
        return replace(self, hypothesis=hypothesis)

    # -------------------------------------------------------------- #
    # Evaluation
    # -------------------------------------------------------------- #

    def _predict(self, params: np.ndarray, design: Any) -> np.ndarray:
        return self.adapter.predict_design(self.model, params, design, self.type)

    def contrast_parts(self, params: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """Stacked ``(hi, lo)`` predictions over all blocks."""
        hi = np.concatenate([self._predict(params, b.hi) for b in self.blocks])
        lo = np.concatenate([self._predict(params, b.lo) for b in self.blocks])
        return hi, lo

    def _contrast_rows(self, params: np.ndarray) -> np.ndarray:
        y = self._predict(params, self.designs) if self.designs is not None else None
        out = []
        for b in self.blocks:
            hi = self._predict(params, b.hi)
            lo = self._predict(params, b.lo)
            if b.eps is not None:
                out.append(slope_value(self.slope or "dydx", hi, lo, b.eps, b.x, y))
            elif self.comparison is not None:
                out.append(self.comparison(hi, lo))
            else:
                out.append(hi - lo)
        return np.concatenate(out)

    def estimand(self, params: np.ndarray) -> np.ndarray:
        """Aggregated estimates before the hypothesis."""
        if self.kind == "predictions":
            values = self._predict(params, self.designs)
        elif self.comparison is not None and self.comparison.avg:
            hi, lo = self.contrast_parts(params)
            if self.aggregation is not None:
                return self.comparison(self.aggregation.apply(hi), self.aggregation.apply(lo))
            return self.comparison(hi, lo)
        else:
            values = self._contrast_rows(params)
        if self.aggregation is not None:
            return self.aggregation.apply(values)
        return values

    def __call__(self, params: np.ndarray) -> np.ndarray:
        values = self.estimand(np.asarray(params, dtype=float))
        if self.hypothesis is not None:
            return self.hypothesis.apply(values)
        return values


@dataclass(frozen=True)
class CoefficientPipeline:
    """Closure over the coefficients themselves: ``h(θ') = hyp(θ')``."""

    hypothesis: Hypothesis | None = None

    def estimand(self, params: np.ndarray) -> np.ndarray:
        return np.asarray(params, dtype=float)

    def __call__(self, params: np.ndarray) -> np.ndarray:
        values = self.estimand(params)
        if self.hypothesis is not None:
            return self.hypothesis.apply(values)
        return values


__all__ = ["CoefficientPipeline", "EstimandPipeline"]
