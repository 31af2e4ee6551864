"""Marginal means.

Predictions over a balanced grid — every combination of the levels of
the categorical predictors, numeric predictors at their means — are
averaged within each level of each focal variable.  Averages use equal
weights by default; ``wts="cells"`` weights grid cells by their
frequency in the data and ``wts="proportional"`` by the frequency of
the non-focal combination.

The per-variable averages are stacked as ``term`` / ``value`` rows, or
computed per combination of focal levels with ``cross=True``.  Both the
averaging and the optional ``by`` collapse are linear maps applied
inside the differentiated closure.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import numpy as np
import pandas as pd

from ._compat import _ensure_pandas_df, _is_dataframe_like
from ._results import EstimateResult
from .aggregate import Aggregation, build_aggregation
from .engine import MarginsEngine
from .exceptions import ConflictingOptions, EmptyFocalSet
from .grid import balanced_grid, build_grid, is_categorical, resolve_weights, unique_levels
from .hypothesis import parse_hypothesis
from .pipeline import EstimandPipeline

_WTS = ("equal", "cells", "proportional")


def _focal_variables(
    variables: Any,
    categorical: Sequence[str],
    response: str | None,
) -> list[str]:
    if variables is None:
        focal = list(categorical)
    else:
        focal = [variables] if isinstance(variables, str) else list(variables)
        if response is not None and response in focal:
            msg = f"The response {response!r} cannot be a focal variable of marginal means."
            raise ValueError(msg)
        unknown = [v for v in focal if v not in categorical]
        if unknown:
            msg = (
                f"Marginal means are computed for categorical predictors only; "
                f"{unknown} are not.  Categorical predictors: {list(categorical)}."
            )
            raise ValueError(msg)
    if not focal:
        msg = (
            "No categorical predictor was found.  Marginal means require at "
            "least one categorical, string or boolean predictor."
        )
        raise EmptyFocalSet(msg)
    return focal


def _is_column_names(newdata: Any) -> bool:
    if isinstance(newdata, str):
        return True
    return isinstance(newdata, (list, tuple)) and all(isinstance(n, str) for n in newdata)


def _stacked_aggregation(grid: pd.DataFrame, focal: Sequence[str]) -> Aggregation:
    """One block of level averages per focal variable, stacked."""
    matrices, frames = [], []
    for v in focal:
        agg, _ = build_aggregation(grid, [v])
        keys = agg.keys.copy()
        keys.insert(0, "term", v)
        keys.insert(1, "value", keys[v].astype(object))
        matrices.append(agg.matrix)
        frames.append(keys)
    keys = pd.concat(frames, ignore_index=True)
    return Aggregation(matrix=np.vstack(matrices), keys=keys, by=("term", "value"))


def _collapse(agg: Aggregation, by: pd.DataFrame) -> Aggregation:
    """Unweighted means of the rows sharing a ``by`` label."""
    if "by" not in by.columns:
        msg = "A 'by' data frame must contain a column named 'by'."
        raise ValueError(msg)
    common = [c for c in by.columns if c != "by" and c in agg.keys.columns]
    if not common:
        msg = (
            "There are no common columns in 'by' and in the marginal means.  "
            "One of the focal variables must be a column of 'by'."
        )
        raise ValueError(msg)
    left = agg.keys[common].astype(object)
    left["__row"] = np.arange(len(left))
    right = by[[*common, "by"]].astype({c: object for c in common})
    merged = left.merge(right, on=common, how="inner")
    if merged.empty:
        msg = "No marginal mean matches an entry of the 'by' data frame."
        raise ValueError(msg)
    labels = sorted(pd.unique(merged["by"]), key=str)
    B = np.zeros((len(labels), len(left)))
    for g, label in enumerate(labels):
        rows = merged.loc[merged["by"] == label, "__row"].to_numpy()
        B[g, rows] = 1.0 / len(rows)
    return Aggregation(matrix=B @ agg.matrix, keys=pd.DataFrame({"by": labels}), by=("by",))


def marginal_means(
    model: Any,
    variables: str | Sequence[str] | None = None,
    newdata: Any = None,
    vcov: Any = True,
    conf_level: float = 0.95,
    type: str | None = None,
    transform: Any = None,
    cross: bool = False,
    hypothesis: Any = None,
    equivalence: Sequence[float] | None = None,
    p_adjust: str | None = None,
    df: float = np.inf,
    wts: str = "equal",
    by: pd.DataFrame | None = None,
    numderiv: Any = None,
    n_jobs: int = 1,
    adapter: Any = None,
) -> EstimateResult:
    """Marginal means with delta-method standard errors.

    Args:
        model: A fitted model.
        variables: Focal categorical predictors (default: all).
        newdata: ``None`` for the balanced grid over every categorical
            predictor; a column name or list of column names, which
            limits the non-focal variables of the balanced grid to the
            categorical ones among them (the rest sit at their mean or
            mode); or a data frame that is replicated once per
            combination of focal levels (requires ``wts="equal"``).
        cross: Average per combination of focal levels instead of per
            variable.
        wts: ``"equal"``, ``"cells"`` or ``"proportional"``.
        by: Data frame with a ``by`` column mapping focal levels to
            labels; rows sharing a label are averaged.

    The remaining arguments are those of
    :func:`~deltamargins.predictions`.

    Returns:
        An :class:`~deltamargins.EstimateResult` with ``term`` and
        ``value`` columns (or the focal columns with ``cross=True``).

    Raises:
        EmptyFocalSet: If the model has no categorical predictor.
        ValueError: If column names in *newdata* are not in the model
            data.
        ConflictingOptions: If *newdata* is combined with weights other
            than ``"equal"``.
    """
    if wts not in _WTS:
        msg = f"Unknown wts {wts!r}.  Choose from: {', '.join(_WTS)}."
        raise ValueError(msg)
    if by is not None and not _is_dataframe_like(by):
        msg = "'by' must be a data frame with a 'by' column in marginal_means()."
        raise TypeError(msg)
    engine = MarginsEngine(
        model,
        calling_function="marginal_means",
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
    data = engine.require_data()
    predictors = [p for p in engine.predictors if p in data.columns and p != engine.response]
    categorical = [p for p in predictors if is_categorical(data[p])]
    focal = _focal_variables(variables, categorical, engine.response)
    nonfocal = [c for c in categorical if c not in focal]

    if _is_column_names(newdata):
        names = [newdata] if isinstance(newdata, str) else list(newdata)
        missing = [n for n in names if n not in data.columns]
        if missing:
            msg = (
                f"Columns {missing} in 'newdata' are missing from the data "
                f"used to fit the model."
            )
            raise ValueError(msg)
        nonfocal = [n for n in dict.fromkeys(names) if n not in focal and n in categorical]
        grid = balanced_grid(data, predictors, categorical=[*focal, *nonfocal])
    elif newdata is not None:
        if wts != "equal":
            msg = "'wts' must be 'equal' when 'newdata' is supplied to marginal_means()."
            raise ConflictingOptions(msg)
        source = _ensure_pandas_df(newdata, name="newdata")
        levels = {v: unique_levels(data[v]) for v in focal}
        grid = build_grid(source.drop(columns=["rowid"], errors="ignore"), predictors, levels, grid_type="counterfactual")
    else:
        grid = balanced_grid(data, predictors, categorical=categorical)
    grid = resolve_weights(grid, wts, data, focal=focal, nonfocal=nonfocal)

    if cross or len(focal) == 1:
        aggregation, _ = build_aggregation(grid, focal)
        if len(focal) == 1:
            keys = aggregation.keys.copy()
            keys.insert(0, "term", focal[0])
            keys.insert(1, "value", keys[focal[0]].astype(object))
            aggregation = Aggregation(matrix=aggregation.matrix, keys=keys, by=aggregation.by)
    else:
        aggregation = _stacked_aggregation(grid, focal)
    if by is not None:
        aggregation = _collapse(aggregation, _ensure_pandas_df(by, name="by"))

    table = aggregation.keys
    pipeline = (
        EstimandPipeline.for_predictions(engine.adapter, model, grid, engine.predict_type)
        .with_aggregation(aggregation)
        .with_hypothesis(parse_hypothesis(hypothesis, len(table)))
    )
    return engine.run(pipeline, table, by=aggregation.by, variables=focal)


__all__ = ["marginal_means"]
