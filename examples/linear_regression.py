"""
Example 1: Linear Regression (Continuous Outcome)
Fair's extramarital affairs survey (bundled with statsmodels)

Demonstrates:
- ``predictions`` on the model data, a typical grid and a counterfactual grid
- ``avg_predictions`` by group, with a pairwise hypothesis
- ``comparisons`` / ``avg_comparisons`` for numeric and categorical focals
- ``slopes`` with an interaction, and elasticities
- ``marginal_means`` with equal, cell and proportional weights
- ``hypotheses`` on coefficients and chained on a previous result
- Heteroskedasticity-robust covariance (``vcov="HC3"``)
"""

import numpy as np
import pandas as pd
import statsmodels.api as sm
import statsmodels.formula.api as smf

from deltamargins import (
    avg_comparisons,
    avg_predictions,
    avg_slopes,
    comparisons,
    datagrid,
    hypotheses,
    marginal_means,
    predictions,
    slopes,
)

pd.set_option("display.width", 140)
pd.set_option("display.max_columns", 20)


def show(result, title):
    print(f"\n{'=' * 70}")
    print(title)
    print(f"{'=' * 70}")
    print(result.table.to_string(index=False, float_format=lambda v: f"{v:.4f}"))


# ============================================================================
# Load data
# ============================================================================

fair = sm.datasets.fair.load_pandas().data
fair["religious"] = fair["religious"].map(
    {1.0: "not", 2.0: "mildly", 3.0: "fairly", 4.0: "strongly"}
)
fair["has_children"] = fair["children"] > 0

fit = smf.ols(
    "rate_marriage ~ yrs_married * has_children + age + religious",
    data=fair,
).fit()
print(fit.summary().tables[1])

# ============================================================================
# Predictions
# ============================================================================

unit = predictions(fit)
assert len(unit) == len(fair)
print(f"\nUnit-level predictions: {len(unit)} rows")

grid = datagrid(fit, yrs_married=[1, 5, 10, 20], has_children=[False, True])
show(predictions(fit, newdata=grid), "Predictions on a typical grid")

show(
    predictions(fit, newdata="mean", vcov="HC3"),
    "Prediction at the mean, HC3 standard errors",
)

show(
    avg_predictions(fit, variables={"has_children": [False, True]}, by="has_children"),
    "Counterfactual average predictions",
)

show(
    avg_predictions(fit, by="religious", hypothesis="pairwise", p_adjust="holm"),
    "Average predictions by religiosity, pairwise differences (Holm)",
)

# ============================================================================
# Comparisons
# ============================================================================

show(avg_comparisons(fit), "Average comparisons, every predictor")
show(
    avg_comparisons(fit, variables={"yrs_married": "sd"}, by="has_children"),
    "Effect of a one-SD increase in years married, by children",
)
show(
    comparisons(fit, variables={"religious": ("not", "strongly")}, newdata="mean"),
    "Strongly vs. not religious at the mean",
)

# ============================================================================
# Slopes
# ============================================================================

show(
    avg_slopes(fit, variables="yrs_married", by="has_children"),
    "Average slope of years married, by children",
)
show(
    slopes(fit, variables="age", newdata="mean", slope="eyex"),
    "Elasticity of the rating with respect to age",
)

# The interaction makes the slope differ between groups; the difference
# equals the interaction coefficient.
by_children = avg_slopes(fit, variables="yrs_married", by="has_children")
diff = hypotheses(by_children, "b2 = b1")
np.testing.assert_allclose(
    diff.table["estimate"].iloc[0],
    fit.params["yrs_married:has_children[T.True]"],
    rtol=1e-5,
)
show(diff, "Difference in slopes (chained hypothesis)")

# ============================================================================
# Marginal means
# ============================================================================

show(marginal_means(fit), "Marginal means, equal weights")
show(marginal_means(fit, variables="religious", wts="cells"), "Marginal means, cell weights")
show(
    marginal_means(fit, variables="religious", wts="proportional", hypothesis="reference"),
    "Marginal means, proportional weights, differences from the first level",
)

# ============================================================================
# Hypotheses on coefficients
# ============================================================================

show(hypotheses(fit), "Every coefficient against zero")
show(
    hypotheses(fit, "age = 2 * yrs_married"),
    "Named-coefficient equation",
)
show(
    hypotheses(fit, "b2 = 0", equivalence=[-0.05, 0.05]),
    "Equivalence test for the first slope",
)
