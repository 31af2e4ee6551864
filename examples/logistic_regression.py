"""
Example 2: Logistic Regression (Binary Outcome)
Fair's extramarital affairs survey (bundled with statsmodels)

Demonstrates:
- Prediction scales: ``"invlink(link)"`` (default for GLMs), ``"response"``,
  ``"link"``
- Risk differences, risk ratios and ``"ratioavg"``
- Marginal effects on the probability scale
- Back-transforms (``transform="exp"`` for odds ratios)
- The same estimands from ``statsmodels`` ``Logit`` and ``GLM(Binomial)``
"""

import numpy as np
import pandas as pd
import statsmodels.api as sm
import statsmodels.formula.api as smf

from deltamargins import (
    avg_comparisons,
    avg_predictions,
    avg_slopes,
    hypotheses,
    marginal_means,
    predictions,
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
fair["affair"] = (fair["affairs"] > 0).astype(int)
fair["religious"] = fair["religious"].map(
    {1.0: "not", 2.0: "mildly", 3.0: "fairly", 4.0: "strongly"}
)

formula = "affair ~ rate_marriage + age + yrs_married + religious"
glm = smf.glm(formula, data=fair, family=sm.families.Binomial()).fit()
logit = smf.logit(formula, data=fair).fit(disp=0)

# ============================================================================
# Prediction scales
# ============================================================================

grid = pd.DataFrame(
    {
        "rate_marriage": [1, 3, 5],
        "age": fair["age"].mean(),
        "yrs_married": fair["yrs_married"].mean(),
        "religious": "not",
    }
)

invlink = predictions(glm, newdata=grid)
response = predictions(glm, newdata=grid, type="response")
link = predictions(glm, newdata=grid, type="link")
assert invlink.type == "invlink(link)"
np.testing.assert_allclose(invlink.table["estimate"], response.table["estimate"])
show(invlink, "Probabilities, intervals built on the link scale")
show(response, "Probabilities, intervals on the response scale")
show(link, "Log-odds")

# ============================================================================
# Comparisons
# ============================================================================

show(avg_comparisons(glm, variables="rate_marriage"), "Average risk difference, +1 rating")
show(
    avg_comparisons(glm, variables="religious", comparison="ratioavg"),
    "Risk ratios of average probabilities, religiosity vs. 'fairly'",
)
show(
    avg_comparisons(glm, variables={"rate_marriage": (1, 5)}, comparison="lnoravg", transform="exp"),
    "Marginal odds ratio, rating 5 vs. 1",
)

# Logit and GLM(Binomial) are the same model.
a = avg_comparisons(glm, variables="rate_marriage").table
b = avg_comparisons(logit, variables="rate_marriage").table
np.testing.assert_allclose(a["estimate"], b["estimate"], rtol=1e-4)

# ============================================================================
# Slopes and marginal means
# ============================================================================

show(avg_slopes(glm), "Average marginal effects on the probability scale")
show(avg_slopes(glm, variables="age", type="link"), "Average slope on the log-odds scale")
show(marginal_means(glm), "Marginal means (inverse-link intervals)")
show(avg_predictions(glm, by="religious", hypothesis="revreference"), "Differences from the last level")

# ============================================================================
# Hypotheses
# ============================================================================

show(hypotheses(glm, "b2 = 0", transform="exp"), "Odds ratio for the marriage rating")
show(hypotheses(glm, "exp(b3) / exp(b4) = 1"), "Ratio of odds ratios, age vs. years married")
