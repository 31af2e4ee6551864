"""
Example 3: Mixed Models, Machine Learning and Custom Prediction Functions
Synthetic clustered data

Demonstrates:
- ``MixedLM`` — population-level predictions from the fixed effects
- scikit-learn estimators — point estimates only (no parameter covariance)
- ``FittedModel`` — any prediction function, with a covariance matrix
  (delta method) or posterior draws (quantile intervals)
- Parallel Jacobian columns (``n_jobs``) and numerical-derivative settings
"""

import numpy as np
import pandas as pd
import statsmodels.formula.api as smf
from sklearn.ensemble import GradientBoostingRegressor

from deltamargins import (
    FittedModel,
    avg_comparisons,
    avg_predictions,
    avg_slopes,
    predictions,
    set_numderiv,
)

pd.set_option("display.width", 140)
pd.set_option("display.max_columns", 20)


def show(result, title):
    print(f"\n{'=' * 70}")
    print(title)
    print(f"{'=' * 70}")
    print(result.table.to_string(index=False, float_format=lambda v: f"{v:.4f}"))


# ============================================================================
# Simulate clustered data
# ============================================================================

rng = np.random.default_rng(42)
n_clusters, per_cluster = 40, 25
cluster = np.repeat(np.arange(n_clusters), per_cluster)
u = rng.normal(scale=0.8, size=n_clusters)[cluster]
df = pd.DataFrame(
    {
        "cluster": cluster,
        "dose": rng.uniform(0, 4, cluster.size),
        "arm": rng.choice(["control", "treated"], size=cluster.size),
    }
)
df["y"] = (
    1.0
    + 0.6 * df["dose"]
    - 0.08 * df["dose"] ** 2
    + 0.9 * (df["arm"] == "treated")
    + u
    + rng.normal(scale=0.5, size=cluster.size)
)

# ============================================================================
# Linear mixed model
# ============================================================================

mixed = smf.mixedlm("y ~ dose + I(dose**2) + arm", data=df, groups=df["cluster"]).fit()
show(avg_comparisons(mixed, variables="arm"), "Treatment effect (fixed effects)")
show(
    avg_slopes(mixed, variables="dose", by="arm", n_jobs=2),
    "Average dose slope by arm, parallel Jacobian",
)

set_numderiv("fdforward", eps=1e-6)
forward = avg_slopes(mixed, variables="dose")
set_numderiv("auto")
central = avg_slopes(mixed, variables="dose")
np.testing.assert_allclose(forward.table["estimate"], central.table["estimate"], rtol=1e-3)

# ============================================================================
# scikit-learn: estimates only
# ============================================================================

X = pd.get_dummies(df[["dose", "arm"]], drop_first=True).astype(float)
gbr = GradientBoostingRegressor(random_state=0).fit(X, df["y"])
grid = pd.DataFrame({"dose": [0.5, 2.0, 3.5], "arm_treated": [1.0, 1.0, 1.0]})
ml = predictions(gbr, newdata=grid)
assert "std.error" not in ml.table.columns
show(ml, "Gradient boosting predictions (no standard errors)")

# ============================================================================
# FittedModel: covariance and posterior draws
# ============================================================================

theta = mixed.fe_params.to_numpy()
cov = mixed.cov_params().loc[mixed.fe_params.index, mixed.fe_params.index].to_numpy()


def quadratic(params, newdata, type):
    dose = newdata["dose"].to_numpy(dtype=float)
    treated = (newdata["arm"] == "treated").to_numpy(dtype=float)
    return params[0] + params[1] * dose + params[2] * dose**2 + params[3] * treated


delta = FittedModel(
    coef=theta,
    predict_fn=quadratic,
    vcov=cov,
    data=df,
    predictors=["dose", "arm"],
    response="y",
    names=["intercept", "dose", "dose2", "treated"],
)
show(avg_predictions(delta, by="arm"), "FittedModel, delta method")

bayes = FittedModel(
    coef=theta,
    predict_fn=quadratic,
    draws=rng.multivariate_normal(theta, cov, size=2000),
    data=df,
    predictors=["dose", "arm"],
    response="y",
)
show(avg_predictions(bayes, by="arm"), "FittedModel, posterior draws (median, 95% quantiles)")
show(avg_slopes(bayes, variables="dose"), "Posterior average slope")
