"""Tests for hypotheses() on models and on previous results."""

import numpy as np
import pandas as pd
import pytest
import statsmodels.formula.api as smf
from scipy import stats
from sklearn.linear_model import LinearRegression

from deltamargins import EstimateResult, FittedModel, avg_predictions, hypotheses, predictions
from deltamargins.exceptions import InvalidHypothesisSpec

_SEED = 42


@pytest.fixture()
def rng():
    return np.random.default_rng(_SEED)


@pytest.fixture()
def data(rng):
    n = 250
    df = pd.DataFrame(
        {
            "x": rng.standard_normal(n),
            "w": rng.standard_normal(n),
            "g": rng.choice(["a", "b", "c"], size=n),
        }
    )
    df["y"] = 3.0 + 1.0 * df["x"] + 0.5 * df["w"] + 0.4 * (df["g"] == "c") + rng.standard_normal(n)
    return df


@pytest.fixture()
def fit(data):
    return smf.ols("y ~ x + w", data=data).fit()


@pytest.fixture()
def gfit(data):
    return smf.ols("y ~ x + C(g)", data=data).fit()


# ------------------------------------------------------------------ #
# Hypotheses on coefficients
# ------------------------------------------------------------------ #


class TestOnModel:
    def test_default_tests_every_coefficient(self, fit):
        res = hypotheses(fit)
        assert res.table["term"].tolist() == ["Intercept", "x", "w"]
        np.testing.assert_allclose(res.table["estimate"], fit.params)
        np.testing.assert_allclose(res.table["std.error"], fit.bse, rtol=1e-8)
        np.testing.assert_allclose(res.table["statistic"], fit.tvalues, rtol=1e-8)
        np.testing.assert_allclose(res.table["p.value"], 2 * stats.norm.sf(np.abs(fit.tvalues)), rtol=1e-6)

    def test_null_value(self, fit):
        res = hypotheses(fit, null=1.0)
        np.testing.assert_allclose(res.table["statistic"], (fit.params - 1.0) / fit.bse, rtol=1e-8)

    def test_number_is_null(self, fit):
        res = hypotheses(fit, 1.0)
        np.testing.assert_allclose(res.table["statistic"], (fit.params - 1.0) / fit.bse, rtol=1e-8)

    def test_positional_equation(self, fit):
        res = hypotheses(fit, "b2 = b3")
        V = fit.cov_params().to_numpy()
        expected_se = np.sqrt(V[1, 1] + V[2, 2] - 2 * V[1, 2])
        assert res.table["term"].tolist() == ["b2 = b3"]
        assert res.table["estimate"].iloc[0] == pytest.approx(fit.params["x"] - fit.params["w"])
        assert res.table["std.error"].iloc[0] == pytest.approx(expected_se, rel=1e-6)

    def test_named_equation(self, fit):
        res = hypotheses(fit, "x = 2 * w")
        assert res.table["estimate"].iloc[0] == pytest.approx(fit.params["x"] - 2 * fit.params["w"])

    def test_nonlinear_ratio(self, fit):
        res = hypotheses(fit, "b2 / b3 = 1")
        b = fit.params.to_numpy()
        V = fit.cov_params().to_numpy()
        grad = np.array([0.0, 1.0 / b[2], -b[1] / b[2] ** 2])
        assert res.table["estimate"].iloc[0] == pytest.approx(b[1] / b[2] - 1.0)
        assert res.table["std.error"].iloc[0] == pytest.approx(np.sqrt(grad @ V @ grad), rel=1e-5)

    def test_matrix(self, fit):
        L = np.array([[0, 1, -1], [0, 1, 1]])
        res = hypotheses(fit, L)
        assert res.table["term"].tolist() == ["H1", "H2"]
        np.testing.assert_allclose(res.table["estimate"], L @ fit.params.to_numpy())

    def test_callable(self, fit):
        res = hypotheses(fit, lambda b: np.array([b[1] * b[2]]))
        assert res.table["estimate"].iloc[0] == pytest.approx(fit.params["x"] * fit.params["w"])

    def test_matrix_wrong_shape(self, fit):
        with pytest.raises(InvalidHypothesisSpec, match="needs 3 columns"):
            hypotheses(fit, np.ones((1, 2)))

    def test_vcov_robust(self, fit):
        res = hypotheses(fit, vcov="HC1")
        np.testing.assert_allclose(res.table["std.error"], fit.HC1_se, rtol=1e-8)

    def test_transform(self, fit):
        res = hypotheses(fit, "b2 = 0", transform="exp")
        assert res.table["estimate"].iloc[0] == pytest.approx(np.exp(fit.params["x"]))

    def test_model_without_parameters(self, data):
        est = LinearRegression().fit(data[["x"]], data["y"])
        with pytest.raises(ValueError, match="no parameters"):
            hypotheses(est)


# ------------------------------------------------------------------ #
# Chaining on previous results
# ------------------------------------------------------------------ #


class TestChaining:
    def test_linear_matches_direct(self, gfit):
        base = avg_predictions(gfit, by="g")
        chained = hypotheses(base, "pairwise")
        direct = avg_predictions(gfit, by="g", hypothesis="pairwise")
        assert isinstance(chained, EstimateResult)
        np.testing.assert_allclose(chained.table["estimate"], direct.table["estimate"])
        np.testing.assert_allclose(chained.table["std.error"], direct.table["std.error"], rtol=1e-8)
        assert chained.table["term"].tolist() == direct.table["term"].tolist()

    def test_nonlinear_ratio(self, gfit):
        base = avg_predictions(gfit, by="g")
        chained = hypotheses(base, "b3 / b1 = 1")
        est = base.estimate
        G = np.array([[-est[2] / est[0] ** 2, 0.0, 1.0 / est[0]]])
        cov = G @ base.vcov @ G.T
        assert chained.table["estimate"].iloc[0] == pytest.approx(est[2] / est[0] - 1.0)
        assert chained.table["std.error"].iloc[0] == pytest.approx(np.sqrt(cov[0, 0]), rel=1e-5)

    def test_model_not_re_evaluated(self, gfit):
        calls = {"n": 0}

        def predict_fn(b, d, t):
            calls["n"] += 1
            return b[0] + b[1] * d["x"].to_numpy()

        fm = FittedModel(
            coef=gfit.params.to_numpy()[[0, 3]],
            predict_fn=predict_fn,
            vcov=np.eye(2) * 0.01,
            predictors=["x"],
        )
        base = predictions(fm, newdata=pd.DataFrame({"x": [0.0, 1.0]}))
        before = calls["n"]
        hypotheses(base, "b2 = b1")
        assert calls["n"] == before

    def test_retest_without_hypothesis(self, gfit):
        base = avg_predictions(gfit, by="g")
        res = hypotheses(base, null=3.0)
        np.testing.assert_allclose(res.table["estimate"], base.table["estimate"])
        np.testing.assert_allclose(
            res.table["statistic"], (base.estimate - 3.0) / base.table["std.error"].to_numpy()
        )
        assert "g" in res.table.columns

    def test_conf_level_change(self, gfit):
        base = avg_predictions(gfit)
        res = hypotheses(base, conf_level=0.5)
        assert res.table["conf.high"].iloc[0] - res.table["conf.low"].iloc[0] < (
            base.table["conf.high"].iloc[0] - base.table["conf.low"].iloc[0]
        )

    def test_transformed_result_rejected(self, gfit):
        base = avg_predictions(gfit, transform="exp")
        with pytest.raises(ValueError, match="back-transformed"):
            hypotheses(base, "b1 = 0")

    def test_no_standard_errors(self, gfit):
        base = avg_predictions(gfit, by="g", vcov=False)
        res = hypotheses(base, "reference")
        assert "std.error" not in res.table.columns
        assert len(res) == 2

    def test_hypothesis_size_checked(self, gfit):
        base = avg_predictions(gfit, by="g")
        with pytest.raises(InvalidHypothesisSpec):
            hypotheses(base, [1, -1])


# ------------------------------------------------------------------ #
# Posterior draws
# ------------------------------------------------------------------ #


class TestDraws:
    def test_summaries_from_draws(self, rng):
        draws = rng.normal(loc=[1.0, 2.0], scale=0.1, size=(2000, 2))
        fm = FittedModel(
            coef=np.array([1.0, 2.0]),
            predict_fn=lambda b, d, t: b[0] + b[1] * d["x"].to_numpy(),
            draws=draws,
            predictors=["x"],
        )
        res = predictions(fm, newdata=pd.DataFrame({"x": [0.0, 1.0]}))
        assert "std.error" not in res.table.columns
        np.testing.assert_allclose(res.table["estimate"], [1.0, 3.0], atol=0.02)
        assert res.draws.shape == (2, 2000)
        assert np.all(res.table["conf.low"] < res.table["estimate"])

        chained = hypotheses(res, "b2 - b1 = 0")
        np.testing.assert_allclose(
            chained.table["estimate"].iloc[0], np.median(draws[:, 1]), atol=1e-12
        )

    def test_p_adjust_ignored_with_warning(self, rng):
        fm = FittedModel(
            coef=np.array([1.0]),
            predict_fn=lambda b, d, t: b[0] * np.ones(len(d)),
            draws=rng.normal(size=(100, 1)),
        )
        with pytest.warns(UserWarning, match="ignored"):
            predictions(fm, newdata=pd.DataFrame({"x": [0.0]}), p_adjust="holm")
