"""Tests for the inference finalizer and back-transforms."""

import numpy as np
import pandas as pd
import pytest
from scipy import stats

from deltamargins.exceptions import ConflictingOptions
from deltamargins.inference import (
    adjust_pvalues,
    backtransform,
    critical_value,
    finalize,
    order_columns,
    resolve_transform,
    summarize_draws,
    validate_inference_args,
)


@pytest.fixture()
def table():
    return pd.DataFrame(
        {
            "term": ["a", "b", "c"],
            "estimate": [1.0, -0.5, 0.1],
            "std.error": [0.5, 0.25, 1.0],
        }
    )


class TestValidate:
    def test_accepts_defaults(self):
        validate_inference_args(0.95)

    @pytest.mark.parametrize("level", [0.0, 1.0, 1.5, -0.1])
    def test_conf_level_bounds(self, level):
        with pytest.raises(ValueError, match="strictly between 0 and 1"):
            validate_inference_args(level)

    def test_df_positive(self):
        with pytest.raises(ValueError, match="'df'"):
            validate_inference_args(0.95, df=0)

    def test_unknown_p_adjust(self):
        with pytest.raises(ValueError, match="Unknown p_adjust"):
            validate_inference_args(0.95, p_adjust="sidak")

    def test_equivalence_order(self):
        with pytest.raises(ValueError, match="lower <= upper"):
            validate_inference_args(0.95, equivalence=(1.0, -1.0))

    def test_equivalence_length(self):
        with pytest.raises(ValueError, match="pair"):
            validate_inference_args(0.95, equivalence=(1.0,))

    def test_p_adjust_with_equivalence_conflicts(self):
        with pytest.raises(ConflictingOptions, match="cannot be used together"):
            validate_inference_args(0.95, p_adjust="holm", equivalence=(-1, 1))

    def test_conflict_is_value_error(self):
        assert issubclass(ConflictingOptions, ValueError)


class TestFinalize:
    def test_normal_reference(self, table):
        out = finalize(table)
        z = table["estimate"] / table["std.error"]
        np.testing.assert_allclose(out["statistic"], z)
        np.testing.assert_allclose(out["p.value"], 2 * stats.norm.sf(np.abs(z)))
        np.testing.assert_allclose(out["s.value"], -np.log2(out["p.value"]))
        crit = stats.norm.ppf(0.975)
        np.testing.assert_allclose(out["conf.low"], table["estimate"] - crit * table["std.error"])
        np.testing.assert_allclose(out["conf.high"], table["estimate"] + crit * table["std.error"])

    def test_student_t(self, table):
        out = finalize(table, df=10)
        z = table["estimate"] / table["std.error"]
        np.testing.assert_allclose(out["p.value"], 2 * stats.t(10).sf(np.abs(z)))
        assert critical_value(0.95, 10) == pytest.approx(stats.t(10).ppf(0.975))

    def test_conf_level(self, table):
        narrow = finalize(table, conf_level=0.5)
        wide = finalize(table, conf_level=0.99)
        assert np.all(narrow["conf.high"] - narrow["conf.low"] < wide["conf.high"] - wide["conf.low"])

    def test_null_value(self, table):
        out = finalize(table, null=1.0)
        assert out["statistic"].iloc[0] == pytest.approx(0.0)
        assert out["p.value"].iloc[0] == pytest.approx(1.0)

    def test_input_not_modified(self, table):
        finalize(table)
        assert "p.value" not in table.columns

    def test_p_adjust_bonferroni(self, table):
        raw = finalize(table)["p.value"].to_numpy()
        adj = finalize(table, p_adjust="bonferroni")["p.value"].to_numpy()
        np.testing.assert_allclose(adj, np.minimum(raw * 3, 1.0))

    def test_p_adjust_leaves_intervals(self, table):
        raw = finalize(table)
        adj = finalize(table, p_adjust="holm")
        np.testing.assert_allclose(raw["conf.low"], adj["conf.low"])

    def test_zero_standard_error(self):
        t = pd.DataFrame({"estimate": [1.0], "std.error": [0.0]})
        out = finalize(t)
        assert np.isinf(out["statistic"].iloc[0])
        assert out["p.value"].iloc[0] == 0.0

    def test_equivalence(self, table):
        out = finalize(table, equivalence=(-1.0, 1.0))
        est, se = table["estimate"], table["std.error"]
        np.testing.assert_allclose(out["p.value.noninf"], stats.norm.sf((est + 1.0) / se))
        np.testing.assert_allclose(out["p.value.nonsup"], stats.norm.cdf((est - 1.0) / se))
        np.testing.assert_allclose(
            out["p.value.equiv"], np.maximum(out["p.value.noninf"], out["p.value.nonsup"])
        )


class TestAdjustPvalues:
    def test_nan_left_in_place(self):
        out = adjust_pvalues(np.array([0.01, np.nan, 0.04]), "holm")
        assert np.isnan(out[1])
        np.testing.assert_allclose(out[[0, 2]], [0.02, 0.04])

    def test_none(self):
        p = np.array([0.01, 0.2])
        np.testing.assert_array_equal(adjust_pvalues(p, "none"), p)
        np.testing.assert_array_equal(adjust_pvalues(p, None), p)

    def test_bh(self):
        p = np.array([0.01, 0.02, 0.03, 0.5])
        np.testing.assert_allclose(adjust_pvalues(p, "BH"), [0.04, 0.04, 0.04, 0.5])


class TestDraws:
    def test_median_and_quantiles(self):
        draws = np.vstack([np.arange(101, dtype=float), -np.arange(101, dtype=float)])
        out = summarize_draws(pd.DataFrame({"term": ["a", "b"]}), draws, conf_level=0.9)
        np.testing.assert_allclose(out["estimate"], [50.0, -50.0])
        np.testing.assert_allclose(out["conf.low"], [5.0, -95.0])
        np.testing.assert_allclose(out["conf.high"], [95.0, -5.0])


class TestBacktransform:
    def test_exp(self, table):
        out = backtransform(finalize(table), np.exp)
        fin = finalize(table)
        np.testing.assert_allclose(out["estimate"], np.exp(table["estimate"]))
        np.testing.assert_allclose(out["conf.low"], np.exp(fin["conf.low"]))
        assert "std.error" not in out.columns
        assert "statistic" not in out.columns
        assert "p.value" in out.columns

    def test_decreasing_function_keeps_order(self, table):
        out = backtransform(finalize(table), lambda x: -x)
        assert np.all(out["conf.low"] <= out["conf.high"])

    def test_resolve_named(self):
        assert resolve_transform("exp") is np.exp
        assert resolve_transform(None) is None
        f = np.sqrt
        assert resolve_transform(f) is f

    def test_resolve_invlogit(self):
        assert resolve_transform("invlogit")(np.array([0.0]))[0] == pytest.approx(0.5)

    def test_resolve_unknown(self):
        with pytest.raises(ValueError, match="Unknown transform"):
            resolve_transform("sqrt")


class TestOrderColumns:
    def test_estimate_after_identifiers(self, table):
        out = order_columns(finalize(table).assign(extra=1))
        cols = out.columns.tolist()
        assert cols[:3] == ["term", "extra", "estimate"]
        assert cols[3] == "std.error"
