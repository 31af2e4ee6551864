"""Tests for contrast grids, combine functions and slope values."""

import numpy as np
import pandas as pd
import pytest

from deltamargins.estimands import (
    COMPARISONS,
    comparison_contrasts,
    default_eps,
    normalize_variables,
    resolve_comparison,
    set_values,
    slope_contrasts,
    slope_value,
    stack_contrast_table,
)
from deltamargins.exceptions import EmptyFocalSet


@pytest.fixture()
def grid():
    return pd.DataFrame(
        {
            "rowid": [0, 1, 2, 3],
            "x": [0.0, 1.0, 2.0, 3.0],
            "g": ["a", "b", "c", "a"],
            "flag": [True, False, True, False],
        }
    )


# ------------------------------------------------------------------ #
# Combine functions
# ------------------------------------------------------------------ #


class TestComparisons:
    def test_builtins(self):
        hi, lo = np.array([0.6, 2.0]), np.array([0.3, 1.0])
        np.testing.assert_allclose(COMPARISONS["difference"](hi, lo), [0.3, 1.0])
        np.testing.assert_allclose(COMPARISONS["ratio"](hi, lo), [2.0, 2.0])
        np.testing.assert_allclose(COMPARISONS["lnratio"](hi, lo), np.log([2.0, 2.0]))
        np.testing.assert_allclose(COMPARISONS["lift"](hi, lo), [1.0, 1.0])
        lnor = np.log((0.6 / 0.4) / (0.3 / 0.7))
        np.testing.assert_allclose(COMPARISONS["lnor"](hi[:1], lo[:1]), [lnor])

    def test_avg_suffix(self):
        cmp = resolve_comparison("ratioavg")
        assert cmp.avg
        assert cmp.name == "ratioavg"
        assert not resolve_comparison("ratio").avg

    def test_callable(self):
        cmp = resolve_comparison(lambda hi, lo: hi / lo - 1)
        np.testing.assert_allclose(cmp(np.array([2.0]), np.array([1.0])), [1.0])

    def test_callable_wrong_shape(self):
        cmp = resolve_comparison(lambda hi, lo: np.mean(hi - lo))
        with pytest.raises(ValueError, match="one value per row"):
            cmp(np.ones(3), np.zeros(3))

    def test_unknown(self):
        with pytest.raises(ValueError, match="Unknown comparison"):
            resolve_comparison("odds")


class TestSlopeValue:
    def test_variants(self):
        hi, lo = np.array([2.01]), np.array([1.99])
        x, y = np.array([4.0]), np.array([2.0])
        assert slope_value("dydx", hi, lo, 0.01, x, y)[0] == pytest.approx(2.0)
        assert slope_value("eyex", hi, lo, 0.01, x, y)[0] == pytest.approx(4.0)
        assert slope_value("eydx", hi, lo, 0.01, x, y)[0] == pytest.approx(1.0)
        assert slope_value("dyex", hi, lo, 0.01, x, y)[0] == pytest.approx(8.0)

    def test_unknown(self):
        with pytest.raises(ValueError, match="Unknown slope"):
            slope_value("d2ydx2", np.ones(1), np.ones(1), 1.0, np.ones(1), None)


# ------------------------------------------------------------------ #
# Focal variables
# ------------------------------------------------------------------ #


class TestNormalizeVariables:
    def test_none_selects_predictors(self):
        assert normalize_variables(None, ["x", "g"], "y") == {"x": None, "g": None}

    def test_string_and_list(self):
        assert normalize_variables("x", ["x"]) == {"x": None}
        assert normalize_variables(["x", "g"], ["x", "g"]) == {"x": None, "g": None}

    def test_dict_kept(self):
        assert normalize_variables({"x": "sd"}, ["x"]) == {"x": "sd"}

    def test_response_rejected(self):
        with pytest.raises(ValueError, match="response 'y'"):
            normalize_variables(["x", "y"], ["x"], "y")

    def test_empty(self):
        with pytest.raises(EmptyFocalSet):
            normalize_variables(None, [], "y")

    def test_bad_type(self):
        with pytest.raises(TypeError, match="'variables' must be"):
            normalize_variables(3, ["x"])


# ------------------------------------------------------------------ #
# Contrast grids
# ------------------------------------------------------------------ #


class TestNumericContrasts:
    def test_default_step_one(self, grid):
        [block] = comparison_contrasts(grid, {"x": None})
        assert block.label == "+1"
        np.testing.assert_allclose(block.hi["x"] - block.lo["x"], 1.0)
        np.testing.assert_allclose(block.lo["x"], grid["x"])

    def test_only_focal_column_changes(self, grid):
        [block] = comparison_contrasts(grid, {"x": 2})
        pd.testing.assert_frame_equal(block.lo.drop(columns="x"), grid.drop(columns="x"))
        pd.testing.assert_frame_equal(block.hi.drop(columns="x"), grid.drop(columns="x"))

    def test_sd_centered(self, grid):
        [block] = comparison_contrasts(grid, {"x": "sd"})
        sd = grid["x"].std()
        assert block.label == "+sd"
        np.testing.assert_allclose(block.hi["x"] - block.lo["x"], sd)
        np.testing.assert_allclose((block.hi["x"] + block.lo["x"]) / 2, grid["x"])

    def test_2sd(self, grid):
        [block] = comparison_contrasts(grid, {"x": "2sd"})
        np.testing.assert_allclose(block.hi["x"] - block.lo["x"], 2 * grid["x"].std())

    def test_iqr_and_minmax(self, grid):
        [iqr] = comparison_contrasts(grid, {"x": "iqr"})
        assert iqr.label == "Q3 - Q1"
        np.testing.assert_allclose(iqr.lo["x"], 0.75)
        np.testing.assert_allclose(iqr.hi["x"], 2.25)
        [mm] = comparison_contrasts(grid, {"x": "minmax"})
        assert mm.label == "Max - Min"
        np.testing.assert_allclose(mm.hi["x"], 3.0)

    def test_explicit_pair(self, grid):
        [block] = comparison_contrasts(grid, {"x": (10, 20)})
        assert block.label == "20 - 10"
        np.testing.assert_allclose(block.lo["x"], 10.0)
        np.testing.assert_allclose(block.hi["x"], 20.0)

    def test_function(self, grid):
        fn = lambda x: pd.DataFrame({"lo": x - 0.5, "hi": x * 2})  # noqa: E731
        [block] = comparison_contrasts(grid, {"x": fn})
        assert block.label == "custom"
        np.testing.assert_allclose(block.hi["x"], grid["x"] * 2)

    def test_function_must_return_frame(self, grid):
        with pytest.raises(ValueError, match="two columns"):
            comparison_contrasts(grid, {"x": lambda x: x})

    def test_invalid_spec(self, grid):
        with pytest.raises(ValueError, match="Invalid contrast for numeric"):
            comparison_contrasts(grid, {"x": "range"})

    def test_source_data_statistics(self, grid):
        data = pd.DataFrame({"x": [0.0, 100.0]})
        [block] = comparison_contrasts(grid, {"x": "minmax"}, data)
        np.testing.assert_allclose(block.hi["x"], 100.0)

    def test_missing_column(self, grid):
        with pytest.raises(ValueError, match="not columns of the evaluation grid"):
            comparison_contrasts(grid, {"z": None})


class TestCategoricalContrasts:
    def test_reference_default(self, grid):
        blocks = comparison_contrasts(grid, {"g": None})
        assert [b.label for b in blocks] == ["b - a", "c - a"]
        assert blocks[0].lo["g"].eq("a").all()
        assert blocks[0].hi["g"].eq("b").all()

    def test_sequential(self, grid):
        blocks = comparison_contrasts(grid, {"g": "sequential"})
        assert [b.label for b in blocks] == ["b - a", "c - b"]

    def test_pairwise_and_rev(self, grid):
        assert [b.label for b in comparison_contrasts(grid, {"g": "pairwise"})] == ["b - a", "c - a", "c - b"]
        assert [b.label for b in comparison_contrasts(grid, {"g": "revpairwise"})] == ["a - b", "a - c", "b - c"]

    def test_swapped_pair(self, grid):
        [fwd] = comparison_contrasts(grid, {"g": ("a", "c")})
        [rev] = comparison_contrasts(grid, {"g": ("c", "a")})
        assert fwd.label == "c - a"
        assert rev.label == "a - c"
        pd.testing.assert_frame_equal(fwd.lo, rev.hi)

    def test_unobserved_level(self, grid):
        with pytest.raises(ValueError, match="not observed"):
            comparison_contrasts(grid, {"g": ("a", "z")})

    def test_bool(self, grid):
        [block] = comparison_contrasts(grid, {"flag": None})
        assert block.label == "True - False"
        assert block.hi["flag"].dtype == bool
        assert block.hi["flag"].all()

    def test_single_level_yields_nothing(self):
        g = pd.DataFrame({"rowid": [0, 1], "g": ["a", "a"]})
        with pytest.raises(EmptyFocalSet):
            comparison_contrasts(g, {"g": None})

    def test_category_dtype_kept(self, grid):
        cat = grid.assign(g=grid["g"].astype("category"))
        [block, _] = comparison_contrasts(cat, {"g": None})
        assert isinstance(block.hi["g"].dtype, pd.CategoricalDtype)


class TestSlopeContrasts:
    def test_numeric_pair_centered(self, grid):
        [block] = slope_contrasts(grid, {"x": None}, eps=0.01)
        assert block.label == "dY/dX"
        assert block.eps == 0.01
        np.testing.assert_allclose(block.hi["x"] - block.lo["x"], 0.01)
        np.testing.assert_allclose((block.hi["x"] + block.lo["x"]) / 2, grid["x"])

    def test_default_eps_from_range(self, grid):
        [block] = slope_contrasts(grid, {"x": None})
        assert block.eps == pytest.approx(3e-4)
        assert default_eps(pd.Series([5.0, 5.0])) == 1e-4

    def test_elasticity_labels(self, grid):
        assert slope_contrasts(grid, {"x": None}, slope="eyex")[0].label == "eY/eX"

    def test_categorical_falls_back_to_reference(self, grid):
        blocks = slope_contrasts(grid, {"g": None})
        assert [b.label for b in blocks] == ["b - a", "c - a"]
        assert all(b.eps is None for b in blocks)

    def test_invalid_eps(self, grid):
        with pytest.raises(ValueError, match="'eps'"):
            slope_contrasts(grid, {"x": None}, eps=-1.0)

    def test_unknown_slope(self, grid):
        with pytest.raises(ValueError, match="Unknown slope"):
            slope_contrasts(grid, {"x": None}, slope="elasticity")


class TestStackTable:
    def test_term_and_contrast_after_rowid(self, grid):
        blocks = comparison_contrasts(grid, {"x": None, "g": None})
        table = stack_contrast_table(grid, blocks)
        assert table.columns[:3].tolist() == ["rowid", "term", "contrast"]
        assert len(table) == 3 * len(grid)
        assert table["contrast"].unique().tolist() == ["+1", "b - a", "c - a"]

    def test_set_values_scalar(self, grid):
        out = set_values(grid, "x", 7.0)
        assert out["x"].tolist() == [7.0] * 4
        assert grid["x"].tolist() == [0.0, 1.0, 2.0, 3.0]
