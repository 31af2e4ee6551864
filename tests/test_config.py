"""Tests for the numerical-differentiation configuration system."""

import os

import pytest

from deltamargins._config import get_eps, get_numderiv, resolve_numderiv, set_numderiv


def _reset():
    import deltamargins._config as _cfg

    _cfg._method_override = None
    _cfg._eps_override = None
    os.environ.pop("DELTAMARGINS_NUMDERIV", None)
    os.environ.pop("DELTAMARGINS_EPS", None)


class TestGetNumderiv:
    """Tests for get_numderiv() / get_eps() resolution order."""

    def setup_method(self):
        """Reset state before each test."""
        _reset()

    def teardown_method(self):
        """Reset state after each test."""
        _reset()

    def test_default_is_central(self):
        assert get_numderiv() == "fdcentral"
        assert get_eps() == 1e-4

    def test_env_var_overrides_default(self):
        os.environ["DELTAMARGINS_NUMDERIV"] = "fdforward"
        assert get_numderiv() == "fdforward"

    def test_env_var_case_insensitive(self):
        os.environ["DELTAMARGINS_NUMDERIV"] = "FDForward"
        assert get_numderiv() == "fdforward"

    def test_unknown_env_var_ignored(self):
        os.environ["DELTAMARGINS_NUMDERIV"] = "richardson"
        assert get_numderiv() == "fdcentral"

    def test_env_eps(self):
        os.environ["DELTAMARGINS_EPS"] = "1e-6"
        assert get_eps() == 1e-6

    def test_invalid_env_eps_falls_back(self):
        os.environ["DELTAMARGINS_EPS"] = "tiny"
        assert get_eps() == 1e-4

    def test_programmatic_override_wins_over_env(self):
        os.environ["DELTAMARGINS_NUMDERIV"] = "fdcentral"
        set_numderiv("fdforward", eps=1e-5)
        assert get_numderiv() == "fdforward"
        assert get_eps() == 1e-5

    def test_auto_restores_default(self):
        set_numderiv("fdforward", eps=1e-3)
        set_numderiv("auto")
        assert get_numderiv() == "fdcentral"
        assert get_eps() == 1e-4


class TestSetNumderiv:
    """Tests for set_numderiv() validation."""

    def setup_method(self):
        _reset()

    def teardown_method(self):
        _reset()

    def test_accepts_valid_names(self):
        for name in ("fdcentral", "fdforward", "auto"):
            set_numderiv(name)  # should not raise

    def test_case_insensitive(self):
        set_numderiv("FDFORWARD")
        assert get_numderiv() == "fdforward"

    def test_rejects_invalid_name(self):
        with pytest.raises(ValueError, match="Unknown numderiv method"):
            set_numderiv("complex_step")

    def test_rejects_non_positive_eps(self):
        with pytest.raises(ValueError, match="strictly positive"):
            set_numderiv("fdcentral", eps=0.0)


class TestResolveNumderiv:
    """Per-call numderiv arguments take precedence over globals."""

    def setup_method(self):
        _reset()

    def teardown_method(self):
        _reset()

    def test_none_uses_globals(self):
        set_numderiv("fdforward", eps=1e-3)
        assert resolve_numderiv(None) == ("fdforward", 1e-3)

    def test_string(self):
        assert resolve_numderiv("fdforward") == ("fdforward", 1e-4)

    def test_tuple(self):
        assert resolve_numderiv(("fdcentral", 1e-6)) == ("fdcentral", 1e-6)

    def test_auto_string_resolves_to_global(self):
        os.environ["DELTAMARGINS_NUMDERIV"] = "fdforward"
        assert resolve_numderiv("auto")[0] == "fdforward"

    def test_rejects_bad_method(self):
        with pytest.raises(ValueError, match="Unknown numderiv method"):
            resolve_numderiv("simpson")

    def test_rejects_bad_shape(self):
        with pytest.raises(ValueError, match="method name or a"):
            resolve_numderiv(("fdcentral", 1e-4, 2))

    def test_rejects_bad_eps(self):
        with pytest.raises(ValueError, match="strictly positive"):
            resolve_numderiv(("fdcentral", -1.0))
