"""Tests for the numerical Jacobian and delta-method propagation."""

import numpy as np
import pytest

from deltamargins.delta import (
    DeltaResult,
    delta_method,
    evaluate_draws,
    jacobian,
    propagate,
    standard_errors,
    step_sizes,
)
from deltamargins.exceptions import JacobianEvaluationError

_SEED = 42


@pytest.fixture()
def rng():
    return np.random.default_rng(_SEED)


# ------------------------------------------------------------------ #
# Jacobian
# ------------------------------------------------------------------ #


class TestJacobian:
    def test_step_sizes(self):
        np.testing.assert_allclose(step_sizes(np.array([0.0, 0.5, -20.0]), 1e-4), [1e-4, 1e-4, 2e-3])

    def test_linear_map_exact(self, rng):
        A = rng.standard_normal((4, 3))
        theta = rng.standard_normal(3)
        J = jacobian(lambda t: A @ t, theta)
        np.testing.assert_allclose(J, A, atol=1e-8)

    def test_forward_differences(self, rng):
        A = rng.standard_normal((2, 3))
        theta = rng.standard_normal(3)
        J = jacobian(lambda t: A @ t, theta, method="fdforward")
        np.testing.assert_allclose(J, A, atol=1e-6)

    def test_nonlinear(self):
        theta = np.array([2.0, 3.0])
        J = jacobian(lambda t: np.array([t[0] * t[1], np.exp(t[0])]), theta)
        expected = np.array([[3.0, 2.0], [np.exp(2.0), 0.0]])
        np.testing.assert_allclose(J, expected, rtol=1e-6)

    def test_central_more_accurate_than_forward(self):
        f = lambda t: np.array([t[0] ** 3])  # noqa: E731
        theta = np.array([1.5])
        truth = 3 * 1.5**2
        central = jacobian(f, theta, eps=1e-3)[0, 0]
        forward = jacobian(f, theta, method="fdforward", eps=1e-3)[0, 0]
        assert abs(central - truth) < abs(forward - truth)

    def test_shape(self):
        J = jacobian(lambda t: np.zeros(5) + t.sum(), np.ones(3))
        assert J.shape == (5, 3)

    def test_no_parameters(self):
        J = jacobian(lambda t: np.ones(4), np.empty(0))
        assert J.shape == (4, 0)

    def test_parallel_matches_sequential(self, rng):
        A = rng.standard_normal((10, 6))
        theta = rng.standard_normal(6)
        f = lambda t: np.tanh(A @ t)  # noqa: E731
        seq = jacobian(f, theta, n_jobs=1)
        par = jacobian(f, theta, n_jobs=2)
        np.testing.assert_array_equal(seq, par)

    def test_deterministic(self, rng):
        theta = rng.standard_normal(3)
        f = lambda t: np.sin(t) * t.sum()  # noqa: E731
        np.testing.assert_array_equal(jacobian(f, theta), jacobian(f, theta))

    def test_unknown_method(self):
        with pytest.raises(ValueError, match="Unknown numderiv method"):
            jacobian(lambda t: t, np.ones(2), method="richardson")

    def test_invalid_eps(self):
        with pytest.raises(ValueError, match="positive finite"):
            jacobian(lambda t: t, np.ones(2), eps=0.0)


class TestJacobianFailures:
    def test_exception_names_parameter(self):
        def f(t):
            if t[1] > 1.0:
                raise FloatingPointError("overflow")
            return t

        with pytest.raises(JacobianEvaluationError, match="parameter 1 \\('beta'\\)") as exc_info:
            jacobian(f, np.array([0.0, 1.0]), names=["alpha", "beta"])
        assert exc_info.value.index == 1
        assert exc_info.value.name == "beta"
        assert isinstance(exc_info.value.__cause__, FloatingPointError)

    def test_non_finite_where_baseline_finite(self):
        def f(t):
            return np.array([np.log(1.0 - t[0])])

        # log(1 - θ) at θ = 1 - δ/2 is finite; the forward step crosses 1.
        theta = np.array([1.0 - 5e-5])
        with pytest.raises(JacobianEvaluationError, match="non-finite"):
            jacobian(f, theta)

    def test_non_finite_baseline_tolerated(self):
        J = jacobian(lambda t: np.array([np.nan, t[0]]), np.array([1.0]))
        assert J[1, 0] == pytest.approx(1.0)

    def test_length_change(self):
        def f(t):
            return np.ones(3) if t[0] == 0.0 else np.ones(2)

        with pytest.raises(JacobianEvaluationError, match="output length changed"):
            jacobian(f, np.array([0.0]))

    def test_is_runtime_error(self):
        assert issubclass(JacobianEvaluationError, RuntimeError)


# ------------------------------------------------------------------ #
# Propagation
# ------------------------------------------------------------------ #


class TestPropagate:
    def test_j_sigma_jt(self, rng):
        J = rng.standard_normal((3, 4))
        M = rng.standard_normal((4, 4))
        V = M @ M.T
        np.testing.assert_allclose(propagate(J, V), J @ V @ J.T)

    def test_symmetric(self, rng):
        J = rng.standard_normal((3, 4))
        M = rng.standard_normal((4, 4))
        cov = propagate(J, M @ M.T)
        np.testing.assert_array_equal(cov, cov.T)

    def test_shape_mismatch(self):
        with pytest.raises(ValueError, match="does not match"):
            propagate(np.ones((2, 3)), np.eye(2))

    def test_standard_errors_clip_negative(self):
        cov = np.diag([4.0, -1e-18, 9.0])
        np.testing.assert_allclose(standard_errors(cov), [2.0, 0.0, 3.0])


class TestDeltaMethod:
    def test_product(self):
        res = delta_method(lambda t: t[:1] * t[1:], np.array([2.0, 3.0]), np.eye(2))
        assert isinstance(res, DeltaResult)
        np.testing.assert_allclose(res.estimate, [6.0])
        np.testing.assert_allclose(res.std_error, [np.sqrt(13.0)], rtol=1e-6)

    def test_linear_se_exact(self, rng):
        A = rng.standard_normal((2, 3))
        M = rng.standard_normal((3, 3))
        V = M @ M.T
        res = delta_method(lambda t: A @ t, rng.standard_normal(3), V)
        np.testing.assert_allclose(res.std_error, np.sqrt(np.diag(A @ V @ A.T)), rtol=1e-6)

    def test_monte_carlo_linear_quick(self, rng):
        A = np.array([[1.0, -2.0, 0.5]])
        theta = np.array([0.3, -0.1, 1.2])
        V = np.array([[0.04, 0.01, 0.0], [0.01, 0.09, 0.02], [0.0, 0.02, 0.16]])
        res = delta_method(lambda t: A @ t, theta, V)
        sims = rng.multivariate_normal(theta, V, size=20_000) @ A.T
        assert res.std_error[0] == pytest.approx(sims.std(), rel=0.03)

    def test_monte_carlo_nonlinear_quick(self, rng):
        theta = np.array([1.0, 2.0])
        V = np.diag([1e-4, 1e-4])
        res = delta_method(lambda t: np.atleast_1d(np.exp(t[0]) * t[1]), theta, V)
        sims = rng.multivariate_normal(theta, V, size=20_000)
        values = np.exp(sims[:, 0]) * sims[:, 1]
        assert res.std_error[0] == pytest.approx(values.std(), rel=0.03)

    @pytest.mark.slow
    def test_monte_carlo_linear(self, rng):
        A = np.array([[1.0, -2.0, 0.5]])
        theta = np.array([0.3, -0.1, 1.2])
        V = np.array([[0.04, 0.01, 0.0], [0.01, 0.09, 0.02], [0.0, 0.02, 0.16]])
        res = delta_method(lambda t: A @ t, theta, V)
        sims = rng.multivariate_normal(theta, V, size=200_000) @ A.T
        assert res.std_error[0] == pytest.approx(sims.std(), rel=0.01)

    @pytest.mark.slow
    def test_monte_carlo_nonlinear_small_variance(self, rng):
        theta = np.array([1.0, 2.0])
        V = np.diag([1e-4, 1e-4])
        f = lambda t: np.atleast_1d(np.exp(t[..., 0]) * t[..., 1])  # noqa: E731
        res = delta_method(lambda t: f(t), theta, V)
        sims = rng.multivariate_normal(theta, V, size=200_000)
        values = np.exp(sims[:, 0]) * sims[:, 1]
        assert res.std_error[0] == pytest.approx(values.std(), rel=0.02)


class TestEvaluateDraws:
    def test_shape(self, rng):
        draws = rng.standard_normal((50, 2))
        out = evaluate_draws(lambda t: np.array([t[0], t[1], t.sum()]), draws)
        assert out.shape == (3, 50)
        np.testing.assert_allclose(out[2], draws.sum(axis=1))

    def test_parallel(self, rng):
        draws = rng.standard_normal((20, 2))
        f = lambda t: np.array([t[0] * t[1]])  # noqa: E731
        np.testing.assert_allclose(evaluate_draws(f, draws, n_jobs=2), evaluate_draws(f, draws))
