import sys
import types

import numpy as np
import pytest

from poismf.cg import (
    CG_DECR_LNSRCH,
    CG_LNSRCH_CONST,
    CG_MAX_FEV,
    CG_MAX_LS,
    CG_TOL,
    NonnegCGMinimizer,
    ScipyCGMinimizer,
    cg_update_row,
    optimize_cg_single,
)
from poismf.gradient import (
    RowData,
    calc_fun_single,
    calc_grad_pgd,
    calc_grad_single,
    row_poisson_objective,
)
from poismf.pgd import pgd_update_row


def _row_problem(k: int = 3, n_items: int = 12, seed: int = 0) -> RowData:
    rng = np.random.default_rng(seed)
    F = rng.gamma(2., 0.5, (n_items, k))
    X_ind = np.array([0, 3, 4, 9], dtype=np.intp)
    X = np.array([2., 1., 5., 3.])
    return RowData(F, F.sum(axis=0), X, X_ind, 0.)


def test_calc_grad_pgd_matches_explicit_sum() -> None:
    data = _row_problem()
    curr = np.array([0.3, 0.2, 0.5])
    expected = np.zeros(3)
    for x, j in zip(data.X, data.X_ind):
        expected += x / np.dot(curr, data.F[j]) * data.F[j]

    out = np.empty(3)
    calc_grad_pgd(out, curr, data.F, data.X, data.X_ind)
    np.testing.assert_allclose(out, expected, rtol=1e-12)


def test_calc_grad_pgd_empty_row_is_zero() -> None:
    data = _row_problem()
    out = np.full(3, 7.)
    calc_grad_pgd(out, np.ones(3), data.F, np.empty(0), np.empty(0, dtype=np.intp))
    np.testing.assert_array_equal(out, np.zeros(3))


def test_combined_gradient_matches_finite_differences() -> None:
    data = _row_problem()
    curr = np.array([0.4, 0.7, 0.2])
    grad = calc_grad_single(curr, data, np.empty(3))

    eps = 1e-6
    fd = np.empty(3)
    for i in range(3):
        step = np.zeros(3)
        step[i] = eps
        fd[i] = (calc_fun_single(curr + step, data) - calc_fun_single(curr - step, data)) / (2 * eps)
    np.testing.assert_allclose(grad, fd, rtol=1e-5)


def test_combined_gradient_l2_term_is_scaled_by_k() -> None:
    data = _row_problem(k=3)
    curr = np.array([0.4, 0.7, 0.2])
    g0 = calc_grad_single(curr, data, np.empty(3))
    data.l2_reg = 0.1
    g1 = calc_grad_single(curr, data, np.empty(3))
    np.testing.assert_allclose(g1 - g0, 2 * 3 * 0.1 * curr, rtol=1e-10)

    f0 = row_poisson_objective(curr, data.F, data.Fsum, data.X, data.X_ind)
    assert calc_fun_single(curr, data) - f0 == pytest.approx(0.1 * np.dot(curr, curr))


def test_pgd_update_row_closed_form() -> None:
    F = np.array([[1., 0.], [0., 2.]])
    X = np.array([4.])
    X_ind = np.array([1], dtype=np.intp)
    curr = np.array([1., 1.])
    step_size, l1_reg, l2_reg = 0.1, 0.5, 0.25
    cnst_sum = -step_size * (F.sum(axis=0) + l1_reg)
    cnst_div = 1 / (1 + 2 * l2_reg * step_size)

    pgd_update_row(curr, F, X, X_ind, cnst_div, cnst_sum, step_size, 1, np.empty(2))

    # pred = 2, grad = 4 / 2 * [0, 2] = [0, 4]
    expected = (np.array([1., 1.]) + step_size * np.array([0., 4.]) + cnst_sum) * cnst_div
    np.testing.assert_allclose(curr, np.maximum(expected, 0), rtol=1e-12)


def test_pgd_update_row_clips_to_zero() -> None:
    F = np.array([[1., 1.]])
    curr = np.array([1., 1.])
    cnst_sum = np.array([-5., 0.])
    pgd_update_row(curr, F, np.array([1.]), np.array([0], dtype=np.intp),
                   1., cnst_sum, 0.1, 1, np.empty(2))
    assert curr[0] == 0.
    assert curr[1] > 0.


def _quadratic(c):
    def fun(z):
        return float(np.sum((z - c) ** 2))

    def grad(z, out):
        out[:] = 2 * (z - c)
        return out

    return fun, grad


def test_nonneg_cg_respects_lower_bound() -> None:
    pytest.importorskip("nonnegcg")
    fun, grad = _quadratic(np.array([2., -1.]))
    x = np.array([1., 1.])

    res = NonnegCGMinimizer().minimize(x, fun, grad, 1e-8, 100, 500,
                                       0.25, 0.01, 20, np.empty(8))
    np.testing.assert_allclose(x, [2., 0.], atol=1e-3)
    assert res.fun == pytest.approx(1., abs=1e-3)


def test_nonneg_cg_passes_settings_through(monkeypatch) -> None:
    calls = {}

    def fake_minimize_nncg(x0, fun, grad, **kwargs):
        calls.update(kwargs)
        g = grad(x0)
        return {"x": np.maximum(x0 - 0.5 * g, 0), "fun": 0., "nit": 1, "nfev": 2}

    monkeypatch.setitem(sys.modules, "nonnegcg",
                        types.SimpleNamespace(minimize_nncg=fake_minimize_nncg))
    fun, grad = _quadratic(np.array([2., -1.]))
    x = np.array([1., 1.])

    res = NonnegCGMinimizer().minimize(x, fun, grad, 1e-3, 7, 100,
                                       0.25, 0.01, 20, np.empty(8))

    assert calls == {"tol": 1e-3, "maxnfeval": 100, "maxiter": 7,
                     "decr_lnsrch": 0.25, "lnsrch_const": 0.01, "max_ls": 20}
    np.testing.assert_allclose(x, [2., 0.])
    assert (res.niter, res.nfeval) == (1, 2)


def test_nonneg_cg_missing_library(monkeypatch) -> None:
    monkeypatch.setitem(sys.modules, "nonnegcg", None)
    fun, grad = _quadratic(np.zeros(2))
    with pytest.raises(ImportError, match="nonnegcg is required"):
        NonnegCGMinimizer().minimize(np.ones(2), fun, grad, 1e-3, 5, 10,
                                     0.25, 0.01, 20)

def test_scipy_minimizer_unconstrained_quadratic() -> None:
    c = np.array([1.5, 0.5, 3.])
    x = np.ones(3)
    fun, grad = _quadratic(c)

    ScipyCGMinimizer().minimize(x, fun, grad, 1e-8, 100, 100, 0.25, 0.01, 20, np.empty(12))
    np.testing.assert_allclose(x, c, atol=1e-5)


def test_scipy_minimizer_stops_at_evaluation_budget() -> None:
    rng = np.random.default_rng(3)
    M = rng.standard_normal((6, 6))
    H = M @ M.T + np.diag(np.linspace(0.1, 50., 6))
    c = rng.standard_normal(6)
    nfeval = [0]

    def fun(z):
        nfeval[0] += 1
        return float(0.5 * z @ H @ z - c @ z)

    def grad(z, out):
        out[:] = H @ z - c
        return out

    x = np.ones(6)
    before = fun(x)
    nfeval[0] = 0
    res = ScipyCGMinimizer().minimize(x, fun, grad, 1e-12, 1000, 3,
                                      0.25, 0.01, 20, np.empty(24))

    assert 1 <= res.niter <= 2
    assert res.nfeval == nfeval[0] - 1
    assert np.all(np.isfinite(x))
    assert res.fun == pytest.approx(0.5 * x @ H @ x - c @ x)
    assert res.fun <= before


def test_cg_update_row_decreases_objective() -> None:
    pytest.importorskip("nonnegcg")
    data = _row_problem()
    data.l2_reg = 0.01
    curr = np.array([0.5, 0.5, 0.5])
    before = calc_fun_single(curr, data)

    cg_update_row(curr, data, 20, np.empty(12), NonnegCGMinimizer())

    assert np.all(curr >= 0)
    assert calc_fun_single(curr, data) <= before


def test_optimize_cg_single_without_buffer() -> None:
    pytest.importorskip("nonnegcg")
    data = _row_problem(seed=4)
    start = np.full(3, 0.1)
    before = row_poisson_objective(start, data.F, data.Fsum, data.X, data.X_ind)

    curr = optimize_cg_single(start.copy(), data.X, data.X_ind, data.F, data.Fsum, 0.)

    assert np.all(curr >= 0)
    assert row_poisson_objective(curr, data.F, data.Fsum, data.X, data.X_ind) < before


class _RecordingMinimizer:
    def __init__(self):
        self.settings = None

    def minimize(self, x, fun, grad, tol, maxiter, max_fev,
                 decr_lnsrch, lnsrch_const, max_ls, buffer=None):
        self.settings = (tol, maxiter, max_fev, decr_lnsrch, lnsrch_const, max_ls)
        x[:] = -1.
        return None


def test_cg_update_row_settings_and_clipping() -> None:
    data = _row_problem()
    curr = np.full(3, 0.5)
    minimizer = _RecordingMinimizer()

    cg_update_row(curr, data, 4, np.empty(12), minimizer)

    assert minimizer.settings == (CG_TOL, 4, CG_MAX_FEV,
                                  CG_DECR_LNSRCH, CG_LNSRCH_CONST, CG_MAX_LS)
    np.testing.assert_array_equal(curr, np.zeros(3))
