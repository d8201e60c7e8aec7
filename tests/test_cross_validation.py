import numpy as np
import pandas as pd
import pytest
import statsmodels.api as sm

from college_regression.cross_validation import (
    DEGREES,
    CVMethod,
    InsufficientDataError,
    InvalidColumnError,
    InvalidDegreeRangeError,
    InvalidMethodError,
    LengthMismatchError,
    assign_folds,
    build_results_table,
    compare_methods,
    evaluate,
    format_results_table,
    holdout_split,
    model_label,
    orthogonal_poly,
    predict_orthogonal_poly,
)


def _make_quadratic_df(n=60, noise=0.05, seed=0):
    rng = np.random.default_rng(seed)
    x = np.linspace(-1.0, 1.0, n)
    y = 1.0 + 0.5 * x + 2.0 * x**2 + rng.normal(scale=noise, size=n)
    return pd.DataFrame({"x": x, "y": y, "label": [f"r{i}" for i in range(n)]})


@pytest.mark.parametrize("method", ["holdout", "loocv", "kfold"])
def test_evaluate_returns_ten_finite_non_negative_values(method):
    df = _make_quadratic_df()
    mse = evaluate(df, "y", "x", method, random_state=1)
    assert len(mse) == 10
    assert all(np.isfinite(v) and v >= 0 for v in mse)


def test_evaluate_accepts_enum_member():
    df = _make_quadratic_df()
    assert evaluate(df, "y", "x", CVMethod.LOOCV) == evaluate(df, "y", "x", "loocv")


def test_quadratic_signal_prefers_degree_two_over_linear():
    df = _make_quadratic_df()
    for method in ("holdout", "loocv", "kfold"):
        mse = evaluate(df, "y", "x", method, random_state=3)
        assert mse[1] < mse[0], method


def test_linear_signal_does_not_favour_high_degrees():
    rng = np.random.default_rng(4)
    x = rng.uniform(0.0, 10.0, size=100)
    df = pd.DataFrame({"x": x, "y": 3.0 + 1.5 * x + rng.normal(scale=1.0, size=100)})
    for method in ("loocv", "kfold"):
        mse = evaluate(df, "y", "x", method, random_state=1)
        assert mse[0] < mse[9], method
        assert int(np.argmin(mse)) != 9, method
        assert mse[0] <= 1.1 * min(mse), method


def test_holdout_is_reproducible_with_same_seed():
    df = _make_quadratic_df()
    first = evaluate(df, "y", "x", "holdout", random_state=42)
    second = evaluate(df, "y", "x", "holdout", random_state=42)
    assert first == second


def test_kfold_is_reproducible_with_fresh_generators():
    df = _make_quadratic_df()
    first = evaluate(df, "y", "x", "kfold", random_state=np.random.default_rng(5))
    second = evaluate(df, "y", "x", "kfold", random_state=np.random.default_rng(5))
    assert first == second


def test_loocv_does_not_depend_on_random_state():
    df = _make_quadratic_df()
    a = evaluate(df, "y", "x", "loocv", random_state=1)
    b = evaluate(df, "y", "x", "loocv", random_state=999)
    assert a == b


def test_kfold_with_one_row_per_fold_matches_loocv():
    df = _make_quadratic_df(n=30)
    loocv = evaluate(df, "y", "x", "loocv")
    kfold = evaluate(df, "y", "x", "kfold", fold_count=len(df), random_state=0)
    # Extrapolating degree-10 fits loses a few digits; compare low degrees tightly
    np.testing.assert_allclose(kfold[:6], loocv[:6], rtol=1e-6)


def test_unknown_method_strict_raises():
    df = _make_quadratic_df()
    with pytest.raises(InvalidMethodError):
        evaluate(df, "y", "x", "bootstrap")


def test_unknown_method_lenient_returns_zeros():
    df = _make_quadratic_df()
    assert evaluate(df, "y", "x", "bootstrap", strict_method_check=False) == [0.0] * 10


def test_invalid_columns_raise():
    df = _make_quadratic_df()
    with pytest.raises(InvalidColumnError):
        evaluate(df, "missing", "x", "loocv")
    with pytest.raises(InvalidColumnError):
        evaluate(df, "y", "label", "loocv")

    with_nan = df.copy()
    with_nan.loc[3, "x"] = np.nan
    with pytest.raises(InvalidColumnError):
        evaluate(with_nan, "y", "x", "loocv")


def test_invalid_column_error_is_a_value_error():
    df = _make_quadratic_df()
    with pytest.raises(ValueError):
        evaluate(df, "nope", "x", "holdout")


def test_empty_dataset_raises_insufficient_data():
    df = pd.DataFrame({"x": pd.Series(dtype=float), "y": pd.Series(dtype=float)})
    with pytest.raises(InsufficientDataError):
        evaluate(df, "y", "x", "loocv")


def test_too_few_distinct_predictor_values_raise():
    df = pd.DataFrame({"x": [1.0, 2.0, 3.0, 4.0, 5.0] * 6, "y": np.arange(30.0)})
    with pytest.raises(InsufficientDataError):
        evaluate(df, "y", "x", "loocv")


@pytest.mark.parametrize("fold_count", [0, 1, 61])
def test_kfold_invalid_fold_count_raises(fold_count):
    df = _make_quadratic_df(n=60)
    with pytest.raises(InsufficientDataError):
        evaluate(df, "y", "x", "kfold", fold_count=fold_count, random_state=1)


def test_evaluate_does_not_mutate_dataset():
    df = _make_quadratic_df()
    before = df.copy()
    for method in ("holdout", "loocv", "kfold"):
        evaluate(df, "y", "x", method, random_state=2)
    pd.testing.assert_frame_equal(df, before)


def test_holdout_split_sizes_and_disjointness():
    train, test = holdout_split(10, np.random.default_rng(0), 0.7)
    assert len(train) == 7
    assert len(test) == 3
    assert sorted(np.concatenate([train, test]).tolist()) == list(range(10))


def test_holdout_split_rejects_bad_fraction_and_tiny_data():
    with pytest.raises(ValueError):
        holdout_split(10, np.random.default_rng(0), 1.0)
    with pytest.raises(InsufficientDataError):
        holdout_split(2, np.random.default_rng(0), 0.7)


def test_assign_folds_balanced():
    folds = assign_folds(23, 5, np.random.default_rng(0))
    counts = np.bincount(folds)
    assert len(folds) == 23
    assert counts.size == 5
    assert counts.max() - counts.min() <= 1


def test_orthogonal_basis_is_orthonormal_and_predictable():
    x = np.linspace(0.0, 10.0, 40)
    basis, coefs = orthogonal_poly(x, 4)
    assert basis.shape == (40, 4)
    np.testing.assert_allclose(basis.T @ basis, np.eye(4), atol=1e-10)
    np.testing.assert_allclose(basis.sum(axis=0), np.zeros(4), atol=1e-10)
    np.testing.assert_allclose(predict_orthogonal_poly(x, coefs), basis, atol=1e-8)


def test_orthogonal_poly_degree_checks():
    with pytest.raises(InvalidDegreeRangeError):
        orthogonal_poly(np.arange(10.0), 0)
    with pytest.raises(InsufficientDataError):
        orthogonal_poly(np.arange(5.0), 5)


def test_model_label():
    assert model_label(1) == "linear"
    assert model_label(2) == "polyn2"
    assert model_label(10) == "polyn10"
    with pytest.raises(InvalidDegreeRangeError):
        model_label(11)


def test_build_results_table_rounds_and_labels():
    values = [1.23456, 2.0, 3.0, 4.0, 5.0, 6.0, 7.0, 8.0, 9.0, 10.0]
    table = build_results_table(values)
    assert list(table.columns) == ["Degree", "Model", "MSE"]
    assert list(table["Degree"]) == list(DEGREES)
    assert tuple(table.iloc[0]) == (1, "linear", 1.2346)
    assert tuple(table.iloc[1]) == (2, "polyn2", 2.0)
    assert table.iloc[9]["Model"] == "polyn10"


def test_build_results_table_length_mismatch():
    with pytest.raises(LengthMismatchError):
        build_results_table([1.0] * 9)


def test_format_results_table_is_plain_text():
    text = format_results_table(build_results_table([0.5] * 10))
    assert "Degree" in text and "polyn10" in text
    assert "0.5000" in text
    assert "e-" not in text


def test_compare_methods_collects_all_methods():
    df = _make_quadratic_df()
    comparison = compare_methods(df, "y", "x", fold_count=5, seed=1)
    assert set(comparison.mse) == {"holdout", "loocv", "kfold"}
    assert set(comparison.tables) == {"holdout", "loocv", "kfold"}
    for method in CVMethod:
        assert comparison.best_degree(method) in DEGREES

    again = compare_methods(df, "y", "x", fold_count=5, seed=1)
    assert again.mse == comparison.mse


def test_compare_methods_subset_and_lenient():
    df = _make_quadratic_df()
    comparison = compare_methods(
        df, "y", "x", methods=["loocv", "jackknife"], strict_method_check=False
    )
    assert list(comparison.mse) == ["loocv", "jackknife"]
    assert comparison.mse["jackknife"] == [0.0] * 10


@pytest.mark.parametrize("method", ["holdout", "loocv", "kfold"])
@pytest.mark.parametrize("bad", [np.inf, -np.inf])
def test_infinite_values_raise_invalid_column(method, bad):
    df = pd.DataFrame({"x": np.arange(30.0), "y": np.arange(30.0)})
    df.loc[29, "x"] = bad
    with pytest.raises(InvalidColumnError, match="infinite"):
        evaluate(df, "y", "x", method, random_state=1)
    with pytest.raises(InvalidColumnError, match="infinite"):
        evaluate(df, "x", "y", method, random_state=1)


def test_holdout_uses_one_split_for_every_degree():
    df = _make_quadratic_df()
    x, y = df["x"].to_numpy(), df["y"].to_numpy()
    train, test = holdout_split(len(df), np.random.default_rng(11), 0.7)

    expected = []
    for degree in DEGREES:
        basis, coefs = orthogonal_poly(x[train], degree)
        res = sm.OLS(y[train], sm.add_constant(basis, has_constant="add")).fit()
        X_test = sm.add_constant(
            predict_orthogonal_poly(x[test], coefs), has_constant="add"
        )
        expected.append(np.mean((y[test] - res.predict(X_test)) ** 2))

    actual = evaluate(df, "y", "x", "holdout", random_state=np.random.default_rng(11))
    np.testing.assert_allclose(actual, expected, rtol=1e-8)


def test_kfold_uses_one_assignment_for_every_degree():
    df = _make_quadratic_df(n=40)
    x, y = df["x"].to_numpy(), df["y"].to_numpy()
    folds = assign_folds(len(df), 5, np.random.default_rng(8))

    expected = []
    for degree in DEGREES:
        sse = 0.0
        for fold in range(5):
            train, test = folds != fold, folds == fold
            basis, coefs = orthogonal_poly(x[train], degree)
            res = sm.OLS(y[train], sm.add_constant(basis, has_constant="add")).fit()
            X_test = sm.add_constant(
                predict_orthogonal_poly(x[test], coefs), has_constant="add"
            )
            sse += np.sum((y[test] - res.predict(X_test)) ** 2)
        expected.append(sse / len(df))

    actual = evaluate(
        df, "y", "x", "kfold", fold_count=5, random_state=np.random.default_rng(8)
    )
    np.testing.assert_allclose(actual, expected, rtol=1e-6)


def test_passed_generator_is_consumed_in_place():
    df = _make_quadratic_df()
    rng = np.random.default_rng(3)
    evaluate(df, "y", "x", "holdout", random_state=rng)

    reference = np.random.default_rng(3)
    reference.permutation(len(df))
    np.testing.assert_array_equal(
        rng.permutation(len(df)), reference.permutation(len(df))
    )


def test_loocv_rejects_leverage_one_fits():
    # Eleven distinct values allow degree 10, which then interpolates x = 0..9
    x = np.concatenate([np.arange(10.0), np.full(5, 10.0)])
    df = pd.DataFrame({"x": x, "y": np.sin(x) + np.arange(15.0)})
    with pytest.raises(InsufficientDataError, match="leverage"):
        evaluate(df, "y", "x", "loocv")


@pytest.mark.parametrize("fold_count", [2.9, 5.5, True])
def test_kfold_rejects_non_integral_fold_count(fold_count):
    df = _make_quadratic_df()
    with pytest.raises(InsufficientDataError, match="whole number"):
        evaluate(df, "y", "x", "kfold", fold_count=fold_count, random_state=1)


def test_kfold_accepts_integral_float_fold_count():
    df = _make_quadratic_df()
    assert evaluate(df, "y", "x", "kfold", fold_count=5.0, random_state=1) == evaluate(
        df, "y", "x", "kfold", fold_count=5, random_state=1
    )
