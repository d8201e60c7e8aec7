"""
Cross-validated polynomial degree selection.

This module exposes:
- evaluate(): estimated out-of-sample MSE for polynomial degrees 1..10 using
  holdout, leave-one-out or k-fold cross-validation.
- build_results_table(): the Degree / Model / MSE view of one MSE sequence.
- compare_methods(): runs all three methods, each from a freshly seeded
  generator, and bundles the results.

Polynomial terms use an orthogonal basis (centred, QR-orthonormalised) so that
degree-10 fits stay well conditioned. The basis coefficients are kept so the
same basis can be evaluated on held-out rows.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence, Union

import numpy as np
import pandas as pd
import statsmodels.api as sm
from sklearn.metrics import mean_squared_error
from sklearn.model_selection import PredefinedSplit

logger = logging.getLogger(__name__)

# Degree sweep evaluated by every method. Bounds are fixed.
MIN_DEGREE: int = 1
MAX_DEGREE: int = 10
DEGREES: range = range(MIN_DEGREE, MAX_DEGREE + 1)

DEFAULT_TRAIN_FRACTION: float = 0.7
DEFAULT_FOLD_COUNT: int = 10

RandomSource = Union[None, int, np.random.Generator]


class CrossValidationError(ValueError):
    """Base exception for cross-validation errors."""

    pass


class InvalidColumnError(CrossValidationError):
    """Raised when a named column is absent, non-numeric or has missing or infinite values."""

    pass


class InvalidDegreeRangeError(CrossValidationError):
    """Raised when a polynomial degree falls outside 1..10."""

    pass


class InvalidMethodError(CrossValidationError):
    """Raised when the validation method selector is not recognised."""

    pass


class InsufficientDataError(CrossValidationError):
    """Raised when there are too few rows (or distinct values) for the requested fit."""

    pass


class LengthMismatchError(CrossValidationError):
    """Raised when an MSE sequence does not hold exactly one value per degree."""

    pass


class CVMethod(str, Enum):
    """Validation strategies understood by evaluate()."""

    HOLDOUT = "holdout"
    LOOCV = "loocv"
    KFOLD = "kfold"


# -------------------------
# Orthogonal polynomial basis
# -------------------------
@dataclass
class OrthoPolyCoefs:
    """
    Recurrence coefficients of an orthogonal polynomial basis.

    alpha has one entry per degree; norm2 has degree + 2 entries with a leading 1.
    Together they let predict_orthogonal_poly() rebuild the basis for new x values.
    """

    alpha: np.ndarray
    norm2: np.ndarray

    @property
    def degree(self) -> int:
        return int(len(self.alpha))


def orthogonal_poly(x, degree: int) -> tuple[np.ndarray, OrthoPolyCoefs]:
    """
    Build an orthonormal polynomial basis of `x` up to `degree`.

    The power basis of the centred values is decomposed with QR; the columns of
    Q are scaled by the diagonal of R and then normalised to unit length. The
    constant column is dropped, so the result has shape (len(x), degree) and
    every column is orthogonal to the intercept.

    Raises:
        InvalidDegreeRangeError: degree < 1
        InsufficientDataError: fewer than degree + 1 distinct values in x
    """
    x = np.asarray(x, dtype=float)
    if degree < 1:
        raise InvalidDegreeRangeError(f"Polynomial degree must be >= 1, got {degree}")
    n_unique = np.unique(x).size
    if degree >= n_unique:
        raise InsufficientDataError(
            f"Degree {degree} requires more than {degree} distinct predictor values "
            f"(found {n_unique})"
        )

    xbar = float(np.mean(x))
    xc = x - xbar
    X = np.vander(xc, degree + 1, increasing=True)
    q, r = np.linalg.qr(X)
    z = q * np.diag(r)

    norm2 = np.sum(np.square(z), axis=0)
    alpha = (np.sum(xc[:, None] * np.square(z), axis=0) / norm2 + xbar)[:degree]
    basis = z / np.sqrt(norm2)

    coefs = OrthoPolyCoefs(alpha=alpha, norm2=np.concatenate([[1.0], norm2]))
    return basis[:, 1:], coefs


def predict_orthogonal_poly(x, coefs: OrthoPolyCoefs) -> np.ndarray:
    """Evaluate a previously fitted orthogonal basis at new x values (three-term recurrence)."""
    x = np.asarray(x, dtype=float)
    degree = coefs.degree
    alpha, norm2 = coefs.alpha, coefs.norm2

    Z = np.ones((x.size, degree + 1), dtype=float)
    Z[:, 1] = x - alpha[0]
    for i in range(2, degree + 1):
        Z[:, i] = (x - alpha[i - 1]) * Z[:, i - 1] - (norm2[i] / norm2[i - 1]) * Z[
            :, i - 2
        ]
    Z = Z / np.sqrt(norm2[1:])
    return Z[:, 1:]


def _design(basis: np.ndarray) -> np.ndarray:
    return sm.add_constant(basis, has_constant="add")


# -------------------------
# Validation helpers
# -------------------------
def validate_degrees(degrees: Sequence[int]) -> list[int]:
    """Return degrees as a list, raising InvalidDegreeRangeError for any outside 1..10."""
    out = [int(d) for d in degrees]
    bad = [d for d in out if d < MIN_DEGREE or d > MAX_DEGREE]
    if bad:
        raise InvalidDegreeRangeError(
            f"Degrees must lie in {MIN_DEGREE}..{MAX_DEGREE}, got {bad}"
        )
    return out


def _validate_column(dataset: pd.DataFrame, column: str, role: str) -> np.ndarray:
    if column not in dataset.columns:
        raise InvalidColumnError(f"{role} column '{column}' not found in dataset")
    series = dataset[column]
    if not pd.api.types.is_numeric_dtype(series) or pd.api.types.is_bool_dtype(
        series
    ):
        raise InvalidColumnError(
            f"{role} column '{column}' must be numeric (dtype {series.dtype})"
        )
    if series.isna().any():
        raise InvalidColumnError(
            f"{role} column '{column}' has {int(series.isna().sum())} missing values"
        )
    values = series.to_numpy(dtype=float)
    n_infinite = int(np.isinf(values).sum())
    if n_infinite:
        raise InvalidColumnError(
            f"{role} column '{column}' has {n_infinite} infinite values"
        )
    return values


def _resolve_method(method, strict: bool) -> Optional[CVMethod]:
    try:
        return CVMethod(method)
    except ValueError:
        if strict:
            raise InvalidMethodError(
                f"Unknown validation method {method!r}; expected one of "
                f"{[m.value for m in CVMethod]}"
            ) from None
        return None


def as_generator(random_state: RandomSource) -> np.random.Generator:
    """Return random_state itself when it is a Generator, otherwise a fresh seeded one."""
    if isinstance(random_state, np.random.Generator):
        return random_state
    return np.random.default_rng(random_state)


def _finite_mse(value: float, method: CVMethod, degree: int) -> float:
    value = float(value)
    if not np.isfinite(value) or value < 0:
        raise InsufficientDataError(
            f"{method.value} produced a non-finite MSE for degree {degree}"
        )
    return value


# -------------------------
# Per-method estimators
# -------------------------
def holdout_split(
    n_rows: int, rng: np.random.Generator, train_fraction: float
) -> tuple[np.ndarray, np.ndarray]:
    """
    Draw one permutation of row positions and cut it at floor(train_fraction * n).

    Returns (train_positions, test_positions).
    """
    if not 0.0 < train_fraction < 1.0:
        raise ValueError(f"train_fraction must lie in (0, 1), got {train_fraction}")
    order = rng.permutation(n_rows)
    n_train = int(np.floor(train_fraction * n_rows))
    train_pos, test_pos = order[:n_train], order[n_train:]
    if n_train < 2 or test_pos.size == 0:
        raise InsufficientDataError(
            f"Holdout split of {n_rows} rows at {train_fraction:.2f} leaves "
            f"{n_train} training and {test_pos.size} testing rows"
        )
    return train_pos, test_pos


def _holdout_mse(
    x: np.ndarray,
    y: np.ndarray,
    degrees: list[int],
    rng: np.random.Generator,
    train_fraction: float,
) -> list[float]:
    train_pos, test_pos = holdout_split(x.size, rng, train_fraction)
    x_tr, y_tr = x[train_pos], y[train_pos]
    x_te, y_te = x[test_pos], y[test_pos]

    mse_values: list[float] = []
    for degree in degrees:
        basis_tr, coefs = orthogonal_poly(x_tr, degree)
        res = sm.OLS(y_tr, _design(basis_tr)).fit()
        predictions = res.predict(_design(predict_orthogonal_poly(x_te, coefs)))
        mse = _finite_mse(
            mean_squared_error(y_te, predictions), CVMethod.HOLDOUT, degree
        )
        logger.debug("holdout degree=%d mse=%.6f", degree, mse)
        mse_values.append(mse)
    return mse_values


def _fit_glm(x: np.ndarray, y: np.ndarray, degree: int):
    basis, coefs = orthogonal_poly(x, degree)
    res = sm.GLM(y, _design(basis), family=sm.families.Gaussian()).fit()
    return res, coefs


def _loocv_mse(x: np.ndarray, y: np.ndarray, degrees: list[int]) -> list[float]:
    """
    Leave-one-out MSE via the leverage shortcut: mean((e_i / (1 - h_ii))^2).

    For a least-squares fit this equals refitting n times with one row held out.
    """
    mse_values: list[float] = []
    for degree in degrees:
        res, _ = _fit_glm(x, y, degree)
        leverage = np.asarray(res.get_influence().hat_matrix_diag, dtype=float)
        if np.any(leverage >= 1.0 - 1e-10):
            raise InsufficientDataError(
                f"LOOCV undefined for degree {degree}: an observation has leverage 1"
            )
        resid = np.asarray(res.resid_response, dtype=float)
        mse = _finite_mse(
            np.mean(np.square(resid / (1.0 - leverage))), CVMethod.LOOCV, degree
        )
        logger.debug("loocv degree=%d mse=%.6f", degree, mse)
        mse_values.append(mse)
    return mse_values


def assign_folds(n_rows: int, fold_count: int, rng: np.random.Generator) -> np.ndarray:
    """
    Randomly assign each row to one of fold_count near-equal folds.

    The labels 0..k-1 are repeated to length n and shuffled, so fold sizes differ by
    at most one.
    """
    if fold_count < 2:
        raise InsufficientDataError(
            f"k-fold needs at least 2 folds to hold out data, got {fold_count}"
        )
    if fold_count > n_rows:
        raise InsufficientDataError(
            f"fold_count {fold_count} exceeds the number of rows ({n_rows})"
        )
    labels = np.resize(np.arange(fold_count), n_rows)
    return rng.permutation(labels)


def _fold_count(fold_count) -> int:
    """Return fold_count as an int, rejecting non-integral values instead of truncating."""
    if isinstance(fold_count, (bool, np.bool_)) or not float(fold_count).is_integer():
        raise InsufficientDataError(
            f"fold_count must be a whole number, got {fold_count!r}"
        )
    return int(fold_count)


def _kfold_mse(
    x: np.ndarray,
    y: np.ndarray,
    degrees: list[int],
    rng: np.random.Generator,
    fold_count: int,
) -> list[float]:
    # One assignment shared by all degrees in this call
    folds = assign_folds(x.size, fold_count, rng)
    splitter = PredefinedSplit(test_fold=folds)

    mse_values: list[float] = []
    for degree in degrees:
        # Full-data fit surfaces basis/rank problems before the per-fold refits
        _fit_glm(x, y, degree)
        sse = 0.0
        for train_idx, test_idx in splitter.split():
            res, coefs = _fit_glm(x[train_idx], y[train_idx], degree)
            predictions = res.predict(
                _design(predict_orthogonal_poly(x[test_idx], coefs))
            )
            sse += mean_squared_error(y[test_idx], predictions) * test_idx.size
        mse = _finite_mse(sse / x.size, CVMethod.KFOLD, degree)
        logger.debug("kfold k=%d degree=%d mse=%.6f", fold_count, degree, mse)
        mse_values.append(mse)
    return mse_values


# -------------------------
# Public entry points
# -------------------------
def evaluate(
    dataset: pd.DataFrame,
    response_column: str,
    predictor_column: str,
    method: Union[str, CVMethod],
    fold_count: int = DEFAULT_FOLD_COUNT,
    random_state: RandomSource = None,
    strict_method_check: bool = True,
    train_fraction: float = DEFAULT_TRAIN_FRACTION,
) -> list[float]:
    """
    Estimate out-of-sample MSE of `response ~ poly(predictor, d)` for d = 1..10.

    Parameters:
      - dataset: non-empty DataFrame; not mutated.
      - response_column / predictor_column: numeric columns without missing or
        infinite values.
      - method: "holdout", "loocv" or "kfold" (or a CVMethod member).
      - fold_count: number of folds; only used for "kfold".
      - random_state: seed or numpy Generator consumed by the holdout split and the
        k-fold assignment. Pass a fresh generator per call to reproduce results.
      - strict_method_check: when False an unknown method returns ten zeros
        instead of raising InvalidMethodError.
      - train_fraction: share of rows used for training by "holdout".

    Returns:
      list of 10 non-negative floats, one per degree in increasing order.

    Raises:
      InvalidColumnError, InvalidMethodError, InsufficientDataError.
      No partial result is returned on error.
    """
    if dataset is None or len(dataset) == 0:
        raise InsufficientDataError("Dataset is empty")

    resolved = _resolve_method(method, strict_method_check)
    y = _validate_column(dataset, response_column, "Response")
    x = _validate_column(dataset, predictor_column, "Predictor")
    degrees = validate_degrees(DEGREES)

    if resolved is None:
        logger.warning(
            "Unknown validation method %r; returning zero MSE for all degrees", method
        )
        return [0.0] * len(degrees)

    if resolved is CVMethod.HOLDOUT:
        mse_values = _holdout_mse(
            x, y, degrees, as_generator(random_state), train_fraction
        )
    elif resolved is CVMethod.LOOCV:
        mse_values = _loocv_mse(x, y, degrees)
    else:
        mse_values = _kfold_mse(
            x, y, degrees, as_generator(random_state), _fold_count(fold_count)
        )

    logger.info(
        "%s MSE for %s ~ poly(%s): best degree %d",
        resolved.value,
        response_column,
        predictor_column,
        degrees[int(np.argmin(mse_values))],
    )
    return mse_values


def model_label(degree: int) -> str:
    """'linear' for degree 1, 'polyn<d>' otherwise."""
    validate_degrees([degree])
    return "linear" if degree == 1 else f"polyn{degree}"


def build_results_table(mse_values: Sequence[float]) -> pd.DataFrame:
    """
    Zip degrees 1..10, model labels and MSE rounded to 4 decimals.

    Raises LengthMismatchError unless exactly 10 values are given.
    """
    values = list(mse_values)
    if len(values) != len(DEGREES):
        raise LengthMismatchError(
            f"Expected {len(DEGREES)} MSE values (one per degree), got {len(values)}"
        )
    return pd.DataFrame(
        {
            "Degree": list(DEGREES),
            "Model": [model_label(d) for d in DEGREES],
            "MSE": [round(float(v), 4) for v in values],
        }
    )


def format_results_table(df: pd.DataFrame) -> str:
    """Render a results table without index and in fixed (non-scientific) notation."""
    return df.to_string(index=False, float_format=lambda v: f"{v:.4f}")


def _method_key(method: Union[str, CVMethod]) -> str:
    return method.value if isinstance(method, CVMethod) else str(method)


@dataclass
class CVComparison:
    """MSE sequences and results tables keyed by validation method name."""

    response: str
    predictor: str
    fold_count: int
    seed: Optional[int]
    mse: dict[str, list[float]] = field(default_factory=dict)
    tables: dict[str, pd.DataFrame] = field(default_factory=dict)

    def best_degree(self, method: Union[str, CVMethod]) -> int:
        values = self.mse[_method_key(method)]
        return list(DEGREES)[int(np.argmin(values))]


def compare_methods(
    dataset: pd.DataFrame,
    response_column: str,
    predictor_column: str,
    fold_count: int = DEFAULT_FOLD_COUNT,
    seed: Optional[int] = 1,
    train_fraction: float = DEFAULT_TRAIN_FRACTION,
    methods: Sequence[Union[str, CVMethod]] = tuple(m.value for m in CVMethod),
    strict_method_check: bool = True,
) -> CVComparison:
    """
    Run each validation method on the same response/predictor pair.

    Every method call gets a fresh generator seeded with `seed`, so the holdout
    split and the k-fold assignment are reproducible on their own; LOOCV draws
    no random numbers.
    """
    comparison = CVComparison(
        response=response_column,
        predictor=predictor_column,
        fold_count=int(fold_count),
        seed=seed,
    )
    for method in methods:
        values = evaluate(
            dataset,
            response_column,
            predictor_column,
            method,
            fold_count=fold_count,
            random_state=np.random.default_rng(seed),
            strict_method_check=strict_method_check,
            train_fraction=train_fraction,
        )
        key = _method_key(method)
        comparison.mse[key] = values
        comparison.tables[key] = build_results_table(values)
    return comparison
