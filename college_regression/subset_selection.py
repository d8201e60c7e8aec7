"""
Exhaustive best-subset selection for linear regression.

For each subset size k = 1..nvmax the subset of predictors with the lowest
residual sum of squares is kept (the intercept is always in the model). The
per-size winners are then scored with R², adjusted R², Mallows' Cp and BIC.

RSS values come from the centred Gram matrix, which absorbs the intercept and
avoids refitting a full regression for every one of the 2^p - 1 subsets.
"""

import logging
from dataclasses import dataclass, field
from itertools import combinations
from typing import List, Optional

import numpy as np
import pandas as pd
import statsmodels.api as sm

from .cross_validation import InsufficientDataError, InvalidColumnError

logger = logging.getLogger(__name__)

# criterion -> True when larger is better
SELECTION_CRITERIA: dict[str, bool] = {"adjr2": True, "cp": False, "bic": False}


@dataclass
class SubsetSelectionResult:
    response: str
    predictors: List[str]
    n_obs: int
    # One row per subset size: n_predictors, predictors, rss, rsq, adjr2, cp, bic
    table: pd.DataFrame
    data: pd.DataFrame = field(repr=False)

    def best_size(self, criterion: str) -> int:
        """Subset size chosen by 'adjr2' (max), 'cp' (min) or 'bic' (min)."""
        if criterion not in SELECTION_CRITERIA:
            raise ValueError(
                f"Unknown criterion {criterion!r}; expected one of {list(SELECTION_CRITERIA)}"
            )
        col = self.table[criterion]
        pos = col.idxmax() if SELECTION_CRITERIA[criterion] else col.idxmin()
        return int(self.table.loc[pos, "n_predictors"])

    def subset(self, size: int) -> List[str]:
        rows = self.table.loc[self.table["n_predictors"] == size, "predictors"]
        if rows.empty:
            raise ValueError(f"No subset of size {size} was evaluated")
        return list(rows.iloc[0])

    def coefficients(self, size: int) -> pd.Series:
        """OLS coefficients (including 'const') of the best subset of the given size."""
        cols = self.subset(size)
        X = sm.add_constant(self.data[cols], has_constant="add")
        return sm.OLS(self.data[self.response], X).fit().params


def _numeric_frame(df: pd.DataFrame, response: str, predictors: List[str]) -> pd.DataFrame:
    missing = [c for c in [response, *predictors] if c not in df.columns]
    if missing:
        raise InvalidColumnError(f"Columns not found in dataset: {missing}")
    non_numeric = [
        c
        for c in [response, *predictors]
        if not pd.api.types.is_numeric_dtype(df[c]) or pd.api.types.is_bool_dtype(df[c])
    ]
    if non_numeric:
        raise InvalidColumnError(
            f"Best subset selection requires numeric columns; non-numeric: {non_numeric}"
        )
    data = df[[response, *predictors]].astype(float)
    infinite = [c for c in data.columns if np.isinf(data[c].to_numpy()).any()]
    if infinite:
        raise InvalidColumnError(f"Columns with infinite values: {infinite}")
    n_dropped = int(data.isna().any(axis=1).sum())
    if n_dropped:
        logger.warning("Dropping %d rows with missing values before subset search", n_dropped)
        data = data.dropna()
    return data


def best_subset(
    df: pd.DataFrame,
    response: str,
    predictors: Optional[List[str]] = None,
    nvmax: Optional[int] = None,
) -> SubsetSelectionResult:
    """
    Exhaustive search over predictor subsets of size 1..nvmax.

    Parameters:
      - predictors: candidate columns; defaults to every column except `response`.
      - nvmax: largest subset size; defaults to the number of predictors.

    Metrics per size k (n rows, p candidates, σ̂² = RSS_full / (n - p - 1)):
      rsq   = 1 - RSS / TSS
      adjr2 = 1 - (1 - rsq) (n - 1) / (n - k - 1)
      cp    = RSS / σ̂² + 2 (k + 1) - n
      bic   = n log(RSS / TSS) + k log(n)
    """
    if predictors is None:
        predictors = [c for c in df.columns if c != response]
    predictors = list(predictors)
    if not predictors:
        raise ValueError("Best subset selection needs at least one predictor")

    data = _numeric_frame(df, response, predictors)
    n, p = len(data), len(predictors)
    if nvmax is None:
        nvmax = p
    if not 1 <= nvmax <= p:
        raise ValueError(f"nvmax must lie in 1..{p}, got {nvmax}")
    if n <= p + 1:
        raise InsufficientDataError(
            f"Best subset selection needs more than {p + 1} rows for {p} predictors, got {n}"
        )

    X = data[predictors].to_numpy()
    y = data[response].to_numpy()
    Xc = X - X.mean(axis=0)
    yc = y - y.mean()
    gram = Xc.T @ Xc
    xty = Xc.T @ yc
    tss = float(yc @ yc)

    def _rss(idx: tuple[int, ...]) -> float:
        cols = list(idx)
        beta = np.linalg.solve(gram[np.ix_(cols, cols)], xty[cols])
        return max(tss - float(xty[cols] @ beta), 0.0)

    rss_full = _rss(tuple(range(p)))
    sigma2 = rss_full / (n - p - 1)

    rows = []
    for k in range(1, nvmax + 1):
        best_rss, best_idx = np.inf, None
        for idx in combinations(range(p), k):
            try:
                rss = _rss(idx)
            except np.linalg.LinAlgError:
                # Collinear subset; a non-singular subset of the same size wins
                continue
            if rss < best_rss:
                best_rss, best_idx = rss, idx
        if best_idx is None:
            logger.warning("No non-singular subset of size %d", k)
            continue
        rsq = 1.0 - best_rss / tss
        rows.append(
            {
                "n_predictors": k,
                "predictors": [predictors[i] for i in best_idx],
                "rss": best_rss,
                "rsq": rsq,
                "adjr2": 1.0 - (1.0 - rsq) * (n - 1) / (n - k - 1),
                "cp": best_rss / sigma2 + 2 * (k + 1) - n,
                "bic": n * np.log(best_rss / tss) + k * np.log(n),
            }
        )
        logger.debug("best subset k=%d rss=%.4g %s", k, best_rss, rows[-1]["predictors"])

    table = pd.DataFrame(rows)
    logger.info(
        "Best subset search over %d predictors (%d rows) for %s", p, n, response
    )
    return SubsetSelectionResult(
        response=response, predictors=predictors, n_obs=n, table=table, data=data
    )


def format_subset_table(result: SubsetSelectionResult) -> str:
    """Render the per-size table with predictor lists joined by '+'."""
    disp = result.table.copy()
    disp["predictors"] = disp["predictors"].map(lambda cols: " + ".join(cols))
    return disp.to_string(
        index=False,
        formatters={
            "rss": "{:.4g}".format,
            "rsq": "{:.4f}".format,
            "adjr2": "{:.4f}".format,
            "cp": "{:.2f}".format,
            "bic": "{:.2f}".format,
        },
    )
