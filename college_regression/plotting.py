"""
Figure rendering for the regression analysis.

Every renderer is pure apart from writing its image: it builds one figure,
saves it to the given path and closes it. Renderers return the output path.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

# Select the non-interactive backend before pyplot is imported anywhere.
import matplotlib

matplotlib.use("Agg", force=True)
import matplotlib.pyplot as plt
import numpy as np
from scipy import stats
from statsmodels.nonparametric.smoothers_lowess import lowess

from .cross_validation import DEGREES, CVComparison, CVMethod
from .subset_selection import SubsetSelectionResult

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass
class PlotParams:
    """
    Figure output controls.

    image_format: file extension used for every figure ("png" or "svg").
    dpi: pixels per inch; figure sizes are given in pixels and divided by dpi.
    style: matplotlib style applied while a figure is drawn.
    label_outliers: number of largest-residual points annotated on diagnostic panels.
    """

    image_format: str = "png"
    dpi: int = 100
    style: str = "default"
    label_outliers: int = 3


def _figsize(width_px: int, height_px: int, params: PlotParams) -> tuple[float, float]:
    return width_px / params.dpi, height_px / params.dpi


def _save(fig, output_path: PathLike, params: PlotParams) -> str:
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(output_path, dpi=params.dpi)
    plt.close(fig)
    logger.debug("Wrote figure %s", output_path)
    return str(output_path)


def _smooth(ax, x: np.ndarray, y: np.ndarray) -> None:
    # R's plot.lm overlays a lowess smoother in red
    fitted = lowess(y, x, frac=2.0 / 3.0, return_sorted=True)
    ax.plot(fitted[:, 0], fitted[:, 1], color="red", linewidth=1.2)


def _label_extremes(ax, x, y, score, labels, n: int) -> None:
    if n <= 0:
        return
    for i in np.argsort(-np.abs(score))[:n]:
        ax.annotate(str(labels[i]), (x[i], y[i]), fontsize=8, xytext=(3, 3),
                    textcoords="offset points")


def render_diagnostics(
    results,
    output_path: PathLike,
    title: Optional[str] = None,
    params: Optional[PlotParams] = None,
) -> str:
    """
    Four-panel regression diagnostics for a fitted statsmodels OLS result.

    Panels (row-major):
      - Residuals vs Fitted with a lowess smoother
      - Normal Q-Q of standardised residuals (scipy.stats.probplot)
      - Scale-Location: sqrt(|standardised residuals|) vs fitted
      - Residuals vs Leverage with Cook's distance contours at 0.5 and 1
    """
    params = params or PlotParams()
    influence = results.get_influence()
    fitted = np.asarray(results.fittedvalues, dtype=float)
    resid = np.asarray(results.resid, dtype=float)
    std_resid = np.asarray(influence.resid_studentized_internal, dtype=float)
    leverage = np.asarray(influence.hat_matrix_diag, dtype=float)
    row_labels = getattr(results.model.data, "row_labels", None)
    labels = list(row_labels) if row_labels is not None else list(range(len(fitted)))
    n_params = int(results.df_model) + 1

    with plt.style.context(params.style):
        fig, axes = plt.subplots(2, 2, figsize=_figsize(1200, 800, params))
        ax_rf, ax_qq, ax_sl, ax_lev = axes.ravel()

        ax_rf.scatter(fitted, resid, s=12, facecolors="none", edgecolors="black")
        ax_rf.axhline(0.0, color="grey", linestyle=":")
        _smooth(ax_rf, fitted, resid)
        _label_extremes(ax_rf, fitted, resid, resid, labels, params.label_outliers)
        ax_rf.set_title("Residuals vs Fitted")
        ax_rf.set_xlabel("Fitted values")
        ax_rf.set_ylabel("Residuals")

        (osm, osr), (slope, intercept, _r) = stats.probplot(std_resid, dist="norm")
        ax_qq.scatter(osm, osr, s=12, facecolors="none", edgecolors="black")
        ax_qq.plot(osm, slope * np.asarray(osm) + intercept, color="grey", linestyle=":")
        ax_qq.set_title("Normal Q-Q")
        ax_qq.set_xlabel("Theoretical Quantiles")
        ax_qq.set_ylabel("Standardized residuals")

        root_abs = np.sqrt(np.abs(std_resid))
        ax_sl.scatter(fitted, root_abs, s=12, facecolors="none", edgecolors="black")
        _smooth(ax_sl, fitted, root_abs)
        ax_sl.set_title("Scale-Location")
        ax_sl.set_xlabel("Fitted values")
        ax_sl.set_ylabel("√|Standardized residuals|")

        ax_lev.scatter(leverage, std_resid, s=12, facecolors="none", edgecolors="black")
        ax_lev.axhline(0.0, color="grey", linestyle=":")
        _smooth(ax_lev, leverage, std_resid)
        h = np.linspace(max(leverage.min(), 1e-3), leverage.max(), 100)
        for level in (0.5, 1.0):
            bound = np.sqrt(level * n_params * (1.0 - h) / h)
            ax_lev.plot(h, bound, color="red", linestyle="--", linewidth=0.8)
            ax_lev.plot(h, -bound, color="red", linestyle="--", linewidth=0.8)
        ax_lev.set_ylim(std_resid.min() * 1.1, std_resid.max() * 1.1)
        _label_extremes(ax_lev, leverage, std_resid, std_resid, labels, params.label_outliers)
        ax_lev.set_title("Residuals vs Leverage")
        ax_lev.set_xlabel("Leverage")
        ax_lev.set_ylabel("Standardized residuals")

        if title:
            fig.suptitle(title)
        fig.tight_layout()
        return _save(fig, output_path, params)


def render_studentized_residuals(
    results,
    output_path: PathLike,
    title: str,
    params: Optional[PlotParams] = None,
) -> str:
    """Externally studentised residuals against predicted values."""
    params = params or PlotParams()
    rstudent = np.asarray(
        results.get_influence().resid_studentized_external, dtype=float
    )
    predicted = np.asarray(results.fittedvalues, dtype=float)

    with plt.style.context(params.style):
        fig, ax = plt.subplots(figsize=_figsize(800, 600, params))
        ax.scatter(predicted, rstudent, s=12, facecolors="none", edgecolors="black")
        ax.set_title(title)
        ax.set_xlabel("Predicted Values")
        ax.set_ylabel("Studentised Residuals")
        return _save(fig, output_path, params)


def render_subset_metrics(
    result: SubsetSelectionResult,
    output_path: PathLike,
    params: Optional[PlotParams] = None,
) -> str:
    """Adjusted R², Cp and BIC by subset size, best size marked with a red point."""
    params = params or PlotParams()
    sizes = result.table["n_predictors"].to_numpy()
    panels = [
        ("adjr2", "Adjusted R-Squared", "Adjusted R-Squared"),
        ("cp", "Cp", "Cp"),
        ("bic", "BIC", "BIC"),
    ]

    with plt.style.context(params.style):
        fig, axes = plt.subplots(1, 3, figsize=_figsize(1800, 600, params))
        for ax, (col, ylabel, title) in zip(axes, panels):
            values = result.table[col].to_numpy()
            ax.plot(sizes, values, marker="o", markerfacecolor="none", color="black")
            ax.grid(True, linestyle=":")
            best = result.best_size(col)
            best_val = float(result.table.loc[result.table["n_predictors"] == best, col].iloc[0])
            ax.scatter([best], [best_val], color="red", s=120, zorder=3)
            ax.set_xlabel("Number of Predictors")
            ax.set_ylabel(ylabel)
            ax.set_title(title)
        fig.tight_layout()
        return _save(fig, output_path, params)


# method -> (legend label, colour)
_CV_SERIES = {
    CVMethod.HOLDOUT.value: ("Holdout", "blue"),
    CVMethod.LOOCV.value: ("LOOCV", "red"),
    CVMethod.KFOLD.value: ("K-Fold ({k})", "green"),
}


def render_cv_comparison(
    comparison: CVComparison,
    output_path: PathLike,
    params: Optional[PlotParams] = None,
) -> str:
    """Overlay the MSE-by-degree curves of the three validation methods."""
    params = params or PlotParams()
    degrees = list(DEGREES)

    with plt.style.context(params.style):
        fig, ax = plt.subplots(figsize=_figsize(900, 600, params))
        for method, (label, color) in _CV_SERIES.items():
            if method not in comparison.mse:
                continue
            ax.plot(
                degrees,
                comparison.mse[method],
                marker="o",
                color=color,
                label=label.format(k=comparison.fold_count),
            )
        ax.set_xlabel("Polynomial Degree")
        ax.set_ylabel("Mean Squared Error")
        ax.set_title("Cross-Validation Comparison")
        ax.set_xticks(degrees)
        ax.legend(loc="upper right")
        return _save(fig, output_path, params)
