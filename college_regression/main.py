#!/usr/bin/env python3
"""
College Regression Analysis - pipeline of pure functional units.

This module exposes:
- load_dataset()
- fit_linear_models()
- run_analysis()
- render_outputs()

Each function takes explicit inputs and returns explicit outputs. Only
_orchestrate() and main() write files or print. Logging is kept for internal
diagnostics.
"""

import json
import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd
import statsmodels.api as sm

from .cross_validation import (
    DEFAULT_FOLD_COUNT,
    DEFAULT_TRAIN_FRACTION,
    CVComparison,
    CVMethod,
    InvalidColumnError,
    compare_methods,
    format_results_table,
)
from .csv_processor import CSVProcessingError, CSVRangeProcessor
from .plotting import (
    PlotParams,
    render_cv_comparison,
    render_diagnostics,
    render_studentized_residuals,
    render_subset_metrics,
)
from .subset_selection import (
    SELECTION_CRITERIA,
    SubsetSelectionResult,
    best_subset,
    format_subset_table,
)
from .utils import (
    build_effective_parameters,
    canonical_json_hash,
    ensure_run_dir,
    normalize_abs_posix,
    utc_timestamp_seconds,
    write_manifest,
    write_text_report,
)

# Configure logging for debugging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

DEFAULT_RESPONSE: str = "Outstate"
DEFAULT_PREDICTORS: List[str] = ["Apps", "Accept", "Enroll", "Top10perc", "Top25perc"]
DEFAULT_SQRT_PREDICTORS: List[str] = ["Apps", "Accept", "Enroll"]
DEFAULT_CV_RESPONSE: str = "Top10perc"
DEFAULT_CV_PREDICTOR: str = "Apps"

TRANSFORMS = {"log": np.log, "sqrt": np.sqrt}


# -------------------------
# Parameters
# -------------------------
@dataclass
class LoadParams:
    """
    Where the dataset comes from.

    Attributes:
        data_path: CSV file to read. When None the ISLR College table is fetched
            with statsmodels.datasets.get_rdataset(rdataset_name, rdataset_package).
        start_line / end_line: 1-based inclusive data-row range of the CSV, or None.
    """

    data_path: Optional[Path]
    start_line: Optional[int] = None
    end_line: Optional[int] = None
    rdataset_name: str = "College"
    rdataset_package: str = "ISLR"


@dataclass
class AnalysisParams:
    response: str = DEFAULT_RESPONSE
    predictors: List[str] = field(default_factory=lambda: list(DEFAULT_PREDICTORS))
    sqrt_predictors: List[str] = field(
        default_factory=lambda: list(DEFAULT_SQRT_PREDICTORS)
    )
    # Best subset selection of `subset_response ~ .`; nvmax None = all predictors
    run_subset_selection: bool = True
    subset_response: str = DEFAULT_RESPONSE
    nvmax: Optional[int] = None


@dataclass
class CVParams:
    response: str = DEFAULT_CV_RESPONSE
    predictor: str = DEFAULT_CV_PREDICTOR
    methods: List[str] = field(default_factory=lambda: [m.value for m in CVMethod])
    fold_count: int = DEFAULT_FOLD_COUNT
    seed: Optional[int] = 1
    train_fraction: float = DEFAULT_TRAIN_FRACTION
    strict_method_check: bool = True


@dataclass
class OutputParams:
    output_dir: Path = Path("output")
    plot: PlotParams = field(default_factory=PlotParams)


@dataclass
class ModelSpec:
    """
    A linear model: transformed response regressed on (optionally transformed) predictors.

    Transforms are names from TRANSFORMS ("log", "sqrt") or None.
    """

    name: str
    label: str
    response: str
    predictors: List[str]
    response_transform: Optional[str] = None
    predictor_transforms: Dict[str, str] = field(default_factory=dict)

    def formula(self) -> str:
        lhs = _term_name(self.response, self.response_transform)
        rhs = " + ".join(
            _term_name(p, self.predictor_transforms.get(p)) for p in self.predictors
        )
        return f"{lhs} ~ {rhs}"


@dataclass
class FittedModel:
    spec: ModelSpec
    results: Any
    diagnostics: Dict[str, Any]


@dataclass
class AnalysisOutputs:
    df: pd.DataFrame
    missing_response: int
    fitted: Dict[str, FittedModel]
    subset: Optional[SubsetSelectionResult]
    comparison: CVComparison


# -------------------------
# Dataset loading
# -------------------------
def normalize_columns(df: pd.DataFrame) -> pd.DataFrame:
    """
    Return a copy with identifier-safe column names ('.' -> '_') and an R
    'rownames' column, if present, moved to the index.
    """
    out = df.copy()
    if "rownames" in out.columns:
        out = out.set_index("rownames")
        out.index.name = "row_name"
    out.columns = [str(c).strip().replace(".", "_") for c in out.columns]
    return out


def encode_private(df: pd.DataFrame) -> pd.DataFrame:
    """Replace a Yes/No 'Private' column by the 0/1 column 'PrivateYes'."""
    if "Private" not in df.columns:
        return df
    private = df["Private"].astype(str).str.strip().str.lower()
    unknown = sorted(set(private) - {"yes", "no"})
    if unknown:
        raise InvalidColumnError(
            f"Column 'Private' must contain Yes/No values, found {unknown}"
        )
    out = df.drop(columns=["Private"])
    out.insert(0, "PrivateYes", (private == "yes").astype(int))
    return out


def count_missing(df: pd.DataFrame, column: str) -> int:
    if column not in df.columns:
        raise InvalidColumnError(f"Column '{column}' not found in dataset")
    return int(df[column].isna().sum())


def load_dataset(params: LoadParams) -> pd.DataFrame:
    """
    Load the College dataset from CSV (row range honoured) or from Rdatasets.
    No prints; raises exceptions on error.
    """
    if params.data_path is not None:
        if not Path(params.data_path).exists():
            raise FileNotFoundError(f"CSV file not found at {params.data_path}")
        with CSVRangeProcessor(params.data_path) as processor:
            logger.info("Reading %s", processor.get_file_info()["file_path"])
            df = processor.read_range(params.start_line, params.end_line)
    else:
        logger.info(
            "Fetching %s/%s via statsmodels get_rdataset",
            params.rdataset_package,
            params.rdataset_name,
        )
        df = sm.datasets.get_rdataset(
            params.rdataset_name, params.rdataset_package
        ).data

    if df.empty:
        raise ValueError("Dataset has no rows")
    df = encode_private(normalize_columns(df))
    logger.info("Loaded dataset with %d rows and %d columns", len(df), df.shape[1])
    return df


# -------------------------
# Linear models
# -------------------------
def _term_name(column: str, transform: Optional[str]) -> str:
    return column if transform is None else f"{transform}({column})"


def _apply_transform(
    df: pd.DataFrame, column: str, transform: Optional[str]
) -> pd.Series:
    if column not in df.columns:
        raise InvalidColumnError(f"Column '{column}' not found in dataset")
    series = df[column]
    if not pd.api.types.is_numeric_dtype(series):
        raise InvalidColumnError(f"Column '{column}' must be numeric")
    if np.isinf(series.to_numpy(dtype=float)).any():
        raise InvalidColumnError(f"Column '{column}' has infinite values")
    if transform is None:
        return series.astype(float)
    if transform not in TRANSFORMS:
        raise ValueError(
            f"Unknown transform {transform!r}; expected one of {list(TRANSFORMS)}"
        )
    if transform == "log" and (series <= 0).any():
        raise ValueError(f"log({column}) requires strictly positive values")
    if transform == "sqrt" and (series < 0).any():
        raise ValueError(f"sqrt({column}) requires non-negative values")
    return TRANSFORMS[transform](series.astype(float))


def build_design(df: pd.DataFrame, spec: ModelSpec) -> Tuple[pd.Series, pd.DataFrame]:
    """
    Build (y, X) for a ModelSpec with named columns and an explicit 'const'
    column via add_constant(has_constant='add').
    """
    terms = {
        _term_name(p, spec.predictor_transforms.get(p)): _apply_transform(
            df, p, spec.predictor_transforms.get(p)
        )
        for p in spec.predictors
    }
    X = sm.add_constant(pd.DataFrame(terms, index=df.index), has_constant="add")
    y = _apply_transform(df, spec.response, spec.response_transform).rename(
        _term_name(spec.response, spec.response_transform)
    )
    return y, X


def _stats_dict(res) -> Dict[str, Any]:
    return {
        "R-squared": float(res.rsquared),
        "Adj. R-squared": float(res.rsquared_adj),
        "F-statistic": float(res.fvalue),
        "p-value": float(res.f_pvalue),
        "Coefficients": res.params,
        "Standard Errors": res.bse,
        "Confidence Intervals": res.conf_int(),
        "Residuals": res.resid,
        "aic": float(res.aic),
        "bic": float(res.bic),
        "RMSE": float(np.sqrt(np.mean(np.square(res.resid)))),
        "n_obs": int(res.nobs),
        "Summary": res.summary(),
    }


def default_model_specs(params: AnalysisParams) -> List[ModelSpec]:
    """Original, log-response and sqrt-predictor variants of the same regression."""
    return [
        ModelSpec("original", "Original", params.response, list(params.predictors)),
        ModelSpec(
            "log",
            "Log",
            params.response,
            list(params.predictors),
            response_transform="log",
        ),
        ModelSpec(
            "sqrt",
            "Sqrt",
            params.response,
            list(params.predictors),
            predictor_transforms={p: "sqrt" for p in params.sqrt_predictors},
        ),
    ]


def fit_model(df: pd.DataFrame, spec: ModelSpec) -> FittedModel:
    y, X = build_design(df, spec)
    res = sm.OLS(y, X, missing="drop").fit()
    logger.info(
        "Fitted %s: %s (R²=%.4f, n=%d)", spec.name, spec.formula(), res.rsquared, res.nobs
    )
    return FittedModel(spec=spec, results=res, diagnostics=_stats_dict(res))


def fit_linear_models(
    df: pd.DataFrame, specs: List[ModelSpec]
) -> Dict[str, FittedModel]:
    return {spec.name: fit_model(df, spec) for spec in specs}


def build_model_comparison(fitted: Dict[str, FittedModel]) -> str:
    """
    Build the model-comparison table text.

    Headers: [Model, Response, R², Adj R², AIC, BIC, RMSE_in]. RMSE is in the
    units of each model's (possibly transformed) response.
    """
    rows = []
    for fm in fitted.values():
        d = fm.diagnostics
        rows.append(
            {
                "Model": fm.spec.label,
                "Response": _term_name(fm.spec.response, fm.spec.response_transform),
                "R²": f"{d['R-squared']:.5f}",
                "Adj R²": f"{d['Adj. R-squared']:.5f}",
                "AIC": f"{d['aic']:.1f}",
                "BIC": f"{d['bic']:.1f}",
                "RMSE_in": f"{d['RMSE']:.5f}",
            }
        )
    if not rows:
        return "(no models)"
    return pd.DataFrame(rows).to_string(index=False)


# -------------------------
# Analysis
# -------------------------
def run_analysis(
    df: pd.DataFrame, analysis: AnalysisParams, cv: CVParams
) -> AnalysisOutputs:
    """Fit the regression variants, run best subset selection and compare CV methods."""
    missing_response = count_missing(df, analysis.response)
    if missing_response:
        logger.warning("%d missing values in %s", missing_response, analysis.response)
    else:
        logger.info("No missing values in %s", analysis.response)

    fitted = fit_linear_models(df, default_model_specs(analysis))

    subset = None
    if analysis.run_subset_selection:
        subset = best_subset(df, analysis.subset_response, nvmax=analysis.nvmax)

    comparison = compare_methods(
        df,
        cv.response,
        cv.predictor,
        fold_count=cv.fold_count,
        seed=cv.seed,
        train_fraction=cv.train_fraction,
        methods=cv.methods,
        strict_method_check=cv.strict_method_check,
    )
    return AnalysisOutputs(
        df=df,
        missing_response=missing_response,
        fitted=fitted,
        subset=subset,
        comparison=comparison,
    )


def render_outputs(
    outputs: AnalysisOutputs, figures_dir: Path, plot_params: PlotParams
) -> List[str]:
    """Write every figure into figures_dir and return the artifact paths."""
    ext = plot_params.image_format
    paths: List[str] = []
    for name, fm in outputs.fitted.items():
        paths.append(
            render_diagnostics(
                fm.results,
                figures_dir / f"model_diagnostics_{name}.{ext}",
                title=fm.spec.formula(),
                params=plot_params,
            )
        )
        paths.append(
            render_studentized_residuals(
                fm.results,
                figures_dir / f"studentized_residuals_{name}.{ext}",
                title=f"Studentised Residuals - {fm.spec.label} Model",
                params=plot_params,
            )
        )
    if outputs.subset is not None and not outputs.subset.table.empty:
        paths.append(
            render_subset_metrics(
                outputs.subset,
                figures_dir / f"best_subset_selection_metrics.{ext}",
                params=plot_params,
            )
        )
    paths.append(
        render_cv_comparison(
            outputs.comparison,
            figures_dir / f"cv_mse_comparison.{ext}",
            params=plot_params,
        )
    )
    return paths


def write_cv_tables(
    comparison: CVComparison, run_dir: Path, short_hash: str
) -> List[str]:
    paths = []
    for method, table in comparison.tables.items():
        path = Path(run_dir) / f"cv-{method}-{short_hash}.csv"
        table.to_csv(path, index=False)
        paths.append(str(path))
    return paths


# -------------------------
# Defaults, identity, manifest, report
# -------------------------
def get_default_params() -> Tuple[LoadParams, AnalysisParams, CVParams, OutputParams]:
    """Policy-level defaults used for any value the CLI does not override."""
    return LoadParams(data_path=None), AnalysisParams(), CVParams(), OutputParams()


def data_source_label(load: LoadParams) -> str:
    if load.data_path is not None:
        return normalize_abs_posix(load.data_path)
    return f"rdataset:{load.rdataset_package}/{load.rdataset_name}"


def build_run_identity(
    load: LoadParams, analysis: AnalysisParams, cv: CVParams
) -> Tuple[str, str, str, dict]:
    """
    Returns (data_source, short_hash, full_hash, effective_params)
    """
    source = data_source_label(load)
    effective_params = build_effective_parameters(load=load, analysis=analysis, cv=cv)
    short_hash, full_hash = canonical_json_hash(
        {"data_source": source, "effective_parameters": effective_params}
    )
    return source, short_hash, full_hash, effective_params


def build_manifest_dict(
    data_source: str,
    outputs: AnalysisOutputs,
    effective_params: dict,
    hashes: Tuple[str, str],
    artifact_paths: Dict[str, List[str]],
) -> dict:
    short_hash, full_hash = hashes
    comparison = outputs.comparison
    best_degrees = {}
    for method in comparison.mse:
        if method in {m.value for m in CVMethod}:
            best_degrees[method] = comparison.best_degree(method)
    return {
        "version": "1",
        "timestamp_utc": utc_timestamp_seconds(),
        "data_source": data_source,
        "row_count": int(len(outputs.df)),
        "missing_response_count": int(outputs.missing_response),
        "effective_parameters": effective_params,
        "cv_mse": {k: [float(v) for v in vals] for k, vals in comparison.mse.items()},
        "cv_best_degree": best_degrees,
        "canonical_hash": full_hash,
        "canonical_hash_short": short_hash,
        "artifacts": artifact_paths,
    }


CV_REPORT_TITLES = {
    CVMethod.HOLDOUT.value: "Cross-Validation Approach 1 - Holdout Method Results:",
    CVMethod.LOOCV.value: "Cross-Validation Approach 2 - Leave-One-Out Cross-Validation Results:",
    CVMethod.KFOLD.value: "Cross-Validation Approach 3 - k-Fold Cross-Validation Results:",
}


def assemble_text_report(outputs: AnalysisOutputs, analysis: AnalysisParams) -> str:
    """
    Create a readable report with every analysis result in one place.
    """
    parts: list[str] = ["\n"]

    def _fmt_head_tail(df: pd.DataFrame, n: int = 5) -> str:
        if df.empty:
            return "(no rows)"
        head_txt = df.head(n).to_string()
        if len(df) <= 2 * n:
            return head_txt
        return f"{head_txt}\n...\n{df.tail(n).to_string(header=False)}"

    parts.append(
        f"Dataset ({len(outputs.df)} rows x {outputs.df.shape[1]} columns, head/tail):"
    )
    parts.append(_fmt_head_tail(outputs.df))
    parts.append("\n")
    parts.append(
        f"Missing values in {analysis.response}: {outputs.missing_response}"
    )
    parts.append("\n")

    parts.append("Linear model comparison:")
    parts.append(build_model_comparison(outputs.fitted))
    parts.append("\n")
    for fm in outputs.fitted.values():
        parts.append(f"{fm.spec.label} model: {fm.spec.formula()}")
        parts.append(str(fm.diagnostics["Summary"]))
        parts.append("\n")

    if outputs.subset is not None and not outputs.subset.table.empty:
        parts.append(f"Best subset selection ({outputs.subset.response} ~ .):")
        parts.append(format_subset_table(outputs.subset))
        parts.append("\n")
        names = {"adjr2": "Adjusted R-squared", "cp": "Cp", "bic": "BIC"}
        for criterion in SELECTION_CRITERIA:
            size = outputs.subset.best_size(criterion)
            parts.append(f"Best model by {names[criterion]}: {size}")
            coefs = outputs.subset.coefficients(size)
            parts.append(coefs.to_string(float_format=lambda v: f"{v:.6g}"))
            parts.append("")
        parts.append("\n")

    comparison = outputs.comparison
    parts.append(
        f"Cross-validation of {comparison.response} ~ poly({comparison.predictor}, d), "
        f"d = 1..10 (seed={comparison.seed}, k={comparison.fold_count})"
    )
    for method, table in comparison.tables.items():
        parts.append(CV_REPORT_TITLES.get(method, f"Cross-Validation ({method}) Results:"))
        parts.append(format_results_table(table))
        parts.append("")

    return "\n".join(parts)


def _orchestrate(
    load: LoadParams,
    analysis: AnalysisParams,
    cv: CVParams,
    output: OutputParams,
) -> Path:
    """
    Orchestrate the full pipeline given explicit parameter objects.
    Split from main() so the CLI can remain thin and tests can call this directly.
    Returns the run output directory.
    """
    run_dir = ensure_run_dir(output.output_dir, prefix="")
    data_source, short_hash, full_hash, effective_params = build_run_identity(
        load, analysis, cv
    )

    df = load_dataset(load)
    outputs = run_analysis(df, analysis, cv)

    figure_paths = render_outputs(outputs, run_dir / "figures", output.plot)
    table_paths = write_cv_tables(outputs.comparison, run_dir, short_hash)

    report = assemble_text_report(outputs, analysis)
    report_path = write_text_report(report, run_dir, short_hash)

    manifest = build_manifest_dict(
        data_source=data_source,
        outputs=outputs,
        effective_params=effective_params,
        hashes=(short_hash, full_hash),
        artifact_paths={
            "figures": figure_paths,
            "cv_tables": table_paths,
            "report": [str(report_path)],
        },
    )
    write_manifest(run_dir / f"manifest-{short_hash}.json", manifest)

    print(report)
    logger.info("Run artifacts written to %s", run_dir)
    return run_dir


# -------------------------
# CLI
# -------------------------
def _build_cli_parser():
    import argparse

    parser = argparse.ArgumentParser(
        prog="college-regression",
        description="College regression analysis (load -> fit -> subset selection -> cross-validation).",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--print-defaults",
        action="store_true",
        help="Print default parameter values and exit.",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Show full tracebacks for debugging (also COLLEGE_REGRESSION_DEBUG=1).",
    )

    # Defaults are injected only for help display; see _build_cli_parser_with_policy_defaults
    g_load = parser.add_argument_group("LoadParams")
    g_load.add_argument(
        "--data-path",
        type=str,
        help="College CSV file. When omitted the ISLR College table is downloaded.",
    )
    g_load.add_argument("--start-line", type=int, help="1-based inclusive start row.")
    g_load.add_argument("--end-line", type=int, help="1-based inclusive end row.")

    g_an = parser.add_argument_group("AnalysisParams")
    g_an.add_argument("--response", type=str, help="Response of the linear models.")
    g_an.add_argument(
        "--predictor",
        action="append",
        dest="predictors",
        help="Predictor of the linear models. Repeatable.",
    )
    g_an.add_argument(
        "--sqrt-predictor",
        action="append",
        dest="sqrt_predictors",
        help="Predictor square-rooted in the sqrt model. Repeatable.",
    )
    g_an.add_argument(
        "--subset-response", type=str, help="Response for best subset selection."
    )
    g_an.add_argument("--nvmax", type=int, help="Largest subset size to search.")
    g_an.add_argument(
        "--skip-subset",
        dest="run_subset_selection",
        action="store_false",
        default=None,
        help="Skip best subset selection.",
    )

    g_cv = parser.add_argument_group("CVParams")
    g_cv.add_argument("--cv-response", type=str, help="Response for cross-validation.")
    g_cv.add_argument(
        "--cv-predictor", type=str, help="Predictor expanded as poly(x, 1..10)."
    )
    g_cv.add_argument(
        "--method",
        action="append",
        dest="methods",
        help="Validation method (holdout, loocv, kfold). Repeatable.",
    )
    g_cv.add_argument("--fold-count", type=int, help="Number of folds for kfold.")
    g_cv.add_argument("--seed", type=int, help="Seed for the holdout split and folds.")
    g_cv.add_argument(
        "--train-fraction", type=float, help="Training share of the holdout split."
    )
    g_cv.add_argument(
        "--lenient-method-check",
        dest="strict_method_check",
        action="store_false",
        default=None,
        help="Zero-fill unknown methods instead of failing.",
    )

    g_out = parser.add_argument_group("OutputParams")
    g_out.add_argument("--output-dir", type=str, help="Base directory for run folders.")
    g_out.add_argument(
        "--image-format", choices=["png", "svg"], help="Figure file format."
    )
    g_out.add_argument("--dpi", type=int, help="Figure resolution.")

    return parser


def _args_to_params(
    args,
) -> Tuple[LoadParams, AnalysisParams, CVParams, OutputParams]:
    """
    Merge CLI args over defaults to build parameter objects.
    Only override values explicitly provided by user; otherwise keep defaults.
    """
    d_load, d_an, d_cv, d_out = get_default_params()

    def get_arg_or_default(arg_name, default):
        value = getattr(args, arg_name, None)
        return value if value is not None else default

    data_path = get_arg_or_default("data_path", None)
    load = LoadParams(
        data_path=Path(data_path).resolve() if data_path else d_load.data_path,
        start_line=get_arg_or_default("start_line", d_load.start_line),
        end_line=get_arg_or_default("end_line", d_load.end_line),
    )

    analysis = AnalysisParams(
        response=get_arg_or_default("response", d_an.response),
        predictors=get_arg_or_default("predictors", d_an.predictors),
        sqrt_predictors=get_arg_or_default("sqrt_predictors", d_an.sqrt_predictors),
        run_subset_selection=get_arg_or_default(
            "run_subset_selection", d_an.run_subset_selection
        ),
        subset_response=get_arg_or_default("subset_response", d_an.subset_response),
        nvmax=get_arg_or_default("nvmax", d_an.nvmax),
    )
    unknown_sqrt = set(analysis.sqrt_predictors) - set(analysis.predictors)
    if unknown_sqrt:
        raise ValueError(
            f"--sqrt-predictor values must also be predictors: {sorted(unknown_sqrt)}"
        )

    cv = CVParams(
        response=get_arg_or_default("cv_response", d_cv.response),
        predictor=get_arg_or_default("cv_predictor", d_cv.predictor),
        methods=get_arg_or_default("methods", d_cv.methods),
        fold_count=get_arg_or_default("fold_count", d_cv.fold_count),
        seed=get_arg_or_default("seed", d_cv.seed),
        train_fraction=get_arg_or_default("train_fraction", d_cv.train_fraction),
        strict_method_check=get_arg_or_default(
            "strict_method_check", d_cv.strict_method_check
        ),
    )
    if not 0.0 < cv.train_fraction < 1.0:
        raise ValueError("Invalid --train-fraction: must lie strictly between 0 and 1")

    output = OutputParams(
        output_dir=Path(get_arg_or_default("output_dir", d_out.output_dir)),
        plot=PlotParams(
            image_format=get_arg_or_default("image_format", d_out.plot.image_format),
            dpi=get_arg_or_default("dpi", d_out.plot.dpi),
            style=d_out.plot.style,
            label_outliers=d_out.plot.label_outliers,
        ),
    )
    return load, analysis, cv, output


def _build_cli_parser_with_policy_defaults():
    """
    Build a display-only parser whose defaults are injected from get_default_params()
    so that -h/--help shows values synchronized with policy defaults.
    """
    parser = _build_cli_parser()
    d_load, d_an, d_cv, d_out = get_default_params()

    injected_defaults = {
        "data_path": None,
        "start_line": d_load.start_line,
        "end_line": d_load.end_line,
        "response": d_an.response,
        "predictors": " ".join(d_an.predictors),
        "sqrt_predictors": " ".join(d_an.sqrt_predictors),
        "subset_response": d_an.subset_response,
        "nvmax": d_an.nvmax,
        "run_subset_selection": d_an.run_subset_selection,
        "cv_response": d_cv.response,
        "cv_predictor": d_cv.predictor,
        "methods": " ".join(d_cv.methods),
        "fold_count": d_cv.fold_count,
        "seed": d_cv.seed,
        "train_fraction": d_cv.train_fraction,
        "strict_method_check": d_cv.strict_method_check,
        "output_dir": str(d_out.output_dir),
        "image_format": d_out.plot.image_format,
        "dpi": d_out.plot.dpi,
        "print_defaults": False,
    }
    for action in parser._actions:
        if action.dest in injected_defaults:
            action.default = injected_defaults[action.dest]
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """
    CLI entry point. Parses arguments, builds parameter objects, then orchestrates.
    With no CLI args, defaults from get_default_params() are used.
    """
    argv = sys.argv[1:] if argv is None else list(argv)

    if any(x in {"-h", "--help"} for x in argv):
        _build_cli_parser_with_policy_defaults().print_help()
        return

    parser = _build_cli_parser()
    args = parser.parse_args(argv)

    if args.print_defaults:
        d_load, d_an, d_cv, d_out = get_default_params()
        payload = build_effective_parameters(
            load=d_load, analysis=d_an, cv=d_cv, output=d_out
        )
        print(json.dumps(payload, indent=2))
        return

    debug_mode = bool(args.debug or os.getenv("COLLEGE_REGRESSION_DEBUG", "") == "1")
    if debug_mode:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        params = _args_to_params(args)
        _orchestrate(*params)
    except (FileNotFoundError, ValueError, TypeError, CSVProcessingError) as e:
        # Concise, user-facing errors for common/user-correctable problems.
        logger.info("User-facing error: %s", e)
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except Exception as e:
        logger.exception("Unhandled exception during execution")
        if debug_mode:
            import traceback

            traceback.print_exc()
        else:
            print(f"Unexpected error: {e}", file=sys.stderr)
            print(
                "Run with --debug or set COLLEGE_REGRESSION_DEBUG=1 to see the full traceback.",
                file=sys.stderr,
            )
        sys.exit(1)


if __name__ == "__main__":
    main()
