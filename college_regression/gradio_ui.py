"""Gradio UI wrapper for the college regression cross-validation comparison.

Upload a College CSV (or fetch the ISLR table), pick the response/predictor
pair and run holdout, LOOCV and k-fold side by side. Produces the comparison
figure, the three results tables and a ZIP of the run artifacts.
"""

import logging
import os
import shutil
import time
import traceback
from pathlib import Path
from typing import Optional

import gradio as gr

from .cross_validation import CVMethod, compare_methods, format_results_table
from .main import (
    CV_REPORT_TITLES,
    CVParams,
    LoadParams,
    build_run_identity,
    get_default_params,
    load_dataset,
)
from .plotting import render_cv_comparison
from .utils import create_zip, ensure_run_dir, write_manifest, write_text_report

logger = logging.getLogger(__name__)

RUN_ROOT = Path("output_gradio")


def _parse_optional_int(val) -> Optional[int]:
    if val is None:
        return None
    s = val
    if isinstance(val, str):
        s = val.strip()
        if s == "":
            return None
    try:
        # Gradio numbers arrive as floats
        return int(float(s))
    except (TypeError, ValueError):
        return None


def _file_path(file_obj) -> Optional[str]:
    # gr.File returns a dict, a str or a tempfile wrapper depending on version
    if file_obj is None:
        return None
    if isinstance(file_obj, dict):
        return file_obj.get("name") or file_obj.get("tmp_path")
    if isinstance(file_obj, str):
        return file_obj
    return getattr(file_obj, "name", None)


def _looks_like_run_ts(name: str) -> bool:
    return (
        len(name) >= 15
        and name[0:8].isdigit()
        and name[8] == "T"
        and name[9:15].isdigit()
    )


def _prune_old_runs(run_root: Path, keep: Optional[int] = None) -> None:
    """
    Retention helper: keep only the newest `keep` subdirectories under `run_root`.

    Timestamp-named run directories (YYYYmmddTHHMMSS) are ordered by name,
    anything else by mtime. Symlinks and paths resolving outside run_root are
    never deleted. Deletion failures are logged at WARNING and retried on a
    later run.
    """
    if keep is None:
        try:
            keep = int(os.getenv("COLLEGE_GRADIO_RETENTION_KEEP", "10"))
        except ValueError:
            keep = 10
    if keep <= 0:
        logger.debug("retention keep <=0 (%s) -> skipping prune", keep)
        return

    if not run_root.exists() or not run_root.is_dir():
        return

    subdirs = [p for p in run_root.iterdir() if p.is_dir()]
    if all(_looks_like_run_ts(p.name) for p in subdirs):
        subdirs_sorted = sorted(subdirs, key=lambda p: p.name, reverse=True)
    else:
        subdirs_sorted = sorted(subdirs, key=lambda p: p.stat().st_mtime, reverse=True)

    root_resolved = run_root.resolve()
    for d in subdirs_sorted[keep:]:
        if d.is_symlink():
            logger.warning("Skipping symlink during prune: %s", d)
            continue
        try:
            inside = os.path.commonpath([str(root_resolved), str(d.resolve())]) == str(
                root_resolved
            )
        except ValueError:
            inside = False
        if not inside:
            logger.warning("Skipping prune of %s - resolved outside run_root", d)
            continue
        try:
            shutil.rmtree(d)
            logger.info("Pruned old run dir: %s", d)
        except OSError as e:
            logger.warning("Failed to prune %s: %s", d, e)


def _run_cv_comparison(
    uploaded_file_path: Optional[str],
    response: str,
    predictor: str,
    fold_count,
    seed,
    train_fraction: float,
    run_root: Path = RUN_ROOT,
):
    """
    Execute the CV comparison and return (image_path, zip_path, report_text),
    or (None, None, error_text) on failure.
    """
    t0 = time.time()
    logger.info("_run_cv_comparison START - uploaded_file_path=%r", uploaded_file_path)

    d_load, d_an, d_cv, d_out = get_default_params()
    load = LoadParams(
        data_path=Path(uploaded_file_path).resolve() if uploaded_file_path else None
    )
    parsed_folds = _parse_optional_int(fold_count)
    cv = CVParams(
        response=(response or d_cv.response).strip(),
        predictor=(predictor or d_cv.predictor).strip(),
        fold_count=d_cv.fold_count if parsed_folds is None else parsed_folds,
        seed=_parse_optional_int(seed),
        train_fraction=float(train_fraction) if train_fraction else d_cv.train_fraction,
    )

    try:
        data_source, short_hash, full_hash, effective_params = build_run_identity(
            load, d_an, cv
        )
        run_dir = ensure_run_dir(run_root, prefix="")

        df = load_dataset(load)
        comparison = compare_methods(
            df,
            cv.response,
            cv.predictor,
            fold_count=cv.fold_count,
            seed=cv.seed,
            train_fraction=cv.train_fraction,
            methods=cv.methods,
        )

        figure = render_cv_comparison(
            comparison,
            run_dir / f"cv_mse_comparison-{short_hash}.{d_out.plot.image_format}",
            params=d_out.plot,
        )

        parts = [
            f"{cv.response} ~ poly({cv.predictor}, d) on {len(df)} rows "
            f"(seed={cv.seed}, k={cv.fold_count})",
            "",
        ]
        artifacts = [figure]
        for method, table in comparison.tables.items():
            parts.append(CV_REPORT_TITLES[method])
            parts.append(format_results_table(table))
            parts.append(f"Best degree: {comparison.best_degree(method)}")
            parts.append("")
            csv_path = run_dir / f"cv-{method}-{short_hash}.csv"
            table.to_csv(csv_path, index=False)
            artifacts.append(str(csv_path))
        report_text = "\n".join(parts)
        artifacts.append(str(write_text_report(report_text, run_dir, short_hash)))

        manifest_path = run_dir / f"manifest-{short_hash}.json"
        write_manifest(
            manifest_path,
            {
                "version": "1",
                "data_source": data_source,
                "row_count": int(len(df)),
                "effective_parameters": effective_params,
                "cv_mse": comparison.mse,
                "cv_best_degree": {
                    m.value: comparison.best_degree(m) for m in CVMethod
                },
                "canonical_hash": full_hash,
                "canonical_hash_short": short_hash,
            },
        )
        artifacts.append(str(manifest_path))

        zip_path = create_zip(run_dir / f"cv-{short_hash}.zip", artifacts)
        _prune_old_runs(Path(run_root))

        logger.info(
            "_run_cv_comparison COMPLETE (duration_ms=%.1f)", (time.time() - t0) * 1000
        )
        return figure, str(zip_path), report_text

    except Exception as e:
        tb = traceback.format_exc()
        logger.exception("_run_cv_comparison failed: %s", e)
        return None, None, f"Error running cross-validation\n{e}\n{tb}"


def _build_ui():
    _, _, d_cv, _ = get_default_params()
    with gr.Blocks() as demo:
        gr.Markdown(
            "### College regression - cross-validated polynomial degree selection"
        )
        gr.HTML("""
<style>
  #report_box textarea {
    font-family: "SF Mono", "Menlo", "Monaco", "Consolas", "Liberation Mono", "Courier New", monospace;
    font-size: 13px;
    line-height: 1.3;
    resize: vertical;
    min-height: 200px;
  }
</style>
""")
        with gr.Row():
            file_input = gr.File(
                label="Upload College CSV (leave empty to download ISLR College)",
                file_types=[".csv"],
            )
        with gr.Row():
            response = gr.Textbox(label="Response column", value=d_cv.response)
            predictor = gr.Textbox(label="Predictor column", value=d_cv.predictor)
            fold_count = gr.Number(label="k (folds)", value=d_cv.fold_count, precision=0)
            seed = gr.Number(label="Seed", value=d_cv.seed, precision=0)
            train_fraction = gr.Slider(
                label="Holdout train fraction",
                minimum=0.1,
                maximum=0.9,
                step=0.05,
                value=d_cv.train_fraction,
            )
        run_button = gr.Button("Run")
        output_image = gr.Image(label="MSE by polynomial degree", type="filepath")
        report_box = gr.Textbox(
            value="", lines=20, interactive=False, elem_id="report_box", label="Report"
        )
        output_zip = gr.File(label="Download ZIP")

        def _click(file_obj, response_v, predictor_v, folds_v, seed_v, frac_v):
            return _run_cv_comparison(
                _file_path(file_obj), response_v, predictor_v, folds_v, seed_v, frac_v
            )

        run_button.click(
            _click,
            inputs=[file_input, response, predictor, fold_count, seed, train_fraction],
            outputs=[output_image, output_zip, report_box],
        )

    return demo


if __name__ == "__main__":
    demo = _build_ui()
    demo.launch()
