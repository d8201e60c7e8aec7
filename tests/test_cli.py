import json
from pathlib import Path

import pytest

from college_regression.main import (
    _args_to_params,
    _build_cli_parser,
    get_default_params,
    main,
)


def _params(argv):
    return _args_to_params(_build_cli_parser().parse_args(argv))


def test_no_args_keeps_policy_defaults():
    load, analysis, cv, output = _params([])
    d_load, d_an, d_cv, d_out = get_default_params()
    assert load == d_load
    assert analysis == d_an
    assert cv == d_cv
    assert output == d_out


def test_cli_overrides_only_given_values(tmp_path: Path):
    load, analysis, cv, output = _params(
        [
            "--data-path",
            str(tmp_path / "College.csv"),
            "--predictor",
            "Apps",
            "--predictor",
            "Accept",
            "--sqrt-predictor",
            "Apps",
            "--seed",
            "7",
            "--fold-count",
            "5",
            "--method",
            "loocv",
            "--skip-subset",
            "--lenient-method-check",
            "--output-dir",
            str(tmp_path / "runs"),
        ]
    )
    assert load.data_path == (tmp_path / "College.csv").resolve()
    assert analysis.predictors == ["Apps", "Accept"]
    assert analysis.sqrt_predictors == ["Apps"]
    assert analysis.run_subset_selection is False
    assert analysis.response == "Outstate"
    assert cv.seed == 7
    assert cv.fold_count == 5
    assert cv.methods == ["loocv"]
    assert cv.strict_method_check is False
    assert cv.train_fraction == 0.7
    assert output.output_dir == tmp_path / "runs"


def test_sqrt_predictor_must_be_a_predictor():
    with pytest.raises(ValueError):
        _params(["--predictor", "Apps", "--sqrt-predictor", "Enroll"])


def test_print_defaults(capsys):
    main(["--print-defaults"])
    payload = json.loads(capsys.readouterr().out)
    assert set(payload) == {"load", "analysis", "cv", "output"}
    assert payload["load"]["data_path"] is None
    assert payload["cv"]["fold_count"] == 10
    assert payload["cv"]["methods"] == ["holdout", "loocv", "kfold"]
    assert payload["analysis"]["response"] == "Outstate"


def test_missing_data_file_exits_with_user_error(tmp_path: Path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    with pytest.raises(SystemExit) as exc:
        main(["--data-path", str(tmp_path / "absent.csv"), "--output-dir", str(tmp_path)])
    assert exc.value.code == 2
    assert "Error:" in capsys.readouterr().err


def test_bad_train_fraction_exits_with_user_error(capsys):
    with pytest.raises(SystemExit) as exc:
        main(["--train-fraction", "1.5"])
    assert exc.value.code == 2


def test_cli_end_to_end(college_csv: Path, tmp_path: Path):
    out_dir = tmp_path / "runs"
    main(
        [
            "--data-path",
            str(college_csv),
            "--skip-subset",
            "--fold-count",
            "5",
            "--output-dir",
            str(out_dir),
        ]
    )
    (run_dir,) = list(out_dir.iterdir())
    assert (run_dir / "figures" / "cv_mse_comparison.png").exists()
    assert not (run_dir / "figures" / "best_subset_selection_metrics.png").exists()


def test_infinite_values_exit_with_user_error(college_df, tmp_path: Path, capsys):
    college_df.iloc[3, college_df.columns.get_loc("Apps")] = float("inf")
    path = tmp_path / "College.csv"
    college_df.to_csv(path)
    with pytest.raises(SystemExit) as exc:
        main(["--data-path", str(path), "--output-dir", str(tmp_path / "runs")])
    assert exc.value.code == 2
    assert "infinite" in capsys.readouterr().err
