from pathlib import Path

import pandas as pd
import pytest

from college_regression.csv_processor import (
    CSVRangeProcessor,
    FileAccessError,
    InvalidRangeError,
)


def _write_csv(tmp_path: Path, row_names: bool) -> Path:
    df = pd.DataFrame(
        {"Apps": [10, 20, 30, 40, 50], "Outstate": [1.0, 2.0, 3.0, 4.0, 5.0]},
        index=["Alpha", "Beta", "Gamma", "Delta", "Epsilon"],
    )
    path = tmp_path / ("named.csv" if row_names else "plain.csv")
    df.to_csv(path, index=row_names)
    return path


def test_row_names_become_index(tmp_path: Path):
    proc = CSVRangeProcessor(_write_csv(tmp_path, row_names=True))
    assert proc.has_row_names()
    df = proc.read_range()
    assert list(df.columns) == ["Apps", "Outstate"]
    assert df.index.name == "row_name"
    assert df.index[0] == "Alpha"


def test_plain_csv_has_no_row_names(tmp_path: Path):
    proc = CSVRangeProcessor(_write_csv(tmp_path, row_names=False))
    assert not proc.has_row_names()
    assert proc.get_total_lines() == 5
    assert list(proc.read_range().columns) == ["Apps", "Outstate"]


def test_read_range_is_inclusive_and_one_based(tmp_path: Path):
    with CSVRangeProcessor(_write_csv(tmp_path, row_names=True)) as proc:
        df = proc.read_range(2, 3)
    assert list(df.index) == ["Beta", "Gamma"]
    assert list(df["Apps"]) == [20, 30]


def test_end_line_is_clipped(tmp_path: Path):
    proc = CSVRangeProcessor(_write_csv(tmp_path, row_names=False))
    assert len(proc.read_range(4, 100)) == 2


@pytest.mark.parametrize("start,end", [(0, None), (6, None), (3, 2), (1, -1)])
def test_invalid_ranges(tmp_path: Path, start, end):
    proc = CSVRangeProcessor(_write_csv(tmp_path, row_names=False))
    with pytest.raises(InvalidRangeError):
        proc.read_range(start, end)


def test_missing_file_and_directory(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        CSVRangeProcessor(tmp_path / "nope.csv")
    with pytest.raises(FileAccessError):
        CSVRangeProcessor(tmp_path)


def test_file_info(tmp_path: Path):
    info = CSVRangeProcessor(_write_csv(tmp_path, row_names=True)).get_file_info()
    assert info["total_rows"] == 5
    assert info["columns"] == ["Apps", "Outstate"]
    assert info["has_row_names"] is True
