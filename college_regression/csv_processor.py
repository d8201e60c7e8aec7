"""
CSV Range Processor
Reads a 1-based range of data rows from a dataset CSV, keeping the header and
turning an unnamed leading column (R-style row names) into the index.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import pandas as pd

logger = logging.getLogger(__name__)


class CSVProcessingError(Exception):
    """Base exception for CSV processing errors."""

    pass


class InvalidRangeError(CSVProcessingError):
    """Raised when invalid line range is provided."""

    pass


class FileAccessError(CSVProcessingError):
    """Raised when file cannot be accessed or read."""

    pass


def _is_row_name_header(name: Any) -> bool:
    # pandas names an empty header cell "Unnamed: 0"
    s = str(name).strip()
    return s == "" or s.startswith("Unnamed:")


class CSVRangeProcessor:
    """
    Read row ranges from a CSV file.

    Line numbers are 1-based and count data rows only (the header is line 0).
    """

    def __init__(self, file_path: Union[str, Path]) -> None:
        """
        Args:
            file_path: Path to the CSV file to process

        Raises:
            FileNotFoundError: If the specified file does not exist
            FileAccessError: If the path is not a regular file
        """
        self.file_path = Path(file_path)
        if not self.file_path.exists():
            raise FileNotFoundError(f"CSV file not found: {self.file_path}")
        if not self.file_path.is_file():
            raise FileAccessError(f"Path is not a file: {self.file_path}")
        if not self.file_path.suffix.lower() == ".csv":
            logger.warning("File does not have .csv extension: %s", self.file_path)

    def has_row_names(self) -> bool:
        """True when the first header cell is empty, as written by R's write.csv."""
        try:
            header = pd.read_csv(self.file_path, nrows=0)
        except pd.errors.EmptyDataError:
            return False
        except Exception as e:
            raise FileAccessError(f"Error reading CSV header: {e}")
        return len(header.columns) > 0 and _is_row_name_header(header.columns[0])

    def get_total_lines(self) -> int:
        """
        Get the total number of data rows (excluding header).

        Raises:
            FileAccessError: If the file cannot be read
        """
        try:
            total_rows = 0
            for chunk in pd.read_csv(self.file_path, chunksize=10000):
                total_rows += len(chunk)
            return total_rows
        except pd.errors.EmptyDataError:
            return 0
        except Exception as e:
            raise FileAccessError(f"Error reading CSV file: {e}")

    def _validate_line_range(
        self, start_line: Optional[int], end_line: Optional[int] = None
    ) -> Tuple[int, int]:
        """
        Validate and normalize line range parameters.

        Args:
            start_line: Starting data row (1-indexed). None starts from the first row
            end_line: Ending data row (1-indexed, inclusive). None reads to the end

        Returns:
            Tuple[int, int]: Validated (start_line, end_line); end_line is clipped
            to the number of data rows.

        Raises:
            InvalidRangeError: If the range is invalid
        """
        total_lines = self.get_total_lines()

        if start_line is None:
            start_line = 1
        elif not isinstance(start_line, int) or start_line <= 0:
            raise InvalidRangeError(
                f"Start line must be a positive integer or None, got: {start_line}"
            )

        if end_line is None:
            end_line = total_lines
        elif not isinstance(end_line, int) or end_line <= 0:
            raise InvalidRangeError(
                f"End line must be a positive integer or None, got: {end_line}"
            )

        if start_line > total_lines:
            raise InvalidRangeError(
                f"Start line {start_line} exceeds total data rows {total_lines}"
            )

        if end_line < start_line:
            raise InvalidRangeError(
                f"End line {end_line} must be greater than or equal to start line {start_line}"
            )

        if end_line > total_lines:
            end_line = total_lines

        return start_line, end_line

    def read_range(
        self, start_line: Optional[int] = None, end_line: Optional[int] = None
    ) -> pd.DataFrame:
        """
        Read data rows start_line..end_line (inclusive) with the header preserved.

        An unnamed first column becomes the DataFrame index (named "row_name").

        Raises:
            InvalidRangeError: If the range parameters are invalid
            FileAccessError: If the file cannot be read
        """
        start_line, end_line = self._validate_line_range(start_line, end_line)
        n_rows = end_line - start_line + 1
        skiprows = None if start_line <= 1 else range(1, start_line)
        index_col = 0 if self.has_row_names() else None

        try:
            df = pd.read_csv(
                self.file_path,
                header=0,
                skiprows=skiprows,
                nrows=n_rows,
                index_col=index_col,
            )
        except pd.errors.EmptyDataError:
            return pd.DataFrame()
        except Exception as e:
            raise FileAccessError(f"Error reading CSV range: {e}")

        if index_col is not None:
            df.index.name = "row_name"
        logger.debug(
            "Read rows %d..%d (%d rows) from %s", start_line, end_line, len(df), self.file_path
        )
        return df

    def get_file_info(self) -> Dict[str, Any]:
        """
        Get summary information about the CSV file.

        Raises:
            FileAccessError: If the file cannot be read
        """
        try:
            sample_df = pd.read_csv(
                self.file_path, nrows=5, index_col=0 if self.has_row_names() else None
            )
            return {
                "file_path": str(self.file_path),
                "file_size": self.file_path.stat().st_size,
                "total_rows": self.get_total_lines(),
                "columns": list(sample_df.columns),
                "column_count": len(sample_df.columns),
                "has_row_names": self.has_row_names(),
            }
        except FileAccessError:
            raise
        except Exception as e:
            raise FileAccessError(f"Error getting file info: {e}")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        pass
