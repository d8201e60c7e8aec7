from __future__ import annotations

import dataclasses
import datetime as _dt
import hashlib
import json
import logging
import time
import zipfile
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)


# -------------------------
# Path utilities
# -------------------------
def normalize_abs_posix(path: str | Path) -> str:
    """
    Return an absolute POSIX-style path string for the given input.
    Ensures deterministic representation across platforms.
    """
    return Path(path).resolve().as_posix()


# -------------------------
# Hashing utilities
# -------------------------
def canonical_json_dumps(payload: dict[str, Any]) -> str:
    """
    Deterministic JSON string for hashing and storage:
    - separators=(',', ':')
    - sort_keys=True
    - ensure_ascii=False
    """
    return json.dumps(
        payload, ensure_ascii=False, separators=(",", ":"), sort_keys=True
    )


def canonical_json_hash(payload: dict[str, Any]) -> tuple[str, str]:
    """
    Return (short_hash8, full_hash_hex) computed over canonical JSON bytes (UTF-8).
    """
    h = hashlib.sha256(canonical_json_dumps(payload).encode("utf-8")).hexdigest()
    return h[:8], h


# -------------------------
# Manifest helpers
# -------------------------
def sanitize_for_json(obj: Any) -> Any:
    """
    Recursively convert arbitrary objects into JSON-serializable Python primitives.

    Conversions performed:
    - pathlib.Path -> normalized POSIX string via normalize_abs_posix()
    - Enums -> .value when it is a primitive, else .name
    - dataclasses -> dict via dataclasses.asdict() then sanitized recursively
    - numpy scalars / arrays -> Python scalars / lists
    - pandas Series -> list; DataFrame -> list of row dicts
    - dicts -> sanitized dict with stringified keys
    - lists/tuples/sets/ranges -> lists with sanitized elements
    - datetime.datetime -> ISO-8601 string
    - non-finite floats -> None
    """
    # Enums first: str-valued members are also str instances
    if isinstance(obj, Enum):
        value = obj.value
        return value if isinstance(value, (str, int, float)) else obj.name

    if obj is None or isinstance(obj, (bool, int, str)):
        return obj
    if isinstance(obj, float):
        return float(obj) if np.isfinite(obj) else None

    if isinstance(obj, Path):
        return normalize_abs_posix(obj)

    if isinstance(obj, _dt.datetime):
        return obj.isoformat()

    if isinstance(obj, np.generic):
        return sanitize_for_json(obj.item())
    if isinstance(obj, np.ndarray):
        return [sanitize_for_json(x) for x in obj.tolist()]

    if isinstance(obj, pd.DataFrame):
        return [sanitize_for_json(r) for r in obj.to_dict(orient="records")]
    if isinstance(obj, pd.Series):
        return [sanitize_for_json(x) for x in obj.tolist()]

    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return sanitize_for_json(dataclasses.asdict(obj))

    if isinstance(obj, dict):
        return {str(k): sanitize_for_json(v) for k, v in obj.items()}

    if isinstance(obj, (list, tuple, set, range)):
        return [sanitize_for_json(x) for x in obj]

    if isinstance(obj, (bytes, bytearray)):
        return obj.decode("utf-8", errors="replace")

    return str(obj)


def build_effective_parameters(**param_objects: Any) -> dict[str, Any]:
    """
    Build a JSON-serializable mapping of effective parameters from named
    parameter objects, e.g. build_effective_parameters(load=..., cv=...).

    Dataclasses are expanded field by field so newly added fields are included
    automatically; everything is passed through sanitize_for_json().
    """
    out: dict[str, Any] = {}
    for key, obj in param_objects.items():
        if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
            mapping = dataclasses.asdict(obj)
        elif hasattr(obj, "__dict__"):
            mapping = vars(obj)
        else:
            mapping = {"value": obj}
        out[key] = sanitize_for_json(mapping)
    return out


def write_manifest(path: str | Path, manifest: Dict[str, Any]) -> None:
    """
    Write manifest JSON with UTF-8 encoding and stable formatting (indent=2 for readability).
    """
    Path(path).write_text(
        json.dumps(manifest, ensure_ascii=False, indent=2), encoding="utf-8"
    )


def utc_timestamp_seconds() -> str:
    """
    ISO-8601 UTC timestamp with seconds precision and Z suffix.
    """
    now = _dt.datetime.now(_dt.timezone.utc).replace(tzinfo=None)
    return now.isoformat(timespec="seconds") + "Z"


# -------------------------
# Run directory helpers (shared by CLI and Gradio UI)
# -------------------------
def run_timestamp() -> str:
    return time.strftime("%Y%m%dT%H%M%S", time.localtime())


def ensure_run_dir(base: Path | str = ".", prefix: str = "output") -> Path:
    """
    Ensure and return a per-run directory under `base`/`prefix`/<YYYYmmddTHHMMSS>.
    """
    run_dir = Path(base) / prefix / run_timestamp()
    run_dir.mkdir(parents=True, exist_ok=True)
    logger.debug("Ensured run_dir=%s", str(run_dir))
    return run_dir


def create_zip(zip_path: str | Path, artifact_paths: Iterable[str | Path]) -> Path:
    """
    Create a ZIP archive at zip_path containing the existing files in artifact_paths.
    Missing files are skipped and logged at DEBUG.
    """
    zip_path = Path(zip_path)
    with zipfile.ZipFile(zip_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for p in artifact_paths:
            pth = Path(p)
            if pth.exists():
                zf.write(str(pth), arcname=pth.name)
            else:
                logger.debug("Skipping missing artifact for zip: %s", str(pth))
    return zip_path


def write_text_report(report_text: str, run_dir: Path, short_hash: str) -> Path:
    """
    Write the textual report into run_dir/report-<short_hash>.txt using UTF-8.

    Best-effort: on IO failures the error is logged and the intended Path is
    returned (it may not exist).
    """
    target = Path(run_dir) / f"report-{short_hash}.txt"
    try:
        target.write_text(report_text, encoding="utf-8")
        logger.debug("Wrote textual report to %s", str(target))
    except OSError:
        logger.exception("Failed to write textual report to %s", str(target))
    return target
