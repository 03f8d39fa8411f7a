"""Central HDF5 artifact I/O for intermediary results.

Event tables are stored as one float64 matrix plus column names; string
columns (e.g. the originating file) are stored as separate string datasets.
Each artifact path is owned by exactly one task, so writers never overlap.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

import h5py
import numpy as np
import pandas as pd

_STR = h5py.string_dtype(encoding="utf-8")


def _compression(arr: np.ndarray) -> Dict[str, Any]:
    # empty datasets cannot be chunked
    return {"compression": "gzip", "compression_opts": 4} if arr.size else {}


# ---------------------------------------------------------------------------
# Tables
# ---------------------------------------------------------------------------


def write_frame(
    h5_path: Path,
    frame: pd.DataFrame,
    *,
    extra_arrays: Optional[Dict[str, np.ndarray]] = None,
) -> None:
    """Write a DataFrame (numeric + string columns) to its own HDF5 file.

    Args:
        h5_path: Destination file (overwritten).
        frame: Table to store; column order is preserved.
        extra_arrays: Additional named arrays stored next to the table.
    """
    h5_path = Path(h5_path)
    h5_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = h5_path.with_suffix(h5_path.suffix + ".tmp")

    numeric = [c for c in frame.columns if pd.api.types.is_numeric_dtype(frame[c])]
    text = [c for c in frame.columns if c not in numeric]

    with h5py.File(tmp_path, "w") as f:
        f.attrs["columns"] = json.dumps([str(c) for c in frame.columns])
        f.attrs["numeric_columns"] = json.dumps([str(c) for c in numeric])
        values = frame[numeric].to_numpy(dtype=np.float64).reshape(len(frame), len(numeric))
        f.create_dataset("values", data=values, **_compression(values))
        grp = f.create_group("text")
        for c in text:
            grp.create_dataset(str(c), data=frame[c].astype(str).to_numpy(dtype=object), dtype=_STR)
        if extra_arrays:
            extra = f.create_group("extra")
            for name, arr in extra_arrays.items():
                extra.create_dataset(name, data=np.asarray(arr))
    tmp_path.replace(h5_path)


def read_frame(h5_path: Path) -> pd.DataFrame:
    """Read a table written by :func:`write_frame`.

    Raises:
        FileNotFoundError: If the HDF5 file does not exist.
    """
    h5_path = Path(h5_path)
    if not h5_path.exists():
        raise FileNotFoundError(f"Artifact not found: {h5_path}")
    with h5py.File(h5_path, "r") as f:
        columns = json.loads(f.attrs["columns"])
        numeric = json.loads(f.attrs["numeric_columns"])
        values = f["values"][()]
        data: Dict[str, Any] = {c: values[:, i] for i, c in enumerate(numeric)}
        for c in f["text"]:
            data[c] = [v.decode("utf-8") if isinstance(v, bytes) else v for v in f["text"][c][()]]
    return pd.DataFrame(data, columns=columns)


def read_extra(h5_path: Path, name: str) -> np.ndarray:
    """Read an extra array stored next to a table."""
    with h5py.File(h5_path, "r") as f:
        return f["extra"][name][()]


# ---------------------------------------------------------------------------
# Arrays and small JSON documents
# ---------------------------------------------------------------------------


def write_array(h5_path: Path, key: str, data: np.ndarray) -> None:
    """Write (or replace) one array dataset."""
    h5_path = Path(h5_path)
    h5_path.parent.mkdir(parents=True, exist_ok=True)
    with h5py.File(h5_path, "a") as f:
        if key in f:
            del f[key]
        data = np.asarray(data)
        f.create_dataset(key, data=data, **_compression(data))


def read_array(h5_path: Path, key: str) -> np.ndarray:
    h5_path = Path(h5_path)
    if not h5_path.exists():
        raise FileNotFoundError(f"Artifact not found: {h5_path}")
    with h5py.File(h5_path, "r") as f:
        return f[key][()]


def write_json(path: Path, payload: Any) -> None:
    """Write JSON atomically via temp file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    with open(tmp_path, "w") as f:
        json.dump(payload, f, indent=2, default=str)
    tmp_path.replace(path)


def read_json(path: Path) -> Any:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Artifact not found: {path}")
    with open(path, "r") as f:
        return json.load(f)


def all_exist(paths: Iterable[Path]) -> bool:
    """True when every artifact path exists (and there is at least one)."""
    paths = list(paths)
    return bool(paths) and all(Path(p).exists() for p in paths)


def is_up_to_date(outputs: Iterable[Path], inputs: Iterable[Path] = ()) -> bool:
    """
    True when every output exists and none is older than an existing input.

    An empty output list is never up to date.
    """
    outputs = [Path(p) for p in outputs]
    if not all_exist(outputs):
        return False
    stamps = [Path(p).stat().st_mtime_ns for p in inputs if Path(p).exists()]
    if not stamps:
        return True
    return min(p.stat().st_mtime_ns for p in outputs) >= max(stamps)
