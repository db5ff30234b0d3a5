"""Export utilities for classified lead stores."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Sequence, Union

import pandas as pd

PathLike = Union[str, Path]


def export_records(
    records: Sequence[Dict[str, Any]],
    path: PathLike,
    *,
    sheet_name: str = "Leads",
) -> Path:
    """Write lead records to a CSV or Excel file."""

    dataframe = records_to_dataframe(records)
    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    _write_dataframe(dataframe, output_path, sheet_name=sheet_name)
    return output_path


def records_to_dataframe(records: Sequence[Dict[str, Any]]) -> pd.DataFrame:
    """Convert lead records into a :class:`pandas.DataFrame` with ``email`` first."""

    rows = [_flatten(record) for record in records]
    dataframe = pd.DataFrame(rows)
    if "email" in dataframe.columns:
        columns: List[str] = ["email"] + [column for column in dataframe.columns if column != "email"]
        dataframe = dataframe[columns]
    return dataframe


def _flatten(record: Dict[str, Any]) -> Dict[str, Any]:
    row: Dict[str, Any] = {}
    for key, value in record.items():
        # Nested passthrough fields are kept as JSON text so spreadsheets stay flat.
        if isinstance(value, (dict, list)):
            row[key] = json.dumps(value, ensure_ascii=False)
        else:
            row[key] = value
    return row


def _write_dataframe(dataframe: pd.DataFrame, path: Path, *, sheet_name: str) -> None:
    suffix = path.suffix.lower()

    if suffix in {".csv", ".tsv"}:
        sep = "\t" if suffix == ".tsv" else ","
        dataframe.to_csv(path, index=False, sep=sep)
        return

    if suffix in {".xlsx", ".xlsm"}:
        dataframe.to_excel(path, index=False, sheet_name=sheet_name, engine="openpyxl")
        return

    raise ValueError(f"Unsupported export file extension: {suffix}")


__all__ = ["export_records", "records_to_dataframe"]
