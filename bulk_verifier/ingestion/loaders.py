"""Utilities for loading lead records from spreadsheets."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

import pandas as pd

PathLike = Union[str, Path]

_EMAIL_SYNONYMS: Sequence[str] = ("email", "email_address", "e-mail", "primary_email", "emails")


class UnsupportedFileTypeError(ValueError):
    """Raised when an unsupported file format is passed to the loader."""


def load_lead_records(
    path: PathLike,
    *,
    email_column: Optional[str] = None,
    sheet_name: Union[str, int] = 0,
) -> List[Dict[str, Any]]:
    """Load spreadsheet rows as lead records carrying an ``email`` key.

    Parameters
    ----------
    path:
        Path to the CSV/TSV/Excel file to be loaded.
    email_column:
        Column holding the address. When omitted the first column whose
        name matches a known synonym (``email``, ``email_address`` ...) is used.
    sheet_name:
        Sheet selector passed to :func:`pandas.read_excel`. Ignored for CSV files.
    """

    dataframe = _read_dataframe(path, sheet_name=sheet_name)
    column = email_column or _resolve_email_column(dataframe.columns)
    if column is None or column not in dataframe.columns:
        raise ValueError(f"No email column found in {Path(path).name}")

    records: List[Dict[str, Any]] = []
    for _, row in dataframe.iterrows():
        if _row_is_empty(row):
            continue
        records.append(_row_to_record(row, column))
    return records


def _read_dataframe(path: PathLike, *, sheet_name: Union[str, int] = 0) -> pd.DataFrame:
    path_obj = Path(path)
    suffix = path_obj.suffix.lower()

    if suffix in {".csv", ".tsv"}:
        sep = "\t" if suffix == ".tsv" else ","
        return pd.read_csv(path_obj, sep=sep, dtype=str)

    if suffix in {".xls", ".xlsx", ".xlsm", ".xlsb"}:
        return pd.read_excel(path_obj, sheet_name=sheet_name, engine="openpyxl", dtype=str)

    raise UnsupportedFileTypeError(f"Unsupported file extension: {path_obj.suffix}")


def _resolve_email_column(columns: Iterable[Any]) -> Optional[str]:
    names = [str(column) for column in columns]
    for synonym in _EMAIL_SYNONYMS:
        for name in names:
            if name.strip().lower().replace(" ", "_") == synonym:
                return name
    return None


def _row_is_empty(row: pd.Series) -> bool:
    return all(pd.isna(value) or (isinstance(value, str) and not value.strip()) for value in row.values)


def _row_to_record(row: pd.Series, email_column: str) -> Dict[str, Any]:
    record: Dict[str, Any] = {}
    for column, value in row.items():
        if column == email_column:
            continue
        text = _clean_text(value)
        if text is not None:
            record[str(column)] = text
    # A row without an address keeps a non-string email so loading fails loudly.
    record["email"] = _clean_text(row[email_column])
    return record


def _clean_text(value: Any) -> Optional[str]:
    if pd.isna(value):
        return None
    text = str(value).strip()
    return text or None


__all__ = ["UnsupportedFileTypeError", "load_lead_records"]
