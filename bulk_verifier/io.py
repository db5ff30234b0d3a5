"""Input/output helpers for lead files and the JSON documents kept on disk."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, List, Optional, Union

from .models import Lead

_JSON_SUFFIXES = {".json"}
_TABULAR_SUFFIXES = {".csv", ".tsv", ".xls", ".xlsx", ".xlsm", ".xlsb"}


class LeadFileError(RuntimeError):
    """Raised when the lead input file is missing or malformed."""


def load_leads(
    path: str | Path,
    *,
    email_column: Optional[str] = None,
    sheet_name: Union[str, int] = 0,
) -> List[Lead]:
    """Load leads in input order from a JSON array or a spreadsheet.

    ``email_column`` and ``sheet_name`` only apply to CSV and Excel input.
    """

    file_path = Path(path)
    if not file_path.exists():
        raise LeadFileError(f"Input file '{file_path}' was not found")

    suffix = file_path.suffix.lower()
    if suffix in _JSON_SUFFIXES:
        records = _load_json_records(file_path)
    elif suffix in _TABULAR_SUFFIXES:
        from .ingestion.loaders import load_lead_records

        try:
            records = load_lead_records(file_path, email_column=email_column, sheet_name=sheet_name)
        except ValueError as exc:
            raise LeadFileError(f"Could not read '{file_path}': {exc}") from exc
    else:
        raise LeadFileError(f"Unsupported input format '{file_path.suffix}'. Use JSON, CSV or Excel")

    leads: List[Lead] = []
    for position, record in enumerate(records):
        if not isinstance(record, dict):
            raise LeadFileError(f"Entry {position} in '{file_path}' is not an object")
        try:
            leads.append(Lead.from_record(record))
        except ValueError as exc:
            raise LeadFileError(f"Entry {position} in '{file_path}': {exc}") from exc
    return leads


def _load_json_records(path: Path) -> List[Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except ValueError as exc:
        raise LeadFileError(f"Error parsing '{path}': {exc}") from exc
    if not isinstance(data, list):
        raise LeadFileError(f"'{path}' must contain a JSON array of lead objects")
    return data


def read_json(path: str | Path) -> Any:
    """Parse a JSON document, letting decoding errors propagate."""

    return json.loads(Path(path).read_text(encoding="utf-8"))


def write_json(path: str | Path, payload: Any) -> None:
    """Write ``payload`` as pretty-printed JSON, creating parent directories."""

    file_path = Path(path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    file_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")


__all__ = ["LeadFileError", "load_leads", "read_json", "write_json"]
