"""Spreadsheet import and export helpers built on pandas."""

from .exporters import export_records, records_to_dataframe
from .loaders import UnsupportedFileTypeError, load_lead_records

__all__ = ["UnsupportedFileTypeError", "export_records", "load_lead_records", "records_to_dataframe"]
