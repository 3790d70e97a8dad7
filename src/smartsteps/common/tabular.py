from __future__ import annotations

import io
import re
from typing import Any, Optional

import pandas as pd

from ..core.exceptions import ValidationError

# openpyxl reads only the OOXML formats
EXCEL_SUFFIXES = (".xlsx", ".xlsm")


def read_table(filename: str, content: bytes) -> pd.DataFrame:
    """Load an uploaded CSV or Excel sheet as strings, header row first."""
    name = (filename or "").lower()
    if not content:
        raise ValidationError("Uploaded file is empty")
    try:
        if name.endswith(EXCEL_SUFFIXES):
            df = pd.read_excel(io.BytesIO(content), dtype=str)
        elif name.endswith(".csv") or name.endswith(".txt"):
            df = pd.read_csv(io.BytesIO(content), dtype=str, skipinitialspace=True)
        else:
            raise ValidationError("Unsupported file type. Upload a .csv or .xlsx file")
    except ValidationError:
        raise
    except Exception as exc:
        raise ValidationError(f"Could not read file: {exc}")
    df.columns = [str(c).strip() for c in df.columns]
    return df


def normalize_column(name: str) -> str:
    return re.sub(r"[\s_]+", "", str(name).strip().lower())


def cell(value: Any) -> Optional[str]:
    """Cell text, or None for blanks and NaN."""
    if value is None:
        return None
    if isinstance(value, float) and pd.isna(value):
        return None
    if value is pd.NaT:
        return None
    text = str(value).strip()
    if not text or text.lower() == "nan":
        return None
    return text


def to_excel_bytes(sheets: dict[str, pd.DataFrame]) -> bytes:
    buf = io.BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        for sheet_name, frame in sheets.items():
            frame.to_excel(writer, sheet_name=sheet_name[:31], index=False)
    return buf.getvalue()
