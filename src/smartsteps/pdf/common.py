from __future__ import annotations

import io
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_RIGHT
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Table, TableStyle

COMPANY_NAME = "Smart Steps ABA"
ACCENT = colors.HexColor("#2b5a85")
MUTED = colors.HexColor("#6b7280")

_styles = getSampleStyleSheet()
TITLE = ParagraphStyle("DocTitle", parent=_styles["Heading2"], alignment=TA_CENTER, textColor=ACCENT)
LABEL = ParagraphStyle("Label", parent=_styles["BodyText"], textColor=MUTED, fontSize=9, leading=11)
VALUE = ParagraphStyle("Value", parent=_styles["BodyText"], fontSize=10, leading=12)
RIGHT = ParagraphStyle("Right", parent=_styles["BodyText"], alignment=TA_RIGHT, fontSize=10, leading=12)
SMALL = ParagraphStyle("Small", parent=_styles["BodyText"], fontSize=8, leading=10, textColor=MUTED)


def build_pdf(story: list, *, title: str) -> bytes:
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=letter,
        rightMargin=36,
        leftMargin=36,
        topMargin=36,
        bottomMargin=36,
        title=title,
        author=COMPANY_NAME,
    )
    doc.build(story)
    return buffer.getvalue()


def fmt_money(value) -> str:
    return f"${Decimal(value or 0):,.2f}"


def fmt_num(value, places: int = 2) -> str:
    return f"{Decimal(value or 0):,.{places}f}"


def fmt_date(value) -> str:
    return value.strftime("%m/%d/%Y") if value else ""


def info_table(pairs: Iterable[tuple[str, Optional[str]]], *, columns: int = 2) -> Table:
    """Label/value grid, ``columns`` pairs per row."""
    cells = [[Paragraph(label, LABEL), Paragraph(str(value or "-"), VALUE)] for label, value in pairs]
    rows = []
    for i in range(0, len(cells), columns):
        row: list = []
        for pair in cells[i:i + columns]:
            row.extend(pair)
        while len(row) < columns * 2:
            row.append("")
        rows.append(row)
    tbl = Table(rows, hAlign="LEFT")
    tbl.setStyle(TableStyle([("VALIGN", (0, 0), (-1, -1), "TOP"), ("BOTTOMPADDING", (0, 0), (-1, -1), 4)]))
    return tbl


def grid_table(header: Sequence[str], rows: Sequence[Sequence], *, col_widths=None, total_row: bool = False) -> Table:
    tbl = Table([list(header)] + [list(r) for r in rows], colWidths=col_widths, repeatRows=1)
    style = [
        ("BACKGROUND", (0, 0), (-1, 0), ACCENT),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 9),
        ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#d1d5db")),
        ("ALIGN", (1, 1), (-1, -1), "RIGHT"),
        ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor("#f3f4f6")]),
    ]
    if total_row and rows:
        style.append(("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"))
    tbl.setStyle(TableStyle(style))
    return tbl


def signature_block(labels: Sequence[tuple[str, Optional[str]]]) -> Table:
    cells = []
    for label, signed_by in labels:
        cells.append(Paragraph(f"{signed_by or ''}<br/>______________________________<br/>{label}", VALUE))
    tbl = Table([cells], hAlign="LEFT")
    tbl.setStyle(TableStyle([("TOPPADDING", (0, 0), (-1, -1), 24)]))
    return tbl
