from __future__ import annotations

import io
from typing import Optional

import qrcode
from reportlab.platypus import Image, Paragraph, Spacer, Table, TableStyle

from .common import COMPANY_NAME, SMALL, TITLE, build_pdf, fmt_date, fmt_money, fmt_num, grid_table, info_table


def qr_image(url: str, size: int = 96) -> Image:
    buf = io.BytesIO()
    qrcode.make(url).save(buf, format="PNG")
    buf.seek(0)
    return Image(buf, width=size, height=size)


def render_invoice_pdf(invoice, *, public_url: Optional[str] = None) -> bytes:
    client = invoice.client
    header = info_table(
        [
            ("Invoice", invoice.invoice_number),
            ("Status", invoice.status),
            ("Client", client.name if client else None),
            ("Medicaid ID", client.medicaid_id if client else None),
            ("Week", f"{fmt_date(invoice.start_date)} - {fmt_date(invoice.end_date)}"),
            ("Insurance", client.insurance.name if client and client.insurance else None),
        ]
    )
    if public_url:
        top = Table([[header, qr_image(public_url)]], colWidths=[430, 110])
        top.setStyle(TableStyle([("VALIGN", (0, 0), (-1, -1), "TOP")]))
    else:
        top = header

    story: list = [Paragraph(f"{COMPANY_NAME} Invoice", TITLE), top, Spacer(1, 12)]

    rows = []
    for line in invoice.entries:
        te = line.timesheet_entry
        rows.append(
            [
                fmt_date(te.date) if te else "",
                line.provider.name if line.provider else "",
                te.kind if te else "",
                str(te.minutes) if te else "",
                fmt_num(line.units),
                fmt_money(line.rate),
                fmt_money(line.amount),
            ]
        )
    rows.sort(key=lambda r: r[0])
    story.append(grid_table(["Date", "Provider", "Type", "Minutes", "Units", "Rate", "Amount"], rows))
    story.append(Spacer(1, 12))

    totals = [
        ["Total", fmt_money(invoice.total_amount)],
        ["Adjustments", fmt_money(invoice.adjustments)],
        ["Paid", fmt_money(invoice.paid_amount)],
        ["Outstanding", fmt_money(invoice.outstanding)],
    ]
    totals_tbl = Table(totals, colWidths=[120, 100], hAlign="RIGHT")
    totals_tbl.setStyle(
        TableStyle(
            [
                ("ALIGN", (1, 0), (1, -1), "RIGHT"),
                ("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"),
                ("LINEABOVE", (0, -1), (-1, -1), 0.75, "#2b5a85"),
            ]
        )
    )
    story.append(totals_tbl)

    if invoice.payments:
        story.append(Spacer(1, 12))
        story.append(
            grid_table(
                ["Payment date", "Method", "Reference", "Amount"],
                [[fmt_date(p.payment_date), p.method or "", p.reference or "", fmt_money(p.amount)] for p in invoice.payments],
            )
        )
    if public_url:
        story.append(Spacer(1, 12))
        story.append(Paragraph(f"View online: {public_url}", SMALL))
    return build_pdf(story, title=f"Invoice {invoice.invoice_number}")
