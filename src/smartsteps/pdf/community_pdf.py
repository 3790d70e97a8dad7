from __future__ import annotations

from typing import Optional

from reportlab.platypus import Paragraph, Spacer

from .common import COMPANY_NAME, SMALL, TITLE, VALUE, build_pdf, fmt_date, fmt_money, grid_table, info_table
from .invoice_pdf import qr_image


def render_community_invoice_pdf(invoice, *, public_url: Optional[str] = None) -> bytes:
    client = invoice.client
    klass = invoice.community_class
    story: list = [
        Paragraph(f"{COMPANY_NAME} Community Classes Invoice", TITLE),
        info_table(
            [
                ("Invoice #", str(invoice.id)),
                ("Status", invoice.status),
                ("Client", client.full_name if client else None),
                ("Medicaid ID", client.medicaid_id if client else None),
                ("Class", klass.name if klass else None),
                ("Service date", fmt_date(invoice.service_date)),
            ]
        ),
        Spacer(1, 12),
        grid_table(
            ["Class", "Units", "Minutes / unit", "Rate", "Total"],
            [
                [
                    klass.name if klass else "",
                    str(invoice.units),
                    str(invoice.unit_minutes),
                    fmt_money(invoice.rate_per_unit),
                    fmt_money(invoice.total_amount),
                ]
            ],
        ),
    ]
    if invoice.notes:
        story += [Spacer(1, 10), Paragraph(f"Notes: {invoice.notes}", VALUE)]
    if public_url:
        story += [Spacer(1, 12), qr_image(public_url, size=80), Paragraph(f"View online: {public_url}", SMALL)]
    return build_pdf(story, title=f"Community invoice {invoice.id}")
