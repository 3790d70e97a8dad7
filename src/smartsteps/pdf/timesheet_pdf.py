from __future__ import annotations

from reportlab.platypus import Paragraph, Spacer

from ..billing.units import entry_totals, invoice_totals, minutes_to_units
from .common import COMPANY_NAME, TITLE, build_pdf, fmt_date, fmt_num, grid_table, info_table, signature_block


def render_timesheet_pdf(ts) -> bytes:
    kind = "BCBA Timesheet" if ts.is_bcba else "Timesheet"
    story: list = [
        Paragraph(f"{COMPANY_NAME} {kind} {ts.timesheet_number or ts.id}", TITLE),
        info_table(
            [
                ("Client", ts.client.name if ts.client else None),
                ("Provider", ts.provider.name if ts.provider else None),
                ("BCBA", ts.bcba.name if ts.bcba else None),
                ("Insurance", ts.insurance.name if ts.insurance else None),
                ("Period", f"{fmt_date(ts.start_date)} - {fmt_date(ts.end_date)}"),
                ("Status", ts.status),
                ("Service type", ts.service_type),
                ("Medicaid ID", ts.client.medicaid_id if ts.client else None),
            ]
        ),
        Spacer(1, 12),
    ]

    rows = []
    for e in ts.entries:
        units, _ = entry_totals(e.minutes, e.kind, 0, not ts.is_bcba)
        rows.append([fmt_date(e.date), e.start_time, e.end_time, str(e.minutes), fmt_num(units), e.kind])
    totals = invoice_totals(ts.entries, 0, not ts.is_bcba)
    rows.append(["Total", "", "", str(totals.total_minutes), fmt_num(minutes_to_units(totals.total_minutes)), ""])
    story.append(grid_table(["Date", "In", "Out", "Minutes", "Units", "Type"], rows, total_row=True))
    story.append(Spacer(1, 24))

    provider_label = "BCBA signature" if ts.is_bcba else "Provider signature"
    signer = (ts.bcba.name if ts.bcba else None) if ts.is_bcba else (ts.provider.name if ts.provider else None)
    story.append(signature_block([(provider_label, signer), ("Parent / guardian signature", None)]))
    return build_pdf(story, title=f"{kind} {ts.timesheet_number or ts.id}")
