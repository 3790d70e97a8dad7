from __future__ import annotations

from reportlab.platypus import Paragraph, Spacer

from .common import COMPANY_NAME, SMALL, TITLE, build_pdf, fmt_date, fmt_money, fmt_num, grid_table, info_table


def render_payroll_run_pdf(run) -> bytes:
    story: list = [
        Paragraph(f"{COMPANY_NAME} Payroll Run Summary", TITLE),
        info_table(
            [
                ("Run", run.name),
                ("Status", run.status),
                ("Period", f"{fmt_date(run.period_start)} - {fmt_date(run.period_end)}"),
                ("Approved", fmt_date(run.approved_at)),
            ]
        ),
        Spacer(1, 12),
    ]
    rows = [
        [
            line.employee.display_name if line.employee else str(line.employee_id),
            fmt_num(line.hours),
            fmt_money(line.rate),
            fmt_money(line.gross),
            fmt_money(line.paid),
            fmt_money(line.owed),
        ]
        for line in run.lines
    ]
    rows.append(["Total", fmt_num(run.total_hours), "", fmt_money(run.total_gross), fmt_money(run.total_paid), fmt_money(run.total_owed)])
    story.append(grid_table(["Employee", "Hours", "Rate", "Gross", "Paid", "Owed"], rows, total_row=True))
    return build_pdf(story, title=f"Payroll run {run.name}")


def render_employee_month_pdf(statement: dict) -> bytes:
    employee = statement["employee"]
    period = statement["period_start"]
    story: list = [
        Paragraph(f"{COMPANY_NAME} Employee Monthly Report", TITLE),
        info_table(
            [
                ("Employee", employee.display_name),
                ("Month", period.strftime("%B %Y")),
                ("Hourly rate", fmt_money(employee.hourly_rate)),
                ("Scanner code", employee.scanner_code),
            ]
        ),
        Spacer(1, 12),
        info_table(
            [
                ("Total hours", fmt_num(statement["total_hours"])),
                ("Gross pay", fmt_money(statement["gross"])),
                ("Paid", fmt_money(statement["paid"])),
                ("Owed", fmt_money(statement["owed"])),
            ]
        ),
        Spacer(1, 12),
    ]
    lines = statement["lines"]
    if lines:
        rows = [
            [line.run.name, fmt_date(line.run.period_start), fmt_num(line.hours), fmt_money(line.rate), fmt_money(line.gross)]
            for line in lines
        ]
        story.append(grid_table(["Run", "Period start", "Hours", "Rate", "Gross"], rows))
    else:
        story.append(Paragraph("No payroll runs cover this month.", SMALL))
    payments = statement["payments"]
    if payments:
        story.append(Spacer(1, 12))
        rows = [[fmt_date(p.paid_on), fmt_money(p.amount), p.method or "", p.reference or ""] for p in payments]
        story.append(grid_table(["Paid on", "Amount", "Method", "Reference"], rows))
    return build_pdf(story, title=f"{employee.display_name} {period.strftime('%Y-%m')}")
