from __future__ import annotations

import io
import json

PUNCHES = b"""Badge,When
E1,2025-03-03 08:00
E1,2025-03-03 12:00
E1,2025-03-03 13:00
E1,2025-03-03 17:30
"""


def _data(resp, status=200):
    body = resp.get_json()
    assert resp.status_code == status, body
    return body.get("data")


def _upload(client, name="march.csv", mapping=None):
    return client.post(
        "/api/payroll/import/process",
        data={
            "file": (io.BytesIO(PUNCHES), name),
            "mapping": json.dumps(mapping or {"employee": "Badge", "timestamp": "When"}),
        },
        content_type="multipart/form-data",
    )


def test_import_run_pay_and_export(client, login_as):
    login_as()
    employee = _data(
        client.post("/api/payroll/employees", json={"display_name": "Ana Ruiz", "scanner_code": "E1", "hourly_rate": "20"}),
        201,
    )

    result = _data(_upload(client), 201)
    assert result["imported_rows"] == 4
    detail = _data(client.get(f"/api/payroll/imports/{result['import_id']}"))
    assert [r["minutes"] for r in detail["rows"]] == [240, 270]
    assert all(r["employee_id"] == employee["id"] for r in detail["rows"])

    again = _upload(client)
    assert again.status_code == 400

    run = _data(
        client.post("/api/payroll/runs", json={"name": "March", "import_id": result["import_id"], "employee_ids": [employee["id"]]}),
        201,
    )
    assert run["status"] == "DRAFT"
    assert run["total_gross"] == 170.0
    line_id = run["lines"][0]["id"]

    early = client.post(f"/api/payroll/runs/{run['id']}/lines/{line_id}/payments", json={"amount": "10", "paid_on": "2025-03-31"})
    assert early.status_code == 400

    _data(client.post(f"/api/payroll/runs/{run['id']}/approve"))
    _data(client.post(f"/api/payroll/runs/{run['id']}/lines/{line_id}/payments", json={"amount": "170", "paid_on": "2025-03-31"}), 201)
    assert _data(client.get(f"/api/payroll/runs/{run['id']}"))["status"] == "PAID"

    xlsx = client.get(f"/api/payroll/runs/{run['id']}/export/excel")
    assert xlsx.status_code == 200
    assert xlsx.data[:2] == b"PK"
    pdf = client.get(f"/api/payroll/runs/{run['id']}/export/pdf")
    assert pdf.data.startswith(b"%PDF")

    blocked = client.delete(f"/api/payroll/imports/{result['import_id']}")
    assert blocked.status_code == 400


def test_process_requires_mapping(client, login_as):
    login_as()
    resp = client.post(
        "/api/payroll/import/process",
        data={"file": (io.BytesIO(PUNCHES), "march.csv")},
        content_type="multipart/form-data",
    )
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "File and mapping are required"


def test_basic_user_cannot_import(client, login_as):
    login_as("amy@example.com", role="USER")
    assert _upload(client).status_code == 403


def _paid_run(client):
    employee = _data(
        client.post("/api/payroll/employees", json={"display_name": "Ana Ruiz", "scanner_code": "E1", "hourly_rate": "20"}),
        201,
    )
    result = _data(_upload(client), 201)
    run = _data(
        client.post("/api/payroll/runs", json={"name": "March", "import_id": result["import_id"], "employee_ids": [employee["id"]]}),
        201,
    )
    _data(client.post(f"/api/payroll/runs/{run['id']}/approve"))
    line_id = run["lines"][0]["id"]
    _data(client.post(f"/api/payroll/runs/{run['id']}/lines/{line_id}/payments", json={"amount": "70", "paid_on": "2025-03-31"}), 201)
    return employee, run


def test_analytics_splits_paid_and_owed(client, login_as):
    login_as()
    employee, run = _paid_run(client)

    stats = _data(client.get("/api/payroll/analytics"))
    assert stats["total_gross"] == 170.0
    assert stats["total_paid"] == 70.0
    assert stats["total_owed"] == 100.0
    assert stats["employee_count"] == {"unpaid": 0, "partial": 1, "paid": 0, "total": 1}
    assert stats["payments_over_time"] == [{"date": "2025-03-31", "amount": 70.0}]
    assert stats["owed_vs_paid_by_employee"] == [{"name": "Ana Ruiz", "owed": 100.0, "paid": 70.0}]

    unpaid = _data(client.get("/api/payroll/analytics?paid_status=unpaid"))
    assert unpaid["total_gross"] == 0
    assert unpaid["payments_over_time"] == []

    bad = client.get("/api/payroll/analytics?paid_status=late")
    assert bad.status_code == 400


def test_employee_month_pdf(client, login_as):
    login_as()
    employee, _ = _paid_run(client)

    pdf = client.get(f"/api/payroll/reports/employee/{employee['id']}/pdf?month=2025-03")
    assert pdf.status_code == 200
    assert pdf.data.startswith(b"%PDF")
    assert "employee-monthly-Ana-Ruiz-2025-03.pdf" in pdf.headers["Content-Disposition"]

    missing = client.get(f"/api/payroll/reports/employee/{employee['id']}/pdf")
    assert missing.status_code == 400
    assert missing.get_json()["error"] == "Month parameter is required (format: YYYY-MM)"
    assert client.get(f"/api/payroll/reports/employee/{employee['id']}/pdf?month=2025-13").status_code == 400
    assert client.get("/api/payroll/reports/employee/999/pdf?month=2025-03").status_code == 404
