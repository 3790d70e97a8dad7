from __future__ import annotations

import io

import pytest

MONDAY = "2025-01-06"
TUESDAY = "2025-01-07"


def _data(resp, status=200):
    body = resp.get_json()
    assert resp.status_code == status, body
    return body.get("data")


@pytest.fixture()
def directory(client, login_as):
    login_as()
    insurance = _data(client.post("/api/insurance", json={"name": "Aetna", "rate_per_unit": "12.50", "bcba_rate_per_unit": "25"}), 201)
    kid = _data(client.post("/api/clients", json={"name": "Kid A", "insurance_id": insurance["id"]}), 201)
    provider = _data(client.post("/api/providers", json={"name": "Pat Provider"}), 201)
    bcba = _data(client.post("/api/bcbas", json={"name": "Bea BCBA"}), 201)
    return {"insurance": insurance, "client": kid, "provider": provider, "bcba": bcba}


def _timesheet_payload(directory, day=MONDAY, start="09:00", end="10:00", **extra):
    payload = {
        "client_id": directory["client"]["id"],
        "provider_id": directory["provider"]["id"],
        "bcba_id": directory["bcba"]["id"],
        "insurance_id": directory["insurance"]["id"],
        "start_date": day,
        "end_date": day,
        "entries": [{"date": day, "start_time": start, "end_time": end}],
    }
    payload.update(extra)
    return payload


def test_requests_without_session_are_rejected(client):
    resp = client.get("/api/timesheets")
    assert resp.status_code == 401
    assert resp.get_json()["code"] == "UNAUTHORIZED"


def test_login_rejects_bad_password(client, make_user):
    make_user("amy@example.com")
    resp = client.post("/api/auth/login", json={"email": "amy@example.com", "password": "wrong"})
    assert resp.status_code == 401


def test_me_returns_session_user(client, login_as):
    login_as("amy@example.com", role="USER")
    me = _data(client.get("/api/auth/me"))
    assert me["email"] == "amy@example.com"
    assert me["role"] == "USER"


def test_basic_user_cannot_read_reports(client, login_as):
    login_as("amy@example.com", role="USER")
    resp = client.get(f"/api/reports/timesheets?start_date={MONDAY}&end_date={MONDAY}")
    assert resp.status_code == 403
    assert resp.get_json()["code"] == "PERMISSION_DENIED"


def test_timesheet_lifecycle_and_queue(client, directory):
    ts = _data(client.post("/api/timesheets", json=_timesheet_payload(directory)), 201)
    assert ts["status"] == "DRAFT"
    assert ts["timesheet_number"] == "T-1001"
    assert ts["entries"][0]["units"] == 4.0

    _data(client.post(f"/api/timesheets/{ts['id']}/submit"))
    approved = _data(client.post(f"/api/timesheets/{ts['id']}/approve"))
    assert approved["status"] == "APPROVED"
    assert approved["queued_at"]

    again = client.post(f"/api/timesheets/{ts['id']}/approve")
    assert again.status_code == 400

    queue = _data(client.get("/api/email-queue"))
    assert [(q["entity_type"], q["entity_id"], q["status"]) for q in queue] == [("REGULAR", ts["id"], "QUEUED")]

    result = _data(client.post("/api/email-queue/send-batch"))
    assert result["sent"] == 1
    assert result["batch_id"]

    emailed = _data(client.get(f"/api/timesheets/{ts['id']}"))
    assert emailed["status"] == "EMAILED"
    assert emailed["emailed_at"]
    assert _data(client.get("/api/email-queue"))[0]["status"] == "SENT"


def test_overlapping_timesheet_is_rejected(client, directory):
    _data(client.post("/api/timesheets", json=_timesheet_payload(directory)), 201)

    check = _data(client.post("/api/timesheets/check-overlaps", json=_timesheet_payload(directory, start="09:30", end="10:30")))
    assert check["has_conflicts"] is True

    resp = client.post("/api/timesheets", json=_timesheet_payload(directory, start="09:30", end="10:30"))
    body = resp.get_json()
    assert resp.status_code == 400
    assert body["code"] == "OVERLAP_CONFLICT"
    assert body["details"]["conflicts"][0]["scope"] == "both"

    touching = client.post("/api/timesheets", json=_timesheet_payload(directory, start="10:00", end="11:00"))
    assert touching.status_code == 201


def test_saturday_timesheet_is_rejected(client, directory):
    resp = client.post("/api/timesheets", json=_timesheet_payload(directory, day="2025-01-11"))
    assert resp.status_code == 400
    assert "Saturdays" in resp.get_json()["error"]


def test_reject_requires_reason(client, directory):
    ts = _data(client.post("/api/timesheets", json=_timesheet_payload(directory)), 201)
    assert client.post(f"/api/timesheets/{ts['id']}/reject", json={}).status_code == 400
    rejected = _data(client.post(f"/api/timesheets/{ts['id']}/reject", json={"reason": "Missing notes"}))
    assert rejected["status"] == "REJECTED"
    assert rejected["rejection_reason"] == "Missing notes"


def test_invoice_generation_payment_and_public_link(client, directory):
    first = _data(client.post("/api/timesheets", json=_timesheet_payload(directory)), 201)
    second = _data(client.post("/api/timesheets", json=_timesheet_payload(directory, day=TUESDAY)), 201)
    for ts in (first, second):
        _data(client.post(f"/api/timesheets/{ts['id']}/approve"))

    result = _data(client.post("/api/timesheets/generate-invoice", json={"timesheet_ids": [first["id"], second["id"]]}))
    assert len(result["created"]) == 1

    [invoice] = _data(client.get("/api/invoices"))["items"]
    assert invoice["total_amount"] == 100.0
    assert invoice["start_date"] == MONDAY

    repeat = _data(client.post("/api/invoices/generate", json={"timesheet_ids": [first["id"]]}))
    assert repeat["created"] == []

    approved = _data(client.post(f"/api/invoices/{invoice['id']}/approve"))
    assert approved["status"] == "SENT"
    public_url = approved["public_url"]
    assert public_url.startswith("http://testserver/api/public/invoice/")
    token = public_url.split("token=")[1]

    client.post("/api/auth/logout")
    public = _data(client.get(f"/api/public/invoice/{invoice['id']}?token={token}"))
    assert public["invoice_number"] == invoice["invoice_number"]
    assert client.get(f"/api/public/invoice/{invoice['id']}?token=nope").status_code == 403
    pdf = client.get(f"/api/public/invoice/{invoice['id']}/pdf?token={token}")
    assert pdf.status_code == 200
    assert pdf.data.startswith(b"%PDF")


def test_invoice_payments(client, directory):
    ts = _data(client.post("/api/timesheets", json=_timesheet_payload(directory)), 201)
    _data(client.post(f"/api/timesheets/{ts['id']}/approve"))
    _data(client.post("/api/invoices/generate", json={"timesheet_ids": [ts["id"]]}))
    [invoice] = _data(client.get("/api/invoices"))["items"]

    _data(client.post(f"/api/invoices/{invoice['id']}/payments", json={"amount": "20", "payment_date": "2025-02-01"}), 201)
    detail = _data(client.get(f"/api/invoices/{invoice['id']}"))
    assert detail["status"] == "PARTIALLY_PAID"
    assert detail["outstanding"] == 30.0

    _data(client.post(f"/api/invoices/{invoice['id']}/payments", json={"amount": "30", "payment_date": "2025-02-02"}), 201)
    assert _data(client.get(f"/api/invoices/{invoice['id']}"))["status"] == "PAID"
    assert client.delete(f"/api/invoices/{invoice['id']}").status_code == 400


def test_community_invoice_flow(client, login_as):
    login_as()
    kid = _data(client.post("/api/community/clients", json={"first_name": "Lia", "last_name": "Moreno"}), 201)
    klass = _data(client.post("/api/community/classes", json={"name": "Art", "rate_per_unit": "15"}), 201)
    invoice = _data(
        client.post("/api/community/invoices", json={"client_id": kid["id"], "class_id": klass["id"], "units": 2}), 201
    )
    assert invoice["total_amount"] == 30.0

    bad = client.post("/api/community/invoices", json={"client_id": kid["id"], "class_id": klass["id"], "units": -1})
    assert bad.status_code == 400

    approved = _data(client.post(f"/api/community/invoices/{invoice['id']}/approve"))
    assert approved["status"] == "QUEUED"

    assert len(_data(client.get("/api/community/email-queue"))) == 1
    assert _data(client.get("/api/email-queue")) == []

    result = _data(client.post("/api/community/email-queue/send-batch"))
    assert result["sent"] == 1
    assert _data(client.get(f"/api/community/invoices/{invoice['id']}"))["status"] == "EMAILED"


def test_forms_upsert_and_lookup(client, directory):
    query = {"type": "PARENT_ABC_DATA", "client_id": directory["client"]["id"], "month": 3, "year": 2025}
    missing = client.get("/api/forms/lookup", query_string=query).get_json()
    assert missing["found"] is False

    saved = _data(client.put("/api/forms", json={**query, "payload": {"rows": [1]}}))
    updated = _data(client.put("/api/forms", json={**query, "payload": {"rows": [1, 2]}}))
    assert saved["id"] == updated["id"]

    found = client.get("/api/forms/lookup", query_string=query).get_json()
    assert found["found"] is True
    assert found["data"]["payload"] == {"rows": [1, 2]}

    attestation = client.put("/api/forms", json={**query, "type": "VISIT_ATTESTATION"})
    assert attestation.status_code == 400

    _data(client.delete(f"/api/forms/{saved['id']}"))
    assert client.get("/api/forms/lookup", query_string=query).get_json()["found"] is False


def test_report_csv_export(client, directory):
    ts = _data(client.post("/api/timesheets", json=_timesheet_payload(directory)), 201)
    _data(client.post(f"/api/timesheets/{ts['id']}/approve"))

    report = _data(client.get(f"/api/reports/timesheets?start_date={MONDAY}&end_date={TUESDAY}"))
    assert len(report["rows"]) == 1

    resp = client.get(f"/api/reports/timesheets?start_date={MONDAY}&end_date={TUESDAY}&format=csv")
    assert resp.status_code == 200
    assert resp.mimetype == "text/csv"
    assert resp.data.startswith(b"\xef\xbb\xbf")
    assert b"Kid A" in resp.data


def test_dashboard_stats(client, directory):
    _data(client.post("/api/timesheets", json=_timesheet_payload(directory)), 201)
    stats = _data(client.get("/api/dashboard/stats"))
    assert stats["timesheets_total"] == 1
    assert stats["active_clients"] == 1
    assert stats["emails_queued"] == 0


def _relogin(client, email, password="Secret123!"):
    resp = client.post("/api/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.get_json()


def _approved(client, directory, **kwargs):
    ts = _data(client.post("/api/timesheets", json=_timesheet_payload(directory, **kwargs)), 201)
    return _data(client.post(f"/api/timesheets/{ts['id']}/approve"))


def test_basic_users_only_see_their_own_timesheets(client, directory, login_as):
    login_as("alice@example.com", role="USER")
    mine = _data(client.post("/api/timesheets", json=_timesheet_payload(directory)), 201)
    assert [t["id"] for t in _data(client.get("/api/timesheets"))["items"]] == [mine["id"]]

    login_as("bob@example.com", role="USER")
    assert _data(client.get("/api/timesheets"))["items"] == []
    assert client.get(f"/api/timesheets/{mine['id']}").status_code == 403
    assert _data(client.get("/api/search?q=T-1001"))["timesheet"] is None

    _relogin(client, "admin@example.com")
    role = _data(
        client.post(
            "/api/roles",
            json={"name": "Reviewer", "permissions": {"timesheets.view": {"canView": True}, "timesheets.viewAll": {"canView": True}}},
        ),
        201,
    )
    _data(
        client.post(
            "/api/users",
            json={"email": "rita@example.com", "full_name": "Rita", "password": "Secret123!", "role": "CUSTOM", "custom_role_id": role["id"]},
        ),
        201,
    )
    _relogin(client, "rita@example.com")
    assert [t["id"] for t in _data(client.get("/api/timesheets"))["items"]] == [mine["id"]]
    assert _data(client.get(f"/api/timesheets/{mine['id']}"))["id"] == mine["id"]


def test_role_in_use_cannot_be_deleted(client, login_as):
    login_as()
    role = _data(client.post("/api/roles", json={"name": "Billing", "permissions": {"invoices.view": {"canView": True}}}), 201)
    _data(
        client.post(
            "/api/users",
            json={"email": "bill@example.com", "full_name": "Bill", "password": "Secret123!", "role": "CUSTOM", "custom_role_id": role["id"]},
        ),
        201,
    )
    resp = client.delete(f"/api/roles/{role['id']}")
    assert resp.status_code == 400
    assert "assigned to users" in resp.get_json()["error"]


def test_empty_permission_map_clears_role_grants(client, login_as):
    login_as()
    role = _data(client.post("/api/roles", json={"name": "Billing", "permissions": {"invoices.view": {"canView": True}}}), 201)
    assert role["permissions"]["invoices.view"]["canView"] is True
    _data(client.put(f"/api/roles/{role['id']}/dashboard-visibility", json={"sections": {"clients": True}}))

    cleared = _data(client.put(f"/api/roles/{role['id']}", json={"permissions": {}}))
    assert list(cleared["permissions"]) == ["dashboard.clients"]
    assert list(_data(client.get(f"/api/roles/{role['id']}"))["permissions"]) == ["dashboard.clients"]

    untouched = _data(client.put(f"/api/roles/{role['id']}", json={"description": "Front desk"}))
    assert list(untouched["permissions"]) == ["dashboard.clients"]


def test_client_import_reports_created_skipped_and_errors(client, directory):
    sheet = b"Name,Insurance\nKid B,Aetna\n,\nKid C,Nope\n"
    result = _data(
        client.post("/api/clients/import", data={"file": (io.BytesIO(sheet), "clients.csv")}, content_type="multipart/form-data")
    )
    assert result == {"created": 1, "skipped": 1, "errors": ['Row 4: Insurance "Nope" not found']}
    names = sorted(c["name"] for c in _data(client.get("/api/clients")))
    assert names == ["Kid A", "Kid B"]

    legacy = client.post("/api/clients/import", data={"file": (io.BytesIO(b"\xd0\xcf\x11\xe0"), "clients.xls")}, content_type="multipart/form-data")
    assert legacy.status_code == 400
    assert "Unsupported file type" in legacy.get_json()["error"]


def test_only_draft_or_rejected_timesheets_can_be_edited(client, directory):
    ts = _data(client.post("/api/timesheets", json=_timesheet_payload(directory)), 201)
    _data(client.post(f"/api/timesheets/{ts['id']}/reject", json={"reason": "Fix times"}))

    edited = _data(client.put(f"/api/timesheets/{ts['id']}", json=_timesheet_payload(directory, start="13:00", end="14:00")))
    assert edited["status"] == "DRAFT"
    assert edited["rejection_reason"] is None
    assert edited["entries"][0]["start_time"] == "13:00"

    _data(client.post(f"/api/timesheets/{ts['id']}/approve"))
    resp = client.put(f"/api/timesheets/{ts['id']}", json=_timesheet_payload(directory))
    assert resp.status_code == 400
    assert "DRAFT or REJECTED" in resp.get_json()["error"]


def test_batch_archive_skips_unapproved(client, directory):
    approved = _approved(client, directory)
    draft = _data(client.post("/api/timesheets", json=_timesheet_payload(directory, day=TUESDAY)), 201)

    result = _data(client.post("/api/timesheets/batch/archive", json={"timesheet_ids": [approved["id"], draft["id"], 999]}))
    assert result["archived"] == [approved["id"]]
    assert result["skipped"] == [{"id": draft["id"], "reason": "status DRAFT"}, {"id": 999, "reason": "not found"}]
    assert _data(client.get(f"/api/timesheets/{approved['id']}"))["status"] == "ARCHIVED"


def test_invoice_delete_releases_timesheet(client, directory):
    ts = _approved(client, directory)
    _data(client.post("/api/invoices/generate", json={"timesheet_ids": [ts["id"]]}))
    [invoice] = _data(client.get("/api/invoices"))["items"]

    blocked = client.delete(f"/api/timesheets/{ts['id']}")
    assert blocked.status_code == 400
    assert "invoiced entries" in blocked.get_json()["error"]

    _data(client.delete(f"/api/invoices/{invoice['id']}"))
    released = _data(client.get(f"/api/timesheets/{ts['id']}"))
    assert released["invoice_id"] is None
    assert released["entries"][0]["invoiced"] is False

    again = _data(client.post("/api/invoices/generate", json={"timesheet_ids": [ts["id"]]}))
    assert len(again["created"]) == 1


def test_bcba_timesheet_defaults_and_skips_overlap_check(client, directory):
    payload = {
        "is_bcba": True,
        "client_id": directory["client"]["id"],
        "bcba_id": directory["bcba"]["id"],
        "start_date": MONDAY,
        "end_date": MONDAY,
        "entries": [{"date": MONDAY, "start_time": "09:00", "end_time": "10:00"}],
    }
    first = _data(client.post("/api/timesheets", json=payload), 201)
    assert first["timesheet_number"] == "BT-1001"
    assert first["insurance_id"] == directory["insurance"]["id"]
    assert first["provider_id"] == directory["provider"]["id"]

    second = _data(client.post("/api/timesheets", json=payload), 201)
    assert second["timesheet_number"] == "BT-1002"


def test_approve_conflicts_with_live_queue_item(client, directory):
    from smartsteps.database.extensions import db
    from smartsteps.email_queue.model import EmailQueueItem

    ts = _data(client.post("/api/timesheets", json=_timesheet_payload(directory)), 201)
    db.session.add(EmailQueueItem(entity_type="REGULAR", entity_id=ts["id"], context="MAIN", status="QUEUED", attempts=0))
    db.session.commit()

    resp = client.post(f"/api/timesheets/{ts['id']}/approve")
    assert resp.status_code == 409
    assert _data(client.get(f"/api/timesheets/{ts['id']}"))["status"] == "DRAFT"


def test_search_by_timesheet_and_invoice_number(client, directory):
    ts = _approved(client, directory)
    unbilled = _data(client.get("/api/search?q=t-1001"))
    assert unbilled["timesheet"]["id"] == ts["id"]
    assert unbilled["invoice"] is None
    assert unbilled["message"] == "Timesheet is unbilled"

    _data(client.post("/api/invoices/generate", json={"timesheet_ids": [ts["id"]]}))
    [invoice] = _data(client.get("/api/invoices"))["items"]
    billed = _data(client.get("/api/search?q=T-1001"))
    assert billed["message"] == "Timesheet is invoiced"
    assert billed["invoice"]["invoice_number"] == invoice["invoice_number"]

    by_invoice = _data(client.get(f"/api/search?q={invoice['invoice_number']}"))
    assert [t["id"] for t in by_invoice["timesheets"]] == [ts["id"]]

    assert _data(client.get("/api/search?q=BT-1001"))["timesheet"] is None
    assert client.get("/api/search?q=").get_json()["error"] == "Search query is required"
    bad = client.get("/api/search?q=hello")
    assert bad.status_code == 400
    assert bad.get_json()["error"].startswith("Invalid search format")


def test_detailed_report_rows_summary_and_groups(client, directory):
    _data(client.post("/api/timesheets", json=_timesheet_payload(directory)), 201)
    supervision = [{"date": TUESDAY, "start_time": "13:00", "end_time": "14:30", "kind": "SV"}]
    _data(client.post("/api/timesheets", json=_timesheet_payload(directory, day=TUESDAY, entries=supervision)), 201)

    report = _data(client.get(f"/api/reports/detailed?start_date={MONDAY}&end_date={TUESDAY}&grouping=week"))
    assert [(r["date"], r["in_time"], r["type"]) for r in report["rows"]] == [(MONDAY, "9:00 AM", "DR"), (TUESDAY, "1:00 PM", "SV")]
    assert report["summary"]["total_hours"] == 2.5
    assert report["summary"]["total_hours_sv"] == 1.5
    assert report["summary"]["session_count"] == 2
    assert report["summary"]["timesheet_count"] == 2
    [week] = report["groups"]
    assert week["key"] == MONDAY
    assert week["label"] == "Week of Jan 06, 2025"
    assert len(week["rows"]) == 2

    sv_only = _data(client.get("/api/reports/detailed?service_type=SV"))
    assert [r["type"] for r in sv_only["rows"]] == ["SV"]
    monday_only = _data(client.get(f"/api/reports/detailed?end_date={MONDAY}"))
    assert len(monday_only["rows"]) == 1

    assert client.get(f"/api/reports/detailed?start_date={TUESDAY}&end_date={MONDAY}").status_code == 400
    assert client.get("/api/reports/detailed?grouping=colour").status_code == 400


def test_analytics_covers_timesheets_and_billing(client, directory):
    ts = _approved(client, directory)
    _data(client.post("/api/invoices/generate", json={"timesheet_ids": [ts["id"]]}))
    [invoice] = _data(client.get("/api/invoices"))["items"]
    _data(client.post(f"/api/invoices/{invoice['id']}/payments", json={"amount": "20", "payment_date": "2025-02-01"}), 201)

    stats = _data(client.get("/api/analytics"))
    assert stats["summary"]["total_timesheets"] == 1
    assert stats["summary"]["approved_timesheets"] == 1
    assert stats["summary"]["total_billed"] == 50.0
    assert stats["summary"]["total_outstanding"] == 30.0
    assert len(stats["revenue_trends"]) == 13
    assert stats["revenue_trends"][-1]["billed"] == 50.0
    assert stats["revenue_trends"][-1]["paid"] == 20.0
    assert stats["timesheet_trends"][-1]["approved"] == 1
    assert stats["provider_productivity"] == [{"name": "Pat Provider", "units": 4.0, "hours": 1.0, "timesheet_count": 1}]
    assert stats["insurance_comparisons"][0]["name"] == "Aetna"
    assert stats["financial_waterfall"][-1] == {"label": "Outstanding", "value": 30.0}


def test_analytics_is_admin_only(client, login_as):
    login_as("amy@example.com", role="USER")
    assert client.get("/api/analytics").status_code == 403
    assert client.get("/api/admin/activity/unread-count").status_code == 403


def test_activity_unread_count_and_mark_seen(client, directory):
    # signing in and the directory fixture are already audited
    assert _data(client.get("/api/admin/activity/unread-count"))["count"] > 0

    _data(client.post("/api/admin/activity/mark-seen"))
    assert _data(client.get("/api/admin/activity/unread-count"))["count"] == 0

    _data(client.post("/api/timesheets", json=_timesheet_payload(directory)), 201)
    assert _data(client.get("/api/admin/activity/unread-count"))["count"] == 1


def test_resend_invite(client, login_as, make_user):
    login_as()
    amy = make_user("amy@example.com")

    result = _data(client.post(f"/api/users/{amy.id}/resend-invite"))
    assert result["email_sent"] is True
    assert _data(client.get(f"/api/users/{amy.id}"))["must_change_password"] is True
    assert client.post("/api/users/999/resend-invite").status_code == 404
