# tests/test_api.py
import io
from datetime import date

import pytest

from app import app, db
from database import Shift, User


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def json_ok(resp):
    return resp.status_code == 200 and resp.is_json and resp.json.get("success") is True


def user_id(username):
    return User.query.filter_by(username=username).one().id


def import_rows(client, rows, existing=None):
    payload = {"shifts": rows}
    if existing is not None:
        payload["existingShifts"] = existing
    return client.post("/api/schedule/import", json=payload)


# ---------------------------------------------------------------------------
# Read endpoints
# ---------------------------------------------------------------------------
def test_users_listing(client):
    resp = client.get("/api/users")
    assert json_ok(resp)
    assert resp.json["count"] == 5
    assert {"asmith", "bjones"} <= {u["username"] for u in resp.json["users"]}


def test_shift_filters_reject_bad_dates(client):
    resp = client.get("/api/shifts?start_date=16/06/2099")
    assert resp.status_code == 400
    assert resp.json["success"] is False


def test_unknown_route_returns_json_404(client):
    resp = client.get("/api/nope")
    assert resp.status_code == 404
    assert resp.json == {"success": False, "error": "Resource not found"}


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------
def test_import_then_reimport_is_idempotent(client, caplog):
    rows = [
        {"date": "2099-06-16", "primary": "bjones", "backup": "cnguyen"},
        {"date": "2099-06-17", "primary": "cnguyen", "backup": "dpatel"},
    ]
    first = import_rows(client, rows)
    assert json_ok(first), first.json
    assert first.json["created_count"] == 4

    listed = client.get("/api/shifts?start_date=2099-06-16&end_date=2099-06-17")
    assert listed.json["count"] == 4

    second = import_rows(client, rows, existing=listed.json["shifts"])
    assert json_ok(second)
    assert second.json["created_count"] == 0
    assert second.json["updated_count"] == 0
    assert len(second.json["skipped"]) == 4
    assert "Import finished" in caplog.text


def test_import_reassigns_primary(client):
    import_rows(client, [{"date": "2099-06-16", "primary": "bjones"}])

    resp = import_rows(client, [{"date": "2099-06-16", "primary": "dpatel"}])

    assert resp.json["updated_count"] == 1
    shifts = client.get("/api/shifts?start_date=2099-06-16&end_date=2099-06-16").json["shifts"]
    assert len(shifts) == 1
    assert shifts[0]["assignee_id"] == user_id("dpatel")


def test_import_reports_row_errors_without_failing(client):
    resp = import_rows(client, [
        {"date": "16-Foo-99", "primary": "bjones"},
        {"date": "2099-06-16", "primary": "nobody"},
    ])
    assert json_ok(resp)
    assert resp.json["errors"] == ["invalid month abbreviation: Foo", "User not found: nobody"]


def test_import_requires_a_list(client):
    resp = client.post("/api/schedule/import", json={"shifts": {"date": "2099-06-16"}})
    assert resp.status_code == 400
    assert resp.json["error"] == "Invalid data format. Expected array of shifts."


def test_import_notifies_assignees(client):
    import_rows(client, [{"date": "2099-06-16", "primary": "bjones"}, {"date": "2099-06-17", "primary": "bjones"}])

    resp = client.get(f"/api/notifications?assignee_id={user_id('bjones')}")
    assert json_ok(resp)
    assert resp.json["count"] == 1
    assert resp.json["notifications"][0]["message"] == "2 new shifts have been assigned to you via schedule import"

    assert client.get("/api/notifications").status_code == 400


def test_import_csv_upload(client):
    data = {"file": (io.BytesIO(b"Date,Primary,Backup\n2099-06-16,bjones,cnguyen\n"), "june.csv")}

    resp = client.post("/api/schedule/import-file", data=data, content_type="multipart/form-data")

    assert json_ok(resp), resp.json
    assert resp.json["created_count"] == 2


def test_import_upload_requires_file(client):
    resp = client.post("/api/schedule/import-file", data={}, content_type="multipart/form-data")
    assert resp.status_code == 400


# ---------------------------------------------------------------------------
# Repeat & fill
# ---------------------------------------------------------------------------
def test_repeat_shifts_with_camel_case_payload(client):
    import_rows(client, [
        {"date": "2099-06-01", "primary": "bjones"},
        {"date": "2099-06-02", "primary": "cnguyen"},
    ])

    resp = client.post("/api/schedule/repeat-shifts", json={
        "sourceStartDate": "2099-06-01",
        "sourceEndDate": "2099-06-02",
        "targetStartDate": "2099-06-10",
        "repeatDuration": 1,
        "repeatUnit": "weeks",
    })

    assert json_ok(resp), resp.json
    assert resp.json["created_shifts"] == 7
    assert resp.json["target_date_range"] == {"start": "2099-06-10", "end": "2099-06-16"}
    shifts = client.get("/api/shifts?start_date=2099-06-10&end_date=2099-06-16").json["shifts"]
    assert [s["assignee_id"] for s in shifts[:3]] == [user_id("bjones"), user_id("cnguyen"), user_id("bjones")]


@pytest.mark.parametrize("payload, message", [
    ({"source_start_date": "2099-06-20", "source_end_date": "2099-06-10",
      "target_start_date": "2099-07-01", "target_end_date": "2099-07-10"},
     "Source start date must be before source end date"),
    ({"source_start_date": "2099-06-01", "source_end_date": "2099-06-02",
      "target_start_date": "2099-07-01", "repeat_duration": 2, "repeat_unit": "fortnights"},
     "Invalid repeat unit. Must be days, weeks, or months"),
    ({"source_start_date": "2099-06-01", "source_end_date": "2099-06-02",
      "targetStartDate": "2099-07-01", "repeatDuration": 10 ** 12, "repeatUnit": "days"},
     "Repeat duration is out of range"),
    ({"source_start_date": "2099-05-01", "source_end_date": "2099-05-02",
      "target_start_date": "2099-07-01", "target_end_date": "2099-07-10"},
     "No shifts found in the source date range"),
])
def test_repeat_shifts_validation(client, payload, message):
    resp = client.post("/api/schedule/repeat-shifts", json=payload)
    assert resp.status_code == 400
    assert resp.json["error"] == message
    assert Shift.query.count() == 0


def test_fill_schedule(client):
    resp = client.post("/api/schedule/fill", json={
        "startDate": "2099-07-01",
        "endDate": "2099-07-03",
        "primaryUserId": user_id("bjones"),
        "backupUserId": user_id("cnguyen"),
    })
    assert json_ok(resp), resp.json
    assert resp.json["created_shifts"] == 6


def test_fill_rejects_unknown_user(client):
    resp = client.post("/api/schedule/fill", json={
        "start_date": "2099-07-01",
        "end_date": "2099-07-03",
        "primary_user_id": 9999,
    })
    assert resp.status_code == 400
    assert resp.json["error"] == "User 9999 not found"


# ---------------------------------------------------------------------------
# Auto-completion
# ---------------------------------------------------------------------------
def test_auto_complete_status_and_sweep(client):
    bob = user_id("bjones")
    db.session.add(Shift(date=date(2000, 1, 1), assignee_id=bob, role="PRIMARY", status="SCHEDULED"))  # Saturday
    db.session.add(Shift(date=date(2099, 1, 1), assignee_id=bob, role="PRIMARY", status="SCHEDULED"))
    db.session.commit()

    status = client.get("/api/schedule/auto-complete")
    assert status.status_code == 200
    assert status.json["pending_completion"] == 1

    resp = client.post("/api/schedule/auto-complete")
    assert json_ok(resp)
    assert resp.json["updated_shifts"] == 1
    assert resp.json["comp_off_updates"] == [{"assignee_id": bob, "username": "bjones", "new_balance": 1}]

    assert client.get("/api/schedule/auto-complete").json["pending_completion"] == 0


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------
def test_cli_commands(app_ctx, tmp_path):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["init-db", "--seed"])
    assert "0 sample users added" in result.output

    schedule = tmp_path / "june.csv"
    schedule.write_text("Date,Primary\n2099-06-16,bjones\n")
    result = runner.invoke(args=["import-schedule", str(schedule)])
    assert result.exit_code == 0, result.output
    assert "Created 1 shifts" in result.output

    result = runner.invoke(args=["sweep"])
    assert result.exit_code == 0
    assert "Updated 0 shifts" in result.output
