from datetime import timedelta

from common.helpers import now_utc
from main import _cleanup_old_request_logs
from modules.admin.models import RequestLog


def test_requests_are_logged_with_masked_body(client, admin_headers):
    client.post("/auth/login", json={"email": "admin@example.com", "password": "hunter2-secret"})

    body = client.get("/admin/logs?path=/auth/login", headers=admin_headers).json()
    assert body["pagination"]["total"] >= 2
    previews = [log["bodyPreview"] or "" for log in body["items"]]
    assert all("hunter2" not in p and "password123" not in p for p in previews)
    assert any("***" in p for p in previews)

    failed = client.get("/admin/logs?statusGroup=4xx", headers=admin_headers).json()["items"]
    assert [log["statusCode"] for log in failed] == [401]


def test_logs_identify_caller(client, user_headers, admin_headers):
    client.get("/cart", headers=user_headers)
    logs = client.get("/admin/logs?path=/cart&userType=user", headers=admin_headers).json()["items"]
    assert len(logs) == 1
    assert logs[0]["userId"] is not None
    assert logs[0]["method"] == "GET"


def test_health_is_not_logged(client, admin_headers):
    client.get("/health")
    assert client.get("/admin/logs?path=/health", headers=admin_headers).json()["items"] == []


def test_old_request_logs_are_purged(client, database, session):
    session.add(RequestLog(method="GET", path="/old", status_code=200,
                           created_at=now_utc() - timedelta(days=90)))
    session.add(RequestLog(method="GET", path="/new", status_code=200, created_at=now_utc()))
    session.commit()

    _cleanup_old_request_logs(database)
    assert [log.path for log in session.query(RequestLog).filter(RequestLog.path.in_(["/old", "/new"]))] == ["/new"]
