from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from services.site_audit_service.audit_service import SiteAuditService
from services.site_audit_service.errors import TransportError
from services.site_audit_service.main import app, get_audit_service
from services.site_audit_service.report_generator import ReportGenerator
from services.site_audit_service.schemas.task import TaskStatus
from services.site_audit_service.task_manager import AuditTaskManager, InMemoryTaskStore
from tests.unit.vendor_stubs import ABOUT, FIXED_NOW, HOME, StubAuditClient, envelope, make_task


def build_service(payloads=None, failures=None, tasks=()):
    client = StubAuditClient(payloads, failures)
    store = InMemoryTaskStore()
    for task in tasks:
        store.save(task)
    manager = AuditTaskManager(client, store=store, clock=lambda: FIXED_NOW)
    generator = ReportGenerator(client, manager, clock=lambda: FIXED_NOW)
    return SiteAuditService(client, manager, generator)


@pytest.fixture
def api():
    def _client(service):
        app.dependency_overrides[get_audit_service] = lambda: service
        return TestClient(app)

    yield _client
    app.dependency_overrides.clear()


def test_create_audit_returns_pending_task(api):
    service = build_service({"post_onpage_task": envelope(None, task_status=20100, task_id="vendor-9")})

    response = api(service).post("/api/v1/audits", json={"target": "example.com", "owner_id": 3})

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "pending"
    assert body["vendor_task_id"] == "vendor-9"


def test_rejected_task_maps_to_422(api):
    service = build_service({"post_onpage_task": envelope(None, task_status=40501, message="Invalid Field.")})

    response = api(service).post("/api/v1/audits", json={"target": "bad", "owner_id": 3})

    assert response.status_code == 422
    assert response.json()["error"]["message"] == "Failed to create audit task: Invalid Field."


def test_unknown_task_maps_to_404(api):
    response = api(build_service()).get("/api/v1/audits/missing/status")

    assert response.status_code == 404
    assert response.json()["error"]["type"] == "TaskNotFoundError"


def test_report_on_running_task_maps_to_409(api):
    service = build_service(tasks=[make_task(status=TaskStatus.IN_PROGRESS, progress=30)])

    response = api(service).post("/api/v1/audits/task-1/report")

    assert response.status_code == 409


def test_failed_fetch_maps_to_502_without_vendor_detail(api, vendor_payloads):
    service = build_service(vendor_payloads, {"security": TransportError("upstream 10.0.0.1 reset")}, [make_task()])

    response = api(service).post("/api/v1/audits/task-1/report")

    assert response.status_code == 502
    message = response.json()["error"]["message"]
    assert "security" in message
    assert "10.0.0.1" not in message


def test_report_and_compare(api, vendor_payloads):
    client = api(build_service(vendor_payloads, tasks=[make_task()]))

    report = client.post("/api/v1/audits/task-1/report").json()
    comparison = client.post("/api/v1/reports/compare", json={"current": report, "prior": report})

    assert report["summary"]["total_issues"] == 6
    assert comparison.status_code == 200
    assert comparison.json()["new_issues"] == []
    assert comparison.json()["summary"]["total_issues"]["change"] == 0


def test_status_and_cancel(api):
    service = build_service(
        {"summary": [{"crawl_progress": 45}], "force_stop": envelope([{"id": "vendor-task-1"}])},
        tasks=[make_task(status=TaskStatus.PENDING, progress=0)],
    )
    client = api(service)

    status = client.get("/api/v1/audits/task-1/status").json()
    cancelled = client.post("/api/v1/audits/task-1/cancel").json()

    assert status["status"] == "in_progress"
    assert status["progress"] == 45
    assert cancelled == {"task_id": "task-1", "cancelled": True}
    assert client.get("/api/v1/audits/task-1").json()["status"] == "failed"


def test_list_and_delete(api):
    client = api(build_service(tasks=[make_task()]))

    assert [task["id"] for task in client.get("/api/v1/audits", params={"owner_id": 7}).json()] == ["task-1"]
    assert client.delete("/api/v1/audits/task-1").status_code == 204
    assert client.delete("/api/v1/audits/task-1").status_code == 404


def test_health(api):
    response = api(build_service()).get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_cleanup_removes_expired_tasks(api):
    old = make_task(task_id="old", created_at=FIXED_NOW - timedelta(days=8))
    client = api(build_service(tasks=[old, make_task()]))

    response = client.post("/api/v1/audits/cleanup")

    assert response.json() == {"removed": 1}
    assert client.get("/api/v1/audits/old").status_code == 404
    assert client.get("/api/v1/audits/task-1").status_code == 200


def test_duplicate_content_and_raw_html_use_vendor_task_id(api):
    service = build_service(
        {
            "duplicate_content": [{"items": [{"url": ABOUT, "similarity": 9}]}],
            "raw_html": [{"items": {"html": "<html></html>"}}],
        },
        tasks=[make_task()],
    )
    client = api(service)

    duplicates = client.get("/api/v1/audits/task-1/duplicate-content", params={"url": HOME, "limit": 5}).json()
    raw_html = client.get("/api/v1/audits/task-1/raw-html", params={"url": HOME}).json()

    assert duplicates == [{"url": ABOUT, "similarity": 9}]
    assert raw_html == {"items": {"html": "<html></html>"}}
    assert service.client.calls[0] == ("duplicate_content", ("vendor-task-1", HOME), {"limit": 5, "offset": 0})
    assert service.client.calls[1] == ("raw_html", ("vendor-task-1", HOME), {})


def test_vendor_lookups_on_unknown_task_map_to_404(api):
    service = build_service()

    response = api(service).get("/api/v1/audits/missing/raw-html", params={"url": HOME})

    assert response.status_code == 404
    assert service.client.calls == []


def test_ready_vendor_tasks_and_instant_page(api):
    service = build_service({
        "tasks_ready": [{"id": "vendor-1", "target": "example.com"}],
        "instant_pages": [{"items": [{"url": HOME, "onpage_score": 91}]}],
    })
    client = api(service)

    ready = client.get("/api/v1/vendor/tasks-ready").json()
    page = client.post("/api/v1/pages/instant", json={"url": HOME, "options": {"enable_javascript": True}}).json()

    assert ready == [{"id": "vendor-1", "target": "example.com"}]
    assert page == {"url": HOME, "onpage_score": 91}
    assert service.client.calls[-1] == ("instant_pages", (HOME, {"enable_javascript": True}), {})


def test_instant_page_without_data_returns_empty_object(api):
    response = api(build_service()).post("/api/v1/pages/instant", json={"url": HOME})

    assert response.status_code == 200
    assert response.json() == {}
