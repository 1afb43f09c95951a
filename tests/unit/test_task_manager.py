import asyncio
from datetime import timedelta

import pytest

from services.site_audit_service.errors import (
    InvalidTaskStateError, TaskNotFoundError, TaskRejectedError, TransportError, VendorError,
)
from services.site_audit_service.schemas.task import AuditOptions, TaskStatus
from services.site_audit_service.task_manager import (
    AuditTaskManager, InMemoryTaskStore, read_crawl_progress, status_for_progress,
)
from tests.unit.vendor_stubs import FIXED_NOW, StubAuditClient, envelope, make_task


def make_manager(client, store=None, clock=lambda: FIXED_NOW):
    return AuditTaskManager(client, store=store, default_max_crawl_pages=100, clock=clock)


@pytest.mark.parametrize("progress,expected", [
    (0, TaskStatus.PENDING),
    (50, TaskStatus.IN_PROGRESS),
    (100, TaskStatus.COMPLETED),
])
def test_status_for_progress(progress, expected):
    assert status_for_progress(progress) == expected


@pytest.mark.parametrize("progress", [-1, 101, 50.5, None])
def test_status_for_progress_rejects_out_of_range(progress):
    with pytest.raises(ValueError):
        status_for_progress(progress)


def test_read_crawl_progress_variants():
    assert read_crawl_progress({"crawl_progress": "finished"}) == 100
    assert read_crawl_progress({"crawl_progress": 250}) == 100
    assert read_crawl_progress({}) == 0
    assert read_crawl_progress({
        "crawl_progress": "in_progress",
        "crawl_status": {"pages_crawled": 25, "max_crawl_pages": 100},
    }) == 25
    assert read_crawl_progress({
        "crawl_progress": "in_progress",
        "crawl_status": {"pages_crawled": 0, "max_crawl_pages": 100},
    }) == 1


@pytest.mark.asyncio
async def test_create_task_submits_and_stores_pending():
    client = StubAuditClient({"post_onpage_task": envelope(None, task_status=20100, task_id="vendor-42")})
    manager = make_manager(client)

    task = await manager.create_task("example.com", 7, AuditOptions(max_crawl_pages=20, store_raw_html=True))

    assert task.status == TaskStatus.PENDING
    assert task.vendor_task_id == "vendor-42"
    assert task.max_crawl_pages == 20
    assert task.expires_at == FIXED_NOW + timedelta(days=7)
    assert manager.get_task(task.id) == task

    _, (payload,), _ = client.calls[0]
    assert payload["target"] == "example.com"
    assert payload["max_crawl_pages"] == 20
    assert payload["store_raw_html"] is True
    assert payload["enable_javascript"] is True


@pytest.mark.asyncio
async def test_create_task_rejected_by_vendor_stores_nothing():
    client = StubAuditClient({
        "post_onpage_task": envelope(None, task_status=40501, message="Invalid Field: 'target'."),
    })
    store = InMemoryTaskStore()
    manager = make_manager(client, store=store)

    with pytest.raises(TaskRejectedError) as exc_info:
        await manager.create_task("not a domain", 7)

    assert "Invalid Field: 'target'." in str(exc_info.value)
    assert len(store) == 0


@pytest.mark.asyncio
async def test_create_task_envelope_error_becomes_rejection():
    client = StubAuditClient(failures={"post_onpage_task": VendorError("Payment Required.", 40200)})
    manager = make_manager(client)

    with pytest.raises(TaskRejectedError) as exc_info:
        await manager.create_task("example.com", 7)

    assert exc_info.value.status_code == 40200
    assert isinstance(exc_info.value.__cause__, VendorError)


@pytest.mark.asyncio
@pytest.mark.parametrize("progress,expected", [
    (0, TaskStatus.PENDING),
    (50, TaskStatus.IN_PROGRESS),
    (100, TaskStatus.COMPLETED),
])
async def test_poll_maps_progress_to_status(progress, expected):
    store = InMemoryTaskStore()
    store.save(make_task(status=TaskStatus.PENDING, progress=0))
    client = StubAuditClient({"summary": [{"crawl_progress": progress, "onpage_score": 90}]})
    manager = make_manager(client, store=store)

    result = await manager.poll_status("task-1")

    assert result.status == expected
    assert result.progress == progress
    assert result.summary.on_page_score == 90
    assert manager.get_task("task-1").status == expected
    assert client.calls[0][2] == {"fresh": True}


@pytest.mark.asyncio
async def test_poll_failure_reports_failed_without_touching_record():
    store = InMemoryTaskStore()
    store.save(make_task(status=TaskStatus.IN_PROGRESS, progress=40))
    client = StubAuditClient(failures={"summary": TransportError("connection reset")})
    manager = make_manager(client, store=store)

    result = await manager.poll_status("task-1")

    assert result.status == TaskStatus.FAILED
    assert "connection reset" in result.error
    assert manager.get_task("task-1").status == TaskStatus.IN_PROGRESS
    assert manager.get_task("task-1").progress == 40


@pytest.mark.asyncio
async def test_poll_never_moves_task_backwards():
    store = InMemoryTaskStore()
    store.save(make_task(status=TaskStatus.IN_PROGRESS, progress=60))
    manager = make_manager(StubAuditClient({"summary": [{"crawl_progress": 30}]}), store=store)

    result = await manager.poll_status("task-1")

    assert result.progress == 60
    assert result.status == TaskStatus.IN_PROGRESS


@pytest.mark.asyncio
async def test_poll_terminal_task_does_not_call_vendor():
    store = InMemoryTaskStore()
    store.save(make_task())
    client = StubAuditClient()
    manager = make_manager(client, store=store)

    result = await manager.poll_status("task-1")

    assert result.status == TaskStatus.COMPLETED
    assert client.calls == []


@pytest.mark.asyncio
async def test_poll_unknown_task():
    manager = make_manager(StubAuditClient())

    with pytest.raises(TaskNotFoundError):
        await manager.poll_status("missing")


@pytest.mark.asyncio
async def test_cancel_acknowledged_marks_task_failed():
    store = InMemoryTaskStore()
    store.save(make_task(status=TaskStatus.IN_PROGRESS, progress=20))
    manager = make_manager(StubAuditClient({"force_stop": envelope([{"id": "vendor-task-1"}])}), store=store)

    assert await manager.cancel_task("task-1") is True

    task = manager.get_task("task-1")
    assert task.status == TaskStatus.FAILED
    assert task.error == "Task cancelled by user"


@pytest.mark.asyncio
async def test_cancel_refused_leaves_task_running():
    store = InMemoryTaskStore()
    store.save(make_task(status=TaskStatus.IN_PROGRESS, progress=20))
    manager = make_manager(StubAuditClient({"force_stop": envelope(None, task_status=40400)}), store=store)

    assert await manager.cancel_task("task-1") is False
    assert manager.get_task("task-1").status == TaskStatus.IN_PROGRESS


@pytest.mark.asyncio
async def test_cancel_terminal_task_is_invalid():
    store = InMemoryTaskStore()
    store.save(make_task())
    manager = make_manager(StubAuditClient(), store=store)

    with pytest.raises(InvalidTaskStateError):
        await manager.cancel_task("task-1")


@pytest.mark.asyncio
async def test_refresh_active_tasks_polls_only_running_tasks():
    store = InMemoryTaskStore()
    store.save(make_task(task_id="done"))
    store.save(make_task(status=TaskStatus.PENDING, progress=0, task_id="running"))
    client = StubAuditClient({"summary": [{"crawl_progress": 10}]})
    manager = make_manager(client, store=store)

    statuses = await manager.refresh_active_tasks()

    assert [status.task_id for status in statuses] == ["running"]
    assert len(client.calls) == 1


def test_list_delete_and_cleanup():
    store = InMemoryTaskStore()
    store.save(make_task(task_id="old", created_at=FIXED_NOW - timedelta(days=10)))
    store.save(make_task(task_id="new", created_at=FIXED_NOW - timedelta(days=1)))
    store.save(make_task(task_id="other", owner_id=99))
    manager = make_manager(StubAuditClient(), store=store)

    assert [task.id for task in manager.list_user_tasks(7)] == ["new", "old"]
    assert manager.cleanup_expired() == 1
    assert manager.delete_task("new") is True
    assert manager.delete_task("new") is False
    assert [task.id for task in store.all()] == ["other"]


class GatedClient(StubAuditClient):
    """Holds one vendor call open until the test releases it."""

    def __init__(self, gated, payloads=None):
        super().__init__(payloads)
        self.gated = gated
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def _serve(self, name, *args, **kwargs):
        if name == self.gated:
            self.entered.set()
            await self.release.wait()
        return await super()._serve(name, *args, **kwargs)


@pytest.mark.asyncio
async def test_cancel_during_poll_stays_cancelled():
    store = InMemoryTaskStore()
    store.save(make_task(status=TaskStatus.IN_PROGRESS, progress=20))
    client = GatedClient("summary", {
        "summary": [{"crawl_progress": 40}],
        "force_stop": envelope([{"id": "vendor-task-1"}]),
    })
    manager = make_manager(client, store=store)

    poll = asyncio.ensure_future(manager.poll_status("task-1"))
    await client.entered.wait()
    assert await manager.cancel_task("task-1") is True
    client.release.set()
    result = await poll

    task = manager.get_task("task-1")
    assert task.status == TaskStatus.FAILED
    assert task.error == "Task cancelled by user"
    assert task.progress == 20
    assert result.status == TaskStatus.FAILED
    assert result.error == "Task cancelled by user"


@pytest.mark.asyncio
async def test_delete_during_poll_is_not_reinserted():
    store = InMemoryTaskStore()
    store.save(make_task(status=TaskStatus.IN_PROGRESS, progress=20))
    client = GatedClient("summary", {"summary": [{"crawl_progress": 40}]})
    manager = make_manager(client, store=store)

    poll = asyncio.ensure_future(manager.poll_status("task-1"))
    await client.entered.wait()
    assert manager.delete_task("task-1") is True
    client.release.set()

    with pytest.raises(TaskNotFoundError):
        await poll
    assert len(store) == 0


@pytest.mark.asyncio
async def test_completion_during_cancel_is_kept():
    store = InMemoryTaskStore()
    store.save(make_task(status=TaskStatus.IN_PROGRESS, progress=90))
    client = GatedClient("force_stop", {
        "summary": [{"crawl_progress": 100}],
        "force_stop": envelope([{"id": "vendor-task-1"}]),
    })
    manager = make_manager(client, store=store)

    cancel = asyncio.ensure_future(manager.cancel_task("task-1"))
    await client.entered.wait()
    assert (await manager.poll_status("task-1")).status == TaskStatus.COMPLETED
    client.release.set()

    with pytest.raises(InvalidTaskStateError):
        await cancel
    task = manager.get_task("task-1")
    assert task.status == TaskStatus.COMPLETED
    assert task.error is None


@pytest.mark.asyncio
async def test_refresh_skips_task_deleted_mid_poll():
    store = InMemoryTaskStore()
    store.save(make_task(status=TaskStatus.IN_PROGRESS, progress=20))
    client = GatedClient("summary", {"summary": [{"crawl_progress": 40}]})
    manager = make_manager(client, store=store)

    refresh = asyncio.ensure_future(manager.refresh_active_tasks())
    await client.entered.wait()
    manager.delete_task("task-1")
    client.release.set()

    assert await refresh == []
    assert len(store) == 0
