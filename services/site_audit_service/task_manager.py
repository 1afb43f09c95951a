import asyncio
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from prometheus_client import Counter

from config.logging_config import AuditLogger, get_logger
from services.site_audit_service.analyzers.summary import build_status_summary
from services.site_audit_service.analyzers.vendor_fields import as_dict, as_int, as_number
from services.site_audit_service.config import Settings, settings as default_settings
from services.site_audit_service.errors import (
    InvalidTaskStateError, TaskNotFoundError, TaskRejectedError, TransportError, VendorError,
)
from services.site_audit_service.integrations.dataforseo_client import (
    DataForSEOClient, first_task, is_success_code, task_result,
)
from services.site_audit_service.schemas.task import AuditOptions, AuditStatus, AuditTask, TaskStatus

logger = get_logger(__name__)
audit_logger = AuditLogger()

CANCELLED_BY_USER = "Task cancelled by user"

audit_tasks_created = Counter(
    'site_audit_tasks_created_total',
    'Audit tasks accepted by the vendor'
)

audit_polls_total = Counter(
    'site_audit_status_polls_total',
    'Status polls by resulting status',
    ['status']
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def status_for_progress(progress: int) -> TaskStatus:
    if not isinstance(progress, int) or isinstance(progress, bool) or not 0 <= progress <= 100:
        raise ValueError(f"crawl progress must be an integer in [0, 100], got {progress!r}")
    if progress == 0:
        return TaskStatus.PENDING
    if progress < 100:
        return TaskStatus.IN_PROGRESS
    return TaskStatus.COMPLETED


def read_crawl_progress(summary_raw: Dict[str, Any]) -> int:
    """Crawl progress in percent, clamped to [0, 100].

    The vendor reports either a number or a "finished"/"in_progress" label; for
    the label form progress is estimated from the crawl counters.
    """
    raw = summary_raw.get("crawl_progress")

    if raw == "finished":
        return 100

    if raw == "in_progress":
        crawl_status = as_dict(summary_raw.get("crawl_status"))
        crawled = as_number(crawl_status.get("pages_crawled"))
        limit = as_number(crawl_status.get("max_crawl_pages"))
        if not limit:
            return 1
        return min(99, max(1, int(crawled / limit * 100)))

    return min(100, max(0, as_int(raw)))


class InMemoryTaskStore:
    """Process-local task records keyed by task id."""

    def __init__(self):
        self._tasks: Dict[str, AuditTask] = {}

    def get(self, task_id: str) -> Optional[AuditTask]:
        return self._tasks.get(task_id)

    def save(self, task: AuditTask) -> AuditTask:
        self._tasks[task.id] = task
        return task

    def delete(self, task_id: str) -> bool:
        return self._tasks.pop(task_id, None) is not None

    def all(self) -> List[AuditTask]:
        return list(self._tasks.values())

    def __len__(self):
        return len(self._tasks)


class AuditTaskManager:

    def __init__(
        self,
        client: DataForSEOClient,
        store: Optional[InMemoryTaskStore] = None,
        default_max_crawl_pages: int = 100,
        task_expiry: timedelta = timedelta(days=7),
        clock: Callable[[], datetime] = utc_now,
    ):
        self.client = client
        self.store = store if store is not None else InMemoryTaskStore()
        self.default_max_crawl_pages = default_max_crawl_pages
        self.task_expiry = task_expiry
        self.clock = clock

    @classmethod
    def from_settings(cls, client: DataForSEOClient, config: Settings = default_settings) -> "AuditTaskManager":
        return cls(
            client,
            default_max_crawl_pages=config.default_max_crawl_pages,
            task_expiry=timedelta(days=config.task_expiry_days),
        )

    async def create_task(self, target: str, owner_id: int, options: Optional[AuditOptions] = None) -> AuditTask:
        """Submit a crawl to the vendor and record it as Pending.

        Raises TaskRejectedError when the vendor refuses the submission; no
        record is stored in that case.
        """
        options = options or AuditOptions()
        max_crawl_pages = options.max_crawl_pages or self.default_max_crawl_pages
        vendor_options = options.model_dump(exclude={"max_crawl_pages"})

        payload = {"target": target, "max_crawl_pages": max_crawl_pages, **vendor_options}

        try:
            response = await self.client.post_onpage_task(payload)
            vendor_task = first_task(response)
        except VendorError as e:
            audit_logger.log_task_rejected(target, e.status_message)
            raise TaskRejectedError(target, e.status_message, e.status_code) from e

        if not is_success_code(vendor_task.get("status_code")):
            reason = vendor_task.get("status_message") or "Unknown error"
            audit_logger.log_task_rejected(target, reason)
            raise TaskRejectedError(target, reason, vendor_task.get("status_code"))

        vendor_task_id = vendor_task.get("id")
        if not vendor_task_id:
            audit_logger.log_task_rejected(target, "response carries no task id")
            raise TaskRejectedError(target, "response carries no task id", vendor_task.get("status_code"))

        now = self.clock()
        task = AuditTask(
            id=str(uuid.uuid4()),
            vendor_task_id=vendor_task_id,
            target=target,
            owner_id=owner_id,
            status=TaskStatus.PENDING,
            progress=0,
            max_crawl_pages=max_crawl_pages,
            options=vendor_options,
            created_at=now,
            updated_at=now,
            expires_at=now + self.task_expiry,
        )
        self.store.save(task)

        audit_tasks_created.inc()
        audit_logger.log_task_created(task.id, vendor_task_id, target, max_crawl_pages)
        return task

    def get_task(self, task_id: str) -> AuditTask:
        task = self.store.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def list_user_tasks(self, owner_id: int) -> List[AuditTask]:
        tasks = [task for task in self.store.all() if task.owner_id == owner_id]
        return sorted(tasks, key=lambda task: task.created_at, reverse=True)

    def delete_task(self, task_id: str) -> bool:
        return self.store.delete(task_id)

    def cleanup_expired(self) -> int:
        now = self.clock()
        expired = [task.id for task in self.store.all() if task.expires_at <= now]
        for task_id in expired:
            self.store.delete(task_id)

        if expired:
            logger.info(f"Removed {len(expired)} expired audit tasks", extra={'removed': len(expired)})
        return len(expired)

    async def poll_status(self, task_id: str) -> AuditStatus:
        """Read the crawl progress from the vendor and advance the stored task.

        A failed read reports the task as Failed for this call only; the stored
        record keeps its last known state so the caller can poll again. The
        record is re-read after the vendor call, so a task cancelled or deleted
        meanwhile is neither revived nor re-inserted.
        """
        task = self.get_task(task_id)

        if task.status.is_terminal:
            return self._stored_status(task)

        try:
            results = task_result(await self.client.get_summary(task.vendor_task_id, fresh=True))
        except (TransportError, VendorError) as e:
            audit_polls_total.labels(status=TaskStatus.FAILED.value).inc()
            audit_logger.log_poll_failed(task.id, e)
            return AuditStatus(task_id=task.id, status=TaskStatus.FAILED, progress=task.progress, error=str(e))

        summary_raw = results[0] if results else {}
        current = self.store.get(task_id)

        if current is None:
            logger.info(f"Audit task {task_id} was removed while polling; result discarded", extra={'task_id': task_id})
            raise TaskNotFoundError(task_id)

        if current.status.is_terminal:
            return self._stored_status(current)

        progress = max(current.progress, read_crawl_progress(summary_raw))
        status = status_for_progress(progress)

        now = self.clock()
        updates = {"status": status, "progress": progress, "updated_at": now, "last_checked_at": now}
        if status == TaskStatus.COMPLETED:
            updates["completed_at"] = now
        self.store.save(current.model_copy(update=updates))

        audit_polls_total.labels(status=status.value).inc()
        audit_logger.log_status_polled(task_id, status.value, progress)
        return AuditStatus(
            task_id=task_id,
            status=status,
            progress=progress,
            summary=build_status_summary(summary_raw, progress),
        )

    @staticmethod
    def _stored_status(task: AuditTask) -> AuditStatus:
        return AuditStatus(task_id=task.id, status=task.status, progress=task.progress, error=task.error)

    async def refresh_active_tasks(self) -> List[AuditStatus]:
        active = [task for task in self.store.all() if not task.status.is_terminal]
        if not active:
            return []
        statuses = await asyncio.gather(
            *(self.poll_status(task.id) for task in active),
            return_exceptions=True,
        )
        refreshed = []
        for status in statuses:
            if isinstance(status, TaskNotFoundError):
                continue
            if isinstance(status, BaseException):
                raise status
            refreshed.append(status)
        return refreshed

    async def cancel_task(self, task_id: str) -> bool:
        """Ask the vendor to stop the crawl. Returns the vendor's acknowledgement.

        Raises InvalidTaskStateError when the task is terminal, including when
        it reached a terminal state while the stop request was in flight.
        """
        task = self.get_task(task_id)
        if task.status.is_terminal:
            raise InvalidTaskStateError(task.id, task.status.value, expected="pending or in_progress")

        try:
            acknowledged = is_success_code(first_task(await self.client.force_stop_task(task.vendor_task_id)).get("status_code"))
        except VendorError as e:
            logger.warning(f"Force-stop refused for audit task {task.id}: {e}", extra={'task_id': task.id})
            acknowledged = False

        current = self.store.get(task_id)
        if current is None:
            audit_logger.log_task_cancelled(task_id, acknowledged)
            raise TaskNotFoundError(task_id)

        if current.status.is_terminal:
            raise InvalidTaskStateError(current.id, current.status.value, expected="pending or in_progress")

        if acknowledged:
            self.store.save(current.model_copy(update={
                "status": TaskStatus.FAILED,
                "error": CANCELLED_BY_USER,
                "updated_at": self.clock(),
            }))

        audit_logger.log_task_cancelled(task_id, acknowledged)
        return acknowledged
