import asyncio
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from prometheus_client import Counter, Histogram

from config.logging_config import AuditLogger, get_logger
from services.site_audit_service.analyzers.content import extract_content
from services.site_audit_service.analyzers.issues import extract_issues
from services.site_audit_service.analyzers.performance import extract_performance
from services.site_audit_service.analyzers.security import extract_security
from services.site_audit_service.analyzers.structure import map_links, map_pages, map_resources
from services.site_audit_service.analyzers.summary import build_summary, build_website_info
from services.site_audit_service.analyzers.vendor_fields import as_records
from services.site_audit_service.comparison import compare_reports
from services.site_audit_service.errors import AggregationError, InvalidTaskStateError, TransportError, VendorError
from services.site_audit_service.integrations.dataforseo_client import DataForSEOClient, task_result
from services.site_audit_service.schemas.report import SeoAuditReport
from services.site_audit_service.schemas.task import AuditTask, TaskStatus
from services.site_audit_service.task_manager import AuditTaskManager, utc_now

logger = get_logger(__name__)
audit_logger = AuditLogger()

reports_generated_total = Counter(
    'site_audit_reports_generated_total',
    'Audit reports built successfully'
)

reports_failed_total = Counter(
    'site_audit_reports_failed_total',
    'Audit report generations aborted',
    ['step']
)

report_generation_duration = Histogram(
    'site_audit_report_generation_duration_seconds',
    'Time spent fetching and reducing vendor data for one report'
)


def result_items(results: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Flatten ``result[*].items`` pages; results without ``items`` are records themselves."""
    records = []
    for result in results:
        if isinstance(result.get("items"), list):
            records.extend(as_records(result["items"]))
        else:
            records.append(result)
    return records


@dataclass
class VendorAuditData:
    summary: Dict[str, Any] = field(default_factory=dict)
    pages: List[Dict[str, Any]] = field(default_factory=list)
    resources: List[Dict[str, Any]] = field(default_factory=list)
    links: List[Dict[str, Any]] = field(default_factory=list)
    duplicate_tags: List[Dict[str, Any]] = field(default_factory=list)
    non_indexable: List[Dict[str, Any]] = field(default_factory=list)
    security: List[Dict[str, Any]] = field(default_factory=list)


def report_id_for(task: AuditTask) -> str:
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"site-audit:{task.id}:{task.vendor_task_id}"))


def build_report(task: AuditTask, data: VendorAuditData, generated_at: datetime) -> SeoAuditReport:
    """Reduce raw vendor payloads into a report. Pure: same inputs, same report."""
    issues = extract_issues(data.pages, data.resources, data.duplicate_tags, data.non_indexable)
    performance = extract_performance(data.pages, data.resources)
    security = extract_security(data.security)

    return SeoAuditReport(
        id=report_id_for(task),
        task_id=task.id,
        target=task.target,
        created_at=generated_at,
        completed_at=task.completed_at or generated_at,
        owner_id=task.owner_id,
        website_info=build_website_info(data.summary),
        summary=build_summary(
            data.summary,
            data.pages,
            data.resources,
            data.links,
            issues,
            mobile_score=performance.mobile_optimization.score,
            security_score=security.score,
        ),
        issues=issues,
        performance=performance,
        content=extract_content(data.pages, data.duplicate_tags),
        security=security,
        pages=map_pages(data.pages),
        resources=map_resources(data.resources),
        links=map_links(data.links),
    )


class ReportGenerator:

    def __init__(
        self,
        client: DataForSEOClient,
        task_manager: AuditTaskManager,
        results_limit: int = 1000,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.client = client
        self.task_manager = task_manager
        self.results_limit = results_limit
        self.clock = clock

    async def generate_report(self, task_id: str, prior: Optional[SeoAuditReport] = None) -> SeoAuditReport:
        """Fetch all seven result categories concurrently and build the report.

        Raises TaskNotFoundError or InvalidTaskStateError before any vendor
        call. If any fetch fails the whole generation fails with an
        AggregationError naming that category.
        """
        task = self.task_manager.get_task(task_id)
        if task.status != TaskStatus.COMPLETED:
            raise InvalidTaskStateError(task.id, task.status.value, expected=TaskStatus.COMPLETED.value)

        started = time.perf_counter()
        data = await self.fetch_audit_data(task)
        report = build_report(task, data, self.clock())

        if prior is not None:
            report = report.model_copy(update={"historical": compare_reports(report, prior)})

        duration = time.perf_counter() - started
        report_generation_duration.observe(duration)
        reports_generated_total.inc()
        audit_logger.log_report_generated(task.id, report.id, report.summary.total_issues, duration)
        return report

    async def fetch_audit_data(self, task: AuditTask) -> VendorAuditData:
        vendor_id = task.vendor_task_id
        limit = self.results_limit

        summary, pages, resources, links, duplicate_tags, non_indexable, security = await asyncio.gather(
            self._fetch(task, "summary", self.client.get_summary(vendor_id)),
            self._fetch(task, "pages", self.client.get_pages(vendor_id, limit=limit)),
            self._fetch(task, "resources", self.client.get_resources(vendor_id, limit=limit)),
            self._fetch(task, "links", self.client.get_links(vendor_id, limit=limit)),
            self._fetch(task, "duplicate_tags", self.client.get_duplicate_tags(vendor_id, limit=limit)),
            self._fetch(task, "non_indexable", self.client.get_non_indexable(vendor_id, limit=limit)),
            self._fetch(task, "security", self.client.get_security(vendor_id)),
        )

        return VendorAuditData(
            summary=summary[0] if summary else {},
            pages=result_items(pages),
            resources=result_items(resources),
            links=result_items(links),
            duplicate_tags=result_items(duplicate_tags),
            non_indexable=result_items(non_indexable),
            security=security,
        )

    async def _fetch(self, task: AuditTask, step: str, call: Awaitable[Dict[str, Any]]) -> List[Dict[str, Any]]:
        try:
            return task_result(await call)
        except (TransportError, VendorError) as e:
            reports_failed_total.labels(step=step).inc()
            audit_logger.log_report_failed(task.id, step, e)
            raise AggregationError(task.id, step) from e
