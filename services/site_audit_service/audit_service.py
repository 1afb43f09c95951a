from typing import Any, Dict, List, Optional

from config.logging_config import get_logger
from services.site_audit_service.comparison import compare_reports
from services.site_audit_service.config import Settings, settings as default_settings
from services.site_audit_service.integrations.dataforseo_client import DataForSEOClient, task_result
from services.site_audit_service.report_generator import ReportGenerator, result_items
from services.site_audit_service.schemas.report import ReportComparison, SeoAuditReport
from services.site_audit_service.schemas.task import AuditOptions, AuditStatus, AuditTask
from services.site_audit_service.task_manager import AuditTaskManager

logger = get_logger(__name__)


class SiteAuditService:
    """Caller-facing operations over one shared client, task manager and report generator."""

    def __init__(self, client: DataForSEOClient, task_manager: AuditTaskManager, report_generator: ReportGenerator):
        self.client = client
        self.task_manager = task_manager
        self.report_generator = report_generator

    @classmethod
    def from_settings(cls, config: Settings = default_settings) -> "SiteAuditService":
        client = DataForSEOClient.from_settings(config)
        task_manager = AuditTaskManager.from_settings(client, config)
        report_generator = ReportGenerator(client, task_manager, results_limit=config.results_limit)
        return cls(client, task_manager, report_generator)

    async def create_audit_task(self, target: str, owner_id: int, options: Optional[AuditOptions] = None) -> AuditTask:
        return await self.task_manager.create_task(target, owner_id, options)

    async def get_audit_status(self, task_id: str) -> AuditStatus:
        return await self.task_manager.poll_status(task_id)

    async def generate_report(self, task_id: str, prior: Optional[SeoAuditReport] = None) -> SeoAuditReport:
        return await self.report_generator.generate_report(task_id, prior)

    async def cancel_audit_task(self, task_id: str) -> bool:
        return await self.task_manager.cancel_task(task_id)

    def compare_reports(self, current: SeoAuditReport, prior: SeoAuditReport) -> ReportComparison:
        return compare_reports(current, prior)

    def get_task(self, task_id: str) -> AuditTask:
        return self.task_manager.get_task(task_id)

    def list_user_tasks(self, owner_id: int) -> List[AuditTask]:
        return self.task_manager.list_user_tasks(owner_id)

    def delete_task(self, task_id: str) -> bool:
        return self.task_manager.delete_task(task_id)

    def cleanup_expired_tasks(self) -> int:
        return self.task_manager.cleanup_expired()

    async def refresh_active_tasks(self) -> List[AuditStatus]:
        return await self.task_manager.refresh_active_tasks()

    async def get_ready_vendor_tasks(self) -> List[Dict[str, Any]]:
        return task_result(await self.client.get_tasks_ready())

    async def get_duplicate_content(self, task_id: str, url: str, limit: int = 100, offset: int = 0) -> List[Dict[str, Any]]:
        task = self.task_manager.get_task(task_id)
        return result_items(task_result(await self.client.get_duplicate_content(task.vendor_task_id, url, limit, offset)))

    async def get_raw_html(self, task_id: str, url: str) -> Dict[str, Any]:
        task = self.task_manager.get_task(task_id)
        results = task_result(await self.client.get_raw_html(task.vendor_task_id, url))
        return results[0] if results else {}

    async def get_instant_page_audit(self, url: str, options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Audit one page synchronously, outside the task lifecycle."""
        results = result_items(task_result(await self.client.get_instant_pages(url, options)))
        if not results:
            logger.warning(f"Instant page audit returned no data for {url}", extra={'url': url})
            return {}
        return results[0]
