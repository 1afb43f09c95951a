# services/site_audit_service/schemas/task.py

from enum import Enum
from typing import Optional, Dict, Any, List
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED)


class AuditOptions(BaseModel):
    model_config = ConfigDict(extra="allow")

    max_crawl_pages: Optional[int] = Field(None, gt=0)
    load_resources: bool = True
    enable_javascript: bool = True
    enable_browser_rendering: bool = True
    store_raw_html: bool = False


class AuditTask(BaseModel):
    id: str
    vendor_task_id: str
    target: str
    owner_id: int
    status: TaskStatus = TaskStatus.PENDING
    progress: int = Field(0, ge=0, le=100)
    max_crawl_pages: int
    options: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None
    last_checked_at: Optional[datetime] = None
    expires_at: datetime
    error: Optional[str] = None


class IssueCounts(BaseModel):
    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0
    info: int = 0


class TopIssue(BaseModel):
    title: str
    severity: str
    count: int
    description: Optional[str] = None


class AuditStatusSummary(BaseModel):
    on_page_score: float = 0
    crawl_progress: int = 0
    pages_count: int = 0
    pages_crawled: int = 0
    issues_summary: IssueCounts = Field(default_factory=IssueCounts)
    top_issues: List[TopIssue] = Field(default_factory=list)
    page_speed_average: float = 0
    total_checks: int = 0
    failed_checks: int = 0
    total_links: int = 0
    broken_links: int = 0
    total_resources: int = 0
    broken_resources: int = 0
    non_indexable_pages: int = 0
    duplicate_content: int = 0
    duplicate_tags: int = 0


class AuditStatus(BaseModel):
    task_id: str
    status: TaskStatus
    progress: int = Field(0, ge=0, le=100)
    summary: Optional[AuditStatusSummary] = None
    error: Optional[str] = None


class CreateAuditRequest(BaseModel):
    target: str = Field(..., max_length=2048)
    owner_id: int
    options: AuditOptions = Field(default_factory=AuditOptions)
