from services.site_audit_service.schemas.task import (
    TaskStatus,
    AuditOptions,
    AuditTask,
    AuditStatus,
    AuditStatusSummary,
    IssueCounts,
    TopIssue,
    CreateAuditRequest
)

from services.site_audit_service.schemas.report import (
    Severity,
    IssueCategory,
    Effort,
    ResourceType,
    COUNTED_SEVERITIES,
    SeoIssue,
    IssueBuckets,
    Summary,
    WebsiteInfo,
    Performance,
    Content,
    Security,
    PageSeoMetrics,
    ResourceInfo,
    LinkInfo,
    SeoAuditReport,
    MetricDelta,
    PagePerformanceChange,
    ReportComparison
)

__all__ = [
    "TaskStatus",
    "AuditOptions",
    "AuditTask",
    "AuditStatus",
    "AuditStatusSummary",
    "IssueCounts",
    "TopIssue",
    "CreateAuditRequest",
    "Severity",
    "IssueCategory",
    "Effort",
    "ResourceType",
    "COUNTED_SEVERITIES",
    "SeoIssue",
    "IssueBuckets",
    "Summary",
    "WebsiteInfo",
    "Performance",
    "Content",
    "Security",
    "PageSeoMetrics",
    "ResourceInfo",
    "LinkInfo",
    "SeoAuditReport",
    "MetricDelta",
    "PagePerformanceChange",
    "ReportComparison"
]
