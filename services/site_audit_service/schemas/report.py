# services/site_audit_service/schemas/report.py

from enum import Enum
from typing import Optional, Dict, List, Any
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field


class Severity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


# Severities that count towards Summary.total_issues.
COUNTED_SEVERITIES = (Severity.CRITICAL, Severity.HIGH, Severity.MEDIUM, Severity.LOW)


class IssueCategory(str, Enum):
    PERFORMANCE = "performance"
    MOBILE = "mobile"
    CONTENT = "content"
    SECURITY = "security"
    TECHNICAL = "technical"
    OTHER = "other"


class Effort(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ResourceType(str, Enum):
    SCRIPT = "script"
    STYLE = "style"
    IMAGE = "image"
    FONT = "font"
    OTHER = "other"


class ReportModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class SslInfo(ReportModel):
    valid: bool = False
    issuer: str = ""
    expiration_date: Optional[datetime] = None


class WebsiteInfo(ReportModel):
    domain: str = ""
    protocol: str = "https"
    ip: str = ""
    cms: str = ""
    server: str = ""
    technologies: List[str] = Field(default_factory=list)
    ssl: Optional[SslInfo] = None


class SeverityCounts(ReportModel):
    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0
    info: int = 0


class SpeedDistribution(ReportModel):
    fast: int = 0
    moderate: int = 0
    slow: int = 0


class PageSpeedStats(ReportModel):
    average: float = 0
    min: float = 0
    max: float = 0
    distribution: SpeedDistribution = Field(default_factory=SpeedDistribution)


class ResourceTypeCounts(ReportModel):
    scripts: int = 0
    styles: int = 0
    images: int = 0
    fonts: int = 0
    other: int = 0


class ResourceStats(ReportModel):
    total: int = 0
    broken: int = 0
    slow: int = 0
    by_type: ResourceTypeCounts = Field(default_factory=ResourceTypeCounts)
    total_size: int = 0
    average_size: int = 0


class LinkStats(ReportModel):
    total: int = 0
    internal: int = 0
    external: int = 0
    broken: int = 0
    nofollow: int = 0
    sponsored: int = 0
    ugc: int = 0


class Summary(ReportModel):
    on_page_score: float = 0
    pages_analyzed: int = 0
    total_issues: int = 0
    issues_by_severity: SeverityCounts = Field(default_factory=SeverityCounts)
    vendor_issue_counts: SeverityCounts = Field(default_factory=SeverityCounts)
    page_speed: PageSpeedStats = Field(default_factory=PageSpeedStats)
    resource_stats: ResourceStats = Field(default_factory=ResourceStats)
    link_stats: LinkStats = Field(default_factory=LinkStats)
    mobile_score: int = 0
    security_score: float = 0


class SeoIssue(ReportModel):
    id: str
    type: str
    category: IssueCategory
    severity: Severity
    title: str
    description: str
    impact: str
    affected_urls: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    priority: int = Field(..., ge=1, le=5)
    effort: Effort = Effort.MEDIUM
    help_url: Optional[str] = None
    technical_details: Dict[str, Any] = Field(default_factory=dict)


class IssueBuckets(ReportModel):
    critical: List[SeoIssue] = Field(default_factory=list)
    high: List[SeoIssue] = Field(default_factory=list)
    medium: List[SeoIssue] = Field(default_factory=list)
    low: List[SeoIssue] = Field(default_factory=list)
    info: List[SeoIssue] = Field(default_factory=list)

    def for_severity(self, severity: Severity) -> List[SeoIssue]:
        return getattr(self, Severity(severity).value)

    def counted(self) -> List[SeoIssue]:
        return [issue for severity in COUNTED_SEVERITIES for issue in self.for_severity(severity)]


class PageTiming(ReportModel):
    time_to_first_byte: float = 0
    time_to_interactive: float = 0
    first_contentful_paint: float = 0
    total_load_time: float = 0
    dom_content_loaded: float = 0
    largest_contentful_paint: float = 0


class CoreWebVitals(ReportModel):
    lcp: float = 0
    fid: float = 0
    cls: float = 0
    ttfb: float = 0
    fcp: float = 0
    si: float = 0
    tti: float = 0


class MobileOptimization(ReportModel):
    viewport: bool = False
    text_readability: bool = False
    tap_target_spacing: bool = False
    content_width: bool = False
    media_queries: bool = False
    responsive_images: bool = False


class CoreWebVitalsReport(ReportModel):
    average: CoreWebVitals = Field(default_factory=CoreWebVitals)
    by_page: Dict[str, CoreWebVitals] = Field(default_factory=dict)


class MobileOptimizationReport(ReportModel):
    score: int = 0
    by_page: Dict[str, MobileOptimization] = Field(default_factory=dict)


class Performance(ReportModel):
    page_speed_scores: Dict[str, int] = Field(default_factory=dict)
    load_times: Dict[str, PageTiming] = Field(default_factory=dict)
    resource_sizes: Dict[str, int] = Field(default_factory=dict)
    core_web_vitals: CoreWebVitalsReport = Field(default_factory=CoreWebVitalsReport)
    mobile_optimization: MobileOptimizationReport = Field(default_factory=MobileOptimizationReport)


class DuplicateContentCluster(ReportModel):
    pages: List[str] = Field(default_factory=list)
    similarity_score: float = 0
    matched_content: str = ""


class MissingMetadata(ReportModel):
    url: str
    missing_elements: List[str] = Field(default_factory=list)


class KeywordUsage(ReportModel):
    keyword: str
    density: float = 0
    urls: List[str] = Field(default_factory=list)


class Content(ReportModel):
    word_counts: Dict[str, int] = Field(default_factory=dict)
    readability_scores: Dict[str, float] = Field(default_factory=dict)
    content_quality_scores: Dict[str, float] = Field(default_factory=dict)
    duplicate_content: List[DuplicateContentCluster] = Field(default_factory=list)
    missing_metadata: List[MissingMetadata] = Field(default_factory=list)
    top_keywords: List[KeywordUsage] = Field(default_factory=list)


class SslStatus(ReportModel):
    valid: bool = False
    issuer: str = ""
    expiration_date: Optional[datetime] = None
    protocol: str = "unknown"


class SecurityHeaders(ReportModel):
    present: List[str] = Field(default_factory=list)
    missing: List[str] = Field(default_factory=list)
    invalid: List[str] = Field(default_factory=list)


class Vulnerability(ReportModel):
    severity: Severity = Severity.LOW
    type: str = "unknown"
    description: str = ""
    affected_urls: List[str] = Field(default_factory=list)


class Security(ReportModel):
    score: float = 0
    ssl: SslStatus = Field(default_factory=SslStatus)
    headers: SecurityHeaders = Field(default_factory=SecurityHeaders)
    vulnerabilities: List[Vulnerability] = Field(default_factory=list)


class HeadingGroup(ReportModel):
    count: int = 0
    values: List[str] = Field(default_factory=list)


class Headings(ReportModel):
    h1: HeadingGroup = Field(default_factory=HeadingGroup)
    h2: HeadingGroup = Field(default_factory=HeadingGroup)
    h3: HeadingGroup = Field(default_factory=HeadingGroup)
    h4: HeadingGroup = Field(default_factory=HeadingGroup)


class TitleTag(ReportModel):
    text: str = ""
    length: int = 0
    pixel_width: int = 0
    has_duplicates: bool = False


class MetaDescription(ReportModel):
    text: str = ""
    length: int = 0
    has_duplicates: bool = False


class ImageStats(ReportModel):
    total: int = 0
    missing_alt: int = 0
    alt_too_long: int = 0
    broken: int = 0


class PageSeoMetrics(ReportModel):
    url: str
    status_code: int = 200
    redirect_chain: List[str] = Field(default_factory=list)
    title: TitleTag = Field(default_factory=TitleTag)
    meta_description: MetaDescription = Field(default_factory=MetaDescription)
    headings: Headings = Field(default_factory=Headings)
    images: ImageStats = Field(default_factory=ImageStats)
    word_count: int = 0
    readability_score: float = 0
    content_quality_score: float = 0
    keyword_density: Dict[str, float] = Field(default_factory=dict)
    internal_links: int = 0
    external_links: int = 0
    broken_links: int = 0
    load_time: float = 0
    mobile_optimization: MobileOptimization = Field(default_factory=MobileOptimization)
    core_web_vitals: CoreWebVitals = Field(default_factory=CoreWebVitals)


class ResourceInfo(ReportModel):
    url: str
    type: ResourceType = ResourceType.OTHER
    size: int = 0
    load_time: float = 0
    status: int = 200
    compressed: bool = False
    cached: bool = False
    errors: List[str] = Field(default_factory=list)


class LinkInfo(ReportModel):
    url: str
    type: str = "other"
    text: str = ""
    status: int = 200
    nofollow: bool = False
    sponsored: bool = False
    ugc: bool = False
    broken: bool = False


class SeoAuditReport(ReportModel):
    id: str
    task_id: str
    target: str
    created_at: datetime
    completed_at: datetime
    owner_id: int

    website_info: WebsiteInfo = Field(default_factory=WebsiteInfo)
    summary: Summary = Field(default_factory=Summary)
    issues: IssueBuckets = Field(default_factory=IssueBuckets)
    performance: Performance = Field(default_factory=Performance)
    content: Content = Field(default_factory=Content)
    security: Security = Field(default_factory=Security)

    pages: Dict[str, PageSeoMetrics] = Field(default_factory=dict)
    resources: Dict[str, ResourceInfo] = Field(default_factory=dict)
    links: Dict[str, List[LinkInfo]] = Field(default_factory=dict)

    historical: Optional["ReportComparison"] = None


class MetricDelta(ReportModel):
    current: float = 0
    previous: float = 0
    change: float = 0
    percent_change: float = 0


class SeverityDeltas(ReportModel):
    critical: MetricDelta = Field(default_factory=MetricDelta)
    high: MetricDelta = Field(default_factory=MetricDelta)
    medium: MetricDelta = Field(default_factory=MetricDelta)
    low: MetricDelta = Field(default_factory=MetricDelta)


class ComparisonSummary(ReportModel):
    on_page_score: MetricDelta = Field(default_factory=MetricDelta)
    total_issues: MetricDelta = Field(default_factory=MetricDelta)
    issues_by_severity: SeverityDeltas = Field(default_factory=SeverityDeltas)
    page_speed_average: MetricDelta = Field(default_factory=MetricDelta)


class PagePerformanceChange(ReportModel):
    url: str
    page_speed: MetricDelta = Field(default_factory=MetricDelta)
    load_time: MetricDelta = Field(default_factory=MetricDelta)


class ReportComparison(ReportModel):
    current_report_id: str
    previous_report_id: str
    last_audit_date: Optional[datetime] = None
    summary: ComparisonSummary = Field(default_factory=ComparisonSummary)
    new_issues: List[SeoIssue] = Field(default_factory=list)
    resolved_issues: List[SeoIssue] = Field(default_factory=list)
    performance_changes: List[PagePerformanceChange] = Field(default_factory=list)


SeoAuditReport.model_rebuild()
