from typing import Any, Dict, List

from services.site_audit_service.analyzers.classification import resource_type_for
from services.site_audit_service.analyzers.vendor_fields import (
    as_dict, as_int, as_number, as_records, as_str, as_str_list, as_datetime, dig,
)
from services.site_audit_service.schemas.report import (
    IssueBuckets, LinkStats, PageSpeedStats, ResourceStats, ResourceType,
    ResourceTypeCounts, Severity, SeverityCounts, SpeedDistribution, SslInfo, Summary, WebsiteInfo,
)
from services.site_audit_service.schemas.task import AuditStatusSummary, IssueCounts, TopIssue

FAST_PAGE_MS = 2000
MODERATE_PAGE_MS = 4000
SLOW_RESOURCE_MS = 1000
BROKEN_STATUS = 400

_RESOURCE_BUCKETS = {
    ResourceType.SCRIPT: "scripts",
    ResourceType.STYLE: "styles",
    ResourceType.IMAGE: "images",
    ResourceType.FONT: "fonts",
    ResourceType.OTHER: "other",
}

_SEVERITY_ORDER = {"critical": 0, "high": 1, "medium": 2, "low": 3}


def vendor_severity_counts(summary_raw: Dict[str, Any]) -> SeverityCounts:
    issues = as_dict(dig(summary_raw, "checks", "issues"))
    return SeverityCounts(**{
        severity.value: as_int(dig(issues, severity.value, "count"))
        for severity in Severity
    })


def time_to_interactive(page: Dict[str, Any]) -> float:
    return as_number(dig(page, "page_timing", "time_to_interactive"))


def calculate_page_speed(pages: List[Dict[str, Any]], vendor_average: float = 0) -> PageSpeedStats:
    distribution = {"fast": 0, "moderate": 0, "slow": 0}
    timings = []

    for page in pages:
        tti = time_to_interactive(page)
        if tti:
            timings.append(tti)

        if tti <= FAST_PAGE_MS:
            distribution["fast"] += 1
        elif tti <= MODERATE_PAGE_MS:
            distribution["moderate"] += 1
        else:
            distribution["slow"] += 1

    if not timings:
        return PageSpeedStats(average=vendor_average, distribution=SpeedDistribution(**distribution))

    return PageSpeedStats(
        average=round(sum(timings) / len(timings), 2),
        min=min(timings),
        max=max(timings),
        distribution=SpeedDistribution(**distribution),
    )


def is_broken_resource(resource: Dict[str, Any]) -> bool:
    return as_int(resource.get("status_code")) >= BROKEN_STATUS


def calculate_resource_stats(resources: List[Dict[str, Any]]) -> ResourceStats:
    by_type = {bucket: 0 for bucket in _RESOURCE_BUCKETS.values()}
    broken = slow = total_size = 0

    for resource in resources:
        if is_broken_resource(resource):
            broken += 1
        if as_number(resource.get("load_time")) > SLOW_RESOURCE_MS:
            slow += 1

        by_type[_RESOURCE_BUCKETS[resource_type_for(as_str(resource.get("resource_type")))]] += 1
        total_size += as_int(resource.get("resource_size"))

    total = len(resources)
    return ResourceStats(
        total=total,
        broken=broken,
        slow=slow,
        by_type=ResourceTypeCounts(**by_type),
        total_size=total_size,
        average_size=int(total_size / total + 0.5) if total else 0,
    )


def link_relations(link: Dict[str, Any]) -> List[str]:
    return [rel.lower() for rel in as_str_list(dig(link, "attributes", "rel"))]


def calculate_link_stats(links: List[Dict[str, Any]], summary_raw: Dict[str, Any]) -> LinkStats:
    vendor_links = as_dict(summary_raw.get("links"))
    if not links:
        return LinkStats(
            total=as_int(vendor_links.get("total")),
            internal=as_int(vendor_links.get("internal")),
            external=as_int(vendor_links.get("external")),
            broken=as_int(vendor_links.get("broken")),
        )

    counts = {"internal": 0, "external": 0, "broken": 0, "nofollow": 0, "sponsored": 0, "ugc": 0}
    for link in links:
        link_type = as_str(link.get("link_type"))
        if link_type in ("internal", "external"):
            counts[link_type] += 1
        if as_int(link.get("status_code")) >= BROKEN_STATUS:
            counts["broken"] += 1

        relations = link_relations(link)
        for relation in ("nofollow", "sponsored", "ugc"):
            if relation in relations:
                counts[relation] += 1

    return LinkStats(total=len(links), **counts)


def build_summary(
    summary_raw: Dict[str, Any],
    pages: List[Dict[str, Any]],
    resources: List[Dict[str, Any]],
    links: List[Dict[str, Any]],
    issues: IssueBuckets,
    mobile_score: int,
    security_score: float,
) -> Summary:
    issues_by_severity = SeverityCounts(**{
        severity.value: len(issues.for_severity(severity)) for severity in Severity
    })
    total_issues = len(issues.counted())

    return Summary(
        on_page_score=as_number(summary_raw.get("onpage_score")),
        pages_analyzed=len(pages),
        total_issues=total_issues,
        issues_by_severity=issues_by_severity,
        vendor_issue_counts=vendor_severity_counts(summary_raw),
        page_speed=calculate_page_speed(pages, as_number(dig(summary_raw, "page_speed", "average_page_load_time"))),
        resource_stats=calculate_resource_stats(resources),
        link_stats=calculate_link_stats(links, summary_raw),
        mobile_score=mobile_score,
        security_score=security_score,
    )


def build_website_info(summary_raw: Dict[str, Any]) -> WebsiteInfo:
    domain = as_dict(summary_raw.get("domain_info"))
    ssl_raw = domain.get("ssl_info")

    ssl = None
    if isinstance(ssl_raw, dict):
        ssl = SslInfo(
            valid=ssl_raw.get("valid_certificate") is True,
            issuer=as_str(ssl_raw.get("certificate_issuer") or ssl_raw.get("issuer")),
            expiration_date=as_datetime(ssl_raw.get("certificate_expiration_date") or ssl_raw.get("expiration_date")),
        )

    return WebsiteInfo(
        domain=as_str(domain.get("name")),
        protocol=as_str(domain.get("protocol"), "https") or "https",
        ip=as_str(domain.get("ip")),
        cms=as_str(domain.get("cms")),
        server=as_str(domain.get("server")),
        technologies=as_str_list(domain.get("technologies")),
        ssl=ssl,
    )


def top_issues(summary_raw: Dict[str, Any], limit: int = 10) -> List[TopIssue]:
    issues = as_dict(dig(summary_raw, "checks", "issues"))
    collected = []

    for severity in _SEVERITY_ORDER:
        for detail in as_records(dig(issues, severity, "details")):
            collected.append(TopIssue(
                title=as_str(detail.get("description")) or as_str(detail.get("name")) or "Unknown Issue",
                severity=severity,
                count=as_int(detail.get("count")) or 1,
                description=as_str(detail.get("help")) or as_str(detail.get("description")) or None,
            ))

    collected.sort(key=lambda issue: (_SEVERITY_ORDER[issue.severity], -issue.count))
    return collected[:limit]


def build_status_summary(summary_raw: Dict[str, Any], crawl_progress: int) -> AuditStatusSummary:
    counts = vendor_severity_counts(summary_raw)
    return AuditStatusSummary(
        on_page_score=as_number(summary_raw.get("onpage_score")),
        crawl_progress=crawl_progress,
        pages_count=as_int(summary_raw.get("total_pages")),
        pages_crawled=as_int(summary_raw.get("pages_crawled")),
        issues_summary=IssueCounts(**counts.model_dump()),
        top_issues=top_issues(summary_raw),
        page_speed_average=as_number(dig(summary_raw, "page_speed", "average_page_load_time")),
        total_checks=as_int(dig(summary_raw, "checks", "total")),
        failed_checks=as_int(dig(summary_raw, "checks", "failed")),
        total_links=as_int(dig(summary_raw, "links", "total")),
        broken_links=as_int(dig(summary_raw, "links", "broken")),
        total_resources=as_int(dig(summary_raw, "resources", "total")),
        broken_resources=as_int(dig(summary_raw, "resources", "broken")),
        non_indexable_pages=as_int(dig(summary_raw, "non_indexable", "total")),
        duplicate_content=as_int(dig(summary_raw, "duplicate_content", "total")),
        duplicate_tags=as_int(dig(summary_raw, "duplicate_tags", "total")),
    )
