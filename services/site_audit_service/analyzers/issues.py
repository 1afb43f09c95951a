from typing import Any, Dict, List

from services.site_audit_service.analyzers.classification import (
    categorize_check, effort_from_hint, issue_id, parse_severity, priority_for,
)
from services.site_audit_service.analyzers.summary import is_broken_resource
from services.site_audit_service.analyzers.vendor_fields import as_records, as_str, as_str_list
from services.site_audit_service.schemas.report import Effort, IssueBuckets, IssueCategory, SeoIssue, Severity


def _unique(urls) -> List[str]:
    return list(dict.fromkeys(url for url in urls if url))


def _group_by(records: List[Dict[str, Any]], field: str) -> Dict[str, List[Dict[str, Any]]]:
    groups: Dict[str, List[Dict[str, Any]]] = {}
    for record in records:
        groups.setdefault(as_str(record.get(field)) or "unknown", []).append(record)
    return groups


def _make_issue(issue_type: str, severity: Severity, affected_urls: List[str], **fields) -> SeoIssue:
    return SeoIssue(
        id=issue_id(issue_type, severity, affected_urls),
        type=issue_type,
        severity=severity,
        affected_urls=affected_urls,
        priority=priority_for(severity),
        **fields,
    )


def page_check_issues(pages: List[Dict[str, Any]]) -> List[SeoIssue]:
    issues = []
    for page in pages:
        url = as_str(page.get("url"))
        for check in as_records(page.get("checks")):
            severity = parse_severity(check.get("severity"))
            if severity is None:
                continue

            check_id = as_str(check.get("check_id")) or "unknown"
            help_url = as_str(check.get("help_url")) or None
            issues.append(_make_issue(
                check_id,
                severity,
                _unique([url]),
                category=categorize_check(check_id),
                title=as_str(check.get("title")) or "Unknown Issue",
                description=as_str(check.get("description")) or "No description available",
                impact=as_str(check.get("impact")) or "Unknown impact",
                recommendations=[as_str(check.get("recommendation")) or "No recommendation available"],
                effort=effort_from_hint(as_str(check.get("effort_estimate"))),
                help_url=help_url,
                technical_details=check.get("details") if isinstance(check.get("details"), dict) else {},
            ))
    return issues


def broken_resource_issue(resources: List[Dict[str, Any]]) -> List[SeoIssue]:
    broken = [
        resource for resource in resources
        if is_broken_resource(resource) or as_str_list(resource.get("resource_errors"))
    ]
    if not broken:
        return []

    return [_make_issue(
        "broken_resources",
        Severity.HIGH,
        _unique(as_str(resource.get("source_url")) for resource in broken),
        category=IssueCategory.TECHNICAL,
        title="Broken Resources Detected",
        description=f"{len(broken)} broken resources found on the website",
        impact="Broken resources can negatively impact user experience and page load times",
        recommendations=["Fix or remove broken resources to improve page load time and user experience"],
        effort=Effort.MEDIUM,
        technical_details={"resources": _unique(as_str(resource.get("url")) for resource in broken)},
    )]


def duplicate_tag_issues(duplicate_tags: List[Dict[str, Any]]) -> List[SeoIssue]:
    issues = []
    for tag_type, items in _group_by(duplicate_tags, "tag_type").items():
        severity = Severity.HIGH if tag_type == "title" else Severity.MEDIUM
        urls = _unique(as_str(page.get("url")) for item in items for page in as_records(item.get("pages")))
        issues.append(_make_issue(
            f"duplicate_{tag_type}",
            severity,
            urls,
            category=IssueCategory.CONTENT,
            title=f"Duplicate {tag_type} Tags Found",
            description=f"Duplicate {tag_type} tags found across multiple pages",
            impact=f"Duplicate {tag_type} tags can confuse search engines and dilute SEO value",
            recommendations=[
                f"Ensure each page has a unique, descriptive {tag_type}",
                f"Review and update duplicate {tag_type} tags to improve SEO performance",
            ],
            effort=Effort.MEDIUM,
        ))
    return issues


def non_indexable_issues(non_indexable: List[Dict[str, Any]]) -> List[SeoIssue]:
    issues = []
    for issue_type, items in _group_by(non_indexable, "issue_type").items():
        reasons = _unique(as_str(item.get("reason")) for item in items)
        issues.append(_make_issue(
            issue_type,
            Severity.LOW,
            _unique(as_str(item.get("url")) for item in items),
            category=IssueCategory.TECHNICAL,
            title=f"Non-indexable Issue in {issue_type}",
            description=f"Non-indexable issue found in {issue_type}",
            impact="Pages may not be properly indexed by search engines",
            recommendations=[
                f"Ensure {issue_type} is properly configured to allow search engine indexing",
                f"Review and update {issue_type} to improve SEO performance",
            ],
            effort=Effort.LOW,
            technical_details={"reasons": reasons} if reasons else {},
        ))
    return issues


def extract_issues(
    pages: List[Dict[str, Any]],
    resources: List[Dict[str, Any]],
    duplicate_tags: List[Dict[str, Any]],
    non_indexable: List[Dict[str, Any]],
) -> IssueBuckets:
    buckets: Dict[str, List[SeoIssue]] = {severity.value: [] for severity in Severity}

    for issue in (
        page_check_issues(pages)
        + broken_resource_issue(resources)
        + duplicate_tag_issues(duplicate_tags)
        + non_indexable_issues(non_indexable)
    ):
        buckets[issue.severity.value].append(issue)

    return IssueBuckets(**buckets)
