from typing import List

from config.logging_config import AuditLogger
from services.site_audit_service.schemas.report import (
    COUNTED_SEVERITIES, ComparisonSummary, MetricDelta, PagePerformanceChange, ReportComparison,
    SeoAuditReport, SeoIssue, SeverityDeltas,
)

audit_logger = AuditLogger()


def metric_delta(current: float, previous: float) -> MetricDelta:
    change = current - previous
    return MetricDelta(
        current=current,
        previous=previous,
        change=change,
        percent_change=round(change / previous * 100, 2) if previous else 0,
    )


def issues_match(issue: SeoIssue, other: SeoIssue) -> bool:
    """Same type, same severity and at least one affected URL in common."""
    return (
        issue.type == other.type
        and issue.severity == other.severity
        and not set(issue.affected_urls).isdisjoint(other.affected_urls)
    )


def unmatched_issues(report: SeoAuditReport, baseline: SeoAuditReport) -> List[SeoIssue]:
    """Issues of ``report`` with no matching issue in ``baseline``."""
    unmatched = []
    for severity in COUNTED_SEVERITIES:
        candidates = baseline.issues.for_severity(severity)
        for issue in report.issues.for_severity(severity):
            if not any(issues_match(issue, candidate) for candidate in candidates):
                unmatched.append(issue)
    return unmatched


def _load_time(report: SeoAuditReport, url: str) -> float:
    timing = report.performance.load_times.get(url)
    return timing.time_to_interactive if timing is not None else 0


def performance_changes(current: SeoAuditReport, prior: SeoAuditReport) -> List[PagePerformanceChange]:
    previous_scores = prior.performance.page_speed_scores
    return [
        PagePerformanceChange(
            url=url,
            page_speed=metric_delta(score, previous_scores[url]),
            load_time=metric_delta(_load_time(current, url), _load_time(prior, url)),
        )
        for url, score in current.performance.page_speed_scores.items()
        if url in previous_scores
    ]


def compare_reports(current: SeoAuditReport, prior: SeoAuditReport) -> ReportComparison:
    """Diff two reports of the same target. Neither report is modified."""
    current_summary, prior_summary = current.summary, prior.summary

    comparison = ReportComparison(
        current_report_id=current.id,
        previous_report_id=prior.id,
        last_audit_date=prior.created_at,
        summary=ComparisonSummary(
            on_page_score=metric_delta(current_summary.on_page_score, prior_summary.on_page_score),
            total_issues=metric_delta(current_summary.total_issues, prior_summary.total_issues),
            issues_by_severity=SeverityDeltas(**{
                severity.value: metric_delta(
                    getattr(current_summary.issues_by_severity, severity.value),
                    getattr(prior_summary.issues_by_severity, severity.value),
                )
                for severity in COUNTED_SEVERITIES
            }),
            page_speed_average=metric_delta(current_summary.page_speed.average, prior_summary.page_speed.average),
        ),
        new_issues=unmatched_issues(current, prior),
        resolved_issues=unmatched_issues(prior, current),
        performance_changes=performance_changes(current, prior),
    )

    audit_logger.log_reports_compared(
        current.id, prior.id, len(comparison.new_issues), len(comparison.resolved_issues)
    )
    return comparison
