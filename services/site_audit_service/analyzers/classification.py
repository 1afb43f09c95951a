import hashlib
from typing import Any, Iterable, Optional, Tuple

from services.site_audit_service.schemas.report import Effort, IssueCategory, ResourceType, Severity


# First matching row wins, so more specific rows must come first.
CHECK_CATEGORY_TABLE: Tuple[Tuple[Tuple[str, ...], IssueCategory], ...] = (
    (("speed", "load"), IssueCategory.PERFORMANCE),
    (("mobile", "responsive"), IssueCategory.MOBILE),
    (("content", "text"), IssueCategory.CONTENT),
    (("security", "ssl"), IssueCategory.SECURITY),
    (("technical", "server"), IssueCategory.TECHNICAL),
)

SEVERITY_PRIORITY = {
    Severity.CRITICAL: 1,
    Severity.HIGH: 2,
    Severity.MEDIUM: 3,
    Severity.LOW: 4,
    Severity.INFO: 5,
}

EFFORT_HINT_TABLE: Tuple[Tuple[Tuple[str, ...], Effort], ...] = (
    (("quick", "easy", "low"), Effort.LOW),
    (("complex", "difficult", "high"), Effort.HIGH),
)

RESOURCE_TYPE_TABLE: Tuple[Tuple[Tuple[str, ...], ResourceType], ...] = (
    (("script",), ResourceType.SCRIPT),
    (("style", "css"), ResourceType.STYLE),
    (("image", "img"), ResourceType.IMAGE),
    (("font",), ResourceType.FONT),
)


def _match(value: str, table):
    for needles, result in table:
        if any(needle in value for needle in needles):
            return result
    return None


def categorize_check(check_id: Optional[str]) -> IssueCategory:
    if not check_id:
        return IssueCategory.OTHER
    return _match(check_id.lower(), CHECK_CATEGORY_TABLE) or IssueCategory.OTHER


def parse_severity(value: Any) -> Optional[Severity]:
    if not isinstance(value, str):
        return None
    try:
        return Severity(value.strip().lower())
    except ValueError:
        return None


def priority_for(severity: Severity) -> int:
    return SEVERITY_PRIORITY.get(severity, 5)


def effort_from_hint(estimate: Optional[str]) -> Effort:
    if not estimate:
        return Effort.MEDIUM
    return _match(estimate.lower(), EFFORT_HINT_TABLE) or Effort.MEDIUM


def resource_type_for(raw_type: Optional[str]) -> ResourceType:
    if not raw_type:
        return ResourceType.OTHER
    return _match(raw_type.lower(), RESOURCE_TYPE_TABLE) or ResourceType.OTHER


def speed_score(time_to_interactive: float) -> int:
    if time_to_interactive > 5000:
        return 50
    if time_to_interactive > 3000:
        return 70
    if time_to_interactive > 1000:
        return 90
    return 100


def issue_id(issue_type: str, severity: Severity, urls: Iterable[str]) -> str:
    digest = hashlib.sha1("|".join([issue_type, severity.value, *urls]).encode()).hexdigest()[:12]
    return f"{issue_type}_{digest}"
