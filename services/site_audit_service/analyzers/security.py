from typing import Any, Dict, List

from services.site_audit_service.analyzers.classification import parse_severity
from services.site_audit_service.analyzers.vendor_fields import (
    as_datetime, as_dict, as_number, as_records, as_str, as_str_list,
)
from services.site_audit_service.schemas.report import Security, SecurityHeaders, Severity, SslStatus, Vulnerability


def extract_security(security_results: List[Dict[str, Any]]) -> Security:
    """Map the first security result onto the report shape; missing data yields an empty Security."""
    first = security_results[0] if security_results else {}
    raw = as_dict(first.get("security"))
    ssl = as_dict(raw.get("ssl"))
    headers = as_dict(raw.get("headers"))

    return Security(
        score=as_number(raw.get("score")),
        ssl=SslStatus(
            valid=ssl.get("valid") is True,
            issuer=as_str(ssl.get("issuer")),
            expiration_date=as_datetime(ssl.get("expiration_date")),
            protocol=as_str(ssl.get("protocol")) or "unknown",
        ),
        headers=SecurityHeaders(
            present=as_str_list(headers.get("present")),
            missing=as_str_list(headers.get("missing")),
            invalid=as_str_list(headers.get("invalid")),
        ),
        vulnerabilities=[
            Vulnerability(
                severity=parse_severity(vuln.get("severity")) or Severity.LOW,
                type=as_str(vuln.get("type")) or "unknown",
                description=as_str(vuln.get("description")) or "No description available",
                affected_urls=as_str_list(vuln.get("affected_urls")),
            )
            for vuln in as_records(raw.get("vulnerabilities"))
        ],
    )
