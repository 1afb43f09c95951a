"""Performance reducer: per-page speed scores, timings, Core Web Vitals and mobile checks."""

from typing import Any, Dict, List

from services.site_audit_service.analyzers.classification import speed_score
from services.site_audit_service.analyzers.summary import time_to_interactive
from services.site_audit_service.analyzers.vendor_fields import as_bool, as_dict, as_int, as_number, as_str
from services.site_audit_service.schemas.report import (
    CoreWebVitals, CoreWebVitalsReport, MobileOptimization, MobileOptimizationReport, PageTiming, Performance,
)

CWV_METRICS = ("lcp", "fid", "cls", "ttfb", "fcp", "si", "tti")

# Vendor key -> MobileOptimization field
MOBILE_CHECKS = {
    "viewport": "viewport",
    "text_readability": "text_readability",
    "tap_targets": "tap_target_spacing",
    "content_width": "content_width",
    "media_queries": "media_queries",
    "responsive_images": "responsive_images",
}


def page_timing(page: Dict[str, Any]) -> PageTiming:
    timing = as_dict(page.get("page_timing"))
    return PageTiming(
        time_to_first_byte=as_number(timing.get("ttfb")),
        time_to_interactive=as_number(timing.get("time_to_interactive")),
        first_contentful_paint=as_number(timing.get("fcp")),
        total_load_time=as_number(timing.get("load_time")),
        dom_content_loaded=as_number(timing.get("dom_content_loaded")),
        largest_contentful_paint=as_number(timing.get("lcp")),
    )


def core_web_vitals(page: Dict[str, Any]) -> CoreWebVitals:
    vitals = as_dict(page.get("core_web_vitals"))
    return CoreWebVitals(**{metric: as_number(vitals.get(metric)) for metric in CWV_METRICS})


def mobile_optimization(page: Dict[str, Any]) -> MobileOptimization:
    mobile = as_dict(page.get("mobile"))
    return MobileOptimization(**{field: as_bool(mobile.get(key)) for key, field in MOBILE_CHECKS.items()})


def mobile_page_score(checks: MobileOptimization) -> int:
    passed = sum(1 for value in checks.model_dump().values() if value)
    return int(passed / len(MOBILE_CHECKS) * 100)


def average_vitals(vitals: List[CoreWebVitals]) -> CoreWebVitals:
    if not vitals:
        return CoreWebVitals()
    return CoreWebVitals(**{
        metric: sum(getattr(item, metric) for item in vitals) / len(vitals)
        for metric in CWV_METRICS
    })


def resource_sizes_by_page(resources: List[Dict[str, Any]]) -> Dict[str, int]:
    sizes: Dict[str, int] = {}
    for resource in resources:
        source_url = as_str(resource.get("source_url"))
        size = as_int(resource.get("resource_size"))
        if source_url and size:
            sizes[source_url] = sizes.get(source_url, 0) + size
    return sizes


def extract_performance(pages: List[Dict[str, Any]], resources: List[Dict[str, Any]]) -> Performance:
    speed_scores: Dict[str, int] = {}
    load_times: Dict[str, PageTiming] = {}
    vitals_by_page: Dict[str, CoreWebVitals] = {}
    mobile_by_page: Dict[str, MobileOptimization] = {}

    for page in pages:
        url = as_str(page.get("url"))
        if not url:
            continue

        speed_scores[url] = speed_score(time_to_interactive(page))
        if isinstance(page.get("page_timing"), dict):
            load_times[url] = page_timing(page)
        if isinstance(page.get("core_web_vitals"), dict):
            vitals_by_page[url] = core_web_vitals(page)
        if isinstance(page.get("mobile"), dict):
            mobile_by_page[url] = mobile_optimization(page)

    mobile_score = 0
    if mobile_by_page:
        page_scores = [mobile_page_score(checks) for checks in mobile_by_page.values()]
        mobile_score = sum(page_scores) // len(page_scores)

    return Performance(
        page_speed_scores=speed_scores,
        load_times=load_times,
        resource_sizes=resource_sizes_by_page(resources),
        core_web_vitals=CoreWebVitalsReport(
            average=average_vitals(list(vitals_by_page.values())),
            by_page=vitals_by_page,
        ),
        mobile_optimization=MobileOptimizationReport(score=mobile_score, by_page=mobile_by_page),
    )
