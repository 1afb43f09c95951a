"""Structural mapping of vendor pages, resources and links into lookup maps keyed by URL."""

from typing import Any, Dict, List

from services.site_audit_service.analyzers.classification import resource_type_for
from services.site_audit_service.analyzers.performance import core_web_vitals, mobile_optimization
from services.site_audit_service.analyzers.summary import BROKEN_STATUS, link_relations, time_to_interactive
from services.site_audit_service.analyzers.vendor_fields import (
    as_bool, as_dict, as_int, as_number, as_str, as_str_list, dig,
)
from services.site_audit_service.schemas.report import (
    HeadingGroup, Headings, ImageStats, LinkInfo, MetaDescription, PageSeoMetrics, ResourceInfo, TitleTag,
)

HEADING_LEVELS = ("h1", "h2", "h3", "h4")
DEFAULT_STATUS = 200


def _heading(page: Dict[str, Any], level: str) -> HeadingGroup:
    group = as_dict(dig(page, "headings", level))
    return HeadingGroup(count=as_int(group.get("count")), values=as_str_list(group.get("values")))


def _keyword_density(value: Any) -> Dict[str, float]:
    return {
        keyword: density
        for keyword, density in as_dict(value).items()
        if isinstance(density, (int, float)) and not isinstance(density, bool)
    }


def page_metrics(page: Dict[str, Any]) -> PageSeoMetrics:
    meta = as_dict(page.get("meta"))
    content = as_dict(page.get("content"))
    images = as_dict(page.get("images"))
    links = as_dict(page.get("links"))
    title = as_str(meta.get("title"))
    description = as_str(meta.get("description"))

    return PageSeoMetrics(
        url=as_str(page.get("url")),
        status_code=as_int(page.get("status_code")) or DEFAULT_STATUS,
        redirect_chain=as_str_list(page.get("redirect_chain")),
        title=TitleTag(
            text=title,
            length=len(title),
            pixel_width=as_int(meta.get("title_pixel_width")),
            has_duplicates=as_bool(meta.get("title_duplicates")),
        ),
        meta_description=MetaDescription(
            text=description,
            length=len(description),
            has_duplicates=as_bool(meta.get("description_duplicates")),
        ),
        headings=Headings(**{level: _heading(page, level) for level in HEADING_LEVELS}),
        images=ImageStats(
            total=as_int(images.get("total")),
            missing_alt=as_int(images.get("missing_alt")),
            alt_too_long=as_int(images.get("alt_too_long")),
            broken=as_int(images.get("broken")),
        ),
        word_count=as_int(content.get("word_count")),
        readability_score=as_number(content.get("readability_score")),
        content_quality_score=as_number(content.get("quality_score")),
        keyword_density=_keyword_density(content.get("keyword_density")),
        internal_links=as_int(links.get("internal")),
        external_links=as_int(links.get("external")),
        broken_links=as_int(links.get("broken")),
        load_time=time_to_interactive(page),
        mobile_optimization=mobile_optimization(page),
        core_web_vitals=core_web_vitals(page),
    )


def map_pages(pages: List[Dict[str, Any]]) -> Dict[str, PageSeoMetrics]:
    return {as_str(page.get("url")): page_metrics(page) for page in pages if as_str(page.get("url"))}


def map_resources(resources: List[Dict[str, Any]]) -> Dict[str, ResourceInfo]:
    mapped = {}
    for resource in resources:
        url = as_str(resource.get("url"))
        if not url:
            continue
        mapped[url] = ResourceInfo(
            url=url,
            type=resource_type_for(as_str(resource.get("resource_type"))),
            size=as_int(resource.get("resource_size")),
            load_time=as_number(resource.get("load_time")),
            status=as_int(resource.get("status_code")) or DEFAULT_STATUS,
            compressed=as_bool(resource.get("compressed")),
            cached=as_bool(resource.get("cached")),
            errors=as_str_list(resource.get("resource_errors")),
        )
    return mapped


def map_links(links: List[Dict[str, Any]]) -> Dict[str, List[LinkInfo]]:
    grouped: Dict[str, List[LinkInfo]] = {}
    for link in links:
        source_url = as_str(link.get("source_url"))
        url = as_str(link.get("url"))
        if not source_url or not url:
            continue

        status = as_int(link.get("status_code"))
        relations = link_relations(link)
        grouped.setdefault(source_url, []).append(LinkInfo(
            url=url,
            type=as_str(link.get("link_type")) or "other",
            text=as_str(link.get("anchor")),
            status=status or DEFAULT_STATUS,
            nofollow="nofollow" in relations,
            sponsored="sponsored" in relations,
            ugc="ugc" in relations,
            broken=status >= BROKEN_STATUS,
        ))
    return grouped
