from typing import Any, Dict, List

from services.site_audit_service.analyzers.vendor_fields import as_dict, as_number, as_records, as_str, dig
from services.site_audit_service.schemas.report import Content, DuplicateContentCluster, KeywordUsage, MissingMetadata

CHARS_PER_WORD = 6
DEFAULT_SIMILARITY = 0.8
TOP_KEYWORDS_LIMIT = 10

# Page meta key -> name reported as missing
REQUIRED_METADATA = (
    ("title", "title"),
    ("description", "description"),
    ("charset", "charset"),
    ("og_title", "og:title"),
)


def estimate_word_count(content_length: float) -> int:
    return int(content_length / CHARS_PER_WORD + 0.5)


def duplicate_content_clusters(duplicate_tags: List[Dict[str, Any]]) -> List[DuplicateContentCluster]:
    clusters = []
    for item in duplicate_tags:
        pages = as_records(item.get("pages"))
        if as_str(item.get("tag_type")) != "content" or len(pages) <= 1:
            continue
        clusters.append(DuplicateContentCluster(
            pages=[as_str(page.get("url")) for page in pages],
            similarity_score=as_number(item.get("similarity_score")) or DEFAULT_SIMILARITY,
            matched_content=as_str(item.get("matched_content")),
        ))
    return clusters


def missing_metadata(page: Dict[str, Any]) -> List[str]:
    meta = as_dict(page.get("meta"))
    return [label for key, label in REQUIRED_METADATA if not meta.get(key)]


def top_keywords(pages: List[Dict[str, Any]], limit: int = TOP_KEYWORDS_LIMIT) -> List[KeywordUsage]:
    keywords: Dict[str, Dict[str, Any]] = {}
    for page in pages:
        url = as_str(page.get("url"))
        if not url:
            continue
        for keyword, density in as_dict(dig(page, "meta", "keywords")).items():
            entry = keywords.setdefault(keyword, {"density": 0, "urls": []})
            entry["density"] = max(entry["density"], as_number(density))
            entry["urls"].append(url)

    ranked = sorted(keywords.items(), key=lambda item: item[1]["density"], reverse=True)
    return [
        KeywordUsage(keyword=keyword, density=entry["density"], urls=entry["urls"])
        for keyword, entry in ranked[:limit]
    ]


def extract_content(pages: List[Dict[str, Any]], duplicate_tags: List[Dict[str, Any]]) -> Content:
    word_counts: Dict[str, int] = {}
    readability: Dict[str, float] = {}
    quality: Dict[str, float] = {}
    missing: List[MissingMetadata] = []

    for page in pages:
        url = as_str(page.get("url"))
        if not url:
            continue

        internal = dig(page, "meta", "internal")
        if isinstance(internal, dict):
            word_counts[url] = estimate_word_count(as_number(internal.get("content_length")))
            readability[url] = as_number(internal.get("readability_score"))
            quality[url] = as_number(internal.get("content_quality_score"))

        elements = missing_metadata(page)
        if elements:
            missing.append(MissingMetadata(url=url, missing_elements=elements))

    return Content(
        word_counts=word_counts,
        readability_scores=readability,
        content_quality_scores=quality,
        duplicate_content=duplicate_content_clusters(duplicate_tags),
        missing_metadata=missing,
        top_keywords=top_keywords(pages),
    )
