import pytest

from tests.unit.vendor_stubs import ABOUT, HOME


@pytest.fixture
def vendor_payloads():
    return {
        "summary": [{
            "crawl_progress": 100,
            "onpage_score": 87.5,
            "total_pages": 2,
            "pages_crawled": 2,
            "domain_info": {
                "name": "example.com",
                "ip": "93.184.216.34",
                "server": "nginx",
                "cms": "WordPress",
                "technologies": ["php"],
                "ssl_info": {"valid_certificate": True, "certificate_issuer": "Let's Encrypt"},
            },
            "checks": {
                "total": 40,
                "failed": 5,
                "issues": {
                    "critical": {"count": 1, "details": [{"description": "Slow page", "count": 1}]},
                    "high": {"count": 4},
                    "medium": {"count": 2},
                    "low": {"count": 1},
                    "info": {"count": 3},
                },
            },
            "page_speed": {"average_page_load_time": 1500},
            "links": {"total": 2, "broken": 1},
        }],
        "pages": [
            {
                "url": HOME,
                "status_code": 200,
                "checks": [
                    {"check_id": "slow_load_speed", "severity": "critical", "title": "Slow page",
                     "recommendation": "Compress assets", "effort_estimate": "complex"},
                    {"check_id": "missing_alt", "severity": "info"},
                    {"check_id": "unknown_check", "severity": "bogus"},
                ],
                "page_timing": {"time_to_interactive": 3500, "ttfb": 120, "load_time": 4000},
                "core_web_vitals": {"lcp": 2000, "cls": 0.1, "tti": 3500},
                "mobile": {"viewport": True, "text_readability": True, "tap_targets": True,
                           "content_width": True, "media_queries": False, "responsive_images": False},
                "meta": {
                    "title": "Home",
                    "description": "Welcome",
                    "charset": "utf-8",
                    "og_title": "Home",
                    "internal": {"content_length": 1203, "readability_score": 60, "content_quality_score": 70},
                    "keywords": {"seo": 2.5, "audit": 1.0},
                },
                "headings": {"h1": {"count": 1, "values": ["Welcome"]}},
            },
            {
                "url": ABOUT,
                "checks": [{"check_id": "mobile_viewport", "severity": "medium"}],
                "page_timing": {"time_to_interactive": 800},
                "meta": {"title": "About", "keywords": {"seo": 3.0}},
            },
        ],
        "resources": [
            {"url": "https://example.com/app.js", "source_url": HOME, "resource_type": "script",
             "status_code": 404, "resource_size": 1000, "load_time": 1200},
            {"url": "https://example.com/style.css", "source_url": ABOUT, "resource_type": "stylesheet",
             "status_code": 200, "resource_size": 500, "load_time": 100, "compressed": True},
        ],
        "links": [
            {"source_url": HOME, "url": ABOUT, "link_type": "internal", "anchor": "About",
             "status_code": 200, "attributes": {"rel": ["nofollow"]}},
            {"source_url": ABOUT, "url": "https://other.example.org/", "link_type": "external", "status_code": 404},
        ],
        "duplicate_tags": [
            {"tag_type": "title", "pages": [{"url": HOME}, {"url": ABOUT}]},
            {"tag_type": "content", "pages": [{"url": HOME}, {"url": ABOUT}],
             "similarity_score": 0.9, "matched_content": "Lorem ipsum"},
        ],
        "non_indexable": [
            {"url": ABOUT, "issue_type": "robots_txt", "reason": "blocked"},
        ],
        "security": [{
            "security": {
                "score": 80,
                "ssl": {"valid": True, "issuer": "Let's Encrypt", "protocol": "TLSv1.3"},
                "headers": {"present": ["strict-transport-security"], "missing": ["content-security-policy"]},
                "vulnerabilities": [{"type": "xss", "description": "Reflected input", "affected_urls": [HOME]}],
            }
        }],
    }
