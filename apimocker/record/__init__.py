"""
Record module for apimocker - capturing upstream responses.

This module handles:
- Pagination convention detection (standard, OData, cursor, Link header)
- Sequential page crawling with a hard page ceiling
- Combined responses and truncation of oversized payloads

Invariants:
    - A crawl always terminates
    - Recording never touches the resource store
"""

from .pagination import (
    CrawlResult,
    EndpointDescriptor,
    PageResult,
    PaginationCrawler,
    PaginationFormat,
    PaginationInfo,
    detect_pagination_format,
    parse_link_header,
    record_all_pages,
    truncate_large_response,
)

__all__ = [
    "CrawlResult",
    "EndpointDescriptor",
    "PageResult",
    "PaginationCrawler",
    "PaginationFormat",
    "PaginationInfo",
    "detect_pagination_format",
    "parse_link_header",
    "record_all_pages",
    "truncate_large_response",
]
