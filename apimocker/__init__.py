"""
apimocker - in-memory OData-style mock service engine.

This package implements the algorithmic core of an API mocker:
- Resource store: per-tenant JSON collections with CRUD
- Query pipeline: $filter, $count, $orderby, $skip, $top, $select, $expand
- Expansion resolver: navigation properties via descriptors or naming conventions
- Pagination crawler: drains paginated upstream APIs for recording

Architecture:
    ┌─────────────┐     ┌─────────────┐     ┌─────────────────┐
    │   Client    │────▶│  HTTP API   │────▶│   QueryEngine   │
    └─────────────┘     │  (FastAPI)  │     └────────┬────────┘
                        └─────────────┘              │
                                        ┌────────────┼────────────┐
                                        ▼            ▼            ▼
                                   ┌─────────┐ ┌──────────┐ ┌──────────┐
                                   │ Filter  │ │ Pipeline │ │ Expansion│
                                   └─────────┘ └──────────┘ └────┬─────┘
                                                                 ▼
                                                        ┌────────────────┐
                                                        │ ResourceStore  │
                                                        └────────────────┘

    ┌─────────────┐     ┌──────────────────┐     ┌───────────────────┐
    │  Upstream   │────▶│ PaginationCrawler│────▶│ <op>_page_N.json  │
    │    API      │     │  (recording)     │     │ <op>_all_pages... │
    └─────────────┘     └──────────────────┘     └───────────────────┘

Invariants:
    - No exception crosses the query pipeline or the expansion resolver
    - Filter evaluation is fail-open (errors keep the item)
    - The crawler always terminates at its page ceiling

How to change safely:
    - Keep the pipeline stage order fixed
    - Keep pagination detection priority: standard > odata > cursor > link-header
"""

__version__ = "1.0.0"

__all__ = ["__version__"]
