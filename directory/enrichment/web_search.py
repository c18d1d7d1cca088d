"""
Web search research for a business: reviews and local press mentions.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from directory.enrichment.search_tools import MultiSearchResult, Searcher, search_multiple

logger = logging.getLogger(__name__)


def build_search_queries(business) -> List[str]:
    """Queries for one business; the press query needs ``local_media_sites`` on the region."""
    city_name = business.city.name if business.city_id else business.region.name
    category_name = business.category.name if business.category_id else "business"

    queries = [f'"{business.name}" {city_name} {category_name} reviews opinions']

    media_sites = (business.region.settings or {}).get("local_media_sites") or []
    if media_sites:
        sites = " OR ".join(f"site:{site}" for site in media_sites)
        queries.append(f'"{business.name}" {city_name} {sites}')
    return queries


def to_bundle(outcome: MultiSearchResult) -> dict:
    """Shape a multi-search outcome as the persisted ``search`` research bundle."""
    return {
        "searched_at": datetime.now(timezone.utc).isoformat(),
        "total_queries": outcome.total_queries,
        "successful": outcome.successful,
        "failed": outcome.failed,
        "queries": [
            {
                "query": entry["query"],
                "results": [
                    {
                        "title": result.title,
                        "url": result.url,
                        "content": result.content,
                        "score": result.score,
                        "raw_content": result.raw_content,
                    }
                    for result in entry["data"].results
                ],
            }
            for entry in outcome.results
        ],
    }


def run_web_search(
    business,
    searcher: Searcher,
    max_results: int = 5,
    stagger: Optional[float] = 1.0,
) -> dict:
    queries = build_search_queries(business)
    logger.info("Performing %d search queries for %s", len(queries), business.name)
    outcome = search_multiple(searcher, queries, max_results=max_results, stagger=stagger or 0)
    return to_bundle(outcome)
