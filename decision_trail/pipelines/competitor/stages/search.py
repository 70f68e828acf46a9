"""Stage 2: Candidate Search - Recall-oriented keyword matching over the catalog.

An item is a candidate when it is not the reference item and at least one
search term occurs in its title, features or specifications. No ranking.
"""

from typing import Optional

import structlog

from decision_trail.catalog.models import CatalogItem
from decision_trail.pipelines.competitor.models import KeywordSet, SearchResult

logger = structlog.get_logger(__name__)


def search_candidates(
    items: list[CatalogItem],
    keywords: KeywordSet,
    reference_id: Optional[str] = None,
) -> SearchResult:
    search_terms = keywords.primary.split(" ")
    candidates = []
    matched_terms = {}

    for item in items:
        if reference_id is not None and item.id == reference_id:
            logger.debug("reference_item_skipped", item_id=item.id)
            continue

        text = item.search_text
        matched = [term for term in search_terms if term in text]
        if matched:
            candidates.append(item)
            matched_terms[item.id] = matched

    return SearchResult(
        search_terms=search_terms,
        candidates=candidates,
        total_products=len(items),
        matched_terms=matched_terms,
    )
