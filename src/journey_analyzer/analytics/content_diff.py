"""
Content and engagement difference analyzers used by the comparison orchestrator.
"""

import logging
import re
from typing import Awaitable, Callable, List, Optional

from journey_analyzer.models.journey import FUNNEL_PAGES, JourneySession
from journey_analyzer.models.comparison import (
    ContentChangeType, ContentDifference, EngagementDifference, HypothesisCorrelation,
)

logger = logging.getLogger(__name__)

# Resolves an opaque content variant id to its text, when available
ContentLookup = Callable[[str], Optional[str]]

# Async hook producing hypothesis correlations for a journey pair
HypothesisAnalyzer = Callable[[JourneySession, JourneySession], Awaitable[List[HypothesisCorrelation]]]

NEUTRAL_SIMILARITY = 0.5
# Differences at or above this similarity are not reported
SIMILARITY_REPORTING_CEILING = 0.95
# Absolute engagement differential flagged as significant
ENGAGEMENT_SIGNIFICANCE = 0.2

_WORD = re.compile(r"\w+")


class ContentDiffAnalyzer:
    """Compares the content variants two journeys were shown, page by page."""

    def __init__(self, content_lookup: Optional[ContentLookup] = None):
        self.content_lookup = content_lookup
        self.logger = logging.getLogger(__name__)

    def calculate_content_similarity(self, variant_a: Optional[str], variant_b: Optional[str]) -> float:
        """Similarity in [0, 1] between two content variants.

        Identical ids are fully similar and a variant against no variant is
        fully dissimilar. With a lookup, resolvable variants are compared by the
        Jaccard similarity of their lowercase word sets; otherwise 0.5.
        """
        if variant_a == variant_b:
            return 1.0
        if variant_a is None or variant_b is None:
            return 0.0
        if self.content_lookup is None:
            return NEUTRAL_SIMILARITY

        try:
            text_a = self.content_lookup(variant_a)
            text_b = self.content_lookup(variant_b)
        except Exception as e:
            self.logger.warning(f"Content lookup failed for {variant_a}/{variant_b}: {e}")
            return NEUTRAL_SIMILARITY
        if text_a is None or text_b is None:
            return NEUTRAL_SIMILARITY

        words_a = set(_WORD.findall(text_a.lower()))
        words_b = set(_WORD.findall(text_b.lower()))
        union = words_a | words_b
        if not union:
            return 1.0
        return len(words_a & words_b) / len(union)

    async def compare_journey_content(self, successful: JourneySession,
                                      failed: JourneySession) -> List[ContentDifference]:
        differences = []
        for page_type in FUNNEL_PAGES:
            successful_visit = successful.first_visit_for(page_type)
            failed_visit = failed.first_visit_for(page_type)
            if successful_visit is None or failed_visit is None:
                continue

            successful_variant = successful_visit.content_variant_id
            failed_variant = failed_visit.content_variant_id
            if successful_variant == failed_variant:
                continue

            similarity = self.calculate_content_similarity(successful_variant, failed_variant)
            if similarity >= SIMILARITY_REPORTING_CEILING:
                continue

            if failed_variant is None:
                change_type = ContentChangeType.ADDED
            elif successful_variant is None:
                change_type = ContentChangeType.REMOVED
            else:
                change_type = ContentChangeType.MODIFIED

            differences.append(ContentDifference(
                page_type=page_type,
                successful_variant_id=successful_variant,
                failed_variant_id=failed_variant,
                change_type=change_type,
                similarity=similarity,
                correlation_strength=1 - similarity,
                description=f"{page_type.value} page content {change_type.value} "
                            f"({round(similarity * 100)}% similar)",
            ))
        return differences


class EngagementDiffAnalyzer:
    """Engagement, scroll and interaction differentials on pages both journeys visited."""

    def __init__(self, significance_threshold: float = ENGAGEMENT_SIGNIFICANCE):
        self.significance_threshold = significance_threshold

    async def analyze(self, successful: JourneySession, failed: JourneySession) -> List[EngagementDifference]:
        differences = []
        for page_type in FUNNEL_PAGES:
            successful_visit = successful.first_visit_for(page_type)
            failed_visit = failed.first_visit_for(page_type)
            if successful_visit is None or failed_visit is None:
                continue

            engagement_delta = successful_visit.engagement_score - failed_visit.engagement_score
            differences.append(EngagementDifference(
                page_type=page_type,
                engagement_differential=engagement_delta,
                scroll_depth_differential=successful_visit.scroll_depth - failed_visit.scroll_depth,
                interaction_differential=successful_visit.interactions - failed_visit.interactions,
                time_differential=successful_visit.time_on_page - failed_visit.time_on_page,
                is_significant=abs(engagement_delta) >= self.significance_threshold,
            ))
        return differences
