from __future__ import annotations

import pytest

from journey_analyzer.models.journey import (
    FUNNEL_PAGES,
    PAGE_TIME_EXPECTATIONS,
    PageType,
    calculate_engagement_score,
    calculate_time_score,
)


def test_every_page_has_weights_summing_to_one():
    assert set(PAGE_TIME_EXPECTATIONS) == set(FUNNEL_PAGES)
    for expectation in PAGE_TIME_EXPECTATIONS.values():
        total = expectation.time_weight + expectation.scroll_weight + expectation.interaction_weight
        assert total == pytest.approx(1.0)
        assert (expectation.min_effective_time < expectation.optimal_time
                < expectation.max_reasonable_time < expectation.timeout_threshold)


@pytest.mark.parametrize("page, seconds, score", [
    (PageType.ACTIVATION, 0, 0.0),
    (PageType.ACTIVATION, 22.5, 0.15),
    (PageType.ACTIVATION, 45, 0.3),
    (PageType.ACTIVATION, 120, 1.0),
    (PageType.ACTIVATION, 360, 0.85),
    (PageType.ACTIVATION, 600, 0.7),
    (PageType.ACTIVATION, 601, 0.5),
    (PageType.AGREEMENT, 45, 0.15),
    (PageType.AGREEMENT, 165, 0.65),
    (PageType.AGREEMENT, 1201, 0.5),
    (PageType.CONFIRMATION, 10, 0.15),
    (PageType.CONFIRMATION, 300, 0.7),
    (PageType.CONFIRMATION, 1000, 0.5),
    (PageType.PROCESSING, 17.5, 0.65),
    (PageType.PROCESSING, 30, 1.0),
    (PageType.PROCESSING, 121, 0.5),
])
def test_time_score_boundaries(page, seconds, score):
    assert calculate_time_score(seconds, PAGE_TIME_EXPECTATIONS[page]) == pytest.approx(score)


def test_negative_time_scores_zero():
    assert calculate_time_score(-5, PAGE_TIME_EXPECTATIONS[PageType.AGREEMENT]) == 0.0


@pytest.mark.parametrize("page, seconds, scroll, interactions, score", [
    (PageType.ACTIVATION, 120, 50, 5, 0.7),
    (PageType.ACTIVATION, 22.5, 33, 1, 0.19),
    (PageType.AGREEMENT, 240, 100, 10, 1.0),
    (PageType.CONFIRMATION, 1000, 0, 0, 0.15),
    (PageType.PROCESSING, 30, 20, 3, 0.43),
])
def test_engagement_score_uses_page_weights(page, seconds, scroll, interactions, score):
    assert calculate_engagement_score(page, seconds, scroll, interactions) == score


def test_engagement_inputs_are_clamped():
    saturated = calculate_engagement_score(PageType.AGREEMENT, 240, 150, 50)
    floor = calculate_engagement_score(PageType.AGREEMENT, 0, -20, -3)

    assert saturated == 1.0
    assert floor == 0.0
