"""Offline ranking metrics and online engagement counters."""

import math
import uuid
from dataclasses import dataclass
from itertools import combinations
from typing import Mapping, Sequence

from milvuso.vectors import euclidean_distance


def _divide(numerator: float, denominator: float) -> float:
    """Floating-point division that yields inf/nan instead of raising on zero."""
    if denominator == 0.0:
        if numerator == 0.0 or math.isnan(numerator):
            return math.nan
        return math.copysign(math.inf, numerator) * math.copysign(1.0, denominator)
    return numerator / denominator


@dataclass
class RecommendationMetrics:
    precision_at_k: float
    recall_at_k: float
    f1_score: float
    ndcg_at_k: float
    map_score: float
    coverage: float
    diversity: float
    novelty: float


@dataclass
class MetricsCalculator:
    """Ranking metrics evaluated over the first k recommendations."""

    k: int

    def _hits(self, recommended: Sequence[uuid.UUID], relevant: Sequence[uuid.UUID]) -> int:
        relevant_set = set(relevant)
        return sum(1 for item in recommended[: self.k] if item in relevant_set)

    def calculate_precision_at_k(
        self, recommended: Sequence[uuid.UUID], relevant: Sequence[uuid.UUID]
    ) -> float:
        if not recommended:
            return 0.0
        return _divide(self._hits(recommended, relevant), min(self.k, len(recommended)))

    def calculate_recall_at_k(
        self, recommended: Sequence[uuid.UUID], relevant: Sequence[uuid.UUID]
    ) -> float:
        if not relevant:
            return 0.0
        return self._hits(recommended, relevant) / len(relevant)

    def calculate_f1_score(self, precision: float, recall: float) -> float:
        if precision + recall == 0.0:
            return 0.0
        return 2.0 * precision * recall / (precision + recall)

    def calculate_ndcg_at_k(
        self, recommended: Sequence[uuid.UUID], relevant_scores: Mapping[uuid.UUID, float]
    ) -> float:
        """DCG over IDCG, each position p discounted by log2(p)."""
        idcg = self._ideal_dcg(relevant_scores)
        if idcg == 0.0:
            return 0.0
        dcg = self._dcg(recommended, relevant_scores)
        if math.isinf(dcg) and math.isinf(idcg):
            return math.nan
        return dcg / idcg

    def _discounted(self, relevances: Sequence[float]) -> float:
        return sum(
            _divide(relevance, math.log2(position))
            for position, relevance in enumerate(relevances[: self.k], start=1)
        )

    def _dcg(
        self, recommended: Sequence[uuid.UUID], relevant_scores: Mapping[uuid.UUID, float]
    ) -> float:
        return self._discounted([relevant_scores.get(item, 0.0) for item in recommended])

    def _ideal_dcg(self, relevant_scores: Mapping[uuid.UUID, float]) -> float:
        return self._discounted(sorted(relevant_scores.values(), reverse=True))

    def calculate_map(
        self,
        all_recommended: Sequence[Sequence[uuid.UUID]],
        all_relevant: Sequence[Sequence[uuid.UUID]],
    ) -> float:
        if len(all_recommended) != len(all_relevant) or not all_recommended:
            return 0.0
        total = sum(
            self._average_precision(recommended, relevant)
            for recommended, relevant in zip(all_recommended, all_relevant)
        )
        return total / len(all_recommended)

    def _average_precision(
        self, recommended: Sequence[uuid.UUID], relevant: Sequence[uuid.UUID]
    ) -> float:
        if not relevant:
            return 0.0
        relevant_set = set(relevant)
        found = 0
        precision_sum = 0.0
        for rank, item in enumerate(recommended[: self.k], start=1):
            if item in relevant_set:
                found += 1
                precision_sum += found / rank
        if found == 0:
            return 0.0
        return precision_sum / len(relevant)

    def calculate_coverage(
        self, recommended_items: Sequence[uuid.UUID], all_items: Sequence[uuid.UUID]
    ) -> float:
        if not all_items:
            return 0.0
        recommended_set = set(recommended_items)
        covered = sum(1 for item in all_items if item in recommended_set)
        return covered / len(all_items)

    def calculate_diversity(
        self,
        recommended_items: Sequence[uuid.UUID],
        item_features: Mapping[uuid.UUID, Sequence[float]],
    ) -> float:
        """Mean pairwise Euclidean distance between recommended items with features."""
        if len(recommended_items) < 2:
            return 0.0
        distances = [
            euclidean_distance(item_features[a], item_features[b])
            for a, b in combinations(recommended_items, 2)
            if a in item_features and b in item_features
        ]
        if not distances:
            return 0.0
        return sum(distances) / len(distances)

    def calculate_novelty(
        self,
        recommended_items: Sequence[uuid.UUID],
        item_popularity: Mapping[uuid.UUID, float],
    ) -> float:
        """Mean self-information -log2(popularity); unknown or zero popularity counts 0."""
        if not recommended_items:
            return 0.0
        total = 0.0
        for item in recommended_items:
            popularity = item_popularity.get(item, 0.0)
            if popularity > 0.0:
                total += -math.log2(popularity)
        return total / len(recommended_items)

    def calculate_all_metrics(
        self,
        recommended: Sequence[uuid.UUID],
        relevant: Sequence[uuid.UUID],
        relevant_scores: Mapping[uuid.UUID, float],
        all_items: Sequence[uuid.UUID],
        item_features: Mapping[uuid.UUID, Sequence[float]],
        item_popularity: Mapping[uuid.UUID, float],
    ) -> RecommendationMetrics:
        """Every single-query metric; MAP needs several queries and is left at 0.0."""
        precision = self.calculate_precision_at_k(recommended, relevant)
        recall = self.calculate_recall_at_k(recommended, relevant)
        return RecommendationMetrics(
            precision_at_k=precision,
            recall_at_k=recall,
            f1_score=self.calculate_f1_score(precision, recall),
            ndcg_at_k=self.calculate_ndcg_at_k(recommended, relevant_scores),
            map_score=0.0,
            coverage=self.calculate_coverage(recommended, all_items),
            diversity=self.calculate_diversity(recommended, item_features),
            novelty=self.calculate_novelty(recommended, item_popularity),
        )


@dataclass
class OnlineMetrics:
    click_through_rate: float
    conversion_rate: float
    engagement_rate: float
    session_length: float
    bounce_rate: float


def _rate(count: float, total: int) -> float:
    return count / total if total > 0 else 0.0


@dataclass
class OnlineMetricsCalculator:
    """Running counters of live traffic from which rates are derived."""

    total_impressions: int = 0
    total_clicks: int = 0
    total_conversions: int = 0
    total_engagements: int = 0
    total_sessions: int = 0
    total_bounces: int = 0
    total_session_time: float = 0.0

    def record_impression(self) -> None:
        self.total_impressions += 1

    def record_click(self) -> None:
        self.total_clicks += 1

    def record_conversion(self) -> None:
        self.total_conversions += 1

    def record_engagement(self) -> None:
        self.total_engagements += 1

    def record_session(self, duration_seconds: float, bounced: bool) -> None:
        self.total_sessions += 1
        self.total_session_time += duration_seconds
        if bounced:
            self.total_bounces += 1

    def calculate_metrics(self) -> OnlineMetrics:
        return OnlineMetrics(
            click_through_rate=_rate(self.total_clicks, self.total_impressions),
            conversion_rate=_rate(self.total_conversions, self.total_clicks),
            engagement_rate=_rate(self.total_engagements, self.total_impressions),
            session_length=_rate(self.total_session_time, self.total_sessions),
            bounce_rate=_rate(self.total_bounces, self.total_sessions),
        )

    def reset(self) -> None:
        self.total_impressions = 0
        self.total_clicks = 0
        self.total_conversions = 0
        self.total_engagements = 0
        self.total_sessions = 0
        self.total_bounces = 0
        self.total_session_time = 0.0