"""Request-facing serving layer: recommendations, similarity lookups and stats."""

import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Sequence

from milvuso.config import Config
from milvuso.models import ModelParameters, RecommendationItem, RecommendationRequest, RecommendationResponse
from milvuso.recommendation import RecommendationService
from milvuso.vector_db import VectorDbService
from milvuso.vectors import cosine_similarity

_log = logging.getLogger(__name__)


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class ServingService:
    """Wraps the recommendation service with lookups, explanations and counters."""

    def __init__(
        self,
        vector_db: VectorDbService,
        recommendation_service: RecommendationService,
        config: Config,
    ) -> None:
        self.vector_db = vector_db
        self.recommendation_service = recommendation_service
        self.config = config
        self._model_parameters: ModelParameters | None = None
        self._stats: dict[str, int] = {}

    async def serve_recommendations(self, request: RecommendationRequest) -> RecommendationResponse:
        self._increment("total_requests")
        start = time.monotonic()
        response = await self.recommendation_service.get_recommendations(request)
        latency = _elapsed_ms(start)
        self._record_latency(latency)
        self._increment("successful_requests")
        _log.info("Served recommendations for user %s in %dms", request.user_id, latency)
        return response

    async def batch_serve_recommendations(
        self, requests: Sequence[RecommendationRequest]
    ) -> list[RecommendationResponse]:
        """Serve every request; failed requests are counted and left out."""
        self._increment("batch_requests")
        start = time.monotonic()
        responses = []
        for request in requests:
            try:
                responses.append(await self.recommendation_service.get_recommendations(request))
            except Exception as exc:
                _log.error("Failed to get recommendations for user %s: %s", request.user_id, exc)
                self._increment("failed_requests")
        latency = _elapsed_ms(start)
        self._record_latency(latency)
        _log.info("Batch served %d recommendations in %dms", len(responses), latency)
        return responses

    async def get_similar_users(self, user_id: uuid.UUID, top_k: int) -> list[tuple[uuid.UUID, float]]:
        profile = await self.vector_db.get_user_profile(user_id)
        if profile is None:
            return []
        similar = await self.vector_db.search_similar_users(profile.embedding, top_k + 1)
        return [pair for pair in similar if pair[0] != user_id][:top_k]

    async def get_similar_items(self, item_id: uuid.UUID, top_k: int) -> list[tuple[uuid.UUID, float]]:
        feature = await self.vector_db.get_item_feature(item_id)
        if feature is None:
            return []
        similar = await self.vector_db.search_similar_items(feature.embedding, top_k + 1)
        return [pair for pair in similar if pair[0] != item_id][:top_k]

    async def predict_user_item_score(self, user_id: uuid.UUID, item_id: uuid.UUID) -> float:
        """Cosine similarity of the user and item embeddings, 0.0 if either is unknown."""
        profile = await self.vector_db.get_user_profile(user_id)
        feature = await self.vector_db.get_item_feature(item_id)
        if profile is None or feature is None:
            return 0.0
        return cosine_similarity(profile.embedding, feature.embedding)

    async def get_trending_items(self, category: str | None, top_k: int) -> list[RecommendationItem]:
        """Placeholder trending list with descending scores from 0.9."""
        return [
            RecommendationItem(
                item_id=uuid.uuid4(),
                score=0.9 - rank * 0.1,
                reason="Trending item",
                category=category if category is not None else "general",
            )
            for rank in range(top_k)
        ]

    async def get_personalized_trending(self, user_id: uuid.UUID, top_k: int) -> list[RecommendationItem]:
        profile = await self.vector_db.get_user_profile(user_id)
        if profile is None:
            return await self.get_trending_items(None, top_k)
        similar = await self.vector_db.search_similar_items(profile.embedding, top_k * 2)
        items = []
        for item_id, score in similar[:top_k]:
            feature = await self.vector_db.get_item_feature(item_id)
            if feature is not None:
                items.append(
                    RecommendationItem(
                        item_id=item_id,
                        score=score,
                        reason=f"Personalized trending (score: {score:.3f})",
                        category=feature.category,
                    )
                )
        return items

    async def update_model_parameters(self, parameters: ModelParameters) -> None:
        self._model_parameters = parameters
        self._increment("model_updates")
        _log.info("Updated model parameters")

    async def get_model_version(self) -> str | None:
        if self._model_parameters is None:
            return None
        return self._model_parameters.version

    async def health_check(self) -> dict[str, Any]:
        try:
            await self.vector_db.get_user_profile(uuid.uuid4())
            vector_db_healthy = True
        except Exception:
            vector_db_healthy = False
        return {
            "vector_db": vector_db_healthy,
            "model_loaded": self._model_parameters is not None,
            "uptime": datetime.now(timezone.utc).isoformat(),
        }

    async def get_serving_stats(self) -> dict[str, int]:
        return dict(self._stats)

    async def get_user_recommendations_with_explanation(
        self, user_id: uuid.UUID, num_recommendations: int
    ) -> list[tuple[RecommendationItem, str]]:
        request = RecommendationRequest(user_id=user_id, num_recommendations=num_recommendations)
        response = await self.serve_recommendations(request)
        return [
            (item, await self._explain(user_id, item)) for item in response.recommendations
        ]

    async def _explain(self, user_id: uuid.UUID, item: RecommendationItem) -> str:
        profile = await self.vector_db.get_user_profile(user_id)
        feature = await self.vector_db.get_item_feature(item.item_id)
        if profile is None or feature is None:
            return "Recommended based on general popularity"
        similarity = cosine_similarity(profile.embedding, feature.embedding)
        if similarity > 0.8:
            return f"Highly recommended based on your preferences in {feature.category} category"
        if similarity > 0.6:
            return f"Recommended because you like similar {feature.category} items"
        if feature.popularity_score > 0.8:
            return f"Popular {feature.category} item that might interest you"
        return f"Recommended to help you discover new {feature.category} content"

    def _increment(self, key: str) -> None:
        self._stats[key] = self._stats.get(key, 0) + 1

    def _record_latency(self, latency_ms: int) -> None:
        current_avg = self._stats.get("avg_latency_ms", 0)
        count = self._stats.get("total_requests", 1)
        if count == 1:
            new_avg = latency_ms
        else:
            new_avg = (current_avg * (count - 1) + latency_ms) // count
        self._stats["avg_latency_ms"] = new_avg
        if latency_ms > self._stats.get("max_latency_ms", 0):
            self._stats["max_latency_ms"] = latency_ms