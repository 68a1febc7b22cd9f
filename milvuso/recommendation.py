"""Online recommendation: candidate retrieval, scoring and profile updates."""

import copy
import json
import logging
import uuid
from datetime import timezone
from typing import Any, Callable, Mapping, TypeVar

import redis.asyncio as aioredis
from redis.exceptions import ResponseError

from milvuso.collaborative import CollaborativeFiltering
from milvuso.config import Config
from milvuso.models import (
    ActionType,
    ItemFeature,
    RecommendationItem,
    RecommendationRequest,
    RecommendationResponse,
    TrainingExample,
    UserAction,
    UserProfile,
)
from milvuso.vector_db import VectorDbService

_log = logging.getLogger(__name__)

T = TypeVar("T")

REGULARIZATION = 0.01
PROFILE_LEARNING_RATE = 0.1
CONTEXT_DIM = 10

_ACTION_WEIGHTS = {
    ActionType.VIEW: 0.1,
    ActionType.CLICK: 0.3,
    ActionType.LIKE: 0.7,
    ActionType.SHARE: 0.8,
    ActionType.PURCHASE: 1.0,
    ActionType.CONVERT: 1.0,
}


def action_weight(action_type: ActionType) -> float:
    """How strongly an interaction of this kind signals interest."""
    return _ACTION_WEIGHTS[action_type]


def context_features(action: UserAction) -> list[float]:
    """Hour of day, day of week and action strength, padded to ten values."""
    timestamp = action.timestamp.astimezone(timezone.utc)
    features = [0.0] * CONTEXT_DIM
    features[0] = timestamp.hour / 24.0
    features[1] = timestamp.weekday() / 7.0
    features[2] = action_weight(action.action_type)
    return features


def _profile_key(user_id: uuid.UUID) -> str:
    return f"user_profile:{user_id}"


def _item_key(item_id: uuid.UUID) -> str:
    return f"item_feature:{item_id}"


class RecommendationService:
    """Serves recommendations from a vector store, backed by a two-level cache."""

    def __init__(
        self,
        vector_db: VectorDbService,
        config: Config,
        redis_client: Any = None,
    ) -> None:
        self.vector_db = vector_db
        self.config = config
        self.redis = redis_client if redis_client is not None else aioredis.Redis.from_url(
            config.redis.url
        )
        self.algorithm = CollaborativeFiltering(
            embedding_dim=config.recommendation.embedding_dim,
            learning_rate=config.training.learning_rate,
            regularization=REGULARIZATION,
        )
        self._user_profiles: dict[uuid.UUID, UserProfile] = {}
        self._item_features: dict[uuid.UUID, ItemFeature] = {}

    async def get_recommendations(self, request: RecommendationRequest) -> RecommendationResponse:
        profile = await self._get_or_create_user_profile(request.user_id)
        candidates = await self.vector_db.search_similar_items(
            profile.embedding, request.num_recommendations * 2
        )
        threshold = self.config.recommendation.similarity_threshold
        excluded = set(request.exclude_items) if request.exclude_items is not None else None

        recommendations: list[RecommendationItem] = []
        for item_id, similarity in candidates:
            if excluded is not None and item_id in excluded:
                continue
            feature = await self._get_item_feature(item_id)
            if feature is None:
                continue
            if (
                request.filter_categories is not None
                and feature.category not in request.filter_categories
            ):
                continue
            try:
                prediction = await self.algorithm.predict(profile.embedding, feature.embedding)
            except ValueError:
                prediction = 0.0
            score = (similarity + prediction) / 2.0
            if score >= threshold:
                recommendations.append(
                    RecommendationItem(
                        item_id=item_id,
                        score=score,
                        reason=f"Similar to your preferences (score: {score:.3f})",
                        category=feature.category,
                    )
                )
            if len(recommendations) >= request.num_recommendations:
                break

        recommendations.sort(key=lambda item: item.score, reverse=True)
        return RecommendationResponse(user_id=request.user_id, recommendations=recommendations)

    async def process_user_action(self, action: UserAction) -> None:
        """Move the user's embedding towards the item and train on the interaction."""
        profile = await self._get_or_create_user_profile(action.user_id)
        feature = await self._get_item_feature(action.item_id)
        if feature is None:
            return

        weight = action_weight(action.action_type)
        if len(feature.embedding) < len(profile.embedding):
            raise ValueError(
                f"item embedding has {len(feature.embedding)} values, "
                f"user embedding has {len(profile.embedding)}"
            )
        profile.embedding = [
            user * (1.0 - PROFILE_LEARNING_RATE) + item * PROFILE_LEARNING_RATE * weight
            for user, item in zip(profile.embedding, feature.embedding)
        ]
        profile.increment_interactions()

        self._user_profiles[action.user_id] = copy.deepcopy(profile)
        await self.vector_db.update_user_embedding(action.user_id, profile.embedding)

        example = TrainingExample(
            user_id=action.user_id,
            item_id=action.item_id,
            label=weight,
            user_features=list(profile.embedding),
            item_features=list(feature.embedding),
            context_features=context_features(action),
            timestamp=action.timestamp,
        )
        await self.algorithm.train([example])
        _log.info("Processed user action: %s for user %s", action.action_type, action.user_id)

    async def add_item_feature(self, feature: ItemFeature) -> None:
        await self.vector_db.insert_item_feature(feature)
        await self._store(_item_key(feature.item_id), feature.to_dict())
        self._item_features[feature.item_id] = copy.deepcopy(feature)

    async def _get_or_create_user_profile(self, user_id: uuid.UUID) -> UserProfile:
        cached = self._user_profiles.get(user_id)
        if cached is not None:
            return copy.deepcopy(cached)

        key = _profile_key(user_id)
        profile = await self._lookup(key, UserProfile.from_dict)
        if profile is not None:
            self._user_profiles[user_id] = copy.deepcopy(profile)
            return profile

        profile = await self.vector_db.get_user_profile(user_id)
        if profile is None:
            profile = UserProfile(
                user_id, embedding=[0.0] * self.config.recommendation.embedding_dim
            )
            await self.vector_db.insert_user_profile(profile)
            _log.info("Created new user profile: %s", user_id)

        await self._store(key, profile.to_dict())
        self._user_profiles[user_id] = copy.deepcopy(profile)
        return profile

    async def _get_item_feature(self, item_id: uuid.UUID) -> ItemFeature | None:
        cached = self._item_features.get(item_id)
        if cached is not None:
            return copy.deepcopy(cached)

        key = _item_key(item_id)
        feature = await self._lookup(key, ItemFeature.from_dict)
        if feature is None:
            feature = await self.vector_db.get_item_feature(item_id)
            if feature is None:
                return None
            await self._store(key, feature.to_dict())
        self._item_features[item_id] = copy.deepcopy(feature)
        return feature

    async def _lookup(self, key: str, parse: Callable[[Mapping[str, Any]], T]) -> T | None:
        """Read and decode a cached record; any miss or unreadable entry gives None."""
        try:
            raw = await self.redis.get(key)
        except ResponseError:
            return None
        if raw is None:
            return None
        try:
            text = raw.decode("utf-8") if isinstance(raw, bytes) else str(raw)
            return parse(json.loads(text))
        except (ValueError, TypeError, KeyError, AttributeError):
            return None

    async def _store(self, key: str, data: Mapping[str, Any]) -> None:
        await self.redis.set(key, json.dumps(data), ex=self.config.redis.ttl_seconds)