"""In-memory vector store for user profiles and item features."""

import copy
import logging
import uuid
from typing import Sequence

from milvuso.config import Config
from milvuso.models import ItemFeature, UserProfile
from milvuso.retriever import InMemoryRetriever

_log = logging.getLogger(__name__)


class VectorDbService:
    """Keeps user and item embeddings searchable, alongside their records."""

    def __init__(self, config: Config) -> None:
        self.config = config
        self._user_retriever = InMemoryRetriever(config.milvus.dimension)
        self._item_retriever = InMemoryRetriever(config.milvus.dimension)
        self._user_profiles: dict[uuid.UUID, UserProfile] = {}
        self._item_features: dict[uuid.UUID, ItemFeature] = {}
        _log.info(
            "Initialized in-memory vector database with dimension %d",
            config.milvus.dimension,
        )

    async def insert_user_profile(self, profile: UserProfile) -> None:
        await self._user_retriever.add_vector(profile.user_id, profile.embedding)
        self._user_profiles[profile.user_id] = copy.deepcopy(profile)
        _log.info("Inserted user profile: %s", profile.user_id)

    async def insert_item_feature(self, feature: ItemFeature) -> None:
        await self._item_retriever.add_vector(feature.item_id, feature.embedding)
        self._item_features[feature.item_id] = copy.deepcopy(feature)
        _log.info("Inserted item feature: %s", feature.item_id)

    async def search_similar_users(
        self, user_embedding: Sequence[float], top_k: int
    ) -> list[tuple[uuid.UUID, float]]:
        return await self._user_retriever.search_similar(user_embedding, top_k)

    async def search_similar_items(
        self, item_embedding: Sequence[float], top_k: int
    ) -> list[tuple[uuid.UUID, float]]:
        return await self._item_retriever.search_similar(item_embedding, top_k)

    async def get_user_profile(self, user_id: uuid.UUID) -> UserProfile | None:
        """A copy of the stored profile, or None if the user is unknown."""
        profile = self._user_profiles.get(user_id)
        return copy.deepcopy(profile) if profile is not None else None

    async def get_item_feature(self, item_id: uuid.UUID) -> ItemFeature | None:
        """A copy of the stored feature, or None if the item is unknown."""
        feature = self._item_features.get(item_id)
        return copy.deepcopy(feature) if feature is not None else None

    async def update_user_embedding(
        self, user_id: uuid.UUID, new_embedding: Sequence[float]
    ) -> None:
        await self._user_retriever.update_vector(user_id, new_embedding)
        profile = self._user_profiles.get(user_id)
        if profile is not None:
            profile.update_embedding(list(new_embedding))

    async def update_item_embedding(
        self, item_id: uuid.UUID, new_embedding: Sequence[float]
    ) -> None:
        await self._item_retriever.update_vector(item_id, new_embedding)
        feature = self._item_features.get(item_id)
        if feature is not None:
            feature.embedding = list(new_embedding)

    async def batch_insert_profiles(self, profiles: Sequence[UserProfile]) -> None:
        for profile in profiles:
            await self.insert_user_profile(profile)
        _log.info("Batch inserted %d user profiles", len(profiles))

    async def batch_insert_features(self, features: Sequence[ItemFeature]) -> None:
        for feature in features:
            await self.insert_item_feature(feature)
        _log.info("Batch inserted %d item features", len(features))