"""Domain records exchanged between the recommendation services."""

from __future__ import annotations

import dataclasses
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _format_time(timestamp: datetime) -> str:
    return timestamp.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_time(text: str) -> datetime:
    timestamp = datetime.fromisoformat(text)
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(timezone.utc)


def _require(data: Mapping[str, Any], key: str) -> Any:
    try:
        return data[key]
    except KeyError:
        raise ValueError(f"missing field '{key}'") from None


def _uuid(value: Any) -> uuid.UUID:
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


class ActionType(Enum):
    """Kinds of interaction a user can have with an item."""

    CLICK = "Click"
    LIKE = "Like"
    SHARE = "Share"
    PURCHASE = "Purchase"
    VIEW = "View"
    CONVERT = "Convert"


@dataclass
class UserAction:
    """A single interaction of a user with an item."""

    user_id: uuid.UUID
    item_id: uuid.UUID
    action_type: ActionType
    timestamp: datetime = field(default_factory=_now)
    context: Any = None

    def with_context(self, context: Any) -> UserAction:
        """Return a copy of this action carrying the given context."""
        return dataclasses.replace(self, context=context)

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": str(self.user_id),
            "item_id": str(self.item_id),
            "action_type": self.action_type.value,
            "timestamp": _format_time(self.timestamp),
            "context": self.context,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> UserAction:
        return cls(
            user_id=_uuid(_require(data, "user_id")),
            item_id=_uuid(_require(data, "item_id")),
            action_type=ActionType(_require(data, "action_type")),
            timestamp=_parse_time(_require(data, "timestamp")),
            context=data.get("context"),
        )


@dataclass
class UserProfile:
    """A user's embedding together with bookkeeping about their activity."""

    user_id: uuid.UUID
    embedding: list[float] = field(default_factory=list)
    preferences: list[str] = field(default_factory=list)
    last_updated: datetime = field(default_factory=_now)
    interaction_count: int = 0

    def update_embedding(self, new_embedding: list[float]) -> None:
        self.embedding = list(new_embedding)
        self.last_updated = _now()

    def increment_interactions(self) -> None:
        self.interaction_count += 1
        self.last_updated = _now()

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": str(self.user_id),
            "embedding": list(self.embedding),
            "preferences": list(self.preferences),
            "last_updated": _format_time(self.last_updated),
            "interaction_count": self.interaction_count,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> UserProfile:
        return cls(
            user_id=_uuid(_require(data, "user_id")),
            embedding=[float(x) for x in _require(data, "embedding")],
            preferences=[str(p) for p in _require(data, "preferences")],
            last_updated=_parse_time(_require(data, "last_updated")),
            interaction_count=int(_require(data, "interaction_count")),
        )


@dataclass
class ItemFeature:
    """An item's embedding and descriptive attributes."""

    item_id: uuid.UUID
    embedding: list[float]
    category: str
    tags: list[str] = field(default_factory=list)
    popularity_score: float = 0.0
    created_at: datetime = field(default_factory=_now)

    def with_tags(self, tags: list[str]) -> ItemFeature:
        return dataclasses.replace(self, tags=list(tags))

    def with_popularity(self, score: float) -> ItemFeature:
        return dataclasses.replace(self, popularity_score=score)

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_id": str(self.item_id),
            "embedding": list(self.embedding),
            "category": self.category,
            "tags": list(self.tags),
            "popularity_score": self.popularity_score,
            "created_at": _format_time(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ItemFeature:
        return cls(
            item_id=_uuid(_require(data, "item_id")),
            embedding=[float(x) for x in _require(data, "embedding")],
            category=str(_require(data, "category")),
            tags=[str(t) for t in _require(data, "tags")],
            popularity_score=float(_require(data, "popularity_score")),
            created_at=_parse_time(_require(data, "created_at")),
        )


@dataclass
class TrainingExample:
    """A labelled user/item pair with the features used to learn from it."""

    user_id: uuid.UUID
    item_id: uuid.UUID
    label: float
    user_features: list[float]
    item_features: list[float]
    context_features: list[float]
    timestamp: datetime = field(default_factory=_now)


@dataclass
class RecommendationRequest:
    user_id: uuid.UUID
    num_recommendations: int = 10
    filter_categories: list[str] | None = None
    exclude_items: list[uuid.UUID] | None = None


@dataclass
class RecommendationItem:
    item_id: uuid.UUID
    score: float
    reason: str
    category: str


@dataclass
class RecommendationResponse:
    user_id: uuid.UUID
    recommendations: list[RecommendationItem]
    generated_at: datetime = field(default_factory=_now)


@dataclass
class ModelParameters:
    version: str
    user_embedding_weights: list[list[float]]
    item_embedding_weights: list[list[float]]
    bias_weights: list[float]
    updated_at: datetime = field(default_factory=_now)


@dataclass
class FeatureVector:
    id: uuid.UUID
    vector: list[float]
    metadata: Any = field(default_factory=dict)


@dataclass
class BatchTrainingData:
    batch_id: uuid.UUID
    examples: list[TrainingExample]
    created_at: datetime = field(default_factory=_now)