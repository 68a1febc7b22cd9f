"""Matrix-factorisation collaborative filtering trained by SGD."""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from milvuso.initializer import xavier_uniform
from milvuso.models import ModelParameters, TrainingExample


class RecommendationAlgorithm(ABC):
    """A model that learns from examples and scores user/item pairs."""

    @abstractmethod
    async def train(self, examples: Sequence[TrainingExample]) -> None: ...

    @abstractmethod
    async def predict(self, user_features: Sequence[float], item_features: Sequence[float]) -> float: ...

    @abstractmethod
    async def get_user_embedding(self, user_id: uuid.UUID) -> list[float]: ...

    @abstractmethod
    async def get_item_embedding(self, item_id: uuid.UUID) -> list[float]: ...

    @abstractmethod
    async def update_parameters(self, parameters: ModelParameters) -> None: ...


def _vector(values: Sequence[float]) -> np.ndarray:
    return np.asarray(values, dtype=np.float32)


@dataclass(eq=False)
class CollaborativeFiltering(RecommendationAlgorithm):
    """User and item embeddings whose dot product predicts the label."""

    embedding_dim: int
    learning_rate: float
    regularization: float
    user_embeddings: dict[uuid.UUID, np.ndarray] = field(default_factory=dict)
    item_embeddings: dict[uuid.UUID, np.ndarray] = field(default_factory=dict)
    model_version: str | None = None

    def initialize_user_embedding(self, user_id: uuid.UUID) -> None:
        if user_id not in self.user_embeddings:
            self.user_embeddings[user_id] = _vector(xavier_uniform(self.embedding_dim))

    def initialize_item_embedding(self, item_id: uuid.UUID) -> None:
        if item_id not in self.item_embeddings:
            self.item_embeddings[item_id] = _vector(xavier_uniform(self.embedding_dim))

    def compute_loss(self, examples: Sequence[TrainingExample]) -> float:
        """Mean squared error over the examples whose user and item are both known."""
        errors = [
            float(example.label - np.dot(self.user_embeddings[example.user_id],
                                         self.item_embeddings[example.item_id])) ** 2
            for example in examples
            if example.user_id in self.user_embeddings and example.item_id in self.item_embeddings
        ]
        if not errors:
            return 0.0
        return sum(errors) / len(errors)

    def sgd_update(self, example: TrainingExample) -> None:
        self.initialize_user_embedding(example.user_id)
        self.initialize_item_embedding(example.item_id)

        user = self.user_embeddings[example.user_id]
        item = self.item_embeddings[example.item_id]
        error = np.float32(example.label) - np.dot(user, item)
        reg = np.float32(self.regularization)
        lr = np.float32(self.learning_rate)

        user_gradient = item * error - user * reg
        item_gradient = user * error - item * reg
        self.user_embeddings[example.user_id] = user + user_gradient * lr
        self.item_embeddings[example.item_id] = item + item_gradient * lr

    async def train(self, examples: Sequence[TrainingExample]) -> None:
        for example in examples:
            self.sgd_update(example)

    async def predict(self, user_features: Sequence[float], item_features: Sequence[float]) -> float:
        user = _vector(user_features)
        item = _vector(item_features)
        if user.shape != item.shape:
            raise ValueError(
                f"feature length mismatch: {user.shape[0]} user vs {item.shape[0]} item"
            )
        return float(np.dot(user, item))

    async def get_user_embedding(self, user_id: uuid.UUID) -> list[float]:
        """The learned embedding, or a fresh random one for an unknown user."""
        embedding = self.user_embeddings.get(user_id)
        if embedding is None:
            return xavier_uniform(self.embedding_dim)
        return embedding.tolist()

    async def get_item_embedding(self, item_id: uuid.UUID) -> list[float]:
        """The learned embedding, or a fresh random one for an unknown item."""
        embedding = self.item_embeddings.get(item_id)
        if embedding is None:
            return xavier_uniform(self.embedding_dim)
        return embedding.tolist()

    async def update_parameters(self, parameters: ModelParameters) -> None:
        """Record the version of the parameters last applied; embeddings are learned online."""
        self.model_version = parameters.version