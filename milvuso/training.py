"""Batch training of the collaborative-filtering model from streamed examples."""

import asyncio
import logging
import math
import time
import uuid
from datetime import datetime, timezone
from typing import Sequence

from milvuso.collaborative import CollaborativeFiltering
from milvuso.config import Config
from milvuso.initializer import xavier_uniform
from milvuso.models import BatchTrainingData, ModelParameters, TrainingExample
from milvuso.vector_db import VectorDbService

_log = logging.getLogger(__name__)

REGULARIZATION = 0.01
BATCH_TIMEOUT_SECONDS = 30.0
MAX_NEGATIVES_PER_POSITIVE = 5
POSITIVE_LABEL_THRESHOLD = 0.5


class TrainingService:
    """Trains the model in batches and keeps the vector store's embeddings current."""

    def __init__(
        self,
        vector_db: VectorDbService,
        config: Config,
        *,
        batch_timeout: float = BATCH_TIMEOUT_SECONDS,
        save_interval: float | None = None,
    ) -> None:
        self.vector_db = vector_db
        self.config = config
        self.batch_timeout = batch_timeout
        self.save_interval = (
            float(config.training.model_save_interval) if save_interval is None else save_interval
        )
        self.algorithm = CollaborativeFiltering(
            embedding_dim=config.recommendation.embedding_dim,
            learning_rate=config.training.learning_rate,
            regularization=REGULARIZATION,
        )
        self.training_buffer: list[TrainingExample] = []
        self.last_model_save = datetime.now(timezone.utc)
        self.last_batch_data: BatchTrainingData | None = None
        self._saved: dict[str, ModelParameters] = {}
        self._lock = asyncio.Lock()

    async def batch_training_worker(self, queue: "asyncio.Queue[TrainingExample | None]") -> None:
        """Consume examples until a None arrives, training on full or timed-out batches."""
        batch: list[TrainingExample] = []
        last_batch_time = time.monotonic()
        while True:
            try:
                example = await asyncio.wait_for(queue.get(), timeout=self.batch_timeout)
            except asyncio.TimeoutError:
                if batch:
                    await self._process_logged(batch)
                    batch = []
                    last_batch_time = time.monotonic()
                continue

            if example is None:
                _log.warning("Training example channel closed")
                break

            batch.append(example)
            timed_out = time.monotonic() - last_batch_time > self.batch_timeout
            if len(batch) >= self.config.training.batch_size or timed_out:
                await self._process_logged(batch)
                batch = []
                last_batch_time = time.monotonic()

    async def _process_logged(self, batch: Sequence[TrainingExample]) -> None:
        try:
            await self.process_training_batch(batch)
        except Exception as exc:
            _log.error("Failed to process training batch: %s", exc)

    async def process_training_batch(self, examples: Sequence[TrainingExample]) -> None:
        if not examples:
            return
        _log.info("Processing training batch of %d examples", len(examples))

        augmented = await self.add_negative_samples(examples)
        async with self._lock:
            await self.algorithm.train(augmented)
        await self._update_embeddings(augmented)
        self.training_buffer.extend(augmented)
        _log.info("Completed training batch processing")

    async def add_negative_samples(self, examples: Sequence[TrainingExample]) -> list[TrainingExample]:
        """The examples followed by random negative items for each positive one."""
        augmented = list(examples)
        ratio = self.config.training.negative_sampling_ratio
        per_positive = 0 if math.isnan(ratio) or ratio <= 0 else int(ratio)
        per_positive = min(per_positive, MAX_NEGATIVES_PER_POSITIVE)
        dim = self.config.recommendation.embedding_dim

        for example in examples:
            if example.label <= POSITIVE_LABEL_THRESHOLD:
                continue
            augmented.extend(
                TrainingExample(
                    user_id=example.user_id,
                    item_id=uuid.uuid4(),
                    label=0.0,
                    user_features=list(example.user_features),
                    item_features=xavier_uniform(dim),
                    context_features=list(example.context_features),
                    timestamp=example.timestamp,
                )
                for _ in range(per_positive)
            )
        return augmented

    async def _update_embeddings(self, examples: Sequence[TrainingExample]) -> None:
        user_updates = {example.user_id: example.user_features for example in examples}
        item_updates = {example.item_id: example.item_features for example in examples}

        for user_id, features in user_updates.items():
            try:
                await self.vector_db.update_user_embedding(user_id, list(features))
            except ValueError as exc:
                _log.warning("Failed to update user embedding for %s: %s", user_id, exc)

        for item_id, features in item_updates.items():
            try:
                await self.vector_db.update_item_embedding(item_id, list(features))
            except ValueError as exc:
                _log.warning("Failed to update item embedding for %s: %s", item_id, exc)

    async def model_saving_worker(self) -> None:
        """Save the model parameters every save interval, until cancelled."""
        while True:
            await asyncio.sleep(self.save_interval)
            try:
                await self.save_model_parameters()
            except Exception as exc:
                _log.error("Failed to save model parameters: %s", exc)

    async def save_model_parameters(self) -> ModelParameters:
        async with self._lock:
            user_weights = [embedding.tolist() for embedding in self.algorithm.user_embeddings.values()]
            item_weights = [embedding.tolist() for embedding in self.algorithm.item_embeddings.values()]
        now = datetime.now(timezone.utc)
        parameters = ModelParameters(
            version=f"v{int(now.timestamp())}",
            user_embedding_weights=user_weights,
            item_embedding_weights=item_weights,
            bias_weights=[0.0] * self.config.recommendation.embedding_dim,
            updated_at=now,
        )
        self._store(parameters)
        self.last_model_save = datetime.now(timezone.utc)
        _log.info("Model parameters saved successfully")
        return parameters

    def _store(self, parameters: ModelParameters) -> None:
        _log.info("Saving model parameters version: %s", parameters.version)
        self._saved[parameters.version] = parameters
        if self.training_buffer:
            self.last_batch_data = BatchTrainingData(
                batch_id=uuid.uuid4(),
                examples=list(self.training_buffer),
                created_at=datetime.now(timezone.utc),
            )
            _log.info(
                "Created batch training data with %d examples",
                len(self.last_batch_data.examples),
            )

    async def load_model_parameters(self, version: str) -> None:
        """Apply a previously saved parameter version; unknown versions leave the model as is."""
        _log.info("Loading model parameters version: %s", version)
        parameters = self._saved.get(version)
        if parameters is None:
            _log.warning("No saved model parameters with version %s", version)
            return
        async with self._lock:
            await self.algorithm.update_parameters(parameters)

    async def get_training_stats(self) -> dict[str, object]:
        return {
            "user_embeddings_count": len(self.algorithm.user_embeddings),
            "item_embeddings_count": len(self.algorithm.item_embeddings),
            "training_buffer_size": len(self.training_buffer),
            "last_model_save": self.last_model_save.isoformat(),
        }