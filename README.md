# milvuso

A toolkit for building embedding-based recommenders in one Python process.

## What is in it

- `milvuso.models`: dataclasses for the records that move through the system:
  `ActionType`, `UserAction`, `UserProfile`, `ItemFeature`, `TrainingExample`,
  `RecommendationRequest`, `RecommendationItem`, `RecommendationResponse`,
  `ModelParameters`, `FeatureVector` and `BatchTrainingData`. `UserAction`,
  `UserProfile` and `ItemFeature` convert to and from JSON-ready dicts with
  `to_dict()` and `from_dict()`.
- `milvuso.config`: `Config` and its sections (`ServerConfig`, `MilvusConfig`,
  `KafkaConfig`, `RedisConfig`, `PostgresConfig`, `RecommendationConfig`,
  `TrainingConfig`) with built-in defaults. `Config.from_file(path)` reads a
  TOML or JSON file (the extension may be left off) and then applies
  `MILVUSO_<SECTION>_<FIELD>` environment variables. Every section and field
  must be present. `Config.from_dict(data)` builds a config from a mapping.
- `milvuso.vectors`: `cosine_similarity`, `euclidean_distance`,
  `manhattan_distance`, `normalize_vector`, `weighted_average`,
  `top_k_indices`, `softmax`, `sigmoid`, `relu`, `calculate_diversity_score`,
  `exponential_decay_weight`, `generate_user_id_from_string`, `batch_process`,
  and the coroutine `retry_with_backoff`.
- `milvuso.initializer`: Xavier, He and LeCun initialisers in uniform and normal
  forms, plus `uniform`, `normal`, `zeros`, `ones`, `constant`, `orthogonal`
  and `sparse_random`. `InitializationMethod(kind=InitKind..., ...)` bundles a
  scheme with its parameters. `EmbeddingInitializer` gives Xavier-uniform
  embeddings that are reproducible for each identifier.
- `milvuso.optimizer`: `SGD`, `Adam`, `AdaGrad` and `RMSprop`. Each
  `update(params, gradients)` returns the new float32 parameters as a NumPy
  array. The stateful optimisers also offer `update_with_key` for keeping
  separate state per parameter set.
- `milvuso.collaborative`: `CollaborativeFiltering`, a matrix factorisation
  trained by SGD. Its `train`, `predict`, `get_user_embedding`,
  `get_item_embedding` and `update_parameters` methods are coroutines.
- `milvuso.retriever`: `InMemoryRetriever`, an exhaustive search ranked by
  cosine similarity, and `HNSWRetriever`, a layered graph index that ranks by
  squared L2 distance truncated to whole numbers. Both have async `add_vector`,
  `update_vector`, `remove_vector` and `search_similar` methods, and both raise
  `ValueError` when a vector has the wrong dimension.
- `milvuso.metrics`: `MetricsCalculator` computes precision@k, recall@k, F1,
  NDCG@k, MAP, coverage, diversity and novelty.
  `OnlineMetricsCalculator` counts impressions, clicks, conversions,
  engagements and sessions, and reports them as `OnlineMetrics` rates.
- `milvuso.validation`: `validate_*` checks for every record type, plus
  `sanitize_string`, `validate_uuid_string`, `validate_embedding_dimension` and
  `validate_batch_size`. A failed check raises `ValidationError`, which is a
  subclass of `ValueError`.
- Services, all async:
  - `milvuso.vector_db.VectorDbService` stores user profiles and item features
    in memory, keeps them searchable, and returns copies of them.
  - `milvuso.recommendation.RecommendationService` retrieves candidates, scores
    them and filters them against `similarity_threshold`. It also updates user
    embeddings from actions and trains its model online. It caches records in
    memory and in Redis. Pass `redis_client=` an async client, or any object
    with async `get` and `set(key, value, ex=...)`. Without one it connects to
    `config.redis.url`.
  - `milvuso.serving.ServingService` wraps the recommendation service. It adds
    similar-user and similar-item lookups, explanations, a health check and
    request and latency counters.
  - `milvuso.features` builds feature vectors from actions. Its
    `training_examples_from_actions` joins actions with stored profiles and
    items to make training examples.
  - `milvuso.training.TrainingService` trains the model in batches and adds
    negative samples. Call `batch_training_worker(queue)` with an
    `asyncio.Queue`; it stops when `None` is put on the queue. The service
    also pushes learned embeddings to the vector store and can save model
    parameters and load them back.

## Installation

```
pip install .
```

With the test tools:

```
pip install ".[test]"
```

## Quick start

```python
import asyncio
import uuid

from milvuso.config import Config
from milvuso.initializer import xavier_uniform
from milvuso.metrics import MetricsCalculator
from milvuso.models import ActionType, ItemFeature, UserAction, UserProfile
from milvuso.optimizer import Adam
from milvuso.retriever import InMemoryRetriever


async def demo():
    config = Config()
    dim = config.recommendation.embedding_dim

    user_id = uuid.uuid4()
    profile = UserProfile(user_id, embedding=[0.0] * dim)

    items = [
        ItemFeature(uuid.uuid4(), xavier_uniform(dim), "books").with_popularity(0.5)
        for _ in range(5)
    ]

    retriever = InMemoryRetriever(dim)
    for item in items:
        await retriever.add_vector(item.item_id, item.embedding)

    similar = await retriever.search_similar(items[0].embedding, 3)
    print(similar)  # [(item_id, cosine_similarity), ...], best first

    action = UserAction(user_id, items[0].item_id, ActionType.LIKE)
    print(action.to_dict())

    calc = MetricsCalculator(5)
    recommended = [item_id for item_id, _ in similar]
    print(calc.calculate_precision_at_k(recommended, [items[0].item_id]))

    print(Adam().update([1.0, 2.0, 3.0], [0.1, 0.2, 0.3]))


asyncio.run(demo())
```

## What it does not do

Everything runs inside the calling process. The package provides:

- no HTTP server and no command-line programs;
- no message-broker producer or consumer;
- no external vector database. `VectorDbService` keeps everything in memory
  and loses it when the process exits;
- no persistent model storage. `TrainingService.save_model_parameters` keeps
  saved versions in memory, and `load_model_parameters` only finds versions
  saved by the same instance.

Redis is the only outside service the package talks to, and only through
`RecommendationService`.

## Running the tests

```
pytest
```