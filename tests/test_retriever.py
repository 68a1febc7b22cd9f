import random
import uuid

import pytest

from milvuso.retriever import HNSWRetriever, InMemoryRetriever


@pytest.mark.asyncio
async def test_in_memory_search_from_integration_case():
    retriever = InMemoryRetriever(64)
    id1, id2 = uuid.uuid4(), uuid.uuid4()
    await retriever.add_vector(id1, [1.0] * 64)
    await retriever.add_vector(id2, [0.5] * 64)
    results = await retriever.search_similar([1.0] * 64, 2)
    assert len(results) == 2
    assert results[0][0] == id1


@pytest.mark.asyncio
async def test_in_memory_orders_by_cosine():
    retriever = InMemoryRetriever(2)
    a, b, c = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
    await retriever.add_vector(a, [0.0, 1.0])
    await retriever.add_vector(b, [1.0, 0.0])
    await retriever.add_vector(c, [-1.0, 0.0])
    results = await retriever.search_similar([1.0, 0.0], 3)
    assert [r[0] for r in results] == [b, a, c]
    assert [r[1] for r in results] == pytest.approx([1.0, 0.0, -1.0])


@pytest.mark.asyncio
async def test_in_memory_truncates_and_handles_zero_vector():
    retriever = InMemoryRetriever(2)
    zero = uuid.uuid4()
    await retriever.add_vector(zero, [0.0, 0.0])
    await retriever.add_vector(uuid.uuid4(), [1.0, 1.0])
    results = await retriever.search_similar([1.0, 1.0], 1)
    assert len(results) == 1
    assert results[0][1] == pytest.approx(1.0)
    all_results = dict(await retriever.search_similar([1.0, 1.0], 5))
    assert all_results[zero] == 0.0


@pytest.mark.asyncio
async def test_in_memory_remove_and_update():
    retriever = InMemoryRetriever(2)
    a = uuid.uuid4()
    await retriever.add_vector(a, [1.0, 0.0])
    await retriever.update_vector(a, [0.0, 1.0])
    results = await retriever.search_similar([0.0, 1.0], 1)
    assert results[0][1] == pytest.approx(1.0)
    await retriever.remove_vector(a)
    assert await retriever.search_similar([0.0, 1.0], 1) == []


@pytest.mark.asyncio
async def test_in_memory_dimension_mismatch():
    retriever = InMemoryRetriever(3)
    with pytest.raises(ValueError):
        await retriever.add_vector(uuid.uuid4(), [1.0])
    with pytest.raises(ValueError):
        await retriever.search_similar([1.0], 1)
    with pytest.raises(ValueError):
        await retriever.update_vector(uuid.uuid4(), [1.0, 2.0])


@pytest.mark.asyncio
async def test_hnsw_search_from_integration_case():
    hnsw = HNSWRetriever(64, 16, 200)
    id1, id2 = uuid.uuid4(), uuid.uuid4()
    await hnsw.add_vector(id1, [1.0] * 64)
    await hnsw.add_vector(id2, [0.5] * 64)
    results = await hnsw.search_similar([1.0] * 64, 2)
    assert len(results) >= 1
    assert {r[0] for r in results} <= {id1, id2}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "stored, query, expected",
    [([1.0] * 4, [0.0] * 4, 4.0), ([0.5] * 4, [0.0] * 4, 1.0), ([0.0] * 4, [0.3] * 4, 0.0)],
)
async def test_hnsw_distance_is_truncated_squared_l2(stored, query, expected):
    hnsw = HNSWRetriever(4, 16, 200)
    only = uuid.uuid4()
    await hnsw.add_vector(only, stored)
    assert await hnsw.search_similar(query, 5) == [(only, expected)]


@pytest.mark.asyncio
async def test_hnsw_empty_and_removed():
    hnsw = HNSWRetriever(2, 16, 200, rng=random.Random(7))
    assert await hnsw.search_similar([0.0, 0.0], 3) == []
    node = uuid.uuid4()
    await hnsw.add_vector(node, [1.0, 1.0])
    await hnsw.remove_vector(node)
    assert await hnsw.search_similar([0.0, 0.0], 3) == []


@pytest.mark.asyncio
async def test_hnsw_results_are_sorted_and_known():
    hnsw = HNSWRetriever(8, 16, 200, rng=random.Random(3))
    ids = []
    for i in range(50):
        node = uuid.uuid4()
        ids.append(node)
        await hnsw.add_vector(node, [float(i + j) / 10 for j in range(8)])
    results = await hnsw.search_similar([0.5] * 8, 10)
    assert results
    assert all(node in ids for node, _ in results)
    distances = [d for _, d in results]
    assert distances == sorted(distances)


@pytest.mark.asyncio
async def test_hnsw_dimension_mismatch():
    hnsw = HNSWRetriever(3, 16, 200)
    with pytest.raises(ValueError):
        await hnsw.add_vector(uuid.uuid4(), [1.0])
    with pytest.raises(ValueError):
        await hnsw.search_similar([1.0, 2.0], 1)