"""
Advisor pipeline — stage transitions, streaming and failure handling.
"""

import httpx
import pytest

from app.advisor import Stage
from app.advisor.context import NO_PROPERTY_MATCH, NO_TRANSACTION_DATA
from app.advisor.errors import (
    AdvisorValidationError,
    CompletionError,
    EmbeddingError,
    RetrievalError,
)
from app.llm_engine import OpenAIProvider
from app.schemas import AdvisorRequest

from tests.conftest import StubCompletion, StubEmbedder, StubStore, collect, make_row


def _request(question="利回りとは？", transactions=None) -> AdvisorRequest:
    return AdvisorRequest(question=question, transactions=transactions or [])


@pytest.mark.asyncio
async def test_question_with_no_data_grounds_on_faq(make_pipeline, embedder, store, completion):
    pipeline = make_pipeline(embedder, store, completion)

    stream = await pipeline.handle(_request())
    body = await collect(stream)

    prompt = completion.prompts[0]
    assert NO_PROPERTY_MATCH in prompt
    assert NO_TRANSACTION_DATA in prompt
    assert "利回りとは、物件価格に対する年間家賃収入の割合です。" in prompt
    assert "利回りとは？" in prompt
    assert body.decode("utf-8") == "利回りとは…"
    assert stream.stage is Stage.done


@pytest.mark.asyncio
async def test_transactions_are_summarised_into_prompt(make_pipeline, embedder, store, completion):
    pipeline = make_pipeline(embedder, store, completion)
    txs = [
        {"category": "rent", "amount": 100000},
        {"category": "rent", "amount": 50000},
        {"category": "repair", "amount": 20000},
    ]

    await collect(await pipeline.handle(_request("今月の収支は？", txs)))

    assert "rent: 150000" in completion.prompts[0]
    assert "repair: 20000" in completion.prompts[0]


@pytest.mark.asyncio
async def test_hits_reach_prompt(make_pipeline, embedder, completion):
    store = StubStore(rows=[make_row(name="グランメゾン渋谷", similarity=0.83)])
    pipeline = make_pipeline(embedder, store, completion)

    await collect(await pipeline.handle(_request("渋谷の物件は？")))

    assert "物件名: グランメゾン渋谷" in completion.prompts[0]
    assert "類似度: 0.83" in completion.prompts[0]


@pytest.mark.asyncio
@pytest.mark.parametrize("question", [None, "", "   \n"])
async def test_blank_question_is_rejected_before_any_call(make_pipeline, store, completion, question):
    embedder = StubEmbedder()
    pipeline = make_pipeline(embedder, store, completion)

    with pytest.raises(AdvisorValidationError) as exc:
        await pipeline.handle(_request(question))

    assert exc.value.status_code == 400
    assert exc.value.stage == Stage.rejected.value
    assert embedder.calls == []
    assert store.calls == []
    assert completion.prompts == []


@pytest.mark.asyncio
async def test_embedding_failure_fails_before_streaming(make_pipeline, store, completion):
    pipeline = make_pipeline(StubEmbedder(error=RuntimeError("boom")), store, completion)

    with pytest.raises(EmbeddingError) as exc:
        await pipeline.handle(_request())

    assert exc.value.status_code == 500
    assert exc.value.stage == Stage.embedding.value
    assert completion.prompts == []


@pytest.mark.asyncio
async def test_retrieval_failure_fails_before_streaming(make_pipeline, embedder, completion):
    pipeline = make_pipeline(embedder, StubStore(error=ConnectionError("db down")), completion)

    with pytest.raises(RetrievalError) as exc:
        await pipeline.handle(_request())

    assert exc.value.stage == Stage.retrieving.value
    assert completion.prompts == []


@pytest.mark.asyncio
async def test_completion_failing_before_first_token_is_a_provider_error(make_pipeline, embedder, store):
    completion = StubCompletion(tokens=[], error=CompletionError("HTTP 503"))
    pipeline = make_pipeline(embedder, store, completion)

    with pytest.raises(CompletionError) as exc:
        await pipeline.handle(_request())

    assert exc.value.stage == Stage.streaming.value
    assert completion.closed


@pytest.mark.asyncio
async def test_mid_stream_failure_keeps_partial_answer(make_pipeline, embedder, store):
    completion = StubCompletion(tokens=["収", "入とは"], error=CompletionError("connection reset"))
    pipeline = make_pipeline(embedder, store, completion)

    stream = await pipeline.handle(_request("収入とは？"))
    body = await collect(stream)

    assert body.decode("utf-8") == "収入とは"
    assert stream.stage is Stage.failed
    assert stream.failure is not None
    assert stream.failure.bytes_sent == len("収入とは".encode("utf-8"))
    assert completion.closed


@pytest.mark.asyncio
async def test_chunks_are_forwarded_one_by_one_in_order(make_pipeline, embedder, store):
    completion = StubCompletion(tokens=["a", "", "b", "c"])
    pipeline = make_pipeline(embedder, store, completion)

    stream = await pipeline.handle(_request())
    chunks = [chunk async for chunk in stream]

    assert chunks == [b"a", b"b", b"c"]


@pytest.mark.asyncio
async def test_empty_completion_streams_nothing(make_pipeline, embedder, store):
    completion = StubCompletion(tokens=[])
    pipeline = make_pipeline(embedder, store, completion)

    stream = await pipeline.handle(_request())

    assert await collect(stream) == b""
    assert stream.stage is Stage.done


@pytest.mark.asyncio
async def test_consumer_disconnect_closes_upstream(make_pipeline, embedder, store):
    completion = StubCompletion(tokens=["one", "two", "three"])
    pipeline = make_pipeline(embedder, store, completion)

    stream = await pipeline.handle(_request())
    iterator = stream.__aiter__()
    assert await iterator.__anext__() == b"one"

    await iterator.aclose()

    assert completion.closed
    assert stream.bytes_sent == 3


@pytest.mark.asyncio
async def test_requests_share_no_state(make_pipeline, embedder, store, completion):
    pipeline = make_pipeline(embedder, store, completion)

    first = await pipeline.handle(_request("A?", [{"category": "rent", "amount": 1}]), request_id="r1")
    await collect(first)
    second = await pipeline.handle(_request("B?"), request_id="r2")
    await collect(second)

    assert "rent: 1円" in completion.prompts[0]
    assert "rent: 1円" not in completion.prompts[1]
    assert NO_TRANSACTION_DATA in completion.prompts[1]
    assert (first.request_id, second.request_id) == ("r1", "r2")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "tail",
    [b'data: {"error": {"message": "overloaded"}}\n\n', b""],
    ids=["error-event", "eof-without-done"],
)
async def test_unterminated_provider_stream_is_recorded_as_failure(make_pipeline, embedder, store, tail):
    body = 'data: {"choices":[{"delta":{"content":"収"}}]}\n\n'.encode("utf-8") + tail
    provider = OpenAIProvider(
        api_key="sk-test",
        transport=httpx.MockTransport(lambda request: httpx.Response(200, content=body)),
    )
    pipeline = make_pipeline(embedder, store, provider)

    stream = await pipeline.handle(_request("収入とは？"))
    received = await collect(stream)

    assert received == "収".encode("utf-8")
    assert stream.stage is Stage.failed
    assert stream.failure.bytes_sent == len(received)
