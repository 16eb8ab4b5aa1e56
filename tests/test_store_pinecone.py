"""Tests for the Pinecone proxy store."""
import httpx
import pytest

from conftest import FakeEmbedder, RecordingHandler, run
from taxrag.errors import UpstreamAuthError, UpstreamConfigError, VectorStoreError
from taxrag.rag.chunker import split_text
from taxrag.rag.store_pinecone import PineconeVectorStore

HOST = "tax-openai-abc123.svc.aped-4627-b74a.pinecone.io"


def _pinecone(matches=None, upserted=None):
    def responder(request):
        path = request.url.path
        if request.url.host == "api.pinecone.io" and path == "/indexes/tax-openai":
            return httpx.Response(200, json={"name": "tax-openai", "dimension": 3, "host": HOST})
        if path == "/query":
            return httpx.Response(200, json={"matches": matches or [], "namespace": ""})
        if path == "/vectors/upsert":
            body = request.content
            count = upserted if upserted is not None else body.count(b'"values"')
            return httpx.Response(200, json={"upsertedCount": count})
        if path == "/vectors/delete":
            return httpx.Response(200, json={})
        return httpx.Response(404, text="not found")

    return RecordingHandler(responder)


def _store(handler, embedder=None):
    return PineconeVectorStore("tax-openai", embedder or FakeEmbedder(), transport=handler.transport)


def test_search_resolves_host_once_and_proxies_query(api_keys):
    handler = _pinecone(
        matches=[
            {"id": "openai-4", "score": 0.91, "metadata": {"text": "제70조 확정신고", "source": "tax.txt"}},
            {"id": "openai-1", "score": 0.72, "metadata": {"text": "제2조 납세의무"}},
        ]
    )
    store = _store(handler, FakeEmbedder(vectors={"신고 기한": [0.1, 0.2, 0.3]}))

    results = run(store.search("신고 기한", top_k=2))
    run(store.search("신고 기한", top_k=2))

    assert [r.content for r in results] == ["제70조 확정신고", "제2조 납세의무"]
    assert results[0].metadata == {"source": "tax.txt"}
    assert results[0].vector_id == "openai-4"
    assert store.get_stats()["dimension"] == 3

    paths = [r.url.path for r in handler.requests]
    assert paths == ["/indexes/tax-openai", "/query", "/query"]
    query_request = handler.requests[1]
    assert query_request.url.host == HOST
    assert query_request.headers["Api-Key"] == "pc-test"
    assert handler.bodies()[0] == {
        "vector": [0.1, 0.2, 0.3],
        "topK": 2,
        "includeMetadata": True,
        "includeValues": False,
    }


def test_search_orders_by_descending_score(api_keys):
    handler = _pinecone(
        matches=[
            {"id": "a", "score": 0.2, "metadata": {"text": "a"}},
            {"id": "b", "score": 0.9, "metadata": {"text": "b"}},
            {"id": "c", "score": 0.2, "metadata": {"text": "c"}},
        ]
    )

    results = run(_store(handler).search("q", top_k=3))

    assert [r.vector_id for r in results] == ["b", "a", "c"]


def test_upsert_batches_and_stores_text_metadata(api_keys):
    handler = _pinecone()
    store = _store(handler)
    chunks = split_text("가" * 250, 100, 20, metadata={"source": "tax.txt"})

    count = run(store.upsert_chunks(chunks, [[0.1, 0.2, 0.3]] * len(chunks), batch_size=2, id_prefix="openai"))

    upserts = [b for b in handler.bodies() if "vectors" in b]
    assert count == len(chunks) == 3
    assert [len(b["vectors"]) for b in upserts] == [2, 1]
    first = upserts[0]["vectors"][0]
    assert first["id"] == "openai-0"
    assert first["metadata"]["text"] == "가" * 100
    assert first["metadata"]["source"] == "tax.txt"


def test_upsert_rejects_length_mismatch(api_keys):
    with pytest.raises(ValueError):
        run(_store(_pinecone()).upsert_chunks(split_text("abc", 10, 0), []))


def test_delete_all(api_keys):
    handler = _pinecone()

    run(_store(handler).delete_all())

    assert handler.bodies()[-1] == {"deleteAll": True}


def test_unknown_index_is_a_vector_store_error(api_keys):
    handler = RecordingHandler(lambda request: httpx.Response(404, text="index not found"))

    with pytest.raises(VectorStoreError) as excinfo:
        run(_store(handler).search("q"))

    assert excinfo.value.status_code == 404
    assert excinfo.value.provider == "pinecone"


def test_rejected_pinecone_key_is_a_config_error(api_keys):
    handler = RecordingHandler(lambda request: httpx.Response(401, text="unauthorized"))

    with pytest.raises(UpstreamAuthError) as excinfo:
        run(_store(handler).search("q"))

    assert isinstance(excinfo.value, UpstreamConfigError)
    assert excinfo.value.provider == "pinecone"
