"""Shared fixtures and fakes for the unit tests."""
import asyncio
import json
from typing import Dict, List, Optional

import httpx
import pytest


class FakeEmbedder:
    """Deterministic in-process embedder that counts its calls."""

    def __init__(self, vectors: Optional[Dict[str, List[float]]] = None, name: str = "openai", delay: float = 0.0):
        self.name = name
        self.vectors = vectors or {}
        self.delay = delay
        self.query_calls: List[str] = []
        self.document_calls: List[List[str]] = []

    def _vector(self, text: str) -> List[float]:
        if text in self.vectors:
            return list(self.vectors[text])
        # Cheap bag-of-characters signature
        return [
            float(text.count("소득")) + 0.1,
            float(text.count("세")) + 0.1,
            float(len(text) % 7) + 0.1,
            1.0,
        ]

    async def embed_query(self, text: str) -> List[float]:
        self.query_calls.append(text)
        await asyncio.sleep(self.delay)
        return self._vector(text)

    async def embed_documents(self, texts: List[str]) -> List[List[float]]:
        self.document_calls.append(list(texts))
        await asyncio.sleep(self.delay)
        return [self._vector(t) for t in texts]


class FakeGenerator:
    """Records prompts and returns a canned answer."""

    def __init__(self, answer: str = "종합소득세는 5월에 신고합니다.", error: Exception = None):
        self.answer = answer
        self.error = error
        self.prompts: List[str] = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.answer


class RecordingHandler:
    """httpx.MockTransport handler that records requests and replays responses."""

    def __init__(self, responder):
        self.responder = responder
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responder(request)

    def bodies(self) -> List[dict]:
        return [json.loads(r.content) for r in self.requests if r.content]

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


def embedding_response(vectors: List[List[float]], reverse: bool = False) -> httpx.Response:
    data = [
        {"object": "embedding", "index": i, "embedding": v}
        for i, v in enumerate(vectors)
    ]
    if reverse:
        data.reverse()
    return httpx.Response(200, json={"object": "list", "data": data})


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def api_keys(monkeypatch):
    """Configure every provider credential."""
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test-openai")
    monkeypatch.setenv("UPSTAGE_API_KEY", "up-test-upstage")
    monkeypatch.setenv("PINECONE_API_KEY", "pc-test")
    monkeypatch.setenv("PINECONE_INDEX_OPENAI", "tax-openai")
    monkeypatch.setenv("PINECONE_INDEX_UPSTAGE", "tax-upstage")


@pytest.fixture
def no_api_keys(monkeypatch):
    for name in (
        "OPENAI_API_KEY",
        "UPSTAGE_API_KEY",
        "PINECONE_API_KEY",
        "PINECONE_INDEX_OPENAI",
        "PINECONE_INDEX_UPSTAGE",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def tax_document(tmp_path):
    """A small income-tax source document on disk."""
    paragraphs = [
        "제1조(목적) 이 법은 개인의 소득에 대하여 소득의 성격과 납세자의 부담능력 등에 따라 "
        "적정하게 과세함으로써 조세부담의 형평을 도모하고 재정수입의 원활한 조달에 이바지함을 목적으로 한다.",
        "제2조(납세의무) 거주자는 이 법에 따라 각자의 소득에 대한 소득세를 납부할 의무를 진다.",
        "제70조(종합소득과세표준 확정신고) 해당 과세기간의 종합소득금액이 있는 거주자는 "
        "그 종합소득 과세표준을 그 과세기간의 다음 연도 5월 1일부터 5월 31일까지 신고하여야 한다.",
    ]
    path = tmp_path / "tax.txt"
    path.write_text("\n\n".join(paragraphs * 20), encoding="utf-8")
    return path
