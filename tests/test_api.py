"""Tests for the chat HTTP API."""
import pytest

from conftest import FakeEmbedder, FakeGenerator, run
from taxrag.errors import (
    EmbeddingAuthError,
    GenerationError,
    InputFileError,
    MissingCredentialError,
    UpstreamAuthError,
)
from taxrag.main import create_app
from taxrag.rag.pipeline import RAGPipeline


class FailingPipeline(RAGPipeline):
    """Pipeline whose questions always fail with a given error."""

    def __init__(self, error, **kwargs):
        super().__init__(**kwargs)
        self.error = error

    async def ask(self, question, key):
        raise self.error


@pytest.fixture
def generator():
    return FakeGenerator(answer="종합소득세는 다음 연도 5월에 신고합니다.")


@pytest.fixture
def pipeline(tax_document, generator):
    embedder = FakeEmbedder()
    return RAGPipeline(
        source_path=tax_document,
        embedder_factory=lambda provider: embedder,
        generator=generator,
    )


def _post(app, body=None, **kwargs):
    async def send():
        client = app.test_client()
        if body is not None:
            kwargs["json"] = body
        response = await client.post("/api/chat", **kwargs)
        return response.status_code, await response.get_json()

    return run(send())


def _get(app, path):
    async def send():
        client = app.test_client()
        response = await client.get(path)
        return response.status_code, await response.get_json()

    return run(send())


class TestChatPost:
    def test_answer_with_sources(self, pipeline, generator):
        status, data = _post(create_app(pipeline), {"query": "종합소득세 신고 기한은?", "modelType": "openai"})

        assert status == 200
        assert data["answer"] == "종합소득세는 다음 연도 5월에 신고합니다."
        assert len(data["sources"]) == 3
        assert all(s.endswith("...") and len(s) == 103 for s in data["sources"])
        assert "종합소득세 신고 기한은?" in generator.prompts[0]

    def test_model_type_defaults_to_openai(self, pipeline):
        app = create_app(pipeline)

        status, _ = _post(app, {"query": "질문"})

        assert status == 200
        assert pipeline.status()["openai"] is True

    def test_legacy_embedding_type_selects_in_memory_index(self, pipeline):
        status, _ = _post(create_app(pipeline), {"query": "질문", "embeddingType": "upstage"})

        assert status == 200
        assert pipeline.status()["upstage"] is True

    @pytest.mark.parametrize(
        "body",
        [
            {},
            {"query": ""},
            {"query": "   \n"},
            {"query": None},
            {"query": 42},
            {"modelType": "openai"},
        ],
    )
    def test_missing_query_is_rejected(self, pipeline, generator, body):
        status, data = _post(create_app(pipeline), body)

        assert status == 400
        assert data == {"error": "질문을 입력해주세요."}
        assert generator.prompts == []

    def test_non_json_body_is_rejected(self, pipeline):
        status, data = _post(
            create_app(pipeline), data="query=hello", headers={"Content-Type": "text/plain"}
        )

        assert status == 400
        assert data["error"] == "질문을 입력해주세요."

    @pytest.mark.parametrize("model_type", ["gpt-4", "pinecone", 7, None])
    def test_unsupported_model_type(self, pipeline, model_type):
        status, data = _post(create_app(pipeline), {"query": "질문", "modelType": model_type})

        assert status == 400
        assert data["error"] == (
            "지원하지 않는 모델 타입입니다. (openai, upstage, openai-pinecone, upstage-pinecone)"
        )
        assert pipeline.registry.build_count == 0

    @pytest.mark.parametrize("embedding_type", ["cohere", None])
    def test_unsupported_embedding_type(self, pipeline, embedding_type):
        status, data = _post(create_app(pipeline), {"query": "질문", "embeddingType": embedding_type})

        assert status == 400
        assert data["error"] == "지원하지 않는 임베딩 타입입니다. (openai, upstage)"

    def test_model_type_takes_precedence_over_embedding_type(self, pipeline):
        status, _ = _post(
            create_app(pipeline), {"query": "질문", "modelType": "upstage", "embeddingType": "openai"}
        )

        assert status == 200
        assert pipeline.status()["upstage"] is True
        assert pipeline.status()["openai"] is False

    @pytest.mark.parametrize(
        "error, message",
        [
            (MissingCredentialError("openai", "OPENAI_API_KEY is not set"), "OpenAI API 키가 설정되지 않았습니다."),
            (MissingCredentialError("upstage", "UPSTAGE_API_KEY is not set"), "Upstage API 키가 설정되지 않았습니다."),
            (
                EmbeddingAuthError("upstage", "upstage API error: 401 - bad key", status_code=401),
                "Upstage API 키가 설정되지 않았습니다.",
            ),
            (
                UpstreamAuthError("pinecone", "pinecone API error: 403 - forbidden", status_code=403),
                "Pinecone API 키 또는 인덱스 설정을 확인해주세요.",
            ),
            (
                MissingCredentialError("pinecone", "PINECONE_INDEX_OPENAI is not set"),
                "Pinecone API 키 또는 인덱스 설정을 확인해주세요.",
            ),
            (GenerationError("openai", "openai API error: 500 - overloaded"), "답변 생성 중 오류가 발생했습니다."),
            (InputFileError("Source document not found: data/tax.txt"), "답변 생성 중 오류가 발생했습니다."),
            (RuntimeError("unexpected"), "답변 생성 중 오류가 발생했습니다."),
        ],
    )
    def test_failures_map_to_user_messages(self, tax_document, error, message):
        app = create_app(FailingPipeline(error, source_path=tax_document))

        status, data = _post(app, {"query": "질문", "modelType": "openai"})

        assert status == 500
        assert data == {"error": message}

    def test_missing_openai_key_end_to_end(self, tax_document, no_api_keys):
        app = create_app(RAGPipeline(source_path=tax_document, generator=FakeGenerator()))

        status, data = _post(app, {"query": "질문", "modelType": "openai"})

        assert status == 500
        assert data["error"] == "OpenAI API 키가 설정되지 않았습니다."

    def test_missing_pinecone_config_end_to_end(self, tax_document, no_api_keys, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test-openai")
        app = create_app(
            RAGPipeline(
                source_path=tax_document,
                embedder_factory=lambda provider: FakeEmbedder(),
                generator=FakeGenerator(),
            )
        )

        status, data = _post(app, {"query": "질문", "modelType": "openai-pinecone"})

        assert status == 500
        assert data["error"] == "Pinecone API 키 또는 인덱스 설정을 확인해주세요."


class TestChatGet:
    def test_status(self, pipeline):
        app = create_app(pipeline)
        _post(app, {"query": "질문", "modelType": "upstage"})

        status, data = _get(app, "/api/chat")

        assert status == 200
        assert data["status"] == "ok"
        assert data["message"] == "소득세 RAG API가 정상 작동 중입니다."
        assert data["supportedModels"] == ["openai", "upstage", "openai-pinecone", "upstage-pinecone"]
        assert data["initialized"] == {
            "openai": False,
            "upstage": True,
            "openai-pinecone": False,
            "upstage-pinecone": False,
        }


class TestHealth:
    def test_live(self, pipeline):
        status, data = _get(create_app(pipeline), "/health/live")

        assert status == 200
        assert data == {"status": "alive"}

    def test_ready(self, pipeline, api_keys):
        status, data = _get(create_app(pipeline), "/health/ready")

        assert status == 200
        assert data["status"] == "healthy"

    def test_not_ready_without_source_document(self, tmp_path, api_keys):
        app = create_app(RAGPipeline(source_path=tmp_path / "missing.txt"))

        status, data = _get(app, "/health/ready")

        assert status == 503
        assert data["source_document"] is False

    def test_unknown_route(self, pipeline):
        status, data = _get(create_app(pipeline), "/api/unknown")

        assert status == 404
        assert data == {"error": "Not found"}
