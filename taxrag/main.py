"""Quart application for the income-tax RAG chat API."""
from typing import Optional

from quart import Quart, current_app, jsonify, request
import structlog

from taxrag import config
from taxrag.errors import TaxRagError, UpstreamConfigError, ValidationError
from taxrag.logging_config import configure_logging
from taxrag.rag.pipeline import MODEL_TYPES, RAGPipeline
from taxrag.schemas import ChatRequest

logger = structlog.get_logger()

GENERIC_ERROR_MESSAGE = "답변 생성 중 오류가 발생했습니다."
STATUS_MESSAGE = "소득세 RAG API가 정상 작동 중입니다."

CONFIG_ERROR_MESSAGES = {
    "openai": "OpenAI API 키가 설정되지 않았습니다.",
    "upstage": "Upstage API 키가 설정되지 않았습니다.",
    "pinecone": "Pinecone API 키 또는 인덱스 설정을 확인해주세요.",
}


def error_message(error: Exception) -> str:
    """User-facing message for a failed question."""
    if isinstance(error, UpstreamConfigError):
        return CONFIG_ERROR_MESSAGES.get(error.provider, GENERIC_ERROR_MESSAGE)
    return GENERIC_ERROR_MESSAGE


def get_pipeline() -> RAGPipeline:
    return current_app.extensions["rag_pipeline"]


def create_app(pipeline: Optional[RAGPipeline] = None) -> Quart:
    """Create the Quart app.

    Args:
        pipeline: RAG pipeline shared by all requests (default built from config)
    """
    app = Quart(__name__)
    app.extensions["rag_pipeline"] = pipeline or RAGPipeline()

    @app.route("/api/chat", methods=["POST"])
    async def chat():
        """Answer a question with retrieved context.

        Expects JSON body:
        {
            "query": "질문",
            "modelType": "openai" | "upstage" | "openai-pinecone" | "upstage-pinecone"
        }

        Returns JSON:
        {
            "answer": "답변",
            "sources": ["first 100 characters of each retrieved chunk...", ...]
        }
        """
        data = await request.get_json(silent=True)

        try:
            chat_request = ChatRequest.from_body(data)
        except ValidationError as e:
            logger.warning("chat_request_invalid", error=str(e))
            return jsonify({"error": str(e)}), 400

        key = chat_request.provider_key()

        logger.info(
            "chat_request_received",
            model_type=key.name,
            query_length=len(chat_request.query),
            query_preview=chat_request.query[:100],
        )

        try:
            answer = await get_pipeline().ask(chat_request.query, key)
        except TaxRagError as e:
            logger.error(
                "chat_request_failed",
                model_type=key.name,
                error=str(e),
                error_type=type(e).__name__,
                provider=getattr(e, "provider", None),
            )
            return jsonify({"error": error_message(e)}), 500
        except Exception as e:
            logger.exception("chat_request_crashed", model_type=key.name, error=str(e))
            return jsonify({"error": GENERIC_ERROR_MESSAGE}), 500

        logger.info(
            "chat_response_sent",
            model_type=key.name,
            answer_preview=answer.answer[:100],
            source_count=len(answer.sources),
        )
        return jsonify(answer.to_dict())

    @app.route("/api/chat", methods=["GET"])
    async def chat_status():
        """Report supported model types and which indexes are built."""
        return jsonify(
            {
                "status": "ok",
                "message": STATUS_MESSAGE,
                "supportedModels": list(MODEL_TYPES),
                "initialized": get_pipeline().status(),
            }
        )

    @app.route("/health/live")
    async def health_live():
        """Liveness probe - check if app is running."""
        return jsonify({"status": "alive"}), 200

    @app.route("/health/ready")
    async def health_ready():
        """Readiness probe - source document present and default key configured."""
        checks = {
            "status": "healthy",
            "source_document": get_pipeline().source_path.is_file(),
            "openai_api_key": config.has_api_key("openai"),
        }
        if not (checks["source_document"] and checks["openai_api_key"]):
            checks["status"] = "unhealthy"

        status_code = 200 if checks["status"] == "healthy" else 503
        return jsonify(checks), status_code

    @app.errorhandler(404)
    async def not_found(error):
        """Handle 404 errors."""
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(500)
    async def internal_error(error):
        """Handle 500 errors."""
        logger.error("internal_server_error", error=str(error))
        return jsonify({"error": GENERIC_ERROR_MESSAGE}), 500

    return app


configure_logging()
app = create_app()


if __name__ == "__main__":
    # For development - use `python -m taxrag` (hypercorn) otherwise
    app.run(host=config.HOST, port=config.PORT, debug=True)
