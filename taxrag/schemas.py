"""Request models for the chat API."""
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from taxrag.errors import ValidationError
from taxrag.rag.embeddings import EMBEDDING_PROVIDERS
from taxrag.rag.pipeline import (
    DEFAULT_MODEL_TYPE,
    UNSUPPORTED_MODEL_MESSAGE,
    ProviderKey,
)

EMPTY_QUERY_MESSAGE = "질문을 입력해주세요."
UNSUPPORTED_EMBEDDING_MESSAGE = (
    f"지원하지 않는 임베딩 타입입니다. ({', '.join(EMBEDDING_PROVIDERS)})"
)


class ChatRequest(BaseModel):
    """Body of ``POST /api/chat``.

    ``modelType`` selects provider and backend. Older clients send
    ``embeddingType`` ('openai' | 'upstage') instead, which always uses the
    in-memory index.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    query: str = ""
    model_type: Optional[str] = Field(default=None, alias="modelType")
    embedding_type: Optional[str] = Field(default=None, alias="embeddingType")

    @classmethod
    def from_body(cls, data: object) -> "ChatRequest":
        """Validate a decoded JSON body.

        Raises:
            ValidationError: With the user-facing message for the first problem
        """
        if not isinstance(data, dict):
            raise ValidationError(EMPTY_QUERY_MESSAGE)

        try:
            request = cls.model_validate(data)
        except PydanticValidationError as e:
            fields = {str(err["loc"][0]) for err in e.errors() if err.get("loc")}
            if "query" in fields:
                raise ValidationError(EMPTY_QUERY_MESSAGE) from e
            if "embeddingType" in fields:
                raise ValidationError(UNSUPPORTED_EMBEDDING_MESSAGE) from e
            raise ValidationError(UNSUPPORTED_MODEL_MESSAGE) from e

        if not request.query.strip():
            raise ValidationError(EMPTY_QUERY_MESSAGE)

        # Resolve now so an unsupported selector is reported as a 400.
        request.provider_key()
        return request

    def provider_key(self) -> ProviderKey:
        # An explicit null selector is rejected; only an absent one gets the default.
        if "model_type" in self.model_fields_set:
            return ProviderKey.parse(self.model_type)
        if "embedding_type" in self.model_fields_set:
            if self.embedding_type not in EMBEDDING_PROVIDERS:
                raise ValidationError(UNSUPPORTED_EMBEDDING_MESSAGE)
            return ProviderKey(embedding=self.embedding_type)
        return ProviderKey.parse(DEFAULT_MODEL_TYPE)
