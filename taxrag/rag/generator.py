"""Answer generation through an OpenAI-compatible chat-completion API."""
import json
from typing import Optional

import httpx
import structlog

from taxrag import config
from taxrag.errors import GenerationError
from taxrag.llm_client import APIClient

logger = structlog.get_logger()

PROMPT_TEMPLATE = """
[Identity]
당신은 한국 최고의 소득세 전문가입니다.
[Context]를 참고하여 사용자의 질문에 친절하고 정확하게 답변해주세요.
답변은 한국어로 해주세요.

[Context]
{context}

[Question]
{question}
"""


def build_prompt(context: str, question: str) -> str:
    """Fill the fixed instructional template."""
    return PROMPT_TEMPLATE.format(context=context, question=question)


class ChatGenerator:
    """Single-turn chat completion with temperature fixed at 0."""

    def __init__(
        self,
        provider: str = "openai",
        base_url: str = None,
        model: str = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the generator.

        Args:
            provider: Key provider and log name ('openai' or 'upstage')
            base_url: API base URL (default per provider from config)
            model: Chat model (default per provider from config)
            transport: Optional httpx transport (used by tests)
        """
        if provider == "openai":
            default_url, default_model = config.OPENAI_BASE_URL, config.CHAT_MODEL
        elif provider == "upstage":
            default_url, default_model = config.UPSTAGE_BASE_URL, config.UPSTAGE_CHAT_MODEL
        else:
            raise ValueError(f"Unsupported generation provider: {provider}")

        self.provider = provider
        self.model = model or default_model
        self.temperature = config.TEMPERATURE
        self.client = APIClient(
            provider=provider,
            base_url=base_url or default_url,
            error_cls=GenerationError,
            transport=transport,
        )

    async def generate(self, prompt: str) -> str:
        """Send the prompt as a single user message and return the reply text.

        Raises:
            MissingCredentialError: If the provider key is not configured
            UpstreamAuthError: If the key is rejected
            GenerationError: On any other failure or an empty reply
        """
        logger.info(
            "chat_completion_request",
            provider=self.provider,
            model=self.model,
            prompt_length=len(prompt),
        )

        data = await self.client.post_json(
            "/chat/completions",
            {
                "model": self.model,
                "messages": [{"role": "user", "content": prompt}],
                "temperature": self.temperature,
            },
        )

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise GenerationError(
                self.provider,
                f"{self.provider} returned no completion",
                status_code=200,
                body=json.dumps(data, ensure_ascii=False)[:200],
            ) from e

        if content is None:
            raise GenerationError(self.provider, f"{self.provider} returned an empty completion")

        answer = content if isinstance(content, str) else json.dumps(content, ensure_ascii=False)

        logger.info(
            "chat_completion_response",
            provider=self.provider,
            model=self.model,
            response_length=len(answer),
        )
        return answer


def create_generator(provider: str = None) -> ChatGenerator:
    """Create the generator selected by ``GENERATION_PROVIDER``."""
    return ChatGenerator(provider or config.GENERATION_PROVIDER)
