"""Clients for the external answer-generation service."""

from __future__ import annotations

import json
from collections.abc import Sequence
from enum import Enum
from typing import Any, Protocol

import httpx
import openai
from openai import AsyncOpenAI

from .config import config
from .errors import GenerationError
from .models import Message

logger = config.get_logger(__name__)

SYSTEM_PROMPT = """You are the site assistant for a scientific repository on \
functional flavors.

Your role is to:
1. Answer questions about functional flavors, their mechanisms, health effects, \
and FDA regulations
2. Provide information about the site and its mission
3. Help users navigate and understand the scientific content on the site
4. Be accurate, cite sources when possible, and acknowledge limitations
{context}
Important guidelines:
- Be scientific and accurate
- If you're unsure, say so
- Direct users to specific sections when relevant
- Always acknowledge when information is preliminary or limited"""


class ResponseShape(Enum):
    """Response layouts accepted from a generation endpoint."""

    RESPONSE = "response"  # {"response": "..."}
    MESSAGE = "message"  # {"message": "..."}
    CHAT_COMPLETION = "chat_completion"  # {"choices": [{"message": {"content"}}]}
    UNKNOWN = "unknown"


def _completion_content(payload: dict[str, Any]) -> str | None:
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    if not isinstance(first, dict) or not isinstance(first.get("message"), dict):
        return None
    content = first["message"].get("content")
    return content if isinstance(content, str) else None


def classify_response(payload: object) -> ResponseShape:
    """Identify which accepted layout a response body has.

    Returns:
        The matching shape, or ``UNKNOWN``.
    """
    if not isinstance(payload, dict):
        return ResponseShape.UNKNOWN
    if isinstance(payload.get("response"), str):
        return ResponseShape.RESPONSE
    if isinstance(payload.get("message"), str):
        return ResponseShape.MESSAGE
    if _completion_content(payload) is not None:
        return ResponseShape.CHAT_COMPLETION
    return ResponseShape.UNKNOWN


def normalize_response(payload: object) -> str:
    """Reduce any accepted response body to the answer string.

    Unrecognized bodies are stringified whole rather than rejected.

    Returns:
        The answer text.
    """
    shape = classify_response(payload)
    if shape is ResponseShape.RESPONSE:
        return payload["response"]  # type: ignore[index]
    if shape is ResponseShape.MESSAGE:
        return payload["message"]  # type: ignore[index]
    if shape is ResponseShape.CHAT_COMPLETION:
        return _completion_content(payload) or ""  # type: ignore[arg-type]
    if isinstance(payload, str):
        return payload
    return json.dumps(payload, ensure_ascii=False)


class GenerationClient(Protocol):
    """Produces a natural-language answer grounded in retrieved context."""

    async def generate(
        self,
        query: str,
        history: Sequence[Message],
        context: str,
    ) -> str:
        """Return the generated answer.

        Raises:
            GenerationError: If the service fails or answers unusably.
        """
        ...


class HttpGenerationClient:
    """POSTs the query to a list of chat endpoints, first success wins."""

    def __init__(
        self,
        endpoints: Sequence[str],
        *,
        timeout: float | None = None,
        page_url: str | None = None,
        page_title: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Configure the client.

        Args:
            endpoints: Primary endpoint followed by fallbacks.
            timeout: Request timeout in seconds. If None, uses
                config.GENERATION_TIMEOUT.
            page_url: Current page sent along as context.
            page_title: Current page title sent along as context.
            transport: Optional httpx transport (used by tests).

        Raises:
            ValueError: If no endpoint is given.
        """
        if not endpoints:
            msg = "At least one generation endpoint is required"
            raise ValueError(msg)
        self.endpoints = list(endpoints)
        self.timeout = config.GENERATION_TIMEOUT if timeout is None else timeout
        self.page_url = page_url
        self.page_title = page_title
        self.transport = transport

    def build_payload(
        self,
        query: str,
        history: Sequence[Message],
        context: str,
    ) -> dict[str, Any]:
        """Build the request body.

        Returns:
            JSON-compatible request payload.
        """
        request_context: dict[str, Any] = {
            "conversationHistory": [message.to_dict() for message in history],
        }
        if context:
            request_context["ragContext"] = context
        if self.page_url:
            request_context["pageUrl"] = self.page_url
        if self.page_title:
            request_context["pageTitle"] = self.page_title
        return {"message": query, "context": request_context}

    async def generate(
        self,
        query: str,
        history: Sequence[Message],
        context: str,
    ) -> str:
        """Try each endpoint in order.

        Raises:
            GenerationError: If every endpoint fails.

        Returns:
            The normalized answer of the first endpoint that succeeded.
        """
        payload = self.build_payload(query, history, context)
        last_error = "no endpoint attempted"

        async with httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout),
            headers=config.get_api_headers(),
            transport=self.transport,
        ) as client:
            for endpoint in self.endpoints:
                try:
                    response = await client.post(endpoint, json=payload)
                    response.raise_for_status()
                    body = response.json()
                except (httpx.HTTPError, ValueError) as exc:
                    last_error = f"{endpoint}: {exc}"
                    logger.warning("Generation endpoint failed: %s", last_error)
                    continue

                answer = normalize_response(body).strip()
                if answer:
                    logger.info(
                        "Generation endpoint %s answered (%s)",
                        endpoint,
                        classify_response(body).value,
                    )
                    return answer
                last_error = f"{endpoint}: empty answer"
                logger.warning("Generation endpoint returned an empty answer")

        msg = f"All generation endpoints failed ({last_error})"
        raise GenerationError(msg)


class OpenAIGenerationClient:
    """Calls OpenAI chat completions with the retrieved context in the system prompt."""

    def __init__(
        self,
        openai_api_key: str | None = None,
        *,
        model: str | None = None,
        timeout: float | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            openai_api_key: OpenAI API key. If None, read from configuration.
            model: Chat model name. If None, uses config.CHAT_MODEL.
            timeout: Request timeout in seconds. If None, uses
                config.GENERATION_TIMEOUT.
        """
        default_headers = config.get_api_headers()
        self.client = AsyncOpenAI(
            api_key=openai_api_key or config.get_openai_api_key(),
            base_url=config.OPENAI_BASE_URL,
            default_headers=default_headers or None,
            timeout=config.GENERATION_TIMEOUT if timeout is None else timeout,
        )
        self.model = model or config.CHAT_MODEL

    @staticmethod
    def build_messages(
        query: str,
        history: Sequence[Message],
        context: str,
    ) -> list[dict[str, str]]:
        """Build the chat messages: system prompt, history, then the question.

        Returns:
            Messages in OpenAI chat format.
        """
        context_block = (
            f"\nRelevant context from the site:\n{context}\n" if context else ""
        )
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT.format(context=context_block)}
        ]
        messages.extend({"role": m.role, "content": m.text} for m in history)
        messages.append({"role": "user", "content": query})
        return messages

    async def generate(
        self,
        query: str,
        history: Sequence[Message],
        context: str,
    ) -> str:
        """Generate an answer with OpenAI.

        Raises:
            GenerationError: If the API call fails or returns no content.

        Returns:
            The model's answer.
        """
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=self.build_messages(query, history, context),  # type: ignore[arg-type]
                max_tokens=config.CHAT_MAX_TOKENS,
                temperature=config.CHAT_TEMPERATURE,
            )
        except openai.OpenAIError as exc:
            msg = f"OpenAI chat completion failed: {exc}"
            raise GenerationError(msg) from exc

        answer = (response.choices[0].message.content or "").strip()
        if not answer:
            msg = "OpenAI chat completion returned no content"
            raise GenerationError(msg)
        return answer


def get_generation_client(
    backend: str | None = None,
    *,
    endpoints: Sequence[str] | None = None,
) -> GenerationClient | None:
    """Return the configured generation client, or None when disabled.

    Raises:
        ValueError: If an unsupported backend is requested.
    """  # noqa: DOC201
    selected = (backend or config.GENERATION_BACKEND).lower()
    if selected == "none":
        return None
    if selected == "http":
        return HttpGenerationClient(
            endpoints if endpoints is not None else config.GENERATION_ENDPOINTS,
            page_url=config.CURRENT_PAGE,
            page_title=config.CURRENT_PAGE_TITLE,
        )
    if selected == "openai":
        return OpenAIGenerationClient()

    msg = f"Unsupported generation backend: {backend}"
    raise ValueError(msg)
