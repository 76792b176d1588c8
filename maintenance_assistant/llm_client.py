"""Gemini API client for embeddings and answer generation.

Both calls are stateless request/response. Failures are mapped onto the
application error kinds so callers never see raw httpx exceptions.
"""
import httpx
from typing import List, Optional
import structlog

from maintenance_assistant import config
from maintenance_assistant.errors import (
    EmbeddingRejected,
    EmbeddingUnavailable,
    GenerationEmpty,
    GenerationUnavailable,
)

logger = structlog.get_logger()

# Upstream statuses that mean "this input will never be accepted"
REJECTED_STATUSES = {400, 413, 422}


class GeminiClient:
    """Async client for the Gemini embedding and generation endpoints."""

    def __init__(
        self,
        api_key: str,
        base_url: str = None,
        timeout: float = None,
        embedding_model: str = None,
        chat_model: str = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the Gemini client.

        Args:
            api_key: API key, sent as a header and never logged
            base_url: API base URL (defaults to config.GEMINI_BASE_URL)
            timeout: Per-request timeout in seconds (defaults to config.REQUEST_TIMEOUT)
            embedding_model: Embedding model name (defaults to config.EMBEDDING_MODEL)
            chat_model: Generation model name (defaults to config.CHAT_MODEL)
            transport: Optional httpx transport (used by tests)
        """
        if not api_key:
            raise ValueError("A Gemini API key is required")

        self.base_url = (base_url or config.GEMINI_BASE_URL).rstrip("/")
        self.timeout = timeout or config.REQUEST_TIMEOUT
        self.embedding_model = embedding_model or config.EMBEDDING_MODEL
        self.chat_model = chat_model or config.CHAT_MODEL

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers={"x-goog-api-key": api_key, "Content-Type": "application/json"},
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def embed(self, text: str) -> List[float]:
        """Generate an embedding for a piece of text.

        Args:
            text: Non-empty text to embed

        Returns:
            Embedding vector

        Raises:
            EmbeddingRejected: If the model refuses the input
            EmbeddingUnavailable: On transport, timeout or service errors
        """
        if not text or not text.strip():
            raise EmbeddingRejected("Cannot embed empty text")

        payload = {
            "model": f"models/{self.embedding_model}",
            "content": {"parts": [{"text": text}]},
        }

        logger.debug(
            "gemini_embedding_request",
            model=self.embedding_model,
            text_length=len(text),
        )

        try:
            response = await self._client.post(
                f"/models/{self.embedding_model}:embedContent", json=payload
            )
        except httpx.TimeoutException as e:
            logger.warning("gemini_embedding_timeout", timeout=self.timeout)
            raise EmbeddingUnavailable(f"Embedding request timed out: {e}") from e
        except httpx.HTTPError as e:
            logger.error("gemini_embedding_transport_error", error=str(e))
            raise EmbeddingUnavailable(f"Embedding request failed: {e}") from e

        if response.status_code in REJECTED_STATUSES:
            logger.warning(
                "gemini_embedding_rejected",
                status_code=response.status_code,
                text_length=len(text),
            )
            raise EmbeddingRejected(
                "Embedding model rejected the input",
                {"status_code": response.status_code},
            )

        if response.is_error:
            logger.error("gemini_embedding_http_error", status_code=response.status_code)
            raise EmbeddingUnavailable(
                f"Embedding service returned {response.status_code}",
                {"status_code": response.status_code},
            )

        try:
            values = [float(v) for v in response.json()["embedding"]["values"]]
        except (ValueError, KeyError, TypeError) as e:
            raise EmbeddingUnavailable("Malformed embedding response") from e

        if not values:
            raise EmbeddingUnavailable("Empty embedding returned")

        logger.debug(
            "gemini_embedding_response",
            model=self.embedding_model,
            dimension=len(values),
        )

        return values

    async def generate(self, prompt: str) -> str:
        """Generate an answer for a fully composed prompt.

        Args:
            prompt: Prompt text

        Returns:
            The first candidate's text, unmodified

        Raises:
            GenerationUnavailable: On transport, timeout or non-2xx responses
            GenerationEmpty: If no candidate output is returned
        """
        payload = {"contents": [{"parts": [{"text": prompt}]}]}

        logger.info(
            "gemini_generate_request",
            model=self.chat_model,
            prompt_length=len(prompt),
        )

        try:
            response = await self._client.post(
                f"/models/{self.chat_model}:generateContent", json=payload
            )
        except httpx.TimeoutException as e:
            logger.warning("gemini_generate_timeout", timeout=self.timeout)
            raise GenerationUnavailable(f"Generation request timed out: {e}") from e
        except httpx.HTTPError as e:
            logger.error("gemini_generate_transport_error", error=str(e))
            raise GenerationUnavailable(f"Generation request failed: {e}") from e

        if response.is_error:
            logger.error("gemini_generate_http_error", status_code=response.status_code)
            raise GenerationUnavailable(
                f"Generation service returned {response.status_code}",
                {"status_code": response.status_code},
            )

        try:
            data = response.json()
        except ValueError as e:
            raise GenerationUnavailable("Malformed generation response") from e

        candidates = data.get("candidates") or []
        if not candidates:
            raise GenerationEmpty("The model did not return a candidate")

        parts = (candidates[0].get("content") or {}).get("parts") or []
        text = "".join(part.get("text", "") for part in parts)
        if not text:
            raise GenerationEmpty("The model returned an empty candidate")

        logger.info(
            "gemini_generate_response",
            model=self.chat_model,
            response_length=len(text),
        )

        return text

    async def list_models(self) -> List[str]:
        """List model names available to this API key.

        Raises:
            httpx.HTTPError: On API errors
        """
        try:
            response = await self._client.get("/models", timeout=5.0)
            response.raise_for_status()
            data = response.json()
            return [m["name"].split("/", 1)[-1] for m in data.get("models", [])]
        except httpx.HTTPError as e:
            logger.error("gemini_list_models_error", error=str(e))
            raise
