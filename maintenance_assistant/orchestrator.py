"""Query orchestration: validation, retrieval, prompt composition, generation."""
from typing import Any, Mapping, Optional, Protocol, Union

import structlog
from pydantic import ValidationError

from maintenance_assistant.errors import (
    Internal,
    InvalidArgument,
    MaintenanceAssistantError,
    Unauthenticated,
)
from maintenance_assistant.rag.prompt import DEFAULT_INSTRUCTIONS, compose_prompt
from maintenance_assistant.rag.retriever import Retriever
from maintenance_assistant.schemas import QueryRequest, QueryResponse

logger = structlog.get_logger()


class Generator(Protocol):
    async def generate(self, prompt: str) -> str: ...


def parse_request(payload: Union[QueryRequest, Mapping[str, Any], None]) -> QueryRequest:
    """Validate a raw payload into a QueryRequest.

    Raises:
        InvalidArgument: On shape mismatch or a blank question
    """
    if isinstance(payload, QueryRequest):
        request = payload
    else:
        if not isinstance(payload, Mapping):
            raise InvalidArgument("The request body must be a JSON object.")
        try:
            request = QueryRequest.model_validate(payload)
        except ValidationError as e:
            logger.info("query_request_invalid", errors=e.error_count())
            raise InvalidArgument(
                "The function must be called with a 'question' and a valid 'history'."
            ) from e

    if not request.question.strip():
        raise InvalidArgument("The function must be called with a 'question'.")

    return request


class QueryOrchestrator:
    """Top-level entry point for answering a question."""

    def __init__(
        self,
        retriever: Retriever,
        generator: Generator,
        instructions: str = DEFAULT_INSTRUCTIONS,
    ):
        self.retriever = retriever
        self.generator = generator
        self.instructions = instructions

    async def answer(
        self,
        principal: Optional[str],
        payload: Union[QueryRequest, Mapping[str, Any], None],
    ) -> QueryResponse:
        """Answer a question for an authenticated caller.

        All-or-nothing: either the generated answer is returned or an error
        is raised. Nothing is persisted.

        Raises:
            Unauthenticated: If no principal is present (no external calls made)
            InvalidArgument: If the payload is malformed (no external calls made)
            Internal: For every downstream failure; the cause is chained
        """
        if not principal:
            logger.warning("query_unauthenticated")
            raise Unauthenticated()

        request = parse_request(payload)
        log = logger.bind(principal=principal)

        log.info(
            "query_received",
            question_length=len(request.question),
            history_turns=len(request.history),
        )

        try:
            retrieved = await self.retriever.retrieve(request.question)
            prompt = compose_prompt(
                self.instructions, request.history, retrieved, request.question
            )
            answer = await self.generator.generate(prompt)

        except MaintenanceAssistantError as e:
            log.error(
                "query_failed",
                error_code=e.code,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise Internal() from e
        except Exception as e:
            log.exception("query_failed_unexpectedly", error_type=type(e).__name__)
            raise Internal() from e

        log.info(
            "query_answered",
            sources=len(retrieved),
            response_length=len(answer),
        )

        return QueryResponse(response=answer)
