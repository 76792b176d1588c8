"""Typed request/response payloads validated at the service boundary."""
from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field


class ConversationTurn(BaseModel):
    """One prior message in the caller-owned conversation."""

    model_config = ConfigDict(extra="forbid")

    role: Literal["user", "assistant"]
    content: str


class QueryRequest(BaseModel):
    """Question plus history, most recent turn last."""

    model_config = ConfigDict(extra="forbid")

    question: str
    history: List[ConversationTurn] = Field(default_factory=list)


class QueryResponse(BaseModel):
    response: str


class DocumentEvent(BaseModel):
    """Storage notification for a newly finalized object."""

    bucket: str
    name: str
    content_type: str = ""
