from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from .repository import BotMessage
from .schemas import CamelModel, InputParameter, InputValue


class ChatRequest(CamelModel):
    question: str
    session_id: Optional[str] = None


class ChatResponse(CamelModel):
    session_id: str
    message: BotMessage


class SessionSummaryDTO(CamelModel):
    id: str
    start_time: datetime
    message_count: int
    first_question: Optional[str] = None
    summary: Optional[str] = None


class SummaryResponse(CamelModel):
    session_id: str
    summary: str


class ProcessRwaTextRequest(CamelModel):
    rwa_text: str


class CalculateRwaRequest(CamelModel):
    rwa_context: str
    required_inputs: List[InputParameter] = []
    values: Dict[str, InputValue] = {}


class ParseDocumentRequest(CamelModel):
    document_url: str


class StatusResponse(CamelModel):
    status: str


# Explicit exports
__all__ = [
    "ChatRequest",
    "ChatResponse",
    "SessionSummaryDTO",
    "SummaryResponse",
    "ProcessRwaTextRequest",
    "CalculateRwaRequest",
    "ParseDocumentRequest",
    "StatusResponse",
]
