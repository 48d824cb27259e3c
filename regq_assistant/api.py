from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, FastAPI, HTTPException

from .auth import AuthDependency
from .config import get_settings
from .errors import FlowOutputError, InputValidationError, ModelInvocationError, RegQError
from .models import (
    CalculateRwaRequest,
    ChatRequest,
    ChatResponse,
    ParseDocumentRequest,
    ProcessRwaTextRequest,
    SessionSummaryDTO,
    StatusResponse,
    SummaryResponse,
)
from .repository import BotMessage, ChatSession, UserMessage
from .schemas import CalculateRwaOutput, ParseDocumentOutput, ProcessRwaTextOutput, RegQAnswer
from .service import RegQChatService, RegulatoryParserService, RwaEngineService

logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="RegQ Assistant API", version="1.0.0")

# Router with authentication required on all endpoints
router = APIRouter(dependencies=[AuthDependency])


@app.on_event("startup")
async def on_startup() -> None:
    get_settings().require_auth_settings()
    RegQChatService.instance()
    RwaEngineService.instance()
    RegulatoryParserService.instance()


def _http_error(e: RegQError) -> HTTPException:
    if isinstance(e, InputValidationError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, (ModelInvocationError, FlowOutputError)):
        logger.error("Flow failed: %s", e)
        return HTTPException(status_code=502, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


@app.get("/healthz")
async def healthz() -> dict:
    return {"status": "ok"}


@router.get("/chat/welcome", response_model=BotMessage)
async def welcome() -> BotMessage:
    return RegQChatService.instance().welcome_message()


@router.post("/chat", response_model=ChatResponse)
async def chat(req: ChatRequest) -> ChatResponse:
    try:
        message, session_id = await RegQChatService.instance().ask(
            req.question, req.session_id
        )
    except RegQError as e:
        raise _http_error(e)
    return ChatResponse(session_id=session_id, message=message)


@router.get("/sessions", response_model=List[SessionSummaryDTO])
async def list_sessions() -> List[SessionSummaryDTO]:
    sessions = RegQChatService.instance().list_sessions()
    return [
        SessionSummaryDTO(
            id=s.id,
            start_time=s.start_time,
            message_count=len(s.messages),
            first_question=next(
                (m.text for m in s.messages if isinstance(m, UserMessage)), None
            ),
            summary=s.summary,
        )
        for s in sessions
    ]


@router.get("/sessions/{session_id}", response_model=ChatSession)
async def get_session(session_id: str) -> ChatSession:
    session = RegQChatService.instance().get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="session not found")
    return session


@router.delete("/sessions/{session_id}", response_model=StatusResponse)
async def delete_session(session_id: str) -> StatusResponse:
    # Deleting a non-existent session is idempotent
    RegQChatService.instance().delete_session(session_id)
    return StatusResponse(status="ok")


@router.delete("/sessions", response_model=StatusResponse)
async def clear_sessions() -> StatusResponse:
    RegQChatService.instance().clear_history()
    return StatusResponse(status="ok")


@router.post("/sessions/{session_id}/summary", response_model=SummaryResponse)
async def summarize_session(session_id: str, regenerate: bool = False) -> SummaryResponse:
    try:
        summary = await RegQChatService.instance().summarize(session_id, regenerate=regenerate)
    except KeyError:
        raise HTTPException(status_code=404, detail="session not found")
    except RegQError as e:
        raise _http_error(e)
    return SummaryResponse(session_id=session_id, summary=summary)


@router.put("/sessions/{session_id}/messages/{message_id}", response_model=BotMessage)
async def save_edited_response(session_id: str, message_id: str, edited: RegQAnswer) -> BotMessage:
    try:
        return await RegQChatService.instance().save_edited_response(session_id, message_id, edited)
    except KeyError:
        raise HTTPException(status_code=404, detail="message not found")
    except RegQError as e:
        raise _http_error(e)


@router.post("/rwa/process-text", response_model=ProcessRwaTextOutput)
async def process_rwa_text(req: ProcessRwaTextRequest) -> ProcessRwaTextOutput:
    try:
        return await RwaEngineService.instance().extract_logic(req.rwa_text)
    except RegQError as e:
        raise _http_error(e)


@router.post("/rwa/calculate", response_model=CalculateRwaOutput)
async def calculate_rwa(req: CalculateRwaRequest) -> CalculateRwaOutput:
    try:
        return await RwaEngineService.instance().calculate(
            req.rwa_context, req.required_inputs, req.values
        )
    except RegQError as e:
        raise _http_error(e)


@router.post("/regulatory-parser", response_model=ParseDocumentOutput)
async def parse_regulatory_document(req: ParseDocumentRequest) -> ParseDocumentOutput:
    try:
        return await RegulatoryParserService.instance().parse(req.document_url)
    except RegQError as e:
        raise _http_error(e)


# Include the secured router
app.include_router(router)
