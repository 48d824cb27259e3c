from __future__ import annotations

import logging
import uuid
from typing import Dict, List, Mapping, Optional, Tuple, Union
from urllib.parse import urlparse

from pydantic import ValidationError

from .config import Settings, get_settings
from .errors import InputValidationError
from .flows import RegQFlows, parse_number
from .llm import SemanticKernelClient
from .repository import (
    BotMessage,
    ChatHistoryStore,
    ChatSession,
    JsonFileStorage,
    UserMessage,
    utcnow,
)
from .schemas import (
    AnswerQuestionInput,
    CalculateRwaInput,
    CalculateRwaOutput,
    ConversationTurn,
    CorrectAnswerInput,
    InputParameter,
    InputValue,
    ParseDocumentInput,
    ParseDocumentOutput,
    ProcessRwaTextInput,
    ProcessRwaTextOutput,
    RegQAnswer,
    SummarizeSessionInput,
)
from .scraper import DocumentFetcher

logger = logging.getLogger(__name__)

WELCOME_MESSAGE_ID = "initial-bot-message"

INITIAL_SUGGESTIONS = [
    "What is the risk weight for a AAA-rated corporate exposure?",
    "Explain the standardized approach for credit risk.",
    "How are off-balance sheet items treated for RWA calculation?",
    "Detail the RWA for residential mortgage exposures under the standardized approach.",
]


def stringify_answer(answer: RegQAnswer) -> str:
    """Flatten an answer into the plain text handed to the correction flow."""
    return (
        f"Summary: {answer.summary}\n"
        f"Explanation: {answer.explanation}\n"
        f"References: {answer.references or 'N/A'}\n"
        f"Calculation Logic: {answer.calculation_logic or 'N/A'}\n"
        f"Reference Tables: {answer.reference_tables or 'N/A'}\n"
        f"Calculation Examples: {answer.calculation_examples or 'N/A'}"
    )


def _new_message_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex}"


# Shared per process; built from settings on first use
_flows: Optional[RegQFlows] = None
_store: Optional[ChatHistoryStore] = None


def default_flows(settings: Optional[Settings] = None) -> RegQFlows:
    global _flows
    if _flows is None:
        settings = settings or get_settings()
        _flows = RegQFlows(
            SemanticKernelClient(settings),
            document_max_chars=settings.document_max_chars,
        )
    return _flows


def default_store(settings: Optional[Settings] = None) -> ChatHistoryStore:
    global _store
    if _store is None:
        settings = settings or get_settings()
        _store = ChatHistoryStore(JsonFileStorage(settings.chat_store_path))
    return _store


class RegQChatService:
    """Singleton-style chat service: answers, edits and summarizes RegQ conversations."""

    _instance: Optional["RegQChatService"] = None

    def __init__(
        self,
        flows: Optional[RegQFlows] = None,
        store: Optional[ChatHistoryStore] = None,
        max_history_turns: Optional[int] = None,
    ) -> None:
        if max_history_turns is None:
            max_history_turns = get_settings().max_history_turns
        self._flows = flows or default_flows()
        self._store = store or default_store()
        self._max_history = max_history_turns

    @classmethod
    def instance(cls) -> "RegQChatService":
        if cls._instance is None:
            cls._instance = RegQChatService()
        return cls._instance

    def welcome_message(self) -> BotMessage:
        return BotMessage(
            id=WELCOME_MESSAGE_ID,
            response=RegQAnswer(
                summary="Welcome to the Basel 3 SA Chatbot!",
                explanation=(
                    "I can help you with questions about U.S. banking regulations (CFR Title 12), "
                    "focusing on Risk-Weighted Assets (RWA) calculations based on the standardized "
                    "approach. Ask me anything, or try one of these suggestions:"
                ),
                references="",
            ),
            suggestions=list(INITIAL_SUGGESTIONS),
            timestamp=utcnow(),
        )

    def _history_for(self, session: Optional[ChatSession]) -> List[ConversationTurn]:
        if session is None:
            return []
        recent = [m for m in session.messages if m.id != WELCOME_MESSAGE_ID]
        recent = recent[-(self._max_history * 2):] if self._max_history > 0 else []
        turns: List[ConversationTurn] = []
        for m in recent:
            if isinstance(m, UserMessage) and m.text:
                turns.append(ConversationTurn(speaker="User", text=m.text))
            elif isinstance(m, BotMessage):
                # Summaries keep the history short
                turns.append(ConversationTurn(speaker="AI Summary", text=m.response.summary))
        return turns

    async def ask(
        self, question: str, session_id: Optional[str] = None
    ) -> Tuple[BotMessage, str]:
        if not question or not question.strip():
            raise InputValidationError("Question must not be empty.")

        session = self._store.get_session(session_id) if session_id else None
        if not session_id:
            session_id = str(uuid.uuid4())
        start_time = session.start_time if session is not None else utcnow()

        user_message = UserMessage(id=_new_message_id("user"), text=question, timestamp=utcnow())
        history = self._history_for(session)

        # Nothing is persisted until the answer arrives, so a failed call leaves the session untouched
        response = await self._flows.answer_question(
            AnswerQuestionInput(
                question=question,
                conversation_history=history or None,
            )
        )
        bot_message = BotMessage(id=_new_message_id("bot"), response=response, timestamp=utcnow())

        self._store.save_chat_turn(session_id, [user_message, bot_message], session_start_time=start_time)
        return bot_message, session_id

    async def save_edited_response(
        self, session_id: str, message_id: str, edited: RegQAnswer
    ) -> BotMessage:
        session = self._store.get_session(session_id)
        if session is None:
            raise KeyError(session_id)
        original = next(
            (m for m in session.messages if m.id == message_id and isinstance(m, BotMessage)),
            None,
        )
        if original is None:
            raise KeyError(message_id)

        await self._flows.correct_answer(
            CorrectAnswerInput(
                original_answer=stringify_answer(original.response),
                edited_answer=stringify_answer(edited),
            )
        )
        return self._store.replace_bot_response(session_id, message_id, edited)

    async def summarize(self, session_id: str, regenerate: bool = False) -> str:
        session = self._store.get_session(session_id)
        if session is None:
            raise KeyError(session_id)
        if session.summary is not None and not regenerate:
            return session.summary

        turns: List[ConversationTurn] = []
        for m in session.messages:
            if isinstance(m, UserMessage):
                turns.append(ConversationTurn(speaker="User", text=m.text))
            else:
                turns.append(ConversationTurn(speaker="AI", text=m.response.summary))

        result = await self._flows.summarize_session(SummarizeSessionInput(messages=turns))
        self._store.update_session_summary(session_id, result.summary)
        return result.summary

    def list_sessions(self) -> List[ChatSession]:
        return self._store.get_all_sessions()

    def get_session(self, session_id: str) -> Optional[ChatSession]:
        return self._store.get_session(session_id)

    def delete_session(self, session_id: str) -> None:
        self._store.delete_session(session_id)

    def clear_history(self) -> None:
        self._store.clear_history()


class RwaEngineService:
    """Two-step RWA engine: identify parameters from text, then calculate."""

    _instance: Optional["RwaEngineService"] = None

    def __init__(self, flows: Optional[RegQFlows] = None) -> None:
        self._flows = flows or default_flows()

    @classmethod
    def instance(cls) -> "RwaEngineService":
        if cls._instance is None:
            cls._instance = RwaEngineService()
        return cls._instance

    async def extract_logic(self, rwa_text: str) -> ProcessRwaTextOutput:
        if not rwa_text or not rwa_text.strip():
            raise InputValidationError("Please paste the bot response first.")
        result = await self._flows.process_rwa_text(ProcessRwaTextInput(rwa_text=rwa_text))
        if not result.required_inputs:
            logger.info("No input parameters identified in the provided text")
        return result

    async def calculate(
        self,
        rwa_context: str,
        required_inputs: List[InputParameter],
        values: Mapping[str, InputValue],
    ) -> CalculateRwaOutput:
        if not rwa_context or not rwa_context.strip():
            raise InputValidationError("Logic not identified. Process text first.")

        by_name: Dict[str, InputParameter] = {p.name: p for p in required_inputs}
        for param in required_inputs:
            value = values.get(param.name)
            if value is None or (isinstance(value, str) and not value.strip()):
                raise InputValidationError(f'Please provide a value for "{param.label}".')
            if param.type in ("number", "percentage") and _as_number(value) is None:
                raise InputValidationError(f'"{param.label}" must be a valid number.')

        provided: Dict[str, InputValue] = {}
        for name, value in values.items():
            param = by_name.get(name)
            if param is not None and param.type in ("number", "percentage"):
                number = _as_number(value)
                provided[name] = number if number is not None else value
            else:
                provided[name] = value

        return await self._flows.calculate_rwa(
            CalculateRwaInput(rwa_context=rwa_context, provided_inputs=provided)
        )


def _as_number(value: InputValue) -> Optional[Union[int, float]]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    number = value if isinstance(value, float) else parse_number(value)
    if number is None:
        return None
    return int(number) if number.is_integer() else number


class RegulatoryParserService:
    """Extracts an obligations table from a regulatory document URL."""

    _instance: Optional["RegulatoryParserService"] = None

    def __init__(
        self,
        flows: Optional[RegQFlows] = None,
        fetcher: Optional[DocumentFetcher] = None,
        fetch_documents: Optional[bool] = None,
    ) -> None:
        settings = None
        if fetcher is None or fetch_documents is None:
            settings = get_settings()
        self._flows = flows or default_flows()
        self._fetcher = fetcher or DocumentFetcher(timeout=settings.http_timeout_seconds)
        self._fetch_documents = settings.fetch_documents if fetch_documents is None else fetch_documents

    @classmethod
    def instance(cls) -> "RegulatoryParserService":
        if cls._instance is None:
            cls._instance = RegulatoryParserService()
        return cls._instance

    async def parse(self, document_url: str) -> ParseDocumentOutput:
        url = (document_url or "").strip()
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise InputValidationError("Please enter a valid URL.")

        document_text: Optional[str] = None
        if self._fetch_documents:
            fetched = await self._fetcher.fetch(url)
            if fetched.success:
                document_text = fetched.content
            else:
                logger.warning("Parsing %s from the URL alone: %s", url, fetched.error)

        try:
            data = ParseDocumentInput(document_url=url, document_text=document_text)
        except ValidationError as e:
            raise InputValidationError("Please enter a valid URL.") from e
        return await self._flows.parse_regulatory_document(data)
