"""Tests for the chat, RWA engine and regulatory parser services."""

import asyncio
import json
from unittest.mock import AsyncMock, patch

import pytest

from regq_assistant.errors import FlowOutputError, InputValidationError, ModelInvocationError
from regq_assistant.flows import EMPTY_SESSION_SUMMARY
from regq_assistant.repository import CHAT_HISTORY_KEY, BotMessage, UserMessage, utcnow
from regq_assistant.schemas import (
    CalculateRwaOutput,
    InputParameter,
    ParseDocumentOutput,
    ProcessRwaTextOutput,
    RegQAnswer,
    SummarizeSessionOutput,
)
from regq_assistant.scraper import FetchedDocument
from regq_assistant.service import (
    INITIAL_SUGGESTIONS,
    RegQChatService,
    RegulatoryParserService,
    RwaEngineService,
    stringify_answer,
)

from .conftest import make_answer

QUESTION = "What is the risk weight for a AAA-rated corporate exposure?"


@pytest.fixture
def chat(flows, store):
    return RegQChatService(flows=flows, store=store, max_history_turns=2)


class TestAsk:
    def test_first_question_without_history(self, chat, llm, store):
        llm.replies["AnswerRegQQuestion"] = make_answer()

        message, session_id = asyncio.run(chat.ask(QUESTION))

        request = llm.calls("AnswerRegQQuestion")[0]
        assert request.input.question == QUESTION
        assert request.input.conversation_history is None

        session = store.get_session(session_id)
        assert [m.type for m in session.messages] == ["user", "bot"]
        assert session.messages[0].text == QUESTION
        assert session.messages[1] == message
        assert message.response == make_answer()

    def test_failure_leaves_session_untouched(self, chat, llm, store):
        llm.replies["AnswerRegQQuestion"] = ModelInvocationError("AnswerRegQQuestion", "provider down")

        with pytest.raises(ModelInvocationError):
            asyncio.run(chat.ask(QUESTION, session_id="s1"))

        assert store.get_session("s1") is None

    def test_missing_output_leaves_existing_session_untouched(self, chat, llm, store):
        llm.replies["AnswerRegQQuestion"] = make_answer()
        asyncio.run(chat.ask(QUESTION, session_id="s1"))

        llm.replies["AnswerRegQQuestion"] = None
        with pytest.raises(FlowOutputError):
            asyncio.run(chat.ask("Follow-up?", session_id="s1"))

        assert len(store.get_session("s1").messages) == 2

    @pytest.mark.parametrize("question", ["", "   "])
    def test_blank_question_rejected_before_model_call(self, chat, llm, question):
        with pytest.raises(InputValidationError):
            asyncio.run(chat.ask(question))
        assert llm.requests == []

    def test_history_uses_recent_pairs_and_summaries(self, chat, llm):
        for i in range(3):
            llm.replies["AnswerRegQQuestion"] = make_answer(f"answer {i}")
            asyncio.run(chat.ask(f"question {i}", session_id="s1"))

        llm.replies["AnswerRegQQuestion"] = make_answer("answer 3")
        asyncio.run(chat.ask("question 3", session_id="s1"))

        history = llm.calls("AnswerRegQQuestion")[-1].input.conversation_history
        # max_history_turns=2 keeps the last two user/bot pairs
        assert [(t.speaker, t.text) for t in history] == [
            ("User", "question 1"),
            ("AI Summary", "answer 1"),
            ("User", "question 2"),
            ("AI Summary", "answer 2"),
        ]

    def test_existing_session_keeps_start_time(self, chat, llm, store):
        llm.replies["AnswerRegQQuestion"] = make_answer()
        asyncio.run(chat.ask(QUESTION, session_id="s1"))
        start = store.get_session("s1").start_time

        asyncio.run(chat.ask("Again?", session_id="s1"))

        assert store.get_session("s1").start_time == start
        assert len(store.get_session("s1").messages) == 4

    def test_turn_is_persisted_in_one_write(self, chat, llm, store, storage):
        llm.replies["AnswerRegQQuestion"] = make_answer()

        with patch.object(storage, "set", wraps=storage.set) as write:
            asyncio.run(chat.ask(QUESTION, session_id="s1"))

        assert write.call_count == 1
        assert [m.type for m in store.get_session("s1").messages] == ["user", "bot"]

    def test_failed_write_stores_no_orphan_question(self, chat, llm, store, storage):
        llm.replies["AnswerRegQQuestion"] = make_answer()

        with patch.object(storage, "set", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                asyncio.run(chat.ask(QUESTION, session_id="s1"))

        assert store.get_session("s1") is None


class TestWelcome:
    def test_welcome_has_suggestions(self, chat):
        message = chat.welcome_message()
        assert isinstance(message, BotMessage)
        assert message.suggestions == INITIAL_SUGGESTIONS
        assert message.response.summary == "Welcome to the Basel 3 SA Chatbot!"


class TestEditResponse:
    def test_saves_edit_through_correction_flow(self, chat, llm, store):
        llm.replies["AnswerRegQQuestion"] = make_answer()
        message, session_id = asyncio.run(chat.ask(QUESTION))
        edited = make_answer("Edited summary")

        updated = asyncio.run(chat.save_edited_response(session_id, message.id, edited))

        assert updated.response == edited
        assert updated.is_editing is False
        assert store.get_session(session_id).messages[1].response.summary == "Edited summary"
        # correction is a pass-through, only the answer flow hit the model
        assert [r.name for r in llm.requests] == ["AnswerRegQQuestion"]

    def test_unknown_message(self, chat, llm):
        llm.replies["AnswerRegQQuestion"] = make_answer()
        _, session_id = asyncio.run(chat.ask(QUESTION))
        with pytest.raises(KeyError):
            asyncio.run(chat.save_edited_response(session_id, "nope", make_answer()))

    def test_stringify_uses_placeholders(self):
        text = stringify_answer(RegQAnswer(summary="S", explanation="E", references=""))
        assert text == (
            "Summary: S\nExplanation: E\nReferences: N/A\nCalculation Logic: N/A\n"
            "Reference Tables: N/A\nCalculation Examples: N/A"
        )


class TestSummarize:
    def test_computed_once_then_cached(self, chat, llm, store):
        llm.replies["AnswerRegQQuestion"] = make_answer("20%.")
        _, session_id = asyncio.run(chat.ask(QUESTION))
        llm.replies["SummarizeChatSession"] = SummarizeSessionOutput(summary="Corporate risk weights.")

        first = asyncio.run(chat.summarize(session_id))
        second = asyncio.run(chat.summarize(session_id))

        assert first == second == "Corporate risk weights."
        calls = llm.calls("SummarizeChatSession")
        assert len(calls) == 1
        assert [(t.speaker, t.text) for t in calls[0].input.messages] == [
            ("User", QUESTION),
            ("AI", "20%."),
        ]
        assert store.get_session(session_id).summary == "Corporate risk weights."

    def test_regenerate(self, chat, llm):
        llm.replies["AnswerRegQQuestion"] = make_answer()
        _, session_id = asyncio.run(chat.ask(QUESTION))
        llm.replies["SummarizeChatSession"] = SummarizeSessionOutput(summary="one")
        asyncio.run(chat.summarize(session_id))
        llm.replies["SummarizeChatSession"] = SummarizeSessionOutput(summary="two")

        assert asyncio.run(chat.summarize(session_id, regenerate=True)) == "two"
        assert len(llm.calls("SummarizeChatSession")) == 2

    def test_empty_cached_summary_is_not_recomputed(self, chat, llm, store):
        store.save_chat_message("s1", UserMessage(id="u", text="hi", timestamp=utcnow()))
        store.update_session_summary("s1", "")

        assert asyncio.run(chat.summarize("s1")) == ""
        assert llm.requests == []

    def test_session_without_messages(self, chat, llm, storage):
        storage.set(
            CHAT_HISTORY_KEY,
            json.dumps({"s1": {"id": "s1", "startTime": "2024-05-01T09:30:15.123Z", "messages": []}}),
        )

        assert asyncio.run(chat.summarize("s1")) == EMPTY_SESSION_SUMMARY
        assert llm.requests == []

    def test_unknown_session(self, chat):
        with pytest.raises(KeyError):
            asyncio.run(chat.summarize("missing"))


PARAMS = [
    InputParameter(name="exposureAmount", label="Exposure Amount ($)", type="number"),
    InputParameter(name="riskWeight", label="Risk Weight (%)", type="percentage"),
    InputParameter(name="prudentlyUnderwritten", label="Prudently underwritten?", type="text"),
]


class TestRwaEngine:
    @pytest.fixture
    def engine(self, flows):
        return RwaEngineService(flows=flows)

    def test_extract_logic(self, engine, llm):
        llm.replies["ProcessRwaText"] = ProcessRwaTextOutput(logic_summary="RWA = E x RW", required_inputs=PARAMS)

        result = asyncio.run(engine.extract_logic("Exposure times risk weight"))

        assert result.required_inputs == PARAMS

    def test_extract_logic_rejects_blank_text(self, engine, llm):
        with pytest.raises(InputValidationError):
            asyncio.run(engine.extract_logic("  "))
        assert llm.requests == []

    def test_calculate_converts_numeric_parameters(self, engine, llm):
        llm.replies["CalculateRwa"] = CalculateRwaOutput(
            calculated_rwa=500000, calculation_method="SA", calculation_steps="..."
        )

        result = asyncio.run(
            engine.calculate(
                "RWA = E x RW",
                PARAMS,
                {"exposureAmount": "1000000", "riskWeight": "50", "prudentlyUnderwritten": "yes"},
            )
        )

        assert result.calculated_rwa == 500000
        sent = llm.calls("CalculateRwa")[0].input
        assert sent.rwa_context == "RWA = E x RW"
        assert sent.provided_inputs == {
            "exposureAmount": 1000000,
            "riskWeight": 50,
            "prudentlyUnderwritten": True,
        }
        prompt = llm.calls("CalculateRwa")[0].prompt
        assert "- exposureAmount: 1000000\n" in prompt
        assert "1000000.0" not in prompt

    def test_calculate_keeps_fractional_and_integral_numbers_apart(self, engine, llm):
        llm.replies["CalculateRwa"] = CalculateRwaOutput(
            calculated_rwa=175000, calculation_method="SA", calculation_steps="..."
        )

        asyncio.run(
            engine.calculate(
                "RWA = E x RW",
                PARAMS,
                {"exposureAmount": 500000.0, "riskWeight": "35.5", "prudentlyUnderwritten": "no"},
            )
        )

        sent = llm.calls("CalculateRwa")[0]
        assert sent.input.provided_inputs["exposureAmount"] == 500000
        assert isinstance(sent.input.provided_inputs["exposureAmount"], int)
        assert sent.input.provided_inputs["riskWeight"] == 35.5
        assert "- exposureAmount: 500000\n" in sent.prompt

    def test_missing_value(self, engine, llm):
        with pytest.raises(InputValidationError, match="Exposure Amount"):
            asyncio.run(engine.calculate("ctx", PARAMS, {"riskWeight": "50", "prudentlyUnderwritten": "yes"}))
        assert llm.requests == []

    def test_non_numeric_value(self, engine, llm):
        with pytest.raises(InputValidationError, match="must be a valid number"):
            asyncio.run(
                engine.calculate(
                    "ctx", PARAMS, {"exposureAmount": "lots", "riskWeight": "50", "prudentlyUnderwritten": "no"}
                )
            )
        assert llm.requests == []

    def test_missing_context(self, engine):
        with pytest.raises(InputValidationError):
            asyncio.run(engine.calculate("", PARAMS, {}))


class TestRegulatoryParser:
    URL = "https://www.ecfr.gov/current/title-12/chapter-II/subchapter-A/part-217"

    def _parser(self, flows, document):
        fetcher = AsyncMock()
        fetcher.fetch.return_value = document
        return RegulatoryParserService(flows=flows, fetcher=fetcher, fetch_documents=True), fetcher

    def test_uses_fetched_text(self, flows, llm):
        llm.replies["ParseRegulatoryDocument"] = ParseDocumentOutput(obligations=[])
        parser, fetcher = self._parser(
            flows, FetchedDocument(url=self.URL, title="Part 217", content="§ 217.10 Minimum capital", success=True)
        )

        asyncio.run(parser.parse(self.URL))

        fetcher.fetch.assert_awaited_once_with(self.URL)
        assert llm.calls("ParseRegulatoryDocument")[0].input.document_text == "§ 217.10 Minimum capital"

    def test_falls_back_to_url_when_fetch_fails(self, flows, llm):
        llm.replies["ParseRegulatoryDocument"] = ParseDocumentOutput(obligations=[])
        parser, _ = self._parser(
            flows, FetchedDocument(url=self.URL, title=None, content="", success=False, error="timeout")
        )

        asyncio.run(parser.parse(self.URL))

        assert llm.calls("ParseRegulatoryDocument")[0].input.document_text is None

    def test_fetch_disabled(self, flows, llm):
        fetcher = AsyncMock()
        parser = RegulatoryParserService(flows=flows, fetcher=fetcher, fetch_documents=False)
        llm.replies["ParseRegulatoryDocument"] = ParseDocumentOutput(obligations=[])

        asyncio.run(parser.parse(self.URL))

        fetcher.fetch.assert_not_called()

    @pytest.mark.parametrize("url", ["", "not a url", "ftp://ecfr.gov/part-217", "https://"])
    def test_invalid_url_rejected(self, flows, llm, url):
        parser = RegulatoryParserService(flows=flows, fetcher=AsyncMock(), fetch_documents=True)
        with pytest.raises(InputValidationError):
            asyncio.run(parser.parse(url))
        assert llm.requests == []
