"""The six RegQ prompt flows.

Each flow validates its input against a schema, renders a prompt, hands it
to the model client and returns the schema-validated output. The correction
flow is the exception: it echoes the edited answer without a model call.
"""
from __future__ import annotations

import logging
import math
import re
from typing import Dict, Optional, Type, TypeVar

from pydantic import BaseModel

from . import prompts
from .errors import FlowOutputError
from .llm import LLMClient, PromptRequest
from .schemas import (
    AnswerQuestionInput,
    CalculateRwaInput,
    CalculateRwaOutput,
    CorrectAnswerInput,
    CorrectAnswerOutput,
    InputValue,
    ParseDocumentInput,
    ParseDocumentOutput,
    ProcessRwaTextInput,
    ProcessRwaTextOutput,
    RegQAnswer,
    SummarizeSessionInput,
    SummarizeSessionOutput,
)

logger = logging.getLogger(__name__)

EMPTY_SESSION_SUMMARY = "This session has no messages to summarize."

_TRUE_TOKENS = {"yes", "true"}
_FALSE_TOKENS = {"no", "false"}
# ASCII decimal notation only. float() by itself also accepts underscores and non-ASCII digits.
_NUMBER_RE = re.compile(r"\s*[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?\s*", re.ASCII)

O = TypeVar("O", bound=BaseModel)


def parse_number(value: str) -> Optional[float]:
    if not _NUMBER_RE.fullmatch(value):
        return None
    number = float(value)
    if not math.isfinite(number):
        return None
    return number


def coerce_input_value(value: InputValue) -> InputValue:
    """Turn numeric-looking strings into numbers and yes/no/true/false into booleans."""
    if not isinstance(value, str):
        return value
    number = parse_number(value)
    if number is not None:
        return int(number) if number.is_integer() else number
    token = value.strip().lower()
    if token in _TRUE_TOKENS:
        return True
    if token in _FALSE_TOKENS:
        return False
    return value


def coerce_provided_inputs(inputs: Dict[str, InputValue]) -> Dict[str, InputValue]:
    return {name: coerce_input_value(value) for name, value in inputs.items()}


class RegQFlows:
    def __init__(self, client: LLMClient, document_max_chars: int = 20000) -> None:
        self._client = client
        self._document_max_chars = document_max_chars

    async def _run(
        self,
        name: str,
        instructions: str,
        prompt: str,
        data: BaseModel,
        output_type: Type[O],
        failure: str,
    ) -> O:
        logger.info("Running flow %s", name)
        output = await self._client.generate(
            PromptRequest(
                name=name,
                instructions=instructions,
                prompt=prompt,
                input=data,
                output_type=output_type,
            )
        )
        if output is None:
            raise FlowOutputError(failure)
        return output

    async def answer_question(self, data: AnswerQuestionInput) -> RegQAnswer:
        return await self._run(
            "AnswerRegQQuestion",
            prompts.ANSWER_INSTRUCTIONS,
            prompts.render_answer_question(data),
            data,
            RegQAnswer,
            "Failed to answer the question.",
        )

    async def calculate_rwa(self, data: CalculateRwaInput) -> CalculateRwaOutput:
        processed = data.model_copy(
            update={"provided_inputs": coerce_provided_inputs(data.provided_inputs)}
        )
        return await self._run(
            "CalculateRwa",
            prompts.CALCULATE_RWA_INSTRUCTIONS,
            prompts.render_calculate_rwa(processed),
            processed,
            CalculateRwaOutput,
            "Failed to calculate RWA.",
        )

    async def process_rwa_text(self, data: ProcessRwaTextInput) -> ProcessRwaTextOutput:
        return await self._run(
            "ProcessRwaText",
            prompts.PROCESS_RWA_TEXT_INSTRUCTIONS,
            prompts.render_process_rwa_text(data),
            data,
            ProcessRwaTextOutput,
            "Failed to process RWA text and identify inputs.",
        )

    async def correct_answer(self, data: CorrectAnswerInput) -> CorrectAnswerOutput:
        # Persisting the edit is up to the caller
        return CorrectAnswerOutput(saved_answer=data.edited_answer)

    async def parse_regulatory_document(self, data: ParseDocumentInput) -> ParseDocumentOutput:
        if "ecfr.gov" not in (data.document_url.host or ""):
            logger.info("Parsing non-eCFR document %s", data.document_url)
        return await self._run(
            "ParseRegulatoryDocument",
            prompts.PARSE_DOCUMENT_INSTRUCTIONS,
            prompts.render_parse_document(data, max_chars=self._document_max_chars),
            data,
            ParseDocumentOutput,
            "Failed to parse regulatory document.",
        )

    async def summarize_session(self, data: SummarizeSessionInput) -> SummarizeSessionOutput:
        if not data.messages:
            return SummarizeSessionOutput(summary=EMPTY_SESSION_SUMMARY)
        return await self._run(
            "SummarizeChatSession",
            prompts.SUMMARIZE_INSTRUCTIONS,
            prompts.render_summarize_session(data),
            data,
            SummarizeSessionOutput,
            "Failed to generate chat session summary.",
        )
