"""Input and output schemas of the prompt flows.

Every flow takes one of the ``*Input`` models and returns the matching
``*Output`` model. Field descriptions are part of the structured-output
schema handed to the model, so they are written for the model to read.
"""
from __future__ import annotations

from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, StrictBool, StrictFloat, StrictInt, StrictStr
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Serialized with camelCase keys, populated from either spelling."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ConversationTurn(CamelModel):
    speaker: str = Field(description="Identifies who spoke, e.g. 'User' or 'AI Summary'.")
    text: str = Field(description="The text of that turn.")


# --- answer flow ---------------------------------------------------------


class AnswerQuestionInput(CamelModel):
    question: str = Field(description="The question about Regulation Q.")
    conversation_history: Optional[List[ConversationTurn]] = Field(
        default=None,
        description="Previous turns in the conversation, where speaker is 'User' or 'AI Summary'.",
    )


class RegQAnswer(CamelModel):
    summary: str = Field(description="A concise summary of the answer.")
    explanation: str = Field(description="A detailed explanation of the answer.")
    references: str = Field(description="Relevant references to Regulation Q sections.")
    calculation_logic: Optional[str] = Field(default=None, description="Any necessary calculation logic.")
    reference_tables: Optional[str] = Field(default=None, description="Any reference tables needed.")
    calculation_examples: Optional[str] = Field(
        default=None,
        description=(
            "Calculation examples for the scenarios related to the user query, particularly "
            "RWA calculations under the standardized approach, with step-by-step examples."
        ),
    )


# --- RWA calculation flow ------------------------------------------------

InputValue = Union[StrictBool, StrictInt, StrictFloat, StrictStr]


class CalculateRwaInput(CamelModel):
    rwa_context: str = Field(
        description=(
            "The context or summary of the RWA calculation logic, often derived from a previous "
            "analysis or chatbot response. Should reference relevant CFR Title 12 sections."
        )
    )
    provided_inputs: Dict[str, InputValue] = Field(
        description=(
            "Machine-readable input parameter names (e.g. 'exposureAmount') mapped to the "
            "values provided by the user."
        )
    )


class CalculateRwaOutput(CamelModel):
    calculated_rwa: float = Field(description="The final calculated Risk-Weighted Asset (RWA) value.")
    calculation_method: str = Field(
        description="The RWA calculation method applied, citing CFR Title 12 provisions (standardized approach)."
    )
    calculation_steps: str = Field(
        description="A step-by-step explanation of how the RWA was calculated from the provided inputs."
    )


# --- text-processing flow ------------------------------------------------

ParameterType = Literal["number", "text", "percentage"]


class InputParameter(CamelModel):
    name: str = Field(
        description="A concise, machine-readable camelCase name (e.g. 'exposureAmount')."
    )
    label: str = Field(description="A user-friendly label (e.g. 'Exposure Amount ($)').")
    type: ParameterType = Field(
        description="'percentage' is a number used as a percentage (e.g. 50 for 50%)."
    )
    description: Optional[str] = Field(
        default=None,
        description="Brief help text for the input, referencing CFR Title 12 if applicable.",
    )


class ProcessRwaTextInput(CamelModel):
    rwa_text: str = Field(
        description="Text containing RWA calculation logic and examples, typically copied from a chatbot answer."
    )


class ProcessRwaTextOutput(CamelModel):
    logic_summary: str = Field(
        description="A summary of the RWA calculation logic in the text, referencing CFR Title 12 sections."
    )
    required_inputs: List[InputParameter] = Field(
        description="The input parameters required for the RWA calculation."
    )


# --- correction flow -----------------------------------------------------


class CorrectAnswerInput(CamelModel):
    original_answer: str
    edited_answer: str


class CorrectAnswerOutput(CamelModel):
    saved_answer: str


# --- document-parsing flow -----------------------------------------------


class Obligation(CamelModel):
    obligation: str = Field(description="A concise description of the regulatory obligation or requirement.")
    rule: str = Field(description="The specific rule, section or citation (e.g. '12 CFR § 217.10').")
    details: str = Field(description="Additional context or key details about the obligation.")


class ParseDocumentInput(CamelModel):
    document_url: HttpUrl = Field(description="The URL of the regulatory document, preferably an eCFR link.")
    document_text: Optional[str] = Field(
        default=None,
        description="Main text fetched from the document URL, when it could be retrieved.",
    )


class ParseDocumentOutput(CamelModel):
    source_title: Optional[str] = Field(
        default=None,
        description="The title of the regulatory document, if identifiable.",
    )
    obligations: List[Obligation] = Field(description="The extracted obligations and rules.")


# --- summarization flow --------------------------------------------------


class SummarizeSessionInput(CamelModel):
    messages: List[ConversationTurn]


class SummarizeSessionOutput(CamelModel):
    summary: str = Field(description="A concise summary of the chat session.")


__all__ = [
    "CamelModel",
    "ConversationTurn",
    "AnswerQuestionInput",
    "RegQAnswer",
    "InputValue",
    "CalculateRwaInput",
    "CalculateRwaOutput",
    "ParameterType",
    "InputParameter",
    "ProcessRwaTextInput",
    "ProcessRwaTextOutput",
    "CorrectAnswerInput",
    "CorrectAnswerOutput",
    "Obligation",
    "ParseDocumentInput",
    "ParseDocumentOutput",
    "SummarizeSessionInput",
    "SummarizeSessionOutput",
]
