"""Prompt templates for the RegQ flows."""
from __future__ import annotations

from typing import Dict, List, Optional

from .schemas import (
    AnswerQuestionInput,
    CalculateRwaInput,
    ConversationTurn,
    InputValue,
    ParseDocumentInput,
    ProcessRwaTextInput,
    SummarizeSessionInput,
)

ECFR_TITLE_12 = "https://www.ecfr.gov/current/title-12"
ECFR_PART_217 = "https://www.ecfr.gov/current/title-12/chapter-II/subchapter-A/part-217"


ANSWER_INSTRUCTIONS = f"""You are an AI assistant specializing in U.S. banking regulations, specifically those found in Title 12 of the Code of Federal Regulations (CFR). Your primary reference is the official eCFR website: {ECFR_PART_217}.

When answering questions, particularly those concerning Risk-Weighted Assets (RWA) calculations, you must adhere to the standardized approach as implemented under Basel III and codified within CFR Title 12.

Crucially:
- Base ALL your answers ONLY on information found at {ECFR_PART_217}.
- Ensure your answers are derived from legal provisions that are currently in effect and have not been repealed, as reflected on the eCFR website.
- If the information required to answer the question is not present on the eCFR website, or if the question pertains to a provision that has been repealed or is no longer in effect, you must clearly state this."""

CALCULATE_RWA_INSTRUCTIONS = f"""You are an AI expert in U.S. banking regulations, performing Risk-Weighted Assets (RWA) calculations under the standardized approach as defined in CFR Title 12. Your calculations must be based SOLELY on the rules found at {ECFR_TITLE_12}.

If the provided information is insufficient or ambiguous for a precise calculation according to CFR Title 12, clearly state what is missing or unclear. Do not make assumptions beyond what is explicitly stated in CFR Title 12 or reasonably inferred from the inputs."""

PROCESS_RWA_TEXT_INSTRUCTIONS = f"""You are an AI assistant specializing in U.S. banking regulations, specifically Risk-Weighted Assets (RWA) calculations under the standardized approach as defined in CFR Title 12. Your primary reference is {ECFR_TITLE_12}.

Focus exclusively on the standardized approach for RWA calculations as codified in CFR Title 12. Ensure all references and interpretations are current and accurate."""

PARSE_DOCUMENT_INSTRUCTIONS = """You are an AI assistant specializing in analyzing U.S. regulatory documents, particularly from the eCFR (Electronic Code of Federal Regulations).

Focus on actionable obligations and rules. Prioritize accuracy and conciseness."""

SUMMARIZE_INSTRUCTIONS = "You write short, factual summaries of chat conversations about banking regulation."


def format_turns(turns: List[ConversationTurn]) -> str:
    return "\n".join(f"  {t.speaker}: {t.text}" for t in turns)


def format_value(value: InputValue) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def format_inputs(inputs: Dict[str, InputValue]) -> str:
    return "\n".join(f"- {name}: {format_value(value)}" for name, value in inputs.items())


def render_answer_question(data: AnswerQuestionInput) -> str:
    lines: List[str] = []
    if data.conversation_history:
        lines.append("Here is the conversation history (user questions and AI summaries):")
        lines.append(format_turns(data.conversation_history))
        lines.append("---")
        lines.append("")
    lines.append(
        "Considering the conversation history above (if any), please answer the following "
        "new question from the user."
    )
    lines.append(f"User's new question: {data.question}")
    lines.append("")
    lines.append(
        f"""Please provide:
1. A concise summary of the answer.
2. A detailed explanation. Consider relevant product types related to the user's query (e.g., corporate loans, residential mortgages, derivatives) when formulating your explanation.
3. Relevant references to specific sections within CFR Title 12. All such references must be current and linkable to their source on {ECFR_PART_217}.
4. Any necessary calculation logic, especially if related to RWA under the standardized approach.
5. Any relevant reference tables, if applicable.
6. Detailed calculation examples for each possible scenario relevant to the user's query. For RWA calculations, demonstrate the standardized approach with step-by-step examples."""
    )
    return "\n".join(lines)


def render_calculate_rwa(data: CalculateRwaInput) -> str:
    return f"""Context for the RWA calculation (derived from previous analysis or user query, referencing CFR Title 12):
'''
{data.rwa_context}
'''

User-provided inputs:
'''
{format_inputs(data.provided_inputs)}
'''

Your tasks:
1. Verify Inputs and Context: ensure the provided inputs are appropriate for the RWA calculation method described in the context and CFR Title 12.
2. Calculate RWA: perform the RWA calculation using the standardized approach outlined in CFR Title 12.
3. Document Method: state the RWA calculation method applied, with specific citations to CFR Title 12 (e.g., "Standardized approach for corporate exposures under 12 CFR § X.Y(z)").
4. Explain Steps: give a step-by-step explanation of how the RWA was derived, showing all intermediate calculations and the CFR Title 12 rule applied at each step. If an input is a percentage (e.g., riskWeightPercentage = 50), interpret it as 50% or 0.50 as appropriate. If an input is a boolean (e.g. prudentlyUnderwritten = true), interpret it accordingly.

Output the calculated RWA, the method used, and the step-by-step explanation in the specified JSON format."""


def render_process_rwa_text(data: ProcessRwaTextInput) -> str:
    return f"""Given the following text, which describes RWA calculation logic and may include examples:
'''
{data.rwa_text}
'''

Your tasks are:
1. Identify and Summarize Logic: analyze the text to understand the specific RWA calculation being described and summarize it. The summary MUST reference the relevant sections of CFR Title 12 that govern this calculation.
2. Determine Required Inputs: list every input parameter a user would need to provide to perform this RWA calculation. For each parameter:
   * Define a machine-readable 'name' (camelCase).
   * Create a user-friendly 'label'.
   * Specify the 'type' ('number', 'text', or 'percentage'). For percentages, the user will input a number (e.g., 50 for 50%).
   * Optionally, provide a brief 'description', citing specific CFR Title 12 provisions if it clarifies the input.

Output the logic summary and the list of required inputs in the specified JSON format."""


def render_parse_document(data: ParseDocumentInput, max_chars: Optional[int] = None) -> str:
    lines = [f"Given the following URL: {data.document_url}", ""]
    if data.document_text:
        text = data.document_text
        if max_chars is not None and len(text) > max_chars:
            text = text[:max_chars]
        lines.append("Text retrieved from that URL:")
        lines.append("'''")
        lines.append(text)
        lines.append("'''")
        lines.append("")
        source = "the retrieved text above"
    else:
        source = "the content typically found at such an eCFR URL"
    lines.append(
        f"""Your task is to:
1. If possible, identify the title of the document (e.g., "Part 217 - Capital Adequacy of Bank Holding Companies, Savings and Loan Holding Companies, and State Member Banks"). Set this as 'sourceTitle'. If not clearly identifiable, omit it.
2. Thoroughly analyze {source}. Extract key regulatory obligations, requirements, or prohibitions.
3. For each identified obligation:
   * Provide a concise 'obligation' description.
   * Specify the 'rule' or citation it relates to (e.g., "12 CFR § 217.10(a)(1)").
   * Summarize relevant 'details' or context for that obligation.
4. Return these as an array under 'obligations'.

If the URL does not point to a standard eCFR page or similar regulatory text, or if no clear obligations can be derived, return an empty 'obligations' array.

Example eCFR link structure: https://www.ecfr.gov/current/title-12/chapter-II/part-217/subpart-A/section-217.1"""
    )
    return "\n".join(lines)


def render_summarize_session(data: SummarizeSessionInput) -> str:
    return f"""Please provide a concise summary (1-2 sentences) of the following chat conversation. Focus on the main topics discussed and any key outcomes or questions resolved.

Conversation History:
{format_turns(data.messages)}

Summary:"""
