from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Type

from pydantic import BaseModel, ValidationError
from semantic_kernel.agents import ChatCompletionAgent
from semantic_kernel.connectors.ai.open_ai import (
    AzureChatCompletion,
    OpenAIChatPromptExecutionSettings,
)
from semantic_kernel.functions import KernelArguments

from .config import Settings, get_settings
from .errors import ModelInvocationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PromptRequest:
    """One structured call to the model."""

    name: str
    instructions: str
    prompt: str
    input: BaseModel
    output_type: Type[BaseModel]


class LLMClient:
    async def generate(self, request: PromptRequest) -> Optional[BaseModel]:
        """Return the validated output, or None when the model produced nothing."""
        raise NotImplementedError


class SemanticKernelClient(LLMClient):
    """Azure OpenAI client that keeps one SK agent per flow, created on first use."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        settings = settings or get_settings()
        settings.require_model_settings()

        kwargs = dict(
            api_key=settings.azure_openai_api_key,
            endpoint=settings.azure_openai_endpoint,
            deployment_name=settings.azure_openai_chat_deployment_name,
        )
        if settings.azure_openai_api_version:
            kwargs["api_version"] = settings.azure_openai_api_version
        self._service = AzureChatCompletion(**kwargs)
        self._agents: Dict[str, ChatCompletionAgent] = {}

    def _agent_for(self, request: PromptRequest) -> ChatCompletionAgent:
        agent = self._agents.get(request.name)
        if agent is None:
            # Structured output: the service constrains the reply to the output schema
            prompt_settings = OpenAIChatPromptExecutionSettings(
                response_format=request.output_type
            )
            agent = ChatCompletionAgent(
                service=self._service,
                name=request.name,
                instructions=request.instructions,
                arguments=KernelArguments(prompt_settings),
            )
            self._agents[request.name] = agent
        return agent

    async def generate(self, request: PromptRequest) -> Optional[BaseModel]:
        agent = self._agent_for(request)
        try:
            response = await agent.get_response(request.prompt)
        except Exception as e:
            logger.error("Model call for %s failed: %s", request.name, e)
            raise ModelInvocationError(request.name, str(e)) from e

        content = getattr(response, "content", None)
        if content is not None and not isinstance(content, str):
            content = str(content)
        if not content or not content.strip():
            logger.warning("Model returned no content for %s", request.name)
            return None

        try:
            return request.output_type.model_validate_json(content)
        except ValidationError as e:
            logger.error("Model output for %s does not match %s: %s", request.name, request.output_type.__name__, e)
            raise ModelInvocationError(request.name, f"invalid structured output: {e}") from e
