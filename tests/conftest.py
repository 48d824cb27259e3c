"""Shared fixtures: an in-memory model client and session store."""

from __future__ import annotations

from typing import Dict, List, Optional, Union

import pytest
from pydantic import BaseModel

from regq_assistant.flows import RegQFlows
from regq_assistant.llm import LLMClient, PromptRequest
from regq_assistant.repository import ChatHistoryStore, InMemoryStorage
from regq_assistant.schemas import RegQAnswer

Reply = Union[BaseModel, None, Exception]


class FakeLLMClient(LLMClient):
    """Returns canned replies per flow name and records every request."""

    def __init__(self, replies: Optional[Dict[str, Reply]] = None) -> None:
        self.replies: Dict[str, Reply] = dict(replies or {})
        self.requests: List[PromptRequest] = []

    def calls(self, name: str) -> List[PromptRequest]:
        return [r for r in self.requests if r.name == name]

    async def generate(self, request: PromptRequest) -> Optional[BaseModel]:
        self.requests.append(request)
        reply = self.replies.get(request.name)
        if isinstance(reply, Exception):
            raise reply
        return reply


def make_answer(summary: str = "A 20% risk weight applies.") -> RegQAnswer:
    return RegQAnswer(
        summary=summary,
        explanation="Corporate exposures are risk weighted under 12 CFR 217.32(f).",
        references="12 CFR 217.32(f)",
    )


@pytest.fixture
def llm() -> FakeLLMClient:
    return FakeLLMClient()


@pytest.fixture
def flows(llm: FakeLLMClient) -> RegQFlows:
    return RegQFlows(llm)


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def store(storage: InMemoryStorage) -> ChatHistoryStore:
    return ChatHistoryStore(storage)
