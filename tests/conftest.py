"""Pytest configuration for NexoraOS tests."""

from typing import Callable

import pytest
from langchain_core.messages import AIMessage

from fixtures.llm_responses import default_reply
from nexora.pipeline import EbookPipeline
from nexora.storage import InMemoryRecordStore, JobStore
from nexora.utils.llm_client import LLMClient


class ScriptedChatModel:
    """Chat model stand-in whose replies come from a function of the prompt."""

    def __init__(self, factory: "ScriptedModelFactory", model: str, max_tokens: int):
        self.factory = factory
        self.model = model
        self.max_tokens = max_tokens

    def invoke(self, messages):
        prompt = messages[-1].content
        self.factory.calls.append(
            {"model": self.model, "max_tokens": self.max_tokens, "prompt": prompt, "messages": messages}
        )
        reply = self.factory.reply(prompt)
        if isinstance(reply, Exception):
            raise reply
        return AIMessage(content=reply)


class ScriptedModelFactory:
    """Builds ``ScriptedChatModel`` instances and records every call."""

    def __init__(self, reply: Callable[[str], object] = default_reply):
        self.reply = reply
        self.calls: list[dict] = []

    def __call__(self, model: str, max_tokens: int) -> ScriptedChatModel:
        return ScriptedChatModel(self, model, max_tokens)

    def prompts_containing(self, text: str) -> list[str]:
        return [c["prompt"] for c in self.calls if text in c["prompt"]]


@pytest.fixture
def chat_factory():
    return ScriptedModelFactory()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def llm(chat_factory, sleeps):
    return LLMClient(
        api_key="test-key",
        model="test/model",
        max_attempts=3,
        backoff_seconds=1.2,
        chat_model_factory=chat_factory,
        sleep=sleeps.append,
    )


@pytest.fixture
def records():
    return InMemoryRecordStore()


@pytest.fixture
def job_store(records):
    return JobStore(records)


@pytest.fixture
def pipeline(job_store, llm):
    return EbookPipeline(job_store, llm)
