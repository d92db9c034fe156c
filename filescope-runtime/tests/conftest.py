"""Pytest configuration for filescope-runtime tests."""

from __future__ import annotations

from collections import deque
from typing import Any, Deque, Dict, List, Sequence, Tuple, Union

import pytest
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage

from filescope_runtime.completion import CompletionResult
from filescope_runtime.config import ContextSelectorConfig
from filescope_runtime.metrics import TokenUsage


class _StubChatModel:
    """Minimal chat model stub that mirrors LangChain's invoke contract."""

    def __init__(self, model_name: str):
        self.model_name = model_name
        self.calls: List[Sequence[BaseMessage]] = []

    def invoke(self, messages: Sequence[BaseMessage], *_, **__) -> AIMessage:
        self.calls.append(messages)
        text = ""
        for message in reversed(messages):
            if isinstance(message, HumanMessage):
                text = str(message.content)
                break
        tokens = text.split()
        return AIMessage(
            content=f"[stub:{self.model_name}] {' '.join(tokens[:25])}".strip(),
            usage_metadata={"input_tokens": len(tokens), "output_tokens": 5, "total_tokens": len(tokens) + 5},
        )


@pytest.fixture(autouse=True)
def stub_langchain_chat_models(monkeypatch: pytest.MonkeyPatch) -> Dict[str, _StubChatModel]:
    """
    Prevent external LLM calls during tests by stubbing LangChain chat model factory.
    """
    created: Dict[str, _StubChatModel] = {}

    def _factory(model_name: str, *_, **__) -> _StubChatModel:
        model = _StubChatModel(model_name)
        created[model_name] = model
        return model

    monkeypatch.setattr("filescope_runtime.completion.init_chat_model", _factory, raising=True)
    return created


Scripted = Union[str, BaseException]


class ScriptedCompletionClient:
    """
    Deterministic `CompletionClient` fake. Responses are queued per role; an
    exception instance in the queue is raised instead of answered.
    """

    DEFAULTS = {
        "selector": "<updateContextBuffer></updateContextBuffer>",
        "arbiter": "none",
        "summarizer": "The user is building a small web app.",
    }

    def __init__(self) -> None:
        self.queues: Dict[str, Deque[Tuple[Scripted, TokenUsage]]] = {
            role: deque() for role in self.DEFAULTS
        }
        self.calls: Dict[str, List[Tuple[str, str]]] = {role: [] for role in self.DEFAULTS}

    def queue(self, role: str, response: Scripted, *, total_tokens: int = 0) -> None:
        usage = TokenUsage(total_tokens=total_tokens)
        self.queues[role].append((response, usage))

    async def summarize(self, system: str, prompt: str) -> CompletionResult:
        return self._answer("summarizer", system, prompt)

    async def select_files(self, system: str, prompt: str) -> CompletionResult:
        return self._answer("selector", system, prompt)

    async def judge_similarity(self, system: str, prompt: str) -> CompletionResult:
        return self._answer("arbiter", system, prompt)

    def _answer(self, role: str, system: str, prompt: str) -> CompletionResult:
        self.calls[role].append((system, prompt))
        if self.queues[role]:
            response, usage = self.queues[role].popleft()
        else:
            response, usage = self.DEFAULTS[role], TokenUsage()
        if isinstance(response, BaseException):
            raise response
        return CompletionResult(text=response, usage=usage)


class ManualClock:
    """Monotonic clock that only moves when the test advances it."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_client() -> ScriptedCompletionClient:
    return ScriptedCompletionClient()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def selector_config() -> ContextSelectorConfig:
    return ContextSelectorConfig(metrics_enabled=False, arbiter_timeout_seconds=None)


def selection(*, include: Sequence[str] = (), exclude: Sequence[str] = ()) -> str:
    lines = [f'    <includeFile path="{path}"/>' for path in include]
    lines.extend(f'    <excludeFile path="{path}"/>' for path in exclude)
    body = "\n".join(lines)
    return f"<updateContextBuffer>\n{body}\n</updateContextBuffer>"


@pytest.fixture
def make_selection():
    return selection


@pytest.fixture
def project_files() -> Dict[str, Dict[str, Any]]:
    return {
        "/home/project/src/App.tsx": {"content": "export default function App() {}\n", "type": "file"},
        "/home/project/src/Login.tsx": {"content": "export function Login() {}\n", "type": "file"},
        "/home/project/src/api.ts": {"content": "export const api = {};\n", "type": "file"},
        "/home/project/src": {"content": "", "type": "folder"},
        "/home/project/node_modules/react/index.js": {"content": "module.exports = {};\n", "type": "file"},
        "/home/project/package-lock.json": {"content": "{}", "type": "file"},
    }
