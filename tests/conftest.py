import asyncio
import json
import os
import sys
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import pytest

os.environ.setdefault("ENABLE_FILE_LOGS", "0")

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from config import LlmRoute
from config.settings import settings
from decision_oracle import Decision
from storage.migrate import migrate
from study_guide import CoreQuestion, StudyConfig
from transcript import InterviewStep
from transcript_gateway import SaveOutcome


CONFIG_PATH = ROOT / "app_config.json"


class FakeResponse:  # Stand-in for an httpx response
    def __init__(self, payload: Any, status_code: int = 200) -> None:
        self._payload = payload
        self.status_code = status_code

    def json(self) -> Any:
        if isinstance(self._payload, str):
            return json.loads(self._payload)
        return self._payload

    @property
    def text(self) -> str:
        return self._payload if isinstance(self._payload, str) else json.dumps(self._payload)


Reply = Union[str, dict, list, FakeResponse, Exception]


def completion(content: Union[str, dict, list]) -> Dict[str, Any]:  # Chat-completions body wrapping ``content``
    text = content if isinstance(content, str) else json.dumps(content)
    return {"choices": [{"message": {"role": "assistant", "content": text}}]}


class FakeLlmClient:  # Async HTTP client replaying scripted chat-completion replies
    def __init__(self, replies: Union[Sequence[Reply], Callable[[Dict[str, Any]], Reply]]) -> None:
        self._script = replies if callable(replies) else list(replies)
        self.requests: List[Dict[str, Any]] = []

    async def post(self, url: str, *, json: Dict[str, Any], headers: Dict[str, str], timeout: float) -> FakeResponse:
        self.requests.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        if callable(self._script):
            reply = self._script(json)
        elif len(self._script) > 1:
            reply = self._script.pop(0)
        else:
            reply = self._script[0]
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, FakeResponse):
            return reply
        return FakeResponse(completion(reply))

    def message_text(self, index: int = -1) -> str:  # All text content sent in one request
        parts: List[str] = []
        for message in self.requests[index]["json"]["messages"]:
            content = message["content"]
            if isinstance(content, list):
                parts.extend(part.get("text", "") for part in content if part.get("type") == "text")
            else:
                parts.append(content)
        return "\n".join(parts)


def decision_reply(next_question: str = "", *, probe: bool = False, exhausted: bool = False, reasoning: str = "ok") -> Dict[str, Any]:
    return {
        "nextQuestion": next_question,
        "isProbe": probe,
        "topicExhausted": exhausted,
        "reasoning": reasoning,
    }


class ScriptedOracle:  # Decision maker replaying decisions or raising scripted errors
    def __init__(self, script: Sequence[Union[Decision, Exception]], *, gate: Optional[asyncio.Event] = None, delay: float = 0.0) -> None:
        self._script = list(script)
        self._gate = gate
        self._delay = delay
        self.calls: List[Dict[str, Any]] = []

    async def decide(self, goal: str, core_questions: Sequence[CoreQuestion], transcript: Sequence[InterviewStep]) -> Decision:
        self.calls.append({"goal": goal, "core_questions": list(core_questions), "transcript": list(transcript)})
        if self._gate is not None:
            await self._gate.wait()
        if self._delay:
            await asyncio.sleep(self._delay)
        outcome = self._script.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class RecordingGateway:  # Transcript gateway capturing saves, optionally failing
    def __init__(self, *, fail: Union[bool, Exception] = False) -> None:
        self.saved: List[Dict[str, Any]] = []
        self._fail = fail

    async def save(self, study_name: str, respondent_id: str, transcript: Sequence[InterviewStep]) -> SaveOutcome:
        self.saved.append({"study_name": study_name, "respondent_id": respondent_id, "transcript": list(transcript)})
        if isinstance(self._fail, Exception):
            raise self._fail
        if self._fail:
            return SaveOutcome(success=False, message="Database Error: disk full")
        return SaveOutcome(success=True, message="stored")


def decision(next_question: str = "", *, probe: bool = False, exhausted: bool = False) -> Decision:
    return Decision(next_question=next_question, is_probe=probe, topic_exhausted=exhausted, reasoning="scripted")


@pytest.fixture(autouse=True)
def tmp_db(monkeypatch):
    td = tempfile.TemporaryDirectory()
    db_path = os.path.join(td.name, "test.db")
    monkeypatch.setattr(settings, "DB_PATH", db_path, raising=False)
    migrate(db_path)
    try:
        yield db_path
    finally:
        td.cleanup()


@pytest.fixture
def route() -> LlmRoute:
    return LlmRoute(
        name="test",
        base_url="http://llm.test",
        endpoint="/v1/chat/completions",
        model="test-model",
        timeout_s=5,
        max_retries=1,
        response_format="json_object",
    )


@pytest.fixture
def study() -> StudyConfig:
    return StudyConfig(
        study_name="Coffee Habits",
        research_goal="Understand how remote workers choose coffee",
        core_questions=[
            CoreQuestion(id="q1", text="Q1", predefined_probes=["Why?"]),
            CoreQuestion(id="q2", text="Q2"),
            CoreQuestion(id="q3", text="Q3"),
        ],
    )


