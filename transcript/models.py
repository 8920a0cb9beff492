from __future__ import annotations  # Transcript step model and serialisation helpers

import json
from datetime import datetime, timezone
from typing import List, Literal, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

StepKind = Literal["core", "probe"]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class InterviewStep(BaseModel):  # One asked question and, once answered, its response
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    kind: StepKind
    question: str
    response: Optional[str] = None
    asked_at: datetime = Field(default_factory=utc_now)

    @property
    def is_open(self) -> bool:
        return self.response is None


def history_payload(steps: Sequence[InterviewStep]) -> List[dict]:
    """Steps as sent to the decision oracle: kind, question and response when present."""

    return [step.model_dump(include={"kind", "question", "response"}, exclude_none=True) for step in steps]


def transcript_json(steps: Sequence[InterviewStep]) -> str:
    return json.dumps([step.model_dump(mode="json", by_alias=True) for step in steps], ensure_ascii=False)


def summary_text(steps: Sequence[InterviewStep]) -> str:
    """Plain-text Q/A rendering of a transcript, one block per step."""

    return "\n\n".join(f"Q: {step.question}\nA: {step.response or ''}" for step in steps)
