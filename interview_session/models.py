from __future__ import annotations  # Live interview state

import math
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from study_guide import StudyConfig
from transcript import InterviewStep


def progress_percent(core_question_index: int, total_core_questions: int) -> int:
    """Whole-number completion percentage, rounded half up and capped at 100."""

    if total_core_questions <= 0:
        return 100
    ratio = min((core_question_index + 1) / total_core_questions, 1)
    return int(math.floor(ratio * 100 + 0.5))


class InterviewState(BaseModel):  # Pointer, append-only transcript and flags for one session
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    core_question_index: int = Field(default=0, ge=0)
    steps: List[InterviewStep] = Field(default_factory=list)
    is_complete: bool = False
    is_processing: bool = False

    @classmethod
    def initial(cls, config: StudyConfig) -> "InterviewState":  # One open step asking the first core question
        first = config.core_questions[0].text
        return cls(steps=[InterviewStep(kind="core", question=first)])

    @property
    def open_step(self) -> Optional[InterviewStep]:
        if self.steps and self.steps[-1].is_open:
            return self.steps[-1]
        return None

    def with_answer(self, answer: str) -> "InterviewState":  # Close the last step and enter the deciding state
        steps = list(self.steps)
        steps[-1] = steps[-1].model_copy(update={"response": answer})
        return self.model_copy(update={"steps": steps, "is_processing": True})

    def with_step(self, step: InterviewStep, *, advance: bool) -> "InterviewState":
        return self.model_copy(
            update={
                "steps": self.steps + [step],
                "core_question_index": self.core_question_index + (1 if advance else 0),
                "is_processing": False,
            }
        )

    def completed(self) -> "InterviewState":
        return self.model_copy(update={"is_complete": True, "is_processing": False})
