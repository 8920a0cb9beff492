from __future__ import annotations  # Guide model: core questions, study configuration, authoring draft

from typing import Iterable, List, Sequence
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


def new_question_id() -> str:  # Short opaque token for a core question
    return uuid4().hex[:9]


class CoreQuestion(BaseModel):  # Primary interview topic with optional predefined probes
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(default_factory=new_question_id, min_length=1)
    text: str = ""
    predefined_probes: List[str] = Field(default_factory=list)


class StudyConfig(BaseModel):
    """Validated, read-only study handed to an interview session.

    A study can only be built when it has a name, a research goal and at least
    one core question, every question has text and question ids are unique.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    study_name: str
    research_goal: str
    core_questions: List[CoreQuestion] = Field(min_length=1)

    @field_validator("study_name", "research_goal")
    @classmethod
    def _require_text(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value.strip()

    @model_validator(mode="after")
    def _check_questions(self) -> "StudyConfig":
        seen: set[str] = set()
        for position, question in enumerate(self.core_questions):
            if not question.text.strip():
                raise ValueError(f"core question {position + 1} has no text")
            if question.id in seen:
                raise ValueError(f"duplicate core question id '{question.id}'")
            seen.add(question.id)
        return self

    def question_texts(self) -> List[str]:
        return [question.text for question in self.core_questions]


class GuideDraft:  # Mutable authoring-side list of core questions
    def __init__(self, questions: Iterable[CoreQuestion] = ()) -> None:
        self._questions: List[CoreQuestion] = []
        for question in questions:
            self._append(question)

    @property
    def questions(self) -> List[CoreQuestion]:
        return [question.model_copy(deep=True) for question in self._questions]

    def __len__(self) -> int:
        return len(self._questions)

    def add_question(self, text: str = "", probes: Sequence[str] = ()) -> CoreQuestion:
        question = CoreQuestion(id=self._fresh_id(), text=text, predefined_probes=list(probes))
        self._questions.append(question)
        return question.model_copy(deep=True)

    def extend(self, fragments: Iterable[object]) -> List[CoreQuestion]:
        """Append structuring output, assigning each fragment a fresh id."""

        added: List[CoreQuestion] = []
        for fragment in fragments:
            text = getattr(fragment, "text")
            probes = getattr(fragment, "predefined_probes", [])
            added.append(self.add_question(text, probes))
        return added

    def update_text(self, question_id: str, text: str) -> CoreQuestion:
        return self._replace(question_id, text=text)

    def set_probes(self, question_id: str, probes: Sequence[str]) -> CoreQuestion:
        return self._replace(question_id, predefined_probes=list(probes))

    def add_probe(self, question_id: str, text: str) -> CoreQuestion:
        current = self._questions[self._index_of(question_id)]
        return self._replace(question_id, predefined_probes=current.predefined_probes + [text])

    def remove_probe(self, question_id: str, probe_index: int) -> CoreQuestion:
        probes = list(self._questions[self._index_of(question_id)].predefined_probes)
        del probes[probe_index]
        return self._replace(question_id, predefined_probes=probes)

    def move(self, question_id: str, to_index: int) -> None:
        """Reorder by id; ``to_index`` is clamped into the list bounds."""

        position = self._index_of(question_id)
        question = self._questions.pop(position)
        target = max(0, min(to_index, len(self._questions)))
        self._questions.insert(target, question)

    def remove(self, question_id: str) -> CoreQuestion:
        return self._questions.pop(self._index_of(question_id))

    def is_launchable(self, study_name: str, research_goal: str) -> bool:
        return (
            bool(study_name.strip())
            and bool(research_goal.strip())
            and bool(self._questions)
            and all(question.text.strip() for question in self._questions)
        )

    def to_study_config(self, study_name: str, research_goal: str) -> StudyConfig:
        return StudyConfig(
            study_name=study_name,
            research_goal=research_goal,
            core_questions=self.questions,
        )

    def _append(self, question: CoreQuestion) -> None:
        if any(existing.id == question.id for existing in self._questions):
            raise ValueError(f"duplicate core question id '{question.id}'")
        self._questions.append(question.model_copy(deep=True))

    def _fresh_id(self) -> str:
        taken = {question.id for question in self._questions}
        candidate = new_question_id()
        while candidate in taken:
            candidate = new_question_id()
        return candidate

    def _index_of(self, question_id: str) -> int:
        for position, question in enumerate(self._questions):
            if question.id == question_id:
                return position
        raise KeyError(question_id)

    def _replace(self, question_id: str, **update: object) -> CoreQuestion:
        position = self._index_of(question_id)
        updated = self._questions[position].model_copy(update=update)
        self._questions[position] = updated
        return updated
