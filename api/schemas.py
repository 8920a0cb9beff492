"""Pydantic schemas for the interview engine API."""
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic.alias_generators import to_camel

from study_guide import CoreQuestion, StudyConfig
from transcript import InterviewStep


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ExtractReq(CamelModel):
    text: Optional[str] = None
    media_type: Optional[str] = None
    data: Optional[str] = None
    filename: str = "guide"

    @model_validator(mode="after")
    def _one_source(self) -> "ExtractReq":
        has_document = self.media_type is not None or self.data is not None
        if self.text is not None and has_document:
            raise ValueError("Provide either text or a document, not both")
        if self.text is None and not (self.media_type and self.data):
            raise ValueError("Provide text, or mediaType with base64 data")
        return self


class ExtractResp(CamelModel):
    questions: List[CoreQuestion]


class StartReq(CamelModel):
    study_config: StudyConfig


class AnswerReq(CamelModel):
    answer: str


class SessionSnapshot(CamelModel):
    session_id: str
    respondent_id: str
    study_name: str
    core_question_index: int
    progress: int
    is_complete: bool
    is_processing: bool
    current_question: Optional[str] = None
    steps: List[InterviewStep]


class HealthResp(CamelModel):
    status: str
    oracle_route: str
    transcript_store: str
