from __future__ import annotations  # Guide structuring: raw guide text or documents into core questions

import base64
import json
import logging
from pathlib import Path
from textwrap import dedent
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from config import LlmRoute, load_config, resolve_route
from llm_gateway import HttpClient, LlmGatewayError, chat


logger = logging.getLogger(__name__)

EXTRACT_KEY = "study_guide.extract_questions"  # Registry key for the extraction route

EXTRACTION_GUIDANCE = dedent(
    """
    Extract a structured qualitative research interview guide from the document.
    Identify the core questions and any specific follow-up probes.
    Keep the order of the source. Top-level entries are core questions; entries nested or
    indented directly under a core entry are its probes, in source order.
    Leave out administrative or logistical text such as names, dates, timings, consent
    boilerplate, headings and instructions to the moderator: they are not questions.
    Respond with a JSON object with a single key "questions": an array of objects with
    "text" (string) and "predefinedProbes" (array of strings).
    Return only JSON without markdown fences, text, or commentary.
    """
).strip()


class ExtractionFailed(RuntimeError):  # Structuring oracle could not turn the source into a guide
    pass


class TextSource(BaseModel):  # Pasted or typed guide text
    text: str


class DocumentSource(BaseModel):  # Uploaded document payload with its media type
    media_type: str
    data: bytes
    filename: str = "guide"

    @classmethod
    def from_base64(cls, media_type: str, data: str, filename: str = "guide") -> "DocumentSource":
        try:
            raw = base64.b64decode(data, validate=True)
        except ValueError as exc:
            raise ExtractionFailed("Document payload is not valid base64") from exc
        return cls(media_type=media_type, data=raw, filename=filename)


GuideSource = Union[TextSource, DocumentSource]


class ExtractedQuestion(BaseModel):  # Core question fragment emitted by the oracle, without id
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    text: str
    predefined_probes: List[str] = Field(default_factory=list)

    @field_validator("text", mode="before")
    @classmethod
    def _strip_text(cls, value: object) -> str:
        return str(value).strip() if value is not None else ""

    @field_validator("predefined_probes", mode="after")
    @classmethod
    def _clean_probes(cls, value: List[str]) -> List[str]:
        return [probe.strip() for probe in value if probe and probe.strip()]


class ExtractedGuide(BaseModel):  # Oracle output schema
    questions: List[ExtractedQuestion]

    @classmethod
    def from_raw_content(cls, content: str) -> "ExtractedGuide":  # Accept a bare JSON array as well
        data = json.loads(content)
        if isinstance(data, list):
            return cls.model_validate({"questions": data})
        raise ValueError("Unsupported extraction payload")


async def extract_questions(
    source: GuideSource,
    *,
    route: LlmRoute,
    client: Optional[HttpClient] = None,
) -> List[ExtractedQuestion]:
    """Turn a guide source into ordered core question fragments.

    Raises:
        ExtractionFailed: the source is empty, the oracle could not be reached,
            or its reply could not be parsed into at least one question.
    """

    messages = _build_messages(source)
    try:
        guide = await chat(messages, ExtractedGuide, cfg=route, client=client)
    except LlmGatewayError as exc:
        raise ExtractionFailed(_diagnostic(exc)) from exc
    questions = [question for question in guide.questions if question.text]
    if not questions:
        raise ExtractionFailed("No interview questions were found in the source")
    logger.info("Extracted %d core questions (%d probes)", len(questions), sum(len(q.predefined_probes) for q in questions))
    return questions


async def extract_with_config(
    source: GuideSource,
    *,
    config_path: Path,
    client: Optional[HttpClient] = None,
) -> List[ExtractedQuestion]:  # Convenience helper using app config
    route = resolve_route(load_config(config_path), EXTRACT_KEY)
    return await extract_questions(source, route=route, client=client)


def _build_messages(source: GuideSource) -> List[Dict[str, Any]]:  # Build chat messages for either source kind
    if isinstance(source, DocumentSource) and source.media_type.startswith("text/"):
        source = TextSource(text=source.data.decode("utf-8", errors="replace"))
    if isinstance(source, TextSource):
        if not source.text.strip():
            raise ExtractionFailed("Guide text is empty")
        return [{"role": "user", "content": f"{EXTRACTION_GUIDANCE}\n\nDocument:\n{source.text}"}]
    if not source.data:
        raise ExtractionFailed("Document is empty")
    return [
        {
            "role": "user",
            "content": [
                {"type": "text", "text": EXTRACTION_GUIDANCE},
                _document_part(source),
            ],
        }
    ]


def _document_part(source: DocumentSource) -> Dict[str, Any]:  # Inline document as an OpenAI-style content part
    data_url = f"data:{source.media_type};base64,{base64.b64encode(source.data).decode('ascii')}"
    if source.media_type.startswith("image/"):
        return {"type": "image_url", "image_url": {"url": data_url}}
    return {"type": "file", "file": {"filename": source.filename, "file_data": data_url}}


def _diagnostic(exc: LlmGatewayError) -> str:  # Oracle diagnostic including the underlying cause
    cause = exc.__cause__
    if cause is None:
        return str(exc)
    detail = str(cause).splitlines()[0] if str(cause) else type(cause).__name__
    return f"{exc}: {detail}"
