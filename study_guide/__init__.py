from __future__ import annotations  # Re-export study_guide public API

from .models import CoreQuestion, GuideDraft, StudyConfig, new_question_id
from .structuring import (
    EXTRACT_KEY,
    DocumentSource,
    ExtractedGuide,
    ExtractedQuestion,
    ExtractionFailed,
    GuideSource,
    TextSource,
    extract_questions,
    extract_with_config,
)

__all__ = [
    "CoreQuestion",
    "DocumentSource",
    "EXTRACT_KEY",
    "ExtractedGuide",
    "ExtractedQuestion",
    "ExtractionFailed",
    "GuideDraft",
    "GuideSource",
    "StudyConfig",
    "TextSource",
    "extract_questions",
    "extract_with_config",
    "new_question_id",
]
