from __future__ import annotations  # Re-export transcript public API

from .models import InterviewStep, StepKind, history_payload, summary_text, transcript_json, utc_now

__all__ = ["InterviewStep", "StepKind", "history_payload", "summary_text", "transcript_json", "utc_now"]
