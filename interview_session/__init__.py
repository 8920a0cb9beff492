from __future__ import annotations  # Re-export interview_session public API

from .graph import TurnState, build_decision_graph
from .models import InterviewState, progress_percent
from .session import InMemorySessionStore, InterviewSession, new_respondent_id

__all__ = [
    "InMemorySessionStore",
    "InterviewSession",
    "InterviewState",
    "TurnState",
    "build_decision_graph",
    "new_respondent_id",
    "progress_percent",
]
