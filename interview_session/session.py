from __future__ import annotations  # Adaptive interview session driving the decision graph

import asyncio
import logging
from threading import RLock
from typing import Dict, List, Optional
from uuid import uuid4

from config import SessionSettings
from decision_oracle import DecisionMaker
from observability import log_event
from study_guide import StudyConfig
from transcript import InterviewStep
from transcript_gateway import TranscriptGateway, save_in_background

from .graph import build_decision_graph
from .models import InterviewState, progress_percent


def new_respondent_id() -> str:  # Short casual token, generated once per session
    return "user_" + uuid4().hex[:9]


class InterviewSession:
    """One respondent's live interview.

    The session starts with a single open step asking the first core question.
    Each non-blank answer closes that step and runs the decision graph: the
    oracle's verdict appends a probe or the next core question, or completes
    the interview. Oracle failures fall back to the next core question verbatim
    and never reach the respondent; they are counted in ``oracle_failures``.
    On completion the transcript is handed to the gateway in the background.
    """

    def __init__(
        self,
        config: StudyConfig,
        *,
        oracle: DecisionMaker,
        gateway: TranscriptGateway,
        settings: Optional[SessionSettings] = None,
        session_id: Optional[str] = None,
        respondent_id: Optional[str] = None,
    ) -> None:
        self.config = config.model_copy(deep=True)
        self.settings = settings or SessionSettings()
        self.session_id = session_id or uuid4().hex
        self.respondent_id = respondent_id or new_respondent_id()
        self.oracle_failures = 0
        self.last_oracle_error: Optional[str] = None
        self.save_task: Optional[asyncio.Task] = None
        self._gateway = gateway
        self._graph = build_decision_graph(oracle, self.config, timeout_s=self.settings.decision_timeout_s)
        self._state = InterviewState.initial(self.config)
        self._exited = False
        log_event(
            "session_started",
            self.session_id,
            respondent_id=self.respondent_id,
            study_name=self.config.study_name,
        )

    @property
    def state(self) -> InterviewState:
        return self._state.model_copy(deep=True)

    @property
    def steps(self) -> List[InterviewStep]:
        return [step.model_copy() for step in self._state.steps]

    @property
    def is_exited(self) -> bool:
        return self._exited

    @property
    def accepts_answers(self) -> bool:
        return not (self._exited or self._state.is_complete or self._state.is_processing)

    @property
    def current_question(self) -> Optional[str]:
        if self._exited or self._state.is_complete:
            return None
        step = self._state.open_step
        return step.question if step else None

    @property
    def progress(self) -> int:
        return progress_percent(self._state.core_question_index, len(self.config.core_questions))

    async def submit_answer(self, answer: str) -> InterviewState:
        """Record ``answer`` against the open step and decide what comes next.

        Blank answers and submissions while deciding, after completion or after
        exit are ignored and return the unchanged state.
        """

        if not answer or not answer.strip() or not self.accepts_answers:
            return self.state
        self._state = self._state.with_answer(answer)
        log_event(
            "answer_recorded",
            self.session_id,
            step_kind=self._state.steps[-1].kind,
            core_question_index=self._state.core_question_index,
        )
        try:
            result = await self._graph.ainvoke({"interview": self._state, "decision": None, "error": None})
        except BaseException:
            self._state = self._state.model_copy(update={"is_processing": False})
            raise
        if self._exited:
            return self.state
        self._state = result["interview"]
        self._record_turn(result.get("decision"), result.get("error"))
        if self._state.is_complete:
            self._finish()
        return self.state

    def exit(self) -> None:
        """Abandon the session; nothing is persisted and later answers are ignored."""

        if self._exited:
            return
        self._exited = True
        log_event(
            "session_exited",
            self.session_id,
            respondent_id=self.respondent_id,
            core_question_index=self._state.core_question_index,
            outcome="complete" if self._state.is_complete else "abandoned",
        )

    def _record_turn(self, decision: object, error: Optional[str]) -> None:
        if error is not None:
            self.oracle_failures += 1
            self.last_oracle_error = error
            log_event(
                "decision_fallback",
                self.session_id,
                level=logging.WARNING,
                core_question_index=self._state.core_question_index,
                outcome="complete" if self._state.is_complete else "advanced",
                error=error,
            )
            return
        log_event(
            "decision",
            self.session_id,
            core_question_index=self._state.core_question_index,
            decision="exhausted" if self._state.is_complete else self._state.steps[-1].kind,
            reasoning=getattr(decision, "reasoning", ""),
        )

    def _finish(self) -> None:
        log_event(
            "session_completed",
            self.session_id,
            respondent_id=self.respondent_id,
            study_name=self.config.study_name,
            core_question_index=self._state.core_question_index,
            steps=len(self._state.steps),
        )
        self.save_task = save_in_background(
            self._gateway,
            self.config.study_name,
            self.respondent_id,
            self._state.steps,
            attempts=self.settings.save_attempts,
            session_id=self.session_id,
        )


class InMemorySessionStore:  # Thread-safe registry of live sessions
    def __init__(self) -> None:
        self._sessions: Dict[str, InterviewSession] = {}
        self._lock = RLock()

    def create(self, session: InterviewSession) -> None:
        with self._lock:
            self._sessions[session.session_id] = session

    def get(self, session_id: str) -> InterviewSession:
        with self._lock:
            stored = self._sessions.get(session_id)
        if stored is None:
            raise KeyError(session_id)
        return stored

    def delete(self, session_id: str) -> Optional[InterviewSession]:
        with self._lock:
            return self._sessions.pop(session_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
