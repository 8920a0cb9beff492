from __future__ import annotations  # Transcript persistence gateway: best-effort save of finished interviews

import asyncio
import logging
import sqlite3
from typing import Any, Dict, List, Optional, Protocol, Sequence, Set

import httpx
from pydantic import BaseModel

from config.settings import Settings
from observability import log_event
from storage import insert_transcript, migrate
from transcript import InterviewStep, summary_text, transcript_json, utc_now


logger = logging.getLogger(__name__)

_BACKGROUND: Set[asyncio.Task] = set()  # Strong refs so detached saves are not garbage collected


class SaveOutcome(BaseModel):  # Result of a save attempt
    success: bool
    message: str = ""


class PersistenceFailed(RuntimeError):  # Transcript could not be stored
    pass


class TranscriptGateway(Protocol):  # Anything able to store a finished transcript
    async def save(self, study_name: str, respondent_id: str, transcript: Sequence[InterviewStep]) -> SaveOutcome: ...


def build_payload(study_name: str, respondent_id: str, transcript: Sequence[InterviewStep]) -> Dict[str, Any]:
    """Row shape shared by every store: full JSON transcript plus a Q/A summary."""

    return {
        "study_name": study_name,
        "respondent_id": respondent_id,
        "interview_json": transcript_json(transcript),
        "summary_text": summary_text(transcript),
        "timestamp": utc_now().isoformat(),
    }


class MockTranscriptGateway:  # Logs payloads instead of storing them
    def __init__(self) -> None:
        self.saved: List[Dict[str, Any]] = []

    async def save(self, study_name: str, respondent_id: str, transcript: Sequence[InterviewStep]) -> SaveOutcome:
        payload = build_payload(study_name, respondent_id, transcript)
        self.saved.append(payload)
        logger.info("Mock transcript store: study=%s respondent=%s steps=%d", study_name, respondent_id, len(transcript))
        return SaveOutcome(success=True, message="Mock save successful. Configure a transcript store to persist.")


class SqliteTranscriptGateway:  # Stores transcripts in the local SQLite database
    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        migrate(db_path)

    async def save(self, study_name: str, respondent_id: str, transcript: Sequence[InterviewStep]) -> SaveOutcome:
        payload = build_payload(study_name, respondent_id, transcript)
        try:
            row_id = await asyncio.to_thread(self._write, payload)
        except PersistenceFailed as exc:
            return SaveOutcome(success=False, message=str(exc))
        return SaveOutcome(success=True, message=f"Stored transcript #{row_id}")

    def _write(self, payload: Dict[str, Any]) -> int:
        try:
            return insert_transcript(
                self._db_path,
                study_name=payload["study_name"],
                respondent_id=payload["respondent_id"],
                interview_json=payload["interview_json"],
                summary_text=payload["summary_text"],
                created_at=payload["timestamp"],
            )
        except sqlite3.Error as exc:
            raise PersistenceFailed(f"Database Error: {exc}") from exc


class BridgeTranscriptGateway:  # Posts transcripts to a remote relay that owns the database
    def __init__(
        self,
        endpoint: str,
        *,
        target: Optional[Dict[str, str]] = None,
        timeout_s: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._endpoint = endpoint
        self._target = dict(target or {})
        self._timeout_s = timeout_s
        self._client = client

    async def save(self, study_name: str, respondent_id: str, transcript: Sequence[InterviewStep]) -> SaveOutcome:
        payload = build_payload(study_name, respondent_id, transcript)
        try:
            body = await self._post({"config": self._target, "data": payload})
        except PersistenceFailed as exc:
            return SaveOutcome(success=False, message=str(exc))
        return SaveOutcome(success=True, message=str(body.get("message") or body.get("id") or "Saved"))

    async def _post(self, body: Dict[str, Any]) -> Dict[str, Any]:
        client = self._client or httpx.AsyncClient(timeout=self._timeout_s)
        try:
            response = await client.post(self._endpoint, json=body)
        except httpx.HTTPError as exc:
            raise PersistenceFailed(f"Bridge unreachable: {exc}") from exc
        finally:
            if self._client is None:
                await client.aclose()
        if response.status_code >= 400:
            raise PersistenceFailed(f"Bridge Error: {response.status_code} {response.text[:200]}")
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}


def build_gateway(settings: Settings) -> TranscriptGateway:
    """Pick the transcript store named by ``TRANSCRIPT_STORE``."""

    if settings.TRANSCRIPT_STORE == "sqlite":
        return SqliteTranscriptGateway(settings.DB_PATH)
    if settings.TRANSCRIPT_STORE == "bridge":
        return BridgeTranscriptGateway(
            settings.BRIDGE_ENDPOINT,
            target=settings.bridge_target(),
            timeout_s=settings.BRIDGE_TIMEOUT_S,
        )
    return MockTranscriptGateway()


async def save_with_retry(
    gateway: TranscriptGateway,
    study_name: str,
    respondent_id: str,
    transcript: Sequence[InterviewStep],
    *,
    attempts: int = 1,
    session_id: str = "",
) -> SaveOutcome:
    """Save with up to ``attempts`` tries. Never raises; failures are logged only."""

    outcome = SaveOutcome(success=False, message="No save attempted")
    for attempt in range(1, max(attempts, 1) + 1):
        try:
            outcome = await gateway.save(study_name, respondent_id, list(transcript))
        except Exception as exc:  # noqa: BLE001
            logger.exception("Transcript gateway raised")
            outcome = SaveOutcome(success=False, message=f"{type(exc).__name__}: {exc}")
        if outcome.success:
            log_event(
                "transcript_saved",
                session_id,
                respondent_id=respondent_id,
                study_name=study_name,
                attempt=attempt,
                outcome=outcome.message,
            )
            return outcome
        log_event(
            "transcript_save_failed",
            session_id,
            level=logging.WARNING,
            respondent_id=respondent_id,
            study_name=study_name,
            attempt=attempt,
            error=outcome.message,
        )
    return outcome


def save_in_background(
    gateway: TranscriptGateway,
    study_name: str,
    respondent_id: str,
    transcript: Sequence[InterviewStep],
    *,
    attempts: int = 1,
    session_id: str = "",
) -> asyncio.Task:
    """Fire-and-forget save on the running loop; the returned task never fails."""

    task = asyncio.get_running_loop().create_task(
        save_with_retry(
            gateway,
            study_name,
            respondent_id,
            list(transcript),
            attempts=attempts,
            session_id=session_id,
        )
    )
    _BACKGROUND.add(task)
    task.add_done_callback(_BACKGROUND.discard)
    return task
