"""Persistence helpers for finished interview transcripts."""
from __future__ import annotations

from typing import Any, List

from pydantic import BaseModel

from .sqlite import get_conn


class TranscriptRow(BaseModel):
    study_name: str
    respondent_id: str
    interview_json: str
    summary_text: str
    created_at: str


class StoredTranscript(TranscriptRow):
    id: int


def insert_transcript(db_path: str, **data: Any) -> int:
    """Insert a transcript row and return its id."""

    payload = TranscriptRow(**data)
    with get_conn(db_path) as conn:
        cur = conn.cursor()
        cur.execute(
            """INSERT INTO interview_responses
               (study_name, respondent_id, interview_json, summary_text, created_at)
               VALUES (?, ?, ?, ?, ?)""",
            (
                payload.study_name,
                payload.respondent_id,
                payload.interview_json,
                payload.summary_text,
                payload.created_at,
            ),
        )
        return int(cur.lastrowid)


def recent_transcripts(db_path: str, limit: int = 20, study_name: str | None = None) -> List[StoredTranscript]:
    """Return the most recently stored transcripts, newest first."""

    query = (
        "SELECT id, study_name, respondent_id, interview_json, summary_text, created_at "
        "FROM interview_responses"
    )
    params: list[Any] = []
    if study_name is not None:
        query += " WHERE study_name = ?"
        params.append(study_name)
    query += " ORDER BY id DESC LIMIT ?"
    params.append(limit)
    with get_conn(db_path) as conn:
        rows = conn.execute(query, params).fetchall()
    return [StoredTranscript(**dict(row)) for row in rows]
