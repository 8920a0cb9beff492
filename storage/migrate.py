"""SQLite schema migrations."""
from __future__ import annotations

from typing import Iterable

from .sqlite import get_conn

SCHEMA: Iterable[str] = [
    """
CREATE TABLE IF NOT EXISTS interview_responses (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  study_name TEXT NOT NULL,
  respondent_id TEXT NOT NULL,
  interview_json TEXT NOT NULL,
  summary_text TEXT NOT NULL,
  created_at TEXT NOT NULL
);
""",
    """
CREATE INDEX IF NOT EXISTS idx_interview_responses_study
  ON interview_responses (study_name, created_at);
""",
]


def migrate(db_path: str = "data/interviews.db") -> None:
    """Apply schema migrations to the SQLite database."""

    with get_conn(db_path) as conn:
        cur = conn.cursor()
        for stmt in SCHEMA:
            cur.execute(stmt)


if __name__ == "__main__":
    from config.settings import settings

    migrate(settings.DB_PATH)
