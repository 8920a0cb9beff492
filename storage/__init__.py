"""SQLite persistence for finished transcripts."""
from .migrate import migrate
from .sqlite import get_conn
from .transcripts import StoredTranscript, TranscriptRow, insert_transcript, recent_transcripts

__all__ = [
    "StoredTranscript",
    "TranscriptRow",
    "get_conn",
    "insert_transcript",
    "migrate",
    "recent_transcripts",
]
