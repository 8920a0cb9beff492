"""Lightweight CLI helpers for inspecting stored interview transcripts."""
from __future__ import annotations

import argparse
from typing import List, Optional

from config.settings import settings
from storage import StoredTranscript, recent_transcripts


def format_transcript(row: StoredTranscript, *, full: bool = False) -> str:
    header = f"[{row.created_at}] #{row.id} {row.study_name} respondent={row.respondent_id}"
    if not full:
        first_line = row.summary_text.splitlines()[0] if row.summary_text else ""
        return f"{header} :: {first_line}"
    return f"{header}\n{row.summary_text}\n"


def tail_transcripts(limit: int = 20, study_name: Optional[str] = None, *, full: bool = False) -> List[str]:
    lines = [
        format_transcript(row, full=full)
        for row in recent_transcripts(settings.DB_PATH, limit=limit, study_name=study_name)
    ]
    for line in lines:
        print(line)
    return lines


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--tail-transcripts", type=int, help="Show the latest stored transcripts")
    parser.add_argument("--study", help="Only show transcripts for this study name")
    parser.add_argument("--full", action="store_true", help="Print the whole Q/A summary")
    args = parser.parse_args(argv)

    if args.tail_transcripts:
        tail_transcripts(args.tail_transcripts, args.study, full=args.full)


if __name__ == "__main__":
    main()
