from __future__ import annotations  # Re-export transcript_gateway public API

from .gateway import (
    BridgeTranscriptGateway,
    MockTranscriptGateway,
    PersistenceFailed,
    SaveOutcome,
    SqliteTranscriptGateway,
    TranscriptGateway,
    build_gateway,
    build_payload,
    save_in_background,
    save_with_retry,
)

__all__ = [
    "BridgeTranscriptGateway",
    "MockTranscriptGateway",
    "PersistenceFailed",
    "SaveOutcome",
    "SqliteTranscriptGateway",
    "TranscriptGateway",
    "build_gateway",
    "build_payload",
    "save_in_background",
    "save_with_retry",
]
