from __future__ import annotations  # Re-export decision_oracle public API

from .decision_oracle import (
    DECIDE_KEY,
    Decision,
    DecisionMaker,
    DecisionOracle,
    OracleError,
    OracleResponseInvalid,
    OracleUnavailable,
    decision_request,
    oracle_from_config,
)

__all__ = [
    "DECIDE_KEY",
    "Decision",
    "DecisionMaker",
    "DecisionOracle",
    "OracleError",
    "OracleResponseInvalid",
    "OracleUnavailable",
    "decision_request",
    "oracle_from_config",
]
