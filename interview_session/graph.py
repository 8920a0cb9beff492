from __future__ import annotations  # Decision graph run after every respondent answer

import asyncio
import logging
from typing import Any, Dict, Literal, Optional, TypedDict

from langgraph.graph import END, StateGraph

from decision_oracle import Decision, DecisionMaker, OracleError
from study_guide import StudyConfig
from transcript import InterviewStep

from .models import InterviewState


logger = logging.getLogger(__name__)

Route = Literal["ask", "fallback", "complete"]


class TurnState(TypedDict, total=False):  # Values flowing through one decision turn
    interview: InterviewState
    decision: Optional[Decision]
    error: Optional[str]


def build_decision_graph(oracle: DecisionMaker, config: StudyConfig, *, timeout_s: float) -> Any:
    """Compile the deciding -> (awaiting answer | complete) transition.

    ``decide`` asks the oracle with a bounded timeout and records either the
    decision or the failure text. The router then appends the oracle's step,
    falls back to the next core question verbatim, or completes the session.
    """

    core_questions = list(config.core_questions)

    async def _decide(turn: TurnState) -> Dict[str, Any]:
        interview = turn["interview"]
        try:
            decision = await asyncio.wait_for(
                oracle.decide(config.research_goal, core_questions, list(interview.steps)),
                timeout=timeout_s,
            )
        except asyncio.TimeoutError:
            return {"decision": None, "error": f"OracleUnavailable: no decision within {timeout_s:g}s"}
        except OracleError as exc:
            return {"decision": None, "error": f"{type(exc).__name__}: {exc}"}
        except Exception as exc:  # noqa: BLE001
            logger.exception("Decision oracle raised unexpectedly")
            return {"decision": None, "error": f"{type(exc).__name__}: {exc}"}
        return {"decision": decision, "error": None}

    def _route(turn: TurnState) -> Route:
        decision = turn.get("decision")
        if decision is None:
            next_index = turn["interview"].core_question_index + 1
            return "fallback" if next_index < len(core_questions) else "complete"
        if decision.topic_exhausted:
            return "complete"
        return "ask"

    def _ask(turn: TurnState) -> Dict[str, Any]:
        decision = turn["decision"]
        kind = "probe" if decision.is_probe else "core"
        step = InterviewStep(kind=kind, question=decision.next_question)
        return {"interview": turn["interview"].with_step(step, advance=not decision.is_probe)}

    def _fallback(turn: TurnState) -> Dict[str, Any]:
        interview = turn["interview"]
        text = core_questions[interview.core_question_index + 1].text
        return {"interview": interview.with_step(InterviewStep(kind="core", question=text), advance=True)}

    def _complete(turn: TurnState) -> Dict[str, Any]:
        return {"interview": turn["interview"].completed()}

    graph = StateGraph(TurnState)
    graph.add_node("decide", _decide)
    graph.add_node("ask", _ask)
    graph.add_node("fallback", _fallback)
    graph.add_node("complete", _complete)
    graph.set_entry_point("decide")
    graph.add_conditional_edges(
        "decide",
        _route,
        {
            "ask": "ask",
            "fallback": "fallback",
            "complete": "complete",
        },
    )
    graph.add_edge("ask", END)
    graph.add_edge("fallback", END)
    graph.add_edge("complete", END)
    return graph.compile()
