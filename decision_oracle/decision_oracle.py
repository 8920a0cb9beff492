from __future__ import annotations  # Decision oracle adapter: probe, advance or finish after each answer

import json
from pathlib import Path
from textwrap import dedent
from typing import Any, Dict, Optional, Protocol, Sequence

from langchain_core.prompts import ChatPromptTemplate
from pydantic import BaseModel, ConfigDict, model_validator
from pydantic.alias_generators import to_camel

from config import LlmRoute, load_config, resolve_route
from llm_gateway import HttpClient, LlmGatewayError, LlmValidationError
from llm_gateway import runnable as llm_runnable
from study_guide import CoreQuestion
from transcript import InterviewStep, history_payload


DECIDE_KEY = "decision_oracle.decide"  # Registry key for the decision route

SYSTEM_INSTRUCTION = dedent(  # Interviewer guidance supplied with every decision request
    """
    You are a world-class qualitative research interviewer.
    Your goal is to elicit deep, detailed, and meaningful insights from the respondent.

    STRATEGY:
    1. Use the provided core questions as your primary milestones, in order.
    2. If the latest answer is shallow, generate a probing follow-up on the same topic
       (you may adapt one of the predefined probes) and set isProbe to true.
    3. Do not move to the next core question until the current topic is explored;
       when you move on, nextQuestion is the next core question and isProbe is false.
    4. Set topicExhausted to true only when the last core question has been explored
       and the interview should end.
    """
).strip()


class Decision(BaseModel):  # Oracle verdict on how the interview continues
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    next_question: str
    is_probe: bool
    topic_exhausted: bool
    reasoning: str

    @model_validator(mode="after")
    def _require_question(self) -> "Decision":  # Only a finishing verdict may omit the next question
        self.next_question = self.next_question.strip()
        if not self.next_question and not self.topic_exhausted:
            raise ValueError("nextQuestion must not be blank unless topicExhausted")
        return self


class OracleError(RuntimeError):  # Decision call failed; absorbed by the session fallback
    pass


class OracleUnavailable(OracleError):  # Transport failure, error status or timeout
    pass


class OracleResponseInvalid(OracleError):  # Reply missing fields or not parseable
    pass


class DecisionMaker(Protocol):  # Anything able to decide the next interview step
    async def decide(
        self,
        goal: str,
        core_questions: Sequence[CoreQuestion],
        transcript: Sequence[InterviewStep],
    ) -> Decision: ...


def decision_request(
    goal: str,
    core_questions: Sequence[CoreQuestion],
    transcript: Sequence[InterviewStep],
) -> Dict[str, Any]:  # Wire request: goal, core questions with probes, history so far
    return {
        "goal": goal,
        "coreQuestions": [
            {"text": question.text, "predefinedProbes": list(question.predefined_probes)}
            for question in core_questions
        ],
        "history": history_payload(transcript),
    }


class DecisionOracle:
    """LLM-backed adapter for the decide contract.

    The adapter never retries: the route's ``max_retries`` is forced to zero so
    a bad reply fails fast into the caller's fallback path.
    """

    def __init__(self, route: LlmRoute, *, client: Optional[HttpClient] = None) -> None:
        self._route = route.model_copy(update={"max_retries": 0})
        self._prompt = ChatPromptTemplate.from_messages(
            [
                ("system", "{instructions}"),
                (
                    "human",
                    (
                        "STUDY GOAL: {goal}\n"
                        "CORE QUESTIONS: {core_questions}\n"
                        "HISTORY: {history}\n\n"
                        "Decide the next step. Reply with a JSON object with nextQuestion, isProbe,"
                        " topicExhausted and reasoning."
                    ),
                ),
            ]
        )
        self._chain = self._prompt | llm_runnable(self._route, Decision, client=client)

    @property
    def route(self) -> LlmRoute:
        return self._route

    async def decide(
        self,
        goal: str,
        core_questions: Sequence[CoreQuestion],
        transcript: Sequence[InterviewStep],
    ) -> Decision:
        request = decision_request(goal, core_questions, transcript)
        try:
            return await self._chain.ainvoke(
                {
                    "instructions": SYSTEM_INSTRUCTION,
                    "goal": request["goal"],
                    "core_questions": json.dumps(request["coreQuestions"], ensure_ascii=False),
                    "history": json.dumps(request["history"], ensure_ascii=False),
                }
            )
        except LlmValidationError as exc:
            raise OracleResponseInvalid(str(exc)) from exc
        except LlmGatewayError as exc:
            raise OracleUnavailable(str(exc)) from exc


def oracle_from_config(config_path: Path, *, client: Optional[HttpClient] = None) -> DecisionOracle:  # Convenience helper using app config
    route = resolve_route(load_config(config_path), DECIDE_KEY)
    return DecisionOracle(route, client=client)
