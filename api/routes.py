"""FastAPI routes for guide structuring and interview sessions."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from api.schemas import AnswerReq, ExtractReq, ExtractResp, HealthResp, SessionSnapshot, StartReq
from config import LlmRoute, SessionSettings, Settings, load_config, resolve_route
from decision_oracle import DECIDE_KEY, DecisionMaker, DecisionOracle
from interview_session import InMemorySessionStore, InterviewSession
from llm_gateway import HttpClient
from study_guide import EXTRACT_KEY, DocumentSource, ExtractionFailed, GuideDraft, TextSource, extract_questions
from transcript_gateway import TranscriptGateway, build_gateway


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


@dataclass
class EngineServices:  # Collaborators shared by the routes
    oracle: DecisionMaker
    gateway: TranscriptGateway
    extract_route: LlmRoute
    session_settings: SessionSettings
    store_name: str
    oracle_route: str
    llm_client: Optional[HttpClient] = None
    sessions: InMemorySessionStore = field(default_factory=InMemorySessionStore)


def build_services(
    app_settings: Settings,
    *,
    config_path: Optional[Path] = None,
    llm_client: Optional[HttpClient] = None,
) -> EngineServices:
    """Wire oracle, extraction route and transcript store from ``app_settings``.

    ``config_path`` overrides ``app_settings.CONFIG_PATH``.
    """

    cfg = load_config(config_path or Path(app_settings.CONFIG_PATH))
    decide_route = resolve_route(cfg, DECIDE_KEY)
    return EngineServices(
        oracle=DecisionOracle(decide_route, client=llm_client),
        gateway=build_gateway(app_settings),
        extract_route=resolve_route(cfg, EXTRACT_KEY),
        session_settings=cfg.session,
        store_name=app_settings.TRANSCRIPT_STORE,
        oracle_route=decide_route.name,
        llm_client=llm_client,
    )


def get_services(request: Request) -> EngineServices:  # Installed on app.state by the server
    return request.app.state.services


def _snapshot(session: InterviewSession) -> SessionSnapshot:
    state = session.state
    return SessionSnapshot(
        session_id=session.session_id,
        respondent_id=session.respondent_id,
        study_name=session.config.study_name,
        core_question_index=state.core_question_index,
        progress=session.progress,
        is_complete=state.is_complete,
        is_processing=state.is_processing,
        current_question=session.current_question,
        steps=state.steps,
    )


def _session_or_404(services: EngineServices, session_id: str) -> InterviewSession:
    try:
        return services.sessions.get(session_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail="Session not found") from exc


@router.get("/health", response_model=HealthResp)
async def health(services: EngineServices = Depends(get_services)) -> HealthResp:
    return HealthResp(status="ok", oracle_route=services.oracle_route, transcript_store=services.store_name)


@router.post("/guides/extract", response_model=ExtractResp)
async def extract_guide(payload: ExtractReq, services: EngineServices = Depends(get_services)) -> ExtractResp:
    try:
        if payload.text is not None:
            source = TextSource(text=payload.text)
        else:
            source = DocumentSource.from_base64(payload.media_type or "", payload.data or "", payload.filename)
        fragments = await extract_questions(source, route=services.extract_route, client=services.llm_client)
    except ExtractionFailed as exc:
        logger.warning("Guide extraction failed: %s", exc)
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    draft = GuideDraft()
    return ExtractResp(questions=draft.extend(fragments))


@router.post("/sessions", response_model=SessionSnapshot)
async def start_session(payload: StartReq, services: EngineServices = Depends(get_services)) -> SessionSnapshot:
    session = InterviewSession(
        payload.study_config,
        oracle=services.oracle,
        gateway=services.gateway,
        settings=services.session_settings,
    )
    services.sessions.create(session)
    return _snapshot(session)


@router.get("/sessions/{session_id}", response_model=SessionSnapshot)
async def get_session(session_id: str, services: EngineServices = Depends(get_services)) -> SessionSnapshot:
    return _snapshot(_session_or_404(services, session_id))


@router.post("/sessions/{session_id}/answers", response_model=SessionSnapshot)
async def submit_answer(
    session_id: str,
    payload: AnswerReq,
    services: EngineServices = Depends(get_services),
) -> SessionSnapshot:
    session = _session_or_404(services, session_id)
    state = await session.submit_answer(payload.answer)
    snapshot = _snapshot(session)
    if state.is_complete:
        # Completed sessions leave the store; the pending save holds its own references
        services.sessions.delete(session_id)
    return snapshot


@router.delete("/sessions/{session_id}", status_code=204)
async def exit_session(session_id: str, services: EngineServices = Depends(get_services)) -> Response:
    session = _session_or_404(services, session_id)
    session.exit()
    services.sessions.delete(session_id)
    return Response(status_code=204)
