from __future__ import annotations  # Async chat-completions gateway with schema-validated replies

import asyncio
import json
import logging
import os
import re
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol, Sequence, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from config import LlmRoute
from langchain_core.messages import BaseMessage
from langchain_core.runnables import RunnableLambda


logger = logging.getLogger(__name__)

_ROUTE_LOCKS: Dict[str, asyncio.Lock] = {}
_FENCE = re.compile(r"^```[\w-]*\s*\n?(.*?)\n?\s*```$", re.DOTALL)
_ROLE_NAMES = {"human": "user", "ai": "assistant"}


class HttpResponse(Protocol):  # Minimal HTTP response protocol
    @property
    def status_code(self) -> int: ...

    def json(self) -> Any: ...

    @property
    def text(self) -> str: ...


class HttpClient(Protocol):  # Minimal async HTTP client protocol
    async def post(self, url: str, *, json: Dict[str, Any], headers: Dict[str, str], timeout: float) -> HttpResponse: ...


class LlmGatewayError(RuntimeError):  # Base gateway error
    pass


class LlmTransportError(LlmGatewayError):  # Endpoint unreachable or returned an error status
    pass


class LlmValidationError(LlmGatewayError):  # Endpoint answered but the content did not match the schema
    pass


T = TypeVar("T", bound=BaseModel)


async def call(
    task: str,
    schema: Type[T],
    *,
    cfg: LlmRoute,
    client: Optional[HttpClient] = None,
    options: Optional[Dict[str, Any]] = None,
) -> T:  # Single user turn convenience wrapper
    return await chat([{"role": "user", "content": task}], schema, cfg=cfg, client=client, options=options)


async def chat(
    messages: Sequence[Dict[str, Any]],
    schema: Type[T],
    *,
    cfg: LlmRoute,
    client: Optional[HttpClient] = None,
    options: Optional[Dict[str, Any]] = None,
) -> T:
    """Send ``messages`` to the route and validate the reply against ``schema``.

    Replies that fail validation are retried up to ``cfg.max_retries`` times
    with a corrective hint appended. Transport failures and error statuses are
    not retried.

    Raises:
        LlmTransportError: the endpoint could not be reached or answered >= 400.
        LlmValidationError: the reply was not JSON or never matched the schema.
    """

    conversation = _system_prelude(schema, cfg) + _checked_messages(messages)
    if cfg.sequential:
        async with _route_lock(cfg):
            return await _converse(conversation, schema, cfg, client, options)
    return await _converse(conversation, schema, cfg, client, options)


def runnable(route: LlmRoute, schema: Type[T], *, client: Optional[HttpClient] = None) -> RunnableLambda:  # Expose a route to LangChain pipelines
    async def _invoke(prompt: Any) -> T:
        return await chat(_as_chat_messages(prompt), schema, cfg=route, client=client)

    return RunnableLambda(_invoke)


async def _converse(
    conversation: List[Dict[str, Any]],
    schema: Type[T],
    cfg: LlmRoute,
    client: Optional[HttpClient],
    options: Optional[Dict[str, Any]],
) -> T:
    attempts = cfg.max_retries + 1
    headers = _request_headers(cfg)
    logger.info("LLM route=%s model=%s attempts=%d first=%s", cfg.name, cfg.model, attempts, _headline(conversation))
    failure: Optional[Exception] = None
    for attempt in range(1, attempts + 1):
        turn = list(conversation)
        if failure is not None:
            turn.append({"role": "system", "content": _retry_hint(str(failure), cfg.enforce_json)})
        body = _request_body(cfg, turn, options)
        try:
            async with _http(client, cfg.timeout_s) as http:
                response = await http.post(cfg.url, json=body, headers=headers, timeout=cfg.timeout_s)
        except Exception as exc:  # noqa: BLE001
            logger.error("LLM route=%s transport failure: %s", cfg.name, exc)
            raise LlmTransportError("LLM transport failed") from exc
        content = _reply_content(response)
        try:
            parsed = _validate(schema, content)
        except (json.JSONDecodeError, ValidationError) as exc:
            logger.warning("LLM route=%s attempt %d/%d invalid reply: %s", cfg.name, attempt, attempts, exc)
            failure = exc
            continue
        logger.info("LLM route=%s answered on attempt %d", cfg.name, attempt)
        return parsed
    raise LlmValidationError("LLM output validation failed") from failure


class _OwnedClient:  # Adapts httpx.AsyncClient to the HttpClient protocol
    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def post(self, url: str, *, json: Dict[str, Any], headers: Dict[str, str], timeout: float) -> httpx.Response:
        return await self._client.post(url, json=json, headers=headers, timeout=timeout)


@asynccontextmanager
async def _http(client: Optional[HttpClient], timeout: float) -> AsyncIterator[HttpClient]:
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=timeout) as owned:
        yield _OwnedClient(owned)


def _route_lock(cfg: LlmRoute) -> asyncio.Lock:
    key = cfg.name or cfg.url
    if key not in _ROUTE_LOCKS:
        _ROUTE_LOCKS[key] = asyncio.Lock()
    return _ROUTE_LOCKS[key]


def _system_prelude(schema: Type[BaseModel], cfg: LlmRoute) -> List[Dict[str, Any]]:
    if not cfg.enforce_json:
        return []
    schema_json = json.dumps(schema.model_json_schema(), indent=2)
    return [{"role": "system", "content": "Reply with JSON matching this schema:\n" + schema_json}]


def _request_body(cfg: LlmRoute, messages: List[Dict[str, Any]], options: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    body: Dict[str, Any] = {"model": cfg.model, "messages": messages, **(options or {})}
    if cfg.response_format:
        body["response_format"] = {"type": cfg.response_format}
    return body


def _request_headers(cfg: LlmRoute) -> Dict[str, str]:
    headers = {"Content-Type": "application/json"}
    api_key = os.getenv(cfg.api_key_env) if cfg.api_key_env else None
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"
    return {**headers, **cfg.extra_headers}


def _reply_content(response: HttpResponse) -> str:  # Status check, JSON decode and content lookup
    if response.status_code >= 400:
        logger.error("LLM error status %s: %s", response.status_code, response.text[:200])
        raise LlmTransportError(f"LLM returned status {response.status_code}")
    try:
        data = response.json()
    except ValueError as exc:
        raise LlmValidationError("LLM payload was not JSON") from exc
    if isinstance(data, dict):
        choices = data.get("choices") or [{}]
        message = choices[0].get("message") if isinstance(choices[0], dict) else None
        if isinstance(message, dict) and isinstance(message.get("content"), str):
            return message["content"]
        if isinstance(data.get("content"), str):
            return data["content"]
    raise LlmValidationError("LLM response missing content")


def _validate(schema: Type[T], content: str) -> T:
    cleaned = _strip_code_fences(content)
    try:
        return schema.model_validate_json(cleaned)
    except ValidationError:
        fallback = getattr(schema, "from_raw_content", None)  # Schema-specific alternate shapes
        if not callable(fallback):
            raise
        try:
            return fallback(cleaned)
        except (json.JSONDecodeError, ValidationError, ValueError):
            pass
        raise


def _strip_code_fences(content: str) -> str:
    text = content.strip()
    match = _FENCE.match(text)
    return match.group(1).strip() if match else text


def _retry_hint(error_text: str, enforce_json: bool) -> str:
    reason = error_text.splitlines()[0].strip() if error_text else ""
    if len(reason) > 200:
        reason = reason[:197] + "..."
    hint = "The previous reply failed validation."
    if reason:
        hint += f" Reason: {reason}."
    return hint + (" Return JSON that matches the schema." if enforce_json else " Follow the requested format precisely.")


def _headline(messages: Sequence[Dict[str, Any]]) -> str:  # First line of the first non-system text, for logs
    for message in messages:
        if message["role"] == "system":
            continue
        content = message["content"]
        if isinstance(content, list):
            content = " ".join(part.get("text", "") for part in content if part.get("type") == "text")
        line = content.strip().splitlines()[0] if content.strip() else ""
        return line if len(line) <= 80 else line[:77] + "..."
    return ""


def _checked_messages(messages: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
    checked: List[Dict[str, Any]] = []
    for message in messages:
        if not isinstance(message, dict):
            raise TypeError("Each chat message must be a dict with role/content")
        role = str(message.get("role", "")).strip()
        if not role:
            raise ValueError("Chat message missing role")
        content = message.get("content", "")
        checked.append({"role": role, "content": content if isinstance(content, list) else str(content)})
    return checked


def _as_chat_messages(prompt: Any) -> List[Dict[str, Any]]:  # PromptValue, BaseMessage(s) or dict(s)
    if hasattr(prompt, "to_messages"):
        prompt = prompt.to_messages()
    items = prompt if isinstance(prompt, (list, tuple)) else [prompt]
    messages: List[Dict[str, Any]] = []
    for item in items:
        if isinstance(item, dict):
            messages.append(item)
        elif isinstance(item, BaseMessage):
            content = item.content if isinstance(item.content, (str, list)) else json.dumps(item.content)
            messages.append({"role": _ROLE_NAMES.get(item.type, item.type), "content": content})
        else:
            raise TypeError("Unsupported message payload for LLM runnable")
    return messages
